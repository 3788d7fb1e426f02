"""
GeoJSON heatmap features for geotagged stories.

Every story shows with a base weight of 1; reactions add to it so that
well-corroborated reports glow brighter.
"""

from typing import Any, Dict, Iterable, List

from common.constants import HEATMAP_REACTION_WEIGHTS
from libs.story_store import ReactionCounts, StoryRecord


def heatmap_weight(counts: ReactionCounts) -> int:
    return (
        1
        + counts.likes * HEATMAP_REACTION_WEIGHTS["like"]
        + counts.helpful * HEATMAP_REACTION_WEIGHTS["helpful"]
        + counts.noted * HEATMAP_REACTION_WEIGHTS["noted"]
    )


def story_feature(record: StoryRecord) -> Dict[str, Any]:
    return {
        "type": "Feature",
        "geometry": {
            "type": "Point",
            "coordinates": [float(record.lng), float(record.lat)],
        },
        "properties": {
            "id": str(record.id),
            "weight": heatmap_weight(record.counts),
            "source": "community",
        },
    }


def build_feature_collection(records: Iterable[StoryRecord]) -> Dict[str, Any]:
    """Wrap geotagged stories as a FeatureCollection; untagged ones are skipped."""
    features: List[Dict[str, Any]] = [
        story_feature(r) for r in records if r.lat is not None and r.lng is not None
    ]
    return {"type": "FeatureCollection", "features": features}
