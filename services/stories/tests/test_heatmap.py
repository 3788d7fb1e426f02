import uuid

import pytest

from libs.story_store import ReactionCounts, StoryRecord
from services.stories.heatmap import build_feature_collection, heatmap_weight
from services.stories.types import ReactionKind

pytestmark = pytest.mark.unit


def _record(lat=None, lng=None, **counts):
    return StoryRecord(
        id=uuid.uuid4(),
        message="m",
        owner_kind="anonymous",
        owner_id="c",
        created_at=None,
        lat=lat,
        lng=lng,
        counts=ReactionCounts(**counts),
    )


def test_single_report_still_has_weight():
    assert heatmap_weight(ReactionCounts()) == 1


def test_reactions_add_weight():
    assert heatmap_weight(ReactionCounts(likes=2, helpful=1, noted=3)) == 1 + 2 + 3 + 6


def test_feature_collection_skips_untagged_stories():
    tagged = _record(lat=43.65, lng=-79.38, helpful=1)
    collection = build_feature_collection([tagged, _record()])

    assert collection["type"] == "FeatureCollection"
    assert len(collection["features"]) == 1
    feature = collection["features"][0]
    assert feature["geometry"]["coordinates"] == [-79.38, 43.65]
    assert feature["properties"] == {"id": str(tagged.id), "weight": 4, "source": "community"}


@pytest.mark.parametrize("raw,kind", [("like", ReactionKind.LIKE), (" Helpful ", ReactionKind.HELPFUL)])
def test_reaction_kind_parse(raw, kind):
    assert ReactionKind.parse(raw) is kind


def test_reaction_kind_parse_rejects_unknown():
    with pytest.raises(ValueError):
        ReactionKind.parse("love")
