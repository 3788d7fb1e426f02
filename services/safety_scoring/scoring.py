"""
Safety scoring core.

Pure functions behind the two scoring endpoints:

- community-weighted destination score: baseline minus a penalty derived
  from reactions on stories near the start point, plus contextual
  time-of-day/activity signals
- deterministic route fallback score used whenever the AI path is
  unavailable

Rounding follows half-up semantics (``js_round``) so that .5 cases land
the same way the web client computes them.
"""

import math
from dataclasses import asdict, dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Dict, Iterable, List, Optional

from common.constants import (
    BASELINE_SAFETY_SCORE,
    COMMUNITY_PENALTY_CAP,
    COMMUNITY_PENALTY_MULTIPLIER,
    COMMUNITY_REACTION_WEIGHTS,
    DEFAULT_HOME,
    DEFAULT_START,
    EARTH_RADIUS_KM,
    EXPLANATION_DESTINATION,
    FALLBACK_BASE_SCORE,
    FALLBACK_FACTORS,
    FALLBACK_MAX_SCORE,
    FALLBACK_MIN_SCORE,
    FALLBACK_PENALTY_PER_KM,
    HIGH_ACTIVITY_MIN_REPORTS,
    LOW_RISK_MIN_SCORE,
    MEDIUM_RISK_MIN_SCORE,
    NEARBY_RADIUS_KM,
    STREET_LIGHTING_LEVEL,
    VISIBILITY_LEVEL,
    WALKING_SPEED_MPS,
)
from libs.story_store import StorySignal


@dataclass
class CommunitySignals:
    nearby_count: int
    impact: float


@dataclass
class ContextualSignal:
    label: str
    level: str
    note: str


def js_round(value: float) -> int:
    """Round half up (2.5 -> 3, -2.5 -> -2)."""
    return int(math.floor(value + 0.5))


def fixed_one(value: float) -> str:
    """Format with one decimal, ties rounded away from zero on the exact value."""
    return str(Decimal(value).quantize(Decimal("0.1"), rounding=ROUND_HALF_UP))


def haversine_km(a_lat: float, a_lng: float, b_lat: float, b_lng: float) -> float:
    """Great-circle distance in kilometers between two points given in degrees."""
    d_lat = math.radians(b_lat - a_lat)
    d_lng = math.radians(b_lng - a_lng)
    lat1 = math.radians(a_lat)
    lat2 = math.radians(b_lat)

    x = math.sin(d_lat / 2) ** 2 + math.sin(d_lng / 2) ** 2 * math.cos(lat1) * math.cos(lat2)
    # x can land a hair above 1.0 for antipodal points
    return 2 * EARTH_RADIUS_KM * math.asin(math.sqrt(min(1.0, x)))


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def valid_coordinates(lat: Any, lng: Any) -> bool:
    """Numeric, finite and inside the WGS84 latitude/longitude ranges."""
    return (
        _is_number(lat)
        and _is_number(lng)
        and -90 <= lat <= 90
        and -180 <= lng <= 180
    )


def aggregate_community_signals(
    start_lat: float,
    start_lng: float,
    stories: Iterable[StorySignal],
    radius_km: float = NEARBY_RADIUS_KM,
) -> CommunitySignals:
    """
    Count stories near the start point and accumulate their reaction impact.

    Stories without numeric coordinates are skipped entirely.
    """
    nearby = 0
    impact = 0.0
    for story in stories:
        if not _is_number(story.lat) or not _is_number(story.lng):
            continue
        if haversine_km(start_lat, start_lng, story.lat, story.lng) > radius_km:
            continue

        nearby += 1
        impact += (
            story.counts.helpful * COMMUNITY_REACTION_WEIGHTS["helpful"]
            + story.counts.likes * COMMUNITY_REACTION_WEIGHTS["like"]
            + story.counts.noted * COMMUNITY_REACTION_WEIGHTS["noted"]
        )
    return CommunitySignals(nearby_count=nearby, impact=impact)


def community_penalty(impact: float) -> int:
    return min(COMMUNITY_PENALTY_CAP, js_round(impact * COMMUNITY_PENALTY_MULTIPLIER))


def time_of_day_risk(hour: int) -> ContextualSignal:
    if hour >= 22 or hour <= 5:
        return ContextualSignal(
            label="Time of Day",
            level="High",
            note="Late-night hours often have lower activity and visibility.",
        )
    if hour >= 18:
        return ContextualSignal(
            label="Time of Day",
            level="Medium",
            note="Evening hours may have reduced foot traffic.",
        )
    return ContextualSignal(
        label="Time of Day",
        level="Low",
        note="Daytime hours generally have higher visibility and activity.",
    )


def public_activity(nearby_count: int) -> ContextualSignal:
    if nearby_count >= HIGH_ACTIVITY_MIN_REPORTS:
        level = "High"
    elif nearby_count > 0:
        level = "Medium"
    else:
        level = "Low"

    if nearby_count > 0:
        note = f"{nearby_count} community reports detected nearby."
    else:
        note = "Limited community activity reported in this area."
    return ContextualSignal(label="Public Activity", level=level, note=note)


def contextual_signals(hour: int, nearby_count: int) -> List[ContextualSignal]:
    """Signals in display order: lighting, visibility, activity, time of day."""
    return [
        ContextualSignal(
            label="Street Lighting",
            level=STREET_LIGHTING_LEVEL,
            note="Lighting is typically mixed in similar urban environments.",
        ),
        ContextualSignal(
            label="Visibility",
            level=VISIBILITY_LEVEL,
            note="Some visual obstructions may exist depending on route layout.",
        ),
        public_activity(nearby_count),
        time_of_day_risk(hour),
    ]


def clamp_score(score: float, low: float = 0, high: float = 100) -> float:
    return max(low, min(high, score))


def risk_level(score: float) -> str:
    if score >= LOW_RISK_MIN_SCORE:
        return "Low"
    if score >= MEDIUM_RISK_MIN_SCORE:
        return "Medium"
    return "High"


def synthesize_destination_safety(
    *,
    destination: Any,
    start_used: Dict[str, Any],
    stories: Iterable[StorySignal],
    hour: int,
) -> Dict[str, Any]:
    """
    Build the community-weighted safety context for a destination.

    Args:
        destination: Destination descriptor, echoed back unchanged
        start_used: Resolved start location with its ``source`` tag
        stories: Geotagged stories with reaction counts
        hour: Local hour of day (0-23)

    Returns:
        Dict with destination, start_used, safety_score, risk_level,
        contextual_signals and explanation
    """
    community = aggregate_community_signals(start_used["lat"], start_used["lng"], stories)
    score = int(clamp_score(BASELINE_SAFETY_SCORE - community_penalty(community.impact)))

    return {
        "destination": destination,
        "start_used": start_used,
        "safety_score": score,
        "risk_level": risk_level(score),
        "contextual_signals": [
            asdict(signal) for signal in contextual_signals(hour, community.nearby_count)
        ],
        "explanation": EXPLANATION_DESTINATION,
    }


def fallback_route_score(distance_m: float, duration_s: float) -> Dict[str, Any]:
    """
    Deterministic route score used when the AI service is unavailable.

    The level is decided on the unrounded score, the reported score is
    rounded half up.
    """
    distance_km = distance_m / 1000
    raw = clamp_score(
        FALLBACK_BASE_SCORE - distance_km * FALLBACK_PENALTY_PER_KM,
        FALLBACK_MIN_SCORE,
        FALLBACK_MAX_SCORE,
    )

    if raw > 70:
        level = "low risk"
    elif raw > 40:
        level = "medium risk"
    else:
        level = "high risk"

    minutes = js_round(duration_s / 60)
    return {
        "score": js_round(raw),
        "level": level,
        **FALLBACK_FACTORS,
        "explanation": (
            f"AI unavailable. Fallback analysis based on {fixed_one(distance_km)} km "
            f"+ {minutes} min duration."
        ),
    }


def estimate_walking_route(
    start_lat: float,
    start_lng: float,
    end_lat: float,
    end_lng: float,
    speed_mps: float = WALKING_SPEED_MPS,
) -> Dict[str, float]:
    """Straight-line distance and walking duration, used without directions."""
    distance_m = haversine_km(start_lat, start_lng, end_lat, end_lng) * 1000
    return {"distance_m": distance_m, "duration_s": distance_m / speed_mps}


def resolve_start(
    gps_start: Optional[Dict[str, Any]], home_start: Optional[Dict[str, Any]]
) -> Dict[str, Any]:
    """
    Pick the start location for a destination score.

    GPS wins when both coordinates are present and in range, then a
    labelled home location (missing coordinates fall back to the default home), then
    the city default.
    """
    gps_start = gps_start or {}
    home_start = home_start or {}

    if valid_coordinates(gps_start.get("lat"), gps_start.get("lng")):
        return {"lat": gps_start["lat"], "lng": gps_start["lng"], "source": "gps"}

    if home_start.get("label"):
        lat = home_start.get("lat")
        lng = home_start.get("lng")
        return {
            "lat": lat if lat is not None else DEFAULT_HOME["lat"],
            "lng": lng if lng is not None else DEFAULT_HOME["lng"],
            "source": "home",
            "label": home_start["label"],
        }

    return {"lat": DEFAULT_START["lat"], "lng": DEFAULT_START["lng"], "source": "default"}
