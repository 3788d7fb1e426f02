"""
Safety ranking of alternative walking routes.

Each route gets four 0-100 factor scores (distance, lighting, community
concerns along the route, community awareness). The LLM turns them into a
route score; without it the factors are blended with fixed weights. Routes
are then ranked safest first.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Tuple

from common.constants import (
    ROUTE_DEFAULT_CRIME_SCORE,
    ROUTE_DEFAULT_STORY_SCORE,
    ROUTE_DISTANCE_PENALTY_PER_KM,
    ROUTE_FACTOR_WEIGHTS,
    ROUTE_LIGHTING_SCORE,
    ROUTE_LOW_ENGAGEMENT_REACTIONS,
    ROUTE_STORY_RADIUS_M,
    ROUTE_STORY_SCORE_PER_STORY,
)
from common.errors import UpstreamError
from libs.directions_client import RouteSummary
from libs.llm_client import LLMClient
from libs.story_store import StorySignal
from services.safety_scoring.route_scorer import SOURCE_AI, SOURCE_FALLBACK, parse_ai_object
from services.safety_scoring.scoring import (
    clamp_score,
    fixed_one,
    haversine_km,
    js_round,
    valid_coordinates,
)

logger = logging.getLogger(__name__)

# Best-factor phrases, in tie-break order (a later factor wins a tie)
FACTOR_PHRASES = {
    "distance_score": "It's the shortest route, reducing exposure time. ",
    "lighting_score": "It has better lighting conditions. ",
    "crime_score": "It passes through areas with fewer safety concerns. ",
    "story_score": "It has good community awareness and engagement. ",
}


@dataclass
class SafetyFactors:
    distance_score: int
    lighting_score: int
    crime_score: int
    story_score: int


@dataclass
class ScoredRoute:
    id: str
    route: RouteSummary
    score: Dict[str, Any]
    safety_factors: SafetyFactors
    source: str


def route_vertices(route: RouteSummary) -> List[Tuple[float, float]]:
    """(lat, lng) vertices of a GeoJSON LineString; malformed points are skipped."""
    coordinates = (route.geometry or {}).get("coordinates") or []
    vertices = []
    for point in coordinates:
        if isinstance(point, (list, tuple)) and len(point) >= 2:
            lng, lat = point[0], point[1]
            if valid_coordinates(lat, lng):
                vertices.append((lat, lng))
    return vertices


def stories_near_route(
    route: RouteSummary,
    stories: Sequence[StorySignal],
    radius_m: float = ROUTE_STORY_RADIUS_M,
) -> List[StorySignal]:
    vertices = route_vertices(route)
    nearby = []
    for story in stories:
        if not valid_coordinates(story.lat, story.lng):
            continue
        if any(
            haversine_km(story.lat, story.lng, lat, lng) * 1000 < radius_m
            for lat, lng in vertices
        ):
            nearby.append(story)
    return nearby


def route_safety_factors(route: RouteSummary, stories: Sequence[StorySignal]) -> SafetyFactors:
    distance_km = route.distance_m / 1000
    distance_score = clamp_score(100 - distance_km * ROUTE_DISTANCE_PENALTY_PER_KM)

    nearby = stories_near_route(route, stories)
    if nearby:
        concerns = sum(
            1
            for s in nearby
            if s.counts.likes + s.counts.helpful + s.counts.noted < ROUTE_LOW_ENGAGEMENT_REACTIONS
        )
        crime_score = max(0, 100 - concerns / len(nearby) * 100)
        story_score = min(100, len(nearby) * ROUTE_STORY_SCORE_PER_STORY)
    else:
        crime_score = ROUTE_DEFAULT_CRIME_SCORE
        story_score = ROUTE_DEFAULT_STORY_SCORE

    return SafetyFactors(
        distance_score=js_round(distance_score),
        lighting_score=js_round(ROUTE_LIGHTING_SCORE),
        crime_score=js_round(crime_score),
        story_score=js_round(story_score),
    )


def weighted_factor_score(factors: SafetyFactors) -> int:
    return js_round(
        factors.distance_score * ROUTE_FACTOR_WEIGHTS["distance"]
        + factors.lighting_score * ROUTE_FACTOR_WEIGHTS["lighting"]
        + factors.crime_score * ROUTE_FACTOR_WEIGHTS["crime"]
        + factors.story_score * ROUTE_FACTOR_WEIGHTS["story"]
    )


def factor_route_score(
    route: RouteSummary, factors: SafetyFactors, ai_failed: bool = False
) -> Dict[str, Any]:
    """Route score from the weighted factors, used when the AI path is unavailable."""
    score = weighted_factor_score(factors)
    if score > 70:
        level = "low risk"
    elif score > 40:
        level = "medium risk"
    else:
        level = "high risk"

    if ai_failed:
        explanation = f"AI unavailable. Route scored {score}/100 based on safety factors analysis."
    else:
        explanation = (
            f"Route scored {score}/100 based on distance ({fixed_one(route.distance_m / 1000)}km), "
            f"community data, and safety factors."
        )

    return {
        "score": score,
        "level": level,
        "lighting": "good" if factors.lighting_score > 70 else "medium",
        "incidents": "low" if factors.crime_score > 70 else "medium",
        "visibility": "medium",
        "explanation": explanation,
    }


def build_alternative_prompt(route: RouteSummary, factors: SafetyFactors, story_count: int) -> str:
    return f"""Evaluate this walking route for women's safety:

Route Details:
- Distance: {route.distance_m} meters ({fixed_one(route.distance_m / 1000)} km)
- Duration: {route.duration_s} seconds ({js_round(route.duration_s / 60)} minutes)

Safety Factors:
- Distance Score: {factors.distance_score}/100
- Lighting Score: {factors.lighting_score}/100
- Crime Score: {factors.crime_score}/100
- Community Story Score: {factors.story_score}/100

Nearby Stories: {story_count} community reports

Provide a safety assessment. Respond ONLY with JSON in this exact format:
{{
  "score": 75,
  "level": "low risk",
  "lighting": "good",
  "incidents": "low",
  "visibility": "good",
  "explanation": "This route scores well due to shorter distance and good community engagement."
}}"""


def _is_score(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _format_number(value: float) -> str:
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def rank_routes(routes: List[ScoredRoute]) -> List[ScoredRoute]:
    """Safest first; equal scores keep their directions order."""
    return sorted(routes, key=lambda r: r.score["score"], reverse=True)


def safest_route_explanation(safest: ScoredRoute, alternatives: List[ScoredRoute]) -> str:
    safest_score = safest.score["score"]
    explanation = (
        f"This route is recommended with a safety score of {_format_number(safest_score)}/100. "
    )

    factors = vars(safest.safety_factors)
    best = None
    for name in FACTOR_PHRASES:
        if best is None or factors[name] >= factors[best]:
            best = name
    explanation += FACTOR_PHRASES[best]

    if alternatives:
        diff = safest_score - alternatives[0].score["score"]
        explanation += (
            f"This route scores {_format_number(diff)} points higher than the next best alternative."
        )
    return explanation


class AlternativesScorer:
    """Scores every candidate route, through the LLM when it is available."""

    def __init__(self, llm: LLMClient):
        self.llm = llm

    async def _score_one(
        self, route: RouteSummary, factors: SafetyFactors, story_count: int
    ) -> Tuple[Dict[str, Any], str]:
        if not self.llm.is_enabled():
            return factor_route_score(route, factors), SOURCE_FALLBACK

        try:
            content = await self.llm.complete(
                build_alternative_prompt(route, factors, story_count), json_mode=True
            )
            result = parse_ai_object(content)
            # Ranking needs a numeric score
            if not _is_score(result.get("score")):
                raise ValueError("model reply has no numeric score")
        except UpstreamError as e:
            logger.warning(f"AI route scoring failed ({e.message}), using factor score")
            return factor_route_score(route, factors, ai_failed=True), SOURCE_FALLBACK
        except ValueError as e:
            logger.warning(f"AI route score unusable ({e}), using factor score")
            return factor_route_score(route, factors, ai_failed=True), SOURCE_FALLBACK

        return result, SOURCE_AI

    async def score_routes(
        self, routes: Sequence[RouteSummary], stories: Sequence[StorySignal]
    ) -> List[ScoredRoute]:
        """Score all routes concurrently; results keep the input order."""
        factors = [route_safety_factors(route, stories) for route in routes]
        results = await asyncio.gather(
            *(self._score_one(route, f, len(stories)) for route, f in zip(routes, factors))
        )
        return [
            ScoredRoute(
                id=f"route_{index}",
                route=route,
                score=score,
                safety_factors=f,
                source=source,
            )
            for index, (route, f, (score, source)) in enumerate(zip(routes, factors, results))
        ]


def estimated_route(
    start: Tuple[float, float], end: Tuple[float, float], distance_m: float, duration_s: float
) -> RouteSummary:
    """Straight-line stand-in used when directions are unavailable."""
    return RouteSummary(
        distance_m=distance_m,
        duration_s=duration_s,
        geometry={
            "type": "LineString",
            "coordinates": [[start[1], start[0]], [end[1], end[0]]],
        },
    )


def summarize_alternatives(scored: List[ScoredRoute]) -> Optional[Dict[str, Any]]:
    """Split ranked routes into safest and alternatives with an explanation."""
    if not scored:
        return None
    ranked = rank_routes(scored)
    safest, alternatives = ranked[0], ranked[1:]
    return {
        "safest_route": safest,
        "alternative_routes": alternatives,
        "explanation": safest_route_explanation(safest, alternatives),
    }
