# Run:
# uvicorn services.safety_scoring.main:app --host 0.0.0.0 --port 20003 --reload
# Docs: http://127.0.0.1:20003/docs

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import Depends
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel
from sqlalchemy.exc import SQLAlchemyError

from common.errors import UpstreamError, ValidationError
from libs.config import Config
from libs.directions_client import (
    MapboxDirectionsClient,
    close_directions_client,
    get_directions_client,
)
from libs.fastapi_service import (
    CORSMiddlewareConfig,
    FastAPIServiceFactory,
    ServiceAppConfig,
)
from libs.llm_client import LLMClient, close_llm_client, get_llm_client
from libs.story_store import StoryStore, get_story_store
from services.safety_scoring.route_alternatives import (
    AlternativesScorer,
    ScoredRoute,
    estimated_route,
    summarize_alternatives,
)
from services.safety_scoring.route_scorer import RouteScorer
from services.safety_scoring.scoring import (
    estimate_walking_route,
    resolve_start,
    synthesize_destination_safety,
    valid_coordinates,
)

# Setup logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

service_config = ServiceAppConfig(
    title="Safety Scoring Service",
    description="Route safety scores and community-weighted destination safety.",
    service_name="safety_scoring",
    cors_config=CORSMiddlewareConfig(),
    shutdown_hooks=[close_directions_client, close_llm_client],
)

factory = FastAPIServiceFactory(service_config)
app = factory.create_app()

logger.info(
    f"AI route scoring {'enabled' if Config.llm_enabled() else 'disabled (fallback only)'}, "
    f"directions {'enabled' if Config.directions_enabled() else 'disabled (straight-line estimate)'}"
)

# ========= Business metrics =========

ROUTE_SCORES_TOTAL = factory.add_business_metric(
    "route_scores_total",
    "Total route safety scores, by scoring source",
    ["source"],
)

DESTINATION_SCORES_TOTAL = factory.add_business_metric(
    "destination_scores_total",
    "Total community-weighted destination safety scores",
)

ROUTE_ALTERNATIVES_TOTAL = factory.add_business_metric(
    "route_alternatives_total",
    "Total route alternative analyses, by scoring source of the safest route",
    ["source"],
)


class Coordinates(BaseModel):
    lat: Optional[float] = None
    lng: Optional[float] = None


class RouteScoreRequest(BaseModel):
    start: Optional[Coordinates] = None
    end: Optional[Coordinates] = None
    stories: Optional[List[Any]] = None


class HomeStart(BaseModel):
    label: Optional[str] = None
    lat: Optional[float] = None
    lng: Optional[float] = None


class DestinationScoreRequest(BaseModel):
    destination: Any = None
    gps_start: Optional[Coordinates] = None
    home_start: Optional[HomeStart] = None


class ContextualSignalOut(BaseModel):
    label: str
    level: str
    note: str


class DestinationScoreResponse(BaseModel):
    destination: Any
    start_used: dict
    safety_score: int
    risk_level: str
    contextual_signals: List[ContextualSignalOut]
    explanation: str


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class SafetyFactorsOut(CamelModel):
    distance_score: int
    lighting_score: int
    crime_score: int
    story_score: int


class ScoredRouteOut(CamelModel):
    id: str
    distance: float
    duration: float
    geometry: Optional[Dict[str, Any]] = None
    score: Dict[str, Any]
    safety_factors: SafetyFactorsOut

    @classmethod
    def from_scored(cls, scored: ScoredRoute) -> "ScoredRouteOut":
        return cls(
            id=scored.id,
            distance=scored.route.distance_m,
            duration=scored.route.duration_s,
            geometry=scored.route.geometry,
            score=scored.score,
            safety_factors=SafetyFactorsOut(**vars(scored.safety_factors)),
        )


class RouteAlternativesResponse(CamelModel):
    safest_route: ScoredRouteOut
    alternative_routes: List[ScoredRouteOut]
    explanation: str
    start: Coordinates
    end: Coordinates


def current_hour() -> int:
    """Local wall-clock hour used for the time-of-day signal."""
    return datetime.now().hour


def _valid_point(point: Optional[Coordinates]) -> bool:
    return point is not None and valid_coordinates(point.lat, point.lng)


@app.get("/")
async def root():
    return {"service": "safety_scoring", "status": "running"}


@app.post("/route-score")
async def route_score(
    body: RouteScoreRequest,
    directions: MapboxDirectionsClient = Depends(get_directions_client),
    llm: LLMClient = Depends(get_llm_client),
):
    """
    Score a walking route between two points.

    Directions or AI outages never fail the request: distance falls back to
    a straight-line estimate and the score to the distance heuristic.
    """
    if not _valid_point(body.start) or not _valid_point(body.end):
        raise ValidationError("Invalid start or end coordinates")

    start = (body.start.lat, body.start.lng)
    end = (body.end.lat, body.end.lng)
    logger.info(
        f"Route scoring request: start={start}, end={end}, "
        f"stories={len(body.stories or [])}"
    )

    # RouteNotFoundError propagates as a 400
    route = await directions.get_route(start, end, mode="walking")
    if route is not None:
        distance_m, duration_s = route.distance_m, route.duration_s
    else:
        estimate = estimate_walking_route(*start, *end)
        distance_m, duration_s = estimate["distance_m"], estimate["duration_s"]
        logger.warning(
            f"Directions unavailable, using straight-line estimate: {distance_m:.0f}m"
        )

    result, source = await RouteScorer(llm).score(distance_m, duration_s, body.stories)

    # Business metric: route scored
    ROUTE_SCORES_TOTAL.labels(source=source).inc()

    return result


@app.post("/stories-safety-score", response_model=DestinationScoreResponse)
async def stories_safety_score(
    body: DestinationScoreRequest,
    store: StoryStore = Depends(get_story_store),
):
    """Community-weighted safety context around the start of a trip."""
    if not body.destination:
        raise ValidationError("Destination required")

    start_used = resolve_start(
        body.gps_start.model_dump() if body.gps_start else None,
        body.home_start.model_dump() if body.home_start else None,
    )

    try:
        stories = await store.geotagged_signals()
    except SQLAlchemyError as e:
        logger.error(f"Failed to load community stories: {e}")
        raise UpstreamError("Failed to load community stories") from e

    context = synthesize_destination_safety(
        destination=body.destination,
        start_used=start_used,
        stories=stories,
        hour=current_hour(),
    )

    # Business metric: destination scored
    DESTINATION_SCORES_TOTAL.inc()

    return context


@app.post("/route-alternatives", response_model=RouteAlternativesResponse)
async def route_alternatives(
    body: RouteScoreRequest,
    directions: MapboxDirectionsClient = Depends(get_directions_client),
    llm: LLMClient = Depends(get_llm_client),
    store: StoryStore = Depends(get_story_store),
):
    """
    Rank the walking routes Mapbox offers between two points, safest first.

    Each route is scored from its distance, lighting and the community
    stories within 500 m of it. Without directions a single straight-line
    route is scored; a store failure scores routes without stories.
    """
    if not _valid_point(body.start) or not _valid_point(body.end):
        raise ValidationError("Invalid start or end coordinates")

    start = (body.start.lat, body.start.lng)
    end = (body.end.lat, body.end.lng)
    logger.info(f"Route alternatives request: start={start}, end={end}")

    # RouteNotFoundError propagates as a 400
    routes = await directions.get_routes(start, end, mode="walking")
    if routes is None:
        estimate = estimate_walking_route(*start, *end)
        routes = [estimated_route(start, end, estimate["distance_m"], estimate["duration_s"])]
        logger.warning(
            f"Directions unavailable, scoring straight-line estimate: "
            f"{estimate['distance_m']:.0f}m"
        )

    try:
        stories = await store.geotagged_signals()
    except SQLAlchemyError as e:
        logger.error(f"Failed to load community stories, scoring without them: {e}")
        stories = []

    scored = await AlternativesScorer(llm).score_routes(routes, stories)
    summary = summarize_alternatives(scored)

    # Business metric: alternatives ranked
    ROUTE_ALTERNATIVES_TOTAL.labels(source=summary["safest_route"].source).inc()

    return RouteAlternativesResponse(
        safest_route=ScoredRouteOut.from_scored(summary["safest_route"]),
        alternative_routes=[
            ScoredRouteOut.from_scored(r) for r in summary["alternative_routes"]
        ],
        explanation=summary["explanation"],
        start=body.start,
        end=body.end,
    )
