# Run:
# uvicorn services.stories.main:app --host 0.0.0.0 --port 20010 --reload
# Docs: http://127.0.0.1:20010/docs

import logging
from dataclasses import replace
from typing import Optional
from uuid import UUID

from fastapi import Depends
from sqlalchemy.exc import SQLAlchemyError

from common.constants import HEATMAP_MAX_FEATURES
from common.errors import NotFoundError, OwnershipError, UpstreamError, ValidationError
from common.owner import Owner, find_owner, resolve_owner
from libs.auth.token_verify import get_optional_claims
from libs.config import Config
from libs.fastapi_service import (
    CORSMiddlewareConfig,
    FastAPIServiceFactory,
    ServiceAppConfig,
)
from libs.llm_client import LLMClient, close_llm_client, get_llm_client
from libs.story_store import BoundingBox, StoryRecord, StoryStore, get_story_store
from services.stories.heatmap import build_feature_collection
from services.stories.schemas import (
    DeleteResponse,
    FeatureCollection,
    HeatmapRequest,
    ReactRequest,
    StoryCreateRequest,
    StoryListResponse,
    StoryOut,
    StoryOwnerRequest,
    StoryResponse,
    StoryUpdateRequest,
)
from services.stories.types import ReactionKind

# Setup logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

service_config = ServiceAppConfig(
    title="Stories Service",
    description="Community safety stories, reactions and heatmap.",
    service_name="stories",
    cors_config=CORSMiddlewareConfig(),
    shutdown_hooks=[close_llm_client],
)

factory = FastAPIServiceFactory(service_config)
app = factory.create_app()

# ========= Business metrics =========

STORIES_CREATED_TOTAL = factory.add_business_metric(
    "stories_created_total",
    "Total stories posted",
)

STORY_REACTIONS_TOTAL = factory.add_business_metric(
    "story_reactions_total",
    "Total story reactions, by kind",
    ["kind"],
)


def _require_message(message: Optional[str]) -> str:
    text = (message or "").strip()
    if not text:
        raise ValidationError("Message required")
    return text


def _validate_coordinates(lat: Optional[float], lng: Optional[float]) -> None:
    if (lat is None) != (lng is None):
        raise ValidationError("lat and lng must be provided together")
    if lat is not None and not (-90 <= lat <= 90 and -180 <= lng <= 180):
        raise ValidationError("Invalid coordinates")


async def _reject_write(store: StoryStore, story_id: UUID) -> None:
    """Raise the right rejection for a write that matched no row."""
    existing = await store.get(story_id)
    if existing is None:
        raise NotFoundError("Story not found")
    raise OwnershipError("You can only modify your own stories")


def _out(record: StoryRecord, owner: Optional[Owner]) -> StoryOut:
    return StoryOut.from_record(record, owned=record.is_owned_by(owner))


@app.get("/")
async def root():
    return {"service": "stories", "status": "running"}


@app.post("/stories", response_model=StoryResponse)
async def create_story(
    body: StoryCreateRequest,
    claims: Optional[dict] = Depends(get_optional_claims),
    store: StoryStore = Depends(get_story_store),
    llm: LLMClient = Depends(get_llm_client),
):
    """
    Post a story.

    The author is the bearer token's subject when one is sent, otherwise the
    anonymous client id. A one-sentence summary is attached when the LLM is
    available; summary failures never block the post.
    """
    message = _require_message(body.message)
    owner = resolve_owner(claims, body.client_id)
    _validate_coordinates(body.lat, body.lng)

    summary = None
    if Config.SUMMARIZE_STORIES:
        summary = await llm.summarize_story(message)

    try:
        record = await store.insert(
            message=message, owner=owner, lat=body.lat, lng=body.lng, summary=summary
        )
    except SQLAlchemyError as e:
        logger.error(f"Failed to post story: {e}")
        raise UpstreamError("Failed to post story") from e

    # Business metric: story posted
    STORIES_CREATED_TOTAL.inc()

    logger.info(f"Story {record.id} posted by {owner.kind} owner")
    return StoryResponse(story=_out(record, owner))


@app.get("/stories", response_model=StoryListResponse)
async def list_stories(
    client_id: Optional[str] = None,
    claims: Optional[dict] = Depends(get_optional_claims),
    store: StoryStore = Depends(get_story_store),
):
    """All stories, newest first, with reaction counts."""
    owner = find_owner(claims, client_id)
    try:
        records = await store.list_by_recency()
    except SQLAlchemyError as e:
        logger.error(f"Failed to load stories: {e}")
        raise UpstreamError("Failed to load stories") from e

    return StoryListResponse(stories=[_out(r, owner) for r in records])


@app.post("/stories/{story_id}/update", response_model=StoryResponse)
async def update_story(
    story_id: UUID,
    body: StoryUpdateRequest,
    claims: Optional[dict] = Depends(get_optional_claims),
    store: StoryStore = Depends(get_story_store),
):
    message = _require_message(body.message)
    owner = resolve_owner(claims, body.client_id)

    try:
        updated = await store.update_message(story_id, owner, message)
        if not updated:
            await _reject_write(store, story_id)
        record = await store.get(story_id)
    except SQLAlchemyError as e:
        logger.error(f"Failed to update story {story_id}: {e}")
        raise UpstreamError("Failed to update story") from e

    if record is None:
        raise NotFoundError("Story not found")
    return StoryResponse(story=_out(record, owner))


@app.post("/stories/{story_id}/delete", response_model=DeleteResponse)
async def delete_story(
    story_id: UUID,
    body: StoryOwnerRequest,
    claims: Optional[dict] = Depends(get_optional_claims),
    store: StoryStore = Depends(get_story_store),
):
    owner = resolve_owner(claims, body.client_id)

    try:
        deleted = await store.delete(story_id, owner)
        if not deleted:
            await _reject_write(store, story_id)
    except SQLAlchemyError as e:
        logger.error(f"Failed to delete story {story_id}: {e}")
        raise UpstreamError("Failed to delete story") from e

    logger.info(f"Story {story_id} deleted by {owner.kind} owner")
    return DeleteResponse()


@app.post("/stories/{story_id}/react", response_model=StoryResponse)
async def react_to_story(
    story_id: UUID,
    body: ReactRequest,
    claims: Optional[dict] = Depends(get_optional_claims),
    store: StoryStore = Depends(get_story_store),
):
    """
    React to a story.

    Reactions are deduplicated per (story, attributor, kind): repeating the
    same reaction leaves the counts unchanged.
    """
    try:
        kind = ReactionKind.parse(body.kind)
    except ValueError:
        raise ValidationError("Invalid reaction kind")
    attributor = resolve_owner(claims, body.client_id)

    try:
        existing = await store.get(story_id)
        if existing is None:
            raise NotFoundError("Story not found")
        await store.react(story_id, kind.value, attributor)
        counts = await store.reaction_counts(story_id)
    except SQLAlchemyError as e:
        logger.error(f"Failed to react to story {story_id}: {e}")
        raise UpstreamError("Failed to save reaction") from e

    record = replace(existing, counts=counts)

    # Business metric: reaction recorded
    STORY_REACTIONS_TOTAL.labels(kind=kind.value).inc()

    return StoryResponse(story=_out(record, attributor))


@app.post("/stories/heatmap", response_model=FeatureCollection)
async def stories_heatmap(
    body: HeatmapRequest,
    store: StoryStore = Depends(get_story_store),
):
    """GeoJSON points for geotagged stories inside the visible map bounds."""
    bbox = body.bbox
    if bbox is None or None in (bbox.west, bbox.south, bbox.east, bbox.north):
        raise ValidationError("bbox required")

    try:
        records = await store.list_in_bbox(
            BoundingBox(
                west=bbox.west, south=bbox.south, east=bbox.east, north=bbox.north
            ),
            limit=HEATMAP_MAX_FEATURES,
        )
    except SQLAlchemyError as e:
        logger.error(f"Failed to load heatmap stories: {e}")
        raise UpstreamError("Failed to load heatmap") from e

    return build_feature_collection(records)
