"""
Story Store - Database operations for stories and reactions.

Wraps an AsyncSession with the handful of queries the stories and safety
scoring services need. Handlers build one store per request through the
``get_story_store`` dependency, so tests can override it wholesale.
"""

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional

from fastapi import Depends
from sqlalchemy import delete, func, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from common.constants import HEATMAP_MAX_FEATURES
from common.owner import Owner
from libs.db import get_db
from models.story import Story, StoryReaction

logger = logging.getLogger(__name__)


@dataclass
class ReactionCounts:
    likes: int = 0
    helpful: int = 0
    noted: int = 0

    def as_dict(self) -> Dict[str, int]:
        return {"likes": self.likes, "helpful": self.helpful, "noted": self.noted}


@dataclass
class StoryRecord:
    """A stored story together with its reaction counts."""

    id: uuid.UUID
    message: str
    owner_kind: str
    owner_id: str
    created_at: Optional[datetime]
    lat: Optional[float] = None
    lng: Optional[float] = None
    location: Optional[str] = None
    summary: Optional[str] = None
    counts: ReactionCounts = field(default_factory=ReactionCounts)

    def is_owned_by(self, owner: Optional[Owner]) -> bool:
        return (
            owner is not None
            and self.owner_kind == owner.kind
            and self.owner_id == owner.ref
        )


@dataclass
class StorySignal:
    """A geotagged story as seen by the community-signal aggregator."""

    lat: Optional[float]
    lng: Optional[float]
    counts: ReactionCounts = field(default_factory=ReactionCounts)


@dataclass
class BoundingBox:
    west: float
    south: float
    east: float
    north: float


def tally_reactions(kinds: Iterable[Optional[str]]) -> ReactionCounts:
    """Count reaction rows by kind; unknown kinds and None are ignored."""
    counts = ReactionCounts()
    for kind in kinds:
        if kind == "like":
            counts.likes += 1
        elif kind == "helpful":
            counts.helpful += 1
        elif kind == "noted":
            counts.noted += 1
    return counts


def point_wkt(lat: Optional[float], lng: Optional[float]) -> Optional[str]:
    if lat is None or lng is None:
        return None
    return f"POINT({lng} {lat})"


def _counts_subquery():
    return (
        select(
            StoryReaction.story_id.label("story_id"),
            func.count().filter(StoryReaction.kind == "like").label("likes"),
            func.count().filter(StoryReaction.kind == "helpful").label("helpful"),
            func.count().filter(StoryReaction.kind == "noted").label("noted"),
        )
        .group_by(StoryReaction.story_id)
        .subquery()
    )


def _record(story: Story, likes=0, helpful=0, noted=0) -> StoryRecord:
    return StoryRecord(
        id=story.id,
        message=story.message,
        summary=story.summary,
        lat=story.lat,
        lng=story.lng,
        location=story.location,
        owner_kind=story.owner_kind,
        owner_id=story.owner_id,
        created_at=story.created_at,
        counts=ReactionCounts(
            likes=int(likes or 0), helpful=int(helpful or 0), noted=int(noted or 0)
        ),
    )


class StoryStore:
    """Story and reaction persistence over a single AsyncSession."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def _commit(self) -> None:
        try:
            await self.db.commit()
        except SQLAlchemyError as e:
            logger.error(f"Story store commit failed, rolling back: {e}")
            await self.db.rollback()
            raise

    async def insert(
        self,
        *,
        message: str,
        owner: Owner,
        lat: Optional[float] = None,
        lng: Optional[float] = None,
        summary: Optional[str] = None,
    ) -> StoryRecord:
        """
        Create a new story.

        Args:
            message: Story text (already validated as non-blank)
            owner: Anonymous or authenticated owner reference
            lat: Optional latitude; must come together with lng
            lng: Optional longitude
            summary: Optional one-sentence summary

        Returns:
            StoryRecord with zero reaction counts

        Raises:
            SQLAlchemyError: If the insert or commit fails
        """
        story = Story(
            id=uuid.uuid4(),
            message=message,
            summary=summary,
            lat=lat,
            lng=lng,
            location=point_wkt(lat, lng),
            owner_kind=owner.kind,
            owner_id=owner.ref,
            created_at=datetime.now(timezone.utc),
        )
        self.db.add(story)
        await self.db.flush()
        await self._commit()
        return _record(story)

    async def get(self, story_id: uuid.UUID) -> Optional[StoryRecord]:
        """Retrieve a story with its reaction counts, or None."""
        counts = _counts_subquery()
        stmt = (
            select(Story, counts.c.likes, counts.c.helpful, counts.c.noted)
            .outerjoin(counts, counts.c.story_id == Story.id)
            .where(Story.id == story_id)
        )
        row = (await self.db.execute(stmt)).first()
        if row is None:
            return None
        return _record(*row)

    async def list_by_recency(self) -> List[StoryRecord]:
        """All stories, newest first, counts aggregated in the database."""
        counts = _counts_subquery()
        stmt = (
            select(Story, counts.c.likes, counts.c.helpful, counts.c.noted)
            .outerjoin(counts, counts.c.story_id == Story.id)
            .order_by(Story.created_at.desc())
        )
        rows = (await self.db.execute(stmt)).all()
        return [_record(*row) for row in rows]

    async def list_in_bbox(
        self, bbox: BoundingBox, limit: int = HEATMAP_MAX_FEATURES
    ) -> List[StoryRecord]:
        """Geotagged stories inside a bounding box, newest first."""
        counts = _counts_subquery()
        stmt = (
            select(Story, counts.c.likes, counts.c.helpful, counts.c.noted)
            .outerjoin(counts, counts.c.story_id == Story.id)
            .where(
                Story.lat.is_not(None),
                Story.lng.is_not(None),
                Story.lat >= bbox.south,
                Story.lat <= bbox.north,
                Story.lng >= bbox.west,
                Story.lng <= bbox.east,
            )
            .order_by(Story.created_at.desc())
            .limit(limit)
        )
        rows = (await self.db.execute(stmt)).all()
        return [_record(*row) for row in rows]

    async def update_message(self, story_id: uuid.UUID, owner: Owner, message: str) -> int:
        """Update the message of an owned story. Returns affected row count."""
        stmt = (
            update(Story)
            .where(
                Story.id == story_id,
                Story.owner_kind == owner.kind,
                Story.owner_id == owner.ref,
            )
            .values(message=message)
        )
        result = await self.db.execute(stmt)
        await self._commit()
        return result.rowcount or 0

    async def delete(self, story_id: uuid.UUID, owner: Owner) -> int:
        """Delete an owned story. Returns affected row count."""
        stmt = delete(Story).where(
            Story.id == story_id,
            Story.owner_kind == owner.kind,
            Story.owner_id == owner.ref,
        )
        result = await self.db.execute(stmt)
        await self._commit()
        return result.rowcount or 0

    async def react(self, story_id: uuid.UUID, kind: str, attributor: Owner) -> None:
        """
        Record a reaction, at most one per (story, attributor, kind).

        A repeated reaction is a no-op rather than an error.
        """
        stmt = (
            pg_insert(StoryReaction)
            .values(
                id=uuid.uuid4(),
                story_id=story_id,
                kind=kind,
                attributor_kind=attributor.kind,
                attributor_id=attributor.ref,
            )
            .on_conflict_do_nothing(
                index_elements=["story_id", "attributor_kind", "attributor_id", "kind"]
            )
        )
        await self.db.execute(stmt)
        await self._commit()

    async def reaction_counts(self, story_id: uuid.UUID) -> ReactionCounts:
        stmt = select(StoryReaction.kind).where(StoryReaction.story_id == story_id)
        rows = (await self.db.execute(stmt)).all()
        return tally_reactions(row[0] for row in rows)

    async def geotagged_signals(self) -> List[StorySignal]:
        """
        Geotagged stories with their reactions, tallied client-side.

        One row per (story, reaction); stories without reactions come back
        once with a NULL kind.
        """
        stmt = (
            select(Story.id, Story.lat, Story.lng, StoryReaction.kind)
            .outerjoin(StoryReaction, StoryReaction.story_id == Story.id)
            .where(Story.lat.is_not(None), Story.lng.is_not(None))
        )
        rows = (await self.db.execute(stmt)).all()

        grouped: Dict[uuid.UUID, dict] = {}
        for story_id, lat, lng, kind in rows:
            entry = grouped.setdefault(story_id, {"lat": lat, "lng": lng, "kinds": []})
            entry["kinds"].append(kind)

        return [
            StorySignal(lat=e["lat"], lng=e["lng"], counts=tally_reactions(e["kinds"]))
            for e in grouped.values()
        ]


def get_story_store(db: AsyncSession = Depends(get_db)) -> StoryStore:
    """FastAPI dependency: a store bound to the request's session."""
    return StoryStore(db)
