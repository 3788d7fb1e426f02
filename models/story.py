"""
Story-related database models for SafeHER backend.

Defines SQLAlchemy ORM models for community stories and their reactions.
"""

import uuid
from datetime import datetime
from typing import List, Optional

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    Float,
    ForeignKey,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.dialects.postgresql import UUID as PG_UUID
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

SCHEMA = "safeher"


class Base(DeclarativeBase):
    """Base class for all database models."""

    pass


class Story(Base):
    """Community safety story."""

    __tablename__ = "stories"
    __table_args__ = (
        CheckConstraint(
            "(lat IS NULL) = (lng IS NULL)", name="ck_stories_lat_lng_together"
        ),
        {"schema": SCHEMA},
    )

    id: Mapped[uuid.UUID] = mapped_column(
        PG_UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )

    message: Mapped[str] = mapped_column(Text, nullable=False)

    # One-sentence LLM summary, filled on a best-effort basis
    summary: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    lat: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    lng: Mapped[Optional[float]] = mapped_column(Float, nullable=True)

    # Same point as lat/lng, stored as WKT "POINT(lng lat)"
    location: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # "anonymous" (browser client id) or "authenticated" (user id)
    owner_kind: Mapped[str] = mapped_column(String(20), nullable=False)
    owner_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        index=True,
    )

    reactions: Mapped[List["StoryReaction"]] = relationship(
        back_populates="story",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )


class StoryReaction(Base):
    """A like/helpful/noted reaction attached to a story."""

    __tablename__ = "story_reactions"
    __table_args__ = (
        UniqueConstraint(
            "story_id",
            "attributor_kind",
            "attributor_id",
            "kind",
            name="uq_story_reactions_attributor_kind",
        ),
        CheckConstraint(
            "kind IN ('like', 'helpful', 'noted')", name="ck_story_reactions_kind"
        ),
        {"schema": SCHEMA},
    )

    id: Mapped[uuid.UUID] = mapped_column(
        PG_UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )

    story_id: Mapped[uuid.UUID] = mapped_column(
        PG_UUID(as_uuid=True),
        ForeignKey(f"{SCHEMA}.stories.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    kind: Mapped[str] = mapped_column(String(20), nullable=False)

    attributor_kind: Mapped[str] = mapped_column(String(20), nullable=False)
    attributor_id: Mapped[str] = mapped_column(String(255), nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    story: Mapped["Story"] = relationship(back_populates="reactions")
