"""
Type definitions for stories service.
"""

from enum import Enum


class ReactionKind(str, Enum):
    """Reaction kinds a reader can attach to a story."""

    LIKE = "like"
    HELPFUL = "helpful"
    NOTED = "noted"

    @classmethod
    def parse(cls, value) -> "ReactionKind":
        """ReactionKind for a raw value; raises ValueError when unknown."""
        return cls(str(value).strip().lower())
