from datetime import datetime
from typing import Any, Dict, List, Literal, Optional
from uuid import UUID

from pydantic import BaseModel

from libs.story_store import StoryRecord


class StoryCreateRequest(BaseModel):
    message: Optional[str] = None
    client_id: Optional[str] = None
    lat: Optional[float] = None
    lng: Optional[float] = None


class StoryUpdateRequest(BaseModel):
    message: Optional[str] = None
    client_id: Optional[str] = None


class StoryOwnerRequest(BaseModel):
    client_id: Optional[str] = None


class ReactRequest(BaseModel):
    kind: Optional[str] = None
    client_id: Optional[str] = None


class StoryOut(BaseModel):
    id: UUID
    message: str
    summary: Optional[str] = None
    lat: Optional[float] = None
    lng: Optional[float] = None
    owner_kind: str
    created_at: Optional[datetime] = None
    likes: int = 0
    helpful: int = 0
    noted: int = 0
    owned: bool = False

    @classmethod
    def from_record(cls, record: StoryRecord, owned: bool = False) -> "StoryOut":
        return cls(
            id=record.id,
            message=record.message,
            summary=record.summary,
            lat=record.lat,
            lng=record.lng,
            owner_kind=record.owner_kind,
            created_at=record.created_at,
            owned=owned,
            **record.counts.as_dict(),
        )


class StoryResponse(BaseModel):
    success: bool = True
    story: StoryOut


class StoryListResponse(BaseModel):
    stories: List[StoryOut]


class DeleteResponse(BaseModel):
    success: bool = True


class BBoxIn(BaseModel):
    west: Optional[float] = None
    south: Optional[float] = None
    east: Optional[float] = None
    north: Optional[float] = None


class HeatmapRequest(BaseModel):
    bbox: Optional[BBoxIn] = None


class FeatureCollection(BaseModel):
    type: Literal["FeatureCollection"] = "FeatureCollection"
    features: List[Dict[str, Any]]
