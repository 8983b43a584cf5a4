"""
Geographic area data models.
"""

from typing import Dict, Optional, List
from dataclasses import dataclass, field
from datetime import datetime, timezone

from pydantic import BaseModel, Field


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class GeographicArea:
    """A node of the geographic hierarchy.

    ``area_type`` is descriptive only (country, province, city, ...); it
    never constrains which types may nest under which.
    """
    id: str
    name: str
    area_type: str
    parent_area_id: Optional[str] = None
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)


class AreaDetail(BaseModel):
    """Area row plus its direct child count, as returned by batch lookups."""
    id: str
    name: str
    area_type: str
    parent_area_id: Optional[str]
    child_count: int
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_area(cls, area: GeographicArea, child_count: int) -> "AreaDetail":
        return cls(
            id=area.id,
            name=area.name,
            area_type=area.area_type,
            parent_area_id=area.parent_area_id,
            child_count=child_count,
            created_at=area.created_at,
            updated_at=area.updated_at,
        )


class AreaCreateRequest(BaseModel):
    """Request model for creating an area."""
    name: str = Field(..., min_length=1, description="Area name")
    area_type: str = Field(..., min_length=1, description="Classification tag, e.g. CITY")
    parent_area_id: Optional[str] = Field(None, description="Parent area ID, omitted for roots")


class AreaUpdateRequest(BaseModel):
    """Request model for updating an area.

    ``parent_area_id`` is only applied when present in the payload, so an
    explicit null reparents the area to the top level.
    """
    name: Optional[str] = Field(None, min_length=1, description="Area name")
    area_type: Optional[str] = Field(None, min_length=1, description="Classification tag")
    parent_area_id: Optional[str] = Field(None, description="New parent area ID")


class BatchAreaRequest(BaseModel):
    """Request body shared by the batch endpoints."""
    area_ids: List[str] = Field(..., description="Geographic area IDs")


class BatchDescendantsResponse(BaseModel):
    descendant_ids: List[str]


class BatchAncestorsResponse(BaseModel):
    parents: Dict[str, Optional[str]]


class BatchDetailsResponse(BaseModel):
    areas: Dict[str, AreaDetail]
