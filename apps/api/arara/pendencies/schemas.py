from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from arara.pendencies.models import ConclusionKind, OriginType, PendencyPriority, PendencyStatus, PendencyType


class PendencyCreate(BaseModel):
    title: str = Field(min_length=1, max_length=255)
    description: str | None = None
    type: PendencyType = PendencyType.OTHER
    priority: PendencyPriority | None = None
    origin_type: OriginType = OriginType.MANUAL
    origin_ref_id: str | None = None
    due_date: datetime | None = None
    responsible_person_id: str | None = None
    responsible_sector_id: str | None = None
    tags: list[str] = Field(default_factory=list)


class PendencyUpdate(BaseModel):
    """Partial update; only explicitly supplied fields are considered."""

    title: str | None = Field(default=None, min_length=1, max_length=255)
    description: str | None = None
    type: PendencyType | None = None
    priority: PendencyPriority | None = None
    status: PendencyStatus | None = None
    responsible_person_id: str | None = None
    responsible_sector_id: str | None = None
    conclusion_text: str | None = None
    due_date: datetime | None = None
    tags: list[str] | None = None


class PendencyRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    title: str
    description: str | None
    type: PendencyType
    status: PendencyStatus
    priority: PendencyPriority
    origin_type: OriginType
    origin_ref_id: str | None
    created_by: str
    responsible_person_id: str | None
    responsible_sector_id: str | None
    conclusion_text: str | None
    conclusion_kind: ConclusionKind | None
    completed_at: datetime | None
    due_date: datetime | None
    tags: list[str] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime


class PendencyHistoryRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    pendency_id: UUID
    actor_id: str
    old_status: PendencyStatus
    new_status: PendencyStatus
    observation: str | None
    created_at: datetime


class PendencyFilters(BaseModel):
    status: PendencyStatus | None = None
    type: PendencyType | None = None
    responsible_person_id: str | None = None
    responsible_sector_id: str | None = None
    created_by: str | None = None
    date_from: datetime | None = None
    date_to: datetime | None = None
    search_term: str | None = None
