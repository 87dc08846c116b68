from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from arara.platform.security.policies import Permission


class RoleCreate(BaseModel):
    name: str = Field(min_length=1)
    description: str | None = None
    permissions: list[Permission] = Field(default_factory=list)


class RoleRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    name: str
    description: str | None
    is_system: bool
    permissions: list[Permission]
    created_at: datetime
