from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import StrEnum

from sqlalchemy import JSON, DateTime, ForeignKey, Index, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from arara.core.database import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class PendencyStatus(StrEnum):
    PENDING = "PENDING"
    IN_PROGRESS = "IN_PROGRESS"
    DONE = "DONE"
    CLOSED_WITHOUT_RESOLUTION = "CLOSED_WITHOUT_RESOLUTION"
    CANCELLED = "CANCELLED"


class PendencyType(StrEnum):
    SERVICE_ORDER = "SERVICE_ORDER"
    ADMINISTRATIVE = "ADMINISTRATIVE"
    FINANCIAL = "FINANCIAL"
    IT = "IT"
    COMMERCIAL = "COMMERCIAL"
    OTHER = "OTHER"


class PendencyPriority(StrEnum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"


class OriginType(StrEnum):
    SERVICE_ORDER = "SERVICE_ORDER"
    MANUAL = "MANUAL"


class ConclusionKind(StrEnum):
    RESOLVED = "RESOLVED"
    UNRESOLVED = "UNRESOLVED"


class Pendency(Base):
    __tablename__ = "pendency"

    id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    type: Mapped[str] = mapped_column(String(32), nullable=False, default=PendencyType.OTHER)
    status: Mapped[str] = mapped_column(String(32), nullable=False, default=PendencyStatus.PENDING, server_default="PENDING")
    priority: Mapped[str] = mapped_column(String(16), nullable=False, default=PendencyPriority.MEDIUM, server_default="MEDIUM")
    origin_type: Mapped[str] = mapped_column(String(32), nullable=False, default=OriginType.MANUAL, server_default="MANUAL")
    origin_ref_id: Mapped[str | None] = mapped_column(String(128), nullable=True)
    created_by: Mapped[str] = mapped_column(String(255), nullable=False)
    responsible_person_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    responsible_sector_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    conclusion_text: Mapped[str | None] = mapped_column(Text, nullable=True)
    conclusion_kind: Mapped[str | None] = mapped_column(String(16), nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    due_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    tags: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    automation_key: Mapped[str | None] = mapped_column(String(255), nullable=True, unique=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    history: Mapped[list[PendencyHistory]] = relationship(
        "PendencyHistory",
        back_populates="pendency",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="PendencyHistory.created_at",
    )

    __table_args__ = (
        Index("ix_pendency_created_at", "created_at"),
        Index("ix_pendency_created_by", "created_by"),
        Index("ix_pendency_responsible_person", "responsible_person_id"),
        Index("ix_pendency_responsible_sector", "responsible_sector_id"),
        Index("ix_pendency_origin_ref", "origin_type", "origin_ref_id"),
    )


class PendencyHistory(Base):
    __tablename__ = "pendency_history"

    id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    pendency_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("pendency.id", ondelete="CASCADE"),
        nullable=False,
    )
    actor_id: Mapped[str] = mapped_column(String(255), nullable=False)
    old_status: Mapped[str] = mapped_column(String(32), nullable=False)
    new_status: Mapped[str] = mapped_column(String(32), nullable=False)
    observation: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)

    pendency: Mapped[Pendency] = relationship("Pendency", back_populates="history")

    __table_args__ = (Index("ix_pendency_history_pendency", "pendency_id", "created_at"),)
