from __future__ import annotations

import logging
from collections import deque
from collections.abc import MutableSequence
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from threading import Lock
from typing import Any, Protocol

from sqlalchemy.orm import Session, sessionmaker

from arara.context import get_correlation_id, reset_correlation_id, set_correlation_id
from arara.core.database import SessionLocal
from arara.models.audit import AuditLog

logger = logging.getLogger("arara.audit")

# Most recent entries only; DbAuditSink is the durable sink.
AUDIT_BUFFER_LIMIT = 1000
audit_entries: deque[dict[str, Any]] = deque(maxlen=AUDIT_BUFFER_LIMIT)


@dataclass(slots=True)
class AuditEvent:
    actor_id: str
    action: str
    target_id: str
    success: bool
    details: dict[str, Any] = field(default_factory=dict)
    entity_type: str = "pendency"
    correlation_id: str | None = None
    occurred_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def as_dict(self) -> dict[str, Any]:
        payload = asdict(self)
        payload["occurred_at"] = self.occurred_at.isoformat()
        return payload


class AuditSink(Protocol):
    """Append-only destination for audit events."""

    def emit(self, event: AuditEvent) -> None:
        ...


class InMemoryAuditSink:
    def __init__(self, entries: MutableSequence[dict[str, Any]] | None = None) -> None:
        self.entries = audit_entries if entries is None else entries

    def emit(self, event: AuditEvent) -> None:
        self.entries.append(event.as_dict())


class DbAuditSink:
    """Writes audit rows through a dedicated session.

    The row is committed independently of the caller's unit of work, so a
    rolled-back mutation still leaves its failure event behind.
    """

    def __init__(self, session_factory: sessionmaker[Session] | None = None) -> None:
        self._session_factory = session_factory or SessionLocal

    def emit(self, event: AuditEvent) -> None:
        with self._session_factory() as session:
            session.add(
                AuditLog(
                    actor_id=event.actor_id,
                    action=event.action,
                    entity_type=event.entity_type,
                    entity_id=event.target_id,
                    success=event.success,
                    event_metadata=event.details,
                    correlation_id=event.correlation_id,
                    created_at=event.occurred_at,
                )
            )
            session.commit()


_AUDIT_SINK: AuditSink = InMemoryAuditSink()
_AUDIT_LOCK = Lock()


def get_audit_sink() -> AuditSink:
    return _AUDIT_SINK


def set_audit_sink(sink: AuditSink) -> None:
    global _AUDIT_SINK
    with _AUDIT_LOCK:
        _AUDIT_SINK = sink


def record(
    *,
    actor_id: str,
    action: str,
    target_id: str,
    success: bool = True,
    details: dict[str, Any] | None = None,
    entity_type: str = "pendency",
    correlation_id: str | None = None,
) -> AuditEvent:
    event = AuditEvent(
        actor_id=actor_id,
        action=action,
        target_id=target_id,
        success=success,
        details=details or {},
        entity_type=entity_type,
        correlation_id=correlation_id or get_correlation_id(),
    )
    token = set_correlation_id(event.correlation_id)
    try:
        logger.log(
            logging.INFO if success else logging.ERROR,
            "audit_event",
            extra={
                "action": action,
                "actor_id": actor_id,
                "target_id": target_id,
                "success": success,
                "details": event.details,
            },
        )
    finally:
        reset_correlation_id(token)
    get_audit_sink().emit(event)
    return event
