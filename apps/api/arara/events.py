from __future__ import annotations

import uuid
from collections import deque
from datetime import datetime, timezone
from typing import Any

from arara.context import get_correlation_id
from arara.core.events import event_bus

# Most recent envelopes only.
RECENT_EVENTS_LIMIT = 1000
published_events: deque[dict[str, Any]] = deque(maxlen=RECENT_EVENTS_LIMIT)


def build_envelope(
    event_type: str,
    payload: dict[str, Any],
    *,
    actor_id: str,
    correlation_id: str | None = None,
    occurred_at: datetime | None = None,
) -> dict[str, Any]:
    return {
        "event_id": str(uuid.uuid4()),
        "event_type": event_type,
        "occurred_at": (occurred_at or datetime.now(timezone.utc)).isoformat(),
        "actor_user_id": actor_id,
        "correlation_id": correlation_id or get_correlation_id(),
        "payload": payload,
    }


def publish(
    event_type: str,
    payload: dict[str, Any],
    *,
    actor_id: str,
    correlation_id: str | None = None,
    occurred_at: datetime | None = None,
) -> dict[str, Any]:
    """Record a post-commit notification and fan it out on the process bus."""

    envelope = build_envelope(
        event_type,
        payload,
        actor_id=actor_id,
        correlation_id=correlation_id,
        occurred_at=occurred_at,
    )
    published_events.append(envelope)
    event_bus.publish(event_type, envelope)
    return envelope
