from __future__ import annotations

import logging
from collections import defaultdict
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from sqlalchemy.orm import Session

logger = logging.getLogger("arara.events")


@dataclass(frozen=True, slots=True)
class InternalEvent:
    """Bus message. ``session`` is set when handlers must join the publisher's transaction."""

    name: str
    payload: dict[str, Any]
    session: Session | None = None


EventHandler = Callable[[InternalEvent], None]


class InProcessEventBus:
    """Synchronous fan-out. A failing handler propagates to the publisher."""

    def __init__(self) -> None:
        self._subscribers: dict[str, list[EventHandler]] = defaultdict(list)

    def subscribe(self, event_name: str, handler: EventHandler) -> None:
        self._subscribers[event_name].append(handler)

    def handlers_for(self, event_name: str) -> list[EventHandler]:
        return list(self._subscribers.get(event_name, ()))

    def publish(self, event_name: str, payload: dict[str, Any], *, session: Session | None = None) -> int:
        handlers = self.handlers_for(event_name)
        event = InternalEvent(name=event_name, payload=payload, session=session)
        for handler in handlers:
            handler(event)
        logger.debug("event_dispatched", extra={"action": event_name, "details": {"handlers": len(handlers)}})
        return len(handlers)


event_bus = InProcessEventBus()
