from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar, Token

correlation_id_var: ContextVar[str | None] = ContextVar("correlation_id", default=None)
actor_id_var: ContextVar[str | None] = ContextVar("actor_id", default=None)


def set_correlation_id(value: str | None) -> Token[str | None]:
    return correlation_id_var.set(value)


def reset_correlation_id(token: Token[str | None]) -> None:
    correlation_id_var.reset(token)


def get_correlation_id() -> str | None:
    return correlation_id_var.get()


def get_actor_id() -> str | None:
    return actor_id_var.get()


@contextmanager
def operation_context(actor_id: str, correlation_id: str | None = None) -> Iterator[None]:
    """Bind the acting user, and the correlation id when one is given, for one service call."""

    actor_token = actor_id_var.set(actor_id)
    correlation_token = correlation_id_var.set(correlation_id) if correlation_id else None
    try:
        yield
    finally:
        if correlation_token is not None:
            correlation_id_var.reset(correlation_token)
        actor_id_var.reset(actor_token)


def get_log_context() -> dict[str, str | None]:
    return {"correlation_id": get_correlation_id(), "actor_id": get_actor_id()}
