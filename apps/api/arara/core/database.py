from __future__ import annotations

from collections.abc import Generator
from contextlib import contextmanager

from sqlalchemy import Engine, create_engine
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker

from arara.core.config import get_settings


class Base(DeclarativeBase):
    pass


# Bound lazily by configure_database() so importing models never loads a DB driver.
SessionLocal = sessionmaker(autocommit=False, autoflush=False)

_engine: Engine | None = None


def configure_database(database_url: str | None = None) -> Engine:
    global _engine

    url = database_url or get_settings().database_url
    _engine = create_engine(url, pool_pre_ping=True)
    SessionLocal.configure(bind=_engine)
    return _engine


def get_engine() -> Engine:
    if _engine is None:
        return configure_database()
    return _engine


@contextmanager
def session_scope(session_factory: sessionmaker[Session] | None = None) -> Generator[Session, None, None]:
    if session_factory is None:
        get_engine()
        session_factory = SessionLocal
    session = session_factory()
    try:
        yield session
    finally:
        session.close()
