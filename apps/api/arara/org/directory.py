from __future__ import annotations

from typing import Protocol

from sqlalchemy import select
from sqlalchemy.orm import Session

from arara.org.models import Sector


class SectorDirectory(Protocol):
    """Existence/active lookup for organizational sectors."""

    def is_active(self, session: Session, sector_id: str) -> bool:
        ...


class DbSectorDirectory:
    def is_active(self, session: Session, sector_id: str) -> bool:
        active = session.scalar(select(Sector.active).where(Sector.id == sector_id))
        return bool(active)


DEFAULT_SECTORS: list[tuple[str, str, str]] = [
    ("sector-it", "Information Technology", "Support, infrastructure and development"),
    ("sector-finance", "Finance", "Payables, receivables and treasury"),
    ("sector-operations", "Operations", "Logistics and service execution"),
    ("sector-commercial", "Commercial", "Sales and customer relationship"),
]


def seed_default_sectors(session: Session) -> int:
    existing = set(session.scalars(select(Sector.id)).all())
    added = 0
    for sector_id, name, description in DEFAULT_SECTORS:
        if sector_id in existing:
            continue
        session.add(Sector(id=sector_id, name=name, description=description, active=True))
        added += 1
    if added:
        session.commit()
    return added
