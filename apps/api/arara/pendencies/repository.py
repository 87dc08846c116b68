from __future__ import annotations

import uuid
from typing import Any

from sqlalchemy import Select, or_, select
from sqlalchemy.orm import Session

from arara.pendencies.models import Pendency, PendencyHistory
from arara.pendencies.schemas import PendencyFilters
from arara.platform.security.visibility import Visibility


class PendencyRepository:
    resource = "pendency"

    def get(self, session: Session, pendency_id: uuid.UUID) -> Pendency | None:
        return session.scalar(select(Pendency).where(Pendency.id == pendency_id))

    def get_for_update(self, session: Session, pendency_id: uuid.UUID) -> Pendency | None:
        # Row lock serializes concurrent updates of the same pendency; ignored by SQLite.
        return session.scalar(select(Pendency).where(Pendency.id == pendency_id).with_for_update())

    def list_visible(self, session: Session, visibility: Visibility, filters: PendencyFilters | None = None) -> list[Pendency]:
        stmt: Select[tuple[Pendency]] = select(Pendency)
        stmt = visibility.apply(stmt, Pendency)
        if filters is not None:
            stmt = self.apply_filters(stmt, filters)
        return list(session.scalars(stmt.order_by(Pendency.created_at.desc(), Pendency.id.desc())).all())

    def list_history(self, session: Session, pendency_id: uuid.UUID) -> list[PendencyHistory]:
        stmt = (
            select(PendencyHistory)
            .where(PendencyHistory.pendency_id == pendency_id)
            .order_by(PendencyHistory.created_at.asc(), PendencyHistory.id.asc())
        )
        return list(session.scalars(stmt).all())

    def find_by_automation_key(self, session: Session, automation_key: str) -> Pendency | None:
        return session.scalar(select(Pendency).where(Pendency.automation_key == automation_key))

    def add_history(self, session: Session, entry: PendencyHistory) -> None:
        session.add(entry)

    @staticmethod
    def apply_filters(stmt: Select[Any], filters: PendencyFilters) -> Select[Any]:
        if filters.status is not None:
            stmt = stmt.where(Pendency.status == filters.status)
        if filters.type is not None:
            stmt = stmt.where(Pendency.type == filters.type)
        if filters.responsible_person_id:
            stmt = stmt.where(Pendency.responsible_person_id == filters.responsible_person_id)
        if filters.responsible_sector_id:
            stmt = stmt.where(Pendency.responsible_sector_id == filters.responsible_sector_id)
        if filters.created_by:
            stmt = stmt.where(Pendency.created_by == filters.created_by)
        if filters.date_from is not None:
            stmt = stmt.where(Pendency.created_at >= filters.date_from)
        if filters.date_to is not None:
            stmt = stmt.where(Pendency.created_at <= filters.date_to)
        if filters.search_term:
            term = filters.search_term.strip()
            if term:
                stmt = stmt.where(
                    or_(
                        Pendency.title.icontains(term, autoescape=True),
                        Pendency.description.icontains(term, autoescape=True),
                        Pendency.origin_ref_id.icontains(term, autoescape=True),
                    )
                )
        return stmt
