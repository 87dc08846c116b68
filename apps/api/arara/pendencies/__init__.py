from arara.pendencies.automation import BillingAutomationHandler, build_pendency_event_bus
from arara.pendencies.models import (
    ConclusionKind,
    OriginType,
    Pendency,
    PendencyHistory,
    PendencyPriority,
    PendencyStatus,
    PendencyType,
)
from arara.pendencies.schemas import PendencyCreate, PendencyFilters, PendencyHistoryRead, PendencyRead, PendencyUpdate
from arara.pendencies.service import PendencyService, pendency_service

__all__ = [
    "Pendency",
    "PendencyHistory",
    "PendencyStatus",
    "PendencyType",
    "PendencyPriority",
    "OriginType",
    "ConclusionKind",
    "PendencyCreate",
    "PendencyUpdate",
    "PendencyRead",
    "PendencyHistoryRead",
    "PendencyFilters",
    "PendencyService",
    "pendency_service",
    "BillingAutomationHandler",
    "build_pendency_event_bus",
]
