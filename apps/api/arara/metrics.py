from __future__ import annotations

from prometheus_client import CONTENT_TYPE_LATEST, Counter, generate_latest


pendency_mutations_total = Counter(
    "pendency_mutations_total",
    "Total pendency create/update attempts by outcome",
    ["action", "outcome"],
)

pendency_transitions_total = Counter(
    "pendency_transitions_total",
    "Accepted pendency status transitions",
    ["from_status", "to_status"],
)

authz_permission_denied_total = Counter(
    "authz_permission_denied_total",
    "Permission checks that failed, by permission tag",
    ["permission"],
)

visibility_denied_reads_count = Counter(
    "visibility_denied_reads_count",
    "Lookups rejected by the visibility predicate",
    ["resource"],
)

pendency_automation_total = Counter(
    "pendency_automation_total",
    "Billing automation outcomes",
    ["outcome"],
)

authz_role_cache_hit_total = Counter(
    "authz_role_cache_hit_total",
    "Role permission cache hits",
)

authz_role_cache_miss_total = Counter(
    "authz_role_cache_miss_total",
    "Role permission cache misses",
)

authz_role_cache_invalidations_total = Counter(
    "authz_role_cache_invalidations_total",
    "Role permission cache invalidations",
)


def observe_pendency_mutation(action: str, outcome: str) -> None:
    pendency_mutations_total.labels(action=action, outcome=outcome).inc()


def observe_pendency_transition(from_status: str, to_status: str) -> None:
    pendency_transitions_total.labels(from_status=from_status, to_status=to_status).inc()


def observe_permission_denied(permission: str) -> None:
    authz_permission_denied_total.labels(permission=permission).inc()


def observe_visibility_denied_read(resource: str) -> None:
    visibility_denied_reads_count.labels(resource=resource).inc()


def observe_automation(outcome: str) -> None:
    pendency_automation_total.labels(outcome=outcome).inc()


def observe_role_cache_hit() -> None:
    authz_role_cache_hit_total.inc()


def observe_role_cache_miss() -> None:
    authz_role_cache_miss_total.inc()


def observe_role_cache_invalidation() -> None:
    authz_role_cache_invalidations_total.inc()


def generate_metrics_payload() -> bytes:
    return generate_latest()


def metrics_content_type() -> str:
    return CONTENT_TYPE_LATEST
