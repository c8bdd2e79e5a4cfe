"""Prometheus metrics for authorization decisions."""

from prometheus_client import Counter

authz_decisions_total = Counter(
    "authz_decisions_total",
    "Total per-instance and type-level authorization decisions",
    ["action", "subject", "outcome"],
)

authz_filters_applied_total = Counter(
    "authz_filters_applied_total",
    "Total row filters injected into data-access statements",
    ["action", "subject", "operation"],
)

authz_context_missing_total = Counter(
    "authz_context_missing_total",
    "Total data-access calls made without an installed authorization context",
)

authz_identity_fallbacks_total = Counter(
    "authz_identity_fallbacks_total",
    "Total requests whose caller could not be resolved into an ability",
    ["reason"],
)


class PrometheusAuthzMetrics:
    """Prometheus-based authorization metrics implementation."""

    def record_decision(self, action: str, subject: str, outcome: str) -> None:
        """Increment decision counter."""
        authz_decisions_total.labels(action=action, subject=subject, outcome=outcome).inc()

    def inc_filter(self, action: str, subject: str, operation: str) -> None:
        """Increment filter injection counter."""
        authz_filters_applied_total.labels(
            action=action, subject=subject, operation=operation
        ).inc()

    def inc_context_missing(self) -> None:
        """Increment missing-context counter."""
        authz_context_missing_total.inc()

    def inc_identity_fallback(self, reason: str) -> None:
        """Increment caller resolution fallback counter."""
        authz_identity_fallbacks_total.labels(reason=reason).inc()
