"""
Metrics Collection with Prometheus.

Exposes reconciliation metrics for monitoring.
"""

from enum import Enum

from prometheus_client import CollectorRegistry, Counter, Histogram, Info

from gowise_premium.config import settings


class MetricLabels(str, Enum):
    """Standard metric label names."""

    CLASSIFICATION = "classification"
    OUTCOME = "outcome"
    STATE = "state"
    ERROR_TYPE = "error_type"


class PremiumMetrics:
    """
    Centralized metrics for premium activation.

    Covers:
    - Return notifications (rate by classification, duplicates dropped)
    - Payment link creation (rate, success/failure)
    - Activations (rate, outcome, duration)
    - Engine transitions
    """

    def __init__(self, registry: CollectorRegistry | None = None) -> None:
        """Initialize all Prometheus metrics on the given registry."""
        self.registry = registry or CollectorRegistry()

        self.service_info = Info(
            "gowise_premium_service",
            "Service information",
            registry=self.registry,
        )
        self.service_info.info(
            {
                "version": settings.service_version,
                "service_name": settings.service_name,
            }
        )

        # ====================================================================
        # Return Notification Metrics
        # ====================================================================
        self.return_events_total = Counter(
            "gowise_premium_return_events_total",
            "Return notifications received, by classification",
            [MetricLabels.CLASSIFICATION],
            registry=self.registry,
        )

        self.duplicate_returns_dropped_total = Counter(
            "gowise_premium_duplicate_returns_dropped_total",
            "Success notifications dropped by the in-progress guard",
            registry=self.registry,
        )

        # ====================================================================
        # Payment Link Metrics
        # ====================================================================
        self.payment_links_total = Counter(
            "gowise_premium_payment_links_total",
            "Checkout sessions requested",
            ["success", MetricLabels.ERROR_TYPE],
            registry=self.registry,
        )

        # ====================================================================
        # Activation Metrics
        # ====================================================================
        self.activations_total = Counter(
            "gowise_premium_activations_total",
            "Activation sequences completed",
            [MetricLabels.OUTCOME, MetricLabels.ERROR_TYPE],
            registry=self.registry,
        )

        self.activation_duration_seconds = Histogram(
            "gowise_premium_activation_duration_seconds",
            "Activation sequence duration in seconds",
            buckets=(0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0),
            registry=self.registry,
        )

        # ====================================================================
        # Engine Metrics
        # ====================================================================
        self.transitions_total = Counter(
            "gowise_premium_engine_transitions_total",
            "Reconciliation engine transitions, by target state",
            [MetricLabels.STATE],
            registry=self.registry,
        )

    # ========================================================================
    # Helper Methods
    # ========================================================================

    def record_return_event(self, classification: str) -> None:
        """Record a classified return notification."""
        if settings.metrics_enabled:
            self.return_events_total.labels(classification=classification).inc()

    def record_duplicate_dropped(self) -> None:
        """Record a duplicate success notification dropped by the guard."""
        if settings.metrics_enabled:
            self.duplicate_returns_dropped_total.inc()

    def record_payment_link(self, success: bool, error_type: str | None = None) -> None:
        """Record checkout session creation."""
        if settings.metrics_enabled:
            self.payment_links_total.labels(
                success=str(success), error_type=error_type or "none"
            ).inc()

    def record_activation(
        self, outcome: str, duration: float, error_type: str | None = None
    ) -> None:
        """Record an activation sequence outcome."""
        if settings.metrics_enabled:
            self.activations_total.labels(outcome=outcome, error_type=error_type or "none").inc()
            self.activation_duration_seconds.observe(duration)

    def record_transition(self, state: str) -> None:
        """Record an engine transition."""
        if settings.metrics_enabled:
            self.transitions_total.labels(state=state).inc()


# Global metrics instance
metrics = PremiumMetrics()
