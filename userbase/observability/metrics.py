"""
Metrics Collection with Prometheus.

Exposes workflow and integration metrics for monitoring. Best-effort
sponsorship side effects (profile sync, email) report here so their
failure rate can be alerted on even though they never fail the workflow.
"""

import time
from enum import Enum

from prometheus_client import Counter, Gauge, Histogram, Info

from userbase.config import settings


class MetricLabels(str, Enum):
    """Standard metric label names."""

    ENDPOINT = "endpoint"
    METHOD = "method"
    STATUS_CODE = "status_code"
    OPERATION = "operation"
    OUTCOME = "outcome"
    ERROR_TYPE = "error_type"


class UserbaseMetrics:
    """
    Centralized metrics for the userbase identity service.

    Covers:
    - HTTP requests (rate, duration, errors)
    - Session validation outcomes
    - Identity links and signature proofs
    - Sponsorship state transitions and step latency
    - Best-effort side effects and outbound calls
    """

    def __init__(self) -> None:
        # ====================================================================
        # Service Info
        # ====================================================================
        self.service_info = Info(
            "userbase_service",
            "Service information",
        )
        self.service_info.info(
            {
                "version": settings.api_version,
                "service_name": settings.service_name,
            }
        )

        # ====================================================================
        # HTTP Metrics
        # ====================================================================
        self.http_requests_total = Counter(
            "userbase_http_requests_total",
            "Total HTTP requests",
            [MetricLabels.ENDPOINT, MetricLabels.METHOD, MetricLabels.STATUS_CODE],
        )

        self.http_request_duration_seconds = Histogram(
            "userbase_http_request_duration_seconds",
            "HTTP request duration in seconds",
            [MetricLabels.ENDPOINT, MetricLabels.METHOD],
            buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0),
        )

        self.http_requests_in_progress = Gauge(
            "userbase_http_requests_in_progress",
            "Number of HTTP requests currently being processed",
            [MetricLabels.ENDPOINT, MetricLabels.METHOD],
        )

        # ====================================================================
        # Sessions and Identities
        # ====================================================================
        self.session_validations_total = Counter(
            "userbase_session_validations_total",
            "Session token validations",
            [MetricLabels.OUTCOME],
        )

        self.identity_links_total = Counter(
            "userbase_identity_links_total",
            "Identity link attempts",
            ["identity_type", MetricLabels.OUTCOME],
        )

        self.signature_proofs_total = Counter(
            "userbase_signature_proofs_total",
            "Signature proof verifications",
            [MetricLabels.OUTCOME],
        )

        # ====================================================================
        # Sponsorship Workflow
        # ====================================================================
        self.sponsorship_transitions_total = Counter(
            "userbase_sponsorship_transitions_total",
            "Sponsorship status transitions",
            ["status"],
        )

        self.sponsorship_step_duration_seconds = Histogram(
            "userbase_sponsorship_step_duration_seconds",
            "Duration of each sponsorship processing step",
            ["step"],
            buckets=(0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 20.0, 30.0),
        )

        self.side_effects_total = Counter(
            "userbase_side_effects_total",
            "Best-effort side effects by outcome",
            ["effect", MetricLabels.OUTCOME],
        )

        # ====================================================================
        # External Calls
        # ====================================================================
        self.external_calls_total = Counter(
            "userbase_external_calls_total",
            "Outbound calls to chain RPC, directory and email providers",
            ["service", MetricLabels.OUTCOME],
        )

        # ====================================================================
        # Error Metrics
        # ====================================================================
        self.errors_total = Counter(
            "userbase_errors_total",
            "Total errors by type",
            [MetricLabels.ERROR_TYPE, MetricLabels.OPERATION],
        )

    # ========================================================================
    # Helper Methods
    # ========================================================================

    def record_http_request(
        self, endpoint: str, method: str, status_code: int, duration: float
    ) -> None:
        """Record HTTP request metrics."""
        self.http_requests_total.labels(
            endpoint=endpoint, method=method, status_code=status_code
        ).inc()
        self.http_request_duration_seconds.labels(endpoint=endpoint, method=method).observe(
            duration
        )

    def record_session_validation(self, outcome: str) -> None:
        self.session_validations_total.labels(outcome=outcome).inc()

    def record_identity_link(self, identity_type: str, outcome: str) -> None:
        self.identity_links_total.labels(identity_type=identity_type, outcome=outcome).inc()

    def record_signature_proof(self, outcome: str) -> None:
        self.signature_proofs_total.labels(outcome=outcome).inc()

    def record_sponsorship_transition(self, status: str) -> None:
        self.sponsorship_transitions_total.labels(status=status).inc()

    def record_sponsorship_step(self, step: str, duration: float) -> None:
        self.sponsorship_step_duration_seconds.labels(step=step).observe(duration)

    def record_side_effect(self, effect: str, success: bool) -> None:
        """Record the outcome of a best-effort side effect."""
        self.side_effects_total.labels(
            effect=effect, outcome="success" if success else "failure"
        ).inc()

    def record_external_call(self, service: str, success: bool) -> None:
        self.external_calls_total.labels(
            service=service, outcome="success" if success else "failure"
        ).inc()

    def record_error(self, error_type: str, operation: str) -> None:
        """Record error occurrence."""
        self.errors_total.labels(error_type=error_type, operation=operation).inc()


# Global metrics instance
metrics = UserbaseMetrics()


class track_step:
    """
    Context manager timing one sponsorship step.

    Usage:
        with track_step("verify"):
            ...
    """

    def __init__(self, step: str) -> None:
        self.step = step
        self.start_time = 0.0

    def __enter__(self) -> "track_step":
        self.start_time = time.perf_counter()
        return self

    def __exit__(self, exc_type: type, exc_val: Exception, exc_tb: object) -> None:
        metrics.record_sponsorship_step(self.step, time.perf_counter() - self.start_time)
