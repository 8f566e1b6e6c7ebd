"""
Metrics Collection with Prometheus.

Exposes payment and HTTP metrics for monitoring.
"""

import time
from enum import Enum

from prometheus_client import Counter, Gauge, Histogram, Info

from paygate import __version__


class MetricLabels(str, Enum):
    """Standard metric label names."""

    ENDPOINT = "endpoint"
    METHOD = "method"
    STATUS_CODE = "status_code"
    OPERATION = "operation"
    OUTCOME = "outcome"
    ERROR_TYPE = "error_type"


class PaymentMetrics:
    """
    Centralized metrics for the payment gateway.

    Covers:
    - HTTP requests (rate, duration, in flight)
    - Square API calls (rate, outcome, duration)
    - Charged and refunded amounts
    - Webhook signature checks
    """

    def __init__(self) -> None:
        """Initialize all Prometheus metrics."""

        self.service_info = Info("paygate_service", "Service information")
        self.service_info.info({"version": __version__})

        # ====================================================================
        # HTTP Metrics
        # ====================================================================
        self.http_requests_total = Counter(
            "paygate_http_requests_total",
            "Total HTTP requests",
            [MetricLabels.ENDPOINT, MetricLabels.METHOD, MetricLabels.STATUS_CODE],
        )

        self.http_request_duration_seconds = Histogram(
            "paygate_http_request_duration_seconds",
            "HTTP request duration in seconds",
            [MetricLabels.ENDPOINT, MetricLabels.METHOD],
            buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
        )

        self.http_requests_in_progress = Gauge(
            "paygate_http_requests_in_progress",
            "Number of HTTP requests currently being processed",
            [MetricLabels.ENDPOINT, MetricLabels.METHOD],
        )

        # ====================================================================
        # Vendor Call Metrics
        # ====================================================================
        self.vendor_calls_total = Counter(
            "paygate_vendor_calls_total",
            "Total Square API calls",
            [MetricLabels.OPERATION, MetricLabels.OUTCOME],
        )

        self.vendor_call_duration_seconds = Histogram(
            "paygate_vendor_call_duration_seconds",
            "Square API call duration in seconds",
            [MetricLabels.OPERATION],
            buckets=(0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0),
        )

        self.payment_amount_minor = Histogram(
            "paygate_payment_amount_minor",
            "Charged amounts in minor units (pence)",
            buckets=(100, 500, 1000, 2500, 5000, 10000, 25000, 50000),
        )

        self.refund_amount_minor = Histogram(
            "paygate_refund_amount_minor",
            "Refunded amounts in minor units (pence)",
            buckets=(100, 500, 1000, 2500, 5000, 10000, 25000, 50000),
        )

        # ====================================================================
        # Webhook Metrics
        # ====================================================================
        self.webhook_verifications_total = Counter(
            "paygate_webhook_verifications_total",
            "Total webhook signature checks",
            ["valid"],
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

    def record_vendor_call(self, operation: str, outcome: str, duration: float) -> None:
        """Record a Square API call."""
        self.vendor_calls_total.labels(operation=operation, outcome=outcome).inc()
        self.vendor_call_duration_seconds.labels(operation=operation).observe(duration)

    def record_webhook_verification(self, valid: bool) -> None:
        self.webhook_verifications_total.labels(valid=str(valid)).inc()


# Global metrics instance
metrics = PaymentMetrics()


class track_vendor_call:
    """
    Context manager for timing Square API calls.

    Usage:
        with track_vendor_call("create_payment") as tracker:
            response = await client.payments.create(...)
            tracker.set_outcome("success")

    Exceptions leaving the block are recorded with outcome "error" unless an
    outcome was already set.
    """

    def __init__(self, operation: str) -> None:
        self.operation = operation
        self.outcome = "success"
        self.start_time: float = 0.0

    def set_outcome(self, outcome: str) -> None:
        self.outcome = outcome

    def __enter__(self) -> "track_vendor_call":
        self.start_time = time.perf_counter()
        return self

    def __exit__(self, exc_type: type, exc_val: Exception, exc_tb: object) -> None:
        duration = time.perf_counter() - self.start_time
        if exc_type is not None and self.outcome == "success":
            self.outcome = "error"
        metrics.record_vendor_call(self.operation, self.outcome, duration)
