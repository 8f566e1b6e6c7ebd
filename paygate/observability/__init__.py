"""
Observability module - Logging, Metrics, and Tracing.
"""

from paygate.observability.logging import get_logger, log_context, setup_logging
from paygate.observability.metrics import metrics, track_vendor_call
from paygate.observability.tracing import setup_tracing, trace_operation

__all__ = [
    "get_logger",
    "log_context",
    "setup_logging",
    "metrics",
    "track_vendor_call",
    "setup_tracing",
    "trace_operation",
]
