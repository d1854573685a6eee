"""
Observability module - Logging, Metrics, and Tracing.
"""

from userbase.observability.logging import get_logger, log_context, setup_logging
from userbase.observability.metrics import metrics
from userbase.observability.tracing import setup_tracing, trace_operation

__all__ = [
    "get_logger",
    "log_context",
    "setup_logging",
    "metrics",
    "setup_tracing",
    "trace_operation",
]
