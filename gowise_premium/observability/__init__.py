"""
Observability module - Logging and Metrics.
"""

from gowise_premium.observability.logging import get_logger, log_context, setup_logging
from gowise_premium.observability.metrics import metrics

__all__ = [
    "get_logger",
    "log_context",
    "setup_logging",
    "metrics",
]
