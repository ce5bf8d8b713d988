"""
Observability module for logging and metrics.

This module provides:
- Structured logging setup with secret masking
- Per-batch metrics collection
"""

from batch_review.observability.logging import setup_logging, get_logger, LogContext, SecretMaskingFilter
from batch_review.observability.metrics import MetricsCollector, MetricNames, get_metrics_collector, setup_metrics

__all__ = [
    "setup_logging",
    "get_logger",
    "LogContext",
    "SecretMaskingFilter",
    "MetricsCollector",
    "MetricNames",
    "get_metrics_collector",
    "setup_metrics",
]
