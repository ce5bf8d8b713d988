"""
Shared dependencies for dependency injection.

This module provides reusable dependencies for FastAPI routes:
settings, the review port, the planner and the execution engine.
"""

import logging

from fastapi import Depends, HTTPException, status

from batch_review.config import Settings, settings
from batch_review.llm.model import ReviewPort, get_review_client
from batch_review.observability.metrics import MetricsCollector, get_metrics_collector, setup_metrics
from batch_review.planning.planner import BatchPlanner
from batch_review.review.engine import ExecutionEngine

logger = logging.getLogger(__name__)


def get_settings() -> Settings:
    """
    Provides application settings.

    Returns:
        Settings: The process-wide settings instance.
    """
    return settings


# ============================================================================
# LLM Dependencies
# ============================================================================

def get_review_port(app_settings: Settings = Depends(get_settings)) -> ReviewPort:
    """
    Provides the review client for the configured provider.

    Raises:
        HTTPException: 503 if the provider is unsupported or has no API key.
    """
    try:
        return get_review_client(app_settings)
    except ValueError as e:
        logger.error(f"Review client unavailable: {e}")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=str(e),
        )


# ============================================================================
# Pipeline Dependencies
# ============================================================================

def get_metrics(app_settings: Settings = Depends(get_settings)) -> MetricsCollector:
    """Provides the process-wide metrics collector, creating it on first use."""
    try:
        return get_metrics_collector()
    except RuntimeError:
        return setup_metrics(app_settings)


def get_planner() -> BatchPlanner:
    """Provides a batch planner with default heuristics."""
    return BatchPlanner()


def get_engine(
    review_port: ReviewPort = Depends(get_review_port),
    app_settings: Settings = Depends(get_settings),
    metrics: MetricsCollector = Depends(get_metrics),
) -> ExecutionEngine:
    """
    Provides an execution engine bound to the configured review port.

    Returns:
        ExecutionEngine: A fresh engine; each request runs its own state.
    """
    return ExecutionEngine(review_port, settings=app_settings, metrics=metrics)
