"""
Health, readiness and metrics endpoints.

Readiness reports whether the configured provider can be called at
all; the review engine itself never fails a request on provider
errors, so a missing key is the only hard blocker.
"""

from datetime import datetime, timezone
from typing import Any, Dict

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel

from batch_review import __version__
from batch_review.config import Settings
from batch_review.dependencies import get_metrics, get_settings
from batch_review.observability.metrics import MetricsCollector

router = APIRouter()

PROVIDER_KEYS = {
    "anthropic": "ANTHROPIC_API_KEY",
    "openai": "OPENAI_API_KEY",
}


class HealthResponse(BaseModel):
    """Service status plus the individual checks behind it."""
    status: str
    timestamp: datetime
    environment: str
    version: str
    checks: Dict[str, Any]


def _status_payload(overall: str, app_settings: Settings, checks: Dict[str, Any]) -> HealthResponse:
    return HealthResponse(
        status=overall,
        timestamp=datetime.now(timezone.utc),
        environment=app_settings.ENVIRONMENT,
        version=__version__,
        checks=checks,
    )


@router.get(
    "/",
    response_model=HealthResponse,
    status_code=status.HTTP_200_OK,
    summary="Basic health check",
)
async def health_check(app_settings: Settings = Depends(get_settings)):
    """The process is up and serving requests."""
    return _status_payload("healthy", app_settings, {"api": "ok"})


@router.get(
    "/ready",
    response_model=HealthResponse,
    status_code=status.HTTP_200_OK,
    summary="Readiness check",
    description="Reports provider credentials and the effective batching configuration",
)
async def readiness_check(app_settings: Settings = Depends(get_settings)):
    """
    Check that reviews can reach a provider.

    Returns:
        HealthResponse: ``ready`` when the configured provider has an API
        key, ``not_ready`` otherwise. Batching and deadline settings are
        included for operators.
    """
    provider = app_settings.LLM_PROVIDER.lower()
    key_name = PROVIDER_KEYS.get(provider)
    key_ok = bool(key_name and getattr(app_settings, key_name))

    checks = {
        "llm_provider": app_settings.LLM_PROVIDER,
        "llm_api_key": "ok" if key_ok else "missing",
        "batch_strategy": app_settings.BATCH_STRATEGY,
        "review_deadline": (
            f"{app_settings.REVIEW_DEADLINE_SECONDS}s"
            if app_settings.REVIEW_DEADLINE_SECONDS else "not_configured"
        ),
        "max_consecutive_failures": app_settings.MAX_CONSECUTIVE_FAILURES,
    }
    return _status_payload("ready" if key_ok else "not_ready", app_settings, checks)


@router.get(
    "/live",
    status_code=status.HTTP_200_OK,
    summary="Liveness check",
)
async def liveness_check():
    return {"status": "alive"}


@router.get(
    "/metrics",
    status_code=status.HTTP_200_OK,
    summary="Batch outcome metrics",
    description="Counters, gauges and review call latency collected since startup",
)
async def metrics_summary(metrics: MetricsCollector = Depends(get_metrics)):
    return metrics.get_metric_summary()
