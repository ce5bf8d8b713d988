"""
FastAPI entrypoint for the batch review service.

Configures logging and metrics from settings, then mounts the health
and review routers.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from batch_review import __version__
from batch_review.api import health, review
from batch_review.config import settings
from batch_review.observability.logging import setup_logging
from batch_review.observability.metrics import setup_metrics

setup_logging(settings)
setup_metrics(settings)

logger = logging.getLogger(__name__)

_interactive_docs = settings.ENVIRONMENT != "production"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Log the effective review configuration while the app is serving."""
    logger.info(
        "Batch review service starting",
        extra={
            "environment": settings.ENVIRONMENT,
            "llm_provider": settings.LLM_PROVIDER,
            "llm_model": settings.LLM_MODEL,
            "batch_strategy": settings.BATCH_STRATEGY,
            "max_consecutive_failures": settings.MAX_CONSECUTIVE_FAILURES,
        }
    )
    yield
    logger.info("Batch review service shutting down")


app = FastAPI(
    title="Batch Review",
    description="Batched, rate-limit-resilient pull request review",
    version=__version__,
    docs_url="/docs" if _interactive_docs else None,
    redoc_url="/redoc" if _interactive_docs else None,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(health.router, prefix="/health", tags=["health"])
app.include_router(review.router, tags=["review"])


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "batch_review.main:app",
        host="0.0.0.0",
        port=settings.PORT,
        reload=settings.ENVIRONMENT == "development",
    )
