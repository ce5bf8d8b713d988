"""
Metrics collection for batch review runs.

Records how each batch ended (reviewed, recovered, synthesized,
skipped), how often the provider throttled or failed, and the latency
of every review call.
"""

import logging
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Iterator, List, Optional

from batch_review.config import Settings

logger = logging.getLogger(__name__)


class MetricType(str, Enum):
    """Kinds of samples the collector stores."""
    COUNTER = "counter"
    GAUGE = "gauge"
    TIMER = "timer"


@dataclass
class Metric:
    """One recorded sample."""
    name: str
    metric_type: MetricType
    value: float
    recorded_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    tags: Dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'name': self.name,
            'type': self.metric_type.value,
            'value': self.value,
            'recorded_at': self.recorded_at.isoformat(),
            'tags': dict(self.tags),
        }


class MetricsCollector:
    """
    In-memory sample store shared by review runs.

    The engine only appends, so within one run samples follow batch
    order. When disabled every ``record_*`` call is a no-op.
    """

    def __init__(self, settings: Optional[Settings] = None, enabled: Optional[bool] = None):
        """
        Args:
            settings: Application settings, read for METRICS_ENABLED
            enabled: Overrides the setting when given
        """
        if enabled is None:
            enabled = settings.METRICS_ENABLED if settings is not None else True
        self.enabled = enabled
        self.metrics: List[Metric] = []
        self._started = time.monotonic()
        logger.debug(f"Metrics collector created (enabled: {self.enabled})")

    def _record(self, name: str, metric_type: MetricType, value: float, tags: Optional[Dict[str, str]]) -> None:
        if not self.enabled:
            return
        self.metrics.append(Metric(name=name, metric_type=metric_type, value=value, tags=tags or {}))

    def record_counter(self, name: str, value: float = 1.0, tags: Optional[Dict[str, str]] = None) -> None:
        """Add ``value`` to the counter ``name``."""
        self._record(name, MetricType.COUNTER, value, tags)

    def record_gauge(self, name: str, value: float, tags: Optional[Dict[str, str]] = None) -> None:
        self._record(name, MetricType.GAUGE, value, tags)

    def record_timer(self, name: str, duration_ms: float, tags: Optional[Dict[str, str]] = None) -> None:
        self._record(name, MetricType.TIMER, duration_ms, tags)

    @contextmanager
    def timer_context(self, name: str, tags: Optional[Dict[str, str]] = None) -> Iterator[None]:
        """
        Time the enclosed block in milliseconds.

        The sample is recorded even when the block raises, so failed
        review calls still show up in call latency.
        """
        started = time.perf_counter()
        try:
            yield
        finally:
            self.record_timer(name, (time.perf_counter() - started) * 1000, tags)

    def count(self, name: str) -> float:
        """Sum of all counter values recorded under ``name``."""
        return sum(
            m.value for m in self.metrics
            if m.name == name and m.metric_type == MetricType.COUNTER
        )

    def get_metrics(self, metric_type: Optional[MetricType] = None) -> List[Metric]:
        if metric_type is None:
            return list(self.metrics)
        return [m for m in self.metrics if m.metric_type == metric_type]

    def get_metric_summary(self) -> Dict[str, Any]:
        """
        Aggregate the stored samples.

        Returns:
            Dict with counter totals by name, the latest gauge values,
            call latency statistics and collector uptime.
        """
        counters: Dict[str, float] = {}
        gauges: Dict[str, float] = {}
        durations: List[float] = []
        for metric in self.metrics:
            if metric.metric_type == MetricType.COUNTER:
                counters[metric.name] = counters.get(metric.name, 0) + metric.value
            elif metric.metric_type == MetricType.GAUGE:
                gauges[metric.name] = metric.value
            else:
                durations.append(metric.value)

        timer_stats: Dict[str, float] = {}
        if durations:
            timer_stats = {
                'count': len(durations),
                'avg_ms': sum(durations) / len(durations),
                'min_ms': min(durations),
                'max_ms': max(durations),
            }

        return {
            'total_metrics': len(self.metrics),
            'counters': counters,
            'gauges': gauges,
            'timer_stats': timer_stats,
            'uptime_seconds': time.monotonic() - self._started,
        }

    def clear_metrics(self) -> None:
        self.metrics = []

    def export_metrics(self) -> List[Dict[str, Any]]:
        """Samples as plain dicts, oldest first."""
        return [m.to_dict() for m in self.metrics]


class MetricNames:
    """Metric names recorded by the execution engine."""

    # Runs
    REVIEW_STARTED = "review.started"
    REVIEW_COMPLETED = "review.completed"
    REVIEW_FINDINGS = "review.findings"
    REVIEW_BATCHES = "review.batches"

    # How each batch ended
    BATCH_SUCCEEDED = "batch.succeeded"
    BATCH_RECOVERED = "batch.recovered"
    BATCH_SYNTHESIZED = "batch.synthesized"
    BATCH_SKIPPED = "batch.skipped"

    # Provider failures and run-level stops
    RATE_LIMIT_HIT = "llm.rate_limit"
    TRANSIENT_ERROR = "llm.transient_error"
    CIRCUIT_BREAK = "review.circuit_break"
    DEADLINE_EXCEEDED = "review.deadline_exceeded"

    # Review calls
    LLM_CALL = "llm.call"
    LLM_CALL_MS = "llm.call_ms"


_metrics_collector: Optional[MetricsCollector] = None


def get_metrics_collector() -> MetricsCollector:
    """
    Return the process-wide collector.

    Raises:
        RuntimeError: If ``setup_metrics`` has not run yet
    """
    if _metrics_collector is None:
        raise RuntimeError("Metrics collector not initialized. Call setup_metrics() first.")
    return _metrics_collector


def setup_metrics(settings: Settings) -> MetricsCollector:
    """Create the process-wide collector from settings, replacing any previous one."""
    global _metrics_collector
    _metrics_collector = MetricsCollector(settings)
    return _metrics_collector
