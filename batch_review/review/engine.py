"""
Batch execution engine.

Drives each batch of a review plan through the review port, strictly
one at a time, and survives provider failures:
- Rate limits: exponential backoff on a reduced batch, then a split
- Other failures: one retry on a simplified batch
- Repeated failures: circuit break, remaining batches served heuristically
- Optional per-call timeout and whole-run deadline

No batch failure escapes the engine; every batch that is not reviewed
by the model receives heuristic findings instead.
"""

import asyncio
import logging
import math
import random
import time
from contextlib import nullcontext
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence

from pydantic import ValidationError

from batch_review.analysis.diff_parser import ChangeType, Hunk
from batch_review.config import Settings
from batch_review.llm.errors import ResponseParseError
from batch_review.llm.model import ReviewPort
from batch_review.llm.prompts import BatchInfo, ContextBuilder, ReviewContext
from batch_review.llm.schemas import Finding, LLMConfig, ReviewResult
from batch_review.observability.logging import LogContext
from batch_review.observability.metrics import MetricNames, MetricsCollector
from batch_review.planning.models import Batch, ReviewPlan, Strategy
from batch_review.planning.planner import estimate_total_tokens
from batch_review.review.failures import (
    ErrorKind,
    calculate_backoff,
    calculate_batch_delay,
    classify_error,
    is_rate_limit_error,
)
from batch_review.review.heuristics import generate_heuristic_findings

logger = logging.getLogger(__name__)

# Shrink factors applied to a batch on retry
REDUCED_BATCH_RATIO = 0.7
SIMPLIFIED_BATCH_RATIO = 0.5
SIMPLIFIED_CHANGE_TYPES = {ChangeType.ADD, ChangeType.EDIT}


class BatchState(str, Enum):
    """Lifecycle of one batch within a run."""
    PENDING = "pending"
    IN_FLIGHT = "in_flight"
    SUCCEEDED = "succeeded"
    RATE_LIMITED = "rate_limited"
    RETRYING = "retrying"
    SPLIT = "split"
    GENERAL_ERROR = "general_error"
    SIMPLIFIED_RETRY = "simplified_retry"
    SYNTHESIZED = "synthesized"
    FAILED = "failed"
    CIRCUIT_BROKEN = "circuit_broken"
    DEADLINE_EXCEEDED = "deadline_exceeded"


@dataclass
class ExecutionState:
    """Mutable state owned by exactly one run."""
    consecutive_failures: int = 0
    findings: List[Finding] = field(default_factory=list)
    batch_states: Dict[str, BatchState] = field(default_factory=dict)
    llm_calls: int = 0


@dataclass
class ExecutionReport:
    """Outcome of a run: the aggregated findings and the final state."""
    findings: List[Finding]
    state: ExecutionState
    circuit_broken: bool = False
    deadline_exceeded: bool = False


@dataclass
class _Run:
    state: ExecutionState
    base_context: ReviewContext
    config: LLMConfig
    deadline: Optional[float]


class _DeadlineExceeded(Exception):
    pass


class ExecutionEngine:
    """
    Executes review plans against a review port.

    Sleep, randomness and the clock are injectable so retry timing can
    be driven deterministically.
    """

    def __init__(
        self,
        review_port: ReviewPort,
        settings: Optional[Settings] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        rng: Optional[random.Random] = None,
        clock: Callable[[], float] = time.monotonic,
        metrics: Optional[MetricsCollector] = None,
        context_builder: Optional[ContextBuilder] = None,
    ):
        """
        Initialize the engine.

        Args:
            review_port: Backend that reviews one context per call
            settings: Retry, delay and deadline settings
            sleep: Coroutine used for every wait, takes seconds
            rng: Source of backoff jitter
            clock: Monotonic clock in seconds, used for the run deadline
            metrics: Optional collector for batch outcome metrics
            context_builder: Builds per-batch contexts

        Raises:
            ValueError: If no review port is given
        """
        if review_port is None:
            raise ValueError("review_port is required")

        self.review_port = review_port
        self.settings = settings or Settings()
        self._sleep = sleep
        self._rng = rng or random.Random()
        self._clock = clock
        self.metrics = metrics
        self.context_builder = context_builder or ContextBuilder()

        self._recovery = {
            ErrorKind.RATE_LIMIT: self._recover_rate_limit,
            ErrorKind.TRANSIENT: self._recover_transient,
        }

    async def execute_review(
        self,
        plan: ReviewPlan,
        base_context: ReviewContext,
        llm_config: LLMConfig,
    ) -> List[Finding]:
        """Run a plan and return only the aggregated findings."""
        report = await self.run(plan, base_context, llm_config)
        return report.findings

    async def run(
        self,
        plan: ReviewPlan,
        base_context: ReviewContext,
        llm_config: LLMConfig,
    ) -> ExecutionReport:
        """
        Run every batch of a plan in order.

        Args:
            plan: Plan produced by the batch planner
            base_context: Context holding the run's guidelines and rules
            llm_config: Model settings for primary calls

        Returns:
            ExecutionReport: Findings in batch order plus the run state
        """
        state = ExecutionState()
        for batch in plan.batches:
            state.batch_states[batch.id] = BatchState.PENDING

        deadline = None
        if self.settings.REVIEW_DEADLINE_SECONDS:
            deadline = self._clock() + self.settings.REVIEW_DEADLINE_SECONDS

        run = _Run(state=state, base_context=base_context, config=llm_config, deadline=deadline)
        report = ExecutionReport(findings=state.findings, state=state)
        self._count(MetricNames.REVIEW_STARTED)
        if self.metrics is not None:
            self.metrics.record_gauge(MetricNames.REVIEW_BATCHES, len(plan.batches))

        if not plan.batches:
            logger.info("Plan has no batches, nothing to review")
            return report

        with LogContext(strategy=plan.strategy.value, batch_count=len(plan.batches)):
            if plan.strategy == Strategy.SINGLE or len(plan.batches) <= 1:
                await self._run_single(run, plan.batches[0])
            else:
                await self._run_batched(run, plan.batches, report)

        report.deadline_exceeded = any(
            s == BatchState.DEADLINE_EXCEEDED for s in state.batch_states.values()
        )
        self._count(MetricNames.REVIEW_COMPLETED)
        self._count(MetricNames.REVIEW_FINDINGS, len(state.findings))
        logger.info(
            f"Review completed: {len(state.findings)} findings from {len(plan.batches)} batches",
            extra={
                "findings": len(state.findings),
                "llm_calls": state.llm_calls,
                "circuit_broken": report.circuit_broken,
                "deadline_exceeded": report.deadline_exceeded,
            }
        )
        return report

    async def _run_single(self, run: _Run, batch: Batch) -> None:
        logger.info("Executing single review call")
        if self._deadline_passed(run):
            self._serve_skipped(run, [batch], BatchState.DEADLINE_EXCEEDED, "review deadline exceeded")
            return
        with LogContext(batch_id=batch.id):
            recovered = await self._process_batch(run, batch, run.base_context, run.config)
        if recovered:
            run.state.consecutive_failures = 0

    async def _run_batched(self, run: _Run, batches: Sequence[Batch], report: ExecutionReport) -> None:
        state = run.state
        delay_ms = calculate_batch_delay(len(batches), self.settings.BATCH_BASE_DELAY_MS)
        logger.info(
            f"Executing {len(batches)} batches sequentially ({delay_ms}ms between batches)"
        )

        for index, batch in enumerate(batches):
            if self._deadline_passed(run):
                logger.warning(
                    f"Review deadline exceeded, serving {len(batches) - index} remaining batches heuristically"
                )
                self._count(MetricNames.DEADLINE_EXCEEDED)
                self._serve_skipped(run, batches[index:], BatchState.DEADLINE_EXCEEDED, "review deadline exceeded")
                return

            logger.info(
                f"Processing batch {index + 1}/{len(batches)}: {batch.description}",
                extra={"batch_id": batch.id, "priority": batch.priority.value},
            )
            with LogContext(batch_id=batch.id):
                context = self.context_builder.build_context_for_hunks(
                    run.base_context, batch.hunks, self._batch_info(batch)
                )
                config = self._with_max_tokens(
                    run.config, min(int(batch.estimated_tokens * 1.2), run.config.max_tokens)
                )
                recovered = await self._process_batch(run, batch, context, config)

            if state.consecutive_failures >= self.settings.MAX_CONSECUTIVE_FAILURES:
                remaining = batches[index + 1:]
                logger.error(
                    f"Circuit breaker tripped after {state.consecutive_failures} consecutive failures, "
                    f"serving {len(remaining)} remaining batches heuristically",
                    extra={"batch_id": batch.id, "error_kind": ErrorKind.CIRCUIT_BROKEN.value},
                )
                self._count(MetricNames.CIRCUIT_BREAK)
                self._serve_skipped(run, remaining, BatchState.CIRCUIT_BROKEN, "circuit breaker open")
                report.circuit_broken = True
                return

            if recovered:
                state.consecutive_failures = 0

            if index < len(batches) - 1:
                await self._sleep_ms(delay_ms)

    async def _process_batch(
        self,
        run: _Run,
        batch: Batch,
        context: ReviewContext,
        config: LLMConfig,
    ) -> bool:
        """
        Primary call for one batch, with recovery on failure.

        Returns:
            bool: True if a recovery attempt produced model findings
        """
        state = run.state
        state.batch_states[batch.id] = BatchState.IN_FLIGHT
        try:
            findings = await self._call(run, context, config)
        except _DeadlineExceeded:
            self._serve_skipped(run, [batch], BatchState.DEADLINE_EXCEEDED, "review deadline exceeded")
            return False
        except Exception as e:
            kind = classify_error(e)
            state.consecutive_failures += 1
            logger.warning(
                f"Batch {batch.id} failed ({kind.value}): {e}",
                extra={
                    "batch_id": batch.id,
                    "error_kind": kind.value,
                    "consecutive_failures": state.consecutive_failures,
                },
            )
            return await self._recovery[kind](run, batch, e)

        state.findings.extend(findings)
        state.batch_states[batch.id] = BatchState.SUCCEEDED
        state.consecutive_failures = 0
        self._count(MetricNames.BATCH_SUCCEEDED)
        logger.info(f"Batch {batch.id} completed: {len(findings)} findings")
        return False

    async def _recover_rate_limit(self, run: _Run, batch: Batch, error: Exception) -> bool:
        state = run.state
        state.batch_states[batch.id] = BatchState.RATE_LIMITED
        self._count(MetricNames.RATE_LIMIT_HIT)

        reduced = self._reduce_batch(batch)
        last_error = error
        for attempt in range(1, self.settings.RATE_LIMIT_MAX_RETRIES + 1):
            backoff_ms = calculate_backoff(
                attempt,
                base_ms=self.settings.BACKOFF_BASE_MS,
                max_ms=self.settings.BACKOFF_MAX_MS,
                jitter_ms=self.settings.BACKOFF_JITTER_MS,
                rng=self._rng,
            )
            logger.info(
                f"Rate limited on {batch.id}, retry {attempt}/{self.settings.RATE_LIMIT_MAX_RETRIES} "
                f"with {len(reduced.hunks)} hunks in {backoff_ms:.0f}ms"
            )
            state.batch_states[batch.id] = BatchState.RETRYING
            await self._sleep_ms(backoff_ms)

            config = self._with_max_tokens(
                run.config,
                min(int(reduced.estimated_tokens * 1.1), int(run.config.max_tokens * 0.8)),
            )
            try:
                findings = await self._call(run, self._context_for(run, reduced), config)
            except _DeadlineExceeded:
                self._serve_skipped(run, [batch], BatchState.DEADLINE_EXCEEDED, "review deadline exceeded")
                return False
            except Exception as e:
                last_error = e
                if is_rate_limit_error(e):
                    self._count(MetricNames.RATE_LIMIT_HIT)
                else:
                    logger.warning(f"Retry {attempt} of {batch.id} failed with non-rate-limit error: {e}")
                continue

            state.findings.extend(findings)
            state.batch_states[batch.id] = BatchState.SUCCEEDED
            self._count(MetricNames.BATCH_RECOVERED, tags={"path": "reduced"})
            logger.info(f"Reduced batch {reduced.id} succeeded: {len(findings)} findings")
            return True

        if is_rate_limit_error(last_error):
            return await self._split_and_review(run, batch)

        self._synthesize(run, batch.id, batch.hunks, "provider error during retry")
        return False

    async def _split_and_review(self, run: _Run, batch: Batch) -> bool:
        state = run.state
        state.batch_states[batch.id] = BatchState.SPLIT
        sub_batches = self._split_batch(batch)
        logger.info(f"Splitting {batch.id} into {len(sub_batches)} sub-batches")

        succeeded = 0
        for sub in sub_batches:
            await self._sleep_ms(self.settings.SUB_BATCH_DELAY_MS)
            config = self._with_max_tokens(
                run.config, min(sub.estimated_tokens, int(run.config.max_tokens * 0.5))
            )
            try:
                findings = await self._call(run, self._context_for(run, sub), config)
            except _DeadlineExceeded:
                self._serve_skipped(run, [sub], BatchState.DEADLINE_EXCEEDED, "review deadline exceeded")
                continue
            except Exception as e:
                logger.warning(f"Sub-batch {sub.id} failed: {e}")
                self._synthesize(run, sub.id, sub.hunks, "sub-batch failed")
                continue
            state.findings.extend(findings)
            state.batch_states[sub.id] = BatchState.SUCCEEDED
            succeeded += 1

        if succeeded == 0:
            state.batch_states[batch.id] = BatchState.FAILED
            return False

        # A partially reviewed split still counts as recovered
        path = "split" if succeeded == len(sub_batches) else "split_partial"
        state.batch_states[batch.id] = BatchState.SUCCEEDED
        self._count(MetricNames.BATCH_RECOVERED, tags={"path": path})
        logger.info(f"Split of {batch.id} recovered {succeeded}/{len(sub_batches)} sub-batches")
        return True

    async def _recover_transient(self, run: _Run, batch: Batch, error: Exception) -> bool:
        state = run.state
        state.batch_states[batch.id] = BatchState.GENERAL_ERROR
        self._count(MetricNames.TRANSIENT_ERROR)

        simplified = self._simplify_batch(batch)
        if simplified is None:
            logger.info(f"No added or edited hunks in {batch.id}, using heuristics")
            self._synthesize(run, batch.id, batch.hunks, "provider error")
            return False

        state.batch_states[batch.id] = BatchState.SIMPLIFIED_RETRY
        config = self._with_max_tokens(
            run.config,
            min(simplified.estimated_tokens, int(run.config.max_tokens * 0.6)),
        )
        config = config.model_copy(update={"temperature": min(2.0, config.temperature + 0.1)})
        try:
            findings = await self._call(run, self._context_for(run, simplified), config)
        except _DeadlineExceeded:
            self._serve_skipped(run, [batch], BatchState.DEADLINE_EXCEEDED, "review deadline exceeded")
            return False
        except Exception as e:
            logger.warning(f"Simplified retry of {batch.id} failed: {e}")
            self._synthesize(run, batch.id, batch.hunks, "provider error")
            return False

        state.findings.extend(findings)
        state.batch_states[batch.id] = BatchState.SUCCEEDED
        self._count(MetricNames.BATCH_RECOVERED, tags={"path": "simplified"})
        logger.info(f"Simplified batch {simplified.id} succeeded: {len(findings)} findings")
        return True

    async def _call(self, run: _Run, context: ReviewContext, config: LLMConfig) -> List[Finding]:
        """One guarded port call; a malformed result raises like a failed call."""
        return _findings_of(await self._invoke(run, context, config))

    async def _invoke(self, run: _Run, context: ReviewContext, config: LLMConfig) -> Any:
        if self._deadline_passed(run):
            raise _DeadlineExceeded()

        run.state.llm_calls += 1
        self._count(MetricNames.LLM_CALL)
        timeout = config.timeout or self.settings.LLM_CALL_TIMEOUT_SECONDS

        timer = (
            self.metrics.timer_context(MetricNames.LLM_CALL_MS)
            if self.metrics is not None else nullcontext()
        )
        with timer:
            if timeout:
                return await asyncio.wait_for(self.review_port.review_code(context, config), timeout)
            return await self.review_port.review_code(context, config)

    def _synthesize(self, run: _Run, batch_id: str, hunks: Sequence[Hunk], reason: str) -> None:
        findings = generate_heuristic_findings(hunks, reason)
        run.state.findings.extend(findings)
        run.state.batch_states[batch_id] = BatchState.SYNTHESIZED
        self._count(MetricNames.BATCH_SYNTHESIZED)
        logger.info(f"Batch {batch_id} served with {len(findings)} heuristic findings")

    def _serve_skipped(
        self,
        run: _Run,
        batches: Sequence[Batch],
        terminal: BatchState,
        reason: str,
    ) -> None:
        for batch in batches:
            run.state.findings.extend(generate_heuristic_findings(batch.hunks, reason))
            run.state.batch_states[batch.id] = terminal
            self._count(MetricNames.BATCH_SKIPPED, tags={"reason": terminal.value})

    def _reduce_batch(self, batch: Batch) -> Batch:
        keep = max(1, math.floor(len(batch.hunks) * REDUCED_BATCH_RATIO))
        hunks = batch.hunks[:keep]
        return Batch(
            id=batch.id,
            hunks=hunks,
            files=tuple(dict.fromkeys(h.file_path for h in hunks)),
            estimated_tokens=int(batch.estimated_tokens * REDUCED_BATCH_RATIO),
            priority=batch.priority,
            description=f"{batch.description} (reduced)",
        )

    def _simplify_batch(self, batch: Batch) -> Optional[Batch]:
        limit = max(1, math.floor(len(batch.hunks) * SIMPLIFIED_BATCH_RATIO))
        hunks = tuple(h for h in batch.hunks if h.change_type in SIMPLIFIED_CHANGE_TYPES)[:limit]
        if not hunks:
            return None
        return Batch(
            id=batch.id,
            hunks=hunks,
            files=tuple(dict.fromkeys(h.file_path for h in hunks)),
            estimated_tokens=int(batch.estimated_tokens * SIMPLIFIED_BATCH_RATIO),
            priority=batch.priority,
            description=f"{batch.description} (simplified)",
        )

    def _split_batch(self, batch: Batch) -> List[Batch]:
        middle = max(1, len(batch.hunks) // 2)
        halves = [batch.hunks[:middle], batch.hunks[middle:]]
        sub_batches = []
        for number, hunks in enumerate(halves, start=1):
            if not hunks:
                continue
            sub_batches.append(Batch(
                id=f"{batch.id}_sub_{number}",
                hunks=hunks,
                files=tuple(dict.fromkeys(h.file_path for h in hunks)),
                estimated_tokens=estimate_total_tokens(hunks),
                priority=batch.priority,
                description=f"{batch.description} (part {number})",
            ))
        return sub_batches

    def _context_for(self, run: _Run, batch: Batch) -> ReviewContext:
        return self.context_builder.build_context_for_hunks(
            run.base_context, batch.hunks, self._batch_info(batch)
        )

    @staticmethod
    def _batch_info(batch: Batch) -> BatchInfo:
        return BatchInfo(
            batch_id=batch.id,
            priority=batch.priority.value,
            estimated_tokens=batch.estimated_tokens,
            files=list(batch.files),
        )

    @staticmethod
    def _with_max_tokens(config: LLMConfig, max_tokens: int) -> LLMConfig:
        return config.model_copy(update={"max_tokens": max(1, max_tokens)})

    def _deadline_passed(self, run: _Run) -> bool:
        return run.deadline is not None and self._clock() >= run.deadline

    async def _sleep_ms(self, milliseconds: float) -> None:
        if milliseconds > 0:
            await self._sleep(milliseconds / 1000)

    def _count(self, name: str, value: float = 1.0, tags: Optional[Dict[str, str]] = None) -> None:
        if self.metrics is not None:
            self.metrics.record_counter(name, value, tags)


def _findings_of(result: Any) -> List[Finding]:
    if isinstance(result, ReviewResult):
        return list(result.findings)
    if isinstance(result, dict):
        try:
            return list(ReviewResult.model_validate(result).findings)
        except ValidationError as e:
            raise ResponseParseError(f"Review port returned an invalid result: {e}") from e
    raise ResponseParseError(f"Review port returned {type(result).__name__}, expected a review result")
