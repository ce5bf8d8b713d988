"""
Batch planner module.

Decides whether a change set is reviewed in one call or partitioned
into batches, and builds those batches:
- Token estimation per hunk
- Strategy selection from size and diversity heuristics
- File-based, size-based and mixed (critical + complexity tier) batching
- Greedy bin-packing under token, file and hunk ceilings
"""

import logging
import math
from dataclasses import replace
from typing import Any, Dict, List, Optional, Sequence, Tuple

from batch_review.analysis.diff_parser import Hunk
from batch_review.analysis.file_patterns import (
    get_file_category,
    file_extension,
    matches_any,
)
from batch_review.planning.models import (
    Batch,
    PlanningHeuristics,
    PlanningOptions,
    Priority,
    ReviewPlan,
    Strategy,
    TierLimits,
)

logger = logging.getLogger(__name__)

# Per-hunk fixed overhead for headers and metadata
HUNK_OVERHEAD_TOKENS = 20


def estimate_hunk_tokens(hunk: Hunk) -> int:
    """Rough token estimate: four characters per token plus fixed overhead."""
    return (
        math.ceil(len(hunk.file_path) / 4)
        + math.ceil(len(hunk.content) / 4)
        + HUNK_OVERHEAD_TOKENS
    )


def estimate_total_tokens(hunks: Sequence[Hunk]) -> int:
    return sum(estimate_hunk_tokens(h) for h in hunks)


def _unique_files(hunks: Sequence[Hunk]) -> Tuple[str, ...]:
    return tuple(dict.fromkeys(h.file_path for h in hunks))


class BatchPlanner:
    """
    Builds review plans from parsed hunks.

    The planner is stateless apart from its heuristics, so one
    instance can plan any number of runs.
    """

    def __init__(self, heuristics: Optional[PlanningHeuristics] = None):
        self.heuristics = heuristics or PlanningHeuristics()

    def create_plan(
        self,
        hunks: Sequence[Hunk],
        options: Optional[PlanningOptions] = None,
    ) -> ReviewPlan:
        """
        Create a review plan for a set of hunks.

        Args:
            hunks: Parsed hunks across all changed files
            options: Batch ceilings, strategy and file type filters

        Returns:
            ReviewPlan: Strategy and batches covering every kept hunk
        """
        options = options or PlanningOptions()

        filtered = self.filter_hunks(hunks, options.exclude_file_types)
        if not filtered:
            logger.info("No reviewable hunks, returning empty plan")
            return self._empty_plan()

        total_files = len(_unique_files(filtered))
        total_tokens = estimate_total_tokens(filtered)

        strategy = options.force_strategy or self.determine_strategy(filtered, total_tokens)

        if strategy == Strategy.SINGLE:
            batches = [self._create_single_batch(filtered)]
        elif options.batch_strategy == "file-based":
            batches = self._create_file_based_batches(filtered, options)
        elif options.batch_strategy == "size-based":
            batches = self._create_size_based_batches(filtered, options)
        else:
            batches = self._create_mixed_batches(filtered, options)

        plan = ReviewPlan(
            strategy=strategy,
            batches=tuple(batches),
            total_files=total_files,
            total_hunks=len(filtered),
            estimated_tokens=total_tokens,
            estimated_duration=self.estimate_duration(batches),
        )

        logger.info(
            f"Review plan created: {strategy.value} strategy, {len(batches)} batches, "
            f"~{round(plan.estimated_duration)}s estimated",
            extra={
                "strategy": strategy.value,
                "batch_count": len(batches),
                "total_hunks": plan.total_hunks,
                "estimated_tokens": total_tokens,
            }
        )

        return plan

    def filter_hunks(self, hunks: Sequence[Hunk], exclude_file_types: Sequence[str]) -> List[Hunk]:
        """Drop hunks whose file extension is excluded."""
        if not exclude_file_types:
            return list(hunks)
        excluded = {ext.lstrip('.').lower() for ext in exclude_file_types}
        return [h for h in hunks if file_extension(h.file_path) not in excluded]

    def determine_strategy(self, hunks: Sequence[Hunk], estimated_tokens: int) -> Strategy:
        """
        Choose single or batch review from size and diversity signals.

        Args:
            hunks: Filtered hunks
            estimated_tokens: Total token estimate for ``hunks``

        Returns:
            Strategy: The chosen strategy
        """
        h = self.heuristics
        total_hunks = len(hunks)
        total_files = len(_unique_files(hunks))

        if total_hunks <= h.small_review_threshold:
            logger.debug(f"Using single strategy: small review ({total_hunks} hunks)")
            return Strategy.SINGLE

        if total_hunks > h.large_review_threshold:
            logger.debug(f"Using batch strategy: large review ({total_hunks} hunks)")
            return Strategy.BATCH

        if estimated_tokens > h.max_tokens_for_single:
            logger.debug(f"Using batch strategy: token limit exceeded ({estimated_tokens} tokens)")
            return Strategy.BATCH

        if total_files > h.file_diversity_threshold:
            logger.debug(f"Using batch strategy: many files ({total_files} files)")
            return Strategy.BATCH

        avg_tokens = estimated_tokens / total_hunks
        if avg_tokens > h.avg_tokens_per_hunk_threshold:
            logger.debug(f"Using batch strategy: large hunks (avg {avg_tokens:.0f} tokens)")
            return Strategy.BATCH

        has_critical = any(self._is_critical(hunk) for hunk in hunks)
        if has_critical and total_hunks > h.medium_review_threshold:
            logger.debug("Using batch strategy: critical files in medium-sized review")
            return Strategy.BATCH

        extensions = {file_extension(hunk.file_path) or 'no-ext' for hunk in hunks}
        if len(extensions) > h.extension_diversity_threshold:
            logger.debug(f"Using batch strategy: diverse file types ({len(extensions)} extensions)")
            return Strategy.BATCH

        logger.debug("Using single strategy: within single-call limits")
        return Strategy.SINGLE

    def split_hunks_into_batches(
        self,
        hunks: Sequence[Hunk],
        max_tokens: int,
        max_files: int,
        max_hunks: int,
        prefix: str,
    ) -> List[Batch]:
        """
        Greedily pack hunks into batches in the given order.

        A hunk joins the open batch while the batch stays within all three
        ceilings; otherwise the open batch is closed and the hunk seeds the
        next one. A hunk larger than ``max_tokens`` still gets a batch.

        Args:
            hunks: Hunks in packing order
            max_tokens: Token ceiling per batch
            max_files: Distinct file ceiling per batch
            max_hunks: Hunk ceiling per batch
            prefix: Batch id prefix, ids are ``<prefix>-<n>``

        Returns:
            List[Batch]: Packed batches
        """
        batches: List[Batch] = []
        current: List[Hunk] = []
        current_tokens = 0
        current_files = set()

        for hunk in hunks:
            hunk_tokens = estimate_hunk_tokens(hunk)
            would_exceed = (
                current_tokens + hunk_tokens > max_tokens
                or len(current_files) >= max_files
                or len(current) >= max_hunks
            )
            if would_exceed and current:
                batches.append(self._batch_from_hunks(current, f"{prefix}-{len(batches) + 1}", current_tokens))
                current = []
                current_tokens = 0
                current_files = set()

            current.append(hunk)
            current_tokens += hunk_tokens
            current_files.add(hunk.file_path)

        if current:
            batches.append(self._batch_from_hunks(current, f"{prefix}-{len(batches) + 1}", current_tokens))

        return batches

    def estimate_duration(self, batches: Sequence[Batch]) -> float:
        """Advisory duration in seconds: 30s per 1000 tokens plus 10s per batch."""
        return sum(b.estimated_tokens / 1000 * 30 + 10 for b in batches)

    def get_summary(self, plan: ReviewPlan) -> str:
        """One-line human summary of a plan."""
        if not plan.batches:
            return "No changes to review"
        return (
            f"{plan.strategy.value} strategy: {len(plan.batches)} batches, "
            f"{plan.total_files} files, {plan.total_hunks} hunks, "
            f"~{round(plan.estimated_duration)}s"
        )

    def update_heuristics(self, **updates: Any) -> None:
        """Override individual heuristic values."""
        self.heuristics = replace(self.heuristics, **updates)
        logger.debug("Planning heuristics updated", extra={"updated": sorted(updates)})

    def get_file_category(self, file_path: str) -> str:
        """Category of a file: tests, config, critical, extension-derived or other."""
        h = self.heuristics
        return get_file_category(
            file_path,
            test_patterns=h.test_file_patterns,
            config_patterns=h.config_file_patterns,
            critical_patterns=h.critical_file_patterns,
        )

    def _is_critical(self, hunk: Hunk) -> bool:
        return matches_any(hunk.file_path, self.heuristics.critical_file_patterns)

    def _is_test(self, hunk: Hunk) -> bool:
        return matches_any(hunk.file_path, self.heuristics.test_file_patterns)

    def _create_file_based_batches(self, hunks: Sequence[Hunk], options: PlanningOptions) -> List[Batch]:
        categories: Dict[str, List[Hunk]] = {}
        for hunk in hunks:
            categories.setdefault(self.get_file_category(hunk.file_path), []).append(hunk)

        batches: List[Batch] = []
        batch_id = 1
        for category, category_hunks in categories.items():
            sub_batches = self.split_hunks_into_batches(
                self._prioritize(category_hunks, options.prioritize_file_types),
                options.max_tokens_per_batch,
                options.max_files_per_batch,
                options.max_hunks_per_batch,
                f"{category}-{batch_id}",
            )
            batches.extend(sub_batches)
            batch_id += len(sub_batches)
        return batches

    def _create_size_based_batches(self, hunks: Sequence[Hunk], options: PlanningOptions) -> List[Batch]:
        prioritized = set(options.prioritize_file_types)
        ordered = sorted(
            hunks,
            key=lambda h: (file_extension(h.file_path) not in prioritized, -estimate_hunk_tokens(h)),
        )
        return self.split_hunks_into_batches(
            ordered,
            options.max_tokens_per_batch,
            options.max_files_per_batch,
            options.max_hunks_per_batch,
            "size-based",
        )

    def _create_mixed_batches(self, hunks: Sequence[Hunk], options: PlanningOptions) -> List[Batch]:
        critical = [h for h in hunks if self._is_critical(h)]
        regular = [h for h in hunks if not self._is_critical(h)]

        batches: List[Batch] = []
        batch_id = 1

        if critical:
            critical_batches = self._pack_tier(
                critical, options, self.heuristics.critical_limits, f"critical-{batch_id}"
            )
            batches.extend(critical_batches)
            batch_id += len(critical_batches)

        tiers: Dict[str, List[Hunk]] = {'high': [], 'medium': [], 'low': []}
        for hunk in regular:
            tiers[self._complexity_tier(hunk)].append(hunk)

        limits = {
            'high': self.heuristics.high_limits,
            'medium': self.heuristics.medium_limits,
            'low': None,
        }
        for tier, tier_hunks in tiers.items():
            if not tier_hunks:
                continue
            tier_batches = self._pack_tier(tier_hunks, options, limits[tier], f"{tier}-{batch_id}")
            batches.extend(tier_batches)
            batch_id += len(tier_batches)

        return batches

    def _pack_tier(
        self,
        hunks: List[Hunk],
        options: PlanningOptions,
        limits: Optional[TierLimits],
        prefix: str,
    ) -> List[Batch]:
        max_tokens = options.max_tokens_per_batch
        max_files = options.max_files_per_batch
        max_hunks = options.max_hunks_per_batch
        if limits is not None:
            max_tokens = min(int(max_tokens * limits.token_ratio), limits.token_cap)
            max_files = min(max_files, limits.max_files)
            max_hunks = min(max_hunks, limits.max_hunks)

        return self.split_hunks_into_batches(
            self._prioritize(hunks, options.prioritize_file_types),
            max_tokens,
            max_files,
            max_hunks,
            prefix,
        )

    def _complexity_tier(self, hunk: Hunk) -> str:
        h = self.heuristics
        tokens = estimate_hunk_tokens(hunk)
        ext = file_extension(hunk.file_path)

        if tokens > h.high_tier_token_threshold or ext in h.high_tier_extensions:
            return 'high'
        if tokens > h.medium_tier_token_threshold or ext in h.medium_tier_extensions:
            return 'medium'
        return 'low'

    @staticmethod
    def _prioritize(hunks: List[Hunk], prioritize_file_types: Sequence[str]) -> List[Hunk]:
        if not prioritize_file_types:
            return hunks
        prioritized = set(prioritize_file_types)
        return sorted(hunks, key=lambda h: file_extension(h.file_path) not in prioritized)

    def _priority(self, hunks: Sequence[Hunk]) -> Priority:
        if any(self._is_critical(h) for h in hunks):
            return Priority.HIGH
        if any(self._is_test(h) for h in hunks):
            return Priority.LOW
        return Priority.MEDIUM

    def _batch_from_hunks(self, hunks: Sequence[Hunk], batch_id: str, estimated_tokens: int) -> Batch:
        files = _unique_files(hunks)
        categories = ', '.join(dict.fromkeys(self.get_file_category(h.file_path) for h in hunks))
        return Batch(
            id=batch_id,
            hunks=tuple(hunks),
            files=files,
            estimated_tokens=estimated_tokens,
            priority=self._priority(hunks),
            description=f"{len(files)} files ({categories}), {len(hunks)} hunks",
        )

    def _create_single_batch(self, hunks: Sequence[Hunk]) -> Batch:
        files = _unique_files(hunks)
        return Batch(
            id='single',
            hunks=tuple(hunks),
            files=files,
            estimated_tokens=estimate_total_tokens(hunks),
            priority=self._priority(hunks),
            description=f"Complete review: {len(files)} files, {len(hunks)} hunks",
        )

    @staticmethod
    def _empty_plan() -> ReviewPlan:
        return ReviewPlan(
            strategy=Strategy.SINGLE,
            batches=(),
            total_files=0,
            total_hunks=0,
            estimated_tokens=0,
            estimated_duration=0.0,
        )
