"""
Planning package: partitions hunks into model-sized review batches.
"""

from batch_review.planning.models import (
    Batch,
    PlanningHeuristics,
    PlanningOptions,
    Priority,
    ReviewPlan,
    Strategy,
)
from batch_review.planning.planner import BatchPlanner, estimate_hunk_tokens

__all__ = [
    "Batch",
    "BatchPlanner",
    "PlanningHeuristics",
    "PlanningOptions",
    "Priority",
    "ReviewPlan",
    "Strategy",
    "estimate_hunk_tokens",
]
