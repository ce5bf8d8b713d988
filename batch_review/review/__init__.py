"""
Review execution package.

This package provides:
- The sequential batch execution engine with rate-limit recovery
- Failure classification and backoff arithmetic
- Heuristic findings for batches the model never reviewed
- Severity filtering and finding summaries
"""

from batch_review.review.engine import BatchState, ExecutionEngine, ExecutionReport, ExecutionState
from batch_review.review.failures import ErrorKind, classify_error, is_rate_limit_error
from batch_review.review.heuristics import generate_heuristic_findings
from batch_review.review.results import filter_by_severity, summarize_findings

__all__ = [
    "BatchState",
    "ErrorKind",
    "ExecutionEngine",
    "ExecutionReport",
    "ExecutionState",
    "classify_error",
    "filter_by_severity",
    "generate_heuristic_findings",
    "is_rate_limit_error",
    "summarize_findings",
]
