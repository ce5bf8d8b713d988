"""
Review endpoint.

Runs the whole pipeline for one change set: parse diffs into hunks,
plan batches, execute them against the review port and filter the
findings by severity.
"""

import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field

from batch_review.analysis.diff_parser import ChangeType, Hunk, parse_file_diffs, parse_hunks, placeholder_diff
from batch_review.config import Settings
from batch_review.dependencies import get_engine, get_planner, get_settings
from batch_review.llm.prompts import ContextBuilder
from batch_review.llm.schemas import Finding, Guideline, LLMConfig, ReviewRule, Severity
from batch_review.planning.models import PlanningOptions
from batch_review.planning.planner import BatchPlanner
from batch_review.review.engine import ExecutionEngine
from batch_review.review.results import filter_by_severity, summarize_findings

logger = logging.getLogger(__name__)

router = APIRouter()


class FileDiffInput(BaseModel):
    """One changed file and its unified diff."""
    path: str = Field(..., min_length=1)
    diff: str = Field(
        default="",
        description="Unified diff for this file; a placeholder is used when empty"
    )
    change_type: ChangeType = ChangeType.EDIT


class ReviewRequest(BaseModel):
    """Change set to review plus the project's guidelines and rules."""
    files: List[FileDiffInput] = Field(default_factory=list)
    unified_diff: Optional[str] = Field(
        default=None,
        description="Multi-file git diff, parsed in addition to ``files``"
    )
    guidelines: List[Guideline] = Field(default_factory=list)
    rules: List[ReviewRule] = Field(default_factory=list)
    planning: Optional[PlanningOptions] = None
    severity_threshold: Optional[Severity] = None
    custom_prompt_template: Optional[str] = None


class ReviewResponse(BaseModel):
    """Plan summary, filtered findings and finding statistics."""
    plan: Dict[str, Any]
    findings: List[Finding]
    summary: Dict[str, Any]


def collect_hunks(request: ReviewRequest) -> List[Hunk]:
    """Parse every diff in the request into hunks, in request order."""
    hunks: List[Hunk] = []
    for file in request.files:
        diff_text = file.diff or placeholder_diff(file.path, file.change_type)
        hunks.extend(parse_hunks(diff_text, file.path))
    if request.unified_diff:
        for file_hunks in parse_file_diffs(request.unified_diff).values():
            hunks.extend(file_hunks)
    return hunks


@router.post(
    "/review",
    response_model=ReviewResponse,
    status_code=status.HTTP_200_OK,
    summary="Review a change set",
    description="Plans batches over the diffs, reviews them and returns findings"
)
async def review_changes(
    request: ReviewRequest,
    engine: ExecutionEngine = Depends(get_engine),
    planner: BatchPlanner = Depends(get_planner),
    app_settings: Settings = Depends(get_settings),
):
    """
    Review a change set end to end.

    Args:
        request: Files, guidelines, rules and planning options
        engine: Execution engine bound to the review port
        planner: Batch planner
        app_settings: Application settings

    Returns:
        ReviewResponse: Plan, findings at or above the threshold, and summary
    """
    hunks = collect_hunks(request)
    options = request.planning or PlanningOptions.from_settings(app_settings)
    plan = planner.create_plan(hunks, options)

    # Excluded file types never reach the model, not even in the single-call context
    planned = [hunk for batch in plan.batches for hunk in batch.hunks]
    builder = ContextBuilder()
    base_context = builder.build_context(
        request.guidelines,
        request.rules,
        planned,
        custom_prompt_template=request.custom_prompt_template,
    )

    report = await engine.run(plan, base_context, LLMConfig.from_settings(app_settings))

    threshold = request.severity_threshold or Severity(app_settings.SEVERITY_THRESHOLD)
    findings = filter_by_severity(report.findings, threshold)

    summary = summarize_findings(findings)
    summary.update({
        'plan': planner.get_summary(plan),
        'llm_calls': report.state.llm_calls,
        'circuit_broken': report.circuit_broken,
        'deadline_exceeded': report.deadline_exceeded,
        'batch_states': {k: v.value for k, v in report.state.batch_states.items()},
    })

    logger.info(
        f"Review request completed: {len(findings)} findings",
        extra={"hunks": len(hunks), "batches": len(plan.batches)}
    )

    return ReviewResponse(plan=plan.to_dict(), findings=findings, summary=summary)
