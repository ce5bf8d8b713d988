"""
Heuristic findings for batches the model could not review.

A small static scan over added lines, used whenever the engine gives
up on a batch so every batch still contributes at least one finding.
"""

import re
import logging
from dataclasses import dataclass
from typing import List, Optional, Pattern, Sequence

from batch_review.analysis.diff_parser import ChangeType, Hunk
from batch_review.llm.schemas import Finding, Severity

logger = logging.getLogger(__name__)

HEURISTIC_CATEGORY = "heuristic"
MAX_LINE_LENGTH = 120


@dataclass(frozen=True)
class HeuristicRule:
    """A line-level pattern check."""
    rule_id: str
    severity: Severity
    message: str
    pattern: Optional[Pattern[str]] = None
    suggestion: Optional[str] = None
    max_length: Optional[int] = None

    def matches(self, line: str) -> bool:
        if self.max_length is not None:
            return len(line) > self.max_length
        return bool(self.pattern and self.pattern.search(line))


RULES = [
    HeuristicRule(
        rule_id='no-debug-statement',
        severity=Severity.WARNING,
        message='Debug statement left in code',
        pattern=re.compile(
            r'console\.(log|error|debug)\s*\(|\bprint\s*\(|\bdebugger\b'
            r'|System\.out\.println|fmt\.Println|pdb\.set_trace|\bbreakpoint\s*\(\s*\)'
        ),
        suggestion='Remove the debug statement or use the project logger',
    ),
    HeuristicRule(
        rule_id='todo-fixme',
        severity=Severity.INFO,
        message='TODO/FIXME comment added',
        pattern=re.compile(r'\b(TODO|FIXME)\b'),
        suggestion='Track the follow-up in an issue or resolve it before merging',
    ),
    HeuristicRule(
        rule_id='max-line-length',
        severity=Severity.INFO,
        message=f'Line exceeds {MAX_LINE_LENGTH} characters',
        suggestion='Break the line up for readability',
        max_length=MAX_LINE_LENGTH,
    ),
]

SCANNED_CHANGE_TYPES = {ChangeType.ADD, ChangeType.EDIT, ChangeType.RENAME}


def scan_hunk(hunk: Hunk, rules: Sequence[HeuristicRule] = RULES) -> List[Finding]:
    """
    Run every rule over the added lines of one hunk.

    Line numbers refer to the new version of the file.
    """
    findings: List[Finding] = []
    new_line = hunk.new_line_start
    for raw in hunk.lines:
        if raw.startswith('-'):
            continue
        if raw.startswith('+'):
            text = raw[1:]
            for rule in rules:
                if rule.matches(text):
                    findings.append(Finding(
                        file=hunk.file_path,
                        line=max(1, new_line),
                        severity=rule.severity,
                        message=rule.message,
                        suggestion=rule.suggestion,
                        rule_id=rule.rule_id,
                        category=HEURISTIC_CATEGORY,
                    ))
        new_line += 1
    return findings


def generate_heuristic_findings(hunks: Sequence[Hunk], reason: str = "") -> List[Finding]:
    """
    Produce findings for hunks that were never reviewed by the model.

    Always returns at least one finding when ``hunks`` is non-empty: if
    no rule matched, a ``manual-review-required`` note on the first file.

    Args:
        hunks: Hunks of the batch being served
        reason: Why the batch fell back, included in the note

    Returns:
        List[Finding]: Heuristic findings in hunk order
    """
    findings: List[Finding] = []
    for hunk in hunks:
        if hunk.change_type in SCANNED_CHANGE_TYPES:
            findings.extend(scan_hunk(hunk))

    if not findings and hunks:
        message = 'Automated review was unavailable for this change; manual review required'
        if reason:
            message = f'{message} ({reason})'
        findings.append(Finding(
            file=hunks[0].file_path,
            line=1,
            severity=Severity.INFO,
            message=message,
            rule_id='manual-review-required',
            category=HEURISTIC_CATEGORY,
        ))

    logger.debug(f"Generated {len(findings)} heuristic findings for {len(hunks)} hunks")
    return findings
