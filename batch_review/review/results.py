"""
Finding post-processing.

Filters findings by a minimum severity and summarizes them for
callers and the HTTP response.
"""

import logging
from collections import Counter
from typing import Any, Dict, List, Sequence, Union

from batch_review.llm.schemas import Finding, Severity
from batch_review.review.heuristics import HEURISTIC_CATEGORY

logger = logging.getLogger(__name__)


def filter_by_severity(
    findings: Sequence[Finding],
    threshold: Union[Severity, str] = Severity.INFO,
) -> List[Finding]:
    """
    Keep findings at or above a severity threshold.

    Args:
        findings: Findings in run order
        threshold: Minimum severity to keep

    Returns:
        List[Finding]: Kept findings, order preserved
    """
    threshold = Severity(threshold.lower()) if isinstance(threshold, str) else threshold
    kept = [f for f in findings if f.severity >= threshold]
    if len(kept) != len(findings):
        logger.debug(
            f"Filtered {len(findings) - len(kept)} findings below {threshold.value}"
        )
    return kept


def summarize_findings(findings: Sequence[Finding]) -> Dict[str, Any]:
    """
    Count findings by severity, file and origin.

    Returns:
        Dict with ``total``, ``by_severity``, ``by_file``, ``heuristic``
        and ``files_with_findings``.
    """
    by_severity = Counter(f.severity.value for f in findings)
    by_file = Counter(f.file for f in findings)

    return {
        'total': len(findings),
        'by_severity': {s.value: by_severity.get(s.value, 0) for s in Severity},
        'by_file': dict(by_file),
        'heuristic': sum(1 for f in findings if f.category == HEURISTIC_CATEGORY),
        'files_with_findings': len(by_file),
    }
