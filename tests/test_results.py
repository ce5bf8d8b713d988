import pytest
from pydantic import ValidationError

from batch_review.llm.schemas import Finding, Severity
from batch_review.review.results import filter_by_severity, summarize_findings


@pytest.fixture
def findings(make_finding):
    return [
        make_finding(file="a.py", severity=Severity.INFO),
        make_finding(file="a.py", severity=Severity.ERROR),
        make_finding(file="b.py", severity=Severity.WARNING),
    ]


def test_severity_ordering():
    assert Severity.INFO < Severity.WARNING < Severity.ERROR
    assert max([Severity.WARNING, Severity.ERROR, Severity.INFO]) == Severity.ERROR


def test_filter_by_severity_keeps_order(findings):
    kept = filter_by_severity(findings, Severity.WARNING)

    assert [f.severity for f in kept] == [Severity.ERROR, Severity.WARNING]


def test_filter_accepts_strings(findings):
    assert len(filter_by_severity(findings, "ERROR")) == 1
    assert filter_by_severity(findings, "info") == findings


def test_summarize_findings(findings):
    heuristic = Finding(file="c.py", line=1, severity=Severity.INFO, message="check", category="heuristic")

    summary = summarize_findings(findings + [heuristic])

    assert summary["total"] == 4
    assert summary["by_severity"] == {"info": 2, "warning": 1, "error": 1}
    assert summary["by_file"] == {"a.py": 2, "b.py": 1, "c.py": 1}
    assert summary["heuristic"] == 1
    assert summary["files_with_findings"] == 3


def test_summarize_empty():
    summary = summarize_findings([])

    assert summary["total"] == 0
    assert summary["by_severity"] == {"info": 0, "warning": 0, "error": 0}


def test_finding_rejects_inverted_range():
    with pytest.raises(ValidationError):
        Finding(file="a.py", line=10, end_line=5, severity=Severity.INFO, message="x")


def test_finding_rejects_zero_line():
    with pytest.raises(ValidationError):
        Finding(file="a.py", line=0, severity=Severity.INFO, message="x")
