from batch_review.analysis.diff_parser import ChangeType
from batch_review.llm.schemas import Severity
from batch_review.review.heuristics import (
    HEURISTIC_CATEGORY,
    MAX_LINE_LENGTH,
    generate_heuristic_findings,
    scan_hunk,
)


def test_debug_statement_on_added_line(make_hunk):
    hunk = make_hunk(
        file_path="src/app.js",
        content=" const a = 1;\n-const b = 2;\n+console.log(a);",
        new_line_start=10,
    )

    findings = scan_hunk(hunk)

    assert len(findings) == 1
    assert findings[0].rule_id == "no-debug-statement"
    assert findings[0].severity == Severity.WARNING
    # context line 10, removed line skipped, added line lands on 11
    assert findings[0].line == 11
    assert findings[0].category == HEURISTIC_CATEGORY


def test_removed_and_context_lines_are_not_scanned(make_hunk):
    hunk = make_hunk(content=" print('context')\n-print('gone')\n+value = 1")

    assert scan_hunk(hunk) == []


def test_todo_and_long_line(make_hunk):
    long_line = "+" + "x" * (MAX_LINE_LENGTH + 1)
    hunk = make_hunk(content=f"+# TODO: tidy up\n{long_line}", new_line_start=3)

    findings = scan_hunk(hunk)

    assert [(f.rule_id, f.line) for f in findings] == [("todo-fixme", 3), ("max-line-length", 4)]
    assert all(f.severity == Severity.INFO for f in findings)


def test_line_at_limit_is_allowed(make_hunk):
    hunk = make_hunk(content="+" + "x" * MAX_LINE_LENGTH)

    assert scan_hunk(hunk) == []


def test_added_file_line_numbers_are_clamped(make_hunk):
    hunk = make_hunk(content="+breakpoint()", change_type=ChangeType.ADD, new_line_start=0)

    findings = scan_hunk(hunk)

    assert findings[0].line == 1


def test_fallback_note_when_nothing_matches(make_hunk):
    hunks = [make_hunk(file_path="src/a.py", content="-x = 1\n+x = 2"), make_hunk(file_path="src/b.py")]

    findings = generate_heuristic_findings(hunks, reason="circuit breaker open")

    assert len(findings) == 1
    assert findings[0].rule_id == "manual-review-required"
    assert findings[0].file == "src/a.py"
    assert findings[0].line == 1
    assert findings[0].message.endswith("(circuit breaker open)")


def test_deleted_hunks_are_not_scanned(make_hunk):
    hunk = make_hunk(content="+print('x')", change_type=ChangeType.DELETE)

    findings = generate_heuristic_findings([hunk])

    assert [f.rule_id for f in findings] == ["manual-review-required"]


def test_no_hunks_no_findings():
    assert generate_heuristic_findings([]) == []
