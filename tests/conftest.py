from typing import List
from unittest.mock import AsyncMock, MagicMock

import pytest

from batch_review.analysis.diff_parser import ChangeType, Hunk
from batch_review.config import Settings
from batch_review.llm.prompts import ContextBuilder
from batch_review.llm.schemas import Finding, LLMConfig, ReviewResult, Severity
from batch_review.planning.models import Batch, Priority, ReviewPlan, Strategy


@pytest.fixture
def settings():
    return Settings(
        ANTHROPIC_API_KEY="test-anthropic-key",
        OPENAI_API_KEY="test-openai-key",
        LLM_PROVIDER="anthropic",
        LLM_MAX_TOKENS=8000,
        LLM_TEMPERATURE=0.1,
        LLM_CALL_TIMEOUT_SECONDS=None,
        REVIEW_DEADLINE_SECONDS=None,
    )


@pytest.fixture
def make_hunk():
    def _make(
        file_path: str = "src/app.ts",
        content: str = "-old line\n+new line",
        change_type: ChangeType = ChangeType.EDIT,
        new_line_start: int = 1,
    ) -> Hunk:
        line_count = max(1, content.count("\n") + 1)
        return Hunk(
            file_path=file_path,
            change_type=change_type,
            old_line_start=new_line_start,
            old_line_count=line_count,
            new_line_start=new_line_start,
            new_line_count=line_count,
            content=content,
        )
    return _make


@pytest.fixture
def make_batch(make_hunk):
    def _make(batch_id: str, hunks: List[Hunk] = None, estimated_tokens: int = 1000, size: int = 4) -> Batch:
        if hunks is None:
            hunks = [
                make_hunk(file_path=f"src/{batch_id}.ts", content=f"-old {i}\n+new {i}", new_line_start=i * 10 + 1)
                for i in range(size)
            ]
        return Batch(
            id=batch_id,
            hunks=tuple(hunks),
            files=tuple(dict.fromkeys(h.file_path for h in hunks)),
            estimated_tokens=estimated_tokens,
            priority=Priority.MEDIUM,
            description=f"{len(hunks)} hunks",
        )
    return _make


@pytest.fixture
def make_plan():
    def _make(batches: List[Batch], strategy: Strategy = Strategy.BATCH) -> ReviewPlan:
        hunks = [h for b in batches for h in b.hunks]
        return ReviewPlan(
            strategy=strategy,
            batches=tuple(batches),
            total_files=len({h.file_path for h in hunks}),
            total_hunks=len(hunks),
            estimated_tokens=sum(b.estimated_tokens for b in batches),
            estimated_duration=0.0,
        )
    return _make


@pytest.fixture
def base_context():
    return ContextBuilder().build_context([], [], [])


@pytest.fixture
def llm_config():
    return LLMConfig(model="test-model", max_tokens=8000, temperature=0.1)


@pytest.fixture
def mock_port():
    port = MagicMock()
    port.review_code = AsyncMock()
    return port


@pytest.fixture
def mock_sleep():
    return AsyncMock()


@pytest.fixture
def fixed_rng():
    rng = MagicMock()
    rng.uniform.return_value = 500.0
    return rng


@pytest.fixture
def make_finding():
    def _make(file: str = "src/app.ts", line: int = 1, severity: Severity = Severity.WARNING, message: str = "issue") -> Finding:
        return Finding(file=file, line=line, severity=severity, message=message, rule_id="llm-rule")
    return _make


@pytest.fixture
def make_result():
    def _make(*findings: Finding) -> ReviewResult:
        return ReviewResult(findings=list(findings))
    return _make
