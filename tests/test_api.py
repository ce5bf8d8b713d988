import logging

import pytest
from fastapi.testclient import TestClient

from batch_review.config import Settings
from batch_review.dependencies import get_review_port, get_settings
from batch_review.llm.errors import LLMError
from batch_review.llm.schemas import Finding, ReviewResult, Severity
from batch_review.main import app

APP_DIFF = """@@ -1,3 +1,4 @@ import express from 'express';
 const app = express();
-app.listen(3000);
+const port = process.env.PORT;
+app.listen(port);
"""


@pytest.fixture
def api_settings():
    return Settings(
        ANTHROPIC_API_KEY="test-key",
        LLM_PROVIDER="anthropic",
        BATCH_BASE_DELAY_MS=0,
        BACKOFF_BASE_MS=0,
        BACKOFF_JITTER_MS=0,
        SUB_BATCH_DELAY_MS=0,
    )


@pytest.fixture
def client(api_settings, mock_port):
    app.dependency_overrides[get_settings] = lambda: api_settings
    app.dependency_overrides[get_review_port] = lambda: mock_port
    yield TestClient(app)
    app.dependency_overrides.clear()


def test_health(client):
    response = client.get("/health/")

    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


def test_ready_with_key(client):
    body = client.get("/health/ready").json()

    assert body["status"] == "ready"
    assert body["checks"]["llm_api_key"] == "ok"
    assert body["checks"]["review_deadline"] == "not_configured"


def test_ready_without_key(client, api_settings):
    app.dependency_overrides[get_settings] = lambda: api_settings.model_copy(update={"ANTHROPIC_API_KEY": ""})

    body = client.get("/health/ready").json()

    assert body["status"] == "not_ready"
    assert body["checks"]["llm_api_key"] == "missing"


def test_live(client):
    assert client.get("/health/live").json() == {"status": "alive"}


def test_review_single_call(client, mock_port):
    mock_port.review_code.return_value = ReviewResult(findings=[
        Finding(file="src/server.ts", line=3, severity=Severity.WARNING, message="PORT may be undefined"),
        Finding(file="src/server.ts", line=4, severity=Severity.INFO, message="Log the bound port"),
    ])

    response = client.post("/review", json={
        "files": [{"path": "src/server.ts", "diff": APP_DIFF}],
        "rules": [{"id": "env-defaults", "description": "Environment values need defaults"}],
    })

    assert response.status_code == 200
    body = response.json()
    assert body["plan"]["strategy"] == "single"
    assert body["plan"]["total_hunks"] == 1
    assert len(body["findings"]) == 2
    assert body["summary"]["llm_calls"] == 1
    assert body["summary"]["batch_states"] == {"single": "succeeded"}

    context, config = mock_port.review_code.await_args.args
    assert "env-defaults" in context.review_rules
    assert config.max_tokens == 8000


def test_review_applies_severity_threshold(client, mock_port):
    mock_port.review_code.return_value = ReviewResult(findings=[
        Finding(file="src/server.ts", line=3, severity=Severity.ERROR, message="Crash on startup"),
        Finding(file="src/server.ts", line=4, severity=Severity.INFO, message="Nit"),
    ])

    body = client.post("/review", json={
        "files": [{"path": "src/server.ts", "diff": APP_DIFF}],
        "severity_threshold": "warning",
    }).json()

    assert [f["severity"] for f in body["findings"]] == ["error"]
    assert body["summary"]["total"] == 1


def test_review_keeps_excluded_files_out_of_model_context(client, mock_port):
    mock_port.review_code.return_value = ReviewResult()
    lock_diff = "@@ -1,2 +1,2 @@\n-left-pad@1.0.0\n+left-pad@1.3.0\n"

    body = client.post("/review", json={
        "files": [
            {"path": "src/server.ts", "diff": APP_DIFF},
            {"path": "yarn.lock", "diff": lock_diff},
        ],
        "planning": {"exclude_file_types": ["lock"]},
    }).json()

    assert body["plan"]["strategy"] == "single"
    assert body["plan"]["total_hunks"] == 1
    context, _ = mock_port.review_code.await_args.args
    assert "src/server.ts" in context.diffs
    assert "yarn.lock" not in context.diffs
    assert "left-pad" not in context.diffs
    assert context.metadata.total_hunks == 1


def test_review_without_diff_uses_placeholder(client, mock_port):
    mock_port.review_code.return_value = ReviewResult()

    body = client.post("/review", json={
        "files": [{"path": "docs/guide.md", "change_type": "add"}],
    }).json()

    assert body["plan"]["total_hunks"] == 1
    context, _ = mock_port.review_code.await_args.args
    assert "[File added - content not available]" in context.diffs


def test_review_falls_back_to_heuristics(client, mock_port):
    mock_port.review_code.side_effect = LLMError("upstream unavailable", status_code=503)
    diff = "@@ -1,1 +1,2 @@\n x = 1\n+print(x)\n"

    body = client.post("/review", json={
        "files": [{"path": "tool.py", "diff": diff}],
    }).json()

    assert mock_port.review_code.await_count == 2
    assert body["findings"][0]["rule_id"] == "no-debug-statement"
    assert body["findings"][0]["line"] == 2
    assert body["summary"]["heuristic"] == 1
    assert body["summary"]["batch_states"] == {"single": "synthesized"}


def test_review_batches_large_change_set(client, mock_port):
    mock_port.review_code.return_value = ReviewResult()
    files = [
        {"path": f"src/module{i}.ts", "diff": f"@@ -1,1 +1,1 @@\n-old{i}\n+new{i}\n"}
        for i in range(12)
    ]

    body = client.post("/review", json={
        "files": files,
        "planning": {"max_files_per_batch": 3, "exclude_file_types": []},
    }).json()

    assert body["plan"]["strategy"] == "batch"
    assert len(body["plan"]["batches"]) == 4
    assert mock_port.review_code.await_count == 4


def test_review_unified_diff(client, mock_port):
    mock_port.review_code.return_value = ReviewResult()
    unified = (
        "diff --git a/a.py b/a.py\n--- a/a.py\n+++ b/a.py\n@@ -1,1 +1,1 @@\n-a\n+b\n"
        "diff --git a/b.py b/b.py\n--- a/b.py\n+++ b/b.py\n@@ -5,1 +5,1 @@\n-c\n+d\n"
    )

    body = client.post("/review", json={"unified_diff": unified}).json()

    assert body["plan"]["total_files"] == 2
    assert body["plan"]["total_hunks"] == 2


def test_metrics_endpoint_reports_review_calls(client, mock_port):
    mock_port.review_code.return_value = ReviewResult()
    client.post("/review", json={"files": [{"path": "src/server.ts", "diff": APP_DIFF}]})

    body = client.get("/health/metrics").json()

    assert body["counters"]["llm.call"] >= 1
    assert body["counters"]["batch.succeeded"] >= 1
    assert body["timer_stats"]["count"] >= 1


def test_review_unavailable_without_api_key(api_settings):
    app.dependency_overrides[get_settings] = lambda: api_settings.model_copy(update={"ANTHROPIC_API_KEY": ""})
    try:
        response = TestClient(app).post("/review", json={"files": []})
    finally:
        app.dependency_overrides.clear()

    assert response.status_code == 503
    assert "ANTHROPIC_API_KEY" in response.json()["detail"]


def test_lifespan_logs_startup_and_shutdown(caplog):
    caplog.set_level(logging.INFO, logger="batch_review.main")

    with TestClient(app) as lifespan_client:
        assert lifespan_client.get("/health/live").status_code == 200
        assert "Batch review service starting" in caplog.messages

    assert "Batch review service shutting down" in caplog.messages
