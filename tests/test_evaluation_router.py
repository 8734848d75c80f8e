from unittest.mock import MagicMock

from fastapi.testclient import TestClient

from loopsmith.exceptions import (
    DocumentNotFound,
    EngineNotFound,
    EvaluationFailed,
    ProcessTimeout,
)
from loopsmith.schemas.evaluation import (
    EvaluationMetadata,
    EvaluationResponse,
    EvaluationStatus,
)
from loopsmith.services.cache import ResultCache


def _response(**overrides) -> EvaluationResponse:
    data = dict(
        score=8.5,
        passed=True,
        summary="Solid design",
        status=EvaluationStatus.EXCELLENT,
        metadata=EvaluationMetadata(
            evaluation_time=1500.0, model_used="codex-1", parsing_method="json"
        ),
    )
    data.update(overrides)
    return EvaluationResponse(**data)


class TestEvaluateEndpoint:
    def test_evaluate_returns_pass_alias(self, client: TestClient, mock_evaluator: MagicMock):
        mock_evaluator.evaluate.return_value = _response(ready_for_implementation=True)

        resp = client.post("/api/v1/evaluate", json={"content": "# Doc"})

        assert resp.status_code == 200
        body = resp.json()
        assert body["pass"] is True
        assert "passed" not in body
        assert body["score"] == 8.5
        assert body["status"] == "excellent"
        assert body["metadata"]["parsing_method"] == "json"
        mock_evaluator.evaluate.assert_awaited_once()

    def test_requires_content_or_path(self, client: TestClient):
        resp = client.post("/api/v1/evaluate", json={})
        assert resp.status_code == 422

    def test_rejects_both_content_and_path(self, client: TestClient):
        resp = client.post(
            "/api/v1/evaluate", json={"content": "# Doc", "document_path": "a.md"}
        )
        assert resp.status_code == 422

    def test_rejects_target_out_of_range(self, client: TestClient):
        resp = client.post("/api/v1/evaluate", json={"content": "# Doc", "target_score": 11})
        assert resp.status_code == 422

    def test_document_not_found(self, client: TestClient, mock_evaluator: MagicMock):
        mock_evaluator.evaluate.side_effect = DocumentNotFound("Cannot read document x.md")
        resp = client.post("/api/v1/evaluate", json={"document_path": "x.md"})
        assert resp.status_code == 404

    def test_engine_not_found(self, client: TestClient, mock_evaluator: MagicMock):
        mock_evaluator.evaluate.side_effect = EngineNotFound("codex not on PATH")
        resp = client.post("/api/v1/evaluate", json={"content": "# Doc"})
        assert resp.status_code == 503

    def test_evaluation_failed(self, client: TestClient, mock_evaluator: MagicMock):
        mock_evaluator.evaluate.side_effect = EvaluationFailed(3, ProcessTimeout(1000))
        resp = client.post("/api/v1/evaluate", json={"content": "# Doc"})
        assert resp.status_code == 502
        assert resp.json()["attempts"] == 3


class TestReportEndpoint:
    def test_markdown_report(self, client: TestClient, mock_evaluator: MagicMock):
        mock_evaluator.evaluate.return_value = _response()
        resp = client.post("/api/v1/evaluate/report", json={"content": "# Doc"})
        assert resp.status_code == 200
        assert resp.headers["content-type"].startswith("text/markdown")
        assert "**Score: 8.5/10.0**" in resp.text

    def test_timeout_report(self, client: TestClient, mock_evaluator: MagicMock):
        mock_evaluator.evaluate.side_effect = EvaluationFailed(3, ProcessTimeout(1000))
        resp = client.post("/api/v1/evaluate/report", json={"content": "# Doc"})
        assert resp.status_code == 502
        assert "EVAL_TIMEOUT" in resp.text


class TestSuggestionsEndpoint:
    def test_short_document(self, client: TestClient):
        resp = client.post("/api/v1/suggestions", json={"content": "short", "previous_score": 3})
        assert resp.status_code == 200
        suggestions = resp.json()["suggestions"]
        assert "Add code examples" in suggestions
        assert len(suggestions) == 4


class TestCacheAndHealth:
    def test_clear_without_cache(self, client: TestClient):
        resp = client.delete("/api/v1/cache")
        assert resp.json() == {"removed": 0}

    def test_clear_with_cache(self, client: TestClient, mock_evaluator: MagicMock):
        cache = ResultCache()
        cache.put("k", _response())
        mock_evaluator.cache = cache
        assert client.delete("/api/v1/cache").json() == {"removed": 1}
        assert len(cache) == 0

    def test_health(self, client: TestClient):
        resp = client.get("/api/v1/health")
        assert resp.status_code == 200
        body = resp.json()
        assert body["engine_available"] is True
        assert body["cache_enabled"] is False
        assert body["cache_size"] == 0
