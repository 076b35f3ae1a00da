"""Tests for the scan endpoints behind admission control."""

import json
from unittest.mock import AsyncMock, Mock

import pytest
from fastapi.testclient import TestClient

from scanner.app.api.scan import get_product_analyzer
from scanner.app.core.config import Settings
from scanner.app.exceptions import AnalysisError, OCRError
from scanner.app.main import create_app
from scanner.app.services.product_analyzer import ScanResult

IMAGE = "data:image/jpeg;base64,AAAA"


@pytest.fixture
def analyzer():
    analyzer = Mock()
    analyzer.analyze = AsyncMock(
        return_value=ScanResult(
            ocr_text="原材料名: じゃがいも",
            analysis={"halal_status": "Halal", "contains_pork": False},
        )
    )
    analyzer.extract_text = AsyncMock(return_value="原材料名: じゃがいも")
    return analyzer


def _make_client(analyzer, **overrides) -> TestClient:
    settings = Settings(_env_file=None, **overrides)
    app = create_app(settings)
    app.dependency_overrides[get_product_analyzer] = lambda: analyzer
    return TestClient(app)


@pytest.fixture
def client(analyzer):
    return _make_client(analyzer)


def _post(client, path="/analyze-product", ip="198.51.100.1", image=IMAGE):
    return client.post(path, json={"image": image}, headers={"X-Forwarded-For": ip})


class TestAnalyzeProduct:
    """Tests for POST /analyze-product."""

    def test_success_returns_analysis_and_headers(self, client, analyzer):
        resp = _post(client)

        assert resp.status_code == 200
        data = resp.json()
        assert data["success"] is True
        assert data["data"]["ocr_text"] == "原材料名: じゃがいも"
        assert data["data"]["analysis"]["halal_status"] == "Halal"
        assert data["data"]["detected_pork_markers"] == []
        assert resp.headers["X-RateLimit-Limit"] == "3"
        assert resp.headers["X-RateLimit-Remaining"] == "2"
        assert "X-RateLimit-Reset" in resp.headers
        assert "X-Request-ID" in resp.headers
        analyzer.analyze.assert_awaited_once_with(IMAGE)

    def test_success_arms_cooldown(self, client):
        assert _post(client).status_code == 200

        resp = _post(client)
        assert resp.status_code == 429
        body = resp.json()
        assert body["success"] is False
        assert body["error_code"] == "cooldown_active"
        assert 0 < body["retry_after"] <= 30
        assert resp.headers["Retry-After"] == str(body["retry_after"])

    def test_cooldown_is_per_client(self, client):
        assert _post(client, ip="198.51.100.1").status_code == 200
        assert _post(client, ip="198.51.100.2").status_code == 200

    def test_ocr_failure_arms_cooldown(self, client, analyzer):
        analyzer.analyze.side_effect = OCRError("timeout")

        resp = _post(client)
        assert resp.status_code == 502
        assert resp.json()["error"] == "OCR Error: timeout"

        assert _post(client).json()["error_code"] == "cooldown_active"

    def test_other_failure_does_not_arm_cooldown(self, client, analyzer):
        analyzer.analyze.side_effect = AnalysisError("bad answer")

        resp = _post(client)
        assert resp.status_code == 502
        assert resp.json()["error_code"] == "analysis_error"

        # Not in cooldown: the next request reaches the analyzer again
        assert _post(client).status_code == 502
        assert analyzer.analyze.await_count == 2

    def test_missing_image(self, client, analyzer):
        resp = client.post("/analyze-product", json={})

        assert resp.status_code == 400
        assert resp.json() == {
            "success": False,
            "error": "Image not found in request",
            "error_code": "invalid_image",
        }
        analyzer.analyze.assert_not_awaited()

    def test_invalid_image_prefix(self, client, analyzer):
        resp = _post(client, image="AAAA")

        assert resp.status_code == 400
        assert resp.json()["error_code"] == "invalid_image"
        analyzer.analyze.assert_not_awaited()

    def test_non_string_image(self, client, analyzer):
        resp = client.post("/analyze-product", json={"image": 123})

        assert resp.status_code == 400
        assert resp.json() == {
            "success": False,
            "error": "Image must be a base64 data URL string",
            "error_code": "invalid_image",
        }
        analyzer.analyze.assert_not_awaited()

    def test_malformed_body_uses_error_shape(self, client, analyzer):
        resp = client.post("/analyze-product", json=["not", "an", "object"])

        assert resp.status_code == 422
        assert resp.json() == {
            "success": False,
            "error": "Invalid request body",
            "error_code": "invalid_request",
        }
        analyzer.analyze.assert_not_awaited()

    def test_oversize_chunked_upload(self, analyzer):
        client = _make_client(analyzer, max_body_size_bytes=100)
        payload = json.dumps({"image": IMAGE + "A" * 500}).encode()

        resp = client.post(
            "/analyze-product",
            content=iter([payload[:200], payload[200:]]),
            headers={"Content-Type": "application/json"},
        )

        assert resp.status_code == 413
        assert resp.json()["error_code"] == "payload_too_large"
        analyzer.analyze.assert_not_awaited()

    def test_window_escalates_into_block(self, analyzer):
        analyzer.analyze.side_effect = AnalysisError("bad answer")
        client = _make_client(analyzer, admission_max_requests=2)

        assert [_post(client).status_code for _ in range(2)] == [502, 502]

        exceeded = _post(client)
        assert exceeded.status_code == 429
        assert exceeded.json()["error_code"] == "rate_limit_exceeded"
        assert exceeded.json()["retry_after"] == 120

        blocked = _post(client)
        assert blocked.json()["error_code"] == "blocked"
        assert analyzer.analyze.await_count == 2

    def test_allow_list(self, analyzer):
        client = _make_client(analyzer, admission_allow_list=["10.0.0.1"])

        denied = _post(client, ip="10.0.0.2")
        assert denied.status_code == 403
        assert denied.json()["error_code"] == "not_allowed"
        assert "Retry-After" not in denied.headers

        assert _post(client, ip="10.0.0.1").status_code == 200


class TestOcrEndpoint:
    """Tests for POST /test-ocr."""

    def test_returns_text_and_length(self, client):
        resp = _post(client, path="/test-ocr")

        assert resp.status_code == 200
        assert resp.json()["data"] == {
            "ocr_text": "原材料名: じゃがいも",
            "text_length": 11,
        }

    def test_shares_admission_with_analyze(self, client):
        assert _post(client, path="/test-ocr").status_code == 200
        assert _post(client).status_code == 429


class TestStatusEndpoints:
    """Tests for the read-only status endpoints."""

    def test_admission_status(self, client):
        before = client.get("/admission/status", headers={"X-Forwarded-For": "198.51.100.9"})
        assert before.json()["count"] == 0
        assert before.json()["remaining"] == 3

        _post(client, ip="198.51.100.9")

        after = client.get("/admission/status", headers={"X-Forwarded-For": "198.51.100.9"}).json()
        assert after["identity"] == "198.51.100.9"
        assert after["count"] == 1
        assert after["remaining"] == 2
        assert after["blocked"] is False
        assert 0 < after["cooldown_remaining"] <= 30

    def test_status_does_not_consume_budget(self, client):
        for _ in range(5):
            client.get("/admission/status", headers={"X-Forwarded-For": "198.51.100.1"})
        assert _post(client, ip="198.51.100.1").status_code == 200

    def test_service_status(self, analyzer):
        client = _make_client(analyzer, ocr_api_key="k")

        data = client.get("/test").json()
        assert data["environment"] == {
            "gemini_api": "Not configured",
            "ocr_api": "Configured",
        }

    def test_health(self, client):
        _post(client)

        data = client.get("/health").json()
        assert data["status"] == "ok"
        assert data["components"]["admission"]["tracked_clients"] == 1
        assert data["components"]["admission"]["cooling_down"] == 1


def test_lifespan_starts_and_stops_reaper(analyzer):
    app = create_app(Settings(_env_file=None))
    app.dependency_overrides[get_product_analyzer] = lambda: analyzer

    with TestClient(app) as client:
        assert app.state.reaper.running is True
        assert client.get("/health").json()["components"]["admission"]["reaper_running"] is True

    assert app.state.reaper.running is False
