"""Tests for the HTTP API routes."""

import json
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient

from browser_export.api.main import create_app
from browser_export.config import load_config
from browser_export.export.errors import ExportTimeoutError, PayloadValidationError
from browser_export.export.tracing import ExportTracer

FAKE_PDF = b"%PDF-1.4\n% fake export\n%%EOF"


@pytest.fixture
def mock_engine():
    """Engine double whose lifecycle is owned by the test."""
    engine = MagicMock()
    engine.export_pdf = AsyncMock(return_value=FAKE_PDF)
    engine.get_stats.return_value = {
        "browser_running": True,
        "exports_attempted": 3,
        "exports_successful": 2,
        "exports_failed": 1,
        "exports_timeout": 0,
    }
    return engine


@pytest.fixture
def client(development_config, mock_engine):
    with TestClient(create_app(development_config, engine=mock_engine)) as test_client:
        yield test_client


class TestIntrospection:

    def test_lists_routes(self, client):
        response = client.get("/")

        assert response.status_code == 200
        docs = response.json()
        assert set(docs) == {"/", "/health", "/v1/pdf"}
        pdf_docs = docs["/v1/pdf"]["POST"]
        assert pdf_docs["description"]
        assert "url" in pdf_docs["example"]
        assert pdf_docs["schema"]["required"] == ["url"]

    def test_request_id_header(self, client):
        response = client.get("/")

        assert response.headers["X-Request-ID"]

    def test_unknown_route(self, client):
        response = client.get("/v2/pdf")

        assert response.status_code == 404
        assert response.json()["error"] == "http_404"


class TestHealth:

    def test_healthy(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "healthy"
        assert body["browser_running"] is True
        assert body["exports"]["exports_attempted"] == 3

    def test_unhealthy_without_browser(self, client, mock_engine):
        mock_engine.get_stats.return_value = {"browser_running": False}

        assert client.get("/health").json()["status"] == "unhealthy"


class TestExportPdf:

    def test_success(self, client, mock_engine):
        payload = {"url": "https://example.com/report", "paper": {"format": "a4"}}

        response = client.post("/v1/pdf", json=payload)

        assert response.status_code == 200
        assert response.content == FAKE_PDF
        assert response.headers["content-type"] == "application/pdf"
        assert response.headers["content-disposition"] == "attachment"

        args, kwargs = mock_engine.export_pdf.call_args
        assert args == (payload,)
        assert kwargs["timeout_in_seconds"] == 30
        assert isinstance(kwargs["tracer"], ExportTracer)
        assert kwargs["tracer"].export_id == response.headers["X-Request-ID"]

    def test_validation_diagnostics_kept_as_json(self, client, mock_engine):
        errors = [{"instancePath": "/url", "keyword": "format", "message": "'nope' is not a 'uri'"}]
        mock_engine.export_pdf.side_effect = PayloadValidationError(json.dumps(errors), errors=errors)

        response = client.post("/v1/pdf", json={"url": "nope"})

        assert response.status_code == 500
        assert response.headers["content-type"] == "application/json"
        assert response.json() == errors

    def test_timeout(self, client, mock_engine):
        message = "Failed to perform the export under the given timeout of 30 seconds."
        mock_engine.export_pdf.side_effect = ExportTimeoutError(message)

        response = client.post("/v1/pdf", json={"url": "https://example.com"})

        assert response.status_code == 500
        assert response.json() == {"message": message}

    def test_malformed_body(self, client, mock_engine):
        response = client.post("/v1/pdf", content=b"{not json", headers={"content-type": "application/json"})

        assert response.status_code == 500
        assert "message" in response.json()
        mock_engine.export_pdf.assert_not_called()


class TestAuthorization:

    @pytest.fixture
    def restricted_client(self, mock_engine):
        config = load_config(
            environment="development",
            env={"PDF_EXPORT_AUTHORIZED_URL_PATTERN": r"^https://reports\.example\.com/"},
        )
        with TestClient(create_app(config, engine=mock_engine)) as test_client:
            yield test_client

    def test_unauthorized_url(self, restricted_client, mock_engine):
        response = restricted_client.post("/v1/pdf", json={"url": "https://example.com/"})

        assert response.status_code == 500
        assert response.json() == {"message": "The URL https://example.com/ is not authorized."}
        mock_engine.export_pdf.assert_not_called()

    def test_authorized_url(self, restricted_client):
        response = restricted_client.post("/v1/pdf", json={"url": "https://reports.example.com/q3"})

        assert response.status_code == 200


class TestServerLifecycle:
    """End to end through the app-owned engine, with a simulated browser."""

    def test_engine_started_and_stopped(self, development_config, factory_class, patch_factory, fake_session):
        factory = patch_factory(factory_class(fake_session))

        with TestClient(create_app(development_config)) as client:
            assert client.get("/health").json()["status"] == "healthy"

            response = client.post("/v1/pdf", json={"url": "https://example.com/", "waitUntil": {"networkIdle": True}})

            assert response.status_code == 200
            assert response.content == FAKE_PDF
            assert factory.start_count == 1

        assert factory.stop_count == 1
        assert fake_session.close_count == 1
        assert "wait_for_network_idle" in fake_session.operations
