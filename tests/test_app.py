"""App factory, error handlers, logging and configuration."""

from __future__ import annotations

import json
import logging

import pytest

from audit import log_event
from conftest import registration_payload
from config import ProductionConfig
from logging_config import JSONFormatter, RequestContextFilter
from storage import MemStorage


class TestFactory:
    def test_health(self, client, user):
        resp = client.get("/api/health")
        assert resp.status_code == 200
        data = resp.get_json()
        assert data["status"] == "ok"
        assert data["storage"] == "MemStorage"
        assert data["counts"]["users"] == 1

    def test_each_app_gets_its_own_store(self, tmp_path):
        from app import create_app
        cfg = {"TESTING": True, "UPLOAD_DIR": str(tmp_path)}
        first, second = create_app(cfg), create_app(cfg)
        assert first.extensions["storage"] is not second.extensions["storage"]
        assert isinstance(first.extensions["storage"], MemStorage)

    def test_injected_store_is_used(self, app, storage):
        assert app.extensions["storage"] is storage

    def test_security_headers(self, client):
        resp = client.get("/api/health")
        assert resp.headers["X-Content-Type-Options"] == "nosniff"
        assert resp.headers["X-Frame-Options"] == "DENY"

    def test_request_id_echoed(self, client):
        resp = client.get("/api/health", headers={"X-Request-ID": "abc123"})
        assert resp.headers["X-Request-ID"] == "abc123"
        assert client.get("/api/health").headers["X-Request-ID"]


class TestErrorHandlers:
    def test_unknown_route_is_json(self, client):
        resp = client.get("/api/nope")
        assert resp.status_code == 404
        assert "error" in resp.get_json()

    def test_wrong_method_is_json(self, client):
        resp = client.delete("/api/health")
        assert resp.status_code == 405
        assert "error" in resp.get_json()

    def test_unexpected_error_is_500(self, app, caplog):
        @app.route("/api/boom")
        def boom():
            raise RuntimeError("kaboom")

        with caplog.at_level(logging.ERROR):
            resp = app.test_client().get("/api/boom")
        assert resp.status_code == 500
        assert resp.get_json() == {"error": "Internal server error"}
        assert "kaboom" not in resp.get_data(as_text=True)
        assert any("kaboom" in r.getMessage() for r in caplog.records)


class TestLogging:
    def test_json_formatter(self):
        record = logging.LogRecord("storage", logging.INFO, __file__, 1, "created %s", ("u1",), None)
        record.request_id = "req-1"
        entry = json.loads(JSONFormatter().format(record))
        assert entry["message"] == "created u1"
        assert entry["level"] == "INFO"
        assert entry["request_id"] == "req-1"

    def test_json_formatter_merges_extra_fields(self):
        record = logging.LogRecord("access", logging.INFO, __file__, 1, "GET /api/health", (), None)
        record.duration_ms = 3.2
        entry = json.loads(JSONFormatter().format(record))
        assert entry["duration_ms"] == 3.2
        assert entry["request_id"] == "-"

    def test_context_filter_outside_request(self):
        record = logging.LogRecord("storage", logging.INFO, __file__, 1, "msg", (), None)
        assert RequestContextFilter().filter(record)
        assert record.request_id == "-"
        assert record.user_id == "-"

    def test_slow_requests_logged_as_warning(self, tmp_path, caplog):
        from app import create_app
        app = create_app({"TESTING": True, "UPLOAD_DIR": str(tmp_path), "LOG_SLOW_REQUEST_MS": 0})
        with caplog.at_level(logging.INFO, logger="access"):
            app.test_client().get("/api/health")
        access = [r for r in caplog.records if r.name == "access"]
        assert access and access[0].levelno == logging.WARNING
        assert access[0].status == 200

    def test_audit_event_outside_request(self, caplog):
        with caplog.at_level(logging.INFO, logger="audit"):
            log_event("register", "u1", "username=alice")
        assert "audit: register user_id=u1" in caplog.text

    def test_registration_is_audited(self, client, caplog):
        with caplog.at_level(logging.INFO, logger="audit"):
            client.post("/api/auth/register", json=registration_payload())
        assert "audit: register" in caplog.text


class TestProductionConfig:
    def test_default_secret_rejected(self, monkeypatch):
        monkeypatch.setattr(ProductionConfig, "SECRET_KEY", "dev-key-change-in-production")
        with pytest.raises(RuntimeError, match="SECRET_KEY"):
            ProductionConfig.validate()

    def test_unknown_provider_rejected(self, monkeypatch):
        monkeypatch.setattr(ProductionConfig, "SECRET_KEY", "s3cret")
        monkeypatch.setattr(ProductionConfig, "AI_PROVIDER", "mystery")
        with pytest.raises(RuntimeError, match="AI_PROVIDER"):
            ProductionConfig.validate()

    def test_missing_api_key_only_warns(self, monkeypatch):
        monkeypatch.setattr(ProductionConfig, "SECRET_KEY", "s3cret")
        monkeypatch.setattr(ProductionConfig, "AI_PROVIDER", "openai")
        monkeypatch.setattr(ProductionConfig, "OPENAI_API_KEY", "")
        with pytest.warns(UserWarning, match="No API key"):
            ProductionConfig.validate()
