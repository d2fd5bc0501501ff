import json
import logging

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from pydantic import BaseModel

from app.core.config import Settings, get_settings, settings
from app.core.config.environment import ENVIRONMENTS, TestSettings
from app.core.error_handlers import register_exception_handlers
from app.core.exceptions import (
    RETRYABLE_EXCEPTIONS,
    ConcurrencyConflictException,
    InvalidTransitionException,
    RosterFullException,
    StoreUnavailableException,
    ValidationException,
)
from app.core.logging_config import (
    ContextEnricher,
    JSONFormatter,
    bind_request_context,
    reset_request_context,
)
from app.core.middleware.logging_middleware import collaboration_id_from_path
from app.core.store import InMemoryDocumentStore, build_store


def test_test_environment_uses_memory_store_and_header_auth():
    assert isinstance(settings, TestSettings)
    assert settings.is_test
    assert settings.store_backend == "memory"
    assert settings.auth_disabled is True
    assert get_settings() is get_settings()
    assert ENVIRONMENTS["test"] is TestSettings


def test_unknown_backend_and_retraction_mode_fall_back(monkeypatch):
    monkeypatch.setenv("STORE_BACKEND", "cassandra")
    monkeypatch.setenv("RETRACTION_MODE", "shred")
    refreshed = Settings()
    assert refreshed.store_backend == "memory"
    assert refreshed.retraction_mode == "status"
    assert refreshed.deletes_retracted_records is False


def test_cors_origins_are_split_from_env(monkeypatch):
    monkeypatch.setenv("CORS_ORIGINS", "https://a.example, https://b.example")
    assert Settings().cors_allowlist == ["https://a.example", "https://b.example"]


def test_flags_and_limits_read_from_env(monkeypatch):
    monkeypatch.setenv("CASCADE_DELETE", "false")
    monkeypatch.setenv("RETRACTION_MODE", "delete")
    monkeypatch.setenv("STORE_MAX_ATTEMPTS", "5")
    refreshed = Settings()
    assert refreshed.cascade_delete is False
    assert refreshed.deletes_retracted_records is True
    assert refreshed.store_max_attempts == 5


def test_build_store_honours_retry_settings():
    cfg = settings.model_copy(update={"store_max_attempts": 4})
    store = build_store(cfg)
    assert isinstance(store, InMemoryDocumentStore)
    assert store.max_attempts == 4


def test_error_codes_and_statuses():
    assert ValidationException("bad", field="title").status_code == 422
    assert RosterFullException("c1", 2).error_code == "roster_full"
    transition = InvalidTransitionException("application", "accepted", "rejected")
    assert transition.status_code == 409
    assert transition.details == {
        "resource": "application",
        "current": "accepted",
        "target": "rejected",
    }
    assert StoreUnavailableException().status_code == 503
    assert set(RETRYABLE_EXCEPTIONS) == {
        ConcurrencyConflictException,
        StoreUnavailableException,
    }


class _Payload(BaseModel):
    amount: float


@pytest.fixture
def error_app():
    app = FastAPI()
    app.state.environment = "test"
    register_exception_handlers(app)

    @app.get("/full")
    def full():
        raise RosterFullException("c1", 2)

    @app.post("/payload")
    def payload(body: _Payload):
        return body

    @app.get("/busy")
    def busy():
        raise ConcurrencyConflictException("collaborations/c1 changed")

    @app.get("/crash")
    def crash():
        raise RuntimeError("unexpected")

    return TestClient(app, raise_server_exceptions=False)


def test_app_exception_envelope(error_app):
    response = error_app.get("/full")
    assert response.status_code == 409
    body = response.json()
    assert body["success"] is False
    assert body["error"]["code"] == "roster_full"
    assert body["error"]["details"]["max_participants"] == 2
    assert body["path"] == "/full"


def test_request_validation_envelope(error_app):
    response = error_app.post("/payload", json={"amount": "lots"})
    assert response.status_code == 422
    assert response.json()["success"] is False


def test_unhandled_exception_envelope(error_app):
    response = error_app.get("/crash")
    assert response.status_code == 500
    assert response.json()["success"] is False


def test_json_formatter_includes_bound_context():
    tokens = bind_request_context(request_id="req-1", user_id="u1", collaboration_id="c9")
    try:
        record = logging.LogRecord("svc", logging.INFO, __file__, 1, "hello", None, None)
        ContextEnricher().filter(record)
        data = json.loads(JSONFormatter().format(record))
    finally:
        reset_request_context(tokens)
    assert data["message"] == "hello"
    assert data["request_id"] == "req-1"
    assert data["user_id"] == "u1"
    assert data["collaboration_id"] == "c9"


def test_retryable_errors_advertise_retry_after(error_app):
    response = error_app.get("/busy")
    assert response.status_code == 409
    assert response.headers["Retry-After"] == "1"
    assert response.json()["error"]["code"] == "concurrency_conflict"
    assert "Retry-After" not in error_app.get("/full").headers


@pytest.mark.parametrize(
    "path, expected",
    [
        ("/collaborations/c1", "c1"),
        ("/collaborations/c1/budget/items/cost_1", "c1"),
        ("/collaborations/applications/a1/review", None),
        ("/collaborations/invitations/mine", None),
        ("/collaborations/stats", None),
        ("/health", None),
    ],
)
def test_collaboration_id_from_path(path, expected):
    assert collaboration_id_from_path(path) == expected


def test_request_id_is_echoed(client):
    response = client.get("/health", headers={"X-Request-ID": "trace-42"})
    assert response.headers["X-Request-ID"] == "trace-42"
    assert client.get("/health").headers["X-Request-ID"]


def test_production_defaults_to_json_logs_and_warns_on_memory_store(monkeypatch, caplog):
    monkeypatch.delenv("USE_JSON_LOGS", raising=False)
    monkeypatch.setenv("STORE_BACKEND", "memory")
    with caplog.at_level(logging.WARNING):
        production = ENVIRONMENTS["production"]()
    assert production.use_json_logs is True
    assert "STORE_BACKEND=firestore" in caplog.text

    monkeypatch.setenv("USE_JSON_LOGS", "false")
    assert ENVIRONMENTS["production"]().use_json_logs is False
