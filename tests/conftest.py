"""
Test fixtures for Campus Study Buddy.

Provides app, client, storage, user and auth_client fixtures. Every app gets
its own MemStorage and a temporary upload directory. LLM providers are
stubbed globally so no test ever reaches the network.
"""

from __future__ import annotations

import pytest
from unittest.mock import patch

import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent))


DEFAULT_PASSWORD = "Password123"


@pytest.fixture(scope="session", autouse=True)
def block_llm_calls():
    """Fail every provider call fast (non-transient, so no retry backoff)."""
    with patch("ai_resilience._do_call", side_effect=RuntimeError("LLM calls are disabled in tests")) as m:
        yield m


@pytest.fixture(autouse=True)
def reset_ai_state():
    from ai_resilience import get_cache, get_circuit_breaker
    get_circuit_breaker().reset()
    get_cache().clear()
    yield


@pytest.fixture
def storage():
    """A standalone in-memory store, no app required."""
    from storage import MemStorage
    return MemStorage()


@pytest.fixture
def app(tmp_path, storage):
    """Create app bound to a fresh store and a temp upload dir."""
    from app import create_app

    app = create_app({
        "TESTING": True,
        "SECRET_KEY": "test-secret-key",
        "UPLOAD_DIR": str(tmp_path / "uploads"),
        "AI_PROVIDER": "openai",
        "AI_MODEL": "gpt-4o",
    }, storage=storage)
    yield app


@pytest.fixture
def client(app):
    """Unauthenticated test client."""
    return app.test_client()


def registration_payload(**overrides) -> dict:
    payload = {
        "username": "alice",
        "email": "alice@example.com",
        "password": DEFAULT_PASSWORD,
        "fullName": "Alice Kumar",
        "registrationNumber": "21BCE1001",
        "program": "B.Tech CSE",
        "year": 2,
        "preferredLocation": "Library",
        "subjects": ["Data Structures", "Operating Systems"],
        "studyTopics": "graphs, scheduling",
    }
    payload.update(overrides)
    return payload


def make_new_user(**overrides):
    """NewUser with a pre-hashed-looking password, for direct store tests."""
    from models import NewUser

    fields = {
        "username": "alice",
        "email": "alice@example.com",
        "password": "pbkdf2:sha256:600000$test$hash",
        "full_name": "Alice Kumar",
        "registration_number": "21BCE1001",
        "program": "B.Tech CSE",
        "year": 2,
        "subjects": ["Data Structures"],
    }
    fields.update(overrides)
    return NewUser(**fields)


@pytest.fixture
def user(storage):
    """A stored user (alice) created directly through the store."""
    return storage.create_user(make_new_user())


@pytest.fixture
def other_user(storage):
    return storage.create_user(make_new_user(
        username="bob", email="bob@example.com", registration_number="21BCE1002",
        full_name="Bob Singh",
    ))


@pytest.fixture
def auth_client(app):
    """Test client registered and logged in as alice via the API."""
    client = app.test_client()
    with client:
        resp = client.post("/api/auth/register", json=registration_payload())
        assert resp.status_code == 201
        client.user_id = resp.get_json()["user"]["id"]
        yield client
