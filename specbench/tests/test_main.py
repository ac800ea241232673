"""HTTP and WebSocket tests for the FastAPI app, backed by the mock generator."""

from __future__ import annotations

import os

import pytest

# Set env vars before importing modules that call get_settings()
os.environ["SPECBENCH_GENERATOR"] = "mock"
os.environ["SPECBENCH_MOCK_LATENCY"] = "false"
os.environ.setdefault("SPECBENCH_TARGET_LENGTH", "8")

from specbench.config import Settings, get_settings  # noqa: E402

# Clear the lru_cache so test env vars take effect
get_settings.cache_clear()

from fastapi.testclient import TestClient  # noqa: E402

from specbench.main import app, build_generators  # noqa: E402
from specbench.mock_model import MockGenerator  # noqa: E402
from specbench.target_model import CompletionsGenerator  # noqa: E402


@pytest.fixture
def client():
    with TestClient(app) as c:
        yield c


def test_health(client):
    response = client.get("/api/health")
    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "ok"
    assert body["generator"] == "mock"
    assert body["ready"] is True


def test_compare_endpoint(client):
    response = client.post(
        "/api/compare", json={"prompt": "The quick brown fox", "target_length": 8, "k": 3}
    )
    assert response.status_code == 200
    report = response.json()
    assert report["speculative_error"] is None
    assert report["sequential_error"] is None
    assert report["sequential"]["efficiency_percent"] == 100
    assert report["speedup"] is not None
    assert report["model_calls_saved"] == (
        report["sequential"]["model_calls"] - report["speculative"]["model_calls"]
    )


def test_compare_endpoint_uses_defaults(client):
    response = client.post("/api/compare", json={"prompt": "The sun"})
    assert response.status_code == 200
    assert response.json()["speculative"]["tokens_generated"] >= 4


def test_compare_rejects_empty_prompt(client):
    response = client.post("/api/compare", json={"prompt": ""})
    assert response.status_code == 422


def test_websocket_streams_events_then_comparison(client):
    with client.websocket_connect("/ws/compare") as ws:
        ws.send_json({"prompt": "The cat", "target_length": 5, "k": 2})
        types = []
        while True:
            event = ws.receive_json()
            types.append(event["type"])
            if event["type"] == "comparison":
                break

    assert "token" in types
    assert "round" in types
    assert types.count("done") == 2
    assert event["report"]["speedup"] is not None


def test_websocket_reports_invalid_request(client):
    with client.websocket_connect("/ws/compare") as ws:
        ws.send_json({"prompt": "hi", "k": 0})
        event = ws.receive_json()
    assert event["type"] == "error"


def test_websocket_reports_malformed_json(client):
    with client.websocket_connect("/ws/compare") as ws:
        ws.send_text("{not json")
        event = ws.receive_json()
    assert event["type"] == "error"
    assert event["message"]


def test_compare_rejects_oversized_request(client):
    response = client.post("/api/compare", json={"prompt": "hi", "target_length": 10**9})
    assert response.status_code == 422
    response = client.post("/api/compare", json={"prompt": "hi", "k": 33})
    assert response.status_code == 422


def test_websocket_rejects_oversized_request(client):
    with client.websocket_connect("/ws/compare") as ws:
        ws.send_json({"prompt": "hi", "target_length": 5000})
        event = ws.receive_json()
    assert event["type"] == "error"


def test_build_generators_selects_backend():
    draft, target = build_generators(Settings(generator="mock", mock_latency=False))
    assert isinstance(draft, MockGenerator)
    assert draft is target

    draft, target = build_generators(
        Settings(generator="openai", openai_base_url="http://localhost:9/v1")
    )
    assert isinstance(draft, CompletionsGenerator)
