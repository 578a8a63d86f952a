"""
Tests for the streaming HTTP API.
"""

import json
from unittest.mock import patch

import httpx
import pytest
from fastapi.testclient import TestClient

from conftest import TEST_TOKEN, FakeGitHub, make_commit
from org_pulse.server import app, parse_analyze_request


@pytest.fixture
def client():
    return TestClient(app)


@pytest.fixture
def fake_api():
    """Route the batch's GitHub client to an in-memory fake."""
    fake = FakeGitHub()

    def fake_client_factory(transport=None):
        return httpx.AsyncClient(
            base_url="https://api.github.test", transport=fake.transport
        )

    with patch("org_pulse.batch.create_async_http_client", fake_client_factory):
        yield fake


def parse_events(body: str) -> list[dict]:
    frames = [frame for frame in body.split("\n\n") if frame]
    assert all(frame.startswith("data: ") for frame in frames)
    return [json.loads(frame[len("data: ") :]) for frame in frames]


def test_health_check(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


# --- Validation ---


def test_rejects_invalid_json(client):
    response = client.post(
        "/api/analyze",
        content=b"{not json",
        headers={"Content-Type": "application/json"},
    )
    assert response.status_code == 400
    assert response.json() == {"error": "Invalid JSON"}


@pytest.mark.parametrize(
    "body",
    [
        {"companies": [{"company_name": "Acme"}]},
        {"companies": [{"company_name": "Acme"}], "token": ""},
        {"companies": [{"company_name": "Acme"}], "token": 1234},
    ],
)
def test_rejects_missing_token(client, body):
    response = client.post("/api/analyze", json=body)
    assert response.status_code == 400
    assert response.json() == {"error": "GitHub token is required"}


@pytest.mark.parametrize(
    "body",
    [
        {"token": "t"},
        {"token": "t", "companies": []},
        {"token": "t", "companies": "Acme"},
        {"token": "t", "companies": {"company_name": "Acme"}},
    ],
)
def test_rejects_missing_companies(client, body):
    response = client.post("/api/analyze", json=body)
    assert response.status_code == 400
    assert response.json() == {"error": "Companies array is required"}


def test_rejects_non_object_companies(client):
    response = client.post(
        "/api/analyze", json={"token": "t", "companies": ["https://github.com/acme"]}
    )
    assert response.status_code == 400
    assert response.json() == {"error": "Each company must be an object"}


def test_rejects_non_object_body(client):
    response = client.post("/api/analyze", json=["not", "an", "object"])
    assert response.status_code == 400
    assert response.json() == {"error": "Invalid JSON"}


def test_parse_analyze_request_fills_missing_fields():
    companies, token = parse_analyze_request(
        {"token": "t", "companies": [{"company_name": "Acme"}]}
    )
    assert token == "t"
    assert companies[0].company_name == "Acme"
    assert companies[0].github_org_url == ""


# --- Streaming ---


def test_streams_progress_results_and_done(client, fake_api):
    fake_api.add_org(
        "acme",
        {"x": [make_commit("xavier")] * 3, "y": [make_commit("yolanda")] * 10},
    )
    body = {
        "token": TEST_TOKEN,
        "companies": [
            {"company_name": "Acme", "github_org_url": "https://github.com/acme"},
            {"company_name": "Ghost", "github_org_url": "https://github.com/ghost"},
            {"company_name": "Elsewhere", "github_org_url": "https://gitlab.com/e"},
        ],
    }

    response = client.post("/api/analyze", json=body)

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/event-stream")
    assert response.headers["cache-control"] == "no-cache"
    assert TEST_TOKEN not in response.text

    events = parse_events(response.text)
    assert events[-1] == {
        "type": "done",
        "message": "Finished analyzing 3 companies",
        "completed": 3,
        "total": 3,
    }
    assert [e["type"] for e in events].count("done") == 1

    results = {
        e["company"]: e for e in events if e["type"] in ("result", "error")
    }
    assert set(results) == {"Acme", "Ghost", "Elsewhere"}

    acme = results["Acme"]
    assert acme["type"] == "result"
    assert acme["message"] == "Acme: y (10 commits)"
    assert acme["result"]["most_active_repo"] == "y"
    assert acme["result"]["commit_count"] == 10
    assert acme["result"]["top_contributor"] == "yolanda"
    assert "error" not in acme["result"]

    # Neither an org nor a user: the discovery failure becomes an error row
    ghost = results["Ghost"]
    assert ghost["type"] == "error"
    assert ghost["result"]["error"] == "Not Found"
    assert ghost["result"]["github_org_url"] == "https://github.com/ghost"

    assert results["Elsewhere"]["result"]["error"] == "Invalid GitHub URL"

    assert all(e["total"] == 3 for e in events)
    completed = [e["completed"] for e in events]
    assert completed == sorted(completed)


def test_stream_ends_with_done_when_batch_cannot_start(
    client, fake_api, monkeypatch
):
    monkeypatch.setenv("ORG_PULSE_BATCH_SIZE", "0")
    body = {
        "token": TEST_TOKEN,
        "companies": [
            {"company_name": "Acme", "github_org_url": "https://github.com/acme"}
        ],
    }

    response = client.post("/api/analyze", json=body)

    assert response.status_code == 200
    events = parse_events(response.text)
    assert [event["type"] for event in events] == ["done"]
    assert events[0]["message"].startswith("Batch failed:")
    assert TEST_TOKEN not in response.text
