"""
HTTP API Tests

Request flow: POST /invoke -> ModelSession -> mocked model endpoint -> JSON

Verifies:
✔ Liveness probe
✔ /models never exposes credentials
✔ /invoke returns the settled result; errors map to 422
✔ /invoke/stream emits data: events and ends with [DONE]
✔ Unknown models and sessions are 404
"""

import json
from unittest.mock import patch

import httpx
import pytest
from fastapi.testclient import TestClient

from helpers import RecordingHandler
from model_invocation import InMemoryModelRegistry, Preferences, StubManagedService
from model_invocation.api import create_app, main


def answer(request: httpx.Request) -> httpx.Response:
    prompt = json.loads(request.content)["prompt"]
    return httpx.Response(200, json={"choices": [{"text": f"answer to {prompt}"}]})


@pytest.fixture
def handler():
    return RecordingHandler(answer)


@pytest.fixture
def client(sync_model, handler):
    app = create_app(
        registry=InMemoryModelRegistry([sync_model]),
        preferences=Preferences(),
        managed=StubManagedService(),
        transport=handler.transport(),
    )
    with TestClient(app) as test_client:
        yield test_client


class TestMetadataEndpoints:
    def test_health(self, client):
        response = client.get("/health/live")
        assert response.status_code == 200
        assert response.json() == {"status": "healthy"}

    def test_models_hide_credentials(self, client):
        response = client.get("/models")

        assert response.status_code == 200
        payload = response.json()
        assert payload["is_loading"] is False
        assert payload["models"][0]["id"] == "m-sync"
        assert payload["models"][0]["output_timing"] == "sync"
        assert "secret-key" not in response.text
        assert "api_key" not in payload["models"][0]


class TestInvokeEndpoint:
    def test_invoke_success(self, client, handler):
        response = client.post("/invoke", json={"prompt": "Why?", "input": "sky"})

        assert response.status_code == 200
        payload = response.json()
        assert payload["data"] == "answer to Why?"
        assert payload["is_loading"] is False
        assert payload["error"] is None
        assert payload["data_tag"] == "Why?sky"
        assert len(handler.requests) == 1

    def test_empty_prompt_is_422(self, client, handler):
        response = client.post("/invoke", json={"input": "orphan input"})

        assert response.status_code == 422
        assert response.json()["error"] == "Prompt cannot be empty"
        assert handler.requests == []

    def test_sessions_are_independent(self, client, handler):
        client.post("/invoke", json={"session_id": "a", "prompt": "same", "input": "x"})
        client.post("/invoke", json={"session_id": "b", "prompt": "same", "input": "x"})
        client.post("/invoke", json={"session_id": "a", "prompt": "same", "input": "x"})

        # Session "a" reuses its completed request
        assert len(handler.requests) == 2

    def test_unknown_model_is_404(self, client, handler):
        response = client.post("/invoke", json={"prompt": "p", "model_id": "nope"})

        assert response.status_code == 404
        assert handler.requests == []

    def test_explicit_model_id(self, client):
        response = client.post("/invoke", json={"prompt": "p", "input": "i", "model_id": "m-sync"})
        assert response.json()["data"] == "answer to p"


class TestStreamEndpoint:
    def test_stream_ends_with_done(self, client):
        response = client.post("/invoke/stream", json={"prompt": "stream me", "input": "now"})

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/event-stream")
        events = [line for line in response.text.split("\n") if line]
        assert events[-1] == "data: [DONE]"
        snapshots = [json.loads(line[len("data: "):]) for line in events[:-1]]
        assert snapshots[-1]["data"] == "answer to stream me"
        assert snapshots[-1]["is_loading"] is False

    def test_stream_of_rejected_request(self, client):
        response = client.post("/invoke/stream", json={"prompt": ""})

        events = [line for line in response.text.split("\n") if line]
        assert json.loads(events[0][len("data: "):])["error"] == "Prompt cannot be empty"
        assert events[-1] == "data: [DONE]"


class TestStopEndpoint:
    def test_unknown_session_is_404(self, client):
        assert client.post("/sessions/ghost/stop").status_code == 404

    def test_stop_known_session(self, client):
        client.post("/invoke", json={"session_id": "s1", "prompt": "p", "input": "i"})

        response = client.post("/sessions/s1/stop")

        assert response.status_code == 200
        assert response.json()["is_loading"] is False


class TestSessionLimit:
    def test_least_recently_used_session_is_evicted(self, sync_model, handler):
        app = create_app(
            registry=InMemoryModelRegistry([sync_model]),
            preferences=Preferences(),
            transport=handler.transport(),
            max_sessions=2,
        )
        with TestClient(app) as client:
            for session_id in ("a", "b"):
                client.post("/invoke", json={"session_id": session_id, "prompt": "p", "input": "i"})
            # Touch "a" so "b" becomes the oldest
            client.post("/invoke", json={"session_id": "a", "prompt": "p", "input": "i"})
            client.post("/invoke", json={"session_id": "c", "prompt": "p", "input": "i"})

            assert client.post("/sessions/b/stop").status_code == 404
            assert client.post("/sessions/a/stop").status_code == 200
            assert client.post("/sessions/c/stop").status_code == 200


class TestRunner:
    def test_main_runs_uvicorn(self):
        with patch("uvicorn.run") as run, patch(
            "model_invocation.api.create_app"
        ) as factory:
            main(host="127.0.0.1", port=9001)

        factory.assert_called_once()
        run.assert_called_once()
        assert run.call_args.kwargs["port"] == 9001

    def test_main_reload_uses_factory_string(self):
        with patch("uvicorn.run") as run:
            main(reload=True)

        assert run.call_args.args[0] == "model_invocation.api:create_app"
        assert run.call_args.kwargs["factory"] is True
