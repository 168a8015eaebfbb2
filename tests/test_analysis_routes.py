"""HTTP tests for the analysis routes."""

import pytest
from fastapi.testclient import TestClient

from main import create_app
from models.errors import RateLimited
from utils.settings import AnalyzerSettings


@pytest.fixture
def client_for(make_session, stub_client):
    """Build a TestClient whose sessions replay the given outcomes, one per new session."""

    def build(*outcomes):
        queue = list(outcomes)

        def factory():
            return make_session(stub_client(*queue))

        app = create_app(settings=AnalyzerSettings(log_level="WARNING"), session_factory=factory)
        return TestClient(app)

    return build


def _upload(image_bytes):
    return {"image": ("slope.jpg", image_bytes, "image/jpeg")}


def test_upload_and_wait_for_assessment(client_for, image_bytes, completion_body, valid_assessment):
    with client_for(completion_body(valid_assessment)) as client:
        response = client.post(
            "/analyses",
            files=_upload(image_bytes),
            data={"api_key": "sk-test", "wait": "true"},
        )

    assert response.status_code == 200
    body = response.json()
    assert body["session_id"]
    assert body["phase"] == "succeeded"
    assert body["assessment"]["overall_risk"] == "Considerable"
    assert body["assessment"]["terrain_features"] == ["convex rollover", "Cornice", "gully"]
    assert body["input_tokens"] == 812
    assert body["error"] is None


def test_key_can_be_sent_as_header(client_for, image_bytes, completion_body, valid_assessment):
    with client_for(completion_body(valid_assessment)) as client:
        response = client.post(
            "/analyses",
            files=_upload(image_bytes),
            data={"wait": "true"},
            headers={"X-OpenAI-Key": "sk-header"},
        )

    assert response.status_code == 200
    assert response.json()["phase"] == "succeeded"


def test_failure_is_reported_in_the_phase(client_for, image_bytes):
    with client_for(RateLimited("Slow down.", retry_after=7.0)) as client:
        response = client.post("/analyses", files=_upload(image_bytes), data={"api_key": "sk-test", "wait": "true"})

    body = response.json()
    assert response.status_code == 200
    assert body["phase"] == "failed"
    assert body["error"] == {
        "kind": "rate_limited",
        "stage": "transient",
        "message": "Slow down.",
        "retryable": True,
        "retry_after": 7.0,
    }


def test_missing_key_is_rejected(client_for, image_bytes):
    with client_for() as client:
        response = client.post("/analyses", files=_upload(image_bytes), data={"wait": "true"})
    assert response.status_code == 401


def test_empty_upload_is_rejected(client_for):
    with client_for() as client:
        response = client.post("/analyses", files=_upload(b""), data={"api_key": "sk-test"})
    assert response.status_code == 400


def test_unknown_session_is_not_found(client_for, image_bytes):
    with client_for() as client:
        assert client.get("/analyses/missing").status_code == 404
        assert client.post("/analyses/missing/cancel").status_code == 404
        assert client.post("/analyses/missing/reset").status_code == 404
        assert client.delete("/analyses/missing").status_code == 404
        response = client.post(
            "/analyses",
            files=_upload(image_bytes),
            data={"api_key": "sk-test", "session_id": "missing"},
        )
        assert response.status_code == 404


def test_poll_reset_and_discard(client_for, image_bytes, completion_body, valid_assessment):
    with client_for(completion_body(valid_assessment)) as client:
        started = client.post("/analyses", files=_upload(image_bytes), data={"api_key": "sk-test", "wait": "true"})
        session_id = started.json()["session_id"]

        polled = client.get(f"/analyses/{session_id}")
        assert polled.json()["phase"] == "succeeded"

        health = client.get("/health").json()
        assert health["ok"] is True
        assert health["sessions"] == 1
        assert health["model"] == "gpt-4o-mini"

        reset = client.post(f"/analyses/{session_id}/reset")
        assert reset.json()["phase"] == "idle"
        assert reset.json()["assessment"] is None

        cancelled = client.post(f"/analyses/{session_id}/cancel")
        assert cancelled.json()["phase"] == "idle"

        discarded = client.delete(f"/analyses/{session_id}")
        assert discarded.json() == {"session_id": session_id, "discarded": True}
        assert client.get(f"/analyses/{session_id}").status_code == 404
