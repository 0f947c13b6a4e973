"""
Tests for:
  POST   /detect
  GET    /detect/{request_id}
  DELETE /detect/{request_id}
  GET    /results/{provider_id}/{job_id}
  GET    /providers
"""

import time

import pytest

from songcheck.core.dependencies import get_orchestrator
from songcheck.detection.orchestrator import DetectionOrchestrator
from songcheck.integrations.base import PENDING
from songcheck.main import app
from tests.conftest import make_tiny_wav
from tests.mocks.providers import outcome, polling_adapter, sync_adapter


@pytest.fixture
def orchestrator():
    adapters = [
        sync_adapter("aiornot", 0.8),
        polling_adapter("ircam", [PENDING, outcome("ircam", 0.9)], external_job_id="job-ircam"),
        sync_adapter("hive", 0.3, configured=False),
    ]
    orch = DetectionOrchestrator({a.provider_id: a for a in adapters}, use_cache=False)
    app.dependency_overrides[get_orchestrator] = lambda: orch
    return orch


def upload(filename="track.wav", content=None):
    return {"file": (filename, content if content is not None else make_tiny_wav(), "audio/wav")}


def poll_until_complete(client, request_id, attempts=100):
    for _ in range(attempts):
        body = client.get(f"/detect/{request_id}").json()
        if body["complete"]:
            return body
        time.sleep(0.01)
    raise AssertionError(f"request {request_id} never completed")


# ---------------------------------------------------------------------------
# POST /detect
# ---------------------------------------------------------------------------


def test_detect_sync_provider_answers_immediately(client, orchestrator):
    response = client.post("/detect", files=upload(), data={"providers": "aiornot"})

    assert response.status_code == 200
    body = response.json()
    assert body["complete"] is True
    assert body["conclusion"] == "AI"
    assert body["results"]["aiornot"]["status"] == "done"
    assert body["results"]["aiornot"]["ai_probability"] == 0.8


def test_detect_all_configured_then_poll(client, orchestrator):
    response = client.post("/detect", files=upload())

    assert response.status_code == 200
    body = response.json()
    assert set(body["results"]) == {"aiornot", "ircam"}
    assert body["results"]["aiornot"]["status"] == "done"

    final = poll_until_complete(client, body["request_id"])
    assert final["conclusion"] == "AI"
    assert final["results"]["ircam"]["ai_probability"] == 0.9
    assert final["results"]["ircam"]["external_job_id"] == "job-ircam"


def test_detect_unknown_provider_400(client, orchestrator):
    response = client.post("/detect", files=upload(), data={"providers": "aiornot,nope"})
    assert response.status_code == 400
    assert "nope" in response.json()["detail"]


def test_detect_unconfigured_provider_400(client, orchestrator):
    response = client.post("/detect", files=upload(), data={"providers": "hive"})
    assert response.status_code == 400
    assert "not configured" in response.json()["detail"]


def test_detect_nothing_configured_503(client):
    orch = DetectionOrchestrator({"hive": sync_adapter("hive", 0.3, configured=False)}, use_cache=False)
    app.dependency_overrides[get_orchestrator] = lambda: orch

    response = client.post("/detect", files=upload())
    assert response.status_code == 503


def test_detect_rejects_non_audio(client, orchestrator):
    response = client.post("/detect", files=upload("cover.png", b"\x89PNG\r\n"))
    assert response.status_code == 415
    assert orchestrator.adapters["aiornot"].submit_calls == 0


def test_detect_requires_file(client, orchestrator):
    response = client.post("/detect", data={"providers": "aiornot"})
    assert response.status_code == 422


def test_error_responses_carry_cors_headers(client, orchestrator):
    response = client.post("/detect", files=upload(), data={"providers": "nope"})
    assert response.headers["Access-Control-Allow-Origin"] == "*"


# ---------------------------------------------------------------------------
# Retrieval
# ---------------------------------------------------------------------------


def test_get_unknown_request_404(client, orchestrator):
    response = client.get("/detect/does-not-exist")
    assert response.status_code == 404


def test_result_by_external_and_local_id(client, orchestrator):
    body = client.post("/detect", files=upload()).json()
    poll_until_complete(client, body["request_id"])

    by_external = client.get("/results/ircam/job-ircam")
    assert by_external.status_code == 200
    result = by_external.json()
    assert result["status"] == "done"
    assert result["attempts"] == 2

    by_local = client.get(f"/results/ircam/{result['job_id']}")
    assert by_local.json() == result


def test_result_unknown_job_404(client, orchestrator):
    response = client.get("/results/ircam/nope")
    assert response.status_code == 404
    assert response.json()["detail"] == "Result not found"


def test_abandon_then_lookup_404(client, orchestrator):
    body = client.post("/detect", files=upload(), data={"providers": "aiornot"}).json()

    response = client.delete(f"/detect/{body['request_id']}")
    assert response.status_code == 200
    assert response.json() == {"status": "abandoned", "request_id": body["request_id"]}

    assert client.get(f"/detect/{body['request_id']}").status_code == 404
    assert client.delete(f"/detect/{body['request_id']}").status_code == 404


# ---------------------------------------------------------------------------
# GET /providers
# ---------------------------------------------------------------------------


def test_list_configured_providers(client, orchestrator):
    response = client.get("/providers")
    assert response.status_code == 200
    assert response.json() == [
        {"provider": "aiornot", "mode": "sync", "oauth": False},
        {"provider": "ircam", "mode": "polling", "oauth": False},
    ]
