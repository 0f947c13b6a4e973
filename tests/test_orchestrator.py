"""
Tests for songcheck/detection/orchestrator.py: provider selection,
end-to-end submission, retrieval, caching and abandonment.
"""

import asyncio
import logging
from datetime import datetime, timedelta, timezone

import pytest

from songcheck.config import settings
from songcheck.core.errors import (
    JobNotFoundError,
    NoProvidersConfiguredError,
    ProtocolError,
    ProviderSelectionError,
    TransportError,
)
from songcheck.detection.jobs import JobState
from songcheck.detection.orchestrator import DetectionOrchestrator
from songcheck.integrations.base import PENDING, Submission
from tests.mocks.providers import ScriptedAdapter, outcome, polling_adapter, sync_adapter


def orchestrator_for(*adapters, use_cache=False):
    return DetectionOrchestrator({a.provider_id: a for a in adapters}, use_cache=use_cache)


# ---------------------------------------------------------------------------
# Provider selection
# ---------------------------------------------------------------------------


def test_resolve_defaults_to_configured_providers():
    orch = orchestrator_for(
        sync_adapter("aiornot", 0.8),
        sync_adapter("hive", 0.2, configured=False),
    )
    assert orch.resolve_providers(None) == ["aiornot"]


def test_resolve_rejects_unknown_and_unconfigured():
    orch = orchestrator_for(sync_adapter("aiornot", 0.8), sync_adapter("hive", 0.2, configured=False))
    with pytest.raises(ProviderSelectionError, match="Unknown provider 'nope'"):
        orch.resolve_providers(["nope"])
    with pytest.raises(ProviderSelectionError, match="not configured"):
        orch.resolve_providers(["hive"])


def test_resolve_deduplicates():
    orch = orchestrator_for(sync_adapter("aiornot", 0.8))
    assert orch.resolve_providers(["aiornot", "aiornot"]) == ["aiornot"]


def test_resolve_with_nothing_configured():
    orch = orchestrator_for(sync_adapter("aiornot", 0.8, configured=False))
    with pytest.raises(NoProvidersConfiguredError):
        orch.resolve_providers(None)


# ---------------------------------------------------------------------------
# End to end
# ---------------------------------------------------------------------------


async def test_mixed_providers_end_to_end(detection_request):
    a = sync_adapter("aiornot", 0.8)
    b = polling_adapter("ircam", [PENDING, outcome("ircam", 0.9)], external_job_id="job-b")
    c = polling_adapter("cyanite", [ProtocolError("cyanite", "analysis failed")], external_job_id="lt-c")
    orch = orchestrator_for(a, b, c)

    tracker = await orch.submit(detection_request, ["aiornot", "ircam", "cyanite"])

    # the sync provider is done before submit() returns
    assert tracker.get("aiornot").state is JobState.FINISHED
    assert tracker.get("ircam").state in (JobState.ENQUEUED, JobState.POLLING, JobState.FINISHED)

    response = await orch.wait(tracker.request_id)

    assert response.complete is True
    assert response.conclusion == "AI"
    assert response.results["aiornot"].ai_probability == 0.8
    assert response.results["ircam"].ai_probability == 0.9
    assert response.results["ircam"].attempts == 2
    assert response.results["cyanite"].status == "failed"
    assert "analysis failed" in response.results["cyanite"].error

    failed = orch.get_job("cyanite", "lt-c")
    assert failed.state is JobState.FAILED
    assert orch.get_job("cyanite", failed.job_id) is failed


async def test_retrieval_is_idempotent(detection_request):
    orch = orchestrator_for(polling_adapter("ircam", [outcome("ircam", 0.3)], external_job_id="job-1"))
    tracker = await orch.submit(detection_request, ["ircam"])
    await orch.wait(tracker.request_id)

    first = orch.aggregate(tracker.request_id)
    second = orch.aggregate(tracker.request_id)

    assert first == second
    assert orch.get_job("ircam", "job-1").attempts == 1


def test_unknown_ids_raise_not_found():
    orch = orchestrator_for(sync_adapter("aiornot", 0.8))
    with pytest.raises(JobNotFoundError):
        orch.aggregate("missing")
    with pytest.raises(JobNotFoundError):
        orch.get_job("aiornot", "missing")
    with pytest.raises(JobNotFoundError):
        orch.abandon("missing")


async def test_submit_failures_become_failed_jobs(detection_request):
    orch = orchestrator_for(
        ScriptedAdapter("hive", submit_result=TransportError("hive", "connection reset")),
        ScriptedAdapter("shlabs", submit_result=RuntimeError("bug in adapter")),
        ScriptedAdapter("sightengine", submit_result=Submission()),
        sync_adapter("aiornot", 0.1),
    )

    tracker = await orch.submit(detection_request, ["hive", "shlabs", "sightengine", "aiornot"])
    response = orch.aggregate(tracker.request_id)

    assert response.complete is True
    assert response.conclusion == "HUMAN"
    assert response.results["hive"].error == "hive: connection reset"
    assert tracker.get("hive").error_kind == "transport_error"
    assert "unexpected error" in response.results["shlabs"].error
    assert "neither an outcome nor a job id" in response.results["sightengine"].error


async def test_polling_timeout_is_reported(detection_request):
    orch = orchestrator_for(polling_adapter("cyanite", [PENDING], max_attempts=4))
    tracker = await orch.submit(detection_request, ["cyanite"])

    response = await orch.wait(tracker.request_id)

    result = response.results["cyanite"]
    assert result.status == "failed"
    assert result.attempts == 4
    assert "4 attempts" in result.error
    assert response.conclusion == "INSUFFICIENT_DATA"


# ---------------------------------------------------------------------------
# Cache
# ---------------------------------------------------------------------------


async def test_repeat_submission_is_served_from_cache(detection_request):
    aiornot = sync_adapter("aiornot", 0.8)
    ircam = polling_adapter("ircam", [outcome("ircam", 0.7)])
    orch = orchestrator_for(aiornot, ircam, use_cache=True)

    first = await orch.submit(detection_request, ["aiornot", "ircam"])
    await orch.wait(first.request_id)
    second = await orch.submit(detection_request, ["aiornot", "ircam"])

    assert aiornot.submit_calls == 1
    assert ircam.submit_calls == 1
    response = orch.aggregate(second.request_id)
    assert response.complete is True
    assert response.results["aiornot"].cached is True
    assert response.results["ircam"].cached is True
    assert response.results["ircam"].ai_probability == 0.7


async def test_failures_are_not_cached(detection_request):
    hive = ScriptedAdapter("hive", submit_result=TransportError("hive", "down"))
    orch = orchestrator_for(hive, use_cache=True)

    await orch.submit(detection_request, ["hive"])
    await orch.submit(detection_request, ["hive"])

    assert hive.submit_calls == 2


# ---------------------------------------------------------------------------
# Nudge, abandon, cleanup
# ---------------------------------------------------------------------------


async def test_nudge_wakes_the_matching_poll(detection_request):
    adapter = polling_adapter("cyanite", [PENDING, outcome("cyanite", None)], external_job_id="lt-9", poll_interval=60)
    orch = orchestrator_for(adapter)
    tracker = await orch.submit(detection_request, ["cyanite"])
    job = tracker.get("cyanite")

    while job.state is not JobState.POLLING:
        await asyncio.sleep(0)
    assert orch.nudge("cyanite", "lt-9") is True
    await asyncio.wait_for(orch.wait(tracker.request_id), 1.0)

    assert job.state is JobState.FINISHED
    assert orch.nudge("cyanite", "lt-9") is False
    assert orch.nudge("cyanite", "unknown") is False


async def test_abandon_stops_polling_and_drops_records(detection_request):
    adapter = polling_adapter("ircam", [PENDING], external_job_id="job-x", poll_interval=60)
    orch = orchestrator_for(adapter)
    tracker = await orch.submit(detection_request, ["ircam"])
    while adapter.fetch_calls < 1:
        await asyncio.sleep(0)

    orch.abandon(tracker.request_id)
    await asyncio.wait_for(orch.scheduler.shutdown(), 1.0)

    assert adapter.fetch_calls == 1
    assert orch.scheduler.active == 0
    with pytest.raises(JobNotFoundError):
        orch.aggregate(tracker.request_id)
    with pytest.raises(JobNotFoundError):
        orch.get_job("ircam", "job-x")


async def test_abandon_reports_unfinished_jobs(detection_request, caplog):
    caplog.set_level(logging.INFO, logger="songcheck.detection.orchestrator")
    poller = polling_adapter("ircam", [PENDING], external_job_id="job-x", poll_interval=60)
    orch = orchestrator_for(sync_adapter("aiornot", 0.8), poller)
    tracker = await orch.submit(detection_request, ["aiornot", "ircam"])

    orch.abandon(tracker.request_id)
    await asyncio.wait_for(orch.scheduler.shutdown(), 1.0)

    assert "dropped with 1 unfinished job(s), 1 poll task(s) cancelled" in caplog.text


async def test_abandon_during_submission_discards_the_late_result(detection_request):
    release = asyncio.Event()

    class SlowAdapter(ScriptedAdapter):
        async def submit(self, request):
            await release.wait()
            return await super().submit(request)

    adapter = SlowAdapter("ircam", submit_result=Submission(external_job_id="late"), mode="polling")
    orch = orchestrator_for(adapter)

    submitting = asyncio.create_task(orch.submit(detection_request, ["ircam"]))
    while not orch._requests:
        await asyncio.sleep(0)
    request_id = next(iter(orch._requests))
    orch.abandon(request_id)
    release.set()
    tracker = await submitting

    assert tracker.get("ircam").state is JobState.SUBMITTING
    assert adapter.fetch_calls == 0
    assert orch.scheduler.active == 0


async def test_cleanup_drops_expired_requests(detection_request):
    orch = orchestrator_for(sync_adapter("aiornot", 0.8))
    tracker = await orch.submit(detection_request, ["aiornot"])

    assert orch.cleanup_expired() == 0
    later = datetime.now(timezone.utc) + timedelta(seconds=settings.job_ttl_sec + 1)
    assert orch.cleanup_expired(now=later) == 1
    with pytest.raises(JobNotFoundError):
        orch.aggregate(tracker.request_id)
