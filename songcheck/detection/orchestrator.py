"""
Detection orchestrator: fan a file out to providers and track every job.

    submit()      concurrent adapter submissions; polling providers get a
                  PollScheduler task each
    aggregate()   live view of one request (safe before completion)
    get_job()     idempotent read of one provider job, by local or external id
    abandon()     stop polling for a request and drop its records

Provider failures never escape: every ProviderError (and any unexpected
adapter exception) becomes a FAILED job with a readable cause.
"""

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Dict, Iterable, List, Optional, Tuple

from songcheck.config import settings
from songcheck.core.errors import (
    JobNotFoundError,
    NoProvidersConfiguredError,
    ProtocolError,
    ProviderError,
    ProviderSelectionError,
)
from songcheck.detection.aggregator import aggregate
from songcheck.detection.cache import get_cached_outcome, set_cached_outcome
from songcheck.detection.jobs import JobState, JobTracker, ProviderJob
from songcheck.detection.scheduler import PollHandle, PollScheduler
from songcheck.integrations.base import ProviderAdapter
from songcheck.schemas.detection import DetectionRequest, DetectionResponse

logger = logging.getLogger(__name__)


class DetectionOrchestrator:
    def __init__(
        self,
        adapters: Dict[str, ProviderAdapter],
        scheduler: Optional[PollScheduler] = None,
        use_cache: bool = True,
    ):
        self.adapters = adapters
        self.scheduler = scheduler or PollScheduler()
        self.use_cache = use_cache
        self._requests: Dict[str, JobTracker] = {}
        self._handles: Dict[str, Dict[str, PollHandle]] = {}
        # (provider_id, local or external job id) -> (request_id, job)
        self._index: Dict[Tuple[str, str], Tuple[str, ProviderJob]] = {}

    # ------------------------------------------------------------------ #
    # Provider selection                                                  #
    # ------------------------------------------------------------------ #

    def configured_providers(self) -> List[ProviderAdapter]:
        return [a for a in self.adapters.values() if a.is_configured()]

    def resolve_providers(self, requested: Optional[Iterable[str]] = None) -> List[str]:
        if not requested:
            selected = [a.provider_id for a in self.configured_providers()]
            if not selected:
                raise NoProvidersConfiguredError("No detection providers are configured")
            return selected

        selected = []
        for provider_id in requested:
            if provider_id in selected:
                continue
            adapter = self.adapters.get(provider_id)
            if adapter is None:
                raise ProviderSelectionError(f"Unknown provider '{provider_id}'")
            if not adapter.is_configured():
                raise ProviderSelectionError(f"Provider '{provider_id}' is not configured")
            selected.append(provider_id)
        return selected

    # ------------------------------------------------------------------ #
    # Submission                                                          #
    # ------------------------------------------------------------------ #

    async def submit(self, request: DetectionRequest, provider_ids: Iterable[str]) -> JobTracker:
        tracker = JobTracker()
        rid = tracker.request_id
        jobs = [tracker.create(pid) for pid in provider_ids]

        self._requests[rid] = tracker
        self._handles[rid] = {}
        for job in jobs:
            self._index[(job.provider_id, job.job_id)] = (rid, job)

        digest = request.digest
        logger.info(
            f"[SUBMIT] Request {rid}: {request.filename} ({request.size} bytes) "
            f"-> {', '.join(j.provider_id for j in jobs)}"
        )
        await asyncio.gather(*(self._submit_one(tracker, job, request, digest) for job in jobs))
        return tracker

    async def _submit_one(
        self, tracker: JobTracker, job: ProviderJob, request: DetectionRequest, digest: str
    ) -> None:
        adapter = self.adapters[job.provider_id]

        if self.use_cache:
            cached = get_cached_outcome(job.provider_id, digest)
            if cached is not None:
                job.cached = True
                tracker.record_outcome(job, cached)
                return

        try:
            submission = await adapter.submit(request)
            if submission.outcome is None and not submission.external_job_id:
                raise ProtocolError(job.provider_id, "submission returned neither an outcome nor a job id")
        except ProviderError as e:
            tracker.record_failure(job, e)
            logger.warning(f"[SUBMIT] {job.provider_id} failed: {e}")
            return
        except Exception as e:
            logger.exception(f"[SUBMIT] {job.provider_id} unexpected error")
            tracker.record_failure(job, ProtocolError(job.provider_id, f"unexpected error: {e}"))
            return

        if tracker.request_id not in self._requests:
            logger.info(f"[SUBMIT] Request {tracker.request_id} abandoned; discarding {job.provider_id} submission")
            return

        tracker.record_submission(job, submission)
        if job.state is JobState.FINISHED:
            self._remember(digest, job)
            return

        self._index[(job.provider_id, job.external_job_id)] = (tracker.request_id, job)
        handle = self.scheduler.schedule(
            tracker, job, adapter, on_finished=lambda finished: self._remember(digest, finished)
        )
        self._handles[tracker.request_id][job.job_id] = handle
        logger.info(f"[SUBMIT] {job.provider_id} enqueued as {job.external_job_id}")

    def _remember(self, digest: str, job: ProviderJob) -> None:
        if self.use_cache and job.outcome is not None and not job.cached:
            set_cached_outcome(digest, job.outcome)

    # ------------------------------------------------------------------ #
    # Retrieval                                                           #
    # ------------------------------------------------------------------ #

    def get_request(self, request_id: str) -> JobTracker:
        tracker = self._requests.get(request_id)
        if tracker is None:
            raise JobNotFoundError(f"Unknown request '{request_id}'")
        return tracker

    def aggregate(self, request_id: str) -> DetectionResponse:
        return aggregate(self.get_request(request_id))

    def get_job(self, provider_id: str, job_id: str) -> ProviderJob:
        entry = self._index.get((provider_id, job_id))
        if entry is None:
            raise JobNotFoundError(f"Unknown {provider_id} job '{job_id}'")
        return entry[1]

    def nudge(self, provider_id: str, external_job_id: str) -> bool:
        """Wake the poll task of a job early. Returns False when nothing is polling it."""
        entry = self._index.get((provider_id, external_job_id))
        if entry is None:
            return False
        request_id, job = entry
        handle = self._handles.get(request_id, {}).get(job.job_id)
        if handle is None or handle.done():
            return False
        handle.nudge()
        return True

    async def wait(self, request_id: str) -> DetectionResponse:
        """Block until every poll task of the request has stopped."""
        tracker = self.get_request(request_id)
        handles = list(self._handles.get(request_id, {}).values())
        await asyncio.gather(*(h.wait() for h in handles))
        return aggregate(tracker)

    # ------------------------------------------------------------------ #
    # Lifetime                                                            #
    # ------------------------------------------------------------------ #

    def abandon(self, request_id: str) -> None:
        tracker = self._requests.pop(request_id, None)
        if tracker is None:
            raise JobNotFoundError(f"Unknown request '{request_id}'")

        unfinished = tracker.live_jobs()
        handles = self._handles.pop(request_id, {})
        for handle in handles.values():
            handle.cancel()
        for job in tracker:
            self._index.pop((job.provider_id, job.job_id), None)
            if job.external_job_id:
                self._index.pop((job.provider_id, job.external_job_id), None)
        logger.info(
            f"[ABANDON] Request {request_id} dropped with {len(unfinished)} unfinished job(s), "
            f"{len(handles)} poll task(s) cancelled"
        )

    def cleanup_expired(self, now: Optional[datetime] = None) -> int:
        """Drop requests older than settings.job_ttl_sec. Returns how many were dropped."""
        cutoff = (now or datetime.now(timezone.utc)) - timedelta(seconds=settings.job_ttl_sec)
        expired = [rid for rid, t in self._requests.items() if t.created_at < cutoff]
        for rid in expired:
            self.abandon(rid)
        if expired:
            logger.info(f"[CLEANUP] Removed {len(expired)} expired request(s)")
        return len(expired)

    async def shutdown(self) -> None:
        await self.scheduler.shutdown()
        self._requests.clear()
        self._handles.clear()
        self._index.clear()
