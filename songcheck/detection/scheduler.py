"""
Poll Scheduler — one independent asyncio task per ENQUEUED job.

Each task fetches immediately, then once per `adapter.poll_interval`, until
the job is terminal or exactly `adapter.max_attempts` fetches have been made.
A fetch failure ends that job only; other jobs keep their own cadence.

Every task is reachable through a PollHandle:
  cancel()  stop scheduling attempts; a fetch already in flight is allowed to
            finish and its result is discarded
  nudge()   cut the current wait short (e.g. a provider webhook said "done")
"""

import asyncio
import logging
from typing import Callable, Optional, Set

from songcheck.core.errors import ProtocolError, ProviderError
from songcheck.detection.jobs import JobTracker, ProviderJob
from songcheck.integrations.base import PENDING, ProviderAdapter
from songcheck.schemas.detection import DetectionOutcome

logger = logging.getLogger(__name__)

FinishedCallback = Callable[[ProviderJob], None]


class PollHandle:
    def __init__(self, job: ProviderJob):
        self.job = job
        self.task: Optional[asyncio.Task] = None
        self._wake = asyncio.Event()
        self._cancelled = False

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        self._cancelled = True
        self._wake.set()

    def nudge(self) -> None:
        self._wake.set()

    def done(self) -> bool:
        return self.task is not None and self.task.done()

    async def wait(self) -> None:
        if self.task is not None:
            await self.task

    async def sleep(self, interval: float) -> None:
        try:
            await asyncio.wait_for(self._wake.wait(), timeout=interval)
        except asyncio.TimeoutError:
            pass
        self._wake.clear()


class PollScheduler:
    def __init__(self):
        self._handles: Set[PollHandle] = set()

    @property
    def active(self) -> int:
        return len(self._handles)

    def schedule(
        self,
        tracker: JobTracker,
        job: ProviderJob,
        adapter: ProviderAdapter,
        on_finished: Optional[FinishedCallback] = None,
    ) -> PollHandle:
        handle = PollHandle(job)
        handle.task = asyncio.create_task(
            self._run(tracker, job, adapter, handle, on_finished),
            name=f"poll-{job.provider_id}-{job.job_id}",
        )
        self._handles.add(handle)
        handle.task.add_done_callback(lambda _t: self._handles.discard(handle))
        return handle

    async def shutdown(self) -> None:
        handles = list(self._handles)
        for handle in handles:
            handle.cancel()
        if handles:
            await asyncio.gather(*(h.task for h in handles if h.task), return_exceptions=True)
            logger.info(f"[SHUTDOWN] Stopped {len(handles)} poll task(s)")

    async def _run(
        self,
        tracker: JobTracker,
        job: ProviderJob,
        adapter: ProviderAdapter,
        handle: PollHandle,
        on_finished: Optional[FinishedCallback],
    ) -> None:
        tag = f"{job.provider_id}/{job.external_job_id}"

        while not handle.cancelled:
            tracker.record_attempt(job)

            try:
                result = await adapter.fetch(job.external_job_id)
                if result is not PENDING and not isinstance(result, DetectionOutcome):
                    raise ProtocolError(job.provider_id, f"fetch returned {type(result).__name__}")
            except ProviderError as e:
                if handle.cancelled:
                    break
                tracker.record_failure(job, e)
                logger.warning(f"[POLL] {tag} failed on attempt {job.attempts}: {e}")
                return
            except Exception as e:
                if handle.cancelled:
                    break
                logger.exception(f"[POLL] {tag} unexpected error on attempt {job.attempts}")
                tracker.record_failure(job, ProtocolError(job.provider_id, f"unexpected error: {e}"))
                return

            if handle.cancelled:
                break

            if result is PENDING:
                if job.attempts >= adapter.max_attempts:
                    tracker.record_timeout(job, adapter.max_attempts)
                    logger.warning(f"[POLL] {tag} timed out after {job.attempts} attempts")
                    return
                logger.debug(f"[POLL] {tag} still pending ({job.attempts}/{adapter.max_attempts})")
                await handle.sleep(adapter.poll_interval)
                continue

            tracker.record_outcome(job, result)
            logger.info(f"[POLL] {tag} finished after {job.attempts} attempt(s)")
            if on_finished:
                on_finished(job)
            return

        logger.info(f"[POLL] {tag} cancelled after {job.attempts} attempt(s); result discarded")
