"""
Job Tracker — one ProviderJob per (request, provider) and its state machine.

    SUBMITTING -> ENQUEUED -> POLLING -> FINISHED | FAILED
    SUBMITTING -> FINISHED | FAILED                  (synchronous providers)

A job enters POLLING with its first fetch and stays there, one attempt at a
time, until the poll task records a terminal result.

`outcome` is set iff the job is FINISHED and `error` iff it is FAILED. Any
other transition is a programming error and raises InvalidTransition.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, Iterator, List, Optional

from songcheck.core.errors import PollingTimeoutError, ProviderError
from songcheck.integrations.base import Submission
from songcheck.schemas.detection import DetectionOutcome


class JobState(str, Enum):
    SUBMITTING = "SUBMITTING"
    ENQUEUED = "ENQUEUED"
    POLLING = "POLLING"
    FINISHED = "FINISHED"
    FAILED = "FAILED"


TERMINAL_STATES = {JobState.FINISHED, JobState.FAILED}

_ALLOWED = {
    JobState.SUBMITTING: {JobState.ENQUEUED, JobState.FINISHED, JobState.FAILED},
    JobState.ENQUEUED: {JobState.POLLING},
    JobState.POLLING: {JobState.POLLING, JobState.FINISHED, JobState.FAILED},
    JobState.FINISHED: set(),
    JobState.FAILED: set(),
}


class InvalidTransition(RuntimeError):
    pass


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class ProviderJob:
    provider_id: str
    job_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    external_job_id: Optional[str] = None
    state: JobState = JobState.SUBMITTING
    attempts: int = 0
    created_at: datetime = field(default_factory=_now)
    last_polled_at: Optional[datetime] = None
    outcome: Optional[DetectionOutcome] = None
    error: Optional[str] = None
    error_kind: Optional[str] = None
    cached: bool = False

    @property
    def is_terminal(self) -> bool:
        return self.state in TERMINAL_STATES

    def _move(self, target: JobState) -> None:
        if target not in _ALLOWED[self.state]:
            raise InvalidTransition(f"{self.provider_id} job {self.job_id}: {self.state.value} -> {target.value}")
        self.state = target

    def mark_enqueued(self, external_job_id: str) -> None:
        self._move(JobState.ENQUEUED)
        self.external_job_id = external_job_id

    def mark_polling(self) -> None:
        self._move(JobState.POLLING)

    def mark_finished(self, outcome: DetectionOutcome) -> None:
        self._move(JobState.FINISHED)
        self.outcome = outcome

    def mark_failed(self, error: ProviderError) -> None:
        self._move(JobState.FAILED)
        self.error = str(error)
        self.error_kind = error.kind


class JobTracker:
    """All provider jobs of one detection request; the single source of truth."""

    def __init__(self, request_id: Optional[str] = None):
        self.request_id = request_id or uuid.uuid4().hex
        self.created_at = _now()
        self._jobs: Dict[str, ProviderJob] = {}

    def create(self, provider_id: str) -> ProviderJob:
        if provider_id in self._jobs:
            raise ValueError(f"Request {self.request_id} already has a {provider_id} job")
        job = ProviderJob(provider_id=provider_id)
        self._jobs[provider_id] = job
        return job

    def get(self, provider_id: str) -> Optional[ProviderJob]:
        return self._jobs.get(provider_id)

    @property
    def jobs(self) -> Dict[str, ProviderJob]:
        return dict(self._jobs)

    def __iter__(self) -> Iterator[ProviderJob]:
        return iter(list(self._jobs.values()))

    def __len__(self) -> int:
        return len(self._jobs)

    @property
    def complete(self) -> bool:
        return all(job.is_terminal for job in self._jobs.values())

    def live_jobs(self) -> List[ProviderJob]:
        return [job for job in self._jobs.values() if not job.is_terminal]

    # -- transition rules ---------------------------------------------------

    def record_submission(self, job: ProviderJob, submission: Submission) -> None:
        if submission.outcome is not None:
            job.mark_finished(submission.outcome)
        elif submission.external_job_id:
            job.mark_enqueued(submission.external_job_id)
        else:
            raise InvalidTransition(f"{job.provider_id} submission returned neither outcome nor job id")

    def record_attempt(self, job: ProviderJob) -> None:
        """Count one fetch attempt; called by the poll task right before it fetches."""
        job.mark_polling()
        job.attempts += 1
        job.last_polled_at = _now()

    def record_outcome(self, job: ProviderJob, outcome: DetectionOutcome) -> None:
        job.mark_finished(outcome)

    def record_failure(self, job: ProviderJob, error: ProviderError) -> None:
        job.mark_failed(error)

    def record_timeout(self, job: ProviderJob, max_attempts: int) -> None:
        job.mark_failed(
            PollingTimeoutError(job.provider_id, f"no result after {max_attempts} attempts")
        )
