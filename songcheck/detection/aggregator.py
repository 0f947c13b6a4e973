"""
Result Aggregator — reconcile the finished provider verdicts of one request.

Only FINISHED jobs with a non-null ai_probability vote. A probability of
exactly 0.5 counts as HUMAN (the AI side of the threshold is strict).
Safe to call at any time; partial results give a provisional conclusion.
"""

from enum import Enum
from typing import Iterable, List

from songcheck.detection.jobs import JobState, JobTracker, ProviderJob
from songcheck.schemas.detection import DetectionResponse, ProviderResult

AI_THRESHOLD = 0.5


class Conclusion(str, Enum):
    HUMAN = "HUMAN"
    AI = "AI"
    CONFLICTING = "CONFLICTING"
    INSUFFICIENT_DATA = "INSUFFICIENT_DATA"


def voting_probabilities(jobs: Iterable[ProviderJob]) -> List[float]:
    return [
        job.outcome.ai_probability
        for job in jobs
        if job.state is JobState.FINISHED and job.outcome.ai_probability is not None
    ]


def conclude(jobs: Iterable[ProviderJob]) -> Conclusion:
    votes = [p > AI_THRESHOLD for p in voting_probabilities(jobs)]
    if not votes:
        return Conclusion.INSUFFICIENT_DATA
    if all(votes):
        return Conclusion.AI
    if not any(votes):
        return Conclusion.HUMAN
    return Conclusion.CONFLICTING


def to_provider_result(job: ProviderJob) -> ProviderResult:
    if job.state is JobState.FINISHED:
        status = "done"
    elif job.state is JobState.FAILED:
        status = "failed"
    else:
        status = "pending"

    outcome = job.outcome
    return ProviderResult(
        status=status,
        provider=job.provider_id,
        job_id=job.job_id,
        external_job_id=job.external_job_id,
        state=job.state.value,
        attempts=job.attempts,
        ai_probability=outcome.ai_probability if outcome else None,
        confidence=outcome.confidence if outcome else None,
        label_details=list(outcome.label_details) if outcome else [],
        error=job.error,
        cached=job.cached,
        raw=dict(outcome.raw) if outcome else {},
    )


def aggregate(tracker: JobTracker) -> DetectionResponse:
    jobs = list(tracker)
    return DetectionResponse(
        request_id=tracker.request_id,
        conclusion=conclude(jobs).value,
        complete=tracker.complete,
        results={job.provider_id: to_provider_result(job) for job in jobs},
    )
