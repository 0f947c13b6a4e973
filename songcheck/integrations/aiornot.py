"""
AI or Not music detector, single synchronous call.

POST multipart `file` to the music report endpoint; the response carries a
binary verdict with its confidence and, for AI verdicts, a map of suspected
generators:

    {"report": {"verdict": "ai", "confidence": 0.93,
                "generator": {"suno": 0.81, "udio": 0.12}}}
"""

import logging

from songcheck.config import settings
from songcheck.core.errors import ProtocolError
from songcheck.integrations.base import (
    ProviderAdapter,
    Submission,
    audio_form,
    clamp_probability,
    expect_mapping,
    expect_number,
    orient,
)
from songcheck.schemas.detection import DetectionOutcome, DetectionRequest, LabelScore

logger = logging.getLogger(__name__)


def decode_report(payload: dict) -> DetectionOutcome:
    payload = expect_mapping("aiornot", payload, "$")
    report = expect_mapping("aiornot", payload.get("report"), "report")
    verdict = report.get("verdict")
    if verdict not in ("ai", "human"):
        raise ProtocolError("aiornot", f"unrecognized verdict {verdict!r}")
    confidence = clamp_probability(expect_number("aiornot", report.get("confidence"), "report.confidence"))

    generators = report.get("generator") or {}
    if not isinstance(generators, dict):
        raise ProtocolError("aiornot", "expected an object at 'report.generator'")
    labels = sorted(
        (
            LabelScore(name=name, score=expect_number("aiornot", score, f"report.generator.{name}"))
            for name, score in generators.items()
        ),
        key=lambda label: label.score,
        reverse=True,
    )

    return DetectionOutcome(
        provider_id="aiornot",
        ai_probability=orient("aiornot", verdict, confidence),
        confidence=confidence,
        label_details=labels,
        raw=payload,
    )


class AiOrNotAdapter(ProviderAdapter):
    provider_id = "aiornot"
    mode = "sync"

    def is_configured(self) -> bool:
        return bool(settings.aiornot_api_key)

    async def submit(self, request: DetectionRequest) -> Submission:
        payload = await self._call(
            "POST",
            settings.aiornot_api_url,
            headers={"Authorization": f"Bearer {settings.aiornot_api_key}"},
            data=audio_form(request, "file"),
            timeout=settings.sync_detector_timeout_sec,
        )
        outcome = decode_report(payload)
        logger.info(f"[AIORNOT] {request.filename}: ai_probability={outcome.ai_probability:.3f}")
        return Submission(outcome=outcome)
