"""
Hive AI-generated audio detection, single synchronous call.

Two response shapes are accepted:
  {"chunks": [{"score": 0.91}, {"score": 0.87}]}  -> mean chunk score
  {"ai_probability": 0.9}                          -> used as is
"""

from songcheck.config import settings
from songcheck.core.errors import ProtocolError
from songcheck.integrations.base import (
    ProviderAdapter,
    Submission,
    audio_form,
    clamp_probability,
    expect_mapping,
    expect_number,
)
from songcheck.schemas.detection import DetectionOutcome, DetectionRequest, LabelScore


def decode_response(payload: dict) -> DetectionOutcome:
    payload = expect_mapping("hive", payload, "$")

    if "chunks" in payload:
        chunks = payload["chunks"]
        if not isinstance(chunks, list) or not chunks:
            raise ProtocolError("hive", "expected a non-empty list at 'chunks'")
        scores = [
            expect_number("hive", expect_mapping("hive", c, f"chunks[{i}]").get("score"), f"chunks[{i}].score")
            for i, c in enumerate(chunks)
        ]
        return DetectionOutcome(
            provider_id="hive",
            ai_probability=clamp_probability(sum(scores) / len(scores)),
            label_details=[LabelScore(name=f"chunk {i}", score=s) for i, s in enumerate(scores)],
            raw=payload,
        )

    if "ai_probability" in payload:
        return DetectionOutcome(
            provider_id="hive",
            ai_probability=clamp_probability(expect_number("hive", payload["ai_probability"], "ai_probability")),
            raw=payload,
        )

    raise ProtocolError("hive", f"unrecognized response shape with keys {sorted(payload.keys())}")


class HiveAdapter(ProviderAdapter):
    provider_id = "hive"
    mode = "sync"

    def is_configured(self) -> bool:
        return bool(settings.hive_api_url and settings.hive_api_key)

    async def submit(self, request: DetectionRequest) -> Submission:
        payload = await self._call(
            "POST",
            settings.hive_api_url,
            headers={"Authorization": f"Bearer {settings.hive_api_key}"},
            data=audio_form(request, "media"),
            timeout=settings.sync_detector_timeout_sec,
        )
        return Submission(outcome=decode_response(payload))
