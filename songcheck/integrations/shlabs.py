"""SH Labs detector: `ai_probability` or, on older deployments, `score`."""

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
from songcheck.schemas.detection import DetectionOutcome, DetectionRequest


def decode_response(payload: dict) -> DetectionOutcome:
    payload = expect_mapping("shlabs", payload, "$")
    for key in ("ai_probability", "score"):
        if key in payload:
            value = expect_number("shlabs", payload[key], key)
            return DetectionOutcome(provider_id="shlabs", ai_probability=clamp_probability(value), raw=payload)
    raise ProtocolError("shlabs", f"unrecognized response shape with keys {sorted(payload.keys())}")


class ShLabsAdapter(ProviderAdapter):
    provider_id = "shlabs"
    mode = "sync"

    def is_configured(self) -> bool:
        return bool(settings.shlabs_api_url and settings.shlabs_api_key)

    async def submit(self, request: DetectionRequest) -> Submission:
        payload = await self._call(
            "POST",
            settings.shlabs_api_url,
            headers={"X-Api-Key": settings.shlabs_api_key},
            data=audio_form(request, "file"),
            timeout=settings.sync_detector_timeout_sec,
        )
        return Submission(outcome=decode_response(payload))
