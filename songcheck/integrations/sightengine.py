"""
Sightengine AI-generated media check.

Credentials travel as form fields (`api_user`, `api_secret`). The probability
appears under one of three keys depending on the model version:
`type.ai_generated`, `result.ai_probability` or top-level `ai_probability`.
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
from songcheck.schemas.detection import DetectionOutcome, DetectionRequest

_VARIANTS = (
    ("type", "ai_generated"),
    ("result", "ai_probability"),
)


def decode_response(payload: dict) -> DetectionOutcome:
    payload = expect_mapping("sightengine", payload, "$")
    if payload.get("status") == "failure":
        error = payload.get("error") or {}
        raise ProtocolError("sightengine", f"request failed: {error.get('message', 'no message')}")

    for outer, inner in _VARIANTS:
        section = payload.get(outer)
        if isinstance(section, dict) and inner in section:
            value = expect_number("sightengine", section[inner], f"{outer}.{inner}")
            return DetectionOutcome(provider_id="sightengine", ai_probability=clamp_probability(value), raw=payload)

    if "ai_probability" in payload:
        value = expect_number("sightengine", payload["ai_probability"], "ai_probability")
        return DetectionOutcome(provider_id="sightengine", ai_probability=clamp_probability(value), raw=payload)

    raise ProtocolError("sightengine", f"unrecognized response shape with keys {sorted(payload.keys())}")


class SightengineAdapter(ProviderAdapter):
    provider_id = "sightengine"
    mode = "sync"

    def is_configured(self) -> bool:
        return bool(settings.sightengine_api_url and settings.sightengine_api_user and settings.sightengine_api_secret)

    async def submit(self, request: DetectionRequest) -> Submission:
        form = audio_form(
            request,
            "media",
            api_user=settings.sightengine_api_user,
            api_secret=settings.sightengine_api_secret,
        )
        payload = await self._call(
            "POST", settings.sightengine_api_url, data=form, timeout=settings.sync_detector_timeout_sec
        )
        return Submission(outcome=decode_response(payload))
