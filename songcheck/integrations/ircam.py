"""
IRCAM Amplify AI Music Detector — OAuth-gated job queue.

Submission handshake (every call bearer-authenticated):
  1. POST {storage}/manager/               -> IAS object id (an upload slot)
  2. PUT  {storage}/{ias_id}/{filename}     -> raw audio bytes
  3. POST {api}/aidetector/                 -> detector job id

Result: GET {api}/aidetector/{job_id}. `job_infos.job_status` is "success"
once done; the first entry of `report_info.report.resultList` holds `isAi`
and a 0-100 `confidence`, plus `suspectedModel` for AI verdicts.
"""

import logging
from typing import Optional
from urllib.parse import quote

from songcheck.config import settings
from songcheck.core.errors import ProtocolError
from songcheck.integrations.base import (
    PENDING,
    FetchResult,
    OAuthAdapter,
    Submission,
    expect_mapping,
    expect_number,
    orient,
)
from songcheck.schemas.detection import DetectionOutcome, DetectionRequest, LabelScore

logger = logging.getLogger(__name__)

PENDING_STATUSES = {"created", "pending", "queued", "started", "running", "processing", "in_progress"}
FAILED_STATUSES = {"failed", "error", "cancelled"}


def decode_job(payload: dict) -> FetchResult:
    payload = expect_mapping("ircam", payload, "$")
    job = expect_mapping("ircam", payload.get("job_infos"), "job_infos")
    status = job.get("job_status")
    if not isinstance(status, str):
        raise ProtocolError("ircam", f"missing job_status in {list(job.keys())}")

    status = status.lower()
    if status in PENDING_STATUSES:
        return PENDING
    if status in FAILED_STATUSES:
        raise ProtocolError("ircam", f"detector job ended with status '{status}'")
    if status != "success":
        raise ProtocolError("ircam", f"unrecognized job_status '{status}'")

    report_info = expect_mapping("ircam", job.get("report_info"), "job_infos.report_info")
    report = expect_mapping("ircam", report_info.get("report"), "job_infos.report_info.report")
    results = report.get("resultList")
    if not isinstance(results, list) or not results:
        raise ProtocolError("ircam", "finished job has an empty resultList")
    first = expect_mapping("ircam", results[0], "resultList[0]")

    is_ai = first.get("isAi")
    if not isinstance(is_ai, bool):
        raise ProtocolError("ircam", f"expected a boolean at 'resultList[0].isAi', got {is_ai!r}")
    confidence = expect_number("ircam", first.get("confidence"), "resultList[0].confidence") / 100.0
    confidence = max(0.0, min(1.0, confidence))

    labels = []
    if first.get("suspectedModel"):
        labels.append(LabelScore(name=str(first["suspectedModel"])))

    return DetectionOutcome(
        provider_id="ircam",
        ai_probability=orient("ircam", "ai" if is_ai else "human", confidence),
        confidence=confidence,
        label_details=labels,
        raw=payload,
    )


class IrcamAdapter(OAuthAdapter):
    provider_id = "ircam"
    mode = "polling"
    default_token_ttl = settings.ircam_token_ttl_sec

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.poll_interval = settings.ircam_poll_interval_sec
        self.max_attempts = settings.ircam_max_attempts

    def is_configured(self) -> bool:
        return bool(settings.ircam_client_id and settings.ircam_client_secret)

    async def exchange_token(self) -> tuple[str, Optional[float]]:
        payload = await self._call(
            "POST",
            settings.ircam_auth_url,
            headers={"Accept": "application/json"},
            json={
                "client_id": settings.ircam_client_id,
                "client_secret": settings.ircam_client_secret,
                "grant_type": "client_credentials",
            },
        )
        payload = expect_mapping("ircam", payload, "$")
        token = payload.get("id_token")
        if not token:
            raise ProtocolError("ircam", "auth response missing id_token")
        expires_in = payload.get("expires_in")
        if not isinstance(expires_in, (int, float)) or isinstance(expires_in, bool):
            return token, None
        return token, expect_number("ircam", expires_in, "expires_in")

    async def submit(self, request: DetectionRequest) -> Submission:
        storage = settings.ircam_storage_base_url.rstrip("/")
        api = settings.ircam_api_base_url.rstrip("/")

        created = expect_mapping(
            "ircam",
            await self._authorized("POST", f"{storage}/manager/", headers={"Accept": "application/json"}),
            "$",
        )
        ias_id = created.get("id") or created.get("ulid") or created.get("iasId")
        if not ias_id:
            raise ProtocolError("ircam", f"IAS manager response missing id: {created}")

        await self._authorized(
            "PUT",
            f"{storage}/{quote(str(ias_id), safe='')}/{quote(request.filename, safe='')}",
            headers={"Content-Type": "application/octet-stream"},
            data=request.content,
            expect_json=False,
        )

        started = expect_mapping(
            "ircam",
            await self._authorized(
                "POST",
                f"{api}/aidetector/",
                headers={"Accept": "application/json"},
                json={"audioUrlList": [f"ias://{ias_id}"], "timeAnalysis": False},
            ),
            "$",
        )
        job_id = started.get("id")
        if not job_id:
            raise ProtocolError("ircam", f"aidetector start response missing id: {started}")

        logger.info(f"[IRCAM] Started detector job {job_id} for ias://{ias_id}")
        return Submission(external_job_id=str(job_id))

    async def fetch(self, external_job_id: str) -> FetchResult:
        api = settings.ircam_api_base_url.rstrip("/")
        payload = await self._authorized(
            "GET",
            f"{api}/aidetector/{quote(external_job_id, safe='')}",
            headers={"Accept": "application/json"},
        )
        return decode_job(payload)
