"""
Cyanite music analysis — GraphQL job queue.

Cyanite does not judge provenance; it contributes mood tags that are shown
next to the detectors' verdicts. Its outcomes therefore carry
`ai_probability=None` and never vote in the aggregate conclusion.

Submission: fileUploadRequest (upload slot) -> PUT bytes -> libraryTrackCreate.
Result: libraryTrack(id).audioAnalysisV6, a union keyed by __typename.
"""

import logging
from typing import Any, Optional

from songcheck.config import settings
from songcheck.core.errors import ProtocolError
from songcheck.integrations.base import (
    PENDING,
    FetchResult,
    ProviderAdapter,
    Submission,
    expect_mapping,
)
from songcheck.schemas.detection import DetectionOutcome, DetectionRequest, LabelScore

logger = logging.getLogger(__name__)

UPLOAD_REQUEST = """
mutation FileUploadRequest {
  fileUploadRequest {
    id
    uploadUrl
  }
}
"""

LIBRARY_TRACK_CREATE = """
mutation LibraryTrackCreate($input: LibraryTrackCreateInput!) {
  libraryTrackCreate(input: $input) {
    __typename
    ... on LibraryTrackCreateSuccess {
      createdLibraryTrack { id title }
    }
    ... on LibraryTrackCreateError {
      code
      message
    }
  }
}
"""

LIBRARY_TRACK = """
query LibraryTrack($id: ID!) {
  libraryTrack(id: $id) {
    __typename
    ... on LibraryTrackNotFoundError { message }
    ... on LibraryTrack {
      id
      title
      audioAnalysisV6 {
        __typename
        ... on AudioAnalysisV6Finished {
          result { moodTags moodAdvancedTags }
        }
        ... on AudioAnalysisV6Failed {
          error { message }
        }
      }
    }
  }
}
"""

PENDING_ANALYSIS = {"AudioAnalysisV6NotStarted", "AudioAnalysisV6Enqueued", "AudioAnalysisV6Processing"}


def decode_track(data: dict) -> FetchResult:
    track = expect_mapping("cyanite", data.get("libraryTrack"), "libraryTrack")
    typename = track.get("__typename")
    if typename == "LibraryTrackNotFoundError":
        raise ProtocolError("cyanite", f"library track not found: {track.get('message', '')}")
    if typename != "LibraryTrack":
        raise ProtocolError("cyanite", f"unrecognized libraryTrack variant {typename!r}")

    analysis = expect_mapping("cyanite", track.get("audioAnalysisV6"), "libraryTrack.audioAnalysisV6")
    kind = analysis.get("__typename")
    if kind in PENDING_ANALYSIS:
        return PENDING
    if kind == "AudioAnalysisV6Failed":
        error = analysis.get("error") or {}
        raise ProtocolError("cyanite", f"analysis failed: {error.get('message', 'no message')}")
    if kind != "AudioAnalysisV6Finished":
        raise ProtocolError("cyanite", f"unrecognized audioAnalysisV6 variant {kind!r}")

    result = expect_mapping("cyanite", analysis.get("result"), "audioAnalysisV6.result")
    tags = result.get("moodTags") or []
    if not isinstance(tags, list):
        raise ProtocolError("cyanite", "expected a list at 'result.moodTags'")

    return DetectionOutcome(
        provider_id="cyanite",
        ai_probability=None,
        label_details=[LabelScore(name=str(tag)) for tag in tags],
        raw=track,
    )


class CyaniteAdapter(ProviderAdapter):
    provider_id = "cyanite"
    mode = "polling"

    def __init__(self):
        self.poll_interval = settings.cyanite_poll_interval_sec
        self.max_attempts = settings.cyanite_max_attempts

    def is_configured(self) -> bool:
        return bool(settings.cyanite_access_token)

    async def _gql(self, query: str, variables: Optional[dict] = None) -> dict:
        payload = await self._call(
            "POST",
            settings.cyanite_api_url,
            headers={"Authorization": f"Bearer {settings.cyanite_access_token}"},
            json={"query": query, "variables": variables or {}},
        )
        payload = expect_mapping("cyanite", payload, "$")
        if payload.get("errors"):
            raise ProtocolError("cyanite", f"GraphQL error: {payload['errors']}")
        return expect_mapping("cyanite", payload.get("data"), "data")

    async def submit(self, request: DetectionRequest) -> Submission:
        slot = expect_mapping("cyanite", (await self._gql(UPLOAD_REQUEST)).get("fileUploadRequest"), "fileUploadRequest")
        upload_id, upload_url = slot.get("id"), slot.get("uploadUrl")
        if not upload_id or not upload_url:
            raise ProtocolError("cyanite", "fileUploadRequest returned no id/uploadUrl")

        await self._call(
            "PUT",
            upload_url,
            headers={"Content-Type": request.content_type or "audio/mpeg"},
            data=request.content,
            expect_json=False,
        )

        created = await self._gql(
            LIBRARY_TRACK_CREATE,
            {"input": {"uploadId": upload_id, "title": request.filename, "externalId": upload_id}},
        )
        track_id = _created_track_id(created)
        logger.info(f"[CYANITE] Enqueued library track {track_id} for {request.filename}")
        return Submission(external_job_id=track_id)

    async def fetch(self, external_job_id: str) -> FetchResult:
        return decode_track(await self._gql(LIBRARY_TRACK, {"id": external_job_id}))


def _created_track_id(data: dict) -> str:
    result: Any = expect_mapping("cyanite", data.get("libraryTrackCreate"), "libraryTrackCreate")
    typename = result.get("__typename")
    if typename == "LibraryTrackCreateError":
        raise ProtocolError("cyanite", f"track create failed: {result.get('code')} {result.get('message')}")
    if typename != "LibraryTrackCreateSuccess":
        raise ProtocolError("cyanite", f"unrecognized libraryTrackCreate variant {typename!r}")
    track = expect_mapping("cyanite", result.get("createdLibraryTrack"), "createdLibraryTrack")
    if not track.get("id"):
        raise ProtocolError("cyanite", "created track has no id")
    return str(track["id"])
