"""
Provider adapter contract and the helpers every adapter shares.

An adapter translates a DetectionRequest into its provider's submission call
and the provider's raw response into a canonical DetectionOutcome:

    submit(request)  -> Submission(outcome=...)          synchronous providers
    submit(request)  -> Submission(external_job_id=...)  polling providers
    fetch(job_id)    -> DetectionOutcome | PENDING

Adapters never retry. The only exception is OAuthAdapter, which refreshes its
credential and repeats a call once after a 401/403.
"""

import asyncio
import math
import logging
from typing import Any, NamedTuple, Optional, Union

import aiohttp

from songcheck.core.errors import AuthError, ProtocolError, ProviderError, TransportError
from songcheck.integrations import http_client as http_module
from songcheck.integrations.token_cache import TokenCache, token_cache
from songcheck.schemas.detection import DetectionOutcome, DetectionRequest

logger = logging.getLogger(__name__)


class _Pending:
    __slots__ = ()

    def __repr__(self) -> str:
        return "PENDING"


# Returned by fetch() for every non-terminal backend status.
PENDING = _Pending()

FetchResult = Union[DetectionOutcome, _Pending]


class Submission(NamedTuple):
    external_job_id: Optional[str] = None
    outcome: Optional[DetectionOutcome] = None


# ---------------------------------------------------------------------------
# Normalization
# ---------------------------------------------------------------------------


def clamp_probability(value: float) -> float:
    return max(0.0, min(1.0, float(value)))


def expect_number(provider_id: str, value: Any, field: str) -> float:
    """Return `value` as a finite float, or raise ProtocolError naming the field."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ProtocolError(provider_id, f"expected a number at '{field}', got {value!r}")
    try:
        number = float(value)
    except OverflowError:
        number = math.inf
    if not math.isfinite(number):
        raise ProtocolError(provider_id, f"non-finite number at '{field}': {value!r}")
    return number


def expect_mapping(provider_id: str, value: Any, field: str) -> dict:
    if not isinstance(value, dict):
        raise ProtocolError(provider_id, f"expected an object at '{field}'")
    return value


def orient(provider_id: str, verdict: str, confidence: float) -> float:
    """
    Map a binary verdict plus its confidence to a probability of AI.

    "ai" with confidence c  -> c
    "human" with confidence c -> 1 - c
    """
    c = clamp_probability(confidence)
    if verdict == "ai":
        return c
    if verdict == "human":
        return 1.0 - c
    raise ProtocolError(provider_id, f"unrecognized verdict {verdict!r}")


# ---------------------------------------------------------------------------
# HTTP
# ---------------------------------------------------------------------------


async def request_json(
    provider_id: str,
    method: str,
    url: str,
    *,
    expect_json: bool = True,
    timeout: Optional[float] = None,
    **kwargs,
) -> Any:
    """
    Perform one HTTP call against a provider and decode its JSON body.

    Raises TransportError on network failure, AuthError on 401/403 and
    ProtocolError on any other non-2xx status or an undecodable body.
    """
    if timeout is not None:
        kwargs["timeout"] = aiohttp.ClientTimeout(total=timeout)
    try:
        async with http_module.request_session() as session:
            async with session.request(method, url, **kwargs) as response:
                if response.status in (401, 403):
                    text = await response.text()
                    raise AuthError(provider_id, f"credential rejected ({response.status}) {text[:200]}")
                if not 200 <= response.status < 300:
                    text = await response.text()
                    raise ProtocolError(provider_id, f"HTTP {response.status} from {method} {url}: {text[:200]}")
                if not expect_json:
                    return None
                try:
                    return await response.json(content_type=None)
                except ValueError as e:
                    raise ProtocolError(provider_id, f"invalid JSON body: {e}")
    except ProviderError:
        raise
    except (aiohttp.ClientError, asyncio.TimeoutError) as e:
        raise TransportError(provider_id, f"{type(e).__name__}: {e}") from e


def audio_form(request: DetectionRequest, field: str = "file", **extra: str) -> aiohttp.FormData:
    form = aiohttp.FormData()
    for name, value in extra.items():
        form.add_field(name, value)
    form.add_field(field, request.content, filename=request.filename, content_type=request.content_type)
    return form


# ---------------------------------------------------------------------------
# Adapters
# ---------------------------------------------------------------------------


class ProviderAdapter:
    provider_id: str = ""
    mode: str = "sync"  # "sync" | "polling"
    oauth: bool = False
    poll_interval: float = 0.0
    max_attempts: int = 1

    def is_configured(self) -> bool:
        raise NotImplementedError

    async def submit(self, request: DetectionRequest) -> Submission:
        raise NotImplementedError

    async def fetch(self, external_job_id: str) -> FetchResult:
        raise ProtocolError(self.provider_id, "provider does not support result polling")

    async def _call(self, method: str, url: str, **kwargs) -> Any:
        return await request_json(self.provider_id, method, url, **kwargs)

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.provider_id} ({self.mode})>"


class OAuthAdapter(ProviderAdapter):
    """Adapter whose every call carries a bearer token from the Token Cache."""

    oauth = True
    default_token_ttl: float = 3_000.0

    def __init__(self, tokens: TokenCache = token_cache):
        self.tokens = tokens
        self.tokens.register(self.provider_id, self.exchange_token, self.default_token_ttl)

    async def exchange_token(self) -> tuple[str, Optional[float]]:
        raise NotImplementedError

    async def _authorized(self, method: str, url: str, headers: Optional[dict] = None, **kwargs) -> Any:
        """Call with a cached token; on 401/403 refresh it and try exactly once more."""
        for attempt in (1, 2):
            token = await self.tokens.get_token(self.provider_id)
            call_headers = dict(headers or {})
            call_headers["Authorization"] = f"Bearer {token}"
            try:
                return await self._call(method, url, headers=call_headers, **kwargs)
            except AuthError:
                self.tokens.invalidate(self.provider_id, token)
                if attempt == 2:
                    raise
                logger.warning(f"[TOKEN] {self.provider_id} rejected credential on {method} {url}, retrying once")
