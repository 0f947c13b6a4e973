"""
Process-wide bearer-token cache for OAuth-gated providers.

Adapters register a credential exchange once; every call then goes through
`token_cache.get_token(provider_id)`. A cached token is reused until it is
within `settings.token_expiry_margin_sec` of expiry. Concurrent callers that
find no valid token share a single in-flight exchange per provider.

Tokens are refreshed lazily on use; nothing refreshes them in the background.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, Dict, Optional, Tuple

from songcheck.config import settings

logger = logging.getLogger(__name__)

# Returns (token, declared lifetime in seconds or None).
TokenExchange = Callable[[], Awaitable[Tuple[str, Optional[float]]]]


@dataclass(frozen=True)
class Credential:
    provider_id: str
    token: str
    expires_at: float  # time.monotonic() timestamp


class TokenCache:
    def __init__(self, margin_sec: float = settings.token_expiry_margin_sec, clock=time.monotonic):
        self.margin_sec = margin_sec
        self._clock = clock
        self._exchanges: Dict[str, Tuple[TokenExchange, float]] = {}
        self._credentials: Dict[str, Credential] = {}
        self._inflight: Dict[str, asyncio.Future] = {}

    def register(self, provider_id: str, exchange: TokenExchange, default_ttl: float) -> None:
        self._exchanges[provider_id] = (exchange, default_ttl)

    def peek(self, provider_id: str) -> Optional[Credential]:
        return self._credentials.get(provider_id)

    def invalidate(self, provider_id: str, token: Optional[str] = None) -> None:
        """
        Drop the cached credential. With `token`, only drop it if it is still
        that token; a caller holding a stale rejection must not evict the
        fresh credential another caller just stored.
        """
        cred = self.peek(provider_id)
        if cred is None or (token is not None and cred.token != token):
            return
        del self._credentials[provider_id]
        logger.info(f"[TOKEN] Invalidated cached credential for {provider_id}")

    def clear(self) -> None:
        self._credentials.clear()
        self._inflight.clear()

    async def get_token(self, provider_id: str) -> str:
        cred = self._credentials.get(provider_id)
        if cred and cred.expires_at - self.margin_sec > self._clock():
            return cred.token

        pending = self._inflight.get(provider_id)
        if pending is None:
            pending = asyncio.ensure_future(self._refresh(provider_id))
            self._inflight[provider_id] = pending
            pending.add_done_callback(lambda _f: self._inflight.pop(provider_id, None))

        # shield: one cancelled waiter must not abort the exchange for the others
        cred = await asyncio.shield(pending)
        return cred.token

    async def _refresh(self, provider_id: str) -> Credential:
        if provider_id not in self._exchanges:
            raise KeyError(f"No credential exchange registered for {provider_id}")
        exchange, default_ttl = self._exchanges[provider_id]

        logger.info(f"[TOKEN] Exchanging credentials for {provider_id}")
        token, ttl = await exchange()
        lifetime = ttl if ttl and ttl > 0 else default_ttl
        cred = Credential(provider_id=provider_id, token=token, expires_at=self._clock() + lifetime)
        self._credentials[provider_id] = cred
        logger.info(f"[TOKEN] New credential for {provider_id}, valid {lifetime:.0f}s")
        return cred


# Adapters never keep tokens themselves.
token_cache = TokenCache()
