"""
Upstash Redis integration for the outcome cache.

`client` stays None until `initialize()` runs in the FastAPI lifespan, and
remains None when no credentials are configured; the cache then falls back
to process memory. Read `redis_client.client` at call time.
"""

import logging

from upstash_redis import Redis

from songcheck.config import settings

logger = logging.getLogger(__name__)

client: Redis | None = None


def initialize() -> None:
    global client

    if not (settings.upstash_redis_host and settings.upstash_redis_password):
        logger.warning("[STARTUP] Redis credentials not found. Outcome cache stays in memory.")
        return

    try:
        client = Redis(url=settings.upstash_redis_host, token=settings.upstash_redis_password)
        logger.info("[STARTUP] Upstash Redis client initialized")
    except Exception as e:
        logger.error(f"[STARTUP] Failed to initialize Upstash Redis client: {e}")
        client = None
