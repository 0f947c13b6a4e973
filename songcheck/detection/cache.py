"""
Two-tier outcome cache: Redis (preferred) → Local Memory (fallback).

Keyed by provider id and the SHA-256 of the uploaded bytes, so re-submitting
the same track does not spend another provider call. Cache failures are
logged and behave like a miss.

The Redis client is read at call-time via the integration module so that
it picks up the instance initialized during the FastAPI lifespan.
"""

import logging
import time
from collections import OrderedDict
from typing import Optional

from pydantic import ValidationError

from songcheck.config import settings
from songcheck.integrations import redis_client as redis_module
from songcheck.schemas.detection import DetectionOutcome

logger = logging.getLogger(__name__)

local_cache: OrderedDict = OrderedDict()


def _key(provider_id: str, digest: str) -> str:
    return f"outcome:{provider_id}:{digest}"


def get_cached_outcome(provider_id: str, digest: str) -> Optional[DetectionOutcome]:
    key = _key(provider_id, digest)
    rc = redis_module.client
    if rc:
        try:
            data = rc.get(key)
        except Exception as e:
            logger.warning(f"[CACHE] Redis get failed: {e}")
            return None
        if not data:
            logger.debug(f"[CACHE] Redis MISS for {key}")
            return None
        try:
            outcome = DetectionOutcome.model_validate_json(data)
        except ValidationError as e:
            logger.warning(f"[CACHE] Dropping unreadable entry {key}: {e}")
            return None
        logger.info(f"[CACHE] Redis HIT for {key}")
        return outcome

    entry = local_cache.get(key)
    if not entry:
        return None
    outcome, stored_at = entry
    if time.time() - stored_at >= settings.local_cache_ttl_sec:
        del local_cache[key]
        return None
    local_cache.move_to_end(key)
    logger.info(f"[CACHE] Local Memory HIT for {key}")
    return outcome


def set_cached_outcome(digest: str, outcome: DetectionOutcome) -> None:
    key = _key(outcome.provider_id, digest)
    rc = redis_module.client
    if rc:
        try:
            rc.set(key, outcome.model_dump_json(), ex=settings.outcome_cache_ttl_sec)
        except Exception as e:
            logger.warning(f"[CACHE] Redis set failed: {e}")
        return

    if key in local_cache:
        local_cache.move_to_end(key)
    local_cache[key] = (outcome, time.time())
    if len(local_cache) > settings.local_cache_max_size:
        local_cache.popitem(last=False)
