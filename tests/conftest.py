"""
Shared pytest fixtures for all test modules.

IMPORTANT: TESTING must be set before the app is imported so the lifespan
skips the asyncio background cleanup task.
"""

import io
import os

os.environ["TESTING"] = "true"

from contextlib import asynccontextmanager
from unittest.mock import patch

import numpy as np
import pytest
import soundfile as sf
from fastapi.testclient import TestClient

from tests.mocks.http_mock import FakeSession
from tests.mocks.redis_mock import MockRedis

# App import happens AFTER os.environ["TESTING"] is set above.
from songcheck.main import app  # noqa: E402


# ---------------------------------------------------------------------------
# Core infrastructure fixtures
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def clean_process_state(monkeypatch):
    """Every test starts with no Redis, an empty local cache and no tokens."""
    from songcheck.detection import cache
    from songcheck.integrations import redis_client as rc
    from songcheck.integrations.token_cache import token_cache

    monkeypatch.setattr(rc, "client", None)
    cache.local_cache.clear()
    token_cache.clear()
    yield
    cache.local_cache.clear()
    token_cache.clear()


@pytest.fixture
def mock_redis(monkeypatch):
    """Replace redis_client.client with an in-memory MockRedis."""
    from songcheck.integrations import redis_client as rc

    mock_rc = MockRedis()
    monkeypatch.setattr(rc, "client", mock_rc)
    return mock_rc


@pytest.fixture
def fake_http(monkeypatch):
    """
    Route every provider call through a scripted FakeSession.

    Adapters reach the network only via http_client.request_session(), so
    patching that one context manager is enough.
    """
    from songcheck.integrations import http_client

    fake = FakeSession()

    @asynccontextmanager
    async def _session():
        yield fake

    monkeypatch.setattr(http_client, "request_session", _session)
    return fake


@pytest.fixture
def client():
    """
    FastAPI TestClient running the real lifespan.

    redis_client.initialize() is patched to a no-op so it can't attempt a
    real connection during startup.
    """
    with patch("songcheck.integrations.redis_client.initialize"):
        with TestClient(app, raise_server_exceptions=False) as c:
            yield c
    app.dependency_overrides.clear()


# ---------------------------------------------------------------------------
# Shared test-data helpers
# ---------------------------------------------------------------------------


def make_tiny_audio(fmt: str = "WAV", seconds: float = 0.1, samplerate: int = 8000) -> bytes:
    """Encode a short 440 Hz tone in memory; small, fast and really decodable."""
    t = np.arange(int(seconds * samplerate)) / samplerate
    tone = (0.2 * np.sin(2 * np.pi * 440 * t)).astype("float32")
    buf = io.BytesIO()
    sf.write(buf, tone, samplerate, format=fmt)
    return buf.getvalue()


def make_tiny_wav() -> bytes:
    return make_tiny_audio("WAV")


def make_tiny_flac() -> bytes:
    return make_tiny_audio("FLAC")


@pytest.fixture
def tiny_wav() -> bytes:
    return make_tiny_wav()


@pytest.fixture
def detection_request():
    from songcheck.schemas.detection import DetectionRequest

    return DetectionRequest(content=make_tiny_wav(), filename="track.wav", content_type="audio/wav")
