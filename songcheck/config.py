"""
Central application configuration.

Every tunable value lives here as a typed, documented field.
Any field can be overridden at runtime via an environment variable of the
same name (case-insensitive), e.g.:

    IRCAM_MAX_ATTEMPTS=60 uvicorn songcheck.main:app   # slow queue today
    export JOB_TTL_SEC=1800                            # staging override

A `.env` file at the project root is loaded automatically.
"""

from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,   # IRCAM_CLIENT_ID == ircam_client_id
        extra="ignore",         # silently drop unknown env vars
    )

    # ------------------------------------------------------------------ #
    # Logging                                                             #
    # ------------------------------------------------------------------ #
    log_level: str = Field("INFO", description="Root logging level")

    # ------------------------------------------------------------------ #
    # HTTP                                                                #
    # ------------------------------------------------------------------ #
    http_timeout_sec: float = Field(
        30.0, description="Total timeout of the shared aiohttp session"
    )
    sync_detector_timeout_sec: float = Field(
        120.0, description="Timeout for single-call detectors (AI or Not, Hive, ...)"
    )

    # ------------------------------------------------------------------ #
    # AI or Not (synchronous)                                             #
    # ------------------------------------------------------------------ #
    aiornot_api_url: str = Field(
        "https://api.aiornot.com/v1/reports/music", description="Music report endpoint"
    )
    aiornot_api_key: Optional[str] = Field(None, description="Bearer API key")

    # ------------------------------------------------------------------ #
    # IRCAM Amplify (OAuth-gated job queue)                               #
    # ------------------------------------------------------------------ #
    ircam_auth_url: str = Field(
        "https://api.ircamamplify.io/oauth/token", description="Client-credentials endpoint"
    )
    ircam_api_base_url: str = Field(
        "https://api.ircamamplify.io", description="AI Music Detector API base"
    )
    ircam_storage_base_url: str = Field(
        "https://storage.ircamamplify.io", description="IAS storage base"
    )
    ircam_client_id: Optional[str] = Field(None, description="OAuth client id")
    ircam_client_secret: Optional[str] = Field(None, description="OAuth client secret")
    ircam_token_ttl_sec: int = Field(
        3_000, description="50 min: token lifetime when the auth response declares none"
    )
    ircam_poll_interval_sec: float = Field(3.0, description="Seconds between result fetches")
    ircam_max_attempts: int = Field(30, description="Result fetches before the job times out")

    # ------------------------------------------------------------------ #
    # Cyanite (GraphQL job queue, descriptive analysis)                   #
    # ------------------------------------------------------------------ #
    cyanite_api_url: str = Field(
        "https://api.cyanite.ai/graphql", description="GraphQL endpoint"
    )
    cyanite_access_token: Optional[str] = Field(None, description="Bearer access token")
    cyanite_webhook_secret: Optional[str] = Field(
        None, description="HMAC-SHA512 secret for the Signature header of webhooks"
    )
    cyanite_poll_interval_sec: float = Field(3.0, description="Seconds between result fetches")
    cyanite_max_attempts: int = Field(20, description="Result fetches before the job times out")

    # ------------------------------------------------------------------ #
    # Probability-field detectors (synchronous)                           #
    # ------------------------------------------------------------------ #
    hive_api_url: Optional[str] = Field(None, description="Hive audio detection endpoint")
    hive_api_key: Optional[str] = Field(None, description="Hive bearer key")
    shlabs_api_url: Optional[str] = Field(None, description="SH Labs detection endpoint")
    shlabs_api_key: Optional[str] = Field(None, description="SH Labs X-Api-Key")
    sightengine_api_url: Optional[str] = Field(None, description="Sightengine endpoint")
    sightengine_api_user: Optional[str] = Field(None, description="Sightengine api_user")
    sightengine_api_secret: Optional[str] = Field(None, description="Sightengine api_secret")

    # ------------------------------------------------------------------ #
    # Token Cache                                                         #
    # ------------------------------------------------------------------ #
    token_expiry_margin_sec: float = Field(
        5.0, description="Refresh a cached token when it expires within this margin"
    )

    # ------------------------------------------------------------------ #
    # Job records                                                         #
    # ------------------------------------------------------------------ #
    job_ttl_sec: int = Field(
        900, description="15 min: request records are dropped after this age"
    )
    cleanup_interval_sec: int = Field(
        30, description="How often the periodic job-cleanup task runs (seconds)"
    )

    # ------------------------------------------------------------------ #
    # Uploads                                                             #
    # ------------------------------------------------------------------ #
    max_audio_upload_mb: int = Field(50, description="Max MB for multipart audio uploads")

    # ------------------------------------------------------------------ #
    # Outcome cache                                                       #
    # ------------------------------------------------------------------ #
    upstash_redis_host: Optional[str] = Field(None, description="Upstash REST URL")
    upstash_redis_password: Optional[str] = Field(None, description="Upstash REST token")
    outcome_cache_ttl_sec: int = Field(
        86_400, description="24 h: finished outcome per (provider, file hash) in Redis"
    )
    local_cache_max_size: int = Field(
        100, description="Max entries in the in-memory LRU cache"
    )
    local_cache_ttl_sec: int = Field(
        3_600, description="1 h: local cache entry lifetime"
    )

    @property
    def max_audio_upload_bytes(self) -> int:
        return self.max_audio_upload_mb * 1024 * 1024


# Single shared instance, import this everywhere.
settings = Settings()
