import hashlib
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


class DetectionRequest(BaseModel):
    """The uploaded audio payload. Immutable once created."""

    model_config = ConfigDict(frozen=True)

    content: bytes = Field(repr=False)
    filename: str
    content_type: str = "application/octet-stream"

    @property
    def size(self) -> int:
        return len(self.content)

    @property
    def digest(self) -> str:
        return hashlib.sha256(self.content).hexdigest()


class LabelScore(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    score: Optional[float] = None


class DetectionOutcome(BaseModel):
    """
    Canonical, provider-agnostic result of one provider.

    `ai_probability` is oriented so that 1.0 means certainly AI and 0.0 means
    certainly human. It is None only for descriptive providers (mood tagging)
    that never vote on the verdict.
    """

    model_config = ConfigDict(frozen=True)

    provider_id: str
    ai_probability: Optional[float] = Field(None, ge=0.0, le=1.0)
    confidence: Optional[float] = Field(None, ge=0.0, le=1.0)
    label_details: List[LabelScore] = Field(default_factory=list)
    raw: Dict[str, Any] = Field(default_factory=dict)


class ProviderResult(BaseModel):
    """Canonical per-provider view returned to callers."""

    status: Literal["done", "pending", "failed"]
    provider: str
    job_id: str
    external_job_id: Optional[str] = None
    state: str
    attempts: int = 0
    ai_probability: Optional[float] = None
    confidence: Optional[float] = None
    label_details: List[LabelScore] = Field(default_factory=list)
    error: Optional[str] = None
    cached: bool = False
    raw: Dict[str, Any] = Field(default_factory=dict)


class DetectionResponse(BaseModel):
    request_id: str
    conclusion: Literal["HUMAN", "AI", "CONFLICTING", "INSUFFICIENT_DATA"]
    complete: bool
    results: Dict[str, ProviderResult]


class ProviderInfo(BaseModel):
    provider: str
    mode: Literal["sync", "polling"]
    oauth: bool = False
