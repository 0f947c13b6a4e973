from songcheck.schemas.detection import (
    DetectionOutcome,
    DetectionRequest,
    DetectionResponse,
    LabelScore,
    ProviderInfo,
    ProviderResult,
)

__all__ = [
    "DetectionOutcome",
    "DetectionRequest",
    "DetectionResponse",
    "LabelScore",
    "ProviderInfo",
    "ProviderResult",
]
