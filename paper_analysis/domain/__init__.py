"""Domain layer: errors, constants and schemas."""

from .errors import ConfigurationError, ErrorCodes
from .schemas import (
    AnalysisPrecheck,
    AnalysisResult,
    BatchProgress,
    BatchStatus,
    CostEstimate,
    ExtractedText,
    ExtractionStatus,
)

__all__ = [
    "ConfigurationError",
    "ErrorCodes",
    "AnalysisResult",
    "AnalysisPrecheck",
    "BatchProgress",
    "BatchStatus",
    "CostEstimate",
    "ExtractedText",
    "ExtractionStatus",
]
