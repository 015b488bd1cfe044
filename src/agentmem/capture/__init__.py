"""Experience capture for completed episodes."""

from agentmem.capture.fallback import FallbackRecorder
from agentmem.capture.pipeline import CapturePipeline, CapturePolicy
from agentmem.capture.types import (
    CandidateExperience,
    CaptureOptions,
    CaptureOutcome,
    ExtractionProvider,
    ExtractionResult,
    TurnData,
    TurnMetrics,
)

__all__ = [
    "CandidateExperience",
    "CaptureOptions",
    "CaptureOutcome",
    "CapturePipeline",
    "CapturePolicy",
    "ExtractionProvider",
    "ExtractionResult",
    "FallbackRecorder",
    "TurnData",
    "TurnMetrics",
]
