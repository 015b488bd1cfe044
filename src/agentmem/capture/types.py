"""Types shared by the capture pipeline and extraction providers."""

import uuid
from dataclasses import dataclass, field
from typing import Any, Optional, Protocol

from agentmem.models.db import Experience, ScopeType


@dataclass
class TurnData:
    """One turn of an episode transcript, in chronological order."""

    role: str
    content: str
    timestamp: str
    tool_calls: Optional[list[dict[str, Any]]] = None


@dataclass
class TurnMetrics:
    """Aggregate metrics over an episode transcript. Every field is always set."""

    turn_count: int = 0
    user_turn_count: int = 0
    assistant_turn_count: int = 0
    total_tokens: int = 0
    tool_call_count: int = 0
    unique_tools_used: set[str] = field(default_factory=set)
    error_count: int = 0
    start_time: str = ""
    last_turn_time: str = ""


@dataclass
class CaptureOptions:
    """Options passed to an extraction provider for one capture."""

    scope_type: ScopeType = ScopeType.SESSION
    scope_id: Optional[str] = None
    project_id: Optional[str] = None
    session_id: Optional[str] = None
    agent_id: Optional[str] = None
    auto_store: bool = False
    confidence_threshold: float = 0.7
    skip_duplicates: bool = True
    episode_id: Optional[uuid.UUID] = None
    focus_areas: list[str] = field(default_factory=list)


@dataclass
class CandidateExperience:
    """An experience proposed by a provider, not yet persisted."""

    title: str
    scenario: str
    outcome: str
    content: str
    confidence: float
    pattern: Optional[str] = None
    applicability: Optional[str] = None
    trajectory: Optional[list[dict[str, Any]]] = None


@dataclass
class ExtractionResult:
    """Result of one provider capture call."""

    experiences: list[CandidateExperience] = field(default_factory=list)
    skipped_duplicates: int = 0
    processing_time_ms: float = 0.0
    provider: Optional[str] = None


@dataclass
class CaptureOutcome:
    """What the capture pipeline did for a completed episode."""

    episode_id: uuid.UUID
    experiences: list[Experience] = field(default_factory=list)
    used_fallback: bool = False
    fallback_reason: Optional[str] = None
    skipped_low_confidence: int = 0
    skipped_duplicates: int = 0
    processing_time_ms: float = 0.0
    provider: Optional[str] = None


class ExtractionProvider(Protocol):
    """
    Anything that can turn a transcript into candidate experiences.

    Implementations raise ExtractionUnavailable when nothing is configured
    (distinct from returning an empty result), ExtractionTimeout when the
    backend does not answer in time, and ExtractionMalformedResponse when
    its output cannot be parsed.
    """

    def capture(
        self,
        turn_data: list[TurnData],
        metrics: TurnMetrics,
        options: CaptureOptions,
    ) -> ExtractionResult:
        ...
