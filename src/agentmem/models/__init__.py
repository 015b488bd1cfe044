"""Database models for agentmem."""

from agentmem.models.db import (
    Base,
    Conversation,
    Episode,
    EpisodeEvent,
    EpisodeEventType,
    EpisodeOutcomeType,
    EpisodeStatus,
    Experience,
    ExperienceSource,
    Message,
    MessageRole,
    MessageSource,
    ScopeType,
)

__all__ = [
    "Base",
    "Conversation",
    "Episode",
    "EpisodeEvent",
    "EpisodeEventType",
    "EpisodeOutcomeType",
    "EpisodeStatus",
    "Experience",
    "ExperienceSource",
    "Message",
    "MessageRole",
    "MessageSource",
    "ScopeType",
]
