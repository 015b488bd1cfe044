"""
Episode timelines.

A timeline interleaves episode boundaries with the events recorded while
the episode ran, ordered by absolute instant. Lifecycle events are folded
into the start and end entries rather than listed twice.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Iterable, Optional

from agentmem.models.db import (
    Episode,
    EpisodeEvent,
    EpisodeEventType,
    Experience,
    Message,
)
from agentmem.utils.timestamps import to_epoch_ms

LIFECYCLE_EVENT_TYPES = frozenset(
    {
        EpisodeEventType.STARTED,
        EpisodeEventType.COMPLETED,
        EpisodeEventType.FAILED,
        EpisodeEventType.CANCELLED,
    }
)

# Most relevant first
RELEVANCE_CATEGORIES = ("high", "medium", "low")


@dataclass
class TimelineEntry:
    """One point on an episode timeline."""

    timestamp: datetime
    type: str  # episode_start, event or episode_end
    name: str
    episode_id: uuid.UUID
    description: Optional[str] = None
    event_id: Optional[uuid.UUID] = None
    entry_type: Optional[str] = None
    entry_id: Optional[str] = None
    data: Optional[dict[str, Any]] = None


@dataclass
class WhatHappened:
    """Everything recorded about one episode."""

    episode: Episode
    timeline: list[TimelineEntry] = field(default_factory=list)
    events: list[EpisodeEvent] = field(default_factory=list)
    messages: list[Message] = field(default_factory=list)
    experiences: list[Experience] = field(default_factory=list)

    @property
    def metrics(self) -> dict[str, Optional[int]]:
        return {
            "duration_ms": self.episode.duration_ms,
            "event_count": len(self.events),
            "message_count": len(self.messages),
            "experience_count": len(self.experiences),
        }


def episode_timeline(episode: Episode, events: Iterable[EpisodeEvent]) -> list[TimelineEntry]:
    """Build the timeline entries of a single episode, unsorted."""
    entries = [
        TimelineEntry(
            timestamp=episode.started_at,
            type="episode_start",
            name=f"Started: {episode.name or episode.id}",
            description=episode.description,
            episode_id=episode.id,
        )
    ]

    for event in events:
        if event.event_type in LIFECYCLE_EVENT_TYPES:
            continue
        entries.append(
            TimelineEntry(
                timestamp=event.occurred_at,
                type="event",
                name=event.name,
                description=event.description,
                episode_id=episode.id,
                event_id=event.id,
                entry_type=event.entry_type,
                entry_id=event.entry_id,
                data=event.data,
            )
        )

    if episode.ended_at is not None:
        entries.append(
            TimelineEntry(
                timestamp=episode.ended_at,
                type="episode_end",
                name=f"Ended: {episode.name or episode.id}",
                description=episode.outcome,
                episode_id=episode.id,
                data={
                    "status": episode.status.value,
                    "outcome_type": (
                        episode.outcome_type.value if episode.outcome_type else None
                    ),
                },
            )
        )
    return entries


def sort_timeline(entries: list[TimelineEntry]) -> list[TimelineEntry]:
    """Order entries by instant; ties keep their build order."""
    return sorted(entries, key=lambda entry: to_epoch_ms(entry.timestamp))


def filter_by_relevance(
    messages: Iterable[Message], min_relevance: Optional[str]
) -> list[Message]:
    """
    Keep messages at or above a relevance category.

    Messages that have not been scored yet are always kept.

    Raises:
        ValueError: If min_relevance is not high, medium or low
    """
    if min_relevance is None:
        return list(messages)
    if min_relevance not in RELEVANCE_CATEGORIES:
        raise ValueError(f"Unknown relevance category: {min_relevance}")

    cutoff = RELEVANCE_CATEGORIES.index(min_relevance)
    kept = []
    for message in messages:
        category = message.relevance_category
        if category not in RELEVANCE_CATEGORIES:
            kept.append(message)
        elif RELEVANCE_CATEGORIES.index(category) <= cutoff:
            kept.append(message)
    return kept
