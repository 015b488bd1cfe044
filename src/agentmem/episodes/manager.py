"""
Episode manager.

Owns the episode lifecycle:

    active --complete--> completed
    active --fail------> failed
    active --cancel----> cancelled

All non-active states are terminal. Every transition appends a lifecycle
event to the episode's history in the same transaction. Completing an
episode optionally imports the session transcript for its window, links any
imported messages that fall in its time range, runs experience capture
synchronously, then fires background relevance scoring. Import and linking
failures are logged and never undo a completion.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timedelta
from typing import Any, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import sessionmaker

from agentmem.capture.pipeline import CapturePipeline
from agentmem.capture.types import CaptureOutcome
from agentmem.db import connection
from agentmem.db.connection import session_scope
from agentmem.db.repositories import (
    EpisodeEventRepository,
    EpisodeFilter,
    EpisodeRepository,
    ExperienceRepository,
    MessageRepository,
)
from agentmem.episodes.linker import MessageLinker
from agentmem.episodes.scope import ScopeContext, ScopeHint, resolve_scope
from agentmem.episodes.timeline import (
    TimelineEntry,
    WhatHappened,
    episode_timeline,
    filter_by_relevance,
    sort_timeline,
)
from agentmem.exceptions import (
    ActiveEpisodeConflictError,
    AlreadyTerminalError,
    NotFoundError,
)
from agentmem.models.db import (
    Episode,
    EpisodeEvent,
    EpisodeEventType,
    EpisodeOutcomeType,
    EpisodeStatus,
)
from agentmem.scoring.trigger import RelevanceScoringTrigger
from agentmem.transcripts import TranscriptSource
from agentmem.utils.timestamps import to_epoch_ms, utc_now

logger = logging.getLogger(__name__)


class EpisodeManager:
    """
    Lifecycle service for episodes.

    Each operation runs in its own database transaction taken from the
    session factory, so a manager instance is safe to share across threads.

    Example:
        >>> manager = EpisodeManager()
        >>> episode = manager.begin("session-1", name="Fix flaky test")
        >>> episode, outcome = manager.complete_with_outcome(episode.id)
        >>> outcome.used_fallback
        False
    """

    def __init__(
        self,
        session_factory: Optional[sessionmaker] = None,
        linker: Optional[MessageLinker] = None,
        pipeline: Optional[CapturePipeline] = None,
        trigger: Optional[RelevanceScoringTrigger] = None,
        context: Optional[ScopeContext] = None,
    ):
        self.session_factory = session_factory or connection.SessionLocal
        self.linker = linker or MessageLinker(self.session_factory)
        self._pipeline = pipeline
        self.trigger = trigger or RelevanceScoringTrigger()
        self.context = context or ScopeContext()

    @property
    def pipeline(self) -> CapturePipeline:
        # Built lazily so begin/list never construct LLM clients
        if self._pipeline is None:
            self._pipeline = CapturePipeline(session_factory=self.session_factory)
        return self._pipeline

    def begin(
        self,
        session_id: str,
        scope_hint: Optional[ScopeHint] = None,
        name: str = "",
        description: Optional[str] = None,
    ) -> Episode:
        """
        Start a new active episode in a session.

        Args:
            session_id: Agent session identifier
            scope_hint: Optional explicit scope
            name: Human-readable episode name
            description: Optional longer description

        Returns:
            The new active Episode

        Raises:
            ScopeResolutionError: If a non-global scope cannot be resolved
            ActiveEpisodeConflictError: If the session already has an active episode
        """
        resolved = resolve_scope(session_id, scope_hint, self.context)

        started_at = utc_now()
        try:
            with session_scope(self.session_factory) as db:
                episode = EpisodeRepository(db).create(
                    session_id=session_id,
                    scope_type=resolved.scope_type,
                    scope_id=resolved.scope_id,
                    name=name or "",
                    description=description,
                    status=EpisodeStatus.ACTIVE,
                    started_at=started_at,
                )
                EpisodeEventRepository(db).append(
                    episode.id,
                    EpisodeEventType.STARTED,
                    "Episode started",
                    occurred_at=started_at,
                )
        except IntegrityError as e:
            raise ActiveEpisodeConflictError(session_id) from e

        logger.info(
            f"Began episode {episode.id} in session {session_id} "
            f"(scope {resolved.scope_type.value}:{resolved.scope_id})"
        )
        return episode

    def _transition(
        self,
        episode_id: uuid.UUID,
        status: EpisodeStatus,
        event_type: EpisodeEventType,
        outcome: Optional[str] = None,
        outcome_type: Optional[EpisodeOutcomeType] = None,
    ) -> Episode:
        with session_scope(self.session_factory) as db:
            repo = EpisodeRepository(db)
            episode = repo.get(episode_id)
            if episode is None:
                raise NotFoundError("Episode", episode_id)
            if episode.status.is_terminal:
                raise AlreadyTerminalError(episode_id, episode.status.value)

            ended_at = utc_now()
            duration_ms = max(0, to_epoch_ms(ended_at) - to_epoch_ms(episode.started_at))
            transitioned = repo.set_status(
                episode_id,
                status,
                ended_at=ended_at,
                outcome=outcome,
                duration_ms=duration_ms,
                outcome_type=outcome_type,
            )
            db.refresh(episode)
            if not transitioned:
                # Another caller finished it between our read and update
                raise AlreadyTerminalError(episode_id, episode.status.value)

            EpisodeEventRepository(db).append(
                episode_id,
                event_type,
                f"Episode {status.value}",
                description=outcome,
                occurred_at=ended_at,
                data={"outcome_type": outcome_type.value} if outcome_type else None,
            )

        logger.info(f"Episode {episode_id} -> {status.value} ({duration_ms} ms)")
        return episode

    def _import_transcript(
        self,
        episode: Episode,
        transcript_source: TranscriptSource,
        conversation_id: Optional[uuid.UUID] = None,
    ) -> int:
        """Import the part of a session transcript that covers an episode."""
        window_end = episode.ended_at + timedelta(milliseconds=self.linker.grace_window_ms)
        messages = list(
            transcript_source.read_messages(
                episode.session_id, start=episode.started_at, end=window_end
            )
        )
        if not messages:
            return 0
        if conversation_id is None:
            conversation_id = self.linker.ensure_conversation(episode.session_id).id
        return self.linker.import_messages(conversation_id, messages)

    def _link_messages(
        self,
        episode: Episode,
        transcript_source: Optional[TranscriptSource] = None,
        conversation_id: Optional[uuid.UUID] = None,
    ) -> int:
        """Import (optionally) and link messages to a finished episode. Never raises."""
        if transcript_source is not None:
            try:
                imported = self._import_transcript(episode, transcript_source, conversation_id)
                logger.debug(f"Imported {imported} transcript messages for episode {episode.id}")
            except Exception as e:
                logger.warning(
                    f"Transcript import for episode {episode.id} failed (non-fatal): {e}",
                    exc_info=True,
                )

        try:
            return self.linker.link_time_range(episode)
        except Exception as e:
            logger.warning(
                f"Linking messages to episode {episode.id} failed (non-fatal): {e}",
                exc_info=True,
            )
            return 0

    def complete_with_outcome(
        self,
        episode_id: uuid.UUID,
        note: Optional[str] = None,
        outcome_type: EpisodeOutcomeType = EpisodeOutcomeType.SUCCESS,
        transcript_source: Optional[TranscriptSource] = None,
        conversation_id: Optional[uuid.UUID] = None,
    ) -> tuple[Episode, CaptureOutcome]:
        """
        Complete an episode and capture its experiences.

        Args:
            episode_id: Episode UUID
            note: Optional completion note stored as the episode outcome
            outcome_type: How the episode ended (success by default)
            transcript_source: Source to import the episode window from
            conversation_id: Conversation receiving imported messages
                (default: the session's first conversation)

        Returns:
            The completed Episode and the capture outcome

        Raises:
            NotFoundError: If the episode does not exist
            AlreadyTerminalError: If the episode is not active
            PersistenceError: If capture could not read the episode or write
                even its fallback
        """
        episode = self._transition(
            episode_id,
            EpisodeStatus.COMPLETED,
            EpisodeEventType.COMPLETED,
            outcome=note,
            outcome_type=outcome_type,
        )

        self._link_messages(episode, transcript_source, conversation_id)
        capture_outcome = self.pipeline.run(episode)
        self.trigger.fire(episode.id, session_id=episode.session_id)

        return episode, capture_outcome

    def complete(
        self,
        episode_id: uuid.UUID,
        note: Optional[str] = None,
        outcome_type: EpisodeOutcomeType = EpisodeOutcomeType.SUCCESS,
    ) -> Episode:
        """Complete an episode (see complete_with_outcome)."""
        episode, _ = self.complete_with_outcome(
            episode_id, note=note, outcome_type=outcome_type
        )
        return episode

    def fail(
        self,
        episode_id: uuid.UUID,
        reason: Optional[str] = None,
        transcript_source: Optional[TranscriptSource] = None,
        conversation_id: Optional[uuid.UUID] = None,
    ) -> Episode:
        """
        Mark an episode as failed. Imported messages in its range are linked;
        no capture runs.

        Raises:
            NotFoundError: If the episode does not exist
            AlreadyTerminalError: If the episode is not active
        """
        episode = self._transition(
            episode_id,
            EpisodeStatus.FAILED,
            EpisodeEventType.FAILED,
            outcome=reason,
            outcome_type=EpisodeOutcomeType.FAILURE,
        )
        self._link_messages(episode, transcript_source, conversation_id)
        return episode

    def cancel(self, episode_id: uuid.UUID, reason: Optional[str] = None) -> Episode:
        """
        Cancel an episode.

        Raises:
            NotFoundError: If the episode does not exist
            AlreadyTerminalError: If the episode is not active
        """
        return self._transition(
            episode_id,
            EpisodeStatus.CANCELLED,
            EpisodeEventType.CANCELLED,
            outcome=reason,
            outcome_type=EpisodeOutcomeType.ABANDONED,
        )

    def get(self, episode_id: uuid.UUID) -> Episode:
        """
        Get an episode by id.

        Raises:
            NotFoundError: If the episode does not exist
        """
        with session_scope(self.session_factory) as db:
            episode = EpisodeRepository(db).get(episode_id)
        if episode is None:
            raise NotFoundError("Episode", episode_id)
        return episode

    def get_active(self, session_id: str) -> Optional[Episode]:
        """Get the active episode of a session, if any."""
        with session_scope(self.session_factory) as db:
            return EpisodeRepository(db).get_active(session_id)

    def list(self, filter: Optional[EpisodeFilter] = None) -> list[Episode]:
        """List episodes matching a filter, most recent first."""
        with session_scope(self.session_factory) as db:
            return EpisodeRepository(db).list(filter)

    def add_event(
        self,
        episode_id: uuid.UUID,
        event_type: EpisodeEventType,
        name: str,
        description: Optional[str] = None,
        entry_type: Optional[str] = None,
        entry_id: Optional[str] = None,
        data: Optional[dict[str, Any]] = None,
    ) -> EpisodeEvent:
        """
        Record an event in an episode's history.

        Events may be added after the episode ended (late annotations).

        Raises:
            NotFoundError: If the episode does not exist
            ValueError: If event_type is not a known event type
        """
        with session_scope(self.session_factory) as db:
            if EpisodeRepository(db).get(episode_id) is None:
                raise NotFoundError("Episode", episode_id)
            event = EpisodeEventRepository(db).append(
                episode_id,
                EpisodeEventType(event_type),
                name,
                description=description,
                entry_type=entry_type,
                entry_id=entry_id,
                data=data,
            )
        logger.debug(f"Episode {episode_id} event #{event.sequence_num}: {name}")
        return event

    def get_events(self, episode_id: uuid.UUID) -> list[EpisodeEvent]:
        """Get the events of an episode in the order they were recorded."""
        with session_scope(self.session_factory) as db:
            return EpisodeEventRepository(db).get_by_episode(episode_id)

    def get_timeline(
        self,
        session_id: str,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> list[TimelineEntry]:
        """
        Build the timeline of a session's episodes.

        Args:
            session_id: Agent session identifier
            start: Only episodes started at or after this instant
            end: Only episodes started at or before this instant

        Returns:
            Episode boundaries and recorded events, ordered by instant
        """
        start_ms = to_epoch_ms(start) if start is not None else None
        end_ms = to_epoch_ms(end) if end is not None else None

        entries: list[TimelineEntry] = []
        with session_scope(self.session_factory) as db:
            events = EpisodeEventRepository(db)
            for episode in EpisodeRepository(db).list(EpisodeFilter(session_id=session_id)):
                started_ms = to_epoch_ms(episode.started_at)
                if start_ms is not None and started_ms < start_ms:
                    continue
                if end_ms is not None and started_ms > end_ms:
                    continue
                entries.extend(
                    episode_timeline(episode, events.get_by_episode(episode.id))
                )
        return sort_timeline(entries)

    def what_happened(
        self,
        episode_id: uuid.UUID,
        min_relevance: Optional[str] = None,
    ) -> WhatHappened:
        """
        Collect the timeline, messages and experiences of one episode.

        Args:
            episode_id: Episode UUID
            min_relevance: Drop scored messages below high, medium or low

        Raises:
            NotFoundError: If the episode does not exist
            ValueError: If min_relevance is not a known category
        """
        with session_scope(self.session_factory) as db:
            episode = EpisodeRepository(db).get(episode_id)
            if episode is None:
                raise NotFoundError("Episode", episode_id)
            events = EpisodeEventRepository(db).get_by_episode(episode_id)
            messages = MessageRepository(db).get_by_episode(episode_id)
            experiences = ExperienceRepository(db).get_by_episode(episode_id)

        return WhatHappened(
            episode=episode,
            timeline=sort_timeline(episode_timeline(episode, events)),
            events=events,
            messages=filter_by_relevance(messages, min_relevance),
            experiences=experiences,
        )
