"""
Capture pipeline run when an episode completes.

Reads the messages linked to the episode, asks the extraction provider for
candidate experiences, applies the confidence and duplicate policy, then
persists and links every survivor. Any extraction fault, or an empty
result, ends in a single fallback experience instead.
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from agentmem.capture.fallback import FallbackRecorder
from agentmem.capture.turns import build_turn_data, compute_turn_metrics
from agentmem.capture.types import (
    CandidateExperience,
    CaptureOptions,
    CaptureOutcome,
    ExtractionProvider,
)
from agentmem.config import settings
from agentmem.db import connection
from agentmem.db.connection import session_scope
from agentmem.db.repositories import (
    ConversationRepository,
    ExperienceRepository,
    MessageRepository,
)
from agentmem.exceptions import ExtractionError, PersistenceError
from agentmem.models.db import Episode, Experience, ExperienceSource
from agentmem.utils.hashing import experience_content_hash

logger = logging.getLogger(__name__)


@dataclass
class CapturePolicy:
    """Thresholds the pipeline applies to extraction results."""

    confidence_threshold: float = 0.7
    min_messages: int = 2
    skip_duplicates: bool = True
    focus_areas: list[str] = field(default_factory=list)

    @classmethod
    def from_settings(cls) -> "CapturePolicy":
        return cls(
            confidence_threshold=settings.capture_confidence_threshold,
            min_messages=settings.capture_min_messages,
            skip_duplicates=settings.capture_skip_duplicates,
            focus_areas=list(settings.capture_focus_areas),
        )


class CapturePipeline:
    """Turns a completed episode into stored experiences."""

    def __init__(
        self,
        provider: Optional[ExtractionProvider] = None,
        session_factory: Optional[sessionmaker] = None,
        fallback: Optional[FallbackRecorder] = None,
        policy: Optional[CapturePolicy] = None,
    ):
        self.session_factory = session_factory or connection.SessionLocal
        if provider is None:
            from agentmem.capture.extractor import ExperienceExtractor

            provider = ExperienceExtractor()
        self.provider = provider
        self.fallback = fallback or FallbackRecorder(self.session_factory)
        self.policy = policy or CapturePolicy.from_settings()

    def _provider_name(self) -> str:
        names = getattr(self.provider, "provider_names", None)
        if names:
            return names[0]
        return type(self.provider).__name__

    def build_options(self, episode: Episode) -> CaptureOptions:
        """Build the options passed to the extraction provider for an episode."""
        try:
            with session_scope(self.session_factory) as db:
                conversations = ConversationRepository(db).get_by_session(
                    episode.session_id
                )
        except SQLAlchemyError as e:
            raise PersistenceError("conversation read", e) from e
        first = conversations[0] if conversations else None

        return CaptureOptions(
            scope_type=episode.scope_type,
            scope_id=episode.scope_id,
            project_id=first.project_id if first else None,
            session_id=episode.session_id,
            agent_id=first.agent_id if first else None,
            auto_store=False,
            confidence_threshold=self.policy.confidence_threshold,
            skip_duplicates=self.policy.skip_duplicates,
            focus_areas=list(self.policy.focus_areas),
            episode_id=episode.id,
        )

    def run(self, episode: Episode) -> CaptureOutcome:
        """
        Capture experiences for a completed episode.

        Args:
            episode: The episode that just completed

        Returns:
            CaptureOutcome describing what was stored

        Raises:
            PersistenceError: If the episode cannot be read or experiences
                (or the fallback) cannot be written
        """
        start_time = time.time()

        try:
            with session_scope(self.session_factory) as db:
                messages = MessageRepository(db).get_by_episode(episode.id)
        except SQLAlchemyError as e:
            raise PersistenceError("episode message read", e) from e

        if len(messages) < self.policy.min_messages:
            reason = f"only {len(messages)} linked messages"
            logger.info(f"Skipping extraction for episode {episode.id}: {reason}")
            return self._fallback(episode, len(messages), reason, start_time)

        options = self.build_options(episode)

        try:
            turn_data = build_turn_data(messages)
            metrics = compute_turn_metrics(messages)
            result = self.provider.capture(turn_data, metrics, options)
        except ExtractionError as e:
            logger.warning(f"Extraction failed for episode {episode.id} ({e.reason}): {e}")
            return self._fallback(episode, len(messages), e.reason, start_time)
        except Exception as e:
            logger.error(
                f"Extraction raised {type(e).__name__} for episode {episode.id}: {e}",
                exc_info=True,
            )
            return self._fallback(episode, len(messages), "provider_error", start_time)

        survivors, skipped_low, skipped_dupes = self._apply_policy(
            result.experiences, episode.session_id
        )
        skipped_dupes += result.skipped_duplicates

        if not survivors:
            reason = "no experiences above threshold"
            logger.info(
                f"Extraction for episode {episode.id} produced no usable experiences "
                f"({skipped_low} below threshold, {skipped_dupes} duplicates)"
            )
            outcome = self._fallback(episode, len(messages), reason, start_time)
            outcome.skipped_low_confidence = skipped_low
            outcome.skipped_duplicates = skipped_dupes
            outcome.provider = result.provider
            return outcome

        stored = self._persist(survivors, episode, options)
        logger.info(
            f"Captured {len(stored)} experiences for episode {episode.id} "
            f"(skipped {skipped_low} low-confidence, {skipped_dupes} duplicates)"
        )
        return CaptureOutcome(
            episode_id=episode.id,
            experiences=stored,
            used_fallback=False,
            skipped_low_confidence=skipped_low,
            skipped_duplicates=skipped_dupes,
            processing_time_ms=(time.time() - start_time) * 1000,
            provider=result.provider or self._provider_name(),
        )

    def _apply_policy(
        self,
        candidates: list[CandidateExperience],
        session_id: str,
    ) -> tuple[list[CandidateExperience], int, int]:
        """Drop low-confidence candidates and duplicates, counting both."""
        skipped_low = 0
        skipped_dupes = 0

        known: set[str] = set()
        if self.policy.skip_duplicates:
            try:
                with session_scope(self.session_factory) as db:
                    known = ExperienceRepository(db).get_hashes_for_session(session_id)
            except SQLAlchemyError as e:
                raise PersistenceError("experience hash read", e) from e

        survivors = []
        for candidate in candidates:
            if candidate.confidence < self.policy.confidence_threshold:
                skipped_low += 1
                continue
            if self.policy.skip_duplicates:
                key = experience_content_hash(
                    candidate.title, candidate.scenario, candidate.outcome
                )
                if key in known:
                    skipped_dupes += 1
                    continue
                known.add(key)
            survivors.append(candidate)

        return survivors, skipped_low, skipped_dupes

    def _persist(
        self,
        candidates: list[CandidateExperience],
        episode: Episode,
        options: CaptureOptions,
    ) -> list[Experience]:
        try:
            with session_scope(self.session_factory) as db:
                repo = ExperienceRepository(db)
                stored = []
                for candidate in candidates:
                    experience = repo.store(
                        title=candidate.title,
                        scenario=candidate.scenario,
                        outcome=candidate.outcome,
                        content=candidate.content,
                        pattern=candidate.pattern,
                        applicability=candidate.applicability,
                        scope_type=episode.scope_type,
                        scope_id=episode.scope_id,
                        confidence=candidate.confidence,
                        source=ExperienceSource.OBSERVATION,
                        trajectory=candidate.trajectory,
                        session_id=episode.session_id,
                        created_by=options.agent_id,
                    )
                    repo.link_to_episode(experience.id, episode.id)
                    stored.append(experience)
                for experience in stored:
                    db.refresh(experience)
        except SQLAlchemyError as e:
            raise PersistenceError("experience write", e) from e
        return stored

    def _fallback(
        self,
        episode: Episode,
        message_count: int,
        reason: str,
        start_time: float,
    ) -> CaptureOutcome:
        experience = self.fallback.record(episode, message_count, reason)
        return CaptureOutcome(
            episode_id=episode.id,
            experiences=[experience],
            used_fallback=True,
            fallback_reason=reason,
            processing_time_ms=(time.time() - start_time) * 1000,
        )
