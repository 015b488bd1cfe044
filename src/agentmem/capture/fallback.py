"""
Fallback recorder.

When extraction yields nothing usable, a completed episode still leaves one
deterministic experience behind, so downstream maintenance can see that the
episode happened.
"""

import logging
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from agentmem.db import connection
from agentmem.db.connection import session_scope
from agentmem.db.repositories import ExperienceRepository
from agentmem.exceptions import PersistenceError
from agentmem.models.db import Episode, EpisodeStatus, Experience, ExperienceSource

logger = logging.getLogger(__name__)

FALLBACK_CONFIDENCE = 0.5
FALLBACK_SCENARIO = "Agent work episode recorded without an extracted experience"

_OUTCOME_TEXT = {
    EpisodeStatus.COMPLETED: "Episode completed",
    EpisodeStatus.FAILED: "Episode failed",
    EpisodeStatus.CANCELLED: "Episode cancelled",
    EpisodeStatus.ACTIVE: "Episode in progress",
}


def fallback_title(episode: Episode) -> str:
    """Title of the fallback experience for an episode."""
    if episode.name and episode.name.strip():
        return f"Episode: {episode.name.strip()}"
    return f"Episode {episode.id}"


class FallbackRecorder:
    """Writes the single placeholder experience of an episode."""

    def __init__(self, session_factory: Optional[sessionmaker] = None):
        self.session_factory = session_factory or connection.SessionLocal

    def record(self, episode: Episode, message_count: int, reason: str) -> Experience:
        """
        Persist exactly one fallback experience linked to the episode.

        Args:
            episode: The episode being captured
            message_count: Number of messages linked to the episode
            reason: Why the fallback was used (logged, not stored)

        Returns:
            The stored Experience

        Raises:
            PersistenceError: If the experience cannot be written
        """
        noun = "message" if message_count == 1 else "messages"
        try:
            with session_scope(self.session_factory) as db:
                repo = ExperienceRepository(db)
                experience = repo.store(
                    title=fallback_title(episode),
                    scenario=FALLBACK_SCENARIO,
                    outcome=_OUTCOME_TEXT[EpisodeStatus(episode.status)],
                    content=f"{message_count} {noun} exchanged during the episode.",
                    scope_type=episode.scope_type,
                    scope_id=episode.scope_id,
                    confidence=FALLBACK_CONFIDENCE,
                    source=ExperienceSource.FALLBACK,
                    trajectory=[
                        {"action": f"Exchanged {message_count} {noun}", "step": 1}
                    ],
                    session_id=episode.session_id,
                    source_episode_id=episode.id,
                )
        except SQLAlchemyError as e:
            raise PersistenceError("fallback experience write", e) from e

        logger.info(
            f"Recorded fallback experience {experience.id} for episode "
            f"{episode.id} (reason: {reason})"
        )
        return experience
