"""
Relevance scoring trigger.

Fired after an episode's capture finishes. Scoring runs in the background,
once, and can never fail the episode completion that fired it.
"""

import logging
import uuid
from concurrent.futures import Future
from typing import Callable, Optional, Sequence

from sqlalchemy.orm import sessionmaker

from agentmem.config import settings
from agentmem.db import connection
from agentmem.db.connection import session_scope
from agentmem.db.repositories import MessageRepository
from agentmem.scoring.dispatcher import BackgroundDispatcher, get_dispatcher
from agentmem.scoring.scorer import HeuristicRelevanceScorer, RelevanceScorer

logger = logging.getLogger(__name__)

# Called as hook(session_id, episode_id) after scoring is queued
PostCaptureHook = Callable[[str, uuid.UUID], None]


class RelevanceScoringTrigger:
    """Dispatches background relevance scoring for completed episodes."""

    def __init__(
        self,
        scorer: Optional[RelevanceScorer] = None,
        dispatcher: Optional[BackgroundDispatcher] = None,
        session_factory: Optional[sessionmaker] = None,
        enabled: Optional[bool] = None,
        post_capture_hooks: Optional[Sequence[PostCaptureHook]] = None,
    ):
        self.session_factory = session_factory or connection.BackgroundSessionLocal
        self.scorer = scorer or HeuristicRelevanceScorer(self.session_factory)
        self._dispatcher = dispatcher
        self.enabled = settings.scoring_enabled if enabled is None else enabled
        self.post_capture_hooks = list(post_capture_hooks or [])

    @property
    def dispatcher(self) -> BackgroundDispatcher:
        if self._dispatcher is None:
            self._dispatcher = get_dispatcher()
        return self._dispatcher

    def _score_episode(self, episode_id: uuid.UUID) -> None:
        with session_scope(self.session_factory) as db:
            messages = MessageRepository(db).get_by_episode(episode_id)
        self.scorer.score(messages)
        logger.info(f"Relevance scoring finished for episode {episode_id}")

    def fire(
        self,
        episode_id: uuid.UUID,
        session_id: Optional[str] = None,
    ) -> Optional[Future]:
        """
        Queue relevance scoring for an episode. Never raises.

        Args:
            episode_id: Episode whose messages are scored
            session_id: Session passed to post-capture hooks

        Returns:
            The scoring job's Future, or None if nothing was queued
        """
        if not self.enabled:
            logger.debug(f"Relevance scoring disabled; not scoring episode {episode_id}")
            return None

        try:
            future = self.dispatcher.submit(
                f"score-episode-{episode_id}", self._score_episode, episode_id
            )
        except Exception as e:
            logger.error(f"Could not queue relevance scoring for {episode_id}: {e}")
            return None

        for hook in self.post_capture_hooks:
            try:
                self.dispatcher.submit(
                    f"post-capture-{getattr(hook, '__name__', 'hook')}",
                    hook,
                    session_id,
                    episode_id,
                )
            except Exception as e:
                logger.error(f"Could not queue post-capture hook for {episode_id}: {e}")

        return future
