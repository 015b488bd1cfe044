"""
Episode event repository.
"""

import uuid
from datetime import datetime
from typing import Any, List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from agentmem.db.repositories.base import BaseRepository
from agentmem.models.db import EpisodeEvent, EpisodeEventType
from agentmem.utils.timestamps import utc_now


class EpisodeEventRepository(BaseRepository[EpisodeEvent]):
    """Repository for EpisodeEvent model."""

    def __init__(self, session: Session):
        super().__init__(EpisodeEvent, session)

    def next_sequence_num(self, episode_id: uuid.UUID) -> int:
        """Get the next event sequence number of an episode (starting at 1)."""
        current = (
            self.session.query(func.max(EpisodeEvent.sequence_num))
            .filter(EpisodeEvent.episode_id == episode_id)
            .scalar()
        )
        return (current or 0) + 1

    def append(
        self,
        episode_id: uuid.UUID,
        event_type: EpisodeEventType,
        name: str,
        description: Optional[str] = None,
        entry_type: Optional[str] = None,
        entry_id: Optional[str] = None,
        data: Optional[dict[str, Any]] = None,
        occurred_at: Optional[datetime] = None,
    ) -> EpisodeEvent:
        """
        Append an event to the end of an episode's history.

        Runs in the caller's transaction, so lifecycle events land atomically
        with the status change that produced them.

        Args:
            episode_id: Owning episode
            event_type: Kind of event
            name: Short event name
            description: Optional longer text
            entry_type: Type of a related entity, if any
            entry_id: Id of a related entity, if any
            data: Free-form JSON payload
            occurred_at: Event time (defaults to now)

        Returns:
            The persisted EpisodeEvent
        """
        return self.create(
            episode_id=episode_id,
            event_type=event_type,
            name=name,
            description=description,
            entry_type=entry_type,
            entry_id=entry_id,
            data=data,
            occurred_at=occurred_at or utc_now(),
            sequence_num=self.next_sequence_num(episode_id),
        )

    def get_by_episode(self, episode_id: uuid.UUID) -> List[EpisodeEvent]:
        """Get the events of an episode in sequence order."""
        return (
            self.session.query(EpisodeEvent)
            .filter(EpisodeEvent.episode_id == episode_id)
            .order_by(EpisodeEvent.sequence_num)
            .all()
        )

    def count_by_episode(self, episode_id: uuid.UUID) -> int:
        """Count the events of an episode."""
        return (
            self.session.query(EpisodeEvent)
            .filter(EpisodeEvent.episode_id == episode_id)
            .count()
        )
