"""
Episode repository.
"""

import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional

from sqlalchemy import update
from sqlalchemy.orm import Session

from agentmem.db.repositories.base import BaseRepository
from agentmem.models.db import Episode, EpisodeOutcomeType, EpisodeStatus, ScopeType


@dataclass
class EpisodeFilter:
    """Optional filters for listing episodes. Unset fields match everything."""

    scope_type: Optional[ScopeType] = None
    scope_id: Optional[str] = None
    session_id: Optional[str] = None
    status: Optional[EpisodeStatus] = None
    limit: Optional[int] = None
    offset: int = 0


class EpisodeRepository(BaseRepository[Episode]):
    """Repository for Episode model."""

    def __init__(self, session: Session):
        super().__init__(Episode, session)

    def get_active(self, session_id: str) -> Optional[Episode]:
        """
        Get the active episode of a session.

        Served by the (session_id, status) index.

        Args:
            session_id: Agent session identifier

        Returns:
            The active Episode or None
        """
        return (
            self.session.query(Episode)
            .filter(
                Episode.session_id == session_id,
                Episode.status == EpisodeStatus.ACTIVE,
            )
            .first()
        )

    def get_active_id(self, session_id: str) -> Optional[uuid.UUID]:
        """Get only the id of the session's active episode."""
        return (
            self.session.query(Episode.id)
            .filter(
                Episode.session_id == session_id,
                Episode.status == EpisodeStatus.ACTIVE,
            )
            .scalar()
        )

    def set_status(
        self,
        episode_id: uuid.UUID,
        status: EpisodeStatus,
        ended_at: Optional[datetime] = None,
        outcome: Optional[str] = None,
        duration_ms: Optional[int] = None,
        outcome_type: Optional[EpisodeOutcomeType] = None,
    ) -> bool:
        """
        Move an active episode to a terminal status.

        The update is conditional on the episode still being active, so two
        concurrent transitions cannot both succeed.

        Args:
            episode_id: Episode UUID
            status: Target status
            ended_at: End time of the episode
            outcome: Optional outcome / reason text
            duration_ms: Duration between start and end
            outcome_type: How the episode ended

        Returns:
            True if the row transitioned, False if it was not active
        """
        result = self.session.execute(
            update(Episode)
            .where(Episode.id == episode_id, Episode.status == EpisodeStatus.ACTIVE)
            .values(
                status=status,
                ended_at=ended_at,
                outcome=outcome,
                duration_ms=duration_ms,
                outcome_type=outcome_type,
            )
            .execution_options(synchronize_session=False)
        )
        # Reload attributes for any instance already in the identity map
        instance = self.session.identity_map.get(
            self.session.identity_key(Episode, episode_id)
        )
        if instance is not None:
            self.session.expire(instance)
        return result.rowcount == 1

    def list(self, filter: Optional[EpisodeFilter] = None) -> List[Episode]:
        """
        List episodes matching a filter, most recent first.

        Args:
            filter: Filter criteria (None returns everything)

        Returns:
            List of episodes
        """
        filter = filter or EpisodeFilter()
        query = self.session.query(Episode)

        if filter.scope_type is not None:
            query = query.filter(Episode.scope_type == filter.scope_type)
        if filter.scope_id is not None:
            query = query.filter(Episode.scope_id == filter.scope_id)
        if filter.session_id is not None:
            query = query.filter(Episode.session_id == filter.session_id)
        if filter.status is not None:
            query = query.filter(Episode.status == filter.status)

        query = query.order_by(Episode.started_at.desc()).offset(filter.offset)
        if filter.limit is not None:
            query = query.limit(filter.limit)
        return query.all()
