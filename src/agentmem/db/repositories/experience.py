"""
Experience repository.
"""

import uuid
from typing import Any, List, Optional, Set

from sqlalchemy import update
from sqlalchemy.orm import Session

from agentmem.db.repositories.base import BaseRepository
from agentmem.models.db import Experience, ExperienceSource, ScopeType
from agentmem.utils.hashing import experience_content_hash


class ExperienceRepository(BaseRepository[Experience]):
    """Repository for Experience model."""

    def __init__(self, session: Session):
        super().__init__(Experience, session)

    def store(
        self,
        title: str,
        scenario: str,
        outcome: str,
        scope_type: ScopeType = ScopeType.SESSION,
        scope_id: Optional[str] = None,
        confidence: float = 0.5,
        source: ExperienceSource = ExperienceSource.OBSERVATION,
        trajectory: Optional[list[dict[str, Any]]] = None,
        **kwargs: Any,
    ) -> Experience:
        """
        Persist an experience, computing its content hash.

        Args:
            title: Short experience title
            scenario: Situation in which the experience applies
            outcome: What happened / what was learned
            scope_type: Visibility scope
            scope_id: Scope identifier (None for global)
            confidence: Confidence in [0, 1]
            source: Provenance tag
            trajectory: Optional list of steps
            **kwargs: Additional fields (content, pattern, applicability,
                session_id, created_by)

        Returns:
            The stored Experience
        """
        return self.create(
            title=title,
            scenario=scenario,
            outcome=outcome,
            scope_type=scope_type,
            scope_id=scope_id,
            confidence=confidence,
            source=source,
            trajectory=trajectory,
            content_hash=experience_content_hash(title, scenario, outcome),
            **kwargs,
        )

    def link_to_episode(self, experience_id: uuid.UUID, episode_id: uuid.UUID) -> bool:
        """
        Set the source episode of an experience if it has none yet.

        Args:
            experience_id: Experience UUID
            episode_id: Episode UUID

        Returns:
            True if linked, False if already linked (or not found)
        """
        result = self.session.execute(
            update(Experience)
            .where(
                Experience.id == experience_id,
                Experience.source_episode_id.is_(None),
            )
            .values(source_episode_id=episode_id)
            .execution_options(synchronize_session=False)
        )
        instance = self.session.identity_map.get(
            self.session.identity_key(Experience, experience_id)
        )
        if instance is not None:
            self.session.expire(instance, ["source_episode_id"])
        return result.rowcount == 1

    def get_by_episode(self, episode_id: uuid.UUID) -> List[Experience]:
        """Get experiences captured from an episode."""
        return (
            self.session.query(Experience)
            .filter(Experience.source_episode_id == episode_id)
            .order_by(Experience.created_at, Experience.title)
            .all()
        )

    def get_hashes_for_session(self, session_id: str) -> Set[str]:
        """Get the content hashes already stored for a session."""
        rows = (
            self.session.query(Experience.content_hash)
            .filter(Experience.session_id == session_id)
            .all()
        )
        return {row[0] for row in rows}

    def exists_with_hash(self, content_hash: str, session_id: str) -> bool:
        """Check whether an experience with this hash exists in the session."""
        return (
            self.session.query(Experience.id)
            .filter(
                Experience.content_hash == content_hash,
                Experience.session_id == session_id,
            )
            .first()
            is not None
        )
