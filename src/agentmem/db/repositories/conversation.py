"""
Conversation repository.
"""

import uuid
from typing import List, Optional

from sqlalchemy.orm import Session

from agentmem.db.repositories.base import BaseRepository
from agentmem.models.db import Conversation


class ConversationRepository(BaseRepository[Conversation]):
    """Repository for Conversation model."""

    def __init__(self, session: Session):
        super().__init__(Conversation, session)

    def get_by_session(self, session_id: str) -> List[Conversation]:
        """
        Get all conversations of an agent session.

        Args:
            session_id: Agent session identifier

        Returns:
            Conversations ordered by creation time
        """
        return (
            self.session.query(Conversation)
            .filter(Conversation.session_id == session_id)
            .order_by(Conversation.created_at)
            .all()
        )

    def get_or_create_for_session(
        self,
        session_id: str,
        conversation_id: Optional[uuid.UUID] = None,
        **kwargs,
    ) -> Conversation:
        """
        Get a conversation by id, or the session's first one, creating it if needed.

        Args:
            session_id: Agent session identifier
            conversation_id: Explicit conversation id to look up or create
            **kwargs: Additional fields for a new conversation

        Returns:
            Conversation instance
        """
        if conversation_id is not None:
            conversation = self.get(conversation_id)
            if conversation is not None:
                return conversation
            return self.create(id=conversation_id, session_id=session_id, **kwargs)

        existing = self.get_by_session(session_id)
        if existing:
            return existing[0]
        return self.create(session_id=session_id, **kwargs)
