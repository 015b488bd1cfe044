"""
Message repository.
"""

import uuid
from datetime import datetime
from typing import Any, List, Optional

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from agentmem.db.repositories.base import BaseRepository
from agentmem.models.db import Conversation, Message, MessageRole, MessageSource
from agentmem.utils.timestamps import format_iso, parse_epoch_ms, to_epoch_ms, utc_now


class MessageRepository(BaseRepository[Message]):
    """Repository for Message model."""

    def __init__(self, session: Session):
        super().__init__(Message, session)

    def next_sequence(self, conversation_id: uuid.UUID) -> int:
        """Get the next insertion sequence number for a conversation."""
        current = (
            self.session.query(func.max(Message.sequence))
            .filter(Message.conversation_id == conversation_id)
            .scalar()
        )
        return 0 if current is None else current + 1

    def insert(
        self,
        conversation_id: uuid.UUID,
        role: MessageRole,
        content: str,
        created_at: Optional[str] = None,
        source: MessageSource = MessageSource.DIRECT,
        episode_id: Optional[uuid.UUID] = None,
        tool_calls: Optional[list[dict[str, Any]]] = None,
        token_count: Optional[int] = None,
        sequence: Optional[int] = None,
    ) -> Message:
        """
        Insert a message, parsing its timestamp to an absolute instant.

        Args:
            conversation_id: Owning conversation
            role: Message author role
            content: Message text
            created_at: ISO-8601 timestamp from the source (defaults to now)
            source: DIRECT for real-time writes, IMPORT for transcript imports
            episode_id: Episode to associate, if any
            tool_calls: Tool invocations recorded on the message
            token_count: Token count reported by the source
            sequence: Insertion order (computed when omitted)

        Returns:
            The inserted Message
        """
        if created_at is None:
            created_at = format_iso(utc_now())
        if sequence is None:
            sequence = self.next_sequence(conversation_id)

        return self.create(
            conversation_id=conversation_id,
            role=MessageRole(role),
            content=content,
            created_at=created_at,
            created_at_ms=parse_epoch_ms(created_at),
            sequence=sequence,
            source=source,
            episode_id=episode_id,
            tool_calls=tool_calls,
            token_count=token_count,
        )

    def get_by_episode(
        self,
        episode_id: uuid.UUID,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> List[Message]:
        """
        Get messages linked to an episode in chronological order.

        Messages with unparseable timestamps sort last, then by insertion order.

        Args:
            episode_id: Episode UUID
            limit: Maximum number of messages
            offset: Number of messages to skip

        Returns:
            List of messages
        """
        query = (
            self.session.query(Message)
            .filter(Message.episode_id == episode_id)
            .order_by(
                Message.created_at_ms.is_(None),
                Message.created_at_ms.asc(),
                Message.sequence.asc(),
            )
            .offset(offset)
        )
        if limit is not None:
            query = query.limit(limit)
        return query.all()

    def count_by_episode(self, episode_id: uuid.UUID) -> int:
        """Count messages linked to an episode."""
        return (
            self.session.query(func.count(Message.id))
            .filter(Message.episode_id == episode_id)
            .scalar()
        )

    def get_by_time_range(
        self,
        conversation_id: uuid.UUID,
        start: datetime,
        end: datetime,
    ) -> List[Message]:
        """
        Get messages of a conversation whose instant falls within [start, end].

        Args:
            conversation_id: Conversation UUID
            start: Inclusive range start
            end: Inclusive range end

        Returns:
            Messages in chronological order
        """
        return (
            self.session.query(Message)
            .filter(
                Message.conversation_id == conversation_id,
                Message.created_at_ms >= to_epoch_ms(start),
                Message.created_at_ms <= to_epoch_ms(end),
            )
            .order_by(Message.created_at_ms.asc(), Message.sequence.asc())
            .all()
        )

    def link_unlinked_in_range(
        self,
        session_id: str,
        episode_id: uuid.UUID,
        start_ms: int,
        end_ms: int,
    ) -> int:
        """
        Link unassociated imported messages of a session to an episode.

        Only IMPORT-source messages with no episode and a parseable instant
        within [start_ms, end_ms] are touched.

        Args:
            session_id: Agent session identifier
            episode_id: Episode to link to
            start_ms: Inclusive range start (epoch ms)
            end_ms: Inclusive range end (epoch ms)

        Returns:
            Number of messages linked
        """
        conversation_ids = select(Conversation.id).where(
            Conversation.session_id == session_id
        )
        result = self.session.execute(
            update(Message)
            .where(
                Message.conversation_id.in_(conversation_ids),
                Message.source == MessageSource.IMPORT,
                Message.episode_id.is_(None),
                Message.created_at_ms.is_not(None),
                Message.created_at_ms >= start_ms,
                Message.created_at_ms <= end_ms,
            )
            .values(episode_id=episode_id)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount or 0
