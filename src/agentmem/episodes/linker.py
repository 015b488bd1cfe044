"""
Message linker.

Associates conversation messages with episodes through two mechanisms:

- Direct linking: a message persisted in real time is stamped with the
  session's active episode inside the same transaction as its insert.
- Time-range linking: messages imported later from an external transcript
  are stamped after the episode ends, by comparing absolute instants
  against [started_at, ended_at + grace window].

Directly persisted messages that found no active episode are never linked
retroactively.
"""

import logging
import uuid
from typing import Any, Iterable, List, Optional

from sqlalchemy.orm import sessionmaker

from agentmem.config import settings
from agentmem.db import connection
from agentmem.db.connection import session_scope
from agentmem.db.repositories import (
    ConversationRepository,
    EpisodeRepository,
    MessageRepository,
)
from agentmem.exceptions import NotFoundError
from agentmem.models.db import (
    Conversation,
    Episode,
    Message,
    MessageRole,
    MessageSource,
)
from agentmem.transcripts import TranscriptMessage
from agentmem.utils.timestamps import to_epoch_ms, utc_now

logger = logging.getLogger(__name__)


class MessageLinker:
    """Persists messages and maintains their episode association."""

    def __init__(
        self,
        session_factory: Optional[sessionmaker] = None,
        grace_window_seconds: Optional[float] = None,
    ):
        self.session_factory = session_factory or connection.SessionLocal
        if grace_window_seconds is None:
            grace_window_seconds = settings.link_grace_window_seconds
        self.grace_window_ms = int(grace_window_seconds * 1000)

    def ensure_conversation(
        self,
        session_id: str,
        conversation_id: Optional[uuid.UUID] = None,
        **kwargs: Any,
    ) -> Conversation:
        """
        Get or create a conversation for an agent session.

        Args:
            session_id: Agent session identifier
            conversation_id: Explicit conversation id (optional)
            **kwargs: project_id, agent_id, title for a new conversation

        Returns:
            Conversation instance (detached)
        """
        with session_scope(self.session_factory) as db:
            return ConversationRepository(db).get_or_create_for_session(
                session_id, conversation_id=conversation_id, **kwargs
            )

    def add_message(
        self,
        conversation_id: uuid.UUID,
        role: MessageRole | str,
        content: str,
        created_at: Optional[str] = None,
        tool_calls: Optional[list[dict[str, Any]]] = None,
        token_count: Optional[int] = None,
    ) -> Message:
        """
        Persist a message in real time, linking it to the active episode.

        The active-episode lookup and the insert share one transaction, so
        the message sees either the episode that was active at insert time
        or none at all.

        Args:
            conversation_id: Owning conversation
            role: user, assistant or system
            content: Message text
            created_at: ISO-8601 timestamp (defaults to now)
            tool_calls: Tool invocations recorded on the message
            token_count: Token count reported by the agent

        Returns:
            The persisted Message (episode_id is None when nothing was active)

        Raises:
            NotFoundError: If the conversation does not exist
        """
        with session_scope(self.session_factory) as db:
            conversation = ConversationRepository(db).get(conversation_id)
            if conversation is None:
                raise NotFoundError("Conversation", conversation_id)

            episode_id = EpisodeRepository(db).get_active_id(conversation.session_id)
            message = MessageRepository(db).insert(
                conversation_id=conversation_id,
                role=MessageRole(role),
                content=content,
                created_at=created_at,
                source=MessageSource.DIRECT,
                episode_id=episode_id,
                tool_calls=tool_calls,
                token_count=token_count,
            )

        if episode_id is None:
            logger.debug(
                f"Message {message.id} stored without episode "
                f"(no active episode in session {conversation.session_id})"
            )
        return message

    def import_messages(
        self,
        conversation_id: uuid.UUID,
        messages: Iterable[TranscriptMessage],
    ) -> int:
        """
        Bulk-insert messages read from an external transcript.

        Imported messages carry no episode association until a time-range
        link runs.

        Args:
            conversation_id: Owning conversation
            messages: Messages from a TranscriptSource

        Returns:
            Number of messages imported

        Raises:
            NotFoundError: If the conversation does not exist
        """
        imported = 0
        with session_scope(self.session_factory) as db:
            if ConversationRepository(db).get(conversation_id) is None:
                raise NotFoundError("Conversation", conversation_id)

            repo = MessageRepository(db)
            sequence = repo.next_sequence(conversation_id)
            for transcript_message in messages:
                repo.insert(
                    conversation_id=conversation_id,
                    role=MessageRole(transcript_message.role),
                    content=transcript_message.content,
                    created_at=transcript_message.timestamp,
                    source=MessageSource.IMPORT,
                    tool_calls=transcript_message.tool_calls,
                    token_count=transcript_message.token_count,
                    sequence=sequence,
                )
                sequence += 1
                imported += 1

        logger.info(f"Imported {imported} messages into conversation {conversation_id}")
        return imported

    def link_time_range(self, episode: Episode) -> int:
        """
        Link unassociated imported messages that fall within an episode.

        The range is [started_at, ended_at + grace window], compared on
        absolute instants. An episode that has not ended uses the current
        time as its end. The episode itself is not modified.

        Args:
            episode: The episode to link messages to

        Returns:
            Number of messages linked
        """
        start_ms = to_epoch_ms(episode.started_at)
        end_ms = to_epoch_ms(episode.ended_at or utc_now()) + self.grace_window_ms

        with session_scope(self.session_factory) as db:
            linked = MessageRepository(db).link_unlinked_in_range(
                session_id=episode.session_id,
                episode_id=episode.id,
                start_ms=start_ms,
                end_ms=end_ms,
            )

        if linked:
            logger.info(f"Linked {linked} imported messages to episode {episode.id}")
        return linked

    def import_and_link(
        self,
        episode_id: uuid.UUID,
        conversation_id: uuid.UUID,
        messages: Iterable[TranscriptMessage],
    ) -> int:
        """
        Import a late transcript and link it to an episode by time range.

        Args:
            episode_id: Episode to link to
            conversation_id: Conversation to import into
            messages: Messages from a TranscriptSource

        Returns:
            Number of messages linked

        Raises:
            NotFoundError: If the episode or conversation does not exist
        """
        with session_scope(self.session_factory) as db:
            episode = EpisodeRepository(db).get(episode_id)
            if episode is None:
                raise NotFoundError("Episode", episode_id)

        self.import_messages(conversation_id, messages)
        return self.link_time_range(episode)

    def get_messages_by_episode(
        self,
        episode_id: uuid.UUID,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> List[Message]:
        """
        Get the messages of an episode in chronological order.

        Args:
            episode_id: Episode UUID
            limit: Maximum number of messages
            offset: Number of messages to skip

        Returns:
            Messages ordered by instant (unparseable last), then insertion order
        """
        with session_scope(self.session_factory) as db:
            return MessageRepository(db).get_by_episode(
                episode_id, limit=limit, offset=offset
            )
