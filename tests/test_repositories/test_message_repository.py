"""
Tests for MessageRepository.
"""

import uuid
from datetime import UTC, datetime

from sqlalchemy.orm import Session

from agentmem.db.repositories import ConversationRepository, MessageRepository
from agentmem.models.db import MessageRole, MessageSource


class TestMessageRepository:
    """Tests for message inserts and queries."""

    def _conversation(self, db_session: Session, session_id: str = "s-1"):
        return ConversationRepository(db_session).create(session_id=session_id)

    def test_insert_parses_timestamp_and_keeps_original(self, db_session: Session):
        conversation = self._conversation(db_session)
        repo = MessageRepository(db_session)

        message = repo.insert(
            conversation.id,
            MessageRole.USER,
            "hello",
            created_at="2025-01-01T15:30:00+05:30",
        )

        assert message.created_at == "2025-01-01T15:30:00+05:30"
        assert message.created_at_ms == 1735725600000
        assert message.source == MessageSource.DIRECT
        assert message.episode_id is None

    def test_insert_defaults_timestamp_to_now(self, db_session: Session):
        conversation = self._conversation(db_session)

        message = MessageRepository(db_session).insert(
            conversation.id, MessageRole.ASSISTANT, "hi"
        )

        assert message.created_at.endswith("Z")
        assert message.created_at_ms is not None

    def test_insert_unparseable_timestamp(self, db_session: Session):
        conversation = self._conversation(db_session)

        message = MessageRepository(db_session).insert(
            conversation.id, MessageRole.USER, "x", created_at="garbage"
        )

        assert message.created_at == "garbage"
        assert message.created_at_ms is None

    def test_sequence_increments_per_conversation(self, db_session: Session):
        first = self._conversation(db_session, "s-1")
        second = self._conversation(db_session, "s-2")
        repo = MessageRepository(db_session)

        a = repo.insert(first.id, MessageRole.USER, "a")
        b = repo.insert(first.id, MessageRole.USER, "b")
        c = repo.insert(second.id, MessageRole.USER, "c")

        assert (a.sequence, b.sequence, c.sequence) == (0, 1, 0)

    def test_get_by_time_range(self, db_session: Session):
        conversation = self._conversation(db_session)
        repo = MessageRepository(db_session)
        repo.insert(conversation.id, MessageRole.USER, "before", "2025-01-01T09:59:59Z")
        repo.insert(conversation.id, MessageRole.USER, "start", "2025-01-01T10:00:00Z")
        repo.insert(
            conversation.id, MessageRole.USER, "offset", "2025-01-01T16:00:00+05:30"
        )
        repo.insert(conversation.id, MessageRole.USER, "after", "2025-01-01T10:30:01Z")
        repo.insert(conversation.id, MessageRole.USER, "broken", "n/a")

        messages = repo.get_by_time_range(
            conversation.id,
            datetime(2025, 1, 1, 10, 0, tzinfo=UTC),
            datetime(2025, 1, 1, 10, 30, tzinfo=UTC),
        )

        assert [m.content for m in messages] == ["start", "offset"]

    def test_link_unlinked_in_range_only_touches_imports(self, db_session: Session):
        conversation = self._conversation(db_session)
        other = self._conversation(db_session, "s-other")
        repo = MessageRepository(db_session)
        episode_id = uuid.uuid4()

        imported = repo.insert(
            conversation.id,
            MessageRole.USER,
            "imported",
            "2025-01-01T10:00:00Z",
            source=MessageSource.IMPORT,
        )
        direct = repo.insert(
            conversation.id, MessageRole.USER, "direct", "2025-01-01T10:00:00Z"
        )
        other_session = repo.insert(
            other.id,
            MessageRole.USER,
            "elsewhere",
            "2025-01-01T10:00:00Z",
            source=MessageSource.IMPORT,
        )

        linked = repo.link_unlinked_in_range(
            "s-1", episode_id, 1735725600000, 1735725600000
        )

        assert linked == 1
        db_session.expire_all()
        assert imported.episode_id == episode_id
        assert direct.episode_id is None
        assert other_session.episode_id is None
