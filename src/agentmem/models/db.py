"""
SQLAlchemy database models for agentmem.

These models represent the schema for episodes, the conversation messages
linked to them, and the experiences captured when an episode completes.
"""

import enum
import uuid
from datetime import datetime
from typing import Any, Optional

from sqlalchemy import (
    JSON,
    BigInteger,
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    text,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship
from sqlalchemy.sql import func


class Base(DeclarativeBase):
    """Base class for all database models."""

    pass


class ScopeType(str, enum.Enum):
    """Visibility scope of an episode or experience."""

    SESSION = "session"  # Visible only within the originating session
    PROJECT = "project"  # Shared across sessions of one project
    GLOBAL = "global"  # Shared everywhere


class EpisodeStatus(str, enum.Enum):
    """Lifecycle state of an episode. Everything but ACTIVE is terminal."""

    ACTIVE = "active"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self is not EpisodeStatus.ACTIVE


class EpisodeOutcomeType(str, enum.Enum):
    """How an episode ended, as judged by the caller."""

    SUCCESS = "success"
    PARTIAL = "partial"
    FAILURE = "failure"
    ABANDONED = "abandoned"


class EpisodeEventType(str, enum.Enum):
    """Kind of an episode event."""

    # Written automatically by lifecycle transitions
    STARTED = "started"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    # Recorded by the agent while the episode runs
    CHECKPOINT = "checkpoint"
    DECISION = "decision"
    ACTION = "action"
    ERROR = "error"
    NOTE = "note"


class MessageRole(str, enum.Enum):
    """Role of the message author."""

    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"


class MessageSource(str, enum.Enum):
    """How a message entered the store."""

    DIRECT = "direct"  # Persisted in real time by the agent
    IMPORT = "import"  # Imported later from an external transcript


class ExperienceSource(str, enum.Enum):
    """Provenance of an experience."""

    OBSERVATION = "observation"  # Extracted by an LLM provider
    FALLBACK = "fallback"  # Deterministic placeholder


def _enum_column(enum_cls: type[enum.Enum]) -> Enum:
    return Enum(
        enum_cls,
        native_enum=False,
        values_callable=lambda x: [e.value for e in x],
    )


class Conversation(Base):
    """A conversation thread within an agent session."""

    __tablename__ = "conversations"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    session_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    project_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    agent_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    title: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    # Relationships
    messages: Mapped[list["Message"]] = relationship(
        back_populates="conversation", cascade="all, delete-orphan"
    )

    def __repr__(self) -> str:
        return f"<Conversation(id={self.id}, session_id={self.session_id!r})>"


class Episode(Base):
    """A bounded unit of agent work within a session."""

    __tablename__ = "episodes"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    session_id: Mapped[str] = mapped_column(String(255), nullable=False)

    scope_type: Mapped[ScopeType] = mapped_column(
        _enum_column(ScopeType), nullable=False, default=ScopeType.SESSION
    )
    scope_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    name: Mapped[str] = mapped_column(String(500), nullable=False, default="")
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    status: Mapped[EpisodeStatus] = mapped_column(
        _enum_column(EpisodeStatus), nullable=False, default=EpisodeStatus.ACTIVE
    )
    outcome: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    outcome_type: Mapped[Optional[EpisodeOutcomeType]] = mapped_column(
        _enum_column(EpisodeOutcomeType), nullable=True
    )

    started_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )
    ended_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    duration_ms: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    # Relationships
    messages: Mapped[list["Message"]] = relationship(back_populates="episode")
    experiences: Mapped[list["Experience"]] = relationship(
        back_populates="source_episode"
    )
    events: Mapped[list["EpisodeEvent"]] = relationship(
        back_populates="episode",
        cascade="all, delete-orphan",
        order_by="EpisodeEvent.sequence_num",
    )

    __table_args__ = (
        Index("ix_episodes_session_status", "session_id", "status"),
        Index("ix_episodes_scope", "scope_type", "scope_id"),
        # At most one active episode per session
        Index(
            "uq_episodes_one_active_per_session",
            "session_id",
            unique=True,
            sqlite_where=text("status = 'active'"),
            postgresql_where=text("status = 'active'"),
        ),
    )

    def __repr__(self) -> str:
        return (
            f"<Episode(id={self.id}, session_id={self.session_id!r}, "
            f"status={self.status.value if self.status else None!r})>"
        )


class EpisodeEvent(Base):
    """A timestamped entry in an episode's history."""

    __tablename__ = "episode_events"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    episode_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("episodes.id", ondelete="CASCADE"),
        nullable=False,
    )

    event_type: Mapped[EpisodeEventType] = mapped_column(
        _enum_column(EpisodeEventType), nullable=False
    )
    name: Mapped[str] = mapped_column(String(500), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Optional reference to a related entity (file, experience, tool run...)
    entry_type: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    entry_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    data: Mapped[Optional[dict[str, Any]]] = mapped_column(JSON, nullable=True)

    occurred_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )
    sequence_num: Mapped[int] = mapped_column(Integer, nullable=False)

    # Relationships
    episode: Mapped["Episode"] = relationship(back_populates="events")

    __table_args__ = (
        Index(
            "uq_episode_events_sequence", "episode_id", "sequence_num", unique=True
        ),
    )

    def __repr__(self) -> str:
        return (
            f"<EpisodeEvent(episode_id={self.episode_id}, "
            f"seq={self.sequence_num}, type={self.event_type!r})>"
        )


class Message(Base):
    """A single conversation message, optionally linked to an episode."""

    __tablename__ = "messages"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    conversation_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("conversations.id", ondelete="CASCADE"),
        nullable=False,
    )

    role: Mapped[MessageRole] = mapped_column(_enum_column(MessageRole), nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False, default="")

    # Source timestamp kept verbatim; created_at_ms is the parsed instant
    created_at: Mapped[str] = mapped_column(String(64), nullable=False)
    created_at_ms: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True)
    sequence: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    source: Mapped[MessageSource] = mapped_column(
        _enum_column(MessageSource), nullable=False, default=MessageSource.DIRECT
    )
    episode_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("episodes.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    tool_calls: Mapped[Optional[list[dict[str, Any]]]] = mapped_column(
        JSON, nullable=True
    )
    token_count: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    # Written by the relevance scorer
    relevance_score: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    relevance_category: Mapped[Optional[str]] = mapped_column(
        String(20), nullable=True
    )

    # Relationships
    conversation: Mapped["Conversation"] = relationship(back_populates="messages")
    episode: Mapped[Optional["Episode"]] = relationship(back_populates="messages")

    __table_args__ = (
        Index("ix_messages_conversation_time", "conversation_id", "created_at_ms"),
        Index("ix_messages_conversation_sequence", "conversation_id", "sequence"),
    )

    def __repr__(self) -> str:
        return (
            f"<Message(id={self.id}, role={self.role.value if self.role else None!r}, "
            f"episode_id={self.episode_id})>"
        )


class Experience(Base):
    """A reusable lesson captured from a completed episode."""

    __tablename__ = "experiences"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )

    scope_type: Mapped[ScopeType] = mapped_column(
        _enum_column(ScopeType), nullable=False, default=ScopeType.SESSION
    )
    scope_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    title: Mapped[str] = mapped_column(String(500), nullable=False)
    scenario: Mapped[str] = mapped_column(Text, nullable=False)
    outcome: Mapped[str] = mapped_column(Text, nullable=False)
    content: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    pattern: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    applicability: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    confidence: Mapped[float] = mapped_column(Float, nullable=False, default=0.5)
    trajectory: Mapped[Optional[list[dict[str, Any]]]] = mapped_column(
        JSON, nullable=True
    )
    source: Mapped[ExperienceSource] = mapped_column(
        _enum_column(ExperienceSource),
        nullable=False,
        default=ExperienceSource.OBSERVATION,
    )
    content_hash: Mapped[str] = mapped_column(String(64), nullable=False, index=True)

    session_id: Mapped[Optional[str]] = mapped_column(
        String(255), nullable=True, index=True
    )
    created_by: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    source_episode_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("episodes.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    # Relationships
    source_episode: Mapped[Optional["Episode"]] = relationship(
        back_populates="experiences"
    )

    def __repr__(self) -> str:
        return f"<Experience(id={self.id}, title={self.title!r}, source={self.source!r})>"
