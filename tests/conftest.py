"""
Pytest configuration and fixtures for agentmem tests.

Every test gets its own SQLite database file so services that open their
own sessions (and background threads) see the same data.
"""

import os

# Keep tests away from user data, log directories and real LLM credentials
os.environ["DATABASE_URL"] = "sqlite:///:memory:"
os.environ["LOG_FILE_ENABLED"] = "false"
os.environ["LOG_CONSOLE_ENABLED"] = "false"
os.environ["LLM_LOGGING_ENABLED"] = "false"
os.environ["SCORING_ENABLED"] = "false"
os.environ["OPENAI_API_KEY"] = ""
os.environ["ANTHROPIC_API_KEY"] = ""
os.environ["OLLAMA_BASE_URL"] = ""

import uuid  # noqa: E402
from datetime import UTC, datetime, timedelta  # noqa: E402
from typing import Generator, Optional  # noqa: E402

import pytest  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import Session, sessionmaker  # noqa: E402

from agentmem.capture.pipeline import CapturePipeline, CapturePolicy  # noqa: E402
from agentmem.capture.types import (  # noqa: E402
    CandidateExperience,
    CaptureOptions,
    ExtractionResult,
    TurnData,
    TurnMetrics,
)
from agentmem.db.connection import init_db, session_scope  # noqa: E402
from agentmem.episodes.linker import MessageLinker  # noqa: E402
from agentmem.episodes.manager import EpisodeManager  # noqa: E402
from agentmem.models.db import (  # noqa: E402
    Conversation,
    Episode,
    EpisodeStatus,
    ScopeType,
)
from agentmem.scoring.trigger import RelevanceScoringTrigger  # noqa: E402


class StubExtractionProvider:
    """Extraction provider double that records calls."""

    def __init__(
        self,
        experiences: Optional[list[CandidateExperience]] = None,
        error: Optional[Exception] = None,
        skipped_duplicates: int = 0,
    ):
        self.experiences = experiences or []
        self.error = error
        self.skipped_duplicates = skipped_duplicates
        self.calls: list[tuple[list[TurnData], TurnMetrics, CaptureOptions]] = []

    def capture(
        self,
        turn_data: list[TurnData],
        metrics: TurnMetrics,
        options: CaptureOptions,
    ) -> ExtractionResult:
        self.calls.append((turn_data, metrics, options))
        if self.error is not None:
            raise self.error
        return ExtractionResult(
            experiences=list(self.experiences),
            skipped_duplicates=self.skipped_duplicates,
            processing_time_ms=1.0,
            provider="stub",
        )


def make_candidate(title: str, confidence: float) -> CandidateExperience:
    """Build a candidate experience with derived scenario/outcome text."""
    return CandidateExperience(
        title=title,
        scenario=f"Scenario for {title}",
        outcome=f"Outcome for {title}",
        content=f"Details about {title}",
        confidence=confidence,
    )


@pytest.fixture
def test_engine(tmp_path):
    """Create a file-backed SQLite engine shared across threads."""
    engine = create_engine(
        f"sqlite:///{tmp_path / 'agentmem-test.db'}",
        echo=False,
        connect_args={"check_same_thread": False, "timeout": 30},
    )
    init_db(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(test_engine) -> sessionmaker:
    """Session factory bound to the per-test database."""
    return sessionmaker(
        autocommit=False,
        autoflush=False,
        expire_on_commit=False,
        bind=test_engine,
    )


@pytest.fixture
def db_session(session_factory) -> Generator[Session, None, None]:
    """A session for repository-level tests (committed by the test as needed)."""
    session = session_factory()
    yield session
    session.rollback()
    session.close()


@pytest.fixture
def sample_conversation(session_factory) -> Conversation:
    """A conversation in session 'session-1' of project 'project-1'."""
    with session_scope(session_factory) as db:
        conversation = Conversation(
            id=uuid.uuid4(),
            session_id="session-1",
            project_id="project-1",
            agent_id="agent-1",
            title="Test conversation",
        )
        db.add(conversation)
    return conversation


@pytest.fixture
def ended_episode(session_factory) -> Episode:
    """A completed episode spanning 10:00:00Z to 10:30:00Z on 2025-01-01."""
    started = datetime(2025, 1, 1, 10, 0, 0, tzinfo=UTC)
    with session_scope(session_factory) as db:
        episode = Episode(
            id=uuid.uuid4(),
            session_id="session-1",
            scope_type=ScopeType.SESSION,
            scope_id="session-1",
            name="Fixed window",
            status=EpisodeStatus.COMPLETED,
            started_at=started,
            ended_at=started + timedelta(minutes=30),
            duration_ms=30 * 60 * 1000,
        )
        db.add(episode)
    return episode


@pytest.fixture
def stub_provider() -> StubExtractionProvider:
    """An extraction provider returning nothing by default."""
    return StubExtractionProvider()


@pytest.fixture
def disabled_trigger(session_factory) -> RelevanceScoringTrigger:
    """A scoring trigger that never dispatches."""
    return RelevanceScoringTrigger(session_factory=session_factory, enabled=False)


@pytest.fixture
def linker(session_factory) -> MessageLinker:
    """Message linker on the per-test database with a 5s grace window."""
    return MessageLinker(session_factory, grace_window_seconds=5)


@pytest.fixture
def pipeline(session_factory, stub_provider) -> CapturePipeline:
    """Capture pipeline using the stub provider and default policy."""
    return CapturePipeline(
        provider=stub_provider,
        session_factory=session_factory,
        policy=CapturePolicy(confidence_threshold=0.7, min_messages=2),
    )


@pytest.fixture
def manager(session_factory, linker, pipeline, disabled_trigger) -> EpisodeManager:
    """Episode manager wired to the per-test database and stub provider."""
    return EpisodeManager(
        session_factory=session_factory,
        linker=linker,
        pipeline=pipeline,
        trigger=disabled_trigger,
    )
