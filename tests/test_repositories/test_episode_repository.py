"""
Tests for EpisodeRepository.
"""

import uuid
from datetime import UTC, datetime, timedelta

import pytest
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from agentmem.db.repositories import EpisodeFilter, EpisodeRepository
from agentmem.models.db import EpisodeStatus, ScopeType


def _create(repo: EpisodeRepository, session_id: str, **kwargs):
    defaults = {
        "session_id": session_id,
        "scope_type": ScopeType.SESSION,
        "scope_id": session_id,
        "name": "episode",
        "status": EpisodeStatus.ACTIVE,
        "started_at": datetime.now(UTC),
    }
    defaults.update(kwargs)
    return repo.create(**defaults)


class TestEpisodeRepository:
    """Tests for episode CRUD, lookups and transitions."""

    def test_create_and_get(self, db_session: Session):
        repo = EpisodeRepository(db_session)

        episode = _create(repo, "s-1", name="Refactor parser")

        fetched = repo.get(episode.id)
        assert fetched is not None
        assert fetched.name == "Refactor parser"
        assert fetched.status == EpisodeStatus.ACTIVE
        assert fetched.ended_at is None

    def test_get_active(self, db_session: Session):
        repo = EpisodeRepository(db_session)
        _create(
            repo,
            "s-1",
            status=EpisodeStatus.COMPLETED,
            ended_at=datetime.now(UTC),
        )
        active = _create(repo, "s-1")

        assert repo.get_active("s-1").id == active.id
        assert repo.get_active_id("s-1") == active.id
        assert repo.get_active("other-session") is None

    def test_second_active_episode_violates_unique_index(self, db_session: Session):
        """The partial unique index allows only one active episode per session."""
        repo = EpisodeRepository(db_session)
        _create(repo, "s-1")
        db_session.commit()

        with pytest.raises(IntegrityError):
            _create(repo, "s-1")

    def test_terminal_episodes_do_not_conflict(self, db_session: Session):
        """Any number of terminal episodes may coexist with one active one."""
        repo = EpisodeRepository(db_session)
        for _ in range(3):
            _create(
                repo,
                "s-1",
                status=EpisodeStatus.CANCELLED,
                ended_at=datetime.now(UTC),
            )
        _create(repo, "s-1")
        db_session.commit()

        assert repo.count() == 4

    def test_set_status_only_from_active(self, db_session: Session):
        repo = EpisodeRepository(db_session)
        episode = _create(repo, "s-1")
        ended = datetime.now(UTC)

        assert repo.set_status(
            episode.id, EpisodeStatus.COMPLETED, ended_at=ended, outcome="done"
        )
        assert episode.status == EpisodeStatus.COMPLETED
        assert episode.outcome == "done"

        # A second transition finds no active row
        assert not repo.set_status(episode.id, EpisodeStatus.FAILED, ended_at=ended)
        db_session.refresh(episode)
        assert episode.status == EpisodeStatus.COMPLETED

    def test_set_status_unknown_id(self, db_session: Session):
        repo = EpisodeRepository(db_session)

        assert not repo.set_status(uuid.uuid4(), EpisodeStatus.COMPLETED)

    def test_list_with_filters(self, db_session: Session):
        repo = EpisodeRepository(db_session)
        base = datetime(2025, 1, 1, tzinfo=UTC)
        _create(repo, "s-1", started_at=base)
        _create(
            repo,
            "s-2",
            scope_type=ScopeType.PROJECT,
            scope_id="proj",
            status=EpisodeStatus.COMPLETED,
            started_at=base + timedelta(hours=1),
            ended_at=base + timedelta(hours=2),
        )
        _create(
            repo,
            "s-3",
            scope_type=ScopeType.PROJECT,
            scope_id="proj",
            started_at=base + timedelta(hours=3),
        )

        project = repo.list(EpisodeFilter(scope_type=ScopeType.PROJECT, scope_id="proj"))
        assert [e.session_id for e in project] == ["s-3", "s-2"]

        by_session = repo.list(EpisodeFilter(session_id="s-1"))
        assert len(by_session) == 1

        completed = repo.list(EpisodeFilter(status=EpisodeStatus.COMPLETED))
        assert [e.session_id for e in completed] == ["s-2"]

        assert len(repo.list()) == 3
        assert len(repo.list(EpisodeFilter(limit=2))) == 2
        assert [e.session_id for e in repo.list(EpisodeFilter(offset=2))] == ["s-1"]
