"""
Tests for the agentmem CLI.
"""

import json
import uuid
from unittest.mock import Mock, patch

import pytest
from typer.testing import CliRunner

from agentmem.capture.types import CaptureOutcome
from agentmem.cli import app
from agentmem.exceptions import ActiveEpisodeConflictError, AlreadyTerminalError
from agentmem.models.db import (
    Episode,
    EpisodeEventType,
    EpisodeOutcomeType,
    EpisodeStatus,
    Experience,
    ExperienceSource,
    MessageRole,
    ScopeType,
)

runner = CliRunner(env={"NO_COLOR": "1", "TERM": "dumb"})


def _episode(status=EpisodeStatus.ACTIVE, name="Fix CI") -> Episode:
    return Episode(
        id=uuid.uuid4(),
        session_id="session-1",
        scope_type=ScopeType.SESSION,
        scope_id="session-1",
        name=name,
        status=status,
        duration_ms=1500 if status.is_terminal else None,
    )


@pytest.fixture
def mock_manager():
    manager = Mock()
    with patch("agentmem.cli._get_manager", return_value=manager):
        yield manager


@pytest.fixture
def mock_linker():
    linker = Mock()
    with patch("agentmem.cli._get_linker", return_value=linker):
        yield linker


class TestEpisodeCommands:
    """Tests for the episode sub-commands."""

    def test_begin(self, mock_manager):
        episode = _episode()
        mock_manager.begin.return_value = episode

        result = runner.invoke(app, ["episode", "begin", "session-1", "--name", "Fix CI"])

        assert result.exit_code == 0
        assert str(episode.id) in result.stdout
        hint = mock_manager.begin.call_args.kwargs["scope_hint"]
        assert hint.scope_type is None

    def test_begin_with_project_scope(self, mock_manager):
        mock_manager.begin.return_value = _episode()

        result = runner.invoke(
            app, ["episode", "begin", "session-1", "--scope", "project", "--project", "p-1"]
        )

        assert result.exit_code == 0
        hint = mock_manager.begin.call_args.kwargs["scope_hint"]
        assert hint.scope_type == ScopeType.PROJECT
        assert hint.project_id == "p-1"

    def test_begin_unknown_scope(self, mock_manager):
        result = runner.invoke(app, ["episode", "begin", "session-1", "--scope", "team"])

        assert result.exit_code == 1
        assert "Unknown scope type" in result.stdout
        mock_manager.begin.assert_not_called()

    def test_begin_conflict(self, mock_manager):
        mock_manager.begin.side_effect = ActiveEpisodeConflictError("session-1")

        result = runner.invoke(app, ["episode", "begin", "session-1"])

        assert result.exit_code == 1
        assert "already has an active episode" in result.stdout

    @patch("agentmem.scoring.dispatcher.shutdown_dispatcher")
    def test_complete_reports_capture(self, mock_shutdown, mock_manager):
        episode = _episode(EpisodeStatus.COMPLETED)
        experience = Experience(
            title="Pin tool versions", confidence=0.9, source=ExperienceSource.OBSERVATION
        )
        mock_manager.complete_with_outcome.return_value = (
            episode,
            CaptureOutcome(
                episode_id=episode.id,
                experiences=[experience],
                skipped_low_confidence=2,
                provider="openai",
            ),
        )

        result = runner.invoke(app, ["episode", "complete", str(episode.id)])

        assert result.exit_code == 0
        assert "Experiences: 1 via openai" in result.stdout
        assert "Pin tool versions" in result.stdout
        assert "Skipped (low confidence): 2" in result.stdout
        mock_shutdown.assert_called_once_with(wait=True)

    @patch("agentmem.scoring.dispatcher.shutdown_dispatcher")
    def test_complete_fallback(self, mock_shutdown, mock_manager):
        episode = _episode(EpisodeStatus.COMPLETED)
        mock_manager.complete_with_outcome.return_value = (
            episode,
            CaptureOutcome(episode_id=episode.id, used_fallback=True, fallback_reason="timeout"),
        )

        result = runner.invoke(app, ["episode", "complete", str(episode.id)])

        assert result.exit_code == 0
        assert "Fallback experience recorded" in result.stdout
        assert "timeout" in result.stdout

    @patch("agentmem.scoring.dispatcher.shutdown_dispatcher")
    def test_complete_already_terminal(self, mock_shutdown, mock_manager):
        episode_id = uuid.uuid4()
        mock_manager.complete_with_outcome.side_effect = AlreadyTerminalError(
            episode_id, "completed"
        )

        result = runner.invoke(app, ["episode", "complete", str(episode_id)])

        assert result.exit_code == 1
        assert "already terminal" in result.stdout

    @patch("agentmem.scoring.dispatcher.shutdown_dispatcher")
    def test_complete_with_outcome_type_and_transcript(
        self, mock_shutdown, mock_manager, tmp_path
    ):
        episode = _episode(EpisodeStatus.COMPLETED)
        mock_manager.complete_with_outcome.return_value = (
            episode,
            CaptureOutcome(episode_id=episode.id, used_fallback=True, fallback_reason="timeout"),
        )
        path = tmp_path / "t.jsonl"
        path.write_text("")

        result = runner.invoke(
            app,
            [
                "episode",
                "complete",
                str(episode.id),
                "--outcome-type",
                "partial",
                "--transcript",
                str(path),
            ],
        )

        assert result.exit_code == 0
        kwargs = mock_manager.complete_with_outcome.call_args.kwargs
        assert kwargs["outcome_type"] == EpisodeOutcomeType.PARTIAL
        assert kwargs["transcript_source"].path == path

    def test_complete_unknown_outcome_type(self, mock_manager):
        result = runner.invoke(
            app, ["episode", "complete", str(uuid.uuid4()), "--outcome-type", "meh"]
        )

        assert result.exit_code == 1
        assert "Unknown outcome type" in result.stdout
        mock_manager.complete_with_outcome.assert_not_called()

    def test_complete_invalid_uuid(self, mock_manager):
        result = runner.invoke(app, ["episode", "complete", "not-a-uuid"])

        assert result.exit_code == 1
        assert "Invalid episode id" in result.stdout

    def test_cancel(self, mock_manager):
        episode = _episode(EpisodeStatus.CANCELLED)
        mock_manager.cancel.return_value = episode

        result = runner.invoke(app, ["episode", "cancel", str(episode.id), "--reason", "stop"])

        assert result.exit_code == 0
        mock_manager.cancel.assert_called_once_with(episode.id, "stop")

    def test_active_none(self, mock_manager):
        mock_manager.get_active.return_value = None

        result = runner.invoke(app, ["episode", "active", "session-1"])

        assert result.exit_code == 0
        assert "No active episode" in result.stdout

    def test_event(self, mock_manager):
        episode_id = uuid.uuid4()
        mock_manager.add_event.return_value = Mock(sequence_num=3)

        result = runner.invoke(
            app, ["episode", "event", str(episode_id), "Chose SQLite", "--type", "decision"]
        )

        assert result.exit_code == 0
        assert "Event #3 recorded" in result.stdout
        args = mock_manager.add_event.call_args.args
        assert args == (episode_id, EpisodeEventType.DECISION, "Chose SQLite")

    def test_event_unknown_type(self, mock_manager):
        result = runner.invoke(
            app, ["episode", "event", str(uuid.uuid4()), "x", "--type", "party"]
        )

        assert result.exit_code == 1
        assert "Unknown event type" in result.stdout
        mock_manager.add_event.assert_not_called()

    def test_timeline_empty(self, mock_manager):
        mock_manager.get_timeline.return_value = []

        result = runner.invoke(app, ["episode", "timeline", "session-1"])

        assert result.exit_code == 0
        assert "No episodes in session session-1" in result.stdout

    def test_list(self, mock_manager):
        mock_manager.list.return_value = [_episode(EpisodeStatus.COMPLETED, name="Fix CI")]

        result = runner.invoke(app, ["episode", "list", "--status", "completed"])

        assert result.exit_code == 0
        assert "Episodes" in result.stdout
        assert mock_manager.list.call_args.args[0].status == EpisodeStatus.COMPLETED


class TestMessageAndTranscriptCommands:
    """Tests for message add and transcript import."""

    def test_message_add(self, mock_linker):
        episode_id = uuid.uuid4()
        mock_linker.ensure_conversation.return_value = Mock(id=uuid.uuid4())
        mock_linker.add_message.return_value = Mock(id=uuid.uuid4(), episode_id=episode_id)

        result = runner.invoke(app, ["message", "add", "session-1", "user", "hello"])

        assert result.exit_code == 0
        assert str(episode_id) in result.stdout
        assert mock_linker.add_message.call_args.args[1] == MessageRole.USER

    def test_message_add_bad_role_creates_nothing(self, mock_linker):
        result = runner.invoke(app, ["message", "add", "session-1", "robot", "beep"])

        assert result.exit_code == 1
        assert "Unknown role" in result.stdout
        mock_linker.ensure_conversation.assert_not_called()
        mock_linker.add_message.assert_not_called()

    def test_transcript_import_and_link(self, mock_linker, tmp_path):
        path = tmp_path / "t.jsonl"
        path.write_text(
            json.dumps({"role": "user", "content": "hi", "timestamp": "2025-01-01T10:00:00Z"})
            + "\n"
        )
        episode_id = uuid.uuid4()
        mock_linker.ensure_conversation.return_value = Mock(id=uuid.uuid4())
        mock_linker.import_and_link.return_value = 1

        result = runner.invoke(
            app,
            ["transcript", "import", str(path), "--session", "session-1", "--episode", str(episode_id)],
        )

        assert result.exit_code == 0
        assert "Imported 1 messages, linked 1" in result.stdout
        assert mock_linker.import_and_link.call_args.args[0] == episode_id

    def test_transcript_missing_file(self, mock_linker, tmp_path):
        result = runner.invoke(
            app, ["transcript", "import", str(tmp_path / "none.jsonl"), "--session", "s"]
        )

        assert result.exit_code == 1
        assert "Path not found" in result.stdout


class TestShowCommand:
    """Tests for show."""

    def test_show_json(self, mock_manager, manager, linker, sample_conversation, session_factory):
        from agentmem.db.connection import session_scope

        episode = manager.begin("session-1", name="Fix CI")
        linker.add_message(sample_conversation.id, "user", "one")
        manager.complete(episode.id)
        mock_manager.get.return_value = manager.get(episode.id)

        with patch(
            "agentmem.db.connection.db_session",
            lambda: session_scope(session_factory),
        ):
            result = runner.invoke(app, ["show", str(episode.id), "--json"])

        assert result.exit_code == 0
        payload = json.loads(result.stdout)
        assert payload["status"] == "completed"
        assert payload["message_count"] == 1
        assert payload["experiences"][0]["source"] == "fallback"
