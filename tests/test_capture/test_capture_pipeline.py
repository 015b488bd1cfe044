"""
Tests for the capture pipeline run at episode completion.
"""

import json
from unittest.mock import Mock

import pytest
from conftest import StubExtractionProvider, make_candidate
from sqlalchemy.exc import OperationalError

from agentmem.capture.extractor import ExperienceExtractor, ProviderCascade
from agentmem.capture.pipeline import CapturePipeline, CapturePolicy
from agentmem.db.connection import session_scope
from agentmem.db.repositories import ExperienceRepository
from agentmem.exceptions import (
    ExtractionMalformedResponse,
    ExtractionProviderError,
    ExtractionTimeout,
    ExtractionUnavailable,
    PersistenceError,
)
from agentmem.models.db import EpisodeStatus, ExperienceSource
from agentmem.transcripts import JsonlTranscriptSource


@pytest.fixture
def active_episode(manager, linker, sample_conversation):
    """An active episode in session-1 with five linked messages."""
    episode = manager.begin("session-1", name="Refactor parser")
    for i in range(5):
        role = "user" if i % 2 == 0 else "assistant"
        linker.add_message(
            sample_conversation.id, role, f"message {i}", f"2025-01-01T10:0{i}:00Z"
        )
    return episode


def _stored(session_factory, episode_id):
    with session_scope(session_factory) as db:
        return ExperienceRepository(db).get_by_episode(episode_id)


class TestCapturePipeline:
    """End-to-end behaviour of complete -> capture."""

    def test_single_message_uses_fallback_without_calling_provider(
        self, manager, linker, sample_conversation, stub_provider, session_factory
    ):
        episode = manager.begin("session-1", name="Tiny")
        linker.add_message(sample_conversation.id, "user", "just one")

        _, outcome = manager.complete_with_outcome(episode.id)

        assert stub_provider.calls == []
        assert outcome.used_fallback is True
        stored = _stored(session_factory, episode.id)
        assert len(stored) == 1
        assert stored[0].source == ExperienceSource.FALLBACK
        assert stored[0].confidence == 0.5
        assert stored[0].content == "1 message exchanged during the episode."

    def test_threshold_filters_and_links_survivors(
        self, manager, active_episode, stub_provider, session_factory
    ):
        stub_provider.experiences = [
            make_candidate("Use a tokenizer table", 0.9),
            make_candidate("Test edge cases first", 0.8),
            make_candidate("Pin the grammar version", 0.7),
            make_candidate("Maybe rename things", 0.4),
        ]

        _, outcome = manager.complete_with_outcome(active_episode.id)

        assert outcome.used_fallback is False
        assert outcome.skipped_low_confidence == 1
        assert outcome.provider == "stub"
        stored = _stored(session_factory, active_episode.id)
        assert len(stored) == 3
        assert all(e.source_episode_id == active_episode.id for e in stored)
        assert all(e.source == ExperienceSource.OBSERVATION for e in stored)
        assert all(e.scope_id == "session-1" for e in stored)

    def test_provider_receives_ordered_turns_and_options(
        self, manager, active_episode, stub_provider
    ):
        manager.complete(active_episode.id)

        turn_data, metrics, options = stub_provider.calls[0]
        assert [t.content for t in turn_data] == [f"message {i}" for i in range(5)]
        assert metrics.turn_count == 5
        assert metrics.user_turn_count == 3
        assert options.session_id == "session-1"
        assert options.project_id == "project-1"
        assert options.agent_id == "agent-1"
        assert options.episode_id == active_episode.id
        assert options.auto_store is False

    @pytest.mark.parametrize(
        "error, reason",
        [
            (ExtractionTimeout("slow"), "timeout"),
            (ExtractionMalformedResponse("not json"), "malformed_response"),
            (ExtractionUnavailable("no provider"), "unavailable"),
            (ExtractionProviderError("client bug"), "provider_error"),
        ],
    )
    def test_extraction_errors_fall_back(
        self, manager, active_episode, stub_provider, session_factory, error, reason
    ):
        stub_provider.error = error

        completed, outcome = manager.complete_with_outcome(active_episode.id)

        assert completed.status.value == "completed"
        assert outcome.used_fallback is True
        assert outcome.fallback_reason == reason
        stored = _stored(session_factory, active_episode.id)
        assert len(stored) == 1
        assert stored[0].title == "Episode: Refactor parser"

    def test_empty_cascade_is_unavailable(self, session_factory, active_episode, manager):
        pipeline = CapturePipeline(
            provider=ExperienceExtractor(cascade=ProviderCascade([])),
            session_factory=session_factory,
        )
        manager._pipeline = pipeline

        _, outcome = manager.complete_with_outcome(active_episode.id)

        assert outcome.used_fallback is True
        assert outcome.fallback_reason == "unavailable"

    def test_all_below_threshold_falls_back(
        self, manager, active_episode, stub_provider, session_factory
    ):
        stub_provider.experiences = [make_candidate("Weak", 0.2), make_candidate("Weaker", 0.1)]

        _, outcome = manager.complete_with_outcome(active_episode.id)

        assert outcome.used_fallback is True
        assert outcome.skipped_low_confidence == 2
        assert outcome.provider == "stub"
        assert len(_stored(session_factory, active_episode.id)) == 1

    def test_duplicates_within_batch(self, manager, active_episode, stub_provider, session_factory):
        stub_provider.experiences = [
            make_candidate("Same lesson", 0.9),
            make_candidate("Same lesson", 0.95),
        ]

        _, outcome = manager.complete_with_outcome(active_episode.id)

        assert outcome.skipped_duplicates == 1
        assert len(_stored(session_factory, active_episode.id)) == 1

    def test_duplicates_of_stored_session_experiences(
        self, session_factory, stub_provider, manager, linker, sample_conversation
    ):
        stub_provider.experiences = [make_candidate("Recurring lesson", 0.9)]
        first = manager.begin("session-1")
        linker.add_message(sample_conversation.id, "user", "a")
        linker.add_message(sample_conversation.id, "assistant", "b")
        manager.complete(first.id)

        second = manager.begin("session-1")
        linker.add_message(sample_conversation.id, "user", "c")
        linker.add_message(sample_conversation.id, "assistant", "d")
        _, outcome = manager.complete_with_outcome(second.id)

        assert outcome.skipped_duplicates == 1
        assert outcome.used_fallback is True

    def test_provider_reported_duplicates_are_counted(self, manager, active_episode, stub_provider):
        stub_provider.experiences = [make_candidate("Kept", 0.9)]
        stub_provider.skipped_duplicates = 2

        _, outcome = manager.complete_with_outcome(active_episode.id)

        assert outcome.skipped_duplicates == 2

    def test_duplicates_allowed_when_policy_disabled(self, session_factory, active_episode, manager):
        provider = StubExtractionProvider(
            experiences=[make_candidate("Twice", 0.9), make_candidate("Twice", 0.9)]
        )
        manager._pipeline = CapturePipeline(
            provider=provider,
            session_factory=session_factory,
            policy=CapturePolicy(confidence_threshold=0.7, min_messages=2, skip_duplicates=False),
        )

        _, outcome = manager.complete_with_outcome(active_episode.id)

        assert len(outcome.experiences) == 2
        assert outcome.skipped_duplicates == 0

    def test_provider_focus_areas_come_from_policy(
        self, session_factory, active_episode, manager, stub_provider
    ):
        manager._pipeline = CapturePipeline(
            provider=stub_provider,
            session_factory=session_factory,
            policy=CapturePolicy(focus_areas=["migrations", "testing"]),
        )

        manager.complete(active_episode.id)

        _, _, options = stub_provider.calls[0]
        assert options.focus_areas == ["migrations", "testing"]


class TestCaptureFaultIsolation:
    """Faults after the status change still end in at least one experience."""

    @pytest.mark.parametrize(
        "error",
        [RuntimeError("provider bug"), IndexError("list index out of range"), KeyError("x")],
    )
    def test_unexpected_provider_exception_falls_back(
        self, manager, active_episode, stub_provider, session_factory, error
    ):
        stub_provider.error = error

        completed, outcome = manager.complete_with_outcome(active_episode.id)

        assert completed.status == EpisodeStatus.COMPLETED
        assert outcome.used_fallback is True
        assert outcome.fallback_reason == "provider_error"
        stored = _stored(session_factory, active_episode.id)
        assert len(stored) == 1
        assert stored[0].source == ExperienceSource.FALLBACK

    def test_cascade_skips_a_crashing_provider(
        self, session_factory, active_episode, manager
    ):
        broken = Mock(provider_name="broken", model_name="broken-model")
        broken.complete.side_effect = IndexError("list index out of range")
        working = Mock(provider_name="working", model_name="working-model")
        working.calculate_cost.return_value = 0.0
        working.complete.return_value = Mock(
            content=(
                '{"experiences": [{"title": "Retry with backoff", "scenario": "s", '
                '"outcome": "o", "confidence": 0.9}]}'
            ),
            prompt_tokens=10,
            completion_tokens=5,
            total_tokens=15,
        )
        manager._pipeline = CapturePipeline(
            provider=ExperienceExtractor(cascade=ProviderCascade([broken, working])),
            session_factory=session_factory,
        )

        _, outcome = manager.complete_with_outcome(active_episode.id)

        assert outcome.used_fallback is False
        assert outcome.provider == "working"
        assert [e.title for e in _stored(session_factory, active_episode.id)] == [
            "Retry with backoff"
        ]

    def test_imported_malformed_tool_calls_do_not_break_capture(
        self, manager, linker, sample_conversation, stub_provider, session_factory, tmp_path
    ):
        episode = manager.begin("session-1", name="Odd transcript")
        started = manager.get(episode.id).started_at.isoformat()
        path = tmp_path / "odd.jsonl"
        path.write_text(
            json.dumps(
                {"role": "assistant", "content": "ran it", "timestamp": started,
                 "tool_calls": {"name": "Bash"}}
            )
            + "\n"
            + json.dumps({"role": "user", "content": "thanks", "timestamp": started})
            + "\n"
        )
        messages = list(JsonlTranscriptSource(path).read_messages("session-1"))
        linker.import_messages(sample_conversation.id, messages)
        stub_provider.experiences = [make_candidate("Read the tool output", 0.9)]

        _, outcome = manager.complete_with_outcome(episode.id)

        assert outcome.used_fallback is False
        turn_data, metrics, _ = stub_provider.calls[0]
        assert metrics.tool_call_count == 0
        assert all(turn.tool_calls is None for turn in turn_data)

    def test_linking_failure_does_not_block_capture(
        self, manager, active_episode, stub_provider, session_factory
    ):
        manager.linker.link_time_range = Mock(side_effect=OperationalError("UPDATE", {}, None))
        stub_provider.experiences = [make_candidate("Still captured", 0.9)]

        completed, outcome = manager.complete_with_outcome(active_episode.id)

        assert completed.status == EpisodeStatus.COMPLETED
        assert outcome.used_fallback is False
        assert len(_stored(session_factory, active_episode.id)) == 1

    def test_message_read_failure_is_a_persistence_error(self, session_factory, ended_episode):
        broken_factory = Mock(side_effect=OperationalError("SELECT", {}, None))
        pipeline = CapturePipeline(
            provider=StubExtractionProvider(),
            session_factory=broken_factory,
            fallback=Mock(),
            policy=CapturePolicy(),
        )

        with pytest.raises(PersistenceError) as exc_info:
            pipeline.run(ended_episode)

        assert exc_info.value.operation == "episode message read"
