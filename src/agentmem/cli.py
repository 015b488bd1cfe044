"""
agentmem CLI - operator commands for the episodic memory store.

Thin wrappers over the episode manager and message linker, useful for
scripting and for inspecting what an agent recorded.
"""

import json
import logging
import uuid
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from agentmem.exceptions import AgentMemError
from agentmem.logging_config import setup_logging

app = typer.Typer(
    name="agentmem",
    help="agentmem - episodic memory for coding agents",
    no_args_is_help=True,
)
episode_app = typer.Typer(help="Manage episodes", no_args_is_help=True)
message_app = typer.Typer(help="Record messages", no_args_is_help=True)
transcript_app = typer.Typer(help="Import external transcripts", no_args_is_help=True)
app.add_typer(episode_app, name="episode")
app.add_typer(message_app, name="message")
app.add_typer(transcript_app, name="transcript")

console = Console()


@app.callback()
def main() -> None:
    """Configure logging for every command."""
    try:
        setup_logging(context="cli")
    except PermissionError:
        logging.basicConfig(level=logging.INFO)


def _get_manager():
    from agentmem.episodes.manager import EpisodeManager

    return EpisodeManager()


def _get_linker():
    from agentmem.episodes.linker import MessageLinker

    return MessageLinker()


def _parse_uuid(value: str, label: str) -> uuid.UUID:
    try:
        return uuid.UUID(value)
    except ValueError:
        console.print(f"[bold red]Error:[/bold red] Invalid {label}: {value}")
        raise typer.Exit(1)


def _fail(error: AgentMemError) -> None:
    console.print(f"[bold red]Error:[/bold red] {error}")
    raise typer.Exit(1)


@app.command("init-db")
def init_db_command() -> None:
    """Create database tables and indexes."""
    from agentmem.db.connection import init_db

    init_db()
    console.print("[green]✓ Database initialized[/green]")


@episode_app.command("begin")
def episode_begin(
    session_id: str = typer.Argument(..., help="Agent session id"),
    name: str = typer.Option("", help="Episode name"),
    scope: Optional[str] = typer.Option(
        None, help="Scope type: session, project or global"
    ),
    scope_id: Optional[str] = typer.Option(None, help="Explicit scope id"),
    project: Optional[str] = typer.Option(None, help="Active project id"),
    description: Optional[str] = typer.Option(None, help="Episode description"),
) -> None:
    """Begin a new episode in a session."""
    from agentmem.episodes.scope import ScopeHint
    from agentmem.models.db import ScopeType

    try:
        hint = ScopeHint(
            scope_type=ScopeType(scope) if scope else None,
            scope_id=scope_id,
            project_id=project,
        )
    except ValueError:
        console.print(f"[bold red]Error:[/bold red] Unknown scope type: {scope}")
        raise typer.Exit(1)

    try:
        episode = _get_manager().begin(
            session_id, scope_hint=hint, name=name, description=description
        )
    except AgentMemError as e:
        _fail(e)

    console.print(f"[green]✓ Episode started:[/green] {episode.id}")
    console.print(f"  Scope: {episode.scope_type.value} ({episode.scope_id or '-'})")


def _transcript_source(path: Optional[Path]):
    from agentmem.transcripts import JsonlTranscriptSource

    if path is None:
        return None
    if not path.exists():
        console.print(f"[bold red]Error:[/bold red] Path not found: {path}")
        raise typer.Exit(1)
    return JsonlTranscriptSource(path)


@episode_app.command("complete")
def episode_complete(
    episode_id: str = typer.Argument(..., help="Episode id"),
    note: Optional[str] = typer.Option(None, help="Completion note"),
    outcome_type: str = typer.Option(
        "success", help="success, partial, failure or abandoned"
    ),
    transcript: Optional[Path] = typer.Option(
        None, help="JSONL transcript to import for the episode window"
    ),
) -> None:
    """Complete an episode and capture its experiences."""
    from agentmem.models.db import EpisodeOutcomeType
    from agentmem.scoring.dispatcher import shutdown_dispatcher

    try:
        kind = EpisodeOutcomeType(outcome_type.lower())
    except ValueError:
        console.print(f"[bold red]Error:[/bold red] Unknown outcome type: {outcome_type}")
        raise typer.Exit(1)
    parsed_id = _parse_uuid(episode_id, "episode id")
    source = _transcript_source(transcript)

    try:
        episode, outcome = _get_manager().complete_with_outcome(
            parsed_id, note=note, outcome_type=kind, transcript_source=source
        )
    except AgentMemError as e:
        _fail(e)
    finally:
        # Let background scoring finish before the process exits
        shutdown_dispatcher(wait=True)

    console.print(f"[green]✓ Episode completed:[/green] {episode.id}")
    if outcome.used_fallback:
        console.print(
            f"  [yellow]Fallback experience recorded[/yellow] ({outcome.fallback_reason})"
        )
    else:
        console.print(
            f"  Experiences: {len(outcome.experiences)} via {outcome.provider}"
        )
    console.print(f"  Skipped (low confidence): {outcome.skipped_low_confidence}")
    console.print(f"  Skipped (duplicates): {outcome.skipped_duplicates}")
    for experience in outcome.experiences:
        console.print(f"  - {experience.title} [{experience.confidence:.2f}]")


@episode_app.command("fail")
def episode_fail(
    episode_id: str = typer.Argument(..., help="Episode id"),
    reason: Optional[str] = typer.Option(None, help="Failure reason"),
    transcript: Optional[Path] = typer.Option(
        None, help="JSONL transcript to import for the episode window"
    ),
) -> None:
    """Mark an episode as failed."""
    parsed_id = _parse_uuid(episode_id, "episode id")
    source = _transcript_source(transcript)
    try:
        episode = _get_manager().fail(parsed_id, reason, transcript_source=source)
    except AgentMemError as e:
        _fail(e)
    console.print(f"[yellow]Episode failed:[/yellow] {episode.id}")


@episode_app.command("cancel")
def episode_cancel(
    episode_id: str = typer.Argument(..., help="Episode id"),
    reason: Optional[str] = typer.Option(None, help="Cancellation reason"),
) -> None:
    """Cancel an episode."""
    try:
        episode = _get_manager().cancel(_parse_uuid(episode_id, "episode id"), reason)
    except AgentMemError as e:
        _fail(e)
    console.print(f"[yellow]Episode cancelled:[/yellow] {episode.id}")


@episode_app.command("active")
def episode_active(
    session_id: str = typer.Argument(..., help="Agent session id"),
) -> None:
    """Show the active episode of a session."""
    episode = _get_manager().get_active(session_id)
    if episode is None:
        console.print(f"No active episode in session {session_id}")
        return
    console.print(f"{episode.id}  {episode.name or '(unnamed)'}")


@episode_app.command("list")
def episode_list(
    session_id: Optional[str] = typer.Option(None, "--session", help="Session id"),
    scope: Optional[str] = typer.Option(None, help="Scope type"),
    scope_id: Optional[str] = typer.Option(None, help="Scope id"),
    status: Optional[str] = typer.Option(None, help="Episode status"),
    limit: int = typer.Option(20, help="Maximum number of episodes"),
) -> None:
    """List episodes, most recent first."""
    from agentmem.db.repositories import EpisodeFilter
    from agentmem.models.db import EpisodeStatus, ScopeType

    try:
        filter = EpisodeFilter(
            scope_type=ScopeType(scope) if scope else None,
            scope_id=scope_id,
            session_id=session_id,
            status=EpisodeStatus(status) if status else None,
            limit=limit,
        )
    except ValueError as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(1)

    episodes = _get_manager().list(filter)

    table = Table(title="Episodes")
    table.add_column("ID", style="cyan", no_wrap=True)
    table.add_column("Session")
    table.add_column("Name")
    table.add_column("Scope")
    table.add_column("Status")
    table.add_column("Duration (ms)", justify="right")
    for episode in episodes:
        table.add_row(
            str(episode.id),
            episode.session_id,
            episode.name or "",
            f"{episode.scope_type.value}:{episode.scope_id or '-'}",
            episode.status.value,
            str(episode.duration_ms) if episode.duration_ms is not None else "-",
        )
    console.print(table)


@episode_app.command("event")
def episode_event(
    episode_id: str = typer.Argument(..., help="Episode id"),
    name: str = typer.Argument(..., help="Event name"),
    event_type: str = typer.Option(
        "checkpoint", "--type", help="checkpoint, decision, action, error or note"
    ),
    description: Optional[str] = typer.Option(None, help="Event description"),
) -> None:
    """Record an event in an episode's history."""
    from agentmem.models.db import EpisodeEventType

    try:
        kind = EpisodeEventType(event_type.lower())
    except ValueError:
        console.print(f"[bold red]Error:[/bold red] Unknown event type: {event_type}")
        raise typer.Exit(1)

    try:
        event = _get_manager().add_event(
            _parse_uuid(episode_id, "episode id"), kind, name, description=description
        )
    except AgentMemError as e:
        _fail(e)
    console.print(f"[green]✓ Event #{event.sequence_num} recorded:[/green] {name}")


@episode_app.command("timeline")
def episode_timeline(
    session_id: str = typer.Argument(..., help="Agent session id"),
) -> None:
    """Show the episode timeline of a session."""
    from agentmem.utils.timestamps import format_iso

    entries = _get_manager().get_timeline(session_id)
    if not entries:
        console.print(f"No episodes in session {session_id}")
        return

    table = Table(title=f"Timeline: {session_id}")
    table.add_column("Time", no_wrap=True)
    table.add_column("Type")
    table.add_column("Name")
    table.add_column("Description")
    for entry in entries:
        table.add_row(
            format_iso(entry.timestamp),
            entry.type,
            entry.name,
            entry.description or "",
        )
    console.print(table)


@message_app.command("add")
def message_add(
    session_id: str = typer.Argument(..., help="Agent session id"),
    role: str = typer.Argument(..., help="user, assistant or system"),
    content: str = typer.Argument(..., help="Message text"),
    conversation_id: Optional[str] = typer.Option(
        None, "--conversation", help="Conversation id (default: session's first)"
    ),
    timestamp: Optional[str] = typer.Option(None, help="ISO-8601 timestamp"),
) -> None:
    """Record a message, linking it to the session's active episode."""
    from agentmem.models.db import MessageRole

    try:
        message_role = MessageRole(role.lower())
    except ValueError:
        console.print(f"[bold red]Error:[/bold red] Unknown role: {role}")
        raise typer.Exit(1)

    linker = _get_linker()
    conversation = linker.ensure_conversation(
        session_id,
        conversation_id=(
            _parse_uuid(conversation_id, "conversation id") if conversation_id else None
        ),
    )
    try:
        message = linker.add_message(
            conversation.id, message_role, content, created_at=timestamp
        )
    except AgentMemError as e:
        _fail(e)

    linked = f"episode {message.episode_id}" if message.episode_id else "no episode"
    console.print(f"[green]✓ Message stored:[/green] {message.id} ({linked})")


@transcript_app.command("import")
def transcript_import(
    path: Path = typer.Argument(..., help="JSONL transcript file"),
    session_id: str = typer.Option(..., "--session", help="Agent session id"),
    episode_id: Optional[str] = typer.Option(
        None, "--episode", help="Link imported messages to this episode"
    ),
) -> None:
    """Import a JSONL transcript, optionally linking it to an episode."""
    source = _transcript_source(path)

    linker = _get_linker()
    conversation = linker.ensure_conversation(session_id)
    messages = list(source.read_messages(session_id))

    try:
        if episode_id:
            linked = linker.import_and_link(
                _parse_uuid(episode_id, "episode id"), conversation.id, messages
            )
            console.print(
                f"[green]✓ Imported {len(messages)} messages, "
                f"linked {linked} to episode {episode_id}[/green]"
            )
        else:
            linker.import_messages(conversation.id, messages)
            console.print(f"[green]✓ Imported {len(messages)} messages[/green]")
    except AgentMemError as e:
        _fail(e)


@app.command()
def show(
    episode_id: str = typer.Argument(..., help="Episode id"),
    as_json: bool = typer.Option(False, "--json", help="Print JSON"),
) -> None:
    """Show an episode with its experiences."""
    from agentmem.db.connection import db_session
    from agentmem.db.repositories import ExperienceRepository, MessageRepository

    try:
        episode = _get_manager().get(_parse_uuid(episode_id, "episode id"))
    except AgentMemError as e:
        _fail(e)

    with db_session() as db:
        experiences = ExperienceRepository(db).get_by_episode(episode.id)
        message_count = MessageRepository(db).count_by_episode(episode.id)

    if as_json:
        payload = {
            "id": str(episode.id),
            "session_id": episode.session_id,
            "name": episode.name,
            "status": episode.status.value,
            "outcome_type": episode.outcome_type.value if episode.outcome_type else None,
            "message_count": message_count,
            "experiences": [
                {
                    "title": e.title,
                    "confidence": e.confidence,
                    "source": e.source.value,
                }
                for e in experiences
            ],
        }
        console.print_json(json.dumps(payload))
        return

    console.print(f"[bold]{episode.name or episode.id}[/bold] ({episode.status.value})")
    console.print(f"  Messages: {message_count}")
    for experience in experiences:
        console.print(
            f"  - {experience.title} [{experience.confidence:.2f}, {experience.source.value}]"
        )


if __name__ == "__main__":
    app()
