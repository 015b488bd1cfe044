"""
Scope resolution for new episodes.

An episode is visible within a session, a project, or globally. Callers may
omit the scope entirely, in which case the episode is session-scoped.
"""

from dataclasses import dataclass
from typing import Optional

from agentmem.exceptions import ScopeResolutionError
from agentmem.models.db import ScopeType


@dataclass
class ScopeHint:
    """Caller-supplied scope preference for a new episode."""

    scope_type: Optional[ScopeType] = None
    scope_id: Optional[str] = None
    project_id: Optional[str] = None


@dataclass
class ScopeContext:
    """Ambient context of the running agent (e.g., its active project)."""

    project_id: Optional[str] = None
    agent_id: Optional[str] = None


@dataclass(frozen=True)
class ResolvedScope:
    """Scope an episode is stored under."""

    scope_type: ScopeType
    scope_id: Optional[str]


def resolve_scope(
    session_id: str,
    hint: Optional[ScopeHint] = None,
    context: Optional[ScopeContext] = None,
) -> ResolvedScope:
    """
    Resolve the stored scope of a new episode.

    Args:
        session_id: Agent session beginning the episode
        hint: Optional explicit scope request
        context: Ambient context supplying a fallback project id

    Returns:
        ResolvedScope with a non-null scope_id unless the scope is global

    Raises:
        ScopeResolutionError: If a project scope is requested without a
            resolvable project id, or a session scope without a session id
    """
    hint = hint or ScopeHint()
    scope_type = ScopeType(hint.scope_type) if hint.scope_type else None

    if scope_type is None or scope_type is ScopeType.SESSION:
        scope_id = hint.scope_id or session_id
        if not scope_id:
            raise ScopeResolutionError(ScopeType.SESSION.value, session_id)
        return ResolvedScope(ScopeType.SESSION, scope_id)

    if scope_type is ScopeType.PROJECT:
        scope_id = (
            hint.scope_id
            or hint.project_id
            or (context.project_id if context else None)
        )
        if not scope_id:
            raise ScopeResolutionError(ScopeType.PROJECT.value, session_id)
        return ResolvedScope(ScopeType.PROJECT, scope_id)

    return ResolvedScope(ScopeType.GLOBAL, None)
