"""Episode lifecycle and message linking."""

from agentmem.db.repositories.episode import EpisodeFilter
from agentmem.episodes.linker import MessageLinker
from agentmem.episodes.manager import EpisodeManager
from agentmem.episodes.scope import ResolvedScope, ScopeContext, ScopeHint, resolve_scope
from agentmem.episodes.timeline import TimelineEntry, WhatHappened

__all__ = [
    "EpisodeFilter",
    "EpisodeManager",
    "MessageLinker",
    "ResolvedScope",
    "ScopeContext",
    "ScopeHint",
    "TimelineEntry",
    "WhatHappened",
    "resolve_scope",
]
