"""Custom exceptions for agentmem."""

from typing import Optional


class AgentMemError(Exception):
    """Base class for all agentmem errors."""


class ScopeResolutionError(AgentMemError):
    """Raised when a non-global scope is requested but no identifier resolves."""

    def __init__(self, scope_type: str, session_id: Optional[str] = None):
        self.scope_type = scope_type
        self.session_id = session_id
        message = f"Cannot resolve scope id for scope_type '{scope_type}'"
        if session_id:
            message += f" (session {session_id})"
        super().__init__(message)


class NotFoundError(AgentMemError):
    """Raised when an entity id is unknown."""

    def __init__(self, entity: str, entity_id: object):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity} not found: {entity_id}")


class AlreadyTerminalError(AgentMemError):
    """Raised when a lifecycle transition targets an episode that is not active."""

    def __init__(self, episode_id: object, status: str):
        self.episode_id = episode_id
        self.status = status
        super().__init__(f"Episode {episode_id} is already terminal (status '{status}')")


class ActiveEpisodeConflictError(AgentMemError):
    """Raised when a session already has an active episode."""

    def __init__(self, session_id: str):
        self.session_id = session_id
        super().__init__(f"Session {session_id} already has an active episode")


class ExtractionError(AgentMemError):
    """Base class for extraction provider faults (never fatal to completion)."""

    reason = "extraction_error"


class ExtractionUnavailable(ExtractionError):
    """Raised when no configured extraction candidate is available."""

    reason = "unavailable"


class ExtractionTimeout(ExtractionError):
    """Raised when the extraction provider did not answer within its timeout."""

    reason = "timeout"


class ExtractionMalformedResponse(ExtractionError):
    """Raised when the provider answered with output that cannot be parsed."""

    reason = "malformed_response"


class ExtractionProviderError(ExtractionError):
    """Raised when a provider fails in a way it does not classify itself."""

    reason = "provider_error"


class PersistenceError(AgentMemError):
    """Raised when a write to the relational store fails."""

    def __init__(self, operation: str, cause: Optional[BaseException] = None):
        self.operation = operation
        self.cause = cause
        message = f"Persistence failure during {operation}"
        if cause is not None:
            message += f": {cause}"
        super().__init__(message)
