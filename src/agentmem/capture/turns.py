"""
Transcript building for capture.

Turns the linked messages of an episode into ordered TurnData plus
aggregate TurnMetrics. Token counts use the stored value when the source
reported one and fall back to a rough character-based estimate.
"""

import logging
import re
from typing import Any, Iterable

from agentmem.capture.types import TurnData, TurnMetrics
from agentmem.models.db import Message, MessageRole

logger = logging.getLogger(__name__)

# Error patterns (case-insensitive)
ERROR_PATTERNS = [
    r"\berror\b",
    r"\bexception\b",
    r"\bfailed\b",
    r"\bfailure\b",
    r"\btraceback\b",
    r"❌",
    r"\[error\]",
]

_ERROR_RE = re.compile("|".join(ERROR_PATTERNS), re.IGNORECASE)

# Rough characters-per-token ratio for English text
CHARS_PER_TOKEN = 4


def estimate_tokens(text: str) -> int:
    """Estimate the token count of a text when the source did not report one."""
    return len(text) // CHARS_PER_TOKEN


def tool_name(call: dict[str, Any]) -> str:
    """Get the tool name of a recorded tool call."""
    return str(call.get("name") or call.get("tool") or call.get("tool_name") or "")


def recorded_tool_calls(tool_calls: Any) -> list[dict[str, Any]]:
    """Return the well-formed entries of a stored tool call list, skipping the rest."""
    if not isinstance(tool_calls, list):
        return []
    return [call for call in tool_calls if isinstance(call, dict)]


def _tool_call_failed(call: dict[str, Any]) -> bool:
    return call.get("success") is False or bool(call.get("error"))


def build_turn_data(messages: Iterable[Message]) -> list[TurnData]:
    """
    Convert episode messages into transcript turns.

    Args:
        messages: Messages already in chronological order

    Returns:
        List of TurnData in the same order
    """
    return [
        TurnData(
            role=message.role.value,
            content=message.content or "",
            timestamp=message.created_at,
            tool_calls=recorded_tool_calls(message.tool_calls) or None,
        )
        for message in messages
    ]


def compute_turn_metrics(messages: list[Message]) -> TurnMetrics:
    """
    Compute aggregate metrics for an episode transcript.

    Args:
        messages: Messages already in chronological order

    Returns:
        TurnMetrics with every field populated
    """
    metrics = TurnMetrics()
    if not messages:
        return metrics

    metrics.turn_count = len(messages)
    metrics.start_time = messages[0].created_at
    metrics.last_turn_time = messages[-1].created_at

    for message in messages:
        if message.role == MessageRole.USER:
            metrics.user_turn_count += 1
        elif message.role == MessageRole.ASSISTANT:
            metrics.assistant_turn_count += 1

        content = message.content or ""
        if message.token_count is not None:
            metrics.total_tokens += message.token_count
        else:
            metrics.total_tokens += estimate_tokens(content)

        turn_has_error = bool(_ERROR_RE.search(content))
        for call in recorded_tool_calls(message.tool_calls):
            metrics.tool_call_count += 1
            name = tool_name(call)
            if name:
                metrics.unique_tools_used.add(name)
            if _tool_call_failed(call):
                turn_has_error = True

        if turn_has_error:
            metrics.error_count += 1

    logger.debug(
        f"Turn metrics: {metrics.turn_count} turns, "
        f"{metrics.tool_call_count} tool calls, {metrics.error_count} errors"
    )
    return metrics
