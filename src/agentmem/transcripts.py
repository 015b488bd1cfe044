"""
Transcript source protocol for retroactive message import.

External tools (IDE extensions, CLI agents) keep their own transcripts of a
session. A transcript source reads those and yields normalized messages,
which the message linker imports and associates with episodes by time range.
"""

import json
import logging
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Iterable, Iterator, Optional, Protocol

from agentmem.utils.timestamps import parse_epoch_ms, to_epoch_ms

logger = logging.getLogger(__name__)


@dataclass
class TranscriptMessage:
    """A message as read from an external transcript."""

    role: str
    content: str
    timestamp: str
    tool_calls: Optional[list[dict[str, Any]]] = None
    token_count: Optional[int] = None


class TranscriptSource(Protocol):
    """
    Protocol for transcript readers.

    Implementations yield messages of one session, optionally restricted to
    the closed time range [start, end].
    """

    def read_messages(
        self,
        session_ref: str,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> Iterable[TranscriptMessage]:
        ...


class JsonlTranscriptSource:
    """
    Read transcripts stored as JSON Lines.

    Each line is an object with ``role``, ``content`` and ``timestamp`` keys,
    plus optional ``tool_calls``, ``token_count`` and ``session_id``. Lines
    whose ``session_id`` differs from the requested session are skipped.
    """

    VALID_ROLES = {"user", "assistant", "system"}

    def __init__(self, path: Path | str):
        self.path = Path(path)

    def read_messages(
        self,
        session_ref: str,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> Iterator[TranscriptMessage]:
        start_ms = to_epoch_ms(start) if start is not None else None
        end_ms = to_epoch_ms(end) if end is not None else None

        with open(self.path, "r", encoding="utf-8") as f:
            for line_num, line in enumerate(f, 1):
                line = line.strip()
                if not line:
                    continue

                try:
                    data = json.loads(line)
                except json.JSONDecodeError as e:
                    logger.warning(
                        f"Skipping invalid JSON at {self.path}:{line_num}: {e}"
                    )
                    continue

                if not isinstance(data, dict):
                    continue
                if data.get("session_id") not in (None, session_ref):
                    continue

                role = str(data.get("role", "")).lower()
                if role not in self.VALID_ROLES:
                    logger.debug(f"Skipping line {line_num} with role {role!r}")
                    continue

                timestamp = str(data.get("timestamp") or "")
                if start_ms is not None or end_ms is not None:
                    instant = parse_epoch_ms(timestamp)
                    if instant is None:
                        continue
                    if start_ms is not None and instant < start_ms:
                        continue
                    if end_ms is not None and instant > end_ms:
                        continue

                content = data.get("content", "")
                if not isinstance(content, str):
                    content = json.dumps(content)

                token_count = data.get("token_count")
                if isinstance(token_count, bool) or not isinstance(token_count, int):
                    token_count = None

                yield TranscriptMessage(
                    role=role,
                    content=content,
                    timestamp=timestamp,
                    tool_calls=self._tool_calls(data.get("tool_calls"), line_num),
                    token_count=token_count,
                )

    def _tool_calls(
        self, value: Any, line_num: int
    ) -> Optional[list[dict[str, Any]]]:
        """Keep ``tool_calls`` only when it is a list of objects."""
        if value is None:
            return None
        if isinstance(value, list) and all(isinstance(call, dict) for call in value):
            return value or None
        logger.warning(
            f"Dropping malformed tool_calls at {self.path}:{line_num} "
            f"({type(value).__name__})"
        )
        return None
