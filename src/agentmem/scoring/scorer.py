"""
Relevance scoring of episode messages.

The default scorer is deterministic: it looks for signals that a message
carries something worth keeping (tool activity, errors, decisions, lessons)
and writes a 0-1 score plus a category onto each message.
"""

import logging
import re
from typing import Optional, Protocol, Sequence

from sqlalchemy import update
from sqlalchemy.orm import sessionmaker

from agentmem.capture.turns import ERROR_PATTERNS
from agentmem.db import connection
from agentmem.db.connection import session_scope
from agentmem.models.db import Message, MessageRole

logger = logging.getLogger(__name__)

HIGH_RELEVANCE_THRESHOLD = 0.8
MEDIUM_RELEVANCE_THRESHOLD = 0.5

DECISION_PATTERNS = [
    r"\bdecided\b",
    r"\binstead of\b",
    r"\broot cause\b",
    r"\bthe fix\b",
    r"\bworkaround\b",
    r"\btrade-?off\b",
    r"\bbecause\b",
]

LEARNING_PATTERNS = [
    r"\blearned\b",
    r"\bturns out\b",
    r"\blesson\b",
    r"\bnext time\b",
    r"\balways\b",
    r"\bnever\b",
    r"\bremember\b",
]

_ERROR_RE = re.compile("|".join(ERROR_PATTERNS), re.IGNORECASE)
_DECISION_RE = re.compile("|".join(DECISION_PATTERNS), re.IGNORECASE)
_LEARNING_RE = re.compile("|".join(LEARNING_PATTERNS), re.IGNORECASE)


class RelevanceScorer(Protocol):
    """Anything that scores a batch of episode messages."""

    def score(self, messages: Sequence[Message]) -> None:
        ...


def categorize(score: float) -> str:
    """Map a relevance score to high / medium / low."""
    if score >= HIGH_RELEVANCE_THRESHOLD:
        return "high"
    if score >= MEDIUM_RELEVANCE_THRESHOLD:
        return "medium"
    return "low"


def score_message(message: Message) -> float:
    """Compute the heuristic relevance score of one message."""
    content = message.content or ""
    score = 0.05 if message.role == MessageRole.SYSTEM else 0.2

    if message.tool_calls:
        score += 0.2
    if _ERROR_RE.search(content):
        score += 0.15
    if _DECISION_RE.search(content):
        score += 0.25
    if _LEARNING_RE.search(content):
        score += 0.25
    if len(content) > 500:
        score += 0.1
    if len(content) > 2000:
        score += 0.05

    return round(min(1.0, score), 3)


class HeuristicRelevanceScorer:
    """Scores messages with deterministic signals and persists the result."""

    def __init__(self, session_factory: Optional[sessionmaker] = None):
        self.session_factory = session_factory or connection.BackgroundSessionLocal

    def score(self, messages: Sequence[Message]) -> None:
        if not messages:
            return

        with session_scope(self.session_factory) as db:
            for message in messages:
                value = score_message(message)
                db.execute(
                    update(Message)
                    .where(Message.id == message.id)
                    .values(relevance_score=value, relevance_category=categorize(value))
                )

        logger.debug(f"Scored {len(messages)} messages")
