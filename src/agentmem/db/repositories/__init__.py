"""
Repository layer for database operations.

Provides a clean API for CRUD operations on database models.
"""

from agentmem.db.repositories.base import BaseRepository
from agentmem.db.repositories.conversation import ConversationRepository
from agentmem.db.repositories.episode import EpisodeFilter, EpisodeRepository
from agentmem.db.repositories.event import EpisodeEventRepository
from agentmem.db.repositories.experience import ExperienceRepository
from agentmem.db.repositories.message import MessageRepository

__all__ = [
    "BaseRepository",
    "ConversationRepository",
    "EpisodeEventRepository",
    "EpisodeFilter",
    "EpisodeRepository",
    "ExperienceRepository",
    "MessageRepository",
]
