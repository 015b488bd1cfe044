"""Background relevance scoring of episode messages."""

from agentmem.scoring.dispatcher import BackgroundDispatcher
from agentmem.scoring.scorer import HeuristicRelevanceScorer, RelevanceScorer
from agentmem.scoring.trigger import RelevanceScoringTrigger

__all__ = [
    "BackgroundDispatcher",
    "HeuristicRelevanceScorer",
    "RelevanceScorer",
    "RelevanceScoringTrigger",
]
