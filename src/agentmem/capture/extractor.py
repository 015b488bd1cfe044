"""
LLM-based experience extraction.

Renders an episode transcript into a prompt, asks the first available LLM
provider in the configured cascade for reusable experiences, and parses
the JSON answer into candidate experiences.
"""

import json
import logging
import re
import time
from typing import Any, Optional

from agentmem.capture.llm_logger import llm_logger
from agentmem.capture.providers import build_configured_providers
from agentmem.capture.providers.base import LLMProvider, LLMResponse
from agentmem.capture.turns import recorded_tool_calls, tool_name
from agentmem.capture.types import (
    CandidateExperience,
    CaptureOptions,
    ExtractionResult,
    TurnData,
    TurnMetrics,
)
from agentmem.config import Settings, settings
from agentmem.exceptions import (
    ExtractionError,
    ExtractionMalformedResponse,
    ExtractionProviderError,
    ExtractionUnavailable,
)
from agentmem.utils.hashing import experience_content_hash

logger = logging.getLogger(__name__)


EXTRACTION_SYSTEM_PROMPT = """You extract reusable experiences from coding agent conversation transcripts.

Extract experiences that represent:
1. **Problem-solving patterns** - How a problem was approached and solved
2. **Decision points** - Key decisions made and their rationale
3. **Successful workflows** - Effective sequences of actions
4. **Lessons learned** - Insights from failures or suboptimal approaches
5. **Tool usage patterns** - Effective use of specific tools or commands

Skip trivial operations, one-off fixes unlikely to recur, generic debugging
without specific insight, and commonly known information.

Return ONLY valid JSON in this exact format:
{
  "experiences": [
    {
      "title": "concise descriptive title",
      "scenario": "the situation or problem encountered",
      "outcome": "what happened (success, failure, partial)",
      "content": "detailed description",
      "pattern": "generalizable pattern (optional)",
      "applicability": "when this applies (optional)",
      "confidence": 0.0,
      "trajectory": [
        {"action": "...", "observation": "...", "reasoning": "...", "tool_used": "...", "success": true}
      ]
    }
  ]
}

confidence is a number from 0 to 1 saying how clearly this was a real experience.
Return {"experiences": []} when nothing is worth remembering."""

EXTRACTION_JSON_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {
        "experiences": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {
                    "title": {"type": "string"},
                    "scenario": {"type": "string"},
                    "outcome": {"type": "string"},
                    "content": {"type": "string"},
                    "pattern": {"type": "string"},
                    "applicability": {"type": "string"},
                    "confidence": {"type": "number"},
                    "trajectory": {"type": "array", "items": {"type": "object"}},
                },
                "required": ["title", "scenario", "outcome"],
            },
        }
    },
    "required": ["experiences"],
}

_FENCE_RE = re.compile(r"```(?:json)?\s*([\s\S]*?)```")


def format_transcript(turn_data: list[TurnData]) -> str:
    """Render turns as ``[ROLE]:`` blocks with a summary of their tool calls."""
    blocks = []
    for turn in turn_data:
        lines = [f"[{turn.role.upper()}]:", turn.content]
        calls = recorded_tool_calls(turn.tool_calls)
        if calls:
            lines.append("Tool calls:")
            for call in calls:
                status = "failed" if call.get("success") is False else "success"
                lines.append(f"  - {tool_name(call) or 'unknown'}: {status}")
        blocks.append("\n".join(lines))
    return "\n\n".join(blocks)


def build_extraction_prompt(
    turn_data: list[TurnData],
    metrics: TurnMetrics,
    focus_areas: Optional[list[str]] = None,
) -> str:
    """Build the user prompt: transcript, session metrics and focus areas."""
    unique_tools = ", ".join(sorted(metrics.unique_tools_used)) or "none"
    parts = [
        "Analyze this conversation and extract experiences:",
        "",
        format_transcript(turn_data),
        "",
        "---",
        "Session Metrics:",
        f"- Total turns: {metrics.turn_count}",
        f"- User turns: {metrics.user_turn_count}",
        f"- Tool calls: {metrics.tool_call_count}",
        f"- Unique tools: {unique_tools}",
        f"- Errors: {metrics.error_count}",
    ]
    if focus_areas:
        parts.extend(["", f"Focus especially on: {', '.join(focus_areas)}"])
    return "\n".join(parts)


def _clamp_confidence(value: Any) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return 0.5
    return min(1.0, max(0.0, float(value)))


def parse_extraction_response(content: str) -> list[CandidateExperience]:
    """
    Parse a provider answer into candidate experiences.

    Markdown code fences are tolerated. Entries missing a title, scenario or
    outcome are dropped.

    Raises:
        ExtractionMalformedResponse: If the answer is not a JSON object with
            an ``experiences`` list
    """
    text = content.strip()
    fenced = _FENCE_RE.search(text)
    if fenced:
        text = fenced.group(1).strip()

    try:
        parsed = json.loads(text)
    except json.JSONDecodeError as e:
        raise ExtractionMalformedResponse(
            f"Extraction response is not valid JSON: {content[:200]!r}"
        ) from e

    if not isinstance(parsed, dict) or not isinstance(parsed.get("experiences"), list):
        raise ExtractionMalformedResponse(
            "Extraction response has no 'experiences' list"
        )

    candidates = []
    for entry in parsed["experiences"]:
        if not isinstance(entry, dict):
            continue
        title = entry.get("title")
        scenario = entry.get("scenario")
        outcome = entry.get("outcome")
        if not (title and scenario and outcome):
            continue

        trajectory = entry.get("trajectory")
        candidates.append(
            CandidateExperience(
                title=str(title),
                scenario=str(scenario),
                outcome=str(outcome),
                content=str(entry.get("content") or f"{scenario}\n\n{outcome}"),
                confidence=_clamp_confidence(entry.get("confidence")),
                pattern=entry.get("pattern") or None,
                applicability=entry.get("applicability") or None,
                trajectory=trajectory if isinstance(trajectory, list) else None,
            )
        )
    return candidates


class ProviderCascade:
    """
    Ordered list of LLM providers tried one after another.

    Built once; candidates without credentials never enter the cascade.
    """

    def __init__(self, providers: list[LLMProvider]):
        self.providers = list(providers)

    @classmethod
    def from_settings(cls, config: Optional[Settings] = None) -> "ProviderCascade":
        cascade = cls(build_configured_providers(config or settings))
        names = [p.provider_name for p in cascade.providers] or ["<none>"]
        logger.info(f"Extraction provider cascade: {', '.join(names)}")
        return cascade

    def __len__(self) -> int:
        return len(self.providers)

    def complete(
        self,
        system_prompt: str,
        user_prompt: str,
        max_tokens: int,
        temperature: float,
        session_id: Optional[str] = None,
    ) -> tuple[LLMProvider, LLMResponse]:
        """
        Complete with the first provider that answers.

        Returns:
            The provider that answered and its response

        Raises:
            ExtractionUnavailable: If the cascade is empty
            ExtractionError: The last provider's fault when all of them fail;
                unclassified exceptions surface as ExtractionProviderError
        """
        if not self.providers:
            raise ExtractionUnavailable("No extraction provider is configured")

        last_error: Optional[ExtractionError] = None
        for provider in self.providers:
            request_id = llm_logger.log_request(
                session_id,
                provider.provider_name,
                provider.model_name,
                user_prompt,
                max_tokens,
                temperature,
            )
            try:
                response = provider.complete(
                    system_prompt=system_prompt,
                    user_prompt=user_prompt,
                    max_tokens=max_tokens,
                    temperature=temperature,
                    json_schema=EXTRACTION_JSON_SCHEMA,
                )
            except ExtractionError as e:
                llm_logger.log_error(request_id, e, provider.provider_name)
                logger.warning(
                    f"Extraction provider {provider.provider_name} failed "
                    f"({e.reason}): {e}"
                )
                last_error = e
                continue
            except Exception as e:
                llm_logger.log_error(request_id, e, provider.provider_name)
                logger.warning(
                    f"Extraction provider {provider.provider_name} raised "
                    f"{type(e).__name__}: {e}",
                    exc_info=True,
                )
                last_error = ExtractionProviderError(
                    f"{provider.provider_name} raised {type(e).__name__}: {e}"
                )
                last_error.__cause__ = e
                continue

            llm_logger.log_response(request_id, response)
            return provider, response

        raise last_error


class ExperienceExtractor:
    """
    Extraction provider backed by an LLM cascade.

    Example:
        >>> extractor = ExperienceExtractor()
        >>> result = extractor.capture(turns, metrics, CaptureOptions())
        >>> for candidate in result.experiences:
        ...     print(candidate.title, candidate.confidence)
    """

    def __init__(
        self,
        cascade: Optional[ProviderCascade] = None,
        max_tokens: Optional[int] = None,
        temperature: Optional[float] = None,
    ):
        self.cascade = cascade if cascade is not None else ProviderCascade.from_settings()
        self.max_tokens = max_tokens or settings.extraction_max_tokens
        self.temperature = (
            temperature if temperature is not None else settings.extraction_temperature
        )

    @property
    def provider_names(self) -> list[str]:
        return [p.provider_name for p in self.cascade.providers]

    def capture(
        self,
        turn_data: list[TurnData],
        metrics: TurnMetrics,
        options: CaptureOptions,
    ) -> ExtractionResult:
        """
        Extract candidate experiences from a transcript.

        Candidates are returned unfiltered by confidence. Repeats within the
        answer are removed when ``options.skip_duplicates`` is set.

        Args:
            turn_data: Ordered transcript turns
            metrics: Aggregate transcript metrics
            options: Capture options (scope, duplicates, focus areas)

        Returns:
            ExtractionResult with candidates and timing

        Raises:
            ExtractionUnavailable: If no provider is configured or all are down
            ExtractionTimeout: If the last provider tried timed out
            ExtractionMalformedResponse: If the answer cannot be parsed
        """
        start_time = time.time()
        if options.auto_store:
            logger.debug("auto_store is not supported by ExperienceExtractor; ignoring")

        user_prompt = build_extraction_prompt(turn_data, metrics, options.focus_areas)
        provider, response = self.cascade.complete(
            system_prompt=EXTRACTION_SYSTEM_PROMPT,
            user_prompt=user_prompt,
            max_tokens=self.max_tokens,
            temperature=self.temperature,
            session_id=options.session_id,
        )

        candidates = parse_extraction_response(response.content)

        skipped_duplicates = 0
        if options.skip_duplicates:
            seen: set[str] = set()
            unique = []
            for candidate in candidates:
                key = experience_content_hash(
                    candidate.title, candidate.scenario, candidate.outcome
                )
                if key in seen:
                    skipped_duplicates += 1
                    continue
                seen.add(key)
                unique.append(candidate)
            candidates = unique

        cost = provider.calculate_cost(response.prompt_tokens, response.completion_tokens)
        logger.info(
            f"Extracted {len(candidates)} candidate experiences via "
            f"{provider.provider_name} ({response.total_tokens} tokens, ${cost:.4f})"
        )

        return ExtractionResult(
            experiences=candidates,
            skipped_duplicates=skipped_duplicates,
            processing_time_ms=(time.time() - start_time) * 1000,
            provider=provider.provider_name,
        )
