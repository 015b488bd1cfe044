"""OpenAI LLM provider implementation."""

import logging
import time
from typing import Any

import openai
from openai import OpenAI

from agentmem.capture.providers.base import LLMProvider, LLMResponse
from agentmem.exceptions import ExtractionTimeout, ExtractionUnavailable

logger = logging.getLogger(__name__)


# Pricing per 1M tokens
OPENAI_PRICING = {
    "gpt-4o-mini": {"input": 0.15, "output": 0.60},
    "gpt-4o": {"input": 2.50, "output": 10.00},
    "gpt-4.1-mini": {"input": 0.40, "output": 1.60},
    # Default fallback for unknown models
    "default": {"input": 0.15, "output": 0.60},
}


class OpenAIProvider(LLMProvider):
    """OpenAI LLM provider using the OpenAI Python SDK.

    Uses JSON mode via response_format when a schema is requested.
    """

    def __init__(
        self,
        api_key: str,
        model: str = "gpt-4o-mini",
        timeout: float = 60.0,
        base_url: str | None = None,
    ):
        """Initialize the OpenAI provider.

        Args:
            api_key: OpenAI API key
            model: Model to use (default: gpt-4o-mini)
            timeout: Request timeout in seconds
            base_url: Optional API base URL (OpenAI-compatible servers)
        """
        if not api_key:
            raise ValueError("OpenAI API key is required")

        self.client = OpenAI(
            api_key=api_key,
            base_url=base_url or None,
            timeout=timeout,
            max_retries=0,
        )
        self._model = model
        logger.info(f"Initialized OpenAI provider with model: {model}")

    @property
    def provider_name(self) -> str:
        return "openai"

    @property
    def model_name(self) -> str:
        return self._model

    def complete(
        self,
        system_prompt: str,
        user_prompt: str,
        max_tokens: int = 2000,
        temperature: float = 0.3,
        json_schema: dict[str, Any] | None = None,
    ) -> LLMResponse:
        """Generate a completion using OpenAI's chat completions API."""
        start_time = time.time()

        request_params: dict[str, Any] = {
            "model": self._model,
            "messages": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
            "max_tokens": max_tokens,
            "temperature": temperature,
        }

        # JSON mode guarantees a syntactically valid object
        if json_schema is not None:
            request_params["response_format"] = {"type": "json_object"}

        try:
            response = self.client.chat.completions.create(**request_params)
        except openai.APITimeoutError as e:
            raise ExtractionTimeout(f"OpenAI request timed out: {e}") from e
        except openai.APIError as e:
            raise ExtractionUnavailable(f"OpenAI request failed: {e}") from e

        duration_ms = (time.time() - start_time) * 1000

        content = response.choices[0].message.content or ""

        usage = response.usage
        prompt_tokens = usage.prompt_tokens if usage else 0
        completion_tokens = usage.completion_tokens if usage else 0
        total_tokens = usage.total_tokens if usage else 0

        return LLMResponse(
            content=content,
            prompt_tokens=prompt_tokens,
            completion_tokens=completion_tokens,
            total_tokens=total_tokens,
            finish_reason=response.choices[0].finish_reason or "unknown",
            model=response.model,
            duration_ms=duration_ms,
            raw_response=response,
        )

    def calculate_cost(self, prompt_tokens: int, completion_tokens: int) -> float:
        pricing = OPENAI_PRICING.get(self._model, OPENAI_PRICING["default"])

        # Convert from per-million to per-token
        input_cost = prompt_tokens * (pricing["input"] / 1_000_000)
        output_cost = completion_tokens * (pricing["output"] / 1_000_000)

        return input_cost + output_cost
