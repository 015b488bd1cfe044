"""Ollama LLM provider implementation (local models over HTTP)."""

import logging
import time
from typing import Any

import httpx

from agentmem.capture.providers.base import LLMProvider, LLMResponse
from agentmem.exceptions import ExtractionTimeout, ExtractionUnavailable

logger = logging.getLogger(__name__)


class OllamaProvider(LLMProvider):
    """Ollama provider using the /api/generate endpoint.

    Requests JSON output through Ollama's ``format`` option.
    """

    def __init__(
        self,
        base_url: str,
        model: str = "llama3.1",
        timeout: float = 60.0,
        client: httpx.Client | None = None,
    ):
        if not base_url:
            raise ValueError("Ollama base URL is required")

        self.base_url = base_url.rstrip("/")
        self.client = client or httpx.Client(timeout=timeout)
        self._model = model
        logger.info(f"Initialized Ollama provider with model: {model} at {self.base_url}")

    @property
    def provider_name(self) -> str:
        return "ollama"

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
        """Generate a completion using Ollama's generate API."""
        start_time = time.time()

        payload: dict[str, Any] = {
            "model": self._model,
            "system": system_prompt,
            "prompt": user_prompt,
            "stream": False,
            "options": {"temperature": temperature, "num_predict": max_tokens},
        }
        if json_schema is not None:
            payload["format"] = "json"

        try:
            response = self.client.post(f"{self.base_url}/api/generate", json=payload)
            response.raise_for_status()
            data = response.json()
        except httpx.TimeoutException as e:
            raise ExtractionTimeout(f"Ollama request timed out: {e}") from e
        except (httpx.HTTPError, ValueError) as e:
            raise ExtractionUnavailable(f"Ollama request failed: {e}") from e

        duration_ms = (time.time() - start_time) * 1000

        prompt_tokens = int(data.get("prompt_eval_count") or 0)
        completion_tokens = int(data.get("eval_count") or 0)

        return LLMResponse(
            content=data.get("response") or "",
            prompt_tokens=prompt_tokens,
            completion_tokens=completion_tokens,
            total_tokens=prompt_tokens + completion_tokens,
            finish_reason=data.get("done_reason") or ("stop" if data.get("done") else "unknown"),
            model=data.get("model") or self._model,
            duration_ms=duration_ms,
            raw_response=data,
        )
