"""LLM Provider implementations for experience extraction.

Supported providers:
- OpenAI (gpt-4o-mini, gpt-4o, etc.)
- Anthropic (claude-sonnet-4-5, claude-3-5-haiku, etc.)
- Ollama (any locally served model)

Usage:
    from agentmem.capture.providers import create_provider

    provider = create_provider(
        provider_type="openai",
        api_key="sk-xxx",
        model="gpt-4o-mini",
        timeout=30.0,
    )

    response = provider.complete(
        system_prompt="You are an expert...",
        user_prompt="Analyze this...",
        json_schema={"type": "object", ...},
    )
"""

import logging
from typing import Literal

from agentmem.capture.providers.base import LLMProvider, LLMResponse
from agentmem.config import Settings

logger = logging.getLogger(__name__)

# Type alias for provider names
ProviderType = Literal["openai", "anthropic", "ollama"]


def create_provider(
    provider_type: ProviderType,
    api_key: str = "",
    model: str | None = None,
    timeout: float = 60.0,
    base_url: str | None = None,
) -> LLMProvider:
    """Factory function to create LLM providers.

    Args:
        provider_type: The provider to use ("openai", "anthropic" or "ollama")
        api_key: API key for the provider (unused by ollama)
        model: Optional model override (uses provider default if not specified)
        timeout: Request timeout in seconds
        base_url: API base URL (required for ollama, optional for openai)

    Returns:
        Configured LLMProvider instance

    Raises:
        ValueError: If provider_type is unknown or credentials are missing
    """
    if provider_type == "openai":
        from agentmem.capture.providers.openai_provider import OpenAIProvider

        return OpenAIProvider(
            api_key=api_key,
            model=model or "gpt-4o-mini",
            timeout=timeout,
            base_url=base_url,
        )

    elif provider_type == "anthropic":
        from agentmem.capture.providers.anthropic_provider import AnthropicProvider

        return AnthropicProvider(
            api_key=api_key,
            model=model or "claude-sonnet-4-5-20250514",
            timeout=timeout,
        )

    elif provider_type == "ollama":
        from agentmem.capture.providers.ollama_provider import OllamaProvider

        return OllamaProvider(
            base_url=base_url or "",
            model=model or "llama3.1",
            timeout=timeout,
        )

    else:
        raise ValueError(
            f"Unknown provider type: {provider_type}. "
            f"Supported providers: {', '.join(get_available_providers())}"
        )


def get_available_providers() -> list[str]:
    """Get list of available provider types."""
    return ["openai", "anthropic", "ollama"]


def build_configured_providers(config: Settings) -> list[LLMProvider]:
    """Build providers in cascade order, dropping those without credentials.

    Args:
        config: Application settings

    Returns:
        Ordered list of ready-to-use providers (possibly empty)
    """
    credentials = {
        "openai": (config.openai_api_key, config.openai_model, config.openai_base_url),
        "anthropic": (config.anthropic_api_key, config.anthropic_model, None),
        "ollama": ("", config.ollama_model, config.ollama_base_url),
    }

    providers: list[LLMProvider] = []
    for name in config.extraction_providers:
        if name not in credentials:
            logger.warning(f"Ignoring unknown extraction provider: {name}")
            continue

        api_key, model, base_url = credentials[name]
        configured = bool(base_url) if name == "ollama" else bool(api_key)
        if not configured:
            logger.debug(f"Extraction provider {name} has no credentials, skipping")
            continue

        providers.append(
            create_provider(
                name,
                api_key=api_key,
                model=model,
                timeout=config.extraction_timeout_seconds,
                base_url=base_url,
            )
        )

    return providers


__all__ = [
    "LLMProvider",
    "LLMResponse",
    "ProviderType",
    "build_configured_providers",
    "create_provider",
    "get_available_providers",
]
