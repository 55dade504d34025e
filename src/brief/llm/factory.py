from typing import Any

from .base import LLMProvider
from .providers import OpenAIProvider

# Endpoints that speak the OpenAI chat completions wire format
_OPENAI_COMPATIBLE = ("openai", "openrouter", "lmstudio")


def create_llm_provider(provider: str, **config: Any) -> LLMProvider:
    """Create an LLM provider instance.

    This factory function hides the instantiation logic for different providers.

    Args:
        provider: Provider type ('openai', 'openrouter', 'lmstudio')
        **config: Provider-specific configuration
            - api_key: str (required)
            - model: str (default: 'gpt-4o-mini')
            - base_url: str | None

    Returns:
        Initialized LLM provider instance

    Raises:
        ValueError: If provider type is not supported
        TypeError: If required configuration is missing

    Examples:
        >>> provider = create_llm_provider(
        ...     "openai",
        ...     api_key="sk-...",
        ...     model="gpt-4o-mini"
        ... )
    """
    provider_lower = provider.lower()

    if provider_lower in _OPENAI_COMPATIBLE:
        if "api_key" not in config:
            raise TypeError(f"{provider} provider requires 'api_key' in config")
        return OpenAIProvider(**config)

    raise ValueError(
        f"Unsupported provider: {provider}. "
        f"Supported providers: {', '.join(repr(p) for p in _OPENAI_COMPATIBLE)}"
    )
