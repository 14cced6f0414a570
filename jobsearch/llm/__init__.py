"""Relevance-scoring LLM backends, resolved by name.

Provider modules are imported on first use so that neither SDK is needed
unless scoring is enabled with that provider.
"""

import importlib

from jobsearch.llm.base import LLMProvider

__all__ = ["LLMProvider", "available_providers", "get_provider"]

_PROVIDERS: dict[str, str] = {
    "anthropic": "jobsearch.llm.anthropic:AnthropicProvider",
    "openai": "jobsearch.llm.openai:OpenAIProvider",
}


def get_provider(name: str) -> LLMProvider:
    """Return a new provider instance for ``name``.

    Raises:
        ValueError: If no provider is registered under that name.
    """
    target = _PROVIDERS.get(name)
    if target is None:
        msg = f"Unknown LLM provider '{name}'. Available: {', '.join(available_providers())}"
        raise ValueError(msg)

    module_path, _, class_name = target.partition(":")
    provider_cls: type[LLMProvider] = getattr(importlib.import_module(module_path), class_name)
    return provider_cls()


def available_providers() -> list[str]:
    return sorted(_PROVIDERS)
