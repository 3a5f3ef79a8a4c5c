"""Provider factory for Parallax.

Usage::

    from parallax.providers import get_provider
    provider = get_provider()          # auto from environment
    provider = get_provider("anthropic")
    provider = get_provider("openai_compatible", base_url="http://...")
"""

from __future__ import annotations

import os
from typing import Any

from .anthropic import AnthropicProvider
from .base import Completion, LLMProvider, TokenUsage
from .openai_compat import OpenAICompatibleProvider

__all__ = [
    "AnthropicProvider",
    "Completion",
    "LLMProvider",
    "OpenAICompatibleProvider",
    "TokenUsage",
    "get_provider",
]

_PROVIDERS = {
    "anthropic": AnthropicProvider,
    "openai_compatible": OpenAICompatibleProvider,
}


def get_provider(
    provider_name: str | None = None,
    base_url: str | None = None,
    api_key: str | None = None,
    **kwargs: Any,
) -> LLMProvider:
    """Return a configured LLMProvider.

    If *provider_name* is omitted, reads ``LLM_PROVIDER`` from the environment
    (default: ``"anthropic"``).  ``LLM_URL``, ``LLM_API_KEY`` and
    ``LLM_MODEL`` fill in anything not passed explicitly; the Anthropic
    provider also honours ``ANTHROPIC_API_KEY``.
    """
    if provider_name is None:
        provider_name = os.environ.get("LLM_PROVIDER", "anthropic")

    provider_name = provider_name.lower().replace("-", "_")
    cls = _PROVIDERS.get(provider_name)
    if cls is None:
        raise ValueError(
            f"Unknown provider '{provider_name}'. "
            f"Choose from: {list(_PROVIDERS)}"
        )

    init_kwargs: dict[str, Any] = {}
    if base_url is not None:
        init_kwargs["base_url"] = base_url
    elif "LLM_URL" in os.environ:
        init_kwargs["base_url"] = os.environ["LLM_URL"]

    if api_key is not None:
        init_kwargs["api_key"] = api_key
    elif "LLM_API_KEY" in os.environ:
        init_kwargs["api_key"] = os.environ["LLM_API_KEY"]
    elif provider_name == "anthropic" and "ANTHROPIC_API_KEY" in os.environ:
        init_kwargs["api_key"] = os.environ["ANTHROPIC_API_KEY"]

    if "model" not in kwargs and "LLM_MODEL" in os.environ:
        init_kwargs["model"] = os.environ["LLM_MODEL"]

    init_kwargs.update(kwargs)
    return cls(**init_kwargs)
