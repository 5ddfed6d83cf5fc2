"""Language-model provider adapters and the prefix router."""

from __future__ import annotations

from integrations.providers.base import ProviderAdapter
from integrations.providers.ollama import OllamaAdapter
from integrations.providers.openai_compat import OpenAICompatAdapter
from integrations.providers.registry import ProviderRouter, build_provider_router

__all__ = [
    "OllamaAdapter",
    "OpenAICompatAdapter",
    "ProviderAdapter",
    "ProviderRouter",
    "build_provider_router",
]
