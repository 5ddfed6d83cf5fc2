"""
Provider Registry - maps model identifier prefixes to adapters.

A model identifier looks like ``<provider>/<provider-model-name>``. The
prefix selects the adapter; the remainder is passed through verbatim.
"""

from __future__ import annotations

import httpx

from api.middleware.exception_handlers import UnsupportedProviderError
from core.constants import PROVIDER_OLLAMA, PROVIDER_OPENAI, Settings
from integrations.providers.base import ProviderAdapter
from integrations.providers.ollama import OllamaAdapter
from integrations.providers.openai_compat import OpenAICompatAdapter
from models.chat_models import ModelIdentifier
from utils.client_factory import create_openai_client
from utils.logger import logger

OPENAI_API_VERSION_PATH = "/v1"


class ProviderRouter:
    """Prefix -> adapter lookup. Fails closed on anything unregistered."""

    def __init__(self, adapters: dict[str, ProviderAdapter] | None = None):
        self._adapters: dict[str, ProviderAdapter] = {}
        for prefix, adapter in (adapters or {}).items():
            self.register(prefix, adapter)

    def register(self, prefix: str, adapter: ProviderAdapter) -> None:
        if not prefix:
            raise ValueError("Provider prefix must not be empty")
        self._adapters[prefix] = adapter

    def resolve(self, model_id: str) -> tuple[ProviderAdapter, str]:
        """Return the adapter and the provider-native model name.

        Raises:
            UnsupportedProviderError: no ``/``, empty parts, or unknown prefix
        """
        parsed = ModelIdentifier.parse(model_id)
        if parsed is None:
            raise UnsupportedProviderError(model_id)
        adapter = self._adapters.get(parsed.provider)
        if adapter is None:
            raise UnsupportedProviderError(model_id)
        return adapter, parsed.name

    @property
    def providers(self) -> list[str]:
        return sorted(self._adapters)

    def __contains__(self, prefix: object) -> bool:
        return prefix in self._adapters

    async def aclose(self) -> None:
        for adapter in self._adapters.values():
            await adapter.aclose()


def _openai_base_url(base_url: str | None) -> str | None:
    """The SDK expects the versioned root; configuration holds the host root."""
    if not base_url:
        return None
    if base_url.endswith(OPENAI_API_VERSION_PATH):
        return base_url
    return f"{base_url}{OPENAI_API_VERSION_PATH}"


def build_provider_router(settings: Settings, http_client: httpx.AsyncClient) -> ProviderRouter:
    """Register every enabled provider whose configuration is present."""
    router = ProviderRouter()
    enabled = settings.enabled_providers_list

    if PROVIDER_OLLAMA in enabled:
        if settings.ollama_base_url:
            router.register(PROVIDER_OLLAMA, OllamaAdapter(settings.ollama_base_url, http_client))
        else:
            logger.warning("Ollama provider enabled but OLLAMA_BASE_URL is not set; skipping")

    if PROVIDER_OPENAI in enabled:
        if settings.openai_api_key:
            client = create_openai_client(
                api_key=settings.openai_api_key,
                base_url=_openai_base_url(settings.openai_api_base_url),
                http_client=http_client,
            )
            router.register(PROVIDER_OPENAI, OpenAICompatAdapter(client))
        else:
            logger.warning("OpenAI provider enabled but OPENAI_API_KEY is not set; skipping")

    unknown = [p for p in enabled if p not in (PROVIDER_OLLAMA, PROVIDER_OPENAI)]
    if unknown:
        logger.warning(f"Ignoring unknown providers in ENABLED_PROVIDERS: {', '.join(unknown)}")

    logger.info(f"Provider router ready: {', '.join(router.providers) or 'no providers'}")
    return router
