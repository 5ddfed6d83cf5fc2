"""
Integrations Module - External System Integrations
===================================================

Adapters for the language-model backends the relay dispatches to.

Modules:
    providers.base: ``ProviderAdapter`` contract shared by every backend
    providers.ollama: Local-inference adapter speaking Ollama's ``/api/chat``
    providers.openai_compat: Hosted adapter using the OpenAI SDK
    providers.registry: ``ProviderRouter`` mapping model prefixes to adapters

Example:
    Resolving and calling an adapter:

        from integrations.providers.registry import build_provider_router

        router = build_provider_router(settings, http_client)
        adapter, model_name = router.resolve("ollama/llama3")
        reply = await adapter.complete(model_name, messages)

See Also:
    :mod:`api.services.chat_pipeline`: Orchestration that consumes the router
"""
