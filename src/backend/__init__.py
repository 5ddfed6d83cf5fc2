"""
Chat Relay - Persisted chat with realtime fan-out and pluggable model providers
===============================================================================

FastAPI service that stores chat messages, pushes them to everyone viewing a
conversation, and relays conversations to interchangeable language-model
backends selected by a ``<provider>/<model>`` identifier.

Key Features:
    - **Conversations**: PostgreSQL persistence with strict per-conversation ordering
    - **Realtime Rooms**: WebSocket endpoint with token handshake and ``chat:<id>`` rooms
    - **Provider Router**: Ollama and OpenAI-compatible adapters behind one contract
    - **Chat Pipeline**: Persist, broadcast, then reply in the background
    - **Enterprise Logging**: Structured JSON logs with rotation and request correlation

Modules:
    api: FastAPI routes, services, middleware, and realtime connection handling
    core: Configuration constants and validated settings
    models: Pydantic domain models, error codes, and API schemas
    utils: Logging, metrics, database pool and HTTP client helpers
    integrations: Language-model provider adapters and the prefix router
"""
