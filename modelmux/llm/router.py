"""
Provider router -- selects a provider by model id and collects its output.

The router is the primary entry point for callers that need an LLM
response.  It:

  1. Parses the composite model id and picks the registered provider for
     its prefix (``together``, ``cerebras``, ``fireworks``, ``google``,
     ``vertex``, ``custom``).
  2. Hands the ``StreamRequest`` to that provider unchanged.
  3. Optionally gathers the callbacks into an ``AssembledAssistant`` for
     persistence (``complete``).
"""

from __future__ import annotations

import logging
from typing import Callable

import httpx

from modelmux.config import ModelmuxConfig
from modelmux.llm.errors import ConfigurationError
from modelmux.llm.formatter import AttachmentEncoder, ConversationFormatter
from modelmux.llm.model_id import parse_model_id
from modelmux.llm.providers.base import Provider
from modelmux.llm.providers.cerebras import CerebrasProvider
from modelmux.llm.providers.custom_openai import CustomOpenAIProvider
from modelmux.llm.providers.fireworks import FireworksProvider
from modelmux.llm.providers.google import GoogleProvider
from modelmux.llm.providers.together import TogetherProvider
from modelmux.llm.providers.vertex import VertexProvider
from modelmux.llm.types import (
    AssembledAssistant,
    Message,
    ModelConfig,
    ModelDisabled,
    StreamRequest,
    ToolCall,
    ToolDefinition,
)

logger = logging.getLogger(__name__)


class ProviderRouter:
    """
    Routes streaming requests to the provider named by the model id prefix.
    """

    def __init__(self) -> None:
        self._providers: dict[str, Provider] = {}

    # ------------------------------------------------------------------
    # Provider management
    # ------------------------------------------------------------------

    def register_provider(self, provider: Provider, name: str | None = None) -> None:
        """Register *provider* under *name* (default: its own name).  Overwrites."""
        self._providers[name or provider.name] = provider

    def get(self, key: str) -> Provider:
        """
        Return the provider for *key*.

        Raises ``ConfigurationError`` if nothing is registered under it.
        """
        if key not in self._providers:
            raise ConfigurationError(
                f"Unknown provider {key!r}. Registered: {list(self._providers)}"
            )
        return self._providers[key]

    @property
    def provider_names(self) -> list[str]:
        """Return the list of registered provider keys."""
        return list(self._providers)

    # ------------------------------------------------------------------
    # Streaming
    # ------------------------------------------------------------------

    async def stream_response(self, request: StreamRequest) -> ModelDisabled | None:
        model_id = parse_model_id(request.model_config.model_id)
        provider = self.get(model_id.provider_key)
        logger.debug("Routing %s to provider %s", request.model_config.model_id, provider.name)
        return await provider.stream_response(request)

    async def complete(
        self,
        conversation: list[Message],
        model_config: ModelConfig,
        *,
        api_keys: dict[str, str] | None = None,
        tools: list[ToolDefinition] | None = None,
        enabled_toolsets: list[str] | None = None,
        additional_headers: dict[str, str] | None = None,
        custom_base_url: str | None = None,
        on_chunk: Callable[[str], None] | None = None,
    ) -> AssembledAssistant:
        """
        Run one request to completion and return an ``AssembledAssistant``.

        This is the convenience method most callers should use.  Failures
        reported through ``on_error`` land in ``AssembledAssistant.error``;
        configuration errors still raise.
        """
        content_parts: list[str] = []
        result = AssembledAssistant(content="", tool_calls=[])

        def _on_chunk(text: str) -> None:
            content_parts.append(text)
            if on_chunk is not None:
                on_chunk(text)

        def _on_complete(extra: dict | None = None, tool_calls: list[ToolCall] | None = None) -> None:
            result.extra = dict(extra or {})
            result.tool_calls = list(tool_calls or [])

        def _on_error(message: str) -> None:
            result.error = message

        request = StreamRequest(
            conversation=conversation,
            model_config=model_config,
            on_chunk=_on_chunk,
            on_complete=_on_complete,
            on_error=_on_error,
            api_keys=api_keys or {},
            tools=tools,
            enabled_toolsets=enabled_toolsets,
            additional_headers=additional_headers,
            custom_base_url=custom_base_url,
        )
        result.disabled = await self.stream_response(request)
        result.content = "".join(content_parts)
        if result.error:
            logger.warning("Request for %s failed: %s", model_config.model_id, result.error)
        return result


def build_router(
    cfg: ModelmuxConfig,
    http_client: httpx.AsyncClient | None = None,
    encoder: AttachmentEncoder | None = None,
) -> ProviderRouter:
    """Register every built-in provider family using *cfg*."""
    formatter = ConversationFormatter(encoder)
    timeout = float(cfg.providers.timeout_seconds)
    shared = {"formatter": formatter, "http_client": http_client, "timeout": timeout}

    router = ProviderRouter()
    router.register_provider(TogetherProvider(cfg.providers.together_base_url, **shared))
    router.register_provider(CerebrasProvider(cfg.providers.cerebras_base_url, **shared))
    router.register_provider(FireworksProvider(cfg.providers.fireworks_base_url, **shared))
    router.register_provider(
        GoogleProvider(cfg.providers.google_base_url, images_dir=cfg.images.output_dir, **shared)
    )
    router.register_provider(VertexProvider(cfg.vertex, images_dir=cfg.images.output_dir, **shared))
    router.register_provider(CustomOpenAIProvider(cfg.custom_providers, **shared))
    return router
