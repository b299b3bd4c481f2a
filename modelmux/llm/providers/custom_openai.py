"""User-configured OpenAI-compatible endpoints (``custom::<id>::<model>``)."""

from __future__ import annotations

import httpx

from modelmux.config import CustomProviderConfig
from modelmux.llm.errors import ConfigurationError
from modelmux.llm.formatter import ConversationFormatter, with_system_prompt
from modelmux.llm.model_id import parse_custom_model_id
from modelmux.llm.providers.base import Provider
from modelmux.llm.providers.openai_compat import StreamPlan, build_chat_body, run_stream
from modelmux.llm.transport import DEFAULT_TIMEOUT, OpenAICompatClient
from modelmux.llm.types import ModelDisabled, StreamRequest


class CustomOpenAIProvider(Provider):
    """
    Parameters
    ----------
    providers:
        The configured custom endpoints; looked up by id on every request so
        settings changes apply without rebuilding the provider.
    """

    def __init__(
        self,
        providers: list[CustomProviderConfig],
        formatter: ConversationFormatter | None = None,
        http_client: httpx.AsyncClient | None = None,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> None:
        self._providers = providers
        self._formatter = formatter or ConversationFormatter()
        self._http_client = http_client
        self._timeout = timeout

    @property
    def name(self) -> str:
        return "custom"

    def _find(self, provider_id: str) -> CustomProviderConfig | None:
        for provider in self._providers:
            if provider.id == provider_id and provider.kind == "openai":
                return provider
        return None

    async def stream_response(self, request: StreamRequest) -> ModelDisabled | None:
        config = request.model_config
        model_id = parse_custom_model_id(config.model_id)

        provider = self._find(model_id.custom_provider_id or "")
        if provider is None:
            raise ConfigurationError(
                "Custom provider not found. Please check your Providers settings."
            )
        if not provider.enabled:
            return ModelDisabled(
                config.model_id, reason=f'"{provider.name or provider.id}" is disabled in Settings.'
            )
        if not provider.api_base_url.strip():
            raise ConfigurationError(
                f'Please add an API base URL for "{provider.name}" in Settings.'
            )
        api_key = provider.resolved_api_key()
        if not api_key.strip():
            raise ConfigurationError(f'Please add an API key for "{provider.name}" in Settings.')

        client = OpenAICompatClient(
            request.custom_base_url or provider.api_base_url,
            api_key,
            headers=request.additional_headers,
            http_client=self._http_client,
            timeout=self._timeout,
        )

        messages = self._formatter.format(
            request.conversation,
            image_support=config.supports("image"),
            function_support=True,
        )
        body = build_chat_body(
            model_id.model_name, with_system_prompt(messages, config.system_prompt), request.tools
        )
        await run_stream(
            client,
            request,
            StreamPlan(
                provider=f"custom:{provider.id}",
                model=model_id.model_name,
                body=body,
                show_thoughts=config.show_thoughts,
            ),
        )
        return None
