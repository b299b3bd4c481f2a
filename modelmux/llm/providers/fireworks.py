"""Fireworks AI (``fireworks::<model>``)."""

from __future__ import annotations

import httpx

from modelmux.llm.formatter import (
    ConversationFormatter,
    strip_think_blocks_from_conversation,
    with_system_prompt,
)
from modelmux.llm.model_id import parse_model_id
from modelmux.llm.negotiator import fireworks_reasoning_plan
from modelmux.llm.providers.base import Provider, require_api_key
from modelmux.llm.providers.openai_compat import StreamPlan, build_chat_body, run_stream
from modelmux.llm.transport import DEFAULT_TIMEOUT, OpenAICompatClient
from modelmux.llm.types import ModelDisabled, StreamRequest

DEFAULT_BASE_URL = "https://api.fireworks.ai/inference/v1"


class FireworksProvider(Provider):
    def __init__(
        self,
        base_url: str = DEFAULT_BASE_URL,
        formatter: ConversationFormatter | None = None,
        http_client: httpx.AsyncClient | None = None,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> None:
        self._base_url = base_url
        self._formatter = formatter or ConversationFormatter()
        self._http_client = http_client
        self._timeout = timeout

    @property
    def name(self) -> str:
        return "fireworks"

    async def stream_response(self, request: StreamRequest) -> ModelDisabled | None:
        config = request.model_config
        model = parse_model_id(config.model_id).model_name
        api_key = require_api_key(
            request.api_keys, "fireworks", "Please add your Fireworks API key in Settings."
        )

        client = OpenAICompatClient(
            request.custom_base_url or self._base_url,
            api_key,
            headers=request.additional_headers,
            http_client=self._http_client,
            timeout=self._timeout,
        )

        # Earlier thinking output would otherwise be fed back as context.
        conversation = strip_think_blocks_from_conversation(request.conversation)
        messages = self._formatter.format(
            conversation,
            image_support=True,
            function_support=bool(request.tools),
        )

        plan = fireworks_reasoning_plan(model, config)
        body = build_chat_body(
            model, with_system_prompt(messages, config.system_prompt), request.tools, plan.extra
        )
        await run_stream(
            client,
            request,
            StreamPlan(
                provider=self.name,
                model=model,
                body=body,
                show_thoughts=config.show_thoughts,
                redact_reasoning=plan.redact,
                strippable=plan.extra.strippable,
            ),
        )
        return None
