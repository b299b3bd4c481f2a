"""
Cerebras (``cerebras::<model>``).

GLM, GPT-OSS and Qwen3 models reason natively.  Cerebras can stream that
reasoning in a separate ``reasoning`` field, but not while tools are in
play; in that case, if the user still wants to see thoughts, the model is
prompted to write ``<think>`` markup itself.
"""

from __future__ import annotations

import httpx

from modelmux.llm.formatter import ConversationFormatter, with_system_prompt
from modelmux.llm.model_id import parse_model_id
from modelmux.llm.negotiator import cerebras_reasoning_plan
from modelmux.llm.prompts import THOUGHTS_SYSTEM_PROMPT
from modelmux.llm.providers.base import Provider, require_api_key
from modelmux.llm.providers.openai_compat import StreamPlan, build_chat_body, run_stream
from modelmux.llm.transport import DEFAULT_TIMEOUT, OpenAICompatClient
from modelmux.llm.types import ModelDisabled, StreamRequest

DEFAULT_BASE_URL = "https://api.cerebras.ai/v1"


class CerebrasProvider(Provider):
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
        return "cerebras"

    async def stream_response(self, request: StreamRequest) -> ModelDisabled | None:
        config = request.model_config
        model = parse_model_id(config.model_id).model_name
        api_key = require_api_key(
            request.api_keys, "cerebras", "Please add your Cerebras API key in Settings."
        )

        client = OpenAICompatClient(
            request.custom_base_url or self._base_url,
            api_key,
            headers=request.additional_headers,
            http_client=self._http_client,
            timeout=self._timeout,
        )

        function_support = bool(request.tools)
        plan = cerebras_reasoning_plan(model, config, function_support)

        messages = self._formatter.format(
            request.conversation,
            image_support=False,
            function_support=function_support,
        )
        system_prompt = "\n\n".join(
            part
            for part in (
                THOUGHTS_SYSTEM_PROMPT if plan.use_thoughts_prompt else None,
                config.system_prompt,
            )
            if part
        )
        body = build_chat_body(
            model, with_system_prompt(messages, system_prompt), request.tools, plan.extra
        )
        await run_stream(
            client,
            request,
            StreamPlan(
                provider=self.name,
                model=model,
                body=body,
                show_thoughts=plan.show_thoughts,
                strippable=plan.extra.strippable,
            ),
        )
        return None
