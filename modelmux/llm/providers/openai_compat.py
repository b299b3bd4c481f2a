"""
Streaming pipeline shared by every OpenAI-compatible provider.

Each provider decides *what* to send (model name, messages, extra
parameters, reasoning presentation) and hands a ``StreamPlan`` to
``run_stream``, which wires the negotiator, the reasoning state machine and
the tool-call assembler together and drives the request callbacks:

    negotiator.stream(body) ─▶ chunk ─┬─▶ ReasoningStateMachine ─▶ on_chunk
                                      └─▶ ToolCallAssembler
    end of stream ─▶ machine.close(), assembler.finalize() ─▶ on_complete
    failure       ─▶ machine.abort() ─▶ on_error
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

import httpx

from modelmux.llm.errors import ModelmuxError
from modelmux.llm.formatter import convert_tool_definitions
from modelmux.llm.negotiator import ExtraParams, RequestNegotiator
from modelmux.llm.providers.base import deliver_complete, deliver_error
from modelmux.llm.reasoning import ReasoningStateMachine
from modelmux.llm.tool_call_assembler import ToolCallAssembler
from modelmux.llm.transport import OpenAICompatClient
from modelmux.llm.types import StreamRequest, ToolDefinition

logger = logging.getLogger(__name__)


@dataclass
class StreamPlan:
    """Everything a provider decided about one streaming request."""

    provider: str
    model: str
    body: dict
    show_thoughts: bool = False
    redact_reasoning: bool = False
    strippable: set[str] = field(default_factory=set)


def build_chat_body(
    model: str,
    messages: list[dict],
    tools: list[ToolDefinition] | None = None,
    extra: ExtraParams | None = None,
) -> dict:
    body: dict = {"model": model, "messages": messages, "stream": True}
    if extra is not None:
        body = extra.apply(body)
    if tools:
        body["tools"] = convert_tool_definitions(tools)
        body["tool_choice"] = "auto"
    return body


async def run_stream(
    client: OpenAICompatClient,
    request: StreamRequest,
    plan: StreamPlan,
) -> None:
    """Drive one streaming request to exactly one completion or error."""
    negotiator = RequestNegotiator(client)
    machine = ReasoningStateMachine(
        request.on_chunk,
        show_thoughts=plan.show_thoughts,
        redact=plan.redact_reasoning,
    )
    assembler = ToolCallAssembler(request.tools)

    logger.info(
        "REQUEST: provider=%s model=%s messages=%d tools=%d extra=%s",
        plan.provider,
        plan.model,
        len(plan.body.get("messages", [])),
        len(plan.body.get("tools", [])),
        sorted(plan.strippable),
    )

    try:
        async for chunk in negotiator.stream(plan.body, plan.strippable):
            if chunk.reasoning:
                machine.on_reasoning(chunk.reasoning)
            if chunk.delta:
                machine.on_answer(chunk.delta)
            assembler.feed_all(chunk.tool_deltas)
    except (ModelmuxError, httpx.HTTPError) as exc:
        machine.abort()
        deliver_error(
            request,
            exc,
            provider=plan.provider,
            model=plan.model,
            context={
                "base_url": client.base_url,
                "messages": len(plan.body.get("messages", [])),
                "attempts": negotiator.attempts,
            },
        )
        return

    machine.close()
    tool_calls = assembler.finalize()

    extra = None
    if assembler.errors:
        extra = {
            "tool_call_errors": [
                {"id": e.call_id, "name": e.name, "message": e.message}
                for e in assembler.errors
            ]
        }
    await deliver_complete(request, extra, tool_calls or None)
