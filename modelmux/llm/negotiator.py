"""
Provider-specific request parameters and the stripped-parameter retry.

Many OpenAI-compatible backends accept non-standard fields (reasoning
toggles, thinking budgets, grounding switches) but not all models behind the
same endpoint do.  ``RequestNegotiator`` sends the full parameter set first;
if the backend rejects the request outright it retries exactly once with the
non-standard fields removed.  Failures of any other kind are not retried
here.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import AsyncIterator, Protocol

from modelmux.llm.errors import ProviderHTTPError
from modelmux.llm.types import ModelConfig, StreamChunk

logger = logging.getLogger(__name__)

# Status codes that mean "the request itself was not acceptable".
REJECTION_STATUS_CODES = frozenset({400, 422})


class ChatTransport(Protocol):
    def stream_chat(self, body: dict) -> AsyncIterator[StreamChunk]: ...


@dataclass
class ExtraParams:
    """
    Non-standard request fields plus which of them may be dropped on
    rejection.
    """

    params: dict = field(default_factory=dict)
    strippable: set[str] = field(default_factory=set)

    def add(self, key: str, value, *, strippable: bool = True) -> None:
        self.params[key] = value
        if strippable:
            self.strippable.add(key)

    def apply(self, body: dict) -> dict:
        return {**body, **self.params}


def is_parameter_rejection(exc: BaseException) -> bool:
    return isinstance(exc, ProviderHTTPError) and exc.status_code in REJECTION_STATUS_CODES


class RequestNegotiator:
    """
    Issues a streaming request, retrying once with *strippable* keys removed
    when the first attempt is rejected before any data arrives.
    """

    def __init__(self, transport: ChatTransport) -> None:
        self._transport = transport
        self.attempts = 0
        self.stripped: set[str] = set()

    async def stream(self, body: dict, strippable: set[str] | None = None) -> AsyncIterator[StreamChunk]:
        strippable = {k for k in (strippable or set()) if k in body}
        attempt_body = body

        while True:
            self.attempts += 1
            started = False
            try:
                async for chunk in self._transport.stream_chat(attempt_body):
                    started = True
                    yield chunk
                return
            except ProviderHTTPError as exc:
                if started or self.stripped or not strippable or not is_parameter_rejection(exc):
                    raise
                logger.warning(
                    "Provider rejected request (HTTP %d: %s); retrying without %s",
                    exc.status_code,
                    exc.message,
                    sorted(strippable),
                )
                self.stripped = set(strippable)
                attempt_body = {k: v for k, v in body.items() if k not in strippable}


# ---------------------------------------------------------------------------
# Per-family parameter builders
# ---------------------------------------------------------------------------

def gemini_thinking_params(model_name: str, config: ModelConfig) -> ExtraParams:
    """``thinking_level`` for Gemini 3, ``thinking_budget`` for Gemini 2.5."""
    extra = ExtraParams()
    if "gemini-3" in model_name and config.thinking_level:
        extra.add("thinking_level", config.thinking_level)
    elif "gemini-2.5" in model_name and config.budget_tokens:
        extra.add("thinking_budget", config.budget_tokens)
    return extra


def normalize_effort(effort: str | None, default: str = "medium") -> str:
    if effort in ("low", "medium", "high"):
        return effort
    if effort == "xhigh":
        return "high"
    return default


@dataclass
class CerebrasReasoningPlan:
    """How a Cerebras request handles reasoning."""

    show_thoughts: bool
    native_reasoning: bool
    use_thoughts_prompt: bool
    extra: ExtraParams


def cerebras_reasoning_plan(
    model_name: str, config: ModelConfig, function_support: bool
) -> CerebrasReasoningPlan:
    lower = model_name.lower()
    is_glm = "glm" in lower
    is_gpt_oss = "gpt-oss" in lower
    is_qwen3 = "qwen3" in lower
    is_reasoning_model = is_glm or is_gpt_oss or is_qwen3
    # Cerebras does not stream reasoning together with tool calls.
    native = is_reasoning_model and not function_support

    show = bool(
        (is_glm and config.show_thoughts)
        or (is_gpt_oss and config.reasoning_effort)
        or (is_qwen3 and config.reasoning_effort)
    )

    extra = ExtraParams()
    if native:
        if not is_gpt_oss:
            extra.add("reasoning_format", "parsed" if show else "hidden")
        elif not show:
            extra.add("reasoning_format", "hidden")

    if is_gpt_oss and config.reasoning_effort:
        extra.add("reasoning_effort", normalize_effort(config.reasoning_effort))

    if is_glm and (not config.show_thoughts or native):
        extra.add("disable_reasoning", not config.show_thoughts)
        extra.add("clear_thinking", not config.show_thoughts)

    return CerebrasReasoningPlan(
        show_thoughts=show,
        native_reasoning=native,
        use_thoughts_prompt=show and not native,
        extra=extra,
    )


@dataclass
class FireworksReasoningPlan:
    redact: bool
    extra: ExtraParams


def fireworks_reasoning_plan(model_name: str, config: ModelConfig) -> FireworksReasoningPlan:
    lower = model_name.lower()
    can_disable = not any(marker in lower for marker in ("gpt-oss", "minimax", "m2"))

    extra = ExtraParams()
    if config.show_thoughts:
        # Only reasoning_effort="none" is dropped on rejection.
        extra.add("reasoning_effort", normalize_effort(config.reasoning_effort), strippable=False)
    elif can_disable:
        extra.add("reasoning_effort", "none")

    # Kimi streams its full chain of thought (and draft answers) as
    # reasoning; show only the timing.
    redact = bool(config.show_thoughts) and "kimi" in lower
    return FireworksReasoningPlan(redact=redact, extra=extra)
