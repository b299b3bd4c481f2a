"""Abstract base class for LLM providers."""

from __future__ import annotations

import inspect
import logging
from abc import ABC, abstractmethod

from modelmux.llm.errors import ConfigurationError, ModelmuxError, classify_error
from modelmux.llm.types import ModelDisabled, StreamRequest, ToolCall

logger = logging.getLogger(__name__)


class Provider(ABC):
    """
    A provider encapsulates access to one family of LLM backends.

    ``stream_response`` reports its output through the request's callbacks
    and returns ``None``, or returns ``ModelDisabled`` when the model is
    known but cannot be used right now.  Configuration problems raise
    ``ConfigurationError`` before any network call.
    """

    @abstractmethod
    async def stream_response(self, request: StreamRequest) -> ModelDisabled | None:
        ...

    @property
    @abstractmethod
    def name(self) -> str:
        """Provider key used in model ids (e.g. ``"together"``)."""
        ...


def require_api_key(api_keys: dict[str, str], key: str, message: str) -> str:
    value = (api_keys or {}).get(key, "")
    if not value or not value.strip():
        raise ConfigurationError(message)
    return value


async def deliver_complete(
    request: StreamRequest,
    extra: dict | None = None,
    tool_calls: list[ToolCall] | None = None,
) -> None:
    result = request.on_complete(extra, tool_calls)
    if inspect.isawaitable(result):
        await result


def deliver_error(
    request: StreamRequest,
    exc: BaseException,
    *,
    provider: str,
    model: str,
    context: dict | None = None,
) -> None:
    """
    Log *exc* with its request context, then hand a simplified message to
    ``on_error``.  Without an ``on_error`` callback the failure is raised.
    """
    logger.error(
        "Raw error from %s (model=%s context=%s): %r %s",
        provider,
        model,
        context or {},
        exc,
        getattr(exc, "body", "") or getattr(exc, "payload", "") or "",
    )
    classified = classify_error(exc)
    if request.on_error is not None:
        request.on_error(classified.message)
        return
    if isinstance(getattr(exc, "payload", None), dict):
        raise ModelmuxError(classified.message) from exc
    raise exc
