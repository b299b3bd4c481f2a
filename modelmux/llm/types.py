"""Core types for the LLM subsystem."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Literal, Union

MessageRole = Literal["user", "assistant", "tool_results"]
AttachmentType = Literal["text", "webpage", "image", "pdf", "audio", "video", "unsupported"]
ReasoningEffort = Literal["low", "medium", "high", "xhigh"]


@dataclass
class Attachment:
    """A file or page attached to a user message."""

    type: str
    path: str
    name: str = ""


@dataclass
class ToolCall:
    """A resolved tool call with parsed arguments."""

    id: str
    namespaced_tool_name: str
    args: dict


@dataclass
class ToolResult:
    """The output of a tool call, keyed by the call id."""

    id: str
    content: str


@dataclass
class Message:
    """
    A single message in a conversation.

    ``tool_calls`` is only meaningful for assistant messages and
    ``tool_results`` only for ``tool_results`` messages.
    """

    role: str  # "user", "assistant", "tool_results"
    content: str = ""
    attachments: list[Attachment] = field(default_factory=list)
    tool_calls: list[ToolCall] = field(default_factory=list)
    tool_results: list[ToolResult] = field(default_factory=list)


@dataclass
class ToolDefinition:
    """A tool offered to the model for this request."""

    namespaced_name: str
    description: str = ""
    input_schema: dict = field(default_factory=lambda: {"type": "object", "properties": {}})


@dataclass(frozen=True)
class ModelConfig:
    """
    Per-request model settings.

    *model_id* is the composite ``provider::model`` identifier (or
    ``custom::providerId::model`` for user-configured endpoints).
    """

    model_id: str
    system_prompt: str | None = None
    supported_attachment_types: tuple[str, ...] = ("text", "webpage")
    show_thoughts: bool = False
    reasoning_effort: str | None = None
    budget_tokens: int | None = None
    thinking_level: str | None = None

    @property
    def provider_key(self) -> str:
        return self.model_id.split("::", 1)[0]

    def supports(self, attachment_type: str) -> bool:
        return attachment_type in self.supported_attachment_types


@dataclass
class RawToolDelta:
    """
    An incremental delta for a streaming tool call.

    Providers emit these as tool-call fragments arrive.  The ToolCallAssembler
    accumulates them and produces finished ToolCall objects.
    """

    call_index: int
    id: str | None = None
    name_delta: str = ""
    args_delta: str = ""


@dataclass
class StreamChunk:
    """
    A single chunk read from a provider stream.

    *delta* carries new answer text.
    *reasoning* carries text from the provider's reasoning side-channel.
    *tool_deltas* carries incremental tool-call fragments.
    *done* is ``True`` on the final chunk.
    """

    delta: str = ""
    reasoning: str | None = None
    tool_deltas: list[RawToolDelta] | None = None
    finish_reason: str | None = None
    done: bool = False


@dataclass
class ToolCallError:
    """A tool call that could not be assembled."""

    call_index: int
    call_id: str
    name: str
    message: str


@dataclass(frozen=True)
class ModelDisabled:
    """Returned by a provider when a known model cannot be used right now."""

    model_id: str
    reason: str = ""


ChunkCallback = Callable[[str], None]
CompleteCallback = Callable[..., Union[None, Awaitable[None]]]
ErrorCallback = Callable[[str], None]


@dataclass
class StreamRequest:
    """
    One canonical request handed to a provider.

    The provider reports output only through the three callbacks:
    ``on_chunk(text)`` for every text fragment, exactly one
    ``on_complete(extra, tool_calls)`` at the end, and ``on_error(message)``
    when the request fails (if no ``on_error`` is given the failure is
    raised instead).
    """

    conversation: list[Message]
    model_config: ModelConfig
    on_chunk: ChunkCallback
    on_complete: CompleteCallback
    on_error: ErrorCallback | None = None
    api_keys: dict[str, str] = field(default_factory=dict)
    tools: list[ToolDefinition] | None = None
    enabled_toolsets: list[str] | None = None
    additional_headers: dict[str, str] | None = None
    custom_base_url: str | None = None


@dataclass
class AssembledAssistant:
    """
    The complete assistant turn after consuming the full stream.

    Produced by ``ProviderRouter.complete`` for easy persistence.
    """

    content: str
    tool_calls: list[ToolCall]
    error: str | None = None
    disabled: ModelDisabled | None = None
    extra: dict[str, Any] = field(default_factory=dict)
