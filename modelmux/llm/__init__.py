"""LLM subsystem -- providers, routing, and stream normalization."""

from modelmux.llm.errors import ConfigurationError, ModelmuxError
from modelmux.llm.reasoning import ReasoningStateMachine
from modelmux.llm.router import ProviderRouter, build_router
from modelmux.llm.tool_call_assembler import ToolCallAssembler
from modelmux.llm.types import (
    AssembledAssistant,
    Attachment,
    Message,
    ModelConfig,
    ModelDisabled,
    StreamChunk,
    StreamRequest,
    ToolCall,
    ToolDefinition,
    ToolResult,
)

__all__ = [
    "AssembledAssistant",
    "Attachment",
    "ConfigurationError",
    "Message",
    "ModelConfig",
    "ModelDisabled",
    "ModelmuxError",
    "ProviderRouter",
    "ReasoningStateMachine",
    "StreamChunk",
    "StreamRequest",
    "ToolCall",
    "ToolCallAssembler",
    "ToolDefinition",
    "ToolResult",
    "build_router",
]
