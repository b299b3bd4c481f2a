"""
Conversation formatting for OpenAI-style chat-completion APIs.

Maps the canonical ``Message`` list onto wire messages.  Attachment bytes are
read through an ``AttachmentEncoder`` -- the default one reads from the local
filesystem; applications with their own storage pass their own.  Any failure
to read an attachment degrades to a textual marker so the model still knows
the attachment existed.
"""

from __future__ import annotations

import base64
import json
import logging
from pathlib import Path
from typing import Any, Protocol

from modelmux.llm.reasoning import strip_think_blocks
from modelmux.llm.types import Attachment, Message, ToolDefinition

logger = logging.getLogger(__name__)

EMPTY_PLACEHOLDER = "..."


def ensure_non_empty(text: str | None) -> str:
    """Several APIs reject empty content fields."""
    if text is None or text.strip() == "":
        return EMPTY_PLACEHOLDER
    return text


def attachment_missing_flag(attachment: Attachment) -> str:
    name = attachment.name or Path(attachment.path).name
    return (
        f'<attachment name="{name}" type="{attachment.type}">'
        "[This attachment could not be shown to you.]"
        "</attachment>\n"
    )


class AttachmentEncoder(Protocol):
    """Reads attachment content for inclusion in a prompt."""

    def encode_text(self, attachment: Attachment) -> str: ...

    def encode_webpage(self, attachment: Attachment) -> str: ...

    def read_image_base64(self, attachment: Attachment) -> str: ...

    def pdf_page_images(self, attachment: Attachment) -> list[str]: ...


class FileAttachmentEncoder:
    """
    Reads attachments from local paths.

    PDF rasterisation needs an external renderer, so ``pdf_page_images``
    returns no pages and PDFs degrade to the missing marker.
    """

    def encode_text(self, attachment: Attachment) -> str:
        content = Path(attachment.path).read_text(encoding="utf-8", errors="replace")
        name = attachment.name or Path(attachment.path).name
        return f'<attachment name="{name}">\n{content}\n</attachment>\n'

    def encode_webpage(self, attachment: Attachment) -> str:
        content = Path(attachment.path).read_text(encoding="utf-8", errors="replace")
        name = attachment.name or attachment.path
        return f'<webpage url="{name}">\n{content}\n</webpage>\n'

    def read_image_base64(self, attachment: Attachment) -> str:
        return base64.b64encode(Path(attachment.path).read_bytes()).decode("ascii")

    def pdf_page_images(self, attachment: Attachment) -> list[str]:
        return []


def _image_mime(path: str) -> str:
    ext = Path(path).suffix.lstrip(".").lower()
    return "jpeg" if ext == "jpg" else ext


class ConversationFormatter:
    """
    Turns a conversation into OpenAI chat-completion ``messages``.

    Parameters
    ----------
    encoder:
        Source of attachment content.  Defaults to ``FileAttachmentEncoder``.
    """

    def __init__(self, encoder: AttachmentEncoder | None = None) -> None:
        self._encoder = encoder or FileAttachmentEncoder()

    def format(
        self,
        conversation: list[Message],
        *,
        image_support: bool,
        function_support: bool,
    ) -> list[dict]:
        wire: list[dict] = []
        for message in conversation:
            wire.extend(
                self.format_message(
                    message,
                    image_support=image_support,
                    function_support=function_support,
                )
            )
        return wire

    def format_message(
        self,
        message: Message,
        *,
        image_support: bool,
        function_support: bool,
    ) -> list[dict]:
        if message.role == "tool_results":
            return self._format_tool_results(message, function_support)
        if message.role == "assistant":
            return [self._format_assistant(message, function_support)]
        return [self._format_user(message, image_support)]

    # ------------------------------------------------------------------
    # Per-role formatting
    # ------------------------------------------------------------------

    def _format_tool_results(self, message: Message, function_support: bool) -> list[dict]:
        if not function_support:
            text = "\n".join(
                f"<tool_result>\n{result.content}\n</tool_result>"
                for result in message.tool_results
            )
            return [{"role": "user", "content": ensure_non_empty(text)}]

        return [
            {
                "role": "tool",
                "tool_call_id": result.id,
                "content": ensure_non_empty(result.content),
            }
            for result in message.tool_results
        ]

    def _format_assistant(self, message: Message, function_support: bool) -> dict:
        m: dict = {"role": "assistant", "content": ensure_non_empty(message.content)}
        if function_support and message.tool_calls:
            m["tool_calls"] = [
                {
                    "id": tc.id,
                    "index": index,
                    "type": "function",
                    "function": {
                        "name": tc.namespaced_tool_name,
                        "arguments": json.dumps(tc.args),
                    },
                }
                for index, tc in enumerate(message.tool_calls)
            ]
        return m

    def _format_user(self, message: Message, image_support: bool) -> dict:
        attachment_texts = ""
        image_parts: list[dict] = []

        for attachment in message.attachments:
            try:
                text, images = self._encode_attachment(attachment, image_support)
            except Exception as exc:
                logger.error(
                    "Failed to read %s attachment %s: %s",
                    attachment.type,
                    attachment.path,
                    exc,
                )
                text, images = attachment_missing_flag(attachment), []
            attachment_texts += text
            image_parts.extend(images)

        full_text = ensure_non_empty(attachment_texts + message.content)
        if image_parts:
            return {
                "role": "user",
                "content": [{"type": "text", "text": full_text}, *image_parts],
            }
        return {"role": "user", "content": full_text}

    def _encode_attachment(
        self, attachment: Attachment, image_support: bool
    ) -> tuple[str, list[dict]]:
        if attachment.type == "text":
            return self._encoder.encode_text(attachment), []
        if attachment.type == "webpage":
            return self._encoder.encode_webpage(attachment), []
        if attachment.type == "image":
            if not image_support:
                return attachment_missing_flag(attachment), []
            data = self._encoder.read_image_base64(attachment)
            url = f"data:image/{_image_mime(attachment.path)};base64,{data}"
            return "", [{"type": "image_url", "image_url": {"url": url}}]
        if attachment.type == "pdf":
            if not image_support:
                return attachment_missing_flag(attachment), []
            urls = self._encoder.pdf_page_images(attachment)
            if not urls:
                return attachment_missing_flag(attachment), []
            return "", [{"type": "image_url", "image_url": {"url": u}} for u in urls]
        return attachment_missing_flag(attachment), []


# ---------------------------------------------------------------------------
# Helpers shared by providers
# ---------------------------------------------------------------------------

def with_system_prompt(messages: list[dict], system_prompt: str | None) -> list[dict]:
    if not system_prompt:
        return messages
    return [{"role": "system", "content": system_prompt}, *messages]


def strip_think_blocks_from_conversation(conversation: list[Message]) -> list[Message]:
    """Drop earlier thinking output from assistant turns before resending."""
    cleaned: list[Message] = []
    for message in conversation:
        if message.role != "assistant":
            cleaned.append(message)
            continue
        cleaned.append(
            Message(
                role=message.role,
                content=strip_think_blocks(message.content or ""),
                attachments=message.attachments,
                tool_calls=message.tool_calls,
                tool_results=message.tool_results,
            )
        )
    return cleaned


def convert_tool_definitions(tools: list[ToolDefinition]) -> list[dict]:
    return [
        {
            "type": "function",
            "function": {
                "name": tool.namespaced_name,
                "description": tool.description,
                "parameters": tool.input_schema,
            },
        }
        for tool in tools
    ]


def content_to_text(content: Any) -> str:
    """Flatten an OpenAI ``content`` field (string or part list) to text."""
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        return "\n".join(
            part["text"]
            for part in content
            if isinstance(part, dict) and part.get("type") == "text" and isinstance(part.get("text"), str) and part["text"]
        )
    try:
        return json.dumps(content)
    except (TypeError, ValueError):
        return str(content)


def to_gemini_contents(messages: list[dict], system_prompt: str | None = None) -> list[dict]:
    """
    Convert wire messages to Gemini ``generateContent`` contents.

    Gemini has no system role here, so the system prompt is folded into the
    first user turn.
    """
    contents = [
        {
            "role": "model" if m.get("role") == "assistant" else "user",
            "parts": [{"text": ensure_non_empty(content_to_text(m.get("content")))}],
        }
        for m in messages
    ]
    if system_prompt:
        if contents and contents[0]["role"] == "user":
            first = contents[0]["parts"][0]
            first["text"] = f"{system_prompt}\n\n{first['text']}"
        else:
            contents.insert(0, {"role": "user", "parts": [{"text": system_prompt}]})
    return contents
