"""Tests for modelmux.llm.formatter."""

from __future__ import annotations

import base64
import json
import logging

import pytest

from modelmux.llm.formatter import (
    ConversationFormatter,
    FileAttachmentEncoder,
    attachment_missing_flag,
    convert_tool_definitions,
    ensure_non_empty,
    strip_think_blocks_from_conversation,
    to_gemini_contents,
    with_system_prompt,
)
from modelmux.llm.types import Attachment, Message, ToolCall, ToolDefinition, ToolResult


class FakeEncoder:
    """In-memory encoder; paths listed in *broken* raise on read."""

    def __init__(self, broken: set[str] | None = None) -> None:
        self.broken = broken or set()

    def _check(self, attachment: Attachment) -> None:
        if attachment.path in self.broken:
            raise OSError(f"cannot read {attachment.path}")

    def encode_text(self, attachment):
        self._check(attachment)
        return f"[text:{attachment.name}]"

    def encode_webpage(self, attachment):
        self._check(attachment)
        return f"[web:{attachment.name}]"

    def read_image_base64(self, attachment):
        self._check(attachment)
        return "AAAA"

    def pdf_page_images(self, attachment):
        self._check(attachment)
        return ["data:image/png;base64,P1", "data:image/png;base64,P2"]


@pytest.fixture
def formatter():
    return ConversationFormatter(FakeEncoder())


def fmt(formatter, conversation, *, image_support=True, function_support=True):
    return formatter.format(
        conversation, image_support=image_support, function_support=function_support
    )


class TestBasicMessages:

    def test_user_and_assistant(self, formatter):
        wire = fmt(formatter, [
            Message(role="user", content="Hi"),
            Message(role="assistant", content="Hello"),
        ])
        assert wire == [
            {"role": "user", "content": "Hi"},
            {"role": "assistant", "content": "Hello"},
        ]

    def test_empty_content_gets_placeholder(self, formatter):
        wire = fmt(formatter, [Message(role="assistant", content="  ")])
        assert wire[0]["content"] == "..."

    def test_ensure_non_empty(self):
        assert ensure_non_empty(None) == "..."
        assert ensure_non_empty("x") == "x"


class TestToolMessages:

    def test_assistant_tool_calls_with_function_support(self, formatter):
        message = Message(
            role="assistant",
            content="",
            tool_calls=[ToolCall(id="c1", namespaced_tool_name="search", args={"q": "cats"})],
        )
        wire = fmt(formatter, [message])[0]
        assert wire["tool_calls"] == [{
            "id": "c1",
            "index": 0,
            "type": "function",
            "function": {"name": "search", "arguments": json.dumps({"q": "cats"})},
        }]

    def test_assistant_tool_calls_dropped_without_function_support(self, formatter):
        message = Message(
            role="assistant",
            content="ok",
            tool_calls=[ToolCall(id="c1", namespaced_tool_name="search", args={})],
        )
        wire = fmt(formatter, [message], function_support=False)[0]
        assert "tool_calls" not in wire

    def test_tool_results_as_tool_role(self, formatter):
        message = Message(
            role="tool_results",
            tool_results=[ToolResult(id="c1", content="42"), ToolResult(id="c2", content="")],
        )
        wire = fmt(formatter, [message])
        assert wire == [
            {"role": "tool", "tool_call_id": "c1", "content": "42"},
            {"role": "tool", "tool_call_id": "c2", "content": "..."},
        ]

    def test_tool_results_inlined_without_function_support(self, formatter):
        message = Message(
            role="tool_results",
            tool_results=[ToolResult(id="c1", content="a"), ToolResult(id="c2", content="b")],
        )
        wire = fmt(formatter, [message], function_support=False)
        assert wire == [{
            "role": "user",
            "content": "<tool_result>\na\n</tool_result>\n<tool_result>\nb\n</tool_result>",
        }]


class TestAttachments:

    def test_text_attachment_prefixes_content(self, formatter):
        message = Message(
            role="user",
            content="Summarize",
            attachments=[Attachment(type="text", path="/n.txt", name="n.txt")],
        )
        assert fmt(formatter, [message])[0]["content"] == "[text:n.txt]Summarize"

    def test_image_becomes_data_url(self, formatter):
        message = Message(
            role="user",
            content="What is this?",
            attachments=[Attachment(type="image", path="/p/cat.JPG", name="cat.JPG")],
        )
        content = fmt(formatter, [message])[0]["content"]
        assert content[0] == {"type": "text", "text": "What is this?"}
        assert content[1] == {
            "type": "image_url",
            "image_url": {"url": "data:image/jpeg;base64,AAAA"},
        }

    def test_image_without_support_is_flagged(self, formatter):
        attachment = Attachment(type="image", path="/p/cat.png", name="cat.png")
        message = Message(role="user", content="Look", attachments=[attachment])
        content = fmt(formatter, [message], image_support=False)[0]["content"]
        assert content == attachment_missing_flag(attachment) + "Look"
        assert 'name="cat.png" type="image"' in content

    def test_pdf_pages_become_images(self, formatter):
        message = Message(
            role="user",
            content="Read",
            attachments=[Attachment(type="pdf", path="/d.pdf", name="d.pdf")],
        )
        content = fmt(formatter, [message])[0]["content"]
        assert [p["image_url"]["url"] for p in content[1:]] == [
            "data:image/png;base64,P1",
            "data:image/png;base64,P2",
        ]

    def test_unreadable_attachment_degrades_to_marker(self):
        formatter = ConversationFormatter(FakeEncoder(broken={"/gone.txt"}))
        attachment = Attachment(type="text", path="/gone.txt", name="gone.txt")
        message = Message(role="user", content="Hi", attachments=[attachment])
        assert fmt(formatter, [message])[0]["content"] == attachment_missing_flag(attachment) + "Hi"

    def test_unknown_type_is_flagged(self, formatter):
        attachment = Attachment(type="video", path="/v.mp4", name="v.mp4")
        message = Message(role="user", content="Watch", attachments=[attachment])
        assert "could not be shown" in fmt(formatter, [message])[0]["content"]


class TestFileAttachmentEncoder:

    def test_reads_text_file(self, tmp_path):
        path = tmp_path / "notes.txt"
        path.write_text("hello", encoding="utf-8")
        text = FileAttachmentEncoder().encode_text(Attachment(type="text", path=str(path)))
        assert text == '<attachment name="notes.txt">\nhello\n</attachment>\n'

    def test_reads_image_bytes(self, tmp_path):
        path = tmp_path / "a.png"
        path.write_bytes(b"\x89PNG")
        data = FileAttachmentEncoder().read_image_base64(Attachment(type="image", path=str(path)))
        assert base64.b64decode(data) == b"\x89PNG"

    def test_pdf_falls_back_to_marker(self, caplog):
        formatter = ConversationFormatter(FileAttachmentEncoder())
        attachment = Attachment(type="pdf", path="/x.pdf", name="x.pdf")
        assert FileAttachmentEncoder().pdf_page_images(attachment) == []

        with caplog.at_level(logging.ERROR, logger="modelmux.llm.formatter"):
            wire = formatter.format(
                [Message(role="user", content="q", attachments=[attachment])],
                image_support=True,
                function_support=False,
            )

        assert wire[0]["content"] == attachment_missing_flag(attachment) + "q"
        assert caplog.records == []


class TestHelpers:

    def test_with_system_prompt(self):
        messages = [{"role": "user", "content": "Hi"}]
        assert with_system_prompt(messages, None) is messages
        assert with_system_prompt(messages, "Be brief")[0] == {"role": "system", "content": "Be brief"}

    def test_strip_think_blocks_only_touches_assistant(self):
        conversation = [
            Message(role="user", content="<think>keep</think>q"),
            Message(role="assistant", content='<think>x</think><thinkmeta seconds="1"/>Answer'),
        ]
        cleaned = strip_think_blocks_from_conversation(conversation)
        assert cleaned[0].content == "<think>keep</think>q"
        assert cleaned[1].content == "Answer"

    def test_convert_tool_definitions(self):
        tool = ToolDefinition(namespaced_name="search", description="d", input_schema={"type": "object"})
        assert convert_tool_definitions([tool]) == [{
            "type": "function",
            "function": {"name": "search", "description": "d", "parameters": {"type": "object"}},
        }]

    def test_gemini_contents_fold_system_prompt(self):
        contents = to_gemini_contents(
            [
                {"role": "user", "content": "Hi"},
                {"role": "assistant", "content": "Hello"},
                {"role": "user", "content": [{"type": "text", "text": "More"}]},
            ],
            system_prompt="Be brief",
        )
        assert contents == [
            {"role": "user", "parts": [{"text": "Be brief\n\nHi"}]},
            {"role": "model", "parts": [{"text": "Hello"}]},
            {"role": "user", "parts": [{"text": "More"}]},
        ]
