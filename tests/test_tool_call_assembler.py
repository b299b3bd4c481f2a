"""Tests for modelmux.llm.tool_call_assembler.ToolCallAssembler."""

from __future__ import annotations

import json

import pytest

from modelmux.llm.tool_call_assembler import ToolCallAssembler
from modelmux.llm.types import RawToolDelta, ToolCall, ToolDefinition

SEARCH_TOOL = ToolDefinition(
    namespaced_name="search",
    description="Web search",
    input_schema={
        "type": "object",
        "properties": {"q": {"type": "string"}},
        "required": ["q"],
    },
)


class TestSingleToolCall:
    """Assemble a single tool call from incremental deltas."""

    def test_basic_assembly(self):
        asm = ToolCallAssembler([SEARCH_TOOL])

        # First delta: id + partial name.
        asm.feed(RawToolDelta(call_index=0, id="c1", name_delta="sea"))
        # Rest of the name.
        asm.feed(RawToolDelta(call_index=0, name_delta="rch"))
        # Arguments split mid-token.
        asm.feed(RawToolDelta(call_index=0, args_delta='{"q":'))
        asm.feed(RawToolDelta(call_index=0, args_delta='"cats"}'))

        result = asm.finalize()
        assert result == [ToolCall(id="c1", namespaced_tool_name="search", args={"q": "cats"})]
        assert asm.errors == []

    def test_single_delta_with_everything(self):
        """A provider may send all data in one delta."""
        asm = ToolCallAssembler()
        asm.feed(
            RawToolDelta(
                call_index=0,
                id="call_x",
                name_delta="ping",
                args_delta='{"host": "localhost"}',
            )
        )
        result = asm.finalize()
        assert len(result) == 1
        assert result[0].namespaced_tool_name == "ping"
        assert result[0].args == {"host": "localhost"}

    def test_empty_args_become_empty_object(self):
        asm = ToolCallAssembler()
        asm.feed(RawToolDelta(call_index=0, id="c", name_delta="list_files"))
        assert asm.finalize()[0].args == {}

    def test_first_id_wins(self):
        asm = ToolCallAssembler()
        asm.feed(RawToolDelta(call_index=0, id="first", name_delta="t"))
        asm.feed(RawToolDelta(call_index=0, id="second", args_delta="{}"))
        assert asm.finalize()[0].id == "first"

    def test_missing_id_is_synthesized(self):
        asm = ToolCallAssembler()
        asm.feed(RawToolDelta(call_index=3, name_delta="t", args_delta="{}"))
        assert asm.finalize()[0].id == "call_3"


class TestMultipleToolCalls:
    """Interleaved deltas for several concurrent calls."""

    def test_interleaved_calls_in_index_order(self):
        asm = ToolCallAssembler()
        asm.feed(RawToolDelta(call_index=1, id="b", name_delta="beta"))
        asm.feed(RawToolDelta(call_index=0, id="a", name_delta="alpha"))
        asm.feed(RawToolDelta(call_index=1, args_delta='{"n": 2}'))
        asm.feed(RawToolDelta(call_index=0, args_delta='{"n": 1}'))

        result = asm.finalize()
        assert [tc.id for tc in result] == ["a", "b"]
        assert [tc.args["n"] for tc in result] == [1, 2]

    def test_feed_all(self):
        asm = ToolCallAssembler()
        asm.feed_all([
            RawToolDelta(call_index=0, id="a", name_delta="x", args_delta="{}"),
            RawToolDelta(call_index=1, id="b", name_delta="y", args_delta="{}"),
        ])
        asm.feed_all(None)
        assert len(asm.finalize()) == 2


class TestErrorHandling:
    """Bad calls are dropped and reported without affecting their siblings."""

    def test_malformed_json_drops_only_that_call(self):
        asm = ToolCallAssembler()
        asm.feed(RawToolDelta(call_index=0, id="bad", name_delta="t", args_delta="{not json"))
        asm.feed(RawToolDelta(call_index=1, id="good", name_delta="t", args_delta="{}"))

        result = asm.finalize()
        assert [tc.id for tc in result] == ["good"]
        assert len(asm.errors) == 1
        assert asm.errors[0].call_id == "bad"
        assert asm.errors[0].message.startswith("tool_call_json_parse_failed")

    def test_non_object_arguments_rejected(self):
        asm = ToolCallAssembler()
        asm.feed(RawToolDelta(call_index=0, id="c", name_delta="t", args_delta=json.dumps([1, 2])))
        assert asm.finalize() == []
        assert len(asm.errors) == 1

    def test_schema_mismatch_recorded(self):
        asm = ToolCallAssembler([SEARCH_TOOL])
        asm.feed(RawToolDelta(call_index=0, id="c", name_delta="search", args_delta='{"q": 5}'))
        assert asm.finalize() == []
        assert asm.errors[0].name == "search"
        assert asm.errors[0].message.startswith("tool_call_schema_mismatch")

    def test_missing_required_field(self):
        asm = ToolCallAssembler([SEARCH_TOOL])
        asm.feed(RawToolDelta(call_index=0, id="c", name_delta="search", args_delta="{}"))
        assert asm.finalize() == []
        assert "q" in asm.errors[0].message

    def test_empty_name_dropped_silently(self):
        asm = ToolCallAssembler()
        asm.feed(RawToolDelta(call_index=0, id="c", args_delta="{}"))
        assert asm.finalize() == []
        assert asm.errors == []

    def test_unknown_tool_kept(self, caplog):
        asm = ToolCallAssembler([SEARCH_TOOL])
        asm.feed(RawToolDelta(call_index=0, id="c", name_delta="other", args_delta="{}"))
        result = asm.finalize()
        assert result[0].namespaced_tool_name == "other"
        assert "unknown tool" in caplog.text


class TestFinalize:

    def test_finalize_is_idempotent(self):
        asm = ToolCallAssembler()
        asm.feed(RawToolDelta(call_index=0, id="c", name_delta="t", args_delta="{}"))
        first = asm.finalize()
        second = asm.finalize()
        assert first == second
        assert asm.finalized

    def test_feed_after_finalize_raises(self):
        asm = ToolCallAssembler()
        asm.finalize()
        with pytest.raises(RuntimeError):
            asm.feed(RawToolDelta(call_index=0, name_delta="t"))

    def test_no_deltas_means_no_calls(self):
        assert ToolCallAssembler().finalize() == []
