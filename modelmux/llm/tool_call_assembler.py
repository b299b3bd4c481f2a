"""
Assembles streaming tool-call deltas into complete ToolCall objects.

Design goals:
  - Accumulate ``RawToolDelta`` fragments keyed by ``call_index``.  The id is
    taken from the first fragment that carries one; name and argument
    fragments are concatenated.
  - ``finalize()`` runs exactly once, at stream end.  Each slot's argument
    string is JSON-parsed and validated against the schema of the tool that
    was offered under that name.
  - A slot that fails to parse or validate is dropped and an error is
    recorded for *that* call only -- the caller can inspect ``self.errors``
    and surface the failure.  Slots with an empty name (aborted calls) are
    dropped silently.
"""

from __future__ import annotations

import json
import logging

import jsonschema

from modelmux.llm.types import RawToolDelta, ToolCall, ToolCallError, ToolDefinition

logger = logging.getLogger(__name__)


class ToolCallAssembler:
    """Buffers raw tool-call deltas and emits finished ``ToolCall`` objects."""

    def __init__(self, tools: list[ToolDefinition] | None = None) -> None:
        self._tools = {t.namespaced_name: t for t in tools or []}
        self._buf: dict[int, dict] = {}
        self._result: list[ToolCall] | None = None
        self.errors: list[ToolCallError] = []

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    @property
    def finalized(self) -> bool:
        return self._result is not None

    def feed(self, delta: RawToolDelta) -> None:
        """Feed a single ``RawToolDelta`` into the assembler."""
        if self._result is not None:
            raise RuntimeError("tool calls already finalized for this stream")

        buf = self._buf.setdefault(
            delta.call_index, {"id": None, "name": "", "args": ""}
        )

        if delta.id and not buf["id"]:
            buf["id"] = delta.id

        if delta.name_delta:
            buf["name"] += delta.name_delta

        if delta.args_delta:
            buf["args"] += delta.args_delta

    def feed_all(self, deltas: list[RawToolDelta] | None) -> None:
        for delta in deltas or []:
            self.feed(delta)

    def finalize(self) -> list[ToolCall]:
        """
        Turn every buffered slot into a ``ToolCall``, in slot-index order.

        Calling this again returns the same list.
        """
        if self._result is not None:
            return list(self._result)

        calls: list[ToolCall] = []
        for idx in sorted(self._buf):
            call = self._finalize_slot(idx, self._buf[idx])
            if call is not None:
                calls.append(call)
        self._buf.clear()
        self._result = calls

        if self.errors:
            logger.warning(
                "Tool-call assembly errors: %s",
                [f"{e.name}#{e.call_index}: {e.message}" for e in self.errors],
            )
        return list(calls)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _finalize_slot(self, idx: int, buf: dict) -> ToolCall | None:
        name = buf["name"].strip()
        call_id = buf["id"] or f"call_{idx}"
        if not name:
            return None

        raw_args = buf["args"].strip() or "{}"
        try:
            args = json.loads(raw_args)
        except (json.JSONDecodeError, ValueError) as exc:
            self._record(idx, call_id, name, f"tool_call_json_parse_failed: {exc}")
            return None

        if not isinstance(args, dict):
            self._record(idx, call_id, name, "tool call arguments must be a JSON object")
            return None

        tool = self._tools.get(name)
        if tool is not None:
            try:
                jsonschema.validate(instance=args, schema=tool.input_schema)
            except jsonschema.ValidationError as exc:
                self._record(idx, call_id, name, f"tool_call_schema_mismatch: {exc.message}")
                return None
        elif self._tools:
            logger.warning("Model called unknown tool %r (call %s)", name, call_id)

        return ToolCall(id=call_id, namespaced_tool_name=name, args=args)

    def _record(self, idx: int, call_id: str, name: str, message: str) -> None:
        self.errors.append(
            ToolCallError(call_index=idx, call_id=call_id, name=name, message=message)
        )
