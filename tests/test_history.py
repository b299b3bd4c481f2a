"""Tests for the transcript store."""

from __future__ import annotations

import pytest

from modelmux.history import TranscriptStore
from modelmux.llm.types import AssembledAssistant, Message, ToolCall
from modelmux.retry import RetryPolicy


@pytest.fixture
async def store(tmp_path):
    s = TranscriptStore(str(tmp_path / "nested" / "history.db"), RetryPolicy(attempts=2))
    await s.init()
    yield s
    await s.close()


async def test_record_and_recent(store):
    await store.record(
        "together::m",
        Message(role="user", content="first"),
        AssembledAssistant(content="one", tool_calls=[]),
    )
    await store.record(
        "google::g",
        Message(role="user", content="second"),
        AssembledAssistant(
            content="",
            tool_calls=[ToolCall(id="c1", namespaced_tool_name="search", args={"q": "x"})],
            extra={"k": 1},
        ),
    )

    rows = await store.recent(10)

    assert [r["prompt"] for r in rows] == ["second", "first"]
    assert rows[0]["tool_calls"] == [{"id": "c1", "namespaced_tool_name": "search", "args": {"q": "x"}}]
    assert rows[0]["extra"] == {"k": 1}
    assert rows[1]["content"] == "one"
    assert rows[1]["error"] is None


async def test_recent_limit_and_errors(store):
    for i in range(3):
        await store.record(
            "together::m",
            Message(role="user", content=f"p{i}"),
            AssembledAssistant(content="", tool_calls=[], error="boom" if i == 2 else None),
        )
    rows = await store.recent(2)
    assert [r["prompt"] for r in rows] == ["p2", "p1"]
    assert rows[0]["error"] == "boom"


async def test_reopen_keeps_rows(tmp_path):
    path = str(tmp_path / "h.db")
    first = TranscriptStore(path)
    await first.init()
    await first.record("together::m", Message(role="user", content="q"), AssembledAssistant("a", []))
    await first.close()

    second = TranscriptStore(path)
    await second.init()
    try:
        assert len(await second.recent()) == 1
    finally:
        await second.close()
