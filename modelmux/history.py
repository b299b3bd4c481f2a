"""
SQLite-backed transcript store for completed turns.

Uses ``aiosqlite``; every statement goes through the transient-retry
helpers in ``modelmux.retry`` so concurrent writers sharing the file back
off on lock contention instead of failing.
"""

from __future__ import annotations

import json
from dataclasses import asdict
from datetime import datetime, timezone
from pathlib import Path

import aiosqlite

from modelmux.llm.types import AssembledAssistant, Message
from modelmux.retry import RetryPolicy, execute_with_retry, select_with_retry

SCHEMA = [
    """CREATE TABLE IF NOT EXISTS turns (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        model_id TEXT NOT NULL,
        created_at TEXT NOT NULL,
        prompt TEXT NOT NULL,
        content TEXT NOT NULL,
        tool_calls TEXT NOT NULL DEFAULT '[]',
        error TEXT,
        extra TEXT NOT NULL DEFAULT '{}'
    )""",
    """CREATE INDEX IF NOT EXISTS idx_turns_model ON turns(model_id)""",
]


class TranscriptStore:
    """
    Usage::

        store = TranscriptStore("~/.modelmux/history.db")
        await store.init()
        await store.record("together::m", prompt_message, assembled)
        rows = await store.recent(10)
        await store.close()
    """

    def __init__(self, db_path: str, policy: RetryPolicy | None = None) -> None:
        self.db_path = Path(db_path).expanduser().resolve()
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self.policy = policy
        self._db: aiosqlite.Connection | None = None

    async def init(self) -> None:
        self._db = await aiosqlite.connect(str(self.db_path))
        await self._db.execute("PRAGMA journal_mode=WAL")
        for stmt in SCHEMA:
            await execute_with_retry(self._db, stmt, policy=self.policy)

    async def close(self) -> None:
        if self._db is not None:
            await self._db.close()
            self._db = None

    async def record(self, model_id: str, prompt: Message, reply: AssembledAssistant) -> None:
        """Persist one prompt/reply pair."""
        assert self._db is not None
        await execute_with_retry(
            self._db,
            """INSERT INTO turns
               (model_id, created_at, prompt, content, tool_calls, error, extra)
               VALUES (?, ?, ?, ?, ?, ?, ?)""",
            (
                model_id,
                datetime.now(timezone.utc).isoformat(),
                prompt.content,
                reply.content,
                json.dumps([asdict(tc) for tc in reply.tool_calls]),
                reply.error,
                json.dumps(reply.extra),
            ),
            self.policy,
        )

    async def recent(self, limit: int = 20) -> list[dict]:
        """Return the newest turns first."""
        assert self._db is not None
        rows = await select_with_retry(
            self._db,
            """SELECT model_id, created_at, prompt, content, tool_calls, error, extra
               FROM turns ORDER BY id DESC LIMIT ?""",
            (limit,),
            self.policy,
        )
        return [
            {
                "model_id": row[0],
                "created_at": row[1],
                "prompt": row[2],
                "content": row[3],
                "tool_calls": json.loads(row[4]),
                "error": row[5],
                "extra": json.loads(row[6]),
            }
            for row in rows
        ]
