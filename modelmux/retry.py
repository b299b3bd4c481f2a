"""
Bounded retry for transient failures.

One policy, reused everywhere a call can fail for a reason that goes away on
its own (SQLite lock contention being the common one): a fixed attempt
budget, exponential backoff capped at a ceiling, random jitter, and an
immediate re-raise for anything the predicate does not consider transient.

Storage helpers ``execute_with_retry`` / ``select_with_retry`` wrap
``aiosqlite`` calls with the default SQLite-lock predicate.
"""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Iterable, TypeVar

import aiosqlite
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
    wait_random,
)
from tenacity.wait import wait_base

logger = logging.getLogger(__name__)

T = TypeVar("T")

_SQLITE_LOCK_MARKERS = ("database is locked", "sqlite_busy", "(code: 5)")


@dataclass(frozen=True)
class RetryPolicy:
    """Backoff settings.  Delays are in seconds."""

    attempts: int = 6
    base_delay: float = 0.150
    max_delay: float = 2.0
    jitter: float = 0.075

    @classmethod
    def from_config(cls, cfg: Any) -> "RetryPolicy":
        return cls(
            attempts=cfg.attempts,
            base_delay=cfg.base_delay_ms / 1000,
            max_delay=cfg.max_delay_ms / 1000,
            jitter=cfg.jitter_ms / 1000,
        )


def _error_text(error: BaseException) -> str:
    message = str(error)
    if message:
        return message
    try:
        return json.dumps(getattr(error, "args", ()))
    except (TypeError, ValueError):
        return repr(error)


def is_sqlite_locked_error(error: BaseException) -> bool:
    message = _error_text(error).lower()
    return any(marker in message for marker in _SQLITE_LOCK_MARKERS)


class wait_capped(wait_base):
    """Cap another wait strategy (including its jitter) at *ceiling* seconds."""

    def __init__(self, inner: wait_base, ceiling: float) -> None:
        self.inner = inner
        self.ceiling = ceiling

    def __call__(self, retry_state: RetryCallState) -> float:
        return min(self.ceiling, self.inner(retry_state))


def _log_retry(retry_state: RetryCallState) -> None:
    exc = retry_state.outcome.exception() if retry_state.outcome else None
    logger.warning(
        "Transient failure (attempt %d), retrying in %.3fs: %s",
        retry_state.attempt_number,
        retry_state.next_action.sleep if retry_state.next_action else 0.0,
        exc,
    )


def build_retrying(
    policy: RetryPolicy | None = None,
    *,
    is_transient: Callable[[BaseException], bool] = is_sqlite_locked_error,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> AsyncRetrying:
    policy = policy or RetryPolicy()
    return AsyncRetrying(
        reraise=True,
        stop=stop_after_attempt(max(1, policy.attempts)),
        wait=wait_capped(
            wait_exponential(multiplier=policy.base_delay, exp_base=2, max=policy.max_delay)
            + wait_random(0, policy.jitter),
            policy.max_delay,
        ),
        retry=retry_if_exception(is_transient),
        before_sleep=_log_retry,
        sleep=sleep,
    )


async def with_transient_retry(
    operation: Callable[[], Awaitable[T]],
    policy: RetryPolicy | None = None,
    *,
    is_transient: Callable[[BaseException], bool] = is_sqlite_locked_error,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> T:
    """
    Run *operation*, retrying while it fails with a transient error.

    Non-transient errors propagate on the first attempt; the last transient
    error propagates once the attempt budget is spent.
    """
    retrying = build_retrying(policy, is_transient=is_transient, sleep=sleep)
    async for attempt in retrying:
        with attempt:
            result = await operation()
    return result


# ---------------------------------------------------------------------------
# aiosqlite helpers
# ---------------------------------------------------------------------------

async def execute_with_retry(
    db: aiosqlite.Connection,
    sql: str,
    params: Iterable[Any] | None = None,
    policy: RetryPolicy | None = None,
) -> None:
    async def _execute() -> None:
        await db.execute(sql, tuple(params or ()))
        await db.commit()

    await with_transient_retry(_execute, policy)


async def select_with_retry(
    db: aiosqlite.Connection,
    sql: str,
    params: Iterable[Any] | None = None,
    policy: RetryPolicy | None = None,
) -> list[Any]:
    async def _select() -> list[Any]:
        cursor = await db.execute(sql, tuple(params or ()))
        rows = await cursor.fetchall()
        await cursor.close()
        return list(rows)

    return await with_transient_retry(_select, policy)
