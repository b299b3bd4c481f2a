"""
Turns a provider's reasoning side-channel into ``<think>`` blocks.

Providers disagree on what their reasoning channel holds: scratch text that
should be shown as a collapsible thinking block, text already wrapped in
native ``<think>`` markup, or -- for some endpoints -- the entire answer.
``ReasoningStateMachine`` buffers reasoning until enough of the stream has
been seen to know which case applies:

    IDLE ──reasoning──▶ BUFFERING ──native markup──▶ PASSTHROUGH
      ▲                     │
      └──meaningful answer──┘ (flush as <think>…</think><thinkmeta/>)

    any state ──close()──▶ CLOSED
        (reasoning with no answer at all is emitted as the answer)

Output goes through a single ``emit`` callable, so the machine can be tested
without any transport.
"""

from __future__ import annotations

import logging
import re
import time
from enum import Enum
from typing import Callable

logger = logging.getLogger(__name__)

THINK_OPEN = "<think>"
THINK_CLOSE = "</think>"
REDACTED_PLACEHOLDER = "[redacted]"

_NATIVE_MARKERS = ("<think", "</think", "<thought", "</thought")

_THINK_BLOCK_RE = re.compile(r"<think(?:\s+[^>]*?)?>[\s\S]*?</think\s*>")
_THOUGHT_BLOCK_RE = re.compile(r"<thought(?:\s+[^>]*?)?>[\s\S]*?</thought\s*>")
_THINKMETA_RE = re.compile(r'<thinkmeta\s+seconds="\d+"\s*/>')


def is_meaningful_text_delta(text: str) -> bool:
    """A delta counts as answer text only if it has a non-whitespace char."""
    return bool(text) and not text.isspace()


def has_native_think_markup(text: str) -> bool:
    return any(marker in text for marker in _NATIVE_MARKERS)


def escape_think_markup(text: str) -> str:
    if not has_native_think_markup(text):
        return text
    return (
        text.replace("<think", "&lt;think")
        .replace("</think", "&lt;/think")
        .replace("<thought", "&lt;thought")
        .replace("</thought", "&lt;/thought")
    )


def strip_think_blocks(text: str) -> str:
    """Remove thinking blocks and their metadata from a finished message."""
    text = _THINK_BLOCK_RE.sub("", text)
    text = _THOUGHT_BLOCK_RE.sub("", text)
    text = _THINKMETA_RE.sub("", text)
    return text.strip()


def thinkmeta(seconds: int) -> str:
    return f'<thinkmeta seconds="{seconds}"/>'


class ReasoningState(str, Enum):
    IDLE = "idle"
    BUFFERING = "buffering"
    PASSTHROUGH = "passthrough"
    CLOSED = "closed"


class ReasoningStateMachine:
    """
    Merge answer and reasoning deltas into one ordered text stream.

    Parameters
    ----------
    emit:
        Called with every output text fragment, in order.
    show_thoughts:
        When ``False`` reasoning deltas are ignored entirely.
    redact:
        Replace the content of thinking blocks with ``[redacted]`` while
        still emitting the elapsed-time metadata.
    clock:
        Monotonic clock in seconds; injectable for tests.
    """

    def __init__(
        self,
        emit: Callable[[str], None],
        *,
        show_thoughts: bool = True,
        redact: bool = False,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._emit = emit
        self._show_thoughts = show_thoughts
        self._redact = redact
        self._clock = clock

        self.state = ReasoningState.IDLE
        self._buffer = ""
        self._started_at: float | None = None
        self._pending_whitespace: list[str] = []
        self.saw_answer = False
        self.saw_reasoning = False
        self.emitted_thinking_block = False

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def on_reasoning(self, delta: str) -> None:
        """Feed one delta from the reasoning side-channel."""
        if not delta or not self._show_thoughts:
            return
        self._ensure_open()
        self.saw_reasoning = True

        if self.state is ReasoningState.PASSTHROUGH:
            self._emit(delta)
            return

        if self.state is ReasoningState.IDLE:
            self.state = ReasoningState.BUFFERING
            self._started_at = self._clock()
            self._buffer = ""

        self._buffer += delta

        # Markup may be split across deltas, so check the whole buffer.
        if not self._redact and has_native_think_markup(self._buffer):
            logger.debug("native think markup in reasoning channel; passing through")
            self.state = ReasoningState.PASSTHROUGH
            self._emit(self._buffer)
            self._reset_buffer()

    def on_answer(self, delta: str) -> None:
        """Feed one answer-text delta."""
        if not delta:
            return
        self._ensure_open()

        if not is_meaningful_text_delta(delta):
            if self.state is ReasoningState.BUFFERING:
                self._pending_whitespace.append(delta)
            else:
                self._emit(delta)
            return

        self.saw_answer = True
        if self.state is ReasoningState.BUFFERING:
            self._flush_as_thinking()
            self.state = ReasoningState.IDLE
            self._emit_pending_whitespace()

        if self.emitted_thinking_block:
            delta = escape_think_markup(delta)
        self._emit(delta)

    def close(self) -> None:
        """End of stream.  Safe to call more than once."""
        if self.state is ReasoningState.CLOSED:
            return

        if self.state is ReasoningState.BUFFERING:
            if self.saw_answer:
                self._flush_as_thinking()
            else:
                # Nothing ever arrived on the answer channel, so the
                # reasoning channel carried the answer.
                self._emit(self._buffer)
                self._reset_buffer()
            self._emit_pending_whitespace()

        self.state = ReasoningState.CLOSED

    def abort(self) -> None:
        """Stop after a mid-stream failure without flushing anything."""
        self._reset_buffer()
        self._pending_whitespace.clear()
        self.state = ReasoningState.CLOSED

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _ensure_open(self) -> None:
        if self.state is ReasoningState.CLOSED:
            raise RuntimeError("reasoning stream already closed")

    def _elapsed_seconds(self) -> int:
        if self._started_at is None:
            return 1
        elapsed = self._clock() - self._started_at
        return max(1, int(elapsed + 0.5))

    def _flush_as_thinking(self) -> None:
        if not self._buffer:
            self._reset_buffer()
            return
        body = REDACTED_PLACEHOLDER if self._redact else self._buffer
        self._emit(THINK_OPEN)
        self._emit(body)
        self._emit(THINK_CLOSE)
        self._emit(thinkmeta(self._elapsed_seconds()))
        self.emitted_thinking_block = True
        self._reset_buffer()

    def _emit_pending_whitespace(self) -> None:
        for text in self._pending_whitespace:
            self._emit(text)
        self._pending_whitespace.clear()

    def _reset_buffer(self) -> None:
        self._buffer = ""
        self._started_at = None
