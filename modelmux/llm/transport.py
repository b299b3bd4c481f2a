"""
HTTP transport for OpenAI-compatible chat-completion endpoints.

Works with any endpoint that speaks the ``/chat/completions`` wire protocol
-- Together, Cerebras, Fireworks, Gemini's OpenAI layer, Vertex AI's
``endpoints/openapi``, vLLM, LM Studio, etc.

Dependencies: ``httpx`` (async HTTP client).  No vendor SDK needed.
"""

from __future__ import annotations

import json
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator

import httpx

from modelmux.llm.errors import ProviderHTTPError, ProviderStreamError, error_payload_from_body
from modelmux.llm.types import RawToolDelta, StreamChunk

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 120.0


@asynccontextmanager
async def http_client_scope(
    client: httpx.AsyncClient | None, timeout: float = DEFAULT_TIMEOUT
) -> AsyncIterator[httpx.AsyncClient]:
    """Yield *client* if given, else a short-lived client closed on exit."""
    if client is not None:
        yield client
        return
    async with httpx.AsyncClient(timeout=timeout) as owned:
        yield owned


async def post_json(
    client: httpx.AsyncClient | None,
    url: str,
    body: dict,
    headers: dict[str, str],
    timeout: float = DEFAULT_TIMEOUT,
) -> Any:
    """POST *body* and return the decoded JSON response, raising on non-2xx."""
    async with http_client_scope(client, timeout) as http:
        resp = await http.post(url, json=body, headers=headers)
        if resp.status_code >= 400:
            raise ProviderHTTPError.from_response(resp.status_code, resp.text)
        return resp.json()


class OpenAICompatClient:
    """
    Streams ``/chat/completions`` responses as ``StreamChunk`` objects.

    Parameters
    ----------
    base_url:
        Base URL of the API, e.g. ``"https://api.together.xyz/v1"``.
    api_key:
        Bearer token.  Pass ``""`` for unauthenticated local endpoints.
    headers:
        Extra headers sent with every request.
    http_client:
        Optional shared ``httpx.AsyncClient`` (tests inject one backed by
        ``httpx.MockTransport``).
    timeout:
        HTTP request timeout in seconds.
    """

    def __init__(
        self,
        base_url: str,
        api_key: str = "",
        headers: dict[str, str] | None = None,
        http_client: httpx.AsyncClient | None = None,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> None:
        self._url = base_url.rstrip("/")
        self._api_key = api_key
        self._headers = dict(headers or {})
        self._http_client = http_client
        self._timeout = timeout

    @property
    def base_url(self) -> str:
        return self._url

    def build_headers(self) -> dict[str, str]:
        headers: dict[str, str] = {
            "Content-Type": "application/json",
            "Accept": "text/event-stream",
        }
        if self._api_key:
            headers["Authorization"] = f"Bearer {self._api_key}"
        headers.update(self._headers)
        return headers

    async def stream_chat(self, body: dict) -> AsyncIterator[StreamChunk]:
        """
        POST *body* with ``stream: true`` and yield parsed chunks.

        A non-2xx status raises ``ProviderHTTPError`` before any chunk is
        yielded.
        """
        url = f"{self._url}/chat/completions"
        body = {**body, "stream": True}
        async with http_client_scope(self._http_client, self._timeout) as client:
            async with client.stream(
                "POST", url, json=body, headers=self.build_headers()
            ) as response:
                if response.status_code >= 400:
                    raw = await response.aread()
                    raise ProviderHTTPError.from_response(
                        response.status_code, raw.decode("utf-8", errors="replace")
                    )

                async for chunk in self._parse_sse_stream(response):
                    yield chunk

    async def _parse_sse_stream(
        self, response: httpx.Response
    ) -> AsyncIterator[StreamChunk]:
        """
        Parse Server-Sent Events from the response.

        Each SSE event has the form::

            data: {json}\\n\\n

        The sentinel ``data: [DONE]`` terminates the stream.  Lines come from
        ``aiter_lines``, which decodes incrementally, so multi-byte
        characters split across network reads arrive intact.
        """
        async for line in response.aiter_lines():
            if not line or not line.startswith("data:"):
                # Blank event boundaries, comments and keep-alives.
                continue

            data_str = line[len("data:"):].strip()
            if data_str == "[DONE]":
                yield StreamChunk(done=True)
                return

            try:
                data = json.loads(data_str)
            except json.JSONDecodeError:
                logger.warning("Failed to parse SSE data: %s", data_str[:200])
                continue
            if not isinstance(data, dict):
                logger.warning("Ignoring non-object SSE payload: %s", data_str[:200])
                continue

            chunk = sse_data_to_chunk(data)
            if chunk is not None:
                yield chunk

        # If the stream ends without [DONE], emit a final chunk.
        yield StreamChunk(done=True)


def sse_data_to_chunk(data: dict) -> StreamChunk | None:
    """Convert a parsed SSE ``data`` payload into a ``StreamChunk``."""
    if "error" in data and not data.get("choices"):
        payload = error_payload_from_body(json.dumps(data)) or {"message": str(data["error"])}
        raise ProviderStreamError(payload["message"], payload=payload)

    choices = data.get("choices")
    if not choices:
        return None

    choice = choices[0] if isinstance(choices, list) else None
    if not isinstance(choice, dict):
        return None
    delta = choice.get("delta")
    if not isinstance(delta, dict):
        delta = {}

    text_delta = delta.get("content")
    if not isinstance(text_delta, str):
        text_delta = ""

    # Providers disagree on the field name for the reasoning channel.
    reasoning = delta.get("reasoning_content")
    if not isinstance(reasoning, str):
        reasoning = delta.get("reasoning")
    if not isinstance(reasoning, str):
        reasoning = None

    tool_deltas: list[RawToolDelta] | None = None
    raw_tcs = delta.get("tool_calls")
    if isinstance(raw_tcs, list) and raw_tcs:
        tool_deltas = []
        for position, raw_tc in enumerate(raw_tcs):
            if not isinstance(raw_tc, dict):
                continue
            func = raw_tc.get("function")
            if not isinstance(func, dict):
                func = {}
            tool_deltas.append(
                RawToolDelta(
                    call_index=raw_tc.get("index", position),
                    id=raw_tc.get("id"),
                    name_delta=func.get("name") or "",
                    args_delta=func.get("arguments") or "",
                )
            )

    return StreamChunk(
        delta=text_delta,
        reasoning=reasoning,
        tool_deltas=tool_deltas,
        finish_reason=choice.get("finish_reason"),
    )
