"""
Google Gemini (``google::<model>``).

Chat goes through Gemini's OpenAI-compatible layer.  Three requests use the
native ``generativelanguage`` API instead and are answered in one piece:

* ``imagen-*`` models: Imagen ``:predict``
* ``*-image-preview`` models: ``:generateContent`` with image output
* the ``web`` toolset: ``:generateContent`` with ``google_search`` grounding
"""

from __future__ import annotations

import logging

import httpx

from modelmux.llm.errors import ImageGenerationError, ModelmuxError
from modelmux.llm.formatter import (
    ConversationFormatter,
    to_gemini_contents,
    with_system_prompt,
)
from modelmux.llm.images import save_base64_image
from modelmux.llm.model_id import parse_model_id
from modelmux.llm.negotiator import gemini_thinking_params
from modelmux.llm.providers.base import Provider, deliver_complete, deliver_error, require_api_key
from modelmux.llm.providers.openai_compat import StreamPlan, build_chat_body, run_stream
from modelmux.llm.transport import DEFAULT_TIMEOUT, OpenAICompatClient, post_json
from modelmux.llm.types import Message, ModelDisabled, StreamRequest

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://generativelanguage.googleapis.com/v1beta/openai"
NATIVE_BASE_URL = "https://generativelanguage.googleapis.com/v1beta"

MODEL_ALIASES = {
    "gemini-2.5-pro-latest": "gemini-2.5-pro-preview-06-05",
    "gemini-2.5-flash-preview-04-17": "gemini-2.5-flash",
}

WEB_TOOLSET = "web"


def resolve_model_alias(model: str) -> str:
    return MODEL_ALIASES.get(model, model)


def is_imagen_model(model: str) -> bool:
    return model.startswith("imagen-")


def is_gemini_image_model(model: str) -> bool:
    return model.endswith("-image-preview")


def native_base_url(custom_base_url: str | None) -> str:
    """The native API root, derived from an OpenAI-layer override if given."""
    if custom_base_url:
        base = custom_base_url.rstrip("/")
        if base.endswith("/openai"):
            base = base[: -len("/openai")]
        return base
    return NATIVE_BASE_URL


def last_user_prompt(conversation: list[Message]) -> str:
    if not conversation or conversation[-1].role != "user" or not conversation[-1].content.strip():
        raise ImageGenerationError("No user prompt found for image generation")
    return conversation[-1].content


# ---------------------------------------------------------------------------
# Grounded search response handling
# ---------------------------------------------------------------------------

def extract_candidate_text(response: dict) -> str:
    candidates = response.get("candidates") or []
    if not candidates:
        return ""
    parts = (candidates[0].get("content") or {}).get("parts") or []
    return "".join(p.get("text", "") for p in parts if isinstance(p, dict))


def extract_sources(response: dict) -> list[tuple[str, str]]:
    """
    Collect ``(url, title)`` pairs from every place Gemini reports grounding
    sources, first occurrence of each URL wins.
    """
    found: list[tuple[str, str]] = []
    for candidate in response.get("candidates") or []:
        metadata = candidate.get("groundingMetadata") or {}
        for chunk in metadata.get("groundingChunks") or []:
            web = chunk.get("web") or {}
            found.append((web.get("uri", ""), web.get("title", "")))
        for result in metadata.get("webResults") or []:
            found.append((result.get("url", ""), result.get("title", "")))
        for citation in (candidate.get("citationMetadata") or {}).get("citations") or []:
            found.append((citation.get("uri", ""), citation.get("title", "")))
        for citation in metadata.get("citations") or []:
            found.append((citation.get("uri", ""), citation.get("title", "")))

    seen: set[str] = set()
    sources: list[tuple[str, str]] = []
    for url, title in found:
        if url and url not in seen:
            seen.add(url)
            sources.append((url, title or ""))
    return sources


def format_sources(sources: list[tuple[str, str]]) -> str:
    if not sources:
        return ""
    lines = [f"{i}. [{title or url}]({url})" for i, (url, title) in enumerate(sources, start=1)]
    return "\n\nSources:\n" + "\n".join(lines)


class GoogleProvider(Provider):
    def __init__(
        self,
        base_url: str = DEFAULT_BASE_URL,
        formatter: ConversationFormatter | None = None,
        http_client: httpx.AsyncClient | None = None,
        timeout: float = DEFAULT_TIMEOUT,
        images_dir: str = "~/.modelmux/generated_images",
    ) -> None:
        self._base_url = base_url
        self._formatter = formatter or ConversationFormatter()
        self._http_client = http_client
        self._timeout = timeout
        self._images_dir = images_dir

    @property
    def name(self) -> str:
        return "google"

    async def stream_response(self, request: StreamRequest) -> ModelDisabled | None:
        config = request.model_config
        model = resolve_model_alias(parse_model_id(config.model_id).model_name)
        api_key = require_api_key(
            request.api_keys, "google", "Please add your Google AI API key in Settings."
        )

        if is_imagen_model(model):
            await self._generate_imagen(request, model, api_key)
            return None
        if is_gemini_image_model(model):
            await self._generate_gemini_image(request, model, api_key)
            return None
        if WEB_TOOLSET in (request.enabled_toolsets or []):
            await self._grounded_search(request, model, api_key)
            return None

        client = OpenAICompatClient(
            request.custom_base_url or self._base_url,
            api_key,
            headers=request.additional_headers,
            http_client=self._http_client,
            timeout=self._timeout,
        )
        messages = self._formatter.format(
            request.conversation,
            image_support=config.supports("image"),
            function_support=bool(request.tools),
        )
        extra = gemini_thinking_params(model, config)
        body = build_chat_body(
            model, with_system_prompt(messages, config.system_prompt), request.tools, extra
        )
        await run_stream(
            client,
            request,
            StreamPlan(
                provider=self.name,
                model=model,
                body=body,
                show_thoughts=config.show_thoughts,
                strippable=extra.strippable,
            ),
        )
        return None

    def _native_headers(self, request: StreamRequest, api_key: str) -> dict[str, str]:
        headers = {"Content-Type": "application/json", "x-goog-api-key": api_key}
        headers.update(request.additional_headers or {})
        return headers

    # ----- image generation ------------------------------------------------

    async def _generate_imagen(self, request: StreamRequest, model: str, api_key: str) -> None:
        url = f"{native_base_url(request.custom_base_url)}/models/{model}:predict"
        try:
            prompt = last_user_prompt(request.conversation)
            logger.info("REQUEST: provider=google model=%s imagen predict", model)
            data = await post_json(
                self._http_client,
                url,
                {"instances": [{"prompt": prompt}], "parameters": {"sampleCount": 1}},
                self._native_headers(request, api_key),
                self._timeout,
            )
            predictions = (data or {}).get("predictions") or []
            encoded = predictions[0].get("bytesBase64Encoded") if predictions else None
            if not encoded:
                raise ImageGenerationError("No image data in response")
            image = save_base64_image(encoded, prompt, self._images_dir)
        except (ModelmuxError, httpx.HTTPError) as exc:
            deliver_error(request, exc, provider=self.name, model=model, context={"url": url})
            return

        request.on_chunk(image.markdown)
        await deliver_complete(request, image.as_extra())

    async def _generate_gemini_image(self, request: StreamRequest, model: str, api_key: str) -> None:
        url = f"{native_base_url(request.custom_base_url)}/models/{model}:generateContent"
        try:
            prompt = last_user_prompt(request.conversation)
            logger.info("REQUEST: provider=google model=%s image generateContent", model)
            data = await post_json(
                self._http_client,
                url,
                {
                    "contents": [{"role": "user", "parts": [{"text": prompt}]}],
                    "generationConfig": {"responseModalities": ["IMAGE"]},
                },
                self._native_headers(request, api_key),
                self._timeout,
            )
            encoded = None
            for candidate in (data or {}).get("candidates") or []:
                for part in (candidate.get("content") or {}).get("parts") or []:
                    inline = part.get("inlineData") or part.get("inline_data") or {}
                    if inline.get("data"):
                        encoded = inline["data"]
                        break
                if encoded:
                    break
            if not encoded:
                raise ImageGenerationError("No image data in response")
            image = save_base64_image(encoded, prompt, self._images_dir)
        except (ModelmuxError, httpx.HTTPError) as exc:
            deliver_error(request, exc, provider=self.name, model=model, context={"url": url})
            return

        request.on_chunk(image.markdown)
        await deliver_complete(request, image.as_extra())

    # ----- grounded search -------------------------------------------------

    async def _grounded_search(self, request: StreamRequest, model: str, api_key: str) -> None:
        config = request.model_config
        url = f"{native_base_url(request.custom_base_url)}/models/{model}:generateContent"
        messages = self._formatter.format(
            request.conversation,
            image_support=False,
            function_support=False,
        )
        body = {
            "contents": to_gemini_contents(messages, config.system_prompt),
            "tools": [{"google_search": {}}],
        }
        logger.info(
            "REQUEST: provider=google model=%s grounded search messages=%d",
            model,
            len(body["contents"]),
        )
        try:
            data = await post_json(
                self._http_client,
                url,
                body,
                self._native_headers(request, api_key),
                self._timeout,
            )
        except (ModelmuxError, httpx.HTTPError) as exc:
            deliver_error(request, exc, provider=self.name, model=model, context={"url": url})
            return

        data = data if isinstance(data, dict) else {}
        text = extract_candidate_text(data)
        if text:
            request.on_chunk(text)
        sources = format_sources(extract_sources(data))
        if sources:
            request.on_chunk(sources)
        await deliver_complete(request)

