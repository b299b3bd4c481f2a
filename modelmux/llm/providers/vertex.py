"""
Google Vertex AI (``vertex::<model>``).

Authenticates with a service account: a signed JWT is exchanged for an
access token (cached per account, see ``modelmux.llm.credentials``), which
is then used against Vertex's OpenAI-compatible ``endpoints/openapi``
surface.  Imagen models go to the regional publisher ``:predict`` endpoint.
"""

from __future__ import annotations

import logging
import re

import httpx

from modelmux.config import VertexConfig
from modelmux.llm.credentials import get_google_access_token
from modelmux.llm.errors import ConfigurationError, ImageGenerationError, ModelmuxError
from modelmux.llm.formatter import ConversationFormatter, with_system_prompt
from modelmux.llm.images import save_base64_image
from modelmux.llm.model_id import parse_model_id
from modelmux.llm.negotiator import gemini_thinking_params
from modelmux.llm.providers.base import Provider, deliver_complete, deliver_error
from modelmux.llm.providers.google import WEB_TOOLSET, is_imagen_model, last_user_prompt
from modelmux.llm.providers.openai_compat import StreamPlan, build_chat_body, run_stream
from modelmux.llm.transport import DEFAULT_TIMEOUT, OpenAICompatClient, post_json
from modelmux.llm.types import ModelDisabled, StreamRequest

logger = logging.getLogger(__name__)

_PUBLISHER_RE = re.compile(r"(?:^|/)publishers/([^/]+)/models/([^/]+)$")


def normalize_vertex_publisher_model(model: str) -> str:
    """
    Reduce any spelling of a Vertex model to ``publisher/model``.

    >>> normalize_vertex_publisher_model("projects/p/locations/l/publishers/meta/models/llama")
    'meta/llama'
    >>> normalize_vertex_publisher_model("models/gemini-2.5-pro")
    'google/gemini-2.5-pro'
    >>> normalize_vertex_publisher_model("gemini-2.5-flash")
    'google/gemini-2.5-flash'
    """
    model = model.strip().strip("/")
    match = _PUBLISHER_RE.search(model)
    if match:
        return f"{match.group(1)}/{match.group(2)}"
    if model.startswith("models/"):
        return f"google/{model[len('models/'):]}"
    if "/" in model:
        return model
    return f"google/{model}"


def vertex_openapi_base_url(project_id: str, location: str) -> str:
    host = "aiplatform.googleapis.com" if location == "global" else f"{location}-aiplatform.googleapis.com"
    return f"https://{host}/v1beta1/projects/{project_id}/locations/{location}/endpoints/openapi"


def vertex_imagen_url(project_id: str, location: str, model: str) -> str:
    return (
        f"https://{location}-aiplatform.googleapis.com/v1/projects/{project_id}"
        f"/locations/{location}/publishers/google/models/{model}:predict"
    )


class VertexProvider(Provider):
    def __init__(
        self,
        vertex: VertexConfig,
        formatter: ConversationFormatter | None = None,
        http_client: httpx.AsyncClient | None = None,
        timeout: float = DEFAULT_TIMEOUT,
        images_dir: str = "~/.modelmux/generated_images",
    ) -> None:
        self._vertex = vertex
        self._formatter = formatter or ConversationFormatter()
        self._http_client = http_client
        self._timeout = timeout
        self._images_dir = images_dir

    @property
    def name(self) -> str:
        return "vertex"

    def _credentials(self) -> tuple[str, str, str, str]:
        vertex = self._vertex
        private_key = vertex.resolved_private_key()
        if not (vertex.project_id and vertex.client_email and private_key):
            raise ConfigurationError("Please configure Vertex AI credentials in Settings.")
        return vertex.project_id, vertex.location or "us-central1", vertex.client_email, private_key

    async def stream_response(self, request: StreamRequest) -> ModelDisabled | None:
        config = request.model_config
        raw_model = parse_model_id(config.model_id).model_name
        project_id, location, client_email, private_key = self._credentials()

        try:
            token = await get_google_access_token(
                client_email, private_key, http_client=self._http_client
            )
        except ConfigurationError:
            raise
        except (ModelmuxError, httpx.HTTPError) as exc:
            deliver_error(
                request, exc, provider=self.name, model=raw_model, context={"stage": "token"}
            )
            return None

        bare_model = raw_model.rsplit("/", 1)[-1]
        if is_imagen_model(bare_model):
            await self._generate_imagen(request, project_id, location, bare_model, token)
            return None

        model = normalize_vertex_publisher_model(raw_model)
        client = OpenAICompatClient(
            request.custom_base_url or vertex_openapi_base_url(project_id, location),
            token,
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
        if (
            model.startswith("google/")
            and "gemini" in model
            and WEB_TOOLSET in (request.enabled_toolsets or [])
        ):
            extra.add("web_search_options", {})

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

    async def _generate_imagen(
        self,
        request: StreamRequest,
        project_id: str,
        location: str,
        model: str,
        token: str,
    ) -> None:
        url = vertex_imagen_url(project_id, location, model)
        headers = {"Content-Type": "application/json", "Authorization": f"Bearer {token}"}
        headers.update(request.additional_headers or {})
        try:
            prompt = last_user_prompt(request.conversation)
            logger.info("REQUEST: provider=vertex model=%s imagen predict", model)
            data = await post_json(
                self._http_client,
                url,
                {"instances": [{"prompt": prompt}], "parameters": {"sampleCount": 1}},
                headers,
                self._timeout,
            )
            predictions = (data or {}).get("predictions") or []
            encoded = predictions[0].get("bytesBase64Encoded") if predictions else None
            if not encoded:
                raise ImageGenerationError("No image data in response")
            image = save_base64_image(encoded, prompt, self._images_dir, prefix="vertex-")
        except (ModelmuxError, httpx.HTTPError) as exc:
            deliver_error(request, exc, provider=self.name, model=model, context={"url": url})
            return

        request.on_chunk(image.markdown)
        await deliver_complete(request, image.as_extra())
