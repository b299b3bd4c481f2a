"""Provider families, one module per backend."""

from modelmux.llm.providers.base import Provider
from modelmux.llm.providers.cerebras import CerebrasProvider
from modelmux.llm.providers.custom_openai import CustomOpenAIProvider
from modelmux.llm.providers.fireworks import FireworksProvider
from modelmux.llm.providers.google import GoogleProvider
from modelmux.llm.providers.together import TogetherProvider
from modelmux.llm.providers.vertex import VertexProvider

__all__ = [
    "CerebrasProvider",
    "CustomOpenAIProvider",
    "FireworksProvider",
    "GoogleProvider",
    "Provider",
    "TogetherProvider",
    "VertexProvider",
]
