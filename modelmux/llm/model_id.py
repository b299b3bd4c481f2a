"""Parsing of composite ``provider::model[::subId]`` identifiers."""

from __future__ import annotations

from dataclasses import dataclass

from modelmux.llm.errors import ConfigurationError

SEPARATOR = "::"


@dataclass(frozen=True)
class ModelId:
    provider_key: str
    model_name: str
    # For ``custom::providerId::model`` identifiers.
    custom_provider_id: str | None = None


def parse_model_id(model_id: str) -> ModelId:
    """
    Split *model_id* into its provider key and model name.

    Everything after the first separator is the model name, so names that
    themselves contain ``::`` survive.  ``custom`` ids must also carry a
    provider id.
    """
    parts = model_id.split(SEPARATOR)
    if len(parts) < 2 or not parts[0].strip():
        raise ConfigurationError(f"Invalid model id: {model_id}")

    if parts[0] == "custom":
        return parse_custom_model_id(model_id)

    model_name = SEPARATOR.join(parts[1:])
    if not model_name.strip():
        raise ConfigurationError(f"Invalid model id: {model_id}")
    return ModelId(provider_key=parts[0], model_name=model_name)


def parse_custom_model_id(model_id: str) -> ModelId:
    parts = model_id.split(SEPARATOR)
    if len(parts) < 3:
        raise ConfigurationError(f"Invalid custom provider model id: {model_id}")
    provider_id = parts[1]
    model_name = SEPARATOR.join(parts[2:])
    if not provider_id or not model_name:
        raise ConfigurationError(f"Invalid custom provider model id: {model_id}")
    return ModelId(provider_key=parts[0], model_name=model_name, custom_provider_id=provider_id)
