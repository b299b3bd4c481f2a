"""
Exception types and provider-error classification.

Providers fail in three broad ways:

  - **configuration** -- a missing key or malformed model id, detected before
    any network call.
  - **provider** -- the backend answered with a typed error payload.  The
    OpenRouter-style ``"Provider returned error"`` shape hides the useful
    message inside ``metadata.raw``, which is often a JSON document encoded
    as a string (sometimes twice, sometimes with trailing commas).
  - **transport** -- anything else; surfaced with its raw message.

``classify_error`` maps an exception onto a ``ClassifiedError`` whose
``message`` is safe to show to the user.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from enum import Enum
from typing import Any

import httpx
import json5

PROVIDER_RETURNED_ERROR = "Provider returned error"
PARSE_FAILURE_MESSAGE = "Failed to parse error details"


class ModelmuxError(Exception):
    """Base class for all errors raised by this package."""


class ConfigurationError(ModelmuxError):
    """Request cannot be made: missing credential, bad model id, etc."""


class ProviderHTTPError(ModelmuxError):
    """
    The provider answered with a non-2xx status.

    *payload* is the decoded error object (``{"message": ..., "error": ...,
    "metadata": ...}``) when the body was JSON, else ``None``.
    """

    def __init__(
        self,
        message: str,
        status_code: int,
        payload: dict | None = None,
        body: str = "",
    ) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.payload = payload
        self.body = body

    @classmethod
    def from_response(cls, status_code: int, body: str) -> "ProviderHTTPError":
        payload = error_payload_from_body(body)
        if payload is not None:
            message = payload["message"]
        else:
            message = f"HTTP {status_code}"
        return cls(message, status_code=status_code, payload=payload, body=body)


class ProviderStreamError(ModelmuxError):
    """The provider reported an error inside an otherwise healthy stream."""

    def __init__(self, message: str, payload: dict | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.payload = payload


class ImageGenerationError(ModelmuxError):
    """An image generation response could not be turned into an image."""


class ErrorKind(str, Enum):
    CONFIGURATION = "configuration"
    PROVIDER = "provider"
    TRANSPORT = "transport"


@dataclass
class ClassifiedError:
    kind: ErrorKind
    message: str


# ---------------------------------------------------------------------------
# Lenient JSON
# ---------------------------------------------------------------------------

def parse_lenient_json(text: str) -> Any:
    """
    Parse *text* as JSON5 (trailing commas, single quotes, comments).

    A document that decodes to a string is decoded once more, which unwraps
    double-encoded payloads.  Raises ``ValueError`` when the text cannot be
    parsed.
    """
    value = json5.loads(text)
    if isinstance(value, str):
        stripped = value.strip()
        if stripped.startswith(("{", "[")):
            value = json5.loads(stripped)
    return value


# ---------------------------------------------------------------------------
# Classification
# ---------------------------------------------------------------------------

def is_provider_error_payload(payload: Any) -> bool:
    """True for the ``{"message": "Provider returned error", ...}`` shape."""
    return (
        isinstance(payload, dict)
        and payload.get("message") == PROVIDER_RETURNED_ERROR
        and ("error" in payload or "metadata" in payload)
    )


def provider_error_message(payload: dict) -> str:
    """Extract the user-facing message from a provider error payload."""
    error = payload.get("error")
    raw = None
    if isinstance(error, dict):
        raw = (error.get("metadata") or {}).get("raw")
    if not raw:
        raw = (payload.get("metadata") or {}).get("raw")

    if isinstance(raw, dict):
        details = raw
    else:
        try:
            details = parse_lenient_json(raw or "{}")
        except (ValueError, TypeError):
            details = {"error": {"message": PARSE_FAILURE_MESSAGE}}

    inner = None
    if isinstance(details, dict):
        inner_error = details.get("error")
        if isinstance(inner_error, dict):
            inner = inner_error.get("message")
        elif isinstance(inner_error, str):
            inner = inner_error
    return f"{PROVIDER_RETURNED_ERROR}: {inner or payload['message']}"


def classify_payload(payload: dict) -> ClassifiedError:
    if is_provider_error_payload(payload):
        return ClassifiedError(ErrorKind.PROVIDER, provider_error_message(payload))
    return ClassifiedError(ErrorKind.PROVIDER, str(payload.get("message") or "Unknown error"))


def classify_error(exc: BaseException) -> ClassifiedError:
    """Turn any exception raised while streaming into a user-facing message."""
    if isinstance(exc, ConfigurationError):
        return ClassifiedError(ErrorKind.CONFIGURATION, str(exc))

    payload = getattr(exc, "payload", None)
    if isinstance(payload, dict):
        return classify_payload(payload)

    if isinstance(exc, httpx.TimeoutException):
        return ClassifiedError(ErrorKind.TRANSPORT, f"Request timed out: {exc}" if str(exc) else "Request timed out")

    message = str(exc) or type(exc).__name__
    return ClassifiedError(ErrorKind.TRANSPORT, message)


def error_payload_from_body(body: str) -> dict | None:
    """
    Normalise an HTTP error body into the provider-error payload shape.

    OpenAI-compatible servers answer ``{"error": {"message": ..., "metadata":
    {...}}}``; Google answers ``[{"error": {...}}]``.
    """
    try:
        data = json.loads(body)
    except (json.JSONDecodeError, ValueError):
        return None

    if isinstance(data, list) and data:
        data = data[0]
    if not isinstance(data, dict):
        return None

    error = data.get("error")
    if isinstance(error, dict) and error.get("message"):
        payload: dict = {"message": error["message"], "error": error}
        if "metadata" in error:
            payload["metadata"] = error["metadata"]
        return payload
    if isinstance(error, str):
        return {"message": error}
    if data.get("message"):
        return dict(data)
    return None
