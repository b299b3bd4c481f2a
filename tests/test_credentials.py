"""Tests for modelmux.llm.credentials."""

from __future__ import annotations

import base64
import json
from urllib.parse import parse_qs

import httpx
import pytest
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import padding

from modelmux.llm.credentials import (
    TOKEN_URL,
    get_google_access_token,
    load_private_key,
    normalize_private_key,
    sign_jwt_rs256,
)
from modelmux.llm.errors import ConfigurationError, ProviderHTTPError

from tests.mock_transport import QueuedHandler, json_response, mock_client

EMAIL = "sa@proj.iam.gserviceaccount.com"


def b64url_decode(part: str) -> bytes:
    return base64.urlsafe_b64decode(part + "=" * (-len(part) % 4))


class TestJwt:

    def test_signature_verifies(self, rsa_key, private_key_pem):
        token = sign_jwt_rs256({"iss": EMAIL}, private_key_pem)
        header, payload, signature = token.split(".")

        assert json.loads(b64url_decode(header)) == {"alg": "RS256", "typ": "JWT"}
        assert json.loads(b64url_decode(payload)) == {"iss": EMAIL}
        rsa_key.public_key().verify(
            b64url_decode(signature),
            f"{header}.{payload}".encode("ascii"),
            padding.PKCS1v15(),
            hashes.SHA256(),
        )

    def test_escaped_newlines_accepted(self, private_key_pem):
        escaped = private_key_pem.replace("\n", "\\n")
        assert normalize_private_key(escaped) == private_key_pem
        load_private_key(f'"{escaped}"')

    def test_bare_base64_body_wrapped(self, private_key_pem):
        body = "".join(
            line for line in private_key_pem.splitlines() if not line.startswith("-----")
        )
        load_private_key(body)

    def test_invalid_key(self):
        with pytest.raises(ConfigurationError, match="Invalid service account private key"):
            load_private_key("not a key")


class TestAccessToken:

    async def test_exchange_and_cache(self, private_key_pem):
        handler = QueuedHandler(json_response({"access_token": "tok-1", "expires_in": 3600}))
        client = mock_client(handler)

        token = await get_google_access_token(EMAIL, private_key_pem, http_client=client, clock=lambda: 1000.0)
        again = await get_google_access_token(EMAIL, private_key_pem, http_client=client, clock=lambda: 2000.0)

        assert token == again == "tok-1"
        assert len(handler.requests) == 1
        request = handler.requests[0]
        assert str(request.url) == TOKEN_URL
        form = parse_qs(request.content.decode("ascii"))
        assert form["grant_type"] == ["urn:ietf:params:oauth:grant-type:jwt-bearer"]
        claims = json.loads(b64url_decode(form["assertion"][0].split(".")[1]))
        assert claims["iss"] == claims["sub"] == EMAIL
        assert claims["exp"] - claims["iat"] == 3600
        assert claims["scope"] == "https://www.googleapis.com/auth/cloud-platform"

    async def test_refresh_inside_margin(self, private_key_pem):
        handler = QueuedHandler(
            json_response({"access_token": "tok-1", "expires_in": 3600}),
            json_response({"access_token": "tok-2", "expires_in": 3600}),
        )
        client = mock_client(handler)

        await get_google_access_token(EMAIL, private_key_pem, http_client=client, clock=lambda: 0.0)
        # 59 s before expiry: inside the refresh margin.
        token = await get_google_access_token(EMAIL, private_key_pem, http_client=client, clock=lambda: 3541.0)

        assert token == "tok-2"
        assert len(handler.requests) == 2

    async def test_cache_is_per_account(self, private_key_pem):
        handler = QueuedHandler(
            json_response({"access_token": "a", "expires_in": 3600}),
            json_response({"access_token": "b", "expires_in": 3600}),
        )
        client = mock_client(handler)
        assert await get_google_access_token("a@x", private_key_pem, http_client=client) == "a"
        assert await get_google_access_token("b@x", private_key_pem, http_client=client) == "b"

    async def test_exchange_failure(self, private_key_pem):
        handler = QueuedHandler(
            json_response({"error": "invalid_grant", "error_description": "Invalid JWT Signature."}, 400)
        )
        with pytest.raises(ProviderHTTPError) as info:
            await get_google_access_token(EMAIL, private_key_pem, http_client=mock_client(handler))
        assert str(info.value) == "Failed to fetch Google access token (400): Invalid JWT Signature."
        assert info.value.status_code == 400

    @pytest.mark.parametrize("response", [
        httpx.Response(200, text="<html>not json</html>"),
        httpx.Response(200, json={"token_type": "Bearer"}),
        httpx.Response(200, json=["access_token"]),
        httpx.Response(200, json={"access_token": ""}),
    ])
    async def test_unusable_success_body(self, private_key_pem, response):
        handler = QueuedHandler(response)
        with pytest.raises(ProviderHTTPError, match="did not include an access token") as info:
            await get_google_access_token(EMAIL, private_key_pem, http_client=mock_client(handler))
        assert info.value.status_code == 200
