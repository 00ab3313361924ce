"""Shared test fixtures for myoauth.

Provides RSA signing keys, a token factory, configuration objects and a fake
Cognito user pool served through ``httpx.MockTransport``.
"""

from __future__ import annotations

import base64
import json
import time
from typing import Any
from urllib.parse import parse_qs

import httpx
import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from jose import jwt

from myoauth.config import CognitoConfig, Settings

CONFIG_VALUES = {
    "user_pool_id": "eu-central-1_AbCdEf123",
    "client_id": "34098ugf",
    "client_secret": "s3cr3t",
    "domain_prefix": "hello",
    "region": "eu-central-1",
    "redirect_uri": "https://testserver/oauth/callback",
}


def _b64url_uint(value: int) -> str:
    raw = value.to_bytes((value.bit_length() + 7) // 8, "big")
    return base64.urlsafe_b64encode(raw).rstrip(b"=").decode("ascii")


class SigningKey:
    """An RSA key pair with a key ID, able to mint RS256 tokens."""

    def __init__(self, kid: str):
        self.kid = kid
        self._private = rsa.generate_private_key(public_exponent=65537, key_size=2048)
        self.pem = self._private.private_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PrivateFormat.PKCS8,
            encryption_algorithm=serialization.NoEncryption(),
        ).decode("ascii")

    def jwk(self, kid: str | None = None) -> dict[str, str]:
        numbers = self._private.public_key().public_numbers()
        return {
            "kid": kid or self.kid,
            "alg": "RS256",
            "kty": "RSA",
            "e": _b64url_uint(numbers.e),
            "n": _b64url_uint(numbers.n),
            "use": "sig",
        }

    def sign(self, claims: dict[str, Any], kid: str | None = None) -> str:
        return jwt.encode(claims, self.pem, algorithm="RS256", headers={"kid": kid or self.kid})


@pytest.fixture(scope="session")
def signing_key() -> SigningKey:
    return SigningKey("key-1")


@pytest.fixture(scope="session")
def other_key() -> SigningKey:
    return SigningKey("key-2")


@pytest.fixture
def config() -> CognitoConfig:
    return CognitoConfig.from_mapping(CONFIG_VALUES)


@pytest.fixture
def settings() -> Settings:
    return Settings(**CONFIG_VALUES)


def access_claims(config: CognitoConfig, **overrides: Any) -> dict[str, Any]:
    now = int(time.time())
    claims = {
        "sub": "user-123",
        "iss": config.issuer,
        "token_use": "access",
        "client_id": config.client_id,
        "username": "alice",
        "exp": now + 3600,
        "iat": now,
    }
    claims.update(overrides)
    return claims


def id_claims(config: CognitoConfig, **overrides: Any) -> dict[str, Any]:
    now = int(time.time())
    claims = {
        "sub": "user-123",
        "iss": config.issuer,
        "token_use": "id",
        "aud": config.client_id,
        "cognito:username": "alice",
        "email": "alice@example.com",
        "exp": now + 3600,
        "iat": now,
    }
    claims.update(overrides)
    return claims


class FakeCognito:
    """Serves the JWKS and token endpoints of a user pool."""

    def __init__(self, config: CognitoConfig, keys: list[dict[str, str]]):
        self.config = config
        self.jwks_response = httpx.Response(200, json={"keys": keys})
        self.token_responses: list[httpx.Response] = []
        self.token_requests: list[httpx.Request] = []
        self.jwks_requests = 0

    def queue_token(self, status_code: int = 200, **body: Any) -> None:
        self.token_responses.append(httpx.Response(status_code, json=body))

    def form(self, index: int = -1) -> dict[str, str]:
        parsed = parse_qs(self.token_requests[index].content.decode("ascii"))
        return {name: values[0] for name, values in parsed.items()}

    @staticmethod
    def _copy(response: httpx.Response) -> httpx.Response:
        # A response object can only be sent once
        return httpx.Response(response.status_code, headers=response.headers, content=response.content)

    def handler(self, request: httpx.Request) -> httpx.Response:
        url = str(request.url)
        if request.method == "GET" and url == self.config.jwks_uri:
            self.jwks_requests += 1
            return self._copy(self.jwks_response)
        if request.method == "POST" and url == self.config.token_endpoint:
            self.token_requests.append(request)
            return self._copy(self.token_responses.pop(0))
        return httpx.Response(404, content=json.dumps({"message": "not found"}))

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self.handler))


@pytest.fixture
def cognito(config: CognitoConfig, signing_key: SigningKey) -> FakeCognito:
    return FakeCognito(config, [signing_key.jwk()])
