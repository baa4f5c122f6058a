import json
import time
from typing import Any

import httpx
import jwt
import pytest
from cryptography.hazmat.primitives.asymmetric import rsa
from flask import Flask
from jwt.algorithms import RSAAlgorithm
from jwt.utils import base64url_encode

from jwks_registry import JWKSFetcher

NOW = 1_700_000_000


@pytest.fixture()
def app():
    app = Flask(__name__)
    app.config["TESTING"] = True
    return app


@pytest.fixture(scope="session")
def rsa_keys() -> dict[str, rsa.RSAPrivateKey]:
    """Two RSA private keys, generated once per session."""
    return {
        "kid-1": rsa.generate_private_key(public_exponent=65537, key_size=2048),
        "kid-2": rsa.generate_private_key(public_exponent=65537, key_size=2048),
    }


@pytest.fixture
def make_jwk(rsa_keys: dict[str, rsa.RSAPrivateKey]):
    """
    Factory fixture that returns a function.

    Usage in tests:
        jwk = make_jwk("kid-1")
        jwk = make_jwk("kid-1", use="enc")
    """

    def _make(kid: str = "kid-1", /, **overrides: Any) -> dict[str, Any]:
        jwk = json.loads(RSAAlgorithm.to_jwk(rsa_keys[kid].public_key()))
        jwk.pop("key_ops", None)
        jwk.update({"kid": kid, "alg": "RS256", "use": "sig"})
        jwk.update(overrides)
        return jwk

    return _make


@pytest.fixture
def make_token(rsa_keys: dict[str, rsa.RSAPrivateKey]):
    """Factory for RS256 tokens signed with one of the session keys."""

    def _make(kid: str = "kid-1", **claims: Any) -> str:
        payload = {"sub": "user-1", "exp": int(time.time()) + 300}
        payload.update(claims)
        return jwt.encode(payload, rsa_keys[kid], algorithm="RS256", headers={"kid": kid})

    return _make


@pytest.fixture
def make_unsigned_token():
    """Factory for compact tokens with an arbitrary header and a bogus signature."""

    def _make(header: dict[str, Any], payload: dict[str, Any] | None = None) -> str:
        parts = [
            base64url_encode(json.dumps(header).encode()),
            base64url_encode(json.dumps(payload or {"sub": "user-1"}).encode()),
            base64url_encode(b"not-a-signature"),
        ]
        return b".".join(parts).decode("ascii")

    return _make


class FakeClock:
    """Mutable clock returning Unix seconds."""

    def __init__(self, now: float = NOW):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeJWKSServer:
    """
    In-memory JWKS endpoints served through httpx.MockTransport.

    Documents are keyed by full URL; every request is recorded.
    """

    def __init__(self):
        self.documents: dict[str, Any] = {}
        self.headers: dict[str, dict[str, str]] = {}
        self.status: dict[str, int] = {}
        self.unreachable: set[str] = set()
        self.redirects: dict[str, str] = {}
        self.requests: list[str] = []

    def publish(
        self,
        url: str,
        keys: list[Any],
        cache_control: str | None = "public, max-age=21600, must-revalidate",
    ) -> None:
        self.documents[url] = {"keys": keys}
        self.headers[url] = {"cache-control": cache_control} if cache_control else {}

    def publish_raw(self, url: str, body: Any, headers: dict[str, str] | None = None) -> None:
        self.documents[url] = body
        self.headers[url] = headers or {}

    def count(self, url: str) -> int:
        return self.requests.count(url)

    def handler(self, request: httpx.Request) -> httpx.Response:
        url = str(request.url)
        self.requests.append(url)

        if url in self.unreachable:
            raise httpx.ConnectError("connection refused", request=request)
        if url in self.redirects:
            return httpx.Response(302, headers={"location": self.redirects[url]})
        if url not in self.documents:
            return httpx.Response(404, json={"error": "not found"})

        body = self.documents[url]
        status = self.status.get(url, 200)
        if isinstance(body, bytes):
            return httpx.Response(status, content=body, headers=self.headers[url])
        return httpx.Response(status, json=body, headers=self.headers[url])

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def jwks_server() -> FakeJWKSServer:
    return FakeJWKSServer()


@pytest.fixture
def fetcher(jwks_server: FakeJWKSServer, clock: FakeClock) -> JWKSFetcher:
    return JWKSFetcher(transport=jwks_server.transport, clock=clock)
