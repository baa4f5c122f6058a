"""Raw token extraction from the current Flask request.

- BearerExtractor: ``Authorization: Bearer <token>`` (APIs, mobile clients)
- CookieExtractor: a named cookie (browser sessions, e.g. an ``id_token``)

Extractors only locate the token. They never look inside it.
"""

from __future__ import annotations

from flask import request

from .errors import MissingToken

_BEARER = "bearer"


class BearerExtractor:
    """Reads the token from an ``Authorization: Bearer <token>`` header.

    The scheme is matched case-insensitively; anything else (missing header,
    other scheme, empty token) raises MissingToken.
    """

    def extract(self) -> str:
        header = request.headers.get("Authorization", "").strip()
        if not header:
            raise MissingToken("Missing Authorization header")

        scheme, _, token = header.partition(" ")
        if scheme.lower() != _BEARER:
            raise MissingToken("Invalid authorization scheme (expected 'Bearer')")

        token = token.strip()
        if not token:
            raise MissingToken("Bearer token is empty")
        return token


class CookieExtractor:
    """Reads the token from a cookie.

    Attributes:
        cookie_name: Name of the cookie holding the token.
    """

    def __init__(self, cookie_name: str = "access_token") -> None:
        if not cookie_name or not cookie_name.strip():
            raise ValueError("cookie_name cannot be empty")
        self.cookie_name = cookie_name

    def extract(self) -> str:
        token = request.cookies.get(self.cookie_name)
        if not token:
            raise MissingToken(f"Missing cookie '{self.cookie_name}'")
        return token
