"""Token preflight and verification using PyJWT.

This module provides the verification pipeline shared by the remote and
local key caches:

1. Read the unverified header (no signature or payload work)
2. Check ``alg`` against the single pinned algorithm
3. Check ``typ`` is ``JWT`` (case-insensitive)
4. Check a ``kid`` is present
5. Resolve the ``kid`` through the caller's key selector
6. Verify signature and claims with ``jwt.decode``

The order is fixed. Structural checks run before the key lookup, and the
lookup runs before any cryptographic work, so malformed input never costs a
signature check and each rejection is attributed to exactly one step.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

import jwt

from .errors import (
    ExpiredToken,
    InvalidAlgorithm,
    MalformedToken,
    NoKidPresent,
    UnableToVerifyToken,
    UnrecognizedTokenType,
)
from .keys import SUPPORTED_ALGORITHM

if TYPE_CHECKING:
    from .protocols import Claims, KeySelector

_TOKEN_TYPE = "jwt"


@dataclass(frozen=True, slots=True)
class VerifyOptions:
    """Claim validation rules applied after the signature check.

    Attributes:
        issuer: Expected ``iss`` claim. If None, issuer is not validated.
        audience: Expected ``aud`` claim. If None, audience is not validated
            (even when the token carries one).
        leeway: Clock skew tolerance in seconds for exp/nbf/iat validation.
        verify_exp: Whether ``exp`` is required and enforced.

    Example:
        ```python
        options = VerifyOptions(
            issuer="https://accounts.google.com",
            audience="my-client-id.apps.googleusercontent.com",
            leeway=10,
        )
        claims = await registry.decrypt(IdentityProvider.GOOGLE, token, options=options)
        ```
    """

    issuer: str | None = None
    audience: str | None = None
    leeway: int = 0
    verify_exp: bool = True

    def decode_kwargs(self) -> dict[str, Any]:
        """Keyword arguments for ``jwt.decode`` beyond token, key and algorithms."""
        return {
            "issuer": self.issuer,
            "audience": self.audience,
            "leeway": self.leeway,
            "options": {
                "require": ["exp"] if self.verify_exp else [],
                "verify_exp": self.verify_exp,
                "verify_aud": self.audience is not None,
            },
        }


DEFAULT_OPTIONS = VerifyOptions()


@dataclass(frozen=True, slots=True)
class TokenHeader:
    """The header fields the preflight consumes."""

    algorithm: str | None
    token_type: str | None
    key_id: str | None


def read_header(token: str) -> TokenHeader:
    """Parse the token header only.

    Raises:
        MalformedToken: The token is not a decodable compact JWS.
    """
    try:
        header = jwt.get_unverified_header(token)
    except jwt.InvalidTokenError as e:
        raise MalformedToken(f"Unable to decode token header: {e}") from e

    alg = header.get("alg")
    typ = header.get("typ")
    kid = header.get("kid")
    return TokenHeader(
        algorithm=alg if isinstance(alg, str) else None,
        token_type=typ if isinstance(typ, str) else None,
        key_id=kid if isinstance(kid, str) and kid else None,
    )


def preflight(header: TokenHeader, algorithm: str = SUPPORTED_ALGORITHM) -> str:
    """Run the structural checks and return the ``kid``.

    Raises:
        InvalidAlgorithm, UnrecognizedTokenType, NoKidPresent: in that order.
    """
    if header.algorithm != algorithm:
        raise InvalidAlgorithm(f"Expected alg {algorithm}, got {header.algorithm!r}")

    if header.token_type is None or header.token_type.lower() != _TOKEN_TYPE:
        raise UnrecognizedTokenType(f"Unrecognized token type {header.token_type!r}")

    if header.key_id is None:
        raise NoKidPresent("Token header has no 'kid'")

    return header.key_id


def verify_token(
    token: str,
    select_key: KeySelector,
    *,
    algorithm: str = SUPPORTED_ALGORITHM,
    options: VerifyOptions | None = None,
) -> Claims:
    """Verify ``token`` against the key the selector returns for its ``kid``.

    Args:
        token: Raw compact JWS.
        select_key: Resolves a ``kid`` to verification material; raises
            NoCorrespondingKidInStore for unknown ids.
        algorithm: The only algorithm accepted, both in the header and by
            ``jwt.decode``.
        options: Claim validation rules. Defaults to VerifyOptions().

    Returns:
        The verified claims.

    Raises:
        MalformedToken, InvalidAlgorithm, UnrecognizedTokenType, NoKidPresent,
        NoCorrespondingKidInStore, ExpiredToken, UnableToVerifyToken.
    """
    kid = preflight(read_header(token), algorithm)
    key = select_key(kid)
    if isinstance(key, jwt.PyJWK):
        key = key.key

    opts = options or DEFAULT_OPTIONS
    try:
        return jwt.decode(token, key, algorithms=[algorithm], **opts.decode_kwargs())
    except jwt.ExpiredSignatureError as e:
        raise ExpiredToken(f"Token has expired: {e}") from e
    except jwt.InvalidTokenError as e:
        raise UnableToVerifyToken(str(e)) from e
