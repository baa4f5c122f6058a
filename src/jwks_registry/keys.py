"""JWK descriptors and the filter that turns a raw key set into usable keys.

A provider's JWKS document may list keys of any family, for any purpose.
Only RSA keys declared for RS256 signatures can verify the tokens this
library accepts, so everything else is dropped here, once per fetch.

For accepted keys the verification material (a ``jwt.PyJWK`` wrapping the
RSA public key) is built eagerly. Building it per verification call would
repeat the same base64 decoding and key construction for every request.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from enum import StrEnum
from typing import Any, Final, NamedTuple

import jwt
from jwt import PyJWK

logger = logging.getLogger(__name__)

SUPPORTED_ALGORITHM: Final[str] = "RS256"
"""The single algorithm remote key sets are verified with."""


class KeyType(StrEnum):
    """Key families defined by RFC 7518 section 6.1."""

    RSA = "RSA"
    EC = "EC"
    OCT = "oct"
    OKP = "OKP"


class KeyUse(StrEnum):
    """Intended use of a public key (RFC 7517 section 4.2)."""

    SIGNATURE = "sig"
    ENCRYPTION = "enc"


@dataclass(frozen=True, slots=True)
class Key:
    """One signing-key descriptor from a JWKS document.

    This is not a complete RFC 7517 representation: ``kid`` and ``use`` are
    required here even though the RFC makes them optional, because a key
    that cannot be matched to a token header or whose purpose is unknown is
    useless for verification.

    Attributes:
        key_id: The ``kid``; unique within a provider's active key set.
        key_type: The ``kty`` family.
        usage: The ``use`` member.
        algorithm: The ``alg`` member, if declared.
        modulus: Base64url RSA modulus ``n`` (empty for non-RSA keys).
        exponent: Base64url RSA public exponent ``e`` (empty for non-RSA keys).
    """

    key_id: str
    key_type: KeyType
    usage: KeyUse
    algorithm: str | None = None
    modulus: str = ""
    exponent: str = ""

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> Key:
        """Decode a JSON-decoded JWK.

        Raises:
            KeyError: A required member is missing.
            TypeError: ``raw`` is not a mapping or a member has the wrong type.
            ValueError: ``kty`` or ``use`` is not a recognised value.
        """
        if not isinstance(raw, Mapping):
            raise TypeError(f"JWK must be an object, got {type(raw).__name__}")

        kid = raw["kid"]
        if not isinstance(kid, str):
            raise TypeError("JWK 'kid' must be a string")

        alg = raw.get("alg")
        n = raw.get("n", "")
        e = raw.get("e", "")
        for name, value in (("alg", alg), ("n", n), ("e", e)):
            if value is not None and not isinstance(value, str):
                raise TypeError(f"JWK '{name}' must be a string")

        return cls(
            key_id=kid,
            key_type=KeyType(raw["kty"]),
            usage=KeyUse(raw["use"]),
            algorithm=alg,
            modulus=n,
            exponent=e,
        )

    def is_usable(self) -> bool:
        """True for RSA keys declared for RS256 signatures."""
        return (
            self.key_type is KeyType.RSA
            and self.algorithm == SUPPORTED_ALGORITHM
            and self.usage is KeyUse.SIGNATURE
        )

    def to_jwk(self) -> dict[str, str]:
        jwk: dict[str, str] = {
            "kty": self.key_type.value,
            "kid": self.key_id,
            "use": self.usage.value,
            "n": self.modulus,
            "e": self.exponent,
        }
        if self.algorithm is not None:
            jwk["alg"] = self.algorithm
        return jwk


class PreparedKey(NamedTuple):
    """A usable key together with its ready-to-use verification material."""

    key: Key
    material: PyJWK


def prepare_key(key: Key) -> PyJWK:
    """Build the RS256 verification material for ``key``.

    Raises:
        jwt.PyJWKError / jwt.InvalidKeyError / ValueError: the modulus or
            exponent does not encode a valid RSA public key.
    """
    return PyJWK.from_dict(key.to_jwk(), algorithm=SUPPORTED_ALGORITHM)


def prepare_keys(raw_keys: Iterable[Any]) -> dict[str, PreparedKey]:
    """Filter a raw key set down to usable keys and prepare their material.

    Individual descriptors never fail the whole operation: anything that
    cannot be decoded, is of the wrong family/algorithm/usage, or has an
    unusable RSA encoding is skipped.

    Args:
        raw_keys: The JSON-decoded ``keys`` array of a JWKS document.

    Returns:
        Mapping of ``kid`` to PreparedKey. If two usable descriptors share a
        ``kid`` the later one wins.
    """
    prepared: dict[str, PreparedKey] = {}

    for index, raw in enumerate(raw_keys):
        try:
            key = Key.from_dict(raw)
        except (KeyError, TypeError, ValueError) as e:
            logger.debug("Skipping undecodable JWK at index %d: %r", index, e)
            continue

        if not key.is_usable():
            logger.debug(
                "Skipping JWK %s (kty=%s, alg=%s, use=%s)",
                key.key_id,
                key.key_type,
                key.algorithm,
                key.usage,
            )
            continue

        try:
            material = prepare_key(key)
        except (jwt.PyJWKError, jwt.InvalidKeyError, ValueError) as e:
            logger.warning("Skipping JWK %s with unusable RSA material: %s", key.key_id, e)
            continue

        prepared[key.key_id] = PreparedKey(key=key, material=material)

    return prepared
