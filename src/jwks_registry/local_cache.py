"""Key cache for tokens the application signs itself.

Unlike RemoteKeyCache, a LocalKeyCache holds both halves of each key and
can mint tokens as well as verify them. Key ids are random UUID4s, and every
token is signed with one of the stored keys picked at random, so keys can
be rotated by adding a new one and removing an old one later.
"""

from __future__ import annotations

import random
import uuid
from collections.abc import Mapping
from dataclasses import replace
from typing import TYPE_CHECKING, Any, NamedTuple

import jwt
from jwt.algorithms import get_default_algorithms

from .errors import NoCorrespondingKidInStore, UnableToParseKidIntoUuid
from .verifier import VerifyOptions, verify_token

if TYPE_CHECKING:
    from .protocols import Claims

_DEFAULT_ALGORITHM = "HS512"


class KeyPair(NamedTuple):
    """Signing and verification halves of one local key.

    For HMAC algorithms both halves are the same secret.
    """

    encoding_key: Any
    decoding_key: Any


class LocalKeyCache:
    """Locally-held signing keys indexed by UUID key id.

    Example:
        ```python
        cache = LocalKeyCache("HS512")
        cache.add_key(b"a long random secret")

        token = cache.encrypt({"sub": "u1", "exp": int(time.time()) + 300})
        claims = cache.decrypt(token)
        ```
    """

    def __init__(self, algorithm: str = _DEFAULT_ALGORITHM) -> None:
        """Initialize an empty cache.

        Raises:
            ValueError: ``algorithm`` is not supported by PyJWT.
        """
        if algorithm not in get_default_algorithms():
            raise ValueError(f"Unsupported algorithm {algorithm!r}")
        self._algorithm = algorithm
        self._keys: dict[uuid.UUID, KeyPair] = {}

    @property
    def algorithm(self) -> str:
        return self._algorithm

    @property
    def keys(self) -> Mapping[uuid.UUID, KeyPair]:
        return dict(self._keys)

    def add_key(self, encoding_key: Any, decoding_key: Any = None) -> uuid.UUID:
        """Store a key and return its newly generated id.

        Args:
            encoding_key: Secret (HMAC) or private key used to sign.
            decoding_key: Key used to verify. Defaults to ``encoding_key``,
                which is only correct for HMAC algorithms.
        """
        kid = uuid.uuid4()
        self._keys[kid] = KeyPair(
            encoding_key=encoding_key,
            decoding_key=encoding_key if decoding_key is None else decoding_key,
        )
        return kid

    def remove_key(self, kid: uuid.UUID) -> None:
        """Forget ``kid``. Tokens signed with it stop verifying."""
        self._keys.pop(kid, None)

    def encrypt(self, claims: Mapping[str, Any]) -> str:
        """Sign ``claims`` with a randomly chosen stored key.

        Raises:
            NoCorrespondingKidInStore: the cache holds no keys.
        """
        if not self._keys:
            raise NoCorrespondingKidInStore("Local key cache is empty")

        kid = random.choice(list(self._keys))
        return jwt.encode(
            dict(claims),
            self._keys[kid].encoding_key,
            algorithm=self._algorithm,
            headers={"typ": "JWT", "kid": str(kid)},
        )

    def _select(self, kid: str) -> Any:
        try:
            key_id = uuid.UUID(kid)
        except ValueError as e:
            raise UnableToParseKidIntoUuid(f"kid {kid!r} is not a UUID") from e

        pair = self._keys.get(key_id)
        if pair is None:
            raise NoCorrespondingKidInStore(f"No key with kid {kid!r} in store")
        return pair.decoding_key

    def decrypt(
        self,
        token: str,
        validate_exp: bool = True,
        options: VerifyOptions | None = None,
    ) -> Claims:
        """Verify a token minted by ``encrypt``.

        Raises:
            InvalidAlgorithm: the header does not declare this cache's algorithm.
            UnableToParseKidIntoUuid: the ``kid`` is not a UUID.
            NoCorrespondingKidInStore, ExpiredToken, UnableToVerifyToken, ...
        """
        opts = replace(options or VerifyOptions(), verify_exp=validate_exp)
        return verify_token(token, self._select, algorithm=self._algorithm, options=opts)
