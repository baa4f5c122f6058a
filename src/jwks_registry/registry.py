"""A registry of remote key caches, one per identity provider.

The registry is generic over the provider identity: any hashable value the
application chooses (an enum of supported providers is typical). It holds no
global state; create one, usually through KeyRegistryBuilder, and pass it
to whatever verifies tokens.

Example
-------

.. code-block:: python

    registry = await (
        KeyRegistryBuilder[IdentityProvider]()
        .add_remote(IdentityProvider.GOOGLE, GOOGLE_JWKS_URI)
        .add_remote(IdentityProvider.APPLE, APPLE_JWKS_URI)
        .build()
    )

    # The token claims to be signed by Google.
    claims = await registry.decrypt(IdentityProvider.GOOGLE, token, auto_refresh=True)
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Hashable, Iterator, Mapping
from typing import TYPE_CHECKING

from .errors import UnrecognizedProvider

if TYPE_CHECKING:
    from .protocols import Claims
    from .remote_cache import RemoteKeyCache
    from .verifier import VerifyOptions

logger = logging.getLogger(__name__)


class KeyRegistry[P: Hashable]:
    """Maps provider identities to their RemoteKeyCache.

    Concurrency:
        Lookups read the current map without locking. Insertions and removals
        copy the map under a lock and swap the copy in, so a lookup never sees
        a map in the middle of being changed. Refreshing one provider's cache
        does not involve the registry lock at all.
    """

    def __init__(self, caches: Mapping[P, RemoteKeyCache] | None = None) -> None:
        self._caches: dict[P, RemoteKeyCache] = dict(caches or {})
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    # Map access
    # ------------------------------------------------------------------

    def get(self, provider: P) -> RemoteKeyCache:
        """Return the cache for ``provider``.

        Raises:
            UnrecognizedProvider: No cache is registered for ``provider``.
        """
        try:
            return self._caches[provider]
        except KeyError:
            raise UnrecognizedProvider(f"No key cache registered for {provider!r}") from None

    def insert(self, provider: P, cache: RemoteKeyCache) -> RemoteKeyCache | None:
        """Register ``cache`` for ``provider``, returning the cache it replaced."""
        with self._lock:
            caches = dict(self._caches)
            previous = caches.get(provider)
            caches[provider] = cache
            self._caches = caches
        return previous

    def remove(self, provider: P) -> RemoteKeyCache | None:
        """Unregister ``provider``, returning its cache if it had one."""
        with self._lock:
            if provider not in self._caches:
                return None
            caches = dict(self._caches)
            previous = caches.pop(provider)
            self._caches = caches
        return previous

    def providers(self) -> list[P]:
        return list(self._caches)

    def caches(self) -> Mapping[P, RemoteKeyCache]:
        """A point-in-time copy of the provider map."""
        return dict(self._caches)

    def __contains__(self, provider: object) -> bool:
        return provider in self._caches

    def __len__(self) -> int:
        return len(self._caches)

    def __iter__(self) -> Iterator[P]:
        return iter(list(self._caches))

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    async def refresh(self, provider: P) -> None:
        """Unconditionally refetch ``provider``'s key set.

        Raises:
            UnrecognizedProvider, UnableToFetchKeys, UnrecognizedResponse.
        """
        await self.get(provider).refresh()

    async def decrypt(
        self,
        provider: P,
        token: str,
        auto_refresh: bool = True,
        options: VerifyOptions | None = None,
    ) -> Claims:
        """Verify ``token`` with the keys of ``provider``.

        With ``auto_refresh`` the provider's cache is refetched first if it is
        stale; when it is fresh no network request is made at all. Without
        ``auto_refresh`` the token is checked against whatever is cached, even
        if stale, which trades freshness for never waiting on the network.

        Staleness is decided by the clock, not by lookup failures, so passing
        ``auto_refresh=True`` on every call costs at most one fetch per expiry
        period.

        Raises:
            UnrecognizedProvider: ``provider`` is not registered (no I/O done).
            UnableToFetchKeys, UnrecognizedResponse: the auto-refresh failed.
            InvalidToken subclasses: the token was rejected.
        """
        cache = self.get(provider)

        if auto_refresh:
            await cache.refresh_if_stale()

        return cache.verify(token, options)

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.providers()!r})"
