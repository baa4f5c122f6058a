"""Refreshable key cache for one identity provider.

A RemoteKeyCache owns the current KeySnapshot of a provider's JWKS. Reads
(``is_fresh``, ``verify``) never perform I/O; only ``refresh`` and
``refresh_if_stale`` touch the network, and neither is ever called
implicitly by ``verify``.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import replace
from typing import TYPE_CHECKING

from .fetcher import JWKSFetcher, KeySnapshot, parse_source_location
from .refresh_gate import RefreshGate
from .verifier import VerifyOptions, verify_token

if TYPE_CHECKING:
    import httpx

    from .keys import PreparedKey
    from .protocols import Claims

logger = logging.getLogger(__name__)


class RemoteKeyCache:
    """The verification state of one provider.

    Responsibilities
    ----------------
    1. Hold the provider's usable keys with their prepared material.
    2. Know until when those keys may be trusted.
    3. Replace both at once on refresh, never field by field.
    4. Verify tokens against whatever is currently held.

    Snapshot discipline
    -------------------
    A refresh builds a complete KeySnapshot before installing it with one
    assignment. A reader running concurrently sees the old snapshot or the
    new one, never a mix. A refresh that fails, or is cancelled, leaves the
    previous snapshot in place.

    Example
    -------
    cache = await RemoteKeyCache.create(GOOGLE_JWKS_URI)

    if not cache.is_fresh():
        await cache.refresh()

    claims = cache.verify(token)
    """

    def __init__(
        self,
        source_location: httpx.URL,
        snapshot: KeySnapshot,
        fetcher: JWKSFetcher,
    ) -> None:
        """Wrap an already-fetched snapshot. Prefer ``create``."""
        self._source_location = source_location
        self._snapshot = snapshot
        self._fetcher = fetcher
        self._gate = RefreshGate()

    @classmethod
    async def create(
        cls,
        source_location: str | httpx.URL,
        *,
        fetcher: JWKSFetcher | None = None,
    ) -> RemoteKeyCache:
        """Fetch the key set at ``source_location`` and build a cache.

        Raises:
            InvalidUri: ``source_location`` is not an https URL.
            UnableToFetchKeys, UnrecognizedResponse: the initial fetch failed.
        """
        url = parse_source_location(source_location)
        fetcher = fetcher or JWKSFetcher()
        snapshot = await fetcher.fetch(url)
        return cls(url, snapshot, fetcher)

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------

    @property
    def source_location(self) -> httpx.URL:
        return self._source_location

    @property
    def snapshot(self) -> KeySnapshot:
        return self._snapshot

    @property
    def keys(self) -> Mapping[str, PreparedKey]:
        return self._snapshot.keys

    @property
    def expires_at(self) -> int | None:
        return self._snapshot.expires_at

    def is_fresh(self) -> bool:
        """Whether the current snapshot may still be trusted. Never does I/O."""
        return self._snapshot.is_fresh(self._fetcher.now())

    # ------------------------------------------------------------------
    # Refresh
    # ------------------------------------------------------------------

    async def _refresh_now(self) -> None:
        snapshot = await self._fetcher.fetch(self._source_location)
        self._snapshot = snapshot

    async def refresh(self) -> None:
        """Refetch the key set and install it.

        Every call performs a fetch. Concurrent calls on the same cache run
        one after another; the last to finish wins.

        Raises:
            UnableToFetchKeys, UnrecognizedResponse: the fetch failed; the
                previous snapshot is kept.
        """
        await self._gate.run(self._refresh_now)

    async def refresh_if_stale(self) -> bool:
        """Refetch only if the cache is stale.

        Callers that find the cache stale while another refresh is in flight
        wait for it and do not fetch again.

        Returns:
            True if this call performed a fetch.
        """
        if self.is_fresh():
            return False

        observed = self._gate.generation
        refreshed = await self._gate.run(self._refresh_now, observed_generation=observed)
        if refreshed:
            logger.debug("Refreshed stale key set from %s", self._source_location)
        return refreshed

    # ------------------------------------------------------------------
    # Verification
    # ------------------------------------------------------------------

    def verify(self, token: str, options: VerifyOptions | None = None) -> Claims:
        """Verify ``token`` against the current snapshot.

        Raises:
            MalformedToken, InvalidAlgorithm, UnrecognizedTokenType,
            NoKidPresent, NoCorrespondingKidInStore, ExpiredToken,
            UnableToVerifyToken.
        """
        return verify_token(token, self._snapshot.select, options=options)

    def verify_unchecked(self, token: str, options: VerifyOptions | None = None) -> Claims:
        """Like ``verify`` but without requiring or enforcing ``exp``."""
        unchecked = replace(options or VerifyOptions(), verify_exp=False)
        return verify_token(token, self._snapshot.select, options=unchecked)

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}({str(self._source_location)!r}, "
            f"keys={len(self._snapshot.keys)}, expires_at={self._snapshot.expires_at})"
        )
