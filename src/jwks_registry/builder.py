"""Builder for KeyRegistry instances.

The builder only records ``(provider, uri)`` pairs; nothing is fetched until
``build`` is awaited.

Example
-------

.. code-block:: python

    registry = await (
        KeyRegistryBuilder[str]()
        .add_remote("cool-new-platform", "https://cool.example/jwks.json")
        .build()
    )
"""

from __future__ import annotations

import logging
from collections.abc import Hashable, Mapping
from typing import TYPE_CHECKING, Self

from .config import PROVIDER_URI_PREFIX, provider_uris_from_env
from .fetcher import JWKSFetcher
from .registry import KeyRegistry
from .remote_cache import RemoteKeyCache

if TYPE_CHECKING:
    import httpx

logger = logging.getLogger(__name__)


class KeyRegistryBuilder[P: Hashable]:
    """Accumulates provider → JWKS URI pairs and builds a KeyRegistry.

    Attributes:
        uris: Ordered mapping of provider to JWKS URI. Adding a provider a
            second time replaces its URI (last write wins).
    """

    def __init__(self, fetcher: JWKSFetcher | None = None) -> None:
        """Initialize an empty builder.

        Args:
            fetcher: Fetcher shared by every cache the builder creates.
                Defaults to a JWKSFetcher with default settings.
        """
        self.uris: dict[P, str | httpx.URL] = {}
        self._fetcher = fetcher

    @staticmethod
    def from_env(
        prefix: str = PROVIDER_URI_PREFIX,
        *,
        environ: Mapping[str, str] | None = None,
        fetcher: JWKSFetcher | None = None,
    ) -> KeyRegistryBuilder[str]:
        """Builder preloaded from ``JWKS_URI_<NAME>`` environment variables.

        Providers are keyed by the lower-cased ``<NAME>``.
        """
        builder = KeyRegistryBuilder[str](fetcher)
        for name, uri in provider_uris_from_env(prefix, environ).items():
            builder.add_remote(name, uri)
        return builder

    def add_remote(self, provider: P, uri: str | httpx.URL) -> Self:
        """Record the JWKS URI for ``provider``. Returns the builder."""
        self.uris[provider] = uri
        return self

    async def build(self) -> KeyRegistry[P]:
        """Fetch every provider's key set and return the registry.

        Fetches run one after another in insertion order. If any of them
        fails the whole build fails with that error; a registry with some
        providers silently missing is never returned.

        Raises:
            InvalidUri, UnableToFetchKeys, UnrecognizedResponse.
        """
        fetcher = self._fetcher or JWKSFetcher()
        caches: dict[P, RemoteKeyCache] = {}

        for provider, uri in self.uris.items():
            logger.debug("Building key cache for %r from %s", provider, uri)
            caches[provider] = await RemoteKeyCache.create(uri, fetcher=fetcher)

        logger.info("Built key registry with %d providers", len(caches))
        return KeyRegistry(caches)
