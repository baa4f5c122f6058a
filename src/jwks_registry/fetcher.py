"""Asynchronous JWKS fetching.

A fetch is one GET of a provider's JWKS document followed by the key filter
and the freshness computation. The result is a KeySnapshot: an immutable
value a cache can swap in with a single assignment.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Mapping
from dataclasses import dataclass
from types import MappingProxyType
from typing import TYPE_CHECKING

import httpx

from .config import FetchSettings
from .errors import InvalidUri, NoCorrespondingKidInStore, UnableToFetchKeys, UnrecognizedResponse
from .freshness import expiry_from_headers, is_fresh
from .keys import PreparedKey, prepare_keys

if TYPE_CHECKING:
    from jwt import PyJWK

    from .protocols import Clock

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class KeySnapshot:
    """One provider's usable keys and how long they may be trusted.

    Attributes:
        keys: Read-only mapping of ``kid`` to PreparedKey.
        expires_at: Unix time the snapshot goes stale, or None when the
            provider gave no usable freshness metadata (always stale).
        fetched_at: Unix time the response was received.
    """

    keys: Mapping[str, PreparedKey]
    expires_at: int | None
    fetched_at: int

    def __post_init__(self) -> None:
        object.__setattr__(self, "keys", MappingProxyType(dict(self.keys)))

    def is_fresh(self, now: int) -> bool:
        return is_fresh(self.expires_at, now)

    def select(self, kid: str) -> PyJWK:
        """Verification material for ``kid``.

        Raises:
            NoCorrespondingKidInStore: ``kid`` is not in this snapshot.
        """
        try:
            return self.keys[kid].material
        except KeyError:
            raise NoCorrespondingKidInStore(f"No key with kid {kid!r} in store") from None


def parse_source_location(uri: str | httpx.URL) -> httpx.URL:
    """Validate a JWKS location.

    Raises:
        InvalidUri: ``uri`` does not parse or is not an absolute HTTPS URL.
    """
    try:
        url = httpx.URL(uri)
    except (httpx.InvalidURL, TypeError) as e:
        raise InvalidUri(f"Invalid JWKS URI {uri!r}: {e}") from e

    if url.scheme != "https" or not url.host:
        raise InvalidUri(f"JWKS URI must be an absolute https URL, got {uri!r}")
    return url


async def _require_https(request: httpx.Request) -> None:
    """Refuse every hop, redirects included, that is not https."""
    if request.url.scheme != "https":
        raise UnableToFetchKeys(
            f"Refusing to fetch JWKS over {request.url.scheme}: {request.url}"
        )


class JWKSFetcher:
    """Fetches JWKS documents and turns them into KeySnapshots.

    A new ``httpx.AsyncClient`` is opened per fetch and closed before the
    snapshot is returned, so one fetcher can be shared by every cache and
    used from any event loop.

    Example:
        ```python
        fetcher = JWKSFetcher(FetchSettings(timeout=5.0))
        snapshot = await fetcher.fetch(parse_source_location(GOOGLE_JWKS_URI))
        ```

    Attributes:
        settings: Timeout, safety margin and request headers.
    """

    def __init__(
        self,
        settings: FetchSettings | None = None,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
        clock: Clock = time.time,
    ) -> None:
        """Initialize the fetcher.

        Args:
            settings: Fetch configuration. Defaults to FetchSettings().
            transport: Optional httpx transport (e.g. ``httpx.MockTransport``
                in tests).
            clock: Source of the current Unix time.
        """
        self.settings = settings or FetchSettings()
        self._transport = transport
        self._clock = clock

    def now(self) -> int:
        return int(self._clock())

    async def fetch(self, source: httpx.URL) -> KeySnapshot:
        """Fetch, filter and date one provider's key set.

        Raises:
            UnableToFetchKeys: Transport failure, non-2xx status, a redirect
                to a non-https location, or no ``keys`` member in the body.
            UnrecognizedResponse: Body is not JSON, or ``keys`` is not an array.
        """
        logger.debug("Fetching JWKS from %s", source)
        try:
            async with httpx.AsyncClient(
                timeout=self.settings.timeout,
                follow_redirects=self.settings.follow_redirects,
                headers={
                    "Accept": "application/json",
                    "User-Agent": self.settings.user_agent,
                },
                transport=self._transport,
                event_hooks={"request": [_require_https]},
            ) as client:
                response = await client.get(source)
                response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise UnableToFetchKeys(
                f"JWKS endpoint {source} answered {e.response.status_code}"
            ) from e
        except httpx.HTTPError as e:
            raise UnableToFetchKeys(f"Unable to fetch JWKS from {source}: {e}") from e

        now = self.now()

        try:
            body = response.json()
        except ValueError as e:
            raise UnrecognizedResponse(f"JWKS response from {source} is not JSON: {e}") from e

        if not isinstance(body, dict) or "keys" not in body:
            raise UnableToFetchKeys("No 'keys' array contained in the returned object")

        raw_keys = body["keys"]
        if not isinstance(raw_keys, list):
            raise UnrecognizedResponse(
                f"JWKS 'keys' member must be an array, got {type(raw_keys).__name__}"
            )

        snapshot = KeySnapshot(
            keys=prepare_keys(raw_keys),
            expires_at=expiry_from_headers(response.headers, now, self.settings.safety_margin),
            fetched_at=now,
        )
        logger.info(
            "Fetched %d usable of %d keys from %s (expires_at=%s)",
            len(snapshot.keys),
            len(raw_keys),
            source,
            snapshot.expires_at,
        )
        return snapshot
