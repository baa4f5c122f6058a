"""Cache expiry derived from ``cache-control`` response headers.

Providers advertise how long their key set may be cached with a
``max-age=<seconds>`` directive. The expiry used here is pulled forward by a
fixed safety margin so a cache refreshes slightly before the provider's own
deadline, absorbing clock skew and in-flight latency.

All instants are whole Unix-epoch seconds.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Final

from .errors import NoCacheControl, UnableToParseHeaders

logger = logging.getLogger(__name__)

SAFETY_MARGIN: Final[int] = 3600
"""Seconds subtracted from ``max-age`` (one hour)."""

_MAX_AGE: Final[str] = "max-age"


def parse_max_age(cache_control: str | None) -> int:
    """Return the first ``max-age`` value of a ``cache-control`` header.

    Later ``max-age`` directives are ignored, even when the first one is
    malformed.

    Raises:
        NoCacheControl: The header is missing or has no ``max-age`` directive.
        UnableToParseHeaders: The first ``max-age`` is not a non-negative integer.
    """
    if not cache_control:
        raise NoCacheControl("Response has no cache-control header")

    for directive in cache_control.split(","):
        name, sep, value = directive.strip().partition("=")
        if name.strip().lower() != _MAX_AGE:
            continue

        value = value.strip().strip('"')
        if not sep or not (value.isascii() and value.isdigit()):
            raise UnableToParseHeaders(f"Malformed max-age directive: {directive.strip()!r}")
        return int(value)

    raise NoCacheControl("cache-control header has no max-age directive")


def compute_expiry(max_age: int, now: int, safety_margin: int = SAFETY_MARGIN) -> int:
    """Absolute expiry for a response received at ``now``.

    A ``max_age`` at or below the safety margin yields an instant that is
    already expired; the result is never negative.
    """
    return max(now + max_age - safety_margin, 0)


def expiry_from_headers(
    headers: Mapping[str, str],
    now: int,
    safety_margin: int = SAFETY_MARGIN,
) -> int | None:
    """Expiry for a fetched key set, or None when freshness is unknown.

    A response without usable freshness metadata still yields a key set; it
    is simply treated as stale on every check.
    """
    try:
        max_age = parse_max_age(headers.get("cache-control"))
    except (NoCacheControl, UnableToParseHeaders) as e:
        logger.warning("Key set freshness unknown, treating as stale: %s", e)
        return None

    return compute_expiry(max_age, now, safety_margin)


def is_fresh(expires_at: int | None, now: int) -> bool:
    """True iff an expiry is known and ``now`` is strictly before it."""
    return expires_at is not None and now < expires_at
