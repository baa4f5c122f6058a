"""Serialization of JWKS refreshes for a single provider cache.

This module implements RefreshGate, which makes sure that:

1. Refreshes of one cache never overlap, so snapshots are installed in the
   order their fetches started.
2. Callers that find a cache stale at the same moment trigger one fetch, not
   one fetch each. Every waiter that arrives while a refresh is in flight
   observes the new snapshot instead of fetching again.

Explicit refreshes are never coalesced: each one performs its own fetch.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Final

logger = logging.getLogger(__name__)

_DEFAULT_ALERT_THRESHOLD: Final[int] = 5
"""Default number of coalesced waiters on one refresh before logging a warning."""


class RefreshGate:
    """Per-cache refresh lock with single-flight for stale refreshes.

    Each completed refresh bumps a generation counter. A stale-triggered
    caller records the generation before waiting for the lock; if it has
    changed by the time the lock is acquired, someone else has refreshed in
    the meantime and the caller skips its own fetch.

    Cancellation:
        A cancelled refresh does not bump the generation, so the next waiter
        performs the fetch itself.

    Attributes:
        _lock: asyncio lock held for the duration of a refresh.
        _generation: Number of completed refreshes.
        _coalesced: Waiters skipped since the last completed refresh.
    """

    def __init__(self, alert_threshold: int = _DEFAULT_ALERT_THRESHOLD) -> None:
        """Initialize the gate.

        Args:
            alert_threshold: Number of coalesced waiters on one refresh that
                triggers a warning (a burst of traffic hitting a stale cache).

        Raises:
            ValueError: If alert_threshold is invalid.
        """
        if alert_threshold < 1:
            raise ValueError(f"alert_threshold must be at least 1, got {alert_threshold}")

        self._alert_threshold = alert_threshold
        self._lock = asyncio.Lock()
        self._generation = 0
        self._coalesced = 0

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def in_flight(self) -> bool:
        return self._lock.locked()

    async def run(
        self,
        refresh: Callable[[], Awaitable[None]],
        *,
        observed_generation: int | None = None,
    ) -> bool:
        """Run ``refresh`` exclusively.

        Args:
            refresh: Coroutine function performing the fetch and swap.
            observed_generation: Generation the caller saw when it decided to
                refresh. If given and another refresh has completed since,
                ``refresh`` is not called.

        Returns:
            True if ``refresh`` ran, False if the call was coalesced.
        """
        async with self._lock:
            if observed_generation is not None and observed_generation != self._generation:
                self._coalesced += 1
                if self._coalesced == self._alert_threshold:
                    logger.warning(
                        "%d callers waited on one JWKS refresh", self._coalesced
                    )
                return False

            await refresh()
            self._generation += 1
            self._coalesced = 0
            return True
