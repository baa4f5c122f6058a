"""Configuration for JWKS fetching.

Settings are plain frozen dataclasses so they can be built in code. The
``from_env`` helpers read the process environment, loading a ``.env`` file
first when one is present.

Environment variables
---------------------
- ``JWKS_FETCH_TIMEOUT``: request timeout in seconds (float, default 10).
- ``JWKS_SAFETY_MARGIN``: seconds subtracted from ``max-age`` (int, default 3600).
- ``JWKS_USER_AGENT``: ``User-Agent`` sent to providers.
- ``JWKS_FOLLOW_REDIRECTS``: ``true``/``false`` (default ``true``).
- ``JWKS_URI_<NAME>``: one JWKS URL per provider, read by
  ``provider_uris_from_env``.
"""

from __future__ import annotations

import math
import os
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Final

from dotenv import load_dotenv

from .freshness import SAFETY_MARGIN

DEFAULT_TIMEOUT: Final[float] = 10.0
DEFAULT_USER_AGENT: Final[str] = "jwks-registry"
PROVIDER_URI_PREFIX: Final[str] = "JWKS_URI_"

_TRUE: Final[frozenset[str]] = frozenset({"1", "true", "yes", "on"})
_FALSE: Final[frozenset[str]] = frozenset({"0", "false", "no", "off"})


@dataclass(frozen=True, slots=True)
class FetchSettings:
    """How JWKS documents are fetched and how long they are trusted.

    Attributes:
        timeout: Total request timeout in seconds.
        safety_margin: Seconds subtracted from the provider's ``max-age``.
        user_agent: ``User-Agent`` header sent with every fetch.
        follow_redirects: Whether 3xx responses are followed. Redirects to
            non-https locations are refused either way.
    """

    timeout: float = DEFAULT_TIMEOUT
    safety_margin: int = SAFETY_MARGIN
    user_agent: str = DEFAULT_USER_AGENT
    follow_redirects: bool = True

    def __post_init__(self) -> None:
        if not math.isfinite(self.timeout) or self.timeout <= 0:
            raise ValueError(f"timeout must be a positive finite number, got {self.timeout}")
        if self.safety_margin < 0:
            raise ValueError(f"safety_margin must not be negative, got {self.safety_margin}")

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> FetchSettings:
        """Build settings from the environment (and ``.env``).

        Raises:
            ValueError: A variable is set to an unparseable value.
        """
        if environ is None:
            load_dotenv()
            environ = os.environ

        return cls(
            timeout=float(environ.get("JWKS_FETCH_TIMEOUT", DEFAULT_TIMEOUT)),
            safety_margin=int(environ.get("JWKS_SAFETY_MARGIN", SAFETY_MARGIN)),
            user_agent=environ.get("JWKS_USER_AGENT", DEFAULT_USER_AGENT),
            follow_redirects=_parse_bool(environ.get("JWKS_FOLLOW_REDIRECTS", "true")),
        )


def provider_uris_from_env(
    prefix: str = PROVIDER_URI_PREFIX,
    environ: Mapping[str, str] | None = None,
) -> dict[str, str]:
    """Collect ``<prefix><NAME>=<uri>`` variables into ``{"name": uri}``.

    Names are lower-cased; entries are returned in sorted order so builds are
    reproducible. Empty values are ignored.
    """
    if environ is None:
        load_dotenv()
        environ = os.environ

    uris: dict[str, str] = {}
    for name in sorted(environ):
        if not name.startswith(prefix) or len(name) == len(prefix):
            continue
        value = environ[name].strip()
        if value:
            uris[name[len(prefix) :].lower()] = value
    return uris


def _parse_bool(value: str) -> bool:
    lowered = value.strip().lower()
    if lowered in _TRUE:
        return True
    if lowered in _FALSE:
        return False
    raise ValueError(f"Expected a boolean, got {value!r}")
