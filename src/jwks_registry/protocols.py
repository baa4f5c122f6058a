"""Protocol definitions and shared type aliases.

Using protocols allows for duck-typing and easier testing/mocking without
requiring explicit inheritance. Any class that implements the required
methods satisfies the protocol.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from typing import TYPE_CHECKING, Any, Protocol

if TYPE_CHECKING:
    from jwt import PyJWK

# ============================================================================
# Type Aliases
# ============================================================================

type Claims = Mapping[str, Any]
"""Represents the decoded JWT payload as an immutable mapping."""

type ViewFunc = Callable[..., Any]
"""Type alias for Flask view functions."""

type Clock = Callable[[], float]
"""Returns the current time as Unix-epoch seconds (``time.time`` by default)."""


# ============================================================================
# Core Protocols
# ============================================================================


class KeySelector(Protocol):
    """Resolves the verification material for a ``kid``.

    Selectors are pure lookups over an already-prepared key set; they must
    never perform I/O.
    """

    def __call__(self, kid: str) -> PyJWK | Any:
        """Return the material for ``kid``.

        Raises:
            NoCorrespondingKidInStore: ``kid`` is not in the key set.
        """
        ...


class Extractor(Protocol):
    """Protocol for extracting JWT tokens from HTTP requests.

    Common implementations:
    - Authorization: Bearer <token> header
    - Cookie-based storage
    """

    def extract(self) -> str:
        """Extract the raw JWT string from the Flask request.

        Raises:
            MissingToken: Token not found or improperly formatted.
        """
        ...
