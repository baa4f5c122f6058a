"""Key fetching and token verification errors.

This module defines the exception hierarchy for JWKS fetching, token
preflight, and signature verification failures. All errors inherit from
AuthError to allow catch-all error handling.

Every error carries a stable machine-readable ``code`` (e.g.
``"no_corresponding_kid_in_store"``) and the HTTP status the Flask layer
maps it to. Two intermediate bases group the taxonomy:

- KeyFetchError: the JWKS document could not be fetched or understood.
- InvalidToken: the token was rejected before or during verification.

Security Note:
    ``description`` is intentionally generic. Diagnostic detail (such as the
    message of the underlying PyJWT or httpx exception) lives in ``str(error)``
    and should be logged server-side, not returned to clients.
"""

from __future__ import annotations

from typing import ClassVar


class AuthError(Exception):
    """Base exception for all key-cache and verification failures.

    Application code can catch this single exception type to handle any
    failure generically.

    Attributes:
        code: Stable identifier of the failure kind.
        status_code: HTTP status used when surfacing the error from a view.
        description: Client-safe description of the failure.
    """

    code: ClassVar[str] = "auth_error"
    status_code: ClassVar[int] = 401
    description: ClassVar[str] = "Authentication failed"


# ============================================================================
# Fetch-side errors
# ============================================================================


class KeyFetchError(AuthError):
    """Raised when a provider's key set cannot be fetched or understood.

    This should typically result in an HTTP 503 response: the token may well
    be valid, but the service cannot currently check it.
    """

    code = "key_fetch_error"
    status_code = 503
    description = "Signing keys unavailable"


class InvalidUri(KeyFetchError):  # noqa: N818
    """Raised when a configured source location is not a valid HTTPS URL."""

    code = "invalid_uri"


class UnableToFetchKeys(KeyFetchError):  # noqa: N818
    """Raised when the transport fails or the response has no ``keys`` field.

    This occurs when:
    - The connection fails or times out
    - The provider answers with a non-2xx status
    - The JSON body is not an object or lacks the ``keys`` member
    """

    code = "unable_to_fetch_keys"


class UnrecognizedResponse(KeyFetchError):  # noqa: N818
    """Raised when the fetched body is not JSON of the expected shape."""

    code = "unrecognized_response"


class NoCacheControl(KeyFetchError):  # noqa: N818
    """Raised when a response carries no usable ``max-age`` directive.

    The fetcher absorbs this error and marks freshness unknown.
    """

    code = "no_cache_control"


class UnableToParseHeaders(KeyFetchError):  # noqa: N818
    """Raised when the ``max-age`` directive is present but malformed.

    The fetcher absorbs this error and marks freshness unknown.
    """

    code = "unable_to_parse_headers"


# ============================================================================
# Token-side errors
# ============================================================================


class InvalidToken(AuthError):  # noqa: N818
    """Raised when a token is present but cannot be accepted.

    Subclasses pin down exactly which preflight step or verification stage
    rejected the token. All of them should result in HTTP 401.
    """

    code = "invalid_token"
    description = "Invalid token"


class MalformedToken(InvalidToken):  # noqa: N818
    """Raised when the token header cannot be decoded at all."""

    code = "invalid_token"


class InvalidAlgorithm(InvalidToken):  # noqa: N818
    """Raised when the header declares an algorithm other than the pinned one."""

    code = "invalid_algorithm"


class UnrecognizedTokenType(InvalidToken):  # noqa: N818
    """Raised when the header ``typ`` is missing or is not ``JWT``."""

    code = "unrecognized_token_type"


class NoKidPresent(InvalidToken):  # noqa: N818
    """Raised when the header omits ``kid``."""

    code = "no_kid_present"


class NoCorrespondingKidInStore(InvalidToken):  # noqa: N818
    """Raised when ``kid`` is present but absent from the current key set.

    Against a remote cache this is the expected signal of a rotated key set
    that has not been refetched yet.
    """

    code = "no_corresponding_kid_in_store"


class UnableToParseKidIntoUuid(InvalidToken):  # noqa: N818
    """Raised by the local cache when a ``kid`` is not a UUID."""

    code = "unable_to_parse_kid_into_uuid"


class UnableToVerifyToken(InvalidToken):  # noqa: N818
    """Raised when PyJWT rejects the token.

    This covers signature mismatches, issuer/audience mismatches, missing
    required claims, and malformed payloads. ``str(error)`` carries PyJWT's
    diagnostic message.
    """

    code = "unable_to_verify_token"


class ExpiredToken(UnableToVerifyToken):  # noqa: N818
    """Raised when a token's ``exp`` claim has passed (after leeway).

    Treat identically to UnableToVerifyToken from a security perspective.
    The distinction helps with metrics and with prompting clients to renew.
    """

    code = "expired_token"
    description = "Expired token"


# ============================================================================
# Dispatch and request errors
# ============================================================================


class UnrecognizedProvider(AuthError):  # noqa: N818
    """Raised when a registry is asked for a provider it does not hold."""

    code = "unrecognized_provider"
    status_code = 404
    description = "Unknown identity provider"


class MissingToken(AuthError):  # noqa: N818
    """Raised when no token is found in the request.

    This occurs when:
    - The Authorization header is missing
    - The Authorization header is not "Bearer <token>"
    - The configured cookie is missing
    """

    code = "missing_token"
    description = "Missing token"
