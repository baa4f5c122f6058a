"""
Cached JWKS verification for tokens issued by third-party identity providers.

High-level flow
---------------
1. `KeyRegistryBuilder.build()` fetches every provider's JWKS once:
   - keeps only RSA / RS256 / ``use=sig`` keys
   - prepares each key's verification material up front
   - dates the key set from the ``cache-control: max-age`` header, minus a
     one-hour safety margin
2. `KeyRegistry.decrypt(provider, token, auto_refresh)`:
   - selects the provider's `RemoteKeyCache`
   - refetches its key set first if it is stale and ``auto_refresh`` is set
   - checks the token header (``alg``, ``typ``, ``kid``) before any crypto
   - verifies signature and claims with PyJWT against the cached key
3. Optionally, `AuthExtension` does the above for Flask routes and stores
   the claims in `flask.g.jwt`.

Security notes
--------------
- Only RS256 is accepted for remote keys (no algorithm confusion).
- A token whose ``kid`` is not cached is rejected; it never triggers a fetch.
  Refreshes are driven by the clock alone, so random ``kid`` values cannot
  be used to flood a provider with requests.
- Set ``VerifyOptions(issuer=..., audience=...)`` in production.

Example usage
-------------

.. code-block:: python

    from jwks_registry import IdentityProvider, VerifyOptions

    registry = await IdentityProvider.builder(
        IdentityProvider.GOOGLE, IdentityProvider.APPLE
    ).build()

    claims = await registry.decrypt(
        IdentityProvider.GOOGLE,
        token,
        auto_refresh=True,
        options=VerifyOptions(
            issuer="https://accounts.google.com",
            audience="my-client-id.apps.googleusercontent.com",
        ),
    )
"""

import logging

# Registry
from .builder import KeyRegistryBuilder

# Configuration
from .config import FetchSettings, provider_uris_from_env

# Errors
from .errors import (
    AuthError,
    ExpiredToken,
    InvalidAlgorithm,
    InvalidToken,
    InvalidUri,
    KeyFetchError,
    MalformedToken,
    MissingToken,
    NoCacheControl,
    NoCorrespondingKidInStore,
    NoKidPresent,
    UnableToFetchKeys,
    UnableToParseHeaders,
    UnableToParseKidIntoUuid,
    UnableToVerifyToken,
    UnrecognizedProvider,
    UnrecognizedResponse,
    UnrecognizedTokenType,
)

# Extractors
from .extractors import BearerExtractor, CookieExtractor

# Fetching
from .fetcher import JWKSFetcher, KeySnapshot, parse_source_location

# Flask extension
from .flask_extension import AuthExtension, EventLoopThread, get_verified_id_claims

# Freshness
from .freshness import SAFETY_MARGIN, compute_expiry, expiry_from_headers, parse_max_age

# Keys
from .keys import SUPPORTED_ALGORITHM, Key, KeyType, KeyUse, PreparedKey, prepare_keys

# Caches
from .local_cache import LocalKeyCache

# Protocols
from .protocols import Claims, Clock, Extractor, KeySelector, ViewFunc

# Providers
from .providers import (
    APPLE_JWKS_URI,
    FACEBOOK_JWKS_URI,
    GOOGLE_JWKS_URI,
    IdentityProvider,
    auth0_jwks_uri,
)

# Refresh gate
from .refresh_gate import RefreshGate
from .registry import KeyRegistry
from .remote_cache import RemoteKeyCache

# Verifier
from .verifier import TokenHeader, VerifyOptions, preflight, read_header, verify_token

logging.getLogger(__name__).addHandler(logging.NullHandler())

__all__ = [
    # Errors
    "AuthError",
    "ExpiredToken",
    "InvalidAlgorithm",
    "InvalidToken",
    "InvalidUri",
    "KeyFetchError",
    "MalformedToken",
    "MissingToken",
    "NoCacheControl",
    "NoCorrespondingKidInStore",
    "NoKidPresent",
    "UnableToFetchKeys",
    "UnableToParseHeaders",
    "UnableToParseKidIntoUuid",
    "UnableToVerifyToken",
    "UnrecognizedProvider",
    "UnrecognizedResponse",
    "UnrecognizedTokenType",
    # Protocols
    "Claims",
    "Clock",
    "Extractor",
    "KeySelector",
    "ViewFunc",
    # Configuration
    "FetchSettings",
    "provider_uris_from_env",
    # Keys
    "SUPPORTED_ALGORITHM",
    "Key",
    "KeyType",
    "KeyUse",
    "PreparedKey",
    "prepare_keys",
    # Freshness
    "SAFETY_MARGIN",
    "compute_expiry",
    "expiry_from_headers",
    "parse_max_age",
    # Fetching
    "JWKSFetcher",
    "KeySnapshot",
    "parse_source_location",
    # Refresh gate
    "RefreshGate",
    # Verifier
    "TokenHeader",
    "VerifyOptions",
    "preflight",
    "read_header",
    "verify_token",
    # Caches
    "LocalKeyCache",
    "RemoteKeyCache",
    # Registry
    "KeyRegistry",
    "KeyRegistryBuilder",
    # Providers
    "APPLE_JWKS_URI",
    "FACEBOOK_JWKS_URI",
    "GOOGLE_JWKS_URI",
    "IdentityProvider",
    "auth0_jwks_uri",
    # Extractors
    "BearerExtractor",
    "CookieExtractor",
    # Flask extension
    "AuthExtension",
    "EventLoopThread",
    "get_verified_id_claims",
]
