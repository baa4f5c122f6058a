"""
Well-known identity providers and their JWKS locations.

Nothing in the core depends on this package: a registry accepts any
hashable provider identity and any https JWKS URI. These are conveniences
for the providers most applications start with.
"""

from .wellknown import (
    APPLE_JWKS_URI,
    FACEBOOK_JWKS_URI,
    GOOGLE_JWKS_URI,
    IdentityProvider,
    auth0_jwks_uri,
)

__all__ = [
    "APPLE_JWKS_URI",
    "FACEBOOK_JWKS_URI",
    "GOOGLE_JWKS_URI",
    "IdentityProvider",
    "auth0_jwks_uri",
]
