"""
JWKS URIs of public identity providers.

Google, Facebook (Limited Login) and Apple (Sign in with Apple) all sign
their ID tokens with RS256 and publish their keys at fixed locations.
Auth0 tenants publish theirs under the issuer's ``.well-known`` path.
"""

from __future__ import annotations

from enum import StrEnum
from typing import Final

from ..builder import KeyRegistryBuilder
from ..fetcher import JWKSFetcher

GOOGLE_JWKS_URI: Final[str] = "https://www.googleapis.com/oauth2/v3/certs"
FACEBOOK_JWKS_URI: Final[str] = "https://www.facebook.com/.well-known/oauth/openid/jwks/"
APPLE_JWKS_URI: Final[str] = "https://appleid.apple.com/auth/keys"


def auth0_jwks_uri(issuer: str) -> str:
    """JWKS URI for an Auth0 tenant.

    Args:
        issuer: Issuer base URL, e.g. ``"https://tenant.auth0.com/"``. A
            missing trailing slash is added.
    """
    if not issuer.endswith("/"):
        issuer += "/"
    return f"{issuer}.well-known/jwks.json"


class IdentityProvider(StrEnum):
    """Public providers usable directly as registry keys.

    Example
    -------
    registry = await IdentityProvider.builder().build()
    claims = await registry.decrypt(IdentityProvider.GOOGLE, token)
    """

    GOOGLE = "google"
    FACEBOOK = "facebook"
    APPLE = "apple"

    @property
    def jwks_uri(self) -> str:
        return _JWKS_URIS[self]

    @classmethod
    def builder(
        cls,
        *providers: IdentityProvider,
        fetcher: JWKSFetcher | None = None,
    ) -> KeyRegistryBuilder[IdentityProvider]:
        """A builder preloaded with ``providers`` (all of them by default)."""
        builder = KeyRegistryBuilder[IdentityProvider](fetcher)
        for provider in providers or tuple(cls):
            builder.add_remote(provider, provider.jwks_uri)
        return builder


_JWKS_URIS: Final[dict[IdentityProvider, str]] = {
    IdentityProvider.GOOGLE: GOOGLE_JWKS_URI,
    IdentityProvider.FACEBOOK: FACEBOOK_JWKS_URI,
    IdentityProvider.APPLE: APPLE_JWKS_URI,
}
