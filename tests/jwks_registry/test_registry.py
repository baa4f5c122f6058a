from enum import Enum

import pytest

from jwks_registry import (
    InvalidUri,
    KeyRegistry,
    KeyRegistryBuilder,
    NoCorrespondingKidInStore,
    RemoteKeyCache,
    UnableToFetchKeys,
    UnrecognizedProvider,
)

ALPHA_URL = "https://alpha.example.com/jwks.json"
BETA_URL = "https://beta.example.com/.well-known/jwks.json"


class Provider(Enum):
    ALPHA = "alpha"
    BETA = "beta"
    GAMMA = "gamma"


@pytest.fixture
def published(jwks_server, make_jwk):
    jwks_server.publish(ALPHA_URL, [make_jwk("kid-1")])
    jwks_server.publish(BETA_URL, [make_jwk("kid-2")])
    return jwks_server


async def build(fetcher) -> KeyRegistry[Provider]:
    return await (
        KeyRegistryBuilder[Provider](fetcher)
        .add_remote(Provider.ALPHA, ALPHA_URL)
        .add_remote(Provider.BETA, BETA_URL)
        .build()
    )


@pytest.mark.asyncio
async def test_build_fetches_each_provider_once(published, fetcher):
    registry = await build(fetcher)

    assert registry.providers() == [Provider.ALPHA, Provider.BETA]
    assert Provider.ALPHA in registry
    assert Provider.GAMMA not in registry
    assert len(registry) == 2
    assert published.count(ALPHA_URL) == 1
    assert published.count(BETA_URL) == 1


@pytest.mark.asyncio
async def test_decrypt_dispatches_by_provider(published, fetcher, make_token):
    registry = await build(fetcher)

    assert (await registry.decrypt(Provider.ALPHA, make_token("kid-1")))["sub"] == "user-1"
    assert (await registry.decrypt(Provider.BETA, make_token("kid-2")))["sub"] == "user-1"

    # kid-1 belongs to ALPHA only
    with pytest.raises(NoCorrespondingKidInStore):
        await registry.decrypt(Provider.BETA, make_token("kid-1"))


@pytest.mark.asyncio
async def test_decrypt_unknown_provider_does_no_io(published, fetcher, make_token):
    registry = await build(fetcher)
    before = list(published.requests)

    with pytest.raises(UnrecognizedProvider):
        await registry.decrypt(Provider.GAMMA, make_token("kid-1"), auto_refresh=True)

    assert published.requests == before


@pytest.mark.asyncio
async def test_decrypt_fresh_cache_does_not_fetch(published, fetcher, make_token):
    registry = await build(fetcher)

    for _ in range(3):
        await registry.decrypt(Provider.ALPHA, make_token("kid-1"), auto_refresh=True)

    assert published.count(ALPHA_URL) == 1


@pytest.mark.asyncio
async def test_decrypt_stale_cache_refreshes_once_before_verifying(
    published, fetcher, clock, make_jwk, make_token
):
    registry = await build(fetcher)
    clock.advance(21600 - 3600)
    assert not registry.get(Provider.ALPHA).is_fresh()

    # Rotation: the provider now signs with kid-2.
    published.publish(ALPHA_URL, [make_jwk("kid-2")])
    claims = await registry.decrypt(Provider.ALPHA, make_token("kid-2"), auto_refresh=True)

    assert claims["sub"] == "user-1"
    assert published.count(ALPHA_URL) == 2
    assert published.count(BETA_URL) == 1


@pytest.mark.asyncio
async def test_decrypt_without_auto_refresh_uses_stale_keys(
    published, fetcher, clock, make_jwk, make_token
):
    registry = await build(fetcher)
    clock.advance(10 * 21600)
    published.publish(ALPHA_URL, [make_jwk("kid-2")])

    claims = await registry.decrypt(Provider.ALPHA, make_token("kid-1"), auto_refresh=False)

    assert claims["sub"] == "user-1"
    assert published.count(ALPHA_URL) == 1


@pytest.mark.asyncio
async def test_decrypt_unknown_kid_does_not_trigger_refresh(published, fetcher, make_token):
    registry = await build(fetcher)

    with pytest.raises(NoCorrespondingKidInStore):
        await registry.decrypt(Provider.ALPHA, make_token("kid-2"), auto_refresh=True)

    assert published.count(ALPHA_URL) == 1


@pytest.mark.asyncio
async def test_decrypt_propagates_failed_auto_refresh(published, fetcher, clock, make_token):
    registry = await build(fetcher)
    clock.advance(21600)
    published.unreachable.add(ALPHA_URL)

    with pytest.raises(UnableToFetchKeys):
        await registry.decrypt(Provider.ALPHA, make_token("kid-1"))

    # The stale keys are still there for callers that skip the refresh.
    assert await registry.decrypt(Provider.ALPHA, make_token("kid-1"), auto_refresh=False)


@pytest.mark.asyncio
async def test_refresh_always_fetches(published, fetcher):
    registry = await build(fetcher)

    await registry.refresh(Provider.BETA)

    assert published.count(BETA_URL) == 2
    with pytest.raises(UnrecognizedProvider):
        await registry.refresh(Provider.GAMMA)


@pytest.mark.asyncio
async def test_insert_and_remove(published, fetcher):
    registry = await build(fetcher)
    gamma = await RemoteKeyCache.create(ALPHA_URL, fetcher=fetcher)
    caches = registry.caches()

    assert registry.insert(Provider.GAMMA, gamma) is None
    assert registry.get(Provider.GAMMA) is gamma
    # earlier copies are unaffected
    assert Provider.GAMMA not in caches

    replaced = registry.insert(Provider.ALPHA, gamma)
    assert replaced is caches[Provider.ALPHA]

    assert registry.remove(Provider.BETA) is caches[Provider.BETA]
    assert registry.remove(Provider.BETA) is None
    assert list(registry) == [Provider.ALPHA, Provider.GAMMA]


def test_empty_registry():
    registry = KeyRegistry[str]()

    assert len(registry) == 0
    with pytest.raises(UnrecognizedProvider):
        registry.get("google")


# ---------------------------------------------------------------------------
# Builder
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_builder_last_uri_wins(published, fetcher):
    registry = await (
        KeyRegistryBuilder[Provider](fetcher)
        .add_remote(Provider.ALPHA, BETA_URL)
        .add_remote(Provider.ALPHA, ALPHA_URL)
        .build()
    )

    assert registry.providers() == [Provider.ALPHA]
    assert str(registry.get(Provider.ALPHA).source_location) == ALPHA_URL
    assert published.count(BETA_URL) == 0


@pytest.mark.asyncio
async def test_builder_fails_whole_on_any_error(published, fetcher):
    builder = (
        KeyRegistryBuilder[Provider](fetcher)
        .add_remote(Provider.ALPHA, ALPHA_URL)
        .add_remote(Provider.BETA, "https://missing.example.com/jwks.json")
    )

    with pytest.raises(UnableToFetchKeys):
        await builder.build()


@pytest.mark.asyncio
async def test_builder_rejects_invalid_uri(fetcher):
    builder = KeyRegistryBuilder[str](fetcher).add_remote("plain", "http://insecure.example.com/")

    with pytest.raises(InvalidUri):
        await builder.build()


@pytest.mark.asyncio
async def test_empty_builder_builds_empty_registry(fetcher):
    registry = await KeyRegistryBuilder[str](fetcher).build()

    assert len(registry) == 0


@pytest.mark.asyncio
async def test_builder_from_env(published, fetcher):
    environ = {
        "JWKS_URI_ALPHA": ALPHA_URL,
        "JWKS_URI_BETA": BETA_URL,
        "UNRELATED": "x",
    }

    builder = KeyRegistryBuilder.from_env(environ=environ, fetcher=fetcher)
    registry = await builder.build()

    assert builder.uris == {"alpha": ALPHA_URL, "beta": BETA_URL}
    assert registry.providers() == ["alpha", "beta"]
