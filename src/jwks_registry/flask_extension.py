"""Flask extension for verifying third-party tokens against a KeyRegistry.

This module connects the asynchronous registry to Flask's synchronous view
functions.

Key Components:
- EventLoopThread: one background asyncio loop that stale-key refreshes run on
- AuthExtension: decorator protecting routes for a given provider
- get_verified_id_claims: verify an ID token held in a cookie

Request flow:
1. Extract the token from the request (header or cookie)
2. Dispatch it to the provider's cache, refreshing stale keys if configured
3. Store verified claims in ``flask.g.jwt`` and the provider in
   ``flask.g.jwt_provider``
4. Convert AuthError to the matching HTTP error (401, 404 or 503)

Why a loop thread:
    Caches serialize refreshes with asyncio primitives, which belong to one
    event loop. Flask may serve requests from many threads, so every
    refresh is submitted to the same long-lived loop instead of a
    per-request one. Signature checks never touch the loop and run on the
    request thread.
"""

from __future__ import annotations

import asyncio
import concurrent.futures
import logging
import threading
from collections.abc import Coroutine, Hashable
from functools import wraps
from typing import TYPE_CHECKING, Any, Final

from flask import Flask, abort, current_app, g, request

from .errors import AuthError
from .extractors import BearerExtractor, CookieExtractor

if TYPE_CHECKING:
    from .builder import KeyRegistryBuilder
    from .protocols import Claims, Extractor, ViewFunc
    from .registry import KeyRegistry
    from .verifier import VerifyOptions

logger = logging.getLogger(__name__)

_EXT_KEY: Final[str] = "jwks_registry"
"""Flask extensions registry key for AuthExtension."""


class EventLoopThread:
    """A daemon thread running one asyncio event loop.

    ``run`` may be called from any thread; it blocks until the coroutine
    finishes on the loop thread and returns its result or raises its error.
    """

    def __init__(self, name: str = "jwks-registry-loop") -> None:
        self._loop = asyncio.new_event_loop()
        self._thread = threading.Thread(target=self._serve, name=name, daemon=True)
        self._thread.start()

    def _serve(self) -> None:
        asyncio.set_event_loop(self._loop)
        self._loop.run_forever()

    @property
    def running(self) -> bool:
        return self._thread.is_alive()

    def run[T](self, coro: Coroutine[Any, Any, T], timeout: float | None = None) -> T:
        """Run ``coro`` on the loop thread and wait for its result.

        Raises:
            RuntimeError: the loop has been stopped.
            TimeoutError: ``timeout`` elapsed; the coroutine is cancelled.
        """
        if not self.running:
            coro.close()
            raise RuntimeError("Event loop thread is not running")

        future = asyncio.run_coroutine_threadsafe(coro, self._loop)
        try:
            return future.result(timeout)
        except concurrent.futures.TimeoutError:
            future.cancel()
            raise

    def stop(self) -> None:
        """Stop the loop and wait for the thread to exit."""
        if not self.running:
            return
        self._loop.call_soon_threadsafe(self._loop.stop)
        self._thread.join()
        self._loop.close()


class AuthExtension[P: Hashable]:
    """
    Flask decorator glue for registry-backed token verification.

    Responsibilities:
    - Extract token from request
    - Verify it with the named provider's key cache
    - Store verified claims in `flask.g.jwt`
    - Convert domain errors to HTTP responses (abort)

    Pattern:
        auth = AuthExtension()
        auth.init_app(app)
        auth.build_registry(IdentityProvider.builder())

    Usage:
        @app.get("/me")
        @auth.require(IdentityProvider.GOOGLE)
        def me(): ...
    """

    def __init__(
        self,
        registry: KeyRegistry[P] | None = None,
        extractor: Extractor | None = None,
        options: VerifyOptions | None = None,
        auto_refresh: bool = True,
        loop: EventLoopThread | None = None,
    ) -> None:
        self._registry = registry
        self._extractor: Extractor = extractor or BearerExtractor()
        self._options = options
        self._auto_refresh = auto_refresh
        self._loop = loop
        self._loop_lock = threading.Lock()

    def init_app(
        self,
        app: Flask,
        *,
        registry: KeyRegistry[P] | None = None,
        extractor: Extractor | None = None,
        options: VerifyOptions | None = None,
    ) -> None:
        """Register the extension on ``app``, optionally overriding collaborators."""
        if registry is not None:
            self._registry = registry
        if extractor is not None:
            self._extractor = extractor
        if options is not None:
            self._options = options

        app.extensions[_EXT_KEY] = self

    @property
    def loop(self) -> EventLoopThread:
        if self._loop is None:
            with self._loop_lock:
                if self._loop is None:
                    self._loop = EventLoopThread()
        return self._loop

    @property
    def registry(self) -> KeyRegistry[P]:
        if self._registry is None:
            raise RuntimeError("AuthExtension has no registry; pass one or call build_registry()")
        return self._registry

    def build_registry(self, builder: KeyRegistryBuilder[P]) -> KeyRegistry[P]:
        """Build ``builder`` on the loop thread and use the result.

        Raises:
            InvalidUri, UnableToFetchKeys, UnrecognizedResponse: a provider
                could not be fetched; the extension is left unchanged.
        """
        self._registry = self.loop.run(builder.build())
        return self._registry

    def verify(
        self,
        provider: P,
        token: str,
        *,
        auto_refresh: bool | None = None,
        options: VerifyOptions | None = None,
    ) -> Claims:
        """Synchronously verify ``token`` for ``provider``.

        Only a stale-key refresh is sent to the loop thread. Signature
        checks run on the calling thread against the cache's current
        snapshot, so requests are not serialized behind one another.

        Raises:
            AuthError subclasses, as KeyRegistry.decrypt.
        """
        cache = self.registry.get(provider)

        refresh = self._auto_refresh if auto_refresh is None else auto_refresh
        if refresh and not cache.is_fresh():
            self.loop.run(cache.refresh_if_stale())

        return cache.verify(token, options or self._options)

    def require(
        self,
        provider: P,
        *,
        auto_refresh: bool | None = None,
        options: VerifyOptions | None = None,
        extractor: Extractor | None = None,
    ):
        """Decorator requiring a token issued by ``provider``.

        Error mapping (via ``error.status_code``):
        - MissingToken, InvalidToken and subclasses -> HTTP 401
        - UnrecognizedProvider                      -> HTTP 404
        - KeyFetchError (auto-refresh failed)       -> HTTP 503

        Args:
            provider: Registry key of the provider that must have signed the token.
            auto_refresh: Overrides the extension default for this route.
            options: Overrides the extension's VerifyOptions for this route.
            extractor: Overrides the extension's extractor for this route.

        Side Effects:
            - Writes claims to ``flask.g.jwt`` and the provider to
              ``flask.g.jwt_provider`` before calling the view.
            - May terminate request handling early via ``flask.abort``.
        """

        def decorator(view: ViewFunc) -> ViewFunc:
            @wraps(view)
            def wrapper(*args: Any, **kwargs: Any) -> Any:
                try:
                    token = (extractor or self._extractor).extract()
                    claims = self.verify(
                        provider, token, auto_refresh=auto_refresh, options=options
                    )
                except AuthError as e:
                    logger.info("Rejected request to %s: %s (%s)", request.path, e.code, e)
                    abort(e.status_code, description=e.description)

                g.jwt = claims
                g.jwt_provider = provider
                return current_app.ensure_sync(view)(*args, **kwargs)

            return wrapper

        return decorator


def get_verified_id_claims[P: Hashable](
    extension: AuthExtension[P],
    provider: P,
    *,
    cookie_name: str = "id_token",
    options: VerifyOptions | None = None,
) -> Claims:
    """
    Return verified ID-token claims from the current Flask request.

    - Extracts the ID token from a cookie (default "id_token")
    - Verifies it with ``provider``'s keys through ``extension``
    - Aborts with the error's status code on failure
    """
    try:
        token = CookieExtractor(cookie_name).extract()
        return extension.verify(provider, token, options=options)
    except AuthError as e:
        abort(e.status_code, description=e.description)
