"""HTTP client capabilities wrapped by sessions.

``httpx.Client`` and ``httpx.AsyncClient`` satisfy these protocols as they
are; any other transport exposing the same two methods can be used instead.
"""

import logging
from http.cookiejar import CookieJar, DefaultCookiePolicy
from typing import Any, Protocol, runtime_checkable

import httpx

logger = logging.getLogger(__name__)

# Constants
DEFAULT_TIMEOUT = 30.0  # seconds
DEFAULT_MAX_REDIRECTS = 20


class SendError(Exception):
    """Exception raised when the wrapped client fails to complete a round trip."""

    def __init__(self, message: str, url: str | None = None):
        super().__init__(message)
        self.url = url


class TooManyRedirects(SendError):
    """Exception raised when a redirect chain exceeds the allowed length."""


@runtime_checkable
class HttpClient(Protocol):
    """A synchronous client that builds and sends requests."""

    def build_request(self, method: str, url: httpx.URL | str, **kwargs: Any) -> httpx.Request: ...

    def send(self, request: httpx.Request, *, follow_redirects: bool = ...) -> httpx.Response: ...


@runtime_checkable
class AsyncHttpClient(Protocol):
    """An asynchronous client that builds and sends requests."""

    def build_request(self, method: str, url: httpx.URL | str, **kwargs: Any) -> httpx.Request: ...

    async def send(
        self, request: httpx.Request, *, follow_redirects: bool = ...
    ) -> httpx.Response: ...


def blocking_cookie_jar() -> CookieJar:
    """Create a cookie jar that neither accepts nor returns any cookie."""
    return CookieJar(policy=DefaultCookiePolicy(allowed_domains=[]))


def detach_cookie_jar(client: object) -> CookieJar | None:
    """Switch off an httpx client's own cookie handling.

    The session's store must be the only source of Cookie headers, otherwise
    the client would merge its own jar into every request it builds. Cookies
    already held by the client are neither sent nor updated until the jar is
    put back with :py:func:`restore_cookie_jar`.

    Returns:
        The client's previous jar, or None if the client has no httpx cookies.
    """
    cookies = getattr(client, "cookies", None)
    if not isinstance(cookies, httpx.Cookies):
        return None
    if len(cookies.jar):
        logger.warning(
            "Ignoring %d cookies held by the HTTP client while the session uses it",
            len(cookies.jar),
        )
    client.cookies = blocking_cookie_jar()  # type: ignore[attr-defined]
    return cookies.jar


def restore_cookie_jar(client: object, jar: CookieJar | None) -> None:
    """Give a client back the jar taken by :py:func:`detach_cookie_jar`."""
    if jar is None:
        return
    client.cookies = jar  # type: ignore[attr-defined]
