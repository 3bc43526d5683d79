"""Sessions: HTTP clients that keep cookies between requests.

A session attaches the cookies matching each outgoing request's URL and
stores the ``Set-Cookie`` values of every response under the URL of that
response. When redirects are followed, every hop is handled the same way:
each hop's request carries the cookies for its own URL and each hop's
``Set-Cookie`` headers are stored under its own URL.
"""

import inspect
import logging
import os
from collections.abc import Awaitable, Callable
from typing import Any

import httpx

from cookie_session.cookies import (
    CookieError,
    CookieFileError,
    CookieStore,
    JarCookieStore,
    PersistentCookieStore,
)
from cookie_session.session.client import (
    DEFAULT_MAX_REDIRECTS,
    DEFAULT_TIMEOUT,
    AsyncHttpClient,
    HttpClient,
    SendError,
    TooManyRedirects,
    detach_cookie_jar,
    restore_cookie_jar,
)

logger = logging.getLogger(__name__)

Prepare = Callable[[httpx.Request], httpx.Request | None]
AsyncPrepare = Callable[[httpx.Request], httpx.Request | None | Awaitable[httpx.Request | None]]


class _BaseSession:
    """Cookie bookkeeping shared by :py:class:`Session` and :py:class:`AsyncSession`."""

    def __init__(
        self,
        client: Any,
        store: CookieStore | None,
        follow_redirects: bool,
        max_redirects: int | None,
    ) -> None:
        self._client_jar = detach_cookie_jar(client)
        self._client = client
        self._store: CookieStore = store if store is not None else JarCookieStore()
        self._follow_redirects = follow_redirects
        if max_redirects is None:
            max_redirects = getattr(client, "max_redirects", DEFAULT_MAX_REDIRECTS)
        self._max_redirects = max_redirects

    @property
    def client(self) -> Any:
        """Get the wrapped HTTP client."""
        return self._client

    @property
    def store(self) -> CookieStore:
        """Get the cookie store."""
        return self._store

    @property
    def follow_redirects(self) -> bool:
        """Whether redirects are followed by default."""
        return self._follow_redirects

    @property
    def max_redirects(self) -> int:
        """Get the maximum number of redirects followed per request."""
        return self._max_redirects

    def _release_client_jar(self) -> None:
        """Hand a caller's client its own cookie jar back."""
        restore_cookie_jar(self._client, self._client_jar)
        self._client_jar = None

    def save(self, path: str | os.PathLike[str] | None = None) -> int:
        """Persist the cookie store.

        Returns:
            Number of cookies written.

        Raises:
            CookieFileError: If the store cannot be persisted.
        """
        if not isinstance(self._store, PersistentCookieStore):
            raise CookieFileError(f"{type(self._store).__name__} does not support saving")
        return self._store.save(path)

    def _attach_cookies(self, request: httpx.Request) -> None:
        """Add the cookies applicable to the request URL as a Cookie header.

        A Cookie header already present on the request is kept in front of
        the stored cookies.
        """
        if not request.url.is_absolute_url:
            return

        header = self._store.cookie_header(request.url)
        if not header:
            logger.debug("No cookies to add to request for %s", request.url)
            return

        existing = request.headers.get("Cookie")
        request.headers["Cookie"] = f"{existing}; {header}" if existing else header
        logger.debug("Setting Cookie header for %s %s", request.method, request.url)

    def _take_cookies(self, response: httpx.Response) -> int:
        """Store each Set-Cookie of a response under the response URL.

        Unparseable values are logged and skipped.

        Returns:
            Number of cookies stored.
        """
        set_cookies = response.headers.get_list("set-cookie")
        if not set_cookies:
            return 0

        url = response.url
        stored = 0
        for set_cookie in set_cookies:
            try:
                if self._store.store_set_cookie(set_cookie, url):
                    stored += 1
            except CookieError as e:
                logger.debug("Unable to store Set-Cookie from %s: %s", url, e)

        logger.debug("Stored %d of %d cookies from %s", stored, len(set_cookies), url)
        return stored

    def _next_hop(
        self,
        response: httpx.Response,
        history: list[httpx.Response],
        follow_redirects: bool,
    ) -> httpx.Request | None:
        """Get the next request of a redirect chain, or None to stop.

        Raises:
            TooManyRedirects: If following would exceed ``max_redirects``.
        """
        next_request = response.next_request
        if not follow_redirects or next_request is None:
            return None

        history.append(response)
        if len(history) > self._max_redirects:
            raise TooManyRedirects(
                f"Exceeded maximum allowed redirects ({self._max_redirects})",
                url=str(next_request.url),
            )
        logger.debug(
            "Following redirect %d from %s to %s",
            len(history),
            response.url,
            next_request.url,
        )
        return next_request

    def _resolve_follow(self, follow_redirects: bool | None) -> bool:
        return self._follow_redirects if follow_redirects is None else follow_redirects

    @staticmethod
    def _send_error(request: httpx.Request, error: Exception) -> SendError:
        logger.error("Request %s %s failed: %s", request.method, request.url, error)
        return SendError(f"Request to {request.url} failed: {error}", url=str(request.url))


class Session(_BaseSession):
    """A synchronous HTTP session that keeps cookies between requests.

    Usage:
        with Session() as session:
            session.get("https://example.com/login")
            session.post_with("https://example.com/api", lambda r: r)
    """

    def __init__(
        self,
        client: HttpClient | None = None,
        store: CookieStore | None = None,
        *,
        follow_redirects: bool = False,
        max_redirects: int | None = None,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> None:
        """Initialize the session.

        Args:
            client: The HTTP client to wrap. If not provided, an
                ``httpx.Client`` is created and closed with the session. A
                supplied client's own cookie jar is set aside while the
                session uses it and given back on close.
            store: The cookie store. Defaults to an empty
                :py:class:`JarCookieStore`.
            follow_redirects: Whether :py:meth:`send` follows redirects by default.
            max_redirects: Maximum redirects per request. Defaults to the
                client's own limit.
            timeout: Timeout in seconds for a client created by the session.
        """
        self._owns_client = client is None
        if client is None:
            client = httpx.Client(timeout=timeout)
        super().__init__(client, store, follow_redirects, max_redirects)

    @classmethod
    def load(
        cls,
        client: HttpClient | None,
        path: str | os.PathLike[str],
        **kwargs: Any,
    ) -> "Session":
        """Create a session whose store is loaded from a cookie file.

        Raises:
            CookieFileError: If the file cannot be loaded.
        """
        store = JarCookieStore(path)
        store.load()
        return cls(client, store, **kwargs)

    def send(
        self, request: httpx.Request, *, follow_redirects: bool | None = None
    ) -> httpx.Response:
        """Send a request with the session's cookies and store the response cookies.

        Args:
            request: The request to send.
            follow_redirects: Override the session's redirect setting.

        Returns:
            The final response. Intermediate redirect responses are in
            ``response.history``.

        Raises:
            SendError: If the client fails to complete the round trip.
            TooManyRedirects: If the redirect chain is too long.
        """
        follow = self._resolve_follow(follow_redirects)
        history: list[httpx.Response] = []

        while True:
            self._attach_cookies(request)
            try:
                response = self._client.send(request, follow_redirects=False)
            except (httpx.HTTPError, httpx.InvalidURL) as e:
                raise self._send_error(request, e) from e

            self._take_cookies(response)

            next_request = self._next_hop(response, history, follow)
            if next_request is None:
                if history:
                    response.history = list(history)
                return response
            request = next_request

    def request(
        self,
        method: str,
        url: httpx.URL | str,
        prepare: Prepare | None = None,
        **kwargs: Any,
    ) -> httpx.Response:
        """Build a request, let ``prepare`` customize it, then send it.

        Args:
            method: The HTTP method.
            url: The request URL.
            prepare: Optional callable taking the built request and returning
                the request to send (or None to send it as modified in place).
            **kwargs: Passed to the client's ``build_request``
                (``headers``, ``params``, ``json``, ``content``, ...).

        Raises:
            SendError: If the request cannot be built or sent.
        """
        follow_redirects = kwargs.pop("follow_redirects", None)
        try:
            request = self._client.build_request(method, url, **kwargs)
        except httpx.InvalidURL as e:
            logger.error("Invalid URL %r: %s", url, e)
            raise SendError(f"Invalid URL {url!r}: {e}", url=str(url)) from e

        if prepare is not None:
            prepared = prepare(request)
            if prepared is not None:
                request = prepared

        return self.send(request, follow_redirects=follow_redirects)

    def get_with(
        self, url: httpx.URL | str, prepare: Prepare | None = None, **kwargs: Any
    ) -> httpx.Response:
        return self.request("GET", url, prepare, **kwargs)

    def head_with(
        self, url: httpx.URL | str, prepare: Prepare | None = None, **kwargs: Any
    ) -> httpx.Response:
        return self.request("HEAD", url, prepare, **kwargs)

    def delete_with(
        self, url: httpx.URL | str, prepare: Prepare | None = None, **kwargs: Any
    ) -> httpx.Response:
        return self.request("DELETE", url, prepare, **kwargs)

    def post_with(
        self, url: httpx.URL | str, prepare: Prepare | None = None, **kwargs: Any
    ) -> httpx.Response:
        return self.request("POST", url, prepare, **kwargs)

    def put_with(
        self, url: httpx.URL | str, prepare: Prepare | None = None, **kwargs: Any
    ) -> httpx.Response:
        return self.request("PUT", url, prepare, **kwargs)

    def patch_with(
        self, url: httpx.URL | str, prepare: Prepare | None = None, **kwargs: Any
    ) -> httpx.Response:
        return self.request("PATCH", url, prepare, **kwargs)

    def options_with(
        self, url: httpx.URL | str, prepare: Prepare | None = None, **kwargs: Any
    ) -> httpx.Response:
        return self.request("OPTIONS", url, prepare, **kwargs)

    def get(self, url: httpx.URL | str, **kwargs: Any) -> httpx.Response:
        return self.request("GET", url, **kwargs)

    def head(self, url: httpx.URL | str, **kwargs: Any) -> httpx.Response:
        return self.request("HEAD", url, **kwargs)

    def delete(self, url: httpx.URL | str, **kwargs: Any) -> httpx.Response:
        return self.request("DELETE", url, **kwargs)

    def post(self, url: httpx.URL | str, **kwargs: Any) -> httpx.Response:
        return self.request("POST", url, **kwargs)

    def put(self, url: httpx.URL | str, **kwargs: Any) -> httpx.Response:
        return self.request("PUT", url, **kwargs)

    def patch(self, url: httpx.URL | str, **kwargs: Any) -> httpx.Response:
        return self.request("PATCH", url, **kwargs)

    def options(self, url: httpx.URL | str, **kwargs: Any) -> httpx.Response:
        return self.request("OPTIONS", url, **kwargs)

    def close(self) -> None:
        """Close the session and release resources."""
        if self._owns_client:
            self._client.close()
        else:
            self._release_client_jar()

    def __enter__(self) -> "Session":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


class AsyncSession(_BaseSession):
    """An asynchronous HTTP session that keeps cookies between requests.

    Concurrent requests on one session share the store; its lock keeps each
    cookie read and each update atomic.
    """

    def __init__(
        self,
        client: AsyncHttpClient | None = None,
        store: CookieStore | None = None,
        *,
        follow_redirects: bool = False,
        max_redirects: int | None = None,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> None:
        """Initialize the session.

        Args:
            client: The async HTTP client to wrap. If not provided, an
                ``httpx.AsyncClient`` is created and closed with the session. A
                supplied client's own cookie jar is set aside while the
                session uses it and given back on close.
            store: The cookie store. Defaults to an empty
                :py:class:`JarCookieStore`.
            follow_redirects: Whether :py:meth:`send` follows redirects by default.
            max_redirects: Maximum redirects per request. Defaults to the
                client's own limit.
            timeout: Timeout in seconds for a client created by the session.
        """
        self._owns_client = client is None
        if client is None:
            client = httpx.AsyncClient(timeout=timeout)
        super().__init__(client, store, follow_redirects, max_redirects)

    @classmethod
    def load(
        cls,
        client: AsyncHttpClient | None,
        path: str | os.PathLike[str],
        **kwargs: Any,
    ) -> "AsyncSession":
        """Create a session whose store is loaded from a cookie file."""
        store = JarCookieStore(path)
        store.load()
        return cls(client, store, **kwargs)

    async def send(
        self, request: httpx.Request, *, follow_redirects: bool | None = None
    ) -> httpx.Response:
        """Send a request with the session's cookies and store the response cookies.

        See :py:meth:`Session.send`.
        """
        follow = self._resolve_follow(follow_redirects)
        history: list[httpx.Response] = []

        while True:
            self._attach_cookies(request)
            try:
                response = await self._client.send(request, follow_redirects=False)
            except (httpx.HTTPError, httpx.InvalidURL) as e:
                raise self._send_error(request, e) from e

            self._take_cookies(response)

            next_request = self._next_hop(response, history, follow)
            if next_request is None:
                if history:
                    response.history = list(history)
                return response
            request = next_request

    async def request(
        self,
        method: str,
        url: httpx.URL | str,
        prepare: AsyncPrepare | None = None,
        **kwargs: Any,
    ) -> httpx.Response:
        """Build a request, let ``prepare`` customize it, then send it.

        ``prepare`` may be a plain function or a coroutine function.
        """
        follow_redirects = kwargs.pop("follow_redirects", None)
        try:
            request = self._client.build_request(method, url, **kwargs)
        except httpx.InvalidURL as e:
            logger.error("Invalid URL %r: %s", url, e)
            raise SendError(f"Invalid URL {url!r}: {e}", url=str(url)) from e

        if prepare is not None:
            prepared = prepare(request)
            if inspect.isawaitable(prepared):
                prepared = await prepared
            if prepared is not None:
                request = prepared

        return await self.send(request, follow_redirects=follow_redirects)

    async def get_with(
        self, url: httpx.URL | str, prepare: AsyncPrepare | None = None, **kwargs: Any
    ) -> httpx.Response:
        return await self.request("GET", url, prepare, **kwargs)

    async def head_with(
        self, url: httpx.URL | str, prepare: AsyncPrepare | None = None, **kwargs: Any
    ) -> httpx.Response:
        return await self.request("HEAD", url, prepare, **kwargs)

    async def delete_with(
        self, url: httpx.URL | str, prepare: AsyncPrepare | None = None, **kwargs: Any
    ) -> httpx.Response:
        return await self.request("DELETE", url, prepare, **kwargs)

    async def post_with(
        self, url: httpx.URL | str, prepare: AsyncPrepare | None = None, **kwargs: Any
    ) -> httpx.Response:
        return await self.request("POST", url, prepare, **kwargs)

    async def put_with(
        self, url: httpx.URL | str, prepare: AsyncPrepare | None = None, **kwargs: Any
    ) -> httpx.Response:
        return await self.request("PUT", url, prepare, **kwargs)

    async def patch_with(
        self, url: httpx.URL | str, prepare: AsyncPrepare | None = None, **kwargs: Any
    ) -> httpx.Response:
        return await self.request("PATCH", url, prepare, **kwargs)

    async def options_with(
        self, url: httpx.URL | str, prepare: AsyncPrepare | None = None, **kwargs: Any
    ) -> httpx.Response:
        return await self.request("OPTIONS", url, prepare, **kwargs)

    async def get(self, url: httpx.URL | str, **kwargs: Any) -> httpx.Response:
        return await self.request("GET", url, **kwargs)

    async def head(self, url: httpx.URL | str, **kwargs: Any) -> httpx.Response:
        return await self.request("HEAD", url, **kwargs)

    async def delete(self, url: httpx.URL | str, **kwargs: Any) -> httpx.Response:
        return await self.request("DELETE", url, **kwargs)

    async def post(self, url: httpx.URL | str, **kwargs: Any) -> httpx.Response:
        return await self.request("POST", url, **kwargs)

    async def put(self, url: httpx.URL | str, **kwargs: Any) -> httpx.Response:
        return await self.request("PUT", url, **kwargs)

    async def patch(self, url: httpx.URL | str, **kwargs: Any) -> httpx.Response:
        return await self.request("PATCH", url, **kwargs)

    async def options(self, url: httpx.URL | str, **kwargs: Any) -> httpx.Response:
        return await self.request("OPTIONS", url, **kwargs)

    async def aclose(self) -> None:
        """Close the session and release resources."""
        if self._owns_client:
            await self._client.aclose()
        else:
            self._release_client_jar()

    async def __aenter__(self) -> "AsyncSession":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()
