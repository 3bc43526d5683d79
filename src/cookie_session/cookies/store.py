"""Thread-safe cookie store backed by ``http.cookiejar``.

The jar and its ``DefaultCookiePolicy`` implement the RFC 6265 rules
(parsing, domain and path matching, expiry). This module only adapts the
jar to raw ``Set-Cookie`` strings and destination URLs, guards it with a
lock and exposes persistence in the LWP (Set-Cookie3) file format.
"""

import logging
import os
import threading
import time
import urllib.request
from collections.abc import Iterable, Iterator
from email.message import Message
from http.cookiejar import Cookie, CookieJar, DefaultCookiePolicy, LoadError, LWPCookieJar
from pathlib import Path
from typing import Protocol, runtime_checkable

import httpx

from cookie_session.cookies.models import StoredCookie

logger = logging.getLogger(__name__)

URLTypes = httpx.URL | str


class CookieError(Exception):
    """Exception raised when a Set-Cookie value cannot be parsed or stored."""

    def __init__(self, message: str, set_cookie: str | None = None):
        super().__init__(message)
        self.set_cookie = set_cookie


class CookieFileError(Exception):
    """Exception raised when a cookie file cannot be loaded or saved."""

    def __init__(self, message: str, path: str | None = None):
        super().__init__(message)
        self.path = path


@runtime_checkable
class CookieStore(Protocol):
    """Capability used by sessions: store Set-Cookie values, produce Cookie headers."""

    def store_set_cookie(self, set_cookie: str, url: URLTypes) -> bool: ...

    def cookie_header(self, url: URLTypes) -> str | None: ...


@runtime_checkable
class PersistentCookieStore(CookieStore, Protocol):
    """A cookie store that can be loaded from and saved to a durable medium."""

    def load(self, path: str | os.PathLike[str] | None = None) -> int: ...

    def save(self, path: str | os.PathLike[str] | None = None) -> int: ...


class _SessionCookiePolicy(DefaultCookiePolicy):
    """Cookie policy that refreshes its clock on every return check.

    ``DefaultCookiePolicy`` relies on the jar to set the current time before
    ``return_ok`` is called; :py:meth:`JarCookieStore.matches` checks cookies
    without going through the jar.
    """

    def return_ok(self, cookie: Cookie, request: urllib.request.Request) -> bool:
        self._now = int(time.time())
        return super().return_ok(cookie, request)


class _SetCookieResponse:
    """Minimal response object exposing Set-Cookie headers to the jar."""

    def __init__(self, set_cookies: Iterable[str]):
        self._headers = Message()
        for value in set_cookies:
            self._headers["Set-Cookie"] = value

    def info(self) -> Message:
        return self._headers


class _ParseJar(CookieJar):
    """Jar used only to turn Set-Cookie values into cookies.

    An already expired value makes ``CookieJar`` clear the matching cookie
    before any policy check. Here the keys are only recorded, so the store
    can check each deletion against the policy first.
    """

    def __init__(self, policy: DefaultCookiePolicy):
        super().__init__(policy)
        self.expired: list[tuple[str, str, str]] = []

    def clear(
        self, domain: str | None = None, path: str | None = None, name: str | None = None
    ) -> None:
        self.expired.append((domain, path, name))


def _deletion_cookie(domain: str, path: str, name: str) -> Cookie:
    """Build the cookie a deletion request would target, for policy checks."""
    return Cookie(
        version=0,
        name=name,
        value="",
        port=None,
        port_specified=False,
        domain=domain,
        domain_specified=domain.startswith("."),
        domain_initial_dot=domain.startswith("."),
        path=path,
        path_specified=True,
        secure=False,
        expires=None,
        discard=True,
        comment=None,
        comment_url=None,
        rest={},
    )


def _jar_request(url: URLTypes) -> urllib.request.Request:
    """Wrap a URL in the request type ``http.cookiejar`` understands."""
    return urllib.request.Request(str(url))


def _validate_set_cookie(set_cookie: str) -> str:
    """Check that a Set-Cookie value starts with a ``name=value`` pair.

    Returns:
        The cookie name.

    Raises:
        CookieError: If the value is empty or has no usable name.
    """
    if not set_cookie or not set_cookie.strip():
        raise CookieError("Empty Set-Cookie value", set_cookie=set_cookie)

    pair = set_cookie.split(";", 1)[0]
    name, sep, _ = pair.partition("=")
    name = name.strip()
    if not sep or not name:
        raise CookieError(
            f"Set-Cookie has no name=value pair: {set_cookie!r}", set_cookie=set_cookie
        )
    if any(ch.isspace() or ord(ch) < 0x20 or ord(ch) == 0x7F for ch in name):
        raise CookieError(f"Invalid cookie name {name!r}", set_cookie=set_cookie)
    return name


class JarCookieStore:
    """Thread-safe cookie store with RFC 6265 matching and LWP persistence.

    Cookies are keyed by (domain, path, name); storing the same key again
    replaces the earlier value. Host-only cookies are only returned for
    their exact host. Expired cookies are never returned.
    """

    def __init__(
        self,
        path: str | os.PathLike[str] | None = None,
        blocked_domains: Iterable[str] | None = None,
        secure_protocols: Iterable[str] = ("https", "wss"),
    ) -> None:
        """Initialize the cookie store.

        Args:
            path: Default file for :py:meth:`load` and :py:meth:`save`.
            blocked_domains: Domains that may neither set nor receive cookies.
            secure_protocols: URL schemes on which Secure cookies are sent.
        """
        self._policy = _SessionCookiePolicy(
            blocked_domains=tuple(blocked_domains) if blocked_domains else None,
            strict_ns_domain=DefaultCookiePolicy.DomainStrictNonDomain,
            secure_protocols=tuple(secure_protocols),
        )
        self._path = os.fspath(path) if path is not None else None
        self._jar = LWPCookieJar(self._path, policy=self._policy)
        self._lock = threading.Lock()

    @property
    def path(self) -> str | None:
        """Get the default cookie file path."""
        return self._path

    def store_set_cookie(self, set_cookie: str, url: URLTypes) -> bool:
        """Insert or update a cookie from a raw Set-Cookie value.

        Args:
            set_cookie: The Set-Cookie header value.
            url: The URL of the response that carried the header.

        Returns:
            True if a cookie was stored, False if the policy rejected it or
            it only removed an existing cookie (expiry in the past).

        Raises:
            CookieError: If the value cannot be parsed.
        """
        name = _validate_set_cookie(set_cookie)
        request = _jar_request(url)

        parser = _ParseJar(self._policy)
        with self._lock:
            cookies = parser.make_cookies(_SetCookieResponse([set_cookie]), request)
            for domain, path, cookie_name in parser.expired:
                self._expire(domain, path, cookie_name, request)
            if not cookies:
                logger.debug("Set-Cookie %r from %s did not produce a cookie", name, url)
                return False

            stored = False
            for cookie in cookies:
                if not self._policy.set_ok(cookie, request):
                    logger.debug(
                        "Cookie policy rejected %r (domain=%s) from %s",
                        cookie.name,
                        cookie.domain,
                        url,
                    )
                    continue
                self._jar.set_cookie(cookie)
                stored = True
            return stored

    def _expire(
        self, domain: str, path: str, name: str, request: urllib.request.Request
    ) -> None:
        """Apply the deletion asked for by an expired Set-Cookie. Caller must hold the lock.

        The deletion obeys the same domain rules as setting the cookie would.
        """
        if not self._policy.set_ok(_deletion_cookie(domain, path, name), request):
            logger.debug(
                "Cookie policy rejected deletion of %r (domain=%s) from %s",
                name,
                domain,
                request.full_url,
            )
            return
        try:
            self._jar.clear(domain, path, name)
        except KeyError:
            # Nothing stored under that key
            return
        logger.debug("Expired cookie (domain=%s, path=%s, name=%s)", domain, path, name)

    def cookie_header(self, url: URLTypes) -> str | None:
        """Get the Cookie header value for a destination URL.

        Returns:
            The serialized cookies, or None when no cookie applies.
        """
        request = _jar_request(url)
        with self._lock:
            self._jar.add_cookie_header(request)
        return request.get_header("Cookie")

    def matches(self, url: URLTypes) -> list[StoredCookie]:
        """Get the unexpired cookies that would be sent to a URL.

        Longer paths come first, matching the order of the Cookie header.
        """
        request = _jar_request(url)
        with self._lock:
            found = [
                cookie
                for cookie in self._jar
                if self._policy.domain_return_ok(cookie.domain, request)
                and self._policy.path_return_ok(cookie.path, request)
                and self._policy.return_ok(cookie, request)
            ]
        found.sort(key=lambda c: len(c.path), reverse=True)
        return [StoredCookie.from_jar_cookie(c) for c in found]

    def _find(self, domain: str, path: str, name: str) -> Cookie | None:
        """Find a cookie by key. Caller must hold the lock.

        An exact domain match wins over a match ignoring the leading dot of
        a Domain cookie.
        """
        fallback = None
        for cookie in self._jar:
            if cookie.path != path or cookie.name != name:
                continue
            if cookie.domain == domain:
                return cookie
            if cookie.domain.lstrip(".") == domain.lstrip("."):
                fallback = cookie
        return fallback

    def get(self, domain: str, path: str, name: str) -> StoredCookie | None:
        """Get an unexpired cookie by (domain, path, name)."""
        with self._lock:
            cookie = self._find(domain, path, name)
            if cookie is None or cookie.is_expired():
                return None
            return StoredCookie.from_jar_cookie(cookie)

    def contains(self, domain: str, path: str, name: str) -> bool:
        """Check for an unexpired cookie."""
        return self.get(domain, path, name) is not None

    def contains_any(self, domain: str, path: str, name: str) -> bool:
        """Check for a cookie, expired or not."""
        with self._lock:
            return self._find(domain, path, name) is not None

    def iter_unexpired(self) -> Iterator[StoredCookie]:
        """Iterate over snapshots of all unexpired cookies."""
        now = time.time()
        return (c for c in self.iter_any() if not c.is_expired(now))

    def iter_any(self) -> Iterator[StoredCookie]:
        """Iterate over snapshots of all cookies, including expired ones."""
        with self._lock:
            snapshot = [StoredCookie.from_jar_cookie(c) for c in self._jar]
        return iter(snapshot)

    def remove(self, domain: str, path: str, name: str) -> bool:
        """Remove a cookie.

        Returns:
            True if the cookie was removed, False if not found.
        """
        with self._lock:
            cookie = self._find(domain, path, name)
            if cookie is None:
                return False
            self._jar.clear(cookie.domain, cookie.path, cookie.name)
            logger.debug("Removed cookie (domain=%s, path=%s, name=%s)", domain, path, name)
            return True

    def clear(self) -> None:
        """Remove all cookies."""
        with self._lock:
            count = len(self._jar)
            self._jar.clear()
        if count:
            logger.info("Cleared %d cookies", count)

    def clear_expired(self) -> int:
        """Remove all expired cookies.

        Returns:
            Number of cookies removed.
        """
        with self._lock:
            before = len(self._jar)
            self._jar.clear_expired_cookies()
            removed = before - len(self._jar)
        if removed:
            logger.info("Cleaned up %d expired cookies", removed)
        return removed

    def clear_session_cookies(self) -> int:
        """Remove all cookies without an expiry time, as at browser shutdown."""
        with self._lock:
            before = len(self._jar)
            self._jar.clear_session_cookies()
            return before - len(self._jar)

    def __len__(self) -> int:
        with self._lock:
            return len(self._jar)

    def load(self, path: str | os.PathLike[str] | None = None) -> int:
        """Load cookies from an LWP cookie file, adding to the stored ones.

        Expired cookies in the file are skipped.

        Args:
            path: The file to read. Defaults to the store's path.

        Returns:
            Number of cookies in the store after loading.

        Raises:
            CookieFileError: If no path is known, or the file cannot be read
                or is not a valid cookie file.
        """
        filename = self._filename(path)
        with self._lock:
            try:
                self._jar.load(filename)
            except (OSError, LoadError) as e:
                logger.error("Failed to load cookies from %s: %s", filename, e)
                raise CookieFileError(
                    f"Failed to load cookies from {filename}: {e}", path=filename
                ) from e
            count = len(self._jar)

        logger.info("Loaded cookies from %s (%d cookies)", filename, count)
        return count

    def save(self, path: str | os.PathLike[str] | None = None) -> int:
        """Save persistent, unexpired cookies to an LWP cookie file.

        Session cookies are not written.

        Args:
            path: The file to write. Defaults to the store's path.

        Returns:
            Number of cookies written.

        Raises:
            CookieFileError: If no path is known or the file cannot be written.
        """
        filename = self._filename(path)
        with self._lock:
            now = time.time()
            count = sum(1 for c in self._jar if not c.discard and not c.is_expired(now))
            try:
                Path(filename).parent.mkdir(parents=True, exist_ok=True)
                self._jar.save(filename)
            except OSError as e:
                logger.error("Failed to save cookies to %s: %s", filename, e)
                raise CookieFileError(
                    f"Failed to save cookies to {filename}: {e}", path=filename
                ) from e

        logger.info("Saved %d cookies to %s", count, filename)
        return count

    def _filename(self, path: str | os.PathLike[str] | None) -> str:
        if path is not None:
            return os.fspath(path)
        if self._path is None:
            raise CookieFileError("No cookie file path given")
        return self._path
