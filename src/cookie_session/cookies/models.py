"""Read-only snapshots of cookies held by a cookie store."""

import time
from dataclasses import dataclass
from datetime import UTC, datetime
from http.cookiejar import Cookie


@dataclass(frozen=True)
class StoredCookie:
    """A single cookie as stored for a (domain, path, name) key.

    Instances are detached copies: mutating the store afterwards does not
    change a snapshot that was already handed out.
    """

    domain: str
    path: str
    name: str
    value: str | None
    expires: int | None = None
    secure: bool = False
    http_only: bool = False
    host_only: bool = True

    @property
    def persistent(self) -> bool:
        """Whether the cookie outlives the session (has an expiry time)."""
        return self.expires is not None

    @property
    def expires_at(self) -> datetime | None:
        """Expiry as an aware UTC datetime, or None for session cookies."""
        if self.expires is None:
            return None
        return datetime.fromtimestamp(self.expires, tz=UTC)

    def is_expired(self, now: float | None = None) -> bool:
        """Check if the cookie has expired.

        Args:
            now: Unix time to compare against. Defaults to the current time.

        Returns:
            True if the cookie has an expiry time in the past.
        """
        if self.expires is None:
            return False
        if now is None:
            now = time.time()
        return self.expires <= now

    @classmethod
    def from_jar_cookie(cls, cookie: Cookie) -> "StoredCookie":
        """Build a snapshot from an ``http.cookiejar.Cookie``."""
        # Attribute names are case-insensitive; cookiejar keeps unknown ones as sent
        http_only = any(key.lower() == "httponly" for key in cookie._rest)
        return cls(
            domain=cookie.domain,
            path=cookie.path,
            name=cookie.name,
            value=cookie.value,
            expires=cookie.expires,
            secure=cookie.secure,
            http_only=http_only,
            host_only=not cookie.domain_specified,
        )
