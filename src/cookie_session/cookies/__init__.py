"""Cookie storage used by sessions."""

from cookie_session.cookies.models import StoredCookie
from cookie_session.cookies.store import (
    CookieError,
    CookieFileError,
    CookieStore,
    JarCookieStore,
    PersistentCookieStore,
)

__all__ = [
    "CookieError",
    "CookieFileError",
    "CookieStore",
    "JarCookieStore",
    "PersistentCookieStore",
    "StoredCookie",
]
