"""HTTP sessions that keep cookies across requests."""

from cookie_session.cookies import (
    CookieError,
    CookieFileError,
    CookieStore,
    JarCookieStore,
    PersistentCookieStore,
    StoredCookie,
)
from cookie_session.session import (
    AsyncHttpClient,
    AsyncSession,
    HttpClient,
    SendError,
    Session,
    TooManyRedirects,
)

__version__ = "0.1.0"

__all__ = [
    "AsyncHttpClient",
    "AsyncSession",
    "CookieError",
    "CookieFileError",
    "CookieStore",
    "HttpClient",
    "JarCookieStore",
    "PersistentCookieStore",
    "SendError",
    "Session",
    "StoredCookie",
    "TooManyRedirects",
    "__version__",
]
