"""Sessions that carry cookies across HTTP requests."""

from cookie_session.session.client import (
    AsyncHttpClient,
    HttpClient,
    SendError,
    TooManyRedirects,
)
from cookie_session.session.session import AsyncSession, Session

__all__ = [
    "AsyncHttpClient",
    "AsyncSession",
    "HttpClient",
    "SendError",
    "Session",
    "TooManyRedirects",
]
