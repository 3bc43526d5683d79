"""Entry points for creating configured sessions.

``open_session`` and ``open_async_session`` build a session from
:py:class:`~cookie_session.config.Settings`, load the cookie file on entry
(when one is configured and exists) and save it again on exit.
"""

import logging
from collections.abc import AsyncGenerator, Generator
from contextlib import asynccontextmanager, contextmanager

import httpx

from cookie_session import __version__
from cookie_session.config import Settings, get_settings
from cookie_session.cookies import CookieFileError, JarCookieStore
from cookie_session.session import AsyncSession, Session

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def configure_logging(settings: Settings | None = None) -> None:
    """Configure root logging from settings."""
    settings = settings or get_settings()
    logging.basicConfig(
        level=getattr(logging, settings.log_level.value),
        format=LOG_FORMAT,
    )


def _client_options(settings: Settings) -> dict:
    headers = {}
    if settings.user_agent:
        headers["User-Agent"] = settings.user_agent
    return {
        "timeout": settings.timeout,
        "headers": headers,
        "max_redirects": settings.max_redirects,
    }


def _open_store(settings: Settings) -> JarCookieStore:
    """Create the cookie store, loading the cookie file if it exists."""
    store = JarCookieStore(settings.cookie_file)
    if settings.cookie_file is None:
        logger.info("No cookie file configured, cookies are kept in memory only")
    elif settings.cookie_file.exists():
        store.load()
    else:
        logger.info("Cookie file %s does not exist yet, starting empty", settings.cookie_file)
    return store


def _close_store(store: JarCookieStore) -> None:
    if store.path is None:
        return
    try:
        store.save()
    except CookieFileError as e:
        logger.error("Cookies were not persisted: %s", e)


@contextmanager
def open_session(
    settings: Settings | None = None,
    transport: httpx.BaseTransport | None = None,
) -> Generator[Session, None, None]:
    """Open a synchronous session configured from settings.

    Usage:
        with open_session() as session:
            session.get("https://example.com/")
    """
    settings = settings or get_settings()
    logger.info("Starting cookie-session v%s", __version__)

    store = _open_store(settings)
    client = httpx.Client(transport=transport, **_client_options(settings))
    session = Session(
        client,
        store,
        follow_redirects=settings.follow_redirects,
        max_redirects=settings.max_redirects,
    )
    try:
        yield session
    finally:
        client.close()
        _close_store(store)


@asynccontextmanager
async def open_async_session(
    settings: Settings | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> AsyncGenerator[AsyncSession, None]:
    """Open an asynchronous session configured from settings."""
    settings = settings or get_settings()
    logger.info("Starting cookie-session v%s", __version__)

    store = _open_store(settings)
    client = httpx.AsyncClient(transport=transport, **_client_options(settings))
    session = AsyncSession(
        client,
        store,
        follow_redirects=settings.follow_redirects,
        max_redirects=settings.max_redirects,
    )
    try:
        yield session
    finally:
        await client.aclose()
        _close_store(store)
