"""Pytest configuration and fixtures."""

import os

import httpx
import pytest

from cookie_session import JarCookieStore, Session
from tests.helpers import MockSite


@pytest.fixture(autouse=True)
def clean_settings(monkeypatch):
    """Remove COOKIE_SESSION_* variables and clear the settings cache for all tests."""
    for name in list(os.environ):
        if name.startswith("COOKIE_SESSION_"):
            monkeypatch.delenv(name)

    from cookie_session.config.settings import get_settings

    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def site():
    """Create an empty mock site."""
    return MockSite()


@pytest.fixture
def client(site):
    """Create an httpx client whose requests are answered by the mock site."""
    with httpx.Client(transport=httpx.MockTransport(site)) as client:
        yield client


@pytest.fixture
def store():
    """Create an empty in-memory cookie store."""
    return JarCookieStore()


@pytest.fixture
def session(client, store):
    """Create a session over the mock site."""
    return Session(client, store)
