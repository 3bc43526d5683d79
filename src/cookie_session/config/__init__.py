"""Configuration module for cookie sessions."""

from cookie_session.config.settings import LogLevel, Settings, get_settings

__all__ = [
    "LogLevel",
    "Settings",
    "get_settings",
]
