"""Core utilities for configuration, logging, errors, and shared models."""

from .config import (
    AppSettings,
    FetchSettings,
    ImapSettings,
    LoggingSettings,
    load_app_settings,
)
from .errors import (
    AuthenticationError,
    ConnectionUnavailable,
    DecodeError,
    ExtractionError,
    FolderError,
    PartUnavailableError,
    PecError,
)
from .logging import configure_logging

__all__ = [
    "AppSettings",
    "AuthenticationError",
    "ConnectionUnavailable",
    "DecodeError",
    "ExtractionError",
    "FetchSettings",
    "FolderError",
    "ImapSettings",
    "LoggingSettings",
    "PartUnavailableError",
    "PecError",
    "configure_logging",
    "load_app_settings",
]
