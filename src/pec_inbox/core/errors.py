"""Exception hierarchy shared by the transport and postacert layers."""

from __future__ import annotations


class PecError(RuntimeError):
    """Base class for every error raised by this package."""


class ConnectionUnavailable(PecError):
    """Raised when no IMAP session is established or the server is unreachable."""


class AuthenticationError(ConnectionUnavailable):
    """Raised when the server rejects the configured credentials."""


class FolderError(PecError):
    """Raised when a folder does not exist or cannot be selected."""


class PartUnavailableError(PecError):
    """Raised when the server returns no data for a UID or body part."""


class ExtractionError(PecError):
    """Raised when a structurally present part cannot be fetched or parsed."""


class DecodeError(PecError):
    """Raised when body bytes are invalid under their resolved charset."""


__all__ = [
    "AuthenticationError",
    "ConnectionUnavailable",
    "DecodeError",
    "ExtractionError",
    "FolderError",
    "PartUnavailableError",
    "PecError",
]
