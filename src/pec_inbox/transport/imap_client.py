"""IMAP transport adapter providing PEC mailbox access."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Iterator
from types import TracebackType

from imapclient import IMAPClient
from imapclient.exceptions import IMAPClientAbortError, IMAPClientError, LoginError

from ..core.config import FetchSettings, ImapSettings
from ..core.errors import (
    AuthenticationError,
    ConnectionUnavailable,
    FolderError,
    PartUnavailableError,
)
from ..postacert.message import Message

LOGGER = logging.getLogger(__name__)

SUMMARY_ITEMS = [b"ENVELOPE", b"BODYSTRUCTURE"]


class PecImapClient:
    """Thin wrapper around ``imapclient`` serving :class:`Message` objects.

    Also acts as the part fetcher each returned message uses to load its
    postacert.eml and nested parts on demand.
    """

    def __init__(
        self, settings: ImapSettings, fetch_settings: FetchSettings | None = None
    ) -> None:
        """Initialise the client with connection and listing settings."""
        self._settings = settings
        self._fetch_settings = fetch_settings or FetchSettings()
        self._connection: IMAPClient | None = None
        self.current_folder: str | None = None

    # Context manager helpers -------------------------------------------------
    def __enter__(self) -> PecImapClient:
        """Connect on entering a context manager scope."""
        self.connect()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        """Ensure resources are released on context exit."""
        self.close()

    # Public API ---------------------------------------------------------------
    @property
    def connected(self) -> bool:
        return self._connection is not None

    def connect(self) -> None:
        """Establish the IMAP session and select the configured folder."""
        if self._connection is not None:
            return

        username = self._settings.username
        password = self._settings.password
        if username is None or password is None:
            raise AuthenticationError("PEC credentials are not configured")

        LOGGER.debug(
            "Connecting to IMAP host %s:%s (ssl=%s)",
            self._settings.host,
            self._settings.port,
            self._settings.use_ssl,
        )
        try:
            connection = IMAPClient(
                self._settings.host,
                port=self._settings.port,
                ssl=self._settings.use_ssl,
                timeout=self._settings.timeout_seconds,
            )
        except (IMAPClientError, OSError) as exc:
            raise ConnectionUnavailable(
                f"Failed to connect to {self._settings.host}: {exc}"
            ) from exc

        try:
            LOGGER.debug("Authenticating as %s", username)
            connection.login(username, password)
        except LoginError as exc:
            _safe_shutdown(connection)
            raise AuthenticationError(f"Authentication failed: {exc}") from exc
        except (IMAPClientError, OSError) as exc:
            _safe_shutdown(connection)
            raise ConnectionUnavailable(
                f"Failed to connect to {self._settings.host}: {exc}"
            ) from exc

        self._connection = connection
        self.select_folder(self._settings.folder)

    def close(self) -> None:
        """Terminate the IMAP session cleanly."""
        if self._connection is None:
            return
        LOGGER.debug("Closing IMAP connection")
        _safe_shutdown(self._connection)
        self._connection = None
        self.current_folder = None

    def available_folders(self) -> list[str]:
        """Return the names of every folder on the server."""
        connection = self._require_connection()
        try:
            return [name for _flags, _delimiter, name in connection.list_folders()]
        except IMAPClientError as exc:
            raise FolderError(f"Failed to list folders: {exc}") from exc

    def select_folder(self, folder: str) -> None:
        """Select ``folder`` read-only after checking that it exists."""
        connection = self._require_connection()
        if folder not in self.available_folders():
            raise FolderError(f"Folder '{folder}' does not exist")
        try:
            connection.select_folder(folder, readonly=True)
        except IMAPClientError as exc:
            raise FolderError(f"Failed to select folder '{folder}': {exc}") from exc
        self.current_folder = folder
        LOGGER.debug("Selected folder %s", folder)

    def messages(
        self, limit: int | None = None, newest_first: bool | None = None
    ) -> list[Message]:
        """Return messages of the current folder ordered by UID."""
        connection = self._require_connection()
        if limit is None:
            limit = self._fetch_settings.limit
        if newest_first is None:
            newest_first = self._fetch_settings.newest_first

        try:
            uids = connection.search(["ALL"])
        except IMAPClientError as exc:
            raise ConnectionUnavailable(f"Failed to search messages: {exc}") from exc
        if not uids:
            LOGGER.debug("No messages found in %s", self.current_folder)
            return []

        ordered = sorted(uids, reverse=newest_first)
        if limit is not None:
            ordered = ordered[:limit]

        messages: list[Message] = []
        for chunk in _chunked(ordered, self._fetch_settings.batch_size):
            LOGGER.debug("Fetching ENVELOPE/BODYSTRUCTURE for %d UIDs", len(chunk))
            try:
                response = connection.fetch(chunk, SUMMARY_ITEMS)
            except IMAPClientError as exc:
                raise ConnectionUnavailable(f"Failed to fetch messages: {exc}") from exc
            for uid in chunk:
                fetch_data = response.get(uid)
                if fetch_data is None:
                    LOGGER.warning("No ENVELOPE/BODYSTRUCTURE returned for UID %s", uid)
                    continue
                messages.append(Message.from_fetch(self, uid, fetch_data))
        return messages

    def message(self, uid: int) -> Message | None:
        """Return a single message by UID, or ``None`` when it does not exist."""
        connection = self._require_connection()
        try:
            response = connection.fetch([uid], SUMMARY_ITEMS)
        except IMAPClientError as exc:
            raise ConnectionUnavailable(f"Failed to fetch UID {uid}: {exc}") from exc
        fetch_data = response.get(uid)
        if fetch_data is None:
            return None
        return Message.from_fetch(self, uid, fetch_data)

    def fetch_part_bytes(self, uid: int, part_path: str) -> bytes:
        """Return the raw bytes of one body part; ``""`` is the whole message."""
        connection = self._require_connection()
        LOGGER.debug("Fetching BODY[%s] for UID %s", part_path, uid)
        try:
            response = connection.fetch([uid], [f"BODY.PEEK[{part_path}]"])
        except (IMAPClientAbortError, OSError) as exc:
            raise ConnectionUnavailable(
                f"Connection lost while fetching UID {uid}: {exc}"
            ) from exc
        except IMAPClientError as exc:
            raise PartUnavailableError(
                f"Failed to fetch BODY[{part_path}] of UID {uid}: {exc}"
            ) from exc
        payload = response.get(uid, {}).get(f"BODY[{part_path}]".encode())
        if payload is None:
            raise PartUnavailableError(f"No BODY[{part_path}] returned for UID {uid}")
        return payload

    # Internal helpers ---------------------------------------------------------
    def _require_connection(self) -> IMAPClient:
        if self._connection is None:
            raise ConnectionUnavailable("IMAP connection has not been established")
        return self._connection


def _safe_shutdown(connection: IMAPClient) -> None:
    try:
        connection.logout()
    except (IMAPClientError, OSError):  # pragma: no cover - depends on server state
        LOGGER.debug("IMAP logout raised; suppressing during shutdown")


def _chunked(items: Iterable[int], size: int) -> Iterator[list[int]]:
    """Yield successive lists of ``size`` elements."""
    bucket: list[int] = []
    for item in items:
        bucket.append(item)
        if len(bucket) >= size:
            yield bucket
            bucket = []
    if bucket:
        yield bucket


__all__ = ["PecImapClient"]
