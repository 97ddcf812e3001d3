"""Protocol interfaces for decoupling components."""

from __future__ import annotations

from typing import Protocol


class PartFetcher(Protocol):
    """Source of raw body-part bytes, typically an IMAP session."""

    def fetch_part_bytes(self, uid: int, part_path: str) -> bytes:
        """Return the raw bytes of ``part_path`` for ``uid``.

        An empty ``part_path`` addresses the entire message. Implementations
        raise :class:`~pec_inbox.core.errors.PartUnavailableError` when the
        server returns nothing and
        :class:`~pec_inbox.core.errors.ConnectionUnavailable` when no session
        is available.
        """
        raise NotImplementedError


__all__ = ["PartFetcher"]
