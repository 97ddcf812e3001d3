"""Core domain models used across the package."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from email.utils import format_datetime
from enum import Enum
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from ..postacert.message import Message
    from ..postacert.nested import NestedMessageView


@dataclass(frozen=True, slots=True)
class Address:
    """One IMAP envelope address."""

    mailbox: str | None
    host: str | None
    name: str | None = None

    @property
    def addr_spec(self) -> str:
        """Return ``mailbox@host`` as reported by the server."""
        return f"{self.mailbox or ''}@{self.host or ''}"


@dataclass(frozen=True, slots=True)
class Envelope:
    """Header metadata of the outer PEC container."""

    subject: str | None
    from_: tuple[Address, ...] = ()
    to: tuple[Address, ...] = ()
    date: str | None = None


@dataclass(slots=True)
class BodyContent:
    """Decoded body text along with the part it was taken from."""

    content: str
    content_type: str
    charset: str


class PostacertKind(str, Enum):
    """Position of a postacert message in a forwarding chain."""

    MAIN = "main_postacert"
    NESTED = "nested_postacert"
    DEEP_NESTED = "deep_nested_postacert"


@dataclass(slots=True)
class PostacertEntry:
    """One row of the flattened PEC forwarding chain."""

    level: int
    message: Message | NestedMessageView
    kind: PostacertKind
    index: int | None = None
    parent_index: int | None = None


# pylint: disable=too-many-instance-attributes
@dataclass(slots=True)
class MessageSummary:
    """Read-only projection of a :class:`Message`."""

    uid: int
    subject: str | None
    from_: str | None
    to: list[str]
    date: datetime | None
    has_postacert: bool
    original_subject: str | None
    original_from: str | None
    original_to: list[str]
    original_date: datetime | None
    attachments_count: int
    regular_attachments_count: int
    nested_postacerts_count: int
    has_nested_postacerts: bool
    total_postacert_messages: int


def _text(value: Any) -> str | None:
    if value is None:
        return None
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return str(value)


def address_from_imap(raw: Any) -> Address:
    """Convert an ``imapclient`` ``Address`` (bytes fields) into :class:`Address`."""
    return Address(
        mailbox=_text(getattr(raw, "mailbox", None)),
        host=_text(getattr(raw, "host", None)),
        name=_text(getattr(raw, "name", None)),
    )


def envelope_from_imap(raw: Any) -> Envelope:
    """Convert an ``imapclient`` ``Envelope`` into :class:`Envelope`."""
    if raw is None:
        return Envelope(subject=None)
    date_value = getattr(raw, "date", None)
    if isinstance(date_value, datetime):
        date_text: str | None = format_datetime(date_value)
    else:
        date_text = _text(date_value)
    return Envelope(
        subject=_text(getattr(raw, "subject", None)),
        from_=tuple(address_from_imap(item) for item in getattr(raw, "from_", None) or ()),
        to=tuple(address_from_imap(item) for item in getattr(raw, "to", None) or ()),
        date=date_text,
    )


__all__ = [
    "Address",
    "BodyContent",
    "Envelope",
    "MessageSummary",
    "PostacertEntry",
    "PostacertKind",
    "address_from_imap",
    "envelope_from_imap",
]
