"""PEC message façade resolving envelope and postacert views."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from datetime import datetime
from email.message import EmailMessage
from typing import Any

from ..core.datetime_utils import parse_header_date
from ..core.interfaces import PartFetcher
from ..core.lazy import LazyValue
from ..core.models import (
    BodyContent,
    Envelope,
    MessageSummary,
    PostacertEntry,
    envelope_from_imap,
)
from . import text
from .attachment import Attachment
from .bodystructure import (
    BodyStructureNode,
    Composite,
    Leaf,
    find_postacert_parts,
    parse_bodystructure,
)
from .extractor import extract_postacert_part, fetch_message
from .nested import (
    NestedMessageView,
    discover_nested_attachments,
    flatten_postacert_chain,
    merge_nested_attachments,
    parse_postacert_attachments,
)
from .sender import clean_subject, resolve_sender

LOGGER = logging.getLogger(__name__)


class Message:
    """One IMAP fetch result of a PEC mailbox.

    ``subject``, ``from_``, ``to`` and ``date`` describe the message the
    sender composed: they come from the wrapped postacert.eml when there is
    one, otherwise from the outer envelope. The ``original_*`` accessors
    always describe the outer PEC container. Postacert content, attachments
    and nested postacerts are fetched on first access and kept for the
    lifetime of the instance.
    """

    def __init__(
        self,
        fetcher: PartFetcher,
        uid: int,
        envelope: Envelope | Any,
        bodystructure: BodyStructureNode | Any,
    ) -> None:
        """Wrap a fetch result.

        ``envelope`` and ``bodystructure`` may also be given in the shape
        ``imapclient`` returns them.
        """
        self._fetcher = fetcher
        self.uid = uid
        if isinstance(envelope, Envelope):
            self.envelope = envelope
        else:
            self.envelope = envelope_from_imap(envelope)
        if bodystructure is None or isinstance(bodystructure, (Composite, Leaf)):
            self.bodystructure = bodystructure
        else:
            self.bodystructure = parse_bodystructure(bodystructure)

        self._postacert: LazyValue[NestedMessageView] = LazyValue(
            self._load_postacert, label=f"postacert of UID {uid}"
        )
        self._nested_attachments: LazyValue[list[Attachment]] = LazyValue(
            lambda: discover_nested_attachments(self._fetcher, self.uid, self.bodystructure),
            label=f"nested postacerts of UID {uid}",
        )
        self._attachments: LazyValue[list[Attachment]] = LazyValue(
            self._load_attachments, label=f"attachments of UID {uid}"
        )
        self._direct: LazyValue[EmailMessage] = LazyValue(
            lambda: fetch_message(self._fetcher, self.uid, ""),
            label=f"direct body of UID {uid}",
        )

    @classmethod
    def from_fetch(
        cls, fetcher: PartFetcher, uid: int, fetch_data: Mapping[bytes, Any]
    ) -> Message:
        """Build a message from an ``imapclient`` ENVELOPE/BODYSTRUCTURE response."""
        return cls(
            fetcher,
            uid,
            fetch_data.get(b"ENVELOPE"),
            fetch_data.get(b"BODYSTRUCTURE"),
        )

    # Resolved view ------------------------------------------------------------
    @property
    def subject(self) -> str | None:
        """Subject of the postacert message, else of the envelope."""
        view = self._postacert_view()
        return view.subject if view is not None else self.original_subject

    @property
    def from_(self) -> str | None:
        """Sender of the postacert message, else the resolved envelope sender."""
        view = self._postacert_view()
        return view.from_ if view is not None else self.original_from

    @property
    def to(self) -> list[str]:
        """Recipients of the postacert message, else of the envelope."""
        view = self._postacert_view()
        return view.to if view is not None else self.original_to

    @property
    def date(self) -> datetime | None:
        """Date of the postacert message, else of the envelope."""
        view = self._postacert_view()
        return view.date if view is not None else self.original_date

    # Envelope view ------------------------------------------------------------
    @property
    def original_subject(self) -> str | None:
        """Envelope subject without the ``POSTA CERTIFICATA:`` marker."""
        return clean_subject(self.envelope.subject)

    @property
    def original_from(self) -> str | None:
        """Envelope sender after ``Per conto di:`` resolution."""
        if not self.envelope.from_:
            return None
        return resolve_sender(self.envelope.from_[0])

    @property
    def original_to(self) -> list[str]:
        return [address.addr_spec for address in self.envelope.to]

    @property
    def original_date(self) -> datetime | None:
        return parse_header_date(self.envelope.date)

    # Postacert ----------------------------------------------------------------
    @property
    def has_postacert(self) -> bool:
        """``True`` when the body structure contains a postacert.eml part."""
        return bool(self.find_postacert_parts())

    def find_postacert_parts(self, include_nested: bool = False) -> list[str]:
        return find_postacert_parts(self.bodystructure, "", include_nested)

    def postacert_message(self) -> EmailMessage | None:
        """Return the parsed postacert.eml, fetching it on first access."""
        view = self._postacert.get()
        return view.raw if view is not None else None

    def postacert_body(self) -> BodyContent | None:
        return text.resolve_body(self.postacert_message())

    def postacert_body_text(self) -> str | None:
        return text.body_text(self.postacert_message())

    def postacert_body_html(self) -> str | None:
        return text.body_html(self.postacert_message())

    # Body with direct-message fallback ----------------------------------------
    def direct_message(self) -> EmailMessage | None:
        """Return the whole message parsed, fetching it on first access."""
        return self._direct.get()

    def raw_body(self) -> BodyContent | None:
        if self.has_postacert:
            return self.postacert_body()
        return text.resolve_body(self.direct_message())

    def raw_body_text(self) -> str | None:
        if self.has_postacert:
            return self.postacert_body_text()
        return text.body_text(self.direct_message())

    def raw_body_html(self) -> str | None:
        if self.has_postacert:
            return self.postacert_body_html()
        return text.body_html(self.direct_message())

    # Attachments --------------------------------------------------------------
    def nested_attachments(self) -> list[Attachment]:
        """Postacert parts other than the primary one, fetched as attachments."""
        value = self._nested_attachments.get()
        return value if value is not None else []

    def postacert_attachments(self) -> list[Attachment]:
        value = self._attachments.get()
        return value if value is not None else []

    def postacert_regular_attachments(self) -> list[Attachment]:
        return [item for item in self.postacert_attachments() if not item.is_postacert]

    def attachments(self) -> list[Attachment]:
        if not self.has_postacert:
            return []
        return self.postacert_attachments()

    def regular_attachments(self) -> list[Attachment]:
        if not self.has_postacert:
            return []
        return self.postacert_regular_attachments()

    def nested_postacerts(self) -> list[Attachment]:
        return [item for item in self.attachments() if item.is_postacert]

    def has_nested_postacerts(self) -> bool:
        return bool(self.nested_postacerts())

    def nested_postacert_messages(self) -> list[NestedMessageView]:
        return parse_postacert_attachments(self.nested_postacerts())

    def all_postacert_messages(self) -> list[PostacertEntry]:
        """Flatten this message and its forwarded postacerts, two levels deep."""
        return flatten_postacert_chain(
            self, self.has_postacert, self.nested_postacert_messages()
        )

    def summary(self) -> MessageSummary:
        return MessageSummary(
            uid=self.uid,
            subject=self.subject,
            from_=self.from_,
            to=self.to,
            date=self.date,
            has_postacert=self.has_postacert,
            original_subject=self.original_subject,
            original_from=self.original_from,
            original_to=self.original_to,
            original_date=self.original_date,
            attachments_count=len(self.attachments()),
            regular_attachments_count=len(self.regular_attachments()),
            nested_postacerts_count=len(self.nested_postacerts()),
            has_nested_postacerts=self.has_nested_postacerts(),
            total_postacert_messages=len(self.all_postacert_messages()),
        )

    def __repr__(self) -> str:
        return f"Message(uid={self.uid!r}, has_postacert={self.has_postacert!r})"

    # Internal helpers ---------------------------------------------------------
    def _postacert_view(self) -> NestedMessageView | None:
        if not self.has_postacert:
            return None
        return self._postacert.get()

    def _load_postacert(self) -> NestedMessageView | None:
        extracted = extract_postacert_part(self._fetcher, self.uid, self.bodystructure)
        if extracted is None:
            return None
        source, raw = extracted
        return NestedMessageView(raw, source=source)

    def _load_attachments(self) -> list[Attachment]:
        view = self._postacert.get()
        direct = view.attachments() if view is not None else []
        return merge_nested_attachments(direct, self.nested_attachments())


__all__ = ["Message"]
