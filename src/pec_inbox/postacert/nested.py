"""Views over parsed postacert messages and PEC-within-PEC discovery."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from datetime import datetime
from email.message import EmailMessage
from email.utils import getaddresses
from typing import TYPE_CHECKING

from ..core.datetime_utils import parse_header_date
from ..core.errors import ExtractionError
from ..core.interfaces import PartFetcher
from ..core.lazy import LazyValue
from ..core.models import BodyContent, PostacertEntry, PostacertKind
from . import text
from .attachment import Attachment, attachments_from_message
from .bodystructure import POSTACERT_FILENAME, BodyStructureNode, find_postacert_parts
from .extractor import fetch_part, primary_postacert_path

if TYPE_CHECKING:
    from .message import Message

LOGGER = logging.getLogger(__name__)

POSTACERT_MIME_TYPE = "message/rfc822"
MAX_CHAIN_LEVEL = 2


class NestedMessageView:
    """Accessor surface over one parsed postacert message.

    Used both for a postacert recovered from an attachment and, internally,
    for the primary postacert of a :class:`~pec_inbox.postacert.message.Message`.
    """

    def __init__(self, raw: EmailMessage, source: bytes | None = None) -> None:
        """Wrap an already parsed message.

        ``source`` holds the bytes ``raw`` was parsed from so that embedded
        messages can be handed out unmodified.
        """
        self.raw = raw
        self.source = source
        self._attachments: LazyValue[list[Attachment]] = LazyValue(
            lambda: attachments_from_message(self.raw, self.source), label="attachments"
        )

    @property
    def subject(self) -> str | None:
        """Decoded ``Subject`` header."""
        value = self.raw.get("Subject")
        return str(value) if value is not None else None

    @property
    def from_(self) -> str | None:
        """Address of the first ``From`` mailbox."""
        addresses = _extract_addresses(self.raw.get_all("From", []))
        return addresses[0] if addresses else None

    @property
    def to(self) -> list[str]:
        """Addresses of every ``To`` mailbox."""
        return _extract_addresses(self.raw.get_all("To", []))

    @property
    def date(self) -> datetime | None:
        """Parsed ``Date`` header, ``None`` when missing or malformed."""
        value = self.raw.get("Date")
        return parse_header_date(str(value)) if value is not None else None

    @property
    def message_id(self) -> str | None:
        """Stripped ``Message-ID`` header, ``None`` when absent."""
        value = self.raw.get("Message-ID")
        text_value = str(value).strip() if value is not None else ""
        return text_value or None

    def body(self) -> BodyContent | None:
        """Plain-text body, else HTML body, with its content type and charset."""
        return text.resolve_body(self.raw)

    def body_text(self) -> str | None:
        return text.body_text(self.raw)

    def body_html(self) -> str | None:
        return text.body_html(self.raw)

    def attachments(self) -> list[Attachment]:
        value = self._attachments.get()
        return value if value is not None else []

    def regular_attachments(self) -> list[Attachment]:
        return [item for item in self.attachments() if not item.is_postacert]

    def nested_postacerts(self) -> list[Attachment]:
        return [item for item in self.attachments() if item.is_postacert]

    def has_nested_postacerts(self) -> bool:
        return bool(self.nested_postacerts())

    def nested_postacert_messages(self) -> list[NestedMessageView]:
        return parse_postacert_attachments(self.nested_postacerts())

    def __repr__(self) -> str:
        return f"NestedMessageView(subject={self.subject!r})"


def _extract_addresses(headers: Iterable[object]) -> list[str]:
    return [
        email_address
        for _, email_address in getaddresses([str(header) for header in headers])
        if email_address
    ]


def discover_nested_attachments(
    fetcher: PartFetcher, uid: int, bodystructure: BodyStructureNode | None
) -> list[Attachment]:
    """Fetch every postacert part except the primary one as an attachment.

    Candidates are fetched one at a time in document order. A candidate that
    cannot be fetched or parsed is logged and skipped.
    """
    all_paths = find_postacert_parts(bodystructure, include_nested=True)
    primary = primary_postacert_path(bodystructure)
    candidates = [path for path in all_paths if path != primary]

    attachments: list[Attachment] = []
    for path in candidates:
        try:
            raw, message = fetch_part(fetcher, uid, path)
        except ExtractionError as exc:
            LOGGER.warning(
                "Failed to extract nested postacert.eml at %s of UID %s: %s",
                path,
                uid,
                exc,
            )
            continue
        attachments.append(
            Attachment(POSTACERT_FILENAME, POSTACERT_MIME_TYPE, raw, message=message)
        )
    LOGGER.debug(
        "UID %s: %d of %d nested postacert candidates extracted",
        uid,
        len(attachments),
        len(candidates),
    )
    return attachments


def parse_postacert_attachments(
    attachments: Sequence[Attachment],
) -> list[NestedMessageView]:
    """Parse postacert attachments, skipping ones that fail."""
    views: list[NestedMessageView] = []
    for attachment in attachments:
        try:
            view = attachment.as_postacert_message()
        except ExtractionError as exc:
            LOGGER.warning("Skipping unparseable %s: %s", attachment.filename, exc)
            continue
        if view is not None:
            views.append(view)
    return views


def _postacert_key(attachment: Attachment) -> str | bytes:
    """Identity of a postacert: its Message-ID, else its line-normalised bytes."""
    try:
        view = attachment.as_postacert_message()
    except ExtractionError:
        view = None
    if view is not None and view.message_id is not None:
        return view.message_id
    return attachment.content.replace(b"\r\n", b"\n").strip()


def _collect_keys(attachments: Iterable[Attachment], seen: set[str | bytes]) -> None:
    """Add the keys of ``attachments`` and of every postacert they wrap."""
    for attachment in attachments:
        if not attachment.is_postacert:
            continue
        key = _postacert_key(attachment)
        if key in seen:
            continue
        seen.add(key)
        try:
            view = attachment.as_postacert_message()
        except ExtractionError:
            continue
        if view is not None:
            _collect_keys(view.nested_postacerts(), seen)


def merge_nested_attachments(
    direct: Sequence[Attachment], nested: Sequence[Attachment]
) -> list[Attachment]:
    """Append ``nested`` to ``direct``, dropping postacerts already reachable.

    A postacert forwarded inside the primary one is both a MIME attachment
    of the primary and a nested part found in the body structure; it is
    kept once, from ``direct``.
    """
    seen: set[str | bytes] = set()
    _collect_keys(direct, seen)
    merged = list(direct)
    for attachment in nested:
        key = _postacert_key(attachment)
        if key in seen:
            LOGGER.debug("Dropping nested postacert already attached to its parent")
            continue
        merged.append(attachment)
        _collect_keys([attachment], seen)
    return merged


def flatten_postacert_chain(
    root: Message,
    has_postacert: bool,
    nested_views: Sequence[NestedMessageView],
) -> list[PostacertEntry]:
    """Return the forwarding chain as rows for levels 0, 1 and 2.

    Deeper postacerts remain reachable through the level 2 views but are not
    flattened.
    """
    entries: list[PostacertEntry] = []
    if has_postacert:
        entries.append(PostacertEntry(level=0, message=root, kind=PostacertKind.MAIN))

    for index, view in enumerate(nested_views):
        entries.append(
            PostacertEntry(level=1, message=view, kind=PostacertKind.NESTED, index=index)
        )
        for deep_index, attachment in enumerate(view.nested_postacerts()):
            try:
                deep_view = attachment.as_postacert_message()
            except ExtractionError as exc:
                LOGGER.warning("Skipping unparseable deep postacert: %s", exc)
                continue
            if deep_view is None:
                continue
            entries.append(
                PostacertEntry(
                    level=MAX_CHAIN_LEVEL,
                    message=deep_view,
                    kind=PostacertKind.DEEP_NESTED,
                    index=deep_index,
                    parent_index=index,
                )
            )
    return entries


__all__ = [
    "NestedMessageView",
    "discover_nested_attachments",
    "flatten_postacert_chain",
    "merge_nested_attachments",
    "parse_postacert_attachments",
]
