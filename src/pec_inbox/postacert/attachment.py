"""Attachment wrapper with lazily decoded content and file helpers."""

from __future__ import annotations

import logging
import re
from collections.abc import Callable
from email.message import EmailMessage
from pathlib import Path
from typing import TYPE_CHECKING, Any

from ..core.errors import ExtractionError
from ..core.lazy import LazyValue
from .bodystructure import POSTACERT_FILENAME
from .extractor import parse_raw_message

if TYPE_CHECKING:
    from .nested import NestedMessageView

LOGGER = logging.getLogger(__name__)

DEFAULT_FILENAME = "unnamed_file"
DEFAULT_MIME_TYPE = "application/octet-stream"

_HEADER_END = re.compile(rb"\r?\n\r?\n")
# Transfer encodings under which an embedded message body is the message itself
_IDENTITY_ENCODINGS = frozenset({"7bit", "8bit", "binary"})


class Attachment:
    """One MIME attachment of a postacert message."""

    def __init__(
        self,
        filename: str | None,
        mime_type: str | None,
        content: bytes | Callable[[], bytes],
        *,
        message: EmailMessage | None = None,
    ) -> None:
        """Wrap attachment metadata; ``content`` may be a loader callable.

        ``message`` supplies an already parsed embedded message so that
        :meth:`as_postacert_message` does not parse the bytes again.
        """
        self._filename = filename
        self._mime_type = mime_type
        if callable(content):
            self._content: LazyValue[bytes] = LazyValue(
                content, label=f"attachment {filename!r} content"
            )
        else:
            payload = content
            self._content = LazyValue(lambda: payload)
        self._message = message
        self._source: bytes | None = None if callable(content) else content
        self._view: LazyValue[NestedMessageView] = LazyValue(
            self._parse_postacert, label=f"nested postacert {filename!r}"
        )

    @classmethod
    def from_part(cls, part: EmailMessage, source: bytes | None = None) -> Attachment:
        """Build an attachment from a parsed MIME part.

        ``source`` is the raw entity the part was parsed from, headers
        included. When given, an embedded message keeps its original bytes
        instead of being regenerated from the parsed tree.
        """
        mime_type = part.get_content_type()
        if mime_type == "message/rfc822":
            embedded = part.get_payload(0) if part.is_multipart() else None
            if isinstance(embedded, EmailMessage):
                encoding = str(part.get("Content-Transfer-Encoding", "7bit"))
                if source is not None and encoding.strip().lower() in _IDENTITY_ENCODINGS:
                    return cls(
                        part.get_filename(),
                        mime_type,
                        _entity_body(source),
                        message=embedded,
                    )
                return cls(
                    part.get_filename(),
                    mime_type,
                    embedded.as_bytes,
                    message=embedded,
                )
        return cls(part.get_filename(), mime_type, lambda: _decoded_payload(part))

    @property
    def filename(self) -> str:
        """Attachment filename, ``unnamed_file`` when the part has none."""
        return self._filename or DEFAULT_FILENAME

    @property
    def mime_type(self) -> str:
        """MIME type, ``application/octet-stream`` when unknown."""
        return self._mime_type or DEFAULT_MIME_TYPE

    @property
    def content(self) -> bytes:
        """Decoded attachment bytes."""
        return self._content.get() or b""

    @property
    def size(self) -> int:
        """Content length in bytes."""
        return len(self.content)

    @property
    def size_kb(self) -> float:
        """Content length in kilobytes, rounded to one decimal."""
        return round(self.size / 1024.0, 1)

    @property
    def size_mb(self) -> float:
        """Content length in megabytes, rounded to two decimals."""
        return round(self.size / 1024.0 / 1024.0, 2)

    @property
    def is_postacert(self) -> bool:
        """``True`` for postacert.eml files and ``.eml`` message attachments."""
        filename = self.filename.lower()
        if filename == POSTACERT_FILENAME:
            return True
        return filename.endswith(".eml") and "message" in self.mime_type.lower()

    def as_postacert_message(self) -> NestedMessageView | None:
        """Parse a postacert attachment into a :class:`NestedMessageView`.

        Returns ``None`` for regular attachments and raises
        :class:`ExtractionError` when the embedded message cannot be parsed.
        """
        if not self.is_postacert:
            return None
        return self._view.get()

    def save_to(self, path: Path | str) -> Path:
        """Write the decoded content verbatim to ``path``."""
        target = Path(path)
        target.write_bytes(self.content)
        LOGGER.debug("Saved attachment %s to %s", self.filename, target)
        return target

    def save_to_dir(self, directory: Path | str) -> Path:
        """Write the attachment into ``directory`` under its own filename."""
        return self.save_to(Path(directory) / Path(self.filename).name)

    def summary(self) -> dict[str, Any]:
        """Return filename, type and sizes as a plain dictionary."""
        return {
            "filename": self.filename,
            "mime_type": self.mime_type,
            "size": self.size,
            "size_kb": self.size_kb,
            "size_mb": self.size_mb,
        }

    def __str__(self) -> str:
        return f"{self.filename} ({self.mime_type}, {self.size_kb} KB)"

    def __repr__(self) -> str:
        return f"Attachment(filename={self.filename!r}, mime_type={self.mime_type!r})"

    def _parse_postacert(self) -> NestedMessageView:
        from .nested import NestedMessageView  # pylint: disable=import-outside-toplevel

        if self._message is not None:
            return NestedMessageView(self._message, source=self._source)
        try:
            message = parse_raw_message(self.content)
        except ExtractionError as exc:
            raise ExtractionError(
                f"Failed to parse nested postacert.eml {self.filename!r}: {exc}"
            ) from exc
        return NestedMessageView(message, source=self.content)


def _decoded_payload(part: EmailMessage) -> bytes:
    payload = part.get_payload(decode=True)
    return payload if isinstance(payload, bytes) else b""


def _is_attachment_part(part: EmailMessage) -> bool:
    return (
        part.get_filename() is not None
        or part.get_content_disposition() == "attachment"
        or part.get_content_type() == "message/rfc822"
    )


def _entity_body(source: bytes) -> bytes:
    """Return what follows the header block of a raw MIME entity."""
    for blank in (b"\r\n", b"\n"):
        if source.startswith(blank):
            return source[len(blank):]
    match = _HEADER_END.search(source)
    return source[match.end():] if match else b""


def _strip_line_break(section: bytes) -> bytes:
    # the line break before a delimiter belongs to the delimiter
    if section.endswith(b"\r\n"):
        return section[:-2]
    if section.endswith(b"\n"):
        return section[:-1]
    return section


def _multipart_sections(body: bytes, boundary: str) -> list[bytes]:
    """Split a multipart body into the raw entities between its delimiters."""
    delimiter = b"--" + boundary.encode("ascii", errors="surrogateescape")
    closing = delimiter + b"--"
    sections: list[bytes] = []
    start: int | None = None
    offset = 0
    for line in body.splitlines(keepends=True):
        marker = line.rstrip(b" \t\r\n")
        if marker in (delimiter, closing):
            if start is not None:
                sections.append(_strip_line_break(body[start:offset]))
            if marker == closing:
                return sections
            start = offset + len(line)
        offset += len(line)
    if start is not None:
        sections.append(body[start:])
    return sections


def _part_sources(
    raw: EmailMessage, source: bytes | None, count: int
) -> list[bytes | None]:
    boundary = raw.get_boundary()
    if source is None or boundary is None:
        return [None] * count
    sections = _multipart_sections(_entity_body(source), boundary)
    if len(sections) != count:
        LOGGER.debug(
            "Raw layout has %d parts, parsed tree %d; embedded messages will be regenerated",
            len(sections),
            count,
        )
        return [None] * count
    result: list[bytes | None] = list(sections)
    return result


def attachments_from_message(
    raw: EmailMessage | None, source: bytes | None = None
) -> list[Attachment]:
    """Collect attachment parts of ``raw`` in document order.

    Multipart containers are searched recursively; embedded messages are
    reported as single attachments and not descended into. ``source`` is the
    raw form ``raw`` was parsed from; with it, embedded messages keep their
    original bytes.
    """
    if raw is None or raw.get_content_maintype() != "multipart":
        return []
    parts = list(raw.iter_parts())
    attachments: list[Attachment] = []
    for part, part_source in zip(parts, _part_sources(raw, source, len(parts))):
        if part.get_content_maintype() == "multipart":
            attachments += attachments_from_message(part, part_source)
        elif _is_attachment_part(part):
            attachments.append(Attachment.from_part(part, part_source))
    return attachments


__all__ = ["Attachment", "attachments_from_message"]
