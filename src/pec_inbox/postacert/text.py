"""Selection and charset-safe decoding of textual MIME bodies."""

from __future__ import annotations

from email.message import EmailMessage

from ..core.errors import DecodeError
from ..core.models import BodyContent

DEFAULT_CHARSET = "UTF-8"
PLAIN = "text/plain"
HTML = "text/html"


def select_text(raw: EmailMessage, preferred_type: str) -> EmailMessage | None:
    """Return the first leaf part of ``preferred_type`` in document order.

    Multipart children are searched depth-first before their later siblings.
    Embedded message/rfc822 parts are leaves and are never descended into.
    """
    if raw.get_content_maintype() != "multipart":
        return raw if raw.get_content_type() == preferred_type else None

    for part in raw.iter_parts():
        if part.get_content_maintype() == "multipart":
            found = select_text(part, preferred_type)
            if found is not None:
                return found
        elif part.get_content_type() == preferred_type:
            return part
    return None


def resolve_charset(leaf: EmailMessage) -> str:
    """Return the declared charset, the content-type parameter, or UTF-8."""
    declared = leaf.get_charset()
    if declared:
        return str(declared)
    return leaf.get_content_charset() or DEFAULT_CHARSET


def decode_body(leaf: EmailMessage) -> BodyContent:
    """Decode a leaf's transfer-decoded bytes under its resolved charset.

    Raises :class:`DecodeError` for bytes invalid under the charset or for an
    unknown charset; nothing is replaced silently.
    """
    charset = resolve_charset(leaf)
    content_type = leaf.get_content_type()
    payload = leaf.get_payload(decode=True)
    if not isinstance(payload, bytes):
        payload = b""
    try:
        content = payload.decode(charset)
    except (LookupError, UnicodeDecodeError) as exc:
        raise DecodeError(
            f"Cannot decode {content_type} body as {charset}: {exc}"
        ) from exc
    return BodyContent(content=content, content_type=content_type, charset=charset)


def resolve_body(raw: EmailMessage | None) -> BodyContent | None:
    """Return the plain-text body, falling back to HTML."""
    if raw is None:
        return None
    selected = select_text(raw, PLAIN)
    if selected is None:
        selected = select_text(raw, HTML)
    if selected is None:
        return None
    return decode_body(selected)


def body_text(raw: EmailMessage | None) -> str | None:
    """Return only the text/plain body, if any."""
    return _body_of_type(raw, PLAIN)


def body_html(raw: EmailMessage | None) -> str | None:
    """Return only the text/html body, if any."""
    return _body_of_type(raw, HTML)


def _body_of_type(raw: EmailMessage | None, content_type: str) -> str | None:
    if raw is None:
        return None
    selected = select_text(raw, content_type)
    if selected is None:
        return None
    return decode_body(selected).content


__all__ = [
    "body_html",
    "body_text",
    "decode_body",
    "resolve_body",
    "resolve_charset",
    "select_text",
]
