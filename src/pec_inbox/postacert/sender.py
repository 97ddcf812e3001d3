"""Normalisation of PEC envelope senders and subjects."""

from __future__ import annotations

import logging
import re
from email.errors import HeaderParseError
from email.header import decode_header, make_header

from ..core.models import Address

LOGGER = logging.getLogger(__name__)

ON_BEHALF_MARKER = "Per conto di:"
PROVIDER_NOISE = "posta-certificata@"
SUBJECT_PREFIX = "POSTA CERTIFICATA:"

_EMAIL_PATTERN = re.compile(r"([a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,})")


def resolve_sender(address: Address) -> str:
    """Return the address a PEC message was really sent by.

    Providers put the true sender in the display name as
    ``"Per conto di: someone@example.it"``; plain display names are returned
    as-is unless they are the provider's own ``posta-certificata@`` mailbox.
    """
    candidate = address.addr_spec
    name = address.name if isinstance(address.name, str) else None
    if not name:
        return candidate

    if ON_BEHALF_MARKER in name:
        match = _EMAIL_PATTERN.search(name)
        if match:
            return match.group(1)
    elif PROVIDER_NOISE not in name:
        return name

    return candidate


def decode_mime_header(value: str | None) -> str | None:
    """Decode RFC 2047 encoded words, returning the input when undecodable."""
    if value is None:
        return None
    try:
        return str(make_header(decode_header(value)))
    except (HeaderParseError, LookupError, UnicodeDecodeError) as exc:
        LOGGER.debug("Leaving undecodable header as-is: %s", exc)
        return value


def clean_subject(raw: str | None) -> str | None:
    """Decode a container subject and strip the ``POSTA CERTIFICATA:`` marker."""
    decoded = decode_mime_header(raw)
    if decoded is None:
        return None
    if decoded.startswith(SUBJECT_PREFIX):
        decoded = decoded[len(SUBJECT_PREFIX):]
    return decoded.strip()


__all__ = ["clean_subject", "decode_mime_header", "resolve_sender"]
