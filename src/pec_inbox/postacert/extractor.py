"""Fetch and parse postacert.eml parts through a :class:`PartFetcher`."""

from __future__ import annotations

import logging
from email import policy
from email.message import EmailMessage
from email.parser import BytesParser
from typing import cast

from ..core.errors import ConnectionUnavailable, ExtractionError, PecError
from ..core.interfaces import PartFetcher
from .bodystructure import BodyStructureNode, find_postacert_parts

LOGGER = logging.getLogger(__name__)

_PARSER = BytesParser(policy=policy.default)


def parse_raw_message(raw: bytes | str | None) -> EmailMessage:
    """Parse raw RFC822 bytes into an :class:`EmailMessage`.

    Empty payloads and payloads that carry no header at all are rejected
    with :class:`ExtractionError`.
    """
    if isinstance(raw, str):
        raw = raw.encode("utf-8", errors="surrogateescape")
    if not raw:
        raise ExtractionError("Empty message payload")
    message = cast(EmailMessage, _PARSER.parsebytes(raw))
    if not message.keys():
        raise ExtractionError("Payload does not contain any message header")
    return message


def fetch_part(
    fetcher: PartFetcher, uid: int, part_path: str
) -> tuple[bytes, EmailMessage]:
    """Fetch ``part_path`` of ``uid`` and parse it as a message.

    Returns the raw bytes together with the parsed message.

    :class:`ConnectionUnavailable` propagates untouched; every other failure
    is raised as :class:`ExtractionError` chained to its cause.
    """
    label = part_path or "<whole message>"
    LOGGER.debug("Fetching part %s of UID %s", label, uid)
    try:
        raw = fetcher.fetch_part_bytes(uid, part_path)
        return raw, parse_raw_message(raw)
    except ConnectionUnavailable:
        raise
    except ExtractionError as exc:
        raise ExtractionError(
            f"Failed to parse part {label} of UID {uid}: {exc}"
        ) from exc
    except (PecError, OSError, ValueError) as exc:
        raise ExtractionError(
            f"Failed to fetch part {label} of UID {uid}: {exc}"
        ) from exc


def fetch_message(fetcher: PartFetcher, uid: int, part_path: str) -> EmailMessage:
    """Fetch ``part_path`` of ``uid`` and return only the parsed message."""
    return fetch_part(fetcher, uid, part_path)[1]


def primary_postacert_path(bodystructure: BodyStructureNode | None) -> str | None:
    """Return the first top-level postacert part path, if any."""
    paths = find_postacert_parts(bodystructure)
    return paths[0] if paths else None


def extract_postacert_part(
    fetcher: PartFetcher, uid: int, bodystructure: BodyStructureNode | None
) -> tuple[bytes, EmailMessage] | None:
    """Return the raw bytes and parsed form of the primary postacert.eml.

    ``None`` when the message has no postacert.eml part.
    """
    path = primary_postacert_path(bodystructure)
    if path is None:
        LOGGER.debug("UID %s has no postacert.eml part", uid)
        return None
    try:
        return fetch_part(fetcher, uid, path)
    except ExtractionError as exc:
        raise ExtractionError(f"Failed to extract postacert.eml: {exc}") from exc


def extract_postacert(
    fetcher: PartFetcher, uid: int, bodystructure: BodyStructureNode | None
) -> EmailMessage | None:
    """Return the parsed primary postacert.eml of a message or ``None``."""
    extracted = extract_postacert_part(fetcher, uid, bodystructure)
    return extracted[1] if extracted is not None else None


__all__ = [
    "extract_postacert",
    "extract_postacert_part",
    "fetch_message",
    "fetch_part",
    "parse_raw_message",
    "primary_postacert_path",
]
