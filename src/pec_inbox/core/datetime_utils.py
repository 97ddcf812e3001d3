"""Datetime helpers shared across the package."""

from __future__ import annotations

from datetime import datetime
from email.utils import parsedate_to_datetime

__all__ = ["parse_header_date"]


def parse_header_date(value: str | datetime | None) -> datetime | None:
    """Parse an RFC 2822 ``Date`` value, returning ``None`` when unparseable."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value
    text = str(value).strip()
    if not text:
        return None
    try:
        return parsedate_to_datetime(text)
    except (TypeError, ValueError, IndexError):
        return None
