"""Postacert extraction and message-view resolution."""

from .attachment import Attachment, attachments_from_message
from .bodystructure import (
    BodyStructureNode,
    Composite,
    Leaf,
    find_postacert_parts,
    parse_bodystructure,
)
from .extractor import extract_postacert, extract_postacert_part, parse_raw_message
from .message import Message
from .nested import (
    NestedMessageView,
    discover_nested_attachments,
    merge_nested_attachments,
)
from .sender import clean_subject, resolve_sender
from .text import decode_body, resolve_body, select_text

__all__ = [
    "Attachment",
    "BodyStructureNode",
    "Composite",
    "Leaf",
    "Message",
    "NestedMessageView",
    "attachments_from_message",
    "clean_subject",
    "decode_body",
    "discover_nested_attachments",
    "extract_postacert",
    "extract_postacert_part",
    "find_postacert_parts",
    "merge_nested_attachments",
    "parse_bodystructure",
    "parse_raw_message",
    "resolve_body",
    "resolve_sender",
    "select_text",
]
