"""IMAP BODYSTRUCTURE model and the postacert.eml part search."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Union

POSTACERT_FILENAME = "postacert.eml"


@dataclass(frozen=True, slots=True)
class Composite:
    """A multipart node with ordered children."""

    children: tuple[BodyStructureNode, ...]
    subtype: str | None = None


@dataclass(frozen=True, slots=True)
class Leaf:
    """A single body part.

    ``embedded`` holds the structure of the wrapped message when the part is
    MESSAGE/RFC822 and the server reported it.
    """

    media_type: str | None
    subtype: str | None
    parameters: Mapping[str, str] = field(default_factory=dict)
    embedded: BodyStructureNode | None = None

    @property
    def is_message(self) -> bool:
        """``True`` for a MESSAGE/RFC822 part."""
        return self.media_type == "MESSAGE" and self.subtype == "RFC822"


BodyStructureNode = Union[Composite, Leaf]


def _text(value: Any) -> str | None:
    if value is None:
        return None
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    if isinstance(value, str):
        return value
    return None


def _parameters(raw: Any) -> dict[str, str]:
    """Normalise a flat ``(key, value, key, value)`` list into a dict."""
    if isinstance(raw, Mapping):
        items = list(raw.items())
    elif isinstance(raw, (tuple, list)):
        items = list(zip(raw[0::2], raw[1::2]))
    else:
        return {}
    parameters: dict[str, str] = {}
    for key, value in items:
        key_text = _text(key)
        value_text = _text(value)
        if key_text is None or value_text is None:
            continue
        parameters[key_text.upper()] = value_text
    return parameters


def parse_bodystructure(raw: Any) -> BodyStructureNode | None:
    """Convert an ``imapclient`` BODYSTRUCTURE response into a node tree.

    Accepts both :class:`imapclient.response_types.BodyData` (multipart
    children collected in a list at index 0) and the raw nested tuples found
    inside MESSAGE/RFC822 parts (children as leading tuples). Anything that
    is not recognisable yields ``None``.
    """
    if raw is None or isinstance(raw, (Composite, Leaf)):
        return raw
    if not isinstance(raw, (tuple, list)) or not raw:
        return None

    head = raw[0]
    if isinstance(head, list):
        children = [parse_bodystructure(child) for child in head]
        rest = raw[1:]
        return Composite(
            children=tuple(child for child in children if child is not None),
            subtype=_upper(rest[0]) if rest else None,
        )
    if isinstance(head, tuple):
        leading: list[Any] = []
        for item in raw:
            if not isinstance(item, (tuple, list)):
                break
            leading.append(item)
        return parse_bodystructure((leading, *raw[len(leading):]))

    media_type = _upper(head)
    subtype = _upper(raw[1]) if len(raw) > 1 else None
    embedded = None
    if (media_type, subtype) == ("MESSAGE", "RFC822") and len(raw) > 8:
        embedded = parse_bodystructure(raw[8])
    return Leaf(
        media_type=media_type,
        subtype=subtype,
        parameters=_parameters(raw[2]) if len(raw) > 2 else {},
        embedded=embedded,
    )


def _upper(value: Any) -> str | None:
    text = _text(value)
    return text.upper() if text is not None else None


def _child_path(prefix: str, index: int) -> str:
    return f"{prefix}.{index}" if prefix else str(index)


def is_postacert_leaf(node: Leaf) -> bool:
    """Return ``True`` for a MESSAGE/RFC822 part named like postacert.eml."""
    if not node.is_message:
        return False
    name = node.parameters.get("NAME")
    return bool(name) and POSTACERT_FILENAME in name.lower()


def find_postacert_parts(
    node: BodyStructureNode | None,
    path_prefix: str = "",
    include_nested: bool = False,
) -> list[str]:
    """Return part paths of postacert.eml parts in document order.

    With ``include_nested`` the search also descends into the structure of
    every wrapped MESSAGE/RFC822 message, which is how a PEC forwarded inside
    another PEC is found. The first entry of a non-nested search is the
    primary postacert part.
    """
    if node is None:
        return []

    if isinstance(node, Composite):
        results: list[str] = []
        for index, child in enumerate(node.children, start=1):
            results += find_postacert_parts(
                child, _child_path(path_prefix, index), include_nested
            )
        return results

    if not isinstance(node, Leaf) or not node.is_message:
        return []

    results = [path_prefix] if is_postacert_leaf(node) else []
    if include_nested and isinstance(node.embedded, Composite):
        for index, child in enumerate(node.embedded.children, start=1):
            results += find_postacert_parts(
                child, _child_path(path_prefix, index), include_nested
            )
    return results


__all__ = [
    "BodyStructureNode",
    "Composite",
    "Leaf",
    "POSTACERT_FILENAME",
    "find_postacert_parts",
    "is_postacert_leaf",
    "parse_bodystructure",
]
