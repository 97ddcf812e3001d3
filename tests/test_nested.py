"""Tests for nested postacert discovery and the forwarding chain."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone

import pytest

from pec_inbox.core.errors import ConnectionUnavailable
from pec_inbox.core.models import PostacertKind
from pec_inbox.postacert.attachment import Attachment
from pec_inbox.postacert.bodystructure import Composite
from pec_inbox.postacert.message import Message
from pec_inbox.postacert.nested import (
    NestedMessageView,
    discover_nested_attachments,
    merge_nested_attachments,
    parse_postacert_attachments,
)

from tests.helpers import (
    RecordingFetcher,
    build_message,
    leaf,
    pec_bodystructure,
    pec_envelope,
    postacert_leaf,
)

UID = 42


def _three_candidates() -> Composite:
    return pec_bodystructure(
        embedded=Composite(children=(postacert_leaf(), postacert_leaf(), postacert_leaf()))
    )


def test_view_accessors() -> None:
    raw = build_message(
        "Convocazione",
        sender="Mario Rossi <mario.rossi@example.it>",
        recipients=("Ufficio <ufficio@example.it>", "archivio@example.it"),
        text="Ordine del giorno",
        attachments=[("verbale.pdf", "application/pdf", b"%PDF")],
    )

    view = NestedMessageView(raw)

    assert view.subject == "Convocazione"
    assert view.from_ == "mario.rossi@example.it"
    assert view.to == ["ufficio@example.it", "archivio@example.it"]
    assert view.date == datetime(2025, 10, 14, 10, 30, tzinfo=timezone(timedelta(hours=2)))
    assert (view.body_text() or "").strip() == "Ordine del giorno"
    assert [item.filename for item in view.regular_attachments()] == ["verbale.pdf"]
    assert view.nested_postacerts() == []
    assert not view.has_nested_postacerts()


def test_view_without_headers_returns_empty_values() -> None:
    view = NestedMessageView(build_message("Vuoto"))
    del view.raw["From"]
    del view.raw["To"]
    del view.raw["Date"]

    assert view.from_ is None
    assert view.to == []
    assert view.date is None


def test_primary_path_is_excluded_from_candidates() -> None:
    forwarded = build_message("Inoltrata")
    fetcher = RecordingFetcher({"1.3.2": forwarded.as_bytes()})
    tree = pec_bodystructure(
        embedded=Composite(children=(leaf("TEXT", "PLAIN"), postacert_leaf()))
    )

    attachments = discover_nested_attachments(fetcher, UID, tree)

    assert fetcher.calls == [(UID, "1.3.2")]
    assert len(attachments) == 1
    assert attachments[0].filename == "postacert.eml"
    assert attachments[0].mime_type == "message/rfc822"
    assert attachments[0].content == forwarded.as_bytes()


def test_partial_failure_keeps_remaining_candidates(caplog: pytest.LogCaptureFixture) -> None:
    fetcher = RecordingFetcher(
        {
            "1.3.1": build_message("Prima").as_bytes(),
            "1.3.2": b"not a mime message",
            "1.3.3": build_message("Terza").as_bytes(),
        }
    )

    with caplog.at_level(logging.WARNING, logger="pec_inbox.postacert.nested"):
        attachments = discover_nested_attachments(fetcher, UID, _three_candidates())

    views = parse_postacert_attachments(attachments)
    assert [view.subject for view in views] == ["Prima", "Terza"]
    assert [path for _, path in fetcher.calls] == ["1.3.1", "1.3.2", "1.3.3"]
    assert "1.3.2" in caplog.text


def test_unavailable_candidate_is_skipped() -> None:
    fetcher = RecordingFetcher({"1.3.3": build_message("Terza").as_bytes()})

    attachments = discover_nested_attachments(fetcher, UID, _three_candidates())

    assert len(attachments) == 1
    assert [path for _, path in fetcher.calls] == ["1.3.1", "1.3.2", "1.3.3"]


def test_connection_loss_aborts_discovery() -> None:
    fetcher = RecordingFetcher(
        {
            "1.3.1": ConnectionUnavailable("socket closed"),
            "1.3.2": build_message("Seconda").as_bytes(),
        }
    )

    with pytest.raises(ConnectionUnavailable):
        discover_nested_attachments(fetcher, UID, _three_candidates())

    assert fetcher.calls == [(UID, "1.3.1")]


def test_no_structure_means_no_candidates() -> None:
    fetcher = RecordingFetcher({})

    assert discover_nested_attachments(fetcher, UID, None) == []
    assert discover_nested_attachments(fetcher, UID, pec_bodystructure()) == []
    assert fetcher.calls == []


def test_nested_attachments_are_memoized() -> None:
    fetcher = RecordingFetcher(
        {
            "1.3": build_message("Original").as_bytes(),
            "1.3.1": build_message("Prima").as_bytes(),
            "1.3.2": build_message("Seconda").as_bytes(),
            "1.3.3": build_message("Terza").as_bytes(),
        }
    )
    message = Message(fetcher, UID, pec_envelope(), _three_candidates())

    first = message.nested_attachments()
    second = message.nested_attachments()

    assert first is second
    assert len(first) == 3
    assert [path for _, path in fetcher.calls] == ["1.3.1", "1.3.2", "1.3.3"]


def test_unparseable_attachment_is_skipped_when_parsing() -> None:
    good = Attachment("postacert.eml", "message/rfc822", build_message("Valida").as_bytes())
    broken = Attachment("postacert.eml", "message/rfc822", b"")
    regular = Attachment("nota.txt", "text/plain", b"nota")

    views = parse_postacert_attachments([broken, regular, good])

    assert [view.subject for view in views] == ["Valida"]


def test_chain_stops_at_second_level() -> None:
    level_three = build_message("Livello 3")
    level_two = build_message("Livello 2", postacerts=[level_three])
    level_one = build_message("Livello 1", postacerts=[level_two])
    fetcher = RecordingFetcher(
        {
            "1.3": build_message("Original").as_bytes(),
            "1.3.2": level_one.as_bytes(),
        }
    )
    tree = pec_bodystructure(
        embedded=Composite(children=(leaf("TEXT", "PLAIN"), postacert_leaf()))
    )
    message = Message(fetcher, UID, pec_envelope(), tree)

    entries = message.all_postacert_messages()

    assert [(entry.level, entry.kind) for entry in entries] == [
        (0, PostacertKind.MAIN),
        (1, PostacertKind.NESTED),
        (2, PostacertKind.DEEP_NESTED),
    ]
    assert entries[0].message is message
    assert entries[1].message.subject == "Livello 1"
    assert entries[1].index == 0
    assert entries[1].parent_index is None
    deepest = entries[2].message
    assert deepest.subject == "Livello 2"
    assert entries[2].index == 0
    assert entries[2].parent_index == 0
    assert isinstance(deepest, NestedMessageView)
    assert deepest.has_nested_postacerts()
    assert [view.subject for view in deepest.nested_postacert_messages()] == ["Livello 3"]


def test_chain_without_postacert_is_empty() -> None:
    fetcher = RecordingFetcher({})
    tree = Composite(children=(leaf("TEXT", "PLAIN"),))
    message = Message(fetcher, UID, pec_envelope(), tree)

    assert message.all_postacert_messages() == []
    assert fetcher.calls == []


def test_merge_drops_postacerts_reachable_from_direct_attachments() -> None:
    level_two = build_message("Livello 2", message_id="<livello-2@pec.example.it>")
    level_one = build_message(
        "Livello 1", message_id="<livello-1@pec.example.it>", postacerts=[level_two]
    )
    other = build_message("Altra", message_id="<altra@pec.example.it>")
    direct = [
        Attachment("fattura.pdf", "application/pdf", b"%PDF"),
        Attachment("postacert.eml", "message/rfc822", level_one.as_bytes()),
    ]
    nested = [
        Attachment("postacert.eml", "message/rfc822", level_one.as_bytes()),
        Attachment("postacert.eml", "message/rfc822", level_two.as_bytes()),
        Attachment("postacert.eml", "message/rfc822", other.as_bytes()),
    ]

    merged = merge_nested_attachments(direct, nested)

    assert merged[:2] == direct
    assert merged[2] is nested[2]
    assert len(merged) == 3


def test_merge_keeps_everything_without_direct_postacerts() -> None:
    nested = [
        Attachment("postacert.eml", "message/rfc822", build_message("Prima").as_bytes()),
        Attachment("postacert.eml", "message/rfc822", build_message("Seconda").as_bytes()),
    ]

    assert merge_nested_attachments([], nested) == nested
