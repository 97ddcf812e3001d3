"""Shared builders for PEC messages, body structures, and fetch stubs."""

from __future__ import annotations

from collections.abc import Sequence
from email.message import EmailMessage

from pec_inbox.core.errors import PartUnavailableError
from pec_inbox.core.models import Address, Envelope
from pec_inbox.postacert.bodystructure import BodyStructureNode, Composite, Leaf

DEFAULT_DATE = "Tue, 14 Oct 2025 10:30:00 +0200"


class RecordingFetcher:
    """Part fetcher serving canned bytes and recording every call."""

    def __init__(self, parts: dict[str, bytes | Exception]) -> None:
        self.parts = parts
        self.calls: list[tuple[int, str]] = []

    def fetch_part_bytes(self, uid: int, part_path: str) -> bytes:
        self.calls.append((uid, part_path))
        value = self.parts.get(part_path)
        if value is None:
            raise PartUnavailableError(f"No BODY[{part_path}] for UID {uid}")
        if isinstance(value, Exception):
            raise value
        return value


def build_message(
    subject: str,
    *,
    sender: str = "mario.rossi@example.it",
    recipients: Sequence[str] = ("ufficio@example.it",),
    text: str | None = "Testo del messaggio",
    html: str | None = None,
    attachments: Sequence[tuple[str, str, bytes]] = (),
    postacerts: Sequence[EmailMessage] = (),
    message_id: str | None = None,
) -> EmailMessage:
    message = EmailMessage()
    message["Subject"] = subject
    if message_id is not None:
        message["Message-ID"] = message_id
    message["From"] = sender
    message["To"] = ", ".join(recipients)
    message["Date"] = DEFAULT_DATE
    if text is not None:
        message.set_content(text)
        if html is not None:
            message.add_alternative(html, subtype="html")
    elif html is not None:
        message.set_content(html, subtype="html")
    for filename, mime_type, data in attachments:
        maintype, subtype = mime_type.split("/")
        message.add_attachment(data, maintype=maintype, subtype=subtype, filename=filename)
    for inner in postacerts:
        message.add_attachment(inner, filename="postacert.eml")
    return message


def leaf(
    media_type: str,
    subtype: str,
    *,
    name: str | None = None,
    embedded: BodyStructureNode | None = None,
) -> Leaf:
    return Leaf(
        media_type=media_type,
        subtype=subtype,
        parameters={"NAME": name} if name else {},
        embedded=embedded,
    )


def postacert_leaf(embedded: BodyStructureNode | None = None) -> Leaf:
    return leaf("MESSAGE", "RFC822", name="postacert.eml", embedded=embedded)


def pec_bodystructure(embedded: BodyStructureNode | None = None) -> Composite:
    """Layout of a delivered PEC: signed(mixed(alternative, daticert, postacert), p7s).

    The postacert.eml part sits at path ``1.3``.
    """
    return Composite(
        children=(
            Composite(
                children=(
                    Composite(
                        children=(leaf("TEXT", "PLAIN"), leaf("TEXT", "HTML")),
                        subtype="ALTERNATIVE",
                    ),
                    leaf("APPLICATION", "XML", name="daticert.xml"),
                    postacert_leaf(embedded),
                ),
                subtype="MIXED",
            ),
            leaf("APPLICATION", "PKCS7-SIGNATURE", name="smime.p7s"),
        ),
        subtype="SIGNED",
    )


def pec_envelope(subject: str = "POSTA CERTIFICATA: Container") -> Envelope:
    return Envelope(
        subject=subject,
        from_=(
            Address(
                mailbox="posta-certificata",
                host="pec.aruba.it",
                name="Per conto di: mario.rossi@pec.example.it",
            ),
        ),
        to=(Address(mailbox="ufficio", host="pec.example.it"),),
        date="Mon, 13 Oct 2025 09:00:00 +0200",
    )


LONG_SUBJECT = (
    "Richiesta di accesso agli atti relativa al procedimento amministrativo "
    "n. 2025/000123 del servizio tributi"
)

RAW_FORWARDED = (
    b"From: mario.rossi@example.it\r\n"
    b"To: ufficio@example.it\r\n"
    b"Subject: " + LONG_SUBJECT.encode("ascii") + b"\r\n"
    b"Date: Tue, 14 Oct 2025 10:30:00 +0200\r\n"
    b"Content-Type: text/plain; charset=utf-8\r\n"
    b"\r\n"
    b"Testo inoltrato\r\n"
)

RAW_PRIMARY = (
    b"From: ufficio@example.it\r\n"
    b"To: protocollo@example.it\r\n"
    b"Subject: Original\r\n"
    b"MIME-Version: 1.0\r\n"
    b'Content-Type: multipart/mixed; boundary="pec-outer"\r\n'
    b"\r\n"
    b"This is a multi-part message in MIME format.\r\n"
    b"--pec-outer\r\n"
    b"Content-Type: text/plain; charset=utf-8\r\n"
    b"\r\n"
    b"Vedi allegato\r\n"
    b"--pec-outer\r\n"
    b'Content-Type: message/rfc822; name="postacert.eml"\r\n'
    b'Content-Disposition: attachment; filename="postacert.eml"\r\n'
    b"\r\n" + RAW_FORWARDED + b"\r\n"
    b"--pec-outer--\r\n"
)
