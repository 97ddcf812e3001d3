"""Read Italian PEC mailboxes and unwrap their postacert.eml envelopes."""

from .postacert import Attachment, Message, NestedMessageView
from .transport import PecImapClient

__all__ = ["Attachment", "Message", "NestedMessageView", "PecImapClient"]
