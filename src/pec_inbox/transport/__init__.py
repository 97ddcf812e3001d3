"""Transport adapters for PEC mailbox providers."""

from .imap_client import PecImapClient

__all__ = ["PecImapClient"]
