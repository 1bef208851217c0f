"""Re-export all ORM models so Base.metadata has all tables."""

from mailcase.db.models.directory import Case, CaseParticipant, Client, ClientContact
from mailcase.db.models.message import CaseLink, EmailMessage
from mailcase.db.models.sync_state import MailboxSyncState

__all__ = [
    "Case",
    "CaseParticipant",
    "Client",
    "ClientContact",
    "CaseLink",
    "EmailMessage",
    "MailboxSyncState",
]
