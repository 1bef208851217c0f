"""Normalized message model shared by the ingestor, thread assembler and scorer."""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class ClassificationState(str, Enum):
    """Where a message sits in the classification lifecycle."""

    PENDING = "Pending"
    CLASSIFIED = "Classified"
    CLIENT_INBOX = "ClientInbox"
    UNCERTAIN = "Uncertain"


UNRESOLVED_STATES = (
    ClassificationState.PENDING,
    ClassificationState.CLIENT_INBOX,
    ClassificationState.UNCERTAIN,
)

# Actor tags for automated writes; anything else in classified_by is a human user id.
ACTOR_INGESTION = "ingestion"
ACTOR_RECLASSIFIER = "auto_reclassification"
AUTOMATED_ACTORS = frozenset({ACTOR_INGESTION, ACTOR_RECLASSIFIER})


class EmailAddress(BaseModel):
    """Mailbox address with optional display name."""

    address: str
    name: Optional[str] = None

    @property
    def normalized(self) -> str:
        return self.address.strip().lower()


class Message(BaseModel):
    """One mail item as stored, including its classification fields."""

    id: str  # provider message id
    conversation_id: Optional[str] = None
    internet_message_id: Optional[str] = None
    subject: str = ""
    body_preview: str = ""
    body_content: str = ""
    body_content_type: str = "text"
    sender: Optional[EmailAddress] = None
    to_recipients: list[EmailAddress] = Field(default_factory=list)
    cc_recipients: list[EmailAddress] = Field(default_factory=list)
    bcc_recipients: list[EmailAddress] = Field(default_factory=list)
    received_at: datetime
    sent_at: Optional[datetime] = None
    has_attachments: bool = False
    importance: str = "normal"
    is_read: bool = False
    in_reply_to: Optional[str] = None
    references: list[str] = Field(default_factory=list)

    user_id: str
    firm_id: str
    case_id: Optional[str] = None
    client_id: Optional[str] = None
    classification_state: ClassificationState = ClassificationState.PENDING
    classification_confidence: Optional[float] = None
    match_type: Optional[str] = None
    classified_at: Optional[datetime] = None
    classified_by: Optional[str] = None

    @property
    def thread_key(self) -> str:
        """Conversation id, or the message id for messages the provider did not thread."""
        return self.conversation_id or self.id

    @property
    def sender_address(self) -> str:
        return self.sender.normalized if self.sender else ""

    def participant_addresses(self) -> set[str]:
        """Lower-cased sender, to and cc addresses (bcc excluded)."""
        out = {a.normalized for a in self.to_recipients + self.cc_recipients if a.address}
        if self.sender_address:
            out.add(self.sender_address)
        return out

    def searchable_text(self) -> str:
        return f"{self.subject}\n{self.body_preview}\n{self.body_content}"

    @property
    def is_human_classified(self) -> bool:
        return (
            self.classification_state == ClassificationState.CLASSIFIED
            and self.classified_by is not None
            and self.classified_by not in AUTOMATED_ACTORS
        )
