"""Thread view models (derived from messages on every read, never stored)."""

from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, Field

from mailcase.models.message import Message

ParticipantRole = Literal["sender", "recipient", "cc"]


class ThreadParticipant(BaseModel):
    email: str
    name: Optional[str] = None
    message_count: int = 0  # messages authored as sender
    roles: list[ParticipantRole] = Field(default_factory=list)


class Thread(BaseModel):
    conversation_id: str
    subject: str
    messages: list[Message]
    participants: list[ThreadParticipant]
    case_id: Optional[str] = None
    has_unread: bool = False
    has_attachments: bool = False
    first_message_at: datetime
    last_message_at: datetime
    user_id: Optional[str] = None

    @property
    def message_count(self) -> int:
        return len(self.messages)

    @property
    def participant_count(self) -> int:
        return len(self.participants)


class ThreadFilters(BaseModel):
    user_id: str
    case_id: Optional[str] = None
    has_unread: Optional[bool] = None
    has_attachments: Optional[bool] = None
    search: Optional[str] = None
    date_from: Optional[datetime] = None
    date_to: Optional[datetime] = None
    participant_emails: list[str] = Field(default_factory=list)


class CaseThreadCount(BaseModel):
    case_id: Optional[str]
    count: int


class ThreadStats(BaseModel):
    total_threads: int
    unread_threads: int
    uncategorized_threads: int = 0
    threads_by_case: list[CaseThreadCount] = Field(default_factory=list)


class MessageHeaders(BaseModel):
    """Transport threading headers, angle brackets stripped."""

    in_reply_to: Optional[str] = None
    references: list[str] = Field(default_factory=list)
