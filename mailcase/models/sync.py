"""Delta sync models."""

from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, Field

from mailcase.models.message import Message

SyncStatus = Literal["pending", "syncing", "synced", "error"]


class DeltaBatch(BaseModel):
    """One normalized provider page: removed items already filtered out."""

    messages: list[Message] = Field(default_factory=list)
    next_cursor: Optional[str] = None
    has_more: bool = False
    removed_ids: list[str] = Field(default_factory=list)


class SyncResult(BaseModel):
    user_id: str
    new_messages: list[Message] = Field(default_factory=list)
    next_cursor: Optional[str] = None
    fetched: int = 0
    duplicates: int = 0
    removed: int = 0
    classified: int = 0
    classification_errors: int = 0
    pages: int = 0


class SyncStateView(BaseModel):
    user_id: str
    firm_id: Optional[str] = None
    status: SyncStatus = "pending"
    cursor: Optional[str] = None
    last_sync_at: Optional[datetime] = None
    error_message: Optional[str] = None
    messages_synced: int = 0
