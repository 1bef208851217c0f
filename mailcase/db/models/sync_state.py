"""ORM model for per-mailbox delta sync progress."""

from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from mailcase.db.base import Base, TimestampMixin


class MailboxSyncState(Base, TimestampMixin):
    """One row per user mailbox. `cursor` is the provider's opaque delta link."""

    __tablename__ = "mailbox_sync_states"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(256), unique=True, nullable=False)
    firm_id: Mapped[Optional[str]] = mapped_column(String(256), nullable=True)
    cursor: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    sync_status: Mapped[str] = mapped_column(String(16), nullable=False, default="pending")
    last_sync_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    error_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    messages_synced: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
