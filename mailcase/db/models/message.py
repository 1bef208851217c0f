"""ORM models for stored messages and their per-message case links."""

from datetime import datetime
from typing import Optional

from sqlalchemy import JSON, Boolean, DateTime, Float, ForeignKey, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from mailcase.db.base import Base, TimestampMixin


class EmailMessage(Base, TimestampMixin):
    """One row per provider message. `message_id` is the provider's immutable id."""

    __tablename__ = "email_messages"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    message_id: Mapped[str] = mapped_column(String(512), unique=True, nullable=False, index=True)
    conversation_id: Mapped[Optional[str]] = mapped_column(String(512), nullable=True, index=True)
    internet_message_id: Mapped[Optional[str]] = mapped_column(String(998), nullable=True, index=True)
    user_id: Mapped[str] = mapped_column(String(256), nullable=False, index=True)
    firm_id: Mapped[str] = mapped_column(String(256), nullable=False, index=True)

    subject: Mapped[str] = mapped_column(String(1024), nullable=False, default="")
    body_preview: Mapped[str] = mapped_column(Text, nullable=False, default="")
    body_content: Mapped[str] = mapped_column(Text, nullable=False, default="")
    body_content_type: Mapped[str] = mapped_column(String(16), nullable=False, default="text")
    sender: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    to_recipients: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    cc_recipients: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    bcc_recipients: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    # Lower-cased from/to/cc addresses joined as " a b c " for participant filters
    participant_index: Mapped[str] = mapped_column(Text, nullable=False, default="")
    received_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)
    sent_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    has_attachments: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    importance: Mapped[str] = mapped_column(String(16), nullable=False, default="normal")
    is_read: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    in_reply_to: Mapped[Optional[str]] = mapped_column(String(998), nullable=True)
    references: Mapped[list] = mapped_column("references_header", JSON, nullable=False, default=list)

    case_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True, index=True)
    client_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True, index=True)
    classification_state: Mapped[str] = mapped_column(String(32), nullable=False, default="Pending", index=True)
    classification_confidence: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    match_type: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    classified_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    classified_by: Mapped[Optional[str]] = mapped_column(String(256), nullable=True)


class CaseLink(Base, TimestampMixin):
    """Audit link between one message and one case, written by manual and thread-wide assignment."""

    __tablename__ = "email_case_links"
    __table_args__ = (UniqueConstraint("message_id", "case_id", name="uq_email_case_link"),)

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    message_id: Mapped[str] = mapped_column(
        String(512), ForeignKey("email_messages.message_id"), nullable=False, index=True
    )
    case_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    confidence: Mapped[float] = mapped_column(Float, nullable=False, default=1.0)
    match_type: Mapped[str] = mapped_column(String(32), nullable=False, default="MANUAL")
    linked_by: Mapped[str] = mapped_column(String(256), nullable=False)
    is_primary: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
