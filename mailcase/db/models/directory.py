"""ORM models for the firm's case/client directory."""

from datetime import datetime
from typing import Optional

from sqlalchemy import JSON, DateTime, ForeignKey, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from mailcase.db.base import Base, TimestampMixin

CASE_STATUS_ACTIVE = "active"
CASE_STATUS_CLOSED = "closed"


class Client(Base, TimestampMixin):
    __tablename__ = "clients"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    client_id: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    firm_id: Mapped[str] = mapped_column(String(256), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(256), nullable=False, default="")

    contacts: Mapped[list["ClientContact"]] = relationship(
        "ClientContact", back_populates="client", cascade="all, delete-orphan"
    )
    cases: Mapped[list["Case"]] = relationship("Case", back_populates="client")


class ClientContact(Base, TimestampMixin):
    __tablename__ = "client_contacts"
    __table_args__ = (UniqueConstraint("client_pk", "address", name="uq_client_contact"),)

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    client_pk: Mapped[int] = mapped_column(ForeignKey("clients.id"), nullable=False)
    address: Mapped[str] = mapped_column(String(320), nullable=False, index=True)  # stored lower-case
    name: Mapped[Optional[str]] = mapped_column(String(256), nullable=True)

    client: Mapped["Client"] = relationship("Client", back_populates="contacts")


class Case(Base, TimestampMixin):
    __tablename__ = "cases"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    case_id: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    case_number: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    title: Mapped[str] = mapped_column(String(512), nullable=False, default="")
    firm_id: Mapped[str] = mapped_column(String(256), nullable=False, index=True)
    client_pk: Mapped[Optional[int]] = mapped_column(ForeignKey("clients.id"), nullable=True)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default=CASE_STATUS_ACTIVE, index=True)
    keywords: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    reference_numbers: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    last_activity_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    client: Mapped[Optional["Client"]] = relationship("Client", back_populates="cases")
    participants: Mapped[list["CaseParticipant"]] = relationship(
        "CaseParticipant", back_populates="case", cascade="all, delete-orphan"
    )


class CaseParticipant(Base, TimestampMixin):
    """Team member or case actor (opposing counsel, expert, ...) known by address."""

    __tablename__ = "case_participants"
    __table_args__ = (UniqueConstraint("case_pk", "address", name="uq_case_participant"),)

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    case_pk: Mapped[int] = mapped_column(ForeignKey("cases.id"), nullable=False)
    address: Mapped[str] = mapped_column(String(320), nullable=False, index=True)  # stored lower-case
    role: Mapped[str] = mapped_column(String(32), nullable=False, default="team")

    case: Mapped["Case"] = relationship("Case", back_populates="participants")
