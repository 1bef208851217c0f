"""Directory repository: firm-scoped case/client lookups and directory maintenance."""

from datetime import datetime
from typing import Iterable, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session, selectinload

from mailcase.db import get_session
from mailcase.db.base import as_utc, utcnow
from mailcase.db.models.directory import (
    CASE_STATUS_ACTIVE,
    Case,
    CaseParticipant,
    Client,
    ClientContact,
)
from mailcase.errors import CaseNotFoundError, FirmMismatchError
from mailcase.models.directory import CaseEntry, ClientEntry, FirmDirectory


def _normalize(address: str) -> str:
    return address.strip().lower()


def _case_entry(row: Case) -> CaseEntry:
    addresses = [p.address for p in row.participants]
    client = row.client if row.client is not None and row.client.firm_id == row.firm_id else None
    if client is not None:
        addresses.extend(c.address for c in client.contacts)
    return CaseEntry(
        case_id=row.case_id,
        case_number=row.case_number,
        title=row.title,
        client_id=client.client_id if client is not None else None,
        firm_id=row.firm_id,
        status=row.status,
        participant_addresses=sorted(set(addresses)),
        keywords=list(row.keywords or []),
        reference_numbers=list(row.reference_numbers or []),
        last_activity_at=as_utc(row.last_activity_at),
    )


def _client_entry(row: Client) -> ClientEntry:
    return ClientEntry(
        client_id=row.client_id,
        firm_id=row.firm_id,
        name=row.name,
        contact_addresses=sorted({c.address for c in row.contacts}),
    )


def _case_query():
    return select(Case).options(
        selectinload(Case.participants),
        selectinload(Case.client).selectinload(Client.contacts),
    )


def list_active_cases(firm_id: str) -> list[CaseEntry]:
    with get_session() as session:
        rows = session.scalars(
            _case_query()
            .where(Case.firm_id == firm_id)
            .where(Case.status == CASE_STATUS_ACTIVE)
            .order_by(Case.case_id)
        ).all()
        return [_case_entry(r) for r in rows]


def list_clients(firm_id: str) -> list[ClientEntry]:
    with get_session() as session:
        rows = session.scalars(
            select(Client)
            .options(selectinload(Client.contacts))
            .where(Client.firm_id == firm_id)
            .order_by(Client.client_id)
        ).all()
        return [_client_entry(r) for r in rows]


def list_case_clients(firm_id: str) -> dict[str, Optional[str]]:
    """Every case of the firm, closed cases included, mapped to its client.

    A client registered under another firm maps to None.
    """
    with get_session() as session:
        rows = session.execute(
            select(Case.case_id, Client.client_id, Client.firm_id)
            .outerjoin(Client, Case.client_pk == Client.id)
            .where(Case.firm_id == firm_id)
        ).all()
    return {case_id: client_id if client_firm == firm_id else None for case_id, client_id, client_firm in rows}


def load_directory(firm_id: str) -> FirmDirectory:
    """Snapshot of one firm's directory. Never shared across firms."""
    case_clients = list_case_clients(firm_id)
    return FirmDirectory(
        firm_id=firm_id,
        cases=list_active_cases(firm_id),
        clients=list_clients(firm_id),
        known_case_ids=frozenset(case_clients),
        case_clients=case_clients,
        as_of=utcnow(),
    )


def get_case(case_id: str) -> Optional[CaseEntry]:
    with get_session() as session:
        row = session.scalars(_case_query().where(Case.case_id == case_id)).first()
        return _case_entry(row) if row is not None else None


def get_client(client_id: str) -> Optional[ClientEntry]:
    with get_session() as session:
        row = session.scalars(
            select(Client).options(selectinload(Client.contacts)).where(Client.client_id == client_id)
        ).first()
        return _client_entry(row) if row is not None else None


def _get_case_row(session: Session, case_id: str) -> Case:
    row = session.scalars(select(Case).where(Case.case_id == case_id)).first()
    if row is None:
        raise CaseNotFoundError(case_id)
    return row


def upsert_client(
    client_id: str,
    firm_id: str,
    name: str = "",
    contact_addresses: Iterable[str] = (),
) -> ClientEntry:
    with get_session() as session:
        row = session.scalars(
            select(Client).options(selectinload(Client.contacts)).where(Client.client_id == client_id)
        ).first()
        if row is None:
            row = Client(client_id=client_id, firm_id=firm_id, name=name)
            session.add(row)
        else:
            row.name = name or row.name
        known = {c.address for c in row.contacts}
        for address in contact_addresses:
            normalized = _normalize(address)
            if normalized and normalized not in known:
                row.contacts.append(ClientContact(address=normalized))
                known.add(normalized)
        session.flush()
        return _client_entry(row)


def upsert_case(
    case_id: str,
    case_number: str,
    firm_id: str,
    client_id: str | None = None,
    title: str = "",
    status: str = CASE_STATUS_ACTIVE,
    participants: Iterable[str | tuple[str, str]] = (),
    keywords: Iterable[str] = (),
    reference_numbers: Iterable[str] = (),
    last_activity_at: datetime | None = None,
) -> CaseEntry:
    """Create or update a case. `participants` holds addresses or (address, role) pairs.

    Raises FirmMismatchError when the client, or an existing case with this id, belongs
    to another firm.
    """
    with get_session() as session:
        client_row = None
        if client_id is not None:
            client_row = session.scalars(select(Client).where(Client.client_id == client_id)).first()
            if client_row is None:
                client_row = Client(client_id=client_id, firm_id=firm_id)
                session.add(client_row)
            elif client_row.firm_id != firm_id:
                raise FirmMismatchError(firm_id, client_row.firm_id, f"client {client_id}")
        row = session.scalars(
            select(Case).options(selectinload(Case.participants)).where(Case.case_id == case_id)
        ).first()
        if row is not None and row.firm_id != firm_id:
            raise FirmMismatchError(firm_id, row.firm_id, f"case {case_id}")
        if row is None:
            row = Case(case_id=case_id, case_number=case_number, firm_id=firm_id)
            session.add(row)
        row.case_number = case_number
        row.title = title or row.title or ""
        row.status = status
        if client_row is not None:
            row.client = client_row
        row.keywords = list(keywords) or list(row.keywords or [])
        row.reference_numbers = list(reference_numbers) or list(row.reference_numbers or [])
        if last_activity_at is not None:
            row.last_activity_at = last_activity_at
        known = {p.address for p in row.participants}
        for item in participants:
            address, role = (item, "team") if isinstance(item, str) else item
            normalized = _normalize(address)
            if normalized and normalized not in known:
                row.participants.append(CaseParticipant(address=normalized, role=role))
                known.add(normalized)
        session.flush()
        session.refresh(row)
        return _case_entry(row)


def add_case_participant(case_id: str, address: str, role: str = "actor") -> CaseEntry:
    with get_session() as session:
        row = _get_case_row(session, case_id)
        normalized = _normalize(address)
        if normalized not in {p.address for p in row.participants}:
            row.participants.append(CaseParticipant(address=normalized, role=role))
        session.flush()
        return _case_entry(row)


def add_case_reference(case_id: str, reference: str) -> CaseEntry:
    with get_session() as session:
        row = _get_case_row(session, case_id)
        refs = list(row.reference_numbers or [])
        if reference not in refs:
            row.reference_numbers = refs + [reference]
        session.flush()
        return _case_entry(row)


def set_case_status(case_id: str, status: str) -> CaseEntry:
    with get_session() as session:
        row = _get_case_row(session, case_id)
        row.status = status
        session.flush()
        return _case_entry(row)


def touch_case_activity(case_id: str, at: datetime) -> None:
    with get_session() as session:
        row = _get_case_row(session, case_id)
        current = as_utc(row.last_activity_at)
        if current is None or at > current:
            row.last_activity_at = at
