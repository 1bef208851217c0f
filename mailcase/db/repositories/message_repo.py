"""Message repository: skip-duplicate inserts, thread queries, classification writes."""

from datetime import datetime
from typing import Iterable, Optional

from sqlalchemy import or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from mailcase.db import get_session
from mailcase.db.base import as_utc, utcnow
from mailcase.db.models.message import CaseLink, EmailMessage
from mailcase.errors import ClassificationLockedError, MessageNotFoundError
from mailcase.models.classification import ApplyOutcome, ClassificationResult
from mailcase.models.message import (
    AUTOMATED_ACTORS,
    UNRESOLVED_STATES,
    ClassificationState,
    EmailAddress,
    Message,
)
from mailcase.models.thread import ThreadFilters

_UNRESOLVED = [s.value for s in UNRESOLVED_STATES]


def _address_dict(addr: EmailAddress | None) -> dict | None:
    return addr.model_dump() if addr is not None else None


def _participant_index(message: Message) -> str:
    return " " + " ".join(sorted(message.participant_addresses())) + " "


def _to_row(message: Message) -> EmailMessage:
    return EmailMessage(
        message_id=message.id,
        conversation_id=message.conversation_id,
        internet_message_id=message.internet_message_id,
        user_id=message.user_id,
        firm_id=message.firm_id,
        subject=message.subject,
        body_preview=message.body_preview,
        body_content=message.body_content,
        body_content_type=message.body_content_type,
        sender=_address_dict(message.sender),
        to_recipients=[a.model_dump() for a in message.to_recipients],
        cc_recipients=[a.model_dump() for a in message.cc_recipients],
        bcc_recipients=[a.model_dump() for a in message.bcc_recipients],
        participant_index=_participant_index(message),
        received_at=message.received_at,
        sent_at=message.sent_at,
        has_attachments=message.has_attachments,
        importance=message.importance,
        is_read=message.is_read,
        in_reply_to=message.in_reply_to,
        references=list(message.references),
        case_id=message.case_id,
        client_id=message.client_id,
        classification_state=message.classification_state.value,
        classification_confidence=message.classification_confidence,
        match_type=message.match_type,
        classified_at=message.classified_at,
        classified_by=message.classified_by,
    )


def to_message(row: EmailMessage) -> Message:
    return Message(
        id=row.message_id,
        conversation_id=row.conversation_id,
        internet_message_id=row.internet_message_id,
        subject=row.subject,
        body_preview=row.body_preview,
        body_content=row.body_content,
        body_content_type=row.body_content_type,
        sender=EmailAddress(**row.sender) if row.sender else None,
        to_recipients=[EmailAddress(**a) for a in row.to_recipients or []],
        cc_recipients=[EmailAddress(**a) for a in row.cc_recipients or []],
        bcc_recipients=[EmailAddress(**a) for a in row.bcc_recipients or []],
        received_at=as_utc(row.received_at),
        sent_at=as_utc(row.sent_at),
        has_attachments=row.has_attachments,
        importance=row.importance,
        is_read=row.is_read,
        in_reply_to=row.in_reply_to,
        references=list(row.references or []),
        user_id=row.user_id,
        firm_id=row.firm_id,
        case_id=row.case_id,
        client_id=row.client_id,
        classification_state=ClassificationState(row.classification_state),
        classification_confidence=row.classification_confidence,
        match_type=row.match_type,
        classified_at=as_utc(row.classified_at),
        classified_by=row.classified_by,
    )


def _insert_new(messages: list[Message]) -> list[Message]:
    with get_session() as session:
        existing = set(
            session.scalars(
                select(EmailMessage.message_id).where(EmailMessage.message_id.in_([m.id for m in messages]))
            )
        )
        fresh = [m for m in messages if m.id not in existing]
        session.add_all([_to_row(m) for m in fresh])
    return fresh


def insert_skip_duplicates(messages: Iterable[Message]) -> list[Message]:
    """Insert messages whose provider id is not stored yet; return the ones inserted.

    Re-delivered messages (same provider id) are silently skipped, so replaying a page
    after a crash is a no-op.
    """
    batch: dict[str, Message] = {}
    for message in messages:
        batch.setdefault(message.id, message)
    if not batch:
        return []
    try:
        return _insert_new(list(batch.values()))
    except IntegrityError:
        # Raced with another writer: one transaction per message
        inserted: list[Message] = []
        for message in batch.values():
            try:
                inserted.extend(_insert_new([message]))
            except IntegrityError:
                continue
        return inserted


def get_message(message_id: str) -> Optional[Message]:
    with get_session() as session:
        row = _get_row(session, message_id)
        return to_message(row) if row is not None else None


def _get_row(session: Session, message_id: str) -> Optional[EmailMessage]:
    return session.scalars(select(EmailMessage).where(EmailMessage.message_id == message_id)).first()


def list_by_conversation(conversation_id: str, user_id: str) -> list[Message]:
    """Messages of one user's conversation, oldest first."""
    with get_session() as session:
        rows = session.scalars(
            select(EmailMessage)
            .where(_conversation_clause(conversation_id))
            .where(EmailMessage.user_id == user_id)
            .order_by(EmailMessage.received_at, EmailMessage.message_id)
        ).all()
        return [to_message(r) for r in rows]


def _conversation_clause(conversation_id: str):
    # Messages stored without a conversation id form a thread keyed by their own id
    return or_(
        EmailMessage.conversation_id == conversation_id,
        (EmailMessage.conversation_id.is_(None)) & (EmailMessage.message_id == conversation_id),
    )


def thread_keys_by_internet_id(user_id: str, internet_message_ids: Iterable[str]) -> dict[str, str]:
    """Thread key of the user's stored messages, by Internet Message-ID (angle brackets stripped)."""
    wanted = {i.strip("<>") for i in internet_message_ids if i}
    if not wanted:
        return {}
    candidates = wanted | {f"<{i}>" for i in wanted}
    with get_session() as session:
        rows = session.execute(
            select(EmailMessage.internet_message_id, EmailMessage.conversation_id, EmailMessage.message_id)
            .where(EmailMessage.user_id == user_id)
            .where(EmailMessage.internet_message_id.in_(candidates))
            .order_by(EmailMessage.received_at, EmailMessage.message_id)
        ).all()
    keys: dict[str, str] = {}
    for internet_id, conversation_id, message_id in rows:
        keys.setdefault(internet_id.strip("<>"), conversation_id or message_id)
    return keys


def list_for_user(user_id: str) -> list[Message]:
    with get_session() as session:
        rows = session.scalars(select(EmailMessage).where(EmailMessage.user_id == user_id)).all()
        return [to_message(r) for r in rows]


def find_thread_keys(filters: ThreadFilters) -> list[str]:
    """Thread keys (conversation id or lone message id) with at least one message matching the filters.

    `has_unread` / `has_attachments` are thread-level flags and are applied by the caller
    after grouping.
    """
    q = select(EmailMessage.conversation_id, EmailMessage.message_id).where(
        EmailMessage.user_id == filters.user_id
    )
    if filters.case_id:
        linked = select(CaseLink.message_id).where(CaseLink.case_id == filters.case_id)
        q = q.where(or_(EmailMessage.case_id == filters.case_id, EmailMessage.message_id.in_(linked)))
    if filters.search:
        pattern = f"%{filters.search}%"
        q = q.where(or_(EmailMessage.subject.ilike(pattern), EmailMessage.body_preview.ilike(pattern)))
    if filters.date_from:
        q = q.where(EmailMessage.received_at >= filters.date_from)
    if filters.date_to:
        q = q.where(EmailMessage.received_at <= filters.date_to)
    if filters.participant_emails:
        q = q.where(
            or_(
                *[
                    EmailMessage.participant_index.like(f"% {addr.strip().lower()} %")
                    for addr in filters.participant_emails
                ]
            )
        )
    with get_session() as session:
        keys = {conversation_id or message_id for conversation_id, message_id in session.execute(q)}
    return sorted(keys)


def list_by_thread_keys(user_id: str, keys: list[str]) -> list[Message]:
    if not keys:
        return []
    with get_session() as session:
        rows = session.scalars(
            select(EmailMessage)
            .where(EmailMessage.user_id == user_id)
            .where(
                or_(
                    EmailMessage.conversation_id.in_(keys),
                    (EmailMessage.conversation_id.is_(None)) & (EmailMessage.message_id.in_(keys)),
                )
            )
        ).all()
        return [to_message(r) for r in rows]


def list_unresolved(
    firm_id: str,
    address: str | None = None,
    conversation_ids: Iterable[str] | None = None,
) -> list[Message]:
    """Pending / ClientInbox / Uncertain messages of the firm that have no case yet."""
    q = (
        select(EmailMessage)
        .where(EmailMessage.firm_id == firm_id)
        .where(EmailMessage.classification_state.in_(_UNRESOLVED))
        .where(EmailMessage.case_id.is_(None))
    )
    if address:
        q = q.where(EmailMessage.participant_index.like(f"% {address.strip().lower()} %"))
    if conversation_ids is not None:
        ids = list(conversation_ids)
        if not ids:
            return []
        q = q.where(EmailMessage.conversation_id.in_(ids))
    q = q.order_by(EmailMessage.received_at, EmailMessage.message_id)
    with get_session() as session:
        return [to_message(r) for r in session.scalars(q).all()]


def find_thread_case(
    conversation_id: str | None,
    firm_id: str,
    exclude_message_id: str | None = None,
) -> Optional[str]:
    """Case of the most recent Classified message in the conversation, scoped to the firm."""
    if not conversation_id:
        return None
    q = (
        select(EmailMessage.case_id)
        .where(EmailMessage.conversation_id == conversation_id)
        .where(EmailMessage.firm_id == firm_id)
        .where(EmailMessage.case_id.is_not(None))
        .where(EmailMessage.classification_state == ClassificationState.CLASSIFIED.value)
    )
    if exclude_message_id:
        q = q.where(EmailMessage.message_id != exclude_message_id)
    with get_session() as session:
        return session.scalars(
            q.order_by(EmailMessage.received_at.desc(), EmailMessage.message_id.desc())
        ).first()


def thread_case_map(firm_id: str) -> dict[str, str]:
    """conversation id -> case of its most recent Classified message, for one firm."""
    with get_session() as session:
        rows = session.execute(
            select(EmailMessage.conversation_id, EmailMessage.case_id)
            .where(EmailMessage.firm_id == firm_id)
            .where(EmailMessage.conversation_id.is_not(None))
            .where(EmailMessage.case_id.is_not(None))
            .where(EmailMessage.classification_state == ClassificationState.CLASSIFIED.value)
            .order_by(EmailMessage.received_at, EmailMessage.message_id)
        ).all()
    out: dict[str, str] = {}
    for conversation_id, case_id in rows:
        out[conversation_id] = case_id  # later rows win
    return out


def _is_human(row: EmailMessage) -> bool:
    return (
        row.classification_state == ClassificationState.CLASSIFIED.value
        and row.classified_by is not None
        and row.classified_by not in AUTOMATED_ACTORS
    )


def apply_classification(
    message_id: str,
    result: ClassificationResult,
    classified_by: str,
    *,
    force: bool = False,
    require_unresolved: bool = False,
    classified_at: datetime | None = None,
) -> ApplyOutcome:
    """Write a scorer result onto a message.

    - Human classifications raise ClassificationLockedError unless `force`.
    - With `require_unresolved`, a message that got a case in the meantime is left alone.
    - A result identical to the stored state is not rewritten.
    """
    with get_session() as session:
        row = _get_row(session, message_id)
        if row is None:
            raise MessageNotFoundError(message_id)
        previous = ClassificationState(row.classification_state)
        if _is_human(row) and not force:
            raise ClassificationLockedError(message_id, row.classified_by)
        if require_unresolved and (previous not in UNRESOLVED_STATES or row.case_id is not None):
            return ApplyOutcome(
                message_id=message_id,
                previous_state=previous,
                new_state=previous,
                case_id=row.case_id,
                client_id=row.client_id,
                changed=False,
            )
        unchanged = (
            previous == result.state
            and row.case_id == result.case_id
            and row.client_id == result.client_id
            and row.classification_confidence is not None
            and abs(row.classification_confidence - result.confidence) < 1e-9
        )
        if not unchanged:
            row.classification_state = result.state.value
            row.case_id = result.case_id
            row.client_id = result.client_id
            row.classification_confidence = result.confidence
            row.match_type = result.match_type
            row.classified_at = classified_at or utcnow()
            row.classified_by = classified_by
        return ApplyOutcome(
            message_id=message_id,
            previous_state=previous,
            new_state=result.state,
            case_id=result.case_id,
            client_id=result.client_id,
            changed=not unchanged,
        )


def _upsert_primary_link(
    session: Session,
    message_id: str,
    case_id: str,
    linked_by: str,
    match_type: str,
    confidence: float,
) -> None:
    for link in session.scalars(select(CaseLink).where(CaseLink.message_id == message_id)).all():
        if link.case_id != case_id and link.is_primary:
            link.is_primary = False
    link = session.scalars(
        select(CaseLink).where(CaseLink.message_id == message_id).where(CaseLink.case_id == case_id)
    ).first()
    if link is None:
        session.add(
            CaseLink(
                message_id=message_id,
                case_id=case_id,
                confidence=confidence,
                match_type=match_type,
                linked_by=linked_by,
                is_primary=True,
            )
        )
    else:
        link.is_primary = True


def assign_conversation(
    conversation_id: str,
    user_id: str,
    case_id: str,
    client_id: str | None,
    actor: str,
) -> list[str]:
    """Move every message of one user's conversation to a case in a single transaction."""
    now = utcnow()
    with get_session() as session:
        rows = session.scalars(
            select(EmailMessage)
            .where(_conversation_clause(conversation_id))
            .where(EmailMessage.user_id == user_id)
            .with_for_update()
        ).all()
        for row in rows:
            already = (
                row.case_id == case_id
                and row.classification_state == ClassificationState.CLASSIFIED.value
                and row.classified_by == actor
            )
            if not already:
                row.case_id = case_id
                row.client_id = client_id
                row.classification_state = ClassificationState.CLASSIFIED.value
                row.classification_confidence = 1.0
                row.match_type = "MANUAL"
                row.classified_at = now
                row.classified_by = actor
            _upsert_primary_link(session, row.message_id, case_id, actor, "MANUAL", 1.0)
        return [r.message_id for r in rows]


def assign_message(message_id: str, case_id: str, client_id: str | None, actor: str) -> Message:
    with get_session() as session:
        row = _get_row(session, message_id)
        if row is None:
            raise MessageNotFoundError(message_id)
        row.case_id = case_id
        row.client_id = client_id
        row.classification_state = ClassificationState.CLASSIFIED.value
        row.classification_confidence = 1.0
        row.match_type = "MANUAL"
        row.classified_at = utcnow()
        row.classified_by = actor
        _upsert_primary_link(session, message_id, case_id, actor, "MANUAL", 1.0)
        session.flush()
        return to_message(row)


def list_case_links(message_id: str) -> list[CaseLink]:
    with get_session() as session:
        rows = list(session.scalars(select(CaseLink).where(CaseLink.message_id == message_id)).all())
        for row in rows:
            session.expunge(row)
        return rows


def mark_conversation_read(conversation_id: str, user_id: str) -> int:
    with get_session() as session:
        result = session.execute(
            update(EmailMessage)
            .where(_conversation_clause(conversation_id))
            .where(EmailMessage.user_id == user_id)
            .values(is_read=True)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount or 0


def reset_classification(
    firm_id: str,
    user_id: str | None = None,
    message_ids: Iterable[str] | None = None,
) -> int:
    """Send messages back to Pending and clear case, client, confidence and attribution."""
    q = update(EmailMessage).where(EmailMessage.firm_id == firm_id)
    if user_id is not None:
        q = q.where(EmailMessage.user_id == user_id)
    if message_ids is not None:
        ids = list(message_ids)
        if not ids:
            return 0
        q = q.where(EmailMessage.message_id.in_(ids))
    q = q.values(
        classification_state=ClassificationState.PENDING.value,
        case_id=None,
        client_id=None,
        classification_confidence=None,
        match_type=None,
        classified_at=None,
        classified_by=None,
    ).execution_options(synchronize_session=False)
    with get_session() as session:
        return session.execute(q).rowcount or 0


def thread_stat_rows(user_id: str) -> list[tuple[str, Optional[str], bool]]:
    """(thread key, case id, is_read) for every message of the user, oldest first."""
    with get_session() as session:
        rows = session.execute(
            select(
                EmailMessage.conversation_id,
                EmailMessage.message_id,
                EmailMessage.case_id,
                EmailMessage.is_read,
            )
            .where(EmailMessage.user_id == user_id)
            .order_by(EmailMessage.received_at, EmailMessage.message_id)
        ).all()
    return [(cid or mid, case_id, is_read) for cid, mid, case_id, is_read in rows]
