"""Sync state repository: stored delta cursor and status per mailbox."""

from typing import Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from mailcase.db import get_session
from mailcase.db.base import as_utc, utcnow
from mailcase.db.models.sync_state import MailboxSyncState
from mailcase.models.sync import SyncStateView


def _get_or_create(session: Session, user_id: str) -> MailboxSyncState:
    row = session.scalars(select(MailboxSyncState).where(MailboxSyncState.user_id == user_id)).first()
    if row is None:
        row = MailboxSyncState(user_id=user_id, sync_status="pending", messages_synced=0)
        session.add(row)
    return row


def _view(row: MailboxSyncState) -> SyncStateView:
    return SyncStateView(
        user_id=row.user_id,
        firm_id=row.firm_id,
        status=row.sync_status,
        cursor=row.cursor,
        last_sync_at=as_utc(row.last_sync_at),
        error_message=row.error_message,
        messages_synced=row.messages_synced,
    )


def get_state(user_id: str) -> Optional[SyncStateView]:
    with get_session() as session:
        row = session.scalars(select(MailboxSyncState).where(MailboxSyncState.user_id == user_id)).first()
        return _view(row) if row is not None else None


def mark_syncing(user_id: str, firm_id: str) -> SyncStateView:
    with get_session() as session:
        row = _get_or_create(session, user_id)
        row.firm_id = firm_id
        row.sync_status = "syncing"
        session.flush()
        return _view(row)


def advance_cursor(user_id: str, cursor: Optional[str], stored: int) -> None:
    """Persist the cursor after a page has been stored; `stored` new messages are counted."""
    with get_session() as session:
        row = _get_or_create(session, user_id)
        row.cursor = cursor
        row.messages_synced = (row.messages_synced or 0) + stored


def mark_synced(user_id: str) -> SyncStateView:
    with get_session() as session:
        row = _get_or_create(session, user_id)
        row.sync_status = "synced"
        row.last_sync_at = utcnow()
        row.error_message = None
        session.flush()
        return _view(row)


def mark_error(user_id: str, error_message: str) -> None:
    """Record a failed run. The cursor is left as it was."""
    with get_session() as session:
        row = _get_or_create(session, user_id)
        row.sync_status = "error"
        row.error_message = error_message[:2000]


def clear_cursor(user_id: str) -> None:
    """Forget the cursor so the next sync starts from scratch (dedup keeps it safe)."""
    with get_session() as session:
        row = _get_or_create(session, user_id)
        row.cursor = None
