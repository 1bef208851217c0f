"""Audit/notification sink for classification decisions and thread-wide actions.

Emission is fire-and-forget: a failing sink is logged and never affects the write that
produced the event.
"""

from datetime import datetime, timezone
from typing import Any, Literal, Optional, Protocol

from pydantic import BaseModel, Field

from mailcase.utils.logger import get_logger

logger = get_logger("mailcase.audit")

AuditEventType = Literal[
    "classification_decided",
    "classification_reset",
    "thread_assigned",
    "thread_marked_read",
]


class AuditEvent(BaseModel):
    event_type: AuditEventType
    firm_id: Optional[str] = None
    user_id: Optional[str] = None
    actor: Optional[str] = None
    message_ids: list[str] = Field(default_factory=list)
    conversation_id: Optional[str] = None
    case_id: Optional[str] = None
    client_id: Optional[str] = None
    state: Optional[str] = None
    confidence: Optional[float] = None
    details: dict[str, Any] = Field(default_factory=dict)
    occurred_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class AuditSink(Protocol):
    """Receives one record per classification decision and per thread bulk action."""

    def emit(self, event: AuditEvent) -> None:
        ...


class LogAuditSink:
    """Writes audit events to the structured log (JSONL file handler included)."""

    def emit(self, event: AuditEvent) -> None:
        logger.info(
            "audit.event",
            **event.model_dump(mode="json", exclude_none=True, exclude_defaults=False),
        )


class ListAuditSink:
    """Keeps events in memory; used by the CLI run reports."""

    def __init__(self) -> None:
        self.events: list[AuditEvent] = []

    def emit(self, event: AuditEvent) -> None:
        self.events.append(event)


def emit_safely(sink: AuditSink | None, event: AuditEvent) -> None:
    if sink is None:
        return
    try:
        sink.emit(event)
    except Exception as e:
        logger.warning(
            "audit.emit_error",
            event_type=event.event_type,
            error=str(e),
            error_type=type(e).__name__,
        )
