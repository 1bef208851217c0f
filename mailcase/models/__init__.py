"""Pydantic models for mailcase."""

from mailcase.models.message import (
    ACTOR_INGESTION,
    ACTOR_RECLASSIFIER,
    UNRESOLVED_STATES,
    ClassificationState,
    EmailAddress,
    Message,
)
from mailcase.models.directory import CaseEntry, ClientEntry, FirmDirectory
from mailcase.models.classification import (
    ApplyOutcome,
    CaseScore,
    ClassificationResult,
    ReclassifySummary,
    Signal,
)
from mailcase.models.thread import (
    MessageHeaders,
    Thread,
    ThreadFilters,
    ThreadParticipant,
    ThreadStats,
)
from mailcase.models.sync import DeltaBatch, SyncResult, SyncStateView

__all__ = [
    "ACTOR_INGESTION",
    "ACTOR_RECLASSIFIER",
    "UNRESOLVED_STATES",
    "ClassificationState",
    "EmailAddress",
    "Message",
    "CaseEntry",
    "ClientEntry",
    "FirmDirectory",
    "ApplyOutcome",
    "CaseScore",
    "ClassificationResult",
    "ReclassifySummary",
    "Signal",
    "MessageHeaders",
    "Thread",
    "ThreadFilters",
    "ThreadParticipant",
    "ThreadStats",
    "DeltaBatch",
    "SyncResult",
    "SyncStateView",
]
