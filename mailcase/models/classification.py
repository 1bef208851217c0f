"""Scorer output models."""

from typing import Literal, Optional

from pydantic import BaseModel, Field

from mailcase.models.message import ClassificationState

SignalType = Literal[
    "THREAD",
    "PARTICIPANT",
    "REFERENCE",
    "KEYWORD_SUBJECT",
    "KEYWORD_BODY",
    "SINGLE_CASE_CONTACT",
    "RECENT_ACTIVITY",
]

MatchType = Literal[
    "THREAD",
    "REFERENCE",
    "CONTACT",
    "KEYWORD",
    "CLIENT",
    "NO_MATCH",
    "UNKNOWN_CONTACT",
    "ERROR",
]


class Signal(BaseModel):
    """One signal that fired for a candidate case. `score` is the raw [0,1] value before weighting."""

    type: SignalType
    score: float
    matched: str


class CaseScore(BaseModel):
    case_id: str
    case_number: str
    client_id: Optional[str] = None
    score: float
    signals: list[Signal] = Field(default_factory=list)


class ClassificationResult(BaseModel):
    """Decision for one message. Not persisted directly; see ClassificationService.apply."""

    state: ClassificationState
    confidence: float = Field(ge=0.0, le=1.0)
    case_id: Optional[str] = None
    client_id: Optional[str] = None
    reason: str = ""
    match_type: MatchType = "NO_MATCH"
    suggested_cases: list[CaseScore] = Field(default_factory=list)

    model_config = {"frozen": True}


class ApplyOutcome(BaseModel):
    """What happened when a result was (or was not) written to a message."""

    message_id: str
    previous_state: ClassificationState
    new_state: ClassificationState
    case_id: Optional[str] = None
    client_id: Optional[str] = None
    changed: bool = False
    error: Optional[str] = None


class ReclassifySummary(BaseModel):
    firm_id: str
    candidates: int = 0
    classified: int = 0
    client_inbox: int = 0
    uncertain: int = 0
    pending: int = 0
    unchanged: int = 0
    errors: int = 0
    passes: int = 0
