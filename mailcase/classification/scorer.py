"""Multi-signal case scorer.

Pure and deterministic: one message plus the firm's directory snapshot (and the thread's
current case, when known) in, one ClassificationResult out. No I/O, no writes. Recent
activity is measured against `now`, or the snapshot time when `now` is not given.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional

from pydantic import BaseModel, Field, model_validator

from mailcase.classification.references import (
    extract_references,
    matching_references,
    mentions_case_number,
)
from mailcase.config import (
    CLASSIFY_THRESHOLD,
    FLOOR_THRESHOLD,
    PARTICIPANT_SATURATION,
    RECENT_ACTIVITY_DAYS,
    SINGLE_CASE_CONFIDENCE,
    WEIGHT_IDENTIFIER,
    WEIGHT_KEYWORD,
    WEIGHT_PARTICIPANT,
)
from mailcase.errors import FirmMismatchError
from mailcase.models.classification import CaseScore, ClassificationResult, MatchType, Signal
from mailcase.models.directory import CaseEntry, ClientEntry, FirmDirectory
from mailcase.models.message import ClassificationState, Message
from mailcase.utils.logger import get_logger

logger = get_logger("mailcase.classification.scorer")

REASON_THREAD = "thread affinity"
REASON_CONFIDENT = "confident match"
REASON_CLIENT_INBOX = "client has several active cases"
REASON_NEEDS_REVIEW = "needs review"
REASON_NO_MATCH = "no confident match"

MAX_SUGGESTIONS = 3
_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


class ScoringConfig(BaseModel):
    """Thresholds and weights. Defaults come from the environment (see mailcase.config)."""

    classify_threshold: float = Field(default=CLASSIFY_THRESHOLD, ge=0.0, le=1.0)
    floor_threshold: float = Field(default=FLOOR_THRESHOLD, ge=0.0, le=1.0)
    single_case_confidence: float = Field(default=SINGLE_CASE_CONFIDENCE, ge=0.0, le=1.0)
    weight_participant: float = Field(default=WEIGHT_PARTICIPANT, ge=0.0)
    weight_identifier: float = Field(default=WEIGHT_IDENTIFIER, ge=0.0)
    weight_keyword: float = Field(default=WEIGHT_KEYWORD, ge=0.0)
    participant_saturation: int = Field(default=PARTICIPANT_SATURATION, ge=1)
    recent_activity_days: int = Field(default=RECENT_ACTIVITY_DAYS, ge=0)

    model_config = {"frozen": True}

    @model_validator(mode="after")
    def _check_thresholds(self) -> "ScoringConfig":
        if self.floor_threshold > self.classify_threshold:
            raise ValueError(
                f"floor_threshold ({self.floor_threshold}) must not exceed "
                f"classify_threshold ({self.classify_threshold})"
            )
        return self


def _clamp(value: float) -> float:
    return max(0.0, min(1.0, round(value, 6)))


def _activity_key(case: CaseEntry) -> float:
    return (case.last_activity_at or _EPOCH).timestamp()


class ClassificationScorer:
    def __init__(self, config: ScoringConfig | None = None):
        self.config = config or ScoringConfig()

    def score(
        self,
        message: Message,
        directory: FirmDirectory,
        thread_case_id: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> ClassificationResult:
        if directory.firm_id != message.firm_id:
            logger.error(
                "classification.directory_firm_mismatch",
                message_id=message.id,
                message_firm_id=message.firm_id,
                directory_firm_id=directory.firm_id,
            )
            raise FirmMismatchError(message.firm_id, directory.firm_id, "directory")

        if thread_case_id and directory.owns_case(thread_case_id):
            return self._thread_result(thread_case_id, directory)

        now = now or directory.as_of
        clients = self._same_firm(message, directory.clients, "client")
        client_ids = {c.client_id for c in clients}
        cases = [
            case
            for case in self._same_firm(message, directory.cases, "case")
            if self._has_own_client(message, case, client_ids)
        ]

        addresses = message.participant_addresses()
        matched_clients = [c for c in clients if c.address_set() & addresses]
        unique_client = matched_clients[0] if len(matched_clients) == 1 else None

        scored = [self._score_case(message, case, addresses, now) for case in cases]
        self._apply_single_case_contact(message, cases, scored, unique_client)

        by_id = {case.case_id: case for case in cases}
        ranked = sorted(
            (s for s in scored if s.score > 0),
            key=lambda s: (-s.score, -_activity_key(by_id[s.case_id]), s.case_id),
        )
        top = ranked[0] if ranked else None
        top_score = top.score if top else 0.0

        if top is not None and top_score >= self.config.classify_threshold:
            return ClassificationResult(
                state=ClassificationState.CLASSIFIED,
                confidence=top_score,
                case_id=top.case_id,
                client_id=top.client_id,
                reason=REASON_CONFIDENT,
                match_type=self._match_type(top),
                suggested_cases=ranked[:MAX_SUGGESTIONS],
            )

        if unique_client is not None:
            client_cases = [c for c in cases if c.client_id == unique_client.client_id]
            if len(client_cases) > 1:
                return ClassificationResult(
                    state=ClassificationState.CLIENT_INBOX,
                    confidence=top_score,
                    client_id=unique_client.client_id,
                    reason=REASON_CLIENT_INBOX,
                    match_type="CLIENT",
                    suggested_cases=[s for s in ranked if s.client_id == unique_client.client_id][
                        :MAX_SUGGESTIONS
                    ],
                )

        if top is not None and top_score >= self.config.floor_threshold:
            return ClassificationResult(
                state=ClassificationState.UNCERTAIN,
                confidence=top_score,
                reason=REASON_NEEDS_REVIEW,
                match_type=self._match_type(top),
                suggested_cases=ranked[:MAX_SUGGESTIONS],
            )

        known = any(case.address_set() & addresses for case in cases) or bool(matched_clients)
        return ClassificationResult(
            state=ClassificationState.UNCERTAIN,
            confidence=top_score,
            reason=REASON_NO_MATCH,
            match_type="NO_MATCH" if known else "UNKNOWN_CONTACT",
        )

    def _thread_result(self, case_id: str, directory: FirmDirectory) -> ClassificationResult:
        case = next((c for c in directory.cases if c.case_id == case_id), None)
        client_id = directory.client_of(case_id)
        if client_id not in directory.own_client_ids():
            client_id = None
        return ClassificationResult(
            state=ClassificationState.CLASSIFIED,
            confidence=1.0,
            case_id=case_id,
            client_id=client_id,
            reason=REASON_THREAD,
            match_type="THREAD",
            suggested_cases=[
                CaseScore(
                    case_id=case_id,
                    case_number=case.case_number if case else "",
                    client_id=client_id,
                    score=1.0,
                    signals=[Signal(type="THREAD", score=1.0, matched=case_id)],
                )
            ],
        )

    def _same_firm(self, message: Message, entries: list, kind: str) -> list:
        kept = []
        for entry in entries:
            if entry.firm_id != message.firm_id:
                logger.error(
                    "classification.cross_firm_candidate",
                    message_id=message.id,
                    message_firm_id=message.firm_id,
                    candidate_firm_id=entry.firm_id,
                    candidate_kind=kind,
                    candidate_id=getattr(entry, "case_id", None) or getattr(entry, "client_id", None),
                )
                continue
            kept.append(entry)
        return kept

    def _has_own_client(self, message: Message, case: CaseEntry, client_ids: set[str]) -> bool:
        if case.client_id is None or case.client_id in client_ids:
            return True
        logger.error(
            "classification.foreign_client_case",
            message_id=message.id,
            firm_id=message.firm_id,
            case_id=case.case_id,
            client_id=case.client_id,
        )
        return False

    def _score_case(
        self, message: Message, case: CaseEntry, addresses: set[str], now: Optional[datetime]
    ) -> CaseScore:
        cfg = self.config
        signals: list[Signal] = []
        total = 0.0

        overlap = sorted(case.address_set() & addresses)
        if overlap:
            value = min(1.0, len(overlap) / cfg.participant_saturation)
            signals.append(Signal(type="PARTICIPANT", score=value, matched=", ".join(overlap)))
            total += cfg.weight_participant * value

        text = message.searchable_text()
        identifier = None
        if mentions_case_number(text, case.case_number):
            identifier = case.case_number
        else:
            refs = matching_references(extract_references(text), case.reference_numbers)
            if refs:
                identifier = refs[0]
        if identifier:
            signals.append(Signal(type="REFERENCE", score=1.0, matched=identifier))
            total += cfg.weight_identifier

        keyword_signal = self._keyword_signal(message, case)
        if keyword_signal is not None:
            signals.append(keyword_signal)
            total += cfg.weight_keyword * keyword_signal.score

        recent = timedelta(days=cfg.recent_activity_days)
        if now and case.last_activity_at and now - case.last_activity_at <= recent:
            signals.append(
                Signal(type="RECENT_ACTIVITY", score=1.0, matched=case.last_activity_at.isoformat())
            )

        return CaseScore(
            case_id=case.case_id,
            case_number=case.case_number,
            client_id=case.client_id,
            score=_clamp(total),
            signals=signals,
        )

    def _keyword_signal(self, message: Message, case: CaseEntry) -> Signal | None:
        subject = (message.subject or "").lower()
        body = f"{message.body_preview}\n{message.body_content}".lower()
        keywords = [k.strip().lower() for k in case.keywords if k and k.strip()]
        for keyword in keywords:
            if keyword in subject:
                return Signal(type="KEYWORD_SUBJECT", score=1.0, matched=keyword)
        for keyword in keywords:
            if keyword in body:
                return Signal(type="KEYWORD_BODY", score=0.5, matched=keyword)
        return None

    def _apply_single_case_contact(
        self,
        message: Message,
        cases: list[CaseEntry],
        scored: list[CaseScore],
        unique_client: ClientEntry | None,
    ) -> None:
        target: str | None = None
        matched = ""
        sender = message.sender_address
        if sender:
            sender_cases = [c.case_id for c in cases if sender in c.address_set()]
            if len(sender_cases) == 1:
                target, matched = sender_cases[0], sender
        if target is None and unique_client is not None:
            client_cases = [c.case_id for c in cases if c.client_id == unique_client.client_id]
            if len(client_cases) == 1:
                target, matched = client_cases[0], unique_client.client_id
        if target is None:
            return
        for item in scored:
            if item.case_id == target:
                item.signals.append(
                    Signal(type="SINGLE_CASE_CONTACT", score=self.config.single_case_confidence, matched=matched)
                )
                item.score = max(item.score, self.config.single_case_confidence)
                return

    @staticmethod
    def _match_type(score: CaseScore) -> MatchType:
        types = {s.type for s in score.signals}
        if "REFERENCE" in types:
            return "REFERENCE"
        if "PARTICIPANT" in types or "SINGLE_CASE_CONTACT" in types:
            return "CONTACT"
        if "KEYWORD_SUBJECT" in types or "KEYWORD_BODY" in types:
            return "KEYWORD"
        return "NO_MATCH"
