"""Classification service: scorer + store wiring, the explicit apply step and review operations."""

from datetime import datetime
from typing import Iterable, Optional

from mailcase.audit import AuditEvent, AuditSink, emit_safely
from mailcase.classification.scorer import ClassificationScorer
from mailcase.db.repositories import directory_repo, message_repo
from mailcase.errors import CaseNotFoundError, FirmMismatchError, MessageNotFoundError
from mailcase.models.classification import ApplyOutcome, ClassificationResult
from mailcase.models.directory import FirmDirectory
from mailcase.models.message import ClassificationState, Message
from mailcase.utils.logger import get_logger

logger = get_logger("mailcase.classification")


class ClassificationService:
    def __init__(
        self,
        scorer: ClassificationScorer | None = None,
        audit_sink: AuditSink | None = None,
    ):
        self.scorer = scorer or ClassificationScorer()
        self.audit_sink = audit_sink

    def classify(
        self,
        message: Message,
        firm_id: str,
        user_id: Optional[str] = None,
        *,
        directory: FirmDirectory | None = None,
        thread_case_id: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> ClassificationResult:
        """Score one message against its firm's directory. Nothing is written.

        `directory` and `thread_case_id` can be passed in by batch callers that hold a
        snapshot; otherwise both are loaded from the store.
        """
        if message.firm_id != firm_id:
            raise FirmMismatchError(message.firm_id, firm_id, "classification request")
        if directory is None:
            directory = directory_repo.load_directory(firm_id)
            thread_case_id = message_repo.find_thread_case(
                message.conversation_id, firm_id, exclude_message_id=message.id
            )
        result = self.scorer.score(message, directory, thread_case_id=thread_case_id, now=now)
        logger.debug(
            "classification.scored",
            message_id=message.id,
            user_id=user_id or message.user_id,
            state=result.state.value,
            case_id=result.case_id,
            client_id=result.client_id,
            confidence=result.confidence,
            match_type=result.match_type,
        )
        return result

    def _check_targets(self, message: Message, result: ClassificationResult) -> None:
        if result.case_id:
            case = directory_repo.get_case(result.case_id)
            if case is None:
                raise CaseNotFoundError(result.case_id)
            if case.firm_id != message.firm_id:
                logger.error(
                    "classification.apply_firm_mismatch",
                    message_id=message.id,
                    case_id=case.case_id,
                    message_firm_id=message.firm_id,
                    case_firm_id=case.firm_id,
                )
                raise FirmMismatchError(message.firm_id, case.firm_id, f"case {case.case_id}")
        if result.client_id:
            client = directory_repo.get_client(result.client_id)
            if client is not None and client.firm_id != message.firm_id:
                logger.error(
                    "classification.apply_firm_mismatch",
                    message_id=message.id,
                    client_id=client.client_id,
                    message_firm_id=message.firm_id,
                    client_firm_id=client.firm_id,
                )
                raise FirmMismatchError(message.firm_id, client.firm_id, f"client {client.client_id}")

    def apply(
        self,
        message_id: str,
        result: ClassificationResult,
        classified_by: str,
        force: bool = False,
        require_unresolved: bool = False,
    ) -> ApplyOutcome:
        """Persist a result. Human classifications are only overwritten with force=True."""
        message = message_repo.get_message(message_id)
        if message is None:
            raise MessageNotFoundError(message_id)
        self._check_targets(message, result)
        outcome = message_repo.apply_classification(
            message_id,
            result,
            classified_by,
            force=force,
            require_unresolved=require_unresolved,
        )
        if outcome.changed:
            logger.info(
                "classification.applied",
                message_id=message_id,
                previous_state=outcome.previous_state.value,
                state=outcome.new_state.value,
                case_id=outcome.case_id,
                client_id=outcome.client_id,
                confidence=result.confidence,
                classified_by=classified_by,
            )
            emit_safely(
                self.audit_sink,
                AuditEvent(
                    event_type="classification_decided",
                    firm_id=message.firm_id,
                    user_id=message.user_id,
                    actor=classified_by,
                    message_ids=[message_id],
                    conversation_id=message.conversation_id,
                    case_id=result.case_id,
                    client_id=result.client_id,
                    state=result.state.value,
                    confidence=result.confidence,
                    details={
                        "reason": result.reason,
                        "match_type": result.match_type,
                        "previous_state": outcome.previous_state.value,
                    },
                ),
            )
        return outcome

    def classify_and_apply(
        self,
        message: Message,
        classified_by: str,
        *,
        directory: FirmDirectory | None = None,
        thread_case_id: Optional[str] = None,
        require_unresolved: bool = False,
    ) -> ApplyOutcome:
        """Score and persist; a failure leaves the message untouched and is reported in the outcome."""
        try:
            result = self.classify(
                message,
                message.firm_id,
                message.user_id,
                directory=directory,
                thread_case_id=thread_case_id,
            )
            return self.apply(message.id, result, classified_by, require_unresolved=require_unresolved)
        except Exception as e:
            logger.error(
                "classification.error",
                message_id=message.id,
                firm_id=message.firm_id,
                error=str(e),
                error_type=type(e).__name__,
            )
            return ApplyOutcome(
                message_id=message.id,
                previous_state=message.classification_state,
                new_state=message.classification_state,
                case_id=message.case_id,
                client_id=message.client_id,
                changed=False,
                error=f"{type(e).__name__}: {e}",
            )

    def classify_manually(self, message_id: str, case_id: str, user_id: str) -> Message:
        """Human assignment of one message; locks it against automated rewrites."""
        message = message_repo.get_message(message_id)
        if message is None:
            raise MessageNotFoundError(message_id)
        case = directory_repo.get_case(case_id)
        if case is None:
            raise CaseNotFoundError(case_id)
        if case.firm_id != message.firm_id:
            raise FirmMismatchError(message.firm_id, case.firm_id, f"case {case_id}")
        updated = message_repo.assign_message(message_id, case_id, case.client_id, actor=user_id)
        logger.info("classification.manual", message_id=message_id, case_id=case_id, user_id=user_id)
        emit_safely(
            self.audit_sink,
            AuditEvent(
                event_type="classification_decided",
                firm_id=message.firm_id,
                user_id=message.user_id,
                actor=user_id,
                message_ids=[message_id],
                conversation_id=message.conversation_id,
                case_id=case_id,
                client_id=case.client_id,
                state=ClassificationState.CLASSIFIED.value,
                confidence=1.0,
                details={"match_type": "MANUAL", "previous_state": message.classification_state.value},
            ),
        )
        return updated

    def reclassify_message(self, message_id: str, actor: str) -> ApplyOutcome:
        """Forced re-score of one message, human classification included."""
        message = message_repo.get_message(message_id)
        if message is None:
            raise MessageNotFoundError(message_id)
        result = self.classify(message, message.firm_id, message.user_id)
        return self.apply(message_id, result, actor, force=True)

    def reset_classification(
        self,
        firm_id: str,
        user_id: Optional[str] = None,
        message_ids: Iterable[str] | None = None,
    ) -> int:
        ids = list(message_ids) if message_ids is not None else None
        count = message_repo.reset_classification(firm_id, user_id=user_id, message_ids=ids)
        logger.info("classification.reset", firm_id=firm_id, user_id=user_id, count=count)
        emit_safely(
            self.audit_sink,
            AuditEvent(
                event_type="classification_reset",
                firm_id=firm_id,
                user_id=user_id,
                message_ids=ids or [],
                state=ClassificationState.PENDING.value,
                details={"count": count},
            ),
        )
        return count
