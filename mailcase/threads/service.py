"""Store-backed thread operations: views, filters, bulk assignment, read flags, stats."""

from collections import Counter
from typing import Optional

from mailcase.audit import AuditEvent, AuditSink, emit_safely
from mailcase.db.repositories import directory_repo, message_repo
from mailcase.errors import CaseNotFoundError, FirmMismatchError, MessageNotFoundError
from mailcase.models.thread import CaseThreadCount, Thread, ThreadFilters, ThreadParticipant, ThreadStats
from mailcase.threads.assembler import (
    build_thread,
    dominant_case_id,
    extract_participants,
    group_into_threads,
)
from mailcase.utils.logger import get_logger

logger = get_logger("mailcase.threads")


class ThreadService:
    def __init__(self, audit_sink: AuditSink | None = None):
        self.audit_sink = audit_sink

    def get_thread(self, conversation_id: str, user_id: str) -> Optional[Thread]:
        messages = message_repo.list_by_conversation(conversation_id, user_id)
        if not messages:
            return None
        return build_thread(conversation_id, messages)

    def get_threads(
        self,
        filters: ThreadFilters,
        limit: int = 20,
        offset: int = 0,
    ) -> tuple[list[Thread], int]:
        """Filtered, paginated threads (newest first) and the total before pagination."""
        keys = message_repo.find_thread_keys(filters)
        messages = message_repo.list_by_thread_keys(filters.user_id, keys)
        threads = group_into_threads(messages)
        if filters.has_unread is not None:
            threads = [t for t in threads if t.has_unread == filters.has_unread]
        if filters.has_attachments is not None:
            threads = [t for t in threads if t.has_attachments == filters.has_attachments]
        total = len(threads)
        page = threads[offset : offset + limit] if limit > 0 else threads[offset:]
        logger.debug(
            "threads.list",
            user_id=filters.user_id,
            total=total,
            returned=len(page),
            offset=offset,
        )
        return page, total

    def get_thread_participants(self, conversation_id: str, user_id: str) -> list[ThreadParticipant]:
        return extract_participants(message_repo.list_by_conversation(conversation_id, user_id))

    def assign_thread_to_case(self, conversation_id: str, case_id: str, user_id: str) -> list[str]:
        """Assign every message of the user's conversation to a case; returns the message ids.

        Idempotent. Raises FirmMismatchError when the case belongs to another firm.
        """
        case = directory_repo.get_case(case_id)
        if case is None:
            raise CaseNotFoundError(case_id)
        messages = message_repo.list_by_conversation(conversation_id, user_id)
        if not messages:
            raise MessageNotFoundError(conversation_id)
        for message in messages:
            if message.firm_id != case.firm_id:
                logger.error(
                    "threads.assign_firm_mismatch",
                    conversation_id=conversation_id,
                    message_id=message.id,
                    message_firm_id=message.firm_id,
                    case_firm_id=case.firm_id,
                )
                raise FirmMismatchError(message.firm_id, case.firm_id, f"case {case_id}")

        message_ids = message_repo.assign_conversation(
            conversation_id,
            user_id,
            case_id,
            case.client_id,
            actor=user_id,
        )
        logger.info(
            "threads.assigned",
            conversation_id=conversation_id,
            case_id=case_id,
            user_id=user_id,
            message_count=len(message_ids),
        )
        emit_safely(
            self.audit_sink,
            AuditEvent(
                event_type="thread_assigned",
                firm_id=case.firm_id,
                user_id=user_id,
                actor=user_id,
                message_ids=message_ids,
                conversation_id=conversation_id,
                case_id=case_id,
                client_id=case.client_id,
                state="Classified",
                confidence=1.0,
            ),
        )
        return message_ids

    def mark_thread_as_read(self, conversation_id: str, user_id: str) -> int:
        count = message_repo.mark_conversation_read(conversation_id, user_id)
        logger.info("threads.marked_read", conversation_id=conversation_id, user_id=user_id, count=count)
        if count:
            emit_safely(
                self.audit_sink,
                AuditEvent(
                    event_type="thread_marked_read",
                    user_id=user_id,
                    actor=user_id,
                    conversation_id=conversation_id,
                    details={"count": count},
                ),
            )
        return count

    def get_thread_stats(self, user_id: str) -> ThreadStats:
        rows = message_repo.thread_stat_rows(user_id)
        unread: set[str] = set()
        case_ids: dict[str, list[str | None]] = {}
        for key, case_id, is_read in rows:
            case_ids.setdefault(key, []).append(case_id)
            if not is_read:
                unread.add(key)

        by_case: Counter[str] = Counter()
        uncategorized = 0
        for ids in case_ids.values():
            dominant = dominant_case_id(ids)
            if dominant is None:
                uncategorized += 1
            else:
                by_case[dominant] += 1

        return ThreadStats(
            total_threads=len(case_ids),
            unread_threads=len(unread),
            uncategorized_threads=uncategorized,
            threads_by_case=[
                CaseThreadCount(case_id=cid, count=n)
                for cid, n in sorted(by_case.items(), key=lambda item: (-item[1], item[0]))
            ],
        )
