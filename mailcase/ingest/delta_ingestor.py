"""Delta ingestion: pull provider pages, store new messages, advance the cursor, score.

The cursor only moves after the page it came with is stored, so a crash or provider
failure replays at most one page, and replays are absorbed by the skip-duplicates insert.
"""

import asyncio
import functools
from typing import Optional

from mailcase.classification.service import ClassificationService
from mailcase.config import SYNC_MAX_MESSAGES, SYNC_PAGE_SIZE
from mailcase.db.repositories import message_repo, sync_state_repo
from mailcase.errors import IngestionError
from mailcase.mail_provider.mapping import delta_page_to_batch, extract_delta_token
from mailcase.mail_provider.protocol import MailProvider
from mailcase.models.message import ACTOR_INGESTION, ClassificationState, Message
from mailcase.models.sync import DeltaBatch, SyncResult, SyncStateView
from mailcase.threads.assembler import link_by_headers, unthreaded_ancestors
from mailcase.utils.logger import get_logger, log_context

logger = get_logger("mailcase.ingest")


class DeltaIngestor:
    def __init__(
        self,
        provider: MailProvider,
        classification_service: ClassificationService | None = None,
        page_size: int = SYNC_PAGE_SIZE,
        max_messages: int = SYNC_MAX_MESSAGES,
    ):
        self.provider = provider
        self.classification_service = classification_service or ClassificationService()
        self.page_size = max(1, page_size)
        self.max_messages = max(1, max_messages)
        self._locks: dict[str, asyncio.Lock] = {}
        self._lock_holders: dict[str, int] = {}

    def _lock_for(self, user_id: str) -> asyncio.Lock:
        lock = self._locks.get(user_id)
        if lock is None:
            lock = self._locks[user_id] = asyncio.Lock()
        self._lock_holders[user_id] = self._lock_holders.get(user_id, 0) + 1
        return lock

    def _release_lock(self, user_id: str) -> None:
        """Forget the user's lock once no sync holds or waits for it."""
        remaining = self._lock_holders[user_id] - 1
        if remaining:
            self._lock_holders[user_id] = remaining
        else:
            del self._lock_holders[user_id]
            del self._locks[user_id]

    async def pull(self, cursor: Optional[str], user_id: str, firm_id: str) -> DeltaBatch:
        """One normalized page; removed items are filtered out."""
        page = await self.provider.fetch_delta(cursor, self.page_size)
        batch = delta_page_to_batch(page, user_id, firm_id)
        if batch.removed_ids:
            logger.debug("ingest.removed_filtered", count=len(batch.removed_ids))
        return batch

    async def sync(self, user_id: str, firm_id: str) -> SyncResult:
        """Sync one mailbox. Concurrent calls for the same user run one after another."""
        lock = self._lock_for(user_id)
        if lock.locked():
            logger.info("ingest.sync_waiting", user_id=user_id)
        try:
            async with lock:
                with log_context(user_id=user_id, firm_id=firm_id):
                    return await self._sync(user_id, firm_id)
        finally:
            self._release_lock(user_id)

    async def _sync(self, user_id: str, firm_id: str) -> SyncResult:
        loop = asyncio.get_running_loop()
        state = await loop.run_in_executor(None, sync_state_repo.get_state, user_id)
        cursor = state.cursor if state else None
        await loop.run_in_executor(None, sync_state_repo.mark_syncing, user_id, firm_id)
        logger.info(
            "ingest.sync_started",
            mode="delta" if cursor else "initial",
            delta_token=extract_delta_token(cursor)[:16] or None,
        )

        result = SyncResult(user_id=user_id, next_cursor=cursor)
        while True:
            try:
                batch = await self.pull(cursor, user_id, firm_id)
                messages = await self._link(batch.messages, user_id)
                inserted = await loop.run_in_executor(None, message_repo.insert_skip_duplicates, messages)
                await loop.run_in_executor(
                    None, sync_state_repo.advance_cursor, user_id, batch.next_cursor, len(inserted)
                )
            except Exception as e:
                error = str(e).strip() or repr(e)
                logger.error(
                    "ingest.sync_failed",
                    error=error,
                    error_type=type(e).__name__,
                    pages=result.pages,
                )
                await loop.run_in_executor(None, sync_state_repo.mark_error, user_id, error)
                raise IngestionError(user_id, error) from e

            cursor = batch.next_cursor
            result.pages += 1
            result.next_cursor = cursor
            result.fetched += len(batch.messages) + len(batch.removed_ids)
            result.removed += len(batch.removed_ids)
            result.duplicates += len(messages) - len(inserted)
            result.new_messages.extend(inserted)
            logger.info(
                "ingest.page_stored",
                page=result.pages,
                received=len(batch.messages),
                inserted=len(inserted),
                removed=len(batch.removed_ids),
                has_more=batch.has_more,
            )

            await self._classify_new(inserted, result)

            if not batch.has_more:
                break
            if result.fetched >= self.max_messages:
                logger.warning("ingest.max_messages_reached", max_messages=self.max_messages)
                break

        await loop.run_in_executor(None, sync_state_repo.mark_synced, user_id)
        logger.info(
            "ingest.sync_completed",
            pages=result.pages,
            fetched=result.fetched,
            new_messages=len(result.new_messages),
            duplicates=result.duplicates,
            removed=result.removed,
            classified=result.classified,
            classification_errors=result.classification_errors,
        )
        return result

    async def _link(self, messages: list[Message], user_id: str) -> list[Message]:
        """Attach unthreaded replies to a parent in this page or one stored earlier."""
        ancestors = unthreaded_ancestors(messages)
        known: dict[str, str] = {}
        if ancestors:
            loop = asyncio.get_running_loop()
            known = await loop.run_in_executor(
                None, message_repo.thread_keys_by_internet_id, user_id, ancestors
            )
        return link_by_headers(messages, known)

    async def _classify_new(self, messages: list[Message], result: SyncResult) -> None:
        """Score new messages oldest first so replies see their thread's earlier decisions."""
        loop = asyncio.get_running_loop()
        for message in sorted(messages, key=lambda m: (m.received_at, m.id)):
            outcome = await loop.run_in_executor(
                None,
                functools.partial(self.classification_service.classify_and_apply, message, ACTOR_INGESTION),
            )
            if outcome.error:
                result.classification_errors += 1
            elif outcome.new_state != ClassificationState.PENDING:
                result.classified += 1

    async def get_sync_status(self, user_id: str) -> Optional[SyncStateView]:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, sync_state_repo.get_state, user_id)
