"""Batch re-scoring of unresolved messages after directory changes.

Each pass scores against one directory snapshot and one thread-affinity snapshot, so no
item sees another item's result from the same pass. Conversations that gained a
Classified message are re-scored in a follow-up pass; a second run therefore finds
nothing left to change.
"""

import asyncio
import functools
from typing import Optional

from mailcase.classification.references import mentions_reference
from mailcase.classification.service import ClassificationService
from mailcase.config import RECLASSIFY_MAX_PASSES, RECLASSIFY_PROGRESS_EVERY, RECLASSIFY_WORKER_COUNT
from mailcase.db.repositories import directory_repo, message_repo
from mailcase.models.classification import ApplyOutcome, ReclassifySummary
from mailcase.models.directory import FirmDirectory
from mailcase.models.message import ACTOR_RECLASSIFIER, ClassificationState, Message
from mailcase.utils.logger import get_logger, log_context

logger = get_logger("mailcase.reclassifier")


class Reclassifier:
    def __init__(
        self,
        service: ClassificationService | None = None,
        worker_count: int = RECLASSIFY_WORKER_COUNT,
        max_passes: int = RECLASSIFY_MAX_PASSES,
        progress_every: int = RECLASSIFY_PROGRESS_EVERY,
    ):
        self.service = service or ClassificationService()
        self.worker_count = max(1, min(worker_count, 64))
        self.max_passes = max(1, max_passes)
        self.progress_every = max(1, progress_every)

    async def reclassify_unresolved(self, firm_id: str) -> ReclassifySummary:
        """Re-score every Pending / ClientInbox / Uncertain message of the firm that has no case."""
        loop = asyncio.get_running_loop()
        candidates = await loop.run_in_executor(None, message_repo.list_unresolved, firm_id)
        return await self._run(firm_id, candidates, trigger="batch")

    async def on_contact_added_to_case(self, address: str, case_id: str, firm_id: str) -> ReclassifySummary:
        """Re-score the unresolved messages that involve `address`."""
        loop = asyncio.get_running_loop()
        candidates = await loop.run_in_executor(
            None, functools.partial(message_repo.list_unresolved, firm_id, address=address)
        )
        logger.info(
            "reclassifier.trigger_contact_added",
            firm_id=firm_id,
            case_id=case_id,
            address=address,
            candidates=len(candidates),
        )
        return await self._run(firm_id, candidates, trigger="contact_added")

    async def on_case_reference_added(self, case_id: str, reference: str, firm_id: str) -> ReclassifySummary:
        """Re-score the unresolved messages that mention `reference`."""
        loop = asyncio.get_running_loop()
        unresolved = await loop.run_in_executor(None, message_repo.list_unresolved, firm_id)
        candidates = [m for m in unresolved if mentions_reference(m.searchable_text(), reference)]
        logger.info(
            "reclassifier.trigger_reference_added",
            firm_id=firm_id,
            case_id=case_id,
            reference=reference,
            candidates=len(candidates),
        )
        return await self._run(firm_id, candidates, trigger="reference_added")

    async def _run(self, firm_id: str, candidates: list[Message], trigger: str) -> ReclassifySummary:
        with log_context(firm_id=firm_id, reclassify_trigger=trigger):
            summary = ReclassifySummary(firm_id=firm_id, candidates=len(candidates))
            final: dict[str, ApplyOutcome] = {}
            changed_ids: set[str] = set()
            batch = candidates
            loop = asyncio.get_running_loop()

            while batch and summary.passes < self.max_passes:
                summary.passes += 1
                outcomes = await self._run_pass(firm_id, batch, summary.passes)
                newly_classified: set[str] = set()
                by_id = {m.id: m for m in batch}
                for outcome in outcomes:
                    final[outcome.message_id] = outcome
                    if outcome.changed:
                        changed_ids.add(outcome.message_id)
                        conversation_id = by_id[outcome.message_id].conversation_id
                        if outcome.new_state == ClassificationState.CLASSIFIED and conversation_id:
                            newly_classified.add(conversation_id)
                if not newly_classified:
                    break
                batch = await loop.run_in_executor(
                    None,
                    functools.partial(
                        message_repo.list_unresolved, firm_id, conversation_ids=sorted(newly_classified)
                    ),
                )

            for message_id, outcome in final.items():
                if outcome.error:
                    summary.errors += 1
                    continue
                if message_id not in changed_ids:
                    summary.unchanged += 1
                if outcome.new_state == ClassificationState.CLASSIFIED:
                    summary.classified += 1
                elif outcome.new_state == ClassificationState.CLIENT_INBOX:
                    summary.client_inbox += 1
                elif outcome.new_state == ClassificationState.UNCERTAIN:
                    summary.uncertain += 1
                else:
                    summary.pending += 1

            logger.info("reclassifier.completed", **summary.model_dump())
            return summary

    async def _run_pass(self, firm_id: str, messages: list[Message], pass_number: int) -> list[ApplyOutcome]:
        loop = asyncio.get_running_loop()
        directory: FirmDirectory = await loop.run_in_executor(None, directory_repo.load_directory, firm_id)
        thread_cases: dict[str, str] = await loop.run_in_executor(None, message_repo.thread_case_map, firm_id)
        logger.info(
            "reclassifier.pass_started",
            pass_number=pass_number,
            candidates=len(messages),
            cases=len(directory.cases),
            worker_count=self.worker_count,
        )

        queue: asyncio.Queue[Message] = asyncio.Queue()
        for message in messages:
            queue.put_nowait(message)
        outcomes: list[ApplyOutcome] = []
        total = len(messages)

        async def _worker(worker_id: int) -> None:
            # Each task runs in its own context copy, so the binding stays with this worker
            with log_context(reclassify_worker=worker_id):
                while True:
                    try:
                        message = queue.get_nowait()
                    except asyncio.QueueEmpty:
                        return
                    try:
                        thread_case_id = thread_cases.get(message.conversation_id or "")
                        outcome = await self._score_one(message, directory, thread_case_id)
                        outcomes.append(outcome)
                        done = len(outcomes)
                        if done % self.progress_every == 0 or done == total:
                            logger.info(
                                "reclassifier.progress", pass_number=pass_number, done=done, total=total
                            )
                    finally:
                        queue.task_done()

        workers = [asyncio.create_task(_worker(i)) for i in range(min(self.worker_count, max(1, total)))]
        await asyncio.gather(*workers)
        outcomes.sort(key=lambda o: o.message_id)
        return outcomes

    async def _score_one(
        self,
        message: Message,
        directory: FirmDirectory,
        thread_case_id: Optional[str],
    ) -> ApplyOutcome:
        loop = asyncio.get_running_loop()
        try:
            return await loop.run_in_executor(
                None,
                functools.partial(
                    self.service.classify_and_apply,
                    message,
                    ACTOR_RECLASSIFIER,
                    directory=directory,
                    thread_case_id=thread_case_id,
                    require_unresolved=True,
                ),
            )
        except Exception as e:
            logger.exception("reclassifier.item_error", message_id=message.id, error=str(e))
            return ApplyOutcome(
                message_id=message.id,
                previous_state=message.classification_state,
                new_state=message.classification_state,
                changed=False,
                error=f"{type(e).__name__}: {e}",
            )
