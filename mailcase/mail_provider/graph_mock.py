"""Mock mail provider: serves a JSON inbox as Graph-style delta pages."""

import json
from pathlib import Path
from typing import Any, Optional

from pydantic import ValidationError

from mailcase.mail_provider.graph_models import DeltaPage, GraphMessage
from mailcase.utils.logger import get_logger

logger = get_logger("mailcase.mail_provider")

CURSOR_PREFIX = "mock:"


def _parse_cursor(cursor: Optional[str]) -> int:
    if not cursor:
        return 0
    if not cursor.startswith(CURSOR_PREFIX):
        raise ValueError(f"not a mock cursor: {cursor!r}")
    return int(cursor[len(CURSOR_PREFIX) :])


class GraphMockProvider:
    """Inbox from a JSON file (a list, or {"value": [...]}) in delivery order.

    The cursor is the offset of the next unseen item, so items appended later (see
    `add_messages`) show up on the next delta call, like new mail on a stored deltaLink.
    """

    def __init__(self, inbox_path: Path | None = None, items: list[dict[str, Any]] | None = None):
        self._inbox_path = inbox_path
        self._inbox: list[GraphMessage] = []
        if items is not None:
            self.add_messages(items)
        elif inbox_path is not None:
            self._load_inbox()
        logger.info(
            "mail_provider.init",
            inbox_path=str(inbox_path) if inbox_path else None,
            message_count=len(self._inbox),
        )

    def _load_inbox(self) -> None:
        if not self._inbox_path.exists():
            logger.warning("mail_provider.inbox_missing", inbox_path=str(self._inbox_path))
            return
        with self._inbox_path.open("r", encoding="utf-8") as f:
            data = json.load(f)
        items = data if isinstance(data, list) else data.get("value", data.get("messages", []))
        self.add_messages(items)
        logger.info("mail_provider.inbox_loaded", message_count=len(self._inbox))

    def add_messages(self, items: list[dict[str, Any]]) -> int:
        added = 0
        for item in items:
            try:
                self._inbox.append(GraphMessage.model_validate(item))
                added += 1
            except ValidationError as e:
                logger.warning(
                    "mail_provider.invalid_item",
                    item_id=item.get("id") if isinstance(item, dict) else None,
                    error=str(e),
                )
        return added

    @property
    def messages(self) -> list[GraphMessage]:
        return list(self._inbox)

    async def fetch_delta(self, cursor: Optional[str], page_size: int) -> DeltaPage:
        offset = _parse_cursor(cursor)
        page = self._inbox[offset : offset + max(1, page_size)]
        next_offset = offset + len(page)
        has_more = next_offset < len(self._inbox)
        logger.debug(
            "mail_provider.fetch_delta",
            offset=offset,
            count=len(page),
            has_more=has_more,
        )
        return DeltaPage(messages=page, next_cursor=f"{CURSOR_PREFIX}{next_offset}", has_more=has_more)
