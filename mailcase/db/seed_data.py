"""Seed the case/client directory from a JSON file."""

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from mailcase.config import DIRECTORY_PATH
from mailcase.db.repositories import directory_repo
from mailcase.utils.logger import get_logger

logger = get_logger("mailcase.db.seed_data")


def _parse_datetime(val: Any) -> datetime | None:
    if val is None or not str(val).strip():
        return None
    try:
        value = datetime.fromisoformat(str(val).strip().replace("Z", "+00:00"))
    except (TypeError, ValueError):
        return None
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


def _participants(items: list[Any]) -> list[tuple[str, str]]:
    out = []
    for item in items or []:
        if isinstance(item, str):
            out.append((item, "team"))
        elif isinstance(item, dict) and item.get("address"):
            out.append((item["address"], (item.get("role") or "team").strip()))
    return out


def load_directory_file(path: Path | None = None) -> list[dict[str, Any]]:
    """Firm entries from the directory file: a list, or {"firms": [...]}."""
    path = path or DIRECTORY_PATH
    if not path.exists():
        logger.warning("seed_data.directory_missing", path=str(path))
        return []
    with path.open("r", encoding="utf-8") as f:
        data = json.load(f)
    return data if isinstance(data, list) else data.get("firms", [])


def seed_directory(firms: list[dict[str, Any]]) -> dict[str, int]:
    """Upsert clients and cases for every firm entry. Safe to run repeatedly."""
    counts = {"firms": 0, "clients": 0, "cases": 0}
    for firm in firms:
        firm_id = (firm.get("firm_id") or "").strip()
        if not firm_id:
            continue
        counts["firms"] += 1
        for client in firm.get("clients", []):
            client_id = (client.get("client_id") or "").strip()
            if not client_id:
                continue
            directory_repo.upsert_client(
                client_id,
                firm_id,
                name=(client.get("name") or "").strip(),
                contact_addresses=client.get("contacts", []),
            )
            counts["clients"] += 1
        for case in firm.get("cases", []):
            case_id = (case.get("case_id") or "").strip()
            if not case_id:
                continue
            directory_repo.upsert_case(
                case_id,
                (case.get("case_number") or case_id).strip(),
                firm_id,
                client_id=(case.get("client_id") or "").strip() or None,
                title=(case.get("title") or "").strip(),
                status=(case.get("status") or "active").strip(),
                participants=_participants(case.get("participants", [])),
                keywords=case.get("keywords", []),
                reference_numbers=case.get("reference_numbers", []),
                last_activity_at=_parse_datetime(case.get("last_activity_at")),
            )
            counts["cases"] += 1
    logger.info("seed_data.directory", **counts)
    return counts
