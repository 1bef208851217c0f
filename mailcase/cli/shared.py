"""Shared CLI helpers: console, logger, provider/database setup, result output."""

import json
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from mailcase.config import AZURE_CLIENT_ID, AZURE_TENANT_ID, INBOX_PATH, OUTPUT_DIR
from mailcase.db import init_db, reset_db
from mailcase.mail_provider import GraphMockProvider, MailProvider
from mailcase.models.thread import Thread
from mailcase.utils.logger import get_logger

console = Console()
logger = get_logger("mailcase.cli")


def open_database(database_url: Optional[str]) -> None:
    """Use `database_url` when given, else DATABASE_URL from the environment."""
    if database_url:
        reset_db(database_url)
    else:
        init_db()


def get_provider(graph: bool, inbox_path: Path | None = None) -> MailProvider:
    """Mock provider over inbox.json, or the real Graph provider when `graph` is set."""
    if not graph:
        return GraphMockProvider(inbox_path=inbox_path or INBOX_PATH)
    if not AZURE_TENANT_ID or not AZURE_CLIENT_ID:
        console.print("[red]AZURE_TENANT_ID and AZURE_CLIENT_ID must be set for --graph.[/red]")
        logger.error("cli.graph_credentials_missing")
        raise typer.Exit(1)
    from mailcase.mail_provider.graph_real import GraphProvider

    return GraphProvider(tenant_id=AZURE_TENANT_ID, client_id=AZURE_CLIENT_ID)


def write_json_result(result_dict: dict, name: str, output_dir: Path | None = None) -> Path:
    output_dir = output_dir or OUTPUT_DIR
    output_dir.mkdir(parents=True, exist_ok=True)
    path = output_dir / name
    with path.open("w", encoding="utf-8") as f:
        json.dump(result_dict, f, indent=2, default=str)
    logger.info("results.write_json", path=str(path))
    return path


def threads_table(threads: list[Thread], title: str) -> Table:
    table = Table(title=title)
    table.add_column("Conversation", style="cyan", overflow="fold")
    table.add_column("Subject")
    table.add_column("Msgs", justify="right")
    table.add_column("Participants", justify="right")
    table.add_column("Case", style="green")
    table.add_column("Unread", justify="center")
    table.add_column("Last activity")
    for t in threads:
        table.add_row(
            t.conversation_id[:40],
            t.subject,
            str(t.message_count),
            str(t.participant_count),
            t.case_id or "-",
            "yes" if t.has_unread else "",
            t.last_message_at.strftime("%Y-%m-%d %H:%M"),
        )
    return table
