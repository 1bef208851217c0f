"""Sync mode: delta-ingest one mailbox and score the new messages."""

import asyncio
from pathlib import Path
from typing import Optional

import typer
from rich.table import Table

from mailcase.audit import LogAuditSink
from mailcase.classification import ClassificationService
from mailcase.config import INBOX_PATH, SYNC_PAGE_SIZE
from mailcase.errors import IngestionError
from mailcase.ingest import DeltaIngestor
from mailcase.utils.logger import bind_context, clear_context

from .shared import console, get_provider, logger, open_database, write_json_result


def sync(
    user_id: str = typer.Option(..., "--user", "-u", help="Mailbox owner (user id)"),
    firm_id: str = typer.Option(..., "--firm", "-f", help="Firm the mailbox belongs to"),
    graph: bool = typer.Option(False, "--graph", help="Use Microsoft Graph instead of the mock inbox"),
    inbox: Path = typer.Option(INBOX_PATH, "--inbox", "-i", help="Path to inbox.json (mock provider)"),
    page_size: int = typer.Option(SYNC_PAGE_SIZE, "--page-size", help="Messages per delta page"),
    database: Optional[str] = typer.Option(None, "--database", help="Database URL (default: DATABASE_URL)"),
) -> None:
    """Pull new messages since the stored cursor, store them and classify them."""
    log = logger.bind(command="sync", user_id=user_id, firm_id=firm_id, graph=graph)
    log.info("sync.start")
    open_database(database)
    provider = get_provider(graph, inbox)
    ingestor = DeltaIngestor(
        provider,
        classification_service=ClassificationService(audit_sink=LogAuditSink()),
        page_size=page_size,
    )
    bind_context(command="sync")
    try:
        result = asyncio.run(ingestor.sync(user_id, firm_id))
    except IngestionError as e:
        console.print(f"[red]{e}[/red]")
        log.error("sync.failed", error=str(e))
        raise typer.Exit(1) from e
    finally:
        clear_context()

    table = Table(title=f"Sync {user_id}")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", justify="right")
    for label, value in (
        ("Pages", result.pages),
        ("Fetched", result.fetched),
        ("New messages", len(result.new_messages)),
        ("Duplicates skipped", result.duplicates),
        ("Removed (ignored)", result.removed),
        ("Classified", result.classified),
        ("Classification errors", result.classification_errors),
    ):
        table.add_row(label, str(value))
    console.print(table)

    path = write_json_result(
        {
            "user_id": user_id,
            "firm_id": firm_id,
            "pages": result.pages,
            "fetched": result.fetched,
            "duplicates": result.duplicates,
            "removed": result.removed,
            "classified": result.classified,
            "classification_errors": result.classification_errors,
            "new_message_ids": [m.id for m in result.new_messages],
        },
        f"sync_{user_id}.json",
    )
    console.print(f"[green]Wrote {path}[/green]")
    log.info("sync.complete", new_messages=len(result.new_messages))
