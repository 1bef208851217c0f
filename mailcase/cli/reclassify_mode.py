"""Reclassify mode: re-score a firm's unresolved messages."""

import asyncio
from typing import Optional

import typer
from rich.table import Table

from mailcase.audit import LogAuditSink
from mailcase.classification import ClassificationService, Reclassifier
from mailcase.config import RECLASSIFY_WORKER_COUNT
from mailcase.db.repositories import directory_repo
from mailcase.utils.logger import bind_context, clear_context

from .shared import console, logger, open_database


def reclassify(
    firm_id: str = typer.Option(..., "--firm", "-f", help="Firm to reclassify"),
    workers: int = typer.Option(RECLASSIFY_WORKER_COUNT, "--workers", "-w", help="Concurrent workers"),
    contact: Optional[str] = typer.Option(
        None, "--contact", help="Add this address to --case, then re-score the messages involving it"
    ),
    reference: Optional[str] = typer.Option(
        None, "--reference", help="Add this reference to --case, then re-score the messages mentioning it"
    ),
    case_id: Optional[str] = typer.Option(None, "--case", help="Case receiving the contact or reference"),
    database: Optional[str] = typer.Option(None, "--database", help="Database URL (default: DATABASE_URL)"),
) -> None:
    """Re-score Pending, ClientInbox and Uncertain messages against the current directory."""
    log = logger.bind(command="reclassify", firm_id=firm_id, workers=workers)
    log.info("reclassify.start")
    if (contact or reference) and not case_id:
        console.print("[red]--contact and --reference need --case.[/red]")
        raise typer.Exit(1)
    open_database(database)
    if case_id:
        case = directory_repo.get_case(case_id)
        if case is None or case.firm_id != firm_id:
            console.print(f"[red]Case {case_id} is not a case of firm {firm_id}.[/red]")
            log.error("reclassify.unknown_case", case_id=case_id)
            raise typer.Exit(1)
        if contact:
            directory_repo.add_case_participant(case_id, contact)
        if reference:
            directory_repo.add_case_reference(case_id, reference)
    reclassifier = Reclassifier(
        service=ClassificationService(audit_sink=LogAuditSink()),
        worker_count=workers,
    )
    bind_context(command="reclassify")
    try:
        if contact:
            summary = asyncio.run(reclassifier.on_contact_added_to_case(contact, case_id, firm_id))
        elif reference:
            summary = asyncio.run(reclassifier.on_case_reference_added(case_id, reference, firm_id))
        else:
            summary = asyncio.run(reclassifier.reclassify_unresolved(firm_id))
    finally:
        clear_context()

    table = Table(title=f"Reclassify {firm_id}")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", justify="right")
    for label, value in (
        ("Candidates", summary.candidates),
        ("Classified", summary.classified),
        ("ClientInbox", summary.client_inbox),
        ("Uncertain", summary.uncertain),
        ("Pending", summary.pending),
        ("Unchanged", summary.unchanged),
        ("Errors", summary.errors),
        ("Passes", summary.passes),
    ):
        table.add_row(label, str(value))
    console.print(table)
    log.info("reclassify.complete", **summary.model_dump(exclude={"firm_id"}))
    if summary.errors:
        raise typer.Exit(1)
