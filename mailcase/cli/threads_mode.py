"""Thread commands: list threads, show stats, assign a thread, mark read, reset classification."""

from datetime import datetime
from typing import Optional

import typer
from rich.table import Table

from mailcase.audit import LogAuditSink
from mailcase.classification import ClassificationService
from mailcase.errors import CaseNotFoundError, FirmMismatchError, MessageNotFoundError
from mailcase.models.thread import ThreadFilters
from mailcase.threads import ThreadService

from .shared import console, logger, open_database, threads_table


def threads(
    user_id: str = typer.Option(..., "--user", "-u", help="Mailbox owner (user id)"),
    case_id: Optional[str] = typer.Option(None, "--case", help="Only threads linked to this case"),
    unread: Optional[bool] = typer.Option(None, "--unread/--read", help="Filter by unread state"),
    attachments: Optional[bool] = typer.Option(
        None, "--attachments/--no-attachments", help="Filter by attachments"
    ),
    search: Optional[str] = typer.Option(None, "--search", "-s", help="Text in subject or preview"),
    date_from: Optional[datetime] = typer.Option(None, "--from", help="Received on or after"),
    date_to: Optional[datetime] = typer.Option(None, "--to", help="Received on or before"),
    participant: list[str] = typer.Option([], "--participant", "-p", help="Participant address (repeatable)"),
    limit: int = typer.Option(20, "--limit", "-n"),
    offset: int = typer.Option(0, "--offset"),
    database: Optional[str] = typer.Option(None, "--database", help="Database URL (default: DATABASE_URL)"),
) -> None:
    """List a mailbox's threads, newest first."""
    log = logger.bind(command="threads", user_id=user_id)
    open_database(database)
    filters = ThreadFilters(
        user_id=user_id,
        case_id=case_id,
        has_unread=unread,
        has_attachments=attachments,
        search=search,
        date_from=date_from,
        date_to=date_to,
        participant_emails=participant,
    )
    page, total = ThreadService().get_threads(filters, limit=limit, offset=offset)
    if not page:
        console.print("[yellow]No threads match.[/yellow]")
    else:
        console.print(threads_table(page, f"Threads {offset + 1}-{offset + len(page)} of {total}"))
    log.info("threads.listed", total=total, returned=len(page))


def stats(
    user_id: str = typer.Option(..., "--user", "-u", help="Mailbox owner (user id)"),
    database: Optional[str] = typer.Option(None, "--database", help="Database URL (default: DATABASE_URL)"),
) -> None:
    """Thread counts: total, unread, uncategorized and per case."""
    open_database(database)
    result = ThreadService().get_thread_stats(user_id)
    console.print(
        f"[bold]{result.total_threads}[/bold] threads, "
        f"[bold]{result.unread_threads}[/bold] unread, "
        f"[bold]{result.uncategorized_threads}[/bold] uncategorized"
    )
    if result.threads_by_case:
        table = Table(title="Threads by case")
        table.add_column("Case", style="green")
        table.add_column("Threads", justify="right")
        for row in result.threads_by_case:
            table.add_row(row.case_id or "-", str(row.count))
        console.print(table)
    logger.info("stats.shown", user_id=user_id, total=result.total_threads)


def assign_thread(
    conversation_id: str = typer.Argument(..., help="Conversation id of the thread"),
    case_id: str = typer.Argument(..., help="Target case id"),
    user_id: str = typer.Option(..., "--user", "-u", help="Mailbox owner, recorded as the classifier"),
    database: Optional[str] = typer.Option(None, "--database", help="Database URL (default: DATABASE_URL)"),
) -> None:
    """Assign every message of a thread to a case."""
    log = logger.bind(command="assign-thread", conversation_id=conversation_id, case_id=case_id)
    open_database(database)
    try:
        message_ids = ThreadService(audit_sink=LogAuditSink()).assign_thread_to_case(
            conversation_id, case_id, user_id
        )
    except (CaseNotFoundError, MessageNotFoundError) as e:
        console.print(f"[red]Not found: {e}[/red]")
        raise typer.Exit(1) from e
    except FirmMismatchError as e:
        console.print(f"[red]Refused: {e}[/red]")
        log.error("assign_thread.firm_mismatch", error=str(e))
        raise typer.Exit(1) from e
    console.print(f"[green]Assigned {len(message_ids)} messages to {case_id}.[/green]")


def mark_read(
    conversation_id: str = typer.Argument(..., help="Conversation id of the thread"),
    user_id: str = typer.Option(..., "--user", "-u", help="Mailbox owner (user id)"),
    database: Optional[str] = typer.Option(None, "--database", help="Database URL (default: DATABASE_URL)"),
) -> None:
    """Mark every message of a thread as read."""
    open_database(database)
    count = ThreadService(audit_sink=LogAuditSink()).mark_thread_as_read(conversation_id, user_id)
    console.print(f"[green]Marked {count} messages as read.[/green]")


def reset(
    firm_id: str = typer.Option(..., "--firm", "-f", help="Firm whose messages are reset"),
    user_id: Optional[str] = typer.Option(None, "--user", "-u", help="Only this mailbox"),
    message_id: list[str] = typer.Option([], "--message", "-m", help="Only these messages (repeatable)"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask for confirmation"),
    database: Optional[str] = typer.Option(None, "--database", help="Database URL (default: DATABASE_URL)"),
) -> None:
    """Send messages back to Pending, clearing case, client and attribution."""
    scope = f"{len(message_id)} messages" if message_id else (f"mailbox {user_id}" if user_id else "all mailboxes")
    if not yes and not typer.confirm(f"Reset classification for {scope} of firm {firm_id}?"):
        raise typer.Exit(1)
    open_database(database)
    count = ClassificationService(audit_sink=LogAuditSink()).reset_classification(
        firm_id,
        user_id=user_id,
        message_ids=message_id or None,
    )
    console.print(f"[green]Reset {count} messages to Pending.[/green]")
