"""Validate settings and the directory file: thresholds, weights, firm/case/client references."""

from pathlib import Path

import typer
from pydantic import ValidationError
from rich.table import Table

from mailcase.classification.scorer import ScoringConfig
from mailcase.config import DATABASE_URL, DIRECTORY_PATH
from mailcase.db.seed_data import load_directory_file

from .shared import console, logger


def _directory_errors(firms: list[dict]) -> list[str]:
    errors = []
    client_firm: dict[str, str] = {}
    for firm in firms:
        firm_id = firm.get("firm_id")
        if not firm_id:
            errors.append("Firm entry without firm_id")
            continue
        for client in firm.get("clients", []):
            client_id = client.get("client_id")
            if client_id in client_firm and client_firm[client_id] != firm_id:
                errors.append(f"Client {client_id!r} is listed under firms {client_firm[client_id]!r} and {firm_id!r}")
            client_firm[client_id] = firm_id

    for firm in firms:
        firm_id = firm.get("firm_id")
        numbers: dict[str, str] = {}
        for case in firm.get("cases", []):
            case_id = case.get("case_id")
            number = (case.get("case_number") or case_id or "").strip().lower()
            if number in numbers:
                errors.append(f"Firm {firm_id!r}: case number {number!r} used by {numbers[number]!r} and {case_id!r}")
            numbers[number] = case_id
            client_id = case.get("client_id")
            if client_id and client_firm.get(client_id) not in (None, firm_id):
                errors.append(
                    f"Case {case_id!r} of firm {firm_id!r} references client {client_id!r} "
                    f"of firm {client_firm[client_id]!r}"
                )
    return errors


def validate_config(
    directory: Path = typer.Option(DIRECTORY_PATH, "--directory", "-d", help="Path to directory.json"),
) -> None:
    """Check scoring thresholds/weights and the directory file, print a summary table."""
    log = logger.bind(command="validate-config")
    log.info("validate_config.start")

    try:
        scoring = ScoringConfig()
    except ValidationError as e:
        console.print(f"[red]Config error: {e}[/red]")
        log.error("validate_config.fail", error=str(e))
        raise SystemExit(1) from e

    try:
        firms = load_directory_file(directory)
    except ValueError as e:
        console.print(f"[red]Directory error: {e}[/red]")
        log.error("validate_config.fail", error=str(e))
        raise SystemExit(1) from e

    errors = _directory_errors(firms)
    if errors:
        for msg in errors:
            console.print(f"[red]{msg}[/red]")
        log.error("validate_config.validation_failed", errors=errors)
        raise SystemExit(1)

    table = Table(title="Scoring settings")
    table.add_column("Setting", style="cyan")
    table.add_column("Value", justify="right")
    for name, value in scoring.model_dump().items():
        table.add_row(name, str(value))
    console.print(table)

    cases = sum(len(f.get("cases", [])) for f in firms)
    clients = sum(len(f.get("clients", [])) for f in firms)
    console.print(f"Database: {DATABASE_URL}")
    console.print(f"[green]Config valid. {len(firms)} firms, {clients} clients, {cases} cases.[/green]")
    log.info("validate_config.ok", firms=len(firms), clients=clients, cases=cases)
