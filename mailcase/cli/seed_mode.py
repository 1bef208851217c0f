"""Seed mode: load the case/client directory from JSON into the database."""

from pathlib import Path
from typing import Optional

import typer

from mailcase.config import DIRECTORY_PATH
from mailcase.db.seed_data import load_directory_file, seed_directory

from .shared import console, logger, open_database


def seed(
    directory: Path = typer.Option(DIRECTORY_PATH, "--directory", "-d", help="Path to directory.json"),
    database: Optional[str] = typer.Option(None, "--database", help="Database URL (default: DATABASE_URL)"),
) -> None:
    """Upsert firms' clients and cases from directory.json."""
    log = logger.bind(command="seed", directory=str(directory))
    log.info("seed.start")
    open_database(database)
    firms = load_directory_file(directory)
    if not firms:
        console.print(f"[red]No firms found in {directory}.[/red]")
        raise typer.Exit(1)
    counts = seed_directory(firms)
    console.print(
        f"[green]Seeded {counts['firms']} firms, {counts['clients']} clients, {counts['cases']} cases.[/green]"
    )
    log.info("seed.complete", **counts)
