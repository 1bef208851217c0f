"""CLI commands: one module per mode (seed, sync, reclassify, threads, validate-config)."""

from typer import Typer

from mailcase.cli import reclassify_mode, seed_mode, sync_mode, threads_mode, validate_config as validate_config_module

app = Typer(help="Mailbox ingestion, threading and case classification")


def register_commands() -> None:
    """Register all CLI commands on the global app."""
    app.command()(seed_mode.seed)
    app.command()(sync_mode.sync)
    app.command()(reclassify_mode.reclassify)
    app.command()(threads_mode.threads)
    app.command()(threads_mode.stats)
    app.command(name="assign-thread")(threads_mode.assign_thread)
    app.command(name="mark-read")(threads_mode.mark_read)
    app.command()(threads_mode.reset)
    app.command(name="validate-config")(validate_config_module.validate_config)


register_commands()
