"""Mailbox delta ingestion."""

from mailcase.ingest.delta_ingestor import DeltaIngestor

__all__ = ["DeltaIngestor"]
