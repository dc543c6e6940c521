"""SQLAlchemy adapter package: relational queue, destination store and schemas."""

from __future__ import annotations

from .engine import StartupError, configured_engine, is_started, shutdown, startup
from .mappings import (
    create_all_tables,
    metadata,
    pending_signature_table,
    queue_item_table,
    table_for,
    validation_table,
)
from .queue import SqlAlchemyQueue
from .store import SqlAlchemyDestinationStore, SqlAlchemySchemaProvider

__all__ = [
    "SqlAlchemyDestinationStore",
    "SqlAlchemyQueue",
    "SqlAlchemySchemaProvider",
    "StartupError",
    "configured_engine",
    "create_all_tables",
    "is_started",
    "metadata",
    "pending_signature_table",
    "queue_item_table",
    "shutdown",
    "startup",
    "table_for",
    "validation_table",
]
