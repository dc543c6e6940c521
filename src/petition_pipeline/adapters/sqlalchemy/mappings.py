"""SQLAlchemy table metadata for the relational queue and destination tables."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import TYPE_CHECKING

from sqlalchemy import (
    Column,
    DateTime,
    Dialect,
    Index,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    TypeDecorator,
)

from petition_pipeline.domain.types import KEY_MAX_BYTES, DestinationTable

if TYPE_CHECKING:
    from sqlalchemy.engine import Engine

metadata = MetaData()


class UTCDateTime(TypeDecorator[datetime]):
    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value: datetime | None, dialect: Dialect) -> datetime | None:
        _ = dialect
        if value is None:
            return None
        if value.tzinfo is None:
            value = value.replace(tzinfo=UTC)
        return value.astimezone(UTC)

    def process_result_value(self, value: datetime | None, dialect: Dialect) -> datetime | None:
        _ = dialect
        if value is None:
            return None
        return value if value.tzinfo else value.replace(tzinfo=UTC)


queue_registry_table = Table(
    "queue_registry",
    metadata,
    Column("name", String(128), primary_key=True),
    Column("created_at", UTCDateTime, nullable=False),
)

queue_item_table = Table(
    "queue_items",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("queue_name", String(128), nullable=False),
    Column("payload", Text, nullable=False),
    Column("enqueued_at", UTCDateTime, nullable=False),
    Column("lease_token", String(32), nullable=True),
    Column("leased_until", UTCDateTime, nullable=True),
    Index("ix_queue_items_queue_lease", "queue_name", "leased_until"),
)

pending_signature_table = Table(
    DestinationTable.PENDING_SIGNATURES.value,
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("secret_validation_key", String(KEY_MAX_BYTES), nullable=False, unique=True),
    Column("petition_id", Integer, nullable=True),
    Column("email", String(255), nullable=True),
    Column("first_name", String(64), nullable=True),
    Column("last_name", String(64), nullable=True),
    Column("zip", String(16), nullable=True),
    Column("country", String(2), nullable=True),
    Column("comment", String(1000), nullable=True),
    Column("ip_address", String(45), nullable=True),
    Column("user_agent", String(255), nullable=True),
    Column("signed_at", UTCDateTime, nullable=True),
    Column("preprocess_observed_at", UTCDateTime, nullable=True),
)

validation_table = Table(
    DestinationTable.VALIDATIONS.value,
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("secret_validation_key", String(KEY_MAX_BYTES), nullable=False, unique=True),
    Column("petition_id", Integer, nullable=True),
    Column("signature_id", Integer, nullable=True),
    Column("email", String(255), nullable=True),
    Column("ip_address", String(45), nullable=True),
    Column("user_agent", String(255), nullable=True),
    Column("confirmed_at", UTCDateTime, nullable=True),
    Column("validation_close", UTCDateTime, nullable=False),
    Column("preprocess_observed_at", UTCDateTime, nullable=True),
)


def table_for(destination: DestinationTable) -> Table:
    match destination:
        case DestinationTable.PENDING_SIGNATURES:
            return pending_signature_table
        case DestinationTable.VALIDATIONS:
            return validation_table


def create_all_tables(engine: Engine) -> None:
    metadata.create_all(engine, checkfirst=True)
