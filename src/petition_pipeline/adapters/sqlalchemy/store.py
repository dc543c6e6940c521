"""Destination store and schema provider backed by SQLAlchemy tables."""

from __future__ import annotations

from functools import cache
from typing import TYPE_CHECKING, Any

from sqlalchemy import BigInteger, DateTime, Integer, SmallInteger, String, insert, select
from sqlalchemy.exc import SQLAlchemyError

from petition_pipeline.adapters.sqlalchemy.mappings import UTCDateTime, table_for
from petition_pipeline.domain.errors import StoreError
from petition_pipeline.domain.schema import FieldSpec, FieldType, TableSchema
from petition_pipeline.domain.types import SECRET_VALIDATION_KEY

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence

    from sqlalchemy import Column, Table
    from sqlalchemy.engine import Engine

    from petition_pipeline.domain.types import DestinationTable


class SqlAlchemyDestinationStore:
    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    def existing_keys(self, table: DestinationTable, keys: Sequence[str]) -> set[str]:
        if not keys:
            return set()
        target = table_for(table)
        key_column = target.c[SECRET_VALIDATION_KEY]
        try:
            with self.engine.connect() as conn:
                rows = conn.execute(select(key_column).where(key_column.in_(list(keys))))
                return {row[0] for row in rows}
        except SQLAlchemyError as exc:
            raise StoreError(f"Key lookup on {table.value} failed: {exc}") from exc

    def insert_rows(self, table: DestinationTable, rows: Sequence[Mapping[str, Any]]) -> None:
        if not rows:
            return
        target = table_for(table)
        try:
            with self.engine.begin() as conn:
                conn.execute(insert(target), [dict(row) for row in rows])
        except (SQLAlchemyError, OverflowError) as exc:
            raise StoreError(f"{type(exc).__name__}: {exc}") from exc


class SqlAlchemySchemaProvider:
    """Derive destination schemas from the table metadata."""

    def schema_for(self, table: DestinationTable) -> TableSchema:
        return _schema_for_table(table_for(table))


@cache
def _schema_for_table(table: Table) -> TableSchema:
    fields = {column.name: _field_spec(column) for column in table.columns}
    generated = frozenset(
        column.name
        for column in table.columns
        if column.primary_key and column.autoincrement in (True, "auto")
        and isinstance(column.type, Integer)
    )
    return TableSchema(fields=fields, generated=generated)


def _field_spec(column: Column[Any]) -> FieldSpec:
    column_type = column.type
    if isinstance(column_type, String):
        return FieldSpec(FieldType.STRING, column_type.length)
    if isinstance(column_type, Integer):
        limit = 2 ** (_integer_bits(column_type) - 1)
        return FieldSpec(FieldType.INTEGER, min_value=-limit, max_value=limit - 1)
    if isinstance(column_type, UTCDateTime | DateTime):
        return FieldSpec(FieldType.DATETIME)
    return FieldSpec(FieldType.OTHER)


def _integer_bits(column_type: Integer) -> int:
    # portable widths: SMALLINT, INTEGER and BIGINT are 16, 32 and 64 bits everywhere
    if isinstance(column_type, SmallInteger):
        return 16
    if isinstance(column_type, BigInteger):
        return 64
    return 32
