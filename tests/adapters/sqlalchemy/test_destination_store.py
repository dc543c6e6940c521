from __future__ import annotations

import pytest
from sqlalchemy import select
from sqlalchemy.engine import Engine  # noqa: TC002

from petition_pipeline.adapters.sqlalchemy import (
    SqlAlchemyDestinationStore,
    SqlAlchemySchemaProvider,
    pending_signature_table,
    table_for,
    validation_table,
)
from petition_pipeline.domain.errors import StoreError
from petition_pipeline.domain.schema import FieldSpec, FieldType
from petition_pipeline.domain.types import DestinationTable
from tests.support.payloads import FIXED_NOW


def test_table_for_maps_each_destination() -> None:
    assert table_for(DestinationTable.PENDING_SIGNATURES) is pending_signature_table
    assert table_for(DestinationTable.VALIDATIONS) is validation_table


def test_existing_keys_returns_only_present_keys(store: SqlAlchemyDestinationStore) -> None:
    store.insert_rows(
        DestinationTable.PENDING_SIGNATURES,
        [{"secret_validation_key": "a"}, {"secret_validation_key": "b"}],
    )

    found = store.existing_keys(DestinationTable.PENDING_SIGNATURES, ["a", "c", "b"])

    assert found == {"a", "b"}
    assert store.existing_keys(DestinationTable.VALIDATIONS, ["a"]) == set()
    assert store.existing_keys(DestinationTable.PENDING_SIGNATURES, []) == set()


def test_insert_rows_is_all_or_nothing(
    sqlite_engine: Engine, store: SqlAlchemyDestinationStore
) -> None:
    store.insert_rows(
        DestinationTable.VALIDATIONS,
        [{"secret_validation_key": "dup", "validation_close": FIXED_NOW}],
    )

    with pytest.raises(StoreError, match="IntegrityError"):
        store.insert_rows(
            DestinationTable.VALIDATIONS,
            [
                {"secret_validation_key": "new", "validation_close": FIXED_NOW},
                {"secret_validation_key": "dup", "validation_close": FIXED_NOW},
            ],
        )

    with sqlite_engine.connect() as conn:
        keys = list(conn.execute(select(validation_table.c.secret_validation_key)).scalars())
    assert keys == ["dup"]


def test_datetimes_round_trip_as_utc(
    sqlite_engine: Engine, store: SqlAlchemyDestinationStore
) -> None:
    store.insert_rows(
        DestinationTable.VALIDATIONS,
        [{"secret_validation_key": "k", "validation_close": FIXED_NOW}],
    )

    with sqlite_engine.connect() as conn:
        stored = conn.execute(select(validation_table.c.validation_close)).scalar_one()
    assert stored == FIXED_NOW
    assert stored.tzinfo is not None


def test_schema_provider_reads_column_limits(schemas: SqlAlchemySchemaProvider) -> None:
    schema = schemas.schema_for(DestinationTable.PENDING_SIGNATURES)

    assert schema.generated == frozenset({"id"})
    assert "id" not in schema.insertable_columns
    assert schema.fields["first_name"] == FieldSpec(FieldType.STRING, 64)
    assert schema.fields["country"] == FieldSpec(FieldType.STRING, 2)
    assert schema.fields["petition_id"] == FieldSpec(
        FieldType.INTEGER, min_value=-(2**31), max_value=2**31 - 1
    )
    assert schema.fields["signed_at"] == FieldSpec(FieldType.DATETIME)


def test_validation_schema_includes_close_column(schemas: SqlAlchemySchemaProvider) -> None:
    schema = schemas.schema_for(DestinationTable.VALIDATIONS)

    assert "validation_close" in schema.insertable_columns
    assert schema.insertable_columns[0] == "secret_validation_key"


def test_driver_overflow_surfaces_as_store_error(store: SqlAlchemyDestinationStore) -> None:
    with pytest.raises(StoreError, match="OverflowError"):
        store.insert_rows(
            DestinationTable.PENDING_SIGNATURES,
            [{"secret_validation_key": "big", "petition_id": 10**20}],
        )

    assert store.existing_keys(DestinationTable.PENDING_SIGNATURES, ["big"]) == set()
