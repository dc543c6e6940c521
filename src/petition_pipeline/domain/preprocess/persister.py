"""Multi-row persistence of preprocessed items."""

from __future__ import annotations

import time
from logging import getLogger
from typing import TYPE_CHECKING, Any, assert_never

from petition_pipeline.domain.errors import StoreError
from petition_pipeline.domain.ports import metric_name
from petition_pipeline.domain.types import VALIDATION_CLOSE_FIELD, DestinationTable

if TYPE_CHECKING:
    from collections.abc import Sequence
    from datetime import datetime, timedelta

    from petition_pipeline.domain.ports import DestinationStore, MetricsSink
    from petition_pipeline.domain.schema import TableSchema
    from petition_pipeline.domain.types import QueueItem

log = getLogger(__name__)

COMPONENT = "persister"


def validation_close_for(now: datetime, lifetime: timedelta) -> datetime:
    """Expiry of a pending validation, rounded down to whole seconds."""

    return (now + lifetime).replace(microsecond=0)


def attach_validation_close(
    items: Sequence[QueueItem], *, now: datetime, lifetime: timedelta
) -> None:
    closes_at = validation_close_for(now, lifetime)
    for item in items:
        item.payload[VALIDATION_CLOSE_FIELD] = closes_at


def build_rows(schema: TableSchema, items: Sequence[QueueItem]) -> list[dict[str, Any]]:
    """Project items onto the insertable columns any of them carries.

    Every row gets the same column set so the insert runs as one statement; a
    column missing from a particular item is written as NULL.
    """

    columns = [
        column
        for column in schema.insertable_columns
        if any(column in item.payload for item in items)
    ]
    return [{column: item.payload.get(column) for column in columns} for item in items]


def persist(
    store: DestinationStore,
    schema: TableSchema,
    table: DestinationTable,
    items: Sequence[QueueItem],
    *,
    metrics: MetricsSink,
    now: datetime,
    minimum_signature_lifetime: timedelta,
) -> bool:
    """Write ``items`` to ``table`` as one unit and report whether it succeeded.

    Failures are logged and counted but never retried here; the caller keeps the
    source items claimed so the next run picks them up again.
    """

    if not items:
        return True

    match table:
        case DestinationTable.VALIDATIONS:
            attach_validation_close(items, now=now, lifetime=minimum_signature_lifetime)
        case DestinationTable.PENDING_SIGNATURES:
            pass
        case _:
            assert_never(table)

    rows = build_rows(schema, items)
    started = time.perf_counter()
    try:
        store.insert_rows(table, rows)
    except StoreError as exc:
        metrics.incr(metric_name(COMPONENT, table.value, "error"))
        log.error(
            "Insert of %s rows into %s failed: %s",
            len(rows),
            table.value,
            exc,
        )
        return False

    metrics.incr(metric_name(COMPONENT, table.value, "added"), len(rows))
    metrics.timing(metric_name(COMPONENT, table.value, "latency"), time.perf_counter() - started)
    return True
