"""Cross-store deduplication against a destination table."""

from __future__ import annotations

from itertools import batched
from logging import getLogger
from typing import TYPE_CHECKING

from petition_pipeline.config.pipeline import DEFAULT_DEDUPE_CHUNK_SIZE
from petition_pipeline.domain.ports import metric_name

if TYPE_CHECKING:
    from collections.abc import Mapping

    from petition_pipeline.domain.ports import DestinationStore, MetricsSink
    from petition_pipeline.domain.types import DestinationTable, QueueItem

log = getLogger(__name__)

COMPONENT = "dedupe"


def dedupe(
    store: DestinationStore,
    table: DestinationTable,
    items: Mapping[str, QueueItem],
    *,
    metrics: MetricsSink,
    chunk_size: int = DEFAULT_DEDUPE_CHUNK_SIZE,
) -> dict[str, QueueItem]:
    """Return the items whose key is not yet stored in ``table``.

    Keys are looked up ``chunk_size`` at a time so a single query never grows with
    the batch. Store errors propagate; a failed lookup must not be mistaken for
    "nothing exists".
    """

    survivors: dict[str, QueueItem] = {}
    for chunk in batched(items, chunk_size):
        existing = store.existing_keys(table, chunk)
        for key in chunk:
            if key not in existing:
                survivors[key] = items[key]

    duplicates = len(items) - len(survivors)
    if duplicates:
        metrics.incr(metric_name(COMPONENT, table.value, "duplicates"), duplicates)
        log.info("Skipping %s items already present in %s", duplicates, table.value)
    return survivors
