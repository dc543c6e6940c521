"""Claim batches from a queue backend and release them after persistence."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from logging import getLogger
from typing import TYPE_CHECKING

from petition_pipeline.config.pipeline import DEFAULT_CLAIM_CHUNK_SIZE
from petition_pipeline.domain.ports import BulkQueueBackend, metric_name
from petition_pipeline.domain.preprocess.context import utc_now
from petition_pipeline.domain.types import OBSERVED_AT_FIELD, Batch

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence
    from datetime import datetime

    from petition_pipeline.domain.ports import MetricsSink, QueueBackend
    from petition_pipeline.domain.types import QueueItem

log = getLogger(__name__)

COMPONENT = "claimer"


@dataclass(slots=True)
class BatchClaimer:
    """Pull batches from ``backend`` using whichever claim capability it exposes.

    The bulk/single decision is made once, here, so no other part of the pipeline
    needs to know which kind of backend it is talking to.
    """

    backend: QueueBackend
    metrics: MetricsSink
    chunk_size: int = DEFAULT_CLAIM_CHUNK_SIZE
    clock: Callable[[], datetime] = utc_now
    _bulk: BulkQueueBackend | None = field(init=False, default=None)

    def __post_init__(self) -> None:
        if isinstance(self.backend, BulkQueueBackend):
            self._bulk = self.backend

    @property
    def queue_name(self) -> str:
        return self.backend.name

    def claim(self, batch_size: int) -> Batch:
        batch = Batch(queue_name=self.queue_name)

        depth = self.backend.count()
        self.metrics.gauge(self._metric("depth"), depth)
        if depth == 0:
            self.metrics.incr(self._metric("caught_up"))
            log.debug("Queue %s caught up", self.queue_name)
            return batch

        if self._bulk is not None:
            claimed = self._claim_bulk(self._bulk, batch_size)
        else:
            claimed = self._claim_single(batch_size)

        for item in claimed:
            batch.add(item)

        observed_at = self.clock()
        for item in batch.claimed:
            item.payload[OBSERVED_AT_FIELD] = observed_at

        self.metrics.incr(self._metric("claimed"), len(batch.claimed))
        self.metrics.gauge(self._metric("batch_size"), len(batch))
        if batch.discarded:
            self.metrics.incr(self._metric("discarded"), batch.discarded)
            log.warning(
                "Discarded %s claimed items without a usable secret validation key from %s",
                batch.discarded,
                self.queue_name,
            )
        log.debug(
            "Claimed %s items (%s unique keys) from %s",
            len(batch.claimed),
            len(batch),
            self.queue_name,
        )
        return batch

    def release(self, items: Sequence[QueueItem]) -> int:
        """Delete ``items`` from the queue and return how many were removed."""

        if not items:
            return 0
        if self._bulk is not None:
            removed = self._bulk.delete_many(items)
        else:
            for item in items:
                self.backend.delete_one(item)
            removed = len(items)
        self.metrics.incr(self._metric("removed"), removed)
        if removed < len(items):
            log.warning(
                "%s of %s deletes on %s were refused; they will be redelivered",
                len(items) - removed,
                len(items),
                self.queue_name,
            )
        return removed

    def _claim_bulk(self, backend: BulkQueueBackend, batch_size: int) -> list[QueueItem]:
        ceiling = max(1, min(self.chunk_size, backend.max_batch))
        requests = math.ceil(batch_size / ceiling)
        claimed: list[QueueItem] = []
        requested = 0
        for _ in range(requests):
            want = min(ceiling, batch_size - requested)
            requested += want
            items = backend.claim_many(want)
            if not items:
                break
            claimed.extend(items)
        return claimed

    def _claim_single(self, batch_size: int) -> list[QueueItem]:
        claimed: list[QueueItem] = []
        for _ in range(batch_size):
            item = self.backend.claim_one()
            if item is None:
                break
            # empty, keyless or unstorable-key artifacts are counted and dropped by Batch.add
            claimed.append(item)
        return claimed

    def _metric(self, event: str) -> str:
        return metric_name(COMPONENT, self.queue_name, event)
