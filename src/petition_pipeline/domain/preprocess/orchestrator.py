"""Stage-based orchestrator for queue preprocessing.

Two independent stages run one after the other on each invocation:

* ``signatures``: ingestion queue -> sanitize -> per-item hand-off into the
  pending table; only items that were handed off are deleted.
* ``validations``: confirmation queue -> dedupe -> sanitize -> one batch insert
  into the validations table; the whole claimed batch is deleted only if that
  insert succeeded.

Neither stage retries internally. Anything not deleted stays leased until its
visibility timeout runs out and is picked up again by a later run.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from logging import getLogger
from typing import TYPE_CHECKING, Protocol

from petition_pipeline.domain.errors import QueueBackendError, StoreError
from petition_pipeline.domain.ports import metric_name
from petition_pipeline.domain.preprocess.claimer import BatchClaimer
from petition_pipeline.domain.preprocess.context import StageContext, StageResult
from petition_pipeline.domain.preprocess.deduplication import dedupe
from petition_pipeline.domain.preprocess.persister import persist
from petition_pipeline.domain.preprocess.sanitizer import sanitize
from petition_pipeline.domain.types import OBSERVED_AT_FIELD, DestinationTable

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence

    from petition_pipeline.domain.ports import QueueBackend
    from petition_pipeline.domain.schema import TableSchema
    from petition_pipeline.domain.types import QueueItem

log = getLogger(__name__)


class PreprocessStage(Protocol):
    """Contract implemented by each preprocessing stage."""

    name: str

    def run(self, context: StageContext) -> StageResult: ...


@dataclass(slots=True)
class SignatureStage:
    """Hand newly submitted signatures to the pending table one by one."""

    queue: QueueBackend
    name: str = "signatures"
    table: DestinationTable = DestinationTable.PENDING_SIGNATURES

    def run(self, context: StageContext) -> StageResult:
        result = StageResult(stage=self.name)
        claimer = _claimer_for(self.queue, context)
        try:
            batch = claimer.claim(context.config.signatures_batch_size)
            result.claimed = len(batch.claimed)
            if not batch:
                return result

            fresh = dedupe(
                context.store,
                self.table,
                batch.items,
                metrics=context.metrics,
                chunk_size=context.config.dedupe_chunk_size,
            )
            # keys already in the pending table were handed off by an earlier run
            handed_off = {key for key in batch.items if key not in fresh}
            result.duplicates = len(handed_off)

            schema = context.schemas.schema_for(self.table)
            delivered: list[QueueItem] = []
            for key, item in fresh.items():
                clean = sanitize(schema, item)
                if self._hand_off(context, schema, clean):
                    handed_off.add(key)
                    delivered.append(clean)
                    result.persisted += 1
                else:
                    result.failed += 1
                    log.warning(
                        "Hand-off of %s from %s failed; leaving it for retry",
                        _short_key(key),
                        self.queue.name,
                    )
            _record_item_latency(context, self.table, delivered)

            releasable = [item for item in batch.claimed if item.key in handed_off]
            result.deleted = claimer.release(releasable)
        except (QueueBackendError, StoreError):
            log.exception("Stage %s aborted for queue %s", self.name, self.queue.name)
            result.ok = False
        return result

    def _hand_off(self, context: StageContext, schema: TableSchema, item: QueueItem) -> bool:
        return persist(
            context.store,
            schema,
            self.table,
            [item],
            metrics=context.metrics,
            now=context.clock(),
            minimum_signature_lifetime=context.config.minimum_signature_lifetime,
        )


@dataclass(slots=True)
class ValidationStage:
    """Move confirmed validations into the validations table as one atomic batch."""

    queue: QueueBackend
    name: str = "validations"
    table: DestinationTable = DestinationTable.VALIDATIONS

    def run(self, context: StageContext) -> StageResult:
        result = StageResult(stage=self.name)
        claimer = _claimer_for(self.queue, context)
        try:
            batch = claimer.claim(context.config.validations_batch_size)
            result.claimed = len(batch.claimed)
            if not batch:
                return result

            fresh = dedupe(
                context.store,
                self.table,
                batch.items,
                metrics=context.metrics,
                chunk_size=context.config.dedupe_chunk_size,
            )
            result.duplicates = len(batch) - len(fresh)

            schema = context.schemas.schema_for(self.table)
            clean = [sanitize(schema, item) for item in fresh.values()]
            if not persist(
                context.store,
                schema,
                self.table,
                clean,
                metrics=context.metrics,
                now=context.clock(),
                minimum_signature_lifetime=context.config.minimum_signature_lifetime,
            ):
                result.failed = len(clean)
                result.ok = False
                log.error(
                    "Keeping %s claimed items on %s after failed insert",
                    len(batch.claimed),
                    self.queue.name,
                )
                return result

            result.persisted = len(clean)
            _record_item_latency(context, self.table, clean)
            result.deleted = claimer.release(batch.claimed)
        except (QueueBackendError, StoreError):
            log.exception("Stage %s aborted for queue %s", self.name, self.queue.name)
            result.ok = False
        return result


@dataclass(slots=True)
class PreprocessPipeline:
    """Compose and execute the ordered preprocessing stages."""

    stages: Sequence[PreprocessStage] = field(default_factory=tuple)

    def with_stage(self, stage: PreprocessStage) -> PreprocessPipeline:
        """Return a new pipeline appending ``stage`` at the end."""

        return PreprocessPipeline(stages=(*self.stages, stage))

    def run(self, context: StageContext) -> list[StageResult]:
        """Execute the configured stages in order; one stage failing never skips the next."""

        results: list[StageResult] = []
        for stage in self.stages:
            started = time.perf_counter()
            try:
                result = stage.run(context)
            except Exception:
                # stages are independent; an unforeseen failure in one must not skip the rest
                log.exception("Stage %s crashed", stage.name)
                result = StageResult(stage=stage.name, ok=False)
            context.metrics.timing(
                metric_name("pipeline", stage.name, "duration"), time.perf_counter() - started
            )
            log.info(
                "Stage %s: claimed=%s duplicates=%s persisted=%s failed=%s deleted=%s ok=%s",
                result.stage,
                result.claimed,
                result.duplicates,
                result.persisted,
                result.failed,
                result.deleted,
                result.ok,
            )
            results.append(result)
        return results


def _claimer_for(queue: QueueBackend, context: StageContext) -> BatchClaimer:
    return BatchClaimer(
        backend=queue,
        metrics=context.metrics,
        chunk_size=context.config.claim_chunk_size,
        clock=context.clock,
    )


def _record_item_latency(
    context: StageContext, table: DestinationTable, items: Iterable[QueueItem]
) -> None:
    now = context.clock()
    name = metric_name("pipeline", table.value, "item_latency")
    for item in items:
        observed_at = item.payload.get(OBSERVED_AT_FIELD)
        if observed_at is not None:
            context.metrics.timing(name, max(0.0, (now - observed_at).total_seconds()))


def _short_key(key: str) -> str:
    return f"{key[:6]}..." if len(key) > 6 else key
