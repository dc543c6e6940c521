from __future__ import annotations

from petition_pipeline.domain.preprocess.claimer import BatchClaimer
from petition_pipeline.domain.types import OBSERVED_AT_FIELD
from tests.support.payloads import FIXED_NOW, make_payload
from tests.support.queues import InMemoryBulkQueue, InMemoryQueue, RecordingMetrics


def _payloads(count: int) -> list[dict[str, object]]:
    return [make_payload(f"key-{index}") for index in range(count)]


def _claimer(queue: InMemoryQueue, metrics: RecordingMetrics, **kwargs: object) -> BatchClaimer:
    return BatchClaimer(backend=queue, metrics=metrics, clock=lambda: FIXED_NOW, **kwargs)  # type: ignore[arg-type]


def test_empty_queue_returns_without_claiming(metrics: RecordingMetrics) -> None:
    single = InMemoryQueue()
    bulk = InMemoryBulkQueue()

    assert len(_claimer(single, metrics).claim(25)) == 0
    assert len(_claimer(bulk, metrics).claim(25)) == 0

    assert single.claim_calls == 0
    assert bulk.claim_many_calls == []
    assert metrics.counts["claimer.signatures.caught_up"] == 1
    assert metrics.counts["claimer.validations.caught_up"] == 1


def test_bulk_claim_issues_one_request_per_ceiling(metrics: RecordingMetrics) -> None:
    queue = InMemoryBulkQueue(payloads=_payloads(25))

    batch = _claimer(queue, metrics).claim(25)

    assert queue.claim_many_calls == [10, 10, 5]
    assert len(batch) == 25
    assert set(batch.items) == {f"key-{index}" for index in range(25)}


def test_bulk_claim_stops_once_queue_is_drained(metrics: RecordingMetrics) -> None:
    queue = InMemoryBulkQueue(payloads=_payloads(7))

    batch = _claimer(queue, metrics).claim(40)

    assert len(batch) == 7
    assert queue.claim_many_calls == [10, 10]


def test_configured_chunk_size_below_backend_ceiling_wins(metrics: RecordingMetrics) -> None:
    queue = InMemoryBulkQueue(payloads=_payloads(10))

    batch = _claimer(queue, metrics, chunk_size=4).claim(10)

    assert queue.claim_many_calls == [4, 4, 2]
    assert len(batch) == 10


def test_single_item_claim_stops_at_batch_size(metrics: RecordingMetrics) -> None:
    queue = InMemoryQueue(payloads=_payloads(5))

    batch = _claimer(queue, metrics).claim(3)

    assert len(batch) == 3
    assert queue.claim_calls == 3
    assert queue.leased == 3


def test_single_item_claim_stops_when_queue_runs_dry(metrics: RecordingMetrics) -> None:
    queue = InMemoryQueue(payloads=_payloads(2))

    batch = _claimer(queue, metrics).claim(5)

    assert len(batch) == 2
    assert queue.claim_calls == 3


def test_items_without_key_are_discarded(metrics: RecordingMetrics) -> None:
    queue = InMemoryQueue(payloads=[make_payload(None), {}, make_payload("kept")])

    batch = _claimer(queue, metrics).claim(10)

    assert list(batch.items) == ["kept"]
    assert batch.discarded == 2
    assert metrics.counts["claimer.signatures.discarded"] == 2


def test_repeated_key_keeps_last_claim(metrics: RecordingMetrics) -> None:
    queue = InMemoryQueue(
        payloads=[
            make_payload("dup", email="first@example.org"),
            make_payload("dup", email="second@example.org"),
        ]
    )

    batch = _claimer(queue, metrics).claim(10)

    assert len(batch) == 1
    assert batch.items["dup"].payload["email"] == "second@example.org"
    assert len(batch.claimed) == 2


def test_claimed_items_are_stamped_and_counted(metrics: RecordingMetrics) -> None:
    queue = InMemoryQueue(payloads=_payloads(3))

    batch = _claimer(queue, metrics).claim(3)

    assert all(item.payload[OBSERVED_AT_FIELD] == FIXED_NOW for item in batch)
    assert metrics.gauges["claimer.signatures.depth"] == 3
    assert metrics.gauges["claimer.signatures.batch_size"] == 3
    assert metrics.counts["claimer.signatures.claimed"] == 3


def test_release_uses_bulk_delete_when_available(metrics: RecordingMetrics) -> None:
    queue = InMemoryBulkQueue(payloads=_payloads(25))
    claimer = _claimer(queue, metrics)
    batch = claimer.claim(25)

    removed = claimer.release(batch.claimed)

    assert removed == 25
    assert queue.delete_many_calls == [10, 10, 5]
    assert queue.delete_calls == 0
    assert queue.count() == 0
    assert metrics.counts["claimer.validations.removed"] == 25


def test_release_falls_back_to_single_deletes(metrics: RecordingMetrics) -> None:
    queue = InMemoryQueue(payloads=_payloads(4))
    claimer = _claimer(queue, metrics)
    batch = claimer.claim(4)

    claimer.release(batch.claimed)

    assert queue.delete_calls == 4
    assert queue.count() == 0


def test_release_reports_only_confirmed_bulk_deletes(metrics: RecordingMetrics) -> None:
    queue = InMemoryBulkQueue(payloads=_payloads(5))
    claimer = _claimer(queue, metrics)
    batch = claimer.claim(5)
    queue.refuse_handles = {batch.claimed[1].handle, batch.claimed[3].handle}

    removed = claimer.release(batch.claimed)

    assert removed == 3
    assert metrics.counts["claimer.validations.removed"] == 3
    assert queue.count() == 2
    assert queue.leased == 2
