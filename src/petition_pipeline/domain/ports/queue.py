"""Queue backend contracts.

Every backend is bound to one named queue. Bulk claim/delete is an optional
capability: backends that can fetch several items per request additionally
satisfy :class:`BulkQueueBackend` and advertise their per-request ceiling.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from collections.abc import Sequence

    from petition_pipeline.domain.types import Payload, QueueItem


@runtime_checkable
class QueueBackend(Protocol):
    """Single-item lease semantics shared by every queue implementation."""

    name: str

    def create_queue(self) -> None:
        """Provision the queue; a no-op when it already exists."""
        ...

    def enqueue(self, payload: Payload) -> bool:
        """Durably store ``payload`` and report whether it was accepted."""
        ...

    def claim_one(self) -> QueueItem | None:
        """Lease the next unclaimed item, or return None when the queue is empty."""
        ...

    def delete_one(self, item: QueueItem) -> None:
        """Permanently remove a previously claimed item."""
        ...

    def count(self) -> int:
        """Approximate depth (claimed and unclaimed); for observability only."""
        ...


@runtime_checkable
class BulkQueueBackend(QueueBackend, Protocol):
    """Queue whose transport can claim and delete several items per request."""

    max_batch: int

    def claim_many(self, max_count: int) -> list[QueueItem]: ...

    def delete_many(self, items: Sequence[QueueItem]) -> int:
        """Delete ``items`` and return how many the transport confirmed."""
        ...
