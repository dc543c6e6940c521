"""Relational-table-backed queue.

Items live in ``queue_items``; a claim stamps a random lease token and a lease
deadline on one row. Rows whose deadline passed are claimable again, which is
what gives at-least-once delivery when a worker dies mid-batch.
"""

from __future__ import annotations

import json
import uuid
from datetime import timedelta
from logging import getLogger
from typing import TYPE_CHECKING, Any

from sqlalchemy import delete, func, insert, or_, select, update
from sqlalchemy.exc import SQLAlchemyError

from petition_pipeline.adapters.sqlalchemy.mappings import (
    queue_item_table,
    queue_registry_table,
)
from petition_pipeline.domain.errors import QueueBackendError
from petition_pipeline.domain.preprocess.context import utc_now
from petition_pipeline.domain.types import QueueItem

if TYPE_CHECKING:
    from collections.abc import Callable
    from datetime import datetime

    from sqlalchemy.engine import Connection, Engine

    from petition_pipeline.domain.types import Payload

log = getLogger(__name__)

_CLAIM_ATTEMPTS = 5


class SqlAlchemyQueue:
    """Single-item queue stored in a relational table."""

    def __init__(
        self,
        engine: Engine,
        name: str,
        *,
        visibility_timeout: timedelta = timedelta(minutes=5),
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.engine = engine
        self.name = name
        self.visibility_timeout = visibility_timeout
        self._clock = clock

    def create_queue(self) -> None:
        table = queue_registry_table
        try:
            with self.engine.begin() as conn:
                queue_item_table.create(conn, checkfirst=True)
                table.create(conn, checkfirst=True)
                exists = conn.execute(
                    select(table.c.name).where(table.c.name == self.name)
                ).scalar_one_or_none()
                if exists is None:
                    conn.execute(insert(table).values(name=self.name, created_at=self._clock()))
                    log.info("Provisioned queue %s", self.name)
        except SQLAlchemyError as exc:
            raise QueueBackendError(f"Could not provision queue {self.name}: {exc}") from exc

    def enqueue(self, payload: Payload) -> bool:
        try:
            body = json.dumps(payload, default=str)
        except (TypeError, ValueError):
            log.exception("Payload for %s is not serialisable", self.name)
            return False
        try:
            with self.engine.begin() as conn:
                conn.execute(
                    insert(queue_item_table).values(
                        queue_name=self.name, payload=body, enqueued_at=self._clock()
                    )
                )
        except SQLAlchemyError:
            log.exception("Enqueue to %s failed", self.name)
            return False
        return True

    def claim_one(self) -> QueueItem | None:
        try:
            with self.engine.begin() as conn:
                return self._claim(conn)
        except SQLAlchemyError as exc:
            raise QueueBackendError(f"Claim from {self.name} failed: {exc}") from exc

    def delete_one(self, item: QueueItem) -> None:
        row_id, token = _parse_handle(item.handle)
        table = queue_item_table
        try:
            with self.engine.begin() as conn:
                deleted = conn.execute(
                    delete(table).where(table.c.id == row_id).where(table.c.lease_token == token)
                ).rowcount
        except SQLAlchemyError as exc:
            raise QueueBackendError(f"Delete from {self.name} failed: {exc}") from exc
        if deleted == 0:
            log.warning("Lease on item %s of %s was lost before delete", row_id, self.name)

    def count(self) -> int:
        table = queue_item_table
        try:
            with self.engine.connect() as conn:
                return conn.execute(
                    select(func.count()).select_from(table).where(table.c.queue_name == self.name)
                ).scalar_one()
        except SQLAlchemyError as exc:
            raise QueueBackendError(f"Count of {self.name} failed: {exc}") from exc

    def _claim(self, conn: Connection) -> QueueItem | None:
        table = queue_item_table
        now = self._clock()
        claimable = or_(table.c.leased_until.is_(None), table.c.leased_until < now)
        for _ in range(_CLAIM_ATTEMPTS):
            row = conn.execute(
                select(table.c.id, table.c.payload)
                .where(table.c.queue_name == self.name)
                .where(claimable)
                .order_by(table.c.id)
                .limit(1)
            ).first()
            if row is None:
                return None
            token = uuid.uuid4().hex
            updated = conn.execute(
                update(table)
                .where(table.c.id == row.id)
                .where(claimable)
                .values(lease_token=token, leased_until=now + self.visibility_timeout)
            ).rowcount
            if updated == 1:
                return QueueItem(handle=f"{row.id}:{token}", payload=_decode(row.payload))
            # another worker leased this row between select and update
        return None


def _decode(body: str) -> dict[str, Any]:
    try:
        payload = json.loads(body)
    except ValueError:
        log.warning("Queue item body is not valid JSON")
        return {}
    return payload if isinstance(payload, dict) else {}


def _parse_handle(handle: str) -> tuple[int, str]:
    row_id, _, token = handle.partition(":")
    try:
        return int(row_id), token
    except ValueError as exc:
        raise QueueBackendError(f"Malformed queue handle: {handle!r}") from exc
