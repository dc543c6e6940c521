"""Destination store wrappers that inject failures or record lookups."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from petition_pipeline.domain.errors import StoreError
from petition_pipeline.domain.types import SECRET_VALIDATION_KEY

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence

    from petition_pipeline.domain.ports import DestinationStore
    from petition_pipeline.domain.types import DestinationTable


class FlakyStore:
    """Delegate to ``inner`` but fail inserts touching ``fail_keys`` (or all inserts)."""

    def __init__(
        self,
        inner: DestinationStore,
        *,
        fail_keys: frozenset[str] = frozenset(),
        fail_all_inserts: bool = False,
        fail_lookups: bool = False,
    ) -> None:
        self.inner = inner
        self.fail_keys = fail_keys
        self.fail_all_inserts = fail_all_inserts
        self.fail_lookups = fail_lookups
        self.lookups: list[list[str]] = []
        self.inserts: list[int] = []

    def existing_keys(self, table: DestinationTable, keys: Sequence[str]) -> set[str]:
        self.lookups.append(list(keys))
        if self.fail_lookups:
            raise StoreError("lookup timed out")
        return self.inner.existing_keys(table, keys)

    def insert_rows(self, table: DestinationTable, rows: Sequence[Mapping[str, Any]]) -> None:
        self.inserts.append(len(rows))
        if self.fail_all_inserts:
            raise StoreError("connection reset")
        if any(row.get(SECRET_VALIDATION_KEY) in self.fail_keys for row in rows):
            raise StoreError("simulated constraint violation")
        self.inner.insert_rows(table, rows)
