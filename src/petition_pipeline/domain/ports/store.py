"""Destination store contract."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence

    from petition_pipeline.domain.types import DestinationTable


@runtime_checkable
class DestinationStore(Protocol):
    """Keyed lookups and atomic multi-row inserts against destination tables."""

    def existing_keys(self, table: DestinationTable, keys: Sequence[str]) -> set[str]:
        """Return the subset of ``keys`` already present in ``table``."""
        ...

    def insert_rows(self, table: DestinationTable, rows: Sequence[Mapping[str, Any]]) -> None:
        """Insert all ``rows`` in one transaction or none of them; raise StoreError on failure."""
        ...
