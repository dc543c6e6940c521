"""Destination schema description consumed by the sanitizer and persister."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from collections.abc import Mapping

    from petition_pipeline.domain.types import DestinationTable


class FieldType(StrEnum):
    STRING = "string"
    INTEGER = "integer"
    DATETIME = "datetime"
    OTHER = "other"


@dataclass(frozen=True, slots=True)
class FieldSpec:
    type: FieldType
    max_length: int | None = None
    min_value: int | None = None
    max_value: int | None = None

    def accepts(self, value: int) -> bool:
        if self.min_value is not None and value < self.min_value:
            return False
        return self.max_value is None or value <= self.max_value


@dataclass(frozen=True, slots=True)
class TableSchema:
    """Field specs of one destination table plus its generated (non-insertable) columns."""

    fields: Mapping[str, FieldSpec]
    generated: frozenset[str] = field(default_factory=frozenset)

    @property
    def insertable_columns(self) -> tuple[str, ...]:
        return tuple(name for name in self.fields if name not in self.generated)


@runtime_checkable
class SchemaProvider(Protocol):
    def schema_for(self, table: DestinationTable) -> TableSchema: ...
