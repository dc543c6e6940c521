"""Core value types shared by queue adapters and preprocessing stages."""

from __future__ import annotations

import unicodedata
from dataclasses import dataclass, field
from enum import StrEnum
from typing import TYPE_CHECKING, Any, Final

from petition_pipeline.domain.errors import UnknownDestinationError

if TYPE_CHECKING:
    from collections.abc import Iterator

type Payload = dict[str, Any]

SECRET_VALIDATION_KEY: Final[str] = "secret_validation_key"
OBSERVED_AT_FIELD: Final[str] = "preprocess_observed_at"
VALIDATION_CLOSE_FIELD: Final[str] = "validation_close"
# width of the unique key column in every destination table
KEY_MAX_BYTES: Final[int] = 64


class DestinationTable(StrEnum):
    """Closed set of tables the preprocessing stages may write to."""

    PENDING_SIGNATURES = "pending_signatures"
    VALIDATIONS = "signature_validations"

    @classmethod
    def parse(cls, name: str) -> DestinationTable:
        try:
            return cls(name)
        except ValueError as exc:
            raise UnknownDestinationError(f"Unknown destination table: {name!r}") from exc


@dataclass(slots=True)
class QueueItem:
    """A leased queue entry: the backend's claim token plus the decoded payload."""

    handle: str
    payload: Payload = field(default_factory=dict)

    @property
    def key(self) -> str | None:
        value = self.payload.get(SECRET_VALIDATION_KEY)
        if isinstance(value, str) and is_storable_key(value):
            return value
        return None


def is_storable_key(value: str) -> bool:
    """Whether ``value`` is written to the key column exactly as it was looked up.

    Keys that sanitization would rewrite (too long, not NFC, carrying NUL or lone
    surrogates) are rejected so deduplication and the unique constraint agree.
    """

    if not value.strip() or "\x00" in value:
        return False
    try:
        encoded = value.encode("utf-8")
    except UnicodeEncodeError:
        return False
    return len(encoded) <= KEY_MAX_BYTES and unicodedata.is_normalized("NFC", value)


@dataclass(slots=True)
class Batch:
    """Claimed items keyed by secret validation key.

    ``claimed`` keeps every keyed item in claim order, including ones shadowed by a
    later claim of the same key, so the whole lease set can be released after a
    successful persist.
    """

    queue_name: str
    items: dict[str, QueueItem] = field(default_factory=dict)
    claimed: list[QueueItem] = field(default_factory=list)
    discarded: int = 0

    def add(self, item: QueueItem) -> None:
        key = item.key
        if key is None:
            self.discarded += 1
            return
        # last claim wins for a repeated key
        self.items[key] = item
        self.claimed.append(item)

    def __len__(self) -> int:
        return len(self.items)

    def __iter__(self) -> Iterator[QueueItem]:
        return iter(self.items.values())

    def __bool__(self) -> bool:
        return bool(self.items)
