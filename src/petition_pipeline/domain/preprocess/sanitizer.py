"""Schema-driven payload sanitization.

Values are coerced to what the destination column can hold rather than rejected:
strings are re-encoded to clean UTF-8 and truncated to the column's byte limit,
integers are forced to ``int`` within the column range (anything non-numeric or
out of range becomes 0) and datetimes are parsed into aware UTC values. Fields
the schema does not know are left alone; the persister drops them when building
rows.
"""

from __future__ import annotations

import math
import unicodedata
from datetime import UTC, date, datetime
from typing import TYPE_CHECKING, Any

from petition_pipeline.domain.schema import FieldType
from petition_pipeline.domain.types import QueueItem

if TYPE_CHECKING:
    from petition_pipeline.domain.schema import FieldSpec, TableSchema


def sanitize(schema: TableSchema, item: QueueItem) -> QueueItem:
    """Return a copy of ``item`` whose known fields fit ``schema``."""

    payload = dict(item.payload)
    for name, spec in schema.fields.items():
        if name in payload:
            payload[name] = sanitize_value(spec, payload[name])
    return QueueItem(handle=item.handle, payload=payload)


def sanitize_value(spec: FieldSpec, value: Any) -> Any:
    match spec.type:
        case FieldType.STRING:
            if value is None:
                return None
            text = clean_text(value)
            if spec.max_length is not None:
                text = truncate_bytes(text, spec.max_length)
            return text
        case FieldType.INTEGER:
            number = coerce_int(value)
            # out-of-range values would be rejected by the driver, not stored
            return number if spec.accepts(number) else 0
        case FieldType.DATETIME:
            return coerce_datetime(value)
        case FieldType.OTHER:
            return value


def clean_text(value: Any) -> str:
    if isinstance(value, bytes | bytearray):
        text = bytes(value).decode("utf-8", errors="replace")
    else:
        text = value if isinstance(value, str) else str(value)
    # lone surrogates cannot be stored; encode/decode swaps them for "?"
    text = text.encode("utf-8", errors="replace").decode("utf-8")
    return unicodedata.normalize("NFC", text).replace("\x00", "")


def truncate_bytes(text: str, max_length: int) -> str:
    """Cut ``text`` to at most ``max_length`` UTF-8 bytes without splitting a character."""

    encoded = text.encode("utf-8")
    if len(encoded) <= max_length:
        return text
    return encoded[:max_length].decode("utf-8", errors="ignore")


def coerce_int(value: Any) -> int:
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if math.isfinite(value) else 0
    if isinstance(value, bytes | bytearray):
        value = bytes(value).decode("utf-8", errors="ignore")
    if isinstance(value, str):
        stripped = value.strip()
        try:
            return int(stripped)
        except ValueError:
            pass
        try:
            number = float(stripped)
        except ValueError:
            return 0
        return int(number) if math.isfinite(number) else 0
    try:
        return int(value)
    except (TypeError, ValueError, OverflowError):
        return 0


def coerce_datetime(value: Any) -> datetime | None:
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime(value.year, value.month, value.day)
    elif isinstance(value, int | float) and not isinstance(value, bool):
        try:
            return datetime.fromtimestamp(value, tz=UTC)
        except (OverflowError, OSError, ValueError):
            return None
    elif isinstance(value, str):
        normalized = value.strip()
        if normalized.endswith("Z"):
            normalized = normalized[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(normalized)
        except ValueError:
            return None
    else:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed.astimezone(UTC)
