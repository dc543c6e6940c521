"""Queue backend selection and connection settings."""

from __future__ import annotations

import os
from dataclasses import dataclass
from enum import StrEnum

from .env import env_positive_int, require_env_var
from .errors import ConfigurationError

DEFAULT_SIGNATURE_QUEUE = "signatures"
DEFAULT_VALIDATION_QUEUE = "validations"
DEFAULT_VISIBILITY_TIMEOUT_SECONDS = 300


class QueueBackendKind(StrEnum):
    SQL = "sql"
    REDIS = "redis"
    SQS = "sqs"


@dataclass(frozen=True, slots=True)
class QueueConfig:
    backend: QueueBackendKind = QueueBackendKind.SQL
    signature_queue: str = DEFAULT_SIGNATURE_QUEUE
    validation_queue: str = DEFAULT_VALIDATION_QUEUE
    visibility_timeout_seconds: int = DEFAULT_VISIBILITY_TIMEOUT_SECONDS
    redis_url: str | None = None
    sqs_region: str | None = None
    sqs_endpoint_url: str | None = None
    sqs_wait_seconds: int = 0


def _parse_backend(raw: str) -> QueueBackendKind:
    try:
        return QueueBackendKind(raw.strip().lower())
    except ValueError as exc:
        choices = ", ".join(kind.value for kind in QueueBackendKind)
        raise ConfigurationError(
            f"QUEUE_BACKEND must be one of {choices}, got {raw!r}"
        ) from exc


def get_queue_config() -> QueueConfig:
    backend = _parse_backend(os.getenv("QUEUE_BACKEND", QueueBackendKind.SQL.value))
    redis_url = require_env_var("REDIS_URL") if backend is QueueBackendKind.REDIS else None
    wait_raw = os.getenv("SQS_WAIT_SECONDS", "0").strip() or "0"
    try:
        wait_seconds = int(wait_raw)
    except ValueError as exc:
        raise ConfigurationError(f"SQS_WAIT_SECONDS must be an integer, got {wait_raw!r}") from exc
    if not 0 <= wait_seconds <= 20:
        raise ConfigurationError("SQS_WAIT_SECONDS must be between 0 and 20")
    return QueueConfig(
        backend=backend,
        signature_queue=os.getenv("SIGNATURE_QUEUE_NAME") or DEFAULT_SIGNATURE_QUEUE,
        validation_queue=os.getenv("VALIDATION_QUEUE_NAME") or DEFAULT_VALIDATION_QUEUE,
        visibility_timeout_seconds=env_positive_int(
            "QUEUE_VISIBILITY_TIMEOUT_SECONDS", DEFAULT_VISIBILITY_TIMEOUT_SECONDS
        ),
        redis_url=redis_url,
        sqs_region=os.getenv("SQS_REGION") or None,
        sqs_endpoint_url=os.getenv("SQS_ENDPOINT_URL") or None,
        sqs_wait_seconds=wait_seconds,
    )
