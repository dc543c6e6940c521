"""Shared state handed to each preprocessing stage."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from petition_pipeline.config.pipeline import PipelineConfig

if TYPE_CHECKING:
    from collections.abc import Callable

    from petition_pipeline.domain.ports import DestinationStore, MetricsSink
    from petition_pipeline.domain.schema import SchemaProvider


def utc_now() -> datetime:
    return datetime.now(tz=UTC)


@dataclass(slots=True)
class StageContext:
    """Collaborators and configuration shared by every stage of one run."""

    store: DestinationStore
    schemas: SchemaProvider
    metrics: MetricsSink
    config: PipelineConfig = field(default_factory=PipelineConfig)
    clock: Callable[[], datetime] = utc_now


@dataclass(slots=True)
class StageResult:
    """Outcome counters for a single stage invocation."""

    stage: str
    claimed: int = 0
    duplicates: int = 0
    persisted: int = 0
    failed: int = 0
    deleted: int = 0
    ok: bool = True
