from __future__ import annotations

import os
from typing import TYPE_CHECKING

import pytest
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine  # noqa: TC002
from sqlalchemy.pool import StaticPool

from petition_pipeline.adapters.sqlalchemy import (
    SqlAlchemyDestinationStore,
    SqlAlchemySchemaProvider,
    create_all_tables,
)
from petition_pipeline.config import PipelineConfig
from petition_pipeline.domain.preprocess import StageContext
from tests.support.payloads import FIXED_NOW
from tests.support.queues import RecordingMetrics

os.environ.setdefault("DATABASE_URI", "sqlite+pysqlite:///:memory:")

if TYPE_CHECKING:
    from collections.abc import Iterator


@pytest.fixture
def sqlite_engine() -> Iterator[Engine]:
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        future=True,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    create_all_tables(engine)
    try:
        yield engine
    finally:
        engine.dispose()


@pytest.fixture
def store(sqlite_engine: Engine) -> SqlAlchemyDestinationStore:
    return SqlAlchemyDestinationStore(sqlite_engine)


@pytest.fixture
def schemas() -> SqlAlchemySchemaProvider:
    return SqlAlchemySchemaProvider()


@pytest.fixture
def metrics() -> RecordingMetrics:
    return RecordingMetrics()


@pytest.fixture
def context(
    store: SqlAlchemyDestinationStore,
    schemas: SqlAlchemySchemaProvider,
    metrics: RecordingMetrics,
) -> StageContext:
    return StageContext(
        store=store,
        schemas=schemas,
        metrics=metrics,
        config=PipelineConfig(signatures_batch_size=50, validations_batch_size=50),
        clock=lambda: FIXED_NOW,
    )
