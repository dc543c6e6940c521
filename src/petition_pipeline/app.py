"""Application orchestration entry points."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import timedelta
from enum import StrEnum
from logging import getLogger
from typing import TYPE_CHECKING, Any

import boto3
import redis

from petition_pipeline.adapters.metrics import LoggingMetricsSink, PrometheusMetricsSink
from petition_pipeline.adapters.redis_queue import RedisQueue
from petition_pipeline.adapters.sqlalchemy import (
    SqlAlchemyDestinationStore,
    SqlAlchemyQueue,
    SqlAlchemySchemaProvider,
    configured_engine,
    is_started,
    startup,
)
from petition_pipeline.adapters.sqs import SqsQueue
from petition_pipeline.config import (
    ConfigurationError,
    MetricsBackendKind,
    QueueBackendKind,
    get_metrics_config,
    get_pipeline_config,
    get_queue_config,
)
from petition_pipeline.domain.preprocess import (
    PreprocessPipeline,
    SignatureStage,
    StageContext,
    ValidationStage,
)

if TYPE_CHECKING:
    from collections.abc import Iterable

    from petition_pipeline.config import MetricsConfig, PipelineConfig, QueueConfig
    from petition_pipeline.domain.ports import MetricsSink, QueueBackend
    from petition_pipeline.domain.preprocess import PreprocessStage, StageResult

log = getLogger(__name__)


class StageName(StrEnum):
    SIGNATURES = "signatures"
    VALIDATIONS = "validations"


@dataclass(slots=True)
class QueueFactory:
    """Build queue backends for the configured transport, sharing one client."""

    config: QueueConfig
    _client: Any = field(init=False, default=None)

    def build(self, name: str) -> QueueBackend:
        match self.config.backend:
            case QueueBackendKind.SQL:
                return SqlAlchemyQueue(
                    configured_engine(),
                    name,
                    visibility_timeout=timedelta(seconds=self.config.visibility_timeout_seconds),
                )
            case QueueBackendKind.REDIS:
                return RedisQueue(
                    self._redis_client(),
                    name,
                    visibility_timeout=timedelta(seconds=self.config.visibility_timeout_seconds),
                )
            case QueueBackendKind.SQS:
                return SqsQueue(
                    self._sqs_client(),
                    name,
                    visibility_timeout_seconds=self.config.visibility_timeout_seconds,
                    wait_seconds=self.config.sqs_wait_seconds,
                )

    def _redis_client(self) -> Any:
        if self._client is None:
            if not self.config.redis_url:
                raise ConfigurationError("REDIS_URL is required for the redis queue backend")
            self._client = redis.Redis.from_url(self.config.redis_url, decode_responses=True)
        return self._client

    def _sqs_client(self) -> Any:
        if self._client is None:
            self._client = boto3.client(
                "sqs",
                region_name=self.config.sqs_region,
                endpoint_url=self.config.sqs_endpoint_url,
            )
        return self._client


def build_metrics(config: MetricsConfig | None = None) -> MetricsSink:
    effective = config or get_metrics_config()
    match effective.backend:
        case MetricsBackendKind.LOG:
            return LoggingMetricsSink()
        case MetricsBackendKind.PROMETHEUS:
            return PrometheusMetricsSink(pushgateway=effective.pushgateway, job=effective.push_job)


def build_stages(
    factory: QueueFactory, names: Iterable[StageName] = tuple(StageName)
) -> tuple[PreprocessStage, ...]:
    stages: list[PreprocessStage] = []
    for name in names:
        match name:
            case StageName.SIGNATURES:
                stages.append(SignatureStage(queue=factory.build(factory.config.signature_queue)))
            case StageName.VALIDATIONS:
                stages.append(
                    ValidationStage(queue=factory.build(factory.config.validation_queue))
                )
    return tuple(stages)


def _ensure_started() -> None:
    if not is_started():
        startup()


def run_preprocess(
    stages: Iterable[StageName] = tuple(StageName),
    *,
    pipeline_config: PipelineConfig | None = None,
    queue_config: QueueConfig | None = None,
    metrics: MetricsSink | None = None,
) -> list[StageResult]:
    """Run the requested preprocessing stages once against the configured adapters."""

    _ensure_started()
    effective_pipeline = pipeline_config or get_pipeline_config()
    factory = QueueFactory(queue_config or get_queue_config())
    sink = metrics or build_metrics()
    context = StageContext(
        store=SqlAlchemyDestinationStore(configured_engine()),
        schemas=SqlAlchemySchemaProvider(),
        metrics=sink,
        config=effective_pipeline,
    )
    pipeline = PreprocessPipeline(stages=build_stages(factory, stages))
    log.info(
        "Starting preprocess run: backend=%s, stages=%s",
        factory.config.backend.value,
        ", ".join(stage.name for stage in pipeline.stages),
    )
    try:
        return pipeline.run(context)
    finally:
        sink.flush()


def create_queues(queue_config: QueueConfig | None = None) -> list[str]:
    """Provision both configured queues; safe to call repeatedly."""

    _ensure_started()
    factory = QueueFactory(queue_config or get_queue_config())
    names = [factory.config.signature_queue, factory.config.validation_queue]
    for name in names:
        factory.build(name).create_queue()
    return names


def enqueue_payload(
    stage: StageName, payload: dict[str, Any], *, queue_config: QueueConfig | None = None
) -> bool:
    _ensure_started()
    factory = QueueFactory(queue_config or get_queue_config())
    match stage:
        case StageName.SIGNATURES:
            name = factory.config.signature_queue
        case StageName.VALIDATIONS:
            name = factory.config.validation_queue
    return factory.build(name).enqueue(payload)


def queue_depths(queue_config: QueueConfig | None = None) -> dict[str, int]:
    _ensure_started()
    factory = QueueFactory(queue_config or get_queue_config())
    names = (factory.config.signature_queue, factory.config.validation_queue)
    return {name: factory.build(name).count() for name in names}
