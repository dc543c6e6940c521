"""Metrics sink selection."""

from __future__ import annotations

import os
from dataclasses import dataclass
from enum import StrEnum

from .env import require_env_var
from .errors import ConfigurationError

DEFAULT_PUSH_JOB = "petition_pipeline"


class MetricsBackendKind(StrEnum):
    LOG = "log"
    PROMETHEUS = "prometheus"


@dataclass(frozen=True, slots=True)
class MetricsConfig:
    backend: MetricsBackendKind = MetricsBackendKind.LOG
    pushgateway: str | None = None
    push_job: str = DEFAULT_PUSH_JOB


def get_metrics_config() -> MetricsConfig:
    raw = os.getenv("METRICS_BACKEND", MetricsBackendKind.LOG.value)
    try:
        backend = MetricsBackendKind(raw.strip().lower())
    except ValueError as exc:
        raise ConfigurationError(f"Unsupported METRICS_BACKEND: {raw!r}") from exc
    if backend is MetricsBackendKind.LOG:
        return MetricsConfig(backend=backend)
    # a run is a short-lived process; its metrics only survive if pushed
    return MetricsConfig(
        backend=backend,
        pushgateway=require_env_var("PROMETHEUS_PUSHGATEWAY"),
        push_job=os.getenv("PROMETHEUS_PUSH_JOB") or DEFAULT_PUSH_JOB,
    )
