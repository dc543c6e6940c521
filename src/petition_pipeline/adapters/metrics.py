"""Metric sinks: structured log lines or Prometheus collectors pushed to a gateway."""

from __future__ import annotations

import re
from logging import getLogger
from typing import TYPE_CHECKING

from prometheus_client import CollectorRegistry, Counter, Gauge, Histogram, push_to_gateway
from prometheus_client.exposition import default_handler

if TYPE_CHECKING:
    from collections.abc import Callable

log = getLogger(__name__)

_INVALID_METRIC_CHARS = re.compile(r"[^a-zA-Z0-9_]")


class LoggingMetricsSink:
    """Emit every event as a DEBUG log line."""

    def incr(self, name: str, value: int = 1) -> None:
        log.debug("metric count %s=%s", name, value)

    def gauge(self, name: str, value: float) -> None:
        log.debug("metric gauge %s=%s", name, value)

    def timing(self, name: str, seconds: float) -> None:
        log.debug("metric timing %s=%.3fs", name, seconds)

    def flush(self) -> None:
        """Nothing is buffered."""


class PrometheusMetricsSink:
    """Map ``<component>.<target>.<event>`` names onto labelled Prometheus collectors.

    Collectors live in a private registry. A preprocessing run is a short-lived
    process, so :meth:`flush` pushes that registry to a Pushgateway when one is
    configured.
    """

    def __init__(
        self,
        *,
        namespace: str = "petition_pipeline",
        registry: CollectorRegistry | None = None,
        pushgateway: str | None = None,
        job: str = "petition_pipeline",
        handler: Callable[..., Callable[[], None]] = default_handler,
    ) -> None:
        self.namespace = namespace
        self.registry = registry if registry is not None else CollectorRegistry()
        self.pushgateway = pushgateway
        self.job = job
        self._handler = handler
        self._counters: dict[str, Counter] = {}
        self._gauges: dict[str, Gauge] = {}
        self._histograms: dict[str, Histogram] = {}

    def incr(self, name: str, value: int = 1) -> None:
        metric, target = self._split(name)
        counter = self._counters.get(metric)
        if counter is None:
            counter = Counter(metric, f"Count of {name}", ["target"], registry=self.registry)
            self._counters[metric] = counter
        counter.labels(target=target).inc(value)

    def gauge(self, name: str, value: float) -> None:
        metric, target = self._split(name)
        gauge = self._gauges.get(metric)
        if gauge is None:
            gauge = Gauge(metric, f"Gauge of {name}", ["target"], registry=self.registry)
            self._gauges[metric] = gauge
        gauge.labels(target=target).set(value)

    def timing(self, name: str, seconds: float) -> None:
        metric, target = self._split(name)
        metric = f"{metric}_seconds"
        histogram = self._histograms.get(metric)
        if histogram is None:
            histogram = Histogram(
                metric, f"Duration of {name}", ["target"], registry=self.registry
            )
            self._histograms[metric] = histogram
        histogram.labels(target=target).observe(seconds)

    def flush(self) -> None:
        if self.pushgateway is None:
            return
        try:
            push_to_gateway(
                self.pushgateway, job=self.job, registry=self.registry, handler=self._handler
            )
        except OSError:
            log.exception("Pushing metrics to %s failed", self.pushgateway)
            return
        log.debug("Pushed metrics for job %s to %s", self.job, self.pushgateway)

    def _split(self, name: str) -> tuple[str, str]:
        component, _, rest = name.partition(".")
        target, _, event = rest.rpartition(".")
        metric = _INVALID_METRIC_CHARS.sub("_", f"{self.namespace}_{component}_{event}")
        return metric, target
