"""Ports implemented by adapters and consumed by the preprocessing stages."""

from __future__ import annotations

from .metrics import MetricsSink, metric_name
from .queue import BulkQueueBackend, QueueBackend
from .store import DestinationStore

__all__ = [
    "BulkQueueBackend",
    "DestinationStore",
    "MetricsSink",
    "QueueBackend",
    "metric_name",
]
