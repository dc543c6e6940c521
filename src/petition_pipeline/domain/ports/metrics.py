"""Observability sink contract."""

from __future__ import annotations

from typing import Protocol, runtime_checkable


@runtime_checkable
class MetricsSink(Protocol):
    def incr(self, name: str, value: int = 1) -> None: ...

    def gauge(self, name: str, value: float) -> None: ...

    def timing(self, name: str, seconds: float) -> None: ...

    def flush(self) -> None:
        """Hand buffered events to their destination at the end of a run."""
        ...


def metric_name(component: str, target: str, event: str) -> str:
    """Build a ``<component>.<target>.<event>`` event name."""

    return f"{component}.{target}.{event}"
