"""Error types raised across the pipeline boundaries."""

from __future__ import annotations

from petition_pipeline.config.errors import ConfigurationError


class QueueBackendError(RuntimeError):
    """Raised by queue adapters when a claim, delete, enqueue or count call fails."""


class StoreError(RuntimeError):
    """Raised by destination stores when a lookup or insert fails."""


class UnknownDestinationError(ConfigurationError):
    """Raised when a destination table identifier is outside the known set."""
