"""Application configuration helpers."""

from __future__ import annotations

from .env import env_flag, env_positive_int, require_env_var, require_env_vars
from .errors import ConfigurationError, MissingConfigurationError
from .metrics import MetricsBackendKind, MetricsConfig, get_metrics_config
from .pipeline import PipelineConfig, get_pipeline_config
from .queues import QueueBackendKind, QueueConfig, get_queue_config
from .storage import DatabaseConfig, StorageConfig, get_database_config, get_storage_config

__all__ = [
    "ConfigurationError",
    "DatabaseConfig",
    "MetricsBackendKind",
    "MetricsConfig",
    "MissingConfigurationError",
    "PipelineConfig",
    "QueueBackendKind",
    "QueueConfig",
    "StorageConfig",
    "env_flag",
    "env_positive_int",
    "get_database_config",
    "get_metrics_config",
    "get_pipeline_config",
    "get_queue_config",
    "get_storage_config",
    "require_env_var",
    "require_env_vars",
]
