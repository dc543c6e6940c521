"""Batch and chunk sizing for the preprocessing stages."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import timedelta

from .env import env_flag, env_positive_int
from .errors import ConfigurationError

DEFAULT_BATCH_SIZE = 100
DEFAULT_CLAIM_CHUNK_SIZE = 10
DEFAULT_DEDUPE_CHUNK_SIZE = 50
DEFAULT_MINIMUM_SIGNATURE_LIFETIME = timedelta(weeks=2)


@dataclass(frozen=True, slots=True)
class PipelineConfig:
    """Sizing and timing knobs handed to the pipeline at construction."""

    signatures_batch_size: int = DEFAULT_BATCH_SIZE
    validations_batch_size: int = DEFAULT_BATCH_SIZE
    claim_chunk_size: int = DEFAULT_CLAIM_CHUNK_SIZE
    dedupe_chunk_size: int = DEFAULT_DEDUPE_CHUNK_SIZE
    minimum_signature_lifetime: timedelta = field(
        default=DEFAULT_MINIMUM_SIGNATURE_LIFETIME
    )
    debug: bool = False

    def __post_init__(self) -> None:
        for name in (
            "signatures_batch_size",
            "validations_batch_size",
            "claim_chunk_size",
            "dedupe_chunk_size",
        ):
            value = getattr(self, name)
            if value <= 0:
                raise ConfigurationError(f"{name} must be positive, got {value}")
        if self.minimum_signature_lifetime <= timedelta(0):
            raise ConfigurationError("minimum_signature_lifetime must be positive")


def get_pipeline_config() -> PipelineConfig:
    lifetime_days = env_positive_int(
        "MINIMUM_SIGNATURE_LIFETIME_DAYS", DEFAULT_MINIMUM_SIGNATURE_LIFETIME.days
    )
    return PipelineConfig(
        signatures_batch_size=env_positive_int(
            "PREPROCESS_SIGNATURES_BATCH_SIZE", DEFAULT_BATCH_SIZE
        ),
        validations_batch_size=env_positive_int(
            "PREPROCESS_VALIDATIONS_BATCH_SIZE", DEFAULT_BATCH_SIZE
        ),
        claim_chunk_size=env_positive_int("PREPROCESS_CLAIM_CHUNK_SIZE", DEFAULT_CLAIM_CHUNK_SIZE),
        dedupe_chunk_size=env_positive_int(
            "PREPROCESS_DEDUPE_CHUNK_SIZE", DEFAULT_DEDUPE_CHUNK_SIZE
        ),
        minimum_signature_lifetime=timedelta(days=lifetime_days),
        debug=env_flag("PREPROCESS_DEBUG"),
    )
