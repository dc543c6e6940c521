"""Claim -> dedupe -> sanitize -> persist -> delete preprocessing stages.

Each stage operates on a batch claimed from one queue and communicates with the
outside world only through the ports in :mod:`petition_pipeline.domain.ports`.
"""

from __future__ import annotations

from .claimer import BatchClaimer
from .context import StageContext, StageResult, utc_now
from .deduplication import dedupe
from .orchestrator import PreprocessPipeline, PreprocessStage, SignatureStage, ValidationStage
from .persister import attach_validation_close, build_rows, persist, validation_close_for
from .sanitizer import sanitize

__all__ = [
    "BatchClaimer",
    "PreprocessPipeline",
    "PreprocessStage",
    "SignatureStage",
    "StageContext",
    "StageResult",
    "ValidationStage",
    "attach_validation_close",
    "build_rows",
    "dedupe",
    "persist",
    "sanitize",
    "utc_now",
    "validation_close_for",
]
