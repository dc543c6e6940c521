"""Shared logging helpers for the preprocessing pipeline."""

from __future__ import annotations

import logging


def configure_logging(*, level: int = logging.INFO, force: bool = False) -> None:
    """Initialise the root logger once with sensible defaults.

    Parameters mirror ``logging.basicConfig`` with a simplified contract: we default
    to INFO level and a terse format suitable for worker output. Pass ``force=True``
    to reconfigure during tests or when the debug toggle flips the level.
    """

    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
        datefmt="%H:%M:%S",
        force=force,
    )
    # botocore is chatty at DEBUG and drowns the pipeline's own events
    logging.getLogger("botocore").setLevel(max(level, logging.INFO))
