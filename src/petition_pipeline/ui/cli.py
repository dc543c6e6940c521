from __future__ import annotations

import argparse
import json
import logging
import sys
from signal import SIGINT, signal
from typing import TYPE_CHECKING

from dotenv import load_dotenv

from petition_pipeline.app import (
    StageName,
    create_queues,
    enqueue_payload,
    queue_depths,
    run_preprocess,
)
from petition_pipeline.common import configure_logging
from petition_pipeline.config import ConfigurationError, get_pipeline_config

if TYPE_CHECKING:
    from collections.abc import Sequence
    from types import FrameType

log = logging.getLogger(__name__)

_STAGE_CHOICES = ("all", *(stage.value for stage in StageName))


def _parse_args(argv: Sequence[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Preprocess petition signature queues")
    subparsers = parser.add_subparsers(dest="command", required=True)

    run = subparsers.add_parser("run", help="Run one preprocessing pass")
    run.add_argument(
        "--stage",
        choices=_STAGE_CHOICES,
        default="all",
        help="Stage to run (default: %(default)s)",
    )

    subparsers.add_parser("create-queues", help="Provision the configured queues")

    enqueue = subparsers.add_parser("enqueue", help="Enqueue a JSON payload")
    enqueue.add_argument(
        "--stage",
        choices=[stage.value for stage in StageName],
        required=True,
        help="Stage whose source queue receives the payload",
    )
    enqueue.add_argument("payload", help="JSON object to enqueue")

    subparsers.add_parser("depth", help="Report approximate queue depths")
    return parser.parse_args(list(argv))


def _selected_stages(value: str) -> tuple[StageName, ...]:
    if value == "all":
        return tuple(StageName)
    return (StageName(value),)


def _parse_payload(raw: str) -> dict[str, object]:
    try:
        payload = json.loads(raw)
    except ValueError as exc:
        raise ValueError(f"Payload is not valid JSON: {exc}") from exc
    if not isinstance(payload, dict):
        raise ValueError("Payload must be a JSON object")
    return payload


def main(argv: Sequence[str] | None = None) -> None:
    """Main application entry point."""
    args_list = list(argv) if argv is not None else list(sys.argv[1:])
    try:
        parsed_args = _parse_args(args_list)
        pipeline_config = get_pipeline_config()
    except (ValueError, ConfigurationError):
        configure_logging()
        log.exception("CLI validation error")
        sys.exit(2)

    configure_logging(level=logging.DEBUG if pipeline_config.debug else logging.INFO)

    try:
        if parsed_args.command == "run":
            results = run_preprocess(
                _selected_stages(parsed_args.stage), pipeline_config=pipeline_config
            )
            if not all(result.ok for result in results):
                sys.exit(1)
        elif parsed_args.command == "create-queues":
            names = create_queues()
            log.info("Queues ready: %s", ", ".join(names))
        elif parsed_args.command == "enqueue":
            payload = _parse_payload(parsed_args.payload)
            if not enqueue_payload(StageName(parsed_args.stage), payload):
                sys.exit(1)
        elif parsed_args.command == "depth":
            for name, depth in queue_depths().items():
                log.info("%s: %s", name, depth)
        else:
            raise ValueError(f"Unsupported command: {parsed_args.command}")  # noqa: TRY301

    except Exception:
        log.exception("Fatal error during preprocessing")
        sys.exit(1)


def sigint_handler(_signal_received: int, _frame: FrameType | None) -> None:
    """Handle SIGINT (Ctrl+C) gracefully."""
    log.info("Closed by user (Ctrl+C)")
    sys.exit(0)


def run() -> None:
    load_dotenv()
    signal(SIGINT, sigint_handler)
    main()


if __name__ == "__main__":
    run()
