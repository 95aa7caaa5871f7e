"""Command-line entry point for one scheduled posting run."""

from __future__ import annotations

import argparse
import logging
import sys
from dataclasses import replace
from pathlib import Path
from typing import Optional, Sequence

from .config import ConfigError, load_config
from .pipeline import build_pipeline, run

LOGGER = logging.getLogger("dailysnap")


def setup_logging(verbose: bool = False) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(level=level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Summarize one fresh news article and post it to X")
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging")
    parser.add_argument(
        "--history",
        type=Path,
        help="Optional override for the published-links history file",
    )
    return parser.parse_args(argv)


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = parse_args(argv)
    setup_logging(verbose=args.verbose)

    try:
        config = load_config()
        if args.history:
            config = replace(config, history_file=args.history)
        pipeline = build_pipeline(config)
    except ConfigError as exc:
        LOGGER.error("Cannot start run: %s", exc)
        return 2

    result = run(pipeline, attempts=config.run_attempts, backoff=config.run_backoff)
    if not result.succeeded:
        LOGGER.info("Run finished without publishing")
    return 0


if __name__ == "__main__":
    sys.exit(main())
