#!/usr/bin/env python3
"""
Reconcile registry images against running pods and trigger registry GC.

Runs one cycle immediately and then once per interval until stopped.
"""

import argparse
import sys
from functools import partial
from typing import List, Optional

from reggc.scheduler import Scheduler, run_cycle
from reggc.utils.config_manager import ConfigManager, ConfigValidationError
from reggc.utils.logging_utils import get_logger, parse_log_level, setup_logging


def parse_arguments(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Delete registry images no running pod references, then run registry garbage collection",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Run forever, one cycle per hour
  python -m reggc

  # Run a single cycle and exit (non-zero status on failure)
  python -m reggc --once

  # Show what would be deleted without deleting anything
  python -m reggc --once --dry-run
        """,
    )

    parser.add_argument(
        "--config",
        help="Path to config.yaml (default: CONFIG_FILE env var or ./config.yaml)",
    )
    parser.add_argument(
        "--once",
        action="store_true",
        help="Run a single reconciliation cycle and exit",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Log unreferenced images instead of deleting them; skips garbage collection",
    )
    parser.add_argument(
        "--log-level",
        default="info",
        type=parse_log_level,
        help="Logging level (default: info)",
    )

    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> None:
    args = parse_arguments(argv)
    setup_logging(level=args.log_level)
    logger = get_logger(__name__)

    try:
        config = ConfigManager(config_file=args.config)
    except ConfigValidationError as e:
        logger.error(str(e))
        sys.exit(2)
    if args.dry_run:
        config.enable_dry_run()

    for line in config.describe():
        logger.info(line)

    scheduler = Scheduler(partial(run_cycle, config), config.get_interval_seconds())
    if args.once:
        if not scheduler.run_once():
            sys.exit(1)
        return

    try:
        scheduler.run_forever()
    except KeyboardInterrupt:
        logger.info("interrupted; exiting")


if __name__ == "__main__":
    main()
