"""Console entry point for the Rancher Fleet Upgrader CLI."""

from __future__ import annotations

import argparse
import logging
import os
from typing import List

from config import DEFAULT_SERVER_URL, LOG_LEVELS, UpgraderConfig
from errors import ServiceMapError
from log_utils import setup_logging
from upgrader import FleetUpgrader

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_FATAL = 2
EXIT_INTERRUPTED = 130


def build_parser() -> argparse.ArgumentParser:
    """Build and return the CLI argument parser."""
    parser = argparse.ArgumentParser(
        description="Upgrade Rancher services to a new image tag, several at a time"
    )
    parser.add_argument(
        "--accesskey",
        default=os.environ.get("RANCHER_ACCESS_KEY", ""),
        help="Rancher API access key (env RANCHER_ACCESS_KEY)",
    )
    parser.add_argument(
        "--secretkey",
        default=os.environ.get("RANCHER_SECRET_KEY", ""),
        help="Rancher API secret key (env RANCHER_SECRET_KEY)",
    )
    parser.add_argument(
        "--url",
        default=os.environ.get("RANCHER_URL", DEFAULT_SERVER_URL),
        help="URL endpoint of the Rancher API (env RANCHER_URL)",
    )
    parser.add_argument(
        "--services",
        required=True,
        help="Comma separated list of services to upgrade",
    )
    parser.add_argument(
        "--image-prefix",
        default="",
        help="Registry URL plus the repo and any other image prefix",
    )
    parser.add_argument("--tag", default="latest", help="Tag to use for the images")
    parser.add_argument(
        "--parallelism",
        type=int,
        default=5,
        help="Number of services upgraded concurrently (default: 5)",
    )
    parser.add_argument(
        "--log",
        type=str.lower,
        choices=LOG_LEVELS,
        default="info",
        help="Log level (default: info)",
    )
    parser.add_argument("--verbose", action="store_true", help="Same as --log debug")
    parser.add_argument(
        "--poll-interval",
        type=float,
        default=1.0,
        help="Seconds between finishupgrade availability checks (default: 1)",
    )
    parser.add_argument(
        "--finalize-timeout",
        type=float,
        default=3600.0,
        help=(
            "Maximum seconds to wait for a service to become ready to finish "
            "its upgrade; 0 waits indefinitely (default: 3600)"
        ),
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Only check that the services can be upgraded",
    )
    parser.add_argument(
        "--no-report",
        action="store_true",
        help="Do not write the JSON upgrade report",
    )
    return parser


def main(argv: List[str] | None = None) -> int:
    """CLI main for console_scripts entry point."""
    parser = build_parser()
    args = parser.parse_args(args=argv)

    setup_logging(level=args.log, verbose=args.verbose, log_file="rancher-upgrade.log")

    try:
        config = UpgraderConfig.from_args(args)
    except ValueError as e:
        logger.error(f"Invalid configuration: {e}")
        return EXIT_FATAL

    runner = FleetUpgrader(config)
    try:
        summary = runner.run()
    except ServiceMapError as e:
        logger.critical(str(e))
        return EXIT_FATAL
    except KeyboardInterrupt:
        runner.cancel()
        logger.warning("Interrupted before all services were dispatched")
        return EXIT_INTERRUPTED

    if runner.interrupted:
        return EXIT_INTERRUPTED
    return EXIT_FAILED if summary.failed > 0 else EXIT_OK
