"""
Logging utilities for the Rancher Fleet Upgrader.
"""

import logging
import sys

# Rancher tooling level names mapped onto the logging module's levels
LEVELS = {
    "panic": logging.CRITICAL,
    "fatal": logging.CRITICAL,
    "error": logging.ERROR,
    "warn": logging.WARNING,
    "debug": logging.DEBUG,
    "info": logging.INFO,
}


def resolve_level(level: str) -> int:
    """Map a level name to a logging level; unknown names mean INFO."""
    return LEVELS.get((level or "").lower(), logging.INFO)


def setup_logging(
    level: str = "info",
    verbose: bool = False,
    log_file: str = "rancher-upgrade.log",
) -> logging.Logger:
    """
    Set up logging configuration.

    Args:
        level: Level name (panic, fatal, error, warn, debug, info)
        verbose: Force DEBUG logging regardless of level
        log_file: Path to log file

    Returns:
        Logger instance
    """
    numeric = logging.DEBUG if verbose else resolve_level(level)

    logging.basicConfig(
        level=numeric,
        format="%(asctime)s - %(levelname)s - %(threadName)s - %(message)s",
        handlers=[
            logging.StreamHandler(sys.stdout),
            logging.FileHandler(log_file),
        ],
        force=True,
    )

    return logging.getLogger(__name__)
