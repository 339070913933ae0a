"""
Configuration management for the Rancher Fleet Upgrader.
"""

from dataclasses import dataclass
from typing import Optional, Tuple

from models import normalize_tag

DEFAULT_SERVER_URL = "http://localhost:8080"
LOG_LEVELS = ("panic", "fatal", "error", "warn", "debug", "info")


def parse_service_list(raw: str) -> Tuple[str, ...]:
    """Split a comma separated service list, dropping blank entries."""
    return tuple(s.strip() for s in (raw or "").split(",") if s.strip())


@dataclass(frozen=True)
class UpgraderConfig:
    """Configuration for fleet upgrade runs."""

    access_key: str
    secret_key: str
    services: Tuple[str, ...]
    server_url: str = DEFAULT_SERVER_URL
    image_prefix: str = ""
    image_tag: str = ":latest"
    parallelism: int = 5
    log_level: str = "info"
    poll_interval: float = 1.0
    finalize_timeout: Optional[float] = 3600.0
    dry_run: bool = False
    export_report: bool = True
    verbose: bool = False

    def __post_init__(self):
        if self.parallelism < 1:
            raise ValueError(f"parallelism must be at least 1, got {self.parallelism}")
        if not self.services:
            raise ValueError("at least one service name is required")
        if self.poll_interval <= 0:
            raise ValueError(
                f"poll_interval must be positive, got {self.poll_interval}"
            )
        if self.finalize_timeout is not None and self.finalize_timeout < 0:
            raise ValueError(
                f"finalize_timeout must not be negative, got {self.finalize_timeout}"
            )
        # Coerce lists and un-prefixed tags so the record is always canonical
        object.__setattr__(self, "services", tuple(self.services))
        object.__setattr__(self, "image_tag", normalize_tag(self.image_tag))

    @classmethod
    def from_args(cls, args) -> "UpgraderConfig":
        """
        Create configuration from command-line arguments.

        Args:
            args: Parsed argparse arguments

        Returns:
            UpgraderConfig instance

        Raises:
            ValueError: If the arguments describe an invalid run
        """
        # A finalize timeout of 0 means wait for as long as it takes
        finalize_timeout = args.finalize_timeout if args.finalize_timeout else None
        return cls(
            access_key=args.accesskey or "",
            secret_key=args.secretkey or "",
            server_url=args.url,
            services=parse_service_list(args.services),
            image_prefix=args.image_prefix or "",
            image_tag=args.tag,
            parallelism=args.parallelism,
            log_level=args.log,
            poll_interval=args.poll_interval,
            finalize_timeout=finalize_timeout,
            dry_run=args.dry_run,
            export_report=not args.no_report,
            verbose=args.verbose,
        )
