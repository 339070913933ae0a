"""
Data models for the Rancher Fleet Upgrader.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional

DEFAULT_TAG = "latest"


def normalize_tag(tag: Optional[str]) -> str:
    """Return the image tag with a leading colon (``latest`` -> ``:latest``)."""
    tag = (tag or "").strip() or DEFAULT_TAG
    if not tag.startswith(":"):
        tag = ":" + tag
    return tag


def build_image_reference(prefix: str, service: str, tag: str) -> str:
    """Build the fully-qualified image for a service, e.g. reg/svc:v3."""
    return f"{prefix}{service}{normalize_tag(tag)}"


class ControllerState(Enum):
    """States of the per-service upgrade state machine."""

    IDLE = "idle"
    UPGRADING = "upgrading"
    AWAITING_FINISH = "awaiting_finish"
    FINISHED = "finished"
    ABORTED = "aborted"


class OutcomeStatus(Enum):
    """Terminal result of one upgrade job."""

    SUCCEEDED = "succeeded"
    SKIPPED = "skipped"
    FAILED = "failed"
    DRY_RUN = "dry_run"


@dataclass(frozen=True)
class ServiceRef:
    """Reference to a Rancher service."""

    name: str  # human-facing service name
    identifier: str  # opaque id assigned by Rancher, e.g. 1s12


@dataclass(frozen=True)
class UpgradeJob:
    """One service upgrade request."""

    service_name: str
    image_reference: str  # registry prefix + service + ":" + tag


@dataclass
class UpgradeOutcome:
    """Result of processing one upgrade job."""

    service_name: str
    image_reference: str
    status: OutcomeStatus
    final_state: ControllerState
    reason: Optional[str] = None
    error: Optional[Exception] = None
    start_time: Optional[float] = None
    end_time: Optional[float] = None
    duration_seconds: Optional[float] = None
    poll_attempts: int = 0
    worker: Optional[str] = None

    def to_dict(self) -> Dict:
        return {
            "service_name": self.service_name,
            "image_reference": self.image_reference,
            "status": self.status.value,
            "final_state": self.final_state.value,
            "reason": self.reason,
            "error_type": type(self.error).__name__ if self.error else None,
            "duration_seconds": self.duration_seconds,
            "poll_attempts": self.poll_attempts,
            "worker": self.worker,
        }


@dataclass
class RunSummary:
    """Aggregated outcomes of a fleet upgrade run."""

    outcomes: List[UpgradeOutcome] = field(default_factory=list)
    start_time: Optional[float] = None
    end_time: Optional[float] = None

    def by_status(self, status: OutcomeStatus) -> List[UpgradeOutcome]:
        return [o for o in self.outcomes if o.status == status]

    @property
    def succeeded(self) -> int:
        return len(self.by_status(OutcomeStatus.SUCCEEDED))

    @property
    def skipped(self) -> int:
        return len(self.by_status(OutcomeStatus.SKIPPED))

    @property
    def failed(self) -> int:
        return len(self.by_status(OutcomeStatus.FAILED))

    @property
    def stats(self) -> Dict[str, int]:
        return {
            "total": len(self.outcomes),
            "succeeded": self.succeeded,
            "skipped": self.skipped,
            "failed": self.failed,
            "dry_run": len(self.by_status(OutcomeStatus.DRY_RUN)),
        }

    @property
    def duration_seconds(self) -> Optional[float]:
        if self.start_time is None or self.end_time is None:
            return None
        return self.end_time - self.start_time

    def to_dict(self) -> Dict:
        return {
            "duration_seconds": self.duration_seconds,
            "statistics": self.stats,
            "results": [o.to_dict() for o in self.outcomes],
        }
