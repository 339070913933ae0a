"""
Error types for the Rancher Fleet Upgrader.
"""

from typing import Optional, Sequence


class FleetUpgradeError(Exception):
    """Base class for all upgrader errors."""


class RancherApiError(FleetUpgradeError, RuntimeError):
    """A Rancher API call failed or returned an unexpected status."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class ServiceMapError(FleetUpgradeError):
    """The service directory could not be built from the service listing."""


class UnknownService(FleetUpgradeError):
    """Service name is not present in the directory snapshot."""

    def __init__(self, service: str):
        super().__init__(f"Service {service} not found in the service directory")
        self.service = service


class AmbiguousService(UnknownService):
    """Service name matches more than one service in the listing."""

    def __init__(self, service: str, identifiers: Sequence[str]):
        super().__init__(service)
        self.identifiers = tuple(identifiers)
        self.args = (
            f"Service name {service} is ambiguous "
            f"(matches {', '.join(self.identifiers)})",
        )


class ActionCheckError(FleetUpgradeError):
    """Availability of an action could not be determined."""

    def __init__(self, action: str, service: str, cause: Exception):
        super().__init__(
            f"Could not check action {action} on service {service}: {cause}"
        )
        self.action = action
        self.service = service
        self.cause = cause


class ActionUnavailable(FleetUpgradeError):
    """The action is not currently permitted on the service."""

    def __init__(self, action: str, service: str):
        super().__init__(f"Action {action} is not available on service {service}")
        self.action = action
        self.service = service


class UpgradeError(FleetUpgradeError):
    """An upgrade or finishupgrade invocation failed."""

    def __init__(self, action: str, service: str, cause: Exception):
        super().__init__(
            f"Error trying to upgrade {service} during the {action} action: {cause}"
        )
        self.action = action
        self.service = service
        self.cause = cause


class FinalizeTimeout(FleetUpgradeError):
    """Service never became ready to finish its upgrade in time."""

    def __init__(self, service: str, waited: float, attempts: int):
        super().__init__(
            f"Timed out after {waited:.0f}s ({attempts} checks) waiting for "
            f"finishupgrade on service {service}"
        )
        self.service = service
        self.waited = waited
        self.attempts = attempts


class UpgradeCancelled(FleetUpgradeError):
    """The run was cancelled while the service was being processed."""

    def __init__(self, service: str):
        super().__init__(f"Upgrade of service {service} was cancelled")
        self.service = service


class QueueClosed(FleetUpgradeError):
    """A job was submitted after the job queue was closed."""
