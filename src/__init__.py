"""
Rancher Fleet Service Upgrade Tool.
"""

from actions import ActionGate, UpgradeStepExecutor
from clients import RancherRestClient
from config import UpgraderConfig
from directory import ServiceDirectory
from dispatcher import Dispatcher, JobQueue
from log_utils import setup_logging
from models import RunSummary, ServiceRef, UpgradeJob, UpgradeOutcome
from upgrader import FleetUpgrader, ServiceUpgradeController

__all__ = [
    "ActionGate",
    "UpgradeStepExecutor",
    "RancherRestClient",
    "UpgraderConfig",
    "ServiceDirectory",
    "Dispatcher",
    "JobQueue",
    "setup_logging",
    "RunSummary",
    "ServiceRef",
    "UpgradeJob",
    "UpgradeOutcome",
    "FleetUpgrader",
    "ServiceUpgradeController",
]
