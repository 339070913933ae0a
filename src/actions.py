"""
Action availability checks and the two upgrade steps for a Rancher service.
"""

import copy
import logging
from typing import Dict

import requests

from errors import ActionCheckError, RancherApiError, UpgradeError
from models import ServiceRef

logger = logging.getLogger(__name__)

UPGRADE_ACTION = "upgrade"
FINISH_UPGRADE_ACTION = "finishupgrade"

# Rancher expects the image uuid with its storage driver prefix
IMAGE_UUID_PREFIX = "docker:"

API_ERRORS = (RancherApiError, requests.RequestException)


def build_upgrade_spec(service: Dict, image_reference: str) -> Dict:
    """
    Build the ``upgrade`` action input for a service.

    The current launch config is carried over so only the image changes, and
    new containers are started before the old ones are stopped.

    Args:
        service: Current service representation
        image_reference: Image to roll out, without the ``docker:`` prefix

    Returns:
        Action input dictionary
    """
    launch_config = copy.deepcopy(service.get("launchConfig") or {})
    launch_config["imageUuid"] = IMAGE_UUID_PREFIX + image_reference
    return {
        "inServiceStrategy": {
            "startFirst": True,
            "launchConfig": launch_config,
        }
    }


class ActionGate:
    """Reports whether an action is currently allowed on a service."""

    def __init__(self, client):
        self.client = client

    def is_action_available(self, service: ServiceRef, action: str) -> bool:
        """
        Check the live action set of a service.

        Args:
            service: Resolved service reference
            action: Action name

        Returns:
            True if the action is listed in the service's actions

        Raises:
            ActionCheckError: If the service cannot be read or the response is malformed
        """
        try:
            data = self.client.get_service(service.identifier)
        except API_ERRORS as e:
            raise ActionCheckError(action, service.name, e) from e

        actions = data.get("actions")
        if not isinstance(actions, dict):
            raise ActionCheckError(
                action,
                service.name,
                RancherApiError(f"service {service.identifier} has no actions map"),
            )
        return action in actions


class UpgradeStepExecutor:
    """Performs the begin-upgrade and finish-upgrade calls."""

    def __init__(self, client):
        self.client = client

    def begin_upgrade(self, service: ServiceRef, image_reference: str) -> Dict:
        """
        Start an in-service, start-first upgrade to a new image.

        Raises:
            UpgradeError: If reading the service or invoking the action fails
        """
        logger.info(f"Starting upgrade of service {service.name}")
        try:
            current = self.client.get_service(service.identifier)
            spec = build_upgrade_spec(current, image_reference)
            return self.client.invoke_action(service.identifier, UPGRADE_ACTION, spec)
        except API_ERRORS as e:
            raise UpgradeError(UPGRADE_ACTION, service.name, e) from e

    def finish_upgrade(self, service: ServiceRef) -> Dict:
        """
        Finalize an upgrade once Rancher allows it.

        Raises:
            UpgradeError: If invoking the action fails
        """
        logger.info(f"Finishing upgrade on {service.name}")
        try:
            return self.client.invoke_action(
                service.identifier, FINISH_UPGRADE_ACTION, {}
            )
        except API_ERRORS as e:
            raise UpgradeError(FINISH_UPGRADE_ACTION, service.name, e) from e
