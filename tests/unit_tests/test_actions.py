"""
Unit tests for ActionGate and UpgradeStepExecutor.
"""

import unittest
from unittest.mock import MagicMock

import requests

from actions import ActionGate, UpgradeStepExecutor, build_upgrade_spec
from errors import ActionCheckError, RancherApiError, UpgradeError
from models import ServiceRef

SERVICE = ServiceRef(name="web", identifier="1s1")


class TestBuildUpgradeSpec(unittest.TestCase):
    """Test construction of the upgrade action input."""

    def test_start_first_with_new_image(self):
        """Test the upgrade starts new containers first with the new image."""
        spec = build_upgrade_spec({}, "reg.example.com/web:v3")

        strategy = spec["inServiceStrategy"]
        self.assertTrue(strategy["startFirst"])
        self.assertEqual(
            strategy["launchConfig"]["imageUuid"], "docker:reg.example.com/web:v3"
        )

    def test_keeps_current_launch_config(self):
        """Test the current launch config is copied, not mutated."""
        service = {
            "launchConfig": {
                "imageUuid": "docker:reg.example.com/web:v2",
                "ports": ["80:8080/tcp"],
                "environment": {"MODE": "prod"},
            }
        }

        spec = build_upgrade_spec(service, "reg.example.com/web:v3")

        launch_config = spec["inServiceStrategy"]["launchConfig"]
        self.assertEqual(launch_config["ports"], ["80:8080/tcp"])
        self.assertEqual(launch_config["environment"], {"MODE": "prod"})
        self.assertEqual(
            service["launchConfig"]["imageUuid"], "docker:reg.example.com/web:v2"
        )


class TestActionGate(unittest.TestCase):
    """Test action availability checks."""

    def setUp(self):
        self.client = MagicMock()
        self.gate = ActionGate(self.client)

    def test_action_available(self):
        """Test an action is available only when listed in the actions map."""
        self.client.get_service.return_value = {
            "actions": {"upgrade": "http://x/?action=upgrade", "remove": "http://x"}
        }

        self.assertTrue(self.gate.is_action_available(SERVICE, "upgrade"))
        self.assertFalse(self.gate.is_action_available(SERVICE, "finishupgrade"))
        self.client.get_service.assert_called_with("1s1")

    def test_every_check_reads_live_state(self):
        """Test each check reads the service again."""
        self.client.get_service.side_effect = [
            {"actions": {}},
            {"actions": {"finishupgrade": "http://x"}},
        ]

        self.assertFalse(self.gate.is_action_available(SERVICE, "finishupgrade"))
        self.assertTrue(self.gate.is_action_available(SERVICE, "finishupgrade"))
        self.assertEqual(self.client.get_service.call_count, 2)

    def test_api_error_raises_action_check_error(self):
        """Test an API error makes the check undeterminable."""
        self.client.get_service.side_effect = RancherApiError("gone", 404)

        with self.assertRaises(ActionCheckError) as ctx:
            self.gate.is_action_available(SERVICE, "upgrade")

        self.assertEqual(ctx.exception.action, "upgrade")
        self.assertEqual(ctx.exception.service, "web")

    def test_transport_error_raises_action_check_error(self):
        """Test a transport error makes the check undeterminable."""
        self.client.get_service.side_effect = requests.ConnectionError("refused")

        with self.assertRaises(ActionCheckError):
            self.gate.is_action_available(SERVICE, "upgrade")

    def test_malformed_response_raises_action_check_error(self):
        """Test a missing actions map makes the check undeterminable."""
        self.client.get_service.return_value = {"id": "1s1", "actions": None}

        with self.assertRaises(ActionCheckError):
            self.gate.is_action_available(SERVICE, "upgrade")


class TestUpgradeStepExecutor(unittest.TestCase):
    """Test begin-upgrade and finish-upgrade calls."""

    def setUp(self):
        self.client = MagicMock()
        self.client.get_service.return_value = {
            "id": "1s1",
            "launchConfig": {"imageUuid": "docker:reg/web:v2"},
        }
        self.executor = UpgradeStepExecutor(self.client)

    def test_begin_upgrade(self):
        """Test begin_upgrade posts a start-first upgrade with the new image."""
        self.client.invoke_action.return_value = {"id": "1s1", "state": "upgrading"}

        result = self.executor.begin_upgrade(SERVICE, "reg/web:v3")

        self.assertEqual(result["state"], "upgrading")
        identifier, action, spec = self.client.invoke_action.call_args[0]
        self.assertEqual(identifier, "1s1")
        self.assertEqual(action, "upgrade")
        self.assertTrue(spec["inServiceStrategy"]["startFirst"])
        self.assertEqual(
            spec["inServiceStrategy"]["launchConfig"]["imageUuid"], "docker:reg/web:v3"
        )

    def test_begin_upgrade_failure_is_wrapped(self):
        """Test a rejected upgrade raises UpgradeError with its cause."""
        cause = RancherApiError("connection reset")
        self.client.invoke_action.side_effect = cause

        with self.assertRaises(UpgradeError) as ctx:
            self.executor.begin_upgrade(SERVICE, "reg/web:v3")

        self.assertEqual(ctx.exception.action, "upgrade")
        self.assertEqual(ctx.exception.service, "web")
        self.assertIs(ctx.exception.cause, cause)

    def test_begin_upgrade_read_failure_is_wrapped(self):
        """Test a failed service read aborts before the upgrade call."""
        self.client.get_service.side_effect = requests.Timeout("slow")

        with self.assertRaises(UpgradeError):
            self.executor.begin_upgrade(SERVICE, "reg/web:v3")

        self.client.invoke_action.assert_not_called()

    def test_finish_upgrade(self):
        """Test finish_upgrade posts finishupgrade with an empty body."""
        self.client.invoke_action.return_value = {"id": "1s1", "state": "active"}

        self.executor.finish_upgrade(SERVICE)

        self.client.invoke_action.assert_called_once_with("1s1", "finishupgrade", {})

    def test_finish_upgrade_failure_is_wrapped(self):
        """Test a rejected finishupgrade raises UpgradeError."""
        self.client.invoke_action.side_effect = RancherApiError("InvalidState", 422)

        with self.assertRaises(UpgradeError) as ctx:
            self.executor.finish_upgrade(SERVICE)

        self.assertEqual(ctx.exception.action, "finishupgrade")


if __name__ == "__main__":
    unittest.main()
