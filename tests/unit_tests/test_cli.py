"""
Unit tests for CLI module.
"""

import os
import unittest
from unittest.mock import MagicMock, patch

from cli import build_parser, main
from errors import ServiceMapError


class TestCLI(unittest.TestCase):
    """Test CLI argument parsing and entry point."""

    def test_build_parser_creates_parser(self):
        """Test parser is created with expected defaults."""
        with patch.dict(os.environ, {}, clear=True):
            parser = build_parser()

        args = parser.parse_args(["--services", "web,api"])

        self.assertEqual(args.services, "web,api")
        self.assertEqual(args.url, "http://localhost:8080")
        self.assertEqual(args.accesskey, "")
        self.assertEqual(args.tag, "latest")
        self.assertEqual(args.parallelism, 5)
        self.assertEqual(args.log, "info")
        self.assertEqual(args.poll_interval, 1.0)
        self.assertEqual(args.finalize_timeout, 3600.0)
        self.assertFalse(args.dry_run)
        self.assertFalse(args.no_report)

    def test_parser_with_all_options(self):
        """Test parser handles all command-line options."""
        parser = build_parser()

        args = parser.parse_args(
            [
                "--accesskey",
                "ak",
                "--secretkey",
                "sk",
                "--url",
                "http://rancher:8080/v1",
                "--services",
                "web",
                "--image-prefix",
                "reg.example.com/",
                "--tag",
                "v3",
                "--parallelism",
                "2",
                "--log",
                "WARN",
                "--verbose",
                "--poll-interval",
                "0.5",
                "--finalize-timeout",
                "0",
                "--dry-run",
                "--no-report",
            ]
        )

        self.assertEqual(args.accesskey, "ak")
        self.assertEqual(args.secretkey, "sk")
        self.assertEqual(args.url, "http://rancher:8080/v1")
        self.assertEqual(args.image_prefix, "reg.example.com/")
        self.assertEqual(args.tag, "v3")
        self.assertEqual(args.parallelism, 2)
        self.assertEqual(args.log, "warn")
        self.assertTrue(args.verbose)
        self.assertEqual(args.poll_interval, 0.5)
        self.assertEqual(args.finalize_timeout, 0)
        self.assertTrue(args.dry_run)
        self.assertTrue(args.no_report)

    def test_parser_reads_credentials_from_environment(self):
        """Test keys and URL fall back to RANCHER_* variables."""
        env = {
            "RANCHER_ACCESS_KEY": "env-ak",
            "RANCHER_SECRET_KEY": "env-sk",
            "RANCHER_URL": "http://env-rancher:8080",
        }
        with patch.dict(os.environ, env, clear=True):
            parser = build_parser()

        args = parser.parse_args(["--services", "web"])

        self.assertEqual(args.accesskey, "env-ak")
        self.assertEqual(args.secretkey, "env-sk")
        self.assertEqual(args.url, "http://env-rancher:8080")

    def test_parser_requires_services(self):
        """Test parser requires the services argument."""
        parser = build_parser()

        with self.assertRaises(SystemExit):
            parser.parse_args(["--tag", "v1"])

    def test_parser_rejects_unknown_log_level(self):
        """Test an unsupported log level is rejected by the parser."""
        parser = build_parser()

        with self.assertRaises(SystemExit):
            parser.parse_args(["--services", "web", "--log", "trace"])

    @patch("cli.FleetUpgrader")
    @patch("cli.setup_logging")
    def test_main_success(self, mock_setup_logging, mock_upgrader_class):
        """Test main returns 0 when nothing failed."""
        mock_upgrader = MagicMock()
        mock_upgrader.run.return_value = MagicMock(failed=0)
        mock_upgrader.interrupted = False
        mock_upgrader_class.return_value = mock_upgrader

        result = main(["--services", "web,api", "--tag", "v3"])

        self.assertEqual(result, 0)
        config = mock_upgrader_class.call_args[0][0]
        self.assertEqual(config.services, ("web", "api"))
        self.assertEqual(config.image_tag, ":v3")
        mock_upgrader.run.assert_called_once_with()

    @patch("cli.FleetUpgrader")
    @patch("cli.setup_logging")
    def test_main_returns_failure_exit_code(
        self, mock_setup_logging, mock_upgrader_class
    ):
        """Test main returns exit code 1 when upgrades fail."""
        mock_upgrader = MagicMock()
        mock_upgrader.run.return_value = MagicMock(failed=2)
        mock_upgrader.interrupted = False
        mock_upgrader_class.return_value = mock_upgrader

        self.assertEqual(main(["--services", "web"]), 1)

    @patch("cli.FleetUpgrader")
    @patch("cli.setup_logging")
    def test_main_directory_failure_is_fatal(
        self, mock_setup_logging, mock_upgrader_class
    ):
        """Test main returns 2 when the service map cannot be built."""
        mock_upgrader = MagicMock()
        mock_upgrader.run.side_effect = ServiceMapError("connection refused")
        mock_upgrader_class.return_value = mock_upgrader

        self.assertEqual(main(["--services", "web"]), 2)

    @patch("cli.FleetUpgrader")
    @patch("cli.setup_logging")
    def test_main_invalid_config(self, mock_setup_logging, mock_upgrader_class):
        """Test main rejects an invalid configuration before doing any work."""
        self.assertEqual(main(["--services", "web", "--parallelism", "0"]), 2)
        mock_upgrader_class.assert_not_called()

    @patch("cli.FleetUpgrader")
    @patch("cli.setup_logging")
    def test_main_interrupted(self, mock_setup_logging, mock_upgrader_class):
        """Test main reports an interrupted run."""
        mock_upgrader = MagicMock()
        mock_upgrader.run.return_value = MagicMock(failed=0)
        mock_upgrader.interrupted = True
        mock_upgrader_class.return_value = mock_upgrader

        self.assertEqual(main(["--services", "web"]), 130)

    @patch("cli.FleetUpgrader")
    @patch("cli.setup_logging")
    def test_main_interrupted_while_listing_services(
        self, mock_setup_logging, mock_upgrader_class
    ):
        """Test Ctrl-C before dispatch returns 130 instead of a traceback."""
        mock_upgrader = MagicMock()
        mock_upgrader.run.side_effect = KeyboardInterrupt
        mock_upgrader_class.return_value = mock_upgrader

        self.assertEqual(main(["--services", "web"]), 130)
        mock_upgrader.cancel.assert_called_once_with()

    @patch("cli.FleetUpgrader")
    @patch("cli.setup_logging")
    def test_main_configures_logging(self, mock_setup_logging, mock_upgrader_class):
        """Test main passes the level and log file to setup_logging."""
        mock_upgrader = MagicMock()
        mock_upgrader.run.return_value = MagicMock(failed=0)
        mock_upgrader.interrupted = False
        mock_upgrader_class.return_value = mock_upgrader

        main(["--services", "web", "--log", "debug"])

        mock_setup_logging.assert_called_once()
        call_args = mock_setup_logging.call_args
        self.assertEqual(call_args[1]["level"], "debug")
        self.assertEqual(call_args[1]["log_file"], "rancher-upgrade.log")


if __name__ == "__main__":
    unittest.main()
