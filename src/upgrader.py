"""
Fleet upgrader logic for Rancher services.
"""

import json
import logging
import threading
import time
from datetime import datetime
from typing import Callable, List, Optional, Sequence

from actions import FINISH_UPGRADE_ACTION, UPGRADE_ACTION, ActionGate, UpgradeStepExecutor
from clients import RancherRestClient
from config import UpgraderConfig
from directory import ServiceDirectory
from dispatcher import Dispatcher
from errors import (
    ActionCheckError,
    ActionUnavailable,
    FinalizeTimeout,
    UnknownService,
    UpgradeCancelled,
    UpgradeError,
)
from models import (
    ControllerState,
    OutcomeStatus,
    RunSummary,
    ServiceRef,
    UpgradeJob,
    UpgradeOutcome,
    build_image_reference,
)

logger = logging.getLogger(__name__)


def build_jobs(services: Sequence[str], prefix: str, tag: str) -> List[UpgradeJob]:
    """
    Build one upgrade job per requested service.

    Repeated names are collapsed to their first occurrence so a service is
    never upgraded by two workers at once.
    """
    jobs: List[UpgradeJob] = []
    seen = set()
    for name in services:
        if name in seen:
            logger.warning(f"Service {name} requested more than once; upgrading it once")
            continue
        seen.add(name)
        jobs.append(UpgradeJob(name, build_image_reference(prefix, name, tag)))
    return jobs


class ServiceUpgradeController:
    """
    Drives one service through upgrade and finishupgrade.

    The controller holds no per-job state, so a single instance is shared by
    every worker. Each call to ``run`` walks the states
    IDLE -> UPGRADING -> AWAITING_FINISH -> FINISHED and stops in ABORTED as
    soon as a step cannot proceed. Failures are returned as outcomes rather
    than raised.
    """

    def __init__(
        self,
        directory: ServiceDirectory,
        gate: ActionGate,
        executor: UpgradeStepExecutor,
        poll_interval: float = 1.0,
        finalize_timeout: Optional[float] = None,
        dry_run: bool = False,
        stop_event: Optional[threading.Event] = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Optional[Callable[[float], object]] = None,
    ):
        """
        Initialize the controller.

        Args:
            directory: Name to identifier lookup
            gate: Action availability checks
            executor: Upgrade step calls
            poll_interval: Seconds between finishupgrade availability checks
            finalize_timeout: Maximum seconds to wait for finishupgrade, None for no limit
            dry_run: Only check that the upgrade action is available
            stop_event: Set to cancel waiting upgrades
            clock: Monotonic time source used for the finalize deadline
            sleep: Wait function; defaults to waiting on the stop event
        """
        self.directory = directory
        self.gate = gate
        self.executor = executor
        self.poll_interval = poll_interval
        self.finalize_timeout = finalize_timeout
        self.dry_run = dry_run
        self.stop_event = stop_event or threading.Event()
        self.clock = clock
        self.sleep = sleep or self.stop_event.wait

    def run(self, job: UpgradeJob) -> UpgradeOutcome:
        """
        Run the upgrade state machine for one job.

        Args:
            job: The job to process

        Returns:
            Terminal outcome of the job
        """
        start = time.time()
        attempts = 0

        def finish(
            status: OutcomeStatus,
            final_state: ControllerState,
            reason: Optional[str] = None,
            error: Optional[Exception] = None,
        ) -> UpgradeOutcome:
            end = time.time()
            return UpgradeOutcome(
                service_name=job.service_name,
                image_reference=job.image_reference,
                status=status,
                final_state=final_state,
                reason=reason,
                error=error,
                start_time=start,
                end_time=end,
                duration_seconds=end - start,
                poll_attempts=attempts,
            )

        try:
            service = self.directory.resolve(job.service_name)
        except UnknownService as e:
            logger.error(f"Skipping {job.service_name}: {e}")
            return finish(OutcomeStatus.SKIPPED, ControllerState.ABORTED, str(e), e)

        if not self._available(service, UPGRADE_ACTION):
            err = ActionUnavailable(UPGRADE_ACTION, service.name)
            logger.error(f"Skipping {service.name}: {err}")
            return finish(
                OutcomeStatus.SKIPPED,
                ControllerState.ABORTED,
                f"precondition not met: {err}",
                err,
            )

        if self.dry_run:
            logger.info(f"DRY RUN: Would upgrade {service.name} to {job.image_reference}")
            return finish(OutcomeStatus.DRY_RUN, ControllerState.IDLE)

        if self.stop_event.is_set():
            logger.info(f"Not upgrading {service.name}: run cancelled")
            return finish(
                OutcomeStatus.SKIPPED, ControllerState.IDLE, "cancelled before start"
            )

        logger.debug(f"{service.name}: {ControllerState.UPGRADING.value}")
        try:
            self.executor.begin_upgrade(service, job.image_reference)
        except UpgradeError as e:
            logger.error(f"Upgrade FAILED for {service.name}: {e}")
            return finish(OutcomeStatus.FAILED, ControllerState.ABORTED, str(e), e)

        logger.debug(f"{service.name}: {ControllerState.AWAITING_FINISH.value}")
        try:
            attempts = self._wait_for_finish(service)
        except (FinalizeTimeout, UpgradeCancelled) as e:
            attempts = getattr(e, "attempts", attempts)
            logger.error(f"Upgrade of {service.name} not finished: {e}")
            return finish(OutcomeStatus.FAILED, ControllerState.ABORTED, str(e), e)

        try:
            self.executor.finish_upgrade(service)
        except UpgradeError as e:
            logger.error(f"Finish upgrade FAILED for {service.name}: {e}")
            return finish(OutcomeStatus.FAILED, ControllerState.ABORTED, str(e), e)

        outcome = finish(OutcomeStatus.SUCCEEDED, ControllerState.FINISHED)
        logger.info(
            f"✓ Upgrade COMPLETED for {service.name} in {outcome.duration_seconds:.1f}s"
        )
        return outcome

    def _available(self, service: ServiceRef, action: str) -> bool:
        """Gate check where an undeterminable answer counts as unavailable."""
        try:
            return self.gate.is_action_available(service, action)
        except ActionCheckError as e:
            logger.error(str(e))
            return False

    def _wait_for_finish(self, service: ServiceRef) -> int:
        """
        Poll until finishupgrade becomes available.

        Returns:
            Number of availability checks made

        Raises:
            FinalizeTimeout: If the deadline passes first
            UpgradeCancelled: If the stop event is set while waiting
        """
        started = self.clock()
        attempts = 0
        while True:
            if self.stop_event.is_set():
                raise UpgradeCancelled(service.name)

            attempts += 1
            try:
                if self.gate.is_action_available(service, FINISH_UPGRADE_ACTION):
                    return attempts
            except ActionCheckError as e:
                logger.debug(f"{service.name}: {e}")

            waited = self.clock() - started
            if self.finalize_timeout is not None and waited >= self.finalize_timeout:
                raise FinalizeTimeout(service.name, waited, attempts)

            logger.debug(
                f"  {service.name}: waiting for {FINISH_UPGRADE_ACTION} ({waited:.0f}s elapsed)"
            )
            self.sleep(self.poll_interval)


class FleetUpgrader:
    """Manages fleet-wide upgrade runs for Rancher services."""

    def __init__(self, config: UpgraderConfig, client=None):
        """
        Initialize the fleet upgrader.

        Args:
            config: Run configuration
            client: Rancher API client; built from the configuration if omitted
        """
        self.config = config
        if client is None:
            client = RancherRestClient(
                server_url=config.server_url,
                access_key=config.access_key,
                secret_key=config.secret_key,
            )
        self.api = client
        self.stop_event = threading.Event()
        self.dispatcher = Dispatcher(config.parallelism, stop_event=self.stop_event)
        self.summary = RunSummary()

    @property
    def interrupted(self) -> bool:
        return self.dispatcher.interrupted

    def build_controller(self, directory: ServiceDirectory) -> ServiceUpgradeController:
        return ServiceUpgradeController(
            directory=directory,
            gate=ActionGate(self.api),
            executor=UpgradeStepExecutor(self.api),
            poll_interval=self.config.poll_interval,
            finalize_timeout=self.config.finalize_timeout,
            dry_run=self.config.dry_run,
            stop_event=self.stop_event,
        )

    def run(self) -> RunSummary:
        """
        Execute the fleet upgrade.

        Returns:
            Summary of every service outcome

        Raises:
            ServiceMapError: If the service directory cannot be built
        """
        cfg = self.config
        self.summary = RunSummary(start_time=time.time())

        logger.info("=" * 70)
        logger.info("Rancher Fleet Service Upgrade")
        logger.info("=" * 70)
        logger.info(f"Server: {cfg.server_url}")
        logger.info(f"Services: {', '.join(cfg.services)}")
        logger.info(f"Image: {cfg.image_prefix}<service>{cfg.image_tag}")
        logger.info(f"Dry run: {cfg.dry_run}")
        logger.info(f"Parallelism: {cfg.parallelism}")
        logger.info(f"Poll interval: {cfg.poll_interval}s")
        logger.info(
            f"Finalize timeout: {f'{cfg.finalize_timeout:.0f}s' if cfg.finalize_timeout else 'none'}"
        )
        logger.info(f"Start time: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}")
        logger.info("=" * 70)

        directory = ServiceDirectory.build(self.api)
        jobs = build_jobs(cfg.services, cfg.image_prefix, cfg.image_tag)
        controller = self.build_controller(directory)

        self.summary.outcomes = self.dispatcher.dispatch(jobs, controller.run)
        self.summary.end_time = time.time()

        self._print_report()
        if cfg.export_report:
            self._export_results_json()
        return self.summary

    def cancel(self) -> None:
        self.dispatcher.cancel()

    def _format_duration(self, seconds: float) -> str:
        """Format duration in human-readable format."""
        if seconds < 60:
            return f"{seconds:.1f}s"
        elif seconds < 3600:
            mins = int(seconds // 60)
            secs = seconds % 60
            return f"{mins}m {secs:.0f}s"
        else:
            hours = int(seconds // 3600)
            mins = int((seconds % 3600) // 60)
            secs = seconds % 60
            return f"{hours}h {mins}m {secs:.0f}s"

    def _print_report(self):
        """Log timing, statistics and per-service results."""
        summary = self.summary

        logger.info("")
        logger.info("=" * 70)
        logger.info("UPGRADE REPORT")
        logger.info("=" * 70)
        logger.info(f"Total duration:  {self._format_duration(summary.duration_seconds or 0)}")

        logger.info("")
        logger.info("STATISTICS")
        logger.info("-" * 40)
        for k, v in summary.stats.items():
            logger.info(f"{k:20s}: {v}")

        successful = summary.by_status(OutcomeStatus.SUCCEEDED)
        if successful:
            logger.info("")
            logger.info("SUCCESSFUL UPGRADES")
            logger.info("-" * 40)
            logger.info(f"{'Service':<25} {'Duration':<12} {'Image'}")
            logger.info("-" * 70)
            for o in successful:
                duration_str = self._format_duration(o.duration_seconds or 0)
                logger.info(f"{o.service_name:<25} {duration_str:<12} {o.image_reference}")

        for title, status in (
            ("FAILED UPGRADES", OutcomeStatus.FAILED),
            ("SKIPPED SERVICES", OutcomeStatus.SKIPPED),
        ):
            outcomes = summary.by_status(status)
            if not outcomes:
                continue
            logger.info("")
            logger.info(title)
            logger.info("-" * 40)
            logger.info(f"{'Service':<25} {'Reason'}")
            logger.info("-" * 70)
            for o in outcomes:
                reason = o.reason or "Unknown"
                if len(reason) > 60:
                    reason = reason[:60] + "..."
                logger.info(f"{o.service_name:<25} {reason}")

        dry_run = summary.by_status(OutcomeStatus.DRY_RUN)
        if dry_run:
            logger.info("")
            logger.info("DRY RUN - WOULD UPGRADE")
            logger.info("-" * 40)
            for o in dry_run:
                logger.info(f"  {o.service_name} -> {o.image_reference}")

        logger.info("")
        logger.info("=" * 70)

    def _export_results_json(self) -> str:
        """Export the run summary to a JSON file for further processing."""
        summary = self.summary
        report = {
            "server_url": self.config.server_url,
            "dry_run": self.config.dry_run,
            "start_time": datetime.fromtimestamp(summary.start_time).isoformat(),
            "end_time": datetime.fromtimestamp(summary.end_time).isoformat(),
            **summary.to_dict(),
        }

        filename = f"upgrade-report-{datetime.now().strftime('%Y%m%d-%H%M%S')}.json"
        with open(filename, "w") as f:
            json.dump(report, f, indent=2)
        logger.info(f"Detailed report exported to: {filename}")
        return filename
