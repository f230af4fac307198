"""Wiring for one monitoring session.

``open_session`` performs every startup check (the only fatal errors) and
builds one job store shared explicitly by the correlator, the poller and
the presentation layer.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from types import TracebackType

from clustersee.exceptions import WorkflowNotFoundError
from clustersee.log_follow import LogFollowWatcher
from clustersee.merge.correlator import Correlator
from clustersee.models import Job
from clustersee.polling import MetadataScanner
from clustersee.polling import Poller
from clustersee.sources import make_scheduler_source
from clustersee.sources.base import SchedulerSource
from clustersee.sources.command import run_command
from clustersee.sources.metadata import scan_metadata_dir
from clustersee.state.clock import Clock
from clustersee.state.config import MonitorConfig
from clustersee.state.job_store import JobStore
from clustersee.types import CommandRunner

logger = logging.getLogger(__name__)


@dataclass
class MonitorSession:
    """
    Everything a monitoring session owns.

    Use as a context manager to run the poller for the duration of a block.

    Attributes:
        config: Validated configuration.
        store: The session's job store.
        correlator: Correlator bound to ``store``.
        poller: Poller feeding ``store``.
        scheduler: Scheduler source, or None for metadata-only monitoring.
    """

    config: MonitorConfig
    store: JobStore
    correlator: Correlator
    poller: Poller
    scheduler: SchedulerSource | None = None

    def __enter__(self) -> MonitorSession:
        self.poller.start()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.poller.stop(timeout=self.config.command_timeout)

    @property
    def scheduler_name(self) -> str:
        """Display name of the scheduler in use."""
        return self.scheduler.kind.value if self.scheduler is not None else "none"

    def log_path(self, job: Job) -> Path | None:
        """
        Resolve the log file to show for ``job``.

        Relative log paths are taken relative to the working directory.
        """
        if not job.log_paths:
            return None
        path = Path(sorted(job.log_paths)[0])
        return path if path.is_absolute() else self.config.working_dir / path

    def follow_log(self, job: Job) -> LogFollowWatcher | None:
        """Start following the log of ``job``, or return None if it has none."""
        path = self.log_path(job)
        if path is None:
            return None
        watcher = LogFollowWatcher(path, interval=self.config.log_follow_interval)
        watcher.start()
        return watcher


def open_session(
    config: MonitorConfig,
    runner: CommandRunner = run_command,
    clock: Clock | None = None,
    metadata_scanner: MetadataScanner = scan_metadata_dir,
) -> MonitorSession:
    """
    Validate configuration and build a monitoring session.

    Nothing is polled until the session is entered or ``poller.start()``
    is called.

    Args:
        config: Session configuration.
        runner: Command runner for scheduler detection and queries.
        clock: Time source shared by every component.
        metadata_scanner: Function reading the metadata directory.

    Returns:
        A ready-to-start MonitorSession.

    Raises:
        ConfigurationError: If the configuration is invalid.
        WorkflowNotFoundError: If the working directory does not exist.
    """
    config.validate()
    if not config.working_dir.is_dir():
        raise WorkflowNotFoundError(config.working_dir)

    store = JobStore(history_hours=config.history_hours, clock=clock)
    correlator = Correlator(store, run_uuid=config.run_uuid)
    scheduler = make_scheduler_source(config, runner=runner, clock=store.clock)
    poller = Poller(
        config,
        store,
        correlator,
        scheduler=scheduler,
        metadata_scanner=metadata_scanner,
        clock=store.clock,
    )
    logger.info(
        "Monitoring %s (scheduler: %s)",
        config.working_dir,
        scheduler.kind.value if scheduler is not None else "none",
    )
    return MonitorSession(config, store, correlator, poller, scheduler)
