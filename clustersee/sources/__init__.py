"""Data sources: workflow metadata and SLURM/LSF scheduler queries."""

from __future__ import annotations

import logging

from clustersee.constants import DEFAULT_COMMAND_TIMEOUT
from clustersee.exceptions import ConfigurationError
from clustersee.exceptions import SourceUnavailableError
from clustersee.models import SchedulerKind
from clustersee.sources.base import FetchResult
from clustersee.sources.base import SchedulerSource
from clustersee.sources.base import parse_lines
from clustersee.sources.command import run_command
from clustersee.sources.lsf import LsfSource
from clustersee.sources.metadata import scan_metadata_dir
from clustersee.sources.slurm import SlurmSource
from clustersee.state.clock import Clock
from clustersee.state.config import MonitorConfig
from clustersee.types import CommandRunner

logger = logging.getLogger(__name__)

#: Version probes tried in order when the scheduler is auto-detected
SCHEDULER_PROBES: tuple[tuple[SchedulerKind, tuple[str, ...]], ...] = (
    (SchedulerKind.SLURM, ("squeue", "--version")),
    (SchedulerKind.LSF, ("bjobs", "-V")),
)


def detect_scheduler(
    runner: CommandRunner = run_command,
    timeout: float = DEFAULT_COMMAND_TIMEOUT,
) -> SchedulerKind | None:
    """
    Detect which scheduler client is installed.

    Returns:
        The first scheduler whose client answers a version query, or None
        if neither is available.
    """
    for kind, probe in SCHEDULER_PROBES:
        try:
            runner(probe, timeout)
        except SourceUnavailableError as e:
            logger.debug("%s not available: %s", kind.value, e.message)
            continue
        logger.debug("Detected scheduler: %s", kind.value)
        return kind
    return None


def make_scheduler_source(
    config: MonitorConfig,
    runner: CommandRunner = run_command,
    clock: Clock | None = None,
) -> SchedulerSource | None:
    """
    Build the scheduler source named (or detected) by ``config.scheduler``.

    Args:
        config: Session configuration.
        runner: Command runner shared by detection and the source.
        clock: Time source for history windows.

    Returns:
        The scheduler source, or None for metadata-only monitoring.

    Raises:
        ConfigurationError: If ``config.scheduler`` is not recognized.
    """
    if config.scheduler == "none":
        return None
    if config.scheduler == "auto":
        kind = detect_scheduler(runner, config.command_timeout)
        if kind is None:
            logger.info("No scheduler detected; monitoring workflow metadata only")
            return None
    else:
        try:
            kind = SchedulerKind(config.scheduler)
        except ValueError as e:
            raise ConfigurationError("scheduler", f"Unknown scheduler {config.scheduler!r}") from e

    if kind is SchedulerKind.SLURM:
        return SlurmSource(
            run_uuid=config.run_uuid,
            history_hours=config.history_hours,
            timeout=config.command_timeout,
            runner=runner,
            clock=clock,
        )
    return LsfSource(run_uuid=config.run_uuid, timeout=config.command_timeout, runner=runner)


__all__ = [
    "FetchResult",
    "LsfSource",
    "SchedulerSource",
    "SlurmSource",
    "detect_scheduler",
    "make_scheduler_source",
    "parse_lines",
    "scan_metadata_dir",
]
