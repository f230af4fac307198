"""Core-facing configuration for a monitoring session."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from clustersee.constants import DEFAULT_ACTIVE_POLL_INTERVAL
from clustersee.constants import DEFAULT_COMMAND_TIMEOUT
from clustersee.constants import DEFAULT_HISTORY_HOURS
from clustersee.constants import HISTORY_POLL_INTERVAL
from clustersee.constants import LOG_FOLLOW_INTERVAL
from clustersee.constants import MAX_ACTIVE_POLL_INTERVAL
from clustersee.constants import METADATA_DEBOUNCE_SECONDS
from clustersee.constants import METADATA_POLL_INTERVAL
from clustersee.constants import MIN_ACTIVE_POLL_INTERVAL
from clustersee.exceptions import ConfigurationError

#: Accepted values for ``MonitorConfig.scheduler``
SCHEDULER_CHOICES: tuple[str, ...] = ("auto", "slurm", "lsf", "none")


@dataclass(frozen=True)
class MonitorConfig:
    """
    Parameters for one monitoring session.

    Supplied explicitly by the caller; nothing here is read from the
    environment.

    Attributes:
        working_dir: Workflow directory containing ``.snakemake/``.
        active_poll_interval: Seconds between active scheduler queries.
        history_poll_interval: Seconds between scheduler history queries.
        history_hours: Terminal jobs that ended longer ago are hidden from
            views, and history queries look back this far.
        run_uuid: Restrict scheduler queries to jobs named with this run ID.
        command_timeout: Upper bound on any single scheduler command.
        metadata_poll_interval: Seconds between metadata change checks.
        metadata_debounce: Quiet period after a change before rescanning.
        log_follow_interval: Seconds between checks of a followed log.
        scheduler: ``"auto"`` to detect, ``"slurm"``, ``"lsf"``, or ``"none"``
            for metadata-only monitoring.
    """

    working_dir: Path = Path(".")
    active_poll_interval: float = DEFAULT_ACTIVE_POLL_INTERVAL
    history_poll_interval: float = HISTORY_POLL_INTERVAL
    history_hours: float = DEFAULT_HISTORY_HOURS
    run_uuid: str | None = None
    command_timeout: float = DEFAULT_COMMAND_TIMEOUT
    metadata_poll_interval: float = METADATA_POLL_INTERVAL
    metadata_debounce: float = METADATA_DEBOUNCE_SECONDS
    log_follow_interval: float = LOG_FOLLOW_INTERVAL
    scheduler: str = "auto"

    @property
    def metadata_dir(self) -> Path:
        """Directory Snakemake writes per-output metadata files into."""
        return self.working_dir / ".snakemake" / "metadata"

    def validate(self) -> None:
        """
        Check every value is usable.

        Raises:
            ConfigurationError: If a value is out of range.
        """
        if not MIN_ACTIVE_POLL_INTERVAL <= self.active_poll_interval <= MAX_ACTIVE_POLL_INTERVAL:
            raise ConfigurationError(
                "active_poll_interval",
                f"active_poll_interval must be between {MIN_ACTIVE_POLL_INTERVAL:g} and "
                f"{MAX_ACTIVE_POLL_INTERVAL:g} seconds, got {self.active_poll_interval:g}",
            )
        if self.history_hours <= 0:
            raise ConfigurationError(
                "history_hours", f"history_hours must be positive, got {self.history_hours:g}"
            )
        for name in (
            "history_poll_interval",
            "command_timeout",
            "metadata_poll_interval",
            "log_follow_interval",
        ):
            value = getattr(self, name)
            if value <= 0:
                raise ConfigurationError(name, f"{name} must be positive, got {value:g}")
        if self.metadata_debounce < 0:
            raise ConfigurationError(
                "metadata_debounce",
                f"metadata_debounce must not be negative, got {self.metadata_debounce:g}",
            )
        if self.scheduler not in SCHEDULER_CHOICES:
            raise ConfigurationError(
                "scheduler",
                f"scheduler must be one of {', '.join(SCHEDULER_CHOICES)}, got {self.scheduler!r}",
            )
        if self.run_uuid is not None and not self.run_uuid.strip():
            raise ConfigurationError("run_uuid", "run_uuid must not be blank")


DEFAULT_CONFIG = MonitorConfig()
