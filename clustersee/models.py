"""Data models for unified cluster job state."""

from __future__ import annotations

import math
from collections.abc import Sequence
from dataclasses import dataclass
from dataclasses import field
from dataclasses import replace
from enum import Enum
from enum import Flag
from enum import auto

from clustersee.constants import UNKNOWN_RULE


class JobStatus(Enum):
    """Unified job status across metadata and scheduler sources.

    Statuses are partially ordered by progress rank:
    ``UNKNOWN < PENDING < QUEUED < RUNNING < {COMPLETED, FAILED, CANCELLED}``.
    The three terminal statuses share the top rank.
    """

    PENDING = "pending"
    QUEUED = "queued"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"
    UNKNOWN = "unknown"

    @property
    def rank(self) -> int:
        """Progress rank used to reject stale status observations."""
        return _STATUS_RANK[self]

    @property
    def is_terminal(self) -> bool:
        """Whether this status can never be replaced by a non-terminal one."""
        return self in TERMINAL_STATUSES

    @property
    def symbol(self) -> str:
        """Single-character glyph for compact display."""
        return _STATUS_SYMBOL[self]


TERMINAL_STATUSES: frozenset[JobStatus] = frozenset(
    {JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.CANCELLED}
)

_STATUS_RANK: dict[JobStatus, int] = {
    JobStatus.UNKNOWN: 0,
    JobStatus.PENDING: 1,
    JobStatus.QUEUED: 2,
    JobStatus.RUNNING: 3,
    JobStatus.COMPLETED: 4,
    JobStatus.FAILED: 4,
    JobStatus.CANCELLED: 4,
}

_STATUS_SYMBOL: dict[JobStatus, str] = {
    JobStatus.PENDING: "○",
    JobStatus.QUEUED: "◐",
    JobStatus.RUNNING: "●",
    JobStatus.COMPLETED: "✓",
    JobStatus.FAILED: "✗",
    JobStatus.CANCELLED: "⊘",
    JobStatus.UNKNOWN: "?",
}


class DataSource(Flag):
    """Sources that can contribute to a job record.

    Used both as a single source tag and, combined, as a job's provenance.
    """

    NONE = 0
    METADATA = auto()
    SCHEDULER_ACTIVE = auto()
    SCHEDULER_HISTORY = auto()

    @property
    def priority(self) -> int:
        """Precedence when two sources disagree (history > active > metadata)."""
        return _SOURCE_PRIORITY.get(self, 0)

    @property
    def label(self) -> str:
        """Short human-readable name."""
        return _SOURCE_LABEL.get(self, "none")


_SOURCE_PRIORITY: dict[DataSource, int] = {
    DataSource.METADATA: 1,
    DataSource.SCHEDULER_ACTIVE: 2,
    DataSource.SCHEDULER_HISTORY: 3,
}

_SOURCE_LABEL: dict[DataSource, str] = {
    DataSource.METADATA: "metadata",
    DataSource.SCHEDULER_ACTIVE: "active",
    DataSource.SCHEDULER_HISTORY: "history",
}

#: The three polled sources, in priority order
POLLED_SOURCES: tuple[DataSource, ...] = (
    DataSource.METADATA,
    DataSource.SCHEDULER_ACTIVE,
    DataSource.SCHEDULER_HISTORY,
)


class SchedulerKind(Enum):
    """Supported batch schedulers."""

    SLURM = "slurm"
    LSF = "lsf"


@dataclass
class JobTiming:
    """Submitted/started/ended timestamps, each independently optional.

    Attributes:
        submitted: Unix timestamp when the job entered the scheduler queue.
        started: Unix timestamp when execution began.
        ended: Unix timestamp when execution finished.
        slot_sources: Which source last set each populated slot.
    """

    submitted: float | None = None
    started: float | None = None
    ended: float | None = None
    slot_sources: dict[str, DataSource] = field(default_factory=dict)

    SLOTS = ("submitted", "started", "ended")

    def copy(self) -> JobTiming:
        """Return an independent copy."""
        return replace(self, slot_sources=dict(self.slot_sources))


@dataclass
class JobResources:
    """Requested resources as reported by the scheduler."""

    cpus: int | None = None
    memory_mb: int | None = None
    time_limit_seconds: int | None = None
    partition: str | None = None
    node: str | None = None

    FIELDS = ("cpus", "memory_mb", "time_limit_seconds", "partition", "node")


@dataclass(frozen=True)
class JobError:
    """Failure details for a job."""

    exit_code: int
    message: str


@dataclass
class Job:
    """One logical unit of work, accumulated across all sources.

    Stored instances are treated as immutable: merges build a new Job and
    swap it into the store, so a snapshot taken earlier never observes a
    partially applied update.

    Attributes:
        key: Correlation key, unique across the store.
        rule: Workflow rule name (``"unknown"`` for uncorrelated scheduler jobs).
        wildcards: Normalized ``key=value`` wildcard string.
        inputs: Input paths, in first-seen order.
        outputs: Output paths, in first-seen order.
        shell_command: Shell command from workflow metadata.
        status: Current unified status.
        status_source: Source that set the current status.
        scheduler_job_id: Scheduler job ID, if submitted.
        scheduler: Which scheduler reported the job.
        timing: Submission and execution timestamps.
        resources: Requested resources.
        log_paths: Log files reported for the job.
        error: Failure details, if any.
        conda_env: Conda environment from workflow metadata.
        container_img_url: Container image from workflow metadata.
        provenance: Every source that has ever contributed to this job.
        updated_at: Unix timestamp of the last change to this record.
    """

    key: str
    rule: str
    wildcards: str | None = None
    inputs: list[str] = field(default_factory=list)
    outputs: list[str] = field(default_factory=list)
    shell_command: str | None = None
    status: JobStatus = JobStatus.UNKNOWN
    status_source: DataSource = DataSource.NONE
    scheduler_job_id: str | None = None
    scheduler: SchedulerKind | None = None
    timing: JobTiming = field(default_factory=JobTiming)
    resources: JobResources = field(default_factory=JobResources)
    log_paths: set[str] = field(default_factory=set)
    error: JobError | None = None
    conda_env: str | None = None
    container_img_url: str | None = None
    provenance: DataSource = DataSource.NONE
    updated_at: float = 0.0

    def copy(self) -> Job:
        """Return an independent copy of this job."""
        return replace(
            self,
            inputs=list(self.inputs),
            outputs=list(self.outputs),
            timing=self.timing.copy(),
            resources=replace(self.resources),
            log_paths=set(self.log_paths),
        )

    @property
    def is_orphan(self) -> bool:
        """True for scheduler jobs that could not be tied to a workflow rule."""
        return self.rule == UNKNOWN_RULE

    @property
    def display_name(self) -> str:
        """Rule name with wildcards, or the scheduler ID for orphans."""
        if self.is_orphan:
            return f"{self.rule} ({self.scheduler_job_id or self.key})"
        if self.wildcards:
            return f"{self.rule} [{self.wildcards}]"
        return self.rule

    def runtime(self, now: float) -> float | None:
        """Seconds spent executing, measured to ``now`` if still running."""
        if self.timing.started is None:
            return None
        end = self.timing.ended
        if end is None:
            if self.status.is_terminal:
                return None
            end = now
        return max(0.0, end - self.timing.started)


@dataclass(frozen=True)
class MetadataRecord:
    """One job as reported by the workflow metadata directory.

    Attributes:
        rule: Rule name.
        wildcards: Wildcards as reported (``"k=v, k2=v2"``), if any.
        inputs: Input paths.
        outputs: Output paths (decoded from the metadata file name).
        shell_command: Shell command that was executed.
        log_paths: Log files declared by the rule.
        start_time: Unix start timestamp.
        end_time: Unix end timestamp.
        incomplete: Whether the job is still marked incomplete.
        conda_env: Conda environment, if any.
        container_img_url: Container image, if any.
    """

    rule: str
    wildcards: str | None = None
    inputs: Sequence[str] = ()
    outputs: Sequence[str] = ()
    shell_command: str | None = None
    log_paths: Sequence[str] = ()
    start_time: float | None = None
    end_time: float | None = None
    incomplete: bool = False
    conda_env: str | None = None
    container_img_url: str | None = None


@dataclass(frozen=True)
class SchedulerRecord:
    """One row from a SLURM or LSF active or history query.

    Attributes:
        job_id: Scheduler job ID.
        state: Raw scheduler state string (e.g. ``"RUNNING"``, ``"EXIT"``).
        scheduler: Which scheduler produced the record.
        name: Scheduler job name (Snakemake uses the run UUID).
        comment: SLURM comment or LSF job description.
        partition: Partition (SLURM) or queue (LSF).
        submit_time: Unix submit timestamp.
        start_time: Unix start timestamp.
        end_time: Unix end timestamp.
        node: Node list (SLURM) or execution host (LSF).
        cpus: Allocated CPUs / processors.
        memory_mb: Requested memory in MB.
        time_limit_seconds: Wall-clock limit in seconds.
        exit_code: Exit code (history queries only).
    """

    job_id: str
    state: str
    scheduler: SchedulerKind = SchedulerKind.SLURM
    name: str = ""
    comment: str | None = None
    partition: str | None = None
    submit_time: float | None = None
    start_time: float | None = None
    end_time: float | None = None
    node: str | None = None
    cpus: int | None = None
    memory_mb: int | None = None
    time_limit_seconds: int | None = None
    exit_code: int | None = None


def format_duration(seconds: float) -> str:
    """
    Format a duration in seconds to a human-readable string.

    Args:
        seconds: Duration in seconds.

    Returns:
        Formatted string like "2h 15m" or "45s".
    """
    if math.isinf(seconds) or math.isnan(seconds):
        return "unknown"
    if seconds < 0:
        return "0s"
    seconds = int(seconds)
    hours, remainder = divmod(seconds, 3600)
    minutes, secs = divmod(remainder, 60)
    if hours:
        return f"{hours}h {minutes}m" if minutes else f"{hours}h"
    if minutes:
        return f"{minutes}m {secs}s" if secs else f"{minutes}m"
    return f"{secs}s"
