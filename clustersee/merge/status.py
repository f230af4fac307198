"""Scheduler state mapping and the status precedence rule."""

from __future__ import annotations

from clustersee.models import DataSource
from clustersee.models import JobError
from clustersee.models import JobStatus
from clustersee.models import SchedulerKind

SLURM_STATE_MAP: dict[str, JobStatus] = {
    "PENDING": JobStatus.QUEUED,
    "PD": JobStatus.QUEUED,
    "RUNNING": JobStatus.RUNNING,
    "R": JobStatus.RUNNING,
    "COMPLETED": JobStatus.COMPLETED,
    "CD": JobStatus.COMPLETED,
    "FAILED": JobStatus.FAILED,
    "F": JobStatus.FAILED,
    "CANCELLED": JobStatus.CANCELLED,
    "CA": JobStatus.CANCELLED,
    "TIMEOUT": JobStatus.FAILED,
    "TO": JobStatus.FAILED,
    "OUT_OF_MEMORY": JobStatus.FAILED,
    "OOM": JobStatus.FAILED,
    "NODE_FAIL": JobStatus.FAILED,
    "NF": JobStatus.FAILED,
}

LSF_STATE_MAP: dict[str, JobStatus] = {
    "PEND": JobStatus.QUEUED,
    "RUN": JobStatus.RUNNING,
    "DONE": JobStatus.COMPLETED,
    "EXIT": JobStatus.FAILED,
    "PSUSP": JobStatus.PENDING,
    "USUSP": JobStatus.PENDING,
    "SSUSP": JobStatus.PENDING,
    "ZOMBI": JobStatus.UNKNOWN,
}

_STATE_MAPS: dict[SchedulerKind, dict[str, JobStatus]] = {
    SchedulerKind.SLURM: SLURM_STATE_MAP,
    SchedulerKind.LSF: LSF_STATE_MAP,
}

# Failure messages for states that imply a cause without an exit code
_STATE_ERRORS: dict[str, str] = {
    "TIMEOUT": "Job exceeded time limit",
    "TO": "Job exceeded time limit",
    "OUT_OF_MEMORY": "Job exceeded memory limit",
    "OOM": "Job exceeded memory limit",
    "NODE_FAIL": "Node failure",
    "NF": "Node failure",
}


def _base_state(raw: str) -> str:
    """Reduce e.g. ``"CANCELLED by 1234"`` or ``"running+"`` to ``"CANCELLED"``/``"RUNNING"``."""
    tokens = raw.strip().split()
    if not tokens:
        return ""
    return tokens[0].rstrip("+").upper()


def map_scheduler_state(raw: str, scheduler: SchedulerKind) -> JobStatus:
    """
    Map a raw scheduler state to a unified JobStatus.

    Args:
        raw: State string as printed by the scheduler.
        scheduler: Which scheduler produced it.

    Returns:
        The unified status; unrecognized states map to UNKNOWN.
    """
    return _STATE_MAPS[scheduler].get(_base_state(raw), JobStatus.UNKNOWN)


def error_for_state(raw: str, scheduler: SchedulerKind, exit_code: int | None) -> JobError | None:
    """
    Derive failure details from a raw state and optional exit code.

    Args:
        raw: State string as printed by the scheduler.
        scheduler: Which scheduler produced it.
        exit_code: Exit code from a history query, if known.

    Returns:
        JobError for failed states, otherwise None.
    """
    if map_scheduler_state(raw, scheduler) is not JobStatus.FAILED:
        return None
    base = _base_state(raw)
    if base in _STATE_ERRORS:
        return JobError(exit_code=-1, message=_STATE_ERRORS[base])
    if exit_code is not None:
        return JobError(exit_code=exit_code, message=f"Exit code: {exit_code}")
    return None


def resolve_status(
    current: JobStatus,
    current_source: DataSource,
    incoming: JobStatus,
    incoming_source: DataSource,
) -> tuple[JobStatus, DataSource]:
    """
    Decide which status a job keeps after an observation.

    A terminal status is accepted as soon as it is observed and is never
    replaced by a non-terminal one. Between two terminal statuses the
    observation from the higher-or-equal priority source wins. Otherwise
    the incoming status is adopted only if its progress rank is not lower.

    Returns:
        Tuple of (status, source that set it).
    """
    if current.is_terminal:
        if incoming.is_terminal and incoming_source.priority >= current_source.priority:
            return incoming, incoming_source
        return current, current_source
    if incoming.is_terminal or incoming.rank >= current.rank:
        return incoming, incoming_source
    return current, current_source
