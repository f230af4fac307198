"""SLURM source: ``squeue`` for live jobs, ``sacct`` for history."""

from __future__ import annotations

import getpass
from datetime import datetime

from clustersee.constants import DEFAULT_COMMAND_TIMEOUT
from clustersee.constants import DEFAULT_HISTORY_HOURS
from clustersee.exceptions import RecordParseError
from clustersee.models import SchedulerKind
from clustersee.models import SchedulerRecord
from clustersee.sources.base import FetchResult
from clustersee.sources.base import parse_lines
from clustersee.sources.command import run_command
from clustersee.sources.parsers import SLURM_TIMESTAMP_FORMAT
from clustersee.sources.parsers import non_empty_string
from clustersee.sources.parsers import parse_count
from clustersee.sources.parsers import parse_duration
from clustersee.sources.parsers import parse_exit_code
from clustersee.sources.parsers import parse_slurm_memory
from clustersee.sources.parsers import parse_slurm_timestamp
from clustersee.state.clock import Clock
from clustersee.state.clock import get_clock
from clustersee.types import CommandRunner

# JobID, JobName, State, Partition, SubmitTime, StartTime, EndTime,
# NodeList, CPUs, Memory, TimeLimit, Comment
SQUEUE_FORMAT = "%A|%j|%T|%P|%V|%S|%e|%N|%C|%m|%l|%k"
SQUEUE_FIELDS = 12

SACCT_FORMAT = (
    "JobIDRaw,JobName,State,Partition,Submit,Start,End,NodeList,"
    "AllocCPUS,ReqMem,Timelimit,Comment,ExitCode"
)
SACCT_FIELDS = 13


def parse_squeue_line(line: str) -> SchedulerRecord:
    """
    Parse one line of ``squeue -o SQUEUE_FORMAT`` output.

    The comment is the last column and may itself contain ``|``.

    Raises:
        RecordParseError: If the line is malformed.
    """
    fields = line.split("|")
    if len(fields) < SQUEUE_FIELDS:
        raise RecordParseError(
            "squeue", line, f"Expected {SQUEUE_FIELDS} fields, got {len(fields)}: {line!r}"
        )
    return _build_record("squeue", line, fields[:11], "|".join(fields[11:]), None, sacct=False)


def parse_sacct_line(line: str) -> SchedulerRecord:
    """
    Parse one line of ``sacct --parsable2 --format SACCT_FORMAT`` output.

    Raises:
        RecordParseError: If the line is malformed.
    """
    fields = line.split("|")
    if len(fields) < SACCT_FIELDS:
        raise RecordParseError(
            "sacct", line, f"Expected {SACCT_FIELDS} fields, got {len(fields)}: {line!r}"
        )
    comment = "|".join(fields[11:-1])
    return _build_record("sacct", line, fields[:11], comment, fields[-1], sacct=True)


def _build_record(
    source: str,
    line: str,
    fields: list[str],
    comment: str,
    exit_code: str | None,
    sacct: bool,
) -> SchedulerRecord:
    job_id = fields[0].strip()
    if not job_id:
        raise RecordParseError(source, line, f"Missing job ID in {source} record: {line!r}")
    try:
        return SchedulerRecord(
            job_id=job_id,
            state=fields[2].strip(),
            scheduler=SchedulerKind.SLURM,
            name=fields[1].strip(),
            comment=non_empty_string(comment),
            partition=non_empty_string(fields[3]),
            submit_time=parse_slurm_timestamp(fields[4]),
            start_time=parse_slurm_timestamp(fields[5]),
            end_time=parse_slurm_timestamp(fields[6]),
            node=non_empty_string(fields[7]),
            cpus=parse_count(fields[8]),
            memory_mb=parse_slurm_memory(fields[9], sacct=sacct),
            time_limit_seconds=parse_duration(fields[10]),
            exit_code=parse_exit_code(exit_code) if exit_code is not None else None,
        )
    except ValueError as e:
        raise RecordParseError(source, line, f"Malformed {source} record {job_id}: {e}") from e


class SlurmSource:
    """
    Query SLURM for the current user's jobs.

    Args:
        run_uuid: Restrict queries to jobs with this name.
        history_hours: How far back ``sacct`` looks.
        timeout: Bound on each command.
        runner: Command runner, injectable for tests.
        user: User whose jobs ``squeue`` lists. Defaults to the current user.
        clock: Time source for the history start time.
    """

    kind = SchedulerKind.SLURM

    def __init__(
        self,
        run_uuid: str | None = None,
        history_hours: float = DEFAULT_HISTORY_HOURS,
        timeout: float = DEFAULT_COMMAND_TIMEOUT,
        runner: CommandRunner = run_command,
        user: str | None = None,
        clock: Clock | None = None,
    ) -> None:
        self.run_uuid = run_uuid
        self.history_hours = history_hours
        self.timeout = timeout
        self.runner = runner
        self.user = user or getpass.getuser()
        self.clock = clock or get_clock()

    def active_command(self) -> list[str]:
        """Build the ``squeue`` invocation."""
        args = ["squeue", "-u", self.user, "-h", "-o", SQUEUE_FORMAT]
        if self.run_uuid:
            args.extend(["--name", self.run_uuid])
        return args

    def history_command(self) -> list[str]:
        """Build the ``sacct`` invocation covering the history window."""
        since = datetime.fromtimestamp(self.clock.now() - self.history_hours * 3600)
        args = [
            "sacct",
            "-X",
            "--parsable2",
            "--noheader",
            "--format",
            SACCT_FORMAT,
            "--starttime",
            since.strftime(SLURM_TIMESTAMP_FORMAT),
        ]
        if self.run_uuid:
            args.extend(["--name", self.run_uuid])
        return args

    def fetch_active(self) -> FetchResult[SchedulerRecord]:
        """Run ``squeue`` and parse its output."""
        return parse_lines(self.runner(self.active_command(), self.timeout), parse_squeue_line)

    def fetch_history(self) -> FetchResult[SchedulerRecord]:
        """Run ``sacct`` and parse its output."""
        return parse_lines(self.runner(self.history_command(), self.timeout), parse_sacct_line)
