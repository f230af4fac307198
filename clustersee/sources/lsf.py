"""LSF source: ``bjobs`` for live jobs, ``bjobs -a`` for recent history."""

from __future__ import annotations

from clustersee.constants import DEFAULT_COMMAND_TIMEOUT
from clustersee.exceptions import RecordParseError
from clustersee.models import SchedulerKind
from clustersee.models import SchedulerRecord
from clustersee.sources.base import FetchResult
from clustersee.sources.base import parse_lines
from clustersee.sources.command import run_command
from clustersee.sources.parsers import non_empty_string
from clustersee.sources.parsers import parse_count
from clustersee.sources.parsers import parse_exit_code
from clustersee.sources.parsers import parse_lsf_memory
from clustersee.sources.parsers import parse_lsf_timestamp
from clustersee.types import CommandRunner

BJOBS_COLUMNS = (
    "jobid stat queue submit_time start_time finish_time exec_host nprocs memlimit job_description"
)
BJOBS_FORMAT = f"{BJOBS_COLUMNS} delimiter='|'"
BJOBS_FIELDS = 10

# History adds the exit code as a trailing column
BJOBS_HISTORY_FORMAT = f"{BJOBS_COLUMNS} exit_code delimiter='|'"
BJOBS_HISTORY_FIELDS = 11

# bjobs prints e.g. "No unfinished job found" instead of an empty result
_INFO_PREFIXES = ("No ",)


def parse_bjobs_line(line: str) -> SchedulerRecord:
    """
    Parse one line of ``bjobs -o BJOBS_FORMAT`` output.

    Raises:
        RecordParseError: If the line is malformed.
    """
    fields = line.split("|")
    if len(fields) < BJOBS_FIELDS:
        raise RecordParseError(
            "bjobs", line, f"Expected {BJOBS_FIELDS} fields, got {len(fields)}: {line!r}"
        )
    return _build_record(line, fields[:9], "|".join(fields[9:]), None)


def parse_bjobs_history_line(line: str) -> SchedulerRecord:
    """
    Parse one line of ``bjobs -a -o BJOBS_HISTORY_FORMAT`` output.

    Raises:
        RecordParseError: If the line is malformed.
    """
    fields = line.split("|")
    if len(fields) < BJOBS_HISTORY_FIELDS:
        raise RecordParseError(
            "bjobs", line, f"Expected {BJOBS_HISTORY_FIELDS} fields, got {len(fields)}: {line!r}"
        )
    return _build_record(line, fields[:9], "|".join(fields[9:-1]), fields[-1])


def _build_record(
    line: str, fields: list[str], description: str, exit_code: str | None
) -> SchedulerRecord:
    job_id = fields[0].strip()
    if not job_id:
        raise RecordParseError("bjobs", line, f"Missing job ID in bjobs record: {line!r}")
    try:
        return SchedulerRecord(
            job_id=job_id,
            state=fields[1].strip(),
            scheduler=SchedulerKind.LSF,
            comment=non_empty_string(description),
            partition=non_empty_string(fields[2]),
            submit_time=parse_lsf_timestamp(fields[3]),
            start_time=parse_lsf_timestamp(fields[4]),
            end_time=parse_lsf_timestamp(fields[5]),
            node=non_empty_string(fields[6]),
            cpus=parse_count(fields[7]),
            memory_mb=parse_lsf_memory(fields[8]),
            exit_code=parse_exit_code(exit_code) if exit_code is not None else None,
        )
    except ValueError as e:
        raise RecordParseError("bjobs", line, f"Malformed bjobs record {job_id}: {e}") from e


class LsfSource:
    """
    Query LSF for the current user's jobs.

    ``bjobs`` exits non-zero when there are no matching jobs, so both
    queries tolerate a failing exit status and rely on the output alone.

    Args:
        run_uuid: Restrict queries to jobs with this name.
        timeout: Bound on each command.
        runner: Command runner, injectable for tests.
    """

    kind = SchedulerKind.LSF

    def __init__(
        self,
        run_uuid: str | None = None,
        timeout: float = DEFAULT_COMMAND_TIMEOUT,
        runner: CommandRunner = run_command,
    ) -> None:
        self.run_uuid = run_uuid
        self.timeout = timeout
        self.runner = runner

    def active_command(self) -> list[str]:
        """Build the ``bjobs`` invocation for queued and running jobs."""
        return self._with_name_filter(["bjobs", "-o", BJOBS_FORMAT, "-noheader"])

    def history_command(self) -> list[str]:
        """Build the ``bjobs -a`` invocation that includes finished jobs."""
        return self._with_name_filter(["bjobs", "-a", "-o", BJOBS_HISTORY_FORMAT, "-noheader"])

    def _with_name_filter(self, args: list[str]) -> list[str]:
        if self.run_uuid:
            args.extend(["-J", self.run_uuid])
        return args

    def fetch_active(self) -> FetchResult[SchedulerRecord]:
        """Run ``bjobs`` and parse its output."""
        output = self.runner(self.active_command(), self.timeout, allow_failure=True)
        return parse_lines(output, parse_bjobs_line, _INFO_PREFIXES)

    def fetch_history(self) -> FetchResult[SchedulerRecord]:
        """Run ``bjobs -a`` and parse its output."""
        output = self.runner(self.history_command(), self.timeout, allow_failure=True)
        return parse_lines(output, parse_bjobs_history_line, _INFO_PREFIXES)
