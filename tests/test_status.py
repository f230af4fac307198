"""Tests for scheduler state mapping and status precedence."""

import pytest

from clustersee.merge.status import error_for_state
from clustersee.merge.status import map_scheduler_state
from clustersee.merge.status import resolve_status
from clustersee.models import DataSource
from clustersee.models import JobError
from clustersee.models import JobStatus
from clustersee.models import SchedulerKind

SLURM = SchedulerKind.SLURM
LSF = SchedulerKind.LSF
METADATA = DataSource.METADATA
ACTIVE = DataSource.SCHEDULER_ACTIVE
HISTORY = DataSource.SCHEDULER_HISTORY


class TestMapSchedulerState:
    """Tests for map_scheduler_state."""

    @pytest.mark.parametrize(
        ("raw", "expected"),
        [
            ("PENDING", JobStatus.QUEUED),
            ("RUNNING", JobStatus.RUNNING),
            ("COMPLETED", JobStatus.COMPLETED),
            ("FAILED", JobStatus.FAILED),
            ("CANCELLED", JobStatus.CANCELLED),
            ("TIMEOUT", JobStatus.FAILED),
            ("OUT_OF_MEMORY", JobStatus.FAILED),
            ("NODE_FAIL", JobStatus.FAILED),
            ("PD", JobStatus.QUEUED),
            ("R", JobStatus.RUNNING),
            ("CD", JobStatus.COMPLETED),
            ("CANCELLED by 1234", JobStatus.CANCELLED),
            ("running", JobStatus.RUNNING),
            ("REQUEUED", JobStatus.UNKNOWN),
            ("", JobStatus.UNKNOWN),
        ],
    )
    def test_slurm(self, raw: str, expected: JobStatus) -> None:
        """Test SLURM states map to unified statuses."""
        assert map_scheduler_state(raw, SLURM) is expected

    @pytest.mark.parametrize(
        ("raw", "expected"),
        [
            ("PEND", JobStatus.QUEUED),
            ("RUN", JobStatus.RUNNING),
            ("DONE", JobStatus.COMPLETED),
            ("EXIT", JobStatus.FAILED),
            ("PSUSP", JobStatus.PENDING),
            ("USUSP", JobStatus.PENDING),
            ("SSUSP", JobStatus.PENDING),
            ("ZOMBI", JobStatus.UNKNOWN),
            ("WAIT", JobStatus.UNKNOWN),
        ],
    )
    def test_lsf(self, raw: str, expected: JobStatus) -> None:
        """Test LSF states map to unified statuses."""
        assert map_scheduler_state(raw, LSF) is expected

    def test_tables_are_per_scheduler(self) -> None:
        """Test an LSF state is not recognized as SLURM and vice versa."""
        assert map_scheduler_state("DONE", SLURM) is JobStatus.UNKNOWN
        assert map_scheduler_state("COMPLETED", LSF) is JobStatus.UNKNOWN


class TestErrorForState:
    """Tests for error_for_state."""

    def test_timeout(self) -> None:
        """Test TIMEOUT reports the time limit."""
        assert error_for_state("TIMEOUT", SLURM, 0) == JobError(-1, "Job exceeded time limit")

    def test_out_of_memory(self) -> None:
        """Test OUT_OF_MEMORY reports the memory limit."""
        assert error_for_state("OUT_OF_MEMORY", SLURM, None) == JobError(
            -1, "Job exceeded memory limit"
        )

    def test_node_fail(self) -> None:
        """Test NODE_FAIL reports a node failure."""
        assert error_for_state("NODE_FAIL", SLURM, None) == JobError(-1, "Node failure")

    def test_exit_code(self) -> None:
        """Test a failed job with an exit code reports it."""
        assert error_for_state("FAILED", SLURM, 137) == JobError(137, "Exit code: 137")
        assert error_for_state("EXIT", LSF, 1) == JobError(1, "Exit code: 1")

    def test_no_error(self) -> None:
        """Test non-failed states and failures without detail give no error."""
        assert error_for_state("COMPLETED", SLURM, 0) is None
        assert error_for_state("RUNNING", SLURM, None) is None
        assert error_for_state("FAILED", SLURM, None) is None


class TestResolveStatus:
    """Tests for resolve_status."""

    def test_progress_adopted(self) -> None:
        """Test a higher-rank status replaces a lower one."""
        result = resolve_status(JobStatus.QUEUED, ACTIVE, JobStatus.RUNNING, ACTIVE)
        assert result == (JobStatus.RUNNING, ACTIVE)

    def test_regression_rejected(self) -> None:
        """Test a lower-rank status does not replace a higher one."""
        result = resolve_status(JobStatus.RUNNING, ACTIVE, JobStatus.QUEUED, HISTORY)
        assert result == (JobStatus.RUNNING, ACTIVE)

    def test_terminal_never_regresses(self) -> None:
        """Test a stored terminal status survives any non-terminal observation."""
        for incoming in (JobStatus.RUNNING, JobStatus.QUEUED, JobStatus.PENDING, JobStatus.UNKNOWN):
            for source in (METADATA, ACTIVE, HISTORY):
                status, _ = resolve_status(JobStatus.COMPLETED, HISTORY, incoming, source)
                assert status is JobStatus.COMPLETED

    def test_terminal_accepted_from_any_source(self) -> None:
        """Test a terminal status is accepted as soon as it is seen."""
        result = resolve_status(JobStatus.RUNNING, HISTORY, JobStatus.COMPLETED, METADATA)
        assert result == (JobStatus.COMPLETED, METADATA)

    def test_terminal_replaced_by_higher_priority_terminal(self) -> None:
        """Test history can correct a terminal status reported by metadata."""
        result = resolve_status(JobStatus.COMPLETED, METADATA, JobStatus.FAILED, HISTORY)
        assert result == (JobStatus.FAILED, HISTORY)

    def test_terminal_not_replaced_by_lower_priority_terminal(self) -> None:
        """Test metadata cannot override a terminal status from history."""
        result = resolve_status(JobStatus.FAILED, HISTORY, JobStatus.COMPLETED, METADATA)
        assert result == (JobStatus.FAILED, HISTORY)
