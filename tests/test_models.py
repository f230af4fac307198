"""Tests for data models."""

import pytest

from clustersee.models import POLLED_SOURCES
from clustersee.models import DataSource
from clustersee.models import Job
from clustersee.models import JobStatus
from clustersee.models import JobTiming
from clustersee.models import format_duration


class TestJobStatus:
    """Tests for JobStatus ordering and terminality."""

    def test_rank_order(self) -> None:
        """Test progress ranks follow Unknown < Pending < Queued < Running < terminal."""
        assert JobStatus.UNKNOWN.rank < JobStatus.PENDING.rank
        assert JobStatus.PENDING.rank < JobStatus.QUEUED.rank
        assert JobStatus.QUEUED.rank < JobStatus.RUNNING.rank
        for terminal in (JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.CANCELLED):
            assert JobStatus.RUNNING.rank < terminal.rank

    def test_terminal_statuses(self) -> None:
        """Test exactly three statuses are terminal."""
        terminal = {status for status in JobStatus if status.is_terminal}
        assert terminal == {JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.CANCELLED}

    def test_every_status_has_a_symbol(self) -> None:
        """Test every status renders as a single glyph."""
        for status in JobStatus:
            assert len(status.symbol) == 1


class TestDataSource:
    """Tests for DataSource flags."""

    def test_priority_order(self) -> None:
        """Test history outranks active, which outranks metadata."""
        assert DataSource.SCHEDULER_HISTORY.priority > DataSource.SCHEDULER_ACTIVE.priority
        assert DataSource.SCHEDULER_ACTIVE.priority > DataSource.METADATA.priority
        assert DataSource.NONE.priority == 0

    def test_provenance_combines(self) -> None:
        """Test sources combine into a provenance set."""
        provenance = DataSource.METADATA | DataSource.SCHEDULER_HISTORY
        assert DataSource.METADATA in provenance
        assert DataSource.SCHEDULER_ACTIVE not in provenance

    def test_labels(self) -> None:
        """Test each polled source has a distinct label."""
        labels = [source.label for source in POLLED_SOURCES]
        assert labels == ["metadata", "active", "history"]


class TestJob:
    """Tests for the Job record."""

    def test_copy_is_independent(self) -> None:
        """Test copies do not share mutable collections."""
        job = Job(key="a", rule="a", outputs=["x"], log_paths={"l"})
        job.timing.started = 1.0
        clone = job.copy()
        clone.outputs.append("y")
        clone.log_paths.add("m")
        clone.timing.started = 2.0
        assert job.outputs == ["x"]
        assert job.log_paths == {"l"}
        assert job.timing.started == 1.0
        assert clone == clone.copy()

    def test_orphan(self) -> None:
        """Test jobs with the unknown rule are orphans."""
        assert Job(key="123", rule="unknown", scheduler_job_id="123").is_orphan
        assert not Job(key="align", rule="align").is_orphan

    def test_display_name(self) -> None:
        """Test display names for plain, wildcarded and orphan jobs."""
        assert Job(key="align", rule="align").display_name == "align"
        wildcarded = Job(key="align[sample=S1]", rule="align", wildcards="sample=S1")
        assert wildcarded.display_name == "align [sample=S1]"
        orphan = Job(key="99", rule="unknown", scheduler_job_id="99")
        assert orphan.display_name == "unknown (99)"

    def test_runtime_running(self) -> None:
        """Test runtime of a running job is measured to now."""
        job = Job(key="a", rule="a", status=JobStatus.RUNNING, timing=JobTiming(started=100.0))
        assert job.runtime(160.0) == 60.0

    def test_runtime_finished(self) -> None:
        """Test runtime of a finished job uses its end time."""
        job = Job(
            key="a",
            rule="a",
            status=JobStatus.COMPLETED,
            timing=JobTiming(started=100.0, ended=130.0),
        )
        assert job.runtime(1000.0) == 30.0

    def test_runtime_unknown(self) -> None:
        """Test runtime is None before start or for terminal jobs without an end."""
        assert Job(key="a", rule="a").runtime(10.0) is None
        job = Job(key="a", rule="a", status=JobStatus.FAILED, timing=JobTiming(started=1.0))
        assert job.runtime(10.0) is None


class TestFormatDuration:
    """Tests for format_duration."""

    @pytest.mark.parametrize(
        ("seconds", "expected"),
        [
            (0, "0s"),
            (45, "45s"),
            (60, "1m"),
            (90, "1m 30s"),
            (3600, "1h"),
            (3660, "1h 1m"),
            (-5, "0s"),
            (float("inf"), "unknown"),
            (float("nan"), "unknown"),
        ],
    )
    def test_format(self, seconds: float, expected: str) -> None:
        """Test formatting across ranges."""
        assert format_duration(seconds) == expected
