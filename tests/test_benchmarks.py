"""Performance benchmarks for clustersee.

Run benchmarks with: pytest tests/test_benchmarks.py --benchmark-only
Compare results: pytest tests/test_benchmarks.py --benchmark-compare

These tests are skipped by default in normal test runs.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import TYPE_CHECKING

import pytest

from clustersee.merge.correlator import Correlator
from clustersee.models import MetadataRecord
from clustersee.models import SchedulerRecord
from clustersee.sources.metadata import scan_metadata_dir
from clustersee.sources.slurm import parse_squeue_line
from clustersee.state.clock import FrozenClock
from clustersee.state.job_store import JobFilter
from clustersee.state.job_store import JobStore
from clustersee.state.job_store import SortMode
from tests.conftest import NOW
from tests.conftest import encode_output_path
from tests.conftest import make_metadata_record
from tests.conftest import make_scheduler_record
from tests.test_slurm import SQUEUE_LINE

if TYPE_CHECKING:
    from pytest_benchmark.fixture import BenchmarkFixture

# Skip benchmarks by default (run with --benchmark-only or --benchmark-enable)
pytestmark = pytest.mark.benchmark

JOBS = 1000
STATES = ("PENDING", "RUNNING", "COMPLETED", "FAILED")


def metadata_batch() -> list[MetadataRecord]:
    return [
        make_metadata_record(
            rule=f"rule_{i % 10}",
            wildcards=f"sample=s{i}",
            outputs=[f"out/s{i}.txt"],
            start_time=NOW - 3600 + i,
        )
        for i in range(JOBS)
    ]


def scheduler_batch() -> list[SchedulerRecord]:
    return [
        make_scheduler_record(
            job_id=str(10_000 + i),
            state=STATES[i % len(STATES)],
            comment=f"rule_rule_{i % 10}_wildcards_sample=s{i}",
            submit_time=NOW - 3600 + i,
        )
        for i in range(JOBS)
    ]


class TestMergeBenchmarks:
    """Benchmarks for correlating and merging large batches."""

    def test_benchmark_merge_active(self, benchmark: BenchmarkFixture) -> None:
        """Benchmark merging an active batch into a populated store."""
        metadata = metadata_batch()
        active = scheduler_batch()

        def merge() -> int:
            store = JobStore(clock=FrozenClock(NOW))
            correlator = Correlator(store)
            correlator.merge_metadata(metadata)
            correlator.merge_scheduler_active(active)
            return len(store)

        result = benchmark(merge)
        assert result == JOBS

    def test_benchmark_remerge_unchanged(self, benchmark: BenchmarkFixture) -> None:
        """Benchmark re-merging a batch that changes nothing."""
        store = JobStore(clock=FrozenClock(NOW))
        correlator = Correlator(store)
        active = scheduler_batch()
        correlator.merge_scheduler_active(active)

        report = benchmark(correlator.merge_scheduler_active, active)
        assert report.unchanged == JOBS


class TestStoreBenchmarks:
    """Benchmarks for reading the store from the display."""

    @pytest.fixture
    def populated_store(self) -> JobStore:
        """A store holding a mix of statuses."""
        store = JobStore(clock=FrozenClock(NOW))
        Correlator(store).merge_scheduler_active(scheduler_batch())
        return store

    def test_benchmark_snapshot(
        self, benchmark: BenchmarkFixture, populated_store: JobStore
    ) -> None:
        """Benchmark taking a consistent snapshot."""
        snapshot = benchmark(populated_store.snapshot)
        assert len(snapshot) == JOBS

    def test_benchmark_view(self, benchmark: BenchmarkFixture, populated_store: JobStore) -> None:
        """Benchmark filtering and sorting a snapshot for display."""
        snapshot = populated_store.snapshot()

        def view() -> list[str]:
            return snapshot.view(JobFilter.ALL, SortMode.TIME)

        result = benchmark(view)
        assert len(result) == JOBS


class TestSourceBenchmarks:
    """Benchmarks for reading raw source data."""

    @pytest.fixture
    def large_metadata_dir(self, tmp_path: Path) -> Path:
        """Generate a large metadata directory."""
        metadata_dir = tmp_path / "metadata"
        metadata_dir.mkdir()
        for i in range(500):
            metadata = {
                "rule": f"rule_{i % 10}",
                "starttime": NOW - 3600 + i,
                "endtime": NOW - 3000 + i,
                "wildcards": {"sample": f"s{i}"},
            }
            output = encode_output_path(f"out/s{i}.txt")
            (metadata_dir / output).write_text(json.dumps(metadata))
        return metadata_dir

    def test_benchmark_metadata_scan(
        self, benchmark: BenchmarkFixture, large_metadata_dir: Path
    ) -> None:
        """Benchmark scanning the metadata directory."""
        result = benchmark(scan_metadata_dir, large_metadata_dir)
        assert len(result.records) == 500

    def test_benchmark_squeue_parsing(self, benchmark: BenchmarkFixture) -> None:
        """Benchmark parsing squeue output lines."""
        line = SQUEUE_LINE

        def parse_many() -> int:
            return len([parse_squeue_line(line) for _ in range(JOBS)])

        result = benchmark(parse_many)
        assert result == JOBS
