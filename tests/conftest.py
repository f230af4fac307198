"""Shared test fixtures for clustersee tests."""

import base64
import json
from collections.abc import Callable
from collections.abc import Generator
from collections.abc import Sequence
from pathlib import Path
from typing import Any

import pytest

from clustersee.exceptions import SourceUnavailableError
from clustersee.merge.correlator import Correlator
from clustersee.models import MetadataRecord
from clustersee.models import SchedulerKind
from clustersee.models import SchedulerRecord
from clustersee.state.clock import FrozenClock
from clustersee.state.clock import reset_clock
from clustersee.state.job_store import JobStore

#: Fixed "now" used by the frozen clock fixture (2023-11-14 22:13:20 UTC)
NOW = 1_700_000_000.0


def make_scheduler_record(
    job_id: str = "123",
    state: str = "RUNNING",
    comment: str | None = "rule_align_reads_wildcards_sample=S1",
    **kwargs: Any,
) -> SchedulerRecord:
    """Create a SchedulerRecord with sensible defaults."""
    return SchedulerRecord(job_id=job_id, state=state, comment=comment, **kwargs)


def make_lsf_record(
    job_id: str = "456",
    state: str = "RUN",
    comment: str | None = "rule_align_reads_wildcards_sample=S1",
    **kwargs: Any,
) -> SchedulerRecord:
    """Create an LSF SchedulerRecord with sensible defaults."""
    return SchedulerRecord(
        job_id=job_id, state=state, comment=comment, scheduler=SchedulerKind.LSF, **kwargs
    )


def make_metadata_record(
    rule: str = "align_reads",
    wildcards: str | None = "sample=S1",
    outputs: Sequence[str] = ("out.bam",),
    **kwargs: Any,
) -> MetadataRecord:
    """Create a MetadataRecord with sensible defaults."""
    return MetadataRecord(rule=rule, wildcards=wildcards, outputs=tuple(outputs), **kwargs)


def encode_output_path(output: str) -> str:
    """Encode an output path the way Snakemake names metadata files."""
    return base64.urlsafe_b64encode(output.encode()).decode()


def write_metadata(metadata_dir: Path, output: str, data: dict[str, Any]) -> Path:
    """Write one Snakemake metadata file for ``output``."""
    path = metadata_dir / encode_output_path(output)
    path.write_text(json.dumps(data))
    return path


class FakeRunner:
    """Scripted command runner.

    Maps the command name (first argument) to stdout text or an exception
    to raise. Every invocation is recorded in ``calls``.
    """

    def __init__(self, outputs: dict[str, str | Exception] | None = None) -> None:
        self.outputs: dict[str, str | Exception] = dict(outputs or {})
        self.calls: list[tuple[list[str], float, bool]] = []

    def __call__(self, args: Sequence[str], timeout: float, allow_failure: bool = False) -> str:
        self.calls.append((list(args), timeout, allow_failure))
        result = self.outputs.get(args[0])
        if result is None:
            raise SourceUnavailableError(args[0], f"Failed to execute {args[0]}")
        if isinstance(result, Exception):
            raise result
        return result


@pytest.fixture
def clock() -> FrozenClock:
    """A clock frozen at NOW."""
    return FrozenClock(NOW, frozen_monotonic=100.0)


@pytest.fixture
def store(clock: FrozenClock) -> JobStore:
    """An empty job store using the frozen clock."""
    return JobStore(history_hours=24.0, clock=clock)


@pytest.fixture
def correlator(store: JobStore) -> Correlator:
    """A correlator bound to the store fixture."""
    return Correlator(store)


@pytest.fixture
def workflow_dir(tmp_path: Path) -> Path:
    """Create a mock workflow directory with an empty metadata directory."""
    (tmp_path / ".snakemake" / "metadata").mkdir(parents=True)
    return tmp_path


@pytest.fixture
def metadata_dir(workflow_dir: Path) -> Path:
    """The metadata directory inside workflow_dir."""
    return workflow_dir / ".snakemake" / "metadata"


@pytest.fixture
def fake_runner() -> Callable[..., FakeRunner]:
    """Factory for scripted command runners."""
    return FakeRunner


@pytest.fixture(autouse=True)
def cleanup_clock() -> Generator[None, None, None]:
    """Reset the default clock after each test."""
    yield
    reset_clock()
