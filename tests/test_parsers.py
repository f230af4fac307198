"""Tests for scheduler field parsers."""

from datetime import datetime

import pytest

from clustersee.sources.parsers import non_empty_string
from clustersee.sources.parsers import parse_count
from clustersee.sources.parsers import parse_duration
from clustersee.sources.parsers import parse_exit_code
from clustersee.sources.parsers import parse_lsf_memory
from clustersee.sources.parsers import parse_lsf_timestamp
from clustersee.sources.parsers import parse_slurm_memory
from clustersee.sources.parsers import parse_slurm_timestamp
from clustersee.state.clock import FrozenClock
from clustersee.state.clock import set_clock


class TestTimestamps:
    """Tests for SLURM and LSF timestamp parsing."""

    def test_slurm_timestamp(self) -> None:
        """Test an ISO-like SLURM timestamp is read as local time."""
        expected = datetime(2024, 1, 15, 10, 30, 0).timestamp()
        assert parse_slurm_timestamp("2024-01-15T10:30:00") == expected

    @pytest.mark.parametrize("value", ["", "N/A", "Unknown", "None", "  "])
    def test_slurm_placeholders(self, value: str) -> None:
        """Test SLURM placeholders mean no value."""
        assert parse_slurm_timestamp(value) is None

    def test_slurm_garbage_raises(self) -> None:
        """Test unparseable text is an error, not a silent None."""
        with pytest.raises(ValueError):
            parse_slurm_timestamp("yesterday")

    def test_lsf_timestamp_with_year(self) -> None:
        """Test a full LSF timestamp."""
        expected = datetime(2024, 12, 18, 10, 30).timestamp()
        assert parse_lsf_timestamp("Dec 18 10:30 2024") == expected

    def test_lsf_timestamp_with_seconds(self) -> None:
        """Test LSF timestamps that include seconds."""
        expected = datetime(2024, 12, 18, 10, 30, 15).timestamp()
        assert parse_lsf_timestamp("Dec 18 10:30:15 2024") == expected

    def test_lsf_timestamp_without_year(self) -> None:
        """Test the current year is assumed when bjobs omits it."""
        set_clock(FrozenClock(datetime(2025, 6, 1, 12, 0).timestamp()))
        expected = datetime(2025, 12, 18, 10, 30).timestamp()
        assert parse_lsf_timestamp("Dec 18 10:30") == expected

    def test_lsf_estimate_marker_ignored(self) -> None:
        """Test the trailing E/L/X marker is dropped."""
        expected = datetime(2024, 12, 18, 10, 30).timestamp()
        assert parse_lsf_timestamp("Dec 18 10:30 2024 L") == expected

    def test_lsf_placeholder(self) -> None:
        """Test LSF's dash placeholder."""
        assert parse_lsf_timestamp("-") is None

    def test_lsf_garbage_raises(self) -> None:
        """Test unparseable LSF timestamps raise."""
        with pytest.raises(ValueError, match="Unrecognized LSF timestamp"):
            parse_lsf_timestamp("not a date")


class TestDuration:
    """Tests for time limit parsing."""

    @pytest.mark.parametrize(
        ("value", "expected"),
        [
            ("1-00:00:00", 86400),
            ("2:30:00", 9000),
            ("30:15", 1815),
            ("90", 90),
            ("UNLIMITED", None),
            ("-", None),
            ("", None),
        ],
    )
    def test_parse_duration(self, value: str, expected: int | None) -> None:
        """Test the supported duration forms."""
        assert parse_duration(value) == expected

    def test_too_many_parts(self) -> None:
        """Test a duration with four components is rejected."""
        with pytest.raises(ValueError):
            parse_duration("1:2:3:4")


class TestMemory:
    """Tests for memory parsing."""

    @pytest.mark.parametrize(
        ("value", "expected"),
        [("4G", 4096), ("1000M", 1000), ("2048K", 2), ("1T", 1048576), ("512", 512), ("", None)],
    )
    def test_slurm_memory(self, value: str, expected: int | None) -> None:
        """Test SLURM memory units convert to MB."""
        assert parse_slurm_memory(value) == expected

    def test_sacct_suffix(self) -> None:
        """Test the per-node and per-cpu suffix from sacct is stripped."""
        assert parse_slurm_memory("4Gn", sacct=True) == 4096
        assert parse_slurm_memory("1000Mc", sacct=True) == 1000

    def test_slurm_memory_garbage(self) -> None:
        """Test non-numeric memory raises."""
        with pytest.raises(ValueError):
            parse_slurm_memory("lots")

    @pytest.mark.parametrize(
        ("value", "expected"),
        [("4 GB", 4096), ("1000 MB", 1000), ("1024 KB", 1), ("256", 256), ("-", None)],
    )
    def test_lsf_memory(self, value: str, expected: int | None) -> None:
        """Test LSF memory units convert to MB."""
        assert parse_lsf_memory(value) == expected

    def test_lsf_unknown_unit(self) -> None:
        """Test an unknown LSF unit raises."""
        with pytest.raises(ValueError, match="Unrecognized LSF memory unit"):
            parse_lsf_memory("4 PB")


class TestScalars:
    """Tests for exit codes, counts and text fields."""

    def test_exit_code_with_signal(self) -> None:
        """Test SLURM's code:signal keeps the code."""
        assert parse_exit_code("137:9") == 137
        assert parse_exit_code("0:0") == 0

    def test_exit_code_empty(self) -> None:
        """Test empty exit codes."""
        assert parse_exit_code("") is None
        assert parse_exit_code("-") is None

    def test_exit_code_garbage(self) -> None:
        """Test non-numeric exit codes raise."""
        with pytest.raises(ValueError):
            parse_exit_code("abc")

    def test_parse_count(self) -> None:
        """Test CPU counts."""
        assert parse_count("8") == 8
        assert parse_count("N/A") is None
        with pytest.raises(ValueError):
            parse_count("eight")

    def test_non_empty_string(self) -> None:
        """Test text placeholders become None and values are stripped."""
        assert non_empty_string("  short ") == "short"
        assert non_empty_string("(null)") is None
        assert non_empty_string("-") is None
