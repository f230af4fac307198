"""Tests for following job log files."""

import threading
from pathlib import Path

from clustersee.log_follow import LogFollower
from clustersee.log_follow import LogFollowWatcher


class TestLogFollower:
    """Tests for LogFollower."""

    def test_missing_file(self, tmp_path: Path) -> None:
        """Test a log that does not exist yet yields nothing."""
        follower = LogFollower(tmp_path / "missing.log")
        assert follower.poll() == []
        assert follower.offset == 0

    def test_reads_only_appended_lines(self, tmp_path: Path) -> None:
        """Test each poll returns only new lines."""
        log = tmp_path / "job.log"
        log.write_text("one\ntwo\n")
        follower = LogFollower(log)
        assert follower.poll() == ["one", "two"]

        with log.open("a") as f:
            f.write("three\n")
        assert follower.poll() == ["three"]
        assert follower.poll() == []
        assert follower.lines == ["one", "two", "three"]

    def test_partial_line_buffered(self, tmp_path: Path) -> None:
        """Test a line without its newline is held until completed."""
        log = tmp_path / "job.log"
        log.write_text("start\nprogr")
        follower = LogFollower(log)
        assert follower.poll() == ["start"]

        with log.open("a") as f:
            f.write("ess 50%\r\n")
        assert follower.poll() == ["progress 50%"]

    def test_split_multibyte_character(self, tmp_path: Path) -> None:
        """Test a UTF-8 character split across writes decodes once complete."""
        log = tmp_path / "job.log"
        log.write_bytes(b"caf\xc3")
        follower = LogFollower(log)
        assert follower.poll() == []

        with log.open("ab") as f:
            f.write(b"\xa9\n")
        assert follower.poll() == ["café"]

    def test_truncation_resets(self, tmp_path: Path) -> None:
        """Test a shrinking file is reread from the start."""
        log = tmp_path / "job.log"
        log.write_text("a long first attempt\n")
        follower = LogFollower(log)
        follower.poll()

        log.write_text("retry\n")
        assert follower.poll() == ["retry"]
        assert follower.rotations == 1
        assert follower.lines == ["retry"]

    def test_retained_lines_bounded(self, tmp_path: Path) -> None:
        """Test only the most recent lines are kept."""
        log = tmp_path / "job.log"
        log.write_text("".join(f"line {i}\n" for i in range(10)))
        follower = LogFollower(log, max_lines=3)
        follower.poll()
        assert follower.lines == ["line 7", "line 8", "line 9"]


class TestLogFollowWatcher:
    """Tests for LogFollowWatcher."""

    def test_poll_once_calls_back(self, tmp_path: Path) -> None:
        """Test new lines are passed to the callback."""
        log = tmp_path / "job.log"
        log.write_text("hello\n")
        received: list[list[str]] = []
        watcher = LogFollowWatcher(log, on_lines=received.append)

        assert watcher.poll_once() == ["hello"]
        assert watcher.poll_once() == []
        assert received == [["hello"]]
        assert watcher.lines() == ["hello"]

    def test_background_follow_and_stop(self, tmp_path: Path) -> None:
        """Test the watcher thread picks up appends and exits when stopped."""
        log = tmp_path / "job.log"
        log.write_text("")
        seen = threading.Event()
        watcher = LogFollowWatcher(log, interval=0.01, on_lines=lambda lines: seen.set())

        watcher.start()
        assert watcher.active
        with log.open("a") as f:
            f.write("step 1 done\n")
        assert seen.wait(5.0)

        watcher.stop(timeout=5.0)
        assert not watcher.active
        assert watcher.lines() == ["step 1 done"]

    def test_start_twice(self, tmp_path: Path) -> None:
        """Test a second start is ignored."""
        watcher = LogFollowWatcher(tmp_path / "job.log", interval=0.01)
        watcher.start()
        thread = watcher._thread
        watcher.start()
        assert watcher._thread is thread
        watcher.stop(timeout=5.0)

    def test_stop_before_start(self, tmp_path: Path) -> None:
        """Test stopping an unstarted watcher is harmless."""
        watcher = LogFollowWatcher(tmp_path / "job.log")
        watcher.stop()
        assert not watcher.active
