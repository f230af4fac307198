"""Follow a job's log file while it is open in the viewer.

``LogFollower`` reads only newly appended bytes on each poll and starts
over when the file shrinks (truncation or rotation). ``LogFollowWatcher``
runs a follower on a background thread until it is stopped.
"""

from __future__ import annotations

import codecs
import logging
import threading
from collections import deque
from pathlib import Path

from clustersee.constants import LOG_FOLLOW_INTERVAL
from clustersee.constants import LOG_TAIL_LINES
from clustersee.types import LinesCallback
from clustersee.utils import safe_file_size
from clustersee.utils import safe_mtime

logger = logging.getLogger(__name__)

#: Upper bound on bytes read per poll, so a huge first read stays bounded
MAX_READ_BYTES: int = 4 * 1024 * 1024


class LogFollower:
    """
    Incremental tail of one log file.

    Attributes:
        path: File being followed.
        offset: Byte offset of the next unread byte.
        rotations: Times the file was observed to shrink.
    """

    def __init__(self, path: Path, max_lines: int = LOG_TAIL_LINES) -> None:
        self.path = path
        self.offset = 0
        self.rotations = 0
        self._mtime = 0.0
        self._partial = ""
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._lines: deque[str] = deque(maxlen=max_lines)

    @property
    def lines(self) -> list[str]:
        """Most recent complete lines, oldest first."""
        return list(self._lines)

    def _reset(self) -> None:
        self.offset = 0
        self._partial = ""
        self._decoder.reset()
        self._lines.clear()

    def poll(self) -> list[str]:
        """
        Read any bytes appended since the last poll.

        A missing file yields nothing and is retried on the next poll.

        Returns:
            Complete lines read by this poll.
        """
        size = safe_file_size(self.path)
        mtime = safe_mtime(self.path)

        if size < self.offset:
            logger.debug("%s shrank from %d to %d bytes; rereading", self.path, self.offset, size)
            self.rotations += 1
            self._reset()

        if size == self.offset and mtime == self._mtime:
            return []
        self._mtime = mtime
        if size == self.offset:
            return []

        try:
            with self.path.open("rb") as f:
                f.seek(self.offset)
                data = f.read(min(size - self.offset, MAX_READ_BYTES))
        except OSError as e:
            logger.debug("Error reading %s: %s", self.path, e)
            return []

        self.offset += len(data)
        text = self._partial + self._decoder.decode(data)
        *complete, self._partial = text.split("\n")
        new_lines = [line.rstrip("\r") for line in complete]
        self._lines.extend(new_lines)
        return new_lines


class LogFollowWatcher:
    """
    Background thread polling a LogFollower at a fixed interval.

    Example:
        watcher = LogFollowWatcher(Path("logs/align/S1.log"))
        watcher.start()
        lines = watcher.lines()
        watcher.stop()
    """

    def __init__(
        self,
        path: Path,
        interval: float = LOG_FOLLOW_INTERVAL,
        max_lines: int = LOG_TAIL_LINES,
        on_lines: LinesCallback | None = None,
    ) -> None:
        """
        Initialize the watcher.

        Args:
            path: Log file to follow.
            interval: Seconds between polls.
            max_lines: Lines retained for display.
            on_lines: Called from the watcher thread with each batch of new lines.
        """
        self.path = path
        self.interval = interval
        self.on_lines = on_lines
        self._follower = LogFollower(path, max_lines)
        self._lock = threading.Lock()
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def active(self) -> bool:
        """Whether the watcher thread is running."""
        return self._thread is not None and self._thread.is_alive() and not self._stop.is_set()

    def lines(self) -> list[str]:
        """Snapshot of the retained lines."""
        with self._lock:
            return self._follower.lines

    def poll_once(self) -> list[str]:
        """Run a single poll on the calling thread."""
        with self._lock:
            new_lines = self._follower.poll()
        if new_lines and self.on_lines is not None:
            self.on_lines(new_lines)
        return new_lines

    def start(self) -> None:
        """Start following. Calling twice has no effect."""
        if self._thread is not None:
            return
        self._thread = threading.Thread(
            target=self._run, name="clustersee-log-follow", daemon=True
        )
        self._thread.start()

    def _run(self) -> None:
        while not self._stop.is_set():
            self.poll_once()
            if self._stop.wait(self.interval):
                break

    def stop(self, timeout: float | None = 1.0) -> None:
        """Cancel the watcher and wait briefly for its thread to exit."""
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
