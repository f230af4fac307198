"""Background polling of every source into the job store.

Three timers run on their own threads: the active scheduler query, the
scheduler history query, and the metadata change check. Each cycle fetches
outside any lock, then merges under a per-source lock so results from one
source are applied in the order their fetches were issued. A fetch that
finishes after a newer fetch from the same source has already been merged
is discarded.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from pathlib import Path
from typing import TypeVar

from clustersee.exceptions import SourceError
from clustersee.merge.correlator import Correlator
from clustersee.merge.correlator import MergeReport
from clustersee.models import POLLED_SOURCES
from clustersee.models import DataSource
from clustersee.models import MetadataRecord
from clustersee.sources.base import FetchResult
from clustersee.sources.base import SchedulerSource
from clustersee.sources.metadata import scan_metadata_dir
from clustersee.state.clock import Clock
from clustersee.state.clock import get_clock
from clustersee.state.config import MonitorConfig
from clustersee.state.job_store import JobStore
from clustersee.types import MergeListener
from clustersee.utils import directory_signature

logger = logging.getLogger(__name__)

RecordT = TypeVar("RecordT")

MetadataScanner = Callable[[Path], FetchResult[MetadataRecord]]


class MetadataChangeDetector:
    """
    Debounced change detection for the metadata directory.

    Snakemake writes metadata files in bursts. A rescan becomes due only
    once the directory has stopped changing for ``debounce`` seconds. The
    first check is always due so the initial state is loaded promptly.

    Attributes:
        metadata_dir: Directory being watched.
        debounce: Quiet period in seconds.
    """

    def __init__(self, metadata_dir: Path, debounce: float, clock: Clock | None = None) -> None:
        self.metadata_dir = metadata_dir
        self.debounce = debounce
        self.clock = clock or get_clock()
        self._signature: tuple[int, float, int] | None = None
        self._changed_at: float | None = None
        self._lock = threading.Lock()

    def poll(self) -> bool:
        """Return True if a rescan is due now. Safe to call from several threads."""
        with self._lock:
            signature = directory_signature(self.metadata_dir)
            return self._observe(signature, self.clock.monotonic())

    def _observe(self, signature: tuple[int, float, int], now: float) -> bool:
        if self._signature is None:
            self._signature = signature
            return True

        if signature != self._signature:
            self._signature = signature
            self._changed_at = now

        if self._changed_at is not None and now - self._changed_at >= self.debounce:
            self._changed_at = None
            return True
        return False


class Poller:
    """
    Drives fetch and merge cycles for all sources.

    The per-cycle methods are synchronous and can be called directly; the
    ``start``/``stop`` pair runs them on background threads.

    Example:
        poller = Poller(config, store, Correlator(store), scheduler=SlurmSource())
        poller.start()
        ...
        poller.stop()
    """

    def __init__(
        self,
        config: MonitorConfig,
        store: JobStore,
        correlator: Correlator,
        scheduler: SchedulerSource | None = None,
        metadata_scanner: MetadataScanner = scan_metadata_dir,
        clock: Clock | None = None,
        on_merge: MergeListener | None = None,
    ) -> None:
        """
        Initialize the poller.

        Args:
            config: Session configuration (intervals, metadata directory).
            store: The session's job store.
            correlator: Correlator bound to ``store``.
            scheduler: Scheduler source, or None for metadata-only monitoring.
            metadata_scanner: Function reading the metadata directory.
            clock: Time source for the change detector.
            on_merge: Called after every applied merge.
        """
        self.config = config
        self.store = store
        self.correlator = correlator
        self.scheduler = scheduler
        self.metadata_scanner = metadata_scanner
        self.on_merge = on_merge
        self.detector = MetadataChangeDetector(
            config.metadata_dir, config.metadata_debounce, clock or store.clock
        )

        self._shutdown = threading.Event()
        self._threads: list[threading.Thread] = []
        self._seq_lock = threading.Lock()
        self._issued: dict[DataSource, int] = dict.fromkeys(POLLED_SOURCES, 0)
        self._merged: dict[DataSource, int] = dict.fromkeys(POLLED_SOURCES, 0)
        self._merge_locks: dict[DataSource, threading.Lock] = {
            source: threading.Lock() for source in POLLED_SOURCES
        }

    @property
    def running(self) -> bool:
        """Whether background threads have been started and not stopped."""
        return bool(self._threads) and not self._shutdown.is_set()

    # Per-cycle entry points

    def run_active_cycle(self) -> MergeReport | None:
        """Query live scheduler jobs and merge them."""
        scheduler = self.scheduler
        if scheduler is None:
            return None
        return self._run_cycle(
            DataSource.SCHEDULER_ACTIVE,
            scheduler.fetch_active,
            lambda result: self.correlator.merge_scheduler_active(
                result.records, scheduler.kind, result.parse_errors
            ),
        )

    def run_history_cycle(self) -> MergeReport | None:
        """Query scheduler history and merge it."""
        scheduler = self.scheduler
        if scheduler is None:
            return None
        return self._run_cycle(
            DataSource.SCHEDULER_HISTORY,
            scheduler.fetch_history,
            lambda result: self.correlator.merge_scheduler_history(
                result.records, scheduler.kind, result.parse_errors
            ),
        )

    def run_metadata_cycle(self, force: bool = False) -> MergeReport | None:
        """
        Rescan workflow metadata if it changed (or ``force``) and merge it.

        Returns:
            The merge report, or None if no rescan was due or the result
            was discarded.
        """
        if not self.detector.poll() and not force:
            return None
        return self._run_cycle(
            DataSource.METADATA,
            lambda: self.metadata_scanner(self.config.metadata_dir),
            lambda result: self.correlator.merge_metadata(result.records, result.parse_errors),
        )

    def _issue(self, source: DataSource) -> int:
        with self._seq_lock:
            self._issued[source] += 1
            return self._issued[source]

    def _run_cycle(
        self,
        source: DataSource,
        fetch: Callable[[], FetchResult[RecordT]],
        merge: Callable[[FetchResult[RecordT]], MergeReport],
    ) -> MergeReport | None:
        seq = self._issue(source)
        try:
            result = fetch()
        except SourceError as e:
            if self._shutdown.is_set():
                return None
            with self._merge_locks[source]:
                if self._shutdown.is_set() or self._merged[source] > seq:
                    return None
                self.store.record_poll_failure(source, str(e))
            logger.warning("%s poll failed: %s", source.label, e)
            return None

        if self._shutdown.is_set():
            logger.debug("Discarding %s fetch %d after shutdown", source.label, seq)
            return None

        with self._merge_locks[source]:
            if self._merged[source] > seq:
                logger.debug(
                    "Discarding stale %s fetch %d; fetch %d already merged",
                    source.label,
                    seq,
                    self._merged[source],
                )
                return None
            if self._shutdown.is_set():
                logger.debug("Discarding %s fetch %d after shutdown", source.label, seq)
                return None
            report = merge(result)
            self._merged[source] = seq
            self.store.record_poll_success(source, result.parse_errors)

        if self.on_merge is not None:
            self.on_merge()
        return report

    # Background threads

    def start(self) -> None:
        """Start one background thread per timer. Each runs its first cycle immediately."""
        if self._threads:
            return
        timers: list[tuple[str, float, Callable[[], object]]] = [
            ("metadata", self.config.metadata_poll_interval, self.run_metadata_cycle),
        ]
        if self.scheduler is not None:
            timers.append(("active", self.config.active_poll_interval, self.run_active_cycle))
            timers.append(("history", self.config.history_poll_interval, self.run_history_cycle))

        for name, interval, cycle in timers:
            thread = threading.Thread(
                target=self._loop,
                args=(name, interval, cycle),
                name=f"clustersee-{name}",
                daemon=True,
            )
            self._threads.append(thread)
            thread.start()

    def _loop(self, name: str, interval: float, cycle: Callable[[], object]) -> None:
        while not self._shutdown.is_set():
            try:
                cycle()
            except Exception:
                # Keep the timer alive; the next interval retries
                logger.exception("Unexpected error in %s poll", name)
            if self._shutdown.wait(interval):
                break

    def poll_now(self) -> threading.Thread:
        """Run one cycle of every source on a background thread.

        Regular timers are unaffected. Results follow the same discard rule
        as scheduled fetches.
        """

        def refresh() -> None:
            try:
                self.run_metadata_cycle(force=True)
                self.run_active_cycle()
                self.run_history_cycle()
            except Exception:
                logger.exception("Unexpected error during manual refresh")

        thread = threading.Thread(target=refresh, name="clustersee-refresh", daemon=True)
        thread.start()
        return thread

    def stop(self, timeout: float | None = None) -> None:
        """
        Signal shutdown and wait for the timer threads.

        Fetches still in flight finish on their own; their results are
        discarded.

        Args:
            timeout: Seconds to wait for each thread, or None to wait fully.
        """
        self._shutdown.set()
        for thread in self._threads:
            thread.join(timeout)
