"""Authoritative in-memory job store.

The store is the single shared mutable resource of a monitoring session.
Mutation goes through ``upsert`` under a lock; readers take a
``StoreSnapshot`` which is a cheap copy of the key mapping. Stored Job
objects are never mutated after insertion, so a snapshot stays consistent
while later merges proceed.
"""

from __future__ import annotations

import logging
import threading
from collections import deque
from collections.abc import Iterable
from collections.abc import Iterator
from collections.abc import Mapping
from contextlib import contextmanager
from dataclasses import dataclass
from dataclasses import replace
from enum import Enum
from types import MappingProxyType

from clustersee.constants import DEFAULT_HISTORY_HOURS
from clustersee.constants import MAX_AMBIGUITY_RECORDS
from clustersee.exceptions import CorrelationAmbiguousError
from clustersee.merge.fields import fold_job
from clustersee.models import POLLED_SOURCES
from clustersee.models import DataSource
from clustersee.models import Job
from clustersee.models import JobStatus
from clustersee.state.clock import Clock
from clustersee.state.clock import get_clock

logger = logging.getLogger(__name__)


class JobFilter(Enum):
    """Predicates selectable from the presentation layer."""

    ALL = "all"
    RUNNING = "running"
    FAILED = "failed"
    PENDING = "pending"
    COMPLETED = "completed"

    def matches(self, status: JobStatus) -> bool:
        """Return True if a job with ``status`` passes this filter."""
        return status in _FILTER_STATUSES[self]

    def next(self) -> JobFilter:
        """Cycle to the next filter."""
        members = list(JobFilter)
        return members[(members.index(self) + 1) % len(members)]


_FILTER_STATUSES: dict[JobFilter, frozenset[JobStatus]] = {
    JobFilter.ALL: frozenset(JobStatus),
    JobFilter.RUNNING: frozenset({JobStatus.RUNNING}),
    JobFilter.FAILED: frozenset({JobStatus.FAILED}),
    JobFilter.PENDING: frozenset({JobStatus.PENDING, JobStatus.QUEUED}),
    JobFilter.COMPLETED: frozenset({JobStatus.COMPLETED}),
}


class SortMode(Enum):
    """Orderings selectable from the presentation layer."""

    STATUS = "status"
    RULE = "rule"
    TIME = "time"

    def next(self) -> SortMode:
        """Cycle to the next sort mode."""
        members = list(SortMode)
        return members[(members.index(self) + 1) % len(members)]


# Running first, failures surfaced early for attention
STATUS_SORT_ORDER: dict[JobStatus, int] = {
    JobStatus.RUNNING: 0,
    JobStatus.FAILED: 1,
    JobStatus.QUEUED: 2,
    JobStatus.PENDING: 3,
    JobStatus.COMPLETED: 4,
    JobStatus.CANCELLED: 5,
    JobStatus.UNKNOWN: 6,
}


@dataclass
class SourceHealth:
    """Poll bookkeeping for one data source.

    Attributes:
        last_success: Timestamp of the last successful poll.
        last_attempt: Timestamp of the last poll attempt.
        last_error: Error text from the most recent failed poll.
        degraded: Whether the most recent poll failed.
        parse_errors: Malformed records skipped in the last successful poll.
    """

    last_success: float | None = None
    last_attempt: float | None = None
    last_error: str | None = None
    degraded: bool = False
    parse_errors: int = 0


def select_jobs(
    jobs: Mapping[str, Job],
    job_filter: JobFilter = JobFilter.ALL,
    sort: SortMode = SortMode.STATUS,
    history_cutoff: float | None = None,
) -> list[str]:
    """
    Select and order job keys.

    Args:
        jobs: Mapping of key to job.
        job_filter: Status predicate.
        sort: Ordering to apply.
        history_cutoff: Terminal jobs that ended before this timestamp are
            excluded. None disables the history window.

    Returns:
        Ordered list of job keys.
    """
    selected = [
        job
        for job in jobs.values()
        if job_filter.matches(job.status) and not _outside_window(job, history_cutoff)
    ]

    if sort is SortMode.STATUS:
        selected.sort(key=lambda j: (STATUS_SORT_ORDER[j.status], j.key))
    elif sort is SortMode.RULE:
        selected.sort(key=lambda j: (j.rule, j.key))
    else:
        selected.sort(key=lambda j: j.key)
        # Stable sort: newest start first, unstarted jobs last
        selected.sort(key=lambda j: (j.timing.started is None, -(j.timing.started or 0.0)))

    return [job.key for job in selected]


def _outside_window(job: Job, cutoff: float | None) -> bool:
    if cutoff is None or not job.status.is_terminal:
        return False
    return job.timing.ended is not None and job.timing.ended < cutoff


def _count_statuses(jobs: Iterable[Job]) -> dict[JobStatus, int]:
    counts = dict.fromkeys(JobStatus, 0)
    for job in jobs:
        counts[job.status] += 1
    return counts


@dataclass(frozen=True)
class StoreSnapshot:
    """Consistent, read-only view of the store at one instant.

    Attributes:
        jobs: Read-only mapping of key to job.
        counts: Job count per status.
        health: Poll bookkeeping per source.
        version: Store mutation counter when the snapshot was taken.
        taken_at: Timestamp when the snapshot was taken.
        history_hours: History window applied by ``view``.
        ambiguities: Recent correlation ambiguities, oldest first.
    """

    jobs: Mapping[str, Job]
    counts: Mapping[JobStatus, int]
    health: Mapping[DataSource, SourceHealth]
    version: int
    taken_at: float
    history_hours: float | None
    ambiguities: tuple[str, ...] = ()

    def __len__(self) -> int:
        return len(self.jobs)

    def view(
        self,
        job_filter: JobFilter = JobFilter.ALL,
        sort: SortMode = SortMode.STATUS,
    ) -> list[str]:
        """Ordered job keys, applying the history window as of ``taken_at``."""
        cutoff = None
        if self.history_hours is not None:
            cutoff = self.taken_at - self.history_hours * 3600
        return select_jobs(self.jobs, job_filter, sort, cutoff)

    def rule_summary(self) -> dict[str, dict[JobStatus, int]]:
        """Per-rule job counts by status, ordered by rule name."""
        summary: dict[str, dict[JobStatus, int]] = {}
        for job in sorted(self.jobs.values(), key=lambda j: j.rule):
            summary.setdefault(job.rule, dict.fromkeys(JobStatus, 0))[job.status] += 1
        return summary

    @property
    def degraded_sources(self) -> list[DataSource]:
        """Sources whose most recent poll failed."""
        return [source for source, health in self.health.items() if health.degraded]


class JobStore:
    """
    Mapping of correlation key to Job with query operations.

    One instance is created per monitoring session and passed explicitly to
    the correlator, the poller and the presentation layer.

    Example:
        >>> store = JobStore()
        >>> _ = store.upsert(Job(key="align[sample=S1]", rule="align"), DataSource.METADATA)
        >>> store.counts()[JobStatus.UNKNOWN]
        1
    """

    def __init__(
        self,
        history_hours: float | None = DEFAULT_HISTORY_HOURS,
        clock: Clock | None = None,
    ) -> None:
        """
        Initialize an empty store.

        Args:
            history_hours: Window for excluding old terminal jobs from views.
                None keeps every job visible.
            clock: Time source, injectable for tests.
        """
        self.history_hours = history_hours
        self.clock: Clock = clock or get_clock()
        self._lock = threading.RLock()
        self._jobs: dict[str, Job] = {}
        self._by_scheduler_id: dict[str, str] = {}
        self._by_rule: dict[str, list[str]] = {}
        self._by_output: dict[str, str] = {}
        self._counts_cache: dict[JobStatus, int] | None = None
        self._health: dict[DataSource, SourceHealth] = {s: SourceHealth() for s in POLLED_SOURCES}
        self._ambiguities: deque[str] = deque(maxlen=MAX_AMBIGUITY_RECORDS)
        self._version = 0

    def __len__(self) -> int:
        with self._lock:
            return len(self._jobs)

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._jobs

    @contextmanager
    def transaction(self) -> Iterator[JobStore]:
        """Hold the write lock across several reads and upserts.

        The correlator resolves keys and upserts a whole batch inside one
        transaction so no reader observes a half-applied lookup.
        """
        with self._lock:
            yield self

    @property
    def version(self) -> int:
        """Monotonic counter bumped on every mutation."""
        return self._version

    def get(self, key: str) -> Job | None:
        """Return the stored job for ``key``. Callers must not mutate it."""
        with self._lock:
            return self._jobs.get(key)

    def key_for_scheduler_id(self, scheduler_job_id: str) -> str | None:
        """Return the key of the job last associated with a scheduler ID."""
        with self._lock:
            return self._by_scheduler_id.get(scheduler_job_id)

    def keys_for_rule(self, rule: str) -> list[str]:
        """Return keys of all jobs for a rule, in insertion order."""
        with self._lock:
            return list(self._by_rule.get(rule, ()))

    def key_for_output(self, path: str) -> str | None:
        """Return the key of the job last seen producing output ``path``."""
        with self._lock:
            return self._by_output.get(path)

    def upsert(self, update: Job, source: DataSource) -> Job:
        """
        Insert a new job or fold an observation into the existing one.

        This is the only mutation path; it applies the field-level merge
        rules so a stale observation never moves a job backwards.

        Args:
            update: Partial job built from one record, keyed by ``update.key``.
            source: The source that produced the observation.

        Returns:
            The job now stored under the key.
        """
        with self._lock:
            now = self.clock.now()
            existing = self._jobs.get(update.key)
            if existing is None:
                stored = update.copy()
                stored.provenance |= source
                if stored.status_source == DataSource.NONE:
                    stored.status_source = source
                for slot in stored.timing.SLOTS:
                    if getattr(stored.timing, slot) is not None:
                        stored.timing.slot_sources.setdefault(slot, source)
                stored.updated_at = now
                self._by_rule.setdefault(stored.rule, []).append(stored.key)
            else:
                stored = fold_job(existing, update, source, now)
                if stored is existing:
                    return existing
                if stored.rule != existing.rule:
                    self._by_rule[existing.rule].remove(existing.key)
                    self._by_rule.setdefault(stored.rule, []).append(stored.key)

            self._jobs[stored.key] = stored
            if stored.scheduler_job_id is not None:
                self._by_scheduler_id[stored.scheduler_job_id] = stored.key
            for output in stored.outputs:
                self._by_output[output] = stored.key
            self._counts_cache = None
            self._version += 1
            return stored

    def rekey(self, old_key: str, new_key: str) -> Job:
        """
        Move a job to a new correlation key.

        Used when a job first seen under a provisional key (metadata without
        wildcards) is later identified by a scheduler comment.

        Args:
            old_key: Current key of the job.
            new_key: Key to store it under; must be unused.

        Returns:
            The job as now stored.

        Raises:
            KeyError: If there is no job under ``old_key``.
            ValueError: If ``new_key`` is already taken.
        """
        with self._lock:
            if new_key in self._jobs:
                raise ValueError(f"Cannot move {old_key!r}: {new_key!r} is already stored")
            moved = self._jobs.pop(old_key).copy()
            moved.key = new_key
            self._jobs[new_key] = moved

            keys = self._by_rule[moved.rule]
            keys[keys.index(old_key)] = new_key
            for index in (self._by_scheduler_id, self._by_output):
                for name in [name for name, key in index.items() if key == old_key]:
                    index[name] = new_key
            self._version += 1
            return moved

    def discard(self, key: str) -> Job | None:
        """Remove the job under ``key`` and every index entry pointing at it."""
        with self._lock:
            removed = self._jobs.pop(key, None)
            if removed is None:
                return None
            self._by_rule[removed.rule].remove(key)
            for index in (self._by_scheduler_id, self._by_output):
                for name in [name for name, owner in index.items() if owner == key]:
                    del index[name]
            self._counts_cache = None
            self._version += 1
            return removed

    def counts(self) -> dict[JobStatus, int]:
        """Job count per status, cached until the next mutation."""
        with self._lock:
            if self._counts_cache is None:
                self._counts_cache = _count_statuses(self._jobs.values())
            return dict(self._counts_cache)

    def view(
        self,
        job_filter: JobFilter = JobFilter.ALL,
        sort: SortMode = SortMode.STATUS,
    ) -> list[str]:
        """Ordered job keys matching ``job_filter``. Does not mutate the store."""
        return self.snapshot().view(job_filter, sort)

    def rule_summary(self) -> dict[str, dict[JobStatus, int]]:
        """Per-rule job counts by status, ordered by rule name."""
        with self._lock:
            summary: dict[str, dict[JobStatus, int]] = {}
            for rule in sorted(self._by_rule):
                keys = self._by_rule[rule]
                if keys:
                    summary[rule] = _count_statuses(self._jobs[key] for key in keys)
            return summary

    def snapshot(self) -> StoreSnapshot:
        """Copy out a consistent read-only view."""
        with self._lock:
            jobs = MappingProxyType(dict(self._jobs))
            counts = MappingProxyType(self.counts())
            health = MappingProxyType({s: replace(h) for s, h in self._health.items()})
            return StoreSnapshot(
                jobs=jobs,
                counts=counts,
                health=health,
                version=self._version,
                taken_at=self.clock.now(),
                history_hours=self.history_hours,
                ambiguities=tuple(self._ambiguities),
            )

    # Source health bookkeeping

    def record_poll_success(self, source: DataSource, parse_errors: int = 0) -> None:
        """Mark a successful poll of ``source``."""
        with self._lock:
            health = self._health[source]
            now = self.clock.now()
            health.last_success = now
            health.last_attempt = now
            health.last_error = None
            health.degraded = False
            health.parse_errors = parse_errors

    def record_poll_failure(self, source: DataSource, error: str) -> None:
        """Mark ``source`` as degraded. Stored jobs are left untouched."""
        with self._lock:
            health = self._health[source]
            health.last_attempt = self.clock.now()
            health.last_error = error
            health.degraded = True

    def health(self, source: DataSource) -> SourceHealth:
        """Return a copy of the bookkeeping for ``source``."""
        with self._lock:
            return replace(self._health[source])

    def record_ambiguity(self, error: CorrelationAmbiguousError) -> None:
        """Retain a correlation ambiguity for diagnostics."""
        with self._lock:
            self._ambiguities.append(error.message)

    @property
    def ambiguities(self) -> list[str]:
        """Recent correlation ambiguities, oldest first."""
        with self._lock:
            return list(self._ambiguities)
