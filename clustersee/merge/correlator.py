"""Correlate records from every source to logical jobs and fold them in.

Each entry point takes a full batch from one source fetch. Keys for the
whole batch are resolved and upserted inside one store transaction, so a
reader never sees a batch half applied to a single job.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Callable
from collections.abc import Iterable
from collections.abc import Sequence
from dataclasses import dataclass
from dataclasses import replace
from typing import TYPE_CHECKING
from typing import NamedTuple

from clustersee.constants import CORRELATION_TIME_WINDOW
from clustersee.constants import UNKNOWN_RULE
from clustersee.exceptions import CorrelationAmbiguousError
from clustersee.merge.comment import make_job_key
from clustersee.merge.comment import normalize_wildcards
from clustersee.merge.comment import parse_job_comment
from clustersee.merge.comment import paths_mention_wildcards
from clustersee.merge.status import error_for_state
from clustersee.merge.status import map_scheduler_state
from clustersee.models import DataSource
from clustersee.models import Job
from clustersee.models import JobResources
from clustersee.models import JobStatus
from clustersee.models import JobTiming
from clustersee.models import MetadataRecord
from clustersee.models import SchedulerKind
from clustersee.models import SchedulerRecord

if TYPE_CHECKING:
    from clustersee.state.job_store import JobStore

logger = logging.getLogger(__name__)

_SCHEDULER_SOURCES = DataSource.SCHEDULER_ACTIVE | DataSource.SCHEDULER_HISTORY


@dataclass
class MergeReport:
    """Outcome of merging one batch.

    Attributes:
        source: Source the batch came from.
        received: Records in the batch.
        created: Jobs created.
        updated: Existing jobs that changed.
        unchanged: Records that added nothing new.
        orphans: Scheduler records stored under their raw job ID.
        filtered: Records ignored because they belong to another run.
        ambiguous: Records that matched more than one job.
        parse_errors: Malformed records the source skipped before merging.
    """

    source: DataSource
    received: int = 0
    created: int = 0
    updated: int = 0
    unchanged: int = 0
    orphans: int = 0
    filtered: int = 0
    ambiguous: int = 0
    parse_errors: int = 0


class ResolvedKey(NamedTuple):
    """Where a scheduler record belongs in the store."""

    key: str
    rule: str
    wildcards: str | None
    orphan: bool


def metadata_key(record: MetadataRecord) -> str:
    """
    Correlation key for a metadata record.

    Rule plus normalized wildcards, matching the key a scheduler comment
    produces. Snakemake metadata usually carries no wildcards, in which
    case the first output path stands in for them so separate instances of
    one rule stay separate jobs.
    """
    wildcards = normalize_wildcards(record.wildcards)
    if wildcards is None and record.outputs:
        return make_job_key(record.rule, record.outputs[0])
    return make_job_key(record.rule, wildcards)


def metadata_status(record: MetadataRecord) -> JobStatus:
    """
    Infer a status from metadata alone.

    Snakemake marks outputs ``incomplete`` while the job is running and
    records ``endtime`` once it finishes.
    """
    if record.incomplete:
        return JobStatus.RUNNING
    if record.end_time is not None:
        return JobStatus.COMPLETED
    return JobStatus.PENDING


def job_from_metadata(record: MetadataRecord) -> Job:
    """Build a partial job from one metadata record."""
    return Job(
        key=metadata_key(record),
        rule=record.rule,
        wildcards=normalize_wildcards(record.wildcards),
        inputs=list(record.inputs),
        outputs=list(record.outputs),
        shell_command=record.shell_command,
        status=metadata_status(record),
        timing=JobTiming(started=record.start_time, ended=record.end_time),
        log_paths=set(record.log_paths),
        conda_env=record.conda_env,
        container_img_url=record.container_img_url,
    )


def job_from_scheduler(record: SchedulerRecord, resolved: ResolvedKey) -> Job:
    """Build a partial job from one scheduler record."""
    return Job(
        key=resolved.key,
        rule=resolved.rule,
        wildcards=resolved.wildcards,
        status=map_scheduler_state(record.state, record.scheduler),
        scheduler_job_id=record.job_id,
        scheduler=record.scheduler,
        timing=JobTiming(
            submitted=record.submit_time,
            started=record.start_time,
            ended=record.end_time,
        ),
        resources=JobResources(
            cpus=record.cpus,
            memory_mb=record.memory_mb,
            time_limit_seconds=record.time_limit_seconds,
            partition=record.partition,
            node=record.node,
        ),
        error=error_for_state(record.state, record.scheduler, record.exit_code),
    )


def _submit_order(record: SchedulerRecord) -> float:
    return record.submit_time if record.submit_time is not None else float("-inf")


def _start_gap(job: Job, started: float | None) -> float:
    if started is None or job.timing.started is None:
        return math.inf
    return abs(job.timing.started - started)


def pair_job(
    candidates: Iterable[Job],
    started: float | None,
    wildcards_for: Callable[[Job], str | None],
    outputs_for: Callable[[Job], Sequence[str]],
) -> Job | None:
    """
    Choose the stored job that a record without a shared key describes.

    Snakemake metadata carries no wildcards, so a metadata record and the
    scheduler job that produced it are paired by content instead. A
    candidate matches when every wildcard value appears as a token of an
    output path. Candidates with no wildcards to compare match when their
    start times are within ``CORRELATION_TIME_WINDOW``. Among several
    matches the closest start time wins, then the earliest candidate.

    Args:
        candidates: Jobs of the same rule that may be the partner.
        started: Start time of the incoming record, if known.
        wildcards_for: Wildcards to compare for a candidate.
        outputs_for: Output paths to search for a candidate.

    Returns:
        The partner job, or None if nothing matches.
    """
    by_wildcards: list[Job] = []
    by_time: list[Job] = []
    for job in candidates:
        wildcards = wildcards_for(job)
        if wildcards is not None:
            if paths_mention_wildcards(outputs_for(job), wildcards):
                by_wildcards.append(job)
        elif _start_gap(job, started) <= CORRELATION_TIME_WINDOW:
            by_time.append(job)

    matches = by_wildcards or by_time
    if not matches:
        return None
    return min(matches, key=lambda job: _start_gap(job, started))


class Correlator:
    """
    Resolve incoming records to job keys and fold them into the store.

    Key derivation, in priority order: the Snakemake comment on a scheduler
    record; a scheduler job ID already associated with a stored job; rule
    and wildcards from metadata; and finally the raw scheduler job ID for
    records that cannot be tied to a rule (orphans). Metadata without
    wildcards is paired with the scheduler job of the same rule whose
    wildcard values appear in its output paths, or whose start time is
    close to its own (see ``pair_job``).

    Example:
        >>> correlator = Correlator(JobStore())
        >>> record = SchedulerRecord(job_id="123", state="RUNNING",
        ...                          comment="rule_align_wildcards_sample=S1")
        >>> correlator.merge_scheduler_active([record]).created
        1
    """

    def __init__(self, store: JobStore, run_uuid: str | None = None) -> None:
        """
        Initialize the correlator.

        Args:
            store: The session's job store.
            run_uuid: If set, scheduler records named for another run are ignored.
        """
        self.store = store
        self.run_uuid = run_uuid

    def merge_metadata(
        self,
        records: Iterable[MetadataRecord],
        parse_errors: int = 0,
    ) -> MergeReport:
        """
        Merge a batch of workflow metadata records.

        Args:
            records: Records from one metadata scan.
            parse_errors: Malformed entries skipped by the scan.

        Returns:
            Summary of what changed.
        """
        report = MergeReport(DataSource.METADATA, parse_errors=parse_errors)
        with self.store.transaction():
            for record in records:
                report.received += 1
                update = job_from_metadata(record)
                key = self.resolve_metadata_key(record)
                if key != update.key:
                    update = replace(update, key=key)
                self._apply(update, DataSource.METADATA, report)
        self._log_report(report)
        return report

    def merge_scheduler_active(
        self,
        records: Iterable[SchedulerRecord],
        source: SchedulerKind | None = None,
        parse_errors: int = 0,
    ) -> MergeReport:
        """
        Merge a batch from the live scheduler query (squeue / bjobs).

        Args:
            records: Records from one active query.
            source: Scheduler that produced the batch; overrides the
                per-record ``scheduler`` when given.
            parse_errors: Malformed lines skipped by the parser.

        Returns:
            Summary of what changed.
        """
        return self._merge_scheduler(records, DataSource.SCHEDULER_ACTIVE, source, parse_errors)

    def merge_scheduler_history(
        self,
        records: Iterable[SchedulerRecord],
        source: SchedulerKind | None = None,
        parse_errors: int = 0,
    ) -> MergeReport:
        """
        Merge a batch from the scheduler history query (sacct / bjobs -a).

        Args:
            records: Records from one history query.
            source: Scheduler that produced the batch; overrides the
                per-record ``scheduler`` when given.
            parse_errors: Malformed lines skipped by the parser.

        Returns:
            Summary of what changed.
        """
        return self._merge_scheduler(records, DataSource.SCHEDULER_HISTORY, source, parse_errors)

    def _merge_scheduler(
        self,
        records: Iterable[SchedulerRecord],
        data_source: DataSource,
        scheduler: SchedulerKind | None,
        parse_errors: int,
    ) -> MergeReport:
        report = MergeReport(data_source, parse_errors=parse_errors)
        with self.store.transaction():
            groups: dict[str, list[tuple[SchedulerRecord, ResolvedKey]]] = {}
            for record in records:
                report.received += 1
                if scheduler is not None and record.scheduler is not scheduler:
                    record = replace(record, scheduler=scheduler)
                if not self._in_run(record):
                    report.filtered += 1
                    continue
                try:
                    resolved = self.resolve_scheduler_key(record)
                except CorrelationAmbiguousError as e:
                    self._note_ambiguity(e, report)
                    chosen = self.store.get(e.chosen)
                    if chosen is None:
                        resolved = ResolvedKey(record.job_id, UNKNOWN_RULE, None, orphan=True)
                    else:
                        resolved = ResolvedKey(
                            e.chosen, chosen.rule, chosen.wildcards, chosen.is_orphan
                        )
                groups.setdefault(resolved.key, []).append((record, resolved))

            for group in groups.values():
                record, resolved = self._pick_latest(group, report)
                if resolved.orphan:
                    report.orphans += 1
                elif resolved.key not in self.store:
                    self._adopt_metadata_job(record, resolved)
                self._apply(job_from_scheduler(record, resolved), data_source, report)
        self._log_report(report)
        return report

    def resolve_scheduler_key(self, record: SchedulerRecord) -> ResolvedKey:
        """
        Resolve the store key for a scheduler record.

        Args:
            record: The incoming record.

        Returns:
            The resolved key with the rule and wildcards to record.

        Raises:
            CorrelationAmbiguousError: If the comment and the scheduler job ID
                point at two different stored jobs. ``chosen`` is the most
                recently updated of the two.
        """
        match = parse_job_comment(record.comment)
        known_key = self.store.key_for_scheduler_id(record.job_id)

        if match is not None:
            key = make_job_key(match.rule, match.wildcards)
            if known_key is not None and known_key != key:
                by_comment = self.store.get(key)
                by_id = self.store.get(known_key)
                if by_comment is not None and by_id is not None:
                    chosen = by_comment if by_comment.updated_at >= by_id.updated_at else by_id
                    raise CorrelationAmbiguousError([key, known_key], chosen.key)
            return ResolvedKey(key, match.rule, match.wildcards, orphan=False)

        if known_key is not None:
            known = self.store.get(known_key)
            if known is not None:
                return ResolvedKey(known_key, known.rule, known.wildcards, known.is_orphan)

        return ResolvedKey(record.job_id, UNKNOWN_RULE, None, orphan=True)

    def resolve_metadata_key(self, record: MetadataRecord) -> str:
        """
        Resolve the store key for a metadata record.

        A record with wildcards uses its rule and wildcards, the same key a
        scheduler comment produces. Without wildcards the record belongs to
        the job already holding its output, failing that to a scheduler job
        of the same rule paired by ``pair_job``, and otherwise to a new
        job keyed by ``metadata_key``.
        """
        key = metadata_key(record)
        if normalize_wildcards(record.wildcards) is not None:
            return key

        for output in record.outputs:
            owner = self.store.key_for_output(output)
            if owner is not None and self._rule_of(owner) == record.rule:
                return owner
        if key in self.store:
            return key

        candidates = [
            job
            for job in self._jobs_for_rule(record.rule)
            if job.provenance & _SCHEDULER_SOURCES
            and (job.wildcards is not None or not job.provenance & DataSource.METADATA)
        ]
        partner = pair_job(
            candidates,
            record.start_time,
            wildcards_for=lambda job: job.wildcards,
            outputs_for=lambda job: record.outputs,
        )
        if partner is None:
            return key
        logger.debug("Metadata for %s matches scheduler job %s", key, partner.key)
        return partner.key

    def _adopt_metadata_job(self, record: SchedulerRecord, resolved: ResolvedKey) -> None:
        """
        Move the metadata-only job that ``record`` describes under ``resolved.key``.

        Snakemake writes one metadata file per output, so a job with several
        outputs may sit under several provisional keys. Every one whose
        outputs carry the wildcard values is folded into the adopted job.
        """
        candidates = [
            job
            for job in self._jobs_for_rule(resolved.rule)
            if job.provenance == DataSource.METADATA and job.wildcards is None
        ]
        partner = pair_job(
            candidates,
            record.start_time,
            wildcards_for=lambda job: resolved.wildcards,
            outputs_for=lambda job: job.outputs,
        )
        if partner is None:
            return
        logger.debug("Scheduler job %s matches metadata job %s", record.job_id, partner.key)
        self.store.rekey(partner.key, resolved.key)

        for job in candidates:
            if job is partner or not paths_mention_wildcards(job.outputs, resolved.wildcards):
                continue
            self.store.discard(job.key)
            self.store.upsert(replace(job, key=resolved.key), DataSource.METADATA)

    def _jobs_for_rule(self, rule: str) -> list[Job]:
        jobs = (self.store.get(key) for key in self.store.keys_for_rule(rule))
        return [job for job in jobs if job is not None]

    def _rule_of(self, key: str) -> str | None:
        job = self.store.get(key)
        return job.rule if job is not None else None

    def _pick_latest(
        self,
        group: list[tuple[SchedulerRecord, ResolvedKey]],
        report: MergeReport,
    ) -> tuple[SchedulerRecord, ResolvedKey]:
        """Choose one record when several scheduler jobs claim the same key.

        Rows repeating a job ID are collapsed to the last occurrence. If more
        than one distinct job ID remains, the conflict is recorded and the
        most recently submitted job wins.
        """
        by_id: dict[str, tuple[SchedulerRecord, ResolvedKey]] = {}
        for item in group:
            by_id[item[0].job_id] = item
        if len(by_id) == 1:
            return next(iter(by_id.values()))

        # max() keeps the first maximum; reverse so later rows win ties
        candidates = list(reversed(by_id.values()))
        latest = max(candidates, key=lambda item: _submit_order(item[0]))
        ids = sorted(by_id)
        error = CorrelationAmbiguousError(
            ids,
            latest[0].job_id,
            f"Scheduler jobs {', '.join(ids)} all map to '{latest[1].key}'; "
            f"using most recently submitted job {latest[0].job_id}",
        )
        self._note_ambiguity(error, report)
        return latest

    def _in_run(self, record: SchedulerRecord) -> bool:
        if self.run_uuid is None or not record.name:
            return True
        return record.name == self.run_uuid

    def _apply(self, update: Job, source: DataSource, report: MergeReport) -> None:
        before = self.store.get(update.key)
        after = self.store.upsert(update, source)
        if before is None:
            report.created += 1
        elif after is before:
            report.unchanged += 1
        else:
            report.updated += 1

    def _note_ambiguity(self, error: CorrelationAmbiguousError, report: MergeReport) -> None:
        report.ambiguous += 1
        self.store.record_ambiguity(error)
        logger.info("Ambiguous correlation: %s", error.message)

    @staticmethod
    def _log_report(report: MergeReport) -> None:
        logger.debug(
            "Merged %d %s records: %d created, %d updated, %d unchanged, %d orphans, "
            "%d filtered, %d ambiguous, %d parse errors",
            report.received,
            report.source.label,
            report.created,
            report.updated,
            report.unchanged,
            report.orphans,
            report.filtered,
            report.ambiguous,
            report.parse_errors,
        )
