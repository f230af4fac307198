"""Field-level merge rules for folding a partial observation into a job."""

from __future__ import annotations

from clustersee.constants import UNKNOWN_RULE
from clustersee.merge.status import resolve_status
from clustersee.models import DataSource
from clustersee.models import Job
from clustersee.models import JobResources
from clustersee.models import JobTiming


def _union(existing: list[str], incoming: list[str]) -> list[str]:
    """Append unseen items from ``incoming`` to ``existing``, keeping order."""
    seen = set(existing)
    merged = list(existing)
    for item in incoming:
        if item not in seen:
            seen.add(item)
            merged.append(item)
    return merged


def _merge_timing(existing: JobTiming, incoming: JobTiming, source: DataSource) -> JobTiming:
    """Set-once-per-slot merge; higher-or-equal priority sources may refine a slot."""
    merged = existing.copy()
    for slot in JobTiming.SLOTS:
        value = getattr(incoming, slot)
        if value is None:
            continue
        current = getattr(merged, slot)
        owner = merged.slot_sources.get(slot, DataSource.NONE)
        if current is None or source.priority >= owner.priority:
            setattr(merged, slot, value)
            merged.slot_sources[slot] = source
    return merged


def _merge_resources(existing: JobResources, incoming: JobResources) -> JobResources:
    merged = JobResources()
    for name in JobResources.FIELDS:
        value = getattr(incoming, name)
        setattr(merged, name, value if value is not None else getattr(existing, name))
    return merged


def fold_job(existing: Job, update: Job, source: DataSource, now: float) -> Job:
    """
    Fold a partial observation into an existing job record.

    Neither argument is modified. Populated fields survive updates that omit
    them, collections accumulate, and status follows ``resolve_status``.
    If the observation adds nothing, ``existing`` itself is returned so
    callers can detect a no-op by identity.

    Args:
        existing: The stored job.
        update: Partial job built from one incoming record.
        source: The source that produced ``update``.
        now: Timestamp recorded as ``updated_at`` when something changed.

    Returns:
        The merged job.
    """
    status, status_source = resolve_status(
        existing.status, existing.status_source, update.status, source
    )
    status_adopted = status_source == source and status == update.status

    rule = existing.rule
    if rule == UNKNOWN_RULE and update.rule != UNKNOWN_RULE:
        rule = update.rule

    error = existing.error
    if update.error is not None and (status_adopted or existing.error is None):
        error = update.error

    merged = Job(
        key=existing.key,
        rule=rule,
        wildcards=existing.wildcards or update.wildcards,
        inputs=_union(existing.inputs, update.inputs),
        outputs=_union(existing.outputs, update.outputs),
        shell_command=update.shell_command or existing.shell_command,
        status=status,
        status_source=status_source,
        scheduler_job_id=update.scheduler_job_id or existing.scheduler_job_id,
        scheduler=update.scheduler or existing.scheduler,
        timing=_merge_timing(existing.timing, update.timing, source),
        resources=_merge_resources(existing.resources, update.resources),
        log_paths=existing.log_paths | update.log_paths,
        error=error,
        conda_env=update.conda_env or existing.conda_env,
        container_img_url=update.container_img_url or existing.container_img_url,
        provenance=existing.provenance | source,
        updated_at=existing.updated_at,
    )
    if merged == existing:
        return existing
    merged.updated_at = now
    return merged
