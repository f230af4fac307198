"""Correlation-key derivation from scheduler comment fields.

Snakemake's cluster executors tag every submitted job with a comment
(SLURM ``--comment``) or job description (LSF ``-Jd``) of the form
``rule_{rulename}_wildcards_{wildcards}``. Everything here is pure so it
can be tested without a scheduler.
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from collections.abc import Sequence
from typing import NamedTuple

# Pattern: "rule_align_reads_wildcards_sample=S1" or "rule_align_reads".
# The rule name ends at the first "_wildcards_" marker.
COMMENT_PATTERN = re.compile(r"^rule_(?P<rule>\w+?)(?:_wildcards_(?P<wildcards>.*))?$")


class CommentMatch(NamedTuple):
    """Rule and wildcards recovered from a scheduler comment."""

    rule: str
    wildcards: str | None


def normalize_wildcards(wildcards: str | Mapping[str, object] | None) -> str | None:
    """
    Normalize wildcards to a canonical ``key=value, key=value`` string.

    Order is preserved; whitespace around separators is dropped so that
    ``"sample=S1,lane=2"`` and ``"sample=S1, lane=2"`` compare equal.

    Args:
        wildcards: Wildcard string or mapping, or None.

    Returns:
        Normalized string, or None if there are no wildcards.
    """
    if wildcards is None:
        return None

    if isinstance(wildcards, Mapping):
        parts = [f"{str(k).strip()}={str(v).strip()}" for k, v in wildcards.items()]
    else:
        parts = []
        for part in wildcards.split(","):
            part = part.strip()
            if not part:
                continue
            if "=" in part:
                key, value = part.split("=", 1)
                part = f"{key.strip()}={value.strip()}"
            parts.append(part)

    return ", ".join(parts) or None


def parse_job_comment(comment: str | None) -> CommentMatch | None:
    """
    Parse a scheduler comment/description into rule and wildcards.

    Args:
        comment: Raw comment text, e.g. ``"rule_align_wildcards_sample=S1"``.

    Returns:
        CommentMatch with normalized wildcards, or None if the text does not
        follow the Snakemake convention.
    """
    if not comment:
        return None
    match = COMMENT_PATTERN.match(comment.strip())
    if match is None:
        return None
    return CommentMatch(
        rule=match.group("rule"),
        wildcards=normalize_wildcards(match.group("wildcards")),
    )


def make_job_key(rule: str, wildcards: str | None) -> str:
    """
    Build the correlation key for a rule instance.

    Examples:
        >>> make_job_key("align", None)
        'align'
        >>> make_job_key("align", "sample=S1")
        'align[sample=S1]'
    """
    if wildcards:
        return f"{rule}[{wildcards}]"
    return rule


def wildcard_values(wildcards: str | None) -> list[str]:
    """
    Values of a normalized wildcard string, in order.

    Examples:
        >>> wildcard_values("sample=S1, lane=2")
        ['S1', '2']
    """
    if not wildcards:
        return []
    values = []
    for part in wildcards.split(","):
        _, sep, value = part.partition("=")
        if sep and value.strip():
            values.append(value.strip())
    return values


def paths_mention_wildcards(paths: Sequence[str], wildcards: str | None) -> bool:
    """
    Whether every wildcard value appears in one of ``paths``.

    A value only counts as a whole path token, so ``S1`` is found in
    ``results/S1.bam`` but not in ``results/S10.bam``.

    Args:
        paths: Output (or input) paths of a job.
        wildcards: Normalized wildcard string.

    Returns:
        False when there are no wildcard values to look for.
    """
    values = wildcard_values(wildcards)
    if not values:
        return False
    for path in paths:
        if all(_token_pattern(value).search(path) for value in values):
            return True
    return False


def _token_pattern(value: str) -> re.Pattern[str]:
    return re.compile(rf"(?<![A-Za-z0-9]){re.escape(value)}(?![A-Za-z0-9])")
