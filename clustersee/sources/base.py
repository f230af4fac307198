"""Shared shapes for data sources."""

from __future__ import annotations

import logging
from collections.abc import Callable
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Generic
from typing import Protocol
from typing import TypeVar

from clustersee.exceptions import RecordParseError
from clustersee.models import SchedulerKind
from clustersee.models import SchedulerRecord

logger = logging.getLogger(__name__)

RecordT = TypeVar("RecordT")


@dataclass(frozen=True)
class FetchResult(Generic[RecordT]):
    """Records from one successful fetch.

    Attributes:
        records: Parsed records, in source order.
        parse_errors: Malformed records that were skipped.
    """

    records: Sequence[RecordT]
    parse_errors: int = 0


class SchedulerSource(Protocol):
    """A scheduler that can be queried for live and historical jobs."""

    kind: SchedulerKind

    def fetch_active(self) -> FetchResult[SchedulerRecord]:
        """Query jobs currently queued or running."""
        ...

    def fetch_history(self) -> FetchResult[SchedulerRecord]:
        """Query jobs within the history window, including finished ones."""
        ...


def parse_lines(
    output: str,
    parse_line: Callable[[str], RecordT],
    skip_prefixes: tuple[str, ...] = (),
) -> FetchResult[RecordT]:
    """
    Parse line-oriented command output, skipping malformed lines.

    Args:
        output: Raw stdout.
        parse_line: Parser for one line; raises RecordParseError.
        skip_prefixes: Informational lines to ignore (e.g. ``"No "``).

    Returns:
        FetchResult with the parsed records and the malformed-line count.
    """
    records: list[RecordT] = []
    errors = 0
    for line in output.splitlines():
        if not line.strip() or line.lstrip().startswith(skip_prefixes):
            continue
        try:
            records.append(parse_line(line))
        except RecordParseError as e:
            errors += 1
            logger.debug("Skipping record: %s", e.message)
    return FetchResult(records, errors)
