"""Type aliases for common callback and data patterns.

This module provides centralized type definitions for commonly used
callback signatures throughout the clustersee codebase.
"""

from collections.abc import Callable
from collections.abc import Sequence
from typing import Protocol

# Callback for reporting progress during long-running operations.
# Args: (current_item: int, total_items: int)
ProgressCallback = Callable[[int, int], None]

# Callback receiving lines newly appended to a followed log file.
LinesCallback = Callable[[list[str]], None]

# Zero-argument hook run after a merge has been applied to the store.
MergeListener = Callable[[], None]


class CommandRunner(Protocol):
    """Runs an external command and returns its stdout.

    Implementations raise SourceUnavailableError (or SourceTimeoutError)
    instead of returning partial output.
    """

    def __call__(
        self,
        args: Sequence[str],
        timeout: float,
        allow_failure: bool = False,
    ) -> str: ...
