"""Application-specific exceptions for clustersee.

This module provides a hierarchy of exceptions that enable more precise
error handling throughout the application. Only startup conditions are
fatal; everything raised while polling is caught by the poller and turned
into a degraded-source indicator.

Exception Hierarchy:
    ClusterseeError (base)
    ├── WorkflowError
    │   └── WorkflowNotFoundError
    ├── SourceError
    │   └── SourceUnavailableError
    │       └── SourceTimeoutError
    ├── RecordParseError
    ├── CorrelationAmbiguousError
    └── ConfigurationError
"""

from pathlib import Path


class ClusterseeError(Exception):
    """Base exception for all clustersee errors.

    All application-specific exceptions inherit from this class,
    allowing callers to catch all clustersee errors with a single handler.
    """


class WorkflowError(ClusterseeError):
    """Base exception for workflow-related errors."""


class WorkflowNotFoundError(WorkflowError):
    """Raised when the monitored working directory does not exist.

    Attributes:
        path: The path that was searched for.
        message: Human-readable error description.
    """

    def __init__(self, path: Path, message: str | None = None) -> None:
        self.path = path
        self.message = message or f"Workflow directory not found at {path}"
        super().__init__(self.message)


class SourceError(ClusterseeError):
    """Base exception for failures fetching from a data source."""


class SourceUnavailableError(SourceError):
    """Raised when an external command is missing, fails to start, or fails.

    Attributes:
        source: Name of the source or command (e.g. "squeue").
        message: Human-readable error description.
        cause: The underlying exception, if any.
    """

    def __init__(
        self,
        source: str,
        message: str | None = None,
        cause: Exception | None = None,
    ) -> None:
        self.source = source
        self.cause = cause
        self.message = message or f"Source '{source}' is unavailable"
        if cause:
            self.message = f"{self.message}: {cause}"
        super().__init__(self.message)


class SourceTimeoutError(SourceUnavailableError):
    """Raised when an external command exceeds its time bound.

    Attributes:
        source: Name of the source or command.
        timeout: The bound in seconds that was exceeded.
    """

    def __init__(self, source: str, timeout: float) -> None:
        self.timeout = timeout
        super().__init__(source, f"Source '{source}' timed out after {timeout:g}s")


class RecordParseError(ClusterseeError):
    """Raised when a single record from a source cannot be parsed.

    Attributes:
        source: Name of the source that produced the record.
        record: The raw record text (possibly truncated).
        message: Human-readable error description.
    """

    def __init__(self, source: str, record: str, message: str | None = None) -> None:
        self.source = source
        self.record = record[:200]
        self.message = message or f"Malformed {source} record: {self.record!r}"
        super().__init__(self.message)


class CorrelationAmbiguousError(ClusterseeError):
    """Raised when a record matches more than one stored job.

    Attributes:
        candidates: Keys of the matching jobs.
        chosen: The key the record was merged into.
        message: Human-readable error description.
    """

    def __init__(self, candidates: list[str], chosen: str, message: str | None = None) -> None:
        self.candidates = candidates
        self.chosen = chosen
        self.message = message or (
            f"Record matched {len(candidates)} jobs ({', '.join(candidates)}); using '{chosen}'"
        )
        super().__init__(self.message)


class ConfigurationError(ClusterseeError):
    """Raised when there is a configuration error.

    Attributes:
        parameter: The configuration parameter that is invalid.
        message: Human-readable error description.
    """

    def __init__(self, parameter: str, message: str | None = None) -> None:
        self.parameter = parameter
        self.message = message or f"Invalid configuration for '{parameter}'"
        super().__init__(self.message)
