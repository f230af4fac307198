"""Centralized constants for clustersee.

This module consolidates polling intervals, timeouts and size limits
used across multiple modules to ensure consistency and make tuning easier.
"""

# =============================================================================
# Scheduler Polling
# =============================================================================

#: Default interval in seconds between active-job queries (squeue/bjobs)
DEFAULT_ACTIVE_POLL_INTERVAL: float = 5.0

#: Bounds for the active-job query interval
MIN_ACTIVE_POLL_INTERVAL: float = 1.0
MAX_ACTIVE_POLL_INTERVAL: float = 300.0

#: Interval in seconds between historical queries (sacct/bjobs -a)
HISTORY_POLL_INTERVAL: float = 30.0

#: Default hours of scheduler history to request and display
DEFAULT_HISTORY_HOURS: float = 24.0

#: Upper bound on a single scheduler command before it is terminated
DEFAULT_COMMAND_TIMEOUT: float = 10.0

# =============================================================================
# Metadata Rescan
# =============================================================================

#: How often the metadata directory is checked for changes
METADATA_POLL_INTERVAL: float = 1.0

#: Quiet period after the last observed change before a rescan runs.
#: Snakemake writes many metadata files in bursts.
METADATA_DEBOUNCE_SECONDS: float = 0.5

# =============================================================================
# Log Follow
# =============================================================================

#: Interval between size/mtime checks of a followed log file
LOG_FOLLOW_INTERVAL: float = 0.25

#: Lines kept in memory for the log viewer
LOG_TAIL_LINES: int = 500

# =============================================================================
# Presentation
# =============================================================================

#: Refresh rate bounds for the TUI (seconds)
MIN_REFRESH_RATE: float = 0.5
MAX_REFRESH_RATE: float = 60.0
DEFAULT_REFRESH_RATE: float = 1.0

# =============================================================================
# File Size Limits
# =============================================================================

#: Maximum size in bytes for metadata files before skipping (10 MB)
MAX_METADATA_FILE_SIZE: int = 10 * 1024 * 1024

# =============================================================================
# Correlation
# =============================================================================

#: Rule name recorded for scheduler jobs that could not be correlated
UNKNOWN_RULE: str = "unknown"

#: Ambiguity records retained for diagnostics
MAX_AMBIGUITY_RECORDS: int = 100

#: Metadata and scheduler jobs of one rule with no wildcards to compare are
#: matched when their start times are at most this many seconds apart
CORRELATION_TIME_WINDOW: float = 60.0
