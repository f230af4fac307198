"""Bounded execution of scheduler commands."""

from __future__ import annotations

import logging
import subprocess
from collections.abc import Sequence

from clustersee.constants import DEFAULT_COMMAND_TIMEOUT
from clustersee.exceptions import SourceTimeoutError
from clustersee.exceptions import SourceUnavailableError

logger = logging.getLogger(__name__)


def run_command(
    args: Sequence[str],
    timeout: float = DEFAULT_COMMAND_TIMEOUT,
    allow_failure: bool = False,
) -> str:
    """
    Run a scheduler command and return its stdout.

    The process is killed if it outlives ``timeout`` so a hung scheduler
    client never leaves an orphan behind.

    Args:
        args: Command and arguments.
        timeout: Seconds to wait before killing the process.
        allow_failure: Return stdout even on a non-zero exit. ``bjobs``
            exits non-zero when there are simply no jobs to report.

    Returns:
        Decoded standard output.

    Raises:
        SourceTimeoutError: If the command exceeded ``timeout``.
        SourceUnavailableError: If the command is missing, cannot start,
            or exits non-zero without ``allow_failure``.
    """
    name = args[0]
    try:
        process = subprocess.Popen(
            list(args),
            stdin=subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            text=True,
            errors="replace",
        )
    except OSError as e:
        raise SourceUnavailableError(name, f"Failed to execute {name}", cause=e) from e

    try:
        stdout, stderr = process.communicate(timeout=timeout)
    except subprocess.TimeoutExpired as e:
        process.kill()
        process.communicate()
        logger.debug("Killed %s after %gs", name, timeout)
        raise SourceTimeoutError(name, timeout) from e

    if process.returncode != 0 and not allow_failure:
        detail = stderr.strip() or f"exit status {process.returncode}"
        raise SourceUnavailableError(name, f"Command {name} failed: {detail}")
    return stdout


def command_available(args: Sequence[str], timeout: float = DEFAULT_COMMAND_TIMEOUT) -> bool:
    """Return True if ``args`` runs and exits successfully."""
    try:
        run_command(args, timeout)
    except SourceUnavailableError as e:
        logger.debug("Probe %s failed: %s", " ".join(args), e.message)
        return False
    return True
