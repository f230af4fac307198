"""Filesystem helpers shared by the metadata scanner, change detector and log follower.

Files under ``.snakemake/metadata`` and job logs are written and removed by
other processes while we read them, so every helper here treats a vanished
or unreadable file as an expected condition rather than an error.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Callable
from collections.abc import Iterator
from pathlib import Path
from typing import TYPE_CHECKING
from typing import Any

from clustersee.constants import MAX_METADATA_FILE_SIZE

if TYPE_CHECKING:
    from clustersee.types import ProgressCallback

logger = logging.getLogger(__name__)

MetadataErrorCallback = Callable[[Path, Exception], None]


def safe_mtime(path: Path) -> float:
    """
    Modification time of ``path``.

    Returns:
        The mtime as a Unix timestamp, or 0.0 if the file is gone.
    """
    try:
        return path.stat().st_mtime
    except OSError:
        return 0.0


def safe_file_size(path: Path) -> int:
    """
    Size of ``path`` in bytes.

    Returns:
        The size, or 0 if the file is gone or cannot be stat'ed.
    """
    try:
        return path.stat().st_size
    except OSError:
        return 0


def directory_signature(directory: Path) -> tuple[int, float, int]:
    """Summarize a directory tree for cheap change detection.

    Args:
        directory: Directory to summarize.

    Returns:
        Tuple of (entry count, newest mtime, total size). A missing
        directory yields (0, 0.0, 0).
    """
    count = 0
    newest = 0.0
    total = 0
    if not directory.is_dir():
        return count, newest, total
    try:
        for path in directory.rglob("*"):
            try:
                st = path.stat()
            except OSError:
                continue
            count += 1
            newest = max(newest, st.st_mtime)
            total += st.st_size
    except OSError as e:
        logger.debug("Error walking %s: %s", directory, e)
    return count, newest, total


def _load_metadata_file(meta_file: Path) -> dict[str, Any] | None:
    """
    Read one metadata file.

    Returns:
        The parsed object, or None if the file is too large to be metadata.

    Raises:
        OSError: If the file cannot be read.
        ValueError: If it is not a JSON object.
    """
    size = meta_file.stat().st_size
    if size > MAX_METADATA_FILE_SIZE:
        logger.debug("Ignoring %s: %d bytes exceeds %d", meta_file, size, MAX_METADATA_FILE_SIZE)
        return None
    data = json.loads(meta_file.read_text())
    if not isinstance(data, dict):
        raise ValueError("metadata is not a JSON object")
    return data


def iterate_metadata_files(
    metadata_dir: Path,
    progress_callback: ProgressCallback | None = None,
    error_callback: MetadataErrorCallback | None = None,
) -> Iterator[tuple[Path, dict[str, Any]]]:
    """
    Walk ``metadata_dir`` and yield each metadata file with its contents.

    Hidden files (lock and temporary files) are skipped. Files that are not
    readable JSON objects are logged at debug level and handed to
    ``error_callback``; oversized files are skipped without a callback.

    Args:
        metadata_dir: The ``.snakemake/metadata`` directory.
        progress_callback: Called with (files seen, total files).
        error_callback: Called with (path, error) for each invalid file.

    Yields:
        (path, parsed object) pairs in path order.
    """
    if not metadata_dir.is_dir():
        return

    files = sorted(p for p in metadata_dir.rglob("*") if p.is_file() and not p.name.startswith("."))
    for seen, meta_file in enumerate(files, start=1):
        if progress_callback is not None:
            progress_callback(seen, len(files))
        try:
            data = _load_metadata_file(meta_file)
        except (OSError, ValueError) as e:
            # JSONDecodeError and UnicodeDecodeError are both ValueErrors
            logger.debug("Unusable metadata file %s: %s", meta_file, e)
            if error_callback is not None:
                error_callback(meta_file, e)
            continue
        if data is not None:
            yield meta_file, data
