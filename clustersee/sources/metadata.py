"""Workflow metadata source: ``.snakemake/metadata``.

Snakemake writes one JSON file per output, named by the URL-safe base64
encoding of the output path. Encoded names too long for a single file name
are split into nested directories, so the relative path with separators
removed is the full encoded name.
"""

from __future__ import annotations

import base64
import binascii
import logging
from collections.abc import Mapping
from pathlib import Path
from typing import Any

from clustersee.exceptions import RecordParseError
from clustersee.models import MetadataRecord
from clustersee.sources.base import FetchResult
from clustersee.types import ProgressCallback
from clustersee.utils import iterate_metadata_files

logger = logging.getLogger(__name__)


def decode_output_path(metadata_dir: Path, meta_file: Path) -> str | None:
    """
    Recover the output path a metadata file describes.

    Returns:
        The decoded path, or None if the name is not valid base64 text.
    """
    encoded = "".join(meta_file.relative_to(metadata_dir).parts)
    encoded += "=" * (-len(encoded) % 4)
    try:
        return base64.urlsafe_b64decode(encoded).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError, ValueError):
        return None


def _string_list(value: Any) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    if isinstance(value, list):
        return [str(v) for v in value if v is not None]
    raise ValueError(f"expected a list of paths, got {type(value).__name__}")


def _optional_time(value: Any) -> float | None:
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"expected a timestamp, got {value!r}")
    return float(value)


def _wildcards(value: Any) -> str | None:
    if value is None or isinstance(value, str):
        return value or None
    if isinstance(value, Mapping):
        return ", ".join(f"{k}={v}" for k, v in value.items()) or None
    raise ValueError(f"expected wildcards mapping, got {type(value).__name__}")


def parse_metadata(
    data: dict[str, Any], output_path: str | None, meta_file: Path
) -> MetadataRecord:
    """
    Build a MetadataRecord from one parsed metadata document.

    Args:
        data: Parsed JSON object.
        output_path: Output path decoded from the file name, if any.
        meta_file: File the document came from, for error messages.

    Raises:
        RecordParseError: If a required field is missing or has the wrong type.
    """
    rule = data.get("rule")
    if not isinstance(rule, str) or not rule:
        raise RecordParseError("metadata", str(meta_file), f"Metadata file {meta_file} has no rule")
    try:
        return MetadataRecord(
            rule=rule,
            wildcards=_wildcards(data.get("wildcards")),
            inputs=tuple(_string_list(data.get("input"))),
            outputs=(output_path,) if output_path else (),
            shell_command=data.get("shellcmd") or None,
            log_paths=tuple(_string_list(data.get("log"))),
            start_time=_optional_time(data.get("starttime")),
            end_time=_optional_time(data.get("endtime")),
            incomplete=bool(data.get("incomplete", False)),
            conda_env=data.get("conda_env") or None,
            container_img_url=data.get("container_img_url") or None,
        )
    except ValueError as e:
        raise RecordParseError("metadata", str(meta_file), f"Metadata file {meta_file}: {e}") from e


def scan_metadata_dir(
    metadata_dir: Path,
    progress_callback: ProgressCallback | None = None,
) -> FetchResult[MetadataRecord]:
    """
    Read every metadata file below ``metadata_dir``.

    A missing directory yields no records; the workflow may not have
    started yet.

    Args:
        metadata_dir: Path to ``.snakemake/metadata``.
        progress_callback: Optional callback(current, total).

    Returns:
        FetchResult with one record per valid file and the count of files
        that could not be read or parsed.
    """
    errors = 0

    def on_error(path: Path, error: Exception) -> None:
        nonlocal errors
        errors += 1

    records: list[MetadataRecord] = []
    for meta_file, data in iterate_metadata_files(metadata_dir, progress_callback, on_error):
        output_path = decode_output_path(metadata_dir, meta_file)
        if output_path is None:
            logger.debug("Could not decode output path from %s", meta_file)
        try:
            records.append(parse_metadata(data, output_path, meta_file))
        except RecordParseError as e:
            errors += 1
            logger.debug("Skipping record: %s", e.message)
    return FetchResult(records, errors)
