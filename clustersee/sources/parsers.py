"""Field parsers shared by the SLURM and LSF sources.

Placeholders the schedulers print for "no value" (``N/A``, ``-``,
``UNLIMITED`` and so on) become None. Anything else that cannot be parsed
raises ValueError, so the caller can count the record as malformed instead
of silently storing a wrong value.
"""

from __future__ import annotations

from datetime import datetime

from clustersee.state.clock import get_clock

SLURM_TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%S"
LSF_TIMESTAMP_FORMATS = ("%b %d %H:%M %Y", "%b %d %H:%M:%S %Y")

_SLURM_EMPTY = frozenset({"", "N/A", "Unknown", "None", "(null)"})
_LSF_EMPTY = frozenset({"", "-"})
_DURATION_EMPTY = frozenset({"", "-", "UNLIMITED", "INVALID", "N/A"})
_TEXT_EMPTY = frozenset({"", "-", "N/A", "Unknown", "(null)"})

_SLURM_MEMORY_UNITS: dict[str, float] = {
    "K": 1 / 1024,
    "M": 1,
    "G": 1024,
    "T": 1024 * 1024,
}

_LSF_MEMORY_UNITS: dict[str, float] = {
    "": 1,
    "K": 1 / 1024,
    "KB": 1 / 1024,
    "M": 1,
    "MB": 1,
    "G": 1024,
    "GB": 1024,
    "T": 1024 * 1024,
    "TB": 1024 * 1024,
}


def non_empty_string(value: str) -> str | None:
    """Return the stripped value, or None for scheduler placeholders."""
    value = value.strip()
    return None if value in _TEXT_EMPTY else value


def parse_slurm_timestamp(value: str) -> float | None:
    """
    Parse a SLURM timestamp such as ``2024-01-15T10:30:00``.

    SLURM prints local time without a zone, so the result is interpreted
    in the local timezone.

    Returns:
        Unix timestamp, or None for ``N/A``/``Unknown``/``None``/empty.

    Raises:
        ValueError: If the value is not a SLURM timestamp.
    """
    value = value.strip()
    if value in _SLURM_EMPTY:
        return None
    return datetime.strptime(value, SLURM_TIMESTAMP_FORMAT).timestamp()


def parse_lsf_timestamp(value: str) -> float | None:
    """
    Parse an LSF timestamp such as ``Dec 18 10:30 2024``.

    ``bjobs`` omits the year for recent jobs, in which case the current year
    is assumed. A trailing status letter (``E``, ``L``, ``X``) that LSF
    appends to estimated times is ignored.

    Returns:
        Unix timestamp, or None for ``-``/empty.

    Raises:
        ValueError: If the value is not an LSF timestamp.
    """
    value = value.strip()
    if value in _LSF_EMPTY:
        return None
    parts = value.split()
    if parts and parts[-1] in ("E", "L", "X"):
        parts = parts[:-1]
    text = " ".join(parts)
    candidates = [text]
    if len(parts) == 3:
        candidates.append(f"{text} {datetime.fromtimestamp(get_clock().now()).year}")
    for candidate in candidates:
        for fmt in LSF_TIMESTAMP_FORMATS:
            try:
                return datetime.strptime(candidate, fmt).timestamp()
            except ValueError:
                continue
    raise ValueError(f"Unrecognized LSF timestamp: {value!r}")


def parse_duration(value: str) -> int | None:
    """
    Parse a time limit to seconds.

    Accepts ``D-HH:MM:SS``, ``HH:MM:SS``, ``MM:SS`` and bare seconds.

    Returns:
        Seconds, or None for ``UNLIMITED``/``-``/empty.

    Raises:
        ValueError: If the value is not a duration.
    """
    value = value.strip()
    if value in _DURATION_EMPTY:
        return None

    days = 0
    if "-" in value:
        day_part, value = value.split("-", 1)
        days = int(day_part)

    parts = [int(p) for p in value.split(":")]
    if len(parts) == 3:
        seconds = parts[0] * 3600 + parts[1] * 60 + parts[2]
    elif len(parts) == 2:
        seconds = parts[0] * 60 + parts[1]
    elif len(parts) == 1:
        seconds = parts[0]
    else:
        raise ValueError(f"Unrecognized duration: {value!r}")
    return days * 86400 + seconds


def parse_slurm_memory(value: str, sacct: bool = False) -> int | None:
    """
    Parse SLURM memory (``4G``, ``1000M``, ``4096K``, bare MB) to MB.

    Args:
        value: Raw field.
        sacct: Strip the per-node/per-cpu suffix (``4Gn``, ``1000Mc``) that
            sacct appends to ReqMem.

    Returns:
        Megabytes, or None for an empty field.

    Raises:
        ValueError: If the value is not a memory quantity.
    """
    value = value.strip()
    if value in _SLURM_EMPTY or value == "-":
        return None
    if sacct:
        value = value.rstrip("nc")
    unit = value[-1:].upper()
    if unit in _SLURM_MEMORY_UNITS:
        return int(float(value[:-1]) * _SLURM_MEMORY_UNITS[unit])
    return int(float(value))


def parse_lsf_memory(value: str) -> int | None:
    """
    Parse LSF memory (``4 GB``, ``1000 MB``, bare MB) to MB.

    Returns:
        Megabytes, or None for ``-``/empty.

    Raises:
        ValueError: If the value is not a memory quantity.
    """
    parts = value.split()
    if not parts or parts[0] == "-":
        return None
    unit = parts[1].upper() if len(parts) > 1 else ""
    if unit not in _LSF_MEMORY_UNITS:
        raise ValueError(f"Unrecognized LSF memory unit: {value!r}")
    return int(float(parts[0]) * _LSF_MEMORY_UNITS[unit])


def parse_exit_code(value: str) -> int | None:
    """
    Parse an exit code; SLURM's ``code:signal`` form keeps the code.

    Returns:
        Exit code, or None for an empty field.

    Raises:
        ValueError: If the value is not numeric.
    """
    value = value.strip()
    if value in _LSF_EMPTY:
        return None
    return int(value.split(":", 1)[0])


def parse_count(value: str) -> int | None:
    """Parse a CPU/processor count, or None for an empty field."""
    value = value.strip()
    if value in _TEXT_EMPTY:
        return None
    return int(value)
