"""Utility functions for rcmirror."""

import hashlib
import re
from datetime import date
from pathlib import Path
from typing import Optional

# =============================================================================
# Constants for supervised tool runs
# =============================================================================

# Seconds without new tool log lines before a run is considered hung
DEFAULT_INACTIVITY_TIMEOUT: float = 300.0

# Hard ceiling on a single attempt, measured from launch
DEFAULT_TOTAL_TIMEOUT: float = 600.0

# How often the supervisor wakes up to check on the process
DEFAULT_POLL_INTERVAL: float = 5.0

# Retry configuration for tool invocations and per-file copies
DEFAULT_MAX_RETRIES: int = 3
DEFAULT_RETRY_DELAY: float = 0.0  # seconds

# rclone exit code 9: "Operation successful, but no files transferred"
DEFAULT_PARTIAL_SUCCESS_CODES: tuple[int, ...] = (9,)

# Chunk size used when hashing local files (1 MB)
HASH_CHUNK_SIZE: int = 1024 * 1024


# =============================================================================
# Size utilities
# =============================================================================

_BINARY_UNITS = {
    "": 1,
    "B": 1,
    "KI": 1024,
    "MI": 1024**2,
    "GI": 1024**3,
    "TI": 1024**4,
}

_SIZE_RE = re.compile(r"^\s*(\d+(?:\.\d+)?)\s*([KMGT]i)?B?\s*$", re.IGNORECASE)


def parse_size(value: str) -> int:
    """Convert a size with an optional binary prefix to bytes.

    Args:
        value: Size string as printed by rclone (e.g. "1.50 Mi", "12Ki", "0 ")

    Returns:
        Size in bytes, rounded to the nearest byte

    Raises:
        ValueError: If the string is not a size

    Examples:
        >>> parse_size("1.50 Mi")
        1572864
        >>> parse_size("0 ")
        0
    """
    match = _SIZE_RE.match(value)
    if not match:
        raise ValueError(f"Invalid size: {value!r}")
    number, unit = match.groups()
    multiplier = _BINARY_UNITS[(unit or "").upper()]
    return round(float(number) * multiplier)


def format_size(size_bytes: int) -> str:
    """Format file size in human-readable format.

    Args:
        size_bytes: Size in bytes

    Returns:
        Formatted size string (e.g., "1.5 MB", "256 B")
    """
    if size_bytes < 1024:
        return f"{size_bytes} B"
    elif size_bytes < 1024 * 1024:
        return f"{size_bytes / 1024:.1f} KB"
    elif size_bytes < 1024 * 1024 * 1024:
        return f"{size_bytes / 1024 / 1024:.1f} MB"
    else:
        return f"{size_bytes / 1024 / 1024 / 1024:.1f} GB"


# =============================================================================
# Hash utilities
# =============================================================================

HASH_LINE_RE = re.compile(r"^([0-9a-f]{32})  (.+)$")


def md5_file(path: Path, chunk_size: int = HASH_CHUNK_SIZE) -> str:
    """Compute the lowercase hex MD5 digest of a file.

    Matches the digests printed by ``rclone md5sum``.
    """
    digest = hashlib.md5()
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(chunk_size), b""):
            digest.update(chunk)
    return digest.hexdigest()


# =============================================================================
# Date utilities
# =============================================================================


def max_age_days(last_run: Optional[date], today: Optional[date] = None) -> Optional[int]:
    """Days of history to scan given the previous run date.

    One extra day is added so files changed on the day of the previous run
    are not missed.

    Returns:
        Number of days, or None when there was no previous run
    """
    if last_run is None:
        return None
    today = today or date.today()
    return max((today - last_run).days, 0) + 1
