"""Parsers for rclone's text output.

All functions are pure: they take already captured lines (from stdout or
the tool's own log file) and never touch the filesystem.
"""

import logging
import re
from collections import Counter
from collections.abc import Iterable
from typing import Union

from .log import EventId, event
from .models import DuplicateSummary, HashInventory, HashRecord
from .utils import HASH_LINE_RE, parse_size

logger = logging.getLogger(__name__)

DUPLICATE_GROUP_RE = re.compile(
    r"Found (\d+) files with duplicate (?:\w+ )?hashes", re.IGNORECASE
)
SKIPPED_DELETE_RE = re.compile(r"Skipped delete.*?\(size\s+([^)]*)\)", re.IGNORECASE)

LIVE_SAVINGS_NOTE = (
    "Byte savings are only reported for simulated runs; "
    "rclone does not log sizes for real deletions"
)


def split_hash_lines(lines: Iterable[str]) -> tuple[list[HashRecord], list[str]]:
    """Split hash listing lines into records and invalid lines.

    A line is valid iff it is 32 lowercase hex characters, two spaces, then
    a non-empty path.

    Returns:
        Tuple of (records in input order, invalid lines in input order)
    """
    records: list[HashRecord] = []
    invalid: list[str] = []
    for line in lines:
        match = HASH_LINE_RE.match(line)
        if match:
            records.append(HashRecord(hash=match.group(1), path=match.group(2)))
        else:
            invalid.append(line)
    return records, invalid


def parse_hash_listing(lines: Iterable[str]) -> tuple[HashInventory, list[str]]:
    """Parse ``rclone md5sum`` output into an inventory.

    Args:
        lines: Output lines

    Returns:
        Tuple of (HashInventory, invalid lines)
    """
    records, invalid = split_hash_lines(lines)
    if invalid:
        logger.warning(
            f"{len(invalid)} hash listing line(s) could not be parsed",
            extra=event(EventId.PARSE_INVALID),
        )
        for line in invalid[:10]:
            logger.debug(f"Invalid hash line: {line!r}")
    return HashInventory(records), invalid


def detect_duplicate_hashes(lines: Iterable[Union[str, HashRecord]]) -> set[str]:
    """Find hashes that occur more than once in a raw listing.

    Must be given the raw lines (or records), not an inventory: building an
    inventory keeps only the last path per hash and hides duplicates.

    Args:
        lines: Raw listing lines or HashRecords; invalid lines are ignored

    Returns:
        Set of hashes whose group size is greater than one
    """
    counts: Counter[str] = Counter()
    for item in lines:
        if isinstance(item, HashRecord):
            counts[item.hash] += 1
            continue
        match = HASH_LINE_RE.match(item)
        if match:
            counts[match.group(1)] += 1
    return {hash_value for hash_value, count in counts.items() if count > 1}


def parse_listing(lines: Iterable[str]) -> list[str]:
    """Parse ``rclone lsf`` output into a list of paths."""
    return [line.strip() for line in lines if line.strip()]


def parse_duplicate_summary(
    log: Union[str, Iterable[str]], simulated: bool
) -> DuplicateSummary:
    """Extract duplicate counts and byte savings from a dedupe log.

    Each "Found N files with duplicate md5 hashes" line adds N-1 to the
    duplicate count (one copy is kept). Byte savings come from the
    "Skipped delete ... (size X)" lines that rclone only writes under
    ``--dry-run``; for a live run they are reported as zero with a note.

    Args:
        log: Log text or lines
        simulated: Whether the dedupe ran with ``--dry-run``

    Returns:
        DuplicateSummary
    """
    lines = log.splitlines() if isinstance(log, str) else list(log)
    summary = DuplicateSummary(bytes_computable=simulated)
    if not simulated:
        summary.note = LIVE_SAVINGS_NOTE

    missing_sizes = 0
    for line in lines:
        match = DUPLICATE_GROUP_RE.search(line)
        if match:
            try:
                group_size = int(match.group(1))
            except ValueError:
                logger.warning(f"Bad duplicate count in line: {line!r}")
                continue
            summary.duplicate_files += max(group_size - 1, 0)
            continue

        if not simulated:
            continue
        match = SKIPPED_DELETE_RE.search(line)
        if match:
            try:
                summary.bytes_saved += parse_size(match.group(1))
            except ValueError:
                missing_sizes += 1
                logger.warning(f"Unparseable size in line: {line!r}")

    if missing_sizes:
        summary.note = f"{missing_sizes} skipped delete(s) had no readable size"
    return summary
