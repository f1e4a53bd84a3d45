"""Persisted state between mirror runs.

Two plain text files live in the work directory:

- the last-run marker: ``YYYY-MM-DD``, optionally followed by ``incomplete``
- the local hash inventory: ``<md5>  <path>`` lines, append-only

The inventory is never rewritten. Every live run appends the hashes it
computed, so the same hash may appear many times; readers collapse the file
into a set of hashes.
"""

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date
from pathlib import Path
from typing import Optional

from ..exceptions import MirrorStateError
from ..models import HashRecord
from ..parser import split_hash_lines

logger = logging.getLogger(__name__)

INCOMPLETE_MARK = "incomplete"


@dataclass
class LastRun:
    """The last-run marker."""

    run_date: date
    """Day the run finished"""

    complete: bool = True
    """False if the run finished with data-quality warnings"""

    def to_line(self) -> str:
        if self.complete:
            return self.run_date.isoformat()
        return f"{self.run_date.isoformat()} {INCOMPLETE_MARK}"

    @classmethod
    def from_line(cls, line: str) -> "LastRun":
        parts = line.split()
        if not parts:
            raise ValueError("empty last-run marker")
        return cls(
            run_date=date.fromisoformat(parts[0]),
            complete=INCOMPLETE_MARK not in parts[1:],
        )


class RunStateManager:
    """Reads and writes the last-run marker and the local hash inventory."""

    def __init__(self, last_run_file: Path, local_hash_file: Path):
        """Initialize state manager.

        Args:
            last_run_file: Path of the last-run marker file
            local_hash_file: Path of the append-only local hash inventory
        """
        self.last_run_file = last_run_file
        self.local_hash_file = local_hash_file

    def initialize(self) -> bool:
        """Create an empty local hash inventory if none exists.

        Returns:
            True if a new file was created
        """
        if self.local_hash_file.exists():
            return False
        self.local_hash_file.parent.mkdir(parents=True, exist_ok=True)
        self.local_hash_file.touch()
        logger.info(f"Created empty local hash inventory at {self.local_hash_file}")
        return True

    def require_hash_source(self) -> None:
        """Fail if the local hash inventory is missing.

        Raises:
            MirrorStateError: If the inventory file does not exist
        """
        if not self.local_hash_file.is_file():
            raise MirrorStateError(
                f"Local hash inventory not found: {self.local_hash_file} "
                "(run 'rcmirror init' to create it)"
            )

    def load_last_run(self) -> Optional[LastRun]:
        """Load the last-run marker.

        Returns:
            LastRun if a valid marker exists, None otherwise
        """
        if not self.last_run_file.exists():
            logger.debug(f"No last-run marker at {self.last_run_file}")
            return None
        try:
            text = self.last_run_file.read_text(encoding="utf-8").strip()
            return LastRun.from_line(text.splitlines()[0] if text else "")
        except (OSError, ValueError) as e:
            logger.warning(f"Ignoring unreadable last-run marker: {e}")
            return None

    def save_last_run(self, run_date: date, complete: bool = True) -> None:
        marker = LastRun(run_date=run_date, complete=complete)
        self.last_run_file.parent.mkdir(parents=True, exist_ok=True)
        self.last_run_file.write_text(marker.to_line() + "\n", encoding="utf-8")
        logger.debug(f"Saved last-run marker {marker.to_line()!r}")

    def load_local_hashes(self) -> set[str]:
        """Load the distinct hashes of the local inventory.

        Repeated entries are expected and collapse into one; invalid lines
        are logged and skipped.

        Raises:
            MirrorStateError: If the inventory file does not exist
        """
        self.require_hash_source()
        with open(self.local_hash_file, encoding="utf-8", errors="replace") as f:
            records, invalid = split_hash_lines(line.rstrip("\n") for line in f)
        if invalid:
            logger.warning(
                f"{len(invalid)} invalid line(s) in {self.local_hash_file.name}"
            )
        hashes = {record.hash for record in records}
        logger.debug(
            f"Loaded {len(hashes)} distinct local hashes from {len(records)} lines"
        )
        return hashes

    def append_local_hashes(self, records: Iterable[HashRecord]) -> int:
        """Append records to the local inventory without deduplicating.

        Returns:
            Number of lines appended
        """
        self.local_hash_file.parent.mkdir(parents=True, exist_ok=True)
        count = 0
        with open(self.local_hash_file, "a", encoding="utf-8") as f:
            for record in records:
                f.write(record.to_line() + "\n")
                count += 1
        logger.debug(f"Appended {count} hash line(s) to {self.local_hash_file}")
        return count
