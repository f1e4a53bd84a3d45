"""Local filesystem hash source."""

import logging
from collections.abc import Iterator
from pathlib import Path
from typing import Optional

from ..models import HashRecord
from ..utils import md5_file

logger = logging.getLogger(__name__)


class LocalHashScanner:
    """Hashes every file under a local root.

    Paths are relative to the root and use forward slashes so they line up
    with the paths rclone prints.

    Examples:
        >>> scanner = LocalHashScanner()
        >>> for record in scanner.iter_hashes(Path("/mirror")):
        ...     print(record.to_line())
    """

    def __init__(self, exclude_dot_files: bool = False):
        """Initialize scanner.

        Args:
            exclude_dot_files: Whether to skip files/folders starting with dot
        """
        self.exclude_dot_files = exclude_dot_files

    def iter_hashes(
        self, directory: Path, base_path: Optional[Path] = None
    ) -> Iterator[HashRecord]:
        """Recursively hash a directory.

        Args:
            directory: Directory to scan
            base_path: Base path for relative paths (defaults to directory)

        Yields:
            HashRecord per readable file, in sorted path order
        """
        if base_path is None:
            base_path = directory

        try:
            items = sorted(directory.iterdir())
        except PermissionError as e:
            logger.warning(f"Permission denied: {e}")
            return

        for item in items:
            if self.exclude_dot_files and item.name.startswith("."):
                continue
            if item.is_dir():
                yield from self.iter_hashes(item, base_path)
            elif item.is_file():
                # Use as_posix() to ensure forward slashes on all platforms
                relative_path = item.relative_to(base_path).as_posix()
                try:
                    yield HashRecord(hash=md5_file(item), path=relative_path)
                except OSError as e:
                    logger.warning(f"Cannot hash {relative_path}: {e}")

    def scan(self, directory: Path) -> list[HashRecord]:
        """Hash a directory tree; a missing directory yields nothing."""
        if not directory.is_dir():
            logger.debug(f"Nothing to hash, {directory} is not a directory")
            return []
        return list(self.iter_hashes(directory))
