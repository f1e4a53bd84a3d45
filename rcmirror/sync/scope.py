"""Filter files that restrict a run to one remote subtree."""

import logging
import re
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)

# rclone filter glob metacharacters
GLOB_SPECIAL_RE = re.compile(r"([*?\[\]{}\\])")


@dataclass(frozen=True)
class FilterRule:
    """One rclone filter rule; rules are evaluated first-match-wins."""

    include: bool
    pattern: str

    def to_line(self) -> str:
        return f"{'+' if self.include else '-'} {self.pattern}"


@dataclass
class ScopeFilter:
    """Ordered include/exclude rules scoping a run to ``subtree``."""

    subtree: str
    rules: list[FilterRule]

    def to_text(self) -> str:
        return "".join(f"{rule.to_line()}\n" for rule in self.rules)

    def write(self, directory: Path, now: Optional[datetime] = None) -> Path:
        """Write the rules to a timestamp-named filter file.

        The file is left in place; cleaning up old filter files is not the
        mirror's job.

        Returns:
            Path of the written file
        """
        now = now or datetime.now()
        directory.mkdir(parents=True, exist_ok=True)
        path = directory / f"scope-{now:%Y%m%d-%H%M%S-%f}.txt"
        path.write_text(self.to_text(), encoding="utf-8")
        logger.debug(f"Wrote scope filter for {self.subtree!r} to {path}")
        return path


def normalize_scope(remote_root_prefix: str, raw_scope: str) -> str:
    """Turn a user-supplied scope into a path relative to the remote root.

    Strips the remote prefix (case-insensitive) and leading/trailing path
    separators, and converts backslashes to forward slashes. The prefix only
    counts when it ends at a path boundary, so ``gdrive:Photos`` is not
    stripped from ``gdrive:PhotosArchive``.

    Examples:
        >>> normalize_scope("remote:", "remote:/My Pics/Tests")
        'My Pics/Tests'
        >>> normalize_scope("gdrive:", "Photos\\\\2024\\\\")
        'Photos/2024'
    """
    scope = raw_scope.strip()
    if remote_root_prefix and scope.lower().startswith(remote_root_prefix.lower()):
        rest = scope[len(remote_root_prefix) :]
        if remote_root_prefix[-1] in ":/\\" or not rest or rest[0] in "/\\":
            scope = rest
    scope = scope.replace("\\", "/")
    return scope.strip("/")


class ScopeFilterBuilder:
    """Builds the filter for a scoped run."""

    def __init__(self, remote_root_prefix: str):
        """Initialize builder.

        Args:
            remote_root_prefix: Prefix users may paste in front of a scope,
                e.g. ``gdrive:`` or ``gdrive:Photos``
        """
        self.remote_root_prefix = remote_root_prefix

    def build(self, raw_scope: str) -> Optional[ScopeFilter]:
        """Build a filter for the subtree named by ``raw_scope``.

        Glob characters in the subtree are escaped so folder names match
        literally.

        Returns:
            ScopeFilter including the subtree and excluding everything else,
            or None when the scope normalizes to nothing (the caller should
            fall back to its configured filter)
        """
        subtree = normalize_scope(self.remote_root_prefix, raw_scope)
        if not subtree:
            logger.warning(
                f"Scope {raw_scope!r} is empty after normalization; "
                "using the configured filter instead"
            )
            return None

        escaped = GLOB_SPECIAL_RE.sub(r"\\\1", subtree)
        return ScopeFilter(
            subtree=subtree,
            rules=[
                FilterRule(include=True, pattern=f"/{escaped}/**"),
                FilterRule(include=False, pattern="**"),
            ],
        )
