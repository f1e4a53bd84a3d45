"""Exceptions raised by rcmirror."""

from typing import Optional


class MirrorError(Exception):
    """Base exception for all rcmirror errors."""

    exit_code: int = 1

    def __init__(self, message: str, exit_code: Optional[int] = None):
        super().__init__(message)
        if exit_code is not None:
            self.exit_code = exit_code


class MirrorConfigError(MirrorError):
    """Configuration is missing or invalid."""


class MirrorLaunchError(MirrorError):
    """The external tool could not be started at all (host-level failure)."""


class MirrorStructuralError(MirrorError):
    """A structural check failed; the run must stop before any transfer."""


class MirrorStateError(MirrorStructuralError):
    """The local hash source file is missing."""

    exit_code = 3


class MirrorIntegrityError(MirrorStructuralError):
    """Duplicate hashes are still present on the remote after deduplication."""

    exit_code = 4

    def __init__(self, message: str, duplicate_hashes: Optional[set[str]] = None):
        super().__init__(message)
        self.duplicate_hashes = duplicate_hashes or set()


class MirrorDestinationError(MirrorStructuralError):
    """The local destination directory does not exist during a live run."""

    exit_code = 5


class MirrorToolError(MirrorError):
    """The external tool failed and the caller asked to fail fast."""

    exit_code = 6

    def __init__(self, message: str, result=None):
        super().__init__(message)
        self.result = result
