"""Data models shared by the mirror components."""

from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import Optional


@dataclass(frozen=True, order=True)
class HashRecord:
    """One file's content fingerprint and its location."""

    hash: str
    """32 character lowercase hex MD5 digest"""

    path: str
    """Relative or remote-qualified path"""

    def to_line(self) -> str:
        """Render in the tool's fixed-width listing format (two spaces)."""
        return f"{self.hash}  {self.path}"


class HashInventory:
    """Mapping of hash -> path built from one listing.

    Later records with an already seen hash overwrite the earlier path, so
    duplicate detection has to happen on the raw records before they are
    collapsed into an inventory.
    """

    def __init__(self, records: Optional[Iterable[HashRecord]] = None):
        self._entries: dict[str, str] = {}
        for record in records or ():
            self.add(record)

    def add(self, record: HashRecord) -> None:
        self._entries[record.hash] = record.path

    def get(self, hash_value: str) -> Optional[str]:
        return self._entries.get(hash_value)

    def items(self):
        return self._entries.items()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, hash_value: object) -> bool:
        return hash_value in self._entries

    def __iter__(self) -> Iterator[str]:
        return iter(self._entries)

    def __repr__(self) -> str:
        return f"HashInventory({len(self._entries)} entries)"


class RunStatus(str, Enum):
    """How a supervised tool invocation ended."""

    SUCCESS = "success"
    """Exit code 0"""

    SUCCESS_WITH_WARNINGS = "success_with_warnings"
    """Exit code in the tool's partial-success set"""

    TOOL_ERROR = "tool_error"
    """Tool exited on its own with a failing exit code"""

    TIMEOUT_KILLED = "timeout_killed"
    """Killed after exceeding the total-time limit"""

    INACTIVITY_KILLED = "inactivity_killed"
    """Killed because the tool log stopped growing"""

    CANCELLED = "cancelled"
    """Killed by an operator cancellation request"""

    EXIT_CODE_UNCAPTURED = "exit_code_uncaptured"
    """Process ended but no exit code could be read"""

    STILL_RUNNING_AFTER_KILL = "still_running_after_kill"
    """Process did not die after being killed"""

    @property
    def succeeded(self) -> bool:
        return self in (RunStatus.SUCCESS, RunStatus.SUCCESS_WITH_WARNINGS)


class ExitSentinel(IntEnum):
    """Exit codes reported when the tool did not exit on its own.

    All negative and below any signal number so they never collide with a
    real exit status.
    """

    TIMEOUT_KILLED = -101
    INACTIVITY_KILLED = -102
    EXIT_CODE_UNCAPTURED = -103
    STILL_RUNNING_AFTER_KILL = -104
    CANCELLED = -105


SENTINEL_FOR_STATUS = {
    RunStatus.TIMEOUT_KILLED: ExitSentinel.TIMEOUT_KILLED,
    RunStatus.INACTIVITY_KILLED: ExitSentinel.INACTIVITY_KILLED,
    RunStatus.EXIT_CODE_UNCAPTURED: ExitSentinel.EXIT_CODE_UNCAPTURED,
    RunStatus.STILL_RUNNING_AFTER_KILL: ExitSentinel.STILL_RUNNING_AFTER_KILL,
    RunStatus.CANCELLED: ExitSentinel.CANCELLED,
}


@dataclass
class RunResult:
    """Outcome of a supervised invocation, after all retries."""

    succeeded: bool
    exit_code: int
    status: RunStatus
    stdout_lines: list[str] = field(default_factory=list)
    """Captured stdout of the last attempt (empty if never written)"""

    log_lines: list[str] = field(default_factory=list)
    """Lines the tool appended to its own log during the last attempt"""

    attempts: int = 0
    elapsed_seconds: float = 0.0


@dataclass
class DuplicateSummary:
    """What a deduplication pass reported."""

    duplicate_files: int = 0
    """Files that are (or would be) removed, N-1 per group of N"""

    bytes_saved: int = 0
    """Estimated bytes freed; only computable from a simulated run"""

    bytes_computable: bool = True
    note: str = ""


@dataclass
class ComparisonResult:
    """Remote inventory diffed against the local hash set."""

    matched: int = 0
    missing_locally: set[HashRecord] = field(default_factory=set)
    duplicate_hashes: set[str] = field(default_factory=set)

    @property
    def total(self) -> int:
        return self.matched + len(self.missing_locally)


@dataclass
class TransferOutcome:
    """Result of one transfer pass."""

    attempted: int = 0
    succeeded: int = 0
    failed_paths: list[str] = field(default_factory=list)
    elapsed_seconds: float = 0.0
    simulated: bool = False

    @property
    def throughput(self) -> float:
        """Files per second; zero when the elapsed time rounds to zero."""
        if round(self.elapsed_seconds, 3) == 0:
            return 0.0
        return self.succeeded / self.elapsed_seconds
