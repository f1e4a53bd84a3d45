"""rcmirror - one-way mirror of a cloud remote to a local folder via rclone."""

from .config import Config, MirrorSettings, RunOptions
from .exceptions import (
    MirrorConfigError,
    MirrorDestinationError,
    MirrorError,
    MirrorIntegrityError,
    MirrorLaunchError,
    MirrorStateError,
    MirrorStructuralError,
    MirrorToolError,
)
from .models import (
    ComparisonResult,
    DuplicateSummary,
    ExitSentinel,
    HashInventory,
    HashRecord,
    RunResult,
    RunStatus,
    TransferOutcome,
)
from .supervisor import ProcessSupervisor, RunContext, SupervisorConfig

__version__ = "0.1.0"

__all__ = [
    "Config",
    "MirrorSettings",
    "RunOptions",
    "MirrorError",
    "MirrorConfigError",
    "MirrorDestinationError",
    "MirrorIntegrityError",
    "MirrorLaunchError",
    "MirrorStateError",
    "MirrorStructuralError",
    "MirrorToolError",
    "ComparisonResult",
    "DuplicateSummary",
    "ExitSentinel",
    "HashInventory",
    "HashRecord",
    "RunResult",
    "RunStatus",
    "TransferOutcome",
    "ProcessSupervisor",
    "RunContext",
    "SupervisorConfig",
]
