"""Mirror engine for rcmirror - list, dedupe, hash, compare and copy."""

from .comparator import ReconciliationEngine
from .engine import MirrorEngine, MirrorReport
from .operations import RcloneOperations
from .planner import TransferPlanner
from .scanner import LocalHashScanner
from .scope import FilterRule, ScopeFilter, ScopeFilterBuilder, normalize_scope
from .state import LastRun, RunStateManager

__all__ = [
    "MirrorEngine",
    "MirrorReport",
    "RcloneOperations",
    "ReconciliationEngine",
    "TransferPlanner",
    "LocalHashScanner",
    "ScopeFilterBuilder",
    "ScopeFilter",
    "FilterRule",
    "normalize_scope",
    "RunStateManager",
    "LastRun",
]
