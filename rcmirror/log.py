"""Run log setup and event ids."""

import logging
from enum import IntEnum
from pathlib import Path
from typing import Optional

LOG_FORMAT = "%(asctime)s %(levelname)-7s [%(event_id)04d] %(name)s: %(message)s"
CONSOLE_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


class EventId(IntEnum):
    """Stable ids for run log lines operators grep for."""

    GENERAL = 0
    RUN_START = 100
    RUN_COMPLETE = 101
    RUN_INCOMPLETE = 102
    RUN_ABORTED = 103
    TOOL_LAUNCH = 200
    TOOL_EXIT = 201
    TOOL_RETRY = 202
    TOOL_INACTIVE = 203
    TOOL_TIMEOUT = 204
    TOOL_KILL_FAILED = 205
    TOOL_CANCELLED = 206
    PARSE_INVALID = 300
    DUPLICATES = 301
    RECONCILE_MISMATCH = 302
    TRANSFER_FAILED = 400
    VERIFY_MISMATCH = 401
    STREAM_CLIENT = 500


def event(event_id: EventId) -> dict:
    """Build the ``extra`` mapping that tags a log record with an event id."""
    return {"event_id": int(event_id)}


class _EventIdFilter(logging.Filter):
    """Give every record an event id so the formatter never fails."""

    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "event_id"):
            record.event_id = int(EventId.GENERAL)
        return True


def configure_logging(run_log: Optional[Path] = None, verbose: bool = False) -> None:
    """Configure the ``rcmirror`` logger.

    Args:
        run_log: Main run log file to append to (None for console only)
        verbose: Log DEBUG to the console instead of WARNING
    """
    root = logging.getLogger("rcmirror")
    root.setLevel(logging.DEBUG)
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()

    console = logging.StreamHandler()
    console.setLevel(logging.DEBUG if verbose else logging.WARNING)
    console.setFormatter(logging.Formatter(CONSOLE_FORMAT, datefmt="%H:%M:%S"))
    console.addFilter(_EventIdFilter())
    root.addHandler(console)

    if run_log is None:
        return

    try:
        run_log.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(run_log, mode="a", encoding="utf-8")
    except OSError as e:
        # A broken run log must not stop the mirror run
        root.warning(f"Cannot open run log {run_log}: {e}")
        return

    file_handler.setLevel(logging.DEBUG if verbose else logging.INFO)
    file_handler.setFormatter(logging.Formatter(LOG_FORMAT))
    file_handler.addFilter(_EventIdFilter())
    root.addHandler(file_handler)
