"""CLI progress display for transfer passes.

This module provides a Rich-based progress display fed by the transfer
planner's per-file progress callback.
"""

from typing import Optional

from rich.progress import (
    BarColumn,
    MofNCompleteColumn,
    Progress,
    SpinnerColumn,
    TaskID,
    TextColumn,
    TimeElapsedColumn,
)

from .config import RunOptions
from .models import HashRecord


class TransferProgressDisplay:
    """Rich-based progress display for copying missing files.

    Shows copied/total files, the number of failures so far and the file
    that was handled last.
    """

    def __init__(self) -> None:
        """Initialize the progress display."""
        self._progress: Optional[Progress] = None
        self._task: Optional[TaskID] = None
        self._failed = 0

    def handle(self, record: HashRecord, succeeded: bool, done: int, total: int) -> None:
        """Progress callback for TransferPlanner.

        Args:
            record: File that was just handled
            succeeded: Whether it was copied
            done: Files handled so far
            total: Files planned
        """
        if self._progress is None or self._task is None:
            return
        if not succeeded:
            self._failed += 1
        self._progress.update(
            self._task,
            completed=done,
            total=total,
            current=record.path,
            failed=f"{self._failed} failed" if self._failed else "",
        )

    def __enter__(self) -> "TransferProgressDisplay":
        """Enter context manager - start progress display."""
        self._progress = Progress(
            SpinnerColumn(),
            TextColumn("[bold blue]{task.description}"),
            BarColumn(),
            MofNCompleteColumn(),
            TextColumn("[red]{task.fields[failed]}"),
            TimeElapsedColumn(),
            TextColumn("[cyan]{task.fields[current]}"),
            refresh_per_second=4,
        )
        self._progress.__enter__()
        self._task = self._progress.add_task(
            "Copying", total=None, current="", failed=""
        )
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        """Exit context manager - stop progress display."""
        if self._progress is not None:
            if self._task is not None:
                self._progress.update(self._task, description="Copy complete", current="")
            self._progress.__exit__(exc_type, exc_val, exc_tb)
            self._progress = None
            self._task = None


def run_mirror_with_progress(engine, options: RunOptions, show_progress: bool = True):
    """Run a mirror pass with a Rich progress display for the copy phase.

    Simulated runs copy nothing, so they get plain text output only.

    Args:
        engine: MirrorEngine instance
        options: Per-run flags
        show_progress: Whether to show the progress bar at all

    Returns:
        MirrorReport
    """
    if options.simulate or not show_progress:
        return engine.run(options)

    with TransferProgressDisplay() as display:
        return engine.run(options, progress_callback=display.handle)
