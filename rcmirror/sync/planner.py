"""Per-file transfer execution with bounded retries."""

import logging
import time
from collections.abc import Iterable
from pathlib import Path
from typing import Callable, Optional

from ..exceptions import MirrorToolError
from ..log import EventId, event
from ..models import HashRecord, TransferOutcome
from ..utils import DEFAULT_MAX_RETRIES

logger = logging.getLogger(__name__)

CopyFn = Callable[[HashRecord], bool]
"""Copies one remote file; returns True on success"""

ProgressFn = Callable[[HashRecord, bool, int, int], None]
"""Called after each file with (record, succeeded, done, total)"""


class TransferPlanner:
    """Copies missing files one at a time.

    Each file gets up to ``max_retries_per_file`` attempts and is only
    marked failed after all of them fail. Processing always moves on to the
    next file unless ``fail_fast`` is set.

    The planned file list is written to the include file before anything is
    copied, in simulated and live runs alike.
    """

    def __init__(
        self,
        include_file: Path,
        simulate: bool = False,
        max_retries_per_file: int = DEFAULT_MAX_RETRIES,
        fail_fast: bool = False,
        retry_delay: float = 0.0,
        progress_callback: Optional[ProgressFn] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """Initialize planner.

        Args:
            include_file: Where to record the planned file list
            simulate: If True, never call copy_fn and count every file as copied
            max_retries_per_file: Attempts per file
            fail_fast: Raise on the first file that exhausts its attempts
            retry_delay: Seconds between attempts for the same file
            progress_callback: Optional per-file progress hook
            sleep: Sleep function (replaced in tests)
        """
        if max_retries_per_file < 1:
            raise ValueError("max_retries_per_file must be at least 1")
        self.include_file = include_file
        self.simulate = simulate
        self.max_retries_per_file = max_retries_per_file
        self.fail_fast = fail_fast
        self.retry_delay = retry_delay
        self.progress_callback = progress_callback
        self._sleep = sleep

    def plan(self, missing_files: Iterable[HashRecord]) -> list[HashRecord]:
        """Order the files deterministically (by path) and record the plan."""
        planned = sorted(missing_files, key=lambda r: (r.path, r.hash))
        self.include_file.parent.mkdir(parents=True, exist_ok=True)
        with open(self.include_file, "w", encoding="utf-8") as f:
            for record in planned:
                f.write(f"{record.path}\n")
        logger.debug(f"Recorded {len(planned)} planned file(s) in {self.include_file}")
        return planned

    def execute(
        self, missing_files: Iterable[HashRecord], copy_fn: CopyFn
    ) -> TransferOutcome:
        """Copy every missing file.

        Args:
            missing_files: Files to copy
            copy_fn: Copies one file, returns True on success

        Returns:
            TransferOutcome

        Raises:
            MirrorToolError: On the first permanently failed file when
                fail_fast is set
        """
        planned = self.plan(missing_files)
        outcome = TransferOutcome(simulated=self.simulate)
        started = time.monotonic()
        total = len(planned)

        for index, record in enumerate(planned, start=1):
            outcome.attempted += 1
            if self.simulate:
                logger.info(f"Would copy {record.path}")
                copied = True
            else:
                copied = self._copy_with_retries(record, copy_fn)

            if copied:
                outcome.succeeded += 1
            else:
                outcome.failed_paths.append(record.path)
                logger.error(
                    f"Giving up on {record.path} after "
                    f"{self.max_retries_per_file} attempt(s)",
                    extra=event(EventId.TRANSFER_FAILED),
                )

            if self.progress_callback is not None:
                self.progress_callback(record, copied, index, total)

            if not copied and self.fail_fast:
                outcome.elapsed_seconds = time.monotonic() - started
                raise MirrorToolError(f"Copy failed for {record.path}")

        outcome.elapsed_seconds = time.monotonic() - started
        logger.info(
            f"Transfer pass: {outcome.succeeded}/{outcome.attempted} copied, "
            f"{len(outcome.failed_paths)} failed in {outcome.elapsed_seconds:.1f}s "
            f"({outcome.throughput:.2f} files/s)"
        )
        return outcome

    def _copy_with_retries(self, record: HashRecord, copy_fn: CopyFn) -> bool:
        for attempt in range(1, self.max_retries_per_file + 1):
            if attempt > 1 and self.retry_delay > 0:
                self._sleep(self.retry_delay)
            if copy_fn(record):
                return True
            logger.warning(
                f"Copy attempt {attempt}/{self.max_retries_per_file} failed "
                f"for {record.path}"
            )
        return False
