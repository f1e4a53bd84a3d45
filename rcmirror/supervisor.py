"""Supervised execution of the external transfer tool.

The supervisor launches one subprocess at a time with stdout/stderr
redirected to fixed capture files, polls it at a fixed interval and kills it
when its own log file stops growing (inactivity) or when an attempt runs
longer than the total-time limit. Failed attempts are retried with a fresh
process until the retry budget is spent.

Inactivity is judged from lines appended to the tool's log file. That is a
heuristic that depends on the tool flushing its log; rclone writes a stats
line at least once per stats interval while it is working.
"""

import logging
import shlex
import subprocess
import threading
import time
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Union

from .config import MirrorSettings
from .exceptions import MirrorLaunchError
from .log import EventId, event
from .models import SENTINEL_FOR_STATUS, RunResult, RunStatus
from .utils import (
    DEFAULT_INACTIVITY_TIMEOUT,
    DEFAULT_MAX_RETRIES,
    DEFAULT_PARTIAL_SUCCESS_CODES,
    DEFAULT_POLL_INTERVAL,
    DEFAULT_RETRY_DELAY,
    DEFAULT_TOTAL_TIMEOUT,
)

logger = logging.getLogger(__name__)


@dataclass
class SupervisorConfig:
    """Limits and capture locations for supervised runs."""

    log_file: Path
    """Log file the tool appends to while running"""

    stdout_file: Path
    stderr_file: Path
    inactivity_timeout: float = DEFAULT_INACTIVITY_TIMEOUT
    total_timeout: Optional[float] = DEFAULT_TOTAL_TIMEOUT
    """Per-attempt ceiling measured from launch; None or 0 disables it"""

    poll_interval: float = DEFAULT_POLL_INTERVAL
    max_retries: int = DEFAULT_MAX_RETRIES
    retry_delay: float = DEFAULT_RETRY_DELAY
    partial_success_codes: tuple[int, ...] = DEFAULT_PARTIAL_SUCCESS_CODES
    kill_grace: float = 10.0
    """Seconds to wait for a killed process to go away"""

    @classmethod
    def from_settings(cls, settings: MirrorSettings) -> "SupervisorConfig":
        return cls(
            log_file=settings.tool_log,
            stdout_file=settings.stdout_file,
            stderr_file=settings.stderr_file,
            inactivity_timeout=settings.inactivity_timeout,
            total_timeout=settings.total_timeout,
            poll_interval=settings.poll_interval,
            max_retries=settings.max_retries,
            retry_delay=settings.retry_delay,
            partial_success_codes=settings.partial_success_codes,
        )


class RunContext:
    """Tracks the subprocess currently running on behalf of a mirror run.

    ``cancel()`` may be called from another thread (or a signal handler) to
    stop the active process; the supervisor notices on its next wake-up and
    does not start further attempts.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._process: Optional[subprocess.Popen] = None
        self._cancel_event = threading.Event()

    @property
    def active_pid(self) -> Optional[int]:
        with self._lock:
            return self._process.pid if self._process is not None else None

    @property
    def cancelled(self) -> bool:
        return self._cancel_event.is_set()

    def register(self, process: subprocess.Popen) -> None:
        with self._lock:
            self._process = process
        logger.debug(f"Registered active process pid={process.pid}")

    def clear(self, process: Optional[subprocess.Popen] = None) -> None:
        """Forget the active process (only if it is ``process`` when given)."""
        with self._lock:
            if process is None or self._process is process:
                self._process = None

    def cancel(self) -> bool:
        """Request cancellation and kill the active process.

        Returns:
            True if a running process was signalled
        """
        self._cancel_event.set()
        with self._lock:
            process = self._process
        if process is None or process.poll() is not None:
            return False
        logger.warning(
            f"Cancelling active process pid={process.pid}",
            extra=event(EventId.TOOL_CANCELLED),
        )
        try:
            process.kill()
        except OSError as e:
            logger.error(f"Failed to kill pid={process.pid}: {e}")
            return False
        return True

    def reset(self) -> None:
        """Clear a previous cancellation request."""
        self._cancel_event.clear()

    def wait(self, timeout: float) -> bool:
        """Sleep up to ``timeout`` seconds, waking early on cancellation."""
        return self._cancel_event.wait(timeout)


class _LogWatcher:
    """Follows a growing log file and counts newly appended lines."""

    def __init__(self, path: Path):
        self.path = path
        self.lines: list[str] = []
        self._partial = b""
        try:
            self._offset = path.stat().st_size
        except OSError:
            self._offset = 0

    def poll(self) -> int:
        """Read appended data.

        Returns:
            Number of new complete lines since the previous poll
        """
        try:
            with open(self.path, "rb") as f:
                f.seek(0, 2)
                size = f.tell()
                if size < self._offset:
                    # File was truncated or replaced
                    self._offset = 0
                    self._partial = b""
                f.seek(self._offset)
                data = f.read()
        except OSError:
            return 0

        self._offset += len(data)
        *complete, self._partial = (self._partial + data).split(b"\n")
        new_lines = [
            line.decode("utf-8", errors="replace").rstrip("\r") for line in complete
        ]
        self.lines.extend(new_lines)
        return len(new_lines)

    def finish(self) -> list[str]:
        self.poll()
        if self._partial:
            self.lines.append(self._partial.decode("utf-8", errors="replace"))
            self._partial = b""
        return self.lines


def read_lines(path: Path) -> list[str]:
    """Read a capture file as lines; a file that was never written is empty."""
    try:
        with open(path, encoding="utf-8", errors="replace") as f:
            return f.read().splitlines()
    except FileNotFoundError:
        return []


class ProcessSupervisor:
    """Runs the external tool with inactivity/total-time limits and retries."""

    def __init__(self, config: SupervisorConfig, context: Optional[RunContext] = None):
        """Initialize supervisor.

        Args:
            config: Limits and capture file locations
            context: Run context holding the active-process registry
        """
        self.config = config
        self.context = context or RunContext()

    def execute(
        self,
        command: str,
        arguments: Union[str, Sequence[str]] = (),
    ) -> RunResult:
        """Run a command until it succeeds or the retry budget is spent.

        Ordinary tool failures (nonzero exit, timeouts, kills) never raise;
        they come back as ``succeeded=False`` with the last attempt's exit
        code, which is a negative ``ExitSentinel`` when the tool did not exit
        on its own.

        Args:
            command: Executable name or path
            arguments: Argument string (shell-style quoting) or argument list

        Returns:
            RunResult for the last attempt

        Raises:
            MirrorLaunchError: If the executable cannot be started at all
        """
        args = shlex.split(arguments) if isinstance(arguments, str) else list(arguments)
        cmd = [command, *args]
        started = time.monotonic()

        status = RunStatus.CANCELLED
        exit_code = int(SENTINEL_FOR_STATUS[RunStatus.CANCELLED])
        log_lines: list[str] = []
        attempts = 0

        for attempt in range(1, self.config.max_retries + 1):
            if self.context.cancelled:
                break
            if attempt > 1 and self.config.retry_delay > 0:
                self.context.wait(self.config.retry_delay)
                if self.context.cancelled:
                    break

            attempts = attempt
            logger.info(
                f"Attempt {attempt}/{self.config.max_retries}: {shlex.join(cmd)}",
                extra=event(EventId.TOOL_LAUNCH),
            )
            status, exit_code, log_lines = self._run_attempt(cmd)

            if status.succeeded:
                logger.info(
                    f"{cmd[0]} finished with exit code {exit_code} ({status.value})",
                    extra=event(EventId.TOOL_EXIT),
                )
                break

            logger.warning(
                f"Attempt {attempt}/{self.config.max_retries} failed: "
                f"{status.value} (exit code {exit_code})",
                extra=event(EventId.TOOL_RETRY),
            )
            if status == RunStatus.CANCELLED:
                break

        return RunResult(
            succeeded=status.succeeded,
            exit_code=exit_code,
            status=status,
            stdout_lines=read_lines(self.config.stdout_file),
            log_lines=log_lines,
            attempts=attempts,
            elapsed_seconds=time.monotonic() - started,
        )

    def _run_attempt(self, cmd: list[str]) -> tuple[RunStatus, int, list[str]]:
        """Launch one process and watch it until it ends."""
        self.config.stdout_file.parent.mkdir(parents=True, exist_ok=True)
        self.config.stderr_file.parent.mkdir(parents=True, exist_ok=True)
        watcher = _LogWatcher(self.config.log_file)

        with open(self.config.stdout_file, "wb") as out, open(
            self.config.stderr_file, "wb"
        ) as err:
            try:
                process = subprocess.Popen(
                    cmd, stdout=out, stderr=err, stdin=subprocess.DEVNULL
                )
            except OSError as e:
                raise MirrorLaunchError(f"Cannot start {cmd[0]}: {e}") from e

            self.context.register(process)
            try:
                status = self._monitor(process, watcher)
            finally:
                if process.poll() is None:
                    # Interrupted while monitoring (e.g. KeyboardInterrupt)
                    self._kill(process, RunStatus.CANCELLED)
                self.context.clear(process)

        log_lines = watcher.finish()
        if status in SENTINEL_FOR_STATUS:
            return status, int(SENTINEL_FOR_STATUS[status]), log_lines
        return status, process.returncode, log_lines

    def _monitor(self, process: subprocess.Popen, watcher: _LogWatcher) -> RunStatus:
        started = time.monotonic()
        last_activity = started

        while process.poll() is None:
            # Returns as soon as the tool exits; cancel() kills it to wake us
            try:
                process.wait(timeout=self.config.poll_interval)
            except subprocess.TimeoutExpired:
                pass
            now = time.monotonic()
            if watcher.poll():
                last_activity = now

            if self.context.cancelled:
                return self._kill(process, RunStatus.CANCELLED)
            if process.poll() is not None:
                break

            elapsed = now - started
            inactive = now - last_activity
            logger.debug(
                f"pid={process.pid} running {elapsed:.0f}s, "
                f"log idle {inactive:.0f}s"
            )
            if self.config.total_timeout and elapsed > self.config.total_timeout:
                logger.warning(
                    f"pid={process.pid} exceeded total timeout of "
                    f"{self.config.total_timeout:.0f}s",
                    extra=event(EventId.TOOL_TIMEOUT),
                )
                return self._kill(process, RunStatus.TIMEOUT_KILLED)
            if inactive > self.config.inactivity_timeout:
                logger.warning(
                    f"pid={process.pid} wrote no log lines for {inactive:.0f}s",
                    extra=event(EventId.TOOL_INACTIVE),
                )
                return self._kill(process, RunStatus.INACTIVITY_KILLED)

        if self.context.cancelled:
            # Killed by cancel() between two polls
            return RunStatus.CANCELLED
        if process.returncode is None:
            return RunStatus.EXIT_CODE_UNCAPTURED
        return self._classify(process.returncode)

    def _kill(self, process: subprocess.Popen, status: RunStatus) -> RunStatus:
        try:
            process.kill()
        except OSError as e:
            logger.debug(f"kill pid={process.pid} failed: {e}")
        try:
            process.wait(timeout=self.config.kill_grace)
        except subprocess.TimeoutExpired:
            logger.error(
                f"pid={process.pid} still running {self.config.kill_grace:.0f}s "
                "after kill",
                extra=event(EventId.TOOL_KILL_FAILED),
            )
            return RunStatus.STILL_RUNNING_AFTER_KILL
        return status

    def _classify(self, exit_code: int) -> RunStatus:
        if exit_code == 0:
            return RunStatus.SUCCESS
        if exit_code in self.config.partial_success_codes:
            return RunStatus.SUCCESS_WITH_WARNINGS
        return RunStatus.TOOL_ERROR
