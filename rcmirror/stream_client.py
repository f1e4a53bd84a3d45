"""Stop and restart the desktop file-stream client around a mirror run.

The file-stream client (e.g. Google Drive for desktop) must not be running
while rclone walks the same account. The commands that stop and start it
are platform specific and come from the configuration.
"""

import logging
import subprocess
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Optional

from .log import EventId, event

logger = logging.getLogger(__name__)


class StreamClientController:
    """Runs the configured stop/start commands."""

    def __init__(
        self,
        stop_command: Optional[list[str]] = None,
        start_command: Optional[list[str]] = None,
        timeout: float = 60.0,
    ):
        self.stop_command = stop_command
        self.start_command = start_command
        self.timeout = timeout

    @property
    def configured(self) -> bool:
        return bool(self.stop_command or self.start_command)

    def _run(self, action: str, cmd: Optional[list[str]]) -> bool:
        if not cmd:
            return True
        logger.info(
            f"{action} file-stream client: {' '.join(cmd)}",
            extra=event(EventId.STREAM_CLIENT),
        )
        try:
            p = subprocess.run(
                cmd,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                timeout=self.timeout,
            )
        except (OSError, subprocess.TimeoutExpired) as e:
            logger.warning(f"{action} file-stream client failed: {e}")
            return False
        if p.returncode != 0:
            logger.warning(
                f"{action} file-stream client exited with {p.returncode}: "
                f"{p.stderr.strip()}"
            )
            return False
        return True

    def stop(self) -> bool:
        return self._run("Stopping", self.stop_command)

    def start(self) -> bool:
        return self._run("Starting", self.start_command)

    @contextmanager
    def paused(self, skip: bool = False) -> Iterator[None]:
        """Keep the client stopped for the duration of the block.

        The client is restarted even if the block raises.

        Args:
            skip: Leave the client alone (caller manages it)
        """
        if skip or not self.configured:
            if skip:
                logger.info("Skipping file-stream client control")
            yield
            return

        self.stop()
        try:
            yield
        finally:
            self.start()
