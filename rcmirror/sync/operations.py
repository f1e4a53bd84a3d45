"""rclone invocations used by the mirror engine."""

import dataclasses
import logging
from pathlib import Path
from typing import Optional

from ..config import MirrorSettings
from ..models import HashRecord, RunResult
from ..supervisor import ProcessSupervisor, RunContext, SupervisorConfig

logger = logging.getLogger(__name__)


class RcloneOperations:
    """Builds rclone command lines and runs them under supervision.

    Every invocation writes INFO level logging (including periodic stats
    lines) to the tool log the supervisor watches for activity.
    """

    def __init__(
        self,
        settings: MirrorSettings,
        context: Optional[RunContext] = None,
        filter_file: Optional[Path] = None,
        max_age_days: Optional[int] = None,
        supervisor: Optional[ProcessSupervisor] = None,
        copy_supervisor: Optional[ProcessSupervisor] = None,
    ):
        """Initialize operations.

        Args:
            settings: Mirror settings
            context: Run context shared by all supervised invocations
            filter_file: rclone filter file applied to list/dedupe/hash
            max_age_days: Only list/hash files modified within this many days
            supervisor: Supervisor for list/dedupe/hash (built from settings
                if omitted)
            copy_supervisor: Supervisor for single-file copies; defaults to one
                attempt per call since the transfer planner does the retrying
        """
        self.settings = settings
        self.context = context or RunContext()
        self.filter_file = filter_file
        self.max_age_days = max_age_days

        config = SupervisorConfig.from_settings(settings)
        self.supervisor = supervisor or ProcessSupervisor(config, self.context)
        self.copy_supervisor = copy_supervisor or ProcessSupervisor(
            dataclasses.replace(config, max_retries=1), self.context
        )

    def remote_path(self, relative_path: str = "") -> str:
        """Qualify a path relative to the mirrored folder with the remote."""
        base = self.settings.remote_base
        if not relative_path:
            return base
        if base.endswith(":"):
            return f"{base}{relative_path}"
        return f"{base}/{relative_path}"

    def _logging_args(self) -> list[str]:
        return [
            "--log-file",
            str(self.settings.tool_log),
            "--log-level",
            "INFO",
            "--stats",
            "1m",
        ]

    def _scope_args(self, with_max_age: bool) -> list[str]:
        args: list[str] = []
        if self.filter_file is not None:
            args += ["--filter-from", str(self.filter_file)]
        if with_max_age and self.max_age_days is not None:
            args += ["--max-age", f"{self.max_age_days}d"]
        return args

    def _run(self, supervisor: ProcessSupervisor, args: list[str]) -> RunResult:
        return supervisor.execute(self.settings.rclone_path, args)

    def list_remote(self) -> RunResult:
        """List every file under the mirrored folder (``rclone lsf``)."""
        args = ["lsf", "-R", "--files-only", self.remote_path()]
        args += self._scope_args(with_max_age=True) + self._logging_args()
        return self._run(self.supervisor, args)

    def dedupe(self, simulate: bool) -> RunResult:
        """Remove extra copies of identical content (``rclone dedupe``).

        Args:
            simulate: Pass ``--dry-run`` so nothing is deleted
        """
        args = [
            "dedupe",
            "--dedupe-mode",
            self.settings.dedupe_mode,
            self.remote_path(),
        ]
        if simulate:
            args.append("--dry-run")
        args += self._scope_args(with_max_age=False) + self._logging_args()
        return self._run(self.supervisor, args)

    def hash_remote(self) -> RunResult:
        """Print ``<md5>  <path>`` for every remote file (``rclone md5sum``)."""
        args = ["md5sum", self.remote_path()]
        args += self._scope_args(with_max_age=True) + self._logging_args()
        return self._run(self.supervisor, args)

    def copy_file(self, record: HashRecord, local_root: Path) -> RunResult:
        """Copy one remote file to the same relative path under local_root."""
        destination = local_root.joinpath(*record.path.split("/"))
        args = ["copyto", self.remote_path(record.path), str(destination)]
        args += self._logging_args()
        logger.debug(f"Copying {record.path} -> {destination}")
        return self._run(self.copy_supervisor, args)
