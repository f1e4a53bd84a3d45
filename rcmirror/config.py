"""Configuration management for rcmirror."""

import json
import logging
import os
import shlex
from dataclasses import asdict, dataclass, field, fields
from pathlib import Path
from typing import Any, Optional

from .exceptions import MirrorConfigError
from .utils import (
    DEFAULT_INACTIVITY_TIMEOUT,
    DEFAULT_MAX_RETRIES,
    DEFAULT_PARTIAL_SUCCESS_CODES,
    DEFAULT_POLL_INTERVAL,
    DEFAULT_RETRY_DELAY,
    DEFAULT_TOTAL_TIMEOUT,
)

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_DIR = Path.home() / ".config" / "rcmirror"
CONFIG_FILE_NAME = "config.json"

# Environment variables that override values from the config file
ENV_OVERRIDES = {
    "RCMIRROR_REMOTE": "remote",
    "RCMIRROR_LOCAL_ROOT": "local_root",
    "RCMIRROR_RCLONE": "rclone_path",
}


@dataclass
class MirrorSettings:
    """Settings shared by every mirror component.

    An instance is built once per process and passed explicitly to each
    component; nothing reads configuration from module globals.
    """

    remote: str = "gdrive:"
    """rclone remote name including the trailing colon"""

    local_root: Path = field(default_factory=lambda: Path.home() / "CloudMirror")
    """Local destination directory"""

    rclone_path: str = "rclone"
    remote_root: str = ""
    """Folder under the remote that is mirrored (empty for the whole remote)"""

    work_dir: Path = DEFAULT_CONFIG_DIR
    """Holds logs, capture files and persisted run state"""

    filter_file: Optional[Path] = None
    """rclone filter file used when a run is not scoped"""

    dedupe_mode: str = "newest"
    inactivity_timeout: float = DEFAULT_INACTIVITY_TIMEOUT
    total_timeout: Optional[float] = DEFAULT_TOTAL_TIMEOUT
    poll_interval: float = DEFAULT_POLL_INTERVAL
    max_retries: int = DEFAULT_MAX_RETRIES
    retry_delay: float = DEFAULT_RETRY_DELAY
    copy_retries: int = DEFAULT_MAX_RETRIES
    partial_success_codes: tuple[int, ...] = DEFAULT_PARTIAL_SUCCESS_CODES
    stream_client_stop_command: Optional[list[str]] = None
    stream_client_start_command: Optional[list[str]] = None

    def __post_init__(self) -> None:
        self.local_root = Path(self.local_root).expanduser()
        self.work_dir = Path(self.work_dir).expanduser()
        if self.filter_file is not None:
            self.filter_file = Path(self.filter_file).expanduser()
        self.partial_success_codes = tuple(int(c) for c in self.partial_success_codes)
        self.stream_client_stop_command = _as_command(self.stream_client_stop_command)
        self.stream_client_start_command = _as_command(
            self.stream_client_start_command
        )

    def validate(self) -> None:
        """Check value ranges.

        Raises:
            MirrorConfigError: If a value is out of range
        """
        if not self.remote.endswith(":"):
            raise MirrorConfigError(
                f"Remote must end with ':' (got {self.remote!r})"
            )
        if self.max_retries < 1:
            raise MirrorConfigError("max_retries must be at least 1")
        if self.copy_retries < 1:
            raise MirrorConfigError("copy_retries must be at least 1")
        if self.poll_interval <= 0:
            raise MirrorConfigError("poll_interval must be positive")
        if self.inactivity_timeout <= 0:
            raise MirrorConfigError("inactivity_timeout must be positive")
        if self.retry_delay < 0:
            raise MirrorConfigError("retry_delay cannot be negative")

    @property
    def remote_base(self) -> str:
        """Remote name joined with the mirrored folder, e.g. ``gdrive:Photos``."""
        return f"{self.remote}{self.remote_root.strip('/')}"

    # Work directory artifacts
    @property
    def run_log(self) -> Path:
        return self.work_dir / "mirror.log"

    @property
    def tool_log(self) -> Path:
        return self.work_dir / "rclone.log"

    @property
    def stdout_file(self) -> Path:
        return self.work_dir / "rclone-stdout.txt"

    @property
    def stderr_file(self) -> Path:
        return self.work_dir / "rclone-stderr.txt"

    @property
    def last_run_file(self) -> Path:
        return self.work_dir / "last_run.txt"

    @property
    def local_hash_file(self) -> Path:
        return self.work_dir / "local_hashes.txt"

    @property
    def include_file(self) -> Path:
        return self.work_dir / "include.txt"

    @property
    def filter_dir(self) -> Path:
        return self.work_dir / "filters"

    def to_dict(self) -> dict[str, Any]:
        """Convert settings to a JSON-serializable dictionary."""
        data = asdict(self)
        for key, value in data.items():
            if isinstance(value, Path):
                data[key] = str(value)
            elif isinstance(value, tuple):
                data[key] = list(value)
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "MirrorSettings":
        """Create settings from a dictionary, ignoring unknown keys."""
        known = {f.name for f in fields(cls)}
        unknown = set(data) - known
        if unknown:
            logger.warning(f"Ignoring unknown config keys: {', '.join(sorted(unknown))}")
        try:
            return cls(**{k: v for k, v in data.items() if k in known})
        except (TypeError, ValueError) as e:
            raise MirrorConfigError(f"Invalid configuration: {e}") from e


@dataclass
class RunOptions:
    """Per-run flags chosen on the command line."""

    simulate: bool = True
    remote: Optional[str] = None
    """Override for MirrorSettings.remote"""

    scope: Optional[str] = None
    """Remote subpath restricting the run to a test-sized subtree"""

    skip_dedupe: bool = False
    skip_process_control: bool = False
    ignore_max_age: bool = False
    fail_fast: bool = False


def _as_command(value: Any) -> Optional[list[str]]:
    if value is None or value == "":
        return None
    if isinstance(value, str):
        return shlex.split(value)
    return [str(part) for part in value]


class Config:
    """Loads and saves the JSON configuration file."""

    def __init__(self, config_path: Optional[Path] = None):
        env_path = os.environ.get("RCMIRROR_CONFIG")
        if config_path is None and env_path:
            config_path = Path(env_path)
        self.config_path = config_path or DEFAULT_CONFIG_DIR / CONFIG_FILE_NAME

    def get_config_path(self) -> Path:
        return self.config_path

    def is_configured(self) -> bool:
        return self.config_path.exists()

    def load(self) -> MirrorSettings:
        """Load settings from the config file and environment.

        A missing config file yields defaults; environment overrides are
        applied either way.

        Returns:
            Validated MirrorSettings

        Raises:
            MirrorConfigError: If the file is unreadable or values are invalid
        """
        data: dict[str, Any] = {}
        if self.config_path.exists():
            try:
                with open(self.config_path, encoding="utf-8") as f:
                    data = json.load(f)
            except (OSError, json.JSONDecodeError) as e:
                raise MirrorConfigError(
                    f"Cannot read config file {self.config_path}: {e}"
                ) from e
            if not isinstance(data, dict):
                raise MirrorConfigError(
                    f"Config file {self.config_path} must contain a JSON object"
                )
        else:
            logger.debug(f"No config file at {self.config_path}, using defaults")

        for env_name, key in ENV_OVERRIDES.items():
            value = os.environ.get(env_name)
            if value:
                data[key] = value

        settings = MirrorSettings.from_dict(data)
        settings.validate()
        return settings

    def save(self, settings: MirrorSettings) -> Path:
        """Write settings to the config file.

        Returns:
            Path of the written file
        """
        self.config_path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.config_path, "w", encoding="utf-8") as f:
            json.dump(settings.to_dict(), f, indent=2)
        # Config may contain paths to private folders
        try:
            self.config_path.chmod(0o600)
        except OSError as e:
            logger.debug(f"Could not restrict config permissions: {e}")
        return self.config_path
