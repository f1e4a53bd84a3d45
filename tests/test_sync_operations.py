"""Tests for rclone command construction."""

from pathlib import Path
from unittest.mock import Mock

import pytest

from rcmirror.config import MirrorSettings
from rcmirror.models import HashRecord
from rcmirror.supervisor import ProcessSupervisor
from rcmirror.sync.operations import RcloneOperations


@pytest.fixture
def settings(tmp_path):
    return MirrorSettings(
        remote="gdrive:",
        remote_root="Photos",
        local_root=tmp_path / "mirror",
        work_dir=tmp_path / "work",
        rclone_path="/usr/bin/rclone",
    )


@pytest.fixture
def supervisor():
    return Mock(spec=ProcessSupervisor)


@pytest.fixture
def copy_supervisor():
    return Mock(spec=ProcessSupervisor)


def make_ops(settings, supervisor, copy_supervisor, **kwargs):
    return RcloneOperations(
        settings,
        supervisor=supervisor,
        copy_supervisor=copy_supervisor,
        **kwargs,
    )


def called_args(supervisor):
    command, args = supervisor.execute.call_args.args
    return command, args


class TestRemotePath:
    """Test RcloneOperations.remote_path."""

    def test_with_remote_root(self, settings, supervisor, copy_supervisor):
        ops = make_ops(settings, supervisor, copy_supervisor)

        assert ops.remote_path() == "gdrive:Photos"
        assert ops.remote_path("2024/a.jpg") == "gdrive:Photos/2024/a.jpg"

    def test_whole_remote(self, tmp_path, supervisor, copy_supervisor):
        settings = MirrorSettings(remote="gdrive:", work_dir=tmp_path)
        ops = make_ops(settings, supervisor, copy_supervisor)

        assert ops.remote_path("a.jpg") == "gdrive:a.jpg"


class TestCommands:
    """Test the argument lists handed to the supervisor."""

    def test_list_remote(self, settings, supervisor, copy_supervisor):
        filter_file = Path("/tmp/scope.txt")
        ops = make_ops(
            settings,
            supervisor,
            copy_supervisor,
            filter_file=filter_file,
            max_age_days=11,
        )

        ops.list_remote()

        command, args = called_args(supervisor)
        assert command == "/usr/bin/rclone"
        assert args[:4] == ["lsf", "-R", "--files-only", "gdrive:Photos"]
        assert args[args.index("--filter-from") + 1] == str(filter_file)
        assert args[args.index("--max-age") + 1] == "11d"
        assert args[args.index("--log-file") + 1] == str(settings.tool_log)
        assert args[args.index("--log-level") + 1] == "INFO"
        assert "--stats" in args

    def test_dedupe_simulated(self, settings, supervisor, copy_supervisor):
        ops = make_ops(settings, supervisor, copy_supervisor, max_age_days=3)

        ops.dedupe(simulate=True)

        _, args = called_args(supervisor)
        assert args[:4] == ["dedupe", "--dedupe-mode", "newest", "gdrive:Photos"]
        assert "--dry-run" in args
        # dedupe always looks at the whole (scoped) tree
        assert "--max-age" not in args

    def test_dedupe_live(self, settings, supervisor, copy_supervisor):
        make_ops(settings, supervisor, copy_supervisor).dedupe(simulate=False)

        _, args = called_args(supervisor)
        assert "--dry-run" not in args

    def test_hash_remote_without_filters(self, settings, supervisor, copy_supervisor):
        make_ops(settings, supervisor, copy_supervisor).hash_remote()

        _, args = called_args(supervisor)
        assert args[:2] == ["md5sum", "gdrive:Photos"]
        assert "--filter-from" not in args
        assert "--max-age" not in args

    def test_copy_file_uses_copy_supervisor(
        self, settings, supervisor, copy_supervisor
    ):
        ops = make_ops(settings, supervisor, copy_supervisor)
        record = HashRecord(hash="a" * 32, path="2024/My Pic.jpg")

        ops.copy_file(record, settings.local_root)

        supervisor.execute.assert_not_called()
        _, args = called_args(copy_supervisor)
        assert args[:3] == [
            "copyto",
            "gdrive:Photos/2024/My Pic.jpg",
            str(settings.local_root / "2024" / "My Pic.jpg"),
        ]

    def test_default_copy_supervisor_runs_once(self, settings):
        """Per-file retries belong to the transfer planner."""
        ops = RcloneOperations(settings)

        assert ops.copy_supervisor.config.max_retries == 1
        assert ops.supervisor.config.max_retries == settings.max_retries
        assert ops.copy_supervisor.context is ops.supervisor.context
