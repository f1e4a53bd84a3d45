"""Unit tests for the rcmirror CLI commands."""

import json
from unittest.mock import patch

import pytest
from click.testing import CliRunner

from rcmirror.cli import main
from rcmirror.exceptions import MirrorStateError, MirrorToolError
from rcmirror.sync import MirrorReport


@pytest.fixture
def runner():
    """Provide a Click CLI test runner."""
    return CliRunner()


@pytest.fixture(autouse=True)
def no_logging_setup(monkeypatch):
    """Keep CLI invocations from reconfiguring logging handlers."""
    for name in ("RCMIRROR_CONFIG", "RCMIRROR_REMOTE", "RCMIRROR_LOCAL_ROOT"):
        monkeypatch.delenv(name, raising=False)
    with patch("rcmirror.cli.configure_logging"):
        yield


@pytest.fixture
def config_path(tmp_path):
    return tmp_path / "config.json"


@pytest.fixture
def initialized(runner, config_path, tmp_path):
    """Run init and return the config path."""
    local_root = tmp_path / "mirror"
    local_root.mkdir()
    result = runner.invoke(
        main,
        [
            "--config",
            str(config_path),
            "init",
            "--remote",
            "gdrive:",
            "--local-root",
            str(local_root),
            "--work-dir",
            str(tmp_path / "work"),
        ],
    )
    assert result.exit_code == 0, result.output
    return config_path


class TestMainGroup:
    """Tests for the main CLI group."""

    def test_main_help(self, runner):
        """Test main help shows all commands."""
        result = runner.invoke(main, ["--help"])

        assert result.exit_code == 0
        assert "rclone" in result.output
        for command in ("init", "status", "sync", "scope-filter"):
            assert command in result.output


class TestInitCommand:
    """Tests for the init command."""

    def test_init_writes_config_and_inventory(self, initialized, tmp_path):
        data = json.loads(initialized.read_text())

        assert data["remote"] == "gdrive:"
        assert (tmp_path / "work" / "local_hashes.txt").exists()

    def test_init_adds_colon_and_prompts(self, runner, config_path, tmp_path):
        result = runner.invoke(
            main,
            [
                "--config",
                str(config_path),
                "init",
                "--work-dir",
                str(tmp_path / "work"),
            ],
            input=f"photos\n{tmp_path / 'mirror'}\n",
        )

        assert result.exit_code == 0, result.output
        assert json.loads(config_path.read_text())["remote"] == "photos:"

    def test_init_refuses_to_overwrite(self, runner, initialized, tmp_path):
        result = runner.invoke(
            main,
            [
                "--config",
                str(initialized),
                "init",
                "--remote",
                "other:",
                "--local-root",
                str(tmp_path),
            ],
        )

        assert result.exit_code == 1
        assert "already exists" in result.output
        assert json.loads(initialized.read_text())["remote"] == "gdrive:"


class TestStatusCommand:
    """Tests for the status command."""

    def test_status_json(self, runner, initialized):
        result = runner.invoke(main, ["--config", str(initialized), "--json", "status"])

        assert result.exit_code == 0, result.output
        data = json.loads(result.output)
        assert data["remote"] == "gdrive:"
        assert data["last_run"] is None
        assert data["local_hashes"] == 0

    def test_status_table(self, runner, initialized):
        result = runner.invoke(main, ["--config", str(initialized), "status"])

        assert result.exit_code == 0
        assert "never" in result.output

    def test_bad_config_exits(self, runner, config_path):
        config_path.write_text("{broken")

        result = runner.invoke(main, ["--config", str(config_path), "status"])

        assert result.exit_code == 1
        assert "Configuration error" in result.output


class TestScopeFilterCommand:
    """Tests for the scope-filter command."""

    def test_prints_rules(self, runner):
        result = runner.invoke(
            main, ["scope-filter", "remote:/My Pics/Tests", "--remote", "remote:"]
        )

        assert result.exit_code == 0
        assert result.output == "+ /My Pics/Tests/**\n- **\n"

    def test_empty_scope(self, runner):
        result = runner.invoke(main, ["scope-filter", "remote:/", "-r", "remote:"])

        assert result.exit_code == 1


class TestSyncCommand:
    """Tests for the sync command."""

    @pytest.fixture
    def engine(self):
        with patch("rcmirror.cli.MirrorEngine") as engine_class:
            engine = engine_class.return_value
            engine.run.return_value = MirrorReport(simulated=True)
            yield engine

    def test_simulates_by_default(self, runner, initialized, engine):
        result = runner.invoke(main, ["--config", str(initialized), "sync"])

        assert result.exit_code == 0, result.output
        options = engine.run.call_args.args[0]
        assert options.simulate is True
        assert options.fail_fast is False

    def test_live_flags(self, runner, initialized, engine):
        engine.run.return_value = MirrorReport(simulated=False)

        result = runner.invoke(
            main,
            [
                "--config",
                str(initialized),
                "sync",
                "--live",
                "--no-progress",
                "--scope",
                "gdrive:/Pics",
                "--skip-dedupe",
                "--skip-process-control",
                "--ignore-max-age",
                "--fail-on-tool-error",
                "--remote",
                "other:",
            ],
        )

        assert result.exit_code == 0, result.output
        options = engine.run.call_args.args[0]
        assert options.simulate is False
        assert options.scope == "gdrive:/Pics"
        assert options.remote == "other:"
        assert options.skip_dedupe is True
        assert options.skip_process_control is True
        assert options.ignore_max_age is True
        assert options.fail_fast is True

    def test_json_report(self, runner, initialized, engine):
        result = runner.invoke(main, ["--config", str(initialized), "--json", "sync"])

        assert result.exit_code == 0, result.output
        data = json.loads(result.output)
        assert data["simulated"] is True
        assert data["complete"] is True

    def test_structural_error_exit_code(self, runner, initialized, engine):
        engine.run.side_effect = MirrorStateError("Local hash inventory not found")

        result = runner.invoke(main, ["--config", str(initialized), "sync"])

        assert result.exit_code == 3
        assert "Run aborted" in result.output

    def test_tool_error_exit_code(self, runner, initialized, engine):
        engine.run.side_effect = MirrorToolError("rclone list failed")

        result = runner.invoke(main, ["--config", str(initialized), "sync"])

        assert result.exit_code == 6

    def test_keyboard_interrupt(self, runner, initialized, engine):
        engine.run.side_effect = KeyboardInterrupt

        result = runner.invoke(main, ["--config", str(initialized), "sync"])

        assert result.exit_code == 130
        assert "cancelled" in result.output
