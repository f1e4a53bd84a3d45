"""Tests for the file-stream client controller."""

import subprocess
from unittest.mock import Mock, call, patch

import pytest

from rcmirror.stream_client import StreamClientController


def completed(returncode=0, stderr=""):
    return Mock(returncode=returncode, stderr=stderr)


class TestStreamClientController:
    """Test StreamClientController."""

    @patch("rcmirror.stream_client.subprocess.run")
    def test_paused_stops_then_starts(self, mock_run):
        mock_run.return_value = completed()
        controller = StreamClientController(["stop-it"], ["start-it"])

        with controller.paused():
            assert mock_run.call_args_list[0].args[0] == ["stop-it"]

        assert [c.args[0] for c in mock_run.call_args_list] == [
            ["stop-it"],
            ["start-it"],
        ]

    @patch("rcmirror.stream_client.subprocess.run")
    def test_restarts_after_error(self, mock_run):
        mock_run.return_value = completed()
        controller = StreamClientController(["stop-it"], ["start-it"])

        with pytest.raises(RuntimeError):
            with controller.paused():
                raise RuntimeError("boom")

        assert mock_run.call_args_list[-1].args[0] == ["start-it"]

    @patch("rcmirror.stream_client.subprocess.run")
    def test_skip_leaves_client_alone(self, mock_run):
        controller = StreamClientController(["stop-it"], ["start-it"])

        with controller.paused(skip=True):
            pass

        mock_run.assert_not_called()

    @patch("rcmirror.stream_client.subprocess.run")
    def test_unconfigured_does_nothing(self, mock_run):
        controller = StreamClientController()

        with controller.paused():
            pass

        assert controller.configured is False
        mock_run.assert_not_called()

    @patch("rcmirror.stream_client.subprocess.run")
    def test_failures_only_warn(self, mock_run, caplog):
        """A client that cannot be stopped does not abort the run."""
        mock_run.side_effect = [
            completed(returncode=1, stderr="not running"),
            subprocess.TimeoutExpired(cmd="start-it", timeout=60),
        ]
        controller = StreamClientController(["stop-it"], ["start-it"])

        assert controller.stop() is False
        assert controller.start() is False
        assert "exited with 1: not running" in caplog.text
        assert mock_run.call_count == 2

    @patch("rcmirror.stream_client.subprocess.run")
    def test_missing_executable(self, mock_run):
        mock_run.side_effect = FileNotFoundError("no such file")
        controller = StreamClientController(["stop-it"])

        assert controller.stop() is False
        assert controller.start() is True
        assert mock_run.call_args == call(
            ["stop-it"],
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            text=True,
            timeout=60.0,
        )
