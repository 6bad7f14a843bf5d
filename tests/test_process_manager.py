"""Tests for ProcessManager, using the Python interpreter as a stand-in tool."""

import sys
import threading

import pytest

from ffhuman.core.executor.command_builder import FFMPEGCommand
from ffhuman.core.executor.process_manager import ProcessManager
from ffhuman.errors import CancelledError, ToolchainError

PY = sys.executable


@pytest.fixture
def manager():
    return ProcessManager(ffmpeg_path=PY)


class TestExecute:
    """Exit status and captured streams."""

    def test_success(self, manager):
        result = manager.execute([PY, "-c", "print('hello')"])
        assert result.success
        assert result.return_code == 0
        assert result.stdout.strip() == "hello"
        assert result.error_message is None

    def test_failure_message(self, manager):
        script = "import sys; sys.stderr.write('frame=1\\nError opening output\\nbye\\n'); sys.exit(3)"
        result = manager.execute([PY, "-c", script])
        assert not result.success
        assert result.return_code == 3
        assert result.error_message == "Error opening output"

    def test_command_object(self, manager):
        """The ffmpeg program name maps to the configured binary."""
        cmd = FFMPEGCommand(global_options=["-c", "print(42)"], overwrite=None)
        result = manager.execute(cmd)
        assert result.success
        assert result.stdout.strip() == "42"

    def test_timeout(self, manager):
        result = manager.execute([PY, "-c", "import time; time.sleep(30)"], timeout=0.5)
        assert not result.success
        assert result.return_code == -1
        assert result.error_message == "Execution timed out"

    def test_cancel(self, manager):
        cancel = threading.Event()
        timer = threading.Timer(0.3, cancel.set)
        timer.start()
        try:
            with pytest.raises(CancelledError):
                manager.execute([PY, "-c", "import time; time.sleep(30)"], cancel=cancel)
        finally:
            timer.cancel()


class TestToolchain:
    """Missing programs are environment errors."""

    def test_unstartable_program(self, manager, tmp_path):
        with pytest.raises(ToolchainError, match="cannot start"):
            manager.execute([str(tmp_path / "no-such-tool"), "-version"])

    def test_ffmpeg_not_on_path(self, tmp_path, monkeypatch):
        monkeypatch.setenv("PATH", str(tmp_path))
        with pytest.raises(ToolchainError, match="ffmpeg not found"):
            ProcessManager()

    def test_ffprobe_not_on_path(self, manager, tmp_path, monkeypatch):
        monkeypatch.setenv("PATH", str(tmp_path))
        with pytest.raises(ToolchainError, match="ffprobe not found"):
            manager.execute(["ffprobe", "-version"])
