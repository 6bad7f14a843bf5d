"""Process management for FFMPEG execution."""

import logging
import re
import shutil
import subprocess
import threading
import time
from dataclasses import dataclass
from typing import Optional

from ...errors import CancelledError, ToolchainError
from .command_builder import FFMPEGCommand

logger = logging.getLogger("ffhuman")

# Seconds between cancellation checks while a process runs.
POLL_INTERVAL = 0.2
# Seconds a terminated process gets before it is killed.
KILL_GRACE = 5.0
# stderr lines worth surfacing when a process fails.
_ERROR_LINE = re.compile(
    r"error|invalid|no such file|not found|permission denied|discarding", re.IGNORECASE,
)


@dataclass
class ProcessResult:
    """Result of an FFMPEG process execution."""
    success: bool
    return_code: int
    stdout: str
    stderr: str
    command: str
    duration: Optional[float] = None
    output_path: Optional[str] = None
    error_message: Optional[str] = None


class ProcessManager:
    """Runs one ffmpeg/ffprobe command at a time and can stop it midway."""

    def __init__(self, ffmpeg_path: Optional[str] = None, ffprobe_path: Optional[str] = None):
        """Initialize process manager.

        Args:
            ffmpeg_path: Path to ffmpeg executable. If None, searches PATH.
            ffprobe_path: Path to ffprobe executable. If None, searches PATH
                when an ffprobe stage first runs.

        Raises:
            ToolchainError: ffmpeg cannot be found.
        """
        self.ffmpeg_path = ffmpeg_path or shutil.which("ffmpeg")
        if not self.ffmpeg_path:
            raise ToolchainError("ffmpeg not found in PATH")
        self.ffprobe_path = ffprobe_path

    def _program_path(self, program: str) -> str:
        if program == "ffmpeg":
            return self.ffmpeg_path
        if program == "ffprobe":
            if not self.ffprobe_path:
                self.ffprobe_path = shutil.which("ffprobe")
            if not self.ffprobe_path:
                raise ToolchainError("ffprobe not found in PATH")
            return self.ffprobe_path
        return program

    def execute(
        self,
        command: FFMPEGCommand | list[str],
        timeout: Optional[float] = None,
        cancel: Optional[threading.Event] = None,
    ) -> ProcessResult:
        """Execute a command synchronously, capturing both streams.

        Args:
            command: FFMPEGCommand object or list of arguments.
            timeout: Maximum execution time in seconds. None waits forever.
            cancel: Set from another thread to stop the process.

        Returns:
            ProcessResult with execution details.

        Raises:
            ToolchainError: the program could not be started.
            CancelledError: ``cancel`` was set while the process ran.
        """
        if isinstance(command, FFMPEGCommand):
            args = command.to_args()
            cmd_string = command.to_string()
            output_path = command.outputs[0] if command.outputs else None
        else:
            args = list(command)
            cmd_string = " ".join(args)
            output_path = None

        args[0] = self._program_path(args[0])
        logger.debug("Running: %s", cmd_string)

        started = time.monotonic()
        try:
            process = subprocess.Popen(
                args,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                errors="replace",
            )
        except OSError as e:
            raise ToolchainError(f"cannot start {args[0]}: {e}") from e

        stdout, stderr = "", ""
        while True:
            if cancel is not None and cancel.is_set():
                self._stop(process)
                raise CancelledError(f"cancelled: {cmd_string}")
            elapsed = time.monotonic() - started
            if timeout is not None and elapsed >= timeout:
                stdout, stderr = self._stop(process)
                return ProcessResult(
                    success=False,
                    return_code=-1,
                    stdout=stdout,
                    stderr=stderr or "Process timed out",
                    command=cmd_string,
                    duration=elapsed,
                    output_path=output_path,
                    error_message="Execution timed out",
                )
            wait = POLL_INTERVAL if timeout is None else min(POLL_INTERVAL, timeout - elapsed)
            try:
                stdout, stderr = process.communicate(timeout=wait)
                break
            except subprocess.TimeoutExpired:
                continue
            except KeyboardInterrupt:
                self._stop(process)
                raise CancelledError(f"interrupted: {cmd_string}") from None

        success = process.returncode == 0
        return ProcessResult(
            success=success,
            return_code=process.returncode,
            stdout=stdout,
            stderr=stderr,
            command=cmd_string,
            duration=time.monotonic() - started,
            output_path=output_path,
            error_message=None if success else self._parse_error(stderr),
        )

    def _stop(self, process: subprocess.Popen) -> tuple[str, str]:
        """Terminate, then kill after the grace period; returns what was read."""
        process.terminate()
        try:
            return process.communicate(timeout=KILL_GRACE)
        except subprocess.TimeoutExpired:
            logger.warning("Process %d ignored terminate; killing it", process.pid)
            process.kill()
            return process.communicate()

    def _parse_error(self, stderr: str) -> str:
        """The last stderr line that reads like an error, else the last line."""
        lines = [line.strip() for line in stderr.splitlines() if line.strip()]
        for line in reversed(lines):
            if _ERROR_LINE.search(line):
                return line
        return lines[-1] if lines else "Unknown error"
