"""
ffhuman: near-English media commands compiled into ffmpeg invocations.

Example usage:
    - "compress video.mp4 to 10mb --two-pass"
    - "watermark video.mp4 logo.png at top-right --opacity 0.5"
    - "batch convert '*.mov' to mp4 when duration < 30s"
"""

import shutil
import subprocess
from typing import Optional

__version__ = "1.0.0"
__author__ = "ffhuman developers"

from .errors import (  # noqa: E402
    CancelledError,
    CompilationError,
    ExecutionError,
    FfhumanError,
    GrammarError,
    PlanError,
    ToolchainError,
    ValidationError,
)

__all__ = [
    "check_dependencies",
    "require_toolchain",
    "FfhumanError",
    "GrammarError",
    "ValidationError",
    "CompilationError",
    "PlanError",
    "ExecutionError",
    "ToolchainError",
    "CancelledError",
]


def _version_line(binary: str) -> Optional[str]:
    try:
        result = subprocess.run([binary, "-version"], capture_output=True, text=True, timeout=10)
    except (OSError, subprocess.TimeoutExpired):
        return None
    if result.returncode != 0:
        return None
    first = result.stdout.splitlines()[:1]
    return first[0].strip() if first else ""


def check_dependencies(ffmpeg_path: Optional[str] = None, ffprobe_path: Optional[str] = None) -> list[str]:
    """Check the external toolchain; returns a list of problems (empty when fine)."""
    issues = []

    ffmpeg = ffmpeg_path or shutil.which("ffmpeg")
    if not ffmpeg:
        issues.append("FFMPEG not found in PATH. Please install FFMPEG.")
    elif _version_line(ffmpeg) is None:
        issues.append(f"FFMPEG at {ffmpeg} does not run ('-version' failed).")

    ffprobe = ffprobe_path or shutil.which("ffprobe")
    if not ffprobe:
        issues.append("FFprobe not found in PATH. Please install FFMPEG.")
    elif _version_line(ffprobe) is None:
        issues.append(f"FFprobe at {ffprobe} does not run ('-version' failed).")

    return issues


def require_toolchain(ffmpeg_path: Optional[str] = None, ffprobe_path: Optional[str] = None) -> None:
    """Pre-flight check before any plan that will execute.

    Raises:
        ToolchainError: ffmpeg or ffprobe is missing or broken.
    """
    issues = check_dependencies(ffmpeg_path, ffprobe_path)
    if issues:
        raise ToolchainError(" ".join(issues))
