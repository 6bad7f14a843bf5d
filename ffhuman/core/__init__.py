"""
ffhuman core

The boundary to the external toolchain: ffmpeg command model, process
execution, ffprobe analysis and path sanitization.
"""

from .executor.command_builder import CommandBuilder
from .executor.process_manager import ProcessManager
from .video.analyzer import VideoAnalyzer

__all__ = [
    "CommandBuilder",
    "ProcessManager",
    "VideoAnalyzer",
]
