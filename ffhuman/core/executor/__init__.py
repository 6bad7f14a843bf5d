"""FFMPEG command building and execution.

``runner`` is imported directly (``from ffhuman.core.executor.runner
import PlanRunner``); it depends on the compiler's stage model.
"""

from .command_builder import CommandBuilder, FilterChain, FFMPEGCommand
from .process_manager import ProcessManager, ProcessResult

__all__ = [
    "CommandBuilder",
    "FilterChain",
    "FFMPEGCommand",
    "ProcessManager",
    "ProcessResult",
]
