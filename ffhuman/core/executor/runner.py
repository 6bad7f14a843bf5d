"""Run an ``ExecutionPlan`` stage by stage."""

from __future__ import annotations

import glob
import logging
import os
import re
import shutil
import threading
from typing import Optional

from ...compiler.stage import ExecutionPlan, MediaRole, Stage
from ...errors import CancelledError, ExecutionError, ToolchainError
from .process_manager import ProcessManager, ProcessResult

logger = logging.getLogger("ffhuman")

_FRAME_NUMBER_RE = re.compile(r"%0?\d*d")


def _remove(path: str) -> None:
    """Delete ``path`` (or every file a ``%03d`` pattern covers) if present."""
    paths = glob.glob(_FRAME_NUMBER_RE.sub("*", glob.escape(path))) if "%" in path else [path]
    for p in paths:
        try:
            os.remove(p)
        except FileNotFoundError:
            continue
        except OSError as e:
            logger.warning("Could not remove %s: %s", p, e)
        else:
            logger.debug("Removed %s", p)


class PlanRunner:
    """Executes plans strictly in order and owns their cleanup.

    A failed or cancelled stage stops the plan; everything the plan wrote
    so far (outputs, intermediates, pass logs) is deleted.  A finished
    plan leaves only its declared outputs.
    """

    def __init__(self, process_manager: ProcessManager, timeout: Optional[float] = None):
        self.process_manager = process_manager
        self.timeout = timeout

    def run(self, plan: ExecutionPlan, cancel: Optional[threading.Event] = None) -> list[ProcessResult]:
        """Run every stage of ``plan``.

        Raises:
            ExecutionError: a stage exited non-zero; ``stderr`` is the
                tool's diagnostic output, untouched.
            CancelledError: ``cancel`` was set.
            ToolchainError: a program could not be started, or an output
                directory has less free space than the inputs occupy.
        """
        self._check_free_space(plan)
        results: list[ProcessResult] = []
        started: list[Stage] = []
        try:
            for artifact in plan.artifacts:
                with open(artifact.path, "w", encoding="utf-8") as fh:
                    fh.write(artifact.content)

            total = len(plan)
            for n, stage in enumerate(plan, 1):
                if cancel is not None and cancel.is_set():
                    raise CancelledError(f"'{plan.label}' cancelled before stage '{stage.name}'")
                logger.info("[%d/%d] %s", n, total, stage.name)
                started.append(stage)
                result = self.process_manager.execute(stage.command, timeout=self.timeout, cancel=cancel)
                if not result.success:
                    raise ExecutionError(stage.name, result.return_code, result.stderr, result.command)
                if stage.capture:
                    self._save_capture(stage, result)
                results.append(result)
        except BaseException:
            self._discard(plan, started)
            raise
        self._cleanup(plan)
        return results

    def _check_free_space(self, plan: ExecutionPlan) -> None:
        # Rough estimate: the outputs need about as much room as the inputs.
        sources = {
            ref.path for stage in plan for ref in stage.inputs
            if ref.role in (MediaRole.PRIMARY, MediaRole.SECONDARY) and os.path.isfile(ref.path)
        }
        needed = sum(os.path.getsize(p) for p in sources)
        targets = {
            os.path.dirname(os.path.abspath(stage.output.path)) for stage in plan
            if stage.output.role is not MediaRole.NULL and stage.output.path != "-"
        }
        for directory in sorted(targets):
            if not os.path.isdir(directory):
                continue
            free = shutil.disk_usage(directory).free
            if free < needed:
                raise ToolchainError(
                    f"not enough free space in {directory}: {free} bytes free, about {needed} needed"
                )

    def _save_capture(self, stage: Stage, result: ProcessResult) -> None:
        text = result.stdout if stage.capture == "stdout" else result.stderr
        with open(stage.output.path, "w", encoding="utf-8") as fh:
            fh.write(text)

    def _cleanup(self, plan: ExecutionPlan) -> None:
        for path in plan.intermediates:
            _remove(path)
        for stage in plan:
            for path in stage.scratch:
                _remove(path)

    def _discard(self, plan: ExecutionPlan, started: list[Stage]) -> None:
        for stage in started:
            if stage.output.role is not MediaRole.NULL:
                _remove(stage.output.path)
        self._cleanup(plan)
