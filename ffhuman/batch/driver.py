"""Batch driver: one plan per input, run on a bounded thread pool.

Every input is planned and run on its own; a failure is recorded and the
batch carries on.  Only a ``ToolchainError`` (missing ffmpeg, unreadable
input) stops the whole batch.
"""

from __future__ import annotations

import glob
import logging
import os
import threading
from concurrent.futures import Future, ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Optional

from ..compiler.stage import ExecutionPlan
from ..errors import CancelledError, FfhumanError, ToolchainError, ValidationError
from ..operations.model import Batch, Operation, with_input
from ..planner import ExecutionPlanner, GlobalOptions
from .conditions import Condition, first_failure, needs_probe

logger = logging.getLogger("ffhuman")


class ItemStatus(str, Enum):
    SUCCEEDED = "succeeded"
    SKIPPED = "skipped"
    FAILED = "failed"
    CANCELLED = "cancelled"
    PLANNED = "planned"


@dataclass
class ItemResult:
    """Outcome for one input of a batch or watch."""
    path: str
    status: ItemStatus
    outputs: tuple[str, ...] = ()
    reason: str = ""
    plan: Optional[ExecutionPlan] = None
    error: Optional[FfhumanError] = None


@dataclass
class BatchReport:
    results: list[ItemResult]
    interrupted: bool = False

    def count(self, status: ItemStatus) -> int:
        return sum(1 for r in self.results if r.status is status)

    @property
    def ok(self) -> bool:
        return not any(r.status in (ItemStatus.FAILED, ItemStatus.CANCELLED) for r in self.results)

    def summary(self) -> str:
        parts = [f"{self.count(s)} {s.value}" for s in ItemStatus if self.count(s)]
        return f"{len(self.results)} file(s): " + (", ".join(parts) or "nothing to do")


def expand_pattern(pattern: str, recursive: bool = False) -> list[str]:
    """Sorted regular files matching ``pattern``.

    Raises:
        ValidationError: nothing matches.
    """
    matches = sorted(p for p in glob.glob(os.path.expanduser(pattern), recursive=recursive)
                     if os.path.isfile(p))
    if not matches:
        raise ValidationError("pattern", f"No files found matching pattern {pattern!r}")
    return matches


class BatchDriver:
    """Fans an operation out over many inputs.

    Args:
        planner: Builds one plan per input.
        runner: Executes plans; unused for dry runs.
        probe: Metadata lookup for conditions on duration, size or streams.
        workers: Upper bound on plans running at once.
    """

    def __init__(
        self,
        planner: ExecutionPlanner,
        runner: Any = None,
        probe: Optional[Callable[[str], Any]] = None,
        workers: int = 2,
    ):
        self.planner = planner
        self.runner = runner
        self.probe = probe
        self.workers = max(1, workers)
        self._events: dict[str, threading.Event] = {}
        self._lock = threading.Lock()

    # -------------------------------------------------------------- #
    #   Cancellation                                                 #
    # -------------------------------------------------------------- #

    def _event_for(self, path: str) -> threading.Event:
        with self._lock:
            return self._events.setdefault(path, threading.Event())

    def cancel_item(self, path: str) -> None:
        """Stop one input; the others keep running."""
        self._event_for(path).set()

    def cancel(self) -> None:
        with self._lock:
            for event in self._events.values():
                event.set()

    # -------------------------------------------------------------- #
    #   One input                                                    #
    # -------------------------------------------------------------- #

    def skip_reason(self, conditions: tuple[Condition, ...], path: str) -> Optional[str]:
        if not conditions:
            return None
        metadata = self.probe(path) if needs_probe(conditions) and self.probe is not None else None
        failed = first_failure(conditions, path, metadata)
        return None if failed is None else f"condition not met: {failed}"

    def process_one(
        self,
        op: Operation,
        path: str,
        options: GlobalOptions,
        conditions: tuple[Condition, ...] = (),
    ) -> ItemResult:
        """Check conditions, plan and (unless dry-run) run one input.

        Raises:
            ToolchainError: fatal for the whole batch.
        """
        cancel = self._event_for(path)
        if cancel.is_set():
            return ItemResult(path, ItemStatus.CANCELLED, reason="cancelled before start")
        reason = self.skip_reason(conditions, path)
        if reason:
            logger.info("Skipping %s: %s", path, reason)
            return ItemResult(path, ItemStatus.SKIPPED, reason=reason)

        try:
            plan = self.planner.plan(op, options)
            if options.dry_run:
                return ItemResult(path, ItemStatus.PLANNED, tuple(plan.outputs), plan=plan)
            self.runner.run(plan, cancel=cancel)
        except ToolchainError:
            raise
        except CancelledError as e:
            logger.warning("Cancelled %s", path)
            return ItemResult(path, ItemStatus.CANCELLED, reason=str(e), error=e)
        except FfhumanError as e:
            logger.warning("Failed %s: %s", path, e)
            return ItemResult(path, ItemStatus.FAILED, reason=str(e), error=e)
        logger.info("Finished %s -> %s", path, ", ".join(plan.outputs))
        return ItemResult(path, ItemStatus.SUCCEEDED, tuple(plan.outputs), plan=plan)

    def _process_path(self, template: Operation, path: str, options: GlobalOptions,
                      conditions: tuple[Condition, ...]) -> ItemResult:
        try:
            op = with_input(template, path)
        except ValidationError as e:
            return ItemResult(path, ItemStatus.FAILED, reason=str(e), error=e)
        return self.process_one(op, path, options, conditions)

    # -------------------------------------------------------------- #
    #   Many inputs                                                  #
    # -------------------------------------------------------------- #

    def run_batch(self, batch: Batch, options: GlobalOptions) -> BatchReport:
        """Process every file ``batch.pattern`` matches.

        Raises:
            ValidationError: no file matches, or ``--out`` was given.
            ToolchainError: the first fatal error; pending inputs are
                cancelled.
        """
        if options.output_path:
            raise ValidationError("--out", "names one file; use --output-dir with batch")
        files = expand_pattern(batch.pattern, batch.recursive)
        logger.info("Batch '%s': %d file(s), %d worker(s)", batch.template.verb, len(files), self.workers)
        for path in files:
            self._event_for(path)
        return self.run_many(
            files,
            lambda path: self._process_path(batch.template, path, options, batch.conditions),
        )

    def run_many(self, files: list[str], work: Callable[[str], ItemResult]) -> BatchReport:
        results: dict[str, ItemResult] = {}
        interrupted = False
        with ThreadPoolExecutor(max_workers=self.workers) as executor:
            futures: dict[Future, str] = {executor.submit(work, path): path for path in files}
            try:
                for future in as_completed(futures):
                    path = futures[future]
                    try:
                        results[path] = future.result()
                    except ToolchainError:
                        self.cancel()
                        for pending in futures:
                            pending.cancel()
                        raise
            except KeyboardInterrupt:
                interrupted = True
                self.cancel()
                for pending in futures:
                    pending.cancel()
                for future, path in futures.items():
                    if future.cancelled():
                        results[path] = ItemResult(path, ItemStatus.CANCELLED, reason="interrupted")
                    elif path not in results:
                        try:
                            results[path] = future.result()
                        except FfhumanError as e:
                            results[path] = ItemResult(path, ItemStatus.CANCELLED, reason=str(e), error=e)
        report = BatchReport([results[p] for p in files if p in results], interrupted=interrupted)
        logger.info("Batch done: %s", report.summary())
        return report
