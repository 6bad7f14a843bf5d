"""Folder watch: run a command on every media file that appears.

Files already in the folder when the watch starts are never processed.
A new file is picked up once its size has stopped changing for
``settle_time`` seconds, so half-copied files are left alone.
"""

from __future__ import annotations

import logging
import os
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, Iterable, Optional

from ..errors import FfhumanError, ToolchainError
from ..grammar.resolver import get_resolver
from ..operations.builder import build_operation, insert_subject
from ..operations.model import Watch
from ..planner import GlobalOptions
from .driver import BatchDriver, ItemResult, ItemStatus

logger = logging.getLogger("ffhuman")


class FolderWatcher:
    """Polling observer for one folder (not recursive)."""

    def __init__(
        self,
        folder: str,
        extensions: Iterable[str],
        settle_time: float = 0.5,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.folder = folder
        self.extensions = {e.lower() if e.startswith(".") else "." + e.lower() for e in extensions}
        self.settle_time = settle_time
        self.clock = clock
        self.baseline: set[str] = set()
        self.processed: set[str] = set()
        self._pending: dict[str, tuple[int, float]] = {}
        self._ignored: set[str] = set()
        self._lock = threading.Lock()

    def _scan(self) -> dict[str, int]:
        found: dict[str, int] = {}
        try:
            entries = list(os.scandir(self.folder))
        except FileNotFoundError:
            return found
        for entry in entries:
            if entry.name.startswith("."):
                continue
            if os.path.splitext(entry.name)[1].lower() not in self.extensions:
                continue
            try:
                if entry.is_file():
                    found[entry.path] = entry.stat().st_size
            except OSError:
                continue
        return found

    def start(self) -> None:
        """Snapshot the folder; nothing in the snapshot is ever returned."""
        if not os.path.isdir(self.folder):
            raise ToolchainError(f"watch folder not found: {self.folder}")
        self.baseline = set(self._scan())
        logger.info("Watching %s (%d existing file(s) ignored)", self.folder, len(self.baseline))

    def ignore(self, path: str) -> None:
        """Never report ``path``, e.g. an output a plan writes into the folder."""
        with self._lock:
            self._ignored.add(os.path.abspath(path))

    def poll(self, now: Optional[float] = None) -> list[str]:
        """New files whose size held still for ``settle_time``, each reported once."""
        now = self.clock() if now is None else now
        ready: list[str] = []
        current = self._scan()
        with self._lock:
            for path, size in sorted(current.items()):
                if path in self.baseline or path in self.processed:
                    continue
                if os.path.abspath(path) in self._ignored:
                    continue
                seen = self._pending.get(path)
                if seen is None or seen[0] != size:
                    self._pending[path] = (size, now)
                    continue
                if now - seen[1] >= self.settle_time:
                    del self._pending[path]
                    self.processed.add(path)
                    ready.append(path)
            for path in list(self._pending):
                if path not in current:
                    del self._pending[path]
        return ready


def run_watch(
    watch: Watch,
    options: GlobalOptions,
    driver: BatchDriver,
    extensions: Iterable[str],
    poll_interval: float = 1.0,
    settle_time: float = 0.5,
    stop: Optional[threading.Event] = None,
    on_result: Optional[Callable[[ItemResult], None]] = None,
) -> list[ItemResult]:
    """Watch ``watch.folder`` until ``stop`` is set, one plan per new file.

    Raises:
        ToolchainError: the folder is missing, or a plan hit a fatal
            toolchain problem.
    """
    stop = stop or threading.Event()
    watcher = FolderWatcher(watch.folder, extensions, settle_time)
    watcher.start()
    results: list[ItemResult] = []
    fatal: list[ToolchainError] = []

    def handle(path: str) -> None:
        try:
            op = build_operation(get_resolver().resolve(insert_subject(list(watch.command), path)))
            watcher.ignore(driver.planner.resolve_output(op, options))
            result = driver.process_one(op, path, options, watch.conditions)
        except ToolchainError as e:
            fatal.append(e)
            stop.set()
            return
        except FfhumanError as e:
            logger.warning("Failed %s: %s", path, e)
            result = ItemResult(path, ItemStatus.FAILED, reason=str(e), error=e)
        except Exception as e:
            # e.g. the file vanished mid-plan; only this file fails
            logger.exception("Failed %s", path)
            result = ItemResult(path, ItemStatus.FAILED, reason=f"{type(e).__name__}: {e}")
        results.append(result)
        if on_result is not None:
            on_result(result)

    with ThreadPoolExecutor(max_workers=driver.workers) as executor:
        try:
            while not stop.is_set():
                for path in watcher.poll():
                    logger.info("New file: %s", path)
                    executor.submit(handle, path)
                stop.wait(poll_interval)
        except KeyboardInterrupt:
            stop.set()
            driver.cancel()
    if fatal:
        raise fatal[0]
    return results
