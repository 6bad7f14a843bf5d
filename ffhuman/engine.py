"""Engine facade: argv in, plans and process results out.

    engine = Engine(load_settings())
    result = engine.run(["compress", "talk.mp4", "to", "10mb", "--dry-run"])
    print(result.text)

Parsing, building, compiling and planning all happen before any process
starts; every error up to ``PlanError`` therefore leaves no side effects.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field, replace
from typing import Any, Callable, Optional, Sequence

from . import require_toolchain
from .batch.driver import BatchDriver, BatchReport, ItemStatus
from .batch.watch import run_watch
from .compiler.stage import ExecutionPlan
from .config import Settings
from .core.executor.process_manager import ProcessManager, ProcessResult
from .core.executor.runner import PlanRunner
from .core.video.analyzer import VideoAnalyzer
from .errors import ToolchainError
from .grammar.resolver import extract_flags, get_resolver
from .grammar.tokens import tokenize
from .operations.builder import build_operation
from .operations.model import Batch, Operation, Report, Watch
from .operations.units import parse_int
from .planner import ExecutionPlanner, GlobalOptions, new_session_token
from .reports import doctor_report, render_report

logger = logging.getLogger("ffhuman")


@dataclass
class EngineResult:
    """What one invocation did (or, for dry runs, would do)."""
    operation: Operation
    options: GlobalOptions
    plan: Optional[ExecutionPlan] = None
    report: Optional[BatchReport] = None
    results: list[ProcessResult] = field(default_factory=list)
    text: str = ""
    status: int = 0

    @property
    def exit_code(self) -> int:
        if self.report is None:
            return self.status
        if self.report.interrupted:
            return 130
        return 0 if self.report.ok else 1


def parse_global_options(flags: dict[str, Optional[str]], defaults: Optional[GlobalOptions] = None) -> GlobalOptions:
    """Merge lifted ``--dry-run``/``--out``/... flags over ``defaults``."""
    base = defaults or GlobalOptions()
    workers = base.workers
    if flags.get("workers") is not None:
        workers = parse_int(flags["workers"], "--workers", low=1, high=64)
    return GlobalOptions(
        dry_run=base.dry_run or "dry-run" in flags,
        explain=base.explain or "explain" in flags,
        overwrite=base.overwrite or "overwrite" in flags or "y" in flags,
        output_path=flags.get("out") or base.output_path,
        output_dir=flags.get("output-dir") or base.output_dir,
        workers=workers,
    )


class Engine:
    """Ties grammar, builder, planner and executor together.

    ``probe`` and ``process_manager`` default to the real ffprobe/ffmpeg
    wrappers; tests pass fakes.  ``on_result`` hears about each file a
    watch processes.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        probe: Optional[Callable[[str], Any]] = None,
        process_manager: Optional[ProcessManager] = None,
        on_result: Optional[Callable[[Any], None]] = None,
    ):
        self.settings = settings or Settings()
        self.on_result = on_result
        self._probe = probe
        self._process_manager = process_manager
        self.stop = threading.Event()

    # -------------------------------------------------------------- #
    #   Parsing                                                      #
    # -------------------------------------------------------------- #

    def parse(
        self, argv: Sequence[str], defaults: Optional[GlobalOptions] = None,
    ) -> tuple[Operation, GlobalOptions]:
        """argv → validated operation plus the invocation's global options.

        Raises:
            GrammarError: the words do not form a known command.
            ValidationError: a value is malformed or out of range.
        """
        flags, tokens = extract_flags(tokenize(argv))
        options = parse_global_options(flags, defaults)
        op = build_operation(get_resolver().resolve(tokens))
        return op, options

    # -------------------------------------------------------------- #
    #   Collaborators                                                #
    # -------------------------------------------------------------- #

    def probe_for(self, options: GlobalOptions) -> Optional[Callable[[str], Any]]:
        if self._probe is not None:
            return self._probe
        try:
            self._probe = VideoAnalyzer(self.settings.ffprobe_path)
        except ToolchainError:
            if not options.dry_run:
                raise
            logger.debug("ffprobe unavailable; dry run continues without probing")
            return None
        return self._probe

    def runner(self) -> PlanRunner:
        if self._process_manager is None:
            self._process_manager = ProcessManager(self.settings.ffmpeg_path, self.settings.ffprobe_path)
        return PlanRunner(self._process_manager)

    def planner(self, options: GlobalOptions) -> ExecutionPlanner:
        return ExecutionPlanner(
            probe=self.probe_for(options),
            temp_dir=self.settings.temp_dir,
            session=new_session_token(options.dry_run),
        )

    def driver(self, options: GlobalOptions) -> BatchDriver:
        return BatchDriver(
            self.planner(options),
            runner=None if options.dry_run else self.runner(),
            probe=self.probe_for(options),
            workers=options.workers or self.settings.workers,
        )

    # -------------------------------------------------------------- #
    #   Running                                                      #
    # -------------------------------------------------------------- #

    def run(self, argv: Sequence[str], defaults: Optional[GlobalOptions] = None) -> EngineResult:
        op, options = self.parse(argv, defaults)
        return self.execute(op, options)

    def execute(self, op: Operation, options: GlobalOptions) -> EngineResult:
        """Plan ``op`` and run it (or only render it for ``--dry-run``).

        Raises:
            ToolchainError: pre-flight failed, or an input is unreadable.
            CompilationError, PlanError: before anything runs.
            ExecutionError, CancelledError: while a single plan runs.
        """
        if isinstance(op, Report):
            return self._execute_report(op, options)
        if not options.dry_run and self._process_manager is None:
            require_toolchain(self.settings.ffmpeg_path, self.settings.ffprobe_path)

        if isinstance(op, Batch):
            return self._execute_batch(op, options)
        if isinstance(op, Watch):
            return self._execute_watch(op, options)

        plan = self.planner(options).plan(op, options)
        text = plan.render(explain=options.explain) if options.dry_run or options.explain else ""
        if options.dry_run:
            return EngineResult(op, options, plan=plan, text=text)
        results = self.runner().run(plan, cancel=self.stop)
        return EngineResult(op, options, plan=plan, results=results, text=text)

    def _execute_report(self, op: Report, options: GlobalOptions) -> EngineResult:
        """Print-only reports; ``--dry-run`` changes nothing since no process runs."""
        if op.kind == "doctor":
            text, healthy = doctor_report(self.settings.ffmpeg_path, self.settings.ffprobe_path)
            return EngineResult(op, options, text=text, status=0 if healthy else ToolchainError.exit_code)
        probe = self.probe_for(options)
        if probe is None:
            raise ToolchainError(f"'{op.verb}' needs ffprobe to read {op.input}")
        return EngineResult(op, options, text=render_report(op, probe(op.input)))

    def _execute_batch(self, op: Batch, options: GlobalOptions) -> EngineResult:
        report = self.driver(options).run_batch(op, options)
        blocks = []
        for item in report.results:
            if item.status is ItemStatus.PLANNED and item.plan is not None:
                blocks.append(f"# {item.path}\n" + item.plan.render(explain=options.explain))
            elif item.status is ItemStatus.SKIPPED:
                blocks.append(f"# {item.path}: skipped ({item.reason})\n")
            elif item.status is ItemStatus.FAILED:
                blocks.append(f"# {item.path}: failed ({item.reason})\n")
        return EngineResult(op, options, report=report, text="".join(blocks))

    def _execute_watch(self, op: Watch, options: GlobalOptions) -> EngineResult:
        if options.output_path:
            options = replace(options, output_path=None)
            logger.warning("--out ignored for watch; outputs are named per file")
        results = run_watch(
            op, options, self.driver(options),
            extensions=self.settings.watch.extensions,
            poll_interval=self.settings.watch.poll_interval,
            settle_time=self.settings.watch.settle_time,
            stop=self.stop,
            on_result=self.on_result,
        )
        return EngineResult(op, options, report=BatchReport(results))
