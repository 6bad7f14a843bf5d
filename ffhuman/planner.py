"""Execution Planner: stages → ``ExecutionPlan``.

Resolves where the final output goes, refuses to clobber existing files
or inputs, names the plan's scratch files, and orders the compiled
stages so no stage runs before a stage it depends on.
"""

from __future__ import annotations

import hashlib
import logging
import os
import secrets
from collections import deque
from dataclasses import dataclass
from typing import Any, Callable, Optional

from .compiler import CompileContext, ExecutionPlan, MediaRef, MediaRole, Stage, get_compiler
from .compiler.compiler import FilterGraphCompiler
from .core.sanitize import validate_input_path, validate_output_path
from .errors import PlanError
from .operations.model import Operation, OutputHint, Workflow, with_input

logger = logging.getLogger("ffhuman")

DRY_RUN_SESSION = "dryrun"

# Step outputs a later step cannot read as media.
_REPORT_EXTENSIONS = {"txt", "json", "xml", "csv", "ini", "flat", "m3u8", "mpd"}


@dataclass(frozen=True)
class GlobalOptions:
    """Flags every verb accepts; identical for every stage of one invocation."""
    dry_run: bool = False
    explain: bool = False
    overwrite: bool = False
    output_path: Optional[str] = None
    output_dir: Optional[str] = None
    workers: Optional[int] = None


def new_session_token(dry_run: bool = False) -> str:
    """Per-process token that keeps concurrent plans' scratch files apart."""
    if dry_run:
        return DRY_RUN_SESSION
    return f"{os.getpid()}{secrets.token_hex(3)}"


def _digest(path: str) -> str:
    return hashlib.sha1(os.path.abspath(path).encode("utf-8")).hexdigest()[:8]


def _stem(path: str) -> str:
    return os.path.splitext(os.path.basename(path))[0]


def _is_pattern(path: str) -> bool:
    return "%" in os.path.basename(path)


class IntermediateNamer:
    """Names a plan's scratch files and remembers every one it handed out.

    ``.<stem>-<digest>-<session>-<role>[.<ext>]`` in ``directory``; a role
    asked for twice gets a numbered name the second time.
    """

    def __init__(self, directory: str, anchor: str, session: str, prefix: str = ""):
        self.directory = directory
        self.base = f".{_stem(anchor)}-{_digest(anchor)}-{session}"
        self.prefix = prefix
        self.paths: list[str] = []
        self._seen: dict[str, int] = {}

    def __call__(self, role: str, ext: Optional[str] = None) -> str:
        role = self.prefix + role
        count = self._seen.get(role, 0) + 1
        self._seen[role] = count
        if count > 1:
            role = f"{role}{count}"
        name = f"{self.base}-{role}"
        if ext:
            name += "." + ext.lstrip(".")
        path = os.path.join(self.directory, name)
        self.paths.append(path)
        return path

    def child(self, prefix: str) -> "IntermediateNamer":
        """Namer sharing this one's base and bookkeeping under a role prefix."""
        other = IntermediateNamer.__new__(IntermediateNamer)
        other.directory = self.directory
        other.base = self.base
        other.prefix = self.prefix + prefix
        other.paths = self.paths
        other._seen = self._seen
        return other


def order_stages(stages: list[Stage]) -> list[Stage]:
    """Kahn's algorithm; ties keep compile order.

    Raises:
        PlanError: a stage depends on a stage outside the list, or the
            dependencies form a cycle.
    """
    index = {id(s): i for i, s in enumerate(stages)}
    indegree = [0] * len(stages)
    dependents: list[list[int]] = [[] for _ in stages]
    for i, stage in enumerate(stages):
        for dep in stage.depends_on:
            if id(dep) not in index:
                raise PlanError(f"stage '{stage.name}' depends on '{dep.name}', which is not in the plan")
            dependents[index[id(dep)]].append(i)
            indegree[i] += 1

    ready = deque(i for i, d in enumerate(indegree) if d == 0)
    ordered: list[Stage] = []
    while ready:
        i = ready.popleft()
        ordered.append(stages[i])
        for j in dependents[i]:
            indegree[j] -= 1
            if indegree[j] == 0:
                ready.append(j)
        ready = deque(sorted(ready))

    if len(ordered) != len(stages):
        stuck = [stages[i].name for i, d in enumerate(indegree) if d > 0]
        raise PlanError("stage dependencies form a cycle: " + ", ".join(stuck))
    return ordered


class ExecutionPlanner:
    """Builds execution plans for single operations and workflows."""

    def __init__(
        self,
        compiler: Optional[FilterGraphCompiler] = None,
        probe: Optional[Callable[[str], Any]] = None,
        temp_dir: Optional[str] = None,
        session: Optional[str] = None,
    ):
        self.compiler = compiler or get_compiler()
        self.probe = probe
        self.temp_dir = temp_dir
        self.session = session

    # -------------------------------------------------------------- #
    #   Output location                                              #
    # -------------------------------------------------------------- #

    def resolve_output(self, op: Operation, options: GlobalOptions, source: Optional[str] = None) -> str:
        """``--out``, else ``--output-dir/<stem>_<suffix>.<ext>``, else beside the input.

        ``source`` names the file whose stem the derived name uses; it
        defaults to the operation's primary input.
        """
        hint: OutputHint = op.output_hint()
        if options.output_path:
            path = options.output_path
            if hint.pattern and not _is_pattern(path):
                root, ext = os.path.splitext(path)
                width = "%04d" if "%04d" in hint.suffix else "%03d"
                path = f"{root}_{width}{ext or '.' + (hint.ext or 'mp4')}"
            return path

        source = source or op.primary
        if source is None and hint.stem is None:
            raise PlanError(f"'{op.verb}' has no input to name its output after; use --out")
        stem = hint.stem or _stem(source)
        ext = hint.ext or os.path.splitext(source)[1].lstrip(".") or "mp4"
        name = f"{stem}_{hint.suffix}.{ext}"
        if options.output_dir:
            directory = options.output_dir
        elif source is not None:
            directory = os.path.dirname(source)
        else:
            directory = ""
        return os.path.join(directory, name)

    def _check_output(self, output: str, inputs: tuple[str, ...], options: GlobalOptions) -> None:
        validate_output_path(output)
        target = os.path.realpath(output)
        for path in inputs:
            if os.path.realpath(path) == target:
                raise PlanError(f"output {output} is the same file as input {path}")
        probe_path = output % 1 if _is_pattern(output) else output
        if os.path.exists(probe_path) and not options.overwrite:
            raise PlanError(f"{probe_path} already exists; pass --overwrite (-y) to replace it")

    def _namer(self, anchor: str, output: str, options: GlobalOptions) -> IntermediateNamer:
        directory = self.temp_dir or os.path.dirname(os.path.abspath(output))
        session = self.session or new_session_token(options.dry_run)
        return IntermediateNamer(directory, anchor, session)

    def _context(self, output: str, namer: Callable, op: Operation, options: GlobalOptions,
                 overwrite: Optional[bool] = None) -> CompileContext:
        return CompileContext(
            output=output,
            namer=namer,
            probe=self.probe,
            overwrite=options.overwrite if overwrite is None else overwrite,
            modifiers=op.modifiers,
        )

    # -------------------------------------------------------------- #
    #   Plans                                                        #
    # -------------------------------------------------------------- #

    def plan(self, op: Operation, options: GlobalOptions) -> ExecutionPlan:
        """Compile ``op`` and order its stages.

        Raises:
            ToolchainError: an input is missing or unreadable.
            PlanError: the output exists without ``--overwrite``, equals an
                input, or sits somewhere it cannot be written.
            CompilationError: see ``FilterGraphCompiler.compile``.
        """
        if isinstance(op, Workflow):
            return self.plan_workflow(op, options)

        for path in op.inputs:
            validate_input_path(path)
        output = self.resolve_output(op, options)
        self._check_output(output, op.inputs, options)

        namer = self._namer(op.primary or output, output, options)
        ctx = self._context(output, namer, op, options)
        stages = order_stages(self.compiler.compile(op, ctx))

        outputs = [s.output.path for s in stages if s.output.is_final]
        if not outputs:
            outputs = [output]
        plan = ExecutionPlan(
            stages=stages,
            outputs=list(dict.fromkeys(outputs)),
            intermediates=list(namer.paths),
            label=op.verb,
        )
        logger.info("Planned '%s': %d stage(s) -> %s", op.verb, len(plan), ", ".join(plan.outputs))
        return plan

    def plan_workflow(self, workflow: Workflow, options: GlobalOptions) -> ExecutionPlan:
        """One plan for a chain of steps; inner step outputs are scratch files."""
        steps = workflow.steps
        source = workflow.source or steps[0].primary
        first = steps[0] if not steps[0].inputs or source is None else with_input(steps[0], source)
        for path in first.inputs:
            validate_input_path(path)

        final_output = self.resolve_output(steps[-1], options, source=source)
        self._check_output(final_output, first.inputs, options)

        root = self._namer(source or final_output, final_output, options)
        all_stages: list[Stage] = []
        previous: list[Stage] = []
        current = first
        for number, step in enumerate(steps, 1):
            if number > 1:
                current = with_input(step, current_output)
                for path in current.inputs[1:]:
                    validate_input_path(path)
            last = number == len(steps)
            hint = current.output_hint()
            if last:
                output = final_output
            else:
                ext = hint.ext or os.path.splitext(current.primary or "")[1].lstrip(".") or "mp4"
                if hint.pattern or ext in _REPORT_EXTENSIONS:
                    raise PlanError(f"step {number} ('{current.verb}') does not produce media for the next step")
                output = root.child(f"step{number}-")("output", ext)

            namer = root.child(f"step{number}-")
            ctx = self._context(output, namer, current, options, overwrite=None if last else True)
            stages = self.compiler.compile(current, ctx)
            for stage in stages:
                stage.name = f"step {number}: {stage.name}"
                if not last and stage.output.is_final:
                    stage.output = MediaRef(stage.output.path, MediaRole.INTERMEDIATE)
                if not stage.depends_on:
                    stage.depends_on.extend(previous)
            producers = [s for s in stages if s.output.path == output]
            previous = producers or stages[-1:]
            all_stages.extend(stages)
            current_output = output

        ordered = order_stages(all_stages)
        outputs = [s.output.path for s in ordered if s.output.is_final] or [final_output]
        plan = ExecutionPlan(
            stages=ordered,
            outputs=list(dict.fromkeys(outputs)),
            intermediates=list(root.paths),
            label=workflow.verb,
        )
        logger.info("Planned workflow of %d step(s): %d stage(s) -> %s",
                    len(steps), len(plan), final_output)
        return plan
