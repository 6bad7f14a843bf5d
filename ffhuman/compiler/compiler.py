"""Filter Graph Compiler: ``Operation`` → list of ``Stage``.

Handlers decide *what* each stage does; this module turns their
``HandlerResult`` values into commands, folds the cross-cutting
``--flag`` filters into the right place of each chain, and wires stage
dependencies.
"""

from __future__ import annotations

import logging
import os
from typing import Optional

from ..errors import CompilationError, PlanError
from ..operations.model import Batch, Operation, Report, Watch, Workflow
from ..core.executor.command_builder import CommandBuilder
from .handler_contract import CompileContext, HandlerResult, InputSpec
from .handlers import HANDLERS
from .stage import MediaRef, MediaRole, Stage

logger = logging.getLogger("ffhuman")

# Final output pad every composition graph ends in.
VIDEO_PAD = "[v]"


class FilterGraphCompiler:
    """Compiles one validated operation into its stages."""

    def __init__(self, handlers: Optional[dict] = None):
        self.handlers = HANDLERS if handlers is None else handlers

    def compile(self, op: Operation, ctx: CompileContext) -> list[Stage]:
        """Return the stages for ``op`` in handler order.

        Raises:
            CompilationError: the operation cannot be expressed for these
                inputs (audio-only input to a video filter, infeasible
                target, missing probe data).
            PlanError: a handler referenced a stage that does not exist.
        """
        if isinstance(op, (Batch, Watch, Workflow)):
            raise CompilationError(f"'{op.verb}' is driven per input and has no stages of its own")
        if isinstance(op, Report):
            raise CompilationError(f"'{op.verb}' prints a report and has no stages")
        handler = self.handlers.get(type(op))
        if handler is None:
            raise CompilationError(f"no recipe for '{op.verb}'")

        results = handler(op, ctx)
        if isinstance(results, HandlerResult):
            results = [results]

        stages: list[Stage] = []
        for index, result in enumerate(results):
            if ctx.modifiers and result.modifiable:
                self._apply_modifiers(result, ctx)
            stage = self._stage(op, ctx, result, index)
            for dep in result.depends_on:
                if not 0 <= dep < index:
                    raise PlanError(f"stage '{stage.name}' depends on missing stage #{dep}")
                stage.depends_on.append(stages[dep])
            stages.append(stage)

        final = [s for s in stages if s.output.role is MediaRole.OUTPUT]
        if final:
            final[-1].notes.extend(op.notes)
        logger.debug("Compiled '%s' into %d stage(s)", op.verb, len(stages))
        return stages

    # -------------------------------------------------------------- #

    def _apply_modifiers(self, result: HandlerResult, ctx: CompileContext) -> None:
        """Fold --resize/--crop/... filters into the result, ordered by phase."""
        extra = ctx.modifier_filters()
        if result.filter_complex:
            if result.filter_complex.count(VIDEO_PAD) != 1:
                raise CompilationError("these adjustments cannot be combined with this operation")
            chain = ",".join(f for _, f in sorted(extra, key=lambda pf: pf[0]))
            result.filter_complex = result.filter_complex.replace(
                VIDEO_PAD, f"[vpre];[vpre]{chain}{VIDEO_PAD}",
            )
        else:
            tagged = [(result.phase, f) for f in result.video_filters] + extra
            tagged.sort(key=lambda pf: pf[0])
            result.video_filters = [f for _, f in tagged]
        result.notes.extend(ctx.modifier_notes())

    def _stage(self, op: Operation, ctx: CompileContext, result: HandlerResult, index: int) -> Stage:
        inputs = result.inputs
        if inputs is None:
            inputs = [
                InputSpec(path, MediaRole.PRIMARY if i == 0 else MediaRole.SECONDARY)
                for i, path in enumerate(op.inputs)
            ]

        if result.output is None:
            output = MediaRef(ctx.output, MediaRole.OUTPUT)
        elif result.output == os.devnull:
            output = MediaRef(result.output, MediaRole.NULL)
        else:
            output = MediaRef(result.output, result.output_role)

        builder = CommandBuilder(result.program)
        for i, spec in enumerate(inputs):
            options = list(spec.options)
            if i == 0:
                options = list(result.input_options) + options
            builder.input(spec.path, options)
        builder.global_options(*result.global_options)
        if result.filter_complex:
            builder.complex_filter(result.filter_complex)
        else:
            builder.vf(*result.video_filters)
        builder.af(*result.audio_filters)
        builder.output_options(*result.output_options)

        if result.program == "ffprobe":
            builder.overwrite(None)
        elif result.capture:
            builder.overwrite(True)
            builder.output("-")
        else:
            builder.overwrite(ctx.overwrite if output.is_final else True)
            builder.output(output.path)

        return Stage(
            name=result.name or op.verb,
            command=builder.build(),
            inputs=[MediaRef(spec.path, spec.role) for spec in inputs],
            output=output,
            artifacts=list(result.artifacts),
            scratch=list(result.scratch),
            notes=list(result.notes),
            capture=result.capture,
        )


_default: Optional[FilterGraphCompiler] = None


def get_compiler() -> FilterGraphCompiler:
    global _default
    if _default is None:
        _default = FilterGraphCompiler()
    return _default
