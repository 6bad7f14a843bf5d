"""Stages and execution plans.

A ``Stage`` is one external-process invocation: the command, the media it
reads and writes, the stages it waits for, and the reasons behind its
parameters.  An ``ExecutionPlan`` is the dependency-ordered list of stages
for one operation together with everything it must clean up.
"""

from __future__ import annotations

import shlex
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from ..core.executor.command_builder import FFMPEGCommand


class MediaRole(str, Enum):
    """What a file is to the plan that touches it."""
    PRIMARY = "primary"
    SECONDARY = "secondary"
    INTERMEDIATE = "intermediate"
    OUTPUT = "output"
    NULL = "null"


@dataclass(frozen=True)
class MediaRef:
    path: str
    role: MediaRole

    @property
    def is_final(self) -> bool:
        return self.role is MediaRole.OUTPUT


@dataclass(frozen=True)
class TextArtifact:
    """A small text file the runner writes before the stages start."""
    path: str
    content: str


@dataclass(eq=False)
class Stage:
    """One external-process invocation within a plan.

    ``capture`` names a stream (``stdout`` or ``stderr``) the runner saves
    to ``output.path``; the command itself then writes nowhere useful.
    """
    name: str
    command: FFMPEGCommand
    inputs: list[MediaRef]
    output: MediaRef
    depends_on: list["Stage"] = field(default_factory=list)
    artifacts: list[TextArtifact] = field(default_factory=list)
    scratch: list[str] = field(default_factory=list)
    notes: list[str] = field(default_factory=list)
    capture: Optional[str] = None

    @property
    def program(self) -> str:
        return self.command.program

    @property
    def args(self) -> list[str]:
        return self.command.to_args()

    @property
    def filter_graph(self) -> Optional[str]:
        if self.command.complex_filter:
            return self.command.complex_filter
        return self.command.video_filters.to_string() or None

    @property
    def encoder_args(self) -> list[str]:
        return list(self.command.output_options)

    def command_line(self) -> str:
        return self.command.to_string()

    def __repr__(self) -> str:
        deps = ", ".join(d.name for d in self.depends_on)
        return f"Stage({self.name!r}, output={self.output.path!r}, after=[{deps}])"


@dataclass
class ExecutionPlan:
    """Dependency-ordered stages for one operation."""
    stages: list[Stage]
    outputs: list[str] = field(default_factory=list)
    intermediates: list[str] = field(default_factory=list)
    label: str = ""

    def __len__(self) -> int:
        return len(self.stages)

    def __iter__(self):
        return iter(self.stages)

    @property
    def artifacts(self) -> list[TextArtifact]:
        return [a for stage in self.stages for a in stage.artifacts]

    def render(self, explain: bool = False) -> str:
        """Shell-quoted command text, one block per stage.

        Comment lines carry the stage header, side artifacts and, with
        ``explain``, the reasons behind each parameter.  Every non-comment
        line splits back (``shlex.split``) into the stage's exact arguments.
        """
        total = len(self.stages)
        lines: list[str] = []
        for n, stage in enumerate(self.stages, 1):
            header = f"# [{n}/{total}] {stage.name}"
            if stage.depends_on:
                header += " (after: " + ", ".join(d.name for d in stage.depends_on) + ")"
            lines.append(header)
            for artifact in stage.artifacts:
                lines.append(f"#   writes {shlex.quote(artifact.path)}:")
                lines.extend(f"#     {line}" for line in artifact.content.splitlines())
            if stage.capture:
                lines.append(f"#   {stage.capture} saved to {shlex.quote(stage.output.path)}")
            if explain:
                lines.extend(f"#   why: {note}" for note in stage.notes)
            lines.append(stage.command_line())
        return "\n".join(lines) + ("\n" if lines else "")
