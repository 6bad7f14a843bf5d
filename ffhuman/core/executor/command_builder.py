"""Command model for one ffmpeg or ffprobe invocation.

A stage's ``FFMPEGCommand`` is the single source of both the argument
vector that runs and the shell text a dry run prints, so the two cannot
drift apart.
"""

import shlex
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Union

FilterParam = Union[str, int, float, None]


@dataclass
class Filter:
    """One filtergraph node, e.g. ``[0:v][1:v]overlay=x=10:y=10[v]``.

    A parameter whose value is None is written as a bare flag.
    """
    name: str
    params: dict[str, FilterParam] = field(default_factory=dict)
    inputs: list[str] = field(default_factory=list)
    outputs: list[str] = field(default_factory=list)

    def to_string(self) -> str:
        body = self.name
        if self.params:
            body += "=" + ":".join(
                key if value is None else f"{key}={value}"
                for key, value in self.params.items()
            )
        pads_in = "".join(f"[{label}]" for label in self.inputs)
        pads_out = "".join(f"[{label}]" for label in self.outputs)
        return pads_in + body + pads_out

    __str__ = to_string


@dataclass
class FilterChain:
    """Filters applied one after another (joined with commas)."""
    filters: list[Filter] = field(default_factory=list)

    def add(self, filter_obj: Filter) -> "FilterChain":
        self.filters.append(filter_obj)
        return self

    def add_filter(
        self,
        name: str,
        params: Optional[dict] = None,
        inputs: Optional[list[str]] = None,
        outputs: Optional[list[str]] = None,
    ) -> "FilterChain":
        return self.add(Filter(name, dict(params or {}), list(inputs or []), list(outputs or [])))

    def __bool__(self) -> bool:
        return bool(self.filters)

    def to_string(self) -> str:
        return ",".join(f.to_string() for f in self.filters)


@dataclass
class FFMPEGCommand:
    """Represents one external tool invocation.

    ``overwrite`` is tri-state: True emits ``-y``, False emits ``-n`` and
    None emits neither (ffprobe has no such switch).  ``input_options``
    is keyed by input index so the same file may appear twice.
    """
    program: str = "ffmpeg"
    inputs: list[str] = field(default_factory=list)
    outputs: list[str] = field(default_factory=list)
    input_options: dict[int, list[str]] = field(default_factory=dict)
    output_options: list[str] = field(default_factory=list)
    video_filters: FilterChain = field(default_factory=FilterChain)
    audio_filters: FilterChain = field(default_factory=FilterChain)
    complex_filter: Optional[str] = None
    global_options: list[str] = field(default_factory=list)
    overwrite: Optional[bool] = True

    def _overwrite_args(self) -> list[str]:
        if self.overwrite is None:
            return []
        return ["-y"] if self.overwrite else ["-n"]

    def _input_args(self) -> list[str]:
        args: list[str] = []
        for index, path in enumerate(self.inputs):
            args += self.input_options.get(index, [])
            args += ["-i", path]
        return args

    def _filter_args(self) -> list[str]:
        # A filter_complex carries the whole video graph; -vf would conflict.
        args: list[str] = []
        if self.complex_filter:
            args += ["-filter_complex", self.complex_filter]
        elif self.video_filters:
            args += ["-vf", self.video_filters.to_string()]
        if self.audio_filters:
            args += ["-af", self.audio_filters.to_string()]
        return args

    def to_args(self) -> list[str]:
        """Argument vector for ``subprocess``, program name first."""
        if self.program == "ffprobe":
            return [self.program, *self.global_options, *self.output_options, *self.inputs]
        return [
            self.program,
            *self._overwrite_args(),
            *self.global_options,
            *self._input_args(),
            *self._filter_args(),
            *self.output_options,
            *self.outputs,
        ]

    def to_string(self) -> str:
        """Shell text that ``shlex.split`` turns back into ``to_args()``."""
        return shlex.join(self.to_args())


class CommandBuilder:
    """Fluent construction of an ``FFMPEGCommand``."""

    def __init__(self, program: str = "ffmpeg"):
        self._command = FFMPEGCommand(program=program)

    def input(self, path: Union[str, Path], options: Optional[list[str]] = None) -> "CommandBuilder":
        """Add an input; ``options`` go right before its ``-i``."""
        self._command.inputs.append(str(path))
        if options:
            self._command.input_options[len(self._command.inputs) - 1] = list(options)
        return self

    def output(self, path: Union[str, Path]) -> "CommandBuilder":
        self._command.outputs.append(str(path))
        return self

    def output_options(self, *options: str) -> "CommandBuilder":
        self._command.output_options.extend(options)
        return self

    def global_options(self, *options: str) -> "CommandBuilder":
        self._command.global_options.extend(options)
        return self

    def vf(self, *filters: Union[str, Filter]) -> "CommandBuilder":
        """Append video filters; strings are taken as ready-made filter text."""
        for f in filters:
            self._command.video_filters.add(Filter(f) if isinstance(f, str) else f)
        return self

    def af(self, *filters: Union[str, Filter]) -> "CommandBuilder":
        for f in filters:
            self._command.audio_filters.add(Filter(f) if isinstance(f, str) else f)
        return self

    def complex_filter(self, filter_graph: str) -> "CommandBuilder":
        self._command.complex_filter = filter_graph
        return self

    def overwrite(self, value: Optional[bool] = True) -> "CommandBuilder":
        self._command.overwrite = value
        return self

    def build(self) -> FFMPEGCommand:
        return self._command


def eq_filter(
    brightness: Optional[float] = None,
    contrast: Optional[float] = None,
    saturation: Optional[float] = None,
) -> Optional[Filter]:
    """eq filter for colour adjustments; None when nothing is set."""
    values = {"brightness": brightness, "contrast": contrast, "saturation": saturation}
    params: dict[str, FilterParam] = {k: f"{v:g}" for k, v in values.items() if v is not None}
    return Filter("eq", params) if params else None


def atempo_chain(factor: float) -> list[str]:
    """atempo filters for a speed factor; one atempo only spans 0.5-2.0."""
    filters = []
    remaining = factor
    while remaining > 2.0:
        filters.append("atempo=2.0")
        remaining /= 2
    while remaining < 0.5:
        filters.append("atempo=0.5")
        remaining *= 2
    filters.append(f"atempo={remaining:.6g}")
    return filters
