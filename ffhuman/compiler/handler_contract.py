"""Formal contract for compiler handler functions.

Defines ``HandlerResult`` (what a ``_c_*`` handler returns, one per stage)
and ``CompileContext`` (what every handler receives next to its
operation).  A handler returns a single ``HandlerResult`` for one-stage
recipes or a list for multi-stage ones; ``depends_on`` indexes into that
list.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any, Callable, Optional

from ..errors import CompilationError
from ..operations.model import Modifiers, is_audio_path, is_image_path
from ..operations.presets import COLOR_FILTER_PRESETS, COLOR_GRADES, TEXT_POSITIONS
from ..core.executor.command_builder import eq_filter
from ..core.sanitize import sanitize_text_param
from .stage import MediaRole, TextArtifact

logger = logging.getLogger("ffhuman")


class Phase(IntEnum):
    """Order of video filters within one chain (stable sort)."""
    CROP = 10
    ROTATE = 20
    FLIP = 30
    SCALE = 40
    COLOR = 50
    EFFECT = 60
    TEXT = 70
    FORMAT = 80


@dataclass(slots=True)
class InputSpec:
    """One ``-i`` entry: the file, its role and options placed before it."""
    path: str
    role: MediaRole = MediaRole.PRIMARY
    options: list[str] = field(default_factory=list)


@dataclass(slots=True)
class HandlerResult:
    """Structured return value from any ``_c_*`` handler function.

    Fields
    ------
    video_filters : list[str]
        Video filter expressions for ``-vf``, all in ``phase``.
    audio_filters : list[str]
        Audio filter expressions for ``-af``.
    output_options : list[str]
        Raw output CLI flags (e.g. ``["-c:v", "libx264"]``).
    filter_complex : str
        Full ``-filter_complex`` graph string, or ``""`` if not needed.
    input_options : list[str]
        Raw input CLI flags placed before the first ``-i``.
    inputs : list[InputSpec] | None
        Explicit inputs; None means the operation's own inputs.
    output : str | None
        Where the stage writes; None means the plan's final output.
    depends_on : list[int]
        Indexes of earlier results this stage waits for.
    modifiable : bool
        Whether the cross-cutting ``--flag`` filters land on this stage.
    """

    video_filters: list[str] = field(default_factory=list)
    audio_filters: list[str] = field(default_factory=list)
    output_options: list[str] = field(default_factory=list)
    filter_complex: str = ""
    input_options: list[str] = field(default_factory=list)

    name: str = ""
    inputs: Optional[list[InputSpec]] = None
    output: Optional[str] = None
    output_role: MediaRole = MediaRole.INTERMEDIATE
    depends_on: list[int] = field(default_factory=list)
    program: str = "ffmpeg"
    global_options: list[str] = field(default_factory=list)
    capture: Optional[str] = None
    artifacts: list[TextArtifact] = field(default_factory=list)
    scratch: list[str] = field(default_factory=list)
    notes: list[str] = field(default_factory=list)
    phase: int = Phase.EFFECT
    modifiable: bool = True


def make_result(
    vf: list[str] | None = None,
    af: list[str] | None = None,
    opts: list[str] | None = None,
    fc: str = "",
    io: list[str] | None = None,
    **stage: Any,
) -> HandlerResult:
    """Convenience constructor; keyword extras set the stage fields.

    Usage::

        return make_result(vf=["scale=1280:720"], phase=Phase.SCALE)
        return make_result(af=["loudnorm"], opts=["-c:v", "copy"])
        return make_result(fc="[0:v][1:v]xfade=...[v]", name="crossfade")
    """
    return HandlerResult(
        video_filters=vf or [],
        audio_filters=af or [],
        output_options=opts or [],
        filter_complex=fc,
        input_options=io or [],
        **stage,
    )


# ------------------------------------------------------------------ #
#   Context                                                          #
# ------------------------------------------------------------------ #

@dataclass
class CompileContext:
    """Everything a handler may consult besides its operation.

    ``probe`` returns a ``VideoMetadata`` for a path, or None when no
    prober is available (dry runs without ffprobe, tests).
    """
    output: str
    namer: Callable[[str, Optional[str]], str]
    probe: Optional[Callable[[str], Any]] = None
    overwrite: bool = False
    modifiers: Modifiers = field(default_factory=Modifiers)

    def intermediate(self, role: str, ext: Optional[str] = None) -> str:
        """Plan-owned scratch path for ``role`` (e.g. ``palette``, ``passlog``)."""
        return self.namer(role, ext)

    def metadata(self, path: str) -> Any:
        if self.probe is None:
            return None
        return self.probe(path)

    def duration(self, path: str, why: str) -> float:
        """Probed duration in seconds; duration-dependent recipes cannot guess it."""
        meta = self.metadata(path)
        if meta is None or not meta.duration or meta.duration <= 0:
            raise CompilationError(
                f"{why} needs the duration of {os.path.basename(path)}, "
                "but it could not be probed (is ffprobe installed?)"
            )
        return float(meta.duration)

    def has_audio(self, path: str) -> bool:
        """True unless probing shows no audio stream."""
        meta = self.metadata(path)
        return True if meta is None else bool(meta.has_audio)

    def is_audio_only(self, path: str) -> bool:
        if is_audio_path(path):
            return True
        if is_image_path(path):
            return False
        meta = self.metadata(path)
        return meta is not None and not meta.has_video

    def require_video(self, path: str, verb: str) -> None:
        if self.is_audio_only(path):
            raise CompilationError(
                f"'{verb}' needs a video stream, but {os.path.basename(path)} is audio-only"
            )

    # -------------------------------------------------------------- #
    #   Cross-cutting --flag filters                                 #
    # -------------------------------------------------------------- #

    def _modifier_entries(self) -> list[tuple[int, str, str]]:
        m = self.modifiers
        out: list[tuple[int, str, str]] = []
        if m.crop is not None:
            w, h = m.crop
            out.append((Phase.CROP, f"crop={w}:{h}:(iw-{w})/2:(ih-{h})/2", "--crop"))
        if m.rotate is not None:
            out.append((Phase.ROTATE, rotate_filter(m.rotate), "--rotate"))
        if m.flip is not None:
            out.append((Phase.FLIP, "hflip" if m.flip == "horizontal" else "vflip", "--flip"))
        if m.resize is not None:
            w, h = m.resize
            out.append((Phase.SCALE, f"scale={w}:{h}", "--resize"))
        eq = eq_filter(m.brightness, m.contrast, m.saturation)
        if eq is not None:
            names = [n for n in ("brightness", "contrast", "saturation") if getattr(m, n) is not None]
            out.append((Phase.COLOR, eq.to_string(), "/".join("--" + n for n in names)))
        if m.color is not None:
            preset = COLOR_FILTER_PRESETS.get(m.color) or COLOR_GRADES[m.color]
            out.append((Phase.EFFECT, preset.filters, "--color"))
        if m.text is not None:
            out.append((Phase.TEXT, drawtext(m.text, "bottom"), "--text"))
        if m.fps is not None:
            out.append((Phase.FORMAT, f"fps={m.fps:g}", "--fps"))
        return out

    def modifier_filters(self) -> list[tuple[int, str]]:
        """(phase, filter) pairs for the --resize/--crop/... flags."""
        return [(phase, f) for phase, f, _ in self._modifier_entries()]

    def modifier_chain(self) -> list[str]:
        return [f for _, f in sorted(self.modifier_filters(), key=lambda pf: pf[0])]

    def modifier_notes(self) -> list[str]:
        return [f"{label} -> {f}" for _, f, label in self._modifier_entries()]


def rotate_filter(degrees: int) -> str:
    return {90: "transpose=1", 180: "transpose=1,transpose=1", 270: "transpose=2"}[degrees]


def drawtext(text: str, position: str, size: int = 48, color: str = "0xFFFFFF") -> str:
    x, y = TEXT_POSITIONS[position]
    return (f"drawtext=text='{sanitize_text_param(text)}':fontsize={size}"
            f":fontcolor={color}:x={x}:y={y}")
