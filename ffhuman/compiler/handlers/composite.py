"""Composition handlers: overlays, grids, joins and multi-source audio.

Every video graph names one pad per input and ends in ``[v]``; the
output maps ``[v]`` plus the base input's audio when it has any.
"""

from __future__ import annotations

import math
import os

from ...errors import CompilationError
from ...operations.model import Composite
from ...operations.presets import TRANSITIONS
from ...operations.units import format_seconds
from ...core.sanitize import SUBTITLE_EXTENSIONS, escape_filter_path
from ..handler_contract import CompileContext, InputSpec, Phase, make_result
from ..stage import MediaRole
from ._common import (
    audio_codec_args,
    concat_list,
    copy_or_reencode,
    num,
    overlay_position,
    reencode,
    source_inputs,
)

CELL_W, CELL_H = 320, 240
SLIDE_W, SLIDE_H = 1280, 720

_MAP_VIDEO = ["-map", "[v]", "-map", "0:a?"]
_H264 = ["-c:v", "libx264", "-pix_fmt", "yuv420p", "-c:a", "aac"]


def _alpha(label_in: str, opacity, label_out: str) -> str:
    return f"[{label_in}]format=rgba,colorchannelmixer=aa={num(opacity)}[{label_out}]"


def _watermark(op, ctx):
    pos = overlay_position(op.position)
    opacity = 1.0 if op.opacity is None else op.opacity
    if op.size is not None:
        graph = f"[1:v][0:v]scale2ref=w=iw*{num(op.size)}:h=ow/mdar[logo_scaled][ref];"
        base, logo = "ref", "logo_scaled"
    else:
        graph, base, logo = "", "0:v", "1:v"
    if opacity < 1.0:
        graph += _alpha(logo, opacity, "logo") + ";"
        logo = "logo"
    graph += f"[{base}][{logo}]overlay={pos}[v]"
    notes = [f"{op.position} -> overlay={pos}"]
    if op.size is not None:
        notes.append(f"logo scaled to {num(op.size * 100)}% of the video width")
    if opacity < 1.0:
        notes.append(f"logo opacity {num(opacity)}")
    return make_result(fc=graph, opts=_MAP_VIDEO + ["-c:v", "libx264", "-c:a", "aac"], notes=notes)


def _pip(op, ctx):
    pos = overlay_position(op.position)
    size = 0.3 if op.size is None else op.size
    return make_result(
        fc=f"[1:v]scale=iw*{num(size)}:-1[overlay_scaled];[0:v][overlay_scaled]overlay={pos}[v]",
        opts=_MAP_VIDEO + _H264,
        notes=[f"inset at {num(size * 100)}% of its own size, {op.position}"],
    )


def _overlay(op, ctx):
    pos = overlay_position(op.position)
    if op.opacity is not None and op.opacity < 1.0:
        graph = _alpha("1:v", op.opacity, "overlay_alpha") + f";[0:v][overlay_alpha]overlay={pos}[v]"
    else:
        graph = f"[0:v][1:v]overlay={pos}[v]"
    return make_result(fc=graph, opts=_MAP_VIDEO + _H264)


def _split_screen(op, ctx):
    if op.orientation == "horizontal":
        w, h, stack = SLIDE_W // 2, SLIDE_H, "hstack"
    else:
        w, h, stack = SLIDE_W, SLIDE_H // 2, "vstack"
    cell = f"scale={w}:{h}:force_original_aspect_ratio=increase,crop={w}:{h},setsar=1"
    return make_result(
        fc=f"[0:v]{cell}[v0];[1:v]{cell}[v1];[v0][v1]{stack}=inputs=2[v]",
        opts=_MAP_VIDEO + _H264,
        notes=[f"{op.orientation} halves of {w}x{h} each"],
    )


def _compare(op, ctx):
    return make_result(
        fc="[0:v]scale=-2:720,setsar=1[left];[1:v]scale=-2:720,setsar=1[right];[left][right]hstack=inputs=2[v]",
        opts=_MAP_VIDEO + _H264,
        notes=["both sides scaled to 720 lines, left is the first input"],
    )


def _grid_cells(count: int) -> list[str]:
    cell = (f"scale={CELL_W}:{CELL_H}:force_original_aspect_ratio=decrease,"
            f"pad={CELL_W}:{CELL_H}:(ow-iw)/2:(oh-ih)/2,setsar=1")
    return [f"[{i}:v]{cell}[c{i}]" for i in range(count)]


def _stack_rows(labels: list[str], cols: int) -> tuple[list[str], str]:
    """hstack rows of ``cols`` labels, then vstack them; returns (parts, final label)."""
    parts, rows = [], []
    for r in range(0, len(labels), cols):
        row = labels[r:r + cols]
        if len(row) == 1:
            rows.append(row[0])
            continue
        name = f"r{r // cols}"
        parts.append("".join(f"[{x}]" for x in row) + f"hstack=inputs={len(row)}[{name}]")
        rows.append(name)
    if len(rows) == 1:
        return parts, rows[0]
    parts.append("".join(f"[{x}]" for x in rows) + f"vstack=inputs={len(rows)}[grid]")
    return parts, "grid"


def _montage(op, ctx):
    cols, rows = op.layout.width, op.layout.height
    n = len(op.sources)
    parts, final = _stack_rows([f"c{i}" for i in range(n)], cols)
    graph = ";".join(_grid_cells(n) + parts + [f"[{final}]scale={cols * CELL_W}:-2[v]"])
    return make_result(
        fc=graph, opts=_MAP_VIDEO + _H264,
        notes=[f"{cols}x{rows} grid of {CELL_W}x{CELL_H} cells"],
    )


def _collage(op, ctx):
    cols = op.layout.width
    n = len(op.sources)
    positions = [f"{(i % cols) * CELL_W}_{(i // cols) * CELL_H}" for i in range(n)]
    labels = "".join(f"[c{i}]" for i in range(n))
    graph = ";".join(_grid_cells(n) + [f"{labels}xstack=inputs={n}:layout={'|'.join(positions)}:fill=black[v]"])
    return make_result(
        fc=graph, opts=_MAP_VIDEO + _H264,
        notes=[f"{n} tiles on a {op.layout} grid, empty cells black"],
    )


def _sync_cameras(op, ctx):
    n = len(op.sources)
    cols = math.ceil(math.sqrt(n))
    if n % cols:
        # ragged last row: xstack keeps every cell on the grid
        positions = [f"{(i % cols) * CELL_W}_{(i // cols) * CELL_H}" for i in range(n)]
        labels = "".join(f"[c{i}]" for i in range(n))
        parts, final = [f"{labels}xstack=inputs={n}:layout={'|'.join(positions)}:fill=black[grid]"], "grid"
    else:
        parts, final = _stack_rows([f"c{i}" for i in range(n)], cols)
    graph = ";".join(_grid_cells(n) + parts + [f"[{final}]null[v]"])
    return make_result(
        fc=graph, opts=_MAP_VIDEO + _H264,
        notes=[f"{n} angles on a {cols}-column grid, audio from the first",
               "inputs start together; no audio alignment"],
    )


def _xfade(op, ctx, transition: str, duration_ms: int):
    first, second = op.sources
    d0 = ctx.duration(first, f"'{op.verb}'")
    ctx.duration(second, f"'{op.verb}'")
    length = duration_ms / 1000
    if length >= d0:
        raise CompilationError(
            f"transition of {format_seconds(duration_ms)}s does not fit in the {d0:.1f}s first clip"
        )
    offset = d0 - length

    graph = []
    right = "1:v"
    a, b = ctx.metadata(first), ctx.metadata(second)
    if a.resolution and b.resolution and a.resolution != b.resolution:
        w, h = a.resolution
        graph.append(f"[1:v]scale={w}:{h},setsar=1[second]")
        right = "second"
    graph.append(f"[0:v][{right}]xfade=transition={transition}:duration={num(length)}:offset={offset:.3f}[v]")
    opts = ["-map", "[v]"]
    if a.has_audio and b.has_audio:
        graph.append(f"[0:a][1:a]acrossfade=d={num(length)}[a]")
        opts += ["-map", "[a]"]
    else:
        opts += ["-map", "0:a?"]
    return make_result(
        fc=";".join(graph), opts=opts + _H264,
        notes=[f"{transition} over {num(length)}s starting at {offset:.3f}s"],
    )


def _crossfade(op, ctx):
    return _xfade(op, ctx, TRANSITIONS.get(op.transition, "fade"), op.duration_ms or 1000)


def _transition(op, ctx):
    return _xfade(op, ctx, TRANSITIONS[op.transition], op.duration_ms or 1000)


def _join(op, ctx):
    spec, artifact = concat_list(ctx, op.sources)
    if op.kind == "merge":
        opts = copy_or_reencode(op.sources[0], ctx.output)
        note = "concat demuxer; streams copied when every file shares codecs"
    else:
        opts = ["-c", "copy"]
        note = "concat demuxer with stream copy; inputs must share codecs"
    return make_result(inputs=[spec], artifacts=[artifact], opts=opts, notes=[note])


def _add_audio(op, ctx):
    return make_result(opts=["-map", "0:v:0", "-map", "1:a:0", "-c:v", "copy", "-c:a", "aac", "-shortest"],
                       notes=["video from the first input, audio from the second, cut to the shorter"])


def _mix_audio(op, ctx):
    n = len(op.sources)
    pads = "".join(f"[{i}:a]" for i in range(n))
    graph = f"{pads}amix=inputs={n}:duration=longest[a]"
    if ctx.is_audio_only(op.sources[0]):
        opts = ["-map", "[a]"] + audio_codec_args(ctx.output)
    else:
        opts = ["-map", "0:v?", "-map", "[a]", "-c:v", "copy"] + audio_codec_args(ctx.output)
    return make_result(fc=graph, opts=opts, notes=[f"{n} tracks mixed, as long as the longest"])


def _burn_subtitle(op, ctx):
    video, subtitle = op.sources
    ext = os.path.splitext(subtitle)[1].lower()
    if ext not in SUBTITLE_EXTENSIONS:
        raise CompilationError(f"{os.path.basename(subtitle)} is not a subtitle file")
    name = "ass" if ext == ".ass" else "subtitles"
    return make_result(
        vf=[f"{name}={escape_filter_path(os.path.abspath(subtitle))}"],
        opts=reencode(ctx, copy_audio=True),
        inputs=[InputSpec(video)],
        phase=Phase.TEXT,
    )


def _slideshow(op, ctx):
    seconds = format_seconds(op.duration_ms or 3000)
    inputs = [InputSpec(path, MediaRole.PRIMARY if i == 0 else MediaRole.SECONDARY,
                        ["-loop", "1", "-t", seconds])
              for i, path in enumerate(op.sources)]
    fit = (f"scale={SLIDE_W}:{SLIDE_H}:force_original_aspect_ratio=decrease,"
           f"pad={SLIDE_W}:{SLIDE_H}:(ow-iw)/2:(oh-ih)/2,setsar=1")
    n = len(op.sources)
    parts = [f"[{i}:v]{fit}[v{i}]" for i in range(n)]
    parts.append("".join(f"[v{i}]" for i in range(n)) + f"concat=n={n}:v=1:a=0[v]")
    return make_result(
        fc=";".join(parts), inputs=inputs,
        opts=["-map", "[v]", "-c:v", "libx264", "-pix_fmt", "yuv420p", "-r", "30"],
        notes=[f"{n} images, {seconds}s each, letterboxed to {SLIDE_W}x{SLIDE_H}"],
    )


_COMPOSITE_DISPATCH = {
    "watermark": _watermark,
    "pip": _pip,
    "overlay": _overlay,
    "split-screen": _split_screen,
    "compare": _compare,
    "montage": _montage,
    "collage": _collage,
    "crossfade": _crossfade,
    "transition": _transition,
    "merge": _join,
    "concat": _join,
    "add-audio": _add_audio,
    "mix-audio": _mix_audio,
    "burn-subtitle": _burn_subtitle,
    "slideshow": _slideshow,
    "sync-cameras": _sync_cameras,
}

_VIDEO_KINDS = ("watermark", "pip", "overlay", "split-screen", "compare", "montage",
                "collage", "crossfade", "transition", "burn-subtitle", "sync-cameras")


def _c_composite(op: Composite, ctx: CompileContext):
    if op.kind in _VIDEO_KINDS:
        sources = op.sources[:1] if op.kind == "burn-subtitle" else op.sources
        for path in sources:
            ctx.require_video(path, op.verb)
    if op.kind in ("add-audio", "mix-audio"):
        audio_sources = op.sources[1:] if op.kind == "add-audio" else op.sources
        for path in audio_sources:
            if not ctx.has_audio(path):
                raise CompilationError(f"{os.path.basename(path)} has no audio stream")
    result = _COMPOSITE_DISPATCH[op.kind](op, ctx)
    if result.inputs is None:
        result.inputs = source_inputs(op.sources)
    return result


HANDLERS = {
    Composite: _c_composite,
}
