"""Visual handlers: colour, blur, stylistic effects and text overlays."""

from __future__ import annotations

import os

from ...errors import CompilationError
from ...operations.model import Effect, TextOverlay
from ...operations.presets import (
    COLOR_FILTER_PRESETS,
    COLOR_GRADES,
    FILM_ERAS,
    TEXT_POSITIONS,
    VISUALIZATIONS,
)
from ...core.executor.command_builder import eq_filter
from ...core.sanitize import escape_filter_path, sanitize_text_param
from ..handler_contract import CompileContext, Phase, make_result
from ..stage import MediaRole
from ._common import num, reencode

DENOISE = {
    "light": "hqdn3d=2:1.5:3:2.25",
    "medium": "hqdn3d=4:3:6:4.5",
    "heavy": "hqdn3d=8:6:12:9",
}

TIMECODE = (
    "drawtext=text='%{pts\\:hms}':fontsize=24:fontcolor=white:x=10:y=10"
    ":box=1:boxcolor=black@0.5"
)

# Farthest corner from the centre in normalised units, sqrt(0.5).
_MAX_DISTANCE = 0.707


def _filter(op, ctx):
    filters = []
    if op.preset:
        filters.append(COLOR_FILTER_PRESETS[op.preset].filters)
    eq = eq_filter(op.brightness, op.contrast, op.saturation)
    if eq is not None:
        filters.append(eq.to_string())
    return make_result(vf=filters, phase=Phase.COLOR)


def _grayscale(op, ctx):
    return make_result(vf=["format=gray"], phase=Phase.COLOR)


def _blur(op, ctx):
    if op.region is None:
        return make_result(vf=["boxblur=10:10"])
    x, y, w, h = op.region
    return make_result(
        fc=(f"[0:v]boxblur=10:10[blurred];[blurred]crop={w}:{h}:{x}:{y}[blurred_crop];"
            f"[0:v][blurred_crop]overlay={x}:{y}[v]"),
        opts=["-map", "[v]", "-map", "0:a?"],
        notes=[f"blur only the {w}x{h} box at {x},{y}"],
    )


def _vignette(op, ctx):
    intensity = 0.5 if op.intensity is None else op.intensity
    size = 0.7 if op.size is None else op.size
    edge = 1.0 - intensity
    falloff = max(1.0 - size, 0.001)
    expr = (
        f"geq=lum='p(X,Y)*max({num(edge)},1-max(0,(sqrt(pow(X/W-0.5,2)+pow(Y/H-0.5,2))"
        f"/{_MAX_DISTANCE}-{num(size)})/{num(falloff)})*{num(intensity)})':cb='p(X,Y)':cr='p(X,Y)'"
    )
    return make_result(vf=[expr], notes=[f"edges darken to {num(edge * 100)}% beyond {num(size * 100)}% of the radius"])


def _glitch(op, ctx):
    shift, noise = 3, 30
    return make_result(
        vf=[f"format=rgb24,geq=r='r(X+{shift},Y)':g='g(X,Y)':b='b(X-{shift},Y)',"
            f"noise=alls={noise}:allf=t+u,format=yuv420p"],
        notes=[f"red/blue split by {shift}px, temporal noise {noise}"],
    )


def _vintage_film(op, ctx):
    return make_result(vf=[FILM_ERAS[op.preset].filters])


def _color_grade(op, ctx):
    return make_result(vf=[COLOR_GRADES[op.preset].filters], phase=Phase.COLOR)


def _denoise(op, ctx):
    return make_result(vf=[DENOISE[op.strength]],
                       opts=reencode(ctx, crf=23, preset="medium", copy_audio=True),
                       notes=[f"{op.strength} -> {DENOISE[op.strength]}"])


def _stabilize(op, ctx):
    transforms = ctx.intermediate("transforms", "trf")
    escaped = escape_filter_path(transforms)
    first = make_result(
        vf=[f"vidstabdetect=shakiness=5:accuracy=15:result={escaped}"],
        opts=["-f", "null"],
        name="motion analysis",
        output=os.devnull,
        output_role=MediaRole.NULL,
        notes=["pass 1 measures camera motion into a transforms file"],
    )
    second = make_result(
        vf=[f"vidstabtransform=input={escaped}:smoothing=30,unsharp=5:5:0.8:3:3:0.4"],
        opts=reencode(ctx, copy_audio=True),
        name="stabilize",
        depends_on=[0],
        notes=["pass 2 smooths the measured path over 30 frames and sharpens"],
    )
    return [first, second]


def _motion_blur(op, ctx):
    return make_result(vf=["tmix=frames=3:weights=1 1 1"], notes=["average each frame with its two neighbours"])


def _lens_correct(op, ctx):
    return make_result(vf=["lenscorrection=k1=-0.1:k2=-0.05"], phase=Phase.CROP)


def _add_timecode(op, ctx):
    return make_result(vf=[TIMECODE], phase=Phase.TEXT, opts=reencode(ctx, copy_audio=True))


def _remove_background(op, ctx):
    similarity = 0.3 if op.similarity is None else op.similarity
    return make_result(
        vf=[f"chromakey=color={op.color}:similarity={num(similarity)}:blend=0.1"],
        opts=["-c:v", "libvpx-vp9", "-pix_fmt", "yuva420p", "-b:v", "0", "-crf", "30",
              "-c:a", "libopus"],
        notes=[f"key out {op.color} within similarity {num(similarity)}; alpha kept in VP9/webm"],
    )


def _visualize(op, ctx):
    if not ctx.has_audio(op.input):
        raise CompilationError(f"{os.path.basename(op.input)} has no audio to visualize")
    return make_result(
        fc=f"[0:a]{VISUALIZATIONS[op.preset]}[v]",
        opts=["-map", "[v]", "-map", "0:a", "-c:v", "libx264", "-pix_fmt", "yuv420p", "-r", "30",
              "-c:a", "aac", "-shortest"],
        notes=[f"{op.preset} rendered at 1280x720, 30fps"],
    )


_EFFECT_DISPATCH = {
    "filter": _filter,
    "grayscale": _grayscale,
    "blur": _blur,
    "vignette": _vignette,
    "glitch": _glitch,
    "vintage-film": _vintage_film,
    "color-grade": _color_grade,
    "denoise": _denoise,
    "stabilize": _stabilize,
    "motion-blur": _motion_blur,
    "lens-correct": _lens_correct,
    "add-timecode": _add_timecode,
    "remove-background": _remove_background,
    "visualize": _visualize,
}


def _c_effect(op: Effect, ctx: CompileContext):
    if op.effect != "visualize":
        ctx.require_video(op.input, op.verb)
    results = _EFFECT_DISPATCH[op.effect](op, ctx)
    for result in results if isinstance(results, list) else [results]:
        if not result.output_options:
            result.output_options = reencode(ctx)
    return results


# ------------------------------------------------------------------ #
#   Text                                                             #
# ------------------------------------------------------------------ #

def _c_text(op: TextOverlay, ctx: CompileContext):
    ctx.require_video(op.input, op.verb)
    x, y = TEXT_POSITIONS[op.position]
    text = sanitize_text_param(op.text.strip()) if op.text.strip() else ""
    if op.timestamp:
        text = (text + " " if text else "") + "%{pts\\:hms}"

    params = [f"text='{text}'", f"fontsize={op.font_size}", f"fontcolor={op.color}",
              "borderw=2", "bordercolor=black"]
    notes = [f"{op.position} -> x={x}, y={y}"]
    if op.animate == "fade-in":
        params.append("alpha='min(t,1)'")
        notes.append("fade-in over the first second")
    if op.animate == "slide-in":
        x = f"'min({x},-text_w+({x}+text_w)*t)'"
        notes.append("slides in from the left over the first second")
    params += [f"x={x}", f"y={y}"]
    return make_result(vf=["drawtext=" + ":".join(params)], opts=reencode(ctx, copy_audio=True),
                       phase=Phase.TEXT, notes=notes)


HANDLERS = {
    Effect: _c_effect,
    TextOverlay: _c_text,
}
