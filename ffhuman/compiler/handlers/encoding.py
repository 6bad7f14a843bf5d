"""Encoding handlers: container/format conversion, size-targeted compression and repairs."""

from __future__ import annotations

import os

from ...errors import CompilationError
from ...operations.model import Compress, Convert, Repair
from ...operations.presets import COLORSPACES, DEVICES, PLATFORMS
from ...operations.units import format_bytes
from ...core.video.formats import CODEC_ALIASES, audio_format_args, encode_args, stream_codecs
from ..handler_contract import CompileContext, InputSpec, Phase, make_result
from ..stage import MediaRole
from ._common import copy_or_reencode, reencode

# Below this the encoder produces unwatchable output; treat as infeasible.
MIN_TOTAL_BPS = 50_000
MIN_VIDEO_BPS = 50_000
AUDIO_SHARE = 0.08
AUDIO_MIN_BPS = 96_000
AUDIO_MAX_BPS = 160_000

HDR_TONEMAP = (
    "colorspace=bt709:iall=bt709:fast=1,zscale=t=linear:npl=100,format=gbrpf32le,"
    "zscale=p=bt709,tonemap=hable:desat=0,zscale=t=bt709:m=bt709:r=tv,format=yuv420p"
)

# ------------------------------------------------------------------ #
#   Convert                                                          #
# ------------------------------------------------------------------ #

def _c_container(op: Convert, ctx: CompileContext):
    if op.codec == "copy":
        return make_result(opts=["-c", "copy"], notes=["--codec copy -> streams copied untouched"])
    if op.quality is not None or op.codec is not None or ctx.modifiers:
        codec = CODEC_ALIASES[op.codec] if op.codec else None
        crf = op.quality.crf if op.quality else None
        vp9_crf = op.quality.vp9_crf if op.quality else None
        opts = encode_args(ctx.output, crf=crf, vp9_crf=vp9_crf, preset="medium", codec=codec)
        return make_result(opts=opts, notes=[f"re-encode for {op.target}: {' '.join(opts)}"])
    video, audio = stream_codecs(op.input, ctx.output)
    notes = []
    if video == "copy" and audio == "copy":
        notes.append(f"{op.target} can hold the source streams -> copied without re-encoding")
    else:
        notes.append(f"{op.target} cannot hold the source streams -> video {video}, audio {audio}")
    return make_result(opts=["-c:v", video, "-c:a", audio], notes=notes)

def _c_audio(op: Convert, ctx: CompileContext):
    if not ctx.has_audio(op.input):
        raise CompilationError(f"{os.path.basename(op.input)} has no audio stream to extract")
    opts = ["-vn"] + audio_format_args(op.target)
    return make_result(opts=opts, notes=[f"{op.target} -> {' '.join(opts[1:])}, video dropped"])

def _c_gif(op: Convert, ctx: CompileContext):
    ctx.require_video(op.input, op.verb)
    gif = op.gif
    palette = ctx.intermediate("palette", "png")
    head = ",".join(ctx.modifier_chain() + [f"fps={gif.fps},scale={gif.width}:-1:flags=lanczos"])
    palettegen = "palettegen=stats_mode=diff" if op.optimize else "palettegen"
    dither = "dither=bayer:bayer_scale=5" if op.optimize else "dither=bayer"

    first = make_result(
        vf=[f"{head},{palettegen}"],
        name="palette generation",
        output=palette,
        modifiable=False,
        notes=["pass 1 builds a 256-colour palette from the whole clip"],
    )
    opts = ["-loop", "0"] if op.loop else []
    second = make_result(
        fc=f"{head}[x];[x][1:v]paletteuse={dither}",
        opts=opts,
        name="palette render",
        inputs=[InputSpec(op.input), InputSpec(palette, MediaRole.INTERMEDIATE)],
        depends_on=[0],
        modifiable=False,
        notes=[f"pass 2 maps frames onto the palette with {dither.replace(':', ' ')}"]
        + (["--loop -> loops forever"] if op.loop else [])
        + (["--optimize -> palette from frame differences"] if op.optimize else []),
    )
    return [first, second]

def _c_device(op: Convert, ctx: CompileContext):
    ctx.require_video(op.input, op.verb)
    d = DEVICES[op.target]
    opts = ["-c:v", "libx264", "-crf", "23", "-preset", "medium",
            "-profile:v", d.profile, "-level", d.level, "-pix_fmt", "yuv420p"]
    if d.faststart:
        opts += ["-movflags", "+faststart"]
    opts += ["-c:a", "aac", "-b:a", "128k"]
    return make_result(
        vf=[f"scale='min({d.max_width},iw)':'min({d.max_height},ih)':force_original_aspect_ratio=decrease"],
        opts=opts, phase=Phase.SCALE,
    )

def _c_stream(op: Convert, ctx: CompileContext):
    crf = str(op.quality.crf if op.quality else 23)
    opts = ["-c:v", "libx264", "-crf", crf, "-preset", "medium", "-c:a", "aac", "-b:a", "128k"]
    folder = os.path.dirname(ctx.output)
    stem = os.path.splitext(os.path.basename(ctx.output))[0]
    if op.target == "hls":
        segments = os.path.join(folder, f"{stem}_%03d.ts")
        opts += ["-f", "hls", "-hls_time", "10", "-hls_list_size", "0",
                 "-hls_segment_filename", segments]
        note = f"hls -> 10s segments {os.path.basename(segments)}, full playlist"
    else:
        opts += ["-f", "dash", "-seg_duration", "10", "-use_timeline", "1", "-use_template", "1",
                 "-init_seg_name", f"{stem}_init_$RepresentationID$.m4s",
                 "-media_seg_name", f"{stem}_$RepresentationID$_$Number%05d$.m4s"]
        note = "dash -> 10s segments, templated manifest"
    return make_result(opts=opts, notes=[note])

def _c_platform(op: Convert, ctx: CompileContext):
    ctx.require_video(op.input, op.verb)
    p = PLATFORMS[op.target]
    w, h = p.width, p.height
    if p.fit == "crop":
        vf = f"scale={w}:{h}:force_original_aspect_ratio=increase,crop={w}:{h}"
    else:
        vf = f"scale={w}:{h}:force_original_aspect_ratio=decrease,pad={w}:{h}:(ow-iw)/2:(oh-ih)/2"
    opts = ["-c:v", "libx264"]
    if p.video_bitrate_k:
        opts += ["-b:v", f"{p.video_bitrate_k}k"]
    else:
        opts += ["-crf", str(p.crf)]
    opts += ["-preset", "medium", "-pix_fmt", "yuv420p", "-r", "30",
             "-c:a", "aac", "-b:a", "128k", "-movflags", "+faststart"]
    if p.max_duration:
        opts += ["-t", str(p.max_duration)]
    return make_result(vf=[vf], opts=opts, phase=Phase.SCALE)

def _c_colorspace(op: Convert, ctx: CompileContext):
    ctx.require_video(op.input, op.verb)
    space = COLORSPACES[op.target]
    crf = op.quality.crf if op.quality else 18
    return make_result(
        vf=[f"colorspace=all={space}:iall=bt709"],
        opts=encode_args(ctx.output, crf=crf, preset="medium"),
        phase=Phase.COLOR,
    )

def _c_hdr(op: Convert, ctx: CompileContext):
    ctx.require_video(op.input, op.verb)
    crf = op.quality.crf if op.quality else 18
    return make_result(vf=[HDR_TONEMAP], opts=encode_args(ctx.output, crf=crf, preset="medium"),
                       phase=Phase.COLOR)

def _c_proxy(op: Convert, ctx: CompileContext):
    ctx.require_video(op.input, op.verb)
    return make_result(
        vf=["scale=1280:720"],
        opts=["-c:v", "libx264", "-preset", "ultrafast", "-crf", "28", "-c:a", "aac", "-b:a", "128k"],
        phase=Phase.SCALE,
    )

def _c_preview(op: Convert, ctx: CompileContext):
    ctx.require_video(op.input, op.verb)
    return make_result(
        vf=["scale=640:-2"],
        opts=["-t", "10", "-c:v", "libx264", "-crf", "28", "-preset", "fast",
              "-c:a", "aac", "-b:a", "64k"],
        phase=Phase.SCALE,
    )

_CONVERT_DISPATCH = {
    "container": _c_container,
    "audio": _c_audio,
    "gif": _c_gif,
    "animated-gif": _c_gif,
    "device": _c_device,
    "stream": _c_stream,
    "platform": _c_platform,
    "colorspace": _c_colorspace,
    "hdr": _c_hdr,
    "proxy": _c_proxy,
    "preview": _c_preview,
}

def _c_convert(op: Convert, ctx: CompileContext):
    return _CONVERT_DISPATCH[op.kind](op, ctx)

# ------------------------------------------------------------------ #
#   Compress                                                         #
# ------------------------------------------------------------------ #

def bitrate_budget(total_bps: int, with_audio: bool = True) -> tuple[int, int]:
    """Split a total bitrate into (video, audio) bit/s.

    Audio takes 8% of the total, clamped to 96-160 kbit/s.
    """
    total = max(int(total_bps), MIN_TOTAL_BPS)
    audio = 0
    if with_audio:
        audio = int(min(max(total * AUDIO_SHARE, AUDIO_MIN_BPS), AUDIO_MAX_BPS))
    return total - audio, audio

def _c_compress(op: Compress, ctx: CompileContext):
    if op.quality is not None:
        return make_result(
            opts=["-c:v", "libx264", "-crf", str(op.quality.crf), "-preset", "medium",
                  "-c:a", "aac", "-b:a", "192k", "-movflags", "+faststart"],
        )

    with_audio = ctx.has_audio(op.input)
    if op.size_bytes is not None:
        duration = ctx.duration(op.input, "compressing to a file size")
        total = op.size_bytes * 8 / duration
        budget_note = f"{format_bytes(op.size_bytes)} over {duration:.1f}s -> {int(total) // 1000}k total"
    else:
        total = op.bitrate_bps
        budget_note = f"{int(total) // 1000}k total"
    video_bps, audio_bps = bitrate_budget(total, with_audio)
    if video_bps < MIN_VIDEO_BPS:
        raise CompilationError(
            f"target is too small: {budget_note} leaves {max(video_bps, 0) // 1000}k for video "
            f"(at least {MIN_VIDEO_BPS // 1000}k needed)"
        )
    v = video_bps // 1000
    a = audio_bps // 1000
    audio_opts = ["-c:a", "aac", "-b:a", f"{a}k"] if with_audio else ["-an"]
    notes = [f"budget: {budget_note}; video {v}k, audio {a}k"]

    if not op.two_pass:
        return make_result(
            opts=["-c:v", "libx264", "-b:v", f"{v}k", "-maxrate", f"{int(v * 1.1)}k",
                  "-bufsize", f"{v * 2}k"] + audio_opts + ["-movflags", "+faststart"],
            notes=notes + ["single pass with capped rate; size lands within about 10% of target"],
        )

    passlog = ctx.intermediate("passlog")
    first = make_result(
        opts=["-c:v", "libx264", "-b:v", f"{v}k", "-pass", "1", "-passlogfile", passlog,
              "-an", "-f", "mp4"],
        name="pass 1 analysis",
        output=os.devnull,
        output_role=MediaRole.NULL,
        scratch=[f"{passlog}-0.log", f"{passlog}-0.log.mbtree"],
        notes=["pass 1 measures complexity; its output is discarded"],
    )
    second = make_result(
        opts=["-c:v", "libx264", "-b:v", f"{v}k", "-pass", "2", "-passlogfile", passlog]
        + audio_opts + ["-movflags", "+faststart"],
        name="pass 2 encode",
        depends_on=[0],
        notes=notes + ["pass 2 spends the budget where pass 1 found detail"],
    )
    return [first, second]

# ------------------------------------------------------------------ #
#   Repair                                                           #
# ------------------------------------------------------------------ #

def _c_repair(op: Repair, ctx: CompileContext):
    if op.kind == "fix-rotation":
        ctx.require_video(op.input, op.verb)
        return make_result(
            opts=reencode(ctx, copy_audio=True) + ["-metadata:s:v:0", "rotate=0"],
            notes=["pixels re-encoded upright, rotation tag cleared"],
        )
    if op.kind == "fix-framerate":
        ctx.require_video(op.input, op.verb)
        fps = f"{op.fps:g}"
        return make_result(
            opts=["-vsync", "cfr", "-r", fps] + reencode(ctx, copy_audio=True),
            notes=[f"constant {fps}fps, frames duplicated or dropped to fit"],
        )
    codecs = copy_or_reencode(op.input, ctx.output)
    how = "streams copied" if codecs == ["-c", "copy"] else "re-encoded for the container"
    return make_result(
        io=["-err_detect", "ignore_err", "-fflags", "+genpts"],
        opts=codecs,
        notes=[f"decode errors ignored, timestamps regenerated, {how}"],
    )

HANDLERS = {
    Convert: _c_convert,
    Compress: _c_compress,
    Repair: _c_repair,
}
