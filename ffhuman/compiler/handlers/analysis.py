"""Frame extraction, analysis passes, metadata and generated sources."""

from __future__ import annotations

from ...errors import CompilationError
from ...operations.model import Detect, FrameExtract, Generate, MetadataOp
from ...operations.units import format_seconds
from ..handler_contract import CompileContext, InputSpec, Phase, make_result
from ._common import num

CELL_W, CELL_H = 320, 240


# ------------------------------------------------------------------ #
#   Frames                                                           #
# ------------------------------------------------------------------ #

def _thumbnail(op, ctx):
    at = format_seconds(op.time_ms)
    return make_result(io=["-ss", at], opts=["-frames:v", "1", "-q:v", "2"],
                       notes=[f"single frame at {at}s"])


def _thumbnails(op, ctx):
    cols, rows = op.layout.width, op.layout.height
    duration = ctx.duration(op.input, "a thumbnail sheet")
    meta = ctx.metadata(op.input)
    fps = meta.frame_rate or 25.0
    step = max(1, int(duration * fps / (cols * rows)))
    return make_result(
        vf=[f"select='not(mod(n\\,{step}))',scale={CELL_W}:-1,tile={cols}x{rows}"],
        opts=["-frames:v", "1", "-vsync", "vfr", "-q:v", "2"],
        phase=Phase.FORMAT, modifiable=False,
        notes=[f"every {step}th frame, {cols}x{rows} sheet"],
    )


def _tile(op, ctx):
    cols, rows = op.layout.width, op.layout.height
    count = cols * rows
    duration = ctx.duration(op.input, "a tile grid")
    cell = (f"scale={CELL_W}:{CELL_H}:force_original_aspect_ratio=decrease,"
            f"pad={CELL_W}:{CELL_H}:(ow-iw)/2:(oh-ih)/2")
    return make_result(
        vf=[f"fps={count}/{duration:.3f},{cell},tile={cols}x{rows}"],
        opts=["-frames:v", "1", "-q:v", "2"],
        phase=Phase.FORMAT, modifiable=False,
        notes=[f"{count} frames spread evenly over {duration:.1f}s in {CELL_W}x{CELL_H} cells"],
    )


def _frames(op, ctx):
    every = format_seconds(op.interval_ms)
    return make_result(vf=[f"fps=1/{every}"], phase=Phase.FORMAT,
                       notes=[f"one frame every {every}s"])


def _keyframes(op, ctx):
    return make_result(vf=["select='eq(pict_type,I)'"], opts=["-vsync", "vfr"], modifiable=False,
                       notes=["I-frames only"])


_FRAME_DISPATCH = {
    "thumbnail": _thumbnail,
    "thumbnails": _thumbnails,
    "tile": _tile,
    "frames": _frames,
    "keyframes": _keyframes,
}


def _c_frames(op: FrameExtract, ctx: CompileContext):
    ctx.require_video(op.input, op.verb)
    return _FRAME_DISPATCH[op.mode](op, ctx)


# ------------------------------------------------------------------ #
#   Detection                                                        #
# ------------------------------------------------------------------ #

def _threshold(op, default: float) -> str:
    return num(default if op.threshold is None else op.threshold)


def _c_detect(op: Detect, ctx: CompileContext):
    video = {
        "scenes": f"select='gt(scene,{_threshold(op, 0.3)})',showinfo",
        "black": f"blackdetect=d=0.1:pix_th={_threshold(op, 0.1)}",
        "duplicates": "select='not(gt(scene,0.0001))',showinfo",
    }
    audio = {
        "silence": f"silencedetect=noise={_threshold(op, -30)}dB:duration=0.5",
        "loudness": "loudnorm=I=-16:TP=-1.5:LRA=11:print_format=json",
    }
    name = f"{op.kind} analysis"
    if op.kind in video:
        ctx.require_video(op.input, op.verb)
        return make_result(vf=[video[op.kind]], opts=["-an", "-f", "null"], capture="stderr",
                           name=name, modifiable=False,
                           notes=[f"report is the {video[op.kind].split('=')[0]} log on stderr"])
    if not ctx.has_audio(op.input):
        raise CompilationError(f"'{op.verb}' needs an audio stream")
    return make_result(af=[audio[op.kind]], opts=["-vn", "-f", "null"], capture="stderr",
                       name=name, modifiable=False,
                       notes=[f"report is the {audio[op.kind].split('=')[0]} log on stderr"])


# ------------------------------------------------------------------ #
#   Metadata                                                         #
# ------------------------------------------------------------------ #

STATS_ENTRIES = [
    "-show_entries", "stream=codec_name,codec_type,width,height,bit_rate,r_frame_rate,duration,nb_frames",
    "-show_entries", "format=size,duration,bit_rate",
]


def _c_metadata(op: MetadataOp, ctx: CompileContext):
    if op.action == "extract":
        return make_result(
            opts=["-v", "quiet", "-print_format", op.format, "-show_format", "-show_streams"],
            program="ffprobe", capture="stdout", name="probe", modifiable=False,
        )
    if op.action == "stats":
        return make_result(
            opts=["-v", "error"] + STATS_ENTRIES + ["-of", "json"],
            program="ffprobe", capture="stdout", name="stats", modifiable=False,
        )
    if op.action == "edl":
        ctx.require_video(op.input, op.verb)
        return make_result(
            opts=["-v", "error", "-select_streams", "v:0", "-skip_frame", "nokey",
                  "-show_entries", "frame=pts_time", "-of", "csv=p=0"],
            program="ffprobe", capture="stdout", name="keyframe list", modifiable=False,
            notes=["one keyframe time per line, usable as cut points"],
        )
    if op.action == "validate":
        return make_result(
            opts=["-v", "error", "-f", "null"], capture="stderr", name="decode check", modifiable=False,
            notes=["every frame decoded; an empty report means no errors"],
        )
    return make_result(
        opts=["-map", "0", "-c", "copy", "-metadata", f"{op.key}={op.value}"],
        notes=[f"container tag {op.key} set; streams copied"],
    )


# ------------------------------------------------------------------ #
#   Generated sources                                                #
# ------------------------------------------------------------------ #

def _c_generate(op: Generate, ctx: CompileContext):
    seconds = format_seconds(op.duration_ms)
    source = f"testsrc=duration={seconds}:size={op.resolution}:rate={op.rate}"
    return make_result(
        inputs=[InputSpec(source, options=["-f", "lavfi"])],
        opts=["-t", seconds, "-c:v", "libx264", "-pix_fmt", "yuv420p"],
        notes=[f"lavfi test source {op.resolution} at {op.rate}fps for {seconds}s"],
    )


HANDLERS = {
    FrameExtract: _c_frames,
    Detect: _c_detect,
    MetadataOp: _c_metadata,
    Generate: _c_generate,
}
