"""Temporal handlers: trim, speed, retime, split."""

from __future__ import annotations

from ...errors import CompilationError
from ...operations.model import Retime, SpeedChange, Split, Trim
from ...operations.units import format_seconds
from ...core.executor.command_builder import atempo_chain
from ..handler_contract import CompileContext, InputSpec, make_result
from ..stage import MediaRole
from ._common import audio_codec_args, audio_edit_args, concat_list, copy_or_reencode, num, reencode


def _c_trim(op: Trim, ctx: CompileContext):
    start = format_seconds(op.start_ms)
    io = ["-ss", start] if op.start_ms else []
    length = op.length_ms
    opts = ["-t", format_seconds(length)] if length is not None else []
    span = f"{start}s" + (f" for {format_seconds(length)}s" if length is not None else " to the end")
    if op.audio_only:
        if not ctx.has_audio(op.input):
            raise CompilationError(f"{op.input} has no audio stream")
        return make_result(io=["-ss", start], opts=opts + ["-vn"] + audio_codec_args(ctx.output),
                           notes=[f"audio range from {span}"])
    return make_result(io=io, opts=opts + reencode(ctx),
                       notes=[f"seek to {span}; re-encoded so the cut is frame-accurate"])


def _c_speed(op: SpeedChange, ctx: CompileContext):
    if op.mode == "audio":
        return _speed_audio(op, ctx)

    if op.mode == "reverse":
        video, audio = "reverse", "areverse"
        note = "reverse buffers the whole clip in memory"
    else:
        video = f"setpts=PTS/{num(op.factor)}"
        audio = ",".join(atempo_chain(op.factor))
        note = f"{num(op.factor)}x -> {video}, {audio}"

    if ctx.is_audio_only(op.input):
        return make_result(af=[audio], opts=audio_codec_args(ctx.output), modifiable=False, notes=[note])

    if op.mode == "timelapse" or not ctx.has_audio(op.input):
        extra = ["timelapse drops the audio track"] if op.mode == "timelapse" else []
        return make_result(vf=[video], opts=reencode(ctx) + ["-an"], notes=[note] + extra)

    return make_result(
        fc=f"[0:v]{video}[v];[0:a]{audio}[a]",
        opts=["-map", "[v]", "-map", "[a]"] + reencode(ctx),
        notes=[note],
    )


def _speed_audio(op: SpeedChange, ctx: CompileContext):
    if op.keep_pitch:
        filters = atempo_chain(op.factor)
        note = f"{num(op.factor)}x tempo, pitch kept -> {','.join(filters)}"
    else:
        meta = ctx.metadata(op.input)
        audio = meta.primary_audio if meta is not None else None
        rate = audio.sample_rate if audio is not None and audio.sample_rate else 48000
        filters = [f"asetrate={rate}*{num(op.factor)}", f"aresample={rate}"]
        note = f"{num(op.factor)}x with pitch shifted (resampled at {rate} Hz)"
    # The video track keeps its own timing.
    return make_result(af=filters, opts=audio_edit_args(ctx, op.input), notes=[note])


def _c_retime(op: Retime, ctx: CompileContext):
    if op.mode == "loop":
        spec, artifact = concat_list(ctx, [op.input] * op.count)
        return make_result(
            inputs=[spec], artifacts=[artifact],
            opts=copy_or_reencode(op.input, ctx.output),
            notes=[f"concat list repeats the input {op.count} times"],
        )
    ctx.require_video(op.input, op.verb)
    if op.mode == "interpolate":
        return make_result(
            vf=[f"minterpolate=fps={num(op.fps)}:mi_mode=mci:mc_mode=aobmc:vsbmc=1"],
            opts=reencode(ctx),
            notes=["motion-compensated interpolation synthesises the new frames (slow)"],
        )
    return make_result(vf=[f"fps={num(op.fps)}"], opts=reencode(ctx),
                       notes=[f"frames dropped or duplicated to reach {num(op.fps)}fps"])


def _c_split(op: Split, ctx: CompileContext):
    if op.interval_ms is not None:
        return make_result(
            opts=["-c", "copy", "-map", "0", "-f", "segment",
                  "-segment_time", format_seconds(op.interval_ms), "-reset_timestamps", "1"],
            notes=["segment muxer cuts at the nearest keyframe after each interval"],
        )

    total = ctx.duration(op.input, "splitting into parts")
    part = total / op.parts
    results = []
    for i in range(op.parts):
        results.append(make_result(
            io=["-ss", f"{i * part:.3f}"],
            opts=["-t", f"{part:.3f}"] + reencode(ctx),
            name=f"part {i + 1} of {op.parts}",
            inputs=[InputSpec(op.input)],
            output=ctx.output % (i + 1),
            output_role=MediaRole.OUTPUT,
            notes=[f"{total:.1f}s / {op.parts} -> {part:.3f}s per part"],
        ))
    return results


HANDLERS = {
    Trim: _c_trim,
    SpeedChange: _c_speed,
    Retime: _c_retime,
    Split: _c_split,
}
