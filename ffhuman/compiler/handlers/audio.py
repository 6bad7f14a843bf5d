"""Audio handlers: every ``AudioAdjust`` action."""

from __future__ import annotations

import os

from ...errors import CompilationError
from ...operations.model import AudioAdjust
from ...operations.units import db_to_linear, format_seconds
from ...core.video.formats import stream_codecs
from ..handler_contract import CompileContext, InputSpec, make_result
from ..stage import MediaRole
from ._common import audio_edit_args, num

LOUDNORM = "loudnorm=I=-16:TP=-1.5:LRA=11"

# band -> (centre Hz, width Hz)
EQ_BANDS = {
    "bass": (100, 100),
    "mid": (1000, 2000),
    "treble": (10000, 5000),
}


def _mute(op, ctx):
    video, _ = stream_codecs(op.input, ctx.output)
    return make_result(opts=["-c:v", video, "-an"], notes=["audio track removed; video copied"])


def _normalize(op, ctx):
    return make_result(af=[LOUDNORM], notes=["EBU R128: -16 LUFS integrated, -1.5 dBTP peak, LRA 11"])


def _volume(op, ctx):
    if op.gain_db is not None:
        level = db_to_linear(op.gain_db)
        note = f"{op.gain_db:+g}dB -> x{level:.6f}"
    else:
        level = op.level
        note = f"{num(op.level * 100)}% -> x{level:.6f}"
    return make_result(af=[f"volume={level:.6f}"], notes=[note])


def _fade(op, ctx):
    filters = []
    if op.fade_in_ms:
        filters.append(f"afade=t=in:st=0:d={format_seconds(op.fade_in_ms)}")
    if op.fade_out_ms:
        total = ctx.duration(op.input, "a fade-out")
        length = op.fade_out_ms / 1000
        if length > total:
            raise CompilationError(
                f"fade-out of {format_seconds(op.fade_out_ms)}s is longer than the {total:.1f}s input"
            )
        filters.append(f"afade=t=out:st={total - length:.3f}:d={format_seconds(op.fade_out_ms)}")
    return make_result(af=filters)


def _sync(op, ctx):
    if op.delay_ms > 0:
        ms = op.delay_ms
        return make_result(af=[f"adelay={ms}|{ms}"], notes=[f"audio delayed by {ms}ms"])
    # Advancing audio: shift a second copy of the input and take its audio.
    shift = format_seconds(-op.delay_ms)
    video, _ = stream_codecs(op.input, ctx.output)
    return make_result(
        inputs=[InputSpec(op.input), InputSpec(op.input, MediaRole.SECONDARY, ["-itsoffset", f"-{shift}"])],
        opts=["-map", "0:v", "-map", "1:a", "-c:v", video, "-c:a", "aac"],
        notes=[f"audio advanced by {shift}s"],
    )


def _equalize(op, ctx):
    filters = []
    for band, (freq, width) in EQ_BANDS.items():
        gain = getattr(op, band)
        if gain is not None:
            filters.append(f"equalizer=f={freq}:width_type=h:width={width}:g={num(gain)}")
    return make_result(af=filters)


def _reduce_noise(op, ctx):
    return make_result(af=["highpass=f=200,lowpass=f=3000,anlmdn=s=0.0003"],
                       notes=["band-limit to 200-3000 Hz, then non-local-means denoise"])


def _remove_echo(op, ctx):
    return make_result(af=["aecho=0.8:0.88:60:0.4"])


def _isolate_voice(op, ctx):
    return make_result(af=["highpass=f=300,lowpass=f=3400"],
                       notes=["keep the 300-3400 Hz speech band"])


def _duck(op, ctx):
    note = "compress loud passages (ratio 9, threshold 0.05)"
    if op.trigger:
        note += f"; ducks whenever the track is loud, not only '{op.trigger}'"
    return make_result(af=["acompressor=threshold=0.05:ratio=9:attack=5:release=50"], notes=[note])


_AUDIO_DISPATCH = {
    "mute": _mute,
    "normalize": _normalize,
    "volume": _volume,
    "fade": _fade,
    "sync": _sync,
    "equalize": _equalize,
    "reduce-noise": _reduce_noise,
    "remove-echo": _remove_echo,
    "isolate-voice": _isolate_voice,
    "duck": _duck,
}


def _c_audio(op: AudioAdjust, ctx: CompileContext):
    if op.action != "mute" and not ctx.has_audio(op.input):
        raise CompilationError(f"'{op.verb}' needs an audio stream, but {os.path.basename(op.input)} has none")
    result = _AUDIO_DISPATCH[op.action](op, ctx)
    if not result.output_options:
        result.output_options = audio_edit_args(ctx, op.input)
    return result


HANDLERS = {
    AudioAdjust: _c_audio,
}
