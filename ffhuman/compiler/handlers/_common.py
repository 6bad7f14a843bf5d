"""Helpers shared by the compiler handlers."""

from __future__ import annotations

import os

from ...core.video.formats import (
    AUDIO_FORMATS,
    AudioFormat,
    default_codecs,
    encode_args,
    extension,
    stream_codecs,
)
from ...operations.presets import OVERLAY_POSITIONS
from ...operations.units import parse_point
from ..handler_contract import CompileContext, InputSpec
from ..stage import MediaRole, TextArtifact


def num(value: float) -> str:
    """Compact number text for filter arguments (``0.5``, ``2``)."""
    return f"{value:g}"


def overlay_position(position: str) -> str:
    """Named placement or ``x,y`` → overlay ``x:y`` expression."""
    if position in OVERLAY_POSITIONS:
        return OVERLAY_POSITIONS[position]
    x, y = parse_point(position, "at")
    return f"{x}:{y}"


def source_inputs(paths) -> list[InputSpec]:
    return [
        InputSpec(path, MediaRole.PRIMARY if i == 0 else MediaRole.SECONDARY)
        for i, path in enumerate(paths)
    ]


def reencode(ctx: CompileContext, crf=None, preset=None, copy_audio=False) -> list[str]:
    """Video + audio re-encode arguments for the plan's output container."""
    args = encode_args(ctx.output, crf=crf, preset=preset)
    if copy_audio:
        args = args[: args.index("-c:a")] + ["-c:a", "copy"]
    return args


def audio_codec_args(output: str) -> list[str]:
    """Audio encoder arguments suited to ``output``."""
    ext = extension(output)
    if ext in AUDIO_FORMATS:
        return AUDIO_FORMATS[ext].to_ffmpeg_args()
    return AudioFormat(codec=default_codecs(output)[1]).to_ffmpeg_args()


def audio_edit_args(ctx: CompileContext, source: str) -> list[str]:
    """Arguments for an audio-filter edit: video untouched where possible."""
    if extension(ctx.output) in AUDIO_FORMATS:
        return audio_codec_args(ctx.output)
    video, _ = stream_codecs(source, ctx.output)
    return ["-c:v", video] + audio_codec_args(ctx.output)


def concat_list(ctx: CompileContext, paths) -> tuple[InputSpec, TextArtifact]:
    """Concat-demuxer list written as a plan artifact, plus its input spec."""
    list_path = ctx.intermediate("concat", "txt")
    lines = []
    for path in paths:
        escaped = os.path.abspath(path).replace("'", "'\\''")
        lines.append(f"file '{escaped}'")
    artifact = TextArtifact(list_path, "\n".join(lines) + "\n")
    spec = InputSpec(list_path, MediaRole.INTERMEDIATE, ["-f", "concat", "-safe", "0"])
    return spec, artifact


def copy_or_reencode(source: str, output: str) -> list[str]:
    """Codec arguments for joining files: stream copy when containers allow it."""
    video, audio = stream_codecs(source, output)
    if video == "copy" and audio == "copy":
        return ["-c", "copy"]
    args = ["-c:v", video]
    if video != "copy":
        args += ["-pix_fmt", "yuv420p"]
    return args + ["-c:a", audio]
