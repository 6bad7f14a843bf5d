"""Read-only text reports: info, analyze-quality, suggest-format and doctor.

Reports are built from probe metadata (or, for ``doctor``, from the
toolchain check) and printed; no ffmpeg process runs and no file is
written.
"""

from __future__ import annotations

import os
import platform
import shutil
from typing import Optional

from . import _version_line, check_dependencies
from .core.video.analyzer import VideoMetadata
from .operations.model import Report
from .operations.units import format_bytes

RULE = "-" * 40

# Bits per pixel per frame below which H.264 usually shows blocking.
LOW_BPP = 0.05
HIGH_BPP = 0.3


def format_clock(seconds: float) -> str:
    """``3725.0`` → ``1:02:05``, ``75`` → ``1:15``, ``9`` → ``9s``."""
    total = int(seconds)
    hours, rest = divmod(total, 3600)
    minutes, secs = divmod(rest, 60)
    if hours:
        return f"{hours}:{minutes:02d}:{secs:02d}"
    if minutes:
        return f"{minutes}:{secs:02d}"
    return f"{secs}s"


def _kbps(bps: Optional[int]) -> str:
    return f"{bps // 1000} kb/s" if bps else "unknown"


def _stream_lines(meta: VideoMetadata) -> list[str]:
    lines = []
    v = meta.primary_video
    if v is not None:
        rate = f" @ {v.frame_rate:.2f} fps" if v.frame_rate else ""
        lines.append(f"Video: {v.width}x{v.height}{rate}")
        lines.append(f"Video codec: {v.codec_name}")
        lines.append(f"Video bitrate: {_kbps(v.bit_rate)}")
        if v.pixel_format:
            lines.append(f"Pixel format: {v.pixel_format}")
    else:
        lines.append("Video: none")
    a = meta.primary_audio
    if a is not None:
        lines.append(f"Audio: {a.codec_name} @ {a.sample_rate} Hz, {a.channels} channels")
        lines.append(f"Audio bitrate: {_kbps(a.bit_rate)}")
    else:
        lines.append("Audio: none")
    return lines


def info_report(meta: VideoMetadata) -> str:
    lines = [
        "Media information",
        RULE,
        f"File: {os.path.basename(meta.file_path)}",
        f"Format: {meta.format_long_name or meta.format_name}",
        f"Duration: {meta.duration:.2f}s ({format_clock(meta.duration)})",
        f"File size: {format_bytes(meta.file_size)}",
        f"Total bitrate: {_kbps(meta.bit_rate)}",
    ]
    if meta.width and meta.height:
        lines.append(f"Aspect ratio: {meta.width / meta.height:.2f}")
    lines.extend(_stream_lines(meta))
    if meta.subtitle_streams:
        lines.append(f"Subtitle streams: {len(meta.subtitle_streams)}")
    lines.append(RULE)
    return "\n".join(lines) + "\n"


def quality_findings(meta: VideoMetadata) -> list[str]:
    """Plain-language notes on how much bitrate the picture gets."""
    findings = []
    v = meta.primary_video
    if v is None:
        return ["No video stream; nothing to rate"]
    bitrate = v.bit_rate or meta.bit_rate
    if bitrate and v.width and v.height and v.frame_rate:
        bpp = bitrate / (v.width * v.height * v.frame_rate)
        findings.append(f"{bpp:.3f} bits per pixel per frame")
        if bpp < LOW_BPP:
            findings.append("Bitrate is low for this resolution; expect blocking in motion")
        elif bpp > HIGH_BPP:
            findings.append("Bitrate is generous; 'compress' can shrink it with little visible loss")
    else:
        findings.append("Bitrate or frame rate unknown; bits per pixel not computed")
    if v.height and v.height < 480:
        findings.append("Below 480 lines; upscaling will not add detail")
    if v.frame_rate and v.frame_rate < 24:
        findings.append("Under 24 fps; motion will look choppy")
    if len(findings) == 1:
        findings.append("No obvious quality problems")
    return findings


def quality_report(meta: VideoMetadata) -> str:
    lines = ["Quality analysis", RULE, f"File: {os.path.basename(meta.file_path)}"]
    lines.extend(_stream_lines(meta))
    lines.extend(f"- {finding}" for finding in quality_findings(meta))
    lines.append(RULE)
    return "\n".join(lines) + "\n"


def suggest_formats(meta: VideoMetadata) -> list[tuple[str, str]]:
    """Ranked (format, reason) suggestions from duration and resolution."""
    short = meta.duration < 30
    long = meta.duration > 300
    high_res = bool(meta.width and meta.width >= 1920) or bool(meta.height and meta.height >= 1080)

    if short and high_res:
        picks = [("MP4 (H.264)", "short high-resolution clip; plays everywhere"),
                 ("WebM (VP9)", "smaller file for the web at the same quality")]
    elif short:
        picks = [("GIF", "short clip; loops inline where video does not"),
                 ("MP4 (H.264)", "much smaller than a GIF when video is allowed")]
    elif long:
        picks = [("MP4 (H.265)", "long video; about half the size of H.264"),
                 ("MP4 (H.264)", "widest compatibility")]
    else:
        picks = [("MP4 (H.264)", "widest compatibility"),
                 ("WebM (VP9)", "smaller file for the web")]
    if high_res:
        picks.append(("iPhone optimized", "'convert FILE to iphone' fits it for the phone"))
    if long:
        picks.append(("HLS", "'convert FILE to hls' lets players start quickly"))
    return picks


def suggest_report(meta: VideoMetadata) -> str:
    lines = [f"Format suggestions for {os.path.basename(meta.file_path)}", RULE, "Recommended formats:"]
    for i, (name, reason) in enumerate(suggest_formats(meta), 1):
        lines.append(f" {i}. {name} - {reason}")
    lines.append(RULE)
    return "\n".join(lines) + "\n"


def doctor_report(ffmpeg_path: Optional[str] = None, ffprobe_path: Optional[str] = None) -> tuple[str, bool]:
    """Toolchain diagnostics; returns (text, healthy)."""
    lines = [
        "ffhuman diagnostics",
        RULE,
        f"System: {platform.system()} {platform.machine()}",
        f"Python: {platform.python_version()}",
    ]
    for name, configured in (("ffmpeg", ffmpeg_path), ("ffprobe", ffprobe_path)):
        path = configured or shutil.which(name)
        version = _version_line(path) if path else None
        if version:
            lines.append(f"{name}: {path} ({version})")
        else:
            lines.append(f"{name}: {path or 'not found'}")
    issues = check_dependencies(ffmpeg_path, ffprobe_path)
    if issues:
        lines.append("Problems:")
        lines.extend(f"  - {issue}" for issue in issues)
    else:
        lines.append("All checks passed")
    lines.append(RULE)
    return "\n".join(lines) + "\n", not issues


_RENDERERS = {
    "info": info_report,
    "analyze-quality": quality_report,
    "suggest-format": suggest_report,
}


def render_report(op: Report, meta: VideoMetadata) -> str:
    """Text for a probe-based report (every kind except doctor)."""
    return _RENDERERS[op.kind](meta)
