"""Media probing and metadata extraction using ffprobe."""

import json
import logging
import os
import subprocess
import shutil
import threading
from pathlib import Path
from typing import Optional
from pydantic import BaseModel

from ...errors import ToolchainError

logger = logging.getLogger("ffhuman")


class StreamInfo(BaseModel):
    """Information about a single stream."""
    index: int
    codec_name: str
    codec_type: str
    codec_long_name: Optional[str] = None
    profile: Optional[str] = None
    bit_rate: Optional[int] = None


class VideoStreamInfo(StreamInfo):
    """Video stream specific information."""
    width: int
    height: int
    display_aspect_ratio: Optional[str] = None
    pixel_format: Optional[str] = None
    frame_rate: Optional[float] = None
    avg_frame_rate: Optional[str] = None
    duration: Optional[float] = None
    nb_frames: Optional[int] = None
    attached_pic: bool = False


class AudioStreamInfo(StreamInfo):
    """Audio stream specific information."""
    sample_rate: Optional[int] = None
    channels: Optional[int] = None
    channel_layout: Optional[str] = None
    duration: Optional[float] = None


class VideoMetadata(BaseModel):
    """Complete media metadata."""
    file_path: str
    file_size: int
    format_name: str
    format_long_name: Optional[str] = None
    duration: float
    bit_rate: Optional[int] = None
    nb_streams: int
    video_streams: list[VideoStreamInfo] = []
    audio_streams: list[AudioStreamInfo] = []
    subtitle_streams: list[StreamInfo] = []

    @property
    def primary_video(self) -> Optional[VideoStreamInfo]:
        """Get the primary video stream, skipping embedded cover art."""
        return next((s for s in self.video_streams if not s.attached_pic), None)

    @property
    def primary_audio(self) -> Optional[AudioStreamInfo]:
        """Get the primary audio stream."""
        return self.audio_streams[0] if self.audio_streams else None

    @property
    def has_video(self) -> bool:
        return self.primary_video is not None

    @property
    def has_audio(self) -> bool:
        return bool(self.audio_streams)

    @property
    def width(self) -> Optional[int]:
        return self.primary_video.width if self.primary_video else None

    @property
    def height(self) -> Optional[int]:
        return self.primary_video.height if self.primary_video else None

    @property
    def resolution(self) -> Optional[tuple[int, int]]:
        """Get video resolution as (width, height)."""
        if self.primary_video:
            return (self.primary_video.width, self.primary_video.height)
        return None

    @property
    def frame_rate(self) -> Optional[float]:
        return self.primary_video.frame_rate if self.primary_video else None


class VideoAnalyzer:
    """Probes media files with ffprobe, caching results per file version."""

    def __init__(self, ffprobe_path: Optional[str] = None):
        """Initialize the analyzer.

        Args:
            ffprobe_path: Path to ffprobe executable. If None, will search PATH.

        Raises:
            ToolchainError: ffprobe cannot be found.
        """
        self.ffprobe_path = ffprobe_path or shutil.which("ffprobe")
        if not self.ffprobe_path:
            raise ToolchainError("ffprobe not found in PATH")
        self._cache: dict[tuple[str, int, int], VideoMetadata] = {}
        self._lock = threading.Lock()

    def analyze(self, video_path: str | Path) -> VideoMetadata:
        """Probe a media file and extract metadata.

        Results are cached on (absolute path, mtime, size), so a file that is
        rewritten between calls is probed again.

        Raises:
            ToolchainError: the file is missing or ffprobe cannot read it.
        """
        video_path = Path(video_path)
        try:
            st = video_path.stat()
        except OSError:
            raise ToolchainError(f"Input file not found: {video_path}") from None

        key = (str(video_path.resolve()), st.st_mtime_ns, st.st_size)
        with self._lock:
            cached = self._cache.get(key)
        if cached is not None:
            return cached

        cmd = [
            self.ffprobe_path,
            "-v", "quiet",
            "-print_format", "json",
            "-show_format",
            "-show_streams",
            str(video_path),
        ]
        logger.debug("Probing %s", video_path)
        try:
            result = subprocess.run(cmd, capture_output=True, text=True)
        except OSError as exc:
            raise ToolchainError(f"cannot run ffprobe: {exc}") from exc
        if result.returncode != 0:
            raise ToolchainError(f"ffprobe failed on {video_path}: {result.stderr.strip()}")

        try:
            data = json.loads(result.stdout or "{}")
        except json.JSONDecodeError as exc:
            raise ToolchainError(f"unreadable ffprobe output for {video_path}") from exc
        metadata = self._parse_probe_data(str(video_path), data)
        with self._lock:
            self._cache[key] = metadata
        return metadata

    def __call__(self, video_path: str | Path) -> VideoMetadata:
        return self.analyze(video_path)

    def _parse_probe_data(self, file_path: str, data: dict) -> VideoMetadata:
        """Parse ffprobe JSON output into VideoMetadata."""
        fmt = data.get("format", {})
        streams = data.get("streams", [])
        by_type: dict[str, list] = {"video": [], "audio": [], "subtitle": []}
        for stream in streams:
            kind = stream.get("codec_type", "")
            if kind in by_type:
                by_type[kind].append(_STREAM_PARSERS[kind](stream))

        size = fmt.get("size")
        if size is None and os.path.exists(file_path):
            size = os.path.getsize(file_path)

        return VideoMetadata(
            file_path=file_path,
            file_size=int(size or 0),
            format_name=fmt.get("format_name", "unknown"),
            format_long_name=fmt.get("format_long_name"),
            duration=_float(fmt.get("duration")) or 0.0,
            bit_rate=_int(fmt.get("bit_rate")),
            nb_streams=int(fmt.get("nb_streams", len(streams))),
            video_streams=by_type["video"],
            audio_streams=by_type["audio"],
            subtitle_streams=by_type["subtitle"],
        )


def _int(value) -> Optional[int]:
    """ffprobe reports most numbers as strings; absent or zero means unknown."""
    return int(value) if value else None


def _float(value) -> Optional[float]:
    return float(value) if value else None


def _rate(text: Optional[str]) -> Optional[float]:
    """'30000/1001' → 29.97; None for missing or 0/0 rates."""
    if not text:
        return None
    num, _, den = text.partition("/")
    try:
        return float(num) / float(den or 1)
    except (ValueError, ZeroDivisionError):
        return None


def _common(stream: dict) -> dict:
    return {
        "index": stream.get("index", 0),
        "codec_name": stream.get("codec_name", "unknown"),
        "codec_type": stream.get("codec_type", "unknown"),
        "codec_long_name": stream.get("codec_long_name"),
        "profile": stream.get("profile"),
        "bit_rate": _int(stream.get("bit_rate")),
    }


def _video_stream(stream: dict) -> VideoStreamInfo:
    return VideoStreamInfo(
        **_common(stream),
        width=stream.get("width", 0),
        height=stream.get("height", 0),
        display_aspect_ratio=stream.get("display_aspect_ratio"),
        pixel_format=stream.get("pix_fmt"),
        frame_rate=_rate(stream.get("r_frame_rate")),
        avg_frame_rate=stream.get("avg_frame_rate"),
        duration=_float(stream.get("duration")),
        nb_frames=_int(stream.get("nb_frames")),
        attached_pic=bool(stream.get("disposition", {}).get("attached_pic")),
    )


def _audio_stream(stream: dict) -> AudioStreamInfo:
    return AudioStreamInfo(
        **_common(stream),
        sample_rate=_int(stream.get("sample_rate")),
        channels=stream.get("channels"),
        channel_layout=stream.get("channel_layout"),
        duration=_float(stream.get("duration")),
    )


_STREAM_PARSERS = {
    "video": _video_stream,
    "audio": _audio_stream,
    "subtitle": lambda stream: StreamInfo(**_common(stream)),
}
