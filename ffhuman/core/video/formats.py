"""Video, audio, and container format definitions."""

import os
from enum import Enum
from typing import Optional
from pydantic import BaseModel


class VideoCodec(str, Enum):
    """Supported video codecs."""
    H264 = "libx264"
    H265 = "libx265"
    VP9 = "libvpx-vp9"
    AV1 = "libaom-av1"
    PRORES = "prores_ks"
    MPEG4 = "mpeg4"
    COPY = "copy"


class AudioCodec(str, Enum):
    """Supported audio codecs."""
    AAC = "aac"
    MP3 = "libmp3lame"
    OPUS = "libopus"
    VORBIS = "libvorbis"
    FLAC = "flac"
    PCM = "pcm_s16le"
    COPY = "copy"


class PixelFormat(str, Enum):
    """Common pixel formats."""
    YUV420P = "yuv420p"
    YUV422P = "yuv422p"
    YUV444P = "yuv444p"
    YUVA420P = "yuva420p"
    RGB24 = "rgb24"
    RGBA = "rgba"


class VideoFormat(BaseModel):
    """Video encoder settings."""
    codec: VideoCodec = VideoCodec.H264
    bitrate: Optional[str] = None
    crf: Optional[int] = None
    preset: Optional[str] = None
    pixel_format: Optional[PixelFormat] = PixelFormat.YUV420P

    def to_ffmpeg_args(self) -> list[str]:
        """Convert to FFMPEG command arguments."""
        args = ["-c:v", self.codec.value]
        if self.codec == VideoCodec.COPY:
            return args

        if self.crf is not None:
            args.extend(["-crf", str(self.crf)])
            if self.codec in (VideoCodec.VP9, VideoCodec.AV1):
                # constant-quality mode for libvpx/libaom needs -b:v 0
                args.extend(["-b:v", "0"])
        elif self.bitrate:
            args.extend(["-b:v", self.bitrate])

        if self.preset:
            args.extend(["-preset", self.preset])

        if self.pixel_format is not None:
            args.extend(["-pix_fmt", self.pixel_format.value])

        return args


class AudioFormat(BaseModel):
    """Audio encoder settings."""
    codec: AudioCodec = AudioCodec.AAC
    bitrate: Optional[str] = None
    quality: Optional[int] = None
    sample_rate: Optional[int] = None
    channels: Optional[int] = None

    def to_ffmpeg_args(self) -> list[str]:
        """Convert to FFMPEG command arguments."""
        args = ["-c:a", self.codec.value]

        if self.bitrate:
            args.extend(["-b:a", self.bitrate])
        elif self.quality is not None:
            args.extend(["-q:a", str(self.quality)])

        if self.sample_rate:
            args.extend(["-ar", str(self.sample_rate)])

        if self.channels:
            args.extend(["-ac", str(self.channels)])

        return args


# Default re-encode codecs per output container.
CONTAINER_DEFAULTS: dict[str, tuple[VideoCodec, AudioCodec]] = {
    "mp4": (VideoCodec.H264, AudioCodec.AAC),
    "mov": (VideoCodec.H264, AudioCodec.AAC),
    "mkv": (VideoCodec.H264, AudioCodec.AAC),
    "webm": (VideoCodec.VP9, AudioCodec.OPUS),
    "avi": (VideoCodec.MPEG4, AudioCodec.MP3),
}

# Audio-only targets.
AUDIO_FORMATS: dict[str, AudioFormat] = {
    "mp3": AudioFormat(codec=AudioCodec.MP3, quality=2),
    "wav": AudioFormat(codec=AudioCodec.PCM),
    "aac": AudioFormat(codec=AudioCodec.AAC, bitrate="192k"),
    "m4a": AudioFormat(codec=AudioCodec.AAC, bitrate="192k"),
    "flac": AudioFormat(codec=AudioCodec.FLAC),
    "ogg": AudioFormat(codec=AudioCodec.VORBIS, quality=5),
}

# ``--codec`` spellings.
CODEC_ALIASES: dict[str, VideoCodec] = {
    "h264": VideoCodec.H264,
    "h265": VideoCodec.H265,
    "vp9": VideoCodec.VP9,
    "av1": VideoCodec.AV1,
    "prores": VideoCodec.PRORES,
    "copy": VideoCodec.COPY,
}


def extension(path: str) -> str:
    return os.path.splitext(str(path))[1].lower().lstrip(".")


def audio_format_args(fmt: str) -> list[str]:
    """Codec arguments for an audio-only output format."""
    return AUDIO_FORMATS[fmt].to_ffmpeg_args()


def default_codecs(output: str) -> tuple[VideoCodec, AudioCodec]:
    """Re-encode codecs for an output path; unknown containers get H.264/AAC."""
    return CONTAINER_DEFAULTS.get(extension(output), (VideoCodec.H264, AudioCodec.AAC))


def stream_codecs(input_path: str, output_path: str) -> tuple[str, str]:
    """(video, audio) codec names for a container change.

    Streams are copied when the output container can hold them and
    re-encoded when it cannot: VP8/VP9 and Vorbis from WebM/MKV do not fit
    MP4, AAC from MP4/MOV/AVI does not fit WebM.
    """
    src, dst = extension(input_path), extension(output_path)
    video, audio = "copy", "copy"
    if src in ("webm", "mkv") and dst == "mp4":
        video = VideoCodec.H264.value
    if src in ("mp4", "mov", "avi") and dst == "webm":
        video = VideoCodec.VP9.value
    if src in ("webm", "wmv", "mkv") and dst == "mp4":
        audio = AudioCodec.AAC.value
    elif src in ("mp4", "avi", "mov") and dst == "webm":
        audio = AudioCodec.OPUS.value
    elif dst == "avi" and src != "avi":
        video, audio = VideoCodec.MPEG4.value, AudioCodec.MP3.value
    return video, audio


def encode_args(
    output: str,
    crf: Optional[int] = None,
    vp9_crf: Optional[int] = None,
    preset: Optional[str] = None,
    codec: Optional[VideoCodec] = None,
) -> list[str]:
    """Video + audio re-encode arguments suited to the output container."""
    video_codec, audio_codec = default_codecs(output)
    if codec is not None:
        video_codec = codec
    if video_codec in (VideoCodec.VP9, VideoCodec.AV1) and vp9_crf is not None:
        crf = vp9_crf
    video = VideoFormat(
        codec=video_codec, crf=crf,
        preset=preset if video_codec in (VideoCodec.H264, VideoCodec.H265) else None,
        pixel_format=None if video_codec == VideoCodec.PRORES else PixelFormat.YUV420P,
    )
    return video.to_ffmpeg_args() + AudioFormat(codec=audio_codec).to_ffmpeg_args()
