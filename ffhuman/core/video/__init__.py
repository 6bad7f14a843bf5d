"""Video analysis and format handling."""

from .analyzer import VideoAnalyzer, VideoMetadata
from .formats import AudioFormat, VideoFormat

__all__ = [
    "VideoAnalyzer",
    "VideoMetadata",
    "VideoFormat",
    "AudioFormat",
]
