"""Closed preset tables.

Every named shortcut a user can type (``high-quality``, ``vintage``,
``tiktok``, ``70s`` ...) lives here and expands to concrete numbers.
Lookups are strict: an unknown name is a ``ValidationError`` listing the
valid choices, never a silent default.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Mapping, Optional, TypeVar

from ..errors import ValidationError

T = TypeVar("T")


def lookup(table: Mapping[str, T], name: str, field: str) -> T:
    """Strict, case-insensitive preset lookup."""
    key = str(name).strip().lower()
    if key in table:
        return table[key]
    choices = ", ".join(sorted(table))
    raise ValidationError(field, f"unknown preset; choose one of: {choices}", name)


# ------------------------------------------------------------------ #
#   Quality                                                          #
# ------------------------------------------------------------------ #

@dataclass(frozen=True)
class QualityPreset:
    name: str
    crf: int
    vp9_crf: int

    @property
    def description(self) -> str:
        return f"quality '{self.name}' -> libx264 CRF {self.crf} (VP9 CRF {self.vp9_crf})"


QUALITY_PRESETS: dict[str, QualityPreset] = {
    "low": QualityPreset("low", 28, 50),
    "medium": QualityPreset("medium", 23, 40),
    "high": QualityPreset("high", 18, 30),
    "ultra": QualityPreset("ultra", 15, 20),
}


def resolve_quality(name: str, field: str = "quality") -> QualityPreset:
    """``high`` / ``high-quality`` → preset."""
    key = str(name).strip().lower()
    if key.endswith("-quality"):
        key = key[: -len("-quality")]
    return lookup(QUALITY_PRESETS, key, field)


def is_quality_name(name: str) -> bool:
    key = str(name).strip().lower()
    if key.endswith("-quality"):
        key = key[: -len("-quality")]
    return key in QUALITY_PRESETS


# ------------------------------------------------------------------ #
#   Resolutions                                                      #
# ------------------------------------------------------------------ #

RESOLUTIONS: dict[str, tuple[int, int]] = {
    "480p": (854, 480),
    "720p": (1280, 720),
    "1080p": (1920, 1080),
    "1440p": (2560, 1440),
    "2160p": (3840, 2160),
    "4k": (3840, 2160),
}


# ------------------------------------------------------------------ #
#   Colour                                                           #
# ------------------------------------------------------------------ #

@dataclass(frozen=True)
class FilterPreset:
    name: str
    filters: str
    description: str


COLOR_FILTER_PRESETS: dict[str, FilterPreset] = {
    "vintage": FilterPreset(
        "vintage",
        "eq=brightness=0.05:contrast=1.15:saturation=0.85,colorbalance=rs=0.1:gs=-0.05:bs=-0.1",
        "vintage -> lifted brightness, +15% contrast, -15% saturation, warm balance",
    ),
    "black-and-white": FilterPreset(
        "black-and-white", "format=gray", "black-and-white -> single gray plane",
    ),
    "sepia": FilterPreset(
        "sepia",
        "colorchannelmixer=.393:.769:.189:0:.349:.686:.168:0:.272:.534:.131",
        "sepia -> standard sepia channel mix matrix",
    ),
}
COLOR_FILTER_PRESETS["bw"] = COLOR_FILTER_PRESETS["black-and-white"]
COLOR_FILTER_PRESETS["grayscale"] = COLOR_FILTER_PRESETS["black-and-white"]

COLOR_GRADES: dict[str, FilterPreset] = {
    "cinematic": FilterPreset(
        "cinematic", "curves=preset=lighter,eq=contrast=1.2:saturation=1.1",
        "cinematic -> lighter curves, +20% contrast, +10% saturation",
    ),
    "warm": FilterPreset(
        "warm", "colorbalance=rs=0.15:gs=-0.05:bs=-0.15,eq=saturation=1.1",
        "warm -> red shifted up, blue shifted down, +10% saturation",
    ),
    "cool": FilterPreset(
        "cool", "colorbalance=rs=-0.1:gs=0.05:bs=0.15,eq=saturation=1.1",
        "cool -> blue shifted up, red shifted down, +10% saturation",
    ),
    "dramatic": FilterPreset(
        "dramatic", "curves=preset=strong_contrast,eq=contrast=1.3:saturation=1.2",
        "dramatic -> strong contrast curve, +30% contrast, +20% saturation",
    ),
}

FILM_ERAS: dict[str, FilterPreset] = {
    "classic": FilterPreset(
        "classic",
        "noise=alls=10:allf=t+u,curves=vintage,eq=brightness=0.05:contrast=1.1:saturation=0.8",
        "classic film -> moderate grain, vintage curves, warm",
    ),
    "70s": FilterPreset(
        "70s",
        "noise=alls=15:allf=t+u,curves=vintage,eq=brightness=0.1:contrast=1.05:saturation=0.7,"
        "colorbalance=rs=0.15:gs=-0.05:bs=-0.1",
        "70s -> heavy grain, warm, desaturated, soft contrast",
    ),
    "80s": FilterPreset(
        "80s",
        "noise=alls=12:allf=t+u,curves=vintage,eq=brightness=-0.05:contrast=1.2:saturation=1.1,"
        "colorbalance=rs=-0.1:gs=0.05:bs=0.15",
        "80s -> moderate grain, cool, vibrant, high contrast",
    ),
    "90s": FilterPreset(
        "90s",
        "noise=alls=8:allf=t+u,curves=vintage,eq=brightness=0.02:contrast=1.1:saturation=0.9,"
        "colorbalance=rs=0.05:gs=0:bs=-0.05",
        "90s -> light grain, neutral, balanced",
    ),
}

COLORSPACES: dict[str, str] = {
    "rec709": "bt709",
    "bt709": "bt709",
    "rec2020": "bt2020",
    "bt2020": "bt2020",
    "rec601": "bt601-6-625",
}

CHROMA_COLORS: dict[str, str] = {
    "green": "0x00FF00",
    "blue": "0x0000FF",
}

TEXT_COLORS: dict[str, str] = {
    "white": "0xFFFFFF",
    "black": "0x000000",
    "red": "0xFF0000",
    "green": "0x00FF00",
    "blue": "0x0000FF",
    "yellow": "0xFFFF00",
    "cyan": "0x00FFFF",
    "magenta": "0xFF00FF",
    "orange": "0xFFA500",
    "gray": "0x808080",
    "grey": "0x808080",
}


# ------------------------------------------------------------------ #
#   Delivery targets                                                 #
# ------------------------------------------------------------------ #

@dataclass(frozen=True)
class PlatformPreset:
    name: str
    width: int
    height: int
    video_bitrate_k: Optional[int]
    crf: Optional[int] = None
    max_duration: Optional[int] = None
    fit: str = "pad"

    @property
    def description(self) -> str:
        rate = f"{self.video_bitrate_k}k video" if self.video_bitrate_k else f"CRF {self.crf}"
        cap = f", capped at {self.max_duration}s" if self.max_duration else ""
        how = "padded" if self.fit == "pad" else "center-cropped"
        return f"{self.name} -> {self.width}x{self.height} {how}, 30fps, {rate}, 128k AAC{cap}"


PLATFORMS: dict[str, PlatformPreset] = {
    "instagram": PlatformPreset("instagram", 1080, 1080, 3500),
    "tiktok": PlatformPreset("tiktok", 1080, 1920, 4000),
    "youtube-shorts": PlatformPreset("youtube-shorts", 1080, 1920, 5000, max_duration=60),
    "twitter": PlatformPreset("twitter", 1280, 720, 3000, max_duration=140),
    "story": PlatformPreset("story", 1080, 1920, None, crf=23, max_duration=15),
    "vertical": PlatformPreset("vertical", 1080, 1920, None, crf=23, fit="crop"),
    "portrait": PlatformPreset("portrait", 1080, 1920, None, crf=23, fit="crop"),
}


@dataclass(frozen=True)
class DevicePreset:
    name: str
    max_width: int
    max_height: int
    profile: str
    level: str
    faststart: bool

    @property
    def description(self) -> str:
        return (f"{self.name} -> fit within {self.max_width}x{self.max_height}, "
                f"H.264 {self.profile}@{self.level}, yuv420p")


DEVICES: dict[str, DevicePreset] = {
    "iphone": DevicePreset("iphone", 1920, 1080, "high", "4.0", True),
    "android": DevicePreset("android", 1920, 1080, "baseline", "3.0", False),
}


@dataclass(frozen=True)
class GifPreset:
    name: str
    fps: int
    width: int

    @property
    def description(self) -> str:
        return f"gif quality '{self.name}' -> {self.fps}fps, {self.width}px wide, lanczos scaling"


GIF_PRESETS: dict[str, GifPreset] = {
    "low": GifPreset("low", 10, 320),
    "medium": GifPreset("medium", 15, 480),
    "high": GifPreset("high", 20, 640),
    "ultra": GifPreset("ultra", 30, 800),
}


# ------------------------------------------------------------------ #
#   Composition                                                      #
# ------------------------------------------------------------------ #

# Named placements shared by overlays (``overlay=x:y``, W/w are the base
# and overlay sizes) and drawtext (``x``/``y``, text_w is the rendered text).
OVERLAY_POSITIONS: dict[str, str] = {
    "top-left": "10:10",
    "top": "(W-w)/2:10",
    "top-right": "W-w-10:10",
    "center": "(W-w)/2:(H-h)/2",
    "bottom-left": "10:H-h-10",
    "bottom": "(W-w)/2:H-h-10",
    "bottom-right": "W-w-10:H-h-10",
}

TEXT_POSITIONS: dict[str, tuple[str, str]] = {
    "top-left": ("20", "20"),
    "top": ("(w-text_w)/2", "20"),
    "top-right": ("w-text_w-20", "20"),
    "center": ("(w-text_w)/2", "(h-text_h)/2"),
    "bottom-left": ("20", "h-text_h-20"),
    "bottom": ("(w-text_w)/2", "h-text_h-20"),
    "bottom-right": ("w-text_w-20", "h-text_h-20"),
}

TRANSITIONS: dict[str, str] = {
    "fade": "fade",
    "wipe": "wipeleft",
    "slide": "slideleft",
    "dissolve": "dissolve",
    "circle": "circleopen",
}

VISUALIZATIONS: dict[str, str] = {
    "waveform": "showwaves=s=1280x720:mode=line:colors=0xFFFFFF:scale=lin",
    "spectrum": "showspectrum=s=1280x720:color=intensity:slide=scroll",
}

TEXT_ANIMATIONS = ("fade-in", "slide-in")

ORIENTATIONS = ("horizontal", "vertical")

SOCIAL_SHAPES = ("square", "circle")

METADATA_FIELDS: dict[str, str] = {
    "title": "title",
    "author": "artist",
    "artist": "artist",
    "copyright": "copyright",
    "comment": "comment",
    "description": "description",
    "year": "date",
}
