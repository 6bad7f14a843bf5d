"""Canonical operation model.

One frozen dataclass per operation family.  Each class validates itself in
``__post_init__``, so an ``Operation`` that exists is always internally
consistent: no out-of-range numbers, no mutually exclusive fields, no
wrong input counts.  Everything downstream (compiler, planner) can trust
the fields without re-checking them.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field, fields, replace
from typing import ClassVar, Optional

from ..errors import ValidationError
from .presets import (
    COLOR_FILTER_PRESETS,
    COLOR_GRADES,
    COLORSPACES,
    DEVICES,
    FILM_ERAS,
    ORIENTATIONS,
    OVERLAY_POSITIONS,
    PLATFORMS,
    SOCIAL_SHAPES,
    TEXT_ANIMATIONS,
    TEXT_POSITIONS,
    TRANSITIONS,
    VISUALIZATIONS,
    GifPreset,
    QualityPreset,
)
from .units import Dimensions, parse_point


CONTAINER_FORMATS = ("mp4", "webm", "mkv", "mov", "avi")
AUDIO_FORMATS = ("mp3", "wav", "aac", "flac", "ogg", "m4a")
STREAM_FORMATS = ("hls", "dash")
AUDIO_EXTENSIONS = frozenset("." + ext for ext in AUDIO_FORMATS + ("wma", "opus"))
IMAGE_EXTENSIONS = frozenset({".png", ".jpg", ".jpeg", ".bmp", ".webp", ".gif", ".tiff"})


@dataclass(frozen=True)
class OutputHint:
    """How the planner derives a default output name for an operation.

    ``<stem>_<suffix>.<ext>``; ``ext=None`` keeps the input's extension.
    ``pattern`` marks numbered multi-file outputs (``%03d`` in the suffix).
    """
    suffix: str
    ext: Optional[str] = None
    pattern: bool = False
    stem: Optional[str] = None


@dataclass(frozen=True)
class Modifiers:
    """Cross-cutting ``--flag`` adjustments any single-video operation takes."""
    resize: Optional[tuple[int, int]] = None
    crop: Optional[tuple[int, int]] = None
    rotate: Optional[int] = None
    flip: Optional[str] = None
    brightness: Optional[float] = None
    contrast: Optional[float] = None
    saturation: Optional[float] = None
    color: Optional[str] = None
    text: Optional[str] = None
    fps: Optional[float] = None

    def __post_init__(self):
        if self.rotate is not None and self.rotate not in (90, 180, 270):
            raise ValidationError("rotate", "must be 90, 180 or 270", self.rotate)
        if self.flip is not None and self.flip not in ORIENTATIONS:
            raise ValidationError("flip", "must be horizontal or vertical", self.flip)
        if self.brightness is not None and not -1.0 <= self.brightness <= 1.0:
            raise ValidationError("brightness", "must be within -1..1", self.brightness)
        if self.contrast is not None and not 0.0 <= self.contrast <= 3.0:
            raise ValidationError("contrast", "must be within 0..3", self.contrast)
        if self.saturation is not None and not 0.0 <= self.saturation <= 3.0:
            raise ValidationError("saturation", "must be within 0..3", self.saturation)
        if self.color is not None and self.color not in COLOR_FILTER_PRESETS and self.color not in COLOR_GRADES:
            choices = ", ".join(sorted(set(COLOR_FILTER_PRESETS) | set(COLOR_GRADES)))
            raise ValidationError("color", f"unknown preset; choose one of: {choices}", self.color)
        if self.text is not None and not self.text.strip():
            raise ValidationError("text", "must not be empty")
        for name in ("resize", "crop"):
            dims = getattr(self, name)
            if dims is not None and (dims[0] == 0 or dims[1] == 0):
                raise ValidationError(name, "dimensions must be positive", dims)
        if self.fps is not None and not 0 < self.fps <= 240:
            raise ValidationError("fps", "must be within 0..240", self.fps)

    def __bool__(self) -> bool:
        return any(getattr(self, f.name) is not None for f in fields(self))

    @property
    def names(self) -> list[str]:
        return [f.name for f in fields(self) if getattr(self, f.name) is not None]


def _ext(path: str) -> str:
    return os.path.splitext(path)[1].lower()


def is_audio_path(path: str) -> bool:
    return _ext(path) in AUDIO_EXTENSIONS


def is_image_path(path: str) -> bool:
    return _ext(path) in IMAGE_EXTENSIONS


def _require_path(name: str, value: str) -> None:
    if not value or not str(value).strip():
        raise ValidationError(name, "a file path is required")


def _exactly_one(names: tuple[str, ...], values: tuple, what: str) -> None:
    given = [n for n, v in zip(names, values) if v is not None]
    if len(given) != 1:
        raise ValidationError(what, "exactly one of " + ", ".join(names) + " is required",
                              ", ".join(given) or None)


# ------------------------------------------------------------------ #
#   Base                                                             #
# ------------------------------------------------------------------ #

@dataclass(frozen=True, kw_only=True)
class Operation:
    """Base for every operation family."""
    verb: str
    modifiers: Modifiers = field(default_factory=Modifiers)
    notes: tuple[str, ...] = ()

    family: ClassVar[str] = "operation"

    def __post_init__(self):
        self._validate()
        if self.modifiers and not self.accepts_modifiers():
            flags = ", ".join("--" + n for n in self.modifiers.names)
            raise ValidationError(self.verb, f"does not accept {flags}")

    def _validate(self) -> None:
        pass

    def accepts_modifiers(self) -> bool:
        return True

    @property
    def inputs(self) -> tuple[str, ...]:
        return ()

    @property
    def primary(self) -> Optional[str]:
        return self.inputs[0] if self.inputs else None

    def output_hint(self) -> OutputHint:
        raise NotImplementedError


@dataclass(frozen=True, kw_only=True)
class SingleInput(Operation):
    input: str

    def _validate(self) -> None:
        _require_path("input", self.input)

    @property
    def inputs(self) -> tuple[str, ...]:
        return (self.input,)


# ------------------------------------------------------------------ #
#   Encoding                                                         #
# ------------------------------------------------------------------ #

CONVERT_KINDS = (
    "container", "audio", "gif", "animated-gif", "device", "stream",
    "platform", "colorspace", "hdr", "proxy", "preview",
)

VIDEO_CODECS = ("h264", "h265", "vp9", "av1", "prores", "copy")


@dataclass(frozen=True, kw_only=True)
class Convert(SingleInput):
    kind: str
    target: str
    quality: Optional[QualityPreset] = None
    codec: Optional[str] = None
    gif: Optional[GifPreset] = None
    loop: bool = False
    optimize: bool = False

    family: ClassVar[str] = "convert"

    def _validate(self) -> None:
        super()._validate()
        if self.kind not in CONVERT_KINDS:
            raise ValidationError("kind", "unknown conversion", self.kind)
        allowed = {
            "container": CONTAINER_FORMATS,
            "audio": AUDIO_FORMATS,
            "device": tuple(DEVICES),
            "stream": STREAM_FORMATS,
            "platform": tuple(PLATFORMS),
            "colorspace": tuple(COLORSPACES),
        }.get(self.kind)
        if allowed is not None and self.target not in allowed:
            raise ValidationError("format", "choose one of: " + ", ".join(allowed), self.target)
        if self.quality is not None and self.kind not in ("container", "stream", "colorspace", "hdr"):
            raise ValidationError("quality", f"does not apply to {self.target}", self.quality.name)
        if self.codec is not None:
            if self.kind != "container":
                raise ValidationError("codec", f"cannot be chosen for {self.target}", self.codec)
            if self.codec not in VIDEO_CODECS:
                raise ValidationError("codec", "choose one of: " + ", ".join(VIDEO_CODECS), self.codec)
            if self.codec == "copy" and self.quality is not None:
                raise ValidationError("quality", "cannot be combined with --codec copy")
        if self.gif is not None and self.kind not in ("gif", "animated-gif"):
            raise ValidationError("gif", "only applies to gif output")
        if (self.loop or self.optimize) and self.kind != "animated-gif":
            raise ValidationError("loop", "--loop and --optimize only apply to animated-gif")

    def accepts_modifiers(self) -> bool:
        return self.kind not in ("audio",) and self.codec != "copy"

    def output_hint(self) -> OutputHint:
        if self.kind == "container":
            return OutputHint("converted", self.target)
        if self.kind == "audio":
            return OutputHint("audio", self.target)
        if self.kind in ("gif", "animated-gif"):
            return OutputHint("animated" if self.kind == "animated-gif" else "converted", "gif")
        if self.kind in ("device", "platform"):
            return OutputHint(self.target, "mp4")
        if self.kind == "stream":
            return OutputHint(self.target, "m3u8" if self.target == "hls" else "mpd")
        if self.kind == "colorspace":
            return OutputHint(self.target)
        if self.kind == "hdr":
            return OutputHint("sdr")
        return OutputHint(self.kind, "mp4")


@dataclass(frozen=True, kw_only=True)
class Compress(SingleInput):
    """Size, bitrate or quality target; exactly one."""
    size_bytes: Optional[int] = None
    bitrate_bps: Optional[int] = None
    quality: Optional[QualityPreset] = None
    two_pass: bool = False

    family: ClassVar[str] = "compress"

    def _validate(self) -> None:
        super()._validate()
        _exactly_one(("size", "bitrate", "quality"),
                     (self.size_bytes, self.bitrate_bps, self.quality), "target")
        if self.size_bytes is not None and self.size_bytes <= 0:
            raise ValidationError("size", "must be positive", self.size_bytes)
        if self.bitrate_bps is not None and self.bitrate_bps <= 0:
            raise ValidationError("bitrate", "must be positive", self.bitrate_bps)
        if self.two_pass and self.quality is not None:
            raise ValidationError(
                "two-pass", "only applies to size or bitrate targets, not a quality preset",
            )

    def output_hint(self) -> OutputHint:
        return OutputHint("compressed", "mp4")


# ------------------------------------------------------------------ #
#   Temporal                                                         #
# ------------------------------------------------------------------ #

@dataclass(frozen=True, kw_only=True)
class Trim(SingleInput):
    start_ms: int = 0
    end_ms: Optional[int] = None
    duration_ms: Optional[int] = None
    audio_only: bool = False

    family: ClassVar[str] = "trim"

    def _validate(self) -> None:
        super()._validate()
        if self.start_ms < 0:
            raise ValidationError("start", "must not be negative", self.start_ms)
        if self.end_ms is not None and self.duration_ms is not None:
            raise ValidationError("end", "give either 'to' or 'duration', not both")
        if self.end_ms is not None and self.end_ms <= self.start_ms:
            raise ValidationError("end", "must come after start", self.end_ms)
        if self.duration_ms is not None and self.duration_ms <= 0:
            raise ValidationError("duration", "must be positive", self.duration_ms)
        if self.audio_only and self.end_ms is None and self.duration_ms is None:
            raise ValidationError("end", "an audio range needs an end")

    @property
    def length_ms(self) -> Optional[int]:
        if self.duration_ms is not None:
            return self.duration_ms
        if self.end_ms is not None:
            return self.end_ms - self.start_ms
        return None

    def accepts_modifiers(self) -> bool:
        return not self.audio_only

    def output_hint(self) -> OutputHint:
        if self.audio_only:
            return OutputHint("clip", "mp3")
        return OutputHint("trimmed")


SPEED_MODES = ("speed", "reverse", "timelapse", "audio")


@dataclass(frozen=True, kw_only=True)
class SpeedChange(SingleInput):
    factor: float = 1.0
    mode: str = "speed"
    keep_pitch: bool = False

    family: ClassVar[str] = "speed"

    def _validate(self) -> None:
        super()._validate()
        if self.mode not in SPEED_MODES:
            raise ValidationError("mode", "unknown speed mode", self.mode)
        if self.mode != "reverse":
            if not 0.01 <= self.factor <= 100:
                raise ValidationError("factor", "must be within 0.01x..100x", self.factor)
            if self.factor == 1.0:
                raise ValidationError("factor", "must differ from 1x", self.factor)
        if self.keep_pitch and self.mode != "audio":
            raise ValidationError("keep-pitch", "only applies to speed-audio")

    def accepts_modifiers(self) -> bool:
        return self.mode != "audio"

    def output_hint(self) -> OutputHint:
        if self.mode == "reverse":
            return OutputHint("reversed")
        if self.mode == "timelapse":
            return OutputHint("timelapse")
        if self.mode == "audio":
            return OutputHint("speed")
        return OutputHint("fast" if self.factor > 1 else "slow")


RETIME_MODES = ("fps", "interpolate", "loop")


@dataclass(frozen=True, kw_only=True)
class Retime(SingleInput):
    mode: str
    fps: Optional[float] = None
    count: Optional[int] = None

    family: ClassVar[str] = "retime"

    def _validate(self) -> None:
        super()._validate()
        if self.mode not in RETIME_MODES:
            raise ValidationError("mode", "unknown retime mode", self.mode)
        if self.mode == "loop":
            if self.count is None or not 2 <= self.count <= 1000:
                raise ValidationError("count", "must be within 2..1000", self.count)
        elif self.fps is None or not 1 <= self.fps <= 240:
            raise ValidationError("fps", "must be within 1..240", self.fps)

    def accepts_modifiers(self) -> bool:
        return self.mode != "loop"

    def output_hint(self) -> OutputHint:
        if self.mode == "loop":
            return OutputHint("looped")
        if self.mode == "interpolate":
            return OutputHint("interpolated")
        return OutputHint(f"{self.fps:g}fps")


@dataclass(frozen=True, kw_only=True)
class Split(SingleInput):
    interval_ms: Optional[int] = None
    parts: Optional[int] = None

    family: ClassVar[str] = "split"

    def _validate(self) -> None:
        super()._validate()
        _exactly_one(("every", "into"), (self.interval_ms, self.parts), "split")
        if self.interval_ms is not None and self.interval_ms < 100:
            raise ValidationError("every", "interval must be at least 0.1s", self.interval_ms)
        if self.parts is not None and not 2 <= self.parts <= 100:
            raise ValidationError("parts", "must be within 2..100", self.parts)

    def accepts_modifiers(self) -> bool:
        return False

    def output_hint(self) -> OutputHint:
        return OutputHint("part%03d", pattern=True)


# ------------------------------------------------------------------ #
#   Spatial                                                          #
# ------------------------------------------------------------------ #

@dataclass(frozen=True, kw_only=True)
class Resize(SingleInput):
    """``width``/``height`` may be -2 (keep aspect, even); ``factor`` scales both."""
    width: int = -2
    height: int = -2
    factor: Optional[float] = None
    label: str = "resized"

    family: ClassVar[str] = "resize"

    def _validate(self) -> None:
        super()._validate()
        if self.factor is not None:
            if not 0 < self.factor <= 10:
                raise ValidationError("target", "scale factor must be within 0..10", self.factor)
            return
        for name, value in (("width", self.width), ("height", self.height)):
            if value != -2 and value <= 0:
                raise ValidationError(name, "must be a positive integer", value)
        if self.width == -2 and self.height == -2:
            raise ValidationError("target", "give a width, a height or both")

    def output_hint(self) -> OutputHint:
        return OutputHint(self.label)


@dataclass(frozen=True, kw_only=True)
class Crop(SingleInput):
    width: Optional[int] = None
    height: Optional[int] = None
    x: Optional[int] = None
    y: Optional[int] = None
    shape: Optional[str] = None

    family: ClassVar[str] = "crop"

    def _validate(self) -> None:
        super()._validate()
        if self.shape is not None:
            if self.shape not in SOCIAL_SHAPES:
                raise ValidationError("shape", "choose one of: " + ", ".join(SOCIAL_SHAPES), self.shape)
            return
        if self.width is None or self.height is None or self.width <= 0 or self.height <= 0:
            raise ValidationError("size", "crop dimensions must be positive integers",
                                  f"{self.width}x{self.height}")
        if (self.x is None) != (self.y is None):
            raise ValidationError("at", "give both x and y")
        if self.x is not None and (self.x < 0 or self.y < 0):
            raise ValidationError("at", "offset must not be negative", f"{self.x},{self.y}")

    def output_hint(self) -> OutputHint:
        if self.shape == "circle":
            return OutputHint("circle", "webm")
        if self.shape == "square":
            return OutputHint("square")
        return OutputHint("cropped")


@dataclass(frozen=True, kw_only=True)
class Rotate(SingleInput):
    degrees: int

    family: ClassVar[str] = "rotate"

    def _validate(self) -> None:
        super()._validate()
        if self.degrees not in (90, 180, 270):
            raise ValidationError("degrees", "must be 90, 180 or 270", self.degrees)

    def output_hint(self) -> OutputHint:
        return OutputHint("rotated")


@dataclass(frozen=True, kw_only=True)
class Flip(SingleInput):
    direction: str

    family: ClassVar[str] = "flip"

    def _validate(self) -> None:
        super()._validate()
        if self.direction not in ORIENTATIONS:
            raise ValidationError("direction", "must be horizontal or vertical", self.direction)

    def output_hint(self) -> OutputHint:
        return OutputHint("mirrored" if self.verb == "mirror" else "flipped")


# ------------------------------------------------------------------ #
#   Audio                                                            #
# ------------------------------------------------------------------ #

AUDIO_ACTIONS = {
    "mute": "muted",
    "normalize": "normalized",
    "volume": "volume",
    "fade": "faded",
    "sync": "synced",
    "equalize": "eq",
    "reduce-noise": "clean",
    "remove-echo": "dry",
    "isolate-voice": "voice",
    "duck": "ducked",
}


@dataclass(frozen=True, kw_only=True)
class AudioAdjust(SingleInput):
    action: str
    level: Optional[float] = None
    gain_db: Optional[float] = None
    fade_in_ms: Optional[int] = None
    fade_out_ms: Optional[int] = None
    delay_ms: Optional[int] = None
    bass: Optional[float] = None
    mid: Optional[float] = None
    treble: Optional[float] = None
    trigger: Optional[str] = None

    family: ClassVar[str] = "audio"

    def _validate(self) -> None:
        super()._validate()
        if self.action not in AUDIO_ACTIONS:
            raise ValidationError("action", "unknown audio action", self.action)
        if self.action == "volume":
            _exactly_one(("to", "by"), (self.level, self.gain_db), "volume")
            if self.level is not None and not 0 <= self.level <= 10:
                raise ValidationError("to", "level must be within 0%..1000%", self.level)
        elif self.action == "fade":
            if self.fade_in_ms is None and self.fade_out_ms is None:
                raise ValidationError("fade", "give 'in' and/or 'out' durations")
            for name, value in (("in", self.fade_in_ms), ("out", self.fade_out_ms)):
                if value is not None and value <= 0:
                    raise ValidationError(name, "fade duration must be positive", value)
        elif self.action == "sync":
            if not self.delay_ms:
                raise ValidationError("delay", "give a non-zero 'delay' or 'advance'")
        elif self.action == "equalize":
            bands = (("bass", self.bass), ("mid", self.mid), ("treble", self.treble))
            if all(v is None for _, v in bands):
                raise ValidationError("equalize", "give at least one of --bass, --mid, --treble")
            for name, value in bands:
                if value is not None and not -20 <= value <= 20:
                    raise ValidationError(name, "gain must be within -20..20", value)

    def accepts_modifiers(self) -> bool:
        return False

    def output_hint(self) -> OutputHint:
        return OutputHint(AUDIO_ACTIONS[self.action])


# ------------------------------------------------------------------ #
#   Visual effects                                                   #
# ------------------------------------------------------------------ #

EFFECTS = (
    "filter", "grayscale", "blur", "vignette", "glitch", "vintage-film",
    "color-grade", "denoise", "stabilize", "motion-blur", "lens-correct",
    "add-timecode", "remove-background", "visualize",
)
DENOISE_STRENGTHS = ("light", "medium", "heavy")


@dataclass(frozen=True, kw_only=True)
class Effect(SingleInput):
    effect: str
    preset: Optional[str] = None
    brightness: Optional[float] = None
    contrast: Optional[float] = None
    saturation: Optional[float] = None
    region: Optional[tuple[int, int, int, int]] = None
    strength: Optional[str] = None
    intensity: Optional[float] = None
    size: Optional[float] = None
    color: Optional[str] = None
    similarity: Optional[float] = None

    family: ClassVar[str] = "effect"

    def _validate(self) -> None:
        super()._validate()
        if self.effect not in EFFECTS:
            raise ValidationError("effect", "unknown effect", self.effect)
        check = getattr(self, "_check_" + self.effect.replace("-", "_"), None)
        if check is not None:
            check()
        if self.intensity is not None and not 0 <= self.intensity <= 1:
            raise ValidationError("intensity", "must be within 0..1", self.intensity)
        if self.size is not None and not 0 < self.size <= 1:
            raise ValidationError("size", "must be within 0..1", self.size)

    def _check_filter(self) -> None:
        if self.preset is None and all(v is None for v in (self.brightness, self.contrast, self.saturation)):
            raise ValidationError("filter", "give --preset or --brightness/--contrast/--saturation")
        if self.preset is not None and self.preset not in COLOR_FILTER_PRESETS:
            raise ValidationError("preset", "choose one of: " + ", ".join(sorted(COLOR_FILTER_PRESETS)), self.preset)
        Modifiers(brightness=self.brightness, contrast=self.contrast, saturation=self.saturation)

    def _check_color_grade(self) -> None:
        if self.preset not in COLOR_GRADES:
            raise ValidationError("preset", "choose one of: " + ", ".join(COLOR_GRADES), self.preset)

    def _check_vintage_film(self) -> None:
        if self.preset not in FILM_ERAS:
            raise ValidationError("era", "choose one of: " + ", ".join(FILM_ERAS), self.preset)

    def _check_denoise(self) -> None:
        if self.strength not in DENOISE_STRENGTHS:
            raise ValidationError("strength", "choose one of: " + ", ".join(DENOISE_STRENGTHS), self.strength)

    def _check_visualize(self) -> None:
        if self.preset not in VISUALIZATIONS:
            raise ValidationError("style", "choose one of: " + ", ".join(VISUALIZATIONS), self.preset)

    def _check_remove_background(self) -> None:
        if not self.color:
            raise ValidationError("color", "a key colour is required")
        if self.similarity is not None and not 0 < self.similarity <= 1:
            raise ValidationError("similarity", "must be within 0..1", self.similarity)

    def output_hint(self) -> OutputHint:
        if self.effect == "visualize":
            return OutputHint("visualized", "mp4")
        if self.effect == "remove-background":
            return OutputHint("keyed", "webm")
        suffix = {
            "filter": self.preset or "filtered",
            "vintage-film": "vintage",
            "color-grade": self.preset or "graded",
            "add-timecode": "timecode",
        }.get(self.effect, self.effect.replace("-", "_"))
        return OutputHint(suffix.replace("-", "_"))


@dataclass(frozen=True, kw_only=True)
class TextOverlay(SingleInput):
    text: str = ""
    position: str = "bottom"
    font_size: int = 48
    color: str = "0xFFFFFF"
    animate: Optional[str] = None
    timestamp: bool = False

    family: ClassVar[str] = "text"

    def _validate(self) -> None:
        super()._validate()
        if not self.timestamp and not self.text.strip():
            raise ValidationError("text", "must not be empty")
        if not 8 <= self.font_size <= 500:
            raise ValidationError("font-size", "must be within 8..500", self.font_size)
        if self.animate is not None and self.animate not in TEXT_ANIMATIONS:
            raise ValidationError("animate", "choose one of: " + ", ".join(TEXT_ANIMATIONS), self.animate)
        if self.position not in TEXT_POSITIONS:
            raise ValidationError("at", "choose one of: " + ", ".join(TEXT_POSITIONS), self.position)

    def output_hint(self) -> OutputHint:
        return OutputHint("text")


# ------------------------------------------------------------------ #
#   Composition                                                      #
# ------------------------------------------------------------------ #

# kind -> (min inputs, max inputs, output suffix); None max = unbounded
COMPOSITE_KINDS: dict[str, tuple[int, Optional[int], str]] = {
    "watermark": (2, 2, "watermarked"),
    "pip": (2, 2, "pip"),
    "overlay": (2, 2, "overlay"),
    "split-screen": (2, 2, "split_screen"),
    "compare": (2, 2, "compare"),
    "crossfade": (2, 2, "crossfade"),
    "transition": (2, 2, "transition"),
    "add-audio": (2, 2, "with_audio"),
    "burn-subtitle": (2, 2, "subtitled"),
    "merge": (2, None, "merged"),
    "concat": (2, None, "concat"),
    "mix-audio": (2, None, "mixed"),
    "montage": (1, None, "montage"),
    "collage": (2, None, "collage"),
    "slideshow": (1, None, "slideshow"),
    "sync-cameras": (2, 16, "multicam"),
}


@dataclass(frozen=True, kw_only=True)
class Composite(Operation):
    """Many-input composition.  ``sources[0]`` is the base stream."""
    kind: str
    sources: tuple[str, ...]
    position: str = "bottom-right"
    opacity: Optional[float] = None
    size: Optional[float] = None
    layout: Optional[Dimensions] = None
    duration_ms: Optional[int] = None
    transition: str = "fade"
    orientation: str = "horizontal"

    family: ClassVar[str] = "composite"

    def _validate(self) -> None:
        if self.kind not in COMPOSITE_KINDS:
            raise ValidationError("kind", "unknown composition", self.kind)
        for path in self.sources:
            _require_path("inputs", path)
        low, high, _ = COMPOSITE_KINDS[self.kind]
        given = len(self.sources)
        if self.kind == "montage":
            if self.layout is None:
                raise ValidationError("layout", "montage needs a layout like 2x2")
            cells = self.layout.width * self.layout.height
            if given != cells:
                raise ValidationError("inputs", f"{cells} expected, {given} given")
        elif self.kind == "collage":
            if self.layout is None:
                raise ValidationError("layout", "collage needs a layout like 3x2")
            cells = self.layout.width * self.layout.height
            if not 2 <= given <= cells:
                raise ValidationError("inputs", f"2 to {cells} expected, {given} given")
        elif high == low and given != low:
            raise ValidationError("inputs", f"{low} expected, {given} given")
        elif given < low:
            raise ValidationError("inputs", f"at least {low} expected, {given} given")
        elif high is not None and given > high:
            raise ValidationError("inputs", f"at most {high} expected, {given} given")

        if self.opacity is not None and not 0 <= self.opacity <= 1:
            raise ValidationError("opacity", "must be within 0..1", self.opacity)
        if self.size is not None and not 0 < self.size <= 1:
            raise ValidationError("size", "must be within 0..1", self.size)
        if self.duration_ms is not None and self.duration_ms <= 0:
            raise ValidationError("duration", "must be positive", self.duration_ms)
        if self.transition not in TRANSITIONS:
            raise ValidationError("type", "choose one of: " + ", ".join(TRANSITIONS), self.transition)
        if self.orientation not in ORIENTATIONS:
            raise ValidationError("orientation", "must be horizontal or vertical", self.orientation)
        if self.position not in OVERLAY_POSITIONS:
            try:
                x, y = parse_point(self.position, "at")
            except ValidationError:
                raise ValidationError(
                    "at", "choose one of: " + ", ".join(OVERLAY_POSITIONS) + " or x,y", self.position,
                ) from None
            if x < 0 or y < 0:
                raise ValidationError("at", "offset must not be negative", self.position)
        if self.kind == "slideshow":
            for path in self.sources:
                if not is_image_path(path):
                    raise ValidationError("inputs", "slideshow takes images", path)

    def accepts_modifiers(self) -> bool:
        return self.kind not in ("merge", "concat", "add-audio", "mix-audio", "sync-cameras")

    @property
    def inputs(self) -> tuple[str, ...]:
        return self.sources

    def output_hint(self) -> OutputHint:
        suffix = COMPOSITE_KINDS[self.kind][2]
        if self.kind == "slideshow":
            return OutputHint(suffix, "mp4")
        return OutputHint(suffix)


# ------------------------------------------------------------------ #
#   Frames, analysis, metadata                                       #
# ------------------------------------------------------------------ #

FRAME_MODES = ("thumbnail", "thumbnails", "tile", "frames", "keyframes")


@dataclass(frozen=True, kw_only=True)
class FrameExtract(SingleInput):
    mode: str
    time_ms: int = 0
    layout: Optional[Dimensions] = None
    interval_ms: Optional[int] = None

    family: ClassVar[str] = "frames"

    def _validate(self) -> None:
        super()._validate()
        if self.mode not in FRAME_MODES:
            raise ValidationError("mode", "unknown frame extraction", self.mode)
        if self.mode in ("thumbnails", "tile") and self.layout is None:
            raise ValidationError("layout", "give a grid like 3x3")
        if self.mode == "frames" and (self.interval_ms is None or self.interval_ms <= 0):
            raise ValidationError("every", "interval must be positive", self.interval_ms)
        if self.time_ms < 0:
            raise ValidationError("at", "must not be negative", self.time_ms)

    def accepts_modifiers(self) -> bool:
        return self.mode in ("thumbnail", "frames")

    def output_hint(self) -> OutputHint:
        if self.mode == "thumbnail":
            return OutputHint("thumb", "jpg")
        if self.mode in ("thumbnails", "tile"):
            return OutputHint("contact_sheet" if self.mode == "thumbnails" else "tile", "jpg")
        if self.mode == "keyframes":
            return OutputHint("keyframe%04d", "png", pattern=True)
        return OutputHint("frame%04d", "png", pattern=True)


DETECT_KINDS = {
    "scenes": "scenes",
    "black": "black",
    "silence": "silence",
    "duplicates": "duplicates",
    "loudness": "loudness",
}


@dataclass(frozen=True, kw_only=True)
class Detect(SingleInput):
    """Analysis pass; the report is the tool's diagnostic stream saved to a file."""
    kind: str
    threshold: Optional[float] = None

    family: ClassVar[str] = "detect"

    def _validate(self) -> None:
        super()._validate()
        if self.kind not in DETECT_KINDS:
            raise ValidationError("kind", "unknown analysis", self.kind)
        if self.threshold is not None and self.kind == "scenes" and not 0 < self.threshold < 1:
            raise ValidationError("threshold", "scene threshold must be within 0..1", self.threshold)

    def accepts_modifiers(self) -> bool:
        return False

    def output_hint(self) -> OutputHint:
        return OutputHint(DETECT_KINDS[self.kind], "txt")


# action -> (output suffix, extension); None extension keeps the input's
METADATA_ACTIONS: dict[str, tuple[str, Optional[str]]] = {
    "set": ("tagged", None),
    "extract": ("metadata", None),
    "stats": ("stats", "json"),
    "validate": ("validation", "txt"),
    "edl": ("edl", "txt"),
}


@dataclass(frozen=True, kw_only=True)
class MetadataOp(SingleInput):
    """Tag writes and ffprobe/decode reports saved next to the input."""
    action: str
    key: Optional[str] = None
    value: Optional[str] = None
    format: str = "json"

    family: ClassVar[str] = "metadata"

    def _validate(self) -> None:
        super()._validate()
        if self.action not in METADATA_ACTIONS:
            raise ValidationError("action", "choose one of: " + ", ".join(METADATA_ACTIONS), self.action)
        if self.action == "set" and (not self.key or self.value is None):
            raise ValidationError("field", "set-metadata needs a field and a value")
        if self.format not in ("json", "xml"):
            raise ValidationError("format", "must be json or xml", self.format)

    def accepts_modifiers(self) -> bool:
        return False

    def output_hint(self) -> OutputHint:
        suffix, ext = METADATA_ACTIONS[self.action]
        if self.action == "extract":
            ext = self.format
        return OutputHint(suffix, ext)


REPAIR_KINDS = {
    "repair": "repaired",
    "fix-rotation": "fixed_rotation",
    "fix-framerate": "fixed_framerate",
}


@dataclass(frozen=True, kw_only=True)
class Repair(SingleInput):
    """Rewrite a damaged or awkward file; ``fps`` is the constant rate for fix-framerate."""
    kind: str
    fps: Optional[float] = None

    family: ClassVar[str] = "repair"

    def _validate(self) -> None:
        super()._validate()
        if self.kind not in REPAIR_KINDS:
            raise ValidationError("kind", "unknown repair", self.kind)
        if self.kind == "fix-framerate":
            if self.fps is None or not 1 <= self.fps <= 240:
                raise ValidationError("fps", "must be within 1..240", self.fps)
        elif self.fps is not None:
            raise ValidationError("fps", f"does not apply to {self.kind}", self.fps)

    def accepts_modifiers(self) -> bool:
        return False

    def output_hint(self) -> OutputHint:
        return OutputHint(REPAIR_KINDS[self.kind])


@dataclass(frozen=True, kw_only=True)
class Generate(Operation):
    resolution: Dimensions
    duration_ms: int
    rate: int = 30

    family: ClassVar[str] = "generate"

    def _validate(self) -> None:
        if not 0 < self.duration_ms <= 3_600_000:
            raise ValidationError("duration", "must be within 0..1h", self.duration_ms)
        if not 1 <= self.rate <= 240:
            raise ValidationError("rate", "must be within 1..240", self.rate)

    def accepts_modifiers(self) -> bool:
        return False

    def output_hint(self) -> OutputHint:
        return OutputHint(str(self.resolution), "mp4", stem="test_pattern")


REPORT_KINDS = ("info", "analyze-quality", "suggest-format", "doctor")


@dataclass(frozen=True, kw_only=True)
class Report(Operation):
    """Read-only text report printed by the engine; no process writes a file.

    ``doctor`` checks the toolchain and takes no input; the others describe
    one probed input.
    """
    kind: str
    input: Optional[str] = None

    family: ClassVar[str] = "report"

    def _validate(self) -> None:
        if self.kind not in REPORT_KINDS:
            raise ValidationError("kind", "unknown report", self.kind)
        if self.kind == "doctor":
            if self.input is not None:
                raise ValidationError("input", "doctor takes no input", self.input)
        else:
            _require_path("input", self.input)

    def accepts_modifiers(self) -> bool:
        return False

    @property
    def inputs(self) -> tuple[str, ...]:
        return (self.input,) if self.input else ()


# ------------------------------------------------------------------ #
#   Many inputs                                                      #
# ------------------------------------------------------------------ #

@dataclass(frozen=True, kw_only=True)
class Batch(Operation):
    """A template operation fanned out over every file a glob matches.

    ``template`` is the inner command's operation built with the glob as
    its input; ``template_tree`` is the parse tree it came from.
    """
    pattern: str
    template: Operation
    template_tree: object
    conditions: tuple = ()
    recursive: bool = False

    family: ClassVar[str] = "batch"

    def _validate(self) -> None:
        if not self.pattern:
            raise ValidationError("pattern", "a glob pattern is required")
        if isinstance(self.template, (Batch, Watch, Workflow, Report)):
            raise ValidationError("command", f"'{self.template.verb}' cannot run inside batch")

    def accepts_modifiers(self) -> bool:
        return False


@dataclass(frozen=True, kw_only=True)
class Watch(Operation):
    """Long-lived folder observer; ``command`` is the inner command without an input."""
    folder: str
    command: tuple = ()
    conditions: tuple = ()

    family: ClassVar[str] = "watch"

    def _validate(self) -> None:
        _require_path("folder", self.folder)
        if not self.command:
            raise ValidationError("command", "watch needs a command to run on new files")

    def accepts_modifiers(self) -> bool:
        return False


@dataclass(frozen=True, kw_only=True)
class Workflow(Operation):
    """Ordered chain of operations; each step reads the previous step's output."""
    source: str
    steps: tuple[Operation, ...] = ()

    family: ClassVar[str] = "workflow"

    def _validate(self) -> None:
        if not self.steps:
            raise ValidationError("steps", "a workflow needs at least one step")
        for step in self.steps:
            if isinstance(step, (Batch, Watch, Workflow, Report)):
                raise ValidationError("steps", f"'{step.verb}' cannot be a workflow step")
            if not step.inputs:
                continue
            if len(step.inputs) != 1 and not isinstance(step, Composite):
                raise ValidationError("steps", f"'{step.verb}' has no single input to chain")

    def accepts_modifiers(self) -> bool:
        return False

    @property
    def inputs(self) -> tuple[str, ...]:
        return self.steps[0].inputs

    def output_hint(self) -> OutputHint:
        return self.steps[-1].output_hint()


def with_input(op: Operation, path: str) -> Operation:
    """Copy of ``op`` reading ``path`` as its primary input (revalidated)."""
    if isinstance(op, SingleInput):
        return replace(op, input=path)
    if isinstance(op, Composite):
        return replace(op, sources=(path,) + tuple(op.sources[1:]))
    raise ValidationError(op.verb, "does not read an input file")
