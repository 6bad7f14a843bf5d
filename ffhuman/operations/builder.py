"""ParseTree → Operation.

One builder per grammar family, looked up through ``_BUILDERS``.  Builders
parse every raw slot and flag through ``units``/``presets`` and hand the
normalized values to the operation's constructor, which performs the
cross-field checks.  Flags a builder does not read are reported instead of
being silently dropped.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Optional

from ..errors import ValidationError
from ..grammar.resolver import ParseTree, extract_flags, get_resolver
from ..grammar.tokens import Token, TokenKind
from ..batch.conditions import parse_conditions
from . import presets
from .model import (
    AUDIO_FORMATS,
    CONTAINER_FORMATS,
    STREAM_FORMATS,
    AudioAdjust,
    Batch,
    Composite,
    Compress,
    Convert,
    Crop,
    Detect,
    Effect,
    Flip,
    FrameExtract,
    Generate,
    MetadataOp,
    Modifiers,
    Operation,
    Repair,
    Report,
    Resize,
    Retime,
    Rotate,
    SpeedChange,
    Split,
    TextOverlay,
    Trim,
    Watch,
    Workflow,
)
from .units import (
    format_bytes,
    is_bitrate,
    parse_bitrate,
    parse_db,
    parse_dimensions,
    parse_factor,
    parse_fps,
    parse_hex_color,
    parse_int,
    parse_layout,
    parse_number,
    parse_opacity,
    parse_percent,
    parse_point,
    parse_region,
    parse_size,
    parse_time,
)

logger = logging.getLogger("ffhuman")

MODIFIER_FLAGS = (
    "resize", "crop", "rotate", "flip", "brightness", "contrast",
    "saturation", "color", "text", "fps",
)


class _Args:
    """Slot and flag access that remembers which flags were read."""

    def __init__(self, tree: ParseTree):
        self.tree = tree
        self.used: set[str] = set()

    @property
    def verb(self) -> str:
        return self.tree.verb

    def slot(self, role: str, default: Any = None) -> Any:
        return self.tree.get(role, default)

    def flag(self, name: str, default: Optional[str] = None) -> Optional[str]:
        self.used.add(name)
        value = self.tree.flag(name, default)
        if name in self.tree.flags and value is None:
            raise ValidationError("--" + name, "needs a value")
        return value

    def switch(self, name: str) -> bool:
        self.used.add(name)
        return self.tree.bool_flag(name)

    def either(self, role: str, flag: Optional[str] = None, default: Optional[str] = None) -> Optional[str]:
        """Slot value, else ``--flag`` value, else default."""
        value = self.slot(role)
        from_flag = self.flag(flag or role)
        if value is not None:
            return value
        return from_flag if from_flag is not None else default

    def unused(self) -> list[str]:
        return sorted(set(self.tree.flags) - self.used)


def _signed_level(text: str, field: str, low: float, high: float) -> float:
    """``0.2``, ``+20%`` or ``-0.1`` → float."""
    raw = str(text).strip()
    if raw.endswith("%"):
        return parse_percent(raw, field, low=low * 100, high=high * 100)
    return parse_number(raw, field, low=low, high=high)


def _dimensions_or_alias(text: str, field: str) -> tuple[int, int]:
    key = str(text).strip().lower()
    if key in presets.RESOLUTIONS:
        return presets.RESOLUTIONS[key]
    dims = parse_dimensions(text, field)
    return dims.width, dims.height


def _modifiers(a: _Args) -> Modifiers:
    """Cross-cutting flags; a builder that already consumed a name keeps it."""
    values: dict[str, Any] = {}
    for name in MODIFIER_FLAGS:
        if name in a.used or name not in a.tree.flags:
            continue
        raw = a.flag(name)
        if name in ("resize", "crop"):
            values[name] = _dimensions_or_alias(raw, name)
        elif name == "rotate":
            degrees = parse_int(raw, name)
            values[name] = 270 if degrees == -90 else degrees
        elif name == "flip":
            values[name] = _direction(raw)
        elif name == "brightness":
            values[name] = _signed_level(raw, name, -1.0, 1.0)
        elif name in ("contrast", "saturation"):
            values[name] = _signed_level(raw, name, 0.0, 3.0)
        elif name == "color":
            values[name] = raw.strip().lower()
        elif name == "text":
            values[name] = raw
        elif name == "fps":
            values[name] = parse_fps(raw)
    return Modifiers(**values)


def _direction(text: str) -> str:
    key = str(text).strip().lower()
    if key in ("h", "horizontal", "horizontally", "left-right"):
        return "horizontal"
    if key in ("v", "vertical", "vertically", "upside-down", "top-bottom"):
        return "vertical"
    raise ValidationError("direction", "must be horizontal or vertical", text)


def _color(text: str, table: dict[str, str], field: str) -> str:
    hexed = parse_hex_color(text)
    if hexed:
        return hexed
    return presets.lookup(table, text, field)


# ------------------------------------------------------------------ #
#   Family builders                                                  #
# ------------------------------------------------------------------ #

def _b_convert(a: _Args) -> Operation:
    verb = a.verb
    path = a.slot("input")
    notes: list[str] = []
    quality = None
    gif = None

    if verb == "convert-colorspace":
        target = str(a.slot("colorspace")).lower()
        presets.lookup(presets.COLORSPACES, target, "colorspace")
        kind = "colorspace"
        notes.append(f"colorspace {target} -> {presets.COLORSPACES[target]} primaries, transfer and matrix")
    elif verb == "convert-hdr":
        target = str(a.slot("target") or "sdr").lower()
        if target != "sdr":
            raise ValidationError("to", "HDR conversion only targets sdr", target)
        kind = "hdr"
        notes.append("hdr -> zscale linearize, hable tonemap, bt709")
    elif verb == "extract-audio":
        target = str(a.either("format", default="mp3")).lower()
        kind = "audio"
    elif verb in ("proxy", "preview"):
        target = kind = verb
        notes.append({
            "proxy": "proxy -> 1280x720, ultrafast preset, CRF 28",
            "preview": "preview -> first 10s, 640px wide, CRF 28, 64k audio",
        }[verb])
    else:
        target = str(a.slot("format")).lower().lstrip(".")
        if target in CONTAINER_FORMATS:
            kind = "container"
        elif target in AUDIO_FORMATS:
            kind = "audio"
        elif target in ("gif", "animated-gif"):
            kind = target
        elif target in presets.DEVICES:
            kind = "device"
            notes.append(presets.DEVICES[target].description)
        elif target in STREAM_FORMATS:
            kind = "stream"
        elif target in presets.PLATFORMS:
            kind = "platform"
            notes.append(presets.PLATFORMS[target].description)
        elif target in presets.COLORSPACES:
            kind = "colorspace"
        elif target == "sdr":
            kind = "hdr"
        else:
            choices = (CONTAINER_FORMATS + AUDIO_FORMATS + ("gif", "animated-gif")
                       + tuple(presets.DEVICES) + STREAM_FORMATS + tuple(presets.PLATFORMS))
            raise ValidationError("format", "choose one of: " + ", ".join(choices), target)

    raw_quality = a.either("quality")
    if raw_quality is not None:
        if kind in ("gif", "animated-gif"):
            name = str(raw_quality).lower().removesuffix("-quality")
            gif = presets.lookup(presets.GIF_PRESETS, name, "quality")
        else:
            quality = presets.resolve_quality(raw_quality)
    if kind in ("gif", "animated-gif"):
        gif = gif or presets.GIF_PRESETS["medium"]
        notes.append(gif.description)
    if quality is not None:
        notes.append(quality.description)

    codec = a.flag("codec")
    return Convert(
        verb=verb, input=path, kind=kind, target=target,
        quality=quality, gif=gif,
        codec=codec.lower() if codec else None,
        loop=a.switch("loop"), optimize=a.switch("optimize"),
        modifiers=_modifiers(a), notes=tuple(notes),
    )


def _b_compress(a: _Args) -> Operation:
    target = str(a.slot("target"))
    size = bitrate = quality = None
    notes: list[str] = []
    if is_bitrate(target):
        bitrate = parse_bitrate(target, "target")
        notes.append(f"target {target} -> {bitrate} bit/s")
    elif presets.is_quality_name(target):
        quality = presets.resolve_quality(target, "target")
        notes.append(quality.description)
    else:
        size = parse_size(target, "target")
        notes.append(f"target {target} -> {size} bytes ({format_bytes(size)})")
    return Compress(
        verb=a.verb, input=a.slot("input"),
        size_bytes=size, bitrate_bps=bitrate, quality=quality,
        two_pass=a.switch("two-pass"),
        modifiers=_modifiers(a), notes=tuple(notes),
    )


def _b_trim(a: _Args) -> Operation:
    start = parse_time(a.slot("start"), "from")
    end = a.slot("end")
    duration = a.either("duration")
    return Trim(
        verb=a.verb, input=a.slot("input"), start_ms=start,
        end_ms=parse_time(end, "to") if end is not None else None,
        duration_ms=parse_time(duration, "duration") if duration is not None else None,
        audio_only=a.verb == "extract-audio-range",
        modifiers=_modifiers(a),
    )


def _b_speed(a: _Args) -> Operation:
    verb = a.verb
    path = a.slot("input")
    if verb == "reverse":
        return SpeedChange(verb=verb, input=path, mode="reverse", modifiers=_modifiers(a))
    if verb == "timelapse":
        factor = parse_factor(a.either("factor", "speed", default="10"), "speed")
        return SpeedChange(verb=verb, input=path, factor=factor, mode="timelapse",
                           modifiers=_modifiers(a), notes=(f"timelapse -> keep 1 of every {factor:g} frames",))
    factor = parse_factor(a.slot("factor"), "by")
    if verb == "speed-up" and factor <= 1:
        raise ValidationError("by", "speed-up needs a factor above 1x", a.slot("factor"))
    if verb == "slow-down":
        if factor == 1:
            raise ValidationError("by", "slow-down needs a factor other than 1x", a.slot("factor"))
        factor = 1 / factor if factor > 1 else factor
    if verb == "speed-audio":
        return SpeedChange(verb=verb, input=path, factor=factor, mode="audio",
                           keep_pitch=a.switch("keep-pitch"), modifiers=_modifiers(a))
    return SpeedChange(verb=verb, input=path, factor=factor, mode="speed", modifiers=_modifiers(a))


def _b_retime(a: _Args) -> Operation:
    verb = a.verb
    if verb == "loop":
        return Retime(verb=verb, input=a.slot("input"), mode="loop",
                      count=parse_int(a.slot("count"), "count"), modifiers=_modifiers(a))
    mode = "interpolate" if verb == "interpolate" else "fps"
    return Retime(verb=verb, input=a.slot("input"), mode=mode,
                  fps=parse_fps(a.slot("fps"), "to"), modifiers=_modifiers(a))


def _b_split(a: _Args) -> Operation:
    every = a.slot("interval")
    parts = a.slot("parts")
    return Split(
        verb=a.verb, input=a.slot("input"),
        interval_ms=parse_time(every, "every") if every is not None else None,
        parts=parse_int(parts, "into") if parts is not None else None,
        modifiers=_modifiers(a),
    )


def _b_resize(a: _Args) -> Operation:
    target = str(a.slot("target")).strip()
    key = target.lower()
    if key in presets.RESOLUTIONS:
        width, height = presets.RESOLUTIONS[key]
        return Resize(verb=a.verb, input=a.slot("input"), width=width, height=height, label=key,
                      modifiers=_modifiers(a), notes=(f"{key} -> {width}x{height}",))
    if key.endswith("%"):
        factor = parse_percent(key, "to", low=1, high=1000)
        return Resize(verb=a.verb, input=a.slot("input"), factor=factor, modifiers=_modifiers(a))
    if key.isdigit():
        return Resize(verb=a.verb, input=a.slot("input"), width=int(key), modifiers=_modifiers(a))
    if key.startswith("x") and key[1:].isdigit():
        return Resize(verb=a.verb, input=a.slot("input"), height=int(key[1:]), modifiers=_modifiers(a))
    try:
        dims = parse_dimensions(key, "to")
    except ValidationError:
        raise ValidationError(
            "to", "expected WxH, a width, a percentage or one of: " + ", ".join(presets.RESOLUTIONS),
            target,
        ) from None
    return Resize(verb=a.verb, input=a.slot("input"), width=dims.width, height=dims.height,
                  modifiers=_modifiers(a))


def _b_crop(a: _Args) -> Operation:
    if a.verb == "social-crop":
        shape = str(a.slot("shape")).lower()
        return Crop(verb=a.verb, input=a.slot("input"), shape=shape, modifiers=_modifiers(a))
    width, height = _dimensions_or_alias(a.slot("size"), "to")
    offset = a.slot("offset")
    x = y = None
    if offset is not None:
        x, y = parse_point(offset, "at")
    return Crop(verb=a.verb, input=a.slot("input"), width=width, height=height, x=x, y=y,
                modifiers=_modifiers(a))


def _b_rotate(a: _Args) -> Operation:
    raw = str(a.slot("degrees")).lower().removesuffix("deg").removesuffix("°")
    degrees = parse_int(raw, "degrees")
    if degrees < 0:
        degrees += 360
    return Rotate(verb=a.verb, input=a.slot("input"), degrees=degrees, modifiers=_modifiers(a))


def _b_flip(a: _Args) -> Operation:
    return Flip(verb=a.verb, input=a.slot("input"), direction=_direction(a.slot("direction")),
                modifiers=_modifiers(a))


_AUDIO_VERBS = {
    "mute": "mute",
    "normalize": "normalize",
    "adjust-volume": "volume",
    "fade": "fade",
    "sync-audio": "sync",
    "equalize-audio": "equalize",
    "reduce-noise": "reduce-noise",
    "remove-echo": "remove-echo",
    "isolate-voice": "isolate-voice",
    "duck-audio": "duck",
}


def _band(a: _Args, name: str) -> Optional[float]:
    raw = a.flag(name)
    if raw is None:
        return None
    raw = str(raw).strip()
    if raw.lower().endswith("db"):
        return parse_db(raw, name)
    return parse_number(raw, name)


def _b_audio(a: _Args) -> Operation:
    action = _AUDIO_VERBS[a.verb]
    kwargs: dict[str, Any] = {}
    if action == "volume":
        level = a.slot("level")
        delta = a.slot("delta")
        if level is not None:
            raw = str(level).strip()
            if raw.lower().endswith("db"):
                kwargs["gain_db"] = parse_db(raw, "to")
            elif raw.endswith("%"):
                kwargs["level"] = parse_percent(raw, "to", high=1000)
            else:
                kwargs["level"] = parse_number(raw, "to", low=0, high=10)
        if delta is not None:
            raw = str(delta).strip()
            if raw.endswith("%"):
                kwargs["level"] = 1 + parse_percent(raw, "by", low=-100, high=900)
            else:
                kwargs["gain_db"] = parse_db(raw, "by")
    elif action == "fade":
        fade_in = a.either("fade_in", "in")
        fade_out = a.either("fade_out", "out")
        kwargs["fade_in_ms"] = parse_time(fade_in, "in") if fade_in is not None else None
        kwargs["fade_out_ms"] = parse_time(fade_out, "out") if fade_out is not None else None
    elif action == "sync":
        delay = a.either("delay")
        advance = a.either("advance")
        if delay is not None and advance is not None:
            raise ValidationError("delay", "give either 'delay' or 'advance', not both")
        if delay is not None:
            kwargs["delay_ms"] = parse_time(delay, "delay")
        elif advance is not None:
            kwargs["delay_ms"] = -parse_time(advance, "advance")
    elif action == "equalize":
        kwargs.update(bass=_band(a, "bass"), mid=_band(a, "mid"), treble=_band(a, "treble"))
    elif action == "duck":
        trigger = a.slot("trigger")
        if trigger:
            kwargs["trigger"] = " ".join(t.text for t in trigger)
    return AudioAdjust(verb=a.verb, input=a.slot("input"), action=action,
                       modifiers=_modifiers(a), **kwargs)


def _b_effect(a: _Args) -> Operation:
    verb = a.verb
    kwargs: dict[str, Any] = {}
    notes: list[str] = []

    if verb == "vignette":
        intensity = a.flag("intensity")
        if intensity is not None:
            kwargs["intensity"] = parse_opacity(intensity, "intensity")
        size = a.flag("size")
        if size is not None:
            kwargs["size"] = parse_opacity(size, "size")
    elif verb == "filter":
        preset = a.flag("preset")
        if preset is not None:
            kwargs["preset"] = preset.lower()
            notes.append(presets.lookup(presets.COLOR_FILTER_PRESETS, preset, "preset").description)
        for name, low, high in (("brightness", -1.0, 1.0), ("contrast", 0.0, 3.0), ("saturation", 0.0, 3.0)):
            raw = a.flag(name)
            if raw is not None:
                kwargs[name] = _signed_level(raw, name, low, high)
    elif verb == "blur":
        region = a.either("region")
        if region is not None:
            kwargs["region"] = parse_region(region, "region")
    elif verb == "vintage-film":
        era = str(a.flag("era", "classic")).lower()
        kwargs["preset"] = era
        notes.append(presets.lookup(presets.FILM_ERAS, era, "era").description)
    elif verb == "color-grade":
        preset, style = a.flag("preset"), a.flag("style")
        grade = str(preset or style or "cinematic").lower()
        kwargs["preset"] = grade
        notes.append(presets.lookup(presets.COLOR_GRADES, grade, "preset").description)
    elif verb == "denoise":
        kwargs["strength"] = str(a.flag("strength", "medium")).lower()
    elif verb == "remove-background":
        color = a.either("color", default="green")
        kwargs["color"] = _color(color, presets.CHROMA_COLORS, "color")
        similarity = a.flag("similarity")
        if similarity is not None:
            kwargs["similarity"] = parse_number(similarity, "similarity", low=0.01, high=1.0)
    elif verb == "visualize":
        kwargs["preset"] = str(a.flag("style", "waveform")).lower()

    return Effect(verb=verb, input=a.slot("input"), effect=verb,
                  modifiers=_modifiers(a), notes=tuple(notes), **kwargs)


def _b_text(a: _Args) -> Operation:
    color = a.flag("color")
    font_size = a.flag("font-size")
    animate = a.flag("animate")
    return TextOverlay(
        verb=a.verb, input=a.slot("input"), text=a.slot("text") or "",
        position=str(a.either("position", default="bottom")).lower(),
        font_size=parse_int(font_size, "font-size") if font_size is not None else 48,
        color=_color(color, presets.TEXT_COLORS, "color") if color is not None else "0xFFFFFF",
        animate=animate.lower() if animate else None,
        timestamp=a.switch("timestamp"),
        modifiers=_modifiers(a),
    )


_COMPOSITE_VERBS = {
    "watermark": "watermark",
    "pip": "pip",
    "overlay": "overlay",
    "split-screen": "split-screen",
    "compare": "compare",
    "montage": "montage",
    "collage": "collage",
    "crossfade": "crossfade",
    "transition": "transition",
    "merge": "merge",
    "concat": "concat",
    "add": "add-audio",
    "mix-audio": "mix-audio",
    "burn-subtitle": "burn-subtitle",
    "slideshow": "slideshow",
    "sync-cameras": "sync-cameras",
}


def _b_composite(a: _Args) -> Operation:
    verb = a.verb
    kind = _COMPOSITE_VERBS[verb]
    if kind == "watermark":
        sources = (a.slot("input"), a.slot("logo"))
    elif kind in ("pip", "overlay"):
        sources = (a.slot("base"), a.slot("overlay"))
    elif kind == "transition":
        sources = (a.slot("first"), a.slot("second"))
    elif kind == "add-audio":
        sources = (a.slot("video"), a.slot("audio"))
    elif kind == "burn-subtitle":
        sources = (a.slot("input"), a.slot("subtitle"))
    else:
        sources = tuple(a.slot("inputs") or ())

    kwargs: dict[str, Any] = {}
    position = a.either("position")
    if position is not None:
        kwargs["position"] = str(position).lower()
    opacity = a.either("opacity")
    if opacity is not None:
        kwargs["opacity"] = parse_opacity(opacity)
    size = a.flag("size")
    if size is not None:
        kwargs["size"] = parse_opacity(size, "size")
    layout = a.either("layout")
    if layout is not None:
        kwargs["layout"] = parse_layout(layout)
    duration = a.either("duration")
    if duration is not None:
        kwargs["duration_ms"] = parse_time(duration, "duration")
    transition = a.flag("type")
    if transition is not None:
        kwargs["transition"] = transition.lower()
    orientation = a.flag("orientation")
    if orientation is not None:
        kwargs["orientation"] = _direction(orientation)

    notes = ()
    if kind in ("crossfade", "transition"):
        name = kwargs.get("transition", "fade")
        notes = (f"transition {name} -> xfade={presets.lookup(presets.TRANSITIONS, name, 'type')}",)
    return Composite(verb=verb, kind=kind, sources=sources, modifiers=_modifiers(a),
                     notes=notes, **kwargs)


_FRAME_VERBS = {
    "thumbnail": "thumbnail",
    "thumbnails": "thumbnails",
    "tile": "tile",
    "extract-frames": "frames",
    "extract-keyframes": "keyframes",
}


def _b_frames(a: _Args) -> Operation:
    mode = _FRAME_VERBS[a.verb]
    time = a.either("time")
    layout = a.slot("layout")
    interval = a.slot("interval")
    return FrameExtract(
        verb=a.verb, input=a.slot("input"), mode=mode,
        time_ms=parse_time(time, "at") if time is not None else 0,
        layout=parse_layout(layout) if layout is not None else None,
        interval_ms=parse_time(interval, "every") if interval is not None else None,
        modifiers=_modifiers(a),
    )


def _b_detect(a: _Args) -> Operation:
    kind = {
        "detect-scenes": "scenes",
        "detect-black": "black",
        "detect-silence": "silence",
        "detect-duplicates": "duplicates",
        "analyze-loudness": "loudness",
    }[a.verb]
    threshold = a.flag("threshold")
    return Detect(
        verb=a.verb, input=a.slot("input"), kind=kind,
        threshold=parse_number(threshold, "threshold") if threshold is not None else None,
        modifiers=_modifiers(a),
    )


_METADATA_VERBS = {
    "extract-metadata": "extract",
    "stats": "stats",
    "validate": "validate",
    "export-edl": "edl",
}


def _b_metadata(a: _Args) -> Operation:
    if a.verb == "extract-metadata":
        return MetadataOp(verb=a.verb, input=a.slot("input"), action="extract",
                          format=str(a.flag("format", "json")).lower(), modifiers=_modifiers(a))
    if a.verb in _METADATA_VERBS:
        return MetadataOp(verb=a.verb, input=a.slot("input"), action=_METADATA_VERBS[a.verb],
                          modifiers=_modifiers(a))
    key = presets.lookup(presets.METADATA_FIELDS, a.slot("field"), "field")
    return MetadataOp(verb=a.verb, input=a.slot("input"), action="set",
                      key=key, value=a.slot("value"), modifiers=_modifiers(a))


def _b_repair(a: _Args) -> Operation:
    fps = None
    if a.verb == "fix-framerate":
        fps = parse_fps(a.either("fps", default="30"))
    return Repair(verb=a.verb, input=a.slot("input"), kind=a.verb, fps=fps,
                  modifiers=_modifiers(a))


def _b_report(a: _Args) -> Operation:
    return Report(verb=a.verb, kind=a.verb, input=a.slot("input"), modifiers=_modifiers(a))


def _b_generate(a: _Args) -> Operation:
    width, height = _dimensions_or_alias(a.slot("resolution"), "resolution")
    rate = a.flag("rate")
    return Generate(
        verb=a.verb,
        resolution=parse_dimensions(f"{width}x{height}", "resolution"),
        duration_ms=parse_time(a.slot("duration"), "duration"),
        rate=parse_int(rate, "rate") if rate is not None else 30,
        modifiers=_modifiers(a),
    )


# ------------------------------------------------------------------ #
#   Many-input builders                                              #
# ------------------------------------------------------------------ #

def _condition_text(a: _Args, extra: dict[str, Optional[str]]) -> Optional[str]:
    parts = []
    tokens = a.slot("condition")
    if tokens:
        parts.append(" ".join(t.text for t in tokens))
    if extra.get("if"):
        parts.append(extra["if"])
    return " and ".join(parts) or None


def _b_batch(a: _Args) -> Operation:
    extra, command = extract_flags(a.slot("command"), ("if", "recursive"))
    inner = get_resolver().resolve(command)
    if inner.family in ("batch", "watch", "workflow", "report"):
        raise ValidationError("command", f"'{inner.verb}' cannot run inside batch")
    pattern = inner.get("input")
    if not isinstance(pattern, str):
        raise ValidationError("command", f"'{inner.verb}' has no single input to batch over")
    template = build_operation(inner)
    text = _condition_text(a, extra)
    return Batch(
        verb=a.verb, pattern=pattern, template=template, template_tree=inner,
        conditions=parse_conditions(text) if text else (),
        recursive="recursive" in extra or "**" in pattern,
    )


def _b_watch(a: _Args) -> Operation:
    extra, command = extract_flags(a.slot("command"), ("if",))
    folder = a.slot("folder")
    # Checked once up front with a stand-in file; resolved again per new file.
    checked = build_operation(get_resolver().resolve(insert_subject(command, "incoming.mp4")))
    if isinstance(checked, (Batch, Watch, Workflow, Report)):
        raise ValidationError("command", f"'{checked.verb}' cannot run inside watch")
    text = _condition_text(a, extra)
    return Watch(
        verb=a.verb, folder=folder, command=tuple(command),
        conditions=parse_conditions(text) if text else (),
    )


def _b_workflow(a: _Args) -> Operation:
    from ..batch.workflow import load_workflow

    source = a.slot("input")
    return load_workflow(a.slot("file"), source, kind=a.verb)


def insert_subject(command: list[Token], path: str) -> list[Token]:
    """Put ``path`` right after the verb of a command that omits its input."""
    _, consumed = get_resolver().lookup_verb(list(command))
    subject = Token(TokenKind.PATH, path, command[consumed - 1].position)
    return list(command[:consumed]) + [subject] + list(command[consumed:])


_BUILDERS: dict[str, Callable[[_Args], Operation]] = {
    "convert": _b_convert,
    "compress": _b_compress,
    "trim": _b_trim,
    "speed": _b_speed,
    "retime": _b_retime,
    "split": _b_split,
    "resize": _b_resize,
    "crop": _b_crop,
    "rotate": _b_rotate,
    "flip": _b_flip,
    "audio": _b_audio,
    "effect": _b_effect,
    "text": _b_text,
    "composite": _b_composite,
    "frames": _b_frames,
    "detect": _b_detect,
    "metadata": _b_metadata,
    "generate": _b_generate,
    "repair": _b_repair,
    "report": _b_report,
    "batch": _b_batch,
    "watch": _b_watch,
    "workflow": _b_workflow,
}


def build_operation(tree: ParseTree) -> Operation:
    """Build and validate the operation a parse tree describes.

    Raises:
        ValidationError: malformed values, unknown presets, wrong input
            counts, or flags the verb does not understand.
    """
    builder = _BUILDERS.get(tree.family)
    if builder is None:
        raise ValidationError("verb", "no operation for this command", tree.verb)
    args = _Args(tree)
    op = builder(args)
    unused = args.unused()
    if unused:
        raise ValidationError(
            "--" + unused[0], f"is not an option of '{tree.verb}'",
        )
    logger.debug("Built %s from '%s'", type(op).__name__, tree.verb)
    return op
