"""Declarative command grammar.

Every command shape is one ``GrammarRule`` row: a verb plus a pattern.
Adding a command means adding a row here and a builder in
``operations/builder.py``; the resolver itself never changes.

Pattern syntax
--------------
``{role}``           positional slot (kind ``value``)
``{role:path}``      positional slot that must look like a file or glob
``{role:text}``      free text (quoted strings, words, numbers)
``{role:rest}``      capture every remaining token verbatim (nested commands)
``{role+:path}``     variadic slot; ``and`` between items is skipped
``key {role}``       keyed slot: a word immediately before a slot is its key;
                     keyed slots may appear anywhere after the verb
``word``             literal that must appear in order
``[ ... ]``          optional group
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Optional, Union

SLOT_KINDS = ("value", "path", "text", "rest")

_SLOT_RE = re.compile(r"^\{(?P<role>[a-z_]+)(?P<plus>\+)?(?::(?P<kind>[a-z]+))?\}$")


@dataclass(frozen=True)
class Slot:
    """A value-bearing position in a pattern."""
    role: str
    kind: str = "value"
    variadic: bool = False
    optional: bool = False
    key: Optional[str] = None


@dataclass(frozen=True)
class Literal:
    """A fixed word that must appear in sequence."""
    word: str
    optional: bool = False


Element = Union[Slot, Literal]


def _split_groups(pattern: str) -> list[tuple[list[str], bool]]:
    """Split a pattern into (words, optional) groups."""
    groups: list[tuple[list[str], bool]] = []
    current: list[str] = []
    in_group = False
    for word in pattern.replace("[", " [ ").replace("]", " ] ").split():
        if word == "[":
            if in_group:
                raise ValueError(f"nested optional group in pattern {pattern!r}")
            if current:
                groups.append((current, False))
            current, in_group = [], True
        elif word == "]":
            if not in_group:
                raise ValueError(f"unbalanced ']' in pattern {pattern!r}")
            groups.append((current, True))
            current, in_group = [], False
        else:
            current.append(word)
    if in_group:
        raise ValueError(f"unbalanced '[' in pattern {pattern!r}")
    if current:
        groups.append((current, False))
    return groups


def parse_pattern(pattern: str) -> tuple[dict[str, Slot], tuple[Element, ...]]:
    """Compile a pattern string into keyed slots and an ordered sequence."""
    keyed: dict[str, Slot] = {}
    sequence: list[Element] = []

    for words, optional in _split_groups(pattern):
        i = 0
        while i < len(words):
            word = words[i]
            m = _SLOT_RE.match(word)
            if m:
                kind = m.group("kind") or "value"
                if kind not in SLOT_KINDS:
                    raise ValueError(f"unknown slot kind {kind!r} in pattern {pattern!r}")
                sequence.append(Slot(
                    role=m.group("role"), kind=kind,
                    variadic=bool(m.group("plus")), optional=optional,
                ))
                i += 1
                continue
            if word.startswith("{"):
                raise ValueError(f"malformed slot {word!r} in pattern {pattern!r}")
            nxt = _SLOT_RE.match(words[i + 1]) if i + 1 < len(words) else None
            if nxt:
                key = word.lower()
                if key in keyed:
                    raise ValueError(f"duplicate key {key!r} in pattern {pattern!r}")
                keyed[key] = Slot(
                    role=nxt.group("role"), kind=nxt.group("kind") or "value",
                    variadic=bool(nxt.group("plus")), optional=optional, key=key,
                )
                i += 2
            else:
                sequence.append(Literal(word.lower(), optional=optional))
                i += 1
    return keyed, tuple(sequence)


@dataclass(frozen=True)
class GrammarRule:
    """One recognized command shape."""
    verb: str
    pattern: str
    family: str
    keyed: dict[str, Slot] = field(init=False, repr=False, compare=False, hash=False)
    sequence: tuple[Element, ...] = field(init=False, repr=False, compare=False, hash=False)

    def __post_init__(self):
        keyed, sequence = parse_pattern(self.pattern)
        object.__setattr__(self, "keyed", keyed)
        object.__setattr__(self, "sequence", sequence)

    @property
    def roles(self) -> set[str]:
        roles = {s.role for s in self.keyed.values()}
        roles.update(e.role for e in self.sequence if isinstance(e, Slot))
        return roles

    @property
    def usage(self) -> str:
        return f"{self.verb} {self.pattern}".strip()


def R(verb: str, pattern: str, family: str) -> GrammarRule:
    return GrammarRule(verb=verb, pattern=pattern, family=family)


_ONE = "{input:path}"

# ------------------------------------------------------------------ #
#   The command table                                                #
# ------------------------------------------------------------------ #

RULES: list[GrammarRule] = [
    # ── Encoding / container ──────────────────────────────────────
    R("convert", "{input:path} to {format} [quality {quality}]", "convert"),
    R("convert-colorspace", "{input:path} to {colorspace}", "convert"),
    R("convert-hdr", "{input:path} [to {target}]", "convert"),
    R("extract-audio", "{input:path} [to {format}]", "convert"),
    R("proxy", _ONE, "convert"),
    R("preview", _ONE, "convert"),
    R("compress", "{input:path} to {target}", "compress"),

    # ── Temporal ──────────────────────────────────────────────────
    R("trim", "{input:path} from {start} [to {end}] [duration {duration}]", "trim"),
    R("extract-audio-range", "{input:path} from {start} to {end}", "trim"),
    R("speed-up", "{input:path} by {factor}", "speed"),
    R("slow-down", "{input:path} by {factor}", "speed"),
    R("timelapse", "{input:path} [speed {factor}]", "speed"),
    R("speed-audio", "{input:path} by {factor}", "speed"),
    R("reverse", _ONE, "speed"),
    R("fps", "{input:path} to {fps}", "retime"),
    R("interpolate", "{input:path} to {fps}", "retime"),
    R("loop", "{input:path} {count} [times]", "retime"),
    R("split", "{input:path} every {interval}", "split"),
    R("split", "{input:path} into {parts} [parts]", "split"),

    # ── Spatial ───────────────────────────────────────────────────
    R("resize", "{input:path} to {target}", "resize"),
    R("crop", "{input:path} to {size} [at {offset}]", "crop"),
    R("social-crop", "{input:path} {shape}", "crop"),
    R("rotate", "{input:path} by {degrees}", "rotate"),
    R("rotate", "{input:path} {degrees}", "rotate"),
    R("flip", "{input:path} {direction}", "flip"),
    R("mirror", "{input:path} {direction}", "flip"),

    # ── Audio ─────────────────────────────────────────────────────
    R("mute", _ONE, "audio"),
    R("normalize", _ONE, "audio"),
    R("adjust-volume", "{input:path} [to {level}] [by {delta}]", "audio"),
    R("fade", "{input:path} [in {fade_in}] [out {fade_out}]", "audio"),
    R("sync-audio", "{input:path} [delay {delay}] [advance {advance}]", "audio"),
    R("equalize-audio", _ONE, "audio"),
    R("reduce-noise", _ONE, "audio"),
    R("remove-echo", _ONE, "audio"),
    R("isolate-voice", _ONE, "audio"),
    R("duck-audio", "{input:path} [when {trigger:rest}]", "audio"),

    # ── Visual effects ────────────────────────────────────────────
    R("filter", _ONE, "effect"),
    R("grayscale", _ONE, "effect"),
    R("blur", "{input:path} [region {region}]", "effect"),
    R("vignette", _ONE, "effect"),
    R("glitch", _ONE, "effect"),
    R("vintage-film", _ONE, "effect"),
    R("color-grade", _ONE, "effect"),
    R("denoise", _ONE, "effect"),
    R("stabilize", _ONE, "effect"),
    R("motion-blur", _ONE, "effect"),
    R("lens-correct", _ONE, "effect"),
    R("add-timecode", _ONE, "effect"),
    R("remove-background", "{input:path} [color {color}]", "effect"),
    R("visualize", _ONE, "effect"),
    R("add-text", "{input:path} {text:text} [at {position}]", "text"),

    # ── Composition ───────────────────────────────────────────────
    R("watermark", "{input:path} {logo:path} [at {position}]", "composite"),
    R("pip", "{overlay:path} on {base:path} [at {position}]", "composite"),
    R("overlay", "{overlay:path} on {base:path} [at {position}] [opacity {opacity}]", "composite"),
    R("split-screen", "{inputs+:path}", "composite"),
    R("compare", "{inputs+:path}", "composite"),
    R("montage", "layout {layout} {inputs+:path}", "composite"),
    R("collage", "layout {layout} {inputs+:path}", "composite"),
    R("crossfade", "{inputs+:path} [duration {duration}]", "composite"),
    R("transition", "{first:path} to {second:path}", "composite"),
    R("merge", "{inputs+:path}", "composite"),
    R("concat", "{inputs+:path}", "composite"),
    R("add", "{audio:path} to {video:path}", "composite"),
    R("mix-audio", "{inputs+:path}", "composite"),
    R("burn-subtitle", "{input:path} {subtitle:path}", "composite"),
    R("slideshow", "duration {duration} {inputs+:path}", "composite"),
    R("slideshow", "{inputs+:path}", "composite"),
    R("sync-cameras", "{inputs+:path}", "composite"),

    # ── Frames / analysis ─────────────────────────────────────────
    R("thumbnail", "{input:path} [at {time}]", "frames"),
    R("thumbnails", "{input:path} {layout}", "frames"),
    R("tile", "{input:path} {layout}", "frames"),
    R("extract-frames", "{input:path} every {interval}", "frames"),
    R("extract-keyframes", _ONE, "frames"),
    R("detect-scenes", _ONE, "detect"),
    R("detect-black", _ONE, "detect"),
    R("detect-silence", _ONE, "detect"),
    R("detect-duplicates", _ONE, "detect"),
    R("analyze-loudness", _ONE, "detect"),
    R("set-metadata", "{input:path} {field} {value:text}", "metadata"),
    R("extract-metadata", _ONE, "metadata"),
    R("stats", _ONE, "metadata"),
    R("validate", _ONE, "metadata"),
    R("export-edl", _ONE, "metadata"),
    R("generate-test-pattern", "{resolution} {duration}", "generate"),
    R("generate-test-pattern", "{resolution} duration {duration}", "generate"),

    # ── Repair ────────────────────────────────────────────────────
    R("repair", _ONE, "repair"),
    R("fix-rotation", _ONE, "repair"),
    R("fix-framerate", "{input:path} [to {fps}]", "repair"),

    # ── Reports (printed, nothing written) ────────────────────────
    R("info", _ONE, "report"),
    R("analyze-quality", _ONE, "report"),
    R("suggest-format", _ONE, "report"),
    R("doctor", "", "report"),

    # ── Many inputs ───────────────────────────────────────────────
    R("batch", "{command:rest} [when {condition:rest}]", "batch"),
    R("watch", "[folder] {folder:path} {command:rest} [when {condition:rest}]", "watch"),
    R("workflow", "{file:path}", "workflow"),
    R("pipeline", "{input:path} {file:path}", "workflow"),
    R("apply-template", "{input:path} {file:path}", "workflow"),
]

# Multi-word spellings resolved by longest match before the table lookup.
VERB_ALIASES: dict[tuple[str, ...], str] = {
    ("extract", "audio"): "extract-audio",
    ("speed", "up"): "speed-up",
    ("slow", "down"): "slow-down",
    ("add", "text"): "add-text",
    ("set", "metadata"): "set-metadata",
    ("split", "screen"): "split-screen",
    ("color", "grade"): "color-grade",
    ("picture", "in", "picture"): "pip",
    ("convert", "colorspace"): "convert-colorspace",
    ("black", "and", "white"): "grayscale",
    ("black-and-white",): "grayscale",
    ("fix", "rotation"): "fix-rotation",
    ("fix", "framerate"): "fix-framerate",
    ("sync", "cameras"): "sync-cameras",
    ("export", "edl"): "export-edl",
    ("analyze", "quality"): "analyze-quality",
    ("suggest", "format"): "suggest-format",
}

# Flags that never take a value.
BOOLEAN_FLAGS = frozenset({
    "two-pass", "loop", "optimize", "keep-pitch", "timestamp",
    "dry-run", "explain", "overwrite", "y", "recursive",
})

# Flags every verb accepts; the engine lifts these out before resolution.
GLOBAL_FLAGS = frozenset({
    "dry-run", "explain", "overwrite", "y", "out", "output-dir", "workers",
})


def build_index(rules: list[GrammarRule]) -> dict[str, list[GrammarRule]]:
    """Group rules by verb, preserving table order."""
    index: dict[str, list[GrammarRule]] = {}
    for rule in rules:
        index.setdefault(rule.verb, []).append(rule)
    return index


RULE_INDEX = build_index(RULES)
