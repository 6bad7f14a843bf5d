"""Unit parsing and normalization.

Every user-supplied quantity goes through one of these parsers before it
reaches an ``Operation``.  Each parser either returns a normalized value
or raises ``ValidationError`` naming the field and the constraint.

Normal forms:

- sizes        → bytes (1024-based: ``10mb`` = 10 * 1024**2)
- bitrates     → bits per second (1000-based: ``2mbps`` = 2_000_000)
- times        → integer milliseconds (``1:05:30`` = 3_930_000)
- percentages  → fraction (``50%`` = 0.5)
- decibels     → float dB (``+10db`` = 10.0)
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Optional

from ..errors import ValidationError

_SIZE_RE = re.compile(r"^(\d+(?:\.\d+)?)\s*(b|kb|k|mb|m|gb|g)$", re.IGNORECASE)
_SIZE_MULTIPLIERS = {
    "b": 1,
    "k": 1024, "kb": 1024,
    "m": 1024 ** 2, "mb": 1024 ** 2,
    "g": 1024 ** 3, "gb": 1024 ** 3,
}

_BITRATE_RE = re.compile(r"^(\d+(?:\.\d+)?)\s*(bps|kbps|mbps|k|m)$", re.IGNORECASE)
_BITRATE_MULTIPLIERS = {
    "bps": 1,
    "k": 1000, "kbps": 1000,
    "m": 1000 ** 2, "mbps": 1000 ** 2,
}

_SECONDS_RE = re.compile(r"^(\d+(?:\.\d+)?|\.\d+)\s*(s|sec|secs|ms|m|min)?$", re.IGNORECASE)
_CLOCK_RE = re.compile(r"^(?:(\d+):)?(\d{1,2}):(\d{1,2})(?:\.(\d{1,3}))?$")

_PERCENT_RE = re.compile(r"^([+-]?\d+(?:\.\d+)?)\s*%$")
_DB_RE = re.compile(r"^([+-]?\d+(?:\.\d+)?)\s*db$", re.IGNORECASE)
_FACTOR_RE = re.compile(r"^(\d+(?:\.\d+)?|\.\d+)\s*x?$", re.IGNORECASE)
_DIMENSIONS_RE = re.compile(r"^(\d+)\s*[x:]\s*(\d+)$", re.IGNORECASE)
_POINT_RE = re.compile(r"^(-?\d+)\s*,\s*(-?\d+)$")
_HEX_COLOR_RE = re.compile(r"^(?:#|0x)([0-9a-f]{6})$", re.IGNORECASE)


# ------------------------------------------------------------------ #
#   Sizes and bitrates                                               #
# ------------------------------------------------------------------ #

def parse_size(text: str, field: str = "size") -> int:
    """``10mb`` / ``800k`` / ``1.5gb`` → bytes."""
    m = _SIZE_RE.match(str(text).strip())
    if not m:
        raise ValidationError(field, "expected a size like 10mb, 800k or 1.5gb", text)
    value = float(m.group(1))
    if value <= 0:
        raise ValidationError(field, "size must be positive", text)
    return int(round(value * _SIZE_MULTIPLIERS[m.group(2).lower()]))


def is_bitrate(text: str) -> bool:
    """True only for explicit bitrate spellings (``2000kbps``, ``2mbps``)."""
    return bool(re.match(r"^\d+(?:\.\d+)?\s*(bps|kbps|mbps)$", str(text).strip(), re.IGNORECASE))


def parse_bitrate(text: str, field: str = "bitrate") -> int:
    """``2000kbps`` / ``2mbps`` / ``500k`` → bits per second."""
    m = _BITRATE_RE.match(str(text).strip())
    if not m:
        raise ValidationError(field, "expected a bitrate like 2000kbps, 2mbps or 500k", text)
    value = float(m.group(1))
    if value <= 0:
        raise ValidationError(field, "bitrate must be positive", text)
    return int(round(value * _BITRATE_MULTIPLIERS[m.group(2).lower()]))


def format_bytes(n: int) -> str:
    for unit, size in (("gb", 1024 ** 3), ("mb", 1024 ** 2), ("kb", 1024)):
        if n >= size:
            return f"{n / size:g}{unit}"
    return f"{n}b"


# ------------------------------------------------------------------ #
#   Time                                                             #
# ------------------------------------------------------------------ #

def parse_time(text: str, field: str = "time") -> int:
    """Time spec → milliseconds.

    Accepts ``SS``, ``SS.fff``, ``0.5s``, ``250ms``, ``2m``, ``MM:SS`` and
    ``HH:MM:SS`` (optionally with ``.fff``).
    """
    raw = str(text).strip()
    m = _CLOCK_RE.match(raw)
    if m:
        hours = int(m.group(1) or 0)
        minutes, seconds = int(m.group(2)), int(m.group(3))
        if m.group(1) is not None and minutes >= 60:
            raise ValidationError(field, "minutes must be below 60", text)
        if seconds >= 60:
            raise ValidationError(field, "seconds must be below 60", text)
        millis = int(m.group(4).ljust(3, "0")) if m.group(4) else 0
        return ((hours * 60 + minutes) * 60 + seconds) * 1000 + millis

    m = _SECONDS_RE.match(raw)
    if not m:
        raise ValidationError(field, "expected SS, MM:SS, HH:MM:SS or a value like 0.5s", text)
    value = float(m.group(1))
    unit = (m.group(2) or "s").lower()
    if unit == "ms":
        return int(round(value))
    if unit in ("m", "min"):
        return int(round(value * 60_000))
    return int(round(value * 1000))


def format_time(ms: int) -> str:
    """Milliseconds → ``HH:MM:SS`` or ``HH:MM:SS.mmm``."""
    seconds, millis = divmod(int(ms), 1000)
    minutes, seconds = divmod(seconds, 60)
    hours, minutes = divmod(minutes, 60)
    text = f"{hours:02d}:{minutes:02d}:{seconds:02d}"
    if millis:
        text += f".{millis:03d}"
    return text


def format_seconds(ms: int) -> str:
    """Milliseconds → compact seconds (``1.5``, ``30``)."""
    return f"{ms / 1000:.3f}".rstrip("0").rstrip(".")


# ------------------------------------------------------------------ #
#   Levels                                                           #
# ------------------------------------------------------------------ #

def parse_percent(text: str, field: str = "percent", low: float = 0.0, high: float = 100.0) -> float:
    """``50%`` → 0.5."""
    m = _PERCENT_RE.match(str(text).strip())
    if not m:
        raise ValidationError(field, "expected a percentage like 50%", text)
    value = float(m.group(1))
    if not low <= value <= high:
        raise ValidationError(field, f"percentage must be within {low:g}%..{high:g}%", text)
    return value / 100.0


def parse_db(text: str, field: str = "gain") -> float:
    """``+10db`` / ``-5dB`` → decibels."""
    m = _DB_RE.match(str(text).strip())
    if not m:
        raise ValidationError(field, "expected decibels like +10db", text)
    value = float(m.group(1))
    if abs(value) > 60:
        raise ValidationError(field, "gain must be within ±60db", text)
    return value


def db_to_linear(db: float) -> float:
    return 10 ** (db / 20.0)


def parse_factor(text: str, field: str = "factor") -> float:
    """``2x`` / ``1.5`` → positive float."""
    m = _FACTOR_RE.match(str(text).strip())
    if not m:
        raise ValidationError(field, "expected a factor like 2x or 0.5x", text)
    value = float(m.group(1))
    if value <= 0:
        raise ValidationError(field, "factor must be greater than 0", text)
    return value


def parse_number(
    text: str, field: str, low: Optional[float] = None, high: Optional[float] = None,
) -> float:
    try:
        value = float(str(text).strip())
    except ValueError:
        raise ValidationError(field, "expected a number", text) from None
    if low is not None and value < low:
        raise ValidationError(field, f"must be at least {low:g}", text)
    if high is not None and value > high:
        raise ValidationError(field, f"must be at most {high:g}", text)
    return value


def parse_int(text: str, field: str, low: Optional[int] = None, high: Optional[int] = None) -> int:
    value = parse_number(text, field, low, high)
    if value != int(value):
        raise ValidationError(field, "expected a whole number", text)
    return int(value)


def parse_fps(text: str, field: str = "fps") -> float:
    raw = str(text).strip().lower()
    if raw.endswith("fps"):
        raw = raw[:-3]
    return parse_number(raw, field, low=0.1, high=240)


def parse_opacity(text: str, field: str = "opacity") -> float:
    raw = str(text).strip()
    if raw.endswith("%"):
        return parse_percent(raw, field)
    return parse_number(raw, field, low=0.0, high=1.0)


# ------------------------------------------------------------------ #
#   Geometry                                                         #
# ------------------------------------------------------------------ #

@dataclass(frozen=True)
class Dimensions:
    width: int
    height: int

    def __str__(self) -> str:
        return f"{self.width}x{self.height}"


def parse_dimensions(text: str, field: str = "dimensions") -> Dimensions:
    """``1280x720`` → Dimensions; both sides must be positive integers."""
    m = _DIMENSIONS_RE.match(str(text).strip())
    if not m:
        raise ValidationError(field, "expected WIDTHxHEIGHT like 1280x720", text)
    width, height = int(m.group(1)), int(m.group(2))
    if width <= 0 or height <= 0:
        raise ValidationError(field, "dimensions must be positive", text)
    if width > 16384 or height > 16384:
        raise ValidationError(field, "dimensions must be at most 16384", text)
    return Dimensions(width, height)


def parse_layout(text: str, field: str = "layout") -> Dimensions:
    """``2x2`` → columns x rows."""
    layout = parse_dimensions(text, field)
    if layout.width * layout.height > 36:
        raise ValidationError(field, "at most 36 cells", text)
    return layout


def parse_point(text: str, field: str = "position") -> tuple[int, int]:
    m = _POINT_RE.match(str(text).strip())
    if not m:
        raise ValidationError(field, "expected X,Y", text)
    return int(m.group(1)), int(m.group(2))


def parse_region(text: str, field: str = "region") -> tuple[int, int, int, int]:
    """``x,y,w,h`` with w and h positive."""
    parts = [p.strip() for p in str(text).split(",")]
    if len(parts) != 4 or not all(re.match(r"^-?\d+$", p) for p in parts):
        raise ValidationError(field, "expected x,y,width,height", text)
    x, y, w, h = (int(p) for p in parts)
    if w <= 0 or h <= 0:
        raise ValidationError(field, "width and height must be positive", text)
    if x < 0 or y < 0:
        raise ValidationError(field, "x and y must not be negative", text)
    return x, y, w, h


def parse_hex_color(text: str) -> Optional[str]:
    """``#FF0000`` / ``0xff0000`` → ``0xFF0000``; None when not hex."""
    m = _HEX_COLOR_RE.match(str(text).strip())
    return f"0x{m.group(1).upper()}" if m else None
