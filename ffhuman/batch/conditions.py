"""Declarative input conditions for batch and watch.

    duration < 30s
    size > 100mb and has-audio
    width >= 1920
    ext = mov

Conditions are parsed once and evaluated per input before any plan is
built; an input that fails a condition is skipped, not failed.
"""

from __future__ import annotations

import operator
import os
import re
from dataclasses import dataclass
from typing import Any, Callable, Optional

from ..errors import ValidationError
from ..operations.units import parse_size, parse_time

_OPERATORS: dict[str, Callable[[Any, Any], bool]] = {
    "<": operator.lt,
    ">": operator.gt,
    "<=": operator.le,
    ">=": operator.ge,
    "=": operator.eq,
    "==": operator.eq,
    "!=": operator.ne,
}

_COMPARE_RE = re.compile(r"^\s*([a-z-]+)\s*(<=|>=|==|!=|<|>|=)\s*(\S+)\s*$", re.IGNORECASE)
_AND_RE = re.compile(r"\s+and\s+|\s*&&\s*", re.IGNORECASE)

# Fields whose value comes from probing rather than the filesystem.
PROBED_FIELDS = frozenset({"duration", "width", "height", "has-audio", "no-audio"})


@dataclass(frozen=True)
class Condition:
    """One ``field op value`` test; ``op`` is None for flag tests."""
    field: str
    op: Optional[str] = None
    value: Any = None
    text: str = ""

    @property
    def needs_probe(self) -> bool:
        return self.field in PROBED_FIELDS

    def evaluate(self, path: str, metadata: Any = None) -> bool:
        """Test one input.  ``metadata`` is a ``VideoMetadata`` or None."""
        if self.field == "has-audio":
            return bool(metadata is not None and metadata.has_audio)
        if self.field == "no-audio":
            return not (metadata is not None and metadata.has_audio)
        if self.field == "ext":
            actual: Any = os.path.splitext(path)[1].lower().lstrip(".")
        elif self.field == "size":
            actual = os.path.getsize(path)
        elif self.field == "duration":
            if metadata is None:
                return False
            actual = int(round(metadata.duration * 1000))
        else:
            actual = getattr(metadata, self.field, None) if metadata is not None else None
            if actual is None:
                return False
        return _OPERATORS[self.op](actual, self.value)

    def __str__(self) -> str:
        return self.text or self.field


def _parse_one(text: str) -> Condition:
    raw = text.strip()
    key = raw.lower()
    if key in ("has-audio", "no-audio"):
        return Condition(key, text=raw)

    m = _COMPARE_RE.match(raw)
    if not m:
        raise ValidationError(
            "condition",
            "expected 'duration|size|width|height|ext OP value', 'has-audio' or 'no-audio'",
            raw,
        )
    field, op, value = m.group(1).lower(), m.group(2), m.group(3)
    if field == "duration":
        parsed: Any = parse_time(value, "duration")
    elif field == "size":
        parsed = parse_size(value, "size")
    elif field in ("width", "height"):
        if not value.isdigit():
            raise ValidationError(field, "expected a whole number of pixels", value)
        parsed = int(value)
    elif field == "ext":
        if op not in ("=", "==", "!="):
            raise ValidationError("ext", "only = and != apply to extensions", op)
        parsed = value.lower().lstrip(".")
    else:
        raise ValidationError("condition", "unknown field; use duration, size, width, height or ext", field)
    return Condition(field, op, parsed, raw)


def parse_conditions(text: str) -> tuple[Condition, ...]:
    """Parse ``a and b and c``; every part must hold for an input to run."""
    if not text or not text.strip():
        return ()
    return tuple(_parse_one(part) for part in _AND_RE.split(text.strip()) if part.strip())


def needs_probe(conditions: tuple[Condition, ...]) -> bool:
    return any(c.needs_probe for c in conditions)


def first_failure(
    conditions: tuple[Condition, ...], path: str, metadata: Any = None,
) -> Optional[Condition]:
    """The first condition ``path`` fails, or None when all hold."""
    for condition in conditions:
        if not condition.evaluate(path, metadata):
            return condition
    return None
