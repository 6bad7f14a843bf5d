"""Tokenizer for near-English command lines.

Each argv element becomes exactly one ``Token``.  Classification is purely
lexical; the grammar decides what a token *means*.

    >>> [t.kind.name for t in tokenize(["trim", "a.mp4", "from", "0:30", "--y"])]
    ['BAREWORD', 'PATH', 'CONNECTIVE', 'NUMBER', 'FLAG']
"""

from __future__ import annotations

import re
import shlex
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Sequence

from ..errors import GrammarError


class TokenKind(str, Enum):
    """Lexical class of a token."""
    BAREWORD = "bareword"
    PATH = "path"
    NUMBER = "number"
    QUOTED = "quoted"
    FLAG = "flag"
    CONNECTIVE = "connective"


CONNECTIVES = frozenset({
    "to", "from", "at", "by", "on", "and", "when",
    "every", "into", "duration", "layout", "speed",
})

_NUMBER_RE = re.compile(r"^([+-]?\d+(?:\.\d+)?|[+-]?\.\d+)([a-z%]+)?$", re.IGNORECASE)
_CLOCK_RE = re.compile(r"^(\d+)(?::(\d{1,2})){1,2}(?:\.(\d+))?$")
_SHORT_FLAG_RE = re.compile(r"^-[A-Za-z]$")
_EXT_RE = re.compile(r"^[^\s]*[^.\s]\.[A-Za-z0-9]{1,5}$")
_GLOB_CHARS = set("*?[")


@dataclass(frozen=True)
class Token:
    """One classified argv element."""
    kind: TokenKind
    text: str
    position: int
    value: Optional[float] = None
    unit: Optional[str] = None
    name: Optional[str] = None
    flag_value: Optional[str] = None

    @property
    def lower(self) -> str:
        return self.text.lower()

    def is_connective(self, word: Optional[str] = None) -> bool:
        if self.kind is not TokenKind.CONNECTIVE:
            return False
        return word is None or self.lower == word


def _clock_seconds(text: str) -> float:
    main, _, frac = text.partition(".")
    seconds = 0.0
    for part in main.split(":"):
        seconds = seconds * 60 + int(part)
    if frac:
        seconds += float(f"0.{frac}")
    return seconds


def looks_like_path(text: str) -> bool:
    """True for things that are clearly filesystem paths or globs."""
    if any(ch in text for ch in _GLOB_CHARS):
        return True
    if "/" in text or "\\" in text:
        return True
    if text.startswith("~"):
        return True
    return bool(_EXT_RE.match(text))


def classify(text: str, position: int) -> Token:
    """Classify a single argv element."""
    if not text.strip() or any(ch.isspace() for ch in text):
        return Token(TokenKind.QUOTED, text, position)

    if text.startswith("--") and len(text) > 2:
        name, sep, value = text[2:].partition("=")
        return Token(
            TokenKind.FLAG, text, position,
            name=name.lower(), flag_value=value if sep else None,
        )
    if _SHORT_FLAG_RE.match(text):
        return Token(TokenKind.FLAG, text, position, name=text[1:])

    if _CLOCK_RE.match(text):
        return Token(TokenKind.NUMBER, text, position, value=_clock_seconds(text), unit="clock")

    m = _NUMBER_RE.match(text)
    if m:
        unit = m.group(2).lower() if m.group(2) else None
        return Token(TokenKind.NUMBER, text, position, value=float(m.group(1)), unit=unit)

    if text.lower() in CONNECTIVES:
        return Token(TokenKind.CONNECTIVE, text, position)

    if looks_like_path(text):
        return Token(TokenKind.PATH, text, position)

    return Token(TokenKind.BAREWORD, text, position)


def tokenize(argv: Sequence[str]) -> list[Token]:
    """Tokenize an argument vector (already split by the shell)."""
    return [classify(str(arg), i) for i, arg in enumerate(argv)]


def tokenize_string(command: str) -> list[Token]:
    """Tokenize a single command string using POSIX shell quoting rules."""
    try:
        parts = shlex.split(command)
    except ValueError as exc:
        raise GrammarError(f"cannot split command: {exc}") from exc
    return tokenize(parts)


def render_tokens(tokens: Sequence[Token]) -> str:
    """Join tokens back into a shell-safe string."""
    return " ".join(shlex.quote(t.text) for t in tokens)
