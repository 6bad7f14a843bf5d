"""Path checks and filter-string escaping.

Input and output paths are checked before any stage is planned, so a bad
path never reaches ffmpeg.  Text and file names that end up inside a
filtergraph are escaped here.
"""

import os
from pathlib import Path, PurePosixPath

from ..errors import PlanError, ToolchainError

SUBTITLE_EXTENSIONS = frozenset({".srt", ".ass", ".vtt", ".sub", ".sbv"})

# Outputs are never written below these.
PROTECTED_POSIX_DIRS = tuple(PurePosixPath(p) for p in (
    "/bin", "/boot", "/dev", "/etc", "/lib", "/lib64", "/proc",
    "/run", "/sbin", "/sys", "/usr",
))
PROTECTED_WINDOWS_PREFIXES = ("c:\\windows", "c:\\program files")

# drawtext treats these as syntax; backslash must come first.
_TEXT_ESCAPES = (
    ("\\", "\\\\"),
    ("'", "\\'"),
    (":", "\\:"),
    (";", "\\;"),
    ("%", "%%"),
    (",", "\\,"),
    ("[", "\\["),
    ("]", "\\]"),
)


def is_protected_location(path: Path) -> bool:
    """True when ``path`` is, or lies under, a system directory."""
    if os.name == "nt":
        return str(path).lower().startswith(PROTECTED_WINDOWS_PREFIXES)
    posix = PurePosixPath(path)
    return any(posix == root or root in posix.parents for root in PROTECTED_POSIX_DIRS)


def validate_input_path(path: str) -> str:
    """Resolve an input and make sure ffmpeg will be able to read it.

    Raises:
        ToolchainError: empty, missing, not a regular file, or unreadable.
    """
    if not path or not str(path).strip():
        raise ToolchainError("Input path cannot be empty")

    resolved = Path(path).expanduser().resolve()
    if not resolved.exists():
        raise ToolchainError(f"Input file not found: {path}")
    if not resolved.is_file():
        raise ToolchainError(f"Input path is not a file: {path}")
    if not os.access(resolved, os.R_OK):
        raise ToolchainError(f"Input file is not readable: {path}")
    return str(resolved)


def validate_output_path(path: str) -> str:
    """Resolve an output path that a stage is about to write.

    The file itself need not exist; its directory must.  The null device
    is always accepted.

    Raises:
        PlanError: empty, under a system directory, no such directory,
            or the path is itself a directory.
    """
    if not path or not str(path).strip():
        raise PlanError("Output path cannot be empty")
    if str(path) == os.devnull:
        return os.devnull

    resolved = Path(path).expanduser().resolve()
    if is_protected_location(resolved):
        raise PlanError(f"Path targets unsafe system directory: {resolved}")
    if not resolved.parent.is_dir():
        raise PlanError(f"Output directory not found: {resolved.parent}")
    if resolved.is_dir():
        raise PlanError(f"Output path is a directory: {path}")
    return str(resolved)


def sanitize_text_param(text: str) -> str:
    """Escape user text for a drawtext ``text='...'`` value."""
    for raw, escaped in _TEXT_ESCAPES:
        if raw in text:
            text = text.replace(raw, escaped)
    return text


def escape_filter_path(path: str) -> str:
    """Escape a file path used as a filter option (``subtitles=``, ``result=``)."""
    return path.replace("\\", "/").replace(":", "\\:").replace("'", "\\'")
