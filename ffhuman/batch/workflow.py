"""Workflow, pipeline and template files.

Three YAML shapes describe the same thing, an ordered list of steps where
each step reads the previous step's output:

``workflow steps.yaml``::

    steps:
      - operation: trim
        input: talk.mp4
        params: {start: "0:10", end: "1:30"}
      - operation: convert
        params: {format: gif}

``pipeline talk.mp4 steps.yaml``::

    steps:
      - type: resize
        target: 720p
      - type: compress
        target: 10mb
        two_pass: true

``apply-template talk.mp4 template.yaml``::

    operations:
      - type: convert
        format: webm

Any step may give a full ``command:`` instead, written without its input
(``command: add-text "Draft" at top-left``).  Every step goes through
the same grammar and builder as a typed command.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Optional

import yaml

from ..errors import ValidationError
from ..grammar.resolver import get_resolver
from ..grammar.tokens import Token, tokenize, tokenize_string
from ..operations.builder import build_operation, insert_subject
from ..operations.model import Operation, Workflow

logger = logging.getLogger("ffhuman")

# Stand-in input for steps after the first; the planner rebinds it.
PREVIOUS_OUTPUT = "previous-step.mp4"

# Which top-level key each verb reads its steps from, and where a step
# names its operation.
_SHAPES: dict[str, tuple[str, str]] = {
    "workflow": ("steps", "operation"),
    "pipeline": ("steps", "type"),
    "apply-template": ("operations", "type"),
}

# How the positional params of common operations read as a command.  Any
# other param becomes ``--name value`` (or ``--name`` for true).
_PHRASES: dict[str, tuple[tuple[str, str], ...]] = {
    "convert": (("format", "to"), ("quality", "quality")),
    "trim": (("start", "from"), ("end", "to"), ("duration", "duration")),
    "resize": (("target", "to"),),
    "compress": (("target", "to"),),
    "crop": (("size", "to"), ("at", "at")),
    "rotate": (("degrees", "by"),),
    "speed-up": (("factor", "by"),),
    "slow-down": (("factor", "by"),),
    "fps": (("fps", "to"),),
    "adjust-volume": (("level", "to"),),
    "add-text": (("text", ""), ("position", "at")),
    "thumbnail": (("time", "at"),),
    "extract-frames": (("interval", "every"),),
}

_FLAG_NAMES = {"two_pass": "two-pass", "keep_pitch": "keep-pitch", "font_size": "font-size"}


def _read(path: str) -> Any:
    file = Path(path)
    if not file.is_file():
        raise ValidationError("file", "workflow file not found", path)
    try:
        with open(file, "r", encoding="utf-8") as fh:
            return yaml.safe_load(fh)
    except (OSError, yaml.YAMLError) as exc:
        raise ValidationError("file", f"cannot read {path}: {exc}") from exc


def _scalar(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _step_words(operation: str, subject: str, params: dict[str, Any]) -> list[str]:
    """``operation subject`` followed by the params as connective phrases and flags."""
    words = [operation, subject]
    params = dict(params)
    for key, connective in _PHRASES.get(operation, ()):
        if key in params:
            value = params.pop(key)
            if connective:
                words.append(connective)
            words.append(_scalar(value))
    for key, value in params.items():
        flag = "--" + _FLAG_NAMES.get(key, key.replace("_", "-"))
        if value is True:
            words.append(flag)
        elif value is False or value is None:
            continue
        else:
            words += [flag, _scalar(value)]
    return words


def _with_subject(command: str, subject: str) -> list[Token]:
    return insert_subject(tokenize_string(command), subject)


def build_step(step: Any, number: int, subject: str, kind: str = "workflow") -> Operation:
    """One step mapping → a validated ``Operation`` reading ``subject``."""
    if isinstance(step, str):
        step = {"command": step}
    if not isinstance(step, dict):
        raise ValidationError(f"step {number}", "must be a mapping or a command string")

    if "command" in step:
        tokens = _with_subject(str(step["command"]), subject)
    else:
        _, op_key = _SHAPES[kind]
        operation = step.get(op_key) or step.get("operation") or step.get("type")
        if not operation:
            raise ValidationError(f"step {number}", f"needs '{op_key}' or 'command'")
        if kind == "workflow":
            params = step.get("params") or {}
        else:
            params = {k: v for k, v in step.items() if k not in ("type", "operation", "input", "output")}
        if not isinstance(params, dict):
            raise ValidationError(f"step {number}", "params must be a mapping")
        tokens = tokenize(_step_words(str(operation), subject, params))

    tree = get_resolver().resolve(tokens)
    if tree.family in ("batch", "watch", "workflow", "report"):
        raise ValidationError(f"step {number}", f"'{tree.verb}' cannot be a workflow step")
    return build_operation(tree)


def load_workflow(file: str, source: Optional[str] = None, kind: str = "workflow") -> Workflow:
    """Parse a workflow/pipeline/template file into a ``Workflow``.

    ``source`` is the chain's first input; ``workflow`` files name it in
    their first step's ``input`` instead.

    Raises:
        ValidationError: unreadable file, missing step list, or a step that
            does not build into a valid operation.
    """
    if kind not in _SHAPES:
        raise ValidationError("verb", "not a workflow verb", kind)
    data = _read(file)
    list_key, _ = _SHAPES[kind]
    if not isinstance(data, dict) or not isinstance(data.get(list_key), list) or not data[list_key]:
        raise ValidationError("file", f"must contain a non-empty '{list_key}' list", file)
    raw_steps = data[list_key]

    if source is None:
        first = raw_steps[0]
        source = first.get("input") if isinstance(first, dict) else None
        if not source:
            raise ValidationError("step 1", "needs an 'input' file to start from")

    steps = []
    for number, raw in enumerate(raw_steps, 1):
        if number > 1 and isinstance(raw, dict) and raw.get("input"):
            logger.warning("Step %d: 'input' ignored; steps read the previous step's output", number)
        subject = source if number == 1 else PREVIOUS_OUTPUT
        steps.append(build_step(raw, number, subject, kind))

    logger.debug("Loaded %d step(s) from %s", len(steps), file)
    return Workflow(verb=kind, source=source, steps=tuple(steps))
