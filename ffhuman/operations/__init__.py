"""Validated operation records.

``builder`` is imported directly (``from ffhuman.operations.builder import
build_operation``); it depends on the batch condition parser.
"""

from .model import Modifiers, Operation, OutputHint, with_input

__all__ = ["Modifiers", "Operation", "OutputHint", "with_input"]
