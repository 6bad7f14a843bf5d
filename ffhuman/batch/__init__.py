"""Many-input drivers: batch globs, folder watch and workflow files."""

from .conditions import Condition, parse_conditions

__all__ = ["Condition", "parse_conditions"]
