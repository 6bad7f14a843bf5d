"""Error taxonomy for ffhuman.

Every failure the engine reports is an ``FfhumanError``.  The subclass
tells the caller *where* in the pipeline it happened and whether the
invocation can continue:

- ``GrammarError``     unrecognized verb / connective / slot (parse time)
- ``ValidationError``  malformed, out-of-range or conflicting parameters
- ``CompilationError`` operation not representable for the given input
- ``PlanError``        output path collision or unresolvable output
- ``ExecutionError``   external process exited non-zero
- ``ToolchainError``   missing encoder / unreadable input (fatal)
- ``CancelledError``   user cancellation of one plan

Everything up to ``PlanError`` is raised before any process starts.
"""

from __future__ import annotations

from typing import Optional


class FfhumanError(Exception):
    """Base class for all ffhuman errors."""

    exit_code = 1


class GrammarError(FfhumanError):
    """A token sequence did not match any command shape."""

    exit_code = 2

    def __init__(
        self,
        message: str,
        position: Optional[int] = None,
        expected: Optional[str] = None,
        token: Optional[str] = None,
    ):
        self.position = position
        self.expected = expected
        self.token = token
        detail = message
        if position is not None:
            detail = f"{message} (at token {position}"
            if token is not None:
                detail += f" {token!r}"
            detail += ")"
        if expected:
            detail += f"; expected {expected}"
        super().__init__(detail)


class ValidationError(FfhumanError):
    """A parameter was malformed, out of range, or conflicted with another."""

    exit_code = 2

    def __init__(self, field: str, constraint: str, value: object = None):
        self.field = field
        self.constraint = constraint
        self.value = value
        if value is None:
            super().__init__(f"{field}: {constraint}")
        else:
            super().__init__(f"{field}: {constraint} (got {value!r})")


class CompilationError(FfhumanError):
    """An operation cannot be expressed for this input or feature combination."""

    exit_code = 2


class PlanError(FfhumanError):
    """The plan cannot be executed safely (existing output, bad location)."""

    exit_code = 2


class ExecutionError(FfhumanError):
    """An external process exited with a non-zero status.

    ``stderr`` is the diagnostic stream exactly as the tool printed it.
    """

    exit_code = 1

    def __init__(self, stage: str, return_code: int, stderr: str, command: str = ""):
        self.stage = stage
        self.return_code = return_code
        self.stderr = stderr
        self.command = command
        super().__init__(f"stage '{stage}' failed with exit code {return_code}")


class ToolchainError(FfhumanError):
    """The external toolchain or an input is unusable. Fatal for the invocation."""

    exit_code = 3


# Name used throughout the docs for the fatal pre-flight class.
EnvironmentError = ToolchainError  # noqa: A001


class CancelledError(FfhumanError):
    """A plan was cancelled while running."""

    exit_code = 130
