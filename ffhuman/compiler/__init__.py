"""Filter Graph Compiler: validated operations → ffmpeg stages."""

from .compiler import FilterGraphCompiler, get_compiler
from .handler_contract import CompileContext, HandlerResult, InputSpec, Phase, make_result
from .stage import ExecutionPlan, MediaRef, MediaRole, Stage, TextArtifact

__all__ = [
    "FilterGraphCompiler",
    "get_compiler",
    "CompileContext",
    "HandlerResult",
    "InputSpec",
    "Phase",
    "make_result",
    "ExecutionPlan",
    "MediaRef",
    "MediaRole",
    "Stage",
    "TextArtifact",
]
