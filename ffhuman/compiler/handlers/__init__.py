"""Compiler handlers, one module per operation area.

Each module exposes ``HANDLERS``: operation type → ``_c_*(op, ctx)``.
"""

from . import analysis, audio, composite, encoding, spatial, temporal, visual

HANDLERS = {}
for _module in (encoding, temporal, spatial, audio, visual, composite, analysis):
    HANDLERS.update(_module.HANDLERS)

__all__ = ["HANDLERS"]
