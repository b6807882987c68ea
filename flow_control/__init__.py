"""Conditional break/continue/return macros for Python, expanded before compilation.

    from flow_control import break_if, continue_if, return_if, label, expand

    @expand
    def first_negative(xs):
        for x in xs:
            return_if(x < 0, x)

`break_if(p)` becomes `if p: break`, `continue_if(p)` becomes `if p: continue`
and `return_if(p, v)` becomes `if p: return v`. Loops can be named with
`label(name)` and targeted with `break_if(p, name)` / `continue_if(p, name)`.
"""
from flow_control.markers import break_if, continue_if, label, return_if
from flow_control.core.compile.compile_source import compile_source, expand
from flow_control.core.compile.import_hook import install, uninstall
from flow_control.core.errors import (
    ExpansionError,
    FlowError,
    LabelResolutionError,
    NotExpandedError,
    ShapeMismatchError,
)
from flow_control.core.expand.expand_module import expand_module, expand_source

__all__ = [
    "break_if",
    "continue_if",
    "return_if",
    "label",
    "expand",
    "install",
    "uninstall",
    "compile_source",
    "expand_source",
    "expand_module",
    "FlowError",
    "ShapeMismatchError",
    "ExpansionError",
    "LabelResolutionError",
    "NotExpandedError",
]
