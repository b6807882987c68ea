"""Importable names for the flow-control macros.

These exist so `from flow_control import break_if` resolves and so the
expander can recognise the macros by what they are bound to. Expanded code
never calls them; if one runs, the surrounding code was not expanded.
"""
from __future__ import annotations

from typing import Any, Callable

from flow_control.core.errors import NotExpandedError


MARKER_ATTR = "__flow_macro__"


def _macro(fn: Callable[..., Any]) -> Callable[..., Any]:
    setattr(fn, MARKER_ATTR, fn.__name__)
    return fn


@_macro
def break_if(predicate: Any, label: Any = None) -> None:
    """`break` from a loop if `predicate` is true.

    break_if(predicate)
    break_if(predicate, label)   # break out of the loop marked with label(...)
    """
    raise NotExpandedError("break_if")


@_macro
def continue_if(predicate: Any, label: Any = None) -> None:
    """`continue` to the next iteration of a loop if `predicate` is true.

    continue_if(predicate)
    continue_if(predicate, label)
    """
    raise NotExpandedError("continue_if")


@_macro
def return_if(predicate: Any, value: Any = None) -> None:
    """`return` from the function if `predicate` is true.

    return_if(predicate)
    return_if(predicate, value)
    """
    raise NotExpandedError("return_if")


@_macro
def label(name: Any) -> None:
    """Name the loop that directly follows, for labelled break_if/continue_if."""
    raise NotExpandedError("label")


def macro_of(value: Any) -> str | None:
    return getattr(value, MARKER_ATTR, None) if callable(value) else None
