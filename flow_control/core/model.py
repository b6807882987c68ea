from __future__ import annotations

import ast
from dataclasses import dataclass
from typing import Optional


MACRO_NAMES: tuple[str, ...] = ("break_if", "continue_if", "return_if", "label")


@dataclass(frozen=True)
class Invocation:
    """A macro call statement as written by the caller.

    `args` are the positional argument nodes, untouched. Keywords and starred
    arguments are kept only so shape matching can reject them.
    """

    macro: str
    args: tuple[ast.expr, ...]
    keywords: tuple[ast.keyword, ...]
    node: ast.Expr

    @property
    def line(self) -> Optional[int]:
        return getattr(self.node, "lineno", None)

    @property
    def col(self) -> Optional[int]:
        return getattr(self.node, "col_offset", None)


@dataclass(frozen=True)
class ExpansionRecord:
    macro: str
    shape: str
    line: Optional[int]
    col: Optional[int]

    def to_dict(self) -> dict[str, object]:
        return {"macro": self.macro, "shape": self.shape, "line": self.line, "col": self.col}


@dataclass(frozen=True)
class ExpansionResult:
    tree: ast.Module
    records: list[ExpansionRecord]
    source: str


# Placeholder statements. They exist only between expansion and label lowering;
# a lowered tree never contains them.


class LabeledJump(ast.stmt):
    _fields = ("kind", "label")


class LoopLabel(ast.stmt):
    _fields = ("label",)
