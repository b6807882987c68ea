from __future__ import annotations

import ast
from dataclasses import dataclass, field
from typing import Optional

from flow_control.core.errors import FlowError, LabelResolutionError
from flow_control.core.expand.config import DEFAULT_CONFIG, ExpansionConfig
from flow_control.core.model import LabeledJump, LoopLabel


# Python has no labelled break/continue. A jump that targets the innermost
# loop becomes a plain break/continue; a jump across N intermediate loops
# sets a flag, breaks, and every intermediate loop is followed by a flag
# check that keeps unwinding until the target loop is reached:
#
#   label(outer)                      _flow_break_outer = False
#   for a in xs:                      for a in xs:
#       for b in ys:          ==>         for b in ys:
#           break_if(p, outer)                if p:
#                                                 _flow_break_outer = True
#                                                 break
#                                         if _flow_break_outer:
#                                             break

_LOOPS = (ast.For, ast.AsyncFor, ast.While)
_SCOPES = (ast.FunctionDef, ast.AsyncFunctionDef, ast.ClassDef)


@dataclass
class _LoopFrame:
    label: Optional[str]
    break_flag: Optional[str] = None
    continue_flag: Optional[str] = None
    # checks emitted right after this loop statement: (flag, "break"|"continue")
    exits: list[tuple[str, str]] = field(default_factory=list)

    def add_exit(self, flag: str, action: str) -> None:
        if (flag, action) not in self.exits:
            self.exits.append((flag, action))


def lower_labels(
    tree: ast.Module,
    *,
    config: ExpansionConfig = DEFAULT_CONFIG,
    file: Optional[str] = None,
) -> list[FlowError]:
    """Rewrite LoopLabel / LabeledJump placeholders in place.

    Returns the label errors found; the tree is only usable when the list is empty.
    """
    lowerer = _Lowerer(tree, config=config, file=file)
    tree.body = lowerer.block(tree.body, [])
    ast.fix_missing_locations(tree)
    return lowerer.errors


class _Lowerer:
    def __init__(self, tree: ast.Module, *, config: ExpansionConfig, file: Optional[str]) -> None:
        self.config = config
        self.file = file
        self.errors: list[FlowError] = []
        self.taken = _collect_names(tree)

    def block(self, stmts: list[ast.stmt], loops: list[_LoopFrame]) -> list[ast.stmt]:
        out: list[ast.stmt] = []
        pending: Optional[str] = None
        for i, node in enumerate(stmts):
            if isinstance(node, LoopLabel):
                name = self._label_name(node.label, node)
                following = stmts[i + 1] if i + 1 < len(stmts) else None
                if not isinstance(following, _LOOPS):
                    self._error(
                        "E_LABEL_POSITION",
                        "label() must be directly followed by a for/while loop",
                        node,
                    )
                pending = name
                continue

            if isinstance(node, _LOOPS):
                out.extend(self.loop(node, loops, pending))
            else:
                out.extend(self.stmt(node, loops))
            pending = None
        return out

    def loop(self, node: ast.stmt, loops: list[_LoopFrame], label: Optional[str]) -> list[ast.stmt]:
        frame = _LoopFrame(label=label)
        node.body = self.block(node.body, loops + [frame])  # type: ignore[attr-defined]
        node.orelse = self.block(node.orelse, loops)  # type: ignore[attr-defined]

        out: list[ast.stmt] = []
        if frame.break_flag:
            out.append(ast.copy_location(_set_flag(frame.break_flag, False), node))
        if frame.continue_flag:
            node.body.insert(0, ast.copy_location(_set_flag(frame.continue_flag, False), node))  # type: ignore[attr-defined]
        out.append(node)
        for flag, action in frame.exits:
            transfer: ast.stmt = ast.Continue() if action == "continue" else ast.Break()
            check = ast.If(test=ast.Name(id=flag, ctx=ast.Load()), body=[transfer], orelse=[])
            out.append(ast.copy_location(check, node))
        return out

    def stmt(self, node: ast.stmt, loops: list[_LoopFrame]) -> list[ast.stmt]:
        if isinstance(node, LabeledJump):
            return self.jump(node, loops)
        if isinstance(node, _SCOPES):
            node.body = self.block(node.body, [])
            return [node]

        for name, value in ast.iter_fields(node):
            if not isinstance(value, list) or not value:
                continue
            if isinstance(value[0], ast.stmt):
                setattr(node, name, self.block(value, loops))
            elif isinstance(value[0], (ast.ExceptHandler, ast.match_case)):
                for clause in value:
                    clause.body = self.block(clause.body, loops)
        return [node]

    def jump(self, node: LabeledJump, loops: list[_LoopFrame]) -> list[ast.stmt]:
        name = self._label_name(node.label, node)
        plain: ast.stmt = ast.Break() if node.kind == "break" else ast.Continue()
        if name is None:
            return [ast.copy_location(plain, node)]

        target = None
        for idx in range(len(loops) - 1, -1, -1):
            if loops[idx].label == name:
                target = idx
                break
        if target is None:
            self._error("E_UNKNOWN_LABEL", f"no enclosing loop is labelled '{name}'", node)
            return [ast.copy_location(plain, node)]

        if target == len(loops) - 1:
            return [ast.copy_location(plain, node)]

        frame = loops[target]
        if node.kind == "break":
            if frame.break_flag is None:
                frame.break_flag = self._allocate("break", name)
            flag = frame.break_flag
        else:
            if frame.continue_flag is None:
                frame.continue_flag = self._allocate("continue", name)
            flag = frame.continue_flag

        loops[target + 1].add_exit(flag, node.kind)
        for inner in loops[target + 2 :]:
            inner.add_exit(flag, "break")

        return [
            ast.copy_location(_set_flag(flag, True), node),
            ast.copy_location(ast.Break(), node),
        ]

    def _label_name(self, fragment: ast.expr, node: ast.stmt) -> Optional[str]:
        if isinstance(fragment, ast.Name):
            return fragment.id
        if isinstance(fragment, ast.Constant) and isinstance(fragment.value, str):
            if fragment.value.isidentifier():
                return fragment.value
        self._error(
            "E_INVALID_LABEL",
            f"label must be an identifier or identifier string, got: {ast.unparse(fragment)}",
            node,
        )
        return None

    def _allocate(self, kind: str, label: str) -> str:
        base = f"{self.config.flag_prefix}{kind}_{label}"
        candidate = base
        n = 1
        while candidate in self.taken:
            candidate = f"{base}_{n}"
            n += 1
        self.taken.add(candidate)
        return candidate

    def _error(self, code: str, message: str, node: ast.stmt) -> None:
        self.errors.append(
            LabelResolutionError(
                code=code,
                message=message,
                file=self.file,
                line=getattr(node, "lineno", None),
                col=getattr(node, "col_offset", None),
            )
        )


def _set_flag(flag: str, value: bool) -> ast.Assign:
    return ast.Assign(
        targets=[ast.Name(id=flag, ctx=ast.Store())],
        value=ast.Constant(value=value),
    )


def _collect_names(tree: ast.AST) -> set[str]:
    names: set[str] = set()
    for node in ast.walk(tree):
        if isinstance(node, ast.Name):
            names.add(node.id)
        elif isinstance(node, ast.arg):
            names.add(node.arg)
        elif isinstance(node, (ast.FunctionDef, ast.AsyncFunctionDef, ast.ClassDef)):
            names.add(node.name)
        elif isinstance(node, ast.alias):
            names.add((node.asname or node.name).split(".")[0])
        elif isinstance(node, (ast.Global, ast.Nonlocal)):
            names.update(node.names)
        elif isinstance(node, ast.ExceptHandler) and node.name:
            names.add(node.name)
        elif isinstance(node, (ast.MatchAs, ast.MatchStar)) and node.name:
            names.add(node.name)
        elif isinstance(node, ast.MatchMapping) and node.rest:
            names.add(node.rest)
    return names
