"""Expansion rule sets for the flow-control macros.

Each rule set is a closed list of (shape, template) pairs tried in order.
Shapes are told apart by positional arity alone, so at most one rule can
match; anything else is a shape mismatch. Templates splice the caller's
argument nodes into the output untouched.
"""
from __future__ import annotations

import ast
from dataclasses import dataclass
from typing import Callable

from flow_control.core.errors import ShapeMismatchError
from flow_control.core.model import Invocation, LabeledJump, LoopLabel


Template = Callable[[tuple[ast.expr, ...]], ast.stmt]


@dataclass(frozen=True)
class ExpansionRule:
    shape: tuple[str, ...]
    template: Template

    @property
    def arity(self) -> int:
        return len(self.shape)

    def describe(self) -> str:
        return "(" + ", ".join(self.shape) + ")"


@dataclass(frozen=True)
class RuleSet:
    macro: str
    summary: str
    rules: tuple[ExpansionRule, ...]


def _guarded(transfer: ast.stmt, predicate: ast.expr) -> ast.If:
    return ast.If(test=predicate, body=[transfer], orelse=[])


BREAK_IF = RuleSet(
    macro="break_if",
    summary="break from a loop if the predicate is true",
    rules=(
        ExpansionRule(
            shape=("predicate",),
            template=lambda args: _guarded(ast.Break(), args[0]),
        ),
        ExpansionRule(
            shape=("predicate", "label"),
            template=lambda args: _guarded(LabeledJump(kind="break", label=args[1]), args[0]),
        ),
    ),
)

CONTINUE_IF = RuleSet(
    macro="continue_if",
    summary="continue to the next loop iteration if the predicate is true",
    rules=(
        ExpansionRule(
            shape=("predicate",),
            template=lambda args: _guarded(ast.Continue(), args[0]),
        ),
        ExpansionRule(
            shape=("predicate", "label"),
            template=lambda args: _guarded(LabeledJump(kind="continue", label=args[1]), args[0]),
        ),
    ),
)

RETURN_IF = RuleSet(
    macro="return_if",
    summary="return from the function if the predicate is true",
    rules=(
        ExpansionRule(
            shape=("predicate",),
            template=lambda args: _guarded(ast.Return(value=None), args[0]),
        ),
        ExpansionRule(
            shape=("predicate", "value"),
            template=lambda args: _guarded(ast.Return(value=args[1]), args[0]),
        ),
    ),
)

# Loop label marker: `label(outer)` right before a loop.
LABEL = RuleSet(
    macro="label",
    summary="name the loop that follows, for labelled break_if/continue_if",
    rules=(
        ExpansionRule(
            shape=("name",),
            template=lambda args: LoopLabel(label=args[0]),
        ),
    ),
)

RULE_SETS: dict[str, RuleSet] = {rs.macro: rs for rs in (BREAK_IF, CONTINUE_IF, RETURN_IF, LABEL)}


def match_shape(rule_set: RuleSet, invocation: Invocation, *, file: str | None = None) -> ExpansionRule:
    """Select the rule whose shape fits the invocation's arguments."""
    problem = None
    if invocation.keywords:
        problem = "keyword arguments are not accepted"
    elif any(isinstance(a, ast.Starred) for a in invocation.args):
        problem = "starred arguments are not accepted"
    else:
        for rule in rule_set.rules:
            if rule.arity == len(invocation.args):
                return rule

    expected = " or ".join(r.describe() for r in rule_set.rules)
    if problem is None:
        problem = f"got {len(invocation.args)} argument(s)"
    raise ShapeMismatchError(
        code="E_SHAPE_MISMATCH",
        message=f"{invocation.macro}() expects {expected}; {problem}",
        file=file,
        line=invocation.line,
        col=invocation.col,
    )


def expand_invocation(
    rule_set: RuleSet, invocation: Invocation, *, file: str | None = None
) -> tuple[ast.stmt, ExpansionRule]:
    """Expand one invocation into its output statement.

    Returns the statement and the rule that produced it. The statement takes
    the invocation's source location.
    """
    rule = match_shape(rule_set, invocation, file=file)
    stmt = rule.template(invocation.args)
    ast.copy_location(stmt, invocation.node)
    for child in getattr(stmt, "body", []):
        ast.copy_location(child, invocation.node)
    return stmt, rule
