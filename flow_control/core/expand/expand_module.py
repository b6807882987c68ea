from __future__ import annotations

import ast
import copy
from typing import Iterator, Optional

from flow_control.core.errors import ExpansionError, FlowError, SourceLoadError, sorted_errors
from flow_control.core.expand.config import DEFAULT_CONFIG, ExpansionConfig
from flow_control.core.expand.rules import RULE_SETS, expand_invocation
from flow_control.core.lower.lower_labels import lower_labels
from flow_control.core.model import MACRO_NAMES, ExpansionRecord, ExpansionResult, Invocation


# Nodes whose bodies bind names in a scope of their own.
_SCOPE_BOUNDARIES = (
    ast.FunctionDef,
    ast.AsyncFunctionDef,
    ast.ClassDef,
    ast.Lambda,
    ast.ListComp,
    ast.SetComp,
    ast.DictComp,
    ast.GeneratorExp,
)


def _scope_nodes(body: list[ast.stmt]) -> Iterator[ast.AST]:
    """Yield the nodes of one scope; nested scopes are yielded but not entered."""
    todo: list[ast.AST] = list(reversed(body))
    while todo:
        node = todo.pop()
        yield node
        if not isinstance(node, _SCOPE_BOUNDARIES):
            todo.extend(reversed(list(ast.iter_child_nodes(node))))


def _parameters(args: ast.arguments) -> set[str]:
    params = [*args.posonlyargs, *args.args, *args.kwonlyargs]
    if args.vararg is not None:
        params.append(args.vararg)
    if args.kwarg is not None:
        params.append(args.kwarg)
    return {a.arg for a in params}


def _without(names: dict[str, str], rebound: set[str]) -> dict[str, str]:
    return {s: m for s, m in names.items() if s.split(".")[0] not in rebound}


def scope_macro_names(
    body: list[ast.stmt],
    enclosing: dict[str, str],
    config: ExpansionConfig = DEFAULT_CONFIG,
    *,
    params: set[str] | frozenset[str] = frozenset(),
) -> dict[str, str]:
    """Macro spellings visible in one scope.

    Imports from the configured package in `body` add spellings. Any other
    binding of a spelling's root name in the same scope (def, class,
    assignment, loop target, parameter, unrelated import) hides it.
    """
    pkg = config.package
    found: dict[str, str] = {}
    rebound: set[str] = set(params)
    for node in _scope_nodes(body):
        if isinstance(node, ast.ImportFrom):
            from_pkg = node.level == 0 and node.module == pkg
            for alias in node.names:
                bound = alias.asname or alias.name
                if from_pkg and alias.name == "*":
                    found.update({m: m for m in MACRO_NAMES})
                elif from_pkg and alias.name in MACRO_NAMES:
                    found[bound] = alias.name
                elif alias.name != "*":
                    rebound.add(bound)
        elif isinstance(node, ast.Import):
            for alias in node.names:
                if alias.name == pkg:
                    prefix = alias.asname or alias.name
                    found.update({f"{prefix}.{m}": m for m in MACRO_NAMES})
                elif alias.asname:
                    rebound.add(alias.asname)
                elif not alias.name.startswith(pkg + "."):
                    rebound.add(alias.name.split(".")[0])
        elif isinstance(node, (ast.FunctionDef, ast.AsyncFunctionDef, ast.ClassDef)):
            rebound.add(node.name)
        elif isinstance(node, ast.Name) and isinstance(node.ctx, (ast.Store, ast.Del)):
            rebound.add(node.id)
        elif isinstance(node, ast.ExceptHandler) and node.name:
            rebound.add(node.name)
        elif isinstance(node, (ast.MatchAs, ast.MatchStar)) and node.name:
            rebound.add(node.name)
        elif isinstance(node, ast.MatchMapping) and node.rest:
            rebound.add(node.rest)
    return _without({**enclosing, **found}, rebound)


def resolve_macro_names(tree: ast.Module, config: ExpansionConfig = DEFAULT_CONFIG) -> dict[str, str]:
    """Map module-level callee spellings (e.g. "bi", "fc.break_if") to the macro they denote.

    Only names bound by importing from the configured package, plus the
    configured implicit names, are macros. Imports inside a function or class
    count only within that body; see scope_macro_names.
    """
    implicit: dict[str, str] = {}
    for macro, spellings in sorted(config.implicit_names.items()):
        for spelling in spellings:
            implicit[spelling] = macro
    return scope_macro_names(tree.body, implicit, config)


def _dotted(func: ast.expr) -> Optional[str]:
    parts: list[str] = []
    while isinstance(func, ast.Attribute):
        parts.append(func.attr)
        func = func.value
    if not isinstance(func, ast.Name):
        return None
    parts.append(func.id)
    return ".".join(reversed(parts))


class _Expander(ast.NodeTransformer):
    def __init__(self, macros: dict[str, str], config: ExpansionConfig, file: Optional[str]) -> None:
        # (names visible in the scope, scope is a class body)
        self.scopes: list[tuple[dict[str, str], bool]] = [(macros, False)]
        self.config = config
        self.file = file
        self.records: list[ExpansionRecord] = []
        self.errors: list[FlowError] = []

    @property
    def macros(self) -> dict[str, str]:
        return self.scopes[-1][0]

    def _enclosing(self) -> dict[str, str]:
        # class bodies are not visible from the functions nested in them
        for names, is_class in reversed(self.scopes):
            if not is_class:
                return names
        return {}

    def _visit_all(self, nodes: list[ast.AST]) -> list[ast.AST]:
        out: list[ast.AST] = []
        for node in nodes:
            new = self.visit(node)
            if isinstance(new, list):
                out.extend(new)
            elif new is not None:
                out.append(new)
        return out

    def _visit_body(self, node: ast.AST, params: set[str], is_class: bool) -> ast.AST:
        names = scope_macro_names(node.body, self._enclosing(), self.config, params=params)
        self.scopes.append((names, is_class))
        node.body = self._visit_all(node.body)
        self.scopes.pop()
        return node

    def visit_FunctionDef(self, node: ast.FunctionDef) -> ast.AST:
        node.decorator_list = self._visit_all(node.decorator_list)
        self.visit(node.args)
        if node.returns is not None:
            self.visit(node.returns)
        return self._visit_body(node, _parameters(node.args), is_class=False)

    visit_AsyncFunctionDef = visit_FunctionDef

    def visit_ClassDef(self, node: ast.ClassDef) -> ast.AST:
        node.decorator_list = self._visit_all(node.decorator_list)
        node.bases = self._visit_all(node.bases)
        node.keywords = self._visit_all(node.keywords)
        return self._visit_body(node, set(), is_class=True)

    def visit_Lambda(self, node: ast.Lambda) -> ast.AST:
        self.visit(node.args)
        self.scopes.append((_without(self._enclosing(), _parameters(node.args)), False))
        self.visit(node.body)
        self.scopes.pop()
        return node

    def _macro_of(self, node: ast.AST) -> Optional[str]:
        if not isinstance(node, ast.Call):
            return None
        spelling = _dotted(node.func)
        if spelling is None:
            return None
        return self.macros.get(spelling)

    def visit_Expr(self, node: ast.Expr) -> ast.AST:
        macro = self._macro_of(node.value)
        if macro is None:
            return self.generic_visit(node)

        call = node.value
        assert isinstance(call, ast.Call)
        # Only look for misplaced macros inside the arguments; the call itself is consumed.
        for arg in call.args:
            self.visit(arg)
        for kw in call.keywords:
            self.visit(kw)

        invocation = Invocation(
            macro=macro,
            args=tuple(call.args),
            keywords=tuple(call.keywords),
            node=node,
        )
        try:
            stmt, rule = expand_invocation(RULE_SETS[macro], invocation, file=self.file)
        except FlowError as e:
            self.errors.append(e)
            return node

        self.records.append(
            ExpansionRecord(
                macro=macro,
                shape=rule.describe(),
                line=invocation.line,
                col=invocation.col,
            )
        )
        return stmt

    def visit_Call(self, node: ast.Call) -> ast.AST:
        macro = self._macro_of(node)
        if macro is not None:
            self.errors.append(
                ExpansionError(
                    code="E_INVOCATION_POSITION",
                    message=f"{macro}() must be used as a statement on its own",
                    file=self.file,
                    line=node.lineno,
                    col=node.col_offset,
                )
            )
        return self.generic_visit(node)


def expand_module(
    tree: ast.Module,
    *,
    config: ExpansionConfig = DEFAULT_CONFIG,
    file: Optional[str] = None,
) -> tuple[Optional[ExpansionResult], list[FlowError]]:
    """Expand every macro invocation in a module, then lower loop labels.

    Returns (result, errors). Result is None when errors exist. The input
    tree is not modified.
    """
    tree = copy.deepcopy(tree)
    expander = _Expander(resolve_macro_names(tree, config), config, file)
    tree = expander.visit(tree)
    if expander.errors:
        return None, sorted_errors(expander.errors)

    label_errors = lower_labels(tree, config=config, file=file)
    if label_errors:
        return None, sorted_errors(label_errors)

    ast.fix_missing_locations(tree)
    return (
        ExpansionResult(tree=tree, records=expander.records, source=ast.unparse(tree)),
        [],
    )


def parse_source(source: str, *, file: str = "<string>") -> ast.Module:
    try:
        return ast.parse(source, filename=file)
    except SyntaxError as e:
        raise SourceLoadError(
            code="E_SYNTAX",
            message=e.msg,
            file=file,
            line=e.lineno,
            col=(e.offset - 1) if e.offset else None,
        ) from e


def expand_source(
    source: str,
    *,
    file: str = "<string>",
    config: ExpansionConfig = DEFAULT_CONFIG,
) -> ExpansionResult:
    """Parse, expand and lower `source`; raise the first diagnostic if any."""
    tree = parse_source(source, file=file)
    result, errors = expand_module(tree, config=config, file=file)
    if errors:
        raise errors[0]
    assert result is not None
    return result
