from __future__ import annotations

import __future__
import ast
import inspect
import textwrap
from dataclasses import replace
from types import CodeType, FunctionType, ModuleType
from typing import Any, Callable, Optional

from flow_control.core.errors import ExpansionError, SourceLoadError
from flow_control.core.expand.config import DEFAULT_CONFIG, ExpansionConfig
from flow_control.core.expand.expand_module import expand_module, expand_source, parse_source
from flow_control.core.model import MACRO_NAMES
from flow_control.markers import macro_of


_FUTURE_FLAGS = __future__.annotations.compiler_flag


def compile_module(tree: ast.Module, file: str, flags: int = 0) -> CodeType:
    try:
        return compile(tree, file, "exec", flags=flags, dont_inherit=True)
    except SyntaxError as e:
        raise SourceLoadError(
            code="E_COMPILE",
            message=e.msg,
            file=file,
            line=e.lineno,
            col=(e.offset - 1) if e.offset else None,
        ) from e


def compile_source(source: str, file: str, config: ExpansionConfig = DEFAULT_CONFIG) -> CodeType:
    """Expand, lower and compile module source."""
    result = expand_source(source, file=file, config=config)
    return compile_module(result.tree, file)


def macros_from_namespace(namespace: dict[str, Any], config: ExpansionConfig) -> dict[str, str]:
    """Macro spellings visible through a module's globals.

    Used for single functions, whose source does not include the module's imports.
    """
    names: dict[str, str] = {}
    for name, value in namespace.items():
        macro = macro_of(value)
        if macro is not None:
            names[name] = macro
        elif isinstance(value, ModuleType) and value.__name__ == config.package:
            for m in MACRO_NAMES:
                names[f"{name}.{m}"] = m
    return names


def expand(
    func: Optional[Callable[..., Any]] = None,
    *,
    config: ExpansionConfig = DEFAULT_CONFIG,
) -> Any:
    """Decorator: re-compile a function with its macro invocations expanded.

    Must be the innermost decorator. Usable bare (`@expand`) or with
    arguments (`@expand(config=...)`).
    """
    if func is None:
        return lambda f: _expand_function(f, config)
    return _expand_function(func, config)


def _expand_function(func: Callable[..., Any], config: ExpansionConfig) -> FunctionType:
    if not isinstance(func, FunctionType):
        raise TypeError(
            f"@expand needs a plain function, got {type(func).__name__}; "
            "place it below any other decorator"
        )
    file = inspect.getsourcefile(func) or func.__code__.co_filename
    if func.__code__.co_freevars:
        raise ExpansionError(
            code="E_CLOSURE_UNSUPPORTED",
            message=(
                f"{func.__qualname__} closes over {', '.join(func.__code__.co_freevars)}; "
                "closures cannot be re-bound, expand the module with install() instead"
            ),
            file=file,
            line=func.__code__.co_firstlineno,
        )

    try:
        lines, start = inspect.getsourcelines(func)
    except (OSError, TypeError) as e:
        raise ExpansionError(
            code="E_SOURCE_UNAVAILABLE",
            message=f"source for {func.__qualname__} is not available: {e}",
            file=file,
        ) from e

    tree = parse_source(textwrap.dedent("".join(lines)), file=file)
    ast.increment_lineno(tree, start - 1)
    fdef = tree.body[0]
    if not isinstance(fdef, (ast.FunctionDef, ast.AsyncFunctionDef)):
        raise ExpansionError(
            code="E_SOURCE_UNAVAILABLE",
            message=f"source for {func.__qualname__} is not a def statement",
            file=file,
            line=start,
        )
    fdef.decorator_list = []
    tree.body = [fdef]

    ns_config = _with_namespace(config, func.__globals__)
    result, errors = expand_module(tree, config=ns_config, file=file)
    if errors:
        raise errors[0]
    assert result is not None

    # keep the defining module's __future__ imports
    code = compile_module(result.tree, file, flags=func.__code__.co_flags & _FUTURE_FLAGS)
    scope: dict[str, Any] = {}
    exec(code, func.__globals__, scope)
    new = scope[fdef.name]
    new.__defaults__ = func.__defaults__
    new.__kwdefaults__ = func.__kwdefaults__
    new.__qualname__ = func.__qualname__
    new.__module__ = func.__module__
    new.__doc__ = func.__doc__
    new.__dict__.update(func.__dict__)
    return new


def _with_namespace(config: ExpansionConfig, namespace: dict[str, Any]) -> ExpansionConfig:
    implicit: dict[str, tuple[str, ...]] = {m: tuple(v) for m, v in config.implicit_names.items()}
    for spelling, macro in sorted(macros_from_namespace(namespace, config).items()):
        implicit[macro] = implicit.get(macro, ()) + (spelling,)
    return replace(config, implicit_names=implicit)
