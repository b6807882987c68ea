from __future__ import annotations

import json
from typing import Any, Optional

import typer
from rich.console import Console
from rich.table import Table

from flow_control.core.compile.compile_source import compile_module
from flow_control.core.compile.runner import run_path
from flow_control.core.errors import (
    ConfigError,
    FlowError,
    SourceLoadError,
    sorted_errors,
)
from flow_control.core.expand.config import ExpansionConfig, implicit_config, load_and_merge
from flow_control.core.expand.expand_module import expand_module, parse_source
from flow_control.core.expand.rules import RULE_SETS
from flow_control.core.io.load_source import load_source, write_source
from flow_control.core.model import ExpansionResult

app = typer.Typer(add_completion=False, no_args_is_help=True)
console = Console()
_IMPLICIT_HELP = "Recognise the macros by their bare names, without an import"


@app.callback()
def _callback() -> None:
    """flowctl: expand break_if / continue_if / return_if macros."""
    return


def _check_format(format: str) -> None:
    if format not in ("text", "json"):
        err = FlowError(
            code="E_UNKNOWN_FORMAT",
            message=f"unknown format: {format} (choose one of: text, json)",
            file=None,
        )
        _print_errors([err])
        raise typer.Exit(code=2)


def _load_config(config_file: Optional[str], implicit: bool = False) -> ExpansionConfig:
    try:
        config = load_and_merge(config_file)
    except FileNotFoundError:
        _print_errors(
            [
                ConfigError(
                    code="E_CONFIG_NOT_FOUND",
                    message=f"config file not found: {config_file}",
                    file=config_file,
                )
            ]
        )
        raise typer.Exit(code=1)
    except ConfigError as e:
        _print_errors([e])
        raise typer.Exit(code=2)
    return implicit_config(config) if implicit else config


def _exit_code(errors: list[FlowError]) -> int:
    """1 when a file could not be loaded or compiled, 2 for expansion and label errors."""
    return 1 if any(isinstance(e, SourceLoadError) for e in errors) else 2


def _expand_path(
    path: str, config: ExpansionConfig
) -> tuple[Optional[ExpansionResult], list[FlowError], int]:
    """Returns (result, errors, exit_code)."""
    try:
        tree = parse_source(load_source(path), file=path)
    except SourceLoadError as e:
        return None, [e], _exit_code([e])
    result, errors = expand_module(tree, config=config, file=path)
    if errors:
        return None, errors, _exit_code(errors)
    return result, [], 0


def _to_item(e: FlowError) -> dict[str, Any]:
    return {
        "code": e.code,
        "message": e.message,
        "file": e.file,
        "line": e.line,
        "col": e.col,
        "severity": "error",
        "kind": type(e).__name__,
    }


def _emit_json(
    command: str,
    *,
    ok: bool,
    exit_code: int,
    errors: list[FlowError],
    result: Optional[ExpansionResult],
    include_source: bool,
) -> None:
    payload: dict[str, Any] = {
        "tool": "flowctl",
        "command": command,
        "ok": ok,
        "error_count": len(errors),
        "errors": [_to_item(e) for e in sorted_errors(errors)],
        "records": [r.to_dict() for r in result.records] if result else [],
    }
    if include_source:
        payload["source"] = result.source if result else None
    typer.echo(json.dumps(payload, indent=2, sort_keys=True))
    raise typer.Exit(code=exit_code)


@app.command("expand")
def expand_cmd(
    path: str = typer.Argument(..., help="Path to a Python source file"),
    out: Optional[str] = typer.Option(None, "--out", help="Write expanded source here instead of stdout"),
    config_file: Optional[str] = typer.Option(None, "--config", help="Optional YAML config file"),
    format: str = typer.Option("text", "--format", help="Output format: text|json"),
    implicit: bool = typer.Option(False, "--implicit", help=_IMPLICIT_HELP),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Report each expansion on stderr"),
) -> None:
    """Expand macro invocations and print (or write) the resulting source."""
    _check_format(format)
    config = _load_config(config_file, implicit)

    result, errors, exit_code = _expand_path(path, config)
    if errors:
        if format == "json":
            _emit_json(
                "expand", ok=False, exit_code=exit_code, errors=errors, result=None, include_source=True
            )
        _print_errors(errors)
        raise typer.Exit(code=exit_code)

    assert result is not None
    if verbose:
        for r in result.records:
            typer.echo(f"{path}:{r.line}:{r.col}: {r.macro}{r.shape}", err=True)

    if out:
        write_source(out, result.source)

    if format == "json":
        _emit_json("expand", ok=True, exit_code=0, errors=[], result=result, include_source=not out)

    if out:
        typer.echo(f"OK: wrote expanded source to {out}")
    else:
        typer.echo(result.source)


@app.command("check")
def check_cmd(
    path: str = typer.Argument(..., help="Path to a Python source file"),
    config_file: Optional[str] = typer.Option(None, "--config", help="Optional YAML config file"),
    format: str = typer.Option("text", "--format", help="Output format: text|json"),
    implicit: bool = typer.Option(False, "--implicit", help=_IMPLICIT_HELP),
) -> None:
    """Expand and compile a file without writing anything."""
    _check_format(format)
    config = _load_config(config_file, implicit)

    result, errors, exit_code = _expand_path(path, config)
    if result is not None:
        try:
            compile_module(result.tree, path)
        except SourceLoadError as e:
            result, errors, exit_code = None, [e], _exit_code([e])

    if errors:
        if format == "json":
            _emit_json("check", ok=False, exit_code=exit_code, errors=errors, result=None, include_source=False)
        _print_errors(errors)
        raise typer.Exit(code=exit_code)

    assert result is not None
    if format == "json":
        _emit_json("check", ok=True, exit_code=0, errors=[], result=result, include_source=False)
    typer.echo(f"OK: {len(result.records)} invocation(s) expanded")


@app.command(
    "run",
    context_settings={"allow_extra_args": True, "ignore_unknown_options": True},
)
def run_cmd(
    ctx: typer.Context,
    path: str = typer.Argument(..., help="Script to expand and run as __main__"),
    config_file: Optional[str] = typer.Option(None, "--config", help="Optional YAML config file"),
    implicit: bool = typer.Option(False, "--implicit", help=_IMPLICIT_HELP),
) -> None:
    """Run a script with macros expanded (imports are expanded too)."""
    config = _load_config(config_file, implicit)
    try:
        run_path(path, argv=list(ctx.args), config=config)
    except FlowError as e:
        _print_errors([e])
        raise typer.Exit(code=_exit_code([e]))


@app.command("macros")
def macros_cmd() -> None:
    """List the available macros and the shapes they accept."""
    table = Table(title="flow_control macros")
    table.add_column("macro", no_wrap=True)
    table.add_column("shape", no_wrap=True)
    table.add_column("summary")
    for name in sorted(RULE_SETS):
        rule_set = RULE_SETS[name]
        for rule in rule_set.rules:
            table.add_row(name, f"{name}{rule.describe()}", rule_set.summary)
    console.print(table)


def _print_errors(errors: list[FlowError]) -> None:
    for e in sorted_errors(errors):
        typer.echo(str(e), err=True)


def main() -> None:
    app(prog_name="flowctl")


if __name__ == "__main__":
    main()
