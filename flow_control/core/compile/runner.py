from __future__ import annotations

import sys
from pathlib import Path
from types import ModuleType
from typing import Any

from flow_control.core.compile.compile_source import compile_source
from flow_control.core.compile.import_hook import install, is_installed, uninstall
from flow_control.core.expand.config import DEFAULT_CONFIG, ExpansionConfig
from flow_control.core.io.load_source import load_source


def run_path(
    path: str,
    *,
    argv: list[str] | None = None,
    config: ExpansionConfig = DEFAULT_CONFIG,
) -> dict[str, Any]:
    """Expand and execute a script as __main__, with the import hook active.

    Returns the script's globals. sys.argv, sys.path and sys.modules["__main__"]
    are restored afterwards.
    """
    code = compile_source(load_source(path), path, config=config)

    module = ModuleType("__main__")
    module.__file__ = path

    saved_main = sys.modules.get("__main__")
    saved_argv = sys.argv
    saved_path = list(sys.path)
    owns_hook = not is_installed()

    sys.modules["__main__"] = module
    sys.argv = [path, *(argv or [])]
    sys.path.insert(0, str(Path(path).resolve().parent))
    if owns_hook:
        install(config)
    try:
        exec(code, module.__dict__)
    finally:
        if owns_hook:
            uninstall()
        sys.path[:] = saved_path
        sys.argv = saved_argv
        if saved_main is not None:
            sys.modules["__main__"] = saved_main
        else:
            sys.modules.pop("__main__", None)
    return module.__dict__
