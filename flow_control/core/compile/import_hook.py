from __future__ import annotations

import sys
from importlib.abc import MetaPathFinder
from importlib.machinery import ModuleSpec, PathFinder, SourceFileLoader
from importlib.util import decode_source
from types import CodeType
from typing import Optional, Sequence

from flow_control.core.compile.compile_source import compile_source
from flow_control.core.expand.config import DEFAULT_CONFIG, ExpansionConfig


class ExpandingLoader(SourceFileLoader):
    """Source loader that expands macros before compiling.

    Bytecode is never read from or written to __pycache__, so a stale
    unexpanded .pyc can not shadow the expansion.
    """

    def __init__(self, fullname: str, path: str, config: ExpansionConfig = DEFAULT_CONFIG) -> None:
        super().__init__(fullname, path)
        self.config = config

    def source_to_code(self, data, path, *, _optimize=-1) -> CodeType:  # type: ignore[override]
        source = decode_source(data) if isinstance(data, bytes) else data
        return compile_source(source, str(path), config=self.config)

    def get_code(self, fullname: str) -> CodeType:
        path = self.get_filename(fullname)
        return self.source_to_code(self.get_data(path), path)


class ExpandingFinder(MetaPathFinder):
    def __init__(self, config: ExpansionConfig = DEFAULT_CONFIG) -> None:
        self.config = config

    def find_spec(
        self,
        fullname: str,
        path: Optional[Sequence[str]],
        target: object = None,
    ) -> Optional[ModuleSpec]:
        pkg = self.config.package
        if fullname == pkg or fullname.startswith(pkg + "."):
            return None

        spec = PathFinder.find_spec(fullname, path)
        if spec is None or spec.origin is None or not isinstance(spec.loader, SourceFileLoader):
            return None
        if not self._mentions_package(spec.origin):
            return None

        spec.loader = ExpandingLoader(fullname, spec.origin, config=self.config)
        return spec

    def _mentions_package(self, origin: str) -> bool:
        # Cheap pre-filter; modules that never name the package have nothing to expand.
        try:
            with open(origin, "rb") as f:
                return self.config.package.encode() in f.read()
        except OSError:
            return False


_installed: Optional[ExpandingFinder] = None


def install(config: ExpansionConfig = DEFAULT_CONFIG) -> ExpandingFinder:
    """Expand macros in every module imported from now on. Idempotent."""
    global _installed
    if _installed is not None and _installed in sys.meta_path:
        return _installed
    _installed = ExpandingFinder(config)
    sys.meta_path.insert(0, _installed)
    return _installed


def uninstall() -> None:
    global _installed
    if _installed is not None and _installed in sys.meta_path:
        sys.meta_path.remove(_installed)
    _installed = None


def is_installed() -> bool:
    return _installed is not None and _installed in sys.meta_path
