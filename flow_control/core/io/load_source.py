from __future__ import annotations

from pathlib import Path

from flow_control.core.errors import SourceLoadError


SOURCE_SUFFIXES = {".py", ".pyw"}


def load_source(path: str) -> str:
    """Read a Python source file as text.

    Parsing is left to the expander so syntax errors carry line/col info.
    """

    p = Path(path)
    if not p.exists():
        raise SourceLoadError(
            code="E_FILE_NOT_FOUND",
            message="file does not exist",
            file=str(p),
        )

    if p.suffix.lower() not in SOURCE_SUFFIXES:
        raise SourceLoadError(
            code="E_UNSUPPORTED_FORMAT",
            message="supported formats are .py and .pyw",
            file=str(p),
        )

    try:
        return p.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        raise SourceLoadError(code="E_FILE_READ", message=str(e), file=str(p)) from e


def write_source(path: str, source: str) -> None:
    p = Path(path)
    if str(p.parent) not in (".", ""):
        p.parent.mkdir(parents=True, exist_ok=True)
    text = source if source.endswith("\n") else source + "\n"
    p.write_text(text, encoding="utf-8")
