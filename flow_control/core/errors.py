from __future__ import annotations

from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class FlowError(Exception):
    """Base error envelope. Library code raises or returns these; the CLI prints them."""

    code: str
    message: str
    file: Optional[str] = None
    line: Optional[int] = None
    col: Optional[int] = None

    def __str__(self) -> str:
        parts: list[str] = [self.file or "<source>"]
        if self.line is not None:
            parts.append(str(self.line))
            if self.col is not None:
                parts.append(str(self.col))
        loc = ":".join(parts)
        return f"{loc}: {self.code}: {self.message}"

    def sort_key(self) -> tuple[str, int, int, str]:
        return (self.file or "", self.line or 0, self.col or 0, self.code)


class SourceLoadError(FlowError):
    pass


class ShapeMismatchError(FlowError):
    pass


class ExpansionError(FlowError):
    pass


class LabelResolutionError(FlowError):
    pass


class ConfigError(FlowError):
    pass


class NotExpandedError(RuntimeError):
    """A macro marker was called at run time, i.e. its module was never expanded."""

    def __init__(self, name: str) -> None:
        super().__init__(
            f"{name}() was called at run time; expand the enclosing code with "
            f"@flow_control.expand, flow_control.install() or `flowctl run`"
        )
        self.name = name


def sorted_errors(errors: list[FlowError]) -> list[FlowError]:
    return sorted(errors, key=lambda e: e.sort_key())
