from __future__ import annotations

from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any

import yaml

from flow_control.core.errors import ConfigError
from flow_control.core.model import MACRO_NAMES


@dataclass(frozen=True)
class ExpansionConfig:
    # macro -> extra bare names recognised without an import
    implicit_names: dict[str, tuple[str, ...]] = field(default_factory=dict)
    package: str = "flow_control"
    flag_prefix: str = "_flow_"


DEFAULT_CONFIG = ExpansionConfig()

_KNOWN_KEYS = {"implicit_names", "package", "flag_prefix"}


def load_config_file(path: str | Path) -> dict[str, Any]:
    """Load config overrides from a YAML file.

    Format:
      implicit_names:
        break_if: [break_if, brk_if]
      package: flow_control
      flag_prefix: _flow_

    Returns the validated overrides; absent keys are left out.
    """
    p = Path(path)
    try:
        raw_text = p.read_text(encoding="utf-8")
    except FileNotFoundError:
        raise
    except (OSError, UnicodeDecodeError) as e:
        raise ConfigError(code="E_CONFIG_READ", message=str(e), file=str(p)) from e

    try:
        raw = yaml.safe_load(raw_text)
    except yaml.YAMLError as e:
        raise ConfigError(code="E_CONFIG_PARSE", message=str(e), file=str(p)) from e
    if raw is None:
        return {}
    if not isinstance(raw, dict):
        raise ConfigError(code="E_CONFIG_INVALID", message="config file must be a mapping", file=str(p))

    unknown = sorted(str(k) for k in raw.keys() if k not in _KNOWN_KEYS)
    if unknown:
        raise ConfigError(
            code="E_CONFIG_INVALID",
            message=f"unknown config keys: {', '.join(unknown)}",
            file=str(p),
        )

    out: dict[str, Any] = {}
    if "implicit_names" in raw:
        out["implicit_names"] = _parse_implicit_names(raw["implicit_names"], str(p))
    for key in ("package", "flag_prefix"):
        if key in raw:
            value = raw[key]
            dotted = value.split(".") if isinstance(value, str) else []
            if not dotted or not all(part.isidentifier() for part in dotted):
                raise ConfigError(
                    code="E_CONFIG_INVALID",
                    message=f"{key} must be a valid identifier",
                    file=str(p),
                )
            if key == "flag_prefix" and len(dotted) != 1:
                raise ConfigError(
                    code="E_CONFIG_INVALID",
                    message="flag_prefix must not contain dots",
                    file=str(p),
                )
            out[key] = value
    return out


def _parse_implicit_names(raw: Any, file: str) -> dict[str, tuple[str, ...]]:
    if not isinstance(raw, dict):
        raise ConfigError(
            code="E_CONFIG_INVALID",
            message="implicit_names must be a mapping of macro -> list[str]",
            file=file,
        )
    out: dict[str, tuple[str, ...]] = {}
    for macro, names in raw.items():
        if macro not in MACRO_NAMES:
            raise ConfigError(
                code="E_CONFIG_INVALID",
                message=f"unknown macro '{macro}' (choose from: {', '.join(MACRO_NAMES)})",
                file=file,
            )
        if not isinstance(names, list) or not names:
            raise ConfigError(
                code="E_CONFIG_INVALID",
                message=f"implicit_names.{macro} must be a non-empty list",
                file=file,
            )
        for name in names:
            if not isinstance(name, str) or not name.isidentifier():
                raise ConfigError(
                    code="E_CONFIG_INVALID",
                    message=f"implicit_names.{macro} items must be identifiers",
                    file=file,
                )
        out[macro] = tuple(names)
    return out


def merged_config(overrides: dict[str, Any] | None = None) -> ExpansionConfig:
    """Return DEFAULT_CONFIG with overrides applied.

    implicit_names entries replace the default entry for the same macro.
    """
    if not overrides:
        return DEFAULT_CONFIG
    implicit = dict(DEFAULT_CONFIG.implicit_names)
    implicit.update(overrides.get("implicit_names", {}))
    return replace(
        DEFAULT_CONFIG,
        implicit_names=implicit,
        package=overrides.get("package", DEFAULT_CONFIG.package),
        flag_prefix=overrides.get("flag_prefix", DEFAULT_CONFIG.flag_prefix),
    )


def load_and_merge(config_file: str | None) -> ExpansionConfig:
    if not config_file:
        return merged_config()
    return merged_config(load_config_file(config_file))


def implicit_config(base: ExpansionConfig = DEFAULT_CONFIG) -> ExpansionConfig:
    """`base`, with every macro also recognised by its own bare name, no import needed."""
    implicit = {m: tuple(dict.fromkeys((m, *base.implicit_names.get(m, ())))) for m in MACRO_NAMES}
    return replace(base, implicit_names=implicit)
