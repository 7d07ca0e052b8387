"""Layered resolution of Photostack settings.

Sources are merged from weakest to strongest: built-in defaults, the YAML
file, environment variables and finally command line overrides. The
`criteria` section is opaque: whatever the strongest source provides
replaces the weaker value as a whole instead of being merged key by key.
"""

from __future__ import annotations

import json
from collections.abc import Mapping as MappingABC
from copy import deepcopy
from typing import Any, Dict, Iterable, Mapping, Optional, Tuple

import yaml
from pydantic import ValidationError

from .exceptions import ConfigError
from .models import PhotostackConfig

ENV_PREFIX = "PHOTOSTACK__"

# Flat variable names understood by earlier stacker deployments.
LEGACY_ENV_ALIASES: Dict[str, Tuple[str, ...]] = {
    "CRITERIA": ("criteria",),
    "PARENT_FILENAME_PROMOTE": ("promotion", "parent_filename_promote"),
    "PARENT_EXT_PROMOTE": ("promotion", "parent_ext_promote"),
    "LOG_LEVEL": ("logging", "level"),
}

OPAQUE_SECTIONS = frozenset({"criteria"})


def resolve_with_precedence(
    *,
    defaults: PhotostackConfig,
    file_overrides: Mapping[str, Any] | None = None,
    env_overrides: Mapping[str, Any] | None = None,
    cli_overrides: Mapping[str, Any] | None = None,
) -> PhotostackConfig:
    """Merge configuration sources: defaults < file < environment < CLI.

    Override keys may be dotted (`grouping.unmatched`) or nested mappings.

    Raises:
        ConfigError: If an override is malformed or the merged result is invalid.
    """
    layers = (
        ("file", file_overrides),
        ("environment", env_overrides),
        ("cli", cli_overrides),
    )
    merged = defaults.model_dump(mode="python")
    for source_name, layer in layers:
        if layer is not None:
            merged = _overlay(merged, _expand(layer, source_name))

    try:
        return PhotostackConfig.model_validate(merged)
    except ValidationError as exc:
        raise ConfigError(f"Invalid configuration values: {exc}") from exc


def overrides_from_env(env: Mapping[str, str]) -> dict[str, Any]:
    """Collect configuration overrides from environment variables.

    `PHOTOSTACK__SECTION__KEY` variables are parsed as YAML literals and win
    over the flat legacy names (`CRITERIA`, `PARENT_FILENAME_PROMOTE`,
    `PARENT_EXT_PROMOTE`, `LOG_LEVEL`), which are taken verbatim.
    """
    overrides: dict[str, Any] = {}

    for name, path in LEGACY_ENV_ALIASES.items():
        raw = env.get(name)
        if not raw:
            continue
        value = raw.upper() if path == ("logging", "level") else raw
        _place(overrides, list(path), value, source_name="environment")

    for name, raw in sorted(env.items()):
        if not name.startswith(ENV_PREFIX):
            continue
        path = [part.lower() for part in name[len(ENV_PREFIX) :].split("__") if part]
        if path:
            _place(overrides, path, _parse_env_value(raw), source_name="environment")

    return overrides


def flatten_for_env(config: PhotostackConfig) -> Dict[str, str]:
    """Render a configuration as `PHOTOSTACK__SECTION__KEY` variables."""
    flat: Dict[str, str] = {}
    for path, value in _leaves(config.model_dump(mode="python"), ()):
        name = ENV_PREFIX + "__".join(part.upper() for part in path)
        if value is None:
            flat[name] = "null"
        elif isinstance(value, (dict, list)):
            flat[name] = json.dumps(value)
        else:
            flat[name] = str(value)
    return flat


def _leaves(
    data: Mapping[str, Any], prefix: Tuple[str, ...]
) -> Iterable[Tuple[Tuple[str, ...], Any]]:
    for key, value in data.items():
        path = prefix + (str(key),)
        if isinstance(value, MappingABC) and not _is_opaque(path):
            yield from _leaves(value, path)
        else:
            yield path, value


def _parse_env_value(raw: str) -> Any:
    try:
        return yaml.safe_load(raw)
    except yaml.YAMLError:
        return raw


def _is_opaque(path: Iterable[str]) -> bool:
    parts = tuple(path)
    return bool(parts) and parts[0] in OPAQUE_SECTIONS


def _expand(source: Mapping[str, Any], source_name: str) -> dict[str, Any]:
    if not isinstance(source, MappingABC):
        raise ConfigError(f"{source_name.capitalize()} overrides must be a mapping.")
    expanded: dict[str, Any] = {}
    for key, value in source.items():
        if not isinstance(key, str):
            raise ConfigError(f"{source_name.capitalize()} override keys must be strings.")
        _place(expanded, key.split("."), value, source_name=source_name)
    return expanded


def _place(target: dict[str, Any], path: list[str], value: Any, *, source_name: str) -> None:
    node = target
    for depth, segment in enumerate(path[:-1]):
        child = node.get(segment)
        if child is None:
            child = node[segment] = {}
        elif not isinstance(child, dict):
            dotted = ".".join(path[: depth + 1])
            raise ConfigError(
                f"{source_name.capitalize()} override for {'.'.join(path)} "
                f"conflicts with the value at {dotted}."
            )
        node = child

    leaf = path[-1]
    if isinstance(value, MappingABC) and not _is_opaque(path):
        nested = _expand(value, source_name)
        current: Optional[Any] = node.get(leaf)
        node[leaf] = _overlay(current if isinstance(current, dict) else {}, nested)
    else:
        node[leaf] = value


def _overlay(
    base: Mapping[str, Any], top: Mapping[str, Any], prefix: Tuple[str, ...] = ()
) -> dict[str, Any]:
    result = {key: deepcopy(value) for key, value in base.items()}
    for key, value in top.items():
        path = prefix + (key,)
        below = result.get(key)
        if (
            not _is_opaque(path)
            and isinstance(value, MappingABC)
            and isinstance(below, MappingABC)
        ):
            result[key] = _overlay(below, value, path)
        else:
            result[key] = deepcopy(value)
    return result


__all__ = [
    "ENV_PREFIX",
    "LEGACY_ENV_ALIASES",
    "resolve_with_precedence",
    "overrides_from_env",
    "flatten_for_env",
]
