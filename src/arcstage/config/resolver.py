"""Layered configuration resolution: defaults, file, environment, CLI."""

from __future__ import annotations

from collections.abc import Mapping
from copy import deepcopy
from typing import Any, Iterator

import yaml
from pydantic import ValidationError

from .exceptions import ConfigError
from .models import ArcstageConfig

ENV_PREFIX = "ARCSTAGE__"

# Later layers win.
LAYER_ORDER = ("file", "environment", "cli")


def split_key(key: str) -> list[str]:
    """Split a dotted key such as ``ingest.max_workers`` into segments.

    Raises:
        ConfigError: If the key names no segment.
    """
    segments = [segment.strip() for segment in key.split(".") if segment.strip()]
    if not segments:
        raise ConfigError("KEY must specify a dotted path such as 'ingest.max_workers'.")
    return segments


def set_path(target: dict[str, Any], path: list[str], value: Any) -> None:
    """Assign ``value`` at ``path`` inside ``target``, creating mappings on the way.

    Raises:
        ConfigError: If an intermediate segment holds a scalar.
    """
    node = target
    for depth, segment in enumerate(path[:-1], start=1):
        child = node.setdefault(segment, {})
        if not isinstance(child, dict):
            raise ConfigError(
                f"Cannot assign into '{'.'.join(path[:depth])}' because it is not a mapping."
            )
        node = child
    node[path[-1]] = value


def get_path(source: Mapping[str, Any], path: list[str]) -> tuple[bool, Any]:
    """Return ``(found, value)`` for ``path`` inside nested mappings."""
    node: Any = source
    for segment in path:
        if not isinstance(node, Mapping) or segment not in node:
            return False, None
        node = node[segment]
    return True, node


def merge_layers(base: Mapping[str, Any], *layers: Mapping[str, Any]) -> dict[str, Any]:
    """Recursively merge ``layers`` over ``base`` without mutating any input."""
    merged = {key: deepcopy(value) for key, value in base.items()}
    for layer in layers:
        for key, value in layer.items():
            current = merged.get(key)
            if isinstance(value, Mapping) and isinstance(current, Mapping):
                merged[key] = merge_layers(current, value)
            else:
                merged[key] = deepcopy(value)
    return merged


def expand_layer(source: Mapping[str, Any], *, layer: str) -> dict[str, Any]:
    """Return ``source`` as nested mappings, expanding dotted keys.

    Raises:
        ConfigError: If ``source`` is not a mapping or uses non-string keys.
    """
    if not isinstance(source, Mapping):
        raise ConfigError(f"{layer.capitalize()} overrides must be a mapping.")

    expanded: dict[str, Any] = {}
    for key, value in source.items():
        if not isinstance(key, str):
            raise ConfigError(f"{layer.capitalize()} override keys must be strings.")
        nested: Any = expand_layer(value, layer=layer) if isinstance(value, Mapping) else value
        path = split_key(key)
        for segment in reversed(path[1:]):
            nested = {segment: nested}
        expanded = merge_layers(expanded, {path[0]: nested})
    return expanded


def read_env_overrides(environ: Mapping[str, str]) -> dict[str, Any]:
    """Collect ``ARCSTAGE__SECTION__KEY`` variables as nested overrides.

    Values are read as YAML scalars so ``"2"`` becomes an int and ``"true"`` a
    bool; values YAML cannot parse are kept as strings.
    """
    overrides: dict[str, Any] = {}
    for name, raw in environ.items():
        if not name.startswith(ENV_PREFIX):
            continue
        path = [segment.lower() for segment in name[len(ENV_PREFIX) :].split("__") if segment]
        if not path:
            continue
        try:
            value: Any = yaml.safe_load(raw)
        except yaml.YAMLError:
            value = raw
        overrides = merge_layers(overrides, expand_layer({".".join(path): value}, layer="env"))
    return overrides


def resolve_with_precedence(
    *,
    defaults: ArcstageConfig,
    file_overrides: Mapping[str, Any] | None = None,
    env_overrides: Mapping[str, Any] | None = None,
    cli_overrides: Mapping[str, Any] | None = None,
) -> ArcstageConfig:
    """Merge configuration sources: defaults < file < environment < CLI.

    Raises:
        ConfigError: If a layer is malformed or the merged values fail validation.
    """
    sources = {"file": file_overrides, "environment": env_overrides, "cli": cli_overrides}
    layers = [
        expand_layer(sources[layer], layer=layer)
        for layer in LAYER_ORDER
        if sources[layer] is not None
    ]
    merged = merge_layers(defaults.model_dump(mode="python"), *layers)
    try:
        return ArcstageConfig.model_validate(merged)
    except ValidationError as exc:
        raise ConfigError(f"Invalid configuration values: {exc}") from exc


def _iter_leaves(
    data: Mapping[str, Any], prefix: tuple[str, ...] = ()
) -> Iterator[tuple[tuple[str, ...], Any]]:
    for key, value in data.items():
        path = prefix + (str(key),)
        if isinstance(value, Mapping):
            yield from _iter_leaves(value, path)
        else:
            yield path, value


def _render_env_value(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (list, tuple)):
        return yaml.safe_dump(list(value), default_flow_style=True).strip()
    return str(value)


def flatten_for_env(config: ArcstageConfig) -> dict[str, str]:
    """Render ``config`` as ``ARCSTAGE__SECTION__KEY`` environment variables."""
    return {
        ENV_PREFIX + "__".join(part.upper() for part in path): _render_env_value(value)
        for path, value in _iter_leaves(config.model_dump(mode="python"))
    }


__all__ = [
    "ENV_PREFIX",
    "LAYER_ORDER",
    "expand_layer",
    "flatten_for_env",
    "get_path",
    "merge_layers",
    "read_env_overrides",
    "resolve_with_precedence",
    "set_path",
    "split_key",
]
