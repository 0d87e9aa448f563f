"""Configuration management for arcstage."""

from __future__ import annotations

import logging
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Mapping

import yaml

from .exceptions import ConfigError
from .models import ArcstageConfig
from .resolver import (
    ENV_PREFIX,
    flatten_for_env,
    get_path,
    read_env_overrides,
    resolve_with_precedence,
    set_path,
    split_key,
)

LOGGER = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path("~/.arcstage/config.yaml")

_HEADER_LINES = (
    "# arcstage configuration file",
    "# Generated automatically; manage via `arcstage config set`.",
)


class ConfigManager:
    """Read, validate, and persist the arcstage configuration file.

    The file holds only the file layer. Environment variables and CLI
    overrides are merged on top of it by :meth:`load` and never written back.
    """

    def __init__(
        self,
        config_path: Path | None = None,
        *,
        env: Mapping[str, str] | None = None,
    ) -> None:
        self._config_path = (config_path or DEFAULT_CONFIG_PATH).expanduser()
        self._env = env if env is not None else os.environ

    @property
    def config_path(self) -> Path:
        return self._config_path

    def ensure_exists(self) -> Path:
        """Write a file holding the defaults when none exists yet."""
        if not self._config_path.exists():
            LOGGER.debug("Creating default configuration at %s.", self._config_path)
            self._write_file(ArcstageConfig().model_dump(mode="python"))
        return self._config_path

    def load(
        self,
        *,
        cli_overrides: Mapping[str, Any] | None = None,
        include_env: bool = True,
        ensure_file: bool = True,
        env_overrides: Mapping[str, str] | None = None,
    ) -> ArcstageConfig:
        """Resolve the effective configuration.

        Args:
            cli_overrides: Dotted-key overrides from command line flags.
            include_env: Whether ``ARCSTAGE__`` variables are applied.
            ensure_file: Whether a default file is created when missing.
            env_overrides: Environment to read instead of ``os.environ``.

        Returns:
            ArcstageConfig: Validated configuration.

        Raises:
            ConfigError: If the file is malformed or a value fails validation.
        """
        if ensure_file:
            self.ensure_exists()
        environ = (env_overrides if env_overrides is not None else self._env) if include_env else {}
        return resolve_with_precedence(
            defaults=ArcstageConfig(),
            file_overrides=self._read_file(),
            env_overrides=read_env_overrides(environ) or None,
            cli_overrides=cli_overrides,
        )

    def set_value(self, key: str, value: Any) -> bool:
        """Store ``value`` under the dotted ``key`` in the configuration file.

        Returns:
            bool: False when the file already held ``value`` for ``key``.

        Raises:
            ConfigError: If the key is malformed or the result fails validation.
        """
        path = split_key(key)
        data = self._read_file()
        found, current = get_path(data, path)
        if found and current == value:
            return False
        set_path(data, path, value)
        resolve_with_precedence(defaults=ArcstageConfig(), file_overrides=data)
        self._write_file(data)
        LOGGER.info("Configuration %s set to %r.", ".".join(path), value)
        return True

    def save(self, config: ArcstageConfig | Mapping[str, Any]) -> None:
        """Replace the file layer with ``config``."""
        if isinstance(config, ArcstageConfig):
            self._write_file(config.model_dump(mode="python"))
        else:
            self._write_file(dict(config))

    def read_text(self) -> str:
        if not self._config_path.exists():
            return ""
        return self._config_path.read_text(encoding="utf-8")

    # Internal helpers -------------------------------------------------

    def _read_file(self) -> dict[str, Any]:
        text = self.read_text()
        if not text:
            return {}
        try:
            raw = yaml.safe_load(text) or {}
        except yaml.YAMLError as exc:
            raise ConfigError(f"Failed to parse configuration file: {exc}") from exc
        if not isinstance(raw, dict):
            raise ConfigError("Configuration file must contain a mapping at the top level.")
        return raw

    def _write_file(self, data: Mapping[str, Any]) -> None:
        stamp = datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")
        header = "\n".join(_HEADER_LINES + (f"# Last updated: {stamp}",))
        body = yaml.safe_dump(dict(data), sort_keys=False)
        self._config_path.parent.mkdir(parents=True, exist_ok=True)
        self._config_path.write_text(f"{header}\n{body}", encoding="utf-8")


__all__ = [
    "ArcstageConfig",
    "ConfigError",
    "ConfigManager",
    "DEFAULT_CONFIG_PATH",
    "ENV_PREFIX",
    "flatten_for_env",
    "resolve_with_precedence",
]
