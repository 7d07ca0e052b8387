"""Configuration management for Photostack.

Settings live in `~/.photostack/config.yaml`. The file is created with the
built-in defaults on first use and is rewritten with a generated header and
a `# Last updated:` stamp whenever a value is saved.
"""

from __future__ import annotations

import os
import textwrap
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Mapping, Tuple

import yaml

from .exceptions import ConfigError
from .models import GroupingSettings, LoggingSettings, PhotostackConfig, PromotionSettings
from .resolver import (
    ENV_PREFIX,
    LEGACY_ENV_ALIASES,
    flatten_for_env,
    overrides_from_env,
    resolve_with_precedence,
)

DEFAULT_CONFIG_PATH = Path("~/.photostack/config.yaml")
STAMP_PREFIX = "# Last updated:"
_CONFIG_HEADER = textwrap.dedent(
    """\
    # Photostack configuration file
    # Generated automatically; manage via `photostack config set`.
    # `criteria` accepts the legacy list, the grouped mapping or the expression mapping.
    """
)


class ConfigManager:
    """Read, resolve and persist the Photostack configuration file."""

    def __init__(
        self,
        config_path: Path | None = None,
        *,
        env: Mapping[str, str] | None = None,
    ) -> None:
        self._config_path = (config_path or DEFAULT_CONFIG_PATH).expanduser()
        self._env = os.environ if env is None else env

    @property
    def config_path(self) -> Path:
        """Return the resolved configuration path."""
        return self._config_path

    def load(
        self,
        *,
        cli_overrides: Mapping[str, Any] | None = None,
        include_env: bool = True,
        ensure_file: bool = True,
        env_overrides: Mapping[str, str] | None = None,
    ) -> PhotostackConfig:
        """Resolve the effective configuration.

        Args:
            cli_overrides: Dotted-key overrides from the command line.
            include_env: Whether environment variables participate.
            ensure_file: Create the file with defaults when it is missing.
            env_overrides: Environment mapping used instead of the process environment.

        Returns:
            PhotostackConfig: Validated configuration.

        Raises:
            ConfigError: If the file or any override is invalid.
        """
        if ensure_file:
            self.ensure_exists()

        env_layer = None
        if include_env:
            env_layer = overrides_from_env(self._env if env_overrides is None else env_overrides)

        return resolve_with_precedence(
            defaults=PhotostackConfig(),
            file_overrides=self._read_file(),
            env_overrides=env_layer or None,
            cli_overrides=cli_overrides,
        )

    def load_file_overrides(self) -> dict[str, Any]:
        """Return the raw mapping stored on disk."""
        return self._read_file()

    def save(self, config: PhotostackConfig | Mapping[str, Any]) -> None:
        """Write configuration data to disk with a fresh header."""
        if isinstance(config, PhotostackConfig):
            data = config.model_dump(mode="python")
        else:
            data = dict(config)
        self._write_file(data)

    def set_value(self, key: str, value: Any) -> Tuple[list[str], list[str]]:
        """Store one dotted-key value in the file after validating the result.

        Args:
            key: Dotted path such as `grouping.unmatched`.
            value: Already-parsed value to store.

        Returns:
            Tuple[list[str], list[str]]: File lines before and after the
            update, without the timestamp line.

        Raises:
            ConfigError: If the key is empty, crosses a scalar, or the
                updated file would not validate.
        """
        segments = [segment.strip() for segment in key.split(".") if segment.strip()]
        if not segments:
            raise ConfigError("KEY must specify a dotted path such as 'grouping.unmatched'.")

        self.ensure_exists()
        before = self._content_lines()

        data = self._read_file()
        node = data
        for segment in segments[:-1]:
            child = node.setdefault(segment, {})
            if not isinstance(child, dict):
                raise ConfigError(f"Cannot assign into '{segment}' because it is not a mapping.")
            node = child
        node[segments[-1]] = value

        resolve_with_precedence(defaults=PhotostackConfig(), file_overrides=data)
        self._write_file(data)
        return before, self._content_lines()

    def ensure_exists(self) -> Path:
        """Create the configuration file with defaults if it is missing."""
        if not self._config_path.exists():
            self._write_file(PhotostackConfig().model_dump(mode="python"))
        return self._config_path

    def read_text(self) -> str:
        """Return the configuration file contents, or an empty string."""
        try:
            return self._config_path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return ""

    def _content_lines(self) -> list[str]:
        return [
            line for line in self.read_text().splitlines() if not line.startswith(STAMP_PREFIX)
        ]

    def _read_file(self) -> dict[str, Any]:
        text = self.read_text()
        if not text:
            return {}

        try:
            raw = yaml.safe_load(text)
        except yaml.YAMLError as exc:
            raise ConfigError(f"Failed to parse configuration file: {exc}") from exc

        if raw is None:
            return {}
        if not isinstance(raw, dict):
            raise ConfigError("Configuration file must contain a mapping at the top level.")
        return raw

    def _write_file(self, data: Mapping[str, Any]) -> None:
        stamp = datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")
        body = yaml.safe_dump(dict(data), sort_keys=False)
        self._config_path.parent.mkdir(parents=True, exist_ok=True)
        self._config_path.write_text(
            f"{_CONFIG_HEADER}{STAMP_PREFIX} {stamp}\n{body}", encoding="utf-8"
        )


__all__ = [
    "ConfigManager",
    "DEFAULT_CONFIG_PATH",
    "ENV_PREFIX",
    "LEGACY_ENV_ALIASES",
    "PhotostackConfig",
    "PromotionSettings",
    "GroupingSettings",
    "LoggingSettings",
    "resolve_with_precedence",
    "overrides_from_env",
    "flatten_for_env",
    "ConfigError",
]
