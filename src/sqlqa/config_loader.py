# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""Config loading utilities with layered precedence."""

from __future__ import annotations

import os
import re
import tomllib
from collections.abc import Mapping, Sequence
from pathlib import Path
from typing import Any, Final, Protocol

from .config import ConfigError, LintConfig, build_config

PYPROJECT_FILENAME: Final[str] = "pyproject.toml"
PROJECT_CONFIG_FILENAME: Final[str] = ".sqlqa.toml"
PYPROJECT_TOOL_KEY: Final[str] = "tool"
PYPROJECT_SECTION_KEY: Final[str] = "sqlqa"

_ENV_VAR_PATTERN: Final[re.Pattern[str]] = re.compile(r"\$\{([^}]+)\}|\$([A-Za-z_][A-Za-z0-9_]*)")


class ConfigSource(Protocol):
    """Provide a configuration fragment for layered loading."""

    name: str

    def load(self) -> Mapping[str, Any]:
        """Return the raw configuration fragment contributed by the source."""
        ...


class DefaultConfigSource:
    """Return the built-in defaults as a configuration fragment."""

    name = "defaults"

    def load(self) -> Mapping[str, Any]:
        return LintConfig().model_dump(mode="json", exclude_none=True)


class TomlConfigSource:
    """Load configuration data from a standalone TOML document."""

    def __init__(self, path: Path, *, env: Mapping[str, str] | None = None) -> None:
        self.path = path
        self.name = str(path)
        self._env = env if env is not None else os.environ

    def _read(self) -> dict[str, Any]:
        if not self.path.is_file():
            return {}
        try:
            with self.path.open("rb") as handle:
                return tomllib.load(handle)
        except tomllib.TOMLDecodeError as exc:
            raise ConfigError(f"Unable to parse {self.path}: {exc}") from exc

    def load(self) -> Mapping[str, Any]:
        return _expand_env(self._read(), self._env)


class PyProjectConfigSource(TomlConfigSource):
    """Read configuration from ``[tool.sqlqa]`` within ``pyproject.toml``."""

    def load(self) -> Mapping[str, Any]:
        tool_section = self._read().get(PYPROJECT_TOOL_KEY)
        if not isinstance(tool_section, Mapping):
            return {}
        section = tool_section.get(PYPROJECT_SECTION_KEY)
        if section is None:
            return {}
        if not isinstance(section, Mapping):
            raise ConfigError(f"[tool.{PYPROJECT_SECTION_KEY}] in {self.path} must be a table")
        return _expand_env(dict(section), self._env)


class ConfigLoader:
    """Apply layered configuration sources with predictable precedence."""

    def __init__(self, *, project_root: Path, sources: Sequence[ConfigSource]) -> None:
        if not sources:
            raise ValueError("at least one configuration source is required")
        self._project_root = project_root.resolve()
        self._sources = list(sources)

    @classmethod
    def for_root(cls, project_root: Path, *, env: Mapping[str, str] | None = None) -> ConfigLoader:
        """Build a loader reading defaults, ``pyproject.toml`` and ``.sqlqa.toml``."""

        return cls(
            project_root=project_root,
            sources=[
                DefaultConfigSource(),
                PyProjectConfigSource(project_root / PYPROJECT_FILENAME, env=env),
                TomlConfigSource(project_root / PROJECT_CONFIG_FILENAME, env=env),
            ],
        )

    @property
    def sources(self) -> tuple[ConfigSource, ...]:
        return tuple(self._sources)

    def load(self, overrides: Mapping[str, Any] | None = None) -> LintConfig:
        """Merge every source, then ``overrides``, into a validated config.

        Raises:
            ConfigError: If a source cannot be read or the result is invalid.
        """

        merged: dict[str, Any] = {}
        for source in self._sources:
            merged = _deep_merge(merged, source.load())
        if overrides:
            merged = _deep_merge(merged, {key: value for key, value in overrides.items() if value is not None})
        cwd = merged.get("cwd")
        if isinstance(cwd, str) and not Path(cwd).is_absolute():
            merged["cwd"] = str(self._project_root / cwd)
        return build_config(merged)


def load_config(
    project_root: Path,
    overrides: Mapping[str, Any] | None = None,
    *,
    env: Mapping[str, str] | None = None,
) -> LintConfig:
    """Return the effective :class:`LintConfig` for ``project_root``."""

    return ConfigLoader.for_root(project_root, env=env).load(overrides)


def _deep_merge(base: Mapping[str, Any], override: Mapping[str, Any]) -> dict[str, Any]:
    result: dict[str, Any] = dict(base)
    for key, value in override.items():
        if key in result and isinstance(result[key], Mapping) and isinstance(value, Mapping):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def _expand_env(data: Mapping[str, Any], env: Mapping[str, str]) -> dict[str, Any]:
    return {key: _expand_env_value(value, env) for key, value in data.items()}


def _expand_env_value(value: Any, env: Mapping[str, str]) -> Any:
    if isinstance(value, str):
        return _expand_env_string(value, env)
    if isinstance(value, Mapping):
        return {k: _expand_env_value(v, env) for k, v in value.items()}
    if isinstance(value, list):
        return [_expand_env_value(v, env) for v in value]
    return value


def _expand_env_string(value: str, env: Mapping[str, str]) -> str:
    def _replace(match: re.Match[str]) -> str:
        key = match.group(1) or match.group(2)
        if key is None:
            return match.group(0)
        return env.get(key, match.group(0))

    return _ENV_VAR_PATTERN.sub(_replace, value)


__all__ = [
    "ConfigLoader",
    "ConfigSource",
    "DefaultConfigSource",
    "PROJECT_CONFIG_FILENAME",
    "PyProjectConfigSource",
    "TomlConfigSource",
    "load_config",
]
