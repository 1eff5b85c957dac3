# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""Configuration models for invoking the SQL linter against a buffer."""

from __future__ import annotations

from enum import Enum
from pathlib import Path
from typing import Any, Final

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .positions import OffsetUnit

DEFAULT_EXECUTABLE: Final[str] = "sqlfluff"
ANNOTATION_FORMAT: Final[str] = "github-annotation"
STDIN_PATH: Final[str] = "-"


class ConfigError(Exception):
    """Raised when configuration input is invalid."""


class SqlDialect(str, Enum):
    """SQL grammars understood by the linter."""

    ANSI = "ansi"
    ATHENA = "athena"
    BIGQUERY = "bigquery"
    CLICKHOUSE = "clickhouse"
    DATABRICKS = "databricks"
    DB2 = "db2"
    DUCKDB = "duckdb"
    EXASOL = "exasol"
    GREENPLUM = "greenplum"
    HIVE = "hive"
    IMPALA = "impala"
    MARIADB = "mariadb"
    MATERIALIZE = "materialize"
    MYSQL = "mysql"
    ORACLE = "oracle"
    POSTGRES = "postgres"
    REDSHIFT = "redshift"
    SNOWFLAKE = "snowflake"
    SOQL = "soql"
    SPARKSQL = "sparksql"
    SQLITE = "sqlite"
    STARROCKS = "starrocks"
    TERADATA = "teradata"
    TRINO = "trino"
    TSQL = "tsql"
    VERTICA = "vertica"


class LintConfig(BaseModel):
    """Settings describing how a buffer is linted."""

    model_config = ConfigDict(validate_assignment=True, extra="forbid")

    executable: str = DEFAULT_EXECUTABLE
    dialect: SqlDialect = SqlDialect.ANSI
    extra_args: tuple[str, ...] = Field(default_factory=tuple)
    timeout: float | None = Field(default=None, gt=0)
    offset_unit: OffsetUnit = OffsetUnit.CODEPOINT
    cwd: Path | None = None
    env: dict[str, str] = Field(default_factory=dict)

    @field_validator("executable")
    @classmethod
    def _require_executable(cls, value: str) -> str:
        stripped = value.strip()
        if not stripped:
            raise ValueError("executable must not be empty")
        return stripped

    @field_validator("dialect", mode="before")
    @classmethod
    def _normalise_dialect(cls, value: object) -> object:
        if isinstance(value, str):
            return value.strip().lower()
        return value

    def build_command(self) -> list[str]:
        """Return the argv used to lint text supplied on standard input."""

        return [
            self.executable,
            "lint",
            "--dialect",
            self.dialect.value,
            "--format",
            ANNOTATION_FORMAT,
            "--disable-progress-bar",
            *self.extra_args,
            STDIN_PATH,
        ]

    def with_overrides(self, **overrides: Any) -> LintConfig:
        """Return a validated copy of the config with ``overrides`` applied.

        Raises:
            ConfigError: If any override fails validation.
        """

        return build_config({**self.model_dump(), **overrides})


def build_config(data: dict[str, Any]) -> LintConfig:
    """Validate ``data`` into a :class:`LintConfig`.

    Raises:
        ConfigError: If ``data`` contains unknown keys or invalid values.
    """

    try:
        return LintConfig.model_validate(data)
    except ValidationError as exc:
        raise ConfigError(_format_validation_error(exc)) from exc


def _format_validation_error(exc: ValidationError) -> str:
    problems = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error.get("loc", ())) or "<root>"
        problems.append(f"{location}: {error.get('msg', 'invalid value')}")
    return "Invalid sqlqa configuration: " + "; ".join(problems)


def supported_dialects() -> tuple[str, ...]:
    """Return the dialect identifiers accepted by :class:`LintConfig`."""

    return tuple(dialect.value for dialect in SqlDialect)


__all__ = [
    "ANNOTATION_FORMAT",
    "ConfigError",
    "DEFAULT_EXECUTABLE",
    "LintConfig",
    "STDIN_PATH",
    "SqlDialect",
    "build_config",
    "supported_dialects",
]
