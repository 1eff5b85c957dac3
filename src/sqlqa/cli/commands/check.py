# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""CLI command that lints one SQL document and prints its diagnostics."""

from __future__ import annotations

import asyncio
import sys
from collections.abc import Sequence
from enum import Enum
from pathlib import Path
from typing import Final

import typer
from rich.text import Text

from ...config import ConfigError, LintConfig, SqlDialect
from ...config_loader import load_config
from ...errors import LintError
from ...logging import configure_logging, fail, get_console_manager, info, ok, section, warn
from ...models import Diagnostic
from ...positions import OffsetUnit
from ...provider import DiagnosticProvider
from ...serialization import dumps_diagnostics
from ...severity import severity_style
from ..typer_ext import register_command

STDIN_MARKER: Final[str] = "-"
STDIN_LABEL: Final[str] = "<stdin>"
EXIT_CLEAN: Final[int] = 0
EXIT_DIAGNOSTICS: Final[int] = 1
EXIT_ERROR: Final[int] = 2


class OutputFormat(str, Enum):
    """Rendering modes for reported diagnostics."""

    TEXT = "text"
    JSON = "json"


def _read_source(path: Path | None) -> tuple[str, str]:
    if path is None or str(path) == STDIN_MARKER:
        return STDIN_LABEL, sys.stdin.read()
    resolved = path.expanduser()
    if not resolved.is_file():
        raise typer.BadParameter(f"SQL file not found: {path}")
    return str(path), resolved.read_text(encoding="utf-8")


def _render_text(label: str, diagnostics: Sequence[Diagnostic], *, use_color: bool, use_emoji: bool) -> None:
    if not diagnostics:
        ok(f"{label}: no issues found", use_emoji=use_emoji, use_color=use_color)
        return
    section(label, use_color=use_color)
    console = get_console_manager().get(color=use_color, emoji=use_emoji)
    for diag in diagnostics:
        text = Text(f"{label}:{diag.line}:{diag.column}: ")
        text.append(diag.severity.value, style=severity_style(diag.severity) if use_color else None)
        text.append(f" {diag.message} [{diag.range.start}:{diag.range.end}]")
        console.print(text)


def check_sql(
    path: Path | None = typer.Argument(
        None,
        metavar="[FILE]",
        help="SQL file to lint; omit or pass '-' to read standard input.",
    ),
    dialect: SqlDialect | None = typer.Option(None, "--dialect", "-d", help="SQL dialect to lint against."),
    executable: str | None = typer.Option(None, "--executable", help="Linter executable name or path."),
    timeout: float | None = typer.Option(None, "--timeout", help="Kill the linter after this many seconds."),
    offset_unit: OffsetUnit | None = typer.Option(
        None,
        "--offset-unit",
        help="Unit used for reported range offsets.",
    ),
    output_format: OutputFormat = typer.Option(OutputFormat.TEXT, "--format", "-f", help="Output format."),
    root: Path = typer.Option(Path.cwd(), "--root", "-r", help="Project root holding sqlqa configuration."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log session lifecycle events."),
    color: bool = typer.Option(True, "--color/--no-color", help="Colourise output."),
    use_emoji: bool = typer.Option(True, "--emoji/--no-emoji", help="Decorate output with emoji."),
) -> None:
    """Lint a SQL document and print the diagnostics it produces.

    Exits with status 0 when the document is clean, 1 when diagnostics were
    reported, and 2 when the check itself failed.
    """

    configure_logging(verbose=verbose, use_color=color)
    try:
        config: LintConfig = load_config(
            root.resolve(),
            overrides={
                "dialect": dialect.value if dialect is not None else None,
                "executable": executable,
                "timeout": timeout,
                "offset_unit": offset_unit.value if offset_unit is not None else None,
            },
        )
    except ConfigError as exc:
        raise typer.BadParameter(str(exc)) from exc

    label, text = _read_source(path)
    as_text = output_format is OutputFormat.TEXT
    if not text.strip():
        if as_text:
            warn(f"{label}: document is empty, nothing to lint", use_emoji=use_emoji, use_color=color)
        else:
            typer.echo(dumps_diagnostics(()))
        raise typer.Exit(code=EXIT_CLEAN)
    if verbose and as_text:
        info(f"linting {label} with {config.executable} ({config.dialect.value})", use_emoji=use_emoji, use_color=color)
    provider = DiagnosticProvider(config)
    try:
        diagnostics = asyncio.run(provider.check_text(text))
    except LintError as exc:
        fail(str(exc), use_emoji=use_emoji, use_color=color)
        raise typer.Exit(code=EXIT_ERROR) from exc

    if as_text:
        _render_text(label, diagnostics, use_color=color, use_emoji=use_emoji)
    else:
        typer.echo(dumps_diagnostics(diagnostics))
    raise typer.Exit(code=EXIT_DIAGNOSTICS if diagnostics else EXIT_CLEAN)


def register(app: typer.Typer) -> None:
    """Register the ``check`` command on ``app``."""

    register_command(app, check_sql, name="check")


__all__ = ["OutputFormat", "check_sql", "register"]
