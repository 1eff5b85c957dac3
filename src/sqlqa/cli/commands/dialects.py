# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""CLI command listing the SQL dialects a check may target."""

from __future__ import annotations

from pathlib import Path

import typer

from ...config import ConfigError, supported_dialects
from ...config_loader import load_config
from ..typer_ext import register_command


def list_dialects(
    root: Path = typer.Option(Path.cwd(), "--root", "-r", help="Project root holding sqlqa configuration."),
) -> None:
    """List supported dialects, marking the one configured for ``--root``."""

    try:
        configured = load_config(root.resolve()).dialect.value
    except ConfigError as exc:
        raise typer.BadParameter(str(exc)) from exc
    for dialect in supported_dialects():
        marker = "*" if dialect == configured else " "
        typer.echo(f"{marker} {dialect}")


def register(app: typer.Typer) -> None:
    """Register the ``dialects`` command on ``app``."""

    register_command(app, list_dialects, name="dialects")


__all__ = ["list_dialects", "register"]
