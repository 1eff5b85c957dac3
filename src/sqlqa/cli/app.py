# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""CLI application entry point wiring commands."""

from __future__ import annotations

from .commands import register_commands
from .typer_ext import create_typer

app = create_typer(
    name="sqlqa",
    help="Live SQL diagnostics powered by sqlfluff.",
    no_args_is_help=True,
)
register_commands(app)

__all__ = ["app"]
