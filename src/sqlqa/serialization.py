# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""Helpers for converting diagnostics to serializable data."""

from __future__ import annotations

import json
from collections.abc import Iterable
from typing import TypeAlias

from .models import Diagnostic

SerializableMapping: TypeAlias = dict[str, str | int | None | dict[str, int]]


def serialize_diagnostic(diag: Diagnostic) -> SerializableMapping:
    """Convert a diagnostic into a JSON-friendly mapping."""
    return {
        "range": {"start": diag.range.start, "end": diag.range.end},
        "line": diag.line,
        "column": diag.column,
        "severity": diag.severity.value,
        "message": diag.message,
        "code": diag.code,
    }


def dumps_diagnostics(diagnostics: Iterable[Diagnostic], *, indent: int | None = 2) -> str:
    """Return ``diagnostics`` rendered as a JSON array."""
    return json.dumps([serialize_diagnostic(diag) for diag in diagnostics], indent=indent)


__all__ = ["SerializableMapping", "dumps_diagnostics", "serialize_diagnostic"]
