# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""Severity related types and helpers."""

from __future__ import annotations

from enum import Enum
from typing import Final


class Severity(str, Enum):
    """Severity levels attached to reported diagnostics."""

    ERROR = "error"
    WARNING = "warning"
    NOTICE = "notice"
    NOTE = "note"


# The annotation output consumed here does not distinguish severities, so every
# record is normalised to this level.
DEFAULT_SEVERITY: Final[Severity] = Severity.WARNING

_SEVERITY_STYLES: Final[dict[Severity, str]] = {
    Severity.ERROR: "red",
    Severity.WARNING: "yellow",
    Severity.NOTICE: "cyan",
    Severity.NOTE: "blue",
}


def severity_style(severity: Severity) -> str:
    """Map :class:`Severity` to the console style used when rendering it."""

    return _SEVERITY_STYLES.get(severity, "yellow")


__all__ = ["DEFAULT_SEVERITY", "Severity", "severity_style"]
