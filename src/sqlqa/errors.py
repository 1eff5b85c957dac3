# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""Exception hierarchy shared by the lint session and check coordination layers."""

from __future__ import annotations

from collections.abc import Sequence
from typing import Final

_EXCERPT_LIMIT: Final[int] = 200


def _excerpt(text: str | None) -> str:
    """Return a single-line excerpt of ``text`` suitable for error messages."""

    if not text:
        return "<empty>"
    flattened = " ".join(text.split())
    if len(flattened) <= _EXCERPT_LIMIT:
        return flattened
    return f"{flattened[:_EXCERPT_LIMIT]}..."


class LintError(Exception):
    """Base class for failures that abort a single check."""


class SpawnError(LintError):
    """Raised when the linter executable cannot be started."""

    def __init__(self, executable: str, reason: str) -> None:
        """Initialise the error with the executable that failed to launch.

        Args:
            executable: Executable name or path passed to the spawner.
            reason: Human readable description of the failure.
        """

        super().__init__(f"Unable to start '{executable}': {reason}")
        self.executable = executable
        self.reason = reason


class ParseError(LintError):
    """Raised when linter output does not match the expected issue schema."""

    def __init__(self, message: str, *, output: str | None = None) -> None:
        super().__init__(f"{message} (output: {_excerpt(output)})")
        self.output = output


class MalformedRecordError(ParseError):
    """Raised when a single issue record lacks required fields."""

    def __init__(self, index: int, missing: Sequence[str], *, output: str | None = None) -> None:
        """Initialise the error with the offending record position.

        Args:
            index: Zero-based position of the record in the issue array.
            missing: Field names that were absent or of the wrong type.
            output: Raw linter output the record was decoded from.
        """

        fields = ", ".join(missing)
        super().__init__(f"Issue #{index} is missing or has invalid fields: {fields}", output=output)
        self.index = index
        self.missing = tuple(missing)


class SessionFailedError(LintError):
    """Raised when a spawned linter process fails before producing output."""

    def __init__(self, message: str, *, timed_out: bool = False, stderr: str | None = None) -> None:
        super().__init__(message)
        self.timed_out = timed_out
        self.stderr = stderr


class SessionReleasedError(LintError):
    """Raised when a released session is asked for its resources."""


__all__ = [
    "LintError",
    "MalformedRecordError",
    "ParseError",
    "SessionFailedError",
    "SessionReleasedError",
    "SpawnError",
]
