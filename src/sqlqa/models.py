# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""Core data models shared across the sqlqa package."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Final

from pydantic import BaseModel, ConfigDict, Field, model_validator

from .errors import LintError
from .severity import DEFAULT_SEVERITY, Severity


class DiagnosticRecord(BaseModel):
    """Issue decoded from linter output, positioned by line and column."""

    model_config = ConfigDict(frozen=True)

    line: int
    start_column: int
    end_column: int
    message: str
    severity: Severity = DEFAULT_SEVERITY
    code: str | None = None


class TextRange(BaseModel):
    """Half-open ``[start, end)`` span of offsets into a buffer."""

    model_config = ConfigDict(frozen=True)

    start: int = Field(ge=0)
    end: int = Field(ge=0)

    @model_validator(mode="after")
    def _check_order(self) -> TextRange:
        """Reject spans whose end precedes their start."""
        if self.end < self.start:
            raise ValueError(f"range end {self.end} precedes start {self.start}")
        return self

    def __len__(self) -> int:
        return self.end - self.start


class Diagnostic(BaseModel):
    """Finished diagnostic handed to the host."""

    model_config = ConfigDict(frozen=True)

    range: TextRange
    severity: Severity
    message: str
    code: str | None = None
    line: int | None = None
    column: int | None = None


class SessionStatus(str, Enum):
    """Lifecycle states of a single linter process invocation."""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    CANCELED = "canceled"
    FAILED = "failed"

    @property
    def terminal(self) -> bool:
        """Return ``True`` once no further transitions are possible."""
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES: Final[frozenset[SessionStatus]] = frozenset(
    {SessionStatus.COMPLETED, SessionStatus.CANCELED, SessionStatus.FAILED},
)


@dataclass(slots=True, frozen=True)
class SessionOutcome:
    """Snapshot of a finished session delivered to completion callbacks."""

    status: SessionStatus
    exit_code: int | None = None
    stdout: str = ""
    stderr: str = ""
    error: LintError | None = None

    @property
    def ok(self) -> bool:
        """Return ``True`` when the process ran to completion."""
        return self.status is SessionStatus.COMPLETED


__all__ = [
    "Diagnostic",
    "DiagnosticRecord",
    "SessionOutcome",
    "SessionStatus",
    "TERMINAL_STATUSES",
    "TextRange",
]
