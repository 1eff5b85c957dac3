# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""Decode linter annotation output into diagnostic records."""

from __future__ import annotations

import json
import logging
import re
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any, Final, TypeAlias

from .errors import MalformedRecordError, ParseError
from .models import DiagnosticRecord
from .severity import DEFAULT_SEVERITY, Severity

LOGGER = logging.getLogger(__name__)

JsonValue: TypeAlias = str | int | float | bool | None | list["JsonValue"] | dict[str, "JsonValue"]

REQUIRED_INT_FIELDS: Final[tuple[str, ...]] = ("line", "start_column", "end_column")
MESSAGE_FIELD: Final[str] = "message"

_CODE_PREFIX: Final[re.Pattern[str]] = re.compile(r"^(?P<code>[A-Z]{2,3}\d{0,3}(?:\.\d+)?):\s")


def _is_int(value: object) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _extract_code(message: str) -> str | None:
    match = _CODE_PREFIX.match(message)
    return match.group("code") if match else None


def _load_json_array(stdout: str) -> list[JsonValue]:
    """Return ``stdout`` decoded as a single JSON array.

    Raises:
        ParseError: If ``stdout`` is not valid JSON or is not an array.
    """

    try:
        payload = json.loads(stdout)
    except json.JSONDecodeError as exc:
        raise ParseError(f"Linter output is not valid JSON: {exc.msg}", output=stdout) from exc
    if not isinstance(payload, list):
        raise ParseError(f"Expected a JSON array of issues, got {type(payload).__name__}", output=stdout)
    return payload


@dataclass(slots=True, frozen=True)
class OutputParser:
    """Turn the linter's annotation array into :class:`DiagnosticRecord` objects.

    Every issue must carry integer ``line``, ``start_column`` and
    ``end_column`` fields and a string ``message``. A single malformed issue
    fails the whole parse rather than yielding a partial result. Records keep
    the order the linter emitted them in.
    """

    severity: Severity = DEFAULT_SEVERITY

    def parse(self, stdout: str, *, exit_code: int | None = 0, stderr: str = "") -> tuple[DiagnosticRecord, ...]:
        """Parse raw linter ``stdout`` into records.

        Args:
            stdout: Complete standard output captured from the linter.
            exit_code: Exit status of the linter process.
            stderr: Standard error captured from the linter, used in errors.

        Returns:
            tuple[DiagnosticRecord, ...]: Records in emission order.

        Raises:
            ParseError: If the output is empty after a failing exit, is not a
                JSON array, or contains a malformed issue.
        """

        text = stdout.strip()
        if not text:
            if exit_code:
                raise ParseError(
                    f"Linter exited with status {exit_code} without output",
                    output=stderr or None,
                )
            return ()
        if exit_code:
            LOGGER.debug("linter exited with status %s; trusting parseable output", exit_code)
        payload = _load_json_array(text)
        return tuple(self._build_record(index, item, stdout) for index, item in enumerate(payload))

    def _build_record(self, index: int, item: JsonValue, stdout: str) -> DiagnosticRecord:
        if not isinstance(item, Mapping):
            raise MalformedRecordError(index, (*REQUIRED_INT_FIELDS, MESSAGE_FIELD), output=stdout)
        missing = _missing_fields(item)
        if missing:
            raise MalformedRecordError(index, missing, output=stdout)
        message = item[MESSAGE_FIELD]
        return DiagnosticRecord(
            line=item["line"],
            start_column=item["start_column"],
            end_column=item["end_column"],
            message=message,
            severity=self.severity,
            code=_extract_code(message),
        )


def _missing_fields(item: Mapping[str, Any]) -> list[str]:
    missing = [name for name in REQUIRED_INT_FIELDS if not _is_int(item.get(name))]
    if not isinstance(item.get(MESSAGE_FIELD), str):
        missing.append(MESSAGE_FIELD)
    return missing


def parse_output(stdout: str, *, exit_code: int | None = 0, stderr: str = "") -> Sequence[DiagnosticRecord]:
    """Parse ``stdout`` with a default :class:`OutputParser`."""

    return OutputParser().parse(stdout, exit_code=exit_code, stderr=stderr)


__all__ = ["JsonValue", "OutputParser", "parse_output"]
