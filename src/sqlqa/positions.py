# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""Translate linter line/column coordinates into host buffer offsets."""

from __future__ import annotations

import re
from collections.abc import Iterable
from dataclasses import dataclass, field
from enum import Enum
from typing import Final

from .models import Diagnostic, DiagnosticRecord, TextRange

_LINE_BREAK: Final[re.Pattern[str]] = re.compile(r"\r\n|\r|\n")


class OffsetUnit(str, Enum):
    """Units a host may use to address positions within a buffer."""

    CODEPOINT = "codepoint"
    UTF8 = "utf8"
    UTF16 = "utf16"


def _unit_width(text: str, unit: OffsetUnit) -> int:
    """Return the length of ``text`` measured in ``unit``."""

    if unit is OffsetUnit.CODEPOINT:
        return len(text)
    if unit is OffsetUnit.UTF8:
        return len(text.encode("utf-8", errors="surrogatepass"))
    return len(text.encode("utf-16-le", errors="surrogatepass")) // 2


@dataclass(slots=True, frozen=True)
class _LineSpan:
    """Character bounds of one line, excluding its terminator."""

    start: int
    end: int


def _line_spans(text: str) -> list[_LineSpan]:
    spans: list[_LineSpan] = []
    cursor = 0
    for match in _LINE_BREAK.finditer(text):
        spans.append(_LineSpan(cursor, match.start()))
        cursor = match.end()
    spans.append(_LineSpan(cursor, len(text)))
    return spans


@dataclass(slots=True)
class PositionMapper:
    """Resolve 1-based ``(line, column)`` pairs against a buffer snapshot.

    Columns count characters from 1. Coordinates outside the buffer are clamped
    to the nearest valid position so a single stray record never invalidates a
    check. Offsets are reported in :attr:`unit`, which lets hosts that address
    text by UTF-8 bytes or UTF-16 code units consume ranges directly.
    """

    unit: OffsetUnit = OffsetUnit.CODEPOINT
    _cache_text: str | None = field(default=None, init=False, repr=False)
    _cache_spans: list[_LineSpan] = field(default_factory=list, init=False, repr=False)

    def _spans_for(self, text: str) -> list[_LineSpan]:
        if self._cache_text is not text:
            self._cache_spans = _line_spans(text)
            self._cache_text = text
        return self._cache_spans

    def _char_index(self, text: str, line: int, column: int) -> int:
        spans = self._spans_for(text)
        if line < 1:
            return spans[0].start
        if line > len(spans):
            return len(text)
        span = spans[line - 1]
        if column < 1:
            return span.start
        return min(span.start + column - 1, span.end)

    def _to_unit(self, text: str, index: int) -> int:
        if self.unit is OffsetUnit.CODEPOINT:
            return index
        return _unit_width(text[:index], self.unit)

    def resolve(self, text: str, line: int, column: int) -> int:
        """Return the absolute offset of ``(line, column)`` within ``text``.

        Args:
            text: Buffer snapshot the coordinates refer to.
            line: 1-based line number.
            column: 1-based character column.

        Returns:
            int: Offset in :attr:`unit`, clamped into ``[0, len(text)]``.
        """

        return self._to_unit(text, self._char_index(text, line, column))

    def resolve_range(self, text: str, record: DiagnosticRecord) -> TextRange:
        """Return the half-open span covered by ``record`` within ``text``."""

        start_index = self._char_index(text, record.line, record.start_column)
        end_index = max(start_index, self._char_index(text, record.line, record.end_column))
        return TextRange(start=self._to_unit(text, start_index), end=self._to_unit(text, end_index))

    def line_column(self, text: str, line: int, column: int) -> tuple[int, int]:
        """Return the 1-based ``(line, column)`` that ``(line, column)`` clamps to."""

        index = self._char_index(text, line, column)
        spans = self._spans_for(text)
        line_no = len(spans) if line > len(spans) else max(line, 1)
        return line_no, index - spans[line_no - 1].start + 1

    def to_diagnostic(self, text: str, record: DiagnosticRecord) -> Diagnostic:
        """Build the host-facing :class:`Diagnostic` for ``record``.

        ``line`` and ``column`` describe the clamped start of the range, not
        the linter's raw coordinates.
        """

        line, column = self.line_column(text, record.line, record.start_column)
        return Diagnostic(
            range=self.resolve_range(text, record),
            severity=record.severity,
            message=record.message,
            code=record.code,
            line=line,
            column=column,
        )

    def to_diagnostics(self, text: str, records: Iterable[DiagnosticRecord]) -> tuple[Diagnostic, ...]:
        """Resolve every record in ``records`` against ``text``."""

        return tuple(self.to_diagnostic(text, record) for record in records)


__all__ = ["OffsetUnit", "PositionMapper"]
