# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""Tests for per-buffer check coordination."""

from __future__ import annotations

import asyncio
import json
from collections.abc import Sequence
from pathlib import Path

import pytest
from conftest import FakeSessionFactory

from sqlqa.config import LintConfig
from sqlqa.coordinator import BufferContext, CheckCoordinator, CheckState
from sqlqa.errors import LintError, MalformedRecordError, ParseError, SessionFailedError, SpawnError
from sqlqa.models import Diagnostic, SessionStatus, TextRange
from sqlqa.positions import OffsetUnit


class Recorder:
    """Collect report and error callback invocations."""

    def __init__(self) -> None:
        self.reports: list[tuple[Diagnostic, ...]] = []
        self.errors: list[LintError] = []

    def report(self, diagnostics: Sequence[Diagnostic]) -> None:
        self.reports.append(tuple(diagnostics))

    def error(self, error: LintError) -> None:
        self.errors.append(error)


def _issue_json(message: str) -> str:
    return json.dumps([{"line": 1, "start_column": 1, "end_column": 2, "message": message}])


def test_check_reports_star_diagnostic(fake_config: LintConfig) -> None:
    recorder = Recorder()
    coordinator = CheckCoordinator(BufferContext(config=fake_config), on_error=recorder.error)

    async def scenario() -> None:
        session = await coordinator.request_check("SELECT * FROM t", recorder.report)
        assert session is not None
        assert coordinator.state is CheckState.CHECKING
        await coordinator.wait()

    asyncio.run(scenario())

    assert recorder.errors == []
    assert len(recorder.reports) == 1
    (diagnostic,) = recorder.reports[0]
    assert diagnostic.range == TextRange(start=7, end=8)
    assert diagnostic.message == "ambiguous column"
    assert coordinator.state is CheckState.IDLE
    assert coordinator.current_session is None


def test_clean_buffer_reports_empty_set(fake_config: LintConfig) -> None:
    recorder = Recorder()
    coordinator = CheckCoordinator(BufferContext(config=fake_config))

    async def scenario() -> None:
        await coordinator.request_check("SELECT a FROM t", recorder.report)
        await coordinator.wait()

    asyncio.run(scenario())

    assert recorder.reports == [()]


def test_rapid_requests_report_only_the_last(fake_config: LintConfig, tmp_path: Path) -> None:
    recorder = Recorder()
    coordinator = CheckCoordinator(BufferContext(config=fake_config), on_error=recorder.error)
    stale = f"-- fake:sleep=1\n-- fake:stdout={_issue_json('stale')}\nSELECT 1"

    async def scenario() -> None:
        first = await coordinator.request_check(stale, recorder.report)
        second = await coordinator.request_check(stale, recorder.report)
        third = await coordinator.request_check("SELECT * FROM t", recorder.report)
        assert first is not None and second is not None and third is not None
        assert first.status is SessionStatus.CANCELED
        assert second.status is SessionStatus.CANCELED
        await third.wait()
        await asyncio.sleep(0.2)

    asyncio.run(scenario())

    assert recorder.errors == []
    assert len(recorder.reports) == 1
    assert [diag.message for diag in recorder.reports[0]] == ["ambiguous column"]


def test_concurrent_requests_before_spawn_keep_one_session(fake_config: LintConfig) -> None:
    recorder = Recorder()
    coordinator = CheckCoordinator(BufferContext(config=fake_config), on_error=recorder.error)

    async def scenario() -> None:
        results = await asyncio.gather(
            coordinator.request_check(f"-- fake:stdout={_issue_json('first')}\n", recorder.report),
            coordinator.request_check(f"-- fake:stdout={_issue_json('second')}\n", recorder.report),
        )
        assert results[0] is None
        assert results[1] is not None
        await coordinator.wait()
        await asyncio.sleep(0.2)

    asyncio.run(scenario())

    assert [[diag.message for diag in report] for report in recorder.reports] == [["second"]]


def test_spawn_error_surfaces_once_without_report(tmp_path: Path, fake_linter: Path) -> None:
    recorder = Recorder()
    context = BufferContext(config=LintConfig(executable=str(tmp_path / "missing")))
    coordinator = CheckCoordinator(context, on_error=recorder.error)

    async def scenario() -> None:
        assert await coordinator.request_check("SELECT *", recorder.report) is None
        assert coordinator.state is CheckState.IDLE
        coordinator.config = LintConfig(executable=str(fake_linter))
        await coordinator.request_check("SELECT *", recorder.report)
        await coordinator.wait()

    asyncio.run(scenario())

    assert len(recorder.errors) == 1
    assert isinstance(recorder.errors[0], SpawnError)
    assert len(recorder.reports) == 1


def test_malformed_output_fails_whole_check(fake_config: LintConfig) -> None:
    recorder = Recorder()
    coordinator = CheckCoordinator(BufferContext(config=fake_config), on_error=recorder.error)
    payload = json.dumps(
        [
            {"line": 1, "start_column": 1, "end_column": 2, "message": "ok"},
            {"line": 1, "start_column": 1, "end_column": 2},
        ],
    )

    async def scenario() -> None:
        await coordinator.request_check(f"-- fake:stdout={payload}\n", recorder.report)
        await coordinator.wait()

    asyncio.run(scenario())

    assert recorder.reports == []
    assert len(recorder.errors) == 1
    assert isinstance(recorder.errors[0], MalformedRecordError)
    assert coordinator.state is CheckState.IDLE


def test_crash_without_output_is_an_error(fake_config: LintConfig) -> None:
    recorder = Recorder()
    coordinator = CheckCoordinator(BufferContext(config=fake_config), on_error=recorder.error)

    async def scenario() -> None:
        await coordinator.request_check("-- fake:silent\n-- fake:exit=2\n", recorder.report)
        await coordinator.wait()

    asyncio.run(scenario())

    assert recorder.reports == []
    assert len(recorder.errors) == 1
    assert isinstance(recorder.errors[0], ParseError)


def test_timeout_is_reported_as_session_failure(fake_linter: Path) -> None:
    recorder = Recorder()
    config = LintConfig(executable=str(fake_linter), timeout=0.2)
    coordinator = CheckCoordinator(BufferContext(config=config), on_error=recorder.error)

    async def scenario() -> None:
        await coordinator.request_check("-- fake:sleep=5\n", recorder.report)
        await coordinator.wait()

    asyncio.run(scenario())

    assert recorder.reports == []
    assert len(recorder.errors) == 1
    assert isinstance(recorder.errors[0], SessionFailedError)


def test_unencodable_buffer_returns_to_idle_with_error(fake_config: LintConfig) -> None:
    recorder = Recorder()
    coordinator = CheckCoordinator(BufferContext(config=fake_config), on_error=recorder.error)

    async def scenario() -> None:
        await coordinator.request_check("SELECT '\udcff' FROM t", recorder.report)
        await asyncio.wait_for(coordinator.wait(), timeout=10)
        assert coordinator.state is CheckState.IDLE
        await coordinator.request_check("SELECT * FROM t", recorder.report)
        await coordinator.wait()

    asyncio.run(scenario())

    assert len(recorder.errors) == 1
    assert isinstance(recorder.errors[0], SessionFailedError)
    assert [[diag.message for diag in report] for report in recorder.reports] == [["ambiguous column"]]


def test_raising_report_is_logged_and_buffer_stays_usable(
    fake_config: LintConfig,
    caplog: pytest.LogCaptureFixture,
) -> None:
    recorder = Recorder()
    coordinator = CheckCoordinator(BufferContext(config=fake_config), on_error=recorder.error)

    def _broken_report(diagnostics: Sequence[Diagnostic]) -> None:
        raise RuntimeError("host display failed")

    async def scenario() -> None:
        await coordinator.request_check("SELECT * FROM t", _broken_report)
        await coordinator.wait()
        assert coordinator.state is CheckState.IDLE
        await coordinator.request_check("SELECT * FROM t", recorder.report)
        await coordinator.wait()

    with caplog.at_level("ERROR", logger="sqlqa.process"):
        asyncio.run(scenario())

    assert "completion callback" in caplog.text
    assert recorder.errors == []
    assert len(recorder.reports) == 1


def test_per_request_error_channel_overrides_default(tmp_path: Path) -> None:
    default = Recorder()
    override = Recorder()
    context = BufferContext(config=LintConfig(executable=str(tmp_path / "missing")))
    coordinator = CheckCoordinator(context, on_error=default.error)

    asyncio.run(coordinator.request_check("SELECT 1", override.report, on_error=override.error))

    assert default.errors == []
    assert len(override.errors) == 1


def test_cancel_is_silent(fake_config: LintConfig) -> None:
    recorder = Recorder()
    coordinator = CheckCoordinator(BufferContext(config=fake_config), on_error=recorder.error)

    async def scenario() -> None:
        await coordinator.request_check("-- fake:sleep=1\nSELECT *", recorder.report)
        assert coordinator.cancel() is True
        assert coordinator.cancel() is False
        await asyncio.sleep(0.2)

    asyncio.run(scenario())

    assert recorder.reports == []
    assert recorder.errors == []
    assert coordinator.state is CheckState.IDLE


def test_superseded_completion_is_discarded(session_factory: FakeSessionFactory) -> None:
    recorder = Recorder()
    coordinator = CheckCoordinator(session_factory=session_factory, on_error=recorder.error)

    async def scenario() -> None:
        await coordinator.request_check("SELECT *", recorder.report)
        await coordinator.request_check("SELECT * FROM t", recorder.report)
        first, second = session_factory.sessions
        first.complete(_issue_json("stale"), force=True)
        second.complete(_issue_json("fresh"))

    asyncio.run(scenario())

    first, second = session_factory.sessions
    assert first.cancel_calls == 1
    assert first.released and second.released
    assert [[diag.message for diag in report] for report in recorder.reports] == [["fresh"]]


def test_session_receives_command_and_snapshot(session_factory: FakeSessionFactory) -> None:
    config = LintConfig(dialect="snowflake", timeout=3, offset_unit=OffsetUnit.UTF8)
    coordinator = CheckCoordinator(BufferContext(config=config), session_factory=session_factory)

    asyncio.run(coordinator.request_check("SELECT 1", lambda diagnostics: None))

    (session,) = session_factory.sessions
    assert session.command == (
        "sqlfluff",
        "lint",
        "--dialect",
        "snowflake",
        "--format",
        "github-annotation",
        "--disable-progress-bar",
        "-",
    )
    assert session.buffer_snapshot == "SELECT 1"
    assert session.options is not None and session.options.timeout == 3
    assert session.owner_check_id == 1


def test_positions_resolve_against_snapshot_not_later_text(session_factory: FakeSessionFactory) -> None:
    recorder = Recorder()
    coordinator = CheckCoordinator(session_factory=session_factory)
    payload = json.dumps([{"line": 2, "start_column": 1, "end_column": 5, "message": "m"}])

    async def scenario() -> None:
        await coordinator.request_check("SELECT 1\nFROM t", recorder.report)
        session_factory.sessions[0].complete(payload)

    asyncio.run(scenario())

    (diagnostic,) = recorder.reports[0]
    assert diagnostic.range == TextRange(start=9, end=13)


def test_default_error_channel_logs(tmp_path: Path, caplog: pytest.LogCaptureFixture) -> None:
    coordinator = CheckCoordinator(BufferContext(config=LintConfig(executable=str(tmp_path / "missing"))))

    with caplog.at_level("ERROR", logger="sqlqa.coordinator"):
        asyncio.run(coordinator.request_check("SELECT 1", lambda diagnostics: None))

    assert "sql lint check failed" in caplog.text
