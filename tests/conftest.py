# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.

"""Shared pytest fixtures."""

from __future__ import annotations

import asyncio
import sys
import textwrap
from collections.abc import Sequence
from pathlib import Path

import pytest

from sqlqa.config import LintConfig
from sqlqa.models import SessionOutcome, SessionStatus
from sqlqa.process import CompletionCallback, SessionOptions

# Stand-in for the linter. Lines of the form ``-- fake:key=value`` in the text
# piped to stdin steer its behaviour; every other ``*`` in the text becomes an
# issue at its column.
FAKE_LINTER_SOURCE = textwrap.dedent(
    """
    import json
    import sys
    import time
    from pathlib import Path

    args = sys.argv[1:]
    text = sys.stdin.read()
    directives = {}
    body = []
    for raw in text.splitlines():
        if raw.startswith("-- fake:"):
            key, _, value = raw[len("-- fake:"):].partition("=")
            directives[key.strip()] = value
        else:
            body.append(raw)

    if "sleep" in directives:
        time.sleep(float(directives["sleep"]))
    if "touch" in directives:
        Path(directives["touch"]).write_text("ran", encoding="utf-8")
    if "stderr" in directives:
        sys.stderr.write(directives["stderr"])

    if "stdout" in directives:
        sys.stdout.write(directives["stdout"])
    elif "echo-args" in directives:
        issue = {"line": 1, "start_column": 1, "end_column": 2, "message": " ".join(args)}
        sys.stdout.write(json.dumps([issue]))
    elif "silent" not in directives:
        issues = []
        for number, line in enumerate(body, start=1):
            for index, char in enumerate(line):
                if char == "*":
                    issues.append(
                        {
                            "file": "stdin",
                            "line": number,
                            "start_column": index + 1,
                            "end_column": index + 2,
                            "title": "SQLFluff",
                            "message": "ambiguous column",
                            "annotation_level": "warning",
                        }
                    )
        sys.stdout.write(json.dumps(issues))
    sys.exit(int(directives.get("exit", "0")))
    """,
)


@pytest.fixture
def fake_linter(tmp_path: Path) -> Path:
    """Return an executable script that imitates the linter's stdin mode."""
    script = tmp_path / "fake-sqlfluff"
    script.write_text(f"#!{sys.executable}\n{FAKE_LINTER_SOURCE}", encoding="utf-8")
    script.chmod(0o755)
    return script


@pytest.fixture
def fake_config(fake_linter: Path) -> LintConfig:
    """Return a config pointing at :func:`fake_linter`."""
    return LintConfig(executable=str(fake_linter), timeout=30)


class FakeSession:
    """In-memory session whose completion is driven by the test."""

    def __init__(
        self,
        command: Sequence[str],
        *,
        input_text: str,
        options: SessionOptions | None = None,
        owner_check_id: int | None = None,
    ) -> None:
        self.command = tuple(command)
        self.options = options
        self.owner_check_id = owner_check_id
        self._buffer_snapshot = input_text
        self._status = SessionStatus.PENDING
        self._callbacks: list[CompletionCallback] = []
        self._done = asyncio.Event()
        self._outcome: SessionOutcome | None = None
        self.released = False
        self.cancel_calls = 0
        self.spawn_error: Exception | None = None

    @property
    def buffer_snapshot(self) -> str:
        return self._buffer_snapshot

    @property
    def status(self) -> SessionStatus:
        return self._status

    async def start(self) -> FakeSession:
        if self.spawn_error is not None:
            self._status = SessionStatus.FAILED
            raise self.spawn_error
        if self._status is SessionStatus.PENDING:
            self._status = SessionStatus.RUNNING
        return self

    def on_complete(self, callback: CompletionCallback) -> None:
        self._callbacks.append(callback)

    def complete(self, stdout: str, *, exit_code: int = 0, force: bool = False) -> None:
        """Deliver ``stdout``; ``force`` delivers even after cancellation."""
        if self._status.terminal and not force:
            return
        self._status = SessionStatus.COMPLETED
        self._outcome = SessionOutcome(status=SessionStatus.COMPLETED, exit_code=exit_code, stdout=stdout)
        self._done.set()
        for callback in list(self._callbacks):
            callback(self._outcome)

    def cancel(self) -> bool:
        self.cancel_calls += 1
        if self._status.terminal:
            return False
        self._status = SessionStatus.CANCELED
        self._outcome = SessionOutcome(status=SessionStatus.CANCELED)
        self._done.set()
        return True

    def release(self) -> None:
        self.released = True

    async def wait(self) -> SessionOutcome:
        await self._done.wait()
        assert self._outcome is not None
        return self._outcome


class FakeSessionFactory:
    """Session factory recording every :class:`FakeSession` it builds."""

    def __init__(self) -> None:
        self.sessions: list[FakeSession] = []
        self.spawn_error: Exception | None = None

    def __call__(
        self,
        command: Sequence[str],
        *,
        input_text: str,
        options: SessionOptions | None = None,
        owner_check_id: int | None = None,
    ) -> FakeSession:
        session = FakeSession(command, input_text=input_text, options=options, owner_check_id=owner_check_id)
        session.spawn_error = self.spawn_error
        self.sessions.append(session)
        return session


@pytest.fixture
def session_factory() -> FakeSessionFactory:
    """Return a factory producing test-driven sessions."""
    return FakeSessionFactory()
