# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""Per-buffer check coordination enforcing one in-flight lint session."""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from enum import Enum
from itertools import count
from typing import Protocol

from .config import LintConfig
from .errors import LintError, ParseError, SessionFailedError, SpawnError
from .models import Diagnostic, SessionOutcome, SessionStatus
from .parsers import OutputParser
from .positions import PositionMapper
from .process import CompletionCallback, ProcessSession, SessionOptions

LOGGER = logging.getLogger(__name__)

ReportCallback = Callable[[Sequence[Diagnostic]], None]
ErrorCallback = Callable[[LintError], None]


class Session(Protocol):
    """Surface of a lint session that the coordinator depends on."""

    owner_check_id: int | None

    @property
    def buffer_snapshot(self) -> str: ...

    @property
    def status(self) -> SessionStatus: ...

    async def start(self) -> Session: ...

    def on_complete(self, callback: CompletionCallback) -> None: ...

    def cancel(self) -> bool: ...

    def release(self) -> None: ...

    async def wait(self) -> SessionOutcome: ...


class SessionFactory(Protocol):
    """Build an unstarted session for ``input_text``."""

    def __call__(
        self,
        command: Sequence[str],
        *,
        input_text: str,
        options: SessionOptions | None = None,
        owner_check_id: int | None = None,
    ) -> Session: ...


class CheckState(str, Enum):
    """Coordinator states for one buffer."""

    IDLE = "idle"
    CHECKING = "checking"


def session_options(config: LintConfig) -> SessionOptions:
    """Translate a :class:`LintConfig` into process execution options."""

    return SessionOptions(cwd=config.cwd, env=dict(config.env) or None, timeout=config.timeout)


def log_error(error: LintError) -> None:
    """Default error channel: log the failure."""

    LOGGER.error("sql lint check failed: %s", error)


def _fail(check_id: int | None, error: LintError, channel: ErrorCallback) -> None:
    LOGGER.debug("check %s failed with %s", check_id, type(error).__name__)
    channel(error)


@dataclass(slots=True)
class BufferContext:
    """Mutable per-buffer slot: the current session and the lint settings."""

    config: LintConfig = field(default_factory=LintConfig)
    session: Session | None = None
    _check_ids: count = field(default_factory=lambda: count(1), repr=False)

    def next_check_id(self) -> int:
        return next(self._check_ids)


class CheckCoordinator:
    """Run lint checks for one buffer, superseding stale ones.

    Each :meth:`request_check` cancels the in-flight session, if any, and
    starts a new one. Only the session held in the buffer's slot may report;
    anything it replaced is discarded without touching the host callbacks.
    Failures are routed to the error channel and never escape, so the buffer
    can always be checked again.
    """

    def __init__(
        self,
        context: BufferContext | None = None,
        *,
        parser: OutputParser | None = None,
        session_factory: SessionFactory = ProcessSession,
        on_error: ErrorCallback | None = None,
    ) -> None:
        self._context = context or BufferContext()
        self._parser = parser or OutputParser()
        self._session_factory = session_factory
        self._on_error = on_error or log_error

    @property
    def context(self) -> BufferContext:
        return self._context

    @property
    def config(self) -> LintConfig:
        return self._context.config

    @config.setter
    def config(self, value: LintConfig) -> None:
        self._context.config = value

    @property
    def current_session(self) -> Session | None:
        return self._context.session

    @property
    def state(self) -> CheckState:
        return CheckState.IDLE if self._context.session is None else CheckState.CHECKING

    async def request_check(
        self,
        buffer_text: str,
        report: ReportCallback,
        *,
        on_error: ErrorCallback | None = None,
    ) -> Session | None:
        """Start a check of ``buffer_text``, superseding any in-flight one.

        Args:
            buffer_text: Full text of the buffer to lint.
            report: Receives the complete diagnostic set exactly once if this
                check is still current when the linter finishes.
            on_error: Receives the failure if the check cannot complete.
                Defaults to the coordinator's error channel.

        Returns:
            Session | None: The spawned session, or ``None`` when spawning
            failed or the request was superseded before the spawn finished.
        """

        self.cancel()
        config = self._context.config
        check_id = self._context.next_check_id()
        session = self._session_factory(
            config.build_command(),
            input_text=buffer_text,
            options=session_options(config),
            owner_check_id=check_id,
        )
        self._context.session = session
        mapper = PositionMapper(unit=config.offset_unit)
        error_channel = on_error or self._on_error

        def _on_complete(outcome: SessionOutcome) -> None:
            self._handle_outcome(session, outcome, mapper, report, error_channel)

        session.on_complete(_on_complete)
        try:
            await session.start()
        except SpawnError as exc:
            if self._context.session is not session:
                LOGGER.debug("spawn failure for superseded check %s ignored", check_id)
                return None
            self._retire(session)
            _fail(check_id, exc, error_channel)
            return None
        if session.status is SessionStatus.CANCELED:
            return None
        return session

    def _handle_outcome(
        self,
        session: Session,
        outcome: SessionOutcome,
        mapper: PositionMapper,
        report: ReportCallback,
        on_error: ErrorCallback,
    ) -> None:
        if self._context.session is not session:
            LOGGER.debug("discarding output of superseded check %s", session.owner_check_id)
            session.release()
            return
        text = session.buffer_snapshot
        self._retire(session)
        if outcome.status is not SessionStatus.COMPLETED:
            error = outcome.error or SessionFailedError(f"Linter session ended as {outcome.status.value}")
            _fail(session.owner_check_id, error, on_error)
            return
        try:
            records = self._parser.parse(outcome.stdout, exit_code=outcome.exit_code, stderr=outcome.stderr)
        except ParseError as exc:
            _fail(session.owner_check_id, exc, on_error)
            return
        diagnostics = mapper.to_diagnostics(text, records)
        LOGGER.debug("check %s produced %d diagnostic(s)", session.owner_check_id, len(diagnostics))
        report(diagnostics)

    def _retire(self, session: Session) -> None:
        if self._context.session is session:
            self._context.session = None
        session.release()

    def cancel(self) -> bool:
        """Silently cancel the in-flight check, if any.

        Returns:
            bool: ``True`` when a running session was canceled.
        """

        session = self._context.session
        if session is None:
            return False
        self._context.session = None
        canceled = session.cancel()
        if canceled:
            LOGGER.debug("superseded check %s", session.owner_check_id)
        session.release()
        return canceled

    async def wait(self) -> SessionOutcome | None:
        """Wait for the in-flight session, returning its outcome if there is one."""

        session = self._context.session
        if session is None:
            return None
        return await session.wait()


__all__ = [
    "BufferContext",
    "CheckCoordinator",
    "CheckState",
    "ErrorCallback",
    "ReportCallback",
    "Session",
    "SessionFactory",
    "log_error",
    "session_options",
]
