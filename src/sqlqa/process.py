# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""Asynchronous linter process sessions with explicit cancel and release."""

from __future__ import annotations

import asyncio
import logging
import os
import shutil

# Bandit: subprocess usage is intentional; sessions pass argument lists straight
# to ``create_subprocess_exec`` without shell expansion.
import subprocess  # nosec B404
from collections.abc import Callable, Mapping, Sequence
from contextlib import suppress
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Final

from .errors import SessionFailedError, SessionReleasedError, SpawnError
from .models import SessionOutcome, SessionStatus

LOGGER = logging.getLogger(__name__)

CompletionCallback = Callable[[SessionOutcome], None]

DEFAULT_ENCODING: Final[str] = "utf-8"

# Reader tasks are only weakly referenced by the event loop; keep them alive
# until they finish reaping their process even after the session is released.
_BACKGROUND_TASKS: set[asyncio.Task[None]] = set()


@dataclass(slots=True, frozen=True)
class SessionOptions:
    """Execution options applied when spawning a linter process."""

    cwd: Path | None = None
    env: Mapping[str, str] | None = None
    timeout: float | None = None
    encoding: str = DEFAULT_ENCODING

    def build_env(self) -> dict[str, str] | None:
        """Return the child environment, or ``None`` to inherit ours unchanged."""
        if not self.env:
            return None
        return {**os.environ, **self.env}


def _normalize_args(args: Sequence[str]) -> list[str]:
    """Normalise the subprocess argument sequence.

    Args:
        args: Raw command arguments supplied by the caller.

    Returns:
        list[str]: Argument list whose executable is an absolute path.

    Raises:
        ValueError: If no arguments are provided.
        FileNotFoundError: If the executable cannot be resolved on ``PATH``.
    """

    if not args:
        msg = "subprocess command requires at least one argument"
        raise ValueError(msg)

    head, *rest = args
    head_path = Path(head)
    if head_path.is_absolute():
        return [str(head_path), *rest]

    resolved = shutil.which(head)
    if resolved is None:
        msg = f"Executable '{head}' was not found on PATH"
        raise FileNotFoundError(msg)
    return [resolved, *rest]


def _decode(raw: bytes | None, encoding: str) -> str:
    if not raw:
        return ""
    return raw.decode(encoding, errors="replace")


def _kill(process: asyncio.subprocess.Process) -> None:
    if process.returncode is not None:
        return
    with suppress(ProcessLookupError):
        process.kill()


class ProcessSession:
    """Own one run of the linter against a fixed snapshot of buffer text.

    The session moves ``pending -> running -> completed | failed`` on its own,
    or to ``canceled`` when :meth:`cancel` is called first. Output is collected
    until the process exits and then delivered once, as a whole, to every
    callback registered with :meth:`on_complete`. Canceled sessions never
    deliver output.
    """

    def __init__(
        self,
        command: Sequence[str],
        *,
        input_text: str,
        options: SessionOptions | None = None,
        owner_check_id: int | None = None,
    ) -> None:
        if not command:
            raise ValueError("session command requires at least one argument")
        self._command = tuple(command)
        self._buffer_snapshot = input_text
        self._options = options or SessionOptions()
        self.owner_check_id = owner_check_id
        self._status = SessionStatus.PENDING
        self._process: asyncio.subprocess.Process | None = None
        self._task: asyncio.Task[None] | None = None
        self._callbacks: list[CompletionCallback] = []
        self._outcome: SessionOutcome | None = None
        self._done = asyncio.Event()
        self._released = False

    def __repr__(self) -> str:
        return (
            f"ProcessSession(command={self._command[0]!r}, status={self._status.value}, "
            f"check={self.owner_check_id})"
        )

    @property
    def command(self) -> tuple[str, ...]:
        return self._command

    @property
    def buffer_snapshot(self) -> str:
        return self._buffer_snapshot

    @property
    def status(self) -> SessionStatus:
        return self._status

    @property
    def released(self) -> bool:
        return self._released

    @property
    def pid(self) -> int | None:
        return self._process.pid if self._process is not None else None

    @property
    def outcome(self) -> SessionOutcome | None:
        """Return the terminal outcome once known, otherwise ``None``."""
        return self._outcome

    @property
    def output(self) -> str:
        """Return collected stdout.

        Raises:
            SessionReleasedError: If the session has already been released.
        """

        if self._released:
            raise SessionReleasedError(f"{self!r} has been released")
        return self._outcome.stdout if self._outcome is not None else ""

    async def start(self) -> ProcessSession:
        """Spawn the linter, hand it the buffer text and return immediately.

        Returns:
            ProcessSession: ``self``, for chaining.

        Raises:
            SpawnError: If the executable is missing or cannot be executed.
            RuntimeError: If the session was already started.
        """

        if self._status is SessionStatus.CANCELED:
            return self
        if self._status is not SessionStatus.PENDING:
            raise RuntimeError(f"{self!r} was already started")

        try:
            argv = _normalize_args(self._command)
            # Bandit: argv comes from validated configuration, never a shell string.
            process = await asyncio.create_subprocess_exec(  # nosec B603
                *argv,
                stdin=subprocess.PIPE,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                cwd=str(self._options.cwd) if self._options.cwd is not None else None,
                env=self._options.build_env(),
            )
        except OSError as exc:
            error = SpawnError(self._command[0], str(exc))
            if self._status is SessionStatus.PENDING:
                self._status = SessionStatus.FAILED
                self._outcome = SessionOutcome(status=SessionStatus.FAILED, error=error)
                self._done.set()
            raise error from exc

        if self._status is SessionStatus.CANCELED:
            LOGGER.debug("session for check %s canceled while spawning; killing pid %s", self.owner_check_id, process.pid)
            _kill(process)
            await process.communicate()
            return self

        self._process = process
        self._status = SessionStatus.RUNNING
        task = asyncio.get_running_loop().create_task(self._communicate(process))
        _BACKGROUND_TASKS.add(task)
        task.add_done_callback(_BACKGROUND_TASKS.discard)
        self._task = task
        LOGGER.debug("spawned %s for check %s (pid %s)", argv[0], self.owner_check_id, process.pid)
        return self

    async def _communicate(self, process: asyncio.subprocess.Process) -> None:
        encoding = self._options.encoding
        timeout = self._options.timeout
        try:
            payload = self._buffer_snapshot.encode(encoding)
        except UnicodeEncodeError as exc:
            _kill(process)
            await process.communicate()
            error = SessionFailedError(f"Buffer text cannot be encoded as {encoding}: {exc.reason}")
            self._finish(SessionOutcome(status=SessionStatus.FAILED, exit_code=process.returncode, error=error))
            return
        try:
            stdout, stderr = await asyncio.wait_for(process.communicate(payload), timeout=timeout)
        except TimeoutError:
            _kill(process)
            _, stderr = await process.communicate()
            stderr_text = _decode(stderr, encoding)
            error = SessionFailedError(
                f"Linter timed out after {timeout:.1f}s",
                timed_out=True,
                stderr=stderr_text,
            )
            self._finish(
                SessionOutcome(
                    status=SessionStatus.FAILED,
                    exit_code=process.returncode,
                    stderr=stderr_text,
                    error=error,
                ),
            )
            return
        except asyncio.CancelledError:
            _kill(process)
            await process.communicate()
            raise
        self._finish(
            SessionOutcome(
                status=SessionStatus.COMPLETED,
                exit_code=process.returncode,
                stdout=_decode(stdout, encoding),
                stderr=_decode(stderr, encoding),
            ),
        )

    def _finish(self, outcome: SessionOutcome) -> None:
        if self._status.terminal:
            return
        self._status = outcome.status
        self._outcome = outcome
        self._done.set()
        LOGGER.debug("session for check %s %s (exit %s)", self.owner_check_id, outcome.status.value, outcome.exit_code)
        callbacks, self._callbacks = self._callbacks, []
        for callback in callbacks:
            self._notify(callback, outcome)

    def _notify(self, callback: CompletionCallback, outcome: SessionOutcome) -> None:
        # Runs on the reader task: failures are logged, never raised.
        try:
            callback(outcome)
        except Exception:
            LOGGER.exception("completion callback for check %s raised", self.owner_check_id)

    def on_complete(self, callback: CompletionCallback) -> None:
        """Register ``callback`` to receive the outcome once the process exits.

        Callbacks registered after completion run immediately. Canceled
        sessions never invoke callbacks. Exceptions raised by a callback are
        logged at error level and do not stop the remaining callbacks.

        Raises:
            SessionReleasedError: If the session has already been released.
        """

        if self._released:
            raise SessionReleasedError(f"{self!r} has been released")
        if self._status is SessionStatus.CANCELED:
            return
        if self._status.terminal and self._outcome is not None:
            self._notify(callback, self._outcome)
            return
        self._callbacks.append(callback)

    def cancel(self) -> bool:
        """Terminate the process and discard any output it produced.

        Returns:
            bool: ``True`` when this call canceled the session, ``False`` when
            it had already reached a terminal state.
        """

        if self._status.terminal:
            return False
        self._status = SessionStatus.CANCELED
        self._outcome = SessionOutcome(status=SessionStatus.CANCELED)
        self._done.set()
        if self._process is not None:
            _kill(self._process)
        if self._task is not None:
            self._task.cancel()
        LOGGER.debug("canceled session for check %s", self.owner_check_id)
        self.release()
        return True

    def release(self) -> None:
        """Drop the process handle, reader task, callbacks and captured output."""

        if self._released:
            return
        self._released = True
        self._process = None
        self._task = None
        self._callbacks.clear()
        if self._outcome is not None:
            self._outcome = replace(self._outcome, stdout="", stderr="")

    async def wait(self) -> SessionOutcome:
        """Wait until the session is terminal and return its outcome."""

        await self._done.wait()
        if self._outcome is None:  # pragma: no cover - _done is only set with an outcome
            raise RuntimeError(f"{self!r} finished without an outcome")
        return self._outcome


async def start_session(
    command: Sequence[str],
    input_text: str,
    *,
    options: SessionOptions | None = None,
    owner_check_id: int | None = None,
) -> ProcessSession:
    """Create a :class:`ProcessSession` and spawn it.

    Raises:
        SpawnError: If the executable is missing or cannot be executed.
    """

    session = ProcessSession(command, input_text=input_text, options=options, owner_check_id=owner_check_id)
    return await session.start()


__all__ = [
    "CompletionCallback",
    "ProcessSession",
    "SessionOptions",
    "start_session",
]
