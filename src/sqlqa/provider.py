# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""Host-facing entry point managing one check coordinator per buffer."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Hashable, Iterator, Sequence

from .config import LintConfig, SqlDialect
from .coordinator import BufferContext, CheckCoordinator, ErrorCallback, ReportCallback, Session, SessionFactory
from .errors import LintError
from .models import Diagnostic
from .parsers import OutputParser
from .process import ProcessSession

LOGGER = logging.getLogger(__name__)

BufferId = Hashable


class DiagnosticProvider:
    """Route check requests from a host to independent per-buffer coordinators."""

    def __init__(
        self,
        config: LintConfig | None = None,
        *,
        parser: OutputParser | None = None,
        session_factory: SessionFactory = ProcessSession,
        on_error: ErrorCallback | None = None,
    ) -> None:
        """Initialise the provider.

        Args:
            config: Settings copied into each newly opened buffer.
            parser: Output parser shared by every coordinator.
            session_factory: Builds sessions; tests substitute fakes here.
            on_error: Default error channel for buffers without their own.
        """

        self._default_config = config or LintConfig()
        self._parser = parser or OutputParser()
        self._session_factory = session_factory
        self._on_error = on_error
        self._coordinators: dict[BufferId, CheckCoordinator] = {}

    def __contains__(self, buffer_id: object) -> bool:
        return buffer_id in self._coordinators

    def __iter__(self) -> Iterator[BufferId]:
        return iter(tuple(self._coordinators))

    def __len__(self) -> int:
        return len(self._coordinators)

    @property
    def default_config(self) -> LintConfig:
        return self._default_config

    def coordinator_for(self, buffer_id: BufferId, *, config: LintConfig | None = None) -> CheckCoordinator:
        """Return the coordinator for ``buffer_id``, creating it on first use."""

        coordinator = self._coordinators.get(buffer_id)
        if coordinator is None:
            context = BufferContext(config=config or self._default_config.model_copy())
            coordinator = CheckCoordinator(
                context,
                parser=self._parser,
                session_factory=self._session_factory,
                on_error=self._on_error,
            )
            self._coordinators[buffer_id] = coordinator
            LOGGER.debug("opened buffer %r", buffer_id)
        elif config is not None:
            coordinator.config = config
        return coordinator

    async def run_check(
        self,
        buffer_id: BufferId,
        buffer_text: str,
        report: ReportCallback,
        *,
        on_error: ErrorCallback | None = None,
    ) -> Session | None:
        """Check ``buffer_text`` for ``buffer_id``, superseding its previous check."""

        coordinator = self.coordinator_for(buffer_id)
        return await coordinator.request_check(buffer_text, report, on_error=on_error)

    def set_dialect(self, buffer_id: BufferId, dialect: SqlDialect | str) -> LintConfig:
        """Switch the dialect used for ``buffer_id``'s future checks.

        Raises:
            ConfigError: If ``dialect`` is not a supported dialect.
        """

        coordinator = self.coordinator_for(buffer_id)
        coordinator.config = coordinator.config.with_overrides(dialect=dialect)
        LOGGER.debug("buffer %r now uses dialect %s", buffer_id, coordinator.config.dialect.value)
        return coordinator.config

    def close(self, buffer_id: BufferId) -> bool:
        """Cancel any in-flight check for ``buffer_id`` and forget the buffer."""

        coordinator = self._coordinators.pop(buffer_id, None)
        if coordinator is None:
            return False
        coordinator.cancel()
        LOGGER.debug("closed buffer %r", buffer_id)
        return True

    def shutdown(self) -> None:
        """Close every open buffer."""

        for buffer_id in tuple(self._coordinators):
            self.close(buffer_id)

    async def check_text(self, buffer_text: str, config: LintConfig | None = None) -> tuple[Diagnostic, ...]:
        """Lint ``buffer_text`` once and return its diagnostics.

        Raises:
            LintError: If the linter cannot be spawned, fails, or emits output
                that cannot be parsed.
        """

        loop = asyncio.get_running_loop()
        result: asyncio.Future[tuple[Diagnostic, ...]] = loop.create_future()

        def _report(diagnostics: Sequence[Diagnostic]) -> None:
            if not result.done():
                result.set_result(tuple(diagnostics))

        def _fail(error: LintError) -> None:
            if not result.done():
                result.set_exception(error)

        coordinator = CheckCoordinator(
            BufferContext(config=config or self._default_config),
            parser=self._parser,
            session_factory=self._session_factory,
        )
        try:
            await coordinator.request_check(buffer_text, _report, on_error=_fail)
            return await result
        finally:
            coordinator.cancel()


__all__ = ["BufferId", "DiagnosticProvider"]
