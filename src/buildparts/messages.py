from __future__ import annotations

import contextlib
import logging
import time
from typing import TYPE_CHECKING, NoReturn, Protocol

from buildparts import exceptions

if TYPE_CHECKING:
    from collections.abc import Generator

logger = logging.getLogger(__name__)


class BuildMessages(Protocol):
    """Leveled message, scoped block and statistic sink supplied by the build."""

    def debug(self, message: str) -> None: ...

    def info(self, message: str) -> None: ...

    def warning(self, message: str) -> None: ...

    def error(self, message: str) -> NoReturn:
        """Report a fatal condition. Never returns."""
        ...

    def block(self, name: str) -> contextlib.AbstractContextManager[None]:
        """Scope nested messages under ``name``."""
        ...

    def report_statistic(self, key: str, value: int) -> None: ...

    def artifact_built(self, path_to_report: str) -> None:
        """Signal that an artifact may be published early."""
        ...


class LoggingMessages:
    """BuildMessages backed by the standard logging module.

    Statistics and early-publish notifications are kept in memory so callers
    (and tests) can inspect them after a run.
    """

    _logger: logging.Logger
    _scopes: list[str]
    statistics: dict[str, int]
    published: list[str]

    def __init__(self, log: logging.Logger | None = None) -> None:
        self._logger = log if log is not None else logger
        self._scopes = []
        self.statistics = {}
        self.published = []

    def _prefixed(self, message: str) -> str:
        if not self._scopes:
            return message
        return f"[{' > '.join(self._scopes)}] {message}"

    def debug(self, message: str) -> None:
        self._logger.debug(self._prefixed(message))

    def info(self, message: str) -> None:
        self._logger.info(self._prefixed(message))

    def warning(self, message: str) -> None:
        self._logger.warning(self._prefixed(message))

    def error(self, message: str) -> NoReturn:
        self._logger.error(self._prefixed(message))
        raise exceptions.BuildError(message)

    @contextlib.contextmanager
    def block(self, name: str) -> Generator[None]:
        self._logger.info(self._prefixed(f"{name}..."))
        self._scopes.append(name)
        start = time.perf_counter()
        try:
            yield
        finally:
            self._scopes.pop()
            elapsed_ms = (time.perf_counter() - start) * 1000
            self._logger.debug(self._prefixed(f"{name} finished in {elapsed_ms:.0f}ms"))

    def report_statistic(self, key: str, value: int) -> None:
        self.statistics[key] = value
        self._logger.debug(self._prefixed(f"Statistic {key}={value}"))

    def artifact_built(self, path_to_report: str) -> None:
        self.published.append(path_to_report)
        self._logger.info(self._prefixed(f"Artifact built: {path_to_report}"))
