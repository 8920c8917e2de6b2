from __future__ import annotations

import contextlib
import threading
import time
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Generator

    from buildparts.messages import BuildMessages

STAT_DOWNLOAD_TIME = "compile-parts:download:time"
STAT_TOTAL_BYTES = "compile-parts:total:bytes"
STAT_TOTAL_COUNT = "compile-parts:total:count"
STAT_DOWNLOADED_BYTES = "compile-parts:downloaded:bytes"
STAT_DOWNLOADED_COUNT = "compile-parts:downloaded:count"
STAT_REUSED_BYTES = "compile-parts:reused:bytes"
STAT_REUSED_COUNT = "compile-parts:reused:count"
STAT_VERIFY_TIME = "compile-parts:verify:time"
STAT_UNPACK_TIME = "compile-parts:unpack:time"


class PipelineStats:
    """Byte/count totals and stage timings of one compiled-parts run.

    Counters may be updated from concurrent workers. Each statistic is reported
    to the sink at most once per run.
    """

    _lock: threading.Lock
    _values: dict[str, int]
    _reported: set[str]

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._values = {}
        self._reported = set()

    def add(self, key: str, amount: int) -> int:
        """Atomically add ``amount`` to ``key`` and return the new value."""
        with self._lock:
            value = self._values.get(key, 0) + amount
            self._values[key] = value
            return value

    def get(self, key: str) -> int:
        with self._lock:
            return self._values.get(key, 0)

    def snapshot(self) -> dict[str, int]:
        with self._lock:
            return dict(self._values)

    @contextlib.contextmanager
    def timed(self, key: str) -> Generator[None]:
        """Record elapsed milliseconds of the block under ``key``."""
        start = time.perf_counter()
        try:
            yield
        finally:
            self.add(key, int((time.perf_counter() - start) * 1000))

    def report(self, messages: BuildMessages, *keys: str) -> None:
        """Send ``keys`` to the statistics sink, skipping already reported ones."""
        for key in keys:
            with self._lock:
                if key in self._reported:
                    continue
                self._reported.add(key)
                value = self._values.get(key, 0)
            messages.report_statistic(key, value)
