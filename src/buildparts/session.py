from __future__ import annotations

import logging
import threading
from typing import Protocol

logger = logging.getLogger(__name__)

_DEPENDENCY_TASKS = ("setupJdks", "setupKotlinPlugin")


class TaskRunner(Protocol):
    """External named-task runner (e.g. the dependencies Gradle build)."""

    def run(self, title: str, *tasks: str) -> None: ...


class BuildSession:
    """State shared by everything in one build process.

    Construct once per build invocation and pass it to the components that need
    it. ``produced_bytes`` only ever grows; dependency setup runs at most once.
    """

    _lock: threading.Lock
    _setup_lock: threading.Lock
    _produced_bytes: int
    _dependencies_installed: bool

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._setup_lock = threading.Lock()
        self._produced_bytes = 0
        self._dependencies_installed = False

    @property
    def produced_bytes(self) -> int:
        with self._lock:
            return self._produced_bytes

    def add_produced_bytes(self, amount: int) -> int:
        """Atomically add ``amount`` and return the new total."""
        if amount < 0:
            raise ValueError(f"produced bytes must not decrease, got {amount}")
        with self._lock:
            self._produced_bytes += amount
            return self._produced_bytes

    @property
    def dependencies_installed(self) -> bool:
        with self._lock:
            return self._dependencies_installed

    def ensure_dependencies(self, runner: TaskRunner) -> bool:
        """Run compilation dependency setup once; returns True if it ran now.

        Concurrent callers block until the running setup finishes. A failed
        setup is retried by the next caller.
        """
        with self._setup_lock:
            if self.dependencies_installed:
                return False
            runner.run("Setting up compilation dependencies", *_DEPENDENCY_TASKS)
            with self._lock:
                self._dependencies_installed = True
        return True
