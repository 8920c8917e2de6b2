from __future__ import annotations

import threading

import pytest

from buildparts import session


class _RecordingRunner:
    calls: list[tuple[str, tuple[str, ...]]]

    def __init__(self, fail: bool = False) -> None:
        self.calls = []
        self._fail = fail

    def run(self, title: str, *tasks: str) -> None:
        self.calls.append((title, tasks))
        if self._fail:
            raise RuntimeError("gradle failed")


def test_produced_bytes_accumulates_across_threads() -> None:
    build_session = session.BuildSession()

    def worker() -> None:
        for _ in range(1000):
            build_session.add_produced_bytes(3)

    threads = [threading.Thread(target=worker) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert build_session.produced_bytes == 8 * 1000 * 3


def test_add_produced_bytes_returns_new_total() -> None:
    build_session = session.BuildSession()
    assert build_session.add_produced_bytes(5) == 5
    assert build_session.add_produced_bytes(7) == 12


def test_produced_bytes_never_decrease() -> None:
    with pytest.raises(ValueError, match="must not decrease"):
        session.BuildSession().add_produced_bytes(-1)


def test_dependencies_set_up_once() -> None:
    build_session = session.BuildSession()
    runner = _RecordingRunner()

    assert build_session.ensure_dependencies(runner) is True
    assert build_session.ensure_dependencies(runner) is False
    assert runner.calls == [
        ("Setting up compilation dependencies", ("setupJdks", "setupKotlinPlugin"))
    ]
    assert build_session.dependencies_installed


def test_failed_dependency_setup_can_be_retried() -> None:
    build_session = session.BuildSession()

    with pytest.raises(RuntimeError):
        build_session.ensure_dependencies(_RecordingRunner(fail=True))

    assert not build_session.dependencies_installed
    assert build_session.ensure_dependencies(_RecordingRunner()) is True


def test_concurrent_caller_waits_for_running_setup() -> None:
    """A second caller returns only after the first caller's setup finished."""
    build_session = session.BuildSession()
    started = threading.Event()
    release = threading.Event()

    class _BlockingRunner:
        def run(self, title: str, *tasks: str) -> None:
            started.set()
            assert release.wait(timeout=5)

    second_saw_installed = list[bool]()

    def second_caller() -> None:
        assert build_session.ensure_dependencies(_RecordingRunner()) is False
        second_saw_installed.append(build_session.dependencies_installed)

    first = threading.Thread(target=build_session.ensure_dependencies, args=(_BlockingRunner(),))
    first.start()
    assert started.wait(timeout=5)
    second = threading.Thread(target=second_caller)
    second.start()

    second.join(timeout=0.1)
    assert second.is_alive()

    release.set()
    first.join(timeout=5)
    second.join(timeout=5)
    assert second_saw_installed == [True]
