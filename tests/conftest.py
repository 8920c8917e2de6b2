from __future__ import annotations

import pathlib
import sys

import pytest

from buildparts import messages
from buildparts.config import models

# Add tests directory to sys.path so helpers.py can be imported
_tests_dir = pathlib.Path(__file__).parent
if str(_tests_dir) not in sys.path:
    sys.path.insert(0, str(_tests_dir))

import helpers  # noqa: E402


@pytest.fixture(autouse=True)
def _no_persistent_cache_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """CI agents may export the persistent cache directive; tests must not inherit it."""
    monkeypatch.delenv(models.PERSISTENT_CACHE_ENV, raising=False)


@pytest.fixture
def parts_server() -> helpers.PartsServer:
    return helpers.PartsServer()


@pytest.fixture
def sink() -> messages.LoggingMessages:
    return messages.LoggingMessages()


@pytest.fixture
def config() -> models.BuildPartsConfig:
    return models.BuildPartsConfig(
        fetch=models.FetchConfig(jobs=4),
        verify=models.WorkersConfig(jobs=2),
        unpack=models.WorkersConfig(jobs=2),
    )
