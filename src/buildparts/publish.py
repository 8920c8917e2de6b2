"""Early artifact publication guarded by a free disk space heuristic.

Publishing an artifact early makes the CI agent keep a copy of it. When the
build is going to produce big artifacts and disk space is short, the early
notification is suppressed to avoid "No space left on device" failures; the
artifact is still collected when the build finishes.
"""

from __future__ import annotations

import logging
import pathlib
import shutil
from typing import TYPE_CHECKING

from buildparts.config import models

if TYPE_CHECKING:
    from collections.abc import Callable

    from buildparts.messages import BuildMessages
    from buildparts.session import BuildSession

logger = logging.getLogger(__name__)


def free_space(path: pathlib.Path) -> int:
    """Free bytes on the volume containing ``path``."""
    return shutil.disk_usage(path).free


def format_size(size: int) -> str:
    if size < 1024:
        return f"{size} B"
    value = size / 1024
    for unit in ("KB", "MB"):
        if value < 1024:
            return f"{value:.2f} {unit}"
        value /= 1024
    return f"{value:.2f} GB"


def _is_strictly_under(ancestor: pathlib.Path, path: pathlib.Path) -> bool:
    return path != ancestor and path.is_relative_to(ancestor)


class PublishGuard:
    """Decides, per produced artifact, whether to publish it early."""

    _session: BuildSession
    _artifacts_dir: pathlib.Path
    _messages: BuildMessages
    _config: models.PublishConfig
    _free_space: Callable[[pathlib.Path], int]

    def __init__(
        self,
        session: BuildSession,
        artifacts_dir: pathlib.Path,
        messages: BuildMessages,
        config: models.PublishConfig | None = None,
        free_space_fn: Callable[[pathlib.Path], int] = free_space,
    ) -> None:
        self._session = session
        self._artifacts_dir = artifacts_dir.absolute()
        self._messages = messages
        self._config = config if config is not None else models.PublishConfig()
        self._free_space = free_space_fn

    def should_skip(self, file: pathlib.Path, size: int) -> bool:
        """Apply the space heuristic to a large file.

        The running total grows by ``size`` whether or not publication is
        skipped and whether or not ``file`` is under the artifacts dir.
        """
        # TODO: only count files that will actually be published at the end;
        # the total currently includes artifacts outside the artifacts dir.
        produced = self._session.add_produced_bytes(size)
        will_be_published_when_build_finishes = _is_strictly_under(self._artifacts_dir, file)
        reserved = (
            self._config.max_published_bytes
            - produced
            + self._config.build_headroom_bytes
            + size
        )
        available = self._free_space(file)
        skip = will_be_published_when_build_finishes and available < reserved

        self._messages.debug(f"Checking free space before publishing {file} ({format_size(size)}): ")
        self._messages.debug(f" total produced: {format_size(produced)}")
        self._messages.debug(f" available space: {format_size(available)}")
        decision = "will be" if skip else "won't be"
        self._messages.debug(f" {decision} skipped")
        return skip

    def path_to_report(self, artifact: pathlib.Path) -> str:
        """``<path>`` or ``<path>=><target dir relative to artifacts>``."""
        target = ""
        parent = artifact.parent
        if _is_strictly_under(self._artifacts_dir, parent):
            target = parent.relative_to(self._artifacts_dir).as_posix()
        if artifact.is_dir():
            target = f"{target}/{artifact.name}" if target else artifact.name
        report = str(artifact)
        if target:
            report += f"=>{target}"
        return report

    def notify_artifact_built(self, artifact_path: pathlib.Path | str) -> bool:
        """Publish ``artifact_path`` early unless disk space is short.

        Returns True when the notification was emitted.
        """
        artifact = pathlib.Path(artifact_path).absolute()
        if artifact.is_file():
            size = artifact.stat().st_size
            if size > self._config.size_threshold and self.should_skip(artifact, size):
                self._messages.info(
                    f"Artifact {artifact} won't be published early to avoid caching on agent"
                )
                return False

        self._messages.artifact_built(self.path_to_report(artifact))
        return True
