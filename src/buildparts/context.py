from __future__ import annotations

import dataclasses
import logging
import pathlib
from typing import TYPE_CHECKING, Protocol

import pydantic

from buildparts import pipeline, publish
from buildparts.storage import cache, unpack

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence

    from buildparts.config import models
    from buildparts.messages import BuildMessages
    from buildparts.session import BuildSession, TaskRunner

logger = logging.getLogger(__name__)

USE_COMPILED_CLASSES_OPTION = "use_compiled_classes_from_project_output"

_DATA_DIR_NAME = ".jps-build-data"
_CLASSES_DIR_NAME = "classes"
_PROJECT_ARTIFACTS_DIR_NAME = "project-artifacts"
_LOG_DIR_NAME = "log"


class Module(Protocol):
    @property
    def name(self) -> str: ...


class ProjectModel(Protocol):
    """Query surface of the loaded project model."""

    @property
    def modules(self) -> Sequence[Module]: ...

    def output_directory(self, module: Module, for_tests: bool) -> pathlib.Path | None: ...

    def runtime_classpath(self, module: Module, for_tests: bool) -> list[pathlib.Path]: ...

    def get_output_directory(self) -> pathlib.Path | None: ...

    def set_output_directory(self, path: pathlib.Path) -> None: ...


class BuildOptions(pydantic.BaseModel):
    """Compilation options; reconciled in place by check_compilation_options()."""

    model_config = pydantic.ConfigDict(validate_assignment=True)

    path_to_compiled_classes_archives_metadata: pathlib.Path | None = None
    path_to_compiled_classes_archive: pathlib.Path | None = None
    incremental_compilation: bool = False
    use_compiled_classes_from_project_output: bool = False
    is_default_branch: bool | None = None


@dataclasses.dataclass(frozen=True)
class BuildPaths:
    build_output_root: pathlib.Path

    @property
    def artifacts(self) -> pathlib.Path:
        return self.build_output_root / "artifacts"

    @property
    def dist_all(self) -> pathlib.Path:
        return self.build_output_root / "dist.all"

    @property
    def temp(self) -> pathlib.Path:
        return self.build_output_root / "temp"

    @property
    def classes_output(self) -> pathlib.Path:
        return self.build_output_root / _CLASSES_DIR_NAME


class CompilationContext:
    """Prepares the build output tree and answers module queries for the build."""

    project: ProjectModel
    options: BuildOptions
    paths: BuildPaths
    messages: BuildMessages
    config: models.BuildPartsConfig
    session: BuildSession
    _old_to_new: dict[str, str]
    _new_to_old: dict[str, str]
    _publish_guard: publish.PublishGuard

    def __init__(
        self,
        project: ProjectModel,
        options: BuildOptions,
        paths: BuildPaths,
        messages: BuildMessages,
        config: models.BuildPartsConfig,
        session: BuildSession,
        old_to_new_module_names: Mapping[str, str] | None = None,
    ) -> None:
        self.project = project
        self.options = options
        self.paths = paths
        self.messages = messages
        self.config = config
        self.session = session
        self._old_to_new = dict(old_to_new_module_names or {})
        self._new_to_old = {new: old for old, new in self._old_to_new.items()}
        self._publish_guard = publish.PublishGuard(
            session, paths.artifacts, messages, config.publish
        )

    def ensure_dependencies(self, runner: TaskRunner) -> None:
        """Set up JDKs and the Kotlin plugin once per build session."""
        if self.session.ensure_dependencies(runner):
            self.messages.debug("Compilation dependencies installed")

    def check_compilation_options(self) -> None:
        """Disable options that contradict each other, warning about each change."""
        opts = self.options
        if opts.use_compiled_classes_from_project_output and opts.incremental_compilation:
            self.messages.warning(
                f"'{USE_COMPILED_CLASSES_OPTION}' is specified, so 'incremental compilation' option will be ignored"
            )
            opts.incremental_compilation = False
        if opts.path_to_compiled_classes_archive is not None and opts.incremental_compilation:
            self.messages.warning(
                "Paths to the compiled project output is specified, so 'incremental compilation' option will be ignored"
            )
            opts.incremental_compilation = False
        if (
            opts.path_to_compiled_classes_archive is not None
            and opts.use_compiled_classes_from_project_output
        ):
            self.messages.warning(
                f"'{USE_COMPILED_CLASSES_OPTION}' is specified, so the archive with compiled project output won't be used"
            )
            opts.path_to_compiled_classes_archive = None
        if (
            opts.path_to_compiled_classes_archives_metadata is not None
            and opts.incremental_compilation
        ):
            self.messages.warning(
                "Paths to the compiled project output metadata is specified, so 'incremental compilation' option will be ignored"
            )
            opts.incremental_compilation = False
        if (
            opts.path_to_compiled_classes_archives_metadata is not None
            and opts.use_compiled_classes_from_project_output
        ):
            self.messages.warning(
                f"'{USE_COMPILED_CLASSES_OPTION}' is specified, so the archive with the compiled project output metadata won't be used to fetch compile output"
            )
            opts.path_to_compiled_classes_archives_metadata = None
        if opts.incremental_compilation and opts.is_default_branch is False:
            self.messages.warning(
                "Incremental builds for feature branches have no sense because caches are out of date, so 'incremental compilation' option will be ignored"
            )
            opts.incremental_compilation = False

    def prepare_for_build(self) -> None:
        """Reconcile options, restore compiled classes if available and clean the output root."""
        self.check_compilation_options()
        root = self.paths.build_output_root
        cache.clear_path(root / _LOG_DIR_NAME)

        classes_output = self.paths.classes_output
        keep = [_LOG_DIR_NAME]
        if self.options.path_to_compiled_classes_archives_metadata is not None:
            pipeline.fetch_and_unpack(
                self.options.path_to_compiled_classes_archives_metadata,
                classes_output,
                self.config,
                self.messages,
            )
            keep.append(_CLASSES_DIR_NAME)
        elif self.options.path_to_compiled_classes_archive is not None:
            with self.messages.block("Unpack compiled classes archive"):
                unpack.unpack_archive(self.options.path_to_compiled_classes_archive, classes_output)
            keep.append(_CLASSES_DIR_NAME)

        self.messages.info(f"Incremental compilation: {self.options.incremental_compilation}")
        if self.options.incremental_compilation:
            keep.extend([_DATA_DIR_NAME, _CLASSES_DIR_NAME, _PROJECT_ARTIFACTS_DIR_NAME])

        if not self.options.use_compiled_classes_from_project_output:
            self.project.set_output_directory(classes_output)
        else:
            output_dir = self.project.get_output_directory()
            if output_dir is None or not output_dir.exists():
                self.messages.error(
                    f"'{USE_COMPILED_CLASSES_OPTION}' is enabled, but the project output directory {output_dir} doesn't exist"
                )

        self.clean_output(keep)

    def clean_output(self, keep: Sequence[str]) -> None:
        """Delete every top-level entry of the build output root not listed in ``keep``."""
        root = self.paths.build_output_root
        with self.messages.block("Clean output"):
            self.messages.info(f"Cleaning output directory {root}")
            if not root.is_dir():
                return
            for child in sorted(root.iterdir()):
                if child.name in keep:
                    self.messages.info(f"Skipped cleaning for {child.absolute()}")
                else:
                    self.messages.info(f"Deleting {child.absolute()}")
                    cache.clear_path(child)

    def find_module(self, name: str) -> Module | None:
        """Find a module by current or old name (old names log a warning)."""
        actual = self._old_to_new.get(name)
        if actual is not None:
            self.messages.warning(
                f"Old module name '{name}' is used in the build scripts; use the new name '{actual}' instead"
            )
        else:
            actual = name
        return next((m for m in self.project.modules if m.name == actual), None)

    def find_required_module(self, name: str) -> Module:
        module = self.find_module(name)
        if module is None:
            self.messages.error(f"Cannot find required module '{name}' in the project")
        return module

    def get_old_module_name(self, new_name: str) -> str | None:
        return self._new_to_old.get(new_name)

    def _get_output_path(self, module: Module, for_tests: bool) -> pathlib.Path:
        output = self.project.output_directory(module, for_tests)
        if output is None:
            self.messages.error(f"Output directory for '{module.name}' isn't set")
        return output.absolute()

    def get_module_output_path(self, module: Module) -> pathlib.Path:
        return self._get_output_path(module, for_tests=False)

    def get_module_tests_output_path(self, module: Module) -> pathlib.Path:
        return self._get_output_path(module, for_tests=True)

    def get_module_runtime_classpath(self, module: Module, for_tests: bool) -> list[pathlib.Path]:
        return [p.absolute() for p in self.project.runtime_classpath(module, for_tests)]

    def module_output_properties(self) -> dict[str, str]:
        """``module.<name>.output.<main|test>`` for current and old module names."""
        properties = dict[str, str]()
        for module in self.project.modules:
            names = [module.name]
            if (old := self.get_old_module_name(module.name)) is not None:
                names.append(old)
            for for_tests in (True, False):
                path = str(self._get_output_path(module, for_tests))
                kind = "test" if for_tests else "main"
                for name in names:
                    properties[f"module.{name}.output.{kind}"] = path
        return properties

    def notify_artifact_built(self, artifact_path: pathlib.Path | str) -> bool:
        return self._publish_guard.notify_artifact_built(artifact_path)

    def log_free_disk_space(self, directory: pathlib.Path, phase: str) -> None:
        self.messages.debug(
            f"Free disk space {phase}: {publish.format_size(publish.free_space(directory))} (on disk containing {directory})"
        )
