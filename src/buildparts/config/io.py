import logging
import os
import pathlib
from typing import Any

import pydantic
import ruamel.yaml

from buildparts import exceptions
from buildparts.config import models

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_NAME = "buildparts.yaml"


def get_default_config_path() -> pathlib.Path:
    """Get project-level config path (./buildparts.yaml)."""
    return pathlib.Path.cwd() / DEFAULT_CONFIG_NAME


def _load_yaml(path: pathlib.Path) -> dict[str, Any]:
    """Load YAML config as plain dict with error handling."""
    if not path.exists():
        return {}

    try:
        yaml = ruamel.yaml.YAML(typ="safe")
        with path.open() as f:
            data = yaml.load(f)
    except ruamel.yaml.YAMLError as e:
        raise exceptions.ConfigError(f"Invalid YAML in {path}: {e}") from e
    except PermissionError:
        raise exceptions.ConfigError(f"Permission denied reading {path}") from None
    except OSError as e:
        raise exceptions.ConfigError(f"Error reading {path}: {e}") from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise exceptions.ConfigError(f"Config {path} must be a mapping, got {type(data).__name__}")
    return dict(data)


def _apply_env_overrides(data: dict[str, Any]) -> dict[str, Any]:
    """Overlay environment-provided settings on top of file values."""
    persistent = os.environ.get(models.PERSISTENT_CACHE_ENV)
    if persistent:
        cache_section = dict(data.get("cache") or {})
        cache_section["persistent_dir"] = persistent
        data = {**data, "cache": cache_section}
    return data


def load_config(path: pathlib.Path | None = None) -> models.BuildPartsConfig:
    """Load config from YAML (defaults when the file is absent) plus environment."""
    config_path = path if path is not None else get_default_config_path()
    if path is not None and not path.exists():
        raise exceptions.ConfigError(f"Config file not found: {path}")

    data = _apply_env_overrides(_load_yaml(config_path))
    try:
        config = models.BuildPartsConfig.model_validate(data)
    except pydantic.ValidationError as e:
        msg = "; ".join(
            f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()
        )
        raise exceptions.ConfigError(f"Invalid config in {config_path}: {msg}") from None

    logger.debug(f"Loaded config from {config_path if config_path.exists() else 'defaults'}")
    return config
