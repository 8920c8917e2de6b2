from typing import Annotated, Self

import pydantic

GIB = 1024 * 1024 * 1024

# Environment variable carrying the persistent-cache directive (set by CI agents)
PERSISTENT_CACHE_ENV = "BUILDPARTS_PERSISTENT_CACHE"


class CacheConfig(pydantic.BaseModel):
    """Local parts cache options."""

    persistent_dir: str | None = None
    dir_name: str = "idea-compile-parts"

    @pydantic.field_validator("dir_name")
    @classmethod
    def validate_dir_name(cls, v: str) -> str:
        """Cache directory name must be a single path component."""
        if not v or "/" in v or "\\" in v or v in (".", ".."):
            raise ValueError(f"must be a single directory name, got: {v!r}")
        return v


class FetchConfig(pydantic.BaseModel):
    """Remote fetch options."""

    jobs: Annotated[int, pydantic.Field(gt=0)] = 20
    connect_timeout: Annotated[float, pydantic.Field(gt=0)] = 30
    read_timeout: Annotated[float, pydantic.Field(gt=0)] = 60
    user_agent: str = "Parts Downloader"


class WorkersConfig(pydantic.BaseModel):
    """Thread workers for a blocking per-entry stage."""

    jobs: Annotated[int, pydantic.Field(gt=0)] = 8


class PublishConfig(pydantic.BaseModel):
    """Early-publish disk space heuristic.

    A build publishes at most ``max_published_bytes`` of artifacts and needs
    ``build_headroom_bytes`` more for compiled classes, dependencies and temp
    files. Only files larger than ``size_threshold`` are checked.
    """

    size_threshold: Annotated[int, pydantic.Field(ge=0)] = 1_000_000
    max_published_bytes: Annotated[int, pydantic.Field(ge=0)] = 9 * GIB
    build_headroom_bytes: Annotated[int, pydantic.Field(ge=0)] = 6 * GIB


class BuildPartsConfig(pydantic.BaseModel):
    """Complete buildparts configuration schema."""

    model_config = pydantic.ConfigDict(extra="forbid")

    cache: CacheConfig = pydantic.Field(default_factory=CacheConfig)
    fetch: FetchConfig = pydantic.Field(default_factory=FetchConfig)
    verify: WorkersConfig = pydantic.Field(default_factory=WorkersConfig)
    unpack: WorkersConfig = pydantic.Field(default_factory=WorkersConfig)
    publish: PublishConfig = pydantic.Field(default_factory=PublishConfig)

    @classmethod
    def get_default(cls) -> Self:
        """Get default configuration."""
        return cls()
