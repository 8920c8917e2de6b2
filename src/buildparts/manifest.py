"""Compiled-parts manifest: expected SHA-256 per logical path plus server location."""

from __future__ import annotations

import dataclasses
import json
import logging
import pathlib
import re
import types
from typing import TYPE_CHECKING, Any

import pydantic

from buildparts import exceptions

if TYPE_CHECKING:
    from collections.abc import Iterator, Mapping

logger = logging.getLogger(__name__)

SHA256_HEX_LENGTH = 64

_SHA256_PATTERN = re.compile(r"^[0-9a-f]{64}$")


class _ManifestSchema(pydantic.BaseModel):
    """Wire schema of the manifest JSON object."""

    model_config = pydantic.ConfigDict(extra="ignore", populate_by_name=True)

    prefix: pydantic.StrictStr
    server_url: pydantic.StrictStr = pydantic.Field(alias="server-url")
    files: list[tuple[pydantic.StrictStr, pydantic.StrictStr]]


@dataclasses.dataclass(frozen=True)
class ArchiveManifest:
    """Immutable manifest of compiled-class archives."""

    prefix: str
    server_url: str
    files: Mapping[str, str]

    def __len__(self) -> int:
        return len(self.files)

    def __iter__(self) -> Iterator[tuple[str, str]]:
        """Iterate (logical_path, content_hash) pairs in manifest order."""
        return iter(self.files.items())

    def archive_url(self, logical_path: str) -> str:
        """URL of the archive for ``logical_path`` on the parts server."""
        content_hash = self.files[logical_path]
        return f"{self.server_url}/{self.prefix}/{logical_path}/{content_hash}.jar"


def validate_hash(content_hash: str) -> None:
    """Validate a lowercase hex SHA-256 digest."""
    if not _SHA256_PATTERN.match(content_hash):
        raise exceptions.ManifestError(
            f"Invalid content hash {content_hash!r}: must be {SHA256_HEX_LENGTH} lowercase hex characters"
        )


def validate_logical_path(logical_path: str) -> None:
    """Reject logical paths that would escape the cache or output root."""
    if not logical_path or "\\" in logical_path or "\0" in logical_path:
        raise exceptions.ManifestError(f"Invalid logical path {logical_path!r}")
    path = pathlib.PurePosixPath(logical_path)
    if path.is_absolute() or any(part in ("..", ".") for part in logical_path.split("/")):
        raise exceptions.ManifestError(
            f"Invalid logical path {logical_path!r}: must be relative without '.' or '..' segments"
        )
    if "" in logical_path.split("/"):
        raise exceptions.ManifestError(f"Invalid logical path {logical_path!r}: empty segment")


class _Pairs(list[tuple[str, Any]]):
    """Key/value pairs of one JSON object, duplicates included."""


def _keep_pairs(pairs: list[tuple[str, Any]]) -> _Pairs:
    # Keep duplicate keys visible; a dict would silently keep the last value
    return _Pairs(pairs)


def _collapse_files(pairs: list[tuple[str, str]]) -> dict[str, str]:
    """Build ordered path -> hash mapping, rejecting conflicting duplicates."""
    files = dict[str, str]()
    conflicts = list[str]()
    for logical_path, content_hash in pairs:
        validate_logical_path(logical_path)
        validate_hash(content_hash)
        existing = files.get(logical_path)
        if existing is None:
            files[logical_path] = content_hash
        elif existing != content_hash:
            conflicts.append(f"{logical_path} ({existing} vs {content_hash})")
        else:
            logger.debug(f"Duplicate manifest entry for {logical_path} with identical hash")
    if conflicts:
        raise exceptions.ManifestError(
            "Conflicting hashes for duplicate logical path(s): " + ", ".join(conflicts)
        )
    return files


def parse_manifest(text: str, source: str = "<manifest>") -> ArchiveManifest:
    """Parse manifest JSON text."""
    try:
        raw = json.loads(text, object_pairs_hook=_keep_pairs)
    except json.JSONDecodeError as e:
        raise exceptions.ManifestError(f"Invalid JSON in {source}: {e}") from e

    if not isinstance(raw, _Pairs):
        raise exceptions.ManifestError(f"Manifest {source} must be a JSON object")

    top = dict[str, Any]()
    for key, value in raw:
        if key in top:
            raise exceptions.ManifestError(f"Duplicate key {key!r} in {source}")
        top[key] = value

    # Nested objects were also kept as pair lists; only 'files' is expected to be one
    if "files" in top and not isinstance(top["files"], _Pairs):
        raise exceptions.ManifestError(f"'files' in {source} must be an object")

    try:
        schema = _ManifestSchema.model_validate(top)
    except pydantic.ValidationError as e:
        msg = "; ".join(
            f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()
        )
        raise exceptions.ManifestError(f"Invalid manifest {source}: {msg}") from None

    files = _collapse_files(schema.files)
    return ArchiveManifest(
        prefix=schema.prefix,
        server_url=schema.server_url,
        files=types.MappingProxyType(files),
    )


def load_manifest(path: pathlib.Path) -> ArchiveManifest:
    """Load the compiled-parts manifest from ``path``."""
    try:
        text = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        raise exceptions.ManifestError(f"Manifest not found: {path}") from None
    except (OSError, UnicodeDecodeError) as e:
        raise exceptions.ManifestError(f"Error reading manifest {path}: {e}") from e

    manifest = parse_manifest(text, source=str(path))
    logger.debug(f"Loaded manifest {path}: {len(manifest)} part(s), prefix '{manifest.prefix}'")
    return manifest
