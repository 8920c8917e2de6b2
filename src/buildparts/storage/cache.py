from __future__ import annotations

import dataclasses
import errno
import hashlib
import logging
import mmap
import os
import pathlib
import shutil
import stat
from typing import TYPE_CHECKING

from buildparts import exceptions, manifest
from buildparts.types import EntryState

if TYPE_CHECKING:
    from collections.abc import Callable

    from buildparts.config import models
    from buildparts.manifest import ArchiveManifest

logger = logging.getLogger(__name__)

CHUNK_SIZE = 1024 * 1024  # 1MB chunks for hashing
MMAP_THRESHOLD = 10 * 1024 * 1024  # 10MB - use mmap for files larger than this
ARCHIVE_SUFFIX = ".jar"


@dataclasses.dataclass
class CacheEntry:
    """A compiled part keyed by logical path and expected content hash."""

    logical_path: str
    expected_hash: str
    cache_file: pathlib.Path
    state: EntryState = EntryState.ABSENT


def hash_file(path: pathlib.Path) -> str:
    """Compute SHA-256 of file contents as lowercase hex."""
    hasher = hashlib.sha256()
    with open(path, "rb") as f:
        size = os.fstat(f.fileno()).st_size
        if size >= MMAP_THRESHOLD:
            try:
                with mmap.mmap(f.fileno(), 0, access=mmap.ACCESS_READ) as mm:
                    hasher.update(mm)
                return hasher.hexdigest()
            except (ValueError, OSError):
                # Fall back to buffered read (network FS, etc.)
                hasher = hashlib.sha256()
                f.seek(0)
        while chunk := f.read(CHUNK_SIZE):
            hasher.update(chunk)
    return hasher.hexdigest()


def hash_file_if_exists(path: pathlib.Path) -> str | None:
    """Hash ``path``, or None when it does not exist."""
    try:
        return hash_file(path)
    except FileNotFoundError:
        return None


def get_cache_root(cache_config: models.CacheConfig, classes_output: pathlib.Path) -> pathlib.Path:
    """Persistent cache dir when designated externally, else the build's working area."""
    base = (
        pathlib.Path(cache_config.persistent_dir)
        if cache_config.persistent_dir
        else classes_output.absolute().parent
    )
    return base / cache_config.dir_name


def get_cache_path(cache_root: pathlib.Path, logical_path: str, content_hash: str) -> pathlib.Path:
    """Get cache path for a part ({cache_root}/{logical_path}/{hash}.jar)."""
    manifest.validate_logical_path(logical_path)
    manifest.validate_hash(content_hash)
    path = cache_root / logical_path / f"{content_hash}{ARCHIVE_SUFFIX}"
    # Paranoid check; validate_logical_path already rejects '..'
    if not path.resolve().is_relative_to(cache_root.resolve()):
        raise exceptions.CacheIOError(f"Logical path {logical_path!r} escapes cache root")
    return path


def _make_writable_and_retry(func: Callable[[str], object], path: str, exc: BaseException) -> None:
    """onexc handler for rmtree: make parent directory writable before retrying.

    Extracted archives may contain read-only directories; only directories are
    chmod'ed, files only need a writable parent to be unlinked.
    """
    parent = os.path.dirname(path)
    if parent:
        try:
            parent_perm = os.lstat(parent).st_mode
            if not (parent_perm & stat.S_IWUSR):
                os.chmod(parent, parent_perm | stat.S_IWUSR)
        except OSError:
            pass  # Best effort - may not own parent

    try:
        st = os.lstat(path)
        if stat.S_ISDIR(st.st_mode) and not (st.st_mode & stat.S_IWUSR):
            os.chmod(path, st.st_mode | stat.S_IWUSR)
    except OSError as chmod_exc:
        if chmod_exc.errno not in (errno.ENOENT, errno.EPERM):
            raise exc from chmod_exc

    func(path)


def clear_path(path: pathlib.Path) -> None:
    """Remove file, symlink, or directory at path if it exists."""
    if not path.exists() and not path.is_symlink():
        return
    if path.is_dir() and not path.is_symlink():
        shutil.rmtree(path, onexc=_make_writable_and_retry)
    else:
        path.unlink(missing_ok=True)


def resolve(cache_root: pathlib.Path, logical_path: str, expected_hash: str) -> CacheEntry:
    """Compute the entry's cache file and ensure its directory exists."""
    cache_file = get_cache_path(cache_root, logical_path, expected_hash)
    try:
        cache_file.parent.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise exceptions.CacheIOError(f"Cannot create cache directory {cache_file.parent}: {e}") from e
    return CacheEntry(logical_path=logical_path, expected_hash=expected_hash, cache_file=cache_file)


def prune_siblings(entry: CacheEntry) -> list[pathlib.Path]:
    """Delete other generations of the same part; returns removed paths."""
    removed = list[pathlib.Path]()
    try:
        with os.scandir(entry.cache_file.parent) as siblings:
            for sibling in siblings:
                if sibling.name == entry.cache_file.name:
                    continue
                # Directories hold nested logical paths, not generations of this part
                if sibling.is_dir(follow_symlinks=False):
                    continue
                sibling_path = pathlib.Path(sibling.path)
                clear_path(sibling_path)
                removed.append(sibling_path)
    except OSError as e:
        raise exceptions.CacheIOError(
            f"Cannot prune stale parts in {entry.cache_file.parent}: {e}"
        ) from e
    if removed:
        logger.debug(f"Pruned {len(removed)} stale file(s) for {entry.logical_path}")
    return removed


def repair(entry: CacheEntry) -> EntryState:
    """Classify the cached file, deleting it when its content hash is wrong.

    Leaves the entry PRESENT (hash matches) or ABSENT (missing, or corrupt and
    now deleted, so a fetch candidate).
    """
    try:
        actual = hash_file_if_exists(entry.cache_file)
    except OSError as e:
        raise exceptions.CacheIOError(f"Cannot read cached part {entry.cache_file}: {e}") from e

    if actual == entry.expected_hash:
        entry.state = EntryState.PRESENT
        return entry.state

    if actual is not None:
        entry.state = EntryState.CORRUPT
        logger.info(f"File {entry.cache_file} has unexpected hash, will refetch")
        try:
            clear_path(entry.cache_file)
        except OSError as e:
            raise exceptions.CacheIOError(
                f"Cannot delete corrupt part {entry.cache_file}: {e}"
            ) from e

    entry.state = EntryState.ABSENT
    return entry.state


def prepare_entries(
    parts: ArchiveManifest, cache_root: pathlib.Path, *, persistent: bool
) -> list[CacheEntry]:
    """Resolve, prune (ephemeral caches only) and repair every manifest entry."""
    entries = list[CacheEntry]()
    for logical_path, expected_hash in parts:
        entry = resolve(cache_root, logical_path, expected_hash)
        # Retention of persistent caches belongs to whoever manages them
        if not persistent:
            prune_siblings(entry)
        repair(entry)
        entries.append(entry)
    return entries


def file_size(path: pathlib.Path) -> int:
    """Size of ``path`` in bytes, 0 if it does not exist."""
    try:
        return path.stat().st_size
    except FileNotFoundError:
        return 0
