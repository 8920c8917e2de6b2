from __future__ import annotations

import asyncio
import logging
import pathlib
import zipfile
import zlib
from typing import TYPE_CHECKING

from buildparts import exceptions
from buildparts.storage import cache

if TYPE_CHECKING:
    from collections.abc import Sequence

    from buildparts.storage.cache import CacheEntry

logger = logging.getLogger(__name__)


def _safe_member_path(dest: pathlib.Path, member: zipfile.ZipInfo) -> pathlib.Path:
    """Resolve archive member target, rejecting names that escape ``dest``."""
    target = (dest / member.filename).resolve()
    if not target.is_relative_to(dest.resolve()):
        raise exceptions.ExtractionError(
            f"Archive member {member.filename!r} escapes destination {dest}"
        )
    return target


def extract_archive(archive: pathlib.Path, dest: pathlib.Path) -> int:
    """Extract a zip/jar archive into ``dest``, overwriting existing files.

    Returns the number of files written.
    """
    try:
        dest.mkdir(parents=True, exist_ok=True)
        with zipfile.ZipFile(archive) as zf:
            members = zf.infolist()
            for member in members:
                _safe_member_path(dest, member)
            zf.extractall(dest)
    except (zipfile.BadZipFile, zlib.error, EOFError) as e:
        raise exceptions.ExtractionError(f"Corrupt archive {archive}: {e}") from e
    except NotImplementedError as e:
        raise exceptions.ExtractionError(f"Unsupported archive {archive}: {e}") from e
    except OSError as e:
        raise exceptions.ExtractionError(f"Cannot extract {archive} into {dest}: {e}") from e
    return sum(1 for m in members if not m.is_dir())


def unpack_archive(archive: pathlib.Path, destination: pathlib.Path) -> int:
    """Replace ``destination`` with the contents of a single archive."""
    if not archive.is_file():
        raise exceptions.ExtractionError(f"Compiled classes archive not found: {archive}")
    cache.clear_path(destination)
    return extract_archive(archive, destination)


async def unpack_entries(
    entries: Sequence[CacheEntry], destination: pathlib.Path, jobs: int
) -> int:
    """Clear ``destination`` and extract every entry into ``destination/<logical_path>``.

    Callers must only pass entries that passed verification. Nested logical
    paths share directories; their members overwrite in place.
    """
    try:
        cache.clear_path(destination)
    except OSError as e:
        raise exceptions.CacheIOError(f"Cannot clear output directory {destination}: {e}") from e

    semaphore = asyncio.Semaphore(jobs)

    async def unpack_one(entry: CacheEntry) -> int:
        async with semaphore:
            logger.debug(f"Unpacking {entry.logical_path}")
            try:
                return await asyncio.to_thread(
                    extract_archive, entry.cache_file, destination / entry.logical_path
                )
            except exceptions.ExtractionError as e:
                raise exceptions.ExtractionError(f"Failed to unpack {entry.logical_path}: {e}") from e

    counts = await asyncio.gather(*[unpack_one(e) for e in entries])
    return sum(counts)
