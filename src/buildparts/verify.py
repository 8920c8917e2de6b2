from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

from buildparts import exceptions
from buildparts.storage import cache
from buildparts.types import Mismatch, VerificationReport

if TYPE_CHECKING:
    from collections.abc import Sequence

    from buildparts.storage.cache import CacheEntry

logger = logging.getLogger(__name__)


def _check_entry(entry: CacheEntry) -> Mismatch | None:
    try:
        actual = cache.hash_file_if_exists(entry.cache_file)
    except OSError as e:
        raise exceptions.CacheIOError(f"Cannot read cached part {entry.cache_file}: {e}") from e
    if actual == entry.expected_hash:
        return None
    logger.warning(
        f"Downloaded file '{entry.cache_file}' hash mismatch, expected '{entry.expected_hash}', got {actual}"
    )
    return Mismatch(
        logical_path=entry.logical_path,
        expected_hash=entry.expected_hash,
        actual_hash=actual,
    )


async def verify_entries(entries: Sequence[CacheEntry], jobs: int) -> VerificationReport:
    """Re-hash every entry, fetched or reused, and collect all mismatches.

    Returns only after every entry has been checked; the report keeps the
    order of ``entries``.
    """
    semaphore = asyncio.Semaphore(jobs)

    async def check_one(entry: CacheEntry) -> Mismatch | None:
        async with semaphore:
            return await asyncio.to_thread(_check_entry, entry)

    results = await asyncio.gather(*[check_one(e) for e in entries])
    return [m for m in results if m is not None]


def check_report(report: VerificationReport) -> None:
    """Raise IntegrityError naming every mismatching part."""
    if report:
        raise exceptions.IntegrityError(report)
