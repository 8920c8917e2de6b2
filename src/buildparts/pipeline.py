from __future__ import annotations

import asyncio
import dataclasses
import logging
from typing import TYPE_CHECKING

from buildparts import manifest, stats, verify
from buildparts.remote import fetch
from buildparts.storage import cache, unpack

if TYPE_CHECKING:
    import pathlib
    from collections.abc import Callable

    import httpx

    from buildparts.config import models
    from buildparts.messages import BuildMessages
    from buildparts.storage.cache import CacheEntry
    from buildparts.types import FetchSummary

logger = logging.getLogger(__name__)


@dataclasses.dataclass(frozen=True)
class PipelineResult:
    """Outcome of a successful compiled-parts run."""

    entries: list[CacheEntry]
    summary: FetchSummary
    unpacked_files: int
    statistics: dict[str, int]


async def _run_async(
    manifest_path: pathlib.Path,
    classes_output: pathlib.Path,
    config: models.BuildPartsConfig,
    messages: BuildMessages,
    cache_root: pathlib.Path | None,
    transport: httpx.AsyncBaseTransport | None,
    callback: Callable[[int], None] | None,
) -> PipelineResult:
    pipeline_stats = stats.PipelineStats()
    persistent = bool(config.cache.persistent_dir)
    root = cache_root if cache_root is not None else cache.get_cache_root(config.cache, classes_output)

    with messages.block("Fetch compiled classes archives"):
        with pipeline_stats.timed(stats.STAT_DOWNLOAD_TIME):
            parts = manifest.load_manifest(manifest_path)
            messages.debug(f"Using compiled parts cache {root} (persistent: {persistent})")
            entries = cache.prepare_entries(parts, root, persistent=persistent)
            summary = await fetch.fetch_missing(
                parts, entries, config.fetch, pipeline_stats, transport, callback
            )
        pipeline_stats.report(
            messages,
            stats.STAT_DOWNLOAD_TIME,
            stats.STAT_TOTAL_BYTES,
            stats.STAT_TOTAL_COUNT,
            stats.STAT_DOWNLOADED_BYTES,
            stats.STAT_DOWNLOADED_COUNT,
            stats.STAT_REUSED_BYTES,
            stats.STAT_REUSED_COUNT,
        )

    with messages.block("Verify archives consistency"):
        with pipeline_stats.timed(stats.STAT_VERIFY_TIME):
            report = await verify.verify_entries(entries, config.verify.jobs)
        pipeline_stats.report(messages, stats.STAT_VERIFY_TIME)
        if report:
            messages.warning(f"Hash mismatch for {len(report)} downloaded files, see details above")
        verify.check_report(report)

    with messages.block("Unpack compiled classes archives"):
        with pipeline_stats.timed(stats.STAT_UNPACK_TIME):
            unpacked = await unpack.unpack_entries(entries, classes_output, config.unpack.jobs)
        pipeline_stats.report(messages, stats.STAT_UNPACK_TIME)

    return PipelineResult(
        entries=entries,
        summary=summary,
        unpacked_files=unpacked,
        statistics=pipeline_stats.snapshot(),
    )


def fetch_and_unpack(
    manifest_path: pathlib.Path,
    classes_output: pathlib.Path,
    config: models.BuildPartsConfig,
    messages: BuildMessages,
    cache_root: pathlib.Path | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
    callback: Callable[[int], None] | None = None,
) -> PipelineResult:
    """Fetch, verify and unpack compiled class archives listed in a manifest.

    Args:
        manifest_path: Manifest JSON with 'files', 'prefix' and 'server-url'.
        classes_output: Output tree; replaced entirely on success, untouched
            when fetching or verification fails.
        config: Cache, fetch and worker settings.
        messages: Sink for blocks, warnings and statistics.
        cache_root: Overrides the cache location derived from ``config``.
        transport: Custom httpx transport (tests, proxies).
        callback: Called with the number of completed downloads.
    """
    return asyncio.run(
        _run_async(
            manifest_path, classes_output, config, messages, cache_root, transport, callback
        )
    )
