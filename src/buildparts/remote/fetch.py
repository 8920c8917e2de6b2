from __future__ import annotations

import asyncio
import logging
import os
import shutil
import tempfile
from typing import TYPE_CHECKING, TypedDict

import httpx

from buildparts import exceptions, stats
from buildparts.storage import cache
from buildparts.types import EntryState, FetchSummary

if TYPE_CHECKING:
    import pathlib
    from collections.abc import Callable, Sequence

    from buildparts.config import models
    from buildparts.manifest import ArchiveManifest
    from buildparts.storage.cache import CacheEntry

logger = logging.getLogger(__name__)

STREAM_CHUNK_SIZE = 8 * 1024 * 1024  # 8MB chunks for streaming
_DOWNLOAD_TEMP_PREFIX = ".buildparts_download_"


class _DownloadResult(TypedDict):
    """Outcome of fetching a single part."""

    logical_path: str
    success: bool
    error: str | None


def create_client(
    fetch_config: models.FetchConfig,
    transport: httpx.AsyncBaseTransport | None = None,
) -> httpx.AsyncClient:
    """Create the async HTTP client used for part downloads."""
    timeout = httpx.Timeout(fetch_config.read_timeout, connect=fetch_config.connect_timeout)
    limits = httpx.Limits(max_connections=fetch_config.jobs)
    return httpx.AsyncClient(
        timeout=timeout,
        limits=limits,
        headers={"User-Agent": fetch_config.user_agent},
        follow_redirects=True,
        transport=transport,
    )


async def _write_all_async(fd: int, data: bytes) -> None:
    """Write all bytes to fd asynchronously, handling partial writes."""
    written = 0
    while written < len(data):
        n = await asyncio.to_thread(os.write, fd, data[written:])
        if n == 0:
            raise OSError("os.write returned 0")
        written += n


async def _atomic_download(client: httpx.AsyncClient, url: str, local_path: pathlib.Path) -> None:
    """Stream ``url`` into ``local_path`` via a temp file so no partial file is left behind."""
    local_path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_path = tempfile.mkstemp(dir=local_path.parent, prefix=_DOWNLOAD_TEMP_PREFIX)
    move_succeeded = False
    try:
        async with client.stream("GET", url) as response:
            response.raise_for_status()
            async for chunk in response.aiter_bytes(STREAM_CHUNK_SIZE):
                await _write_all_async(fd, chunk)
        os.close(fd)
        fd = -1
        shutil.move(tmp_path, local_path)
        move_succeeded = True
    finally:
        if fd >= 0:
            os.close(fd)
        if not move_succeeded and os.path.exists(tmp_path):
            os.unlink(tmp_path)


async def download_entries(
    client: httpx.AsyncClient,
    parts: ArchiveManifest,
    entries: Sequence[CacheEntry],
    jobs: int,
    callback: Callable[[int], None] | None = None,
) -> None:
    """Download ``entries`` concurrently; once all finish, any failure raises NetworkError."""
    if not entries:
        return

    semaphore = asyncio.Semaphore(jobs)
    completed = 0

    async def download_one(entry: CacheEntry) -> _DownloadResult:
        nonlocal completed
        url = parts.archive_url(entry.logical_path)
        async with semaphore:
            try:
                await _atomic_download(client, url, entry.cache_file)
            except httpx.HTTPStatusError as e:
                return _DownloadResult(
                    logical_path=entry.logical_path,
                    success=False,
                    error=f"HTTP {e.response.status_code} for {url}",
                )
            except (httpx.HTTPError, OSError) as e:
                return _DownloadResult(
                    logical_path=entry.logical_path, success=False, error=f"{url}: {e!r}"
                )
        entry.state = EntryState.PRESENT
        completed += 1
        if callback:
            callback(completed)
        return _DownloadResult(logical_path=entry.logical_path, success=True, error=None)

    results = await asyncio.gather(*[download_one(e) for e in entries])

    failed = [r for r in results if not r["success"]]
    if failed:
        for r in failed:
            logger.error(f"Failed to download {r['logical_path']}: {r['error']}")
        raise exceptions.NetworkError(
            [r["logical_path"] for r in failed],
            [f"{r['logical_path']} ({r['error']})" for r in failed],
        )


async def fetch_missing(
    parts: ArchiveManifest,
    entries: Sequence[CacheEntry],
    fetch_config: models.FetchConfig,
    pipeline_stats: stats.PipelineStats,
    transport: httpx.AsyncBaseTransport | None = None,
    callback: Callable[[int], None] | None = None,
) -> FetchSummary:
    """Fetch every ABSENT entry and record download/reuse totals."""
    to_download = [e for e in entries if e.state == EntryState.ABSENT]
    reused = [e for e in entries if e.state == EntryState.PRESENT]
    logger.info(
        f"{len(to_download)} of {len(entries)} compiled part(s) need downloading"
        + f" from {parts.server_url}"
    )

    async with create_client(fetch_config, transport) as client:
        await download_entries(client, parts, to_download, fetch_config.jobs, callback)

    downloaded_bytes = sum(cache.file_size(e.cache_file) for e in to_download)
    reused_bytes = sum(cache.file_size(e.cache_file) for e in reused)
    summary = FetchSummary(
        downloaded_bytes=downloaded_bytes,
        downloaded_count=len(to_download),
        reused_bytes=reused_bytes,
        reused_count=len(reused),
    )

    pipeline_stats.add(stats.STAT_TOTAL_BYTES, downloaded_bytes + reused_bytes)
    pipeline_stats.add(stats.STAT_TOTAL_COUNT, len(entries))
    pipeline_stats.add(stats.STAT_DOWNLOADED_BYTES, downloaded_bytes)
    pipeline_stats.add(stats.STAT_DOWNLOADED_COUNT, len(to_download))
    pipeline_stats.add(stats.STAT_REUSED_BYTES, reused_bytes)
    pipeline_stats.add(stats.STAT_REUSED_COUNT, len(reused))
    return summary
