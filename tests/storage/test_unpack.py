from __future__ import annotations

import io
import zipfile
from typing import TYPE_CHECKING

import helpers
import pytest

from buildparts import exceptions
from buildparts.storage import cache, unpack

if TYPE_CHECKING:
    import pathlib


def _entry(tmp_path: pathlib.Path, logical_path: str, archive: bytes) -> cache.CacheEntry:
    entry = cache.resolve(tmp_path / "cache", logical_path, helpers.sha256(archive))
    entry.cache_file.write_bytes(archive)
    return entry


def test_extract_archive_writes_members(tmp_path: pathlib.Path) -> None:
    archive = tmp_path / "a.jar"
    archive.write_bytes(helpers.make_jar({"com/A.class": b"A", "META-INF/MANIFEST.MF": b"m"}))

    count = unpack.extract_archive(archive, tmp_path / "out")

    assert count == 2
    assert (tmp_path / "out" / "com" / "A.class").read_bytes() == b"A"


def test_extract_archive_corrupt_raises(tmp_path: pathlib.Path) -> None:
    archive = tmp_path / "bad.jar"
    archive.write_bytes(b"definitely not a zip")

    with pytest.raises(exceptions.ExtractionError, match="Corrupt archive"):
        unpack.extract_archive(archive, tmp_path / "out")


def test_extract_archive_rejects_escaping_members(tmp_path: pathlib.Path) -> None:
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as zf:
        zf.writestr("../evil.class", b"x")
    archive = tmp_path / "evil.jar"
    archive.write_bytes(buffer.getvalue())

    with pytest.raises(exceptions.ExtractionError, match="escapes destination"):
        unpack.extract_archive(archive, tmp_path / "out")

    assert not (tmp_path / "evil.class").exists()


def test_unpack_archive_replaces_destination(tmp_path: pathlib.Path) -> None:
    dest = tmp_path / "classes"
    (dest / "old").mkdir(parents=True)
    (dest / "old" / "Stale.class").write_bytes(b"stale")
    archive = tmp_path / "all.zip"
    archive.write_bytes(helpers.make_jar({"mod/New.class": b"new"}))

    unpack.unpack_archive(archive, dest)

    assert not (dest / "old").exists()
    assert (dest / "mod" / "New.class").read_bytes() == b"new"


def test_unpack_archive_missing_raises(tmp_path: pathlib.Path) -> None:
    with pytest.raises(exceptions.ExtractionError, match="not found"):
        unpack.unpack_archive(tmp_path / "missing.zip", tmp_path / "classes")


@pytest.mark.anyio
async def test_unpack_entries_clears_destination_first(tmp_path: pathlib.Path) -> None:
    """Content from an earlier generation never survives an unpack."""
    dest = tmp_path / "classes"
    (dest / "production" / "removed").mkdir(parents=True)
    (dest / "production" / "removed" / "Old.class").write_bytes(b"old")
    entries = [
        _entry(tmp_path, "production/core", helpers.make_jar({"Core.class": b"core"})),
        _entry(tmp_path, "test/core", helpers.make_jar({"CoreTest.class": b"test"})),
    ]

    count = await unpack.unpack_entries(entries, dest, jobs=2)

    assert count == 2
    assert not (dest / "production" / "removed").exists()
    assert (dest / "production" / "core" / "Core.class").read_bytes() == b"core"
    assert (dest / "test" / "core" / "CoreTest.class").read_bytes() == b"test"


@pytest.mark.anyio
async def test_unpack_entries_names_failing_part(tmp_path: pathlib.Path) -> None:
    entries = [_entry(tmp_path, "production/broken", b"not a zip")]

    with pytest.raises(exceptions.ExtractionError, match="production/broken"):
        await unpack.unpack_entries(entries, tmp_path / "classes", jobs=1)


def _deflated_jar_with_corrupt_body() -> bytes:
    """A jar whose directory is intact but whose deflate stream is garbage."""
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w", compression=zipfile.ZIP_DEFLATED) as zf:
        zf.writestr("com/A.class", b"compressible class body " * 64)
    data = bytearray(buffer.getvalue())
    # Local header is 30 bytes plus the member name; the compressed body follows
    body_start = 30 + len("com/A.class")
    data[body_start : body_start + 8] = b"\xff" * 8
    return bytes(data)


def test_extract_archive_corrupt_deflate_stream_raises(tmp_path: pathlib.Path) -> None:
    archive = tmp_path / "broken.jar"
    archive.write_bytes(_deflated_jar_with_corrupt_body())

    with pytest.raises(exceptions.ExtractionError, match="Corrupt archive"):
        unpack.extract_archive(archive, tmp_path / "out")


@pytest.mark.anyio
async def test_unpack_entries_corrupt_deflate_stream_names_part(tmp_path: pathlib.Path) -> None:
    entries = [_entry(tmp_path, "production/broken", _deflated_jar_with_corrupt_body())]

    with pytest.raises(exceptions.ExtractionError, match="production/broken"):
        await unpack.unpack_entries(entries, tmp_path / "classes", jobs=1)
