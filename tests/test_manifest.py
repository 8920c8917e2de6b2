from __future__ import annotations

import json
from typing import TYPE_CHECKING

import pytest

from buildparts import exceptions, manifest

if TYPE_CHECKING:
    import pathlib

HASH_A = "a" * 64
HASH_B = "b" * 64


def _manifest_text(files: str, prefix: str = '"p"', server: str = '"https://s"') -> str:
    return f'{{"files": {files}, "prefix": {prefix}, "server-url": {server}}}'


def test_load_manifest(tmp_path: pathlib.Path) -> None:
    """Manifest loads prefix, server URL and files in order."""
    path = tmp_path / "manifest.json"
    path.write_text(
        json.dumps(
            {
                "files": {"production/b": HASH_B, "production/a": HASH_A},
                "prefix": "compile-parts",
                "server-url": "https://cache.example.org",
            }
        )
    )

    parts = manifest.load_manifest(path)

    assert parts.prefix == "compile-parts"
    assert parts.server_url == "https://cache.example.org"
    assert list(parts) == [("production/b", HASH_B), ("production/a", HASH_A)]
    assert len(parts) == 2


def test_archive_url() -> None:
    parts = manifest.parse_manifest(_manifest_text(f'{{"test/m": "{HASH_A}"}}'))
    assert parts.archive_url("test/m") == f"https://s/p/test/m/{HASH_A}.jar"


def test_manifest_is_immutable() -> None:
    parts = manifest.parse_manifest(_manifest_text(f'{{"m": "{HASH_A}"}}'))
    with pytest.raises(TypeError):
        parts.files["m"] = HASH_B  # pyright: ignore[reportIndexIssue]


def test_missing_manifest_raises(tmp_path: pathlib.Path) -> None:
    with pytest.raises(exceptions.ManifestError, match="not found"):
        manifest.load_manifest(tmp_path / "missing.json")


def test_invalid_json_raises() -> None:
    with pytest.raises(exceptions.ManifestError, match="Invalid JSON"):
        manifest.parse_manifest("{not json")


def test_non_object_raises() -> None:
    with pytest.raises(exceptions.ManifestError, match="JSON object"):
        manifest.parse_manifest("[1, 2]")


def test_array_of_pairs_is_not_an_object() -> None:
    text = json.dumps([["prefix", "p"], ["server-url", "https://s"], ["files", []]])
    with pytest.raises(exceptions.ManifestError, match="JSON object"):
        manifest.parse_manifest(text)


def test_files_array_raises() -> None:
    text = json.dumps({"files": [["m", HASH_A]], "prefix": "p", "server-url": "https://s"})
    with pytest.raises(exceptions.ManifestError, match="'files'"):
        manifest.parse_manifest(text)


@pytest.mark.parametrize("missing", ["files", "prefix", "server-url"])
def test_missing_field_raises(missing: str) -> None:
    data = {"files": {"m": HASH_A}, "prefix": "p", "server-url": "https://s"}
    del data[missing]
    with pytest.raises(exceptions.ManifestError):
        manifest.parse_manifest(json.dumps(data))


def test_wrong_field_type_raises() -> None:
    with pytest.raises(exceptions.ManifestError):
        manifest.parse_manifest(_manifest_text(f'{{"m": "{HASH_A}"}}', prefix="42"))


def test_files_must_be_object() -> None:
    with pytest.raises(exceptions.ManifestError, match="'files'"):
        manifest.parse_manifest(_manifest_text(f'["{HASH_A}"]'))


def test_duplicate_path_with_conflicting_hash_raises() -> None:
    """Duplicate logical path with differing hashes is rejected at load time."""
    text = _manifest_text(f'{{"m": "{HASH_A}", "m": "{HASH_B}"}}')
    with pytest.raises(exceptions.ManifestError, match="Conflicting hashes"):
        manifest.parse_manifest(text)


def test_duplicate_path_with_same_hash_collapses() -> None:
    text = _manifest_text(f'{{"m": "{HASH_A}", "m": "{HASH_A}"}}')
    parts = manifest.parse_manifest(text)
    assert dict(parts.files) == {"m": HASH_A}


@pytest.mark.parametrize(
    "bad_hash",
    ["A" * 64, "a" * 63, "g" * 64, ""],
    ids=["uppercase", "short", "non-hex", "empty"],
)
def test_invalid_hash_raises(bad_hash: str) -> None:
    with pytest.raises(exceptions.ManifestError, match="Invalid content hash"):
        manifest.parse_manifest(_manifest_text(f'{{"m": "{bad_hash}"}}'))


@pytest.mark.parametrize(
    "bad_path",
    ["../escape", "/abs/path", "a/../b", "a//b", "", "./a"],
)
def test_invalid_logical_path_raises(bad_path: str) -> None:
    with pytest.raises(exceptions.ManifestError, match="Invalid logical path"):
        manifest.parse_manifest(_manifest_text(json.dumps({bad_path: HASH_A})))


def test_unknown_keys_ignored() -> None:
    text = f'{{"files": {{"m": "{HASH_A}"}}, "prefix": "p", "server-url": "https://s", "extra": 1}}'
    assert len(manifest.parse_manifest(text)) == 1
