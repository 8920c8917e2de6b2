"""Test helpers for building archives, manifests and a fake parts server."""

from __future__ import annotations

import hashlib
import io
import json
import zipfile
from typing import TYPE_CHECKING

import httpx

if TYPE_CHECKING:
    import pathlib
    from collections.abc import Mapping

SERVER_URL = "https://parts.example.org/cache"
PREFIX = "intellij-compile/v2"


def sha256(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


def make_jar(files: Mapping[str, bytes]) -> bytes:
    """Build an in-memory zip archive from {member name: content}."""
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as zf:
        for name, content in files.items():
            zf.writestr(name, content)
    return buffer.getvalue()


def write_manifest(
    path: pathlib.Path,
    files: Mapping[str, str],
    prefix: str = PREFIX,
    server_url: str = SERVER_URL,
) -> pathlib.Path:
    path.write_text(json.dumps({"files": dict(files), "prefix": prefix, "server-url": server_url}))
    return path


class PartsServer:
    """In-memory parts server served through httpx.MockTransport."""

    archives: dict[str, bytes]
    requests: list[str]
    failing: set[str]

    def __init__(self) -> None:
        self.archives = {}
        self.requests = []
        self.failing = set()

    def url_for(self, logical_path: str, content_hash: str) -> str:
        return f"{SERVER_URL}/{PREFIX}/{logical_path}/{content_hash}.jar"

    def add(self, logical_path: str, archive: bytes) -> str:
        """Serve ``archive`` for ``logical_path``; returns its hash."""
        content_hash = sha256(archive)
        self.archives[self.url_for(logical_path, content_hash)] = archive
        return content_hash

    def serve_as(self, logical_path: str, content_hash: str, body: bytes) -> None:
        """Serve ``body`` under a hash it does not actually have."""
        self.archives[self.url_for(logical_path, content_hash)] = body

    def handler(self, request: httpx.Request) -> httpx.Response:
        url = str(request.url)
        self.requests.append(url)
        if url in self.failing:
            return httpx.Response(500, content=b"boom")
        body = self.archives.get(url)
        if body is None:
            return httpx.Response(404)
        return httpx.Response(200, content=body)

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)
