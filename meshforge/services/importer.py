from __future__ import annotations

import logging
import uuid
from pathlib import Path
from typing import Any, Protocol
from urllib.parse import urlparse

import httpx

from ..errors import ImportFailed

logger = logging.getLogger(__name__)

DEFAULT_FILE_NAME = "model.glb"


class ArtifactConsumer(Protocol):
    async def import_artifact(self, url: str) -> Any: ...

    def discard(self, handle: Any) -> None: ...


class DownloadImporter:
    """Downloads a generated mesh into a local cache folder.

    The handle handed back is the local file path; parsing and instantiating
    the mesh is left to whoever reads that file.
    """

    def __init__(self, http: httpx.AsyncClient, cache_dir: str | Path):
        self.http = http
        self.cache_dir = Path(cache_dir)

    def target_path(self, url: str) -> Path:
        # one directory per download; remote names repeat across tasks
        name = Path(urlparse(url).path).name or DEFAULT_FILE_NAME
        return self.cache_dir / uuid.uuid4().hex / name

    async def import_artifact(self, url: str) -> Path:
        if not url:
            raise ImportFailed("artifact url is empty")
        path = self.target_path(url)
        path.parent.mkdir(parents=True, exist_ok=True)

        logger.info("downloading %s -> %s", url, path)
        try:
            async with self.http.stream("GET", url) as r:
                if r.status_code >= 400:
                    raise ImportFailed(f"download failed: HTTP {r.status_code}")
                with path.open("wb") as fh:
                    async for chunk in r.aiter_bytes():
                        fh.write(chunk)
        except ImportFailed:
            self.discard(path)
            raise
        except httpx.HTTPError as exc:
            self.discard(path)
            raise ImportFailed(f"download failed: {exc}") from exc

        if path.stat().st_size == 0:
            self.discard(path)
            raise ImportFailed("downloaded artifact is empty")
        return path

    def discard(self, handle: Any) -> None:
        if not isinstance(handle, Path):
            return
        handle.unlink(missing_ok=True)
        if handle.parent != self.cache_dir and handle.parent.is_dir() and not any(handle.parent.iterdir()):
            handle.parent.rmdir()
