"""
Asset Cache - local copies of remote feed icons and article thumbnails.

Files live under <ASSET_DIR>/<kind>/ and are named from a hash of their
source URL, so the same remote asset always maps to the same file. Names
are validated before any path is built from them.
"""

import asyncio
import hashlib
import logging
import os
import re
from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from urllib.parse import urlparse

from .enrichment import EnrichmentResult
from .http_client import HttpTransport

logger = logging.getLogger(__name__)

ICONS = "icons"
THUMBNAILS = "thumbnails"
ASSET_KINDS = (ICONS, THUMBNAILS)

MIME_FROM_EXTENSION = {
    ".png": "image/png",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".webp": "image/webp",
    ".gif": "image/gif",
    ".ico": "image/x-icon",
    ".svg": "image/svg+xml",
}
DEFAULT_EXTENSION = ".png"
OCTET_STREAM = "application/octet-stream"

_SAFE_FILENAME = re.compile(r"^[a-zA-Z0-9_-]+\.[a-zA-Z0-9]+$")
_SAFE_KEY = re.compile(r"[^a-zA-Z0-9_-]")


@dataclass(frozen=True)
class CachedAsset:
    filename: str
    content_type: str
    size: int


def is_safe_filename(filename: str | None) -> bool:
    """Plain name.ext only; no separators or parent references."""
    if not filename or "/" in filename or "\\" in filename or ".." in filename:
        return False
    return bool(_SAFE_FILENAME.match(filename))


def normalize_extension(ext: str) -> str:
    ext = ext.lower() if ext.startswith(".") else f".{ext.lower()}"
    return ext if ext in MIME_FROM_EXTENSION else DEFAULT_EXTENSION


def derive_extension(url: str, content_type: str | None = None) -> str:
    """Extension from an image content type, else from the URL path."""
    if content_type and content_type.startswith("image/"):
        for ext, mime in MIME_FROM_EXTENSION.items():
            if mime == content_type:
                return ext
    suffix = PurePosixPath(urlparse(url).path).suffix
    return normalize_extension(suffix) if suffix else DEFAULT_EXTENSION


def resolve_mime(filename: str, override: str | None = None) -> str:
    if override:
        return override
    return MIME_FROM_EXTENSION.get(PurePosixPath(filename).suffix.lower(), OCTET_STREAM)


def asset_filename(key: str, url: str, extension: str) -> str:
    """<key>-<sha256(url)[:16]><ext>"""
    digest = hashlib.sha256(url.encode("utf-8")).hexdigest()[:16]
    return f"{_SAFE_KEY.sub('_', key)}-{digest}{extension}"


class AssetCache:
    """Downloads and serves cached images."""

    def __init__(self, base_dir: Path, transport: HttpTransport, timeout: float = 15):
        self.base_dir = base_dir
        self.transport = transport
        self.timeout = timeout

    def directory(self, kind: str) -> Path:
        if kind not in ASSET_KINDS:
            raise ValueError(f"Unknown asset kind: {kind}")
        return self.base_dir / kind

    def path_for(self, kind: str, filename: str) -> Path | None:
        """Absolute path for a cached file, or None if the name is unsafe."""
        if not is_safe_filename(filename):
            logger.warning(f"Rejected unsafe asset filename: {filename!r}")
            return None
        return self.directory(kind) / filename

    async def cache_remote(self, kind: str, key: str, url: str) -> EnrichmentResult[CachedAsset]:
        """
        Fetch a remote image and store it.

        Rejects non-http(s) URLs and responses whose content type is neither
        image/* nor application/octet-stream.
        """
        if not url or urlparse(url).scheme not in ("http", "https"):
            return EnrichmentResult.failure(f"Not a fetchable URL: {url!r}")

        try:
            response = await self.transport.fetch(
                url, headers={"Accept": "image/*,*/*;q=0.8"}, timeout=self.timeout
            )
        except Exception as e:
            return EnrichmentResult.failure(f"{type(e).__name__}: {e}")
        if not response.ok:
            return EnrichmentResult.failure(f"HTTP {response.status}")

        content_type = response.content_type
        if content_type and not content_type.startswith("image/") and content_type != OCTET_STREAM:
            return EnrichmentResult.failure(f"Unexpected content type: {content_type}")
        if not response.body:
            return EnrichmentResult.failure("Empty body")

        extension = derive_extension(url, content_type or None)
        filename = asset_filename(key, url, extension)
        path = self.path_for(kind, filename)
        if path is None:
            return EnrichmentResult.failure(f"Unsafe filename: {filename}")

        await asyncio.to_thread(self._write, path, response.body)
        mime = content_type if content_type and content_type != OCTET_STREAM else resolve_mime(filename)
        return EnrichmentResult.success(CachedAsset(filename, mime, len(response.body)))

    @staticmethod
    def _write(path: Path, data: bytes):
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp = path.with_suffix(path.suffix + ".tmp")
        tmp.write_bytes(data)
        os.replace(tmp, path)

    def remove(self, kind: str, filename: str) -> bool:
        path = self.path_for(kind, filename)
        if path is None or not path.exists():
            return False
        path.unlink()
        return True

    def clear(self, kind: str) -> int:
        """Delete every cached file of a kind. Returns files removed."""
        directory = self.directory(kind)
        if not directory.exists():
            return 0
        removed = 0
        for path in directory.iterdir():
            if path.is_file():
                path.unlink()
                removed += 1
        logger.info(f"Cleared {removed} cached {kind}")
        return removed
