"""Filesystem storage for generated media."""

import asyncio
import time
from dataclasses import dataclass
from enum import StrEnum
from pathlib import Path

from cuid2 import cuid_wrapper

from gateway.utils.logging import get_logger

logger = get_logger(__name__)

_suffix = cuid_wrapper()

EXTENSIONS_BY_MIME = {
    "image/png": "png",
    "image/jpeg": "jpg",
    "image/webp": "webp",
    "image/gif": "gif",
    "audio/wav": "wav",
    "audio/mpeg": "mp3",
    "video/mp4": "mp4",
}


class MediaKind(StrEnum):
    """Media families, each stored in its own directory."""

    IMAGE = "images"
    AUDIO = "audio"
    VIDEO = "videos"

    @property
    def url_prefix(self) -> str:
        return f"/generated-{self.value}"


@dataclass
class StoredMedia:
    """A media file written to disk."""

    kind: MediaKind
    filename: str
    path: Path
    url: str
    size: int


class MediaStore:
    """Writes generated artifacts under a root directory and maps them to URLs."""

    def __init__(self, root: str | Path):
        self.root = Path(root)

    def directory(self, kind: MediaKind) -> Path:
        return self.root / kind.value

    def ensure_directories(self) -> None:
        for kind in MediaKind:
            self.directory(kind).mkdir(parents=True, exist_ok=True)

    async def save(self, kind: MediaKind, data: bytes, mime_type: str) -> StoredMedia:
        """Persist bytes under a collision-resistant name.

        Args:
            kind: Media family
            data: Raw file content
            mime_type: Content type, used for the extension

        Returns:
            StoredMedia with the public URL
        """
        extension = EXTENSIONS_BY_MIME.get(mime_type, mime_type.rsplit("/", 1)[-1] or "bin")
        filename = f"{kind.value.rstrip('s')}-{time.time_ns() // 1_000_000}-{_suffix()[:8]}.{extension}"
        path = self.directory(kind) / filename

        await asyncio.to_thread(path.parent.mkdir, parents=True, exist_ok=True)
        await asyncio.to_thread(path.write_bytes, data)

        logger.info(f"Saved {kind.value} file {filename} ({len(data)} bytes)")
        return StoredMedia(kind=kind, filename=filename, path=path, url=f"{kind.url_prefix}/{filename}", size=len(data))
