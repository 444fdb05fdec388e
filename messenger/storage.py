"""Blob storage for message attachments and avatars.

Only the returned URL is persisted; raw bytes never reach the database.
"""
import asyncio
import logging
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from messenger.config import settings

logger = logging.getLogger(__name__)


@dataclass
class UploadedFile:
    filename: str
    content_type: Optional[str]
    data: bytes

    @property
    def size(self) -> int:
        return len(self.data)

    @property
    def is_image(self) -> bool:
        return (self.content_type or "").startswith("image/")


class BlobStore:
    async def store(self, data: bytes, folder: str, filename: Optional[str] = None) -> str:
        """Persist ``data`` under ``folder`` and return a public URL for it."""
        raise NotImplementedError


class LocalBlobStore(BlobStore):
    """Writes files below ``root`` and serves them from ``base_url``."""

    def __init__(self, root: str, base_url: str):
        self.root = Path(root)
        self.base_url = base_url.rstrip("/")

    def _write(self, path: Path, data: bytes) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)

    async def store(self, data: bytes, folder: str, filename: Optional[str] = None) -> str:
        suffix = Path(filename).suffix.lower() if filename else ""
        name = f"{uuid.uuid4().hex}{suffix}"
        await asyncio.to_thread(self._write, self.root / folder / name, data)
        logger.debug("Stored %d bytes as %s/%s", len(data), folder, name)
        return f"{self.base_url}/{folder}/{name}"


_blob_store: Optional[BlobStore] = None


def get_blob_store() -> BlobStore:
    global _blob_store
    if _blob_store is None:
        _blob_store = LocalBlobStore(settings.UPLOAD_DIR, settings.UPLOAD_BASE_URL)
    return _blob_store
