"""
Blob storage for complaint images, voice notes and resolution proofs.

``BaseBlobStore`` is the collaborator interface the lifecycle manager
depends on; ``LocalBlobStore`` writes files under a directory that the
service exposes as static files.
"""

import logging
import os
import uuid
from dataclasses import dataclass
from typing import Optional

import aiofiles
import aiofiles.os

from libs.config import config

logger = logging.getLogger(__name__)

_EXTENSIONS = {
    "image/jpeg": ".jpg",
    "image/png": ".png",
    "image/gif": ".gif",
    "image/webp": ".webp",
    "audio/mpeg": ".mp3",
    "audio/mp4": ".m4a",
    "audio/ogg": ".ogg",
    "audio/wav": ".wav",
    "audio/webm": ".webm",
    "video/webm": ".webm",
}


class BlobStoreError(Exception):
    """Raised when an upload or delete cannot be completed."""


@dataclass
class UploadedFile:
    """A file received from a client, fully read into memory."""

    filename: Optional[str]
    content_type: Optional[str]
    data: bytes

    @property
    def size(self) -> int:
        return len(self.data)


class BaseBlobStore:
    """Base class for blob store backends"""

    async def upload(
        self,
        data: bytes,
        folder: str,
        *,
        filename: Optional[str] = None,
        content_type: Optional[str] = None,
    ) -> str:
        """
        Store bytes under a folder.

        Returns:
            Public URL of the stored object

        Raises:
            BlobStoreError: If the object could not be stored
        """
        raise NotImplementedError("Blob store must implement upload()")

    async def delete(self, url: str) -> None:
        """Remove an object previously returned by upload()."""
        raise NotImplementedError("Blob store must implement delete()")


class LocalBlobStore(BaseBlobStore):
    """Stores blobs on the local filesystem, served under a public base URL."""

    def __init__(self, root_dir: str, public_base_url: str):
        self.root_dir = root_dir
        self.public_base_url = public_base_url.rstrip("/")

    def _object_name(self, filename: Optional[str], content_type: Optional[str]) -> str:
        ext = os.path.splitext(filename or "")[1].lower()
        if not ext:
            ext = _EXTENSIONS.get(content_type or "", "")
        return f"{uuid.uuid4().hex}{ext}"

    def _path_for(self, url: str) -> str:
        prefix = f"{self.public_base_url}/"
        if not url.startswith(prefix):
            raise BlobStoreError(f"URL is not managed by this store: {url}")
        relative = url[len(prefix):]
        path = os.path.normpath(os.path.join(self.root_dir, relative))
        if not path.startswith(os.path.normpath(self.root_dir) + os.sep):
            raise BlobStoreError(f"URL escapes the storage directory: {url}")
        return path

    async def upload(
        self,
        data: bytes,
        folder: str,
        *,
        filename: Optional[str] = None,
        content_type: Optional[str] = None,
    ) -> str:
        folder = folder.strip("/")
        name = self._object_name(filename, content_type)
        directory = os.path.join(self.root_dir, folder)
        try:
            await aiofiles.os.makedirs(directory, exist_ok=True)
            async with aiofiles.open(os.path.join(directory, name), "wb") as out_file:
                await out_file.write(data)
        except OSError as e:
            raise BlobStoreError(f"Failed to save file: {e}") from e

        url = f"{self.public_base_url}/{folder}/{name}"
        logger.info("Stored blob %s (%d bytes)", url, len(data))
        return url

    async def delete(self, url: str) -> None:
        path = self._path_for(url)
        try:
            await aiofiles.os.remove(path)
        except FileNotFoundError:
            logger.warning("Blob already gone: %s", url)
        except OSError as e:
            raise BlobStoreError(f"Failed to delete file: {e}") from e


_blob_store: Optional[BaseBlobStore] = None


def get_blob_store() -> BaseBlobStore:
    """
    Get or create the process-wide blob store.

    Returns:
        LocalBlobStore configured from BLOB_STORAGE_DIR / BLOB_PUBLIC_BASE_URL
    """
    global _blob_store
    if _blob_store is None:
        _blob_store = LocalBlobStore(config.BLOB_STORAGE_DIR, config.BLOB_PUBLIC_BASE_URL)
    return _blob_store
