"""
Durable storage backends.

Contract: put(local_path, folder) -> uri, delete(uri).

- LocalArchiveStorage copies files into settings.archive_dir and serves
  them under settings.storage_public_url (development deployments)
- HttpObjectStorage uploads to an object-storage HTTP gateway
"""

import asyncio
import logging
import shutil
import uuid
from pathlib import Path
from typing import Protocol, runtime_checkable

import httpx

from vidforge.config import Settings
from vidforge.services.ai_clients.base import RETRY_DECORATOR

logger = logging.getLogger(__name__)


class StorageError(Exception):
    """Durable storage operation failed."""

    def __init__(self, message: str, cause: Exception | None = None):
        self.message = message
        self.cause = cause
        super().__init__(message)


@runtime_checkable
class StorageBackend(Protocol):
    """Durable object storage collaborator."""

    async def put(self, local_path: Path, folder: str) -> str:
        """Persist a local file and return its durable URI."""
        ...

    async def delete(self, uri: str) -> None:
        """Remove a previously stored object."""
        ...


def _object_name(local_path: Path) -> str:
    """Unique object name that keeps the original extension."""
    return f"{uuid.uuid4().hex[:12]}{local_path.suffix}"


class LocalArchiveStorage:
    """
    Filesystem-backed storage.

    Example:
        storage = LocalArchiveStorage(Path("/data/archive"), "http://host/files")
        uri = await storage.put(Path("/data/work/ab/03_gif.gif"), "outputs")
        # -> http://host/files/outputs/1f2e3d4c5b6a.gif
    """

    def __init__(self, root: Path, public_url: str):
        self.root = Path(root)
        self.public_url = public_url.rstrip("/")

    async def put(self, local_path: Path, folder: str) -> str:
        local_path = Path(local_path)
        if not local_path.exists():
            raise StorageError(f"Cannot store missing file: {local_path}")

        target = self.root / folder / _object_name(local_path)
        target.parent.mkdir(parents=True, exist_ok=True)
        try:
            await asyncio.to_thread(shutil.copy2, local_path, target)
        except OSError as e:
            raise StorageError(f"Copy to archive failed: {e}", e) from e

        uri = f"{self.public_url}/{folder}/{target.name}"
        logger.info(f"Stored {local_path.name} -> {uri}")
        return uri

    async def delete(self, uri: str) -> None:
        prefix = f"{self.public_url}/"
        if not uri.startswith(prefix):
            raise StorageError(f"URI not managed by this storage: {uri}")

        target = (self.root / uri[len(prefix):]).resolve()
        if not target.is_relative_to(self.root.resolve()):
            raise StorageError(f"URI escapes archive root: {uri}")
        target.unlink(missing_ok=True)
        logger.info(f"Deleted {uri}")


class HttpObjectStorage:
    """
    Object storage behind an HTTP gateway.

    Upload:  POST {base_url}/v1/objects/{folder}  (multipart "file") -> {"url": ...}
    Delete:  DELETE {base_url}/v1/objects?uri=...
    """

    def __init__(self, base_url: str, api_key: str | None = None, timeout: float = 300.0):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout
        headers = {"Authorization": f"Bearer {api_key}"} if api_key else {}
        self.http_client = httpx.AsyncClient(timeout=timeout, headers=headers)

    @classmethod
    def from_settings(cls, settings: Settings) -> "HttpObjectStorage":
        """Create HttpObjectStorage from application settings."""
        return cls(settings.storage_url, settings.storage_api_key)

    async def close(self) -> None:
        """Close the HTTP client."""
        await self.http_client.aclose()

    def _sync_upload(self, local_path: Path, folder: str) -> httpx.Response:
        """Streamed multipart upload; runs in a worker thread."""
        with httpx.Client(timeout=self.timeout, headers=self.http_client.headers) as client:
            with open(local_path, "rb") as f:
                return client.post(
                    f"{self.base_url}/v1/objects/{folder}",
                    files={"file": (_object_name(local_path), f, "application/octet-stream")},
                )

    @RETRY_DECORATOR
    async def _upload(self, local_path: Path, folder: str) -> httpx.Response:
        return await asyncio.to_thread(self._sync_upload, local_path, folder)

    async def put(self, local_path: Path, folder: str) -> str:
        local_path = Path(local_path)
        if not local_path.exists():
            raise StorageError(f"Cannot store missing file: {local_path}")

        try:
            response = await self._upload(local_path, folder)
            response.raise_for_status()
            uri = response.json()["url"]
        except (httpx.HTTPError, KeyError, ValueError) as e:
            logger.error(f"Upload of {local_path.name} failed: {e}")
            raise StorageError(f"Upload failed: {e}", e) from e

        logger.info(f"Uploaded {local_path.name} -> {uri}")
        return uri

    async def delete(self, uri: str) -> None:
        try:
            response = await self.http_client.delete(
                f"{self.base_url}/v1/objects", params={"uri": uri}
            )
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise StorageError(f"Delete failed: {e}", e) from e
        logger.info(f"Deleted {uri}")


def create_storage(settings: Settings) -> StorageBackend:
    """Build the storage backend selected by settings.storage_backend."""
    if settings.storage_backend == "http":
        return HttpObjectStorage.from_settings(settings)
    if settings.storage_backend == "local":
        return LocalArchiveStorage(settings.archive_dir, settings.storage_public_url)
    raise ValueError(f"Unknown storage backend: {settings.storage_backend}")
