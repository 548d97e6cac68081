"""
Object storage for movie assets (full files and thumbnails).

Two backends share the same contract:
- LocalObjectStorage writes under a directory that main.py serves as static files.
- AzureBlobObjectStorage talks to an Azure Blob container with the aio SDK.

put() reports advisory progress per chunk. The access URL is resolved by a
separate get_download_url() round trip, which fails loudly for missing objects.
"""
import asyncio
import logging
import os
from typing import BinaryIO, Callable, Optional
from urllib.parse import quote

from azure.core.exceptions import AzureError, ResourceExistsError, ResourceNotFoundError
from azure.storage.blob import ContentSettings
from azure.storage.blob.aio import BlobServiceClient
from pydantic import BaseModel

from movieshare.config import settings
from movieshare.errors import AssetNotFoundError, StorageError

logger = logging.getLogger("storage")

CHUNK_SIZE = 1024 * 1024


class ProgressEvent(BaseModel):
    bytes_transferred: int
    total_bytes: int

    @property
    def percent(self) -> float:
        if not self.total_bytes:
            return 100.0
        return self.bytes_transferred / self.total_bytes * 100


class StoredObject(BaseModel):
    path: str
    size: int
    content_type: Optional[str] = None


ProgressCallback = Callable[[ProgressEvent], None]


class ObjectStorage:
    """Interface every storage backend implements."""

    async def put(
        self,
        path: str,
        stream: BinaryIO,
        size: int,
        content_type: Optional[str] = None,
        on_progress: Optional[ProgressCallback] = None,
    ) -> StoredObject:
        raise NotImplementedError

    async def get_download_url(self, path: str) -> str:
        raise NotImplementedError

    async def delete(self, path: str) -> None:
        raise NotImplementedError


class LocalObjectStorage(ObjectStorage):
    def __init__(self, root_dir: str, public_base_url: str = "/files"):
        self.root_dir = os.path.abspath(root_dir)
        self.public_base_url = public_base_url.rstrip("/")
        os.makedirs(self.root_dir, exist_ok=True)

    def _local_path(self, path: str) -> str:
        full_path = os.path.abspath(os.path.join(self.root_dir, path.lstrip("/")))
        if not full_path.startswith(self.root_dir + os.sep):
            raise StorageError(f"Invalid storage path: {path}")
        return full_path

    async def put(self, path, stream, size, content_type=None, on_progress=None):
        local_path = self._local_path(path)
        transferred = 0
        try:
            os.makedirs(os.path.dirname(local_path), exist_ok=True)
            with open(local_path, "wb") as out:
                while True:
                    chunk = await asyncio.to_thread(stream.read, CHUNK_SIZE)
                    if not chunk:
                        break
                    await asyncio.to_thread(out.write, chunk)
                    transferred += len(chunk)
                    if on_progress:
                        on_progress(ProgressEvent(bytes_transferred=transferred, total_bytes=size))
        except OSError as e:
            logger.error(f"Local upload to {path} failed: {e}")
            raise StorageError(f"Upload failed: {e}") from e

        logger.info(f"Stored {transferred} bytes at {path}")
        return StoredObject(path=path, size=transferred, content_type=content_type)

    async def get_download_url(self, path: str) -> str:
        if not os.path.isfile(self._local_path(path)):
            raise AssetNotFoundError(path)
        return f"{self.public_base_url}/{quote(path.lstrip('/'))}"

    async def delete(self, path: str) -> None:
        local_path = self._local_path(path)
        try:
            os.remove(local_path)
            logger.info(f"Deleted local object {path}")
        except FileNotFoundError:
            pass
        except OSError as e:
            raise StorageError(f"Delete failed: {e}") from e


class AzureBlobObjectStorage(ObjectStorage):
    def __init__(self, connection_string: str, container_name: str):
        self.connection_string = connection_string
        self.container_name = container_name
        self._container_checked = False

    def _service(self) -> BlobServiceClient:
        return BlobServiceClient.from_connection_string(self.connection_string)

    async def _ensure_container_exists(self, service: BlobServiceClient):
        if self._container_checked:
            return
        container = service.get_container_client(self.container_name)
        try:
            await container.create_container()
            logger.info(f"Created container: {self.container_name}")
        except ResourceExistsError:
            pass
        self._container_checked = True

    async def put(self, path, stream, size, content_type=None, on_progress=None):
        async def progress_hook(current: int, total: Optional[int]):
            if on_progress:
                on_progress(ProgressEvent(bytes_transferred=current, total_bytes=total or size))

        try:
            async with self._service() as service:
                await self._ensure_container_exists(service)
                blob = service.get_blob_client(container=self.container_name, blob=path)
                await blob.upload_blob(
                    stream,
                    length=size,
                    overwrite=True,
                    content_settings=ContentSettings(content_type=content_type) if content_type else None,
                    progress_hook=progress_hook,
                )
        except AzureError as e:
            logger.error(f"Azure upload to {path} failed: {e}")
            raise StorageError(f"Azure upload failed: {e}") from e

        logger.info(f"Uploaded to Azure: {path}")
        return StoredObject(path=path, size=size, content_type=content_type)

    async def get_download_url(self, path: str) -> str:
        try:
            async with self._service() as service:
                blob = service.get_blob_client(container=self.container_name, blob=path)
                await blob.get_blob_properties()
                return blob.url
        except ResourceNotFoundError as e:
            raise AssetNotFoundError(path) from e
        except AzureError as e:
            raise StorageError(f"Could not resolve URL for {path}: {e}") from e

    async def delete(self, path: str) -> None:
        try:
            async with self._service() as service:
                blob = service.get_blob_client(container=self.container_name, blob=path)
                await blob.delete_blob()
                logger.info(f"Deleted from Azure: {path}")
        except ResourceNotFoundError:
            pass
        except AzureError as e:
            raise StorageError(f"Azure deletion failed: {e}") from e


_storage: Optional[ObjectStorage] = None


def get_object_storage() -> ObjectStorage:
    """Return the configured storage backend (one instance per process)."""
    global _storage
    if _storage is not None:
        return _storage

    if settings.STORAGE_BACKEND == "azure":
        if not settings.AZURE_STORAGE_CONNECTION_STRING:
            raise StorageError("AZURE_STORAGE_CONNECTION_STRING is required for the azure storage backend")
        _storage = AzureBlobObjectStorage(
            settings.AZURE_STORAGE_CONNECTION_STRING,
            settings.AZURE_STORAGE_CONTAINER_NAME,
        )
    else:
        _storage = LocalObjectStorage(settings.STORAGE_LOCAL_DIR, settings.STORAGE_PUBLIC_BASE_URL)

    logger.info(f"Object storage backend: {settings.STORAGE_BACKEND}")
    return _storage
