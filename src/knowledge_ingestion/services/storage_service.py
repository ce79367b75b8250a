"""Blob storage for raw document bytes."""

import re
import uuid
from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone
from typing import Optional, Tuple

from azure.core.exceptions import AzureError, ResourceExistsError, ResourceNotFoundError
from azure.identity.aio import DefaultAzureCredential
from azure.storage.blob import BlobSasPermissions, generate_blob_sas
from azure.storage.blob.aio import BlobServiceClient

from knowledge_ingestion.config import get_settings
from knowledge_ingestion.utils.errors import StorageError
from knowledge_ingestion.utils.logging import get_logger

logger = get_logger("storage_service")
settings = get_settings()


def split_handle(handle: str) -> Tuple[str, str]:
    """Split a `container/blob_name` handle."""
    if "/" not in handle:
        raise StorageError(
            f"Invalid storage handle: {handle}. Expected 'container/blob_name'",
            details={"storage_handle": handle},
        )
    container, blob_name = handle.split("/", 1)
    return container, blob_name


def human_readable_size(num_bytes: Optional[int]) -> Optional[str]:
    if num_bytes is None:
        return None
    size = float(num_bytes)
    for unit in ("B", "KB", "MB", "GB"):
        if size < 1024 or unit == "GB":
            return f"{int(size)} {unit}" if unit == "B" else f"{size:.1f} {unit}"
        size /= 1024
    return None


class BlobStorage(ABC):
    """Opaque-handle byte store."""

    @abstractmethod
    async def store(
        self,
        data: bytes,
        filename: str,
        content_type: Optional[str] = None,
        tenant_id: Optional[str] = None,
    ) -> str:
        """Persist bytes under a fresh handle; two calls never share a handle."""

    @abstractmethod
    async def get(self, handle: str) -> bytes:
        ...

    @abstractmethod
    async def delete(self, handle: str) -> None:
        """Remove a blob. Deleting a missing blob is not an error."""

    @abstractmethod
    async def get_url(self, handle: str) -> Optional[str]:
        ...

    async def size(self, handle: str) -> Optional[int]:
        return None

    async def close(self) -> None:
        return None


class AzureBlobStorage(BlobStorage):
    """
    Azure Blob Storage backend.

    One container per tenant (`{STORAGE_CONTAINER_PREFIX}{tenant}`); every
    upload gets its own blob path so a duplicate upload can be released
    without touching the original.
    """

    def __init__(self, client: Optional[BlobServiceClient] = None):
        self._client = client
        self._known_containers: set = set()

    def _get_client(self) -> BlobServiceClient:
        if self._client is not None:
            return self._client

        try:
            if settings.storage.connection_string:
                self._client = BlobServiceClient.from_connection_string(
                    settings.storage.connection_string
                )
                logger.info("Created BlobServiceClient with connection string")
            elif settings.storage.account_name:
                account_url = f"https://{settings.storage.account_name}.blob.core.windows.net"
                credential = (
                    DefaultAzureCredential()
                    if settings.storage.use_managed_identity
                    else settings.storage.account_key
                )
                self._client = BlobServiceClient(account_url=account_url, credential=credential)
                logger.info(f"Created BlobServiceClient for account {settings.storage.account_name}")
            else:
                raise StorageError(
                    "Storage not configured. Set STORAGE_CONNECTION_STRING or STORAGE_ACCOUNT_NAME"
                )
            return self._client
        except StorageError:
            raise
        except Exception as e:
            logger.error(f"Failed to create BlobServiceClient: {e}", exc_info=True)
            raise StorageError(f"Failed to initialize storage client: {str(e)}") from e

    @staticmethod
    def container_name(tenant_id: Optional[str]) -> str:
        """Azure container names: 3-63 chars of lowercase letters, digits and hyphens."""
        slug = re.sub(r"[^a-z0-9-]+", "-", (tenant_id or "shared").lower()).strip("-")
        name = f"{settings.storage.container_prefix}{slug}".strip("-")
        name = re.sub(r"-{2,}", "-", name)[:63].rstrip("-")
        return name if len(name) >= 3 else f"{name}-docs"

    async def _ensure_container(self, container: str) -> None:
        if container in self._known_containers:
            return
        try:
            await self._get_client().create_container(container)
            logger.info(f"Created storage container: {container}")
        except ResourceExistsError:
            pass
        self._known_containers.add(container)

    async def store(
        self,
        data: bytes,
        filename: str,
        content_type: Optional[str] = None,
        tenant_id: Optional[str] = None,
    ) -> str:
        container = self.container_name(tenant_id)
        safe_name = re.sub(r"[\\/]+", "_", filename) or "upload"
        blob_name = f"{uuid.uuid4().hex}/{safe_name}"
        try:
            await self._ensure_container(container)
            blob_client = self._get_client().get_blob_client(container=container, blob=blob_name)
            await blob_client.upload_blob(data, overwrite=False, content_type=content_type)
        except AzureError as e:
            logger.error(f"Failed to upload blob {container}/{blob_name}: {e}")
            raise StorageError(f"Failed to store file: {str(e)}") from e

        handle = f"{container}/{blob_name}"
        logger.info(f"Stored blob: {handle}, size={len(data)} bytes")
        return handle

    async def get(self, handle: str) -> bytes:
        container, blob_name = split_handle(handle)
        try:
            blob_client = self._get_client().get_blob_client(container=container, blob=blob_name)
            stream = await blob_client.download_blob()
            return await stream.readall()
        except ResourceNotFoundError as e:
            raise StorageError(f"Blob not found: {handle}", details={"storage_handle": handle}) from e
        except AzureError as e:
            logger.error(f"Azure Storage error downloading {handle}: {e}", exc_info=True)
            raise StorageError(f"Failed to download file from storage: {str(e)}") from e

    async def delete(self, handle: str) -> None:
        container, blob_name = split_handle(handle)
        try:
            blob_client = self._get_client().get_blob_client(container=container, blob=blob_name)
            await blob_client.delete_blob()
            logger.info(f"Deleted blob: {handle}")
        except ResourceNotFoundError:
            logger.debug(f"Blob already gone: {handle}")
        except AzureError as e:
            raise StorageError(f"Failed to delete file: {str(e)}", details={"storage_handle": handle}) from e

    async def size(self, handle: str) -> Optional[int]:
        container, blob_name = split_handle(handle)
        try:
            blob_client = self._get_client().get_blob_client(container=container, blob=blob_name)
            props = await blob_client.get_blob_properties()
            return props.size
        except AzureError as e:
            logger.warning(f"Could not read blob properties for {handle}: {e}")
            return None

    async def get_url(self, handle: str) -> Optional[str]:
        """Signed read URL, or the bare blob URL when no account key is available."""
        container, blob_name = split_handle(handle)
        blob_client = self._get_client().get_blob_client(container=container, blob=blob_name)

        account_key = settings.storage.account_key
        if not account_key and settings.storage.connection_string:
            for part in settings.storage.connection_string.split(";"):
                if part.startswith("AccountKey="):
                    account_key = part.split("=", 1)[1]
                    break

        if not account_key:
            return blob_client.url

        sas_token = generate_blob_sas(
            account_name=blob_client.account_name,
            container_name=container,
            blob_name=blob_name,
            account_key=account_key,
            permission=BlobSasPermissions(read=True),
            expiry=datetime.now(timezone.utc) + timedelta(minutes=settings.storage.sas_expiry_minutes),
        )
        return f"{blob_client.url}?{sas_token}"

    async def close(self) -> None:
        if self._client:
            await self._client.close()
            self._client = None
            logger.info("Storage client closed")
