"""Async Azure Blob Storage client implementation."""

import hashlib
import logging
import mimetypes
from typing import Any, List, Optional

import aiofiles

from fsdeploy.clients.async_client import AsyncFileClient
from fsdeploy.exceptions import ClientConnectionError, MissingDependencyError
from fsdeploy.filesystem import FileSystemEntry
from fsdeploy.listing import ObjectInfo, reconcile_listing
from fsdeploy.pagination import NOT_STARTED, Page, fetch_all
from fsdeploy.paths import to_azure_path
from fsdeploy.tempfiles import read_file, with_temp_file
from fsdeploy.upload import BeforeUploadCallback, UploadCompletedCallback

try:
    from azure.storage.blob import ContentSettings
    from azure.storage.blob.aio import BlobServiceClient
    from azure.identity.aio import DefaultAzureCredential
    AZURE_BLOB_AVAILABLE = True
except ImportError:
    AZURE_BLOB_AVAILABLE = False

logger = logging.getLogger(__name__)

DEFAULT_CONTAINER = "fsdeploy"
DEFAULT_CONTENT_TYPE = "application/octet-stream"

# well-known Azurite/emulator account
DEVELOPMENT_STORAGE_CONNECTION_STRING = (
    "DefaultEndpointsProtocol=http;"
    "AccountName=devstoreaccount1;"
    "AccountKey=Eby8vdM02xNOcqFlqUwJPLlmEtlCDXJ1OUzFT50uSRZ6IFsuFq2UVErCz4I6tq/K1SZFPTOtr/KBHBeksoGMGw==;"
    "BlobEndpoint=http://127.0.0.1:10000/devstoreaccount1;"
)


class AsyncAzureBlobClient(AsyncFileClient):
    """Async Azure Blob Storage client.

    Uses the Azure SDK's native async support. Blob names are the canonical
    paths, so like S3 there are no directories to create.
    """

    client_type = "blob"

    def __init__(
        self,
        account: Optional[str] = None,
        *,
        access_key: Optional[str] = None,
        container: Optional[str] = None,
        host: Optional[str] = None,
        connection_string: Optional[str] = None,
        use_development_storage: bool = False,
        hash_content: bool = False,
        credential: Optional[Any] = None,
        before_upload: Optional[BeforeUploadCallback] = None,
        upload_completed: Optional[UploadCompletedCallback] = None,
        name: Optional[str] = None,
    ) -> None:
        """
        Initialize the async Azure Blob Storage client.

        Args:
            account: Name of the storage account
            access_key: Account key; without it DefaultAzureCredential is used
            container: Name of the container to use
            host: Custom blob endpoint host or URL
            connection_string: Optional connection string for authentication
            use_development_storage: Whether to use the local storage emulator
            hash_content: Whether to send the MD5 hash of uploaded content
            credential: Optional credential for authentication
            name: Human-readable name for this client
        """
        if not AZURE_BLOB_AVAILABLE:
            raise MissingDependencyError(
                "azure-storage-blob is required for Azure Blob support. "
                "Install with: pip install azure-storage-blob azure-identity"
            )

        super().__init__(
            name=name,
            before_upload=before_upload,
            upload_completed=upload_completed,
        )

        self.account = (account or "").strip()
        self.access_key = (access_key or "").strip() or None
        self.container = (container or "").strip().lower() or DEFAULT_CONTAINER
        self.host = (host or "").strip().lower() or None
        self.connection_string = connection_string
        self.use_development_storage = use_development_storage
        self.hash_content = hash_content
        self._credential = credential

        self._service_client: Any = None
        self._container_client: Any = None
        self._owns_credential = False

    def name(self) -> str:
        return self._name or f"blob://{self.account or 'devstoreaccount1'}/{self.container}"

    def to_remote_path(self, path: str) -> str:
        return to_azure_path(path)

    @property
    def account_url(self) -> str:
        if self.host:
            if "://" in self.host:
                return self.host
            return f"https://{self.host}"
        return f"https://{self.account}.blob.core.windows.net"

    async def _connect(self) -> None:
        try:
            if self.use_development_storage:
                self._service_client = BlobServiceClient.from_connection_string(
                    conn_str=DEVELOPMENT_STORAGE_CONNECTION_STRING,
                )
            elif self.connection_string:
                self._service_client = BlobServiceClient.from_connection_string(
                    conn_str=self.connection_string,
                )
            elif self.access_key:
                self._service_client = BlobServiceClient(
                    account_url=self.account_url,
                    credential={
                        "account_name": self.account,
                        "account_key": self.access_key,
                    },
                )
            else:
                if not self._credential:
                    self._credential = DefaultAzureCredential()
                    self._owns_credential = True
                self._service_client = BlobServiceClient(
                    account_url=self.account_url,
                    credential=self._credential,
                )

            self._container_client = self._service_client.get_container_client(
                container=self.container
            )
        except Exception as e:
            await self._close()
            raise ClientConnectionError(f"Failed to create Azure Blob client: {e}")

    async def _close(self) -> None:
        service, self._service_client = self._service_client, None
        self._container_client = None
        try:
            if service is not None:
                await service.close()
        finally:
            if self._owns_credential and self._credential:
                credential, self._credential = self._credential, None
                self._owns_credential = False
                await credential.close()

    @property
    def container_client(self) -> Any:
        assert self._container_client is not None, "Client not connected"
        return self._container_client

    async def _delete_file(self, path: str) -> None:
        await self.container_client.delete_blob(to_azure_path(path))

    async def _download_file(self, path: str) -> bytes:
        downloader = await self.container_client.download_blob(to_azure_path(path))

        async def fetch(local: str) -> bytes:
            async with aiofiles.open(local, "wb") as local_file:
                async for chunk in downloader.chunks():
                    await local_file.write(chunk)
            return await read_file(local)

        return await with_temp_file(fetch)

    async def _put(self, remote_path: str, data: bytes, mode: Any) -> None:
        content_type, _ = mimetypes.guess_type(remote_path)

        content_md5 = None
        if self.hash_content:
            content_md5 = bytearray(hashlib.md5(data).digest())

        await self.container_client.upload_blob(
            name=remote_path,
            data=data,
            overwrite=True,
            content_settings=ContentSettings(
                content_type=content_type or DEFAULT_CONTENT_TYPE,
                content_md5=content_md5,
            ),
        )

    async def _list_page(self, prefix: str, cursor: Any) -> Page[ObjectInfo]:
        token = None if cursor is NOT_STARTED else cursor
        pages = self.container_client.list_blobs(name_starts_with=prefix).by_page(
            continuation_token=token
        )

        try:
            page = await pages.__anext__()
        except StopAsyncIteration:
            return Page(items=[], next_cursor=None)

        items = [
            ObjectInfo(key=blob.name, size=blob.size, last_modified=blob.last_modified)
            async for blob in page
        ]
        return Page(items=items, next_cursor=pages.continuation_token)

    async def _list_directory(self, path: str) -> List[FileSystemEntry]:
        prefix = to_azure_path(path)
        key_prefix = prefix + "/" if prefix else ""

        blobs = await fetch_all(lambda cursor: self._list_page(key_prefix, cursor))
        return reconcile_listing(blobs, prefix, self.download_file)
