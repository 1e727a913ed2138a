"""Async Dropbox client built on the (blocking) Dropbox SDK."""

import asyncio
import functools
import logging
from datetime import timezone
from typing import Any, Callable, List, Optional, TypeVar

from fsdeploy.clients.async_client import AsyncFileClient
from fsdeploy.exceptions import ClientConnectionError, MissingDependencyError
from fsdeploy.filesystem import FileSystemEntry
from fsdeploy.pagination import NOT_STARTED, Page, fetch_all
from fsdeploy.paths import join_path, to_dropbox_path
from fsdeploy.upload import BeforeUploadCallback, UploadCompletedCallback

try:
    import dropbox
    from dropbox.files import FileMetadata, FolderMetadata, WriteMode
    DROPBOX_AVAILABLE = True
except ImportError:
    DROPBOX_AVAILABLE = False

logger = logging.getLogger(__name__)

T = TypeVar("T")


class AsyncDropboxClient(AsyncFileClient):
    """Dropbox client; every SDK call runs in the default executor."""

    client_type = "dropbox"

    def __init__(
        self,
        access_token: Optional[str] = None,
        *,
        before_upload: Optional[BeforeUploadCallback] = None,
        upload_completed: Optional[UploadCompletedCallback] = None,
        name: Optional[str] = None,
    ) -> None:
        if not DROPBOX_AVAILABLE:
            raise MissingDependencyError(
                "dropbox is required for Dropbox support. "
                "Install with: pip install dropbox"
            )

        super().__init__(
            name=name,
            before_upload=before_upload,
            upload_completed=upload_completed,
        )

        self.access_token = (access_token or "").strip() or None
        self._dbx: Any = None

    def name(self) -> str:
        return self._name or "dropbox"

    def to_remote_path(self, path: str) -> str:
        return to_dropbox_path(path)

    async def _run(self, func: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, functools.partial(func, *args, **kwargs))

    async def _connect(self) -> None:
        try:
            self._dbx = dropbox.Dropbox(oauth2_access_token=self.access_token)
        except Exception as e:
            raise ClientConnectionError(f"Failed to create Dropbox client: {e}")

    async def _close(self) -> None:
        dbx, self._dbx = self._dbx, None
        if dbx is not None:
            await self._run(dbx.close)

    @property
    def dbx(self) -> Any:
        assert self._dbx is not None, "Client not connected"
        return self._dbx

    async def _delete_file(self, path: str) -> None:
        await self._run(self.dbx.files_delete_v2, to_dropbox_path(path))

    async def _download_file(self, path: str) -> bytes:
        _, response = await self._run(self.dbx.files_download, to_dropbox_path(path))
        try:
            return response.content
        finally:
            response.close()

    async def _put(self, remote_path: str, data: bytes, mode: Any) -> None:
        await self._run(
            self.dbx.files_upload,
            data,
            remote_path,
            mode=WriteMode.overwrite,
            autorename=False,
            mute=False,
        )

    async def _list_page(self, path: str, cursor: Any) -> Page[Any]:
        if cursor is NOT_STARTED:
            result = await self._run(
                self.dbx.files_list_folder,
                to_dropbox_path(path),
                recursive=False,
                include_media_info=True,
                include_mounted_folders=True,
            )
        else:
            result = await self._run(self.dbx.files_list_folder_continue, cursor)

        return Page(
            items=list(result.entries),
            next_cursor=result.cursor if result.has_more else None,
        )

    async def _list_directory(self, path: str) -> List[FileSystemEntry]:
        entries = await fetch_all(lambda cursor: self._list_page(path, cursor))

        result: List[FileSystemEntry] = []
        for entry in entries:
            if isinstance(entry, FileMetadata):
                modified_time = entry.server_modified
                if modified_time is not None and modified_time.tzinfo is None:
                    modified_time = modified_time.replace(tzinfo=timezone.utc)
                result.append(
                    FileSystemEntry.file(
                        name=entry.name,
                        path=path,
                        download=functools.partial(
                            self.download_file, join_path(path, entry.name)
                        ),
                        size=entry.size,
                        modified_time=modified_time,
                        internal_name=entry.id,
                    )
                )
            elif isinstance(entry, FolderMetadata):
                result.append(
                    FileSystemEntry.directory(
                        name=entry.name, path=path, internal_name=entry.id
                    )
                )
            else:
                result.append(FileSystemEntry.unknown(name=entry.name, path=path))

        return result
