"""Abstract base class for asynchronous file clients."""

import logging
from abc import abstractmethod, ABCMeta
from contextlib import AbstractAsyncContextManager
from enum import Enum, auto
from types import TracebackType
from typing import Any, List, Optional, Type
from typing_extensions import Self

from fsdeploy.directories import DirectoryEnsurer
from fsdeploy.exceptions import ClientDisposedError, ListingError
from fsdeploy.filesystem import FileSystemEntry, FileType
from fsdeploy.hooks import CommandHookPipeline
from fsdeploy.paths import join_path, normalize_path
from fsdeploy.upload import (
    BeforeUploadCallback,
    UploadCompletedCallback,
    UploadPipeline,
)
from fsdeploy.values import Value, ValuesProvider, ValueStore

logger = logging.getLogger(__name__)


class ClientState(Enum):
    UNCONNECTED = auto()
    CONNECTED = auto()
    DISPOSED = auto()


class AsyncFileClient(AbstractAsyncContextManager["AsyncFileClient"], metaclass=ABCMeta):
    """Abstract base class for all remote storage backends.

    Every public operation takes a path in any spelling and canonicalizes it
    first. Clients connect lazily on first use, or explicitly through
    :meth:`connect` or ``async with``. Once :meth:`dispose` has run the
    instance cannot be used again.

    Subclasses implement the ``_connect``/``_close`` pair and the raw backend
    operations; directory ensuring, command hooks and the upload sequence are
    wired in by setting :attr:`ensurer` and :attr:`hooks`.
    """

    client_type: str = ""

    def __init__(
        self,
        *,
        name: Optional[str] = None,
        before_upload: Optional[BeforeUploadCallback] = None,
        upload_completed: Optional[UploadCompletedCallback] = None,
        value_provider: Optional[ValuesProvider] = None,
    ) -> None:
        self._name = name
        self.before_upload = before_upload
        self.upload_completed = upload_completed
        self.value_provider = value_provider

        self.state = ClientState.UNCONNECTED
        self.store = ValueStore()
        self.ensurer: Optional[DirectoryEnsurer] = None
        self.hooks: Optional[CommandHookPipeline] = None

    @property
    def type(self) -> str:
        return self.client_type

    def name(self) -> str:
        """
        Name of the resource represented by the client.

        Returns:
            A string representing a human-readable name.
        """
        return self._name or self.type

    @property
    def is_connected(self) -> bool:
        return self.state == ClientState.CONNECTED

    @property
    def is_disposed(self) -> bool:
        return self.state == ClientState.DISPOSED

    @property
    def values(self) -> List[Value]:
        """Values captured on this connection (hook outputs, set_value)."""
        return self.store.values

    def set_value(self, name: str, value: Any) -> Self:
        self.store.set(name, value)
        return self

    def to_remote_path(self, path: str) -> str:
        """Backend spelling of a canonical path."""
        return normalize_path(path)

    def _check_not_disposed(self) -> None:
        if self.is_disposed:
            raise ClientDisposedError(f"Client '{self.name()}' has been disposed")

    async def connect(self) -> Self:
        """Open the connection; a no-op while already connected."""
        self._check_not_disposed()
        if self.is_connected:
            return self

        await self._connect()
        self.state = ClientState.CONNECTED

        if self.ensurer is not None:
            self.ensurer.reset()
        if self.hooks is not None:
            try:
                await self.hooks.run("connected")
            except Exception:
                # the session is unusable until the hooks have run once
                self.state = ClientState.UNCONNECTED
                try:
                    await self._close()
                except Exception:
                    logger.debug("error while closing '%s'", self.name(), exc_info=True)
                raise

        return self

    async def _ensure_connected(self) -> None:
        self._check_not_disposed()
        if not self.is_connected:
            await self.connect()

    async def dispose(self) -> None:
        """Release the connection; safe to call more than once."""
        if self.is_disposed:
            return

        try:
            if self.is_connected:
                await self._close()
        except Exception:
            logger.debug("error while disposing '%s'", self.name(), exc_info=True)
        finally:
            self.state = ClientState.DISPOSED
            self.store.clear()
            if self.ensurer is not None:
                self.ensurer.reset()

    async def __aenter__(self) -> Self:
        """Connect on entering the context."""
        return await self.connect()

    async def __aexit__(
        self,
        exc_type: Optional[Type[BaseException]],
        exc_val: Optional[BaseException],
        exc_tb: Optional[TracebackType],
    ) -> None:
        """Dispose on leaving the context."""
        await self.dispose()

    async def delete_file(self, path: str) -> bool:
        """
        Delete a file at the specified remote path.

        Connection and backend errors are logged and reported as False,
        never raised. A disposed client still raises ClientDisposedError.

        Returns:
            True if the file was successfully deleted, False otherwise
        """
        self._check_not_disposed()
        path = normalize_path(path)
        try:
            await self._ensure_connected()
            await self._delete_file(path)
            return True
        except Exception:
            logger.debug("could not delete '%s' on '%s'", path, self.name(), exc_info=True)
            return False

    async def download_file(self, path: str) -> bytes:
        """Download a remote file and return its content."""
        await self._ensure_connected()
        return await self._download_file(normalize_path(path))

    async def upload_file(self, path: str, data: bytes) -> bool:
        """Write ``data`` to a remote file, creating its directory if needed.

        Returns:
            False if the ``before_upload`` callback vetoed the upload
        """
        await self._ensure_connected()
        pipeline = UploadPipeline(
            self._put,
            to_remote=self.to_remote_path,
            ensurer=self.ensurer,
            hooks=self.hooks,
            before_upload=self.before_upload,
            upload_completed=self.upload_completed,
            resolve_mode=self._resolve_mode,
            apply_mode=self._apply_mode,
            connection=self,
        )
        return await pipeline.upload(path, data)

    async def list_directory(self, path: str = "") -> List[FileSystemEntry]:
        """
        List files and directories at the specified remote path.

        Only one level is listed. Entries the backend reports as neither a
        file nor a directory are kept with type UNKNOWN.
        """
        await self._ensure_connected()
        path = normalize_path(path)
        try:
            return await self._list_directory(path)
        except ListingError:
            raise
        except Exception as e:
            raise ListingError(f"Failed to list directory '{path}': {e}") from e

    async def remove_folder(self, path: str) -> bool:
        """
        Remove a folder with all its content. The root is never removed.

        Returns:
            True if the folder has been removed, False otherwise
        """
        await self._ensure_connected()
        path = normalize_path(path)
        if path == "":
            return False

        try:
            return await self._remove_folder(path)
        except Exception:
            logger.debug("could not remove folder '%s'", path, exc_info=True)
            return False

    async def _remove_folder(self, path: str) -> bool:
        entries = await self.list_directory(path)
        if any(e.filetype == FileType.UNKNOWN for e in entries):
            return False

        for entry in entries:
            if entry.is_directory:
                if not await self.remove_folder(join_path(path, entry.name)):
                    return False

        for entry in entries:
            if entry.is_file:
                await self.delete_file(join_path(path, entry.name))

        return True

    def _resolve_mode(self, remote_path: str) -> Any:
        return None

    async def _apply_mode(self, remote_path: str, mode: Any) -> None:
        pass

    @abstractmethod
    async def _connect(self) -> None:
        """Open the backend connection, raising ClientConnectionError."""

    @abstractmethod
    async def _close(self) -> None:
        """Close the backend connection."""

    @abstractmethod
    async def _delete_file(self, path: str) -> None:
        """Delete a file given its canonical path."""

    @abstractmethod
    async def _download_file(self, path: str) -> bytes:
        """Read a file given its canonical path."""

    @abstractmethod
    async def _put(self, remote_path: str, data: bytes, mode: Any) -> None:
        """Write a file given its backend path and resolved mode/ACL."""

    @abstractmethod
    async def _list_directory(self, path: str) -> List[FileSystemEntry]:
        """List one level below a canonical path."""
