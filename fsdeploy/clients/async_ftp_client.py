"""Async FTP/FTPS client implementation using aioftp."""

import logging
import ssl
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from fsdeploy.clients.async_client import AsyncFileClient
from fsdeploy.directories import DirectoryEnsurer
from fsdeploy.exceptions import (
    AuthenticationError,
    ClientConnectionError,
    MissingDependencyError,
    TransferError,
)
from fsdeploy.filesystem import FileSystemEntry
from fsdeploy.hooks import CommandHookPipeline, CommandSettings, values_for_file
from fsdeploy.paths import join_path, to_ftp_path
from fsdeploy.upload import BeforeUploadCallback, UploadCompletedCallback
from fsdeploy.values import ValuesProvider

try:
    import aioftp
    AIOFTP_AVAILABLE = True
except ImportError:
    AIOFTP_AVAILABLE = False

logger = logging.getLogger(__name__)

DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 21
DEFAULT_USER = "anonymous"
DEFAULT_ENCODING = "latin-1"


def _parse_modify(value: Any) -> Optional[datetime]:
    if isinstance(value, datetime):
        return value
    if not value:
        return None
    try:
        return datetime.strptime(str(value)[:14], "%Y%m%d%H%M%S").replace(
            tzinfo=timezone.utc
        )
    except (ValueError, TypeError):
        return None


class AsyncFtpClient(AsyncFileClient):
    """Async FTP/FTPS client using the aioftp library.

    Hook commands are sent as raw FTP commands; their output is the reply
    code followed by the reply lines.
    """

    client_type = "ftp"

    def __init__(
        self,
        host: Optional[str] = None,
        *,
        port: Optional[int] = None,
        user: Optional[str] = None,
        password: Optional[str] = None,
        tls: bool = False,
        commands: Any = None,
        supports_deep_directory_creation: bool = True,
        before_upload: Optional[BeforeUploadCallback] = None,
        upload_completed: Optional[UploadCompletedCallback] = None,
        value_provider: Optional[ValuesProvider] = None,
        name: Optional[str] = None,
    ) -> None:
        """
        Initialize the async FTP client. Nothing is sent until it connects.

        Args:
            host: The hostname or IP address of the FTP server (default: 127.0.0.1)
            port: The port number (default: 21)
            user: Username for authentication (default: anonymous)
            password: Password for authentication
            tls: Whether to use FTPS/TLS
            commands: Hook commands, a CommandSettings or its table form
            supports_deep_directory_creation: Whether the server creates missing
                parents on MKD
            name: Human-readable name for this client
        """
        if not AIOFTP_AVAILABLE:
            raise MissingDependencyError(
                "aioftp is required for FTP support. "
                "Install with: pip install aioftp"
            )

        super().__init__(
            name=name,
            before_upload=before_upload,
            upload_completed=upload_completed,
            value_provider=value_provider,
        )

        self._options: Dict[str, Any] = dict(
            host=host,
            port=port,
            user=user,
            password=password,
            tls=tls,
            commands=commands,
            supports_deep_directory_creation=supports_deep_directory_creation,
            value_provider=value_provider,
            name=name,
        )

        self.host = (host or "").strip() or DEFAULT_HOST
        self.port = int(port) if port else DEFAULT_PORT
        self.user = (user or "").strip() or DEFAULT_USER
        self.password = password or ""
        self.tls = tls

        self._client: Optional["aioftp.Client"] = None

        self.ensurer = DirectoryEnsurer(
            self._probe_directory,
            self._make_directory,
            supports_deep_creation=supports_deep_directory_creation,
        )
        self.hooks = CommandHookPipeline(
            CommandSettings.from_dict(commands),
            self.execute,
            store=self.store,
            value_provider=value_provider,
            default_encoding=DEFAULT_ENCODING,
        )

    def name(self) -> str:
        return self._name or f"ftp://{self.host}:{self.port}"

    def to_remote_path(self, path: str) -> str:
        return to_ftp_path(path)

    async def _connect(self) -> None:
        try:
            if self.tls:
                self._client = aioftp.Client(ssl=ssl.create_default_context())
            else:
                self._client = aioftp.Client()

            await self._client.connect(self.host, self.port)
            await self._client.login(self.user, self.password)

        except aioftp.StatusCodeError as e:
            self._client = None
            error_str = str(e)
            if "530" in error_str:
                raise AuthenticationError(f"Authentication failed: {error_str}")
            raise ClientConnectionError(f"FTP error: {error_str}")
        except OSError as e:
            self._client = None
            raise ClientConnectionError(f"Failed to connect to {self.host}: {e}")
        except Exception as e:
            self._client = None
            raise ClientConnectionError(f"FTP connection error: {e}")

    async def _close(self) -> None:
        client, self._client = self._client, None
        if client is not None:
            await client.quit()

    @property
    def client(self) -> "aioftp.Client":
        assert self._client is not None, "Client not connected"
        return self._client

    async def execute(self, command: str) -> bytes:
        """Send a raw command and return its reply."""
        await self._ensure_connected()
        code, info = await self.client.command(
            command, expected_codes=("2xx", "3xx"), wait_codes=("1xx",)
        )
        reply = " ".join([str(code)] + [str(line).strip() for line in info])
        return reply.encode(self.hooks.encoding, errors="replace")

    async def _probe_directory(self, path: str) -> None:
        await self.client.list(to_ftp_path(path))

    async def _make_directory(self, path: str) -> None:
        await self.client.make_directory(
            to_ftp_path(path), parents=self.ensurer.supports_deep_creation
        )

    async def _delete_file(self, path: str) -> None:
        remote = to_ftp_path(path)
        file_values = values_for_file(remote)

        await self.hooks.run("before_delete", file_values)
        await self.client.remove_file(remote)
        await self.hooks.run("deleted", file_values)

    async def _download_file(self, path: str) -> bytes:
        remote = to_ftp_path(path)
        file_values = values_for_file(remote)

        await self.hooks.run("before_download", file_values)

        chunks = []
        try:
            async with self.client.download_stream(remote) as stream:
                async for block in stream.iter_by_block():
                    chunks.append(block)
        except aioftp.StatusCodeError as e:
            raise TransferError(f"Download of '{remote}' failed: {e}") from e

        await self.hooks.run("downloaded", file_values)
        return b"".join(chunks)

    async def _put(self, remote_path: str, data: bytes, mode: Any) -> None:
        async with self.client.upload_stream(remote_path) as stream:
            await stream.write(data)

    async def _list_directory(self, path: str) -> List[FileSystemEntry]:
        result: List[FileSystemEntry] = []

        for entry_path, info in await self.client.list(to_ftp_path(path)):
            name = entry_path.name
            if name in ("", ".", ".."):
                continue

            kind = info.get("type")
            modified_time = _parse_modify(info.get("modify"))

            if kind == "dir":
                result.append(
                    FileSystemEntry.directory(
                        name=name, path=path, modified_time=modified_time
                    )
                )
            elif kind == "file":
                size = info.get("size")
                result.append(
                    FileSystemEntry.file(
                        name=name,
                        path=path,
                        download=self._downloader(join_path(path, name)),
                        size=int(size) if size is not None else None,
                        modified_time=modified_time,
                    )
                )
            else:
                result.append(
                    FileSystemEntry.unknown(
                        name=name, path=path, modified_time=modified_time
                    )
                )

        return result

    def _downloader(self, path: str):
        options = dict(self._options)

        async def download() -> bytes:
            client = AsyncFtpClient(**options)
            try:
                await client.connect()
                return await client.download_file(path)
            finally:
                await client.dispose()

        return download

    async def _remove_folder(self, path: str) -> bool:
        await self.client.remove(to_ftp_path(path))
        return True
