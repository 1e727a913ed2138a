"""Async SFTP client implementation using asyncssh."""

import hashlib
import logging
import stat
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence, Union

from fsdeploy.clients.async_client import AsyncFileClient
from fsdeploy.directories import DirectoryEnsurer
from fsdeploy.exceptions import (
    AuthenticationError,
    ClientConnectionError,
    CommandHookError,
    MissingDependencyError,
)
from fsdeploy.filesystem import FileSystemEntry
from fsdeploy.hooks import CommandHookPipeline, CommandSettings, values_for_file
from fsdeploy.modes import FileModeResolver
from fsdeploy.paths import join_path, to_sftp_path
from fsdeploy.tempfiles import read_file, with_temp_file
from fsdeploy.upload import BeforeUploadCallback, UploadCompletedCallback
from fsdeploy.values import ValuesProvider

try:
    import asyncssh
    ASYNCSSH_AVAILABLE = True
except ImportError:
    ASYNCSSH_AVAILABLE = False

logger = logging.getLogger(__name__)

DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 22
DEFAULT_HASH_ALGORITHM = "md5"
DEFAULT_READY_TIMEOUT = 20000
DEFAULT_ENCODING = "utf-8"


def _normalize_hashes(hashes: Union[str, Sequence[str], None]) -> List[str]:
    if hashes is None:
        return []
    if isinstance(hashes, str):
        hashes = [hashes]
    result = []
    for h in hashes:
        h = str(h).strip().lower()
        if h:
            result.append(h)
    return result


def host_key_hash(key_data: bytes, algorithm: str) -> str:
    """Hex digest of the server's public key blob."""
    return hashlib.new(algorithm, key_data).hexdigest().lower()


class AsyncSftpClient(AsyncFileClient):
    """Async SFTP client using the asyncssh library.

    Hook commands run through an SSH exec channel on the same connection.
    Uploaded files can get a permission mode chosen by glob pattern.
    """

    client_type = "sftp"

    def __init__(
        self,
        host: Optional[str] = None,
        *,
        port: Optional[int] = None,
        user: Optional[str] = None,
        password: Optional[str] = None,
        private_key: Optional[str] = None,
        private_key_passphrase: Optional[str] = None,
        agent: Optional[str] = None,
        agent_forward: bool = False,
        hash_algorithm: Optional[str] = None,
        hashes: Union[str, Sequence[str], None] = None,
        ready_timeout: Optional[int] = None,
        try_keyboard: bool = False,
        debug: bool = False,
        modes: Any = None,
        commands: Any = None,
        supports_deep_directory_creation: bool = False,
        before_upload: Optional[BeforeUploadCallback] = None,
        upload_completed: Optional[UploadCompletedCallback] = None,
        value_provider: Optional[ValuesProvider] = None,
        name: Optional[str] = None,
    ) -> None:
        """
        Initialize the async SFTP client. Nothing is sent until it connects.

        Args:
            host: The hostname or IP address of the SFTP server (default: 127.0.0.1)
            port: The port number (default: 22)
            user: Username for authentication
            password: Password for authentication
            private_key: Path to the private key file for authentication
            private_key_passphrase: Passphrase of the private key
            agent: Path of the ssh-agent socket
            agent_forward: Whether to forward the agent
            hash_algorithm: Hash used to verify the host key (default: md5)
            hashes: Accepted host key hashes; any key is accepted when empty
            ready_timeout: Handshake timeout in milliseconds (default: 20000)
            try_keyboard: Whether to answer keyboard-interactive prompts with
                the password
            debug: Whether to log the SSH protocol at debug level
            modes: A single mode or a mapping of glob pattern to mode
            name: Human-readable name for this client
        """
        if not ASYNCSSH_AVAILABLE:
            raise MissingDependencyError(
                "asyncssh is required for SFTP support. "
                "Install with: pip install asyncssh"
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
            private_key=private_key,
            private_key_passphrase=private_key_passphrase,
            agent=agent,
            agent_forward=agent_forward,
            hash_algorithm=hash_algorithm,
            hashes=hashes,
            ready_timeout=ready_timeout,
            try_keyboard=try_keyboard,
            debug=debug,
            modes=modes,
            commands=commands,
            supports_deep_directory_creation=supports_deep_directory_creation,
            value_provider=value_provider,
            name=name,
        )

        self.host = (host or "").strip().lower() or DEFAULT_HOST
        self.port = int(port) if port else DEFAULT_PORT
        self.user = user or None
        self.password = password or None
        self.private_key = (private_key or "").strip() or None
        self.private_key_passphrase = private_key_passphrase or None
        self.agent = (agent or "").strip() or None
        self.agent_forward = agent_forward
        self.hash_algorithm = (hash_algorithm or "").strip().lower() or DEFAULT_HASH_ALGORITHM
        self.hashes = _normalize_hashes(hashes)
        self.ready_timeout = int(ready_timeout) if ready_timeout else DEFAULT_READY_TIMEOUT
        self.try_keyboard = try_keyboard
        self.debug = debug
        self.modes = FileModeResolver(modes)

        self._conn: Any = None  # asyncssh.SSHClientConnection
        self._sftp: Any = None  # asyncssh.SFTPClient

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
        return self._name or f"sftp://{self.host}:{self.port}"

    def to_remote_path(self, path: str) -> str:
        return to_sftp_path(path)

    async def _connect_kwargs(self) -> Dict[str, Any]:
        connect_kwargs: Dict[str, Any] = {
            "host": self.host,
            "port": self.port,
            "known_hosts": None,
            "login_timeout": self.ready_timeout / 1000.0,
            "agent_forwarding": self.agent_forward,
            "kbdint_auth": self.try_keyboard,
        }

        if self.user:
            connect_kwargs["username"] = self.user

        if self.password:
            connect_kwargs["password"] = self.password

        if self.agent:
            connect_kwargs["agent_path"] = self.agent

        if self.private_key:
            key_data = await read_file(self.private_key)
            connect_kwargs["client_keys"] = [
                asyncssh.import_private_key(key_data, self.private_key_passphrase)
            ]

        return connect_kwargs

    def _verify_host_key(self) -> None:
        if not self.hashes:
            return

        key = self._conn.get_server_host_key()
        key_hash = host_key_hash(key.public_data, self.hash_algorithm)
        if key_hash not in self.hashes:
            raise ClientConnectionError(
                f"Host key of {self.host} ({self.hash_algorithm}: {key_hash}) is not trusted"
            )

    async def _connect(self) -> None:
        if self.debug:
            logging.getLogger("asyncssh").setLevel(logging.DEBUG)

        try:
            self._conn = await asyncssh.connect(**await self._connect_kwargs())
            self._verify_host_key()
            self._sftp = await self._conn.start_sftp_client()

        except ClientConnectionError:
            await self._close()
            raise
        except asyncssh.PermissionDenied as e:
            await self._close()
            raise AuthenticationError(f"Authentication failed: {e}")
        except asyncssh.Error as e:
            await self._close()
            raise ClientConnectionError(f"Failed to connect to SFTP server: {e}")
        except Exception as e:
            await self._close()
            raise ClientConnectionError(f"Failed to connect to {self.host}: {e}")

    async def _close(self) -> None:
        sftp, self._sftp = self._sftp, None
        conn, self._conn = self._conn, None

        if sftp is not None:
            sftp.exit()

        if conn is not None:
            conn.close()
            await conn.wait_closed()

    @property
    def sftp(self) -> Any:
        assert self._sftp is not None, "Client not connected"
        return self._sftp

    async def execute(self, command: str) -> bytes:
        """Run a shell command on the server and return its stdout."""
        await self._ensure_connected()
        try:
            result = await self._conn.run(command, check=True, encoding=None)
        except asyncssh.ProcessError as e:
            raise CommandHookError(
                f"Command '{command}' exited with status {e.exit_status}"
            ) from e
        return result.stdout or b""

    async def _probe_directory(self, path: str) -> None:
        await self.sftp.listdir(to_sftp_path(path))

    async def _make_directory(self, path: str) -> None:
        if self.ensurer.supports_deep_creation:
            await self.sftp.makedirs(to_sftp_path(path), exist_ok=True)
        else:
            await self.sftp.mkdir(to_sftp_path(path))

    async def _delete_file(self, path: str) -> None:
        remote = to_sftp_path(path)
        file_values = values_for_file(remote)

        await self.hooks.run("before_delete", file_values)
        await self.sftp.remove(remote)
        await self.hooks.run("deleted", file_values)

    async def _download_file(self, path: str) -> bytes:
        remote = to_sftp_path(path)
        file_values = values_for_file(remote)

        await self.hooks.run("before_download", file_values)

        async def fetch(local: str) -> bytes:
            await self.sftp.get(remote, local)
            return await read_file(local)

        data = await with_temp_file(fetch)

        await self.hooks.run("downloaded", file_values)
        return data

    def _resolve_mode(self, remote_path: str) -> Optional[int]:
        return self.modes.resolve(remote_path)

    async def _put(self, remote_path: str, data: bytes, mode: Any) -> None:
        async with self.sftp.open(remote_path, "wb") as remote_file:
            await remote_file.write(data)

    async def _apply_mode(self, remote_path: str, mode: Any) -> None:
        await self.sftp.chmod(remote_path, mode)

    async def _list_directory(self, path: str) -> List[FileSystemEntry]:
        result: List[FileSystemEntry] = []

        for entry in await self.sftp.readdir(to_sftp_path(path)):
            if entry.filename in (".", ".."):
                continue

            attrs = entry.attrs
            modified_time = None
            if attrs.mtime:
                modified_time = datetime.fromtimestamp(attrs.mtime, tz=timezone.utc)

            if self._is_directory(attrs):
                result.append(
                    FileSystemEntry.directory(
                        name=entry.filename, path=path, modified_time=modified_time
                    )
                )
            elif self._is_file(attrs):
                result.append(
                    FileSystemEntry.file(
                        name=entry.filename,
                        path=path,
                        download=self._downloader(join_path(path, entry.filename)),
                        size=attrs.size,
                        modified_time=modified_time,
                    )
                )
            else:
                result.append(
                    FileSystemEntry.unknown(
                        name=entry.filename, path=path, modified_time=modified_time
                    )
                )

        return result

    @staticmethod
    def _is_directory(attrs: Any) -> bool:
        if attrs.permissions is not None:
            return stat.S_ISDIR(attrs.permissions)
        return attrs.type == asyncssh.FILEXFER_TYPE_DIRECTORY

    @staticmethod
    def _is_file(attrs: Any) -> bool:
        if attrs.permissions is not None:
            return stat.S_ISREG(attrs.permissions)
        return attrs.type == asyncssh.FILEXFER_TYPE_REGULAR

    def _downloader(self, path: str):
        options = dict(self._options)

        async def download() -> bytes:
            client = AsyncSftpClient(**options)
            try:
                await client.connect()
                return await client.download_file(path)
            finally:
                await client.dispose()

        return download

    async def _remove_folder(self, path: str) -> bool:
        await self.sftp.rmtree(to_sftp_path(path))
        return True
