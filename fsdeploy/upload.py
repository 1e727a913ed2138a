"""The upload sequence shared by every backend.

1. ``before_upload`` hook commands
2. mode/ACL resolution
3. ``before_upload`` callback, which may veto or replace the data
4. remote directory ensuring
5. the backend put
6. ``uploaded`` hook commands
7. ``upload_completed`` callback, always, which may mark an error as handled
8. chmod of the uploaded file when a mode was resolved
"""

import inspect
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional, TYPE_CHECKING

from fsdeploy.hooks import values_for_file
from fsdeploy.paths import dirname, normalize_path

if TYPE_CHECKING:
    from fsdeploy.directories import DirectoryEnsurer
    from fsdeploy.hooks import CommandHookPipeline

logger = logging.getLogger(__name__)


@dataclass
class BeforeUploadArguments:
    connection: Any
    data: bytes
    file: str
    mode: Any = None


@dataclass
class UploadCompletedArguments:
    connection: Any
    data: bytes
    file: str
    has_been_uploaded: bool = False
    error: Optional[BaseException] = None
    mode: Any = None


BeforeUploadCallback = Callable[[BeforeUploadArguments], Any]
UploadCompletedCallback = Callable[[UploadCompletedArguments], Any]

PutAction = Callable[[str, bytes, Any], Awaitable[Any]]
ModeAction = Callable[[str, Any], Awaitable[Any]]


async def maybe_await(value: Any) -> Any:
    if inspect.isawaitable(value):
        return await value
    return value


class UploadPipeline:
    """Drives one backend's upload through the fixed sequence above.

    ``to_remote`` turns the canonical path into the backend path handed to
    the hooks, the callbacks and ``put``. ``resolve_mode`` returns the mode
    (or ACL) for that path; ``apply_mode`` is only called after a successful
    put with a resolved mode.
    """

    def __init__(
        self,
        put: PutAction,
        *,
        to_remote: Callable[[str], str] = normalize_path,
        ensurer: Optional["DirectoryEnsurer"] = None,
        hooks: Optional["CommandHookPipeline"] = None,
        before_upload: Optional[BeforeUploadCallback] = None,
        upload_completed: Optional[UploadCompletedCallback] = None,
        resolve_mode: Optional[Callable[[str], Any]] = None,
        apply_mode: Optional[ModeAction] = None,
        connection: Any = None,
    ) -> None:
        self._put = put
        self._to_remote = to_remote
        self._ensurer = ensurer
        self._hooks = hooks
        self.before_upload = before_upload
        self.upload_completed = upload_completed
        self._resolve_mode = resolve_mode
        self._apply_mode = apply_mode
        self.connection = connection

    async def upload(self, path: str, data: bytes) -> bool:
        """Returns True if the data has been written to the remote."""
        path = normalize_path(path)
        remote_dir = dirname(path)
        remote_path = self._to_remote(path)
        file_values = values_for_file(remote_path)

        if self._hooks is not None:
            await self._hooks.run("before_upload", file_values)

        mode = self._resolve_mode(remote_path) if self._resolve_mode else None

        upload_it = True
        if self.before_upload is not None:
            before_args = BeforeUploadArguments(
                connection=self.connection, data=data, file=remote_path, mode=mode
            )
            if await maybe_await(self.before_upload(before_args)) is False:
                upload_it = False
            data = before_args.data

        has_been_uploaded = False
        error: Optional[BaseException] = None
        try:
            if upload_it:
                if self._ensurer is not None:
                    await self._ensurer.ensure(remote_dir)

                await self._put(remote_path, data, mode)
                has_been_uploaded = True

                if self._hooks is not None:
                    await self._hooks.run("uploaded", file_values)
            else:
                logger.info("upload of '%s' has been cancelled", remote_path)
        except Exception as e:
            error = e

        handled = False
        if self.upload_completed is not None:
            handled = await maybe_await(
                self.upload_completed(
                    UploadCompletedArguments(
                        connection=self.connection,
                        data=data,
                        file=remote_path,
                        has_been_uploaded=has_been_uploaded,
                        error=error,
                        mode=mode,
                    )
                )
            )

        if error is not None and not handled:
            raise error

        if has_been_uploaded and mode is not None and self._apply_mode is not None:
            try:
                logger.info("setting mode for '%s' to %s", remote_path, _format_mode(mode))
                await self._apply_mode(remote_path, mode)
            except Exception:
                logger.warning("could not set mode of '%s'", remote_path, exc_info=True)

        return has_been_uploaded


def _format_mode(mode: Any) -> str:
    if isinstance(mode, int):
        return oct(mode)[2:]
    return str(mode)
