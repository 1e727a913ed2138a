import os
import tempfile
from typing import Awaitable, Callable, Optional, TypeVar

import aiofiles
import aiofiles.os

T = TypeVar("T")


async def with_temp_file(
    action: Callable[[str], Awaitable[T]], *, suffix: Optional[str] = None
) -> T:
    """Run ``action`` with the path of a fresh temporary file.

    The file is removed afterwards, whether ``action`` succeeds or not.
    """
    fd, path = tempfile.mkstemp(prefix="fsdeploy-", suffix=suffix)
    os.close(fd)
    try:
        return await action(path)
    finally:
        try:
            await aiofiles.os.remove(path)
        except FileNotFoundError:
            pass


async def read_file(path: str) -> bytes:
    async with aiofiles.open(path, "rb") as f:
        return await f.read()


async def write_file(path: str, data: bytes) -> None:
    async with aiofiles.open(path, "wb") as f:
        await f.write(data)
