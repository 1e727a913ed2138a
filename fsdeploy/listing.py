"""Turn flat object-store key listings into one directory level."""

from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Awaitable, Dict, Iterable, List, Optional

from fsdeploy.filesystem import FileSystemEntry
from fsdeploy.paths import join_path, normalize_path


@dataclass(frozen=True)
class ObjectInfo:
    """One key of a flat listing (S3 object, Azure blob)."""

    key: str
    size: Optional[int] = None
    last_modified: Optional[datetime] = None


def reconcile_listing(
    objects: Iterable[ObjectInfo],
    prefix: str,
    download: Callable[[str], Awaitable[bytes]],
) -> List[FileSystemEntry]:
    """Split the keys below ``prefix`` into directories and files.

    A key whose remainder still contains a slash belongs to a sub-directory;
    each sub-directory shows up once, at the position of its first key. All
    other keys become file entries whose ``download`` calls
    ``download(prefix/name)``.
    """
    prefix = normalize_path(prefix)
    key_prefix = prefix + "/" if prefix else ""

    items: List[FileSystemEntry] = []
    dirs: Dict[str, FileSystemEntry] = {}

    for obj in objects:
        key = str(obj.key or "")
        if not key.startswith(key_prefix):
            continue

        rest = key[len(key_prefix):].lstrip("/")
        if not rest:
            # placeholder object of the prefix itself
            continue

        if "/" in rest:
            dir_name = rest.split("/")[0]
            if dir_name not in dirs:
                entry = FileSystemEntry.directory(name=dir_name, path=prefix)
                dirs[dir_name] = entry
                items.append(entry)
            continue

        items.append(
            FileSystemEntry.file(
                name=rest,
                path=prefix,
                download=_bind_download(download, join_path(prefix, rest)),
                size=obj.size,
                modified_time=obj.last_modified,
            )
        )

    return items


def _bind_download(
    download: Callable[[str], Awaitable[bytes]], path: str
) -> Callable[[], Awaitable[bytes]]:
    async def _download() -> bytes:
        return await download(path)

    return _download
