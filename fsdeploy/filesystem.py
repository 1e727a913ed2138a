from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum, auto
from typing import Awaitable, Callable, Optional

from fsdeploy.paths import join_path, normalize_path

Downloader = Callable[[], Awaitable[bytes]]


class FileType(Enum):
    FILE = auto()
    DIRECTORY = auto()
    UNKNOWN = auto()


@dataclass
class FileSystemEntry:
    """One item of a directory listing.

    ``path`` is the canonical parent directory, ``name`` the last segment.
    File entries carry a ``download`` coroutine function bound to the client
    that produced the listing.
    """

    name: str
    path: str
    filetype: FileType = FileType.UNKNOWN
    size: Optional[int] = None
    modified_time: Optional[datetime] = None
    download: Optional[Downloader] = field(default=None, repr=False, compare=False)
    internal_name: Optional[str] = None

    def __post_init__(self) -> None:
        self.path = normalize_path(self.path)

    @classmethod
    def directory(cls, name: str, path: str, **kwargs) -> "FileSystemEntry":
        return cls(name=name, path=path, filetype=FileType.DIRECTORY, **kwargs)

    @classmethod
    def file(
        cls, name: str, path: str, download: Downloader, **kwargs
    ) -> "FileSystemEntry":
        return cls(
            name=name, path=path, filetype=FileType.FILE, download=download, **kwargs
        )

    @classmethod
    def unknown(cls, name: str, path: str, **kwargs) -> "FileSystemEntry":
        return cls(name=name, path=path, filetype=FileType.UNKNOWN, **kwargs)

    @property
    def full_path(self) -> str:
        return join_path(self.path, self.name)

    @property
    def is_directory(self) -> bool:
        return self.filetype == FileType.DIRECTORY

    @property
    def is_file(self) -> bool:
        return self.filetype == FileType.FILE

    def __str__(self) -> str:
        return f"{str(self.filetype)} {self.full_path}"
