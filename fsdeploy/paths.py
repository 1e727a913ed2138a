"""Remote path normalization.

Every path handed to a client is first brought into canonical form:
forward slashes only, no leading or trailing slash. The canonical form is
the only one that is cached or compared; each backend then wraps it in the
shape its API expects.
"""

import os
import posixpath
from pathlib import PurePath
from typing import Union

PathLike = Union[str, PurePath, None]


def normalize_path(path: PathLike) -> str:
    """Return the canonical form of ``path``.

    >>> normalize_path("/a/b/")
    'a/b'
    >>> normalize_path(".")
    ''
    """
    if path is None:
        return ""

    if isinstance(path, PurePath):
        path = path.as_posix()

    path = str(path)
    if os.sep != "/":
        path = path.replace(os.sep, "/")
    path = path.replace("\\", "/")

    if path.strip() == "":
        return ""

    path = path.strip("/")
    if path == ".":
        return ""

    return path


def join_path(*parts: PathLike) -> str:
    """Join path segments and normalize the result."""
    return "/".join(p for p in map(normalize_path, parts) if p)


def dirname(path: PathLike) -> str:
    """Canonical parent directory of ``path`` ('' for top-level entries)."""
    return normalize_path(posixpath.dirname(normalize_path(path)))


def basename(path: PathLike) -> str:
    return posixpath.basename(normalize_path(path))


def to_ftp_path(path: PathLike) -> str:
    return "/" + normalize_path(path)


def to_sftp_path(path: PathLike) -> str:
    return "/" + normalize_path(path)


def to_s3_path(path: PathLike) -> str:
    return normalize_path(path)


def to_azure_path(path: PathLike) -> str:
    return normalize_path(path)


def to_slack_path(path: PathLike) -> str:
    return normalize_path(path)


def to_dropbox_path(path: PathLike) -> str:
    """Dropbox wants '' for its root and '/...' for everything else."""
    path = normalize_path(path)
    if path:
        path = "/" + path
    return path
