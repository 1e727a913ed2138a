"""Download the contents of a URL.

Supported URL formats:
    - dropbox://TOKEN@/path/to/file
    - ftp://[user[:pass]@]host[:port]/path[?tls=1]
    - http(s)://host[:port]/path
    - sftp://[user[:pass]@]host[:port]/path[?privateKey=...&readyTimeout=...]
    - slack://TOKEN@channel/file
    - anything else is a local file, looked up in the scope directories
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple
from urllib.parse import parse_qsl, unquote, urlparse

import httpx

from fsdeploy.clients.async_client import AsyncFileClient
from fsdeploy.clients.async_dropbox_client import AsyncDropboxClient
from fsdeploy.clients.async_ftp_client import AsyncFtpClient
from fsdeploy.clients.async_sftp_client import AsyncSftpClient
from fsdeploy.clients.async_slack_client import AsyncSlackClient
from fsdeploy.exceptions import (
    HttpClientError,
    HttpServerError,
    HttpUnknownError,
    UnsupportedProtocolError,
)
from fsdeploy.scopes import ScopeList, find_file, resolve_scopes
from fsdeploy.tempfiles import read_file

logger = logging.getLogger(__name__)

DEFAULT_URL = "http://localhost"

TRUE_VALUES = ("1", "true", "y", "yes")


def to_bool(value: str) -> bool:
    return value.strip().lower() in TRUE_VALUES


def to_int(value: str) -> Optional[int]:
    value = value.strip()
    return int(value) if value else None


def to_string_array(value: str) -> List[str]:
    return [v.strip() for v in value.split(",") if v.strip()]


@dataclass(frozen=True)
class QueryField:
    """A client option read from a URL query parameter."""

    option: str
    convert: Callable[[str], Any] = str


SFTP_FIELDS: Dict[str, QueryField] = {
    "privatekey": QueryField("private_key"),
    "private_key": QueryField("private_key"),
    "privatekeypassphrase": QueryField("private_key_passphrase"),
    "private_key_passphrase": QueryField("private_key_passphrase"),
    "agent": QueryField("agent"),
    "agentforward": QueryField("agent_forward", to_bool),
    "agent_forward": QueryField("agent_forward", to_bool),
    "hashalgorithm": QueryField("hash_algorithm"),
    "hash_algorithm": QueryField("hash_algorithm"),
    "hashes": QueryField("hashes", to_string_array),
    "readytimeout": QueryField("ready_timeout", to_int),
    "ready_timeout": QueryField("ready_timeout", to_int),
    "trykeyboard": QueryField("try_keyboard", to_bool),
    "try_keyboard": QueryField("try_keyboard", to_bool),
    "debug": QueryField("debug", to_bool),
}

FTP_FIELDS: Dict[str, QueryField] = {
    "tls": QueryField("tls", to_bool),
    "secure": QueryField("tls", to_bool),
}


def query_options(query: str, fields: Dict[str, QueryField]) -> Dict[str, Any]:
    """Client options from a query string; unknown parameters are ignored."""
    options: Dict[str, Any] = {}
    for key, value in parse_qsl(query, keep_blank_values=True):
        query_field = fields.get(key.strip().lower())
        if query_field is None:
            logger.debug("ignoring unknown query parameter '%s'", key)
            continue
        options[query_field.option] = query_field.convert(value)
    return options


@dataclass
class ParsedURL:
    """Parsed components of a download URL."""

    protocol: str
    host: str
    port: Optional[int]
    username: Optional[str]
    password: Optional[str]
    path: str
    query: str


def parse_url(url: str) -> ParsedURL:
    parsed = urlparse(url)
    return ParsedURL(
        protocol=parsed.scheme.lower(),
        host=parsed.hostname or "",
        port=parsed.port,
        username=unquote(parsed.username) if parsed.username else None,
        password=unquote(parsed.password) if parsed.password else None,
        path=unquote(parsed.path) or "/",
        query=parsed.query,
    )


def _remote_client(parsed: ParsedURL) -> Tuple[AsyncFileClient, str]:
    """The client for a remote URL and the path to download with it."""
    match parsed.protocol:
        case "dropbox":
            return AsyncDropboxClient(access_token=parsed.username), parsed.path
        case "ftp":
            return (
                AsyncFtpClient(
                    parsed.host,
                    port=parsed.port,
                    user=parsed.username,
                    password=parsed.password,
                    **query_options(parsed.query, FTP_FIELDS),
                ),
                parsed.path,
            )
        case "sftp":
            return (
                AsyncSftpClient(
                    parsed.host,
                    port=parsed.port,
                    user=parsed.username,
                    password=parsed.password,
                    **query_options(parsed.query, SFTP_FIELDS),
                ),
                parsed.path,
            )
        case "slack":
            channel = parsed.host.upper()
            return AsyncSlackClient(token=parsed.username), f"/{channel}{parsed.path}"
    raise UnsupportedProtocolError(f"Unsupported protocol: '{parsed.protocol}'")


async def download_remote(parsed: ParsedURL) -> bytes:
    client, path = _remote_client(parsed)
    try:
        await client.connect()
        return await client.download_file(path)
    finally:
        await client.dispose()


async def download_http(url: str) -> bytes:
    """GET ``url``; anything outside 2xx raises the matching ``HttpError``."""
    async with httpx.AsyncClient(follow_redirects=True) as http:
        response = await http.get(url)

    status = response.status_code
    if 200 <= status < 300:
        return response.content

    if 400 <= status < 500:
        raise HttpClientError(status, response.reason_phrase)
    if 500 <= status < 600:
        raise HttpServerError(status, response.reason_phrase)
    raise HttpUnknownError(status, response.reason_phrase)


async def download_local(url: str, scopes: List[Path]) -> bytes:
    path = find_file(url, scopes)
    logger.debug("reading local file '%s'", path)
    return await read_file(str(path))


REMOTE_PROTOCOLS = ("dropbox", "ftp", "sftp", "slack")


async def download(url: Optional[str], scopes: ScopeList = None) -> bytes:
    """Download the data ``url`` points to.

    An empty URL means ``http://localhost``. URLs without a known scheme are
    local files: absolute paths are read as they are, relative ones are
    looked up in ``scopes`` (default: the current directory).

    Raises:
        HttpError: For HTTP responses outside 2xx
        NotFoundError: If a local file cannot be found
        ClientError: If a remote download fails
    """
    url = (url or "").strip() or DEFAULT_URL
    parsed = parse_url(url)

    if parsed.protocol in ("http", "https"):
        return await download_http(url)
    if parsed.protocol in REMOTE_PROTOCOLS:
        return await download_remote(parsed)

    return await download_local(url, resolve_scopes(scopes))
