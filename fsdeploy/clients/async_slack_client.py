"""Async Slack client: channels are directories, shared files are files."""

import logging
from collections import OrderedDict
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import httpx

from fsdeploy.clients.async_client import AsyncFileClient
from fsdeploy.exceptions import (
    ClientConnectionError,
    MissingDependencyError,
    NotFoundError,
    TransferError,
)
from fsdeploy.filesystem import FileSystemEntry
from fsdeploy.pagination import NOT_STARTED, Page, fetch_all
from fsdeploy.paths import basename, to_slack_path
from fsdeploy.upload import BeforeUploadCallback, UploadCompletedCallback

try:
    from slack_sdk.web.async_client import AsyncWebClient
    SLACK_AVAILABLE = True
except ImportError:
    SLACK_AVAILABLE = False

logger = logging.getLogger(__name__)


def _timestamp(value: Any) -> Optional[datetime]:
    try:
        return datetime.fromtimestamp(float(value), tz=timezone.utc)
    except (TypeError, ValueError):
        return None


def _split(path: str) -> tuple[str, str]:
    parts = to_slack_path(path).split("/")
    return parts[0], "/".join(parts[1:])


async def download_private_file(url: str, token: str) -> bytes:
    """Fetch ``url_private_download`` of a Slack file; anything but 200 fails."""
    async with httpx.AsyncClient(follow_redirects=True) as http:
        response = await http.get(url, headers={"Authorization": f"Bearer {token}"})
    if response.status_code != 200:
        raise TransferError(
            f"Unexpected response {response.status_code}: '{response.reason_phrase}'"
        )
    return response.content


class AsyncSlackClient(AsyncFileClient):
    """Slack workspace client using slack_sdk's AsyncWebClient.

    The root lists the channels. ``CHANNEL/file`` addresses the newest file
    shared in that channel whose id or name matches ``file``; uploads share
    a file into the channel named by the first path segment.
    """

    client_type = "slack"

    def __init__(
        self,
        token: Optional[str] = None,
        *,
        before_upload: Optional[BeforeUploadCallback] = None,
        upload_completed: Optional[UploadCompletedCallback] = None,
        name: Optional[str] = None,
    ) -> None:
        if not SLACK_AVAILABLE:
            raise MissingDependencyError(
                "slack_sdk is required for Slack support. "
                "Install with: pip install slack_sdk aiohttp"
            )

        super().__init__(
            name=name,
            before_upload=before_upload,
            upload_completed=upload_completed,
        )

        self.token = (token or "").strip()
        self._web: Any = None

    def name(self) -> str:
        return self._name or "slack"

    def to_remote_path(self, path: str) -> str:
        return to_slack_path(path)

    async def _connect(self) -> None:
        try:
            self._web = AsyncWebClient(token=self.token)
        except Exception as e:
            raise ClientConnectionError(f"Failed to create Slack client: {e}")

    async def _close(self) -> None:
        self._web = None

    @property
    def web(self) -> Any:
        assert self._web is not None, "Client not connected"
        return self._web

    def _file_entry(self, info: Dict[str, Any], channel: str) -> FileSystemEntry:
        url = info.get("url_private_download")
        token = self.token

        async def download() -> bytes:
            return await download_private_file(url, token)

        return FileSystemEntry.file(
            name=info.get("name") or "",
            path=channel,
            download=download,
            size=info.get("size"),
            modified_time=_timestamp(info.get("timestamp", info.get("created"))),
            internal_name=info.get("id"),
        )

    async def _channel_page(self, cursor: Any) -> Page[Dict[str, Any]]:
        params: Dict[str, Any] = {}
        if cursor is not NOT_STARTED:
            params["cursor"] = cursor
        response = await self.web.conversations_list(**params)
        metadata = response.get("response_metadata") or {}
        return Page(
            items=response.get("channels") or [],
            next_cursor=metadata.get("next_cursor") or None,
        )

    async def _channels(self) -> List[FileSystemEntry]:
        channels = await fetch_all(self._channel_page)
        return [
            FileSystemEntry.directory(
                name=c.get("name") or c.get("id"),
                path="",
                modified_time=_timestamp(c.get("created")),
                internal_name=c.get("id"),
            )
            for c in channels
        ]

    async def _file_page(self, channel: str, cursor: Any) -> Page[Dict[str, Any]]:
        page = 1 if cursor is NOT_STARTED else int(cursor)
        response = await self.web.files_list(channel=channel, page=page)

        paging = response.get("paging")
        next_page = None
        if paging and page < int(paging.get("pages") or 0):
            next_page = page + 1
        return Page(items=response.get("files") or [], next_cursor=next_page)

    async def _channel_files(self, channel: str) -> Dict[str, List[Dict[str, Any]]]:
        """Files of a channel grouped by lower-cased name."""
        channel = channel.strip().upper()
        files = await fetch_all(lambda cursor: self._file_page(channel, cursor))

        grouped: Dict[str, List[Dict[str, Any]]] = OrderedDict()
        for f in files:
            key = str(f.get("name") or "").strip().lower()
            grouped.setdefault(key, []).append(f)
        return grouped

    async def find_files(self, path: str) -> List[FileSystemEntry]:
        """Files matching ``CHANNEL/id-or-name``, newest first."""
        channel, file_id = _split(path)
        file_id = file_id.strip().lower()

        matches: List[FileSystemEntry] = []
        for files in (await self._channel_files(channel)).values():
            for f in files:
                if file_id in (
                    str(f.get("id") or "").strip().lower(),
                    str(f.get("name") or "").strip().lower(),
                ):
                    matches.append(self._file_entry(f, channel))

        epoch = datetime.min.replace(tzinfo=timezone.utc)
        matches.sort(key=lambda e: e.modified_time or epoch, reverse=True)
        return matches

    async def _find_file(self, path: str) -> FileSystemEntry:
        matches = await self.find_files(path)
        if not matches:
            raise NotFoundError(f"File '{path}' not found")
        return matches[0]

    async def _delete_file(self, path: str) -> None:
        entry = await self._find_file(path)
        await self.web.files_delete(file=entry.internal_name)

    async def _download_file(self, path: str) -> bytes:
        entry = await self._find_file(path)
        assert entry.download is not None
        return await entry.download()

    async def _put(self, remote_path: str, data: bytes, mode: Any) -> None:
        channel, _ = _split(remote_path)
        channel = channel.strip().upper()
        filename = basename(remote_path)

        await self.web.files_upload_v2(
            channel=channel,
            content=data,
            filename=filename,
            title=filename,
        )

    async def _list_directory(self, path: str) -> List[FileSystemEntry]:
        if path == "":
            return await self._channels()

        channel, _ = _split(path)
        items: List[FileSystemEntry] = []
        for files in (await self._channel_files(channel)).values():
            items.extend(self._file_entry(f, path) for f in files)
        return items
