"""Tests for AsyncDropboxClient with a mocked Dropbox SDK."""

import asyncio
import unittest
from datetime import datetime, timezone
from types import SimpleNamespace
from unittest import mock

from dropbox.files import FileMetadata, FolderMetadata, WriteMode

from fsdeploy.clients.async_dropbox_client import AsyncDropboxClient
from fsdeploy.filesystem import FileType


class TestAsyncDropboxClient(unittest.TestCase):
    """Test cases for AsyncDropboxClient."""

    def setUp(self) -> None:
        self.dbx = mock.MagicMock()
        patcher = mock.patch(
            "fsdeploy.clients.async_dropbox_client.dropbox.Dropbox", return_value=self.dbx
        )
        self.dropbox_class = patcher.start()
        self.addCleanup(patcher.stop)

    def run_client(self, action):
        async def run():
            async with AsyncDropboxClient(access_token=" token ") as client:
                return await action(client)

        return asyncio.run(run())

    def test_token(self) -> None:
        self.run_client(lambda c: asyncio.sleep(0))

        self.dropbox_class.assert_called_once_with(oauth2_access_token="token")
        self.dbx.close.assert_called_once()

    def test_upload_overwrites(self) -> None:
        self.run_client(lambda c: c.upload_file("docs/a.txt", b"x"))

        self.dbx.files_upload.assert_called_once_with(
            b"x", "/docs/a.txt", mode=WriteMode.overwrite, autorename=False, mute=False
        )

    def test_download(self) -> None:
        response = mock.Mock(content=b"data")
        self.dbx.files_download.return_value = (SimpleNamespace(), response)

        self.assertEqual(self.run_client(lambda c: c.download_file("a.txt")), b"data")
        self.dbx.files_download.assert_called_once_with("/a.txt")
        response.close.assert_called_once()

    def test_delete(self) -> None:
        self.assertTrue(self.run_client(lambda c: c.delete_file("/a.txt")))
        self.dbx.files_delete_v2.assert_called_once_with("/a.txt")

    def test_delete_never_raises(self) -> None:
        self.dbx.files_delete_v2.side_effect = RuntimeError("path_lookup/not_found")
        self.assertFalse(self.run_client(lambda c: c.delete_file("/a.txt")))

    def test_paginated_listing(self) -> None:
        modified = datetime(2023, 1, 15, 10, 30)
        self.dbx.files_list_folder.return_value = SimpleNamespace(
            entries=[
                FileMetadata(name="a.txt", id="id:1", size=3, server_modified=modified),
                FolderMetadata(name="sub", id="id:2"),
            ],
            cursor="C1",
            has_more=True,
        )
        self.dbx.files_list_folder_continue.return_value = SimpleNamespace(
            entries=[SimpleNamespace(name="gone")], cursor="C2", has_more=False
        )
        self.dbx.files_download.return_value = (SimpleNamespace(), mock.Mock(content=b"A"))

        async def list_and_download(c: AsyncDropboxClient):
            entries = await c.list_directory("/")
            return entries, await entries[0].download()

        entries, data = self.run_client(list_and_download)

        self.assertEqual(self.dbx.files_list_folder.call_args.args, ("",))
        self.dbx.files_list_folder_continue.assert_called_once_with("C1")
        self.assertEqual(
            [(e.name, e.filetype) for e in entries],
            [("a.txt", FileType.FILE), ("sub", FileType.DIRECTORY), ("gone", FileType.UNKNOWN)],
        )
        self.assertEqual(entries[0].modified_time.tzinfo, timezone.utc)
        self.assertEqual(entries[0].internal_name, "id:1")
        self.assertEqual(data, b"A")


if __name__ == "__main__":
    unittest.main()
