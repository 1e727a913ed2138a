"""Tests for AsyncSlackClient with a mocked web client."""

import asyncio
import unittest
from unittest import mock

from fsdeploy.clients.async_slack_client import AsyncSlackClient, download_private_file
from fsdeploy.exceptions import TransferError
from fsdeploy.filesystem import FileType


def slack_file(file_id: str, name: str, timestamp: int) -> dict:
    return {
        "id": file_id,
        "name": name,
        "size": 10,
        "timestamp": timestamp,
        "url_private_download": f"https://files.slack.com/{file_id}/{name}",
    }


class TestAsyncSlackClient(unittest.TestCase):
    """Test cases for AsyncSlackClient."""

    def setUp(self) -> None:
        self.web = mock.MagicMock()
        for name in ("conversations_list", "files_list", "files_delete", "files_upload_v2"):
            setattr(self.web, name, mock.AsyncMock())

        patcher = mock.patch(
            "fsdeploy.clients.async_slack_client.AsyncWebClient", return_value=self.web
        )
        self.web_class = patcher.start()
        self.addCleanup(patcher.stop)

    def run_client(self, action):
        async def run():
            async with AsyncSlackClient(token="xoxb-1") as client:
                return await action(client)

        return asyncio.run(run())

    def test_root_lists_channels(self) -> None:
        self.web.conversations_list.side_effect = [
            {"channels": [{"id": "C1", "name": "general"}], "response_metadata": {"next_cursor": "n1"}},
            {"channels": [{"id": "C2", "name": "deploys"}], "response_metadata": {"next_cursor": ""}},
        ]

        entries = self.run_client(lambda c: c.list_directory("/"))

        self.assertEqual([(e.name, e.filetype) for e in entries], [
            ("general", FileType.DIRECTORY),
            ("deploys", FileType.DIRECTORY),
        ])
        self.assertEqual(self.web.conversations_list.await_args_list[1].kwargs, {"cursor": "n1"})

    def test_channel_files_paginated(self) -> None:
        self.web.files_list.side_effect = [
            {"files": [slack_file("F1", "a.txt", 1)], "paging": {"page": 1, "pages": 2}},
            {"files": [slack_file("F2", "b.txt", 2)], "paging": {"page": 2, "pages": 2}},
        ]

        entries = self.run_client(lambda c: c.list_directory("c123"))

        self.assertEqual(
            [c.kwargs for c in self.web.files_list.await_args_list],
            [{"channel": "C123", "page": 1}, {"channel": "C123", "page": 2}],
        )
        self.assertEqual([e.name for e in entries], ["a.txt", "b.txt"])

    def test_delete_newest_match(self) -> None:
        self.web.files_list.return_value = {
            "files": [slack_file("F1", "a.txt", 1), slack_file("F2", "A.TXT", 5)]
        }

        self.assertTrue(self.run_client(lambda c: c.delete_file("C123/a.txt")))
        self.web.files_delete.assert_awaited_once_with(file="F2")

    def test_delete_unknown_file(self) -> None:
        self.web.files_list.return_value = {"files": []}
        self.assertFalse(self.run_client(lambda c: c.delete_file("C123/none.txt")))

    def test_upload(self) -> None:
        self.run_client(lambda c: c.upload_file("c123/report.txt", b"hello"))

        self.web.files_upload_v2.assert_awaited_once_with(
            channel="C123", content=b"hello", filename="report.txt", title="report.txt"
        )

    def test_download_by_id(self) -> None:
        self.web.files_list.return_value = {"files": [slack_file("F9", "log.txt", 1)]}

        with mock.patch(
            "fsdeploy.clients.async_slack_client.download_private_file",
            new=mock.AsyncMock(return_value=b"log"),
        ) as fetch:
            data = self.run_client(lambda c: c.download_file("C123/f9"))

        self.assertEqual(data, b"log")
        fetch.assert_awaited_once_with("https://files.slack.com/F9/log.txt", "xoxb-1")


class TestDownloadPrivateFile(unittest.TestCase):
    """Test cases for the authenticated file fetch."""

    def fake_http(self, status_code: int, content: bytes = b""):
        response = mock.Mock(status_code=status_code, content=content, reason_phrase="Reason")
        http = mock.MagicMock()
        http.get = mock.AsyncMock(return_value=response)
        client_class = mock.MagicMock()
        client_class.return_value.__aenter__.return_value = http
        return client_class, http

    def test_bearer_token(self) -> None:
        client_class, http = self.fake_http(200, b"data")

        with mock.patch("fsdeploy.clients.async_slack_client.httpx.AsyncClient", client_class):
            data = asyncio.run(download_private_file("https://files.slack.com/x", "tok"))

        self.assertEqual(data, b"data")
        http.get.assert_awaited_once_with(
            "https://files.slack.com/x", headers={"Authorization": "Bearer tok"}
        )

    def test_non_200_fails(self) -> None:
        client_class, _ = self.fake_http(204)

        with mock.patch("fsdeploy.clients.async_slack_client.httpx.AsyncClient", client_class):
            with self.assertRaises(TransferError):
                asyncio.run(download_private_file("https://files.slack.com/x", "tok"))


if __name__ == "__main__":
    unittest.main()
