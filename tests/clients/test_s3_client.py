"""Tests for AsyncS3Client with a mocked aioboto3 session."""

import asyncio
import json
import os
import shutil
import tempfile
import unittest
from unittest import mock

from fsdeploy.clients.async_s3_client import (
    AsyncS3Client,
    CredentialType,
    environment_settings,
    shared_settings,
    static_settings,
)
from fsdeploy.config.remotes import S3Credentials
from fsdeploy.exceptions import CredentialTypeNotSupportedError, NotFoundError
from fsdeploy.filesystem import FileType
from fsdeploy.values import StaticValue


class TestCredentialSettings(unittest.TestCase):
    """Test cases for the credential strategy mapping."""

    def test_parse(self) -> None:
        self.assertEqual(CredentialType.parse(None), CredentialType.SHARED)
        self.assertEqual(CredentialType.parse(" Static "), CredentialType.STATIC)
        with self.assertRaises(CredentialTypeNotSupportedError):
            CredentialType.parse("magic")

    def test_static(self) -> None:
        settings = static_settings({"accessKeyId": "AK", "secretAccessKey": "SK"})
        self.assertEqual(
            settings.session_kwargs,
            {"aws_access_key_id": "AK", "aws_secret_access_key": "SK"},
        )

    def test_environment_prefix(self) -> None:
        env = {"DEPLOY_ACCESS_KEY_ID": "AK", "DEPLOY_SECRET_ACCESS_KEY": "SK"}
        with mock.patch.dict(os.environ, env):
            settings = environment_settings("${stage}", [StaticValue("stage", "DEPLOY")])

        self.assertEqual(settings.session_kwargs["aws_access_key_id"], "AK")

    def test_environment_default_prefix(self) -> None:
        with mock.patch.dict(os.environ, {"AWS_ACCESS_KEY_ID": "AK"}, clear=True):
            settings = environment_settings(None, [])
        self.assertEqual(settings.session_kwargs, {"aws_access_key_id": "AK"})

    def test_shared_profile(self) -> None:
        settings = shared_settings({"profile": "deploy"}, [], None)
        self.assertEqual(settings.session_kwargs, {"profile_name": "deploy"})
        self.assertEqual(settings.config_variables, {})


class TestAsyncS3Client(unittest.TestCase):
    """Test cases for AsyncS3Client."""

    def setUp(self) -> None:
        self.s3 = mock.MagicMock()
        for name in ("put_object", "delete_object", "get_object", "list_objects_v2"):
            setattr(self.s3, name, mock.AsyncMock())

        self.session = mock.MagicMock()
        self.session.client.return_value.__aenter__.return_value = self.s3

        session_patcher = mock.patch(
            "fsdeploy.clients.async_s3_client.aioboto3.Session", return_value=self.session
        )
        self.session_class = session_patcher.start()
        self.addCleanup(session_patcher.stop)

        botocore_patcher = mock.patch("fsdeploy.clients.async_s3_client.get_session")
        self.get_session = botocore_patcher.start()
        self.addCleanup(botocore_patcher.stop)

    def run_client(self, client: AsyncS3Client, action):
        async def run():
            async with client:
                return await action(client)

        return asyncio.run(run())

    def test_defaults(self) -> None:
        client = AsyncS3Client()
        self.assertEqual(client.bucket, "fsdeploy")
        self.assertEqual(client.acl, "public-read")
        self.assertEqual(client.credential_type, CredentialType.SHARED)

    def test_unknown_credential_type(self) -> None:
        with self.assertRaises(CredentialTypeNotSupportedError):
            AsyncS3Client("b", credentials={"type": "magic"})

    def test_session_and_endpoint(self) -> None:
        client = AsyncS3Client(
            "b",
            credentials=S3Credentials(type="static", config={"accessKeyId": "AK"}),
            endpoint_url="http://localhost:9000",
            region_name="eu-west-1",
        )

        self.run_client(client, lambda c: asyncio.sleep(0))

        kwargs = self.session_class.call_args.kwargs
        self.assertEqual(kwargs["region_name"], "eu-west-1")
        self.assertEqual(kwargs["aws_access_key_id"], "AK")
        self.session.client.assert_called_once_with("s3", endpoint_url="http://localhost:9000")
        self.session.client.return_value.__aexit__.assert_awaited_once()

    def test_credentials_file_from_scopes(self) -> None:
        scope = tempfile.mkdtemp()
        try:
            with open(os.path.join(scope, "prod.json"), "w") as f:
                json.dump({"accessKeyId": "FILE-AK", "secretAccessKey": "FILE-SK"}, f)

            client = AsyncS3Client(
                "b",
                credentials={"type": "file", "config": "${stage}.json"},
                directory_scope_provider=lambda: [scope],
                value_provider=lambda: [StaticValue("stage", "prod")],
            )
            self.run_client(client, lambda c: asyncio.sleep(0))
        finally:
            shutil.rmtree(scope)

        self.assertEqual(self.session_class.call_args.kwargs["aws_secret_access_key"], "FILE-SK")

    def test_missing_credentials_file(self) -> None:
        client = AsyncS3Client(
            "b",
            credentials={"type": "file", "config": "missing.json"},
            directory_scope_provider=lambda: [tempfile.gettempdir()],
        )

        with self.assertRaises(NotFoundError):
            asyncio.run(client.connect())

    def test_shared_credentials_file(self) -> None:
        scope = tempfile.mkdtemp()
        try:
            path = os.path.join(scope, "credentials")
            open(path, "w").close()
            client = AsyncS3Client(
                "b",
                credentials={"type": "shared", "config": {"profile": "p", "filename": "credentials"}},
                directory_scope_provider=lambda: [scope],
            )
            self.run_client(client, lambda c: asyncio.sleep(0))
        finally:
            shutil.rmtree(scope)

        self.get_session.return_value.set_config_variable.assert_called_once_with(
            "credentials_file", os.path.realpath(path)
        )
        self.assertEqual(self.session_class.call_args.kwargs["profile_name"], "p")

    def test_upload_with_acl(self) -> None:
        def detector(key: str, default_acl: str) -> str:
            return "private" if key.startswith("secret/") else ""

        client = AsyncS3Client("b", file_acl=detector)

        async def upload(c: AsyncS3Client) -> None:
            await c.upload_file("/www/index.html", b"<html>")
            await c.upload_file("secret/key.bin", b"k")

        self.run_client(client, upload)

        first, second = [c.kwargs for c in self.s3.put_object.await_args_list]
        self.assertEqual(first["Key"], "www/index.html")
        self.assertEqual(first["ContentType"], "text/html")
        self.assertEqual(first["ACL"], "public-read")
        self.assertEqual(second["ContentType"], "application/octet-stream")
        self.assertEqual(second["ACL"], "private")

    def test_download(self) -> None:
        body = mock.MagicMock()
        body.__aenter__.return_value = body
        body.read = mock.AsyncMock(return_value=b"content")
        self.s3.get_object.return_value = {"Body": body}

        data = self.run_client(AsyncS3Client("b"), lambda c: c.download_file("/a/b.txt"))

        self.assertEqual(data, b"content")
        self.s3.get_object.assert_awaited_once_with(Bucket="b", Key="a/b.txt")

    def test_delete_never_raises(self) -> None:
        self.s3.delete_object.side_effect = RuntimeError("AccessDenied")

        self.assertFalse(self.run_client(AsyncS3Client("b"), lambda c: c.delete_file("a.txt")))

    def test_paginated_listing(self) -> None:
        self.s3.list_objects_v2.side_effect = [
            {
                "Contents": [{"Key": "site/a.txt", "Size": 1}, {"Key": "site/css/x.css"}],
                "IsTruncated": True,
                "NextContinuationToken": "T1",
            },
            {
                "Contents": [{"Key": "site/css/y.css"}, {"Key": "site/b.txt", "Size": 2}],
                "IsTruncated": False,
            },
        ]

        entries = self.run_client(AsyncS3Client("b"), lambda c: c.list_directory("/site"))

        calls = [c.kwargs for c in self.s3.list_objects_v2.await_args_list]
        self.assertEqual(calls[0], {"Bucket": "b", "Prefix": "site/"})
        self.assertEqual(calls[1], {"Bucket": "b", "Prefix": "site/", "ContinuationToken": "T1"})
        self.assertEqual(
            [(e.name, e.filetype) for e in entries],
            [("a.txt", FileType.FILE), ("css", FileType.DIRECTORY), ("b.txt", FileType.FILE)],
        )

    def test_listing_download_thunk(self) -> None:
        self.s3.list_objects_v2.return_value = {"Contents": [{"Key": "a.txt"}]}
        body = mock.MagicMock()
        body.__aenter__.return_value = body
        body.read = mock.AsyncMock(return_value=b"A")
        self.s3.get_object.return_value = {"Body": body}

        async def list_and_download(c: AsyncS3Client) -> bytes:
            entries = await c.list_directory("")
            return await entries[0].download()

        self.assertEqual(self.run_client(AsyncS3Client("b"), list_and_download), b"A")
        self.s3.get_object.assert_awaited_once_with(Bucket="b", Key="a.txt")


if __name__ == "__main__":
    unittest.main()
