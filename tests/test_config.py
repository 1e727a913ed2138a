"""Tests for configuration system."""

import os
import tempfile
import unittest
from io import BytesIO

from fsdeploy.config import (
    BlobConfig,
    Config,
    ConfigError,
    DropboxConfig,
    FtpConfig,
    RemoteNotFoundError,
    S3Config,
    S3Credentials,
    SftpConfig,
    SlackConfig,
    ValidationError,
)
from fsdeploy.exceptions import CredentialTypeNotSupportedError
from tests.fixtures.test_data import TestDataFixtures


class TestConfigSystem(unittest.TestCase):
    """Test cases for the configuration system."""

    def setUp(self) -> None:
        self.config = Config.from_file(BytesIO(TestDataFixtures.sample_config_toml()))

    def test_all_remote_types(self) -> None:
        self.assertEqual(
            self.config.list_remotes(),
            {
                "site": "ftp",
                "box": "sftp",
                "bucket": "s3",
                "blob": "blob",
                "dbx": "dropbox",
                "chat": "slack",
            },
        )
        self.assertEqual(self.config.get_warnings(), [])

    def test_ftp(self) -> None:
        ftp = self.config.get_remote("site")

        self.assertIsInstance(ftp, FtpConfig)
        self.assertEqual(ftp.host, "ftp.example.com")
        self.assertEqual(ftp.port, 21)
        self.assertFalse(ftp.supports_deep_directory_creation)
        self.assertEqual(ftp.commands.encoding, "utf-8")
        self.assertEqual(ftp.commands.uploaded[0].command, "SITE CHMOD 644 ${remote_file}")

    def test_sftp(self) -> None:
        sftp = self.config.get_remote("box")

        self.assertIsInstance(sftp, SftpConfig)
        self.assertEqual(sftp.hashes, ["abc123"])
        self.assertEqual(sftp.ready_timeout, 5000)
        self.assertEqual(sftp.modes, {"**/*.sh": "755", "**/*": 644})
        self.assertEqual(sftp.client_options()["port"], 22)

    def test_s3(self) -> None:
        s3 = self.config.get_remote("bucket")

        self.assertIsInstance(s3, S3Config)
        self.assertEqual(s3.bucket, "my-bucket")
        self.assertEqual(s3.acl, "private")
        self.assertEqual(s3.credentials, S3Credentials(type="environment", config="DEPLOY"))

    def test_other_remotes(self) -> None:
        self.assertIsInstance(self.config.get_remote("blob"), BlobConfig)
        self.assertTrue(self.config.get_remote("blob").use_development_storage)
        self.assertIsInstance(self.config.get_remote("dbx"), DropboxConfig)
        self.assertIsInstance(self.config.get_remote("chat"), SlackConfig)

    def test_remote_not_found(self) -> None:
        with self.assertRaises(RemoteNotFoundError):
            self.config.get_remote("missing")

    def test_invalid_remotes_are_skipped(self) -> None:
        config = Config.from_dict(
            {
                "good": {"type": "dropbox", "access_token": "t"},
                "no_type": {"host": "x"},
                "unknown": {"type": "gopher"},
                "bad_port": {"type": "ftp", "port": 70000},
                "bad_mode": {"type": "sftp", "modes": {"**/*": "rwx"}},
                "bad_credentials": {"type": "s3", "bucket": "b", "credentials": {"type": "magic"}},
                "not_a_table": "ftp",
            }
        )

        self.assertEqual(list(config.remotes), ["good"])
        self.assertEqual(len(config.get_warnings()), 6)

    def test_skip_warnings_name_the_remote(self) -> None:
        config = Config.from_dict(
            {
                "good": {"type": "slack", "token": "t"},
                "old": {"type": "Gopher"},
            }
        )

        self.assertEqual(config.get_warnings(), ["Skipping remote 'old': unknown type 'gopher'"])

    def test_type_is_case_insensitive(self) -> None:
        config = Config.from_dict({"box": {"type": " SFTP ", "host": "h"}})
        self.assertIsInstance(config.get_remote("box"), SftpConfig)

    def test_no_usable_remote(self) -> None:
        with self.assertRaises(ValidationError):
            Config.from_dict({"broken": {"type": "slack"}})

    def test_invalid_toml(self) -> None:
        with self.assertRaises(ConfigError):
            Config.from_file(BytesIO(b"[unterminated"))

    def test_missing_file(self) -> None:
        with self.assertRaises(ConfigError):
            Config.from_path("/nonexistent/fsdeploy.toml")

    def test_from_path(self) -> None:
        fd, path = tempfile.mkstemp(suffix=".toml")
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(TestDataFixtures.sample_config_toml())
            config = Config.from_path(path)
            self.assertIn("site", config.remotes)
        finally:
            os.unlink(path)


class TestRemoteConfigs(unittest.TestCase):
    """Test cases for individual remote configurations."""

    def test_s3_requires_bucket(self) -> None:
        with self.assertRaises(ValidationError):
            S3Config.from_dict("s3", {}).validate()

    def test_s3_credential_type(self) -> None:
        with self.assertRaises(CredentialTypeNotSupportedError):
            S3Credentials(type="magic").validate()
        S3Credentials(type=" Shared ").validate()
        S3Credentials(type=None).validate()

    def test_s3_scopes(self) -> None:
        s3 = S3Config.from_dict("s3", {"bucket": "b", "directory_scopes": ["keys", " "]})
        provider = s3.client_options()["directory_scope_provider"]
        self.assertEqual(provider(), ["keys"])

    def test_sftp_ready_timeout(self) -> None:
        with self.assertRaises(ValidationError):
            SftpConfig.from_dict("sftp", {"ready_timeout": 0}).validate()

    def test_ftp_booleans(self) -> None:
        with self.assertRaises(ValidationError):
            FtpConfig.from_dict("ftp", {"tls": "yes"}).validate()

    def test_blob_requires_location(self) -> None:
        with self.assertRaises(ValidationError):
            BlobConfig.from_dict("blob", {}).validate()
        BlobConfig.from_dict("blob", {"account": "acct"}).validate()

    def test_commands_must_be_table(self) -> None:
        with self.assertRaises(ValidationError):
            FtpConfig.from_dict("ftp", {"commands": "pwd"})


if __name__ == "__main__":
    unittest.main()
