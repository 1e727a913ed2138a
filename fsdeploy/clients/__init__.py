"""Client plugins for fsdeploy."""

from typing import List, Type

from fsdeploy.clients.async_client import AsyncFileClient, ClientState
from fsdeploy.clients.async_azure_blob_client import AsyncAzureBlobClient
from fsdeploy.clients.async_dropbox_client import AsyncDropboxClient
from fsdeploy.clients.async_ftp_client import AsyncFtpClient
from fsdeploy.clients.async_s3_client import AsyncS3Client
from fsdeploy.clients.async_sftp_client import AsyncSftpClient
from fsdeploy.clients.async_slack_client import AsyncSlackClient

_client_classes: List[Type[AsyncFileClient]] = [
    AsyncFtpClient,
    AsyncSftpClient,
    AsyncS3Client,
    AsyncAzureBlobClient,
    AsyncDropboxClient,
    AsyncSlackClient,
]

__all__ = ["AsyncFileClient", "ClientState"] + [cls.__name__ for cls in _client_classes]
