"""Client factories keyed by remote configuration type."""

import logging
from typing import Any, Optional

from fsdeploy.clients.async_azure_blob_client import AsyncAzureBlobClient
from fsdeploy.clients.async_client import AsyncFileClient
from fsdeploy.clients.async_dropbox_client import AsyncDropboxClient
from fsdeploy.clients.async_ftp_client import AsyncFtpClient
from fsdeploy.clients.async_s3_client import AsyncS3Client
from fsdeploy.clients.async_sftp_client import AsyncSftpClient
from fsdeploy.clients.async_slack_client import AsyncSlackClient
from fsdeploy.config.base import BaseRemoteConfig
from fsdeploy.config.remotes import (
    BlobConfig,
    DropboxConfig,
    FtpConfig,
    S3Config,
    SftpConfig,
    SlackConfig,
)
from fsdeploy.exceptions import ValidationError
from fsdeploy.upload import BeforeUploadCallback, UploadCompletedCallback
from fsdeploy.values import ValuesProvider

logger = logging.getLogger(__name__)


def create_client(
    remote_config: BaseRemoteConfig,
    *,
    before_upload: Optional[BeforeUploadCallback] = None,
    upload_completed: Optional[UploadCompletedCallback] = None,
    value_provider: Optional[ValuesProvider] = None,
) -> AsyncFileClient:
    """Create a client based on remote configuration type. Nothing is connected."""
    callbacks: dict[str, Any] = dict(
        before_upload=before_upload, upload_completed=upload_completed
    )

    match remote_config.type:
        case "ftp":
            assert isinstance(remote_config, FtpConfig)
            return AsyncFtpClient(
                **remote_config.client_options(),
                **callbacks,
                value_provider=value_provider,
            )
        case "sftp":
            assert isinstance(remote_config, SftpConfig)
            return AsyncSftpClient(
                **remote_config.client_options(),
                **callbacks,
                value_provider=value_provider,
            )
        case "s3":
            assert isinstance(remote_config, S3Config)
            return AsyncS3Client(
                **remote_config.client_options(),
                **callbacks,
                value_provider=value_provider,
            )
        case "blob":
            assert isinstance(remote_config, BlobConfig)
            return AsyncAzureBlobClient(**remote_config.client_options(), **callbacks)
        case "dropbox":
            assert isinstance(remote_config, DropboxConfig)
            return AsyncDropboxClient(**remote_config.client_options(), **callbacks)
        case "slack":
            assert isinstance(remote_config, SlackConfig)
            return AsyncSlackClient(**remote_config.client_options(), **callbacks)
        case _:
            raise ValidationError(
                f"Unknown remote type '{remote_config.type}' for remote '{remote_config.name}'"
            )


async def connect_client(client: AsyncFileClient) -> AsyncFileClient:
    """Connect ``client``; on failure it is disposed and the error re-raised."""
    try:
        await client.connect()
    except Exception:
        await client.dispose()
        raise
    return client


async def open_connection(
    remote_config: BaseRemoteConfig,
    *,
    before_upload: Optional[BeforeUploadCallback] = None,
    upload_completed: Optional[UploadCompletedCallback] = None,
    value_provider: Optional[ValuesProvider] = None,
) -> AsyncFileClient:
    """Create and connect a client, running its ``connected`` hooks."""
    client = create_client(
        remote_config,
        before_upload=before_upload,
        upload_completed=upload_completed,
        value_provider=value_provider,
    )
    logger.debug("connecting to '%s'", client.name())
    return await connect_client(client)
