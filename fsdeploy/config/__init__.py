"""Configuration management for fsdeploy."""

from .base import (
    DEFAULT_CONFIG_PATH,
    BaseRemoteConfig,
    Config,
    ConfigError,
    RemoteNotFoundError,
    ValidationError,
)
from .remotes import (
    BlobConfig,
    DropboxConfig,
    FtpConfig,
    S3Config,
    S3Credentials,
    SftpConfig,
    SlackConfig,
)

__all__ = [
    "DEFAULT_CONFIG_PATH",
    "Config",
    "BaseRemoteConfig",
    "ConfigError",
    "RemoteNotFoundError",
    "ValidationError",
    "FtpConfig",
    "SftpConfig",
    "S3Config",
    "S3Credentials",
    "BlobConfig",
    "DropboxConfig",
    "SlackConfig",
]
