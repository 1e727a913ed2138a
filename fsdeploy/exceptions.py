"""Centralized exception definitions for fsdeploy."""

from typing import Optional


class FsdeployError(Exception):
    """Base exception for all fsdeploy errors."""


# Configuration Exceptions


class ConfigError(FsdeployError):
    """Base exception for configuration errors."""


class RemoteNotFoundError(ConfigError):
    """Exception raised when a remote configuration is not found."""


class ValidationError(ConfigError):
    """Exception raised when configuration validation fails."""


class CredentialTypeNotSupportedError(ConfigError):
    """Exception raised for an unknown S3 credential type."""


# Client/Connection Exceptions


class ClientError(FsdeployError):
    """Base exception for client operation errors."""


class ClientConnectionError(ClientError):
    """Failed to connect to remote server."""


class AuthenticationError(ClientConnectionError):
    """Authentication failed."""


class ClientDisposedError(ClientError):
    """Operation on a client that has already been disposed."""


class ListingError(ClientError):
    """Directory listing failed."""


class TransferError(ClientError):
    """File transfer (get/put) failed."""


class NotFoundError(ClientError):
    """Remote or local file not found."""


class CommandHookError(ClientError):
    """A command hook could not be processed."""


# Download Exceptions


class DownloadError(FsdeployError):
    """Base exception for download-by-URL errors."""


class UnsupportedProtocolError(DownloadError):
    """Raised when an unsupported protocol is specified."""


class HttpError(DownloadError):
    """Non-2xx response for an HTTP download."""

    def __init__(self, status_code: int, reason: Optional[str] = None) -> None:
        self.status_code = status_code
        self.reason = reason or ""
        super().__init__(f"{self.kind} error {status_code}: '{self.reason}'")

    kind = "Unknown HTTP"


class HttpClientError(HttpError):
    """4xx response."""

    kind = "HTTP client"


class HttpServerError(HttpError):
    """5xx response."""

    kind = "HTTP server"


class HttpUnknownError(HttpError):
    """Any other non-2xx response."""


class MissingDependencyError(FsdeployError):
    """Raised when required dependencies are not installed."""
