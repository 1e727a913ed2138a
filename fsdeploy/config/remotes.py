from dataclasses import dataclass, field
from typing import Dict, Any, List, Optional

from fsdeploy.exceptions import CredentialTypeNotSupportedError
from fsdeploy.hooks import CommandSettings
from fsdeploy.modes import FileModeResolver
from .base import BaseRemoteConfig, ValidationError, remote_type


def _validate_port(kind: str, port: Any) -> None:
    if isinstance(port, bool) or not isinstance(port, int) or port < 1 or port > 65535:
        raise ValidationError(f"{kind} port must be an integer between 1 and 65535")


def _validate_bool(name: str, value: Any) -> None:
    if not isinstance(value, bool):
        raise ValidationError(f"'{name}' must be a boolean")


def _string_list(name: str, value: Any) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        value = [value]
    if not isinstance(value, list):
        raise ValidationError(f"'{name}' must be a string or a list of strings")
    return [str(v).strip() for v in value if str(v).strip()]


@remote_type("ftp")
@dataclass
class FtpConfig(BaseRemoteConfig):
    host: str = "127.0.0.1"
    port: int = 21
    user: str = "anonymous"
    password: str = ""
    tls: bool = False
    supports_deep_directory_creation: bool = True
    commands: CommandSettings = field(default_factory=CommandSettings)

    @classmethod
    def from_dict(cls, name: str, data: Dict[str, Any]) -> "FtpConfig":
        return cls(
            name=name,
            type="ftp",
            host=data.get("host", "127.0.0.1"),
            port=data.get("port", 21),
            user=data.get("user", "anonymous"),
            password=data.get("password", ""),
            tls=data.get("tls", False),
            supports_deep_directory_creation=data.get(
                "supports_deep_directory_creation", True
            ),
            commands=CommandSettings.from_dict(data.get("commands")),
        )

    def validate(self) -> None:
        if self.type != "ftp":
            raise ValidationError(f"Expected type 'ftp', got '{self.type}'")

        if not self.host:
            raise ValidationError("FTP host cannot be empty")

        _validate_port("FTP", self.port)
        _validate_bool("tls", self.tls)
        _validate_bool(
            "supports_deep_directory_creation", self.supports_deep_directory_creation
        )

    def client_options(self) -> Dict[str, Any]:
        return dict(
            host=self.host,
            port=self.port,
            user=self.user,
            password=self.password,
            tls=self.tls,
            commands=self.commands,
            supports_deep_directory_creation=self.supports_deep_directory_creation,
            name=self.name,
        )


@remote_type("sftp")
@dataclass
class SftpConfig(BaseRemoteConfig):
    host: str = "127.0.0.1"
    port: int = 22
    user: Optional[str] = None
    password: Optional[str] = None
    private_key: Optional[str] = None
    private_key_passphrase: Optional[str] = None
    agent: Optional[str] = None
    agent_forward: bool = False
    hash_algorithm: str = "md5"
    hashes: List[str] = field(default_factory=list)
    ready_timeout: int = 20000
    try_keyboard: bool = False
    debug: bool = False
    modes: Any = None
    supports_deep_directory_creation: bool = False
    commands: CommandSettings = field(default_factory=CommandSettings)

    @classmethod
    def from_dict(cls, name: str, data: Dict[str, Any]) -> "SftpConfig":
        return cls(
            name=name,
            type="sftp",
            host=data.get("host", "127.0.0.1"),
            port=data.get("port", 22),
            user=data.get("user"),
            password=data.get("password"),
            private_key=data.get("private_key"),
            private_key_passphrase=data.get("private_key_passphrase"),
            agent=data.get("agent"),
            agent_forward=data.get("agent_forward", False),
            hash_algorithm=data.get("hash_algorithm", "md5"),
            hashes=_string_list("hashes", data.get("hashes")),
            ready_timeout=data.get("ready_timeout", 20000),
            try_keyboard=data.get("try_keyboard", False),
            debug=data.get("debug", False),
            modes=data.get("modes"),
            supports_deep_directory_creation=data.get(
                "supports_deep_directory_creation", False
            ),
            commands=CommandSettings.from_dict(data.get("commands")),
        )

    def validate(self) -> None:
        if self.type != "sftp":
            raise ValidationError(f"Expected type 'sftp', got '{self.type}'")

        if not self.host:
            raise ValidationError("SFTP host cannot be empty")

        _validate_port("SFTP", self.port)

        if (
            isinstance(self.ready_timeout, bool)
            or not isinstance(self.ready_timeout, int)
            or self.ready_timeout < 1
        ):
            raise ValidationError("'ready_timeout' must be a positive number of milliseconds")

        for name in ("agent_forward", "try_keyboard", "debug", "supports_deep_directory_creation"):
            _validate_bool(name, getattr(self, name))

        # raises on invalid octal modes
        FileModeResolver(self.modes)

    def client_options(self) -> Dict[str, Any]:
        return dict(
            host=self.host,
            port=self.port,
            user=self.user,
            password=self.password,
            private_key=self.private_key,
            private_key_passphrase=self.private_key_passphrase,
            agent=self.agent,
            agent_forward=self.agent_forward,
            hash_algorithm=self.hash_algorithm,
            hashes=self.hashes,
            ready_timeout=self.ready_timeout,
            try_keyboard=self.try_keyboard,
            debug=self.debug,
            modes=self.modes,
            commands=self.commands,
            supports_deep_directory_creation=self.supports_deep_directory_creation,
            name=self.name,
        )


S3_CREDENTIAL_TYPES = ("default", "static", "environment", "file", "shared")


@dataclass
class S3Credentials:
    """Credential strategy of an S3 remote and its strategy-specific config."""

    type: Optional[str] = None
    config: Any = None

    @classmethod
    def from_dict(cls, data: Any) -> Optional["S3Credentials"]:
        if data is None:
            return None
        if isinstance(data, S3Credentials):
            return data
        if not isinstance(data, dict):
            raise ValidationError("'credentials' must be a table")
        return cls(type=data.get("type"), config=data.get("config"))

    def validate(self) -> None:
        kind = (self.type or "").strip().lower()
        if kind and kind not in S3_CREDENTIAL_TYPES:
            raise CredentialTypeNotSupportedError(
                f"Credential type '{self.type}' is not supported"
            )


@remote_type("s3")
@dataclass
class S3Config(BaseRemoteConfig):
    bucket: Optional[str] = None
    acl: Optional[str] = None
    region_name: Optional[str] = None
    endpoint_url: Optional[str] = None
    credentials: Optional[S3Credentials] = None
    directory_scopes: List[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, name: str, data: Dict[str, Any]) -> "S3Config":
        bucket = data.get("bucket")
        url = data.get("url")

        if url and url.startswith("s3://"):
            bucket = url[5:].strip("/")

        return cls(
            name=name,
            type="s3",
            bucket=bucket,
            acl=data.get("acl"),
            region_name=data.get("region_name"),
            endpoint_url=data.get("endpoint_url"),
            credentials=S3Credentials.from_dict(data.get("credentials")),
            directory_scopes=_string_list("directory_scopes", data.get("directory_scopes")),
        )

    def validate(self) -> None:
        if self.type != "s3":
            raise ValidationError(f"Expected type 's3', got '{self.type}'")

        if not self.bucket:
            raise ValidationError("S3 configuration requires either 'url' or 'bucket'")

        if self.credentials:
            self.credentials.validate()

    def client_options(self) -> Dict[str, Any]:
        scopes = list(self.directory_scopes)
        return dict(
            bucket=self.bucket,
            acl=self.acl,
            credentials=self.credentials,
            endpoint_url=self.endpoint_url,
            region_name=self.region_name,
            directory_scope_provider=(lambda: scopes) if scopes else None,
            name=self.name,
        )


@remote_type("blob")
@dataclass
class BlobConfig(BaseRemoteConfig):
    """Azure Blob Storage configuration."""

    account: Optional[str] = None
    access_key: Optional[str] = None
    container: Optional[str] = None
    host: Optional[str] = None
    connection_string: Optional[str] = None
    use_development_storage: bool = False
    hash_content: bool = False

    @classmethod
    def from_dict(cls, name: str, data: Dict[str, Any]) -> "BlobConfig":
        return cls(
            name=name,
            type="blob",
            account=data.get("account"),
            access_key=data.get("access_key"),
            container=data.get("container"),
            host=data.get("host"),
            connection_string=data.get("connection_string"),
            use_development_storage=data.get("use_development_storage", False),
            hash_content=data.get("hash_content", False),
        )

    def validate(self) -> None:
        if self.type != "blob":
            raise ValidationError(f"Expected type 'blob', got '{self.type}'")

        _validate_bool("use_development_storage", self.use_development_storage)
        _validate_bool("hash_content", self.hash_content)

        if (
            not self.use_development_storage
            and not self.connection_string
            and not self.account
            and not self.host
        ):
            raise ValidationError(
                "Blob configuration requires 'account', 'host', 'connection_string' "
                "or 'use_development_storage'"
            )

    def client_options(self) -> Dict[str, Any]:
        return dict(
            account=self.account,
            access_key=self.access_key,
            container=self.container,
            host=self.host,
            connection_string=self.connection_string,
            use_development_storage=self.use_development_storage,
            hash_content=self.hash_content,
            name=self.name,
        )


@remote_type("dropbox")
@dataclass
class DropboxConfig(BaseRemoteConfig):
    access_token: str = ""

    @classmethod
    def from_dict(cls, name: str, data: Dict[str, Any]) -> "DropboxConfig":
        return cls(name=name, type="dropbox", access_token=data.get("access_token", ""))

    def validate(self) -> None:
        if self.type != "dropbox":
            raise ValidationError(f"Expected type 'dropbox', got '{self.type}'")

        if not self.access_token:
            raise ValidationError("Dropbox configuration requires 'access_token'")

    def client_options(self) -> Dict[str, Any]:
        return dict(access_token=self.access_token, name=self.name)


@remote_type("slack")
@dataclass
class SlackConfig(BaseRemoteConfig):
    token: str = ""

    @classmethod
    def from_dict(cls, name: str, data: Dict[str, Any]) -> "SlackConfig":
        return cls(name=name, type="slack", token=data.get("token", ""))

    def validate(self) -> None:
        if self.type != "slack":
            raise ValidationError(f"Expected type 'slack', got '{self.type}'")

        if not self.token:
            raise ValidationError("Slack configuration requires 'token'")

    def client_options(self) -> Dict[str, Any]:
        return dict(token=self.token, name=self.name)
