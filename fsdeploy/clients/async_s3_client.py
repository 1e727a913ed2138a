"""Async S3 client implementation using aioboto3."""

import json
import logging
import mimetypes
import os
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Optional, Union

from fsdeploy.clients.async_client import AsyncFileClient
from fsdeploy.config.remotes import S3Credentials
from fsdeploy.exceptions import (
    ClientConnectionError,
    CredentialTypeNotSupportedError,
    MissingDependencyError,
    NotFoundError,
)
from fsdeploy.filesystem import FileSystemEntry
from fsdeploy.listing import ObjectInfo, reconcile_listing
from fsdeploy.modes import FileAclDetector, get_acl_safe, resolve_acl
from fsdeploy.pagination import NOT_STARTED, Page, fetch_all
from fsdeploy.paths import to_s3_path
from fsdeploy.scopes import find_file, resolve_scopes
from fsdeploy.tempfiles import read_file
from fsdeploy.upload import BeforeUploadCallback, UploadCompletedCallback
from fsdeploy.values import Value, ValuesProvider, as_value_list, replace_with_values

try:
    import aioboto3
    from aiobotocore.session import get_session
    AIOBOTO3_AVAILABLE = True
except ImportError:
    AIOBOTO3_AVAILABLE = False

logger = logging.getLogger(__name__)

DEFAULT_BUCKET = "fsdeploy"
DEFAULT_CONTENT_TYPE = "application/octet-stream"
AWS_DIR = Path.home() / ".aws"


class CredentialType(Enum):
    DEFAULT = "default"
    STATIC = "static"
    ENVIRONMENT = "environment"
    FILE = "file"
    SHARED = "shared"

    @classmethod
    def parse(cls, value: Optional[str]) -> "CredentialType":
        name = (value or "").strip().lower()
        if name == "":
            return cls.SHARED
        for member in cls:
            if member.value == name:
                return member
        raise CredentialTypeNotSupportedError(
            f"Credential type '{value}' is not supported"
        )


@dataclass
class SessionSettings:
    """Keyword arguments of the aioboto3 session plus botocore config variables."""

    session_kwargs: Dict[str, Any] = field(default_factory=dict)
    config_variables: Dict[str, Any] = field(default_factory=dict)


def _pick(data: Dict[str, Any], *keys: str) -> Optional[str]:
    for k in keys:
        v = data.get(k)
        if v is not None and str(v).strip() != "":
            return str(v).strip()
    return None


def _keys_from_mapping(data: Dict[str, Any]) -> Dict[str, Any]:
    kwargs: Dict[str, Any] = {}
    access_key = _pick(data, "aws_access_key_id", "access_key_id", "accessKeyId")
    secret_key = _pick(data, "aws_secret_access_key", "secret_access_key", "secretAccessKey")
    token = _pick(data, "aws_session_token", "session_token", "sessionToken")
    if access_key:
        kwargs["aws_access_key_id"] = access_key
    if secret_key:
        kwargs["aws_secret_access_key"] = secret_key
    if token:
        kwargs["aws_session_token"] = token
    return kwargs


def static_settings(config: Any) -> SessionSettings:
    return SessionSettings(session_kwargs=_keys_from_mapping(dict(config or {})))


def environment_settings(config: Any, values: List[Value]) -> SessionSettings:
    """Keys from ``<PREFIX>_ACCESS_KEY_ID`` etc., the prefix defaulting to AWS."""
    prefix = (replace_with_values(values, config) or "").strip() if config else ""
    prefix = prefix or "AWS"
    return SessionSettings(
        session_kwargs=_keys_from_mapping(
            {
                "access_key_id": os.environ.get(f"{prefix}_ACCESS_KEY_ID"),
                "secret_access_key": os.environ.get(f"{prefix}_SECRET_ACCESS_KEY"),
                "session_token": os.environ.get(f"{prefix}_SESSION_TOKEN"),
            }
        )
    )


def file_settings(document: Dict[str, Any]) -> SessionSettings:
    return SessionSettings(session_kwargs=_keys_from_mapping(document))


def shared_settings(
    config: Any, values: List[Value], credentials_file: Optional[Path]
) -> SessionSettings:
    if isinstance(config, dict):
        profile = config.get("profile")
    else:
        profile = config
    profile = (replace_with_values(values, profile) or "").strip() if profile else ""

    settings = SessionSettings()
    if profile:
        settings.session_kwargs["profile_name"] = profile
    if credentials_file is not None:
        settings.config_variables["credentials_file"] = str(credentials_file)
    return settings


class AsyncS3Client(AsyncFileClient):
    """Async S3-compatible storage client using aioboto3.

    Keys are the canonical paths. Directories only exist as common key
    prefixes, so nothing has to be created before an upload.
    """

    client_type = "s3"

    def __init__(
        self,
        bucket: Optional[str] = None,
        *,
        acl: Optional[str] = None,
        file_acl: Optional[FileAclDetector] = None,
        credentials: Union[S3Credentials, Dict[str, Any], None] = None,
        endpoint_url: Optional[str] = None,
        region_name: Optional[str] = None,
        directory_scope_provider: Optional[Callable[[], Iterable[str]]] = None,
        before_upload: Optional[BeforeUploadCallback] = None,
        upload_completed: Optional[UploadCompletedCallback] = None,
        value_provider: Optional[ValuesProvider] = None,
        name: Optional[str] = None,
    ) -> None:
        """
        Initialize the async S3 client.

        Args:
            bucket: Name of the S3 bucket to use
            acl: Default ACL of uploaded objects (default: public-read)
            file_acl: Function returning the ACL of one key, given the key
                and the default ACL
            credentials: Credential strategy and its configuration
            endpoint_url: URL to the S3-compatible service endpoint
            region_name: Optional AWS region name
            directory_scope_provider: Directories to search credential files
                in (default: ~/.aws)
            name: Human-readable name for this client
        """
        if not AIOBOTO3_AVAILABLE:
            raise MissingDependencyError(
                "aioboto3 is required for S3 support. "
                "Install with: pip install aioboto3"
            )

        super().__init__(
            name=name,
            before_upload=before_upload,
            upload_completed=upload_completed,
            value_provider=value_provider,
        )

        if isinstance(credentials, dict):
            credentials = S3Credentials(
                type=credentials.get("type"), config=credentials.get("config")
            )

        self.bucket = (bucket or "").strip() or DEFAULT_BUCKET
        self.acl = get_acl_safe(acl)
        self.file_acl = file_acl
        self.credentials = credentials
        self.credential_type = CredentialType.parse(
            credentials.type if credentials else None
        )
        self.endpoint_url = endpoint_url
        self.region_name = region_name
        self.directory_scope_provider = directory_scope_provider

        self._session: Any = None
        self._s3_client: Any = None
        self._s3_client_ctx: Any = None

    def name(self) -> str:
        return self._name or f"s3://{self.bucket}"

    def to_remote_path(self, path: str) -> str:
        return to_s3_path(path)

    def _provided_values(self) -> List[Value]:
        if self.value_provider is None:
            return []
        return as_value_list(self.value_provider())

    def _scopes(self) -> List[Path]:
        scopes = self.directory_scope_provider() if self.directory_scope_provider else None
        return resolve_scopes(scopes, base_dir=AWS_DIR)

    async def session_settings(self) -> SessionSettings:
        """Map the configured credential strategy to session settings."""
        values = self._provided_values()
        config = self.credentials.config if self.credentials else None

        match self.credential_type:
            case CredentialType.DEFAULT:
                return SessionSettings()
            case CredentialType.STATIC:
                return static_settings(config)
            case CredentialType.ENVIRONMENT:
                return environment_settings(config, values)
            case CredentialType.FILE:
                if not config or str(config).strip() == "":
                    return SessionSettings()
                path = find_file(str(config), self._scopes(), values)
                document = json.loads(await read_file(str(path)))
                return file_settings(document)
            case CredentialType.SHARED:
                filename = config.get("filename") if isinstance(config, dict) else None
                credentials_file = None
                if filename and str(filename).strip():
                    credentials_file = find_file(str(filename), self._scopes(), values)
                return shared_settings(config, values, credentials_file)

    async def _connect(self) -> None:
        try:
            settings = await self.session_settings()

            botocore_session = get_session()
            for key, value in settings.config_variables.items():
                botocore_session.set_config_variable(key, value)

            self._session = aioboto3.Session(
                botocore_session=botocore_session,
                region_name=self.region_name,
                **settings.session_kwargs,
            )

            self._s3_client_ctx = self._session.client(
                "s3",
                endpoint_url=self.endpoint_url,
            )
            self._s3_client = await self._s3_client_ctx.__aenter__()

        except (NotFoundError, CredentialTypeNotSupportedError):
            raise
        except Exception as e:
            raise ClientConnectionError(f"Failed to create S3 client: {e}")

    async def _close(self) -> None:
        ctx, self._s3_client_ctx = self._s3_client_ctx, None
        self._s3_client = None
        if ctx is not None:
            await ctx.__aexit__(None, None, None)

    @property
    def s3(self) -> Any:
        assert self._s3_client is not None, "Client not connected"
        return self._s3_client

    async def _delete_file(self, path: str) -> None:
        await self.s3.delete_object(Bucket=self.bucket, Key=to_s3_path(path))

    async def _download_file(self, path: str) -> bytes:
        response = await self.s3.get_object(Bucket=self.bucket, Key=to_s3_path(path))
        async with response["Body"] as body:
            return await body.read()

    def _resolve_mode(self, remote_path: str) -> Optional[str]:
        return resolve_acl(remote_path, self.acl, self.file_acl)

    async def _put(self, remote_path: str, data: bytes, mode: Any) -> None:
        content_type, _ = mimetypes.guess_type(remote_path)

        params: Dict[str, Any] = {
            "Bucket": self.bucket,
            "Key": remote_path,
            "Body": data,
            "ContentType": content_type or DEFAULT_CONTENT_TYPE,
        }
        if mode:
            params["ACL"] = mode

        await self.s3.put_object(**params)

    async def _list_page(self, prefix: str, cursor: Any) -> Page[ObjectInfo]:
        params: Dict[str, Any] = {"Bucket": self.bucket, "Prefix": prefix}
        if cursor is not NOT_STARTED:
            params["ContinuationToken"] = cursor

        response = await self.s3.list_objects_v2(**params)

        items = [
            ObjectInfo(
                key=content["Key"],
                size=content.get("Size"),
                last_modified=content.get("LastModified"),
            )
            for content in response.get("Contents", [])
        ]

        next_cursor = None
        if response.get("IsTruncated"):
            next_cursor = response.get("NextContinuationToken")
        return Page(items=items, next_cursor=next_cursor)

    async def _list_directory(self, path: str) -> List[FileSystemEntry]:
        prefix = to_s3_path(path)
        key_prefix = prefix + "/" if prefix else ""

        objects = await fetch_all(lambda cursor: self._list_page(key_prefix, cursor))
        return reconcile_listing(objects, prefix, self.download_file)
