import tomllib
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, IO, List, Optional, Type, TypeVar, Union

from fsdeploy.exceptions import ConfigError, RemoteNotFoundError, ValidationError

__all__ = ["ConfigError", "RemoteNotFoundError", "ValidationError", "BaseRemoteConfig", "Config"]

DEFAULT_CONFIG_PATH = Path("~/.fsdeploy.toml")

R = TypeVar("R", bound="BaseRemoteConfig")

_REMOTE_TYPES: Dict[str, Type["BaseRemoteConfig"]] = {}


def remote_type(name: str) -> Callable[[Type[R]], Type[R]]:
    """Register a remote config class under the ``type`` value it handles."""

    def register(cls: Type[R]) -> Type[R]:
        _REMOTE_TYPES[name] = cls
        return cls

    return register


@dataclass
class BaseRemoteConfig(ABC):
    name: str
    type: str

    @classmethod
    @abstractmethod
    def from_dict(cls, name: str, data: Dict[str, Any]) -> "BaseRemoteConfig":
        """Build the remote from its TOML table, raising ValidationError."""

    @abstractmethod
    def validate(self) -> None:
        pass

    @abstractmethod
    def client_options(self) -> Dict[str, Any]:
        """Keyword arguments for the matching client class."""


def _parse_remote(name: str, data: Any) -> BaseRemoteConfig:
    if not isinstance(data, dict):
        raise ValidationError("must be a table")

    kind = str(data.get("type") or "").strip().lower()
    if not kind:
        raise ValidationError("missing 'type'")

    config_class = _REMOTE_TYPES.get(kind)
    if config_class is None:
        raise ValidationError(f"unknown type '{kind}'")

    remote = config_class.from_dict(name, data)
    remote.validate()
    return remote


@dataclass
class Config:
    """Remotes of a configuration file, keyed by their table name.

    Remotes that cannot be parsed are dropped and described in ``warnings``.
    """

    remotes: Dict[str, BaseRemoteConfig]
    warnings: List[str] = field(default_factory=list)

    @classmethod
    def from_path(cls, path: Union[str, Path, None] = None) -> "Config":
        config_path = Path(path or DEFAULT_CONFIG_PATH).expanduser()
        try:
            with open(config_path, "rb") as config_file:
                return cls.from_file(config_file)
        except OSError as e:
            raise ConfigError(f"Cannot open configuration file '{config_path}': {e}")

    @classmethod
    def from_file(cls, config_file: Optional[IO[bytes]]) -> "Config":
        if config_file is None:
            raise ConfigError("Configuration file not provided")

        try:
            data = tomllib.load(config_file)
        except tomllib.TOMLDecodeError as e:
            raise ConfigError(f"Failed to parse TOML configuration: {e}")

        return cls.from_dict(data)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Config":
        """Parse every remote table; raises ValidationError if none is usable."""
        config = cls(remotes={})

        for name, table in data.items():
            try:
                config.remotes[name] = _parse_remote(name, table)
            except (ConfigError, ValueError, TypeError) as e:
                config.warnings.append(f"Skipping remote '{name}': {e}")

        if not config.remotes:
            raise ValidationError("Configuration must contain at least one remote")
        return config

    def get_remote(self, name: str) -> BaseRemoteConfig:
        try:
            return self.remotes[name]
        except KeyError:
            available = ", ".join(self.remotes) or "none"
            raise RemoteNotFoundError(
                f"Remote '{name}' not found (available: {available})"
            ) from None

    def list_remotes(self) -> Dict[str, str]:
        return {name: remote.type for name, remote in self.remotes.items()}

    def get_warnings(self) -> List[str]:
        return list(self.warnings)
