"""Remote command hooks run around FTP and SFTP file operations."""

import logging
import posixpath
import re
from dataclasses import dataclass, field
from typing import (
    Any,
    Awaitable,
    Callable,
    Dict,
    Iterable,
    List,
    Optional,
    Sequence,
    Union,
)

from jinja2 import StrictUndefined, TemplateError
from jinja2.sandbox import SandboxedEnvironment

from fsdeploy.exceptions import CommandHookError, ValidationError
from fsdeploy.values import (
    StaticValue,
    Value,
    ValueList,
    ValuesProvider,
    ValueStore,
    as_value_list,
    normalize_value_name,
    replace_with_values,
    to_string_safe,
    to_value_storage,
)

logger = logging.getLogger(__name__)

HOOK_NAMES = (
    "before_delete",
    "deleted",
    "before_download",
    "downloaded",
    "before_upload",
    "uploaded",
    "connected",
)

_CAMEL_KEYS = {
    "beforeDelete": "before_delete",
    "beforeDownload": "before_download",
    "beforeUpload": "before_upload",
    "writeOutputTo": "write_output_to",
    "executeBeforeWriteOutputTo": "execute_before_write_output_to",
}


def _snake_keys(data: Dict[str, Any]) -> Dict[str, Any]:
    return {_CAMEL_KEYS.get(k, k): v for k, v in data.items()}


@dataclass
class CommandEntry:
    command: str = ""
    write_output_to: Optional[str] = None
    execute_before_write_output_to: Optional[str] = None

    @classmethod
    def from_value(cls, value: Any) -> "CommandEntry":
        """Bare strings become a plain command, mappings are read key by key."""
        if isinstance(value, CommandEntry):
            return value
        if isinstance(value, dict):
            data = _snake_keys(value)
            return cls(
                command=to_string_safe(data.get("command")),
                write_output_to=data.get("write_output_to"),
                execute_before_write_output_to=data.get(
                    "execute_before_write_output_to"
                ),
            )
        return cls(command=to_string_safe(value))


def _as_entries(value: Any, key: str) -> List[CommandEntry]:
    if value is None:
        return []
    if isinstance(value, (str, dict, CommandEntry)):
        value = [value]
    if not isinstance(value, (list, tuple)):
        raise ValidationError(f"'commands.{key}' must be a string or a list")
    return [CommandEntry.from_value(v) for v in value if v is not None]


@dataclass
class CommandSettings:
    """Hook lists of one FTP or SFTP remote."""

    before_delete: List[CommandEntry] = field(default_factory=list)
    deleted: List[CommandEntry] = field(default_factory=list)
    before_download: List[CommandEntry] = field(default_factory=list)
    downloaded: List[CommandEntry] = field(default_factory=list)
    before_upload: List[CommandEntry] = field(default_factory=list)
    uploaded: List[CommandEntry] = field(default_factory=list)
    connected: List[CommandEntry] = field(default_factory=list)
    encoding: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "CommandSettings":
        if data is None:
            return cls()
        if isinstance(data, CommandSettings):
            return data
        if not isinstance(data, dict):
            raise ValidationError("'commands' must be a table")

        data = _snake_keys(data)
        kwargs: Dict[str, Any] = {
            name: _as_entries(data.get(name), name) for name in HOOK_NAMES
        }

        encoding = data.get("encoding")
        if encoding is not None and not isinstance(encoding, str):
            raise ValidationError("'commands.encoding' must be a string")
        if encoding:
            kwargs["encoding"] = encoding.strip() or None

        return cls(**kwargs)


def values_for_file(remote_file: str) -> List[Value]:
    """``remote_dir``, ``remote_file`` and ``remote_name`` of a remote path."""
    return [
        StaticValue("remote_dir", posixpath.dirname(remote_file)),
        StaticValue("remote_file", remote_file),
        StaticValue("remote_name", posixpath.basename(remote_file)),
    ]


_NON_IDENTIFIER = re.compile(r"\W")

_environment = SandboxedEnvironment(undefined=StrictUndefined)


def evaluate_transform(
    expression: str,
    entry: CommandEntry,
    output: Optional[bytes],
    text: Optional[str],
    values: ValueList,
    target: str,
) -> Any:
    """Evaluate an output transform in a sandboxed expression environment.

    Every value is visible under its identifier-safe name and inside the
    ``values`` dict; ``command``, ``output`` and ``text`` describe the command
    that just ran, and ``target`` names the decoded output.
    """
    storage = to_value_storage(values)
    resolved: Dict[str, Any] = {}
    for name, v in storage.items():
        try:
            resolved[name] = v.value
        except Exception:
            logger.debug("could not resolve value '%s'", name, exc_info=True)

    context: Dict[str, Any] = {}
    for name, v in resolved.items():
        key = _NON_IDENTIFIER.sub("_", name)
        if key.isidentifier():
            context[key] = v

    context.update(
        command=entry,
        output=output,
        text=text,
        values=resolved,
    )
    target_key = _NON_IDENTIFIER.sub("_", normalize_value_name(target))
    if target_key.isidentifier():
        context[target_key] = text

    try:
        compiled = _environment.compile_expression(expression, undefined_to_none=False)
        return compiled(**context)
    except TemplateError as e:
        raise CommandHookError(f"Invalid transform '{expression}': {e}") from e
    except Exception as e:
        raise CommandHookError(f"Could not evaluate '{expression}': {e}") from e


HookSelector = Union[str, Callable[[CommandSettings], Sequence[CommandEntry]]]
CommandExecutor = Callable[[str], Awaitable[bytes]]


class CommandHookPipeline:
    """Runs configured hook commands through a raw command primitive.

    Captured outputs are written into the connection's :class:`ValueStore`,
    so commands later in the same batch (and later batches) can reference
    them with ``${name}``.
    """

    def __init__(
        self,
        settings: Optional[CommandSettings],
        execute: CommandExecutor,
        *,
        store: Optional[ValueStore] = None,
        value_provider: Optional[ValuesProvider] = None,
        default_encoding: str = "utf-8",
    ) -> None:
        self.settings = settings or CommandSettings()
        self._execute = execute
        self.store = store if store is not None else ValueStore()
        self._value_provider = value_provider
        self.default_encoding = default_encoding

    @property
    def encoding(self) -> str:
        return self.settings.encoding or self.default_encoding

    def _provided_values(self) -> List[Value]:
        if self._value_provider is None:
            return []
        return as_value_list(self._value_provider())

    def _select(self, selector: HookSelector) -> List[CommandEntry]:
        if isinstance(selector, str):
            entries = getattr(self.settings, selector)
        else:
            entries = selector(self.settings)
        return [CommandEntry.from_value(e) for e in entries or []]

    async def run(
        self, selector: HookSelector, extra_values: Iterable[Value] = ()
    ) -> List[Optional[bytes]]:
        """Execute the selected hooks strictly in order.

        Returns the raw output of every entry (``None`` for entries whose
        command was empty). The first failing command aborts the batch.
        """
        entries = self._select(selector)
        extra = list(extra_values)
        results: List[Optional[bytes]] = []

        for entry in entries:
            all_values = self._provided_values() + extra + self.store.values

            command = replace_with_values(all_values, entry.command)

            output: Optional[bytes] = None
            if command and command.strip():
                logger.debug("running hook command '%s'", command)
                output = await self._execute(command)

            results.append(output)

            write_to = normalize_value_name(entry.write_output_to)
            if write_to == "":
                continue

            text = None if output is None else output.decode(self.encoding)
            to_write: Any = text

            transform = to_string_safe(entry.execute_before_write_output_to)
            if transform.strip():
                to_write = evaluate_transform(
                    transform,
                    entry,
                    output,
                    text,
                    all_values + [StaticValue(write_to, text)],
                    write_to,
                )

            self.store.set(write_to, to_write)

        return results
