"""Named values and ``${name}`` placeholder substitution."""

import logging
import re
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, Iterable, List, Optional, Union

logger = logging.getLogger(__name__)

_PLACEHOLDER = re.compile(r"\$\{([^}]*)\}")


def normalize_value_name(name: Any) -> str:
    """Value names compare case-insensitively and ignore surrounding blanks."""
    if name is None:
        return ""
    return str(name).strip().lower()


def to_string_safe(value: Any, default: str = "") -> str:
    if value is None:
        return default
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return str(value)


class Value(ABC):
    """A named, lazily resolved value."""

    def __init__(self, name: str) -> None:
        self.name = normalize_value_name(name)

    @property
    @abstractmethod
    def value(self) -> Any:
        """The current value."""

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.name!r})"


class StaticValue(Value):
    def __init__(self, name: str, value: Any) -> None:
        super().__init__(name)
        self._value = value

    @property
    def value(self) -> Any:
        return self._value


class FunctionValue(Value):
    def __init__(self, name: str, func: Callable[[], Any]) -> None:
        super().__init__(name)
        self._func = func

    @property
    def value(self) -> Any:
        return self._func()


ValueList = Union[Value, Iterable[Value], None]
ValuesProvider = Callable[[], ValueList]


def as_value_list(values: ValueList) -> List[Value]:
    if values is None:
        return []
    if isinstance(values, Value):
        return [values]
    return [v for v in values if v is not None]


def to_value_storage(values: ValueList) -> Dict[str, Value]:
    """Map of normalized name to value; when names repeat, the last one wins."""
    storage: Dict[str, Value] = {}
    for v in as_value_list(values):
        storage[v.name] = v
    return storage


def replace_with_values(values: ValueList, template: Any) -> Optional[str]:
    """Replace every ``${name}`` in ``template`` with the matching value.

    Unknown placeholders are left untouched. A value that cannot be read is
    logged and its placeholder is kept as well.
    """
    if template is None:
        return None

    storage = to_value_storage(values)

    def substitute(match: "re.Match[str]") -> str:
        name = normalize_value_name(match.group(1))
        v = storage.get(name)
        if v is None:
            return match.group(0)
        try:
            return to_string_safe(v.value)
        except Exception:
            logger.debug("could not resolve value '%s'", name, exc_info=True)
            return match.group(0)

    return _PLACEHOLDER.sub(substitute, to_string_safe(template))


class ValueStore:
    """Mutable name/value map owned by one client connection.

    ``values`` exposes the entries as :class:`Value` objects that always read
    the current content of the store.
    """

    def __init__(self) -> None:
        self._data: Dict[str, str] = {}
        self._values: List[Value] = []

    def set(self, name: str, value: Any) -> None:
        name = normalize_value_name(name)
        if name not in self._data:
            self._values.append(FunctionValue(name, lambda n=name: self._data.get(n)))
        self._data[name] = to_string_safe(value)

    def get(self, name: str) -> Optional[str]:
        return self._data.get(normalize_value_name(name))

    def clear(self) -> None:
        self._data.clear()
        self._values.clear()

    @property
    def values(self) -> List[Value]:
        return list(self._values)

    def as_dict(self) -> Dict[str, str]:
        return dict(self._data)

    def __contains__(self, name: object) -> bool:
        return normalize_value_name(name) in self._data

    def __len__(self) -> int:
        return len(self._data)
