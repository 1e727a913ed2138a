"""Lookup of local files relative to a list of scope directories."""

from pathlib import Path
from typing import Iterable, List, Optional, Union

from fsdeploy.exceptions import NotFoundError
from fsdeploy.values import ValueList, replace_with_values

ScopeList = Union[str, Path, Iterable[Union[str, Path]], None]


def resolve_scopes(scopes: ScopeList, base_dir: Union[str, Path, None] = None) -> List[Path]:
    """Absolute scope directories; relative ones are joined to ``base_dir``.

    ``base_dir`` defaults to the current directory and is also the only scope
    when none is given.
    """
    base = Path(base_dir) if base_dir is not None else Path.cwd()

    if scopes is None:
        scopes = []
    elif isinstance(scopes, (str, Path)):
        scopes = [scopes]

    result: List[Path] = []
    for s in scopes:
        if s is None or str(s).strip() == "":
            continue
        p = Path(str(s)).expanduser()
        if not p.is_absolute():
            p = base / p
        result.append(p.resolve())

    if not result:
        result.append(base.resolve())
    return result


def find_file(
    path: Union[str, Path],
    scopes: Iterable[Path],
    values: ValueList = None,
) -> Path:
    """First existing regular file for ``path``.

    An absolute path is only checked as is. A relative path (after ``${name}``
    substitution) is tried below every scope in order.
    """
    raw = str(path)
    p = Path(raw).expanduser()

    if p.is_absolute():
        if p.is_file():
            return p.resolve()
    else:
        relative = replace_with_values(values, raw) if values else raw
        for scope in scopes:
            candidate = (Path(scope) / relative).resolve()
            if candidate.is_file():
                return candidate

    raise NotFoundError(f"File '{raw}' not found")
