"""Lazy creation of remote directories before uploads."""

import logging
from typing import Any, Awaitable, Callable, Set

from fsdeploy.paths import dirname, normalize_path

logger = logging.getLogger(__name__)

DirectoryAction = Callable[[str], Awaitable[Any]]


class DirectoryEnsurer:
    """Makes sure remote directories exist, once per connection.

    ``probe`` is a cheap existence check that raises when the directory is
    missing, ``mkdir`` creates it. Both receive the canonical path. Once a
    directory has been probed or created it is not looked at again until
    :meth:`reset` is called, which clients do whenever they (re)connect.
    """

    def __init__(
        self,
        probe: DirectoryAction,
        mkdir: DirectoryAction,
        *,
        supports_deep_creation: bool = True,
    ) -> None:
        self._probe = probe
        self._mkdir = mkdir
        self.supports_deep_creation = supports_deep_creation
        self._checked: Set[str] = set()

    @property
    def checked_directories(self) -> Set[str]:
        return set(self._checked)

    def reset(self) -> None:
        self._checked.clear()

    async def ensure(self, directory: str) -> bool:
        """Ensure ``directory``, creating its ancestors first if needed."""
        if not self.supports_deep_creation:
            await self.ensure_parent_directory(directory)
        return await self.ensure_directory(directory)

    async def ensure_directory(self, directory: str) -> bool:
        """Returns True if the directory has been checked or created now."""
        directory = normalize_path(directory)
        if directory == "":
            return False

        if directory in self._checked:
            return False

        try:
            await self._probe(directory)
        except Exception:
            logger.debug("creating remote directory '%s'", directory)
            await self._mkdir(directory)

        self._checked.add(directory)
        return True

    async def ensure_parent_directory(self, directory: str) -> bool:
        directory = normalize_path(directory)
        parent = dirname(directory)
        if parent == directory or parent == "":
            return False

        await self.ensure_parent_directory(parent)
        return await self.ensure_directory(parent)
