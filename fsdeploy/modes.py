"""Per-file permission modes (SFTP) and ACLs (S3) applied on upload."""

import logging
import re
from typing import Any, Callable, Dict, List, Optional, Pattern, Tuple

from fsdeploy.exceptions import ValidationError

logger = logging.getLogger(__name__)

DEFAULT_ACL = "public-read"

FileAclDetector = Callable[[str, str], Optional[str]]


def parse_mode(value: Any) -> int:
    """Octal mode from ``644``, ``"0755"`` or an already parsed int."""
    if isinstance(value, bool):
        raise ValidationError(f"Invalid file mode: {value!r}")
    try:
        return int(str(value).strip(), 8)
    except ValueError:
        raise ValidationError(f"Invalid file mode: {value!r}")


def glob_to_regex(pattern: str) -> Pattern[str]:
    """Compile a glob where ``*`` stays inside one segment and ``**`` spans many.

    Matching is case-insensitive and ``*`` also matches dot files.
    """
    i, n = 0, len(pattern)
    parts: List[str] = []
    while i < n:
        c = pattern[i]
        if pattern.startswith("**/", i):
            parts.append("(?:.*/)?")
            i += 3
        elif pattern.startswith("**", i):
            parts.append(".*")
            i += 2
        elif c == "*":
            parts.append("[^/]*")
            i += 1
        elif c == "?":
            parts.append("[^/]")
            i += 1
        elif c == "[":
            end = pattern.find("]", i + 1)
            if end < 0:
                parts.append(re.escape(c))
                i += 1
            else:
                body = pattern[i + 1:end]
                if body.startswith("!"):
                    body = "^" + body[1:]
                parts.append(f"[{body}]")
                i = end + 1
        else:
            parts.append(re.escape(c))
            i += 1
    return re.compile("".join(parts) + r"\Z", re.IGNORECASE)


class FileModeResolver:
    """First matching glob pattern decides the mode of an uploaded file.

    ``modes`` is either a single mode, used for every file, or a mapping of
    patterns to modes. Patterns are matched against the rooted remote path
    (``/dir/file``); a pattern without a leading slash is rooted implicitly.
    """

    def __init__(self, modes: Any = None) -> None:
        self._patterns: List[Tuple[str, Pattern[str], int]] = []

        if modes is None:
            return
        if not isinstance(modes, dict):
            modes = {"**/*": modes}

        for pattern, mode in modes.items():
            rooted = pattern if pattern.strip().startswith("/") else "/" + pattern
            self._patterns.append((pattern, glob_to_regex(rooted.strip()), parse_mode(mode)))

    def __bool__(self) -> bool:
        return bool(self._patterns)

    @property
    def patterns(self) -> Dict[str, int]:
        return {pattern: mode for pattern, _, mode in self._patterns}

    def resolve(self, path: str) -> Optional[int]:
        if not self._patterns:
            return None

        if not path.startswith("/"):
            path = "/" + path

        for pattern, regex, mode in self._patterns:
            if regex.match(path):
                logger.info("'%s' matches with mode pattern '%s'", path, pattern)
                return mode

        logger.info("'%s' does NOT match with a mode pattern", path)
        return None


def get_acl_safe(acl: Optional[str]) -> str:
    acl = (acl or "").strip().lower()
    return acl or DEFAULT_ACL


def resolve_acl(
    path: str, default_acl: Optional[str], detector: Optional[FileAclDetector] = None
) -> Optional[str]:
    """ACL for one S3 key; the detector receives the key and the default ACL.

    An empty detector result falls back to the default ACL.
    """
    default_acl = get_acl_safe(default_acl)
    if detector is None:
        return default_acl

    acl = (detector(path, default_acl) or "").strip().lower()
    return acl or default_acl
