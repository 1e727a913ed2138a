"""Continuation-token driven "fetch every page" loop."""

from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Generic, List, Optional, Sequence, TypeVar

T = TypeVar("T")


class _NotStarted:
    def __repr__(self) -> str:
        return "NOT_STARTED"

    def __bool__(self) -> bool:
        return False


NOT_STARTED: Any = _NotStarted()


@dataclass
class Page(Generic[T]):
    items: Sequence[T] = field(default_factory=list)
    next_cursor: Optional[Any] = None


PageFetcher = Callable[[Any], Awaitable[Optional[Page[T]]]]


async def fetch_all(fetch_page: PageFetcher) -> List[T]:
    """Call ``fetch_page`` until it reports no further cursor.

    The first call receives :data:`NOT_STARTED`, every following call the
    cursor returned by the previous page. Pages are requested strictly one
    after another; an exception from any page propagates and nothing is
    returned.
    """
    cursor: Any = NOT_STARTED
    result: List[T] = []

    while True:
        page = await fetch_page(cursor)
        if page is None:
            break

        result.extend(item for item in page.items if item is not None)

        if page.next_cursor is None or page.next_cursor == "":
            break
        cursor = page.next_cursor

    return result
