"""Cursor pagination for list endpoints.

Collection responses embed the absolute URL of the next page (``Paging/Next``
in XML, ``paging.next`` in JSON). Pages are fetched strictly one after another
because each URL comes from the previous page.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Generic, TypeVar

import structlog

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

log = structlog.get_logger()

T = TypeVar("T")


@dataclass(frozen=True)
class Page(Generic[T]):
    items: list[T] = field(default_factory=list)
    next_url: str | None = None


async def walk_pages(
    start_url: str,
    fetch_page: Callable[[str], Awaitable[Page[T]]],
) -> list[T]:
    """Fetch pages from ``start_url`` until one has no next URL.

    An absent and an empty next URL both end the walk. Items are returned in
    the order the pages arrived.
    """
    results: list[T] = []
    url: str | None = start_url
    pages = 0

    while url:
        page = await fetch_page(url)
        results.extend(page.items)
        pages += 1
        url = page.next_url.strip() if page.next_url else None

    log.debug("pagination_complete", start_url=start_url, pages=pages, items=len(results))
    return results
