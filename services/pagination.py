from typing import Awaitable, Callable, List, Optional, TypeVar

import structlog
from domain.models import Page

logger = structlog.get_logger()

T = TypeVar("T")

PageFetcher = Callable[[Optional[str]], Awaitable[Page[T]]]


async def collect_pages(fetch_page: PageFetcher[T], label: str = "listing") -> List[T]:
    """
    Walks a cursor-paginated listing to the end and concatenates the items.
    Backend order is preserved and nothing is deduplicated. A failing page
    fails the whole walk; no partial list is ever returned.
    """
    page = await fetch_page(None)
    items: List[T] = list(page.items)
    pages = 1

    while page.next_cursor:
        page = await fetch_page(page.next_cursor)
        items.extend(page.items)
        pages += 1

    logger.debug("pagination_complete", listing=label, pages=pages, items=len(items))
    return items
