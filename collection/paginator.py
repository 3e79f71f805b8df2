"""
Cursor pagination - drives page fetches against an opaque next-page token until exhaustion.
"""
import logging
import threading
import time
from collections import namedtuple
from typing import Any, Callable, List, Optional

from collection.utils import CollectionCancelled, CollectionStats

logger = logging.getLogger(__name__)

# Hard stop for sources that never return an empty next-page token.
PAGE_SAFETY_LIMIT = 1000
PAUSE_EVERY_PAGES = 10
PAUSE_SECONDS = 0.1

Page = namedtuple('Page', ['items', 'next_token'])


def collect_all_pages(
    fetch_page: Callable[[Optional[str]], Page],
    max_items: Optional[int] = None,
    max_pages: Optional[int] = None,
    on_progress: Optional[Callable[[int, int], None]] = None,
    cancel_event: Optional[threading.Event] = None,
    entity_type: str = 'items',
    stats: Optional[CollectionStats] = None,
    sleep: Callable[[float], None] = time.sleep
) -> List[Any]:
    """
    Fetch every page of a cursor-paginated collection.
    
    The first call receives ``None`` as token; every following call receives the
    token returned by the previous page. Collection stops when a page returns a
    falsy token, when ``max_items`` items were gathered, or when the page limit
    is hit. Item counts are never used to detect the last page, so empty
    intermediate pages are followed.
    
    Args:
        fetch_page: Callable taking the previous page token and returning a Page
        max_items: Stop (and truncate) once this many items were gathered
        max_pages: Optional page cap, never above PAGE_SAFETY_LIMIT
        on_progress: Called as on_progress(items_so_far, page_number) after each page
        cancel_event: Checked before every page; raises CollectionCancelled when set
        entity_type: Label used in logs and stats
        stats: Optional stats collector
        sleep: Pause function used between page batches
    
    Returns:
        Items in source order
    """
    page_limit = PAGE_SAFETY_LIMIT if max_pages is None else min(max_pages, PAGE_SAFETY_LIMIT)
    items = []
    next_token = None
    page_count = 0

    if max_items is not None and max_items <= 0:
        return items

    while page_count < page_limit:
        if cancel_event is not None and cancel_event.is_set():
            raise CollectionCancelled(f"Collection of {entity_type} cancelled after {page_count} pages")

        page = fetch_page(next_token)
        page_count += 1

        page_items = list(page.items or [])
        if max_items is not None:
            page_items = page_items[:max_items - len(items)]
        items.extend(page_items)

        if on_progress:
            on_progress(len(items), page_count)

        next_token = page.next_token or None
        logger.debug(f"Fetched page {page_count}: {len(page_items)} {entity_type} (total: {len(items)})")
        if next_token:
            logger.debug(f"Next page token: {str(next_token)[:20]}...")

        if not next_token or (max_items is not None and len(items) >= max_items):
            break

        if page_count % PAUSE_EVERY_PAGES == 0:
            sleep(PAUSE_SECONDS)
    else:
        if page_limit == PAGE_SAFETY_LIMIT:
            logger.warning(f"Stopped pagination of {entity_type} after {page_count} pages "
                           f"to prevent an infinite loop; result is truncated")
        else:
            logger.info(f"Stopped pagination of {entity_type} at the requested limit of {page_count} pages")
        if stats is not None:
            stats.add_truncation(entity_type, page_count)

    if stats is not None:
        stats.add_entity(entity_type, len(items), page_count)
    logger.info(f"Collected {len(items)} {entity_type} across {page_count} pages")
    return items
