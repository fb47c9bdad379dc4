"""Drain a cursor-paged listing into one list."""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from typing import Any

from .models import Page

log = logging.getLogger(__name__)

FetchPage = Callable[[int, str | None], Awaitable[Page]]


async def collect_pages(fetch_page: FetchPage, page_size: int = 1000) -> list[dict[str, Any]]:
    """Fetch every page and return the items in listing order.

    Stops when the accumulated count reaches the reported total or when the
    remote stops returning a next-page token, whichever comes first. A missing
    token always terminates, even if the counts disagree. Transport errors
    propagate unchanged; nothing is kept between calls.
    """
    page = await fetch_page(page_size, None)
    items: list[dict[str, Any]] = list(page.items)
    pages = 1

    while page.next_page_token and (page.total is None or len(items) < page.total):
        page = await fetch_page(page_size, page.next_page_token)
        items.extend(page.items)
        pages += 1

    if page.total is not None and len(items) != page.total:
        log.warning("paging-count-mismatch collected=%d reported=%d", len(items), page.total)
    log.debug("paging-done pages=%d items=%d", pages, len(items))
    return items
