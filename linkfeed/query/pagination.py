from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from urllib.parse import urlparse, urlunparse, parse_qsl, urlencode

from linkfeed.storage.db import Storage
from linkfeed.storage.errors import StorageError
from linkfeed.storage.types import StoredItem


logger = logging.getLogger(__name__)


MIN_PAGE_SIZE = 1
MAX_PAGE_SIZE = 50
DEFAULT_PAGE_SIZE = 10
PAGE_WINDOW = 5

STATUS_OK = "ok"
STATUS_EMPTY = "empty"
STATUS_UNAVAILABLE = "unavailable"

LINK_PREV = "prev"
LINK_FIRST = "first"
LINK_ELLIPSIS = "ellipsis"
LINK_PAGE = "page"
LINK_LAST = "last"
LINK_NEXT = "next"


@dataclass(frozen=True)
class PaginationResult:
    total_items: int
    total_pages: int
    page: int
    page_size: int
    items: list[StoredItem] = field(default_factory=list)
    status: str = STATUS_OK


@dataclass(frozen=True)
class ItemList:
    items: list[StoredItem] = field(default_factory=list)
    status: str = STATUS_OK


@dataclass(frozen=True)
class PageLink:
    kind: str
    page: int | None
    label: str
    current: bool = False


def clamp_page_size(page_size: int | None) -> int:
    try:
        size = int(page_size) if page_size is not None else DEFAULT_PAGE_SIZE
    except (TypeError, ValueError):
        size = DEFAULT_PAGE_SIZE
    return min(MAX_PAGE_SIZE, max(MIN_PAGE_SIZE, size))


def clamp_page(page: int | None) -> int:
    try:
        value = int(page) if page is not None else 1
    except (TypeError, ValueError):
        value = 1
    return max(1, value)


def total_pages_for(total_items: int, page_size: int) -> int:
    if total_items <= 0:
        return 0
    return math.ceil(total_items / page_size)


def build_page_links(current_page: int, total_pages: int, window: int = PAGE_WINDOW) -> list[PageLink]:
    if total_pages <= 1:
        return []

    current = min(max(1, current_page), total_pages)
    window = max(1, window)
    start = max(1, current - window // 2)
    end = min(total_pages, start + window - 1)
    start = max(1, end - window + 1)

    links: list[PageLink] = []
    if current > 1:
        links.append(PageLink(LINK_PREV, current - 1, "«"))

    if start > 1:
        links.append(PageLink(LINK_FIRST, 1, "1"))
        if start > 2:
            links.append(PageLink(LINK_ELLIPSIS, None, "…"))

    for p in range(start, end + 1):
        links.append(PageLink(LINK_PAGE, p, str(p), current=p == current))

    if end < total_pages:
        if end < total_pages - 1:
            links.append(PageLink(LINK_ELLIPSIS, None, "…"))
        links.append(PageLink(LINK_LAST, total_pages, str(total_pages)))

    if current < total_pages:
        links.append(PageLink(LINK_NEXT, current + 1, "»"))

    return links


def page_url(base_url: str, page: int, param: str = "page") -> str:
    parsed = urlparse(base_url)
    query = [(k, v) for k, v in parse_qsl(parsed.query, keep_blank_values=True) if k != param]
    if page > 1:
        query.append((param, str(page)))
    return urlunparse(parsed._replace(query=urlencode(query)))


class QueryService:
    def __init__(self, storage: Storage) -> None:
        self._storage = storage

    async def list_page(
        self,
        category: str | None = None,
        page_size: int | None = DEFAULT_PAGE_SIZE,
        page: int | None = 1,
    ) -> PaginationResult:
        size = clamp_page_size(page_size)
        current = clamp_page(page)
        category = category or None

        try:
            total_items = await self._storage.count_items(category)
            total_pages = total_pages_for(total_items, size)
            items: list[StoredItem] = []
            if current <= total_pages:
                items = await self._storage.query_items(category, limit=size, offset=(current - 1) * size)
        except StorageError as e:
            logger.error("item query failed category=%s page=%s: %s", category, current, e)
            return PaginationResult(0, 0, current, size, [], STATUS_UNAVAILABLE)

        return PaginationResult(
            total_items=total_items,
            total_pages=total_pages,
            page=current,
            page_size=size,
            items=items,
            status=STATUS_OK if items else STATUS_EMPTY,
        )

    async def list_items(self, category: str | None = None, limit: int | None = DEFAULT_PAGE_SIZE) -> ItemList:
        try:
            items = await self._storage.query_items(category or None, limit=clamp_page_size(limit), offset=0)
        except StorageError as e:
            logger.error("item list failed category=%s: %s", category, e)
            return ItemList([], STATUS_UNAVAILABLE)
        return ItemList(items, STATUS_OK if items else STATUS_EMPTY)
