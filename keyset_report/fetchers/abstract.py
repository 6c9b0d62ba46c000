"""
Fetcher interfaces and page contracts for keyset-report.

A page fetcher executes one bounded query and returns an ordered page of
AggregateRow values. Batch drivers depend only on these protocols, so the
PostgreSQL fetchers, the asyncpg fetcher and in-memory test doubles are
interchangeable.
"""

from __future__ import annotations

from typing import List, Protocol, Sequence, Union, runtime_checkable

from keyset_report.domain.models import AggregateRow
from keyset_report.errors import PageOrderError

#: Cursor value that orders before every valid item key.
START_CURSOR: str = ""

TenantId = Union[int, str]
Page = List[AggregateRow]


@runtime_checkable
class PageFetcher(Protocol):
    """
    Contract for a single keyset page fetch.

    Implementations must return rows whose ``item_id`` is strictly greater
    than ``cursor``, ordered ascending by ``item_id``, covering at most
    ``limit`` distinct item keys. An empty page means the data is exhausted.
    Failures raise DataAccessError; partial pages are never returned.
    """

    def fetch(self, tenant_id: TenantId, group_id: str, cursor: str, limit: int) -> Page:
        ...


@runtime_checkable
class ItemCounter(Protocol):
    """Source of the distinct item count used for batch estimates."""

    def count_items(self, group_id: str) -> int:
        ...


@runtime_checkable
class AsyncPageFetcher(Protocol):
    """Awaitable twin of PageFetcher."""

    async def fetch(self, tenant_id: TenantId, group_id: str, cursor: str, limit: int) -> Page:
        ...

    async def count_items(self, group_id: str) -> int:
        ...


def distinct_item_count(page: Sequence[AggregateRow]) -> int:
    """
    Number of distinct item keys in an ordered page.

    A page holds one row per (item, dimension), so its length overstates the
    number of items the fetch consumed out of ``limit``.
    """
    count = 0
    previous = None
    for row in page:
        if row.item_id != previous:
            count += 1
            previous = row.item_id
    return count


def check_page_order(page: Sequence[AggregateRow], cursor: str) -> None:
    """
    Raise PageOrderError unless every key is > cursor and keys never decrease.
    """
    previous = cursor
    for index, row in enumerate(page):
        if row.item_id <= cursor or row.item_id < previous:
            raise PageOrderError(
                f"page row {index} has item_id={row.item_id!r} which does not follow "
                f"{previous!r} (cursor={cursor!r})"
            )
        previous = row.item_id


__all__ = [
    "START_CURSOR",
    "TenantId",
    "Page",
    "PageFetcher",
    "ItemCounter",
    "AsyncPageFetcher",
    "distinct_item_count",
    "check_page_order",
]
