"""
Fetchers package for keyset-report.

This module re-exports the page contracts and the concrete fetcher classes
so downstream code can import from `keyset_report.fetchers` directly.
"""

from keyset_report.fetchers.abstract import (
    START_CURSOR,
    AsyncPageFetcher,
    ItemCounter,
    Page,
    PageFetcher,
    TenantId,
    check_page_order,
    distinct_item_count,
)
from keyset_report.fetchers.async_keyset import AsyncKeysetPageFetcher
from keyset_report.fetchers.keyset import KeysetPageFetcher
from keyset_report.fetchers.offset import OffsetPageFetcher, iter_offset_pages

__all__ = [
    # Contracts
    "START_CURSOR",
    "AsyncPageFetcher",
    "ItemCounter",
    "Page",
    "PageFetcher",
    "TenantId",
    "check_page_order",
    "distinct_item_count",
    # Concrete fetchers
    "AsyncKeysetPageFetcher",
    "KeysetPageFetcher",
    "OffsetPageFetcher",
    "iter_offset_pages",
]
