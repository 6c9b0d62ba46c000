"""
Offset (baseline) fetcher: IN-subquery plus OFFSET pagination.

Reproduces the slow query pattern the keyset fetcher replaced. The IN subquery
keeps the planner from driving the join off the item window, and OFFSET makes
every page scan and discard all the items before it, so latency grows with
depth. Keep as a benchmark baseline only; the batch drivers never use it.
"""

from __future__ import annotations

from typing import Iterator, Tuple

from keyset_report.errors import ConfigurationError
from keyset_report.fetchers.abstract import Page, TenantId, distinct_item_count
from keyset_report.fetchers.keyset import PostgresFetcherBase, row_to_aggregate

OFFSET_PAGE_SQL = """
SELECT item_id,
       dimension_id,
       COUNT(*) FILTER (WHERE status = 1) AS passed,
       COUNT(*) FILTER (WHERE status = 0) AS failed,
       COUNT(*) FILTER (WHERE status = 2) AS error
FROM entity_event
WHERE tenant_id = %(tenant_id)s
  AND item_id IN (
      SELECT c.item_id
      FROM entity_catalog c
      WHERE c.group_id = %(group_id)s
        AND EXISTS (
            SELECT 1
            FROM entity_event x
            WHERE x.tenant_id = %(tenant_id)s
              AND x.item_id = c.item_id
        )
      GROUP BY c.item_id
      ORDER BY c.item_id COLLATE "C"
      OFFSET %(offset)s
      LIMIT %(limit)s
  )
GROUP BY item_id, dimension_id
ORDER BY item_id COLLATE "C", dimension_id COLLATE "C";
"""


class OffsetPageFetcher(PostgresFetcherBase):
    """
    WARNING: page cost grows linearly with ``offset``. Baseline only.
    """

    name: str = "offset"
    description: str = "IN subquery + OFFSET pagination (slow baseline)."

    def fetch_offset(self, tenant_id: TenantId, group_id: str, offset: int, limit: int) -> Page:
        rows = self._query(
            OFFSET_PAGE_SQL,
            {"tenant_id": tenant_id, "group_id": group_id, "offset": offset, "limit": limit},
        )
        return [row_to_aggregate(row) for row in rows]


def iter_offset_pages(
    fetcher: OffsetPageFetcher,
    tenant_id: TenantId,
    group_id: str,
    batch_size: int,
    start_offset: int = 0,
) -> Iterator[Tuple[int, Page]]:
    """
    Yield ``(page_number, page)`` advancing ``offset`` by ``batch_size``.

    Stops on an empty page or on a page covering fewer than ``batch_size``
    items, mirroring the keyset driver's termination rule.
    """
    if batch_size <= 0:
        raise ConfigurationError(f"batch_size must be > 0, got {batch_size}")
    offset = start_offset
    page_number = 0
    while True:
        page_number += 1
        page = fetcher.fetch_offset(tenant_id, group_id, offset, batch_size)
        if not page:
            return
        items = distinct_item_count(page)
        yield page_number, page
        if items < batch_size:
            return
        offset += batch_size


__all__ = ["OFFSET_PAGE_SQL", "OffsetPageFetcher", "iter_offset_pages"]
