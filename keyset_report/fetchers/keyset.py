"""
Keyset page fetcher for keyset-report.

Selects a bounded, ordered window of item keys once and joins it against the
large `entity_event` table by key. The cost of a page therefore stays flat no
matter how deep the cursor has advanced, unlike OFFSET which scans and
discards every skipped row.
"""

from __future__ import annotations

from contextlib import contextmanager
from typing import Any, Dict, Generator, List, Mapping, Optional

import psycopg
from psycopg.rows import dict_row
from psycopg_pool import ConnectionPool

from keyset_report.config import get_settings
from keyset_report.domain.models import AggregateRow
from keyset_report.errors import DataAccessError
from keyset_report.fetchers.abstract import Page, TenantId
from keyset_report.infrastructure.db_factory import (
    apply_statement_timeout,
    get_sync_connection,
    get_sync_pool,
)
from keyset_report.utils.logging import get_logger

log = get_logger(__name__)

# The item window only admits items with at least one event for the tenant,
# so every selected item yields rows and a short page means exhaustion.
KEYSET_PAGE_SQL = """
SELECT e.item_id,
       e.dimension_id,
       COUNT(*) FILTER (WHERE e.status = 1) AS passed,
       COUNT(*) FILTER (WHERE e.status = 0) AS failed,
       COUNT(*) FILTER (WHERE e.status = 2) AS error
FROM entity_event e
JOIN (
    SELECT c.item_id
    FROM entity_catalog c
    WHERE c.group_id = %(group_id)s
      AND c.item_id COLLATE "C" > %(cursor)s
      AND EXISTS (
          SELECT 1
          FROM entity_event x
          WHERE x.tenant_id = %(tenant_id)s
            AND x.item_id = c.item_id
      )
    GROUP BY c.item_id
    ORDER BY c.item_id COLLATE "C"
    LIMIT %(limit)s
) w ON w.item_id = e.item_id
WHERE e.tenant_id = %(tenant_id)s
GROUP BY e.item_id, e.dimension_id
ORDER BY e.item_id COLLATE "C", e.dimension_id COLLATE "C";
"""

ITEM_COUNT_SQL = """
SELECT COUNT(DISTINCT item_id) AS item_count
FROM entity_catalog
WHERE group_id = %(group_id)s;
"""


def row_to_aggregate(row: Mapping[str, Any]) -> AggregateRow:
    """Map one result row (dict_row) onto an AggregateRow."""
    return AggregateRow(
        item_id=str(row["item_id"]),
        dimension_id=str(row["dimension_id"]),
        passed=int(row["passed"] or 0),
        failed=int(row["failed"] or 0),
        error=int(row["error"] or 0),
    )


class PostgresFetcherBase:
    """
    Shared connection handling for the psycopg-backed fetchers.

    Connections come from an explicit pool, a dedicated connection for a DSN
    override, or the process-wide pool managed by PoolManager, in that order.
    Every psycopg failure surfaces as DataAccessError.
    """

    name: str = "postgres"
    description: str = ""

    def __init__(
        self,
        statement_timeout_ms: Optional[int] = None,
        dsn_override: Optional[str] = None,
        pool: Optional[ConnectionPool] = None,
    ) -> None:
        settings = get_settings()
        self.statement_timeout_ms = (
            settings.db_statement_timeout_ms if statement_timeout_ms is None else statement_timeout_ms
        )
        self._dsn_override = dsn_override
        self._pool = pool

    @contextmanager
    def _connection(self) -> Generator[psycopg.Connection, None, None]:
        if self._pool is not None:
            with self._pool.connection() as conn:
                yield conn
        elif self._dsn_override:
            conn = get_sync_connection(self._dsn_override)
            try:
                yield conn
            finally:
                conn.close()
        else:
            with get_sync_pool().connection() as conn:
                yield conn

    def _query(self, sql: str, params: Dict[str, Any]) -> List[Dict[str, Any]]:
        try:
            with self._connection() as conn:
                with conn.cursor(row_factory=dict_row) as cur:
                    apply_statement_timeout(cur, self.statement_timeout_ms)
                    cur.execute(sql, params)
                    return cur.fetchall()
        except psycopg.Error as exc:
            log.error(
                f"[FETCH FAILED] {self.name}",
                extra={"fetcher": self.name, "error": str(exc)},
            )
            raise DataAccessError(f"{self.name} query failed: {exc}") from exc

    def count_items(self, group_id: str) -> int:
        """Distinct catalog items in ``group_id``; 0 for an unknown group."""
        rows = self._query(ITEM_COUNT_SQL, {"group_id": group_id})
        if not rows or rows[0]["item_count"] is None:
            return 0
        return int(rows[0]["item_count"])


class KeysetPageFetcher(PostgresFetcherBase):
    """
    Fetch one page of aggregates with keyset pagination (``item_id > cursor``).
    """

    name: str = "keyset"
    description: str = "JOIN against a keyed item window; cursor is the last item_id."

    def fetch(self, tenant_id: TenantId, group_id: str, cursor: str, limit: int) -> Page:
        rows = self._query(
            KEYSET_PAGE_SQL,
            {"tenant_id": tenant_id, "group_id": group_id, "cursor": cursor, "limit": limit},
        )
        return [row_to_aggregate(row) for row in rows]


__all__ = [
    "KEYSET_PAGE_SQL",
    "ITEM_COUNT_SQL",
    "KeysetPageFetcher",
    "PostgresFetcherBase",
    "row_to_aggregate",
]
