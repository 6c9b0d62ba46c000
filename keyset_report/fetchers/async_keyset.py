"""
Async keyset page fetcher for keyset-report.

Same query and contract as KeysetPageFetcher, executed through asyncpg so the
async batch driver can run many independent reports on one event loop.

Note: this fetcher intentionally uses asyncpg directly (rather than psycopg
async) for its native async implementation and binary protocol.
"""

from __future__ import annotations

import asyncio
from typing import Any, List, Optional

import asyncpg

from keyset_report.config import get_settings
from keyset_report.errors import DataAccessError
from keyset_report.fetchers.abstract import Page, TenantId
from keyset_report.fetchers.keyset import row_to_aggregate
from keyset_report.infrastructure.db_factory import build_dsn
from keyset_report.utils.logging import get_logger

log = get_logger(__name__)

ASYNC_KEYSET_PAGE_SQL = """
SELECT e.item_id,
       e.dimension_id,
       COUNT(*) FILTER (WHERE e.status = 1) AS passed,
       COUNT(*) FILTER (WHERE e.status = 0) AS failed,
       COUNT(*) FILTER (WHERE e.status = 2) AS error
FROM entity_event e
JOIN (
    SELECT c.item_id
    FROM entity_catalog c
    WHERE c.group_id = $1
      AND c.item_id COLLATE "C" > $2
      AND EXISTS (
          SELECT 1
          FROM entity_event x
          WHERE x.tenant_id = $3
            AND x.item_id = c.item_id
      )
    GROUP BY c.item_id
    ORDER BY c.item_id COLLATE "C"
    LIMIT $4
) w ON w.item_id = e.item_id
WHERE e.tenant_id = $3
GROUP BY e.item_id, e.dimension_id
ORDER BY e.item_id COLLATE "C", e.dimension_id COLLATE "C"
"""

ASYNC_ITEM_COUNT_SQL = """
SELECT COUNT(DISTINCT item_id) AS item_count
FROM entity_catalog
WHERE group_id = $1
"""

_DATA_ACCESS_ERRORS = (asyncpg.PostgresError, asyncpg.InterfaceError, OSError, asyncio.TimeoutError)


def bind_tenant_id(tenant_id: TenantId) -> TenantId:
    """
    asyncpg binds ``tenant_id`` as BIGINT and, unlike psycopg, will not coerce
    text. Digit strings are converted; anything else is left for the server
    to reject.
    """
    if isinstance(tenant_id, str) and tenant_id.strip().isdigit():
        return int(tenant_id)
    return tenant_id


class AsyncKeysetPageFetcher:
    """
    asyncpg-backed keyset fetcher owning a lazily created connection pool.
    """

    name: str = "async_keyset"
    description: str = "asyncpg JOIN against a keyed item window."

    def __init__(
        self,
        statement_timeout_ms: Optional[int] = None,
        dsn_override: Optional[str] = None,
        pool: Optional[Any] = None,
    ) -> None:
        settings = get_settings()
        self.statement_timeout_ms = (
            settings.db_statement_timeout_ms if statement_timeout_ms is None else statement_timeout_ms
        )
        self._dsn_override = dsn_override
        self._pool = pool
        self._owns_pool = pool is None

    async def _get_pool(self) -> Any:
        if self._pool is None:
            settings = get_settings()
            self._pool = await asyncpg.create_pool(
                self._dsn_override or build_dsn(),
                min_size=settings.db_pool_min_size,
                max_size=settings.db_pool_max_size,
            )
        return self._pool

    async def _query(self, sql: str, *params: Any) -> List[Any]:
        try:
            pool = await self._get_pool()
            async with pool.acquire() as conn:
                async with conn.transaction():
                    if self.statement_timeout_ms > 0:
                        await conn.execute(
                            "SELECT set_config('statement_timeout', $1, true)",
                            str(self.statement_timeout_ms),
                        )
                    return await conn.fetch(sql, *params)
        except _DATA_ACCESS_ERRORS as exc:
            log.error(
                f"[FETCH FAILED] {self.name}",
                extra={"fetcher": self.name, "error": str(exc)},
            )
            raise DataAccessError(f"{self.name} query failed: {exc}") from exc

    async def fetch(self, tenant_id: TenantId, group_id: str, cursor: str, limit: int) -> Page:
        rows = await self._query(
            ASYNC_KEYSET_PAGE_SQL, group_id, cursor, bind_tenant_id(tenant_id), limit
        )
        return [row_to_aggregate(row) for row in rows]

    async def count_items(self, group_id: str) -> int:
        rows = await self._query(ASYNC_ITEM_COUNT_SQL, group_id)
        if not rows or rows[0]["item_count"] is None:
            return 0
        return int(rows[0]["item_count"])

    async def close(self) -> None:
        """Close the pool if this fetcher created it."""
        if self._pool is not None and self._owns_pool:
            await self._pool.close()
            self._pool = None


__all__ = ["ASYNC_KEYSET_PAGE_SQL", "ASYNC_ITEM_COUNT_SQL", "AsyncKeysetPageFetcher", "bind_tenant_id"]
