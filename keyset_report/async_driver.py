"""
Async batch driver for keyset-report.

Mirrors ReportService over an AsyncPageFetcher. Fetches stay strictly
sequential within one report because each cursor depends on the previous
page; concurrency comes from running independent reports side by side.
"""

from __future__ import annotations

import inspect
from contextlib import aclosing
from typing import AsyncIterator, Awaitable, Callable, List, Optional, Sequence, Tuple, Union

from keyset_report.domain.models import AggregateRow
from keyset_report.driver import BatchSession, ceil_div, open_session, resolve_batch_size
from keyset_report.errors import ConfigurationError, HandlerError, ReportCancelled
from keyset_report.fetchers.abstract import (
    START_CURSOR,
    AsyncPageFetcher,
    Page,
    TenantId,
    check_page_order,
    distinct_item_count,
)
from keyset_report.utils.logging import get_logger

log = get_logger(__name__)

AsyncPageHandler = Callable[[Sequence[AggregateRow]], Union[Awaitable[object], object]]


class AsyncReportService:
    """Keyset batch driver for awaitable fetchers."""

    def __init__(self, fetcher: AsyncPageFetcher) -> None:
        self._fetcher = fetcher

    def aiter_pages(
        self,
        tenant_id: TenantId,
        group_id: str,
        batch_size: Optional[int] = None,
        *,
        start_cursor: str = START_CURSOR,
    ) -> AsyncIterator[Tuple[int, Page]]:
        """Validate eagerly, then return an async iterator of ``(page_number, page)``."""
        session = open_session(tenant_id, group_id, batch_size, start_cursor)
        return self._pages(session)

    async def _pages(self, session: BatchSession) -> AsyncIterator[Tuple[int, Page]]:
        log.info(
            "Starting async report generation",
            extra={
                "tenant_id": session.tenant_id,
                "group_id": session.group_id,
                "batch_size": session.batch_size,
                "cursor": session.cursor,
            },
        )
        while True:
            page = await self._fetcher.fetch(
                session.tenant_id, session.group_id, session.cursor, session.batch_size
            )
            session.fetches += 1
            if not page:
                break

            check_page_order(page, session.cursor)
            session.record(page)
            # Measured before the page is handed out; consumers may mutate it.
            items = distinct_item_count(page)
            log.debug(
                f"Batch {session.page_number} processed: {len(page)} records, "
                f"lastSeenId={session.cursor}",
                extra=session.log_context(),
            )
            yield session.page_number, page

            if items < session.batch_size:
                break

        log.info(
            "Async report generation complete",
            extra={**session.log_context(), "duration_ms": session.elapsed_ms},
        )

    async def generate_report(
        self,
        tenant_id: TenantId,
        group_id: str,
        batch_size: Optional[int] = None,
        *,
        start_cursor: str = START_CURSOR,
    ) -> List[AggregateRow]:
        results: List[AggregateRow] = []
        async with aclosing(
            self.aiter_pages(tenant_id, group_id, batch_size, start_cursor=start_cursor)
        ) as pages:
            async for _, page in pages:
                results.extend(page)
        return results

    async def generate_report_streamed(
        self,
        tenant_id: TenantId,
        group_id: str,
        batch_size: Optional[int],
        on_page: AsyncPageHandler,
        *,
        start_cursor: str = START_CURSOR,
    ) -> int:
        """
        Await ``on_page`` for each page before the next fetch.

        ``on_page`` may be a plain function or a coroutine function.
        """
        session = open_session(tenant_id, group_id, batch_size, start_cursor)
        delivered = 0
        async with aclosing(self._pages(session)) as pages:
            async for page_number, page in pages:
                size = len(page)
                try:
                    outcome = on_page(page)
                    if inspect.isawaitable(outcome):
                        await outcome
                except ReportCancelled as exc:
                    if exc.page_number is None:
                        exc.page_number = page_number
                    exc.records_delivered = delivered
                    log.info("Async streaming report cancelled", extra=session.log_context())
                    raise
                except Exception as exc:
                    log.error(
                        f"Page handler failed on batch {page_number}",
                        extra={**session.log_context(), "error": str(exc)},
                    )
                    raise HandlerError(
                        f"page handler failed on page {page_number}: {exc}",
                        page_number=page_number,
                        records_delivered=delivered,
                    ) from exc
                delivered += size
        return delivered

    async def estimate_batch_count(self, group_id: str, batch_size: Optional[int] = None) -> int:
        if not isinstance(group_id, str) or not group_id.strip():
            raise ConfigurationError(f"group_id must be a non-blank string, got {group_id!r}")
        size = resolve_batch_size(batch_size)
        return ceil_div(await self._fetcher.count_items(group_id), size)


__all__ = ["AsyncPageHandler", "AsyncReportService"]
