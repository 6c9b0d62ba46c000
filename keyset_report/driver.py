"""
Batch driver for keyset-report.

Repeatedly invokes a page fetcher, advances the cursor to the last item key of
each page, and stops on an empty page or on a short page (fewer distinct items
than requested). Two modes share one loop:

- accumulating: ``generate_report`` returns every row in cursor order;
- streaming: ``generate_report_streamed`` hands each page to a callback before
  the next fetch, so at most one page is held in memory.

Usage:
    from keyset_report.driver import ReportService
    from keyset_report.fetchers import KeysetPageFetcher

    service = ReportService(KeysetPageFetcher())
    rows = service.generate_report(1001, "G001", batch_size=500)
"""

from __future__ import annotations

import time
from contextlib import closing
from dataclasses import dataclass, field
from typing import Callable, Iterator, List, Optional, Sequence, Tuple

from keyset_report.config import get_settings
from keyset_report.domain.models import AggregateRow
from keyset_report.errors import ConfigurationError, HandlerError, ReportCancelled
from keyset_report.fetchers.abstract import (
    START_CURSOR,
    ItemCounter,
    Page,
    PageFetcher,
    TenantId,
    check_page_order,
    distinct_item_count,
)
from keyset_report.utils.logging import get_logger

log = get_logger(__name__)

PageHandler = Callable[[Sequence[AggregateRow]], object]


@dataclass
class BatchSession:
    """
    Loop state for one driver invocation. Never shared between calls.
    """

    tenant_id: TenantId
    group_id: str
    batch_size: int
    cursor: str = START_CURSOR
    page_number: int = 0
    fetches: int = 0
    total_records: int = 0
    started_at: float = field(default_factory=time.perf_counter)

    def record(self, page: Page) -> None:
        self.page_number += 1
        self.total_records += len(page)
        self.cursor = page[-1].item_id

    @property
    def elapsed_ms(self) -> float:
        return round((time.perf_counter() - self.started_at) * 1000.0, 2)

    def log_context(self) -> dict:
        return {
            "tenant_id": self.tenant_id,
            "group_id": self.group_id,
            "batch_size": self.batch_size,
            "batches": self.page_number,
            "fetches": self.fetches,
            "records": self.total_records,
            "cursor": self.cursor,
        }


def resolve_batch_size(batch_size: Optional[int]) -> int:
    """Return ``batch_size`` or the configured default; reject values <= 0."""
    if batch_size is None:
        batch_size = get_settings().report_batch_size
    if isinstance(batch_size, bool) or not isinstance(batch_size, int):
        raise ConfigurationError(f"batch_size must be an integer, got {batch_size!r}")
    if batch_size <= 0:
        raise ConfigurationError(f"batch_size must be > 0, got {batch_size}")
    return batch_size


def validate_scope(tenant_id: TenantId, group_id: str) -> None:
    if tenant_id is None or isinstance(tenant_id, bool):
        raise ConfigurationError(f"tenant_id is required, got {tenant_id!r}")
    if isinstance(tenant_id, str) and not tenant_id.strip():
        raise ConfigurationError("tenant_id must not be blank")
    if not isinstance(group_id, str) or not group_id.strip():
        raise ConfigurationError(f"group_id must be a non-blank string, got {group_id!r}")


def open_session(
    tenant_id: TenantId,
    group_id: str,
    batch_size: Optional[int],
    start_cursor: str,
) -> BatchSession:
    """Validate inputs and create the session; nothing is fetched here."""
    validate_scope(tenant_id, group_id)
    size = resolve_batch_size(batch_size)
    if not isinstance(start_cursor, str):
        raise ConfigurationError(f"start_cursor must be a string, got {start_cursor!r}")
    return BatchSession(tenant_id=tenant_id, group_id=group_id, batch_size=size, cursor=start_cursor)


def ceil_div(count: int, batch_size: int) -> int:
    return (count + batch_size - 1) // batch_size


class ReportService:
    """
    Keyset batch driver over a PageFetcher.

    Parameters
    ----------
    fetcher : PageFetcher
        Source of ordered pages.
    counter : ItemCounter, optional
        Source of distinct item counts for ``estimate_batch_count``. Defaults
        to ``fetcher`` when it also implements ``count_items``.
    """

    def __init__(self, fetcher: PageFetcher, counter: Optional[ItemCounter] = None) -> None:
        self._fetcher = fetcher
        if counter is None and isinstance(fetcher, ItemCounter):
            counter = fetcher
        self._counter = counter

    def iter_pages(
        self,
        tenant_id: TenantId,
        group_id: str,
        batch_size: Optional[int] = None,
        *,
        start_cursor: str = START_CURSOR,
    ) -> Iterator[Tuple[int, Page]]:
        """
        Yield ``(page_number, page)`` for every non-empty page in cursor order.

        Inputs are validated eagerly, so a bad ``batch_size`` raises here
        rather than on the first ``next()``.
        """
        session = open_session(tenant_id, group_id, batch_size, start_cursor)
        return self._pages(session)

    def _pages(self, session: BatchSession) -> Iterator[Tuple[int, Page]]:
        log.info(
            "Starting report generation",
            extra={
                "tenant_id": session.tenant_id,
                "group_id": session.group_id,
                "batch_size": session.batch_size,
                "cursor": session.cursor,
            },
        )
        while True:
            page = self._fetcher.fetch(
                session.tenant_id, session.group_id, session.cursor, session.batch_size
            )
            session.fetches += 1

            if not page:
                log.debug(
                    f"Batch {session.fetches} returned empty - processing complete",
                    extra=session.log_context(),
                )
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
                log.debug("Partial batch received - processing complete", extra=session.log_context())
                break

        log.info(
            "Report generation complete",
            extra={**session.log_context(), "duration_ms": session.elapsed_ms},
        )

    def generate_report(
        self,
        tenant_id: TenantId,
        group_id: str,
        batch_size: Optional[int] = None,
        *,
        start_cursor: str = START_CURSOR,
    ) -> List[AggregateRow]:
        """
        Fetch every page and return the ordered concatenation of their rows.

        Raises instead of returning a truncated list when any fetch fails.
        """
        results: List[AggregateRow] = []
        with closing(self.iter_pages(tenant_id, group_id, batch_size, start_cursor=start_cursor)) as pages:
            for _, page in pages:
                results.extend(page)
        return results

    def generate_report_streamed(
        self,
        tenant_id: TenantId,
        group_id: str,
        batch_size: Optional[int],
        on_page: PageHandler,
        *,
        start_cursor: str = START_CURSOR,
    ) -> int:
        """
        Deliver each non-empty page to ``on_page`` before fetching the next one.

        Returns the total number of rows delivered. A handler exception stops
        the loop: ReportCancelled propagates unchanged, anything else is
        wrapped in HandlerError with the original as ``__cause__``.
        """
        session = open_session(tenant_id, group_id, batch_size, start_cursor)
        delivered = 0
        with closing(self._pages(session)) as pages:
            for page_number, page in pages:
                size = len(page)
                try:
                    on_page(page)
                except ReportCancelled as exc:
                    if exc.page_number is None:
                        exc.page_number = page_number
                    exc.records_delivered = delivered
                    log.info("Streaming report cancelled", extra=session.log_context())
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

    def estimate_batch_count(self, group_id: str, batch_size: Optional[int] = None) -> int:
        """
        ceil(distinct items in group / batch_size).

        Advisory only (progress reporting). The loop's real stop condition is
        always an empty or short page.
        """
        if not isinstance(group_id, str) or not group_id.strip():
            raise ConfigurationError(f"group_id must be a non-blank string, got {group_id!r}")
        size = resolve_batch_size(batch_size)
        if self._counter is None:
            raise ConfigurationError("no item counter configured for batch estimates")
        return ceil_div(self._counter.count_items(group_id), size)


__all__ = [
    "BatchSession",
    "PageHandler",
    "ReportService",
    "ceil_div",
    "open_session",
    "resolve_batch_size",
    "validate_scope",
]
