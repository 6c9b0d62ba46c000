"""
Integration tests for keyset-report against a real PostgreSQL instance.

These tests verify that:
1. The keyset query pages a seeded group completely and in order
2. The offset baseline returns the same rows
3. The item count estimate and the asyncpg fetcher agree with the sync path

Run with: RUN_INTEGRATION_TESTS=1 pytest tests/integration/
"""

from __future__ import annotations

import os

import pytest

from keyset_report.async_driver import AsyncReportService
from keyset_report.benchmark import run_benchmark
from keyset_report.driver import ReportService
from keyset_report.fetchers.async_keyset import AsyncKeysetPageFetcher
from keyset_report.fetchers.keyset import KeysetPageFetcher
from keyset_report.fetchers.offset import OffsetPageFetcher, iter_offset_pages

TENANT_ID = 1001
GROUP_ID = "G001"
OTHER_GROUP_ID = "G002"
BATCH_SIZE = 4
DIMENSIONS = 3
SOURCES = 4

pytestmark = pytest.mark.skipif(
    os.getenv("RUN_INTEGRATION_TESTS", "0") != "1",
    reason="Integration tests require RUN_INTEGRATION_TESTS=1 and reachable Postgres",
)


def test_keyset_report_covers_every_item(test_dsn: str, seeded_db: int) -> None:
    service = ReportService(KeysetPageFetcher(dsn_override=test_dsn))

    rows = service.generate_report(TENANT_ID, GROUP_ID, BATCH_SIZE)

    assert len({row.item_id for row in rows}) == seeded_db
    assert len(rows) == seeded_db * DIMENSIONS
    assert all(row.total == SOURCES for row in rows)
    keys = [(row.item_id, row.dimension_id) for row in rows]
    assert keys == sorted(keys)


def test_streaming_matches_accumulating(test_dsn: str, seeded_db: int) -> None:
    service = ReportService(KeysetPageFetcher(dsn_override=test_dsn))
    streamed = []

    total = service.generate_report_streamed(TENANT_ID, GROUP_ID, BATCH_SIZE, streamed.extend)

    assert streamed == service.generate_report(TENANT_ID, GROUP_ID, BATCH_SIZE)
    assert total == seeded_db * DIMENSIONS


def test_offset_baseline_returns_same_rows(test_dsn: str, seeded_db: int) -> None:
    keyset_rows = ReportService(KeysetPageFetcher(dsn_override=test_dsn)).generate_report(
        TENANT_ID, GROUP_ID, BATCH_SIZE
    )
    offset_fetcher = OffsetPageFetcher(dsn_override=test_dsn)

    offset_rows = [
        row
        for _, page in iter_offset_pages(offset_fetcher, TENANT_ID, GROUP_ID, BATCH_SIZE)
        for row in page
    ]

    assert offset_rows == keyset_rows


def test_group_without_tenant_events_is_empty(test_dsn: str, seeded_db: int) -> None:
    service = ReportService(KeysetPageFetcher(dsn_override=test_dsn))

    assert service.generate_report(TENANT_ID, OTHER_GROUP_ID, BATCH_SIZE) == []


def test_estimate_counts_catalog_items(test_dsn: str, seeded_db: int) -> None:
    service = ReportService(KeysetPageFetcher(dsn_override=test_dsn))

    assert service.estimate_batch_count(GROUP_ID, BATCH_SIZE) == 3
    assert service.estimate_batch_count(GROUP_ID, 1000) == 1


def test_benchmark_runs_both_modes(test_dsn: str, seeded_db: int) -> None:
    results = run_benchmark(
        TENANT_ID,
        GROUP_ID,
        batch_size=BATCH_SIZE,
        runs=1,
        persist=False,
        fetcher_factories={
            "keyset": lambda: KeysetPageFetcher(dsn_override=test_dsn),
            "offset": lambda: OffsetPageFetcher(dsn_override=test_dsn),
        },
    )

    assert {r["mode"] for r in results} == {"keyset", "offset"}
    assert all(r["rows"] == seeded_db * DIMENSIONS for r in results)


@pytest.mark.asyncio
async def test_async_fetcher_matches_sync_fetcher(test_dsn: str, seeded_db: int) -> None:
    expected = ReportService(KeysetPageFetcher(dsn_override=test_dsn)).generate_report(
        TENANT_ID, GROUP_ID, BATCH_SIZE
    )
    fetcher = AsyncKeysetPageFetcher(dsn_override=test_dsn)
    try:
        rows = await AsyncReportService(fetcher).generate_report(TENANT_ID, GROUP_ID, BATCH_SIZE)
        batches = await AsyncReportService(fetcher).estimate_batch_count(GROUP_ID, BATCH_SIZE)
    finally:
        await fetcher.close()

    assert rows == expected
    assert batches == 3
