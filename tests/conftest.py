"""
Pytest configuration for keyset-report.

Provides fixtures for:
- An in-memory aggregate store that honours the page fetcher contract
- Database connection management for integration tests
- Test data seeding from `db/init.sql` and `scripts/generate_data.py`
"""

from __future__ import annotations

import os
import tempfile
from collections import Counter
from pathlib import Path
from typing import Callable, Dict, Generator, Iterable, List, Optional, Tuple

import psycopg
import pytest

from keyset_report.config import Settings
from keyset_report.domain.models import AggregateRow
from keyset_report.errors import DataAccessError

TENANT_ID = 1001
GROUP_ID = "G001"
DIMENSIONS = ("D001", "D002", "D003")


class FakeAggregateStore:
    """
    In-memory stand-in for the catalog/event tables.

    ``fetch`` follows the keyset contract (items > cursor, ascending, at most
    ``limit`` items with events for the tenant) and ``fetch_offset`` the
    offset baseline. Every call is recorded for assertions.
    """

    def __init__(
        self,
        catalog: Dict[str, List[str]],
        events: Iterable[Tuple[int, str, str, int]],
        fail_on_fetch: Optional[int] = None,
    ) -> None:
        self.catalog = catalog
        self.counts: Counter = Counter(events)
        self.fail_on_fetch = fail_on_fetch
        self.fetch_calls: List[Tuple[object, str, str, int]] = []
        self.offset_calls: List[Tuple[int, int]] = []
        self.count_calls = 0

    def _items(self, tenant_id: object, group_id: str) -> List[str]:
        with_events = {item for (tenant, item, _, _) in self.counts if tenant == tenant_id}
        return sorted(item for item in set(self.catalog.get(group_id, [])) if item in with_events)

    def _rows(self, tenant_id: object, items: List[str]) -> List[AggregateRow]:
        rows = []
        for item in items:
            dims = sorted({d for (t, i, d, _) in self.counts if t == tenant_id and i == item})
            for dim in dims:
                rows.append(
                    AggregateRow(
                        item_id=item,
                        dimension_id=dim,
                        passed=self.counts[(tenant_id, item, dim, 1)],
                        failed=self.counts[(tenant_id, item, dim, 0)],
                        error=self.counts[(tenant_id, item, dim, 2)],
                    )
                )
        return rows

    def fetch(self, tenant_id, group_id: str, cursor: str, limit: int) -> List[AggregateRow]:
        self.fetch_calls.append((tenant_id, group_id, cursor, limit))
        if self.fail_on_fetch is not None and len(self.fetch_calls) == self.fail_on_fetch:
            raise DataAccessError("store unreachable")
        items = [item for item in self._items(tenant_id, group_id) if item > cursor][:limit]
        return self._rows(tenant_id, items)

    def fetch_offset(self, tenant_id, group_id: str, offset: int, limit: int) -> List[AggregateRow]:
        self.offset_calls.append((offset, limit))
        items = self._items(tenant_id, group_id)[offset : offset + limit]
        return self._rows(tenant_id, items)

    def count_items(self, group_id: str) -> int:
        self.count_calls += 1
        return len(set(self.catalog.get(group_id, [])))

    def all_rows(self, tenant_id, group_id: str) -> List[AggregateRow]:
        return self._rows(tenant_id, self._items(tenant_id, group_id))

    @property
    def cursors(self) -> List[str]:
        return [cursor for (_, _, cursor, _) in self.fetch_calls]


def build_store(
    item_count: int = 10,
    tenant_id: int = TENANT_ID,
    group_id: str = GROUP_ID,
    dimensions: Tuple[str, ...] = DIMENSIONS,
    fail_on_fetch: Optional[int] = None,
) -> FakeAggregateStore:
    """Group with items I-001..I-NNN, every item reported on every dimension."""
    items = [f"I-{n:03d}" for n in range(1, item_count + 1)]
    events = []
    for n, item in enumerate(items):
        for d, dim in enumerate(dimensions):
            for source in range(5):
                events.append((tenant_id, item, dim, (n + d + source) % 3))
    return FakeAggregateStore({group_id: items}, events, fail_on_fetch=fail_on_fetch)


@pytest.fixture
def make_store() -> Callable[..., FakeAggregateStore]:
    return build_store


@pytest.fixture
def store() -> FakeAggregateStore:
    """Scenario group G001 with ten items for tenant 1001."""
    return build_store()


@pytest.fixture(scope="session")
def test_settings() -> Settings:
    """
    Settings fixture with test-specific overrides.

    Can be overridden via environment variables in CI or local testing.
    """
    return Settings(
        db_host=os.getenv("DB_HOST", "localhost"),
        db_port=int(os.getenv("DB_PORT", "5432")),
        db_user=os.getenv("DB_USER", "postgres"),
        db_password=os.getenv("DB_PASSWORD", "postgres"),
        db_name=os.getenv("DB_NAME", "keyset_report"),
        log_level="DEBUG",
    )


@pytest.fixture(scope="session")
def test_dsn(test_settings: Settings) -> str:
    """
    Database connection string for tests.
    """
    return (
        f"postgresql://{test_settings.db_user}:{test_settings.db_password}"
        f"@{test_settings.db_host}:{test_settings.db_port}/{test_settings.db_name}"
    )


@pytest.fixture(scope="session")
def db_connection_available(test_dsn: str) -> bool:
    """
    Check if database is reachable.

    Used to conditionally skip integration tests when DB is not available.
    """
    try:
        with psycopg.connect(test_dsn, connect_timeout=5) as conn:
            with conn.cursor() as cur:
                cur.execute("SELECT 1;")
                cur.fetchone()
        return True
    except psycopg.Error:
        return False


@pytest.fixture(scope="session")
def db_connection(
    test_dsn: str, db_connection_available: bool
) -> Generator[psycopg.Connection, None, None]:
    """
    Provide a session-scoped database connection for integration tests.

    Skips tests if database is not available.
    """
    if not db_connection_available:
        pytest.skip("Database not available for integration tests")

    conn = psycopg.connect(test_dsn)
    try:
        yield conn
    finally:
        conn.close()


@pytest.fixture(scope="session")
def db_schema_initialized(db_connection: psycopg.Connection) -> bool:
    """
    Ensure the catalog and event tables exist by running `db/init.sql`.
    """
    init_sql_path = Path(__file__).parent.parent / "db" / "init.sql"
    with db_connection.cursor() as cur:
        cur.execute(init_sql_path.read_text(encoding="utf-8"))
    db_connection.commit()
    return True


@pytest.fixture(scope="function")
def clean_tables(db_connection: psycopg.Connection, db_schema_initialized: bool):
    """
    Empty both tables before and after each test function.
    """
    truncate = "TRUNCATE TABLE public.entity_event, public.entity_catalog RESTART IDENTITY;"
    with db_connection.cursor() as cur:
        cur.execute(truncate)
    db_connection.commit()
    yield
    with db_connection.cursor() as cur:
        cur.execute(truncate)
    db_connection.commit()


@pytest.fixture(scope="function")
def seeded_db(
    db_connection: psycopg.Connection,
    clean_tables,
    test_dsn: str,
) -> int:
    """
    Seed two groups of 10 items (tenants 1001 and 1002) with three dimensions.

    Returns the number of distinct items tenant 1001 reports on in G001.
    """
    from scripts.generate_data import (
        _copy_into_db,
        _generate_catalog_csv,
        _generate_events_csv,
    )

    with tempfile.TemporaryDirectory() as tmpdir:
        catalog_csv = Path(tmpdir) / "entity_catalog.csv"
        events_csv = Path(tmpdir) / "entity_event.csv"
        catalog = _generate_catalog_csv(catalog_csv, groups=2, items_per_group=10)
        _generate_events_csv(
            events_csv,
            catalog,
            tenants=2,
            groups=2,
            sources_per_item=4,
            dimensions=3,
            batch_size=50,
            seed=42,
        )
        _copy_into_db(test_dsn, catalog_csv, events_csv)

    with db_connection.cursor() as cur:
        cur.execute(
            "SELECT COUNT(DISTINCT item_id) FROM public.entity_event WHERE tenant_id = %s;",
            (TENANT_ID,),
        )
        count = cur.fetchone()[0]
    return count
