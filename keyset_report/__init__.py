"""
keyset-report - keyset (cursor-based) batch pagination for aggregate reports.

This package aggregates pass/fail/error counts per item and dimension from a
large event table, one bounded page at a time:

- Page fetchers that join a keyed item window against the event table
- A batch driver that tracks the cursor and decides termination
- Accumulating and streaming report modes (sync and asyncio)
- A keyset vs offset benchmark to compare paging strategies

The package is designed around explicit contracts (fetcher protocols, a small
error taxonomy), structured logging, and tests that run without a database.
"""

from __future__ import annotations

__version__ = "0.1.0"
__license__ = "MIT"

# Public API exports
from keyset_report.async_driver import AsyncReportService
from keyset_report.config import Settings, get_settings
from keyset_report.domain.models import AggregateRow
from keyset_report.driver import BatchSession, ReportService
from keyset_report.errors import (
    ConfigurationError,
    DataAccessError,
    HandlerError,
    KeysetReportError,
    PageOrderError,
    ReportCancelled,
)
from keyset_report.fetchers import (
    START_CURSOR,
    AsyncKeysetPageFetcher,
    KeysetPageFetcher,
    OffsetPageFetcher,
    PageFetcher,
)
from keyset_report.utils.logging import configure_logging, get_logger

__all__ = [
    # Version info
    "__version__",
    "__license__",
    # Configuration
    "Settings",
    "get_settings",
    # Domain
    "AggregateRow",
    # Drivers
    "AsyncReportService",
    "BatchSession",
    "ReportService",
    # Fetchers
    "START_CURSOR",
    "AsyncKeysetPageFetcher",
    "KeysetPageFetcher",
    "OffsetPageFetcher",
    "PageFetcher",
    # Errors
    "ConfigurationError",
    "DataAccessError",
    "HandlerError",
    "KeysetReportError",
    "PageOrderError",
    "ReportCancelled",
    # Logging
    "configure_logging",
    "get_logger",
]
