"""
Error taxonomy for keyset-report.

Every failure raised by the fetchers and batch drivers derives from
KeysetReportError so callers can catch the whole family at the boundary.
"""

from __future__ import annotations

from typing import Optional


class KeysetReportError(Exception):
    """Base class for all keyset-report errors."""


class ConfigurationError(KeysetReportError, ValueError):
    """Invalid batch size or scoping identifiers; raised before any fetch."""


class DataAccessError(KeysetReportError):
    """
    A page fetch could not complete (connectivity, timeout, store error).

    The driver never retries; the current batch operation is aborted and any
    rows accumulated so far must be discarded by the caller.
    """


class PageOrderError(DataAccessError):
    """A fetcher returned a page that breaks the ascending-key contract."""


class HandlerError(KeysetReportError):
    """
    The streaming page handler failed.

    The original exception is kept as ``__cause__``.
    """

    def __init__(
        self,
        message: str,
        *,
        page_number: Optional[int] = None,
        records_delivered: int = 0,
    ) -> None:
        super().__init__(message)
        self.page_number = page_number
        self.records_delivered = records_delivered


class ReportCancelled(HandlerError):
    """Raised by a page handler to stop a streamed report early."""

    def __init__(self, message: str = "report cancelled by handler", **kwargs) -> None:
        super().__init__(message, **kwargs)


__all__ = [
    "KeysetReportError",
    "ConfigurationError",
    "DataAccessError",
    "PageOrderError",
    "HandlerError",
    "ReportCancelled",
]
