"""
Domain package for keyset-report.

Exports the core domain models shared by fetchers, drivers and reporters.
Keep this package focused on data definitions and validation concerns.
"""

from keyset_report.domain.models import AggregateRow

__all__ = [
    "AggregateRow",
]
