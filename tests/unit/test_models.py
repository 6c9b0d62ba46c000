from __future__ import annotations

import pytest
from pydantic import ValidationError

from keyset_report.domain.models import AggregateRow

EXPECTED_TOTAL = 10


def test_pass_rate_without_evaluations_is_zero() -> None:
    row = AggregateRow(item_id="I-001", dimension_id="D001", passed=0, failed=0, error=4)

    assert row.pass_rate == 0.0
    assert row.pass_rate_percentage == 0.0
    assert row.total == 4


def test_pass_rate_ignores_error_count() -> None:
    row = AggregateRow(item_id="I-001", dimension_id="D001", passed=6, failed=2, error=2)

    assert row.pass_rate == pytest.approx(0.75)
    assert row.pass_rate_percentage == pytest.approx(75.0)
    assert row.total == EXPECTED_TOTAL


def test_negative_counts_are_rejected() -> None:
    with pytest.raises(ValidationError):
        AggregateRow(item_id="I-001", dimension_id="D001", passed=-1)


def test_rows_are_immutable() -> None:
    row = AggregateRow(item_id="I-001", dimension_id="D001", passed=1)

    with pytest.raises(ValidationError):
        row.passed = 2  # type: ignore[misc]


def test_to_dict_includes_derived_values() -> None:
    row = AggregateRow(item_id="I-001", dimension_id="D001", passed=1, failed=1, error=1)

    assert row.to_dict() == {
        "item_id": "I-001",
        "dimension_id": "D001",
        "passed": 1,
        "failed": 1,
        "error": 1,
        "pass_rate": 0.5,
        "total": 3,
    }


def test_str_shows_percentage() -> None:
    row = AggregateRow(item_id="I-001", dimension_id="D001", passed=1, failed=3)

    assert "pass_rate=25.0%" in str(row)
