"""
Domain models for keyset-report.

Defines the aggregate row produced by one (item, dimension) group of the
`entity_event` table (see `db/init.sql`). Rows are immutable and carry their
derived pass rate and total so that serializers never recompute them.
"""
from __future__ import annotations

from typing import Any, Dict

from pydantic import BaseModel, Field, computed_field


class AggregateRow(BaseModel):
    """
    Status counts for a single item/dimension pair within one tenant.
    """

    item_id: str = Field(..., description="Item key; pages are ordered by it.")
    dimension_id: str = Field(..., description="Dimension key within the item.")
    passed: int = Field(0, ge=0, description="Events with status 1.")
    failed: int = Field(0, ge=0, description="Events with status 0.")
    error: int = Field(0, ge=0, description="Events with status 2.")

    model_config = {
        "frozen": True,
        "populate_by_name": True,
        "arbitrary_types_allowed": False,
    }

    @computed_field  # type: ignore[prop-decorator]
    @property
    def pass_rate(self) -> float:
        """passed / (passed + failed); 0.0 when nothing was evaluated."""
        evaluated = self.passed + self.failed
        if evaluated == 0:
            return 0.0
        return self.passed / evaluated

    @property
    def pass_rate_percentage(self) -> float:
        return self.pass_rate * 100.0

    @computed_field  # type: ignore[prop-decorator]
    @property
    def total(self) -> int:
        return self.passed + self.failed + self.error

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump()

    def __str__(self) -> str:
        return (
            f"AggregateRow(item_id={self.item_id!r}, dimension_id={self.dimension_id!r}, "
            f"passed={self.passed}, failed={self.failed}, error={self.error}, "
            f"pass_rate={self.pass_rate_percentage:.1f}%)"
        )


__all__ = ["AggregateRow"]
