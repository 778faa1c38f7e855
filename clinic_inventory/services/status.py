"""Stock status classification.

Every place that labels a stock level goes through ``classify`` so the
boundaries are defined once. A level is expressed as a percentage of the
baseline (``max_quantity``) and compared against named thresholds, highest
first, with strictly-greater-than boundaries:

    percentage > good_above   -> Good
    percentage > low_above    -> Low
    otherwise                 -> Very Low

A quantity of zero is Out of Stock, and a missing or non-positive baseline
yields Unknown rather than dividing by zero.
"""

from enum import Enum as PyEnum

from pydantic import BaseModel, model_validator

from clinic_inventory.config import settings


class StockStatus(str, PyEnum):
    GOOD = "Good"
    LOW = "Low"
    VERY_LOW = "Very Low"
    OUT_OF_STOCK = "Out of Stock"
    UNKNOWN = "Unknown"

    @property
    def severity(self) -> int:
        """Rank used to compare statuses; higher is worse. Unknown ranks lowest."""
        return _SEVERITY[self]


_SEVERITY = {
    StockStatus.UNKNOWN: -1,
    StockStatus.GOOD: 0,
    StockStatus.LOW: 1,
    StockStatus.VERY_LOW: 2,
    StockStatus.OUT_OF_STOCK: 3,
}

ALERT_STATUSES = (StockStatus.VERY_LOW, StockStatus.OUT_OF_STOCK)


class StatusThresholds(BaseModel):
    good_above: float = 70.0
    low_above: float = 50.0

    model_config = {"frozen": True}

    @model_validator(mode="after")
    def check_order(self):
        if not 0 <= self.low_above < self.good_above:
            raise ValueError(
                f"Thresholds must satisfy 0 <= low_above < good_above, got {self.low_above} / {self.good_above}"
            )
        return self


def default_thresholds() -> StatusThresholds:
    return StatusThresholds(
        good_above=settings.STATUS_GOOD_ABOVE_PERCENT,
        low_above=settings.STATUS_LOW_ABOVE_PERCENT,
    )


def stock_percentage(quantity: int | float | None, max_quantity: int | float | None) -> float | None:
    if not max_quantity or max_quantity <= 0:
        return None
    return (quantity or 0) / max_quantity * 100


def classify(
    quantity: int | float | None,
    max_quantity: int | float | None,
    thresholds: StatusThresholds | None = None,
) -> StockStatus:
    percentage = stock_percentage(quantity, max_quantity)
    if percentage is None:
        return StockStatus.UNKNOWN
    if (quantity or 0) <= 0:
        return StockStatus.OUT_OF_STOCK

    thresholds = thresholds or default_thresholds()
    if percentage > thresholds.good_above:
        return StockStatus.GOOD
    if percentage > thresholds.low_above:
        return StockStatus.LOW
    return StockStatus.VERY_LOW
