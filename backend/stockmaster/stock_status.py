# Overview: Stock status derivation; pure function of quantity and threshold.

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

AVAILABLE = "available"
LOW_STOCK = "low_stock"
OUT_OF_STOCK = "out_of_stock"

STOCK_STATUSES = (AVAILABLE, LOW_STOCK, OUT_OF_STOCK)

DEFAULT_LOW_STOCK_THRESHOLD = 10


@dataclass(frozen=True)
class StockTransition:
    """Before/after stock status pair produced by a single item save."""
    previous: str | None
    current: str

    @property
    def changed(self) -> bool:
        return self.previous != self.current


def _to_number(value: Any) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return value
    try:
        return float(str(value).strip())
    except ValueError:
        return None


def derive_stock_status(quantity: Any, threshold: Any) -> str:
    """
    Map (stock_quantity, low_stock_threshold) onto a stock status.

    Inputs are forced to numbers first: quantities arriving as "5" must compare
    numerically, never lexically. A missing quantity counts as zero and a
    missing threshold falls back to the default.

    qty <= 0               -> out_of_stock
    0 < qty <= threshold   -> low_stock   (inclusive boundary)
    qty > threshold        -> available
    """
    qty = _to_number(quantity)
    if qty is None:
        qty = 0
    limit = _to_number(threshold)
    if limit is None:
        limit = DEFAULT_LOW_STOCK_THRESHOLD

    if qty <= 0:
        return OUT_OF_STOCK
    if qty <= limit:
        return LOW_STOCK
    return AVAILABLE
