"""
Completion pricing  (Strategy Pattern)
======================================

The lifecycle asks a ``CompletionPricing`` strategy for the final cost
of a trip once its actual distance and duration are known.

* ``QuotedFarePricing``  -- keep the cost quoted at creation.
* ``RateTablePricing``   -- ``base + km x per_km + minutes x per_minute``
  from a per-car-type table, never below the table's minimum fare.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

from .enums import CarType


@dataclass(frozen=True)
class Fare:
    base: float
    per_km: float
    per_minute: float
    minimum: float


# SAR
RATE_TABLE: dict[str, Fare] = {
    CarType.ECONOMY.value: Fare(base=10.0, per_km=2.5, per_minute=0.5, minimum=15.0),
    CarType.FAMILY.value: Fare(base=15.0, per_km=3.5, per_minute=0.6, minimum=20.0),
    CarType.LUXURY.value: Fare(base=25.0, per_km=5.0, per_minute=1.0, minimum=35.0),
}


# ── Strategy hierarchy ────────────────────────────────────────────────


class CompletionPricing(ABC):
    @abstractmethod
    def final_cost(
        self,
        *,
        car_type: str,
        quoted: Optional[float],
        distance_km: float,
        duration_min: int,
    ) -> float: ...


class QuotedFarePricing(CompletionPricing):
    def final_cost(self, *, car_type, quoted, distance_km, duration_min) -> float:
        return round(quoted or 0.0, 2)


class RateTablePricing(CompletionPricing):
    def __init__(self, table: Optional[dict[str, Fare]] = None):
        self.table = table or RATE_TABLE

    def final_cost(self, *, car_type, quoted, distance_km, duration_min) -> float:
        fare = self.table.get(car_type, self.table[CarType.ECONOMY.value])
        raw = fare.base + distance_km * fare.per_km + duration_min * fare.per_minute
        return round(max(fare.minimum, raw), 2)


def pricing_for(name: str) -> CompletionPricing:
    """Resolve the ``completion_pricing`` setting to a strategy."""
    if name == "estimate":
        return QuotedFarePricing()
    if name == "rate_table":
        return RateTablePricing()
    raise ValueError(f"Unknown completion pricing strategy: {name}")
