# fuel_carryover.py
"""
Stock advance ("advance from yesterday") between consecutive batches.

When a truck ends a day with diesel left in the tank, the litres are booked
as a positive diesel adjustment on that day's batch and show up as an advance
on the next batch of the same truck:

  previous_day         (coal)   look at batch (truck, D-1) only
  previous_working_day (mining) look at the latest earlier date the truck
                                 worked, STOCK-typed adjustments only; a
                                 negative STOCK value carries as a deduction

This is a single backward hop, not a running balance.
"""

from __future__ import annotations
from datetime import date, timedelta
from typing import Dict, Iterable, List, Optional

PREVIOUS_DAY = "previous_day"
PREVIOUS_WORKING_DAY = "previous_working_day"


def _is_stock(adj_type) -> bool:
    val = getattr(adj_type, "value", adj_type)
    return str(val or "").upper() == "STOCK"


class FuelCarryoverResolver:

    @staticmethod
    def _previous_day_source(batch: Dict, by_key: Dict[str, Dict]) -> Optional[Dict]:
        day = batch.get("date")
        if not isinstance(day, date):
            return None
        prev_key = f"{(day - timedelta(days=1)).isoformat()}|{batch['truck_id']}"
        return by_key.get(prev_key)

    @staticmethod
    def _previous_working_day_source(batch: Dict, truck_days: Dict[str, List[date]],
                                     by_key: Dict[str, Dict]) -> Optional[Dict]:
        day = batch.get("date")
        earlier = [d for d in truck_days.get(batch["truck_id"], []) if d < day]
        if not earlier:
            return None
        return by_key.get(f"{max(earlier).isoformat()}|{batch['truck_id']}")

    @staticmethod
    def advance_for(source: Optional[Dict], require_stock_type: bool = False, signed: bool = False) -> float:
        """
        Litres the source batch hands to the next one. Unsigned (coal) only a
        positive adjustment carries; signed (mining) a negative STOCK value
        carries as a deduction.
        """
        if not source:
            return 0.0
        adj = float(source.get("diesel_adjustment") or 0.0)
        if require_stock_type and not _is_stock(source.get("diesel_adj_type")):
            return 0.0
        if signed:
            return adj
        if adj <= 0:
            return 0.0
        return abs(adj)

    @staticmethod
    def resolve(
        batches: Iterable[Dict],
        mode: str = PREVIOUS_DAY,
        require_stock_type: bool = False,
    ) -> List[Dict]:
        """
        Set advance_from_yesterday on every batch in place and return them.
        Batches must carry key, date, truck_id, diesel_adjustment and
        diesel_adj_type.
        """
        batches = list(batches)
        by_key = {b["key"]: b for b in batches}

        signed = mode == PREVIOUS_WORKING_DAY
        truck_days: Dict[str, List[date]] = {}
        if mode == PREVIOUS_WORKING_DAY:
            require_stock_type = True
            for b in batches:
                truck_days.setdefault(b["truck_id"], []).append(b["date"])
        elif mode != PREVIOUS_DAY:
            raise ValueError(f"Unknown carryover mode '{mode}'")

        for b in batches:
            if mode == PREVIOUS_DAY:
                source = FuelCarryoverResolver._previous_day_source(b, by_key)
            else:
                source = FuelCarryoverResolver._previous_working_day_source(b, truck_days, by_key)
            b["advance_from_yesterday"] = FuelCarryoverResolver.advance_for(source, require_stock_type, signed)
        return batches
