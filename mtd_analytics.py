# mtd_analytics.py
"""
Month-to-date comparison for the coal transport report.

Anchor = selected end date (today when no end date is selected)
  Window 1: first day of the anchor's month .. anchor - 1
  Window 2: the anchor day only

Vehicles: trucks whose wheel configuration mentions WHEEL, narrowed to the
selected truck, or to plates matching the search text.
"""

from __future__ import annotations
from datetime import date, timedelta
from typing import Any, Dict, Iterable, List, Optional

from coal_batch_aggregator import _norm_text, _to_date
from timezone_utils import get_local_date


def _label(d: date) -> str:
    return d.strftime("%d %b")


class MTDAnalytics:

    @staticmethod
    def windows(anchor=None) -> Dict[str, Any]:
        anchor_day = _to_date(anchor) or get_local_date()
        month_start = anchor_day.replace(day=1)
        r1_end = anchor_day - timedelta(days=1)
        return {
            "anchor": anchor_day,
            "r1_start": month_start,
            "r1_end": r1_end,
            "range1_label": (
                f"{_label(month_start)} to {_label(r1_end)}" if month_start < anchor_day else "Prev. Data"
            ),
            "range2_label": _label(anchor_day),
        }

    @staticmethod
    def target_vehicle_ids(trucks: Iterable, truck_id: Optional[str] = None,
                           search: Optional[str] = None) -> List[str]:
        if truck_id:
            return [truck_id]
        base = [t for t in trucks if "WHEEL" in (t.wheel_config or "").upper()]
        needle = _norm_text(search)
        if needle:
            base = [t for t in base if needle in _norm_text(t.plate_number)]
        return [t.id for t in base]

    @staticmethod
    def sum_batches(batches: Iterable[Dict[str, Any]]) -> Dict[str, float]:
        acc = {
            "net_weight": 0.0, "diesel_pumped": 0.0, "net_diesel": 0.0, "amount": 0.0,
            "diesel_for_rate": 0.0, "physical_trips": 0, "net_trips": 0,
        }
        for b in batches:
            acc["net_weight"] += b["net_weight"]
            acc["diesel_pumped"] += b["diesel"]
            acc["net_diesel"] += b["net_diesel"]
            acc["amount"] += b["diesel"] * b["synced_rate"]
            acc["diesel_for_rate"] += b["diesel"] if b["diesel"] > 0 else 0.0
            acc["physical_trips"] += b["entries"]
            acc["net_trips"] += b["net_trips"]
        return acc

    @staticmethod
    def _derived(t: Dict[str, float]) -> Dict[str, float]:
        return {
            "net": t["net_weight"],
            "fuel": t["diesel_pumped"],
            "amount": t["amount"],
            "avg_load": t["net_weight"] / t["physical_trips"] if t["physical_trips"] > 0 else 0.0,
            "avg_fuel": t["net_diesel"] / t["net_trips"] if t["net_trips"] > 0 else 0.0,
            "rate": t["amount"] / t["diesel_for_rate"] if t["diesel_for_rate"] > 0 else 0.0,
        }

    @staticmethod
    def calculate(
        batches: Iterable[Dict[str, Any]],
        trucks: Iterable,
        anchor=None,
        truck_id: Optional[str] = None,
        search: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        batches should be the UNFILTERED batch list: the month window reaches
        before any date filter the page applies.
        """
        win = MTDAnalytics.windows(anchor)
        targets = set(MTDAnalytics.target_vehicle_ids(trucks, truck_id, search))
        scoped = [b for b in batches if b["truck_id"] in targets]

        r1 = [b for b in scoped if win["r1_start"] <= b["date"] <= win["r1_end"]]
        r2 = [b for b in scoped if b["date"] == win["anchor"]]

        return {
            "range1_label": win["range1_label"],
            "range2_label": win["range2_label"],
            "window1": MTDAnalytics._derived(MTDAnalytics.sum_batches(r1)),
            "window2": MTDAnalytics._derived(MTDAnalytics.sum_batches(r2)),
        }

    @staticmethod
    def tonnage_table(mtd: Dict[str, Any]) -> List[List]:
        w1, w2 = mtd["window1"], mtd["window2"]
        return [
            ["Metric Tonnage (MT)", round(w1["net"], 3), round(w2["net"], 3), round(w1["net"] + w2["net"], 3)],
            ["Avg Load/Trip (MT)", round(w1["avg_load"], 3), round(w2["avg_load"], 3),
             round((w1["avg_load"] + w2["avg_load"]) / 2, 3)],
            ["Avg Diesel/Trip (L)", round(w1["avg_fuel"], 3), round(w2["avg_fuel"], 3),
             round((w1["avg_fuel"] + w2["avg_fuel"]) / 2, 3)],
        ]

    @staticmethod
    def diesel_table(mtd: Dict[str, Any]) -> List[List]:
        w1, w2 = mtd["window1"], mtd["window2"]
        return [
            ["Diesel Consumed (L)", round(w1["fuel"], 3), round(w2["fuel"], 3), round(w1["fuel"] + w2["fuel"], 3)],
            ["Amount Spent (INR)", round(w1["amount"], 2), round(w2["amount"], 2), round(w1["amount"] + w2["amount"], 2)],
            ["Diesel Rate (INR)", round(w1["rate"], 2), round(w2["rate"], 2), round((w1["rate"] + w2["rate"]) / 2, 2)],
        ]
