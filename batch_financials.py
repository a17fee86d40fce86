# batch_financials.py
"""
Driver payables for a (truck, day) batch.

  Staff welfare = 300 when the batch has at least one trip, else 0
  Roll amount   = max(0, trips + adj - 4) * 100
                  where adj is the trip adjustment only when the batch is
                  flagged to include it in the roll

Both figures are stored on the batch's FIRST record only; every other record
of the batch carries zero. apply_to_records() is the single place that writes
them, and every mutation path goes through it.
"""

from __future__ import annotations
from typing import Dict, Sequence

from fleet_config import FleetConfig


def _as_int(value) -> int:
    try:
        return int(round(float(value or 0)))
    except (TypeError, ValueError):
        return 0


class BatchFinancials:

    @staticmethod
    def calculate(
        trip_count,
        trip_adjustment=0,
        include_adjustment_in_roll: bool = False,
    ) -> Dict[str, float]:
        trips = max(0, _as_int(trip_count))
        adj = _as_int(trip_adjustment) if include_adjustment_in_roll else 0

        welfare = FleetConfig.STAFF_WELFARE_AMOUNT if trips > 0 else 0
        billable = max(0, (trips + adj) - FleetConfig.ROLL_FREE_TRIPS)
        roll = billable * FleetConfig.ROLL_RATE_PER_TRIP

        return {
            "staff_welfare": welfare,
            "roll_amount": roll,
            "total_payable": welfare + roll,
        }

    @staticmethod
    def infer_include_adjustment(trip_count, trip_adjustment, stored_roll) -> bool:
        """
        Recover the include-adjustment toggle from what was saved on the first
        record: True only if the stored roll matches the "included" figure and
        that figure differs from the plain one.
        """
        if not _as_int(trip_adjustment):
            return False
        stored = float(stored_roll or 0)
        with_adj = BatchFinancials.calculate(trip_count, trip_adjustment, True)["roll_amount"]
        without_adj = BatchFinancials.calculate(trip_count, trip_adjustment, False)["roll_amount"]
        return with_adj != without_adj and stored == with_adj

    @staticmethod
    def apply_to_records(
        records: Sequence,
        trip_adjustment=0,
        include_adjustment_in_roll: bool = False,
        trip_count=None,
    ) -> Dict[str, float]:
        """
        Write welfare/roll onto records[0] and zero them on the rest.
        trip_count defaults to len(records).
        """
        count = len(records) if trip_count is None else trip_count
        result = BatchFinancials.calculate(count, trip_adjustment, include_adjustment_in_roll)
        for idx, rec in enumerate(records):
            if idx == 0:
                rec.staff_welfare = result["staff_welfare"]
                rec.roll_amount = result["roll_amount"]
            else:
                rec.staff_welfare = 0
                rec.roll_amount = 0
        return result

    @staticmethod
    def holds_invariant(records: Sequence) -> bool:
        """Exactly the first record may carry non-zero welfare/roll."""
        if not records:
            return True
        for rec in records[1:]:
            if float(rec.staff_welfare or 0) or float(rec.roll_amount or 0):
                return False
        first = records[0]
        return bool(float(first.staff_welfare or 0) or float(first.roll_amount or 0))
