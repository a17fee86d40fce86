# coal_batch_aggregator.py
"""
Coal transport batches: one row per (date, truck).

Rules:
- Key: "<ISO date>|<truck id>". Records without a date are skipped.
- Net weight = SUM(max(0, gross - tare)) over the batch's records.
- Adjustment, remark and site fields are NOT summed: while walking the
  records in input order the last non-empty value wins, so an adjustment
  copied onto every record of a batch is counted once.
- Diesel = SUM(fuel_liters) of fuel logs whose (truck, attribution_date)
  matches the batch.
- Net trips  = entries + trip adjustment
- Net diesel = diesel + advance from yesterday - diesel adj - air adj
- Staff welfare / roll amount come from BatchFinancials.
"""

from __future__ import annotations
from collections import defaultdict
from datetime import date, datetime
from typing import Any, Dict, Iterable, List, Optional

from batch_financials import BatchFinancials
from fleet_config import FleetConfig
from fuel_carryover import FuelCarryoverResolver, PREVIOUS_DAY
from models import FuelEntryType


# ---------- normalization helpers ----------
def _to_date(value) -> Optional[date]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return datetime.strptime(str(value)[:10], "%Y-%m-%d").date()
    except ValueError:
        return None


def _num(value) -> float:
    try:
        return float(value or 0.0)
    except (TypeError, ValueError):
        return 0.0


def _norm_text(s) -> str:
    return " ".join((s or "").strip().lower().split())


def _site(value) -> str:
    text = (value or "").strip()
    return "" if text.upper() == FleetConfig.NOT_AVAILABLE else text


def _by_id(items: Optional[Iterable]) -> Dict[str, Any]:
    if items is None:
        return {}
    if isinstance(items, dict):
        return items
    return {getattr(i, "id", None): i for i in items}


def batch_key(day, truck_id) -> str:
    d = _to_date(day)
    return f"{d.isoformat() if d else day}|{truck_id}"


def net_weight_of(record) -> float:
    """max(0, gross - tare) for one trip."""
    return max(0.0, _num(getattr(record, "gross_weight", 0)) - _num(getattr(record, "tare_weight", 0)))


class CoalBatchAggregator:

    # ------------- fuel attribution -------------
    @staticmethod
    def _fuel_index(fuel_logs: Optional[Iterable]) -> Dict[str, List]:
        index: Dict[str, List] = defaultdict(list)
        for f in fuel_logs or []:
            attr = _to_date(getattr(f, "attribution_date", None))
            if attr is None:
                continue
            index[batch_key(attr, f.truck_id)].append(f)
        return index

    @staticmethod
    def _filling_types(fuel_logs: List) -> str:
        labels: List[str] = []
        for f in fuel_logs:
            et = getattr(f, "entry_type", None)
            label = "full diesel" if et in (FuelEntryType.FULL_TANK, "FULL_TANK") else "per trip"
            if label not in labels:
                labels.append(label)
        return " / ".join(labels)

    # ------------- grouping -------------
    @staticmethod
    def _new_batch(key: str, day: date, log, truck, fuel_logs: List, drivers: Dict) -> Dict[str, Any]:
        driver_id = getattr(log, "driver_id", None) or (fuel_logs[0].driver_id if fuel_logs else None)
        driver = drivers.get(driver_id) if driver_id else None
        rate = (
            getattr(log, "diesel_rate", None)
            or (fuel_logs[0].diesel_price if fuel_logs else None)
            or FleetConfig.DEFAULT_DIESEL_RATE
        )
        return {
            "key": key,
            "date": day,
            "actual_fuel_date": _to_date(fuel_logs[0].date) if fuel_logs else None,
            "truck_id": log.truck_id,
            "plate_number": getattr(truck, "plate_number", None) or FleetConfig.UNKNOWN_TRUCK,
            "wheel_config": getattr(truck, "wheel_config", None) or FleetConfig.NOT_AVAILABLE,
            "entries": 0,
            "net_weight": 0.0,
            "gross_weight_total": 0.0,
            "origin_site": FleetConfig.NOT_AVAILABLE,
            "destination_site": FleetConfig.NOT_AVAILABLE,
            "diesel": round(sum(_num(f.fuel_liters) for f in fuel_logs), 3),
            "filling_types": CoalBatchAggregator._filling_types(fuel_logs),
            "diesel_adjustment": 0.0,
            "air_adjustment": 0.0,
            "diesel_adj_type": "OTHER",
            "trip_adjustment": 0,
            "trip_remarks": "",
            "diesel_remarks": "",
            "air_remarks": "",
            "synced_driver": getattr(driver, "name", None),
            "synced_driver_id": driver_id,
            "synced_rate": float(rate),
            "agent_id": getattr(log, "agent_id", None),
            "advance_from_yesterday": 0.0,
            "logs": [],
        }

    @staticmethod
    def _absorb(batch: Dict[str, Any], log) -> None:
        batch["entries"] += 1
        batch["net_weight"] += net_weight_of(log)
        batch["gross_weight_total"] += _num(getattr(log, "gross_weight", 0))
        batch["logs"].append(log)

        # last non-empty wins
        for src, dst in (("trip_remarks", "trip_remarks"),
                         ("diesel_remarks", "diesel_remarks"),
                         ("air_remarks", "air_remarks")):
            val = getattr(log, src, None)
            if val:
                batch[dst] = val
        if getattr(log, "adjustment", None):
            batch["trip_adjustment"] = int(log.adjustment)
        if getattr(log, "diesel_adjustment", None):
            batch["diesel_adjustment"] = _num(log.diesel_adjustment)
            adj_type = getattr(log, "diesel_adj_type", None)
            if adj_type:
                batch["diesel_adj_type"] = getattr(adj_type, "value", adj_type)
        if getattr(log, "air_adjustment", None):
            batch["air_adjustment"] = _num(log.air_adjustment)
        if _site(getattr(log, "origin_site", None)):
            batch["origin_site"] = log.origin_site
        if _site(getattr(log, "destination_site", None)):
            batch["destination_site"] = log.destination_site

    @staticmethod
    def _finalize(batch: Dict[str, Any]) -> None:
        first = batch["logs"][0]
        include = BatchFinancials.infer_include_adjustment(
            batch["entries"], batch["trip_adjustment"], getattr(first, "roll_amount", 0)
        )
        fin = BatchFinancials.calculate(batch["entries"], batch["trip_adjustment"], include)
        batch["include_adjustment_in_roll"] = include
        batch["staff_welfare"] = fin["staff_welfare"]
        batch["roll_amount"] = fin["roll_amount"]
        batch["total_payable"] = fin["total_payable"]

        batch["net_weight"] = round(batch["net_weight"], 3)
        batch["gross_weight_total"] = round(batch["gross_weight_total"], 3)
        batch["net_trips"] = batch["entries"] + batch["trip_adjustment"]
        batch["net_diesel"] = round(
            batch["diesel"]
            + batch["advance_from_yesterday"]
            - batch["diesel_adjustment"]
            - batch["air_adjustment"],
            3,
        )

    # ------------- public API -------------
    @staticmethod
    def build_batches(
        logs: Iterable,
        fuel_logs: Optional[Iterable] = None,
        trucks: Optional[Iterable] = None,
        drivers: Optional[Iterable] = None,
        require_stock_type: bool = False,
    ) -> List[Dict[str, Any]]:
        """
        Group trip records into batches, sorted ascending by date.

        - logs: CoalLog-like objects in the order they should be folded.
        - fuel_logs: FuelLog-like objects; matched on (truck_id, attribution_date).
        - trucks / drivers: iterables (or id->object dicts) for display fields.
        - require_stock_type: only carry forward STOCK-typed diesel adjustments.
        """
        truck_map = _by_id(trucks)
        driver_map = _by_id(drivers)
        fuel_index = CoalBatchAggregator._fuel_index(fuel_logs)

        groups: Dict[str, Dict[str, Any]] = {}
        for log in logs:
            day = _to_date(getattr(log, "date", None))
            if day is None:
                continue
            key = batch_key(day, log.truck_id)
            if key not in groups:
                groups[key] = CoalBatchAggregator._new_batch(
                    key, day, log, truck_map.get(log.truck_id), fuel_index.get(key, []), driver_map
                )
            CoalBatchAggregator._absorb(groups[key], log)

        batches = sorted(groups.values(), key=lambda b: b["date"])
        FuelCarryoverResolver.resolve(batches, PREVIOUS_DAY, require_stock_type)
        for b in batches:
            CoalBatchAggregator._finalize(b)
        return batches

    @staticmethod
    def filter_batches(
        batches: Iterable[Dict[str, Any]],
        truck_id: Optional[str] = None,
        search: Optional[str] = None,
        start_date=None,
        end_date=None,
        user: Optional[Dict] = None,
    ) -> List[Dict[str, Any]]:
        """Apply page filters and agent visibility; newest first."""
        from permission_manager import PermissionManager

        start = _to_date(start_date)
        end = _to_date(end_date)
        needle = _norm_text(search)

        out = []
        for b in batches:
            if user is not None and not PermissionManager.can_view_batch(user, b):
                continue
            if truck_id and b["truck_id"] != truck_id:
                continue
            if needle and needle not in _norm_text(b["plate_number"]):
                continue
            if start and b["date"] < start:
                continue
            if end and b["date"] > end:
                continue
            out.append(b)
        return sorted(out, key=lambda b: b["date"], reverse=True)

    @staticmethod
    def global_totals(batches: Iterable[Dict[str, Any]]) -> Dict[str, float]:
        totals = {"tonnage": 0.0, "diesel": 0.0, "trips": 0, "amount": 0.0}
        for b in batches:
            totals["tonnage"] += b["net_weight"]
            totals["diesel"] += b["diesel"]
            totals["trips"] += b["net_trips"]
            totals["amount"] += b["diesel"] * b["synced_rate"]
        totals["tonnage"] = round(totals["tonnage"], 3)
        totals["diesel"] = round(totals["diesel"], 3)
        totals["amount"] = round(totals["amount"], 2)
        return totals

    @staticmethod
    def flatten(batches: Iterable[Dict[str, Any]]) -> List:
        """Constituent records of all batches, batch by batch."""
        return [log for b in batches for log in b["logs"]]

    @staticmethod
    def find_batch(batches: Iterable[Dict[str, Any]], key: str) -> Optional[Dict[str, Any]]:
        for b in batches:
            if b["key"] == key:
                return b
        return None
