# mining_batches.py
"""
Mining dispatch/purchase batches: one row per (date, truck, log type).

Differences from coal batches:
- Diesel comes from the FIRST fuel log attributed to (truck, date).
- Net weight uses the stored net, falling back to gross - tare.
- Welfare / roll are summed from the stored record values.
- Stock advance looks back to the truck's previous working day and only
  carries STOCK-typed adjustments, negative ones as a stock deduction.
"""

from __future__ import annotations
from typing import Any, Dict, Iterable, List, Optional

from coal_batch_aggregator import _by_id, _norm_text, _num, _to_date, batch_key
from fleet_config import FleetConfig
from fuel_carryover import FuelCarryoverResolver, PREVIOUS_WORKING_DAY


def _type_value(log) -> str:
    t = getattr(log, "log_type", None)
    return str(getattr(t, "value", t) or "DISPATCH")


class MiningBatchAggregator:

    @staticmethod
    def _day_stubs(logs: List) -> List[Dict[str, Any]]:
        """One entry per (date, truck) the truck worked, with its STOCK adjustment."""
        stubs: Dict[str, Dict[str, Any]] = {}
        for log in logs:
            day = _to_date(getattr(log, "date", None))
            if day is None or not getattr(log, "truck_id", None):
                continue
            key = batch_key(day, log.truck_id)
            stub = stubs.setdefault(key, {
                "key": key, "date": day, "truck_id": log.truck_id,
                "diesel_adjustment": 0.0, "diesel_adj_type": None,
            })
            adj_type = getattr(getattr(log, "diesel_adj_type", None), "value", getattr(log, "diesel_adj_type", None))
            if adj_type == "STOCK" and getattr(log, "diesel_adjustment", None):
                stub["diesel_adjustment"] = _num(log.diesel_adjustment)
                stub["diesel_adj_type"] = "STOCK"
        return list(stubs.values())

    @staticmethod
    def _matches(log, truck_map: Dict, search: str, material: Optional[str],
                 supplier: Optional[str], truck_id: Optional[str], day_filter) -> bool:
        if search:
            plate = getattr(truck_map.get(log.truck_id), "plate_number", "") or ""
            hay = _norm_text(f"{log.chalan_no or ''} {log.customer_name or ''} {log.supplier or ''} {plate}")
            if search not in hay:
                return False
        if material and log.material != material:
            return False
        if supplier and log.supplier != supplier:
            return False
        if truck_id and log.truck_id != truck_id:
            return False
        if day_filter and _to_date(log.date) != day_filter:
            return False
        return True

    @staticmethod
    def build_batches(
        logs: Iterable,
        fuel_logs: Optional[Iterable] = None,
        trucks: Optional[Iterable] = None,
        drivers: Optional[Iterable] = None,
        search: Optional[str] = None,
        material: Optional[str] = None,
        supplier: Optional[str] = None,
        truck_id: Optional[str] = None,
        day=None,
        user: Optional[Dict] = None,
    ) -> List[Dict[str, Any]]:
        """Build mining batches, newest first. Filters apply to individual logs."""
        from permission_manager import PermissionManager

        logs = list(logs)
        truck_map = _by_id(trucks)
        driver_map = _by_id(drivers)
        fuel_first: Dict[str, Any] = {}
        for f in fuel_logs or []:
            attr = _to_date(getattr(f, "attribution_date", None))
            if attr is not None:
                fuel_first.setdefault(batch_key(attr, f.truck_id), f)

        stubs = FuelCarryoverResolver.resolve(MiningBatchAggregator._day_stubs(logs), PREVIOUS_WORKING_DAY)
        advance = {s["key"]: s["advance_from_yesterday"] for s in stubs}

        needle = _norm_text(search)
        day_filter = _to_date(day)
        groups: Dict[str, Dict[str, Any]] = {}
        for log in logs:
            log_day = _to_date(getattr(log, "date", None))
            if log_day is None:
                continue
            if not MiningBatchAggregator._matches(log, truck_map, needle, material, supplier, truck_id, day_filter):
                continue

            day_key = batch_key(log_day, log.truck_id)
            key = f"{day_key}|{_type_value(log)}"
            if key not in groups:
                fuel = fuel_first.get(day_key)
                driver = driver_map.get(log.driver_id)
                truck = truck_map.get(log.truck_id)
                groups[key] = {
                    "key": key,
                    "date": log_day,
                    "truck_id": log.truck_id,
                    "plate_number": getattr(truck, "plate_number", None) or FleetConfig.UNKNOWN_TRUCK,
                    "wheel_config": getattr(truck, "wheel_config", None) or "",
                    "log_type": _type_value(log),
                    "entries": 0,
                    "net_weight": 0.0,
                    "diesel": _num(getattr(fuel, "fuel_liters", 0)) if fuel else 0.0,
                    "synced_driver": getattr(driver, "name", None),
                    "synced_driver_id": getattr(driver, "id", None),
                    "synced_rate": _num(getattr(fuel, "diesel_price", 0)) or FleetConfig.DEFAULT_DIESEL_RATE,
                    "filling_types": (
                        str(getattr(fuel.entry_type, "value", fuel.entry_type)).lower() if fuel else "per trip"
                    ),
                    "actual_fuel_date": _to_date(fuel.date) if fuel else None,
                    "advance_from_yesterday": advance.get(day_key, 0.0),
                    "trip_adjustment": 0,
                    "diesel_adjustment": 0.0,
                    "air_adjustment": 0.0,
                    "trip_remarks": "",
                    "diesel_remarks": "",
                    "air_remarks": "",
                    "staff_welfare": 0.0,
                    "roll_amount": 0.0,
                    "total_payable": 0.0,
                    "total_shortage": 0.0,
                    "logs": [],
                }
            g = groups[key]
            g["entries"] += 1
            stored_net = _num(getattr(log, "net", 0))
            g["net_weight"] += stored_net or max(0.0, _num(log.gross) - _num(log.tare))

            if log.adjustment:
                g["trip_adjustment"] = int(log.adjustment)
            if log.diesel_adjustment:
                g["diesel_adjustment"] = _num(log.diesel_adjustment)
            if log.air_adjustment:
                g["air_adjustment"] = _num(log.air_adjustment)
            for field in ("trip_remarks", "diesel_remarks", "air_remarks"):
                if getattr(log, field, None):
                    g[field] = getattr(log, field)

            g["staff_welfare"] += _num(log.staff_welfare)
            g["roll_amount"] += _num(log.roll_amount)
            g["total_payable"] += _num(log.staff_welfare) + _num(log.roll_amount)
            g["total_shortage"] += _num(log.shortage_wt)
            g["logs"].append(log)

        out = []
        for g in groups.values():
            if user is not None and not PermissionManager.can_view_batch(user, g):
                continue
            g["net_weight"] = round(g["net_weight"], 3)
            g["net_trips"] = g["entries"] + g["trip_adjustment"]
            g["net_diesel"] = round(
                g["diesel"] + g["advance_from_yesterday"] - g["diesel_adjustment"] - g["air_adjustment"], 3
            )
            out.append(g)
        return sorted(out, key=lambda g: g["date"], reverse=True)

    @staticmethod
    def shortage_of(loading_net, unloading_net) -> Optional[float]:
        """Unloading net minus loading net; negative means material was lost in transit."""
        if loading_net is None or unloading_net is None:
            return None
        return round(_num(unloading_net) - _num(loading_net), 3)

    @staticmethod
    def stock_label(advance) -> str:
        """Remark text for a carried STOCK value: advance when positive, deduction when negative."""
        advance = _num(advance)
        if advance > 0:
            return f"STOCK ADVANCE: {advance:g}L from previous working day"
        if advance < 0:
            return f"STOCK DEDUCTION: {abs(advance):g}L from previous working day"
        return ""
