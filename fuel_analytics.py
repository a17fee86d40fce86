# fuel_analytics.py
"""
Fleet fuel analytics.

Per truck over a date window:
  km      = last fill odometer - first fill's previous odometer
  km/L    = km / litres
  L/trip  = litres / trips      (coal trips or mining entries of the truck)
  L/ton   = litres / tonnage

Status against FleetConfig.BENCHMARKS (GOOD / POOR / N/A):
  km/L    mining trucks only, GOOD at or above the low band
  L/trip  GOOD at or below the fleet's high band
  L/ton   GOOD at or below the global high band
"""

from __future__ import annotations
from io import BytesIO
from typing import Any, Dict, Iterable, List, Optional

import pandas as pd

from coal_batch_aggregator import _by_id, _norm_text, _num, _to_date
from fleet_config import FleetConfig
from logger import log_info
from models import FleetType

LEADERBOARD_METRICS = {
    # metric: (stat field, status field, higher is better)
    "L/TON": ("l_per_ton", "ton_status", False),
    "L/TRIP": ("l_per_trip", "trip_status", False),
    "KM/L": ("km_per_liter", "kml_status", True),
}


def _fleet(truck) -> str:
    value = getattr(truck, "fleet_type", None)
    return getattr(value, "value", value) or FleetType.COAL.value


def _in_window(day, start, end) -> bool:
    day = _to_date(day)
    return (not start or day >= start) and (not end or day <= end)


class FuelAnalytics:

    @staticmethod
    def filter_fuel_logs(fuel_logs: Iterable, trucks: Iterable, start_date=None, end_date=None,
                         station_id: Optional[str] = None, search: Optional[str] = None,
                         fleet: str = "ALL") -> List:
        """Fuel logs in the window for matching trucks, newest first."""
        truck_map = _by_id(trucks)
        start, end = _to_date(start_date), _to_date(end_date)
        needle = _norm_text(search)
        out = []
        for log in fuel_logs:
            truck = truck_map.get(log.truck_id)
            if not _in_window(log.date, start, end):
                continue
            if station_id and log.station_id != station_id:
                continue
            if needle and needle not in _norm_text(getattr(truck, "plate_number", "")):
                continue
            if fleet != "ALL" and (truck is None or _fleet(truck) != fleet):
                continue
            out.append(log)
        return sorted(out, key=lambda l: _to_date(l.date), reverse=True)

    @staticmethod
    def truck_stats(
        trucks: Iterable,
        fuel_logs: Iterable,
        coal_logs: Iterable = (),
        mining_logs: Iterable = (),
        start_date=None,
        end_date=None,
        search: Optional[str] = None,
        fleet: str = "ALL",
    ) -> List[Dict[str, Any]]:
        trucks = list(trucks)
        start, end = _to_date(start_date), _to_date(end_date)
        logs = FuelAnalytics.filter_fuel_logs(fuel_logs, trucks, start, end)
        coal = [l for l in coal_logs if _in_window(l.date, start, end)]
        mining = [l for l in mining_logs if _in_window(l.date, start, end)]
        needle = _norm_text(search)

        out = []
        for truck in trucks:
            if needle and needle not in _norm_text(truck.plate_number):
                continue
            kind = _fleet(truck)
            if fleet != "ALL" and kind != fleet:
                continue

            own = sorted((l for l in logs if l.truck_id == truck.id), key=lambda l: (_to_date(l.date), _num(l.odometer)))
            liters = sum(_num(l.fuel_liters) for l in own)
            cost = sum(_num(l.fuel_liters) * _num(l.diesel_price) for l in own)
            km = max(0.0, _num(own[-1].odometer) - _num(own[0].previous_odometer)) if own else 0.0

            if kind == FleetType.COAL.value:
                trips_logs = [l for l in coal if l.truck_id == truck.id]
                tonnage = sum(_num(l.net_weight) for l in trips_logs)
            else:
                trips_logs = [l for l in mining if l.truck_id == truck.id]
                tonnage = sum(_num(l.net) for l in trips_logs)
            trips = len(trips_logs)

            out.append(FuelAnalytics._rated({
                "truck_id": truck.id,
                "plate_number": truck.plate_number,
                "fleet_type": kind,
                "fills": len(own),
                "liters": round(liters, 3),
                "cost": round(cost, 2),
                "km": round(km, 1),
                "km_per_liter": round(km / liters, 3) if liters > 0 else 0.0,
                "trips": trips,
                "tonnage": round(tonnage, 3),
                "l_per_trip": round(liters / trips, 3) if trips else 0.0,
                "l_per_ton": round(liters / tonnage, 3) if tonnage > 0 else 0.0,
            }))
        return out

    @staticmethod
    def _rated(row: Dict[str, Any]) -> Dict[str, Any]:
        is_coal = row["fleet_type"] == FleetType.COAL.value
        if is_coal:
            row["kml_status"] = "N/A"
            trip_limit = FleetConfig.benchmark("coal_liters_per_trip")[1]
        else:
            low_kml = FleetConfig.benchmark("mining_km_per_liter")[0]
            row["kml_status"] = "GOOD" if row["km_per_liter"] >= low_kml else "POOR"
            trip_limit = FleetConfig.benchmark("mining_liters_per_trip")[1]
        ton_limit = FleetConfig.benchmark("global_liters_per_ton")[1]

        if row["l_per_trip"] > 0:
            row["trip_status"] = "GOOD" if row["l_per_trip"] <= trip_limit else "POOR"
        else:
            row["trip_status"] = "N/A"
        if row["l_per_ton"] > 0:
            row["ton_status"] = "GOOD" if row["l_per_ton"] <= ton_limit else "POOR"
        else:
            row["ton_status"] = "N/A"
        return row

    @staticmethod
    def aggregate(stats: Iterable[Dict[str, Any]]) -> Dict[str, float]:
        """Fleet litres and cost, and the mean km/L of the trucks that have one."""
        stats = list(stats)
        kml = [s["km_per_liter"] for s in stats if s["km_per_liter"] > 0]
        return {
            "liters": round(sum(s["liters"] for s in stats), 3),
            "cost": round(sum(s["cost"] for s in stats), 2),
            "avg_km_per_liter": round(sum(kml) / len(kml), 3) if kml else 0.0,
        }

    @staticmethod
    def station_stats(fuel_logs: Iterable, misc_entries: Iterable, stations: Iterable,
                      start_date=None, end_date=None) -> List[Dict[str, Any]]:
        """Litres and amount bought per external station (tankers are excluded), biggest first."""
        station_map = _by_id(stations)
        start, end = _to_date(start_date), _to_date(end_date)
        acc: Dict[str, Dict[str, float]] = {}

        def add(station_id, liters, amount):
            row = acc.setdefault(station_id or "", {"liters": 0.0, "cost": 0.0})
            row["liters"] += _num(liters)
            row["cost"] += _num(amount)

        for log in fuel_logs:
            if _in_window(log.date, start, end):
                add(log.station_id, log.fuel_liters, _num(log.fuel_liters) * _num(log.diesel_price))
        for entry in misc_entries:
            if _in_window(entry.date, start, end):
                add(entry.station_id, entry.fuel_liters, entry.amount)

        out = []
        for station_id, row in acc.items():
            station = station_map.get(station_id)
            if station is not None and station.is_internal:
                continue
            out.append({
                "station_id": station_id or None,
                "name": getattr(station, "name", None) or "Unknown/Self",
                "liters": round(row["liters"], 3),
                "cost": round(row["cost"], 2),
            })
        return sorted(out, key=lambda r: r["cost"], reverse=True)

    @staticmethod
    def leaderboard(stats: Iterable[Dict[str, Any]], metric: str = "L/TON", size: int = 5) -> Dict[str, List]:
        """Best GOOD and worst POOR trucks on one metric; trucks without fuel are left out."""
        try:
            field, status, higher_better = LEADERBOARD_METRICS[metric]
        except KeyError:
            raise ValueError(f"Unknown leaderboard metric '{metric}'")
        ranked = sorted((s for s in stats if s["liters"] > 0), key=lambda s: s[field], reverse=higher_better)
        return {
            "best": [s for s in ranked if s[status] == "GOOD"][:size],
            "worst": [s for s in reversed(ranked) if s[status] == "POOR"][:size],
        }

    @staticmethod
    def to_excel(stats: List[Dict[str, Any]], stations: List[Dict[str, Any]]) -> bytes:
        bio = BytesIO()
        vehicles = pd.DataFrame([
            {
                "Vehicle": s["plate_number"],
                "Fleet": s["fleet_type"],
                "Fills": s["fills"],
                "Litres": s["liters"],
                "Cost (INR)": s["cost"],
                "KM": s["km"],
                "KM/L": s["km_per_liter"],
                "Trips": s["trips"],
                "Tonnage (MT)": s["tonnage"],
                "L/Trip": s["l_per_trip"],
                "L/Ton": s["l_per_ton"],
                "KM/L Status": s["kml_status"],
                "Trip Status": s["trip_status"],
                "Ton Status": s["ton_status"],
            }
            for s in stats
        ])
        with pd.ExcelWriter(bio, engine="xlsxwriter") as writer:
            vehicles.to_excel(writer, index=False, sheet_name="Vehicle Efficiency")
            pd.DataFrame(
                [[r["name"], r["liters"], r["cost"]] for r in stations],
                columns=["Station", "Litres", "Amount (INR)"],
            ).to_excel(writer, index=False, sheet_name="Station Liability")
        log_info(f"Fuel analytics exported to Excel ({len(stats)} vehicles)")
        return bio.getvalue()
