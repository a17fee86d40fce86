# fuel_manager.py
"""
Fuel log entry for trucks.

Attribution date (the production day the fuel is booked against):
  PER_TRIP                 -> the fueling date
  FULL_TANK / PARTIAL_FILL -> the day before the fueling date

Saving, editing or deleting a log re-spreads the fuel of the affected
attribution dates over their coal trip records (driver, per-trip litres,
rate) and rebuilds the daily odometer snapshot of the fueling date.
"""

from __future__ import annotations
from datetime import date, timedelta
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy.orm import Session

from coal_batch_aggregator import _num, _to_date, batch_key
from coal_log_service import CoalLogService
from fleet_config import FleetConfig
from logger import log_debug, log_error, log_info, log_warning
from models import (
    CoalLog, DailyOdometer, FuelEntryType, FuelLog, PartyDieselTransaction, PartyTxType, Truck,
)
from recycle_bin import RecycleBinManager
from security import SecurityManager


class FuelEntryError(ValueError):
    """Fuel entry rejected before saving."""


def _entry_type(value) -> FuelEntryType:
    if isinstance(value, FuelEntryType):
        return value
    try:
        return FuelEntryType(str(value or "PER_TRIP").upper())
    except ValueError:
        raise FuelEntryError(f"Unknown fuel entry type '{value}'.")


def _log_label(log) -> str:
    return f"{log.date} {_num(log.fuel_liters):g} L"


class FuelManager:
    """Fuel log entry, odometer checks and efficiency"""

    @staticmethod
    def attribution_date(fueling_date, entry_type) -> date:
        day = _to_date(fueling_date)
        if day is None:
            raise FuelEntryError("Select a valid fueling date.")
        if _entry_type(entry_type) == FuelEntryType.PER_TRIP:
            return day
        return day - timedelta(days=1)

    @staticmethod
    def previous_odometer(session: Session, truck_id: str, fueling_date, exclude_id: Optional[str] = None) -> float:
        """
        Opening odometer for a new fill:
        1. highest odometer already logged for the truck on the same date
        2. opening odometer of the day's snapshot
        3. odometer of the latest earlier log
        4. the truck's current odometer
        """
        day = _to_date(fueling_date)
        q = session.query(FuelLog).filter(FuelLog.truck_id == truck_id)
        if exclude_id:
            q = q.filter(FuelLog.id != exclude_id)

        same_day = q.filter(FuelLog.date == day).order_by(FuelLog.odometer.desc()).first()
        if same_day is not None:
            return _num(same_day.odometer)

        snapshot = (
            session.query(DailyOdometer)
            .filter(DailyOdometer.truck_id == truck_id, DailyOdometer.date == day)
            .one_or_none()
        )
        if snapshot is not None and _num(snapshot.opening_odometer):
            return _num(snapshot.opening_odometer)

        earlier = q.filter(FuelLog.date < day).order_by(FuelLog.date.desc(), FuelLog.odometer.desc()).first()
        if earlier is not None:
            return _num(earlier.odometer)

        truck = session.get(Truck, truck_id)
        return _num(getattr(truck, "current_odometer", 0))

    @staticmethod
    def validate(data: Dict[str, Any], previous_odometer: float) -> None:
        for field, label in (("truck_id", "truck"), ("driver_id", "driver")):
            if not data.get(field):
                raise FuelEntryError(f"Select a {label}.")
        if _num(data.get("fuel_liters")) <= 0:
            raise FuelEntryError("Fuel litres must be greater than zero.")
        if _num(data.get("diesel_price")) <= 0:
            raise FuelEntryError("Diesel price is required.")
        odometer = data.get("odometer")
        if odometer in (None, ""):
            raise FuelEntryError("Odometer reading is required.")
        if _num(odometer) < _num(previous_odometer):
            raise FuelEntryError(
                f"Odometer {_num(odometer):,.0f} is below the previous reading {_num(previous_odometer):,.0f}."
            )

    @staticmethod
    def backfill_coal_logs(session: Session, truck_id: str, attribution_date) -> int:
        """
        Re-spread the fuel attributed to (truck, date) over that day's coal trips;
        returns the number touched. Driver and rate come from the first fuel
        log; with no fuel left the trips drop to zero litres.
        """
        session.flush()
        day = _to_date(attribution_date)
        logs = (
            session.query(CoalLog)
            .filter(CoalLog.truck_id == truck_id, CoalLog.date == day)
            .all()
        )
        if not logs:
            return 0
        fuel = CoalLogService.attributed_fuel(session, day, truck_id)
        per_trip = round(fuel["liters"] / len(logs), 3)
        for rec in logs:
            rec.diesel_liters = per_trip
            if fuel["date"] is not None:
                rec.driver_id = fuel["driver_id"]
                rec.diesel_rate = fuel["rate"]
        log_debug(f"Backfill {batch_key(day, truck_id)}: {fuel['liters']} L over {len(logs)} trip(s)")
        return len(logs)

    @staticmethod
    def upsert_daily_odometer(session: Session, truck_id: str, day, opening: float, closing: float) -> DailyOdometer:
        """Insert or overwrite the odometer snapshot of (truck, day). Flushed, not committed."""
        day = _to_date(day)
        row = (
            session.query(DailyOdometer)
            .filter(DailyOdometer.truck_id == truck_id, DailyOdometer.date == day)
            .one_or_none()
        )
        if row is None:
            row = DailyOdometer(truck_id=truck_id, date=day)
            session.add(row)
        row.opening_odometer = _num(opening)
        row.closing_odometer = _num(closing)
        session.flush()
        return row

    @staticmethod
    def refresh_daily_odometer(session: Session, truck_id: str, day) -> Optional[DailyOdometer]:
        """Rebuild the snapshot of (truck, fueling day) from the logs still on it; drop it when none are left."""
        session.flush()
        day = _to_date(day)
        logs = session.query(FuelLog).filter(FuelLog.truck_id == truck_id, FuelLog.date == day).all()
        if not logs:
            session.query(DailyOdometer).filter(
                DailyOdometer.truck_id == truck_id, DailyOdometer.date == day
            ).delete(synchronize_session=False)
            return None
        return FuelManager.upsert_daily_odometer(
            session, truck_id, day,
            min(_num(l.previous_odometer) for l in logs),
            max(_num(l.odometer) for l in logs),
        )

    @staticmethod
    def _borrow_for(session: Session, log_id: str) -> Optional[PartyDieselTransaction]:
        return (
            session.query(PartyDieselTransaction)
            .filter(PartyDieselTransaction.fuel_log_id == log_id)
            .first()
        )

    @staticmethod
    def _sync_borrow(session: Session, log: FuelLog, username: str) -> None:
        """Keep the party BORROW of a fuel log in step with it: create, update or archive."""
        tx = FuelManager._borrow_for(session, log.id)
        if not log.party_id:
            if tx is not None:
                RecycleBinManager.archive_record(session, tx, "PartyDieselTransaction", username,
                                                 reason="Fuel log no longer from a party",
                                                 label=f"{tx.date} BORROW {_num(tx.fuel_liters):g} L")
            return
        if tx is None:
            tx = PartyDieselTransaction(tx_type=PartyTxType.BORROW, fuel_log_id=log.id, remarks="Fleet fueling")
            session.add(tx)
        tx.party_id = log.party_id
        tx.date = log.date
        tx.fuel_liters = log.fuel_liters
        tx.diesel_price = log.diesel_price
        tx.amount = round(_num(log.fuel_liters) * _num(log.diesel_price), 2)

    @staticmethod
    def add_fuel_log(session: Session, data: Dict[str, Any], agent_id: str) -> FuelLog:
        """
        Validate and save a fuel log. Also:
        - moves the truck's current odometer forward
        - backfills the coal trips of the attribution date
        - books a BORROW on the diesel party when the fill came from a party
        """
        truck_id = data.get("truck_id")
        entry_type = _entry_type(data.get("entry_type"))
        fueling_date = _to_date(data.get("date"))
        if fueling_date is None:
            raise FuelEntryError("Select a valid fueling date.")

        prev_odo = data.get("previous_odometer")
        if prev_odo is None and truck_id:
            prev_odo = FuelManager.previous_odometer(session, truck_id, fueling_date)
        FuelManager.validate(data, prev_odo or 0)
        attribution = FuelManager.attribution_date(fueling_date, entry_type)

        try:
            log = FuelLog(
                truck_id=truck_id,
                driver_id=data["driver_id"],
                station_id=data.get("station_id") or None,
                party_id=data.get("party_id") or None,
                date=fueling_date,
                attribution_date=attribution,
                entry_type=entry_type,
                odometer=_num(data.get("odometer")),
                previous_odometer=_num(prev_odo),
                fuel_liters=_num(data.get("fuel_liters")),
                diesel_price=_num(data.get("diesel_price")),
                agent_id=agent_id,
                performance_remarks=data.get("performance_remarks"),
            )
            session.add(log)
            session.flush()

            truck = session.get(Truck, truck_id)
            if truck is not None and _num(log.odometer) > _num(truck.current_odometer):
                truck.current_odometer = log.odometer

            touched = FuelManager.backfill_coal_logs(session, truck_id, attribution)
            FuelManager.refresh_daily_odometer(session, truck_id, fueling_date)
            FuelManager._sync_borrow(session, log, agent_id)

            SecurityManager.log_audit(
                session, agent_id, "CREATE", resource_type="FuelLog", resource_id=log.id,
                details=f"{log.fuel_liters} L {entry_type.value} for {attribution.isoformat()}",
            )
            session.commit()
        except Exception as e:
            session.rollback()
            log_error(f"Fuel log save failed for truck {truck_id}: {e}", exc_info=True)
            raise

        if not touched:
            log_warning(f"Fuel log {log.id}: no coal trips yet for {attribution.isoformat()} (backfill skipped)")
        log_info(f"Fuel log saved by {agent_id}: {log.fuel_liters} L, attributed to {attribution.isoformat()}")
        return log

    @staticmethod
    def update_fuel_log(session: Session, log_id: str, data: Dict[str, Any], username: str) -> FuelLog:
        """
        Edit a saved fuel log. Fields missing from data keep their value. The
        old and the new attribution dates are both backfilled again, so trips
        the fuel moved away from lose it.
        """
        log = session.get(FuelLog, log_id)
        if log is None:
            raise FuelEntryError(f"Fuel log {log_id} not found.")

        merged = {
            "truck_id": log.truck_id, "driver_id": log.driver_id, "station_id": log.station_id,
            "party_id": log.party_id, "date": log.date, "entry_type": log.entry_type,
            "odometer": log.odometer, "fuel_liters": log.fuel_liters, "diesel_price": log.diesel_price,
            "performance_remarks": log.performance_remarks,
        }
        merged.update(data)
        fueling_date = _to_date(merged["date"])
        if fueling_date is None:
            raise FuelEntryError("Select a valid fueling date.")
        entry_type = _entry_type(merged["entry_type"])
        prev_odo = merged.get("previous_odometer")
        if prev_odo is None:
            prev_odo = FuelManager.previous_odometer(session, merged["truck_id"], fueling_date, exclude_id=log.id)
        FuelManager.validate(merged, prev_odo or 0)
        attribution = FuelManager.attribution_date(fueling_date, entry_type)

        old_attr = (log.truck_id, log.attribution_date)
        old_day = (log.truck_id, log.date)
        try:
            log.truck_id = merged["truck_id"]
            log.driver_id = merged["driver_id"]
            log.station_id = merged.get("station_id") or None
            log.party_id = merged.get("party_id") or None
            log.date = fueling_date
            log.attribution_date = attribution
            log.entry_type = entry_type
            log.odometer = _num(merged["odometer"])
            log.previous_odometer = _num(prev_odo)
            log.fuel_liters = _num(merged["fuel_liters"])
            log.diesel_price = _num(merged["diesel_price"])
            log.performance_remarks = merged.get("performance_remarks")
            session.flush()

            truck = session.get(Truck, log.truck_id)
            if truck is not None and _num(log.odometer) > _num(truck.current_odometer):
                truck.current_odometer = log.odometer

            FuelManager._sync_borrow(session, log, username)
            for truck_id, day in {old_attr, (log.truck_id, attribution)}:
                FuelManager.backfill_coal_logs(session, truck_id, day)
            for truck_id, day in {old_day, (log.truck_id, fueling_date)}:
                FuelManager.refresh_daily_odometer(session, truck_id, day)

            SecurityManager.log_audit(
                session, username, "UPDATE", resource_type="FuelLog", resource_id=log.id,
                details=f"{log.fuel_liters} L {entry_type.value} for {attribution.isoformat()}",
            )
            session.commit()
        except Exception as e:
            session.rollback()
            log_error(f"Fuel log update failed for {log_id}: {e}", exc_info=True)
            raise

        log_info(f"Fuel log {log_id} updated by {username}")
        return log

    @staticmethod
    def delete_fuel_log(session: Session, log_id: str, username: str, reason: Optional[str] = None) -> None:
        """Archive the log (and its party BORROW) and take its litres back off the coal trips."""
        log = session.get(FuelLog, log_id)
        if log is None:
            raise FuelEntryError(f"Fuel log {log_id} not found.")
        truck_id, attribution, fueling_date = log.truck_id, log.attribution_date, log.date

        try:
            tx = FuelManager._borrow_for(session, log_id)
            if tx is not None:
                RecycleBinManager.archive_record(session, tx, "PartyDieselTransaction", username, reason=reason,
                                                 label=f"{tx.date} BORROW {_num(tx.fuel_liters):g} L")
            RecycleBinManager.archive_record(session, log, "FuelLog", username, reason=reason, label=_log_label(log))
            FuelManager.backfill_coal_logs(session, truck_id, attribution)
            FuelManager.refresh_daily_odometer(session, truck_id, fueling_date)
            SecurityManager.log_audit(
                session, username, "DELETE", resource_type="FuelLog", resource_id=log_id,
                details=reason or f"Deleted fuel log for {attribution.isoformat()}",
            )
            session.commit()
        except Exception as e:
            session.rollback()
            log_error(f"Fuel log delete failed for {log_id}: {e}", exc_info=True)
            raise
        log_info(f"Fuel log {log_id} deleted by {username}")

    @staticmethod
    def calculate_true_efficiency(current: Any, truck_logs: Iterable[Any]) -> Optional[float]:
        """
        km/L for a FULL_TANK fill. Partial fills since the previous FULL_TANK
        add their litres and push the start odometer back; the previous
        FULL_TANK's closing odometer is the start.

        Returns None for non-FULL_TANK logs (or a log not in truck_logs),
        0.0 when distance or litres are not positive.
        """
        if _entry_type(current.entry_type) != FuelEntryType.FULL_TANK:
            return None
        ordered = sorted(truck_logs, key=lambda l: _to_date(l.date) or date.min)
        ids = [l.id for l in ordered]
        if current.id not in ids:
            return None

        total_liters = _num(current.fuel_liters)
        start_odo = _num(current.previous_odometer)
        for prev in reversed(ordered[:ids.index(current.id)]):
            prev_type = _entry_type(prev.entry_type)
            if prev_type == FuelEntryType.PARTIAL_FILL:
                total_liters += _num(prev.fuel_liters)
                start_odo = _num(prev.previous_odometer)
            elif prev_type == FuelEntryType.FULL_TANK:
                start_odo = _num(prev.odometer)
                break

        distance = _num(current.odometer) - start_odo
        if distance <= 0 or total_liters <= 0:
            return 0.0
        return distance / total_liters

    @staticmethod
    def efficiency_band(km_per_liter: Optional[float], benchmark: str = "mining_km_per_liter") -> Optional[str]:
        if km_per_liter is None:
            return None
        return FleetConfig.rate_band(km_per_liter, benchmark)

    @staticmethod
    def history_rows(logs: Iterable[Any], trucks: Optional[Dict] = None, drivers: Optional[Dict] = None) -> List[Dict]:
        """Flat rows for the fuel history table, newest first."""
        trucks = trucks or {}
        drivers = drivers or {}
        rows = []
        for l in sorted(logs, key=lambda x: (_to_date(x.date) or date.min), reverse=True):
            distance = _num(l.odometer) - _num(l.previous_odometer)
            rows.append({
                "Date": _to_date(l.date),
                "Prod Date": _to_date(l.attribution_date),
                "Vehicle": getattr(trucks.get(l.truck_id), "plate_number", FleetConfig.UNKNOWN_TRUCK),
                "Driver": getattr(drivers.get(l.driver_id), "name", FleetConfig.PENDING_DRIVER),
                "Type": _entry_type(l.entry_type).value,
                "ODO Start": _num(l.previous_odometer),
                "ODO End": _num(l.odometer),
                "KM": distance,
                "Litres": _num(l.fuel_liters),
                "Rate": _num(l.diesel_price),
                "Amount": round(_num(l.fuel_liters) * _num(l.diesel_price), 2),
            })
        return rows
