# tire_inventory.py
"""
Tire inventory and lifecycle.

  NEW / SPARE --mount--> MOUNTED --unmount--> SPARE / REPAIR / SCRAPPED

When a tire comes off a truck the distance of that mounting (unmount
odometer - mount odometer) is added to its mileage. While it is mounted the
running distance is read from the truck's current odometer.
"""

from __future__ import annotations
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy.orm import Session

from coal_batch_aggregator import _by_id, _norm_text, _num, _to_date
from db import transaction
from fleet_config import FleetConfig
from logger import log_info
from models import Tire, TireEvent, TireStatus, Truck
from security import SecurityManager
from timezone_utils import get_local_date


class TireError(ValueError):
    """Tire operation rejected."""


def _pair(axle: int) -> List[str]:
    return [f"AXLE-{axle} LEFT", f"AXLE-{axle} RIGHT"]


def _quad(axle: int) -> List[str]:
    return [f"AXLE-{axle} L-OUT", f"AXLE-{axle} L-IN", f"AXLE-{axle} R-IN", f"AXLE-{axle} R-OUT"]


WHEEL_LAYOUTS = {
    "10 WHEEL": _pair(1) + _quad(2) + _quad(3),
    "12 WHEEL": _pair(1) + _pair(2) + _quad(3) + _quad(4),
    "14 WHEEL": _pair(1) + _pair(2) + _pair(3) + _quad(4) + _quad(5),
    "16 WHEEL": _pair(1) + _pair(2) + _quad(3) + _quad(4) + _quad(5),
}

OFF_TRUCK_STATUSES = (TireStatus.SPARE, TireStatus.REPAIR, TireStatus.SCRAPPED)


def _status(value) -> TireStatus:
    if isinstance(value, TireStatus):
        return value
    try:
        return TireStatus(str(value or "").upper())
    except ValueError:
        raise TireError(f"Unknown tire status '{value}'.")


class TireInventory:

    # ------------- layout -------------
    @staticmethod
    def positions_for(wheel_config: Optional[str]) -> List[str]:
        return list(WHEEL_LAYOUTS.get(str(wheel_config or "").strip().upper(), []))

    @staticmethod
    def truck_layout(session: Session, truck) -> List[Dict[str, Any]]:
        """Every wheel position of the truck with the tire on it (or None)."""
        mounted = {
            (t.position or "").upper(): t
            for t in session.query(Tire).filter(Tire.truck_id == truck.id, Tire.status == TireStatus.MOUNTED)
        }
        return [{"position": p, "tire": mounted.get(p)} for p in TireInventory.positions_for(truck.wheel_config)]

    # ------------- mileage -------------
    @staticmethod
    def live_mileage(tire, truck=None) -> float:
        """Completed mileage plus the running distance of the current mounting."""
        total = _num(tire.mileage)
        if _status(tire.status) == TireStatus.MOUNTED and truck is not None and tire.mounted_at_odometer is not None:
            total += max(0.0, _num(truck.current_odometer) - _num(tire.mounted_at_odometer))
        return total

    @staticmethod
    def life_used_pct(tire, truck=None) -> float:
        lifespan = _num(tire.expected_lifespan) or FleetConfig.TIRE_EXPECTED_LIFESPAN_KM
        return round(TireInventory.live_mileage(tire, truck) / lifespan * 100, 1)

    @staticmethod
    def history_rows(tire, truck=None) -> List[Dict[str, Any]]:
        """Lifecycle events in order, with the km run by each mounting."""
        rows = []
        mount_odo = None
        mount_row = None
        for ev in tire.events.order_by(TireEvent.id).all():
            row = {"Date": ev.date, "Event": ev.event, "Details": ev.description or "", "Run KM": 0.0}
            if ev.event == "Mounted":
                mount_odo, mount_row = ev.odometer, row
            elif ev.event == "Unmounted" and mount_odo is not None and ev.odometer is not None:
                row["Run KM"] = max(0.0, _num(ev.odometer) - _num(mount_odo))
                mount_odo, mount_row = None, None
            rows.append(row)
        if mount_row is not None and truck is not None and _status(tire.status) == TireStatus.MOUNTED:
            mount_row["Run KM"] = max(0.0, _num(truck.current_odometer) - _num(mount_odo))
        return rows

    @staticmethod
    def filter(tires: Iterable, trucks: Optional[Iterable] = None, search: Optional[str] = None,
               status: str = "ALL", brand: str = "ALL") -> List:
        truck_map = _by_id(trucks)
        needle = _norm_text(search)
        out = []
        for t in tires:
            plate = getattr(truck_map.get(t.truck_id), "plate_number", "") or ""
            if needle and needle not in _norm_text(f"{t.serial_number} {t.brand or ''} {plate}"):
                continue
            if status != "ALL" and _status(t.status).value != status:
                continue
            if brand != "ALL" and t.brand != brand:
                continue
            out.append(t)
        return out

    # ------------- mutations -------------
    @staticmethod
    def _event(session: Session, tire: Tire, event: str, description: str, username: str,
               odometer: Optional[float] = None, day=None) -> None:
        session.add(TireEvent(
            tire_id=tire.id,
            date=_to_date(day) or get_local_date(),
            event=event,
            description=description,
            odometer=odometer,
            username=username,
        ))

    @staticmethod
    def _get(session: Session, tire_id: str) -> Tire:
        tire = session.get(Tire, tire_id)
        if tire is None:
            raise TireError(f"Tire {tire_id} not found.")
        return tire

    @staticmethod
    def add_tires(session: Session, rows: List[Dict[str, Any]], username: str,
                  common: Optional[Dict[str, Any]] = None) -> List[Tire]:
        """
        Register one or more tires (a bill's worth at a time). Fields missing
        from a row are taken from common; every serial number must be new.
        """
        common = common or {}
        if not rows:
            raise TireError("Add at least one tire.")
        serials = [str(r.get("serial_number") or "").strip().upper() for r in rows]
        if not all(serials):
            raise TireError("Every tire needs a serial number.")
        if len(set(serials)) != len(serials):
            raise TireError("Duplicate serial numbers in this batch.")
        taken = {s for (s,) in session.query(Tire.serial_number).filter(Tire.serial_number.in_(serials))}
        if taken:
            raise TireError(f"Serial number(s) already registered: {', '.join(sorted(taken))}")

        created = []
        with transaction(session, "Tire registration"):
            for serial, row in zip(serials, rows):
                values = {**common, **{k: v for k, v in row.items() if v not in (None, "")}}
                start_km = _num(values.get("mileage"))
                if start_km < 0:
                    raise TireError(f"{serial}: starting km cannot be negative.")
                tire = Tire(
                    serial_number=serial,
                    brand=values.get("brand"),
                    size=values.get("size"),
                    manufacturer=values.get("manufacturer"),
                    supplier=values.get("supplier"),
                    bill_number=values.get("bill_number"),
                    mileage=start_km,
                    expected_lifespan=_num(values.get("expected_lifespan")) or FleetConfig.TIRE_EXPECTED_LIFESPAN_KM,
                    status=TireStatus.NEW,
                )
                session.add(tire)
                session.flush()
                TireInventory._event(
                    session, tire, "Procured",
                    f"Bill: {tire.bill_number or FleetConfig.NOT_AVAILABLE}, Start KM: {start_km:g}", username,
                )
                created.append(tire)
            SecurityManager.log_audit(
                session, username, "CREATE", resource_type="Tire",
                resource_id=created[0].id if len(created) == 1 else None,
                details=f"{len(created)} tire(s) registered: {', '.join(serials)}",
            )
        log_info(f"{len(created)} tire(s) registered by {username}")
        return created

    @staticmethod
    def update_specs(session: Session, tire_id: str, data: Dict[str, Any], username: str) -> Tire:
        tire = TireInventory._get(session, tire_id)
        serial = str(data.get("serial_number") or tire.serial_number).strip().upper()
        if serial != tire.serial_number and session.query(Tire).filter(Tire.serial_number == serial).first():
            raise TireError(f"Serial number '{serial}' already registered.")
        with transaction(session, f"Tire specs {tire_id}"):
            tire.serial_number = serial
            for field in ("brand", "size", "manufacturer", "supplier", "bill_number"):
                if field in data:
                    setattr(tire, field, data[field] or None)
            if data.get("expected_lifespan"):
                tire.expected_lifespan = _num(data["expected_lifespan"])
            if "last_inspection_date" in data:
                tire.last_inspection_date = _to_date(data["last_inspection_date"])
            SecurityManager.log_audit(session, username, "UPDATE", resource_type="Tire", resource_id=tire.id,
                                      details=f"Specs updated for {serial}")
        return tire

    @staticmethod
    def set_status(session: Session, tire_id: str, status, username: str,
                   scrapped_reason: Optional[str] = None, mileage: Optional[float] = None) -> Tire:
        """Move a tire that is off the truck between NEW / SPARE / REPAIR / SCRAPPED."""
        tire = TireInventory._get(session, tire_id)
        status = _status(status)
        if _status(tire.status) == TireStatus.MOUNTED:
            raise TireError("Unmount the tire before changing its status.")
        if status == TireStatus.MOUNTED:
            raise TireError("Mount the tire on a truck position instead.")
        if status == TireStatus.SCRAPPED and not (scrapped_reason or "").strip():
            raise TireError("A scrap reason is required.")
        if mileage is not None and _num(mileage) < 0:
            raise TireError("Mileage cannot be negative.")

        with transaction(session, f"Tire status {tire_id}"):
            old = _status(tire.status).value
            tire.status = status
            tire.scrapped_reason = scrapped_reason.strip() if status == TireStatus.SCRAPPED else None
            if mileage is not None:
                tire.mileage = _num(mileage)
            TireInventory._event(
                session, tire, "Lifecycle Updated",
                f"{old} -> {status.value}" + (f" ({tire.scrapped_reason})" if tire.scrapped_reason else ""),
                username,
            )
            SecurityManager.log_audit(session, username, "UPDATE", resource_type="Tire", resource_id=tire.id,
                                      details=f"{tire.serial_number}: {old} -> {status.value}")
        return tire

    @staticmethod
    def _mount(session: Session, tire: Tire, truck: Truck, position: str, username: str,
               odometer: Optional[float], remarks: Optional[str]) -> None:
        if _status(tire.status) not in (TireStatus.NEW, TireStatus.SPARE):
            raise TireError(f"Only NEW or SPARE tires can be mounted ({tire.serial_number} is {_status(tire.status).value}).")
        position = str(position or "").strip().upper()
        if position not in TireInventory.positions_for(truck.wheel_config):
            raise TireError(f"{position or 'Position'} is not a wheel position of a {truck.wheel_config} truck.")
        occupied = (
            session.query(Tire)
            .filter(Tire.truck_id == truck.id, Tire.position == position,
                    Tire.status == TireStatus.MOUNTED, Tire.id != tire.id)
            .first()
        )
        if occupied is not None:
            raise TireError(f"{position} already carries tire {occupied.serial_number}.")
        odo = _num(odometer) if odometer not in (None, "") else _num(truck.current_odometer)

        tire.status = TireStatus.MOUNTED
        tire.truck_id = truck.id
        tire.position = position
        tire.mounted_at_odometer = odo
        desc = f"{truck.plate_number} {position}, ODO: {odo:g}"
        TireInventory._event(session, tire, "Mounted", f"{desc}. {remarks}" if remarks else desc, username, odo)

    @staticmethod
    def _unmount(session: Session, tire: Tire, username: str, status, odometer: Optional[float],
                 remarks: Optional[str]) -> float:
        if _status(tire.status) != TireStatus.MOUNTED:
            raise TireError(f"Tire {tire.serial_number} is not mounted.")
        status = _status(status)
        if status not in OFF_TRUCK_STATUSES:
            raise TireError("An unmounted tire goes to SPARE, REPAIR or SCRAPPED.")
        if status == TireStatus.SCRAPPED and not (remarks or "").strip():
            raise TireError("A scrap reason is required.")
        truck = session.get(Truck, tire.truck_id)
        odo = _num(odometer) if odometer not in (None, "") else _num(getattr(truck, "current_odometer", 0))
        start = _num(tire.mounted_at_odometer)
        if odo < start:
            raise TireError(f"Unmount odometer {odo:,.0f} is below the mount odometer {start:,.0f}.")

        run = odo - start
        plate = getattr(truck, "plate_number", FleetConfig.UNKNOWN_TRUCK)
        TireInventory._event(
            session, tire, "Unmounted",
            f"{plate} {tire.position} at {odo:g} KM, run {run:g} KM -> {status.value}"
            + (f". {remarks}" if remarks else ""),
            username, odo,
        )
        tire.mileage = _num(tire.mileage) + run
        tire.status = status
        tire.scrapped_reason = remarks.strip() if status == TireStatus.SCRAPPED else None
        tire.truck_id = None
        tire.position = None
        tire.mounted_at_odometer = None
        return run

    @staticmethod
    def mount(session: Session, tire_id: str, truck_id: str, position: str, username: str,
              odometer: Optional[float] = None, remarks: Optional[str] = None) -> Tire:
        """Put a NEW or SPARE tire on a free wheel position; odometer defaults to the truck's."""
        tire = TireInventory._get(session, tire_id)
        truck = session.get(Truck, truck_id)
        if truck is None:
            raise TireError("Truck not found.")
        with transaction(session, f"Mount tire {tire_id}"):
            TireInventory._mount(session, tire, truck, position, username, odometer, remarks)
            SecurityManager.log_audit(session, username, "UPDATE", resource_type="Tire", resource_id=tire.id,
                                      details=f"{tire.serial_number} mounted on {truck.plate_number} {tire.position}")
        log_info(f"Tire {tire.serial_number} mounted on {truck.plate_number} {tire.position} by {username}")
        return tire

    @staticmethod
    def unmount(session: Session, tire_id: str, username: str, status="SPARE",
                odometer: Optional[float] = None, remarks: Optional[str] = None) -> float:
        """Take a tire off its truck; returns the km of the finished mounting."""
        tire = TireInventory._get(session, tire_id)
        with transaction(session, f"Unmount tire {tire_id}"):
            run = TireInventory._unmount(session, tire, username, status, odometer, remarks)
            SecurityManager.log_audit(session, username, "UPDATE", resource_type="Tire", resource_id=tire.id,
                                      details=f"{tire.serial_number} unmounted after {run:g} km")
        log_info(f"Tire {tire.serial_number} unmounted by {username} ({run:g} km)")
        return run

    @staticmethod
    def replace(session: Session, old_tire_id: str, new_tire_id: str, username: str, old_status="SPARE",
                odometer: Optional[float] = None, remarks: Optional[str] = None) -> Tire:
        """Swap the tire on a position in one step; both moves commit together."""
        old = TireInventory._get(session, old_tire_id)
        new = TireInventory._get(session, new_tire_id)
        truck = session.get(Truck, old.truck_id) if old.truck_id else None
        if truck is None:
            raise TireError(f"Tire {old.serial_number} is not mounted.")
        position = old.position
        with transaction(session, f"Replace tire {old_tire_id}"):
            TireInventory._unmount(session, old, username, old_status, odometer, remarks)
            session.flush()
            TireInventory._mount(session, new, truck, position, username, odometer, remarks)
            SecurityManager.log_audit(
                session, username, "UPDATE", resource_type="Tire", resource_id=new.id,
                details=f"{truck.plate_number} {position}: {old.serial_number} -> {new.serial_number}",
            )
        return new
