# fleet_registry.py
"""
Registry management utilities for FOMS.
Trucks, drivers, fuel stations, diesel parties and operators.
"""

from __future__ import annotations
from datetime import date
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy.orm import Session

from coal_batch_aggregator import _num, _to_date
from db import transaction
from fleet_config import FleetConfig
from logger import log_info, log_warning
from models import (
    DieselParty, Driver, FleetType, FuelLog, FuelStation, Role, Tire, TireStatus, Truck,
    TruckStatus, TruckStatusChange, User,
)
from party_ledger import PartyLedger
from recycle_bin import RecycleBinManager
from security import SecurityManager
from tire_inventory import TireInventory


class RegistryError(ValueError):
    """Registry change rejected."""


def _enum(enum_cls, value, label: str):
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(str(value or "").strip().upper())
    except ValueError:
        raise RegistryError(f"Unknown {label} '{value}'.")


def _choice(value, choices, label: str) -> str:
    for c in choices:
        if str(value or "").strip().upper() == c.upper():
            return c
    raise RegistryError(f"{label} must be one of: {', '.join(choices)}.")


def _required(data: Dict[str, Any], field: str, label: str) -> str:
    value = str(data.get(field) or "").strip()
    if not value:
        raise RegistryError(f"{label} is required.")
    return value


def normalize_plate(plate: Optional[str]) -> str:
    """'mh 01 ab 1234' -> 'MH-01-AB-1234'"""
    parts = str(plate or "").replace("-", " ").upper().split()
    return "-".join(parts)


class FleetRegistry:
    """Handles master data CRUD operations"""

    # ============================================================
    # TRUCKS
    # ============================================================
    @staticmethod
    def _apply_truck(truck: Truck, data: Dict[str, Any]) -> None:
        for field in ("transporter_name", "model", "remarks"):
            if field in data:
                setattr(truck, field, (str(data[field]).strip() if data[field] else None))
        if "wheel_config" in data:
            truck.wheel_config = _choice(data["wheel_config"], FleetConfig.WHEEL_CONFIGS, "Wheel config")
        if "fleet_type" in data:
            truck.fleet_type = _enum(FleetType, data["fleet_type"], "fleet type")
        if "current_odometer" in data:
            odo = _num(data["current_odometer"])
            if odo < 0:
                raise RegistryError("Odometer cannot be negative.")
            truck.current_odometer = odo
        if "fuel_efficiency" in data:
            truck.fuel_efficiency = _num(data["fuel_efficiency"])
        for column, _label in FleetConfig.COMPLIANCE_DOCUMENTS:
            if column in data:
                setattr(truck, column, _to_date(data[column]))

    @staticmethod
    def add_truck(session: Session, data: Dict[str, Any], username: str) -> Truck:
        plate = normalize_plate(_required(data, "plate_number", "Plate number"))
        if session.query(Truck).filter(Truck.plate_number == plate).first():
            raise RegistryError(f"Truck '{plate}' already exists")
        status = _enum(TruckStatus, data.get("status") or "ACTIVE", "truck status")

        with transaction(session, f"Add truck {plate}"):
            truck = Truck(plate_number=plate, status=status)
            FleetRegistry._apply_truck(truck, {"wheel_config": "10 WHEEL", "fleet_type": "COAL", **data})
            session.add(truck)
            session.flush()
            session.add(TruckStatusChange(truck_id=truck.id, status=status, reason="Registered",
                                          changed_by=username))
            SecurityManager.log_audit(session, username, "CREATE", resource_type="Truck", resource_id=truck.id,
                                      details=f"{plate} {truck.wheel_config} {truck.fleet_type.value}")
        log_info(f"Truck {plate} registered by {username}")
        return truck

    @staticmethod
    def update_truck(session: Session, truck_id: str, data: Dict[str, Any], username: str) -> Truck:
        """
        Update truck details. A status change is kept in the truck's status
        history; a new wheel layout must still hold every mounted tire.
        """
        truck = session.get(Truck, truck_id)
        if truck is None:
            raise RegistryError(f"Truck {truck_id} not found")

        if data.get("plate_number"):
            plate = normalize_plate(data["plate_number"])
            clash = session.query(Truck).filter(Truck.plate_number == plate, Truck.id != truck_id).first()
            if clash:
                raise RegistryError(f"Truck '{plate}' already exists")
        else:
            plate = truck.plate_number

        if data.get("wheel_config"):
            layout = TireInventory.positions_for(_choice(data["wheel_config"], FleetConfig.WHEEL_CONFIGS, "Wheel config"))
            stranded = [
                t.position for t in session.query(Tire).filter(Tire.truck_id == truck_id, Tire.status == TireStatus.MOUNTED)
                if t.position not in layout
            ]
            if stranded:
                raise RegistryError(f"Unmount the tires at {', '.join(sorted(stranded))} before changing wheels.")

        new_status = _enum(TruckStatus, data["status"], "truck status") if data.get("status") else truck.status

        with transaction(session, f"Update truck {truck_id}"):
            truck.plate_number = plate
            FleetRegistry._apply_truck(truck, {k: v for k, v in data.items() if k not in ("plate_number", "status")})
            if new_status != truck.status:
                session.add(TruckStatusChange(truck_id=truck.id, status=new_status,
                                              reason=data.get("status_reason"), changed_by=username))
                log_info(f"Truck {plate}: {truck.status.value} -> {new_status.value}")
                truck.status = new_status
            SecurityManager.log_audit(session, username, "UPDATE", resource_type="Truck", resource_id=truck.id,
                                      details=f"{plate}: {', '.join(sorted(data))}")
        return truck

    @staticmethod
    def compliance_status(expiry, today: Optional[date] = None) -> str:
        """CRITICAL within a week, WARNING within two, otherwise GOOD; NOT_CONFIGURED without a date."""
        expiry = _to_date(expiry)
        if expiry is None:
            return "NOT_CONFIGURED"
        days = (expiry - (today or date.today())).days
        if days <= FleetConfig.COMPLIANCE_CRITICAL_DAYS:
            return "CRITICAL"
        if days <= FleetConfig.COMPLIANCE_WARNING_DAYS:
            return "WARNING"
        return "GOOD"

    @staticmethod
    def expiring_documents(trucks: Iterable, today: Optional[date] = None) -> List[Dict[str, Any]]:
        """Documents in CRITICAL or WARNING state, soonest first."""
        today = today or date.today()
        out = []
        for t in trucks:
            for column, label in FleetConfig.COMPLIANCE_DOCUMENTS:
                expiry = _to_date(getattr(t, column, None))
                status = FleetRegistry.compliance_status(expiry, today)
                if status in ("CRITICAL", "WARNING"):
                    out.append({
                        "truck_id": t.id,
                        "plate_number": t.plate_number,
                        "document": label,
                        "expiry": expiry,
                        "days_left": (expiry - today).days,
                        "status": status,
                    })
        return sorted(out, key=lambda r: r["days_left"])

    # ============================================================
    # DRIVERS
    # ============================================================
    @staticmethod
    def _apply_driver(driver: Driver, data: Dict[str, Any]) -> None:
        if "name" in data:
            driver.name = _required(data, "name", "Driver name")
        for field in ("license_number", "phone"):
            if field in data:
                setattr(driver, field, (str(data[field]).strip() if data[field] else None))
        if "status" in data:
            driver.status = _choice(data["status"], FleetConfig.DRIVER_STATUSES, "Driver status")
        if "driver_type" in data:
            driver.driver_type = _choice(data["driver_type"], FleetConfig.DRIVER_TYPES, "Driver type")

    @staticmethod
    def add_driver(session: Session, data: Dict[str, Any], username: str) -> Driver:
        _required(data, "name", "Driver name")
        with transaction(session, "Add driver"):
            driver = Driver()
            FleetRegistry._apply_driver(driver, {"status": "ON Duty", "driver_type": "Permanent", **data})
            session.add(driver)
            session.flush()
            SecurityManager.log_audit(session, username, "CREATE", resource_type="Driver", resource_id=driver.id,
                                      details=driver.name)
        log_info(f"Driver {driver.name} added by {username}")
        return driver

    @staticmethod
    def update_driver(session: Session, driver_id: str, data: Dict[str, Any], username: str) -> Driver:
        driver = session.get(Driver, driver_id)
        if driver is None:
            raise RegistryError(f"Driver {driver_id} not found")
        with transaction(session, f"Update driver {driver_id}"):
            FleetRegistry._apply_driver(driver, data)
            SecurityManager.log_audit(session, username, "UPDATE", resource_type="Driver", resource_id=driver.id,
                                      details=f"{driver.name}: {', '.join(sorted(data))}")
        return driver

    # ============================================================
    # FUEL STATIONS
    # ============================================================
    @staticmethod
    def add_station(session: Session, data: Dict[str, Any], username: str) -> FuelStation:
        name = _required(data, "name", "Station name")
        if session.query(FuelStation).filter(FuelStation.name == name).first():
            raise RegistryError(f"Station name '{name}' already exists")
        with transaction(session, f"Add station {name}"):
            station = FuelStation(name=name, location=data.get("location") or None,
                                  is_internal=bool(data.get("is_internal")))
            session.add(station)
            session.flush()
            SecurityManager.log_audit(session, username, "CREATE", resource_type="FuelStation",
                                      resource_id=station.id,
                                      details=f"{name} ({'tanker' if station.is_internal else 'pump'})")
        return station

    @staticmethod
    def update_station(session: Session, station_id: str, data: Dict[str, Any], username: str) -> FuelStation:
        station = session.get(FuelStation, station_id)
        if station is None:
            raise RegistryError(f"Station {station_id} not found")
        name = str(data.get("name") or station.name).strip()
        if session.query(FuelStation).filter(FuelStation.name == name, FuelStation.id != station_id).first():
            raise RegistryError(f"Station name '{name}' already exists")
        with transaction(session, f"Update station {station_id}"):
            station.name = name
            if "location" in data:
                station.location = data["location"] or None
            if "is_internal" in data:
                station.is_internal = bool(data["is_internal"])
            SecurityManager.log_audit(session, username, "UPDATE", resource_type="FuelStation",
                                      resource_id=station.id, details=name)
        return station

    # ============================================================
    # DIESEL PARTIES
    # ============================================================
    @staticmethod
    def add_party(session: Session, data: Dict[str, Any], username: str) -> DieselParty:
        name = _required(data, "name", "Party name")
        if session.query(DieselParty).filter(DieselParty.name == name).first():
            raise RegistryError(f"Party name '{name}' already exists")
        with transaction(session, f"Add party {name}"):
            party = DieselParty(
                name=name,
                party_type=_choice(data.get("party_type") or "SUPPLIER", FleetConfig.PARTY_TYPES, "Party type"),
                contact=data.get("contact") or None,
                phone=data.get("phone") or None,
                notes=data.get("notes") or None,
            )
            session.add(party)
            session.flush()
            SecurityManager.log_audit(session, username, "CREATE", resource_type="DieselParty",
                                      resource_id=party.id, details=f"{name} ({party.party_type})")
        return party

    @staticmethod
    def update_party(session: Session, party_id: str, data: Dict[str, Any], username: str) -> DieselParty:
        party = session.get(DieselParty, party_id)
        if party is None:
            raise RegistryError(f"Party {party_id} not found")
        name = str(data.get("name") or party.name).strip()
        if session.query(DieselParty).filter(DieselParty.name == name, DieselParty.id != party_id).first():
            raise RegistryError(f"Party name '{name}' already exists")
        with transaction(session, f"Update party {party_id}"):
            party.name = name
            if data.get("party_type"):
                party.party_type = _choice(data["party_type"], FleetConfig.PARTY_TYPES, "Party type")
            for field in ("contact", "phone", "notes"):
                if field in data:
                    setattr(party, field, data[field] or None)
            SecurityManager.log_audit(session, username, "UPDATE", resource_type="DieselParty",
                                      resource_id=party.id, details=name)
        return party

    @staticmethod
    def delete_party(session: Session, party_id: str, username: str, reason: Optional[str] = None) -> int:
        """
        Archive a party together with its ledger. Fuel logs that came from the
        party stay, without the party link. Returns the number of archived
        transactions.
        """
        party = session.get(DieselParty, party_id)
        if party is None:
            raise RegistryError(f"Party {party_id} not found")

        with transaction(session, f"Delete party {party_id}"):
            txs = party.transactions.all()
            for tx in txs:
                side = PartyLedger._side_entry(session, tx)
                if side is not None:
                    RecycleBinManager.archive_record(session, side, "MiscFuelEntry", username, reason=reason)
                RecycleBinManager.archive_record(
                    session, tx, "PartyDieselTransaction", username, reason=reason or f"Party {party.name} deleted",
                    label=f"{party.name} {tx.date} {tx.tx_type.value}",
                )
            unlinked = session.query(FuelLog).filter(FuelLog.party_id == party_id).update(
                {FuelLog.party_id: None}, synchronize_session=False
            )
            RecycleBinManager.archive_record(session, party, "DieselParty", username, reason=reason)
            SecurityManager.log_audit(
                session, username, "DELETE", resource_type="DieselParty", resource_id=party_id,
                details=f"{party.name}: {len(txs)} transaction(s) archived, {unlinked} fuel log(s) unlinked",
            )
        log_warning(f"Diesel party {party.name} deleted by {username} ({len(txs)} transactions archived)")
        return len(txs)

    # ============================================================
    # USERS
    # ============================================================
    @staticmethod
    def _active_admins(session: Session, excluding: Optional[str] = None) -> int:
        q = session.query(User).filter(User.role == Role.ADMIN, User.is_active == True)  # noqa: E712
        if excluding:
            q = q.filter(User.id != excluding)
        return q.count()

    @staticmethod
    def add_user(session: Session, data: Dict[str, Any], username: str) -> User:
        name = _required(data, "username", "Username").lower()
        if session.query(User).filter(User.username == name).first():
            raise RegistryError(f"Username '{name}' already exists")
        role = _enum(Role, data.get("role") or "COAL_ENTRY", "role")
        with transaction(session, f"Add user {name}"):
            user = User(username=name, role=role, is_active=True)
            session.add(user)
            session.flush()
            SecurityManager.log_audit(session, username, "CREATE", resource_type="User", resource_id=user.id,
                                      details=f"{name} as {role.value}")
        log_info(f"User {name} ({role.value}) created by {username}")
        return user

    @staticmethod
    def update_user(session: Session, user_id: str, data: Dict[str, Any], username: str) -> User:
        """Change role or active flag. The last active ADMIN cannot be demoted or deactivated."""
        user = session.get(User, user_id)
        if user is None:
            raise RegistryError(f"User {user_id} not found")
        role = _enum(Role, data["role"], "role") if data.get("role") else user.role
        active = bool(data["is_active"]) if "is_active" in data else bool(user.is_active)
        losing_admin = user.role == Role.ADMIN and user.is_active and (role != Role.ADMIN or not active)
        if losing_admin and FleetRegistry._active_admins(session, excluding=user_id) == 0:
            raise RegistryError("At least one active ADMIN must remain.")

        with transaction(session, f"Update user {user_id}"):
            user.role = role
            user.is_active = active
            SecurityManager.log_audit(session, username, "UPDATE", resource_type="User", resource_id=user.id,
                                      details=f"{user.username}: {role.value}, {'active' if active else 'inactive'}")
        return user

    @staticmethod
    def delete_user(session: Session, user_id: str, username: str, reason: Optional[str] = None) -> None:
        user = session.get(User, user_id)
        if user is None:
            raise RegistryError(f"User {user_id} not found")
        if user.username == username:
            raise RegistryError("You cannot delete your own account.")
        if user.role == Role.ADMIN and user.is_active and FleetRegistry._active_admins(session, excluding=user_id) == 0:
            raise RegistryError("At least one active ADMIN must remain.")
        with transaction(session, f"Delete user {user_id}"):
            name = user.username
            RecycleBinManager.archive_record(session, user, "User", username, reason=reason)
            SecurityManager.log_audit(session, username, "DELETE", resource_type="User", resource_id=user_id,
                                      details=reason or f"User {name} deleted")
        log_warning(f"User {name} deleted by {username}")
