# models.py
"""
Database models for FOMS (Fleet Operations Management System)
Trucks, drivers, trip records, fuel logs, diesel ledgers and audit trail
"""

from datetime import datetime
from uuid import uuid4
import enum

from sqlalchemy import (
    Column, Integer, Float, String, Date, DateTime, Boolean, Text,
    ForeignKey, Enum as SAEnum, Index, UniqueConstraint
)
from sqlalchemy.orm import relationship, declarative_base
from sqlalchemy.sql import func

Base = declarative_base()


def _new_id() -> str:
    return str(uuid4())

# ============================================================================
# ENUMS
# ============================================================================

class Role(enum.Enum):
    ADMIN = "ADMIN"
    FUEL_AGENT = "FUEL_AGENT"
    COAL_ENTRY = "COAL_ENTRY"
    MINING_ENTRY = "MINING_ENTRY"

class FleetType(enum.Enum):
    COAL = "COAL"
    MINING = "MINING"

class TruckStatus(enum.Enum):
    ACTIVE = "ACTIVE"
    MAINTENANCE = "MAINTENANCE"
    IDLE = "IDLE"
    BREAKDOWN = "BREAKDOWN"

class DieselAdjType(enum.Enum):
    STOCK = "STOCK"   # liters carried to the next day's batch
    OTHER = "OTHER"

class FuelEntryType(enum.Enum):
    PER_TRIP = "PER_TRIP"
    FULL_TANK = "FULL_TANK"
    PARTIAL_FILL = "PARTIAL_FILL"

class MiningLogType(enum.Enum):
    DISPATCH = "DISPATCH"
    PURCHASE = "PURCHASE"

class PartyTxType(enum.Enum):
    BORROW = "BORROW"                    # party gave us diesel
    SETTLE_LITERS = "SETTLE_LITERS"      # we repaid in litres
    SETTLE_CASH = "SETTLE_CASH"          # we repaid in cash
    DIESEL_RECEIVED = "DIESEL_RECEIVED"  # customer paid us in diesel

class PaymentMethod(enum.Enum):
    ONLINE_TRANSFER = "Online Transfer"
    CHEQUE = "Cheque"
    CASH = "Cash"

class MiscUsageType(enum.Enum):
    PERSONAL = "PERSONAL"
    OFFICE = "OFFICE"
    BULK_TRANSFER = "BULK_TRANSFER"
    OTHER = "OTHER"

class TireStatus(enum.Enum):
    NEW = "NEW"
    MOUNTED = "MOUNTED"
    SPARE = "SPARE"
    REPAIR = "REPAIR"
    SCRAPPED = "SCRAPPED"

# ============================================================================
# FLEET MASTER DATA
# ============================================================================

class Truck(Base):
    __tablename__ = "trucks"

    id = Column(String(36), primary_key=True, default=_new_id)
    plate_number = Column(String(30), unique=True, nullable=False)
    transporter_name = Column(String(100))
    model = Column(String(100))
    wheel_config = Column(String(20), default="10 WHEEL")
    current_odometer = Column(Float, default=0.0)
    fuel_efficiency = Column(Float, default=0.0)
    status = Column(SAEnum(TruckStatus), nullable=False, default=TruckStatus.ACTIVE)
    fleet_type = Column(SAEnum(FleetType), nullable=False, default=FleetType.COAL)
    remarks = Column(Text)
    created_at = Column(DateTime, server_default=func.now())

    # Compliance documents
    rc_expiry = Column(Date)
    fitness_expiry = Column(Date)
    insurance_expiry = Column(Date)
    pucc_expiry = Column(Date)
    tax_expiry = Column(Date)
    permit_expiry = Column(Date)

    coal_logs = relationship("CoalLog", back_populates="truck", lazy="dynamic")
    fuel_logs = relationship("FuelLog", back_populates="truck", lazy="dynamic")
    tires = relationship("Tire", back_populates="truck", lazy="dynamic")
    status_history = relationship(
        "TruckStatusChange", back_populates="truck", lazy="dynamic",
        order_by="TruckStatusChange.changed_at", cascade="all, delete-orphan",
    )

    def __repr__(self):
        return f"<Truck(plate='{self.plate_number}', fleet={self.fleet_type})>"


class Driver(Base):
    __tablename__ = "drivers"

    id = Column(String(36), primary_key=True, default=_new_id)
    name = Column(String(100), nullable=False)
    license_number = Column(String(50))
    phone = Column(String(20))
    status = Column(String(20), default="ON Duty")
    driver_type = Column(String(20), default="Permanent")

    def __repr__(self):
        return f"<Driver(name='{self.name}')>"


class FuelStation(Base):
    """External pump or internal tanker"""
    __tablename__ = "fuel_stations"

    id = Column(String(36), primary_key=True, default=_new_id)
    name = Column(String(100), unique=True, nullable=False)
    location = Column(String(200))
    is_internal = Column(Boolean, default=False)

    def __repr__(self):
        return f"<FuelStation(name='{self.name}', internal={self.is_internal})>"


class TruckStatusChange(Base):
    __tablename__ = "truck_status_changes"

    id = Column(Integer, primary_key=True, autoincrement=True)
    truck_id = Column(String(36), ForeignKey("trucks.id"), nullable=False, index=True)
    status = Column(SAEnum(TruckStatus), nullable=False)
    reason = Column(String(255))
    changed_by = Column(String(100))
    changed_at = Column(DateTime, default=datetime.utcnow)

    truck = relationship("Truck", back_populates="status_history")


class Tire(Base):
    """
    One tire in the inventory. mileage holds the km of completed mountings;
    the running mounting is added from the truck odometer when shown.
    """
    __tablename__ = "tires"

    id = Column(String(36), primary_key=True, default=_new_id)
    serial_number = Column(String(50), unique=True, nullable=False)
    brand = Column(String(100))
    size = Column(String(50))
    manufacturer = Column(String(100))
    supplier = Column(String(100))
    bill_number = Column(String(50))
    mileage = Column(Float, default=0.0)
    expected_lifespan = Column(Float, default=100000.0)
    status = Column(SAEnum(TireStatus), nullable=False, default=TireStatus.NEW)
    scrapped_reason = Column(String(255))
    truck_id = Column(String(36), ForeignKey("trucks.id"), nullable=True)
    position = Column(String(30))
    mounted_at_odometer = Column(Float)
    last_inspection_date = Column(Date)
    created_at = Column(DateTime, default=datetime.utcnow)

    truck = relationship("Truck", back_populates="tires")
    events = relationship(
        "TireEvent", back_populates="tire", lazy="dynamic",
        order_by="TireEvent.id", cascade="all, delete-orphan",
    )

    def __repr__(self):
        return f"<Tire(serial='{self.serial_number}', status={self.status})>"


class TireEvent(Base):
    """Lifecycle history row: Procured, Mounted, Unmounted, Lifecycle Updated"""
    __tablename__ = "tire_events"

    id = Column(Integer, primary_key=True, autoincrement=True)
    tire_id = Column(String(36), ForeignKey("tires.id"), nullable=False, index=True)
    date = Column(Date, nullable=False)
    event = Column(String(50), nullable=False)
    description = Column(String(255))
    odometer = Column(Float)
    username = Column(String(100))

    tire = relationship("Tire", back_populates="events")

# ============================================================================
# TRIP RECORDS
# ============================================================================

class CoalLog(Base):
    """
    One coal transport trip (one pass slip).
    Trips for the same truck on the same date form a batch; only the batch's
    first record carries staff_welfare / roll_amount.
    """
    __tablename__ = "coal_logs"

    id = Column(String(36), primary_key=True, default=_new_id)
    date = Column(Date, nullable=False)
    truck_id = Column(String(36), ForeignKey("trucks.id"), nullable=False)
    driver_id = Column(String(36), ForeignKey("drivers.id"), nullable=True)
    pass_no = Column(String(50))
    origin_site = Column(String(100))
    destination_site = Column(String(100))

    gross_weight = Column(Float, default=0.0)
    tare_weight = Column(Float, default=0.0)
    net_weight = Column(Float, default=0.0)

    diesel_liters = Column(Float, default=0.0)
    diesel_rate = Column(Float)

    # Adjustments
    adjustment = Column(Integer, default=0)          # trip-count correction
    diesel_adjustment = Column(Float, default=0.0)   # stock litres
    air_adjustment = Column(Float, default=0.0)
    diesel_adj_type = Column(SAEnum(DieselAdjType), nullable=True)
    trip_remarks = Column(Text)
    diesel_remarks = Column(Text)
    air_remarks = Column(Text)

    staff_welfare = Column(Float, default=0.0)
    roll_amount = Column(Float, default=0.0)

    agent_id = Column(String(100))
    created_at = Column(DateTime, default=datetime.utcnow)

    __table_args__ = (
        Index("idx_coal_truck_date", "truck_id", "date"),
    )

    truck = relationship("Truck", back_populates="coal_logs")
    driver = relationship("Driver")

    def __repr__(self):
        return f"<CoalLog date={self.date} truck={self.truck_id} pass={self.pass_no}>"


class MiningLog(Base):
    """Mining dispatch / purchase entry with weighbridge readings"""
    __tablename__ = "mining_logs"

    id = Column(String(36), primary_key=True, default=_new_id)
    log_type = Column(SAEnum(MiningLogType), nullable=False, default=MiningLogType.DISPATCH)
    date = Column(Date, nullable=False)
    time = Column(String(10))
    chalan_no = Column(String(50))
    customer_name = Column(String(100))
    supplier = Column(String(100))
    site = Column(String(100))
    royalty_pass_no = Column(String(50))
    truck_id = Column(String(36), ForeignKey("trucks.id"), nullable=False)
    driver_id = Column(String(36), ForeignKey("drivers.id"), nullable=True)
    material = Column(String(100))

    gross = Column(Float, default=0.0)
    tare = Column(Float, default=0.0)
    net = Column(Float, default=0.0)
    loading_net_wt = Column(Float)
    unloading_net_wt = Column(Float)
    shortage_wt = Column(Float, default=0.0)

    diesel_liters = Column(Float, default=0.0)
    diesel_rate = Column(Float)
    adjustment = Column(Integer, default=0)
    diesel_adjustment = Column(Float, default=0.0)
    air_adjustment = Column(Float, default=0.0)
    diesel_adj_type = Column(SAEnum(DieselAdjType), nullable=True)
    trip_remarks = Column(Text)
    diesel_remarks = Column(Text)
    air_remarks = Column(Text)
    staff_welfare = Column(Float, default=0.0)
    roll_amount = Column(Float, default=0.0)

    agent_id = Column(String(100))
    created_at = Column(DateTime, default=datetime.utcnow)

    __table_args__ = (
        Index("idx_mining_truck_date", "truck_id", "date"),
    )

    truck = relationship("Truck")
    driver = relationship("Driver")

# ============================================================================
# FUEL
# ============================================================================

class FuelLog(Base):
    """
    Fuel dispensed to a fleet truck.
    attribution_date is the production day the fuel is charged to, which may
    be the day before the physical fueling date.
    """
    __tablename__ = "fuel_logs"

    id = Column(String(36), primary_key=True, default=_new_id)
    truck_id = Column(String(36), ForeignKey("trucks.id"), nullable=False)
    driver_id = Column(String(36), ForeignKey("drivers.id"), nullable=True)
    station_id = Column(String(36), ForeignKey("fuel_stations.id"), nullable=True)
    party_id = Column(String(36), ForeignKey("diesel_parties.id"), nullable=True)
    date = Column(Date, nullable=False)
    attribution_date = Column(Date, nullable=False)
    entry_type = Column(SAEnum(FuelEntryType), nullable=False, default=FuelEntryType.PER_TRIP)
    odometer = Column(Float, default=0.0)
    previous_odometer = Column(Float, default=0.0)
    fuel_liters = Column(Float, nullable=False, default=0.0)
    diesel_price = Column(Float)
    agent_id = Column(String(100))
    performance_remarks = Column(Text)
    created_at = Column(DateTime, default=datetime.utcnow)

    __table_args__ = (
        Index("idx_fuel_truck_attr", "truck_id", "attribution_date"),
    )

    truck = relationship("Truck", back_populates="fuel_logs")
    station = relationship("FuelStation")

    def __repr__(self):
        return f"<FuelLog truck={self.truck_id} attr={self.attribution_date} liters={self.fuel_liters}>"


class DailyOdometer(Base):
    """Opening / closing odometer of a truck for one production day, kept from its fuel logs"""
    __tablename__ = "daily_odometers"

    id = Column(String(36), primary_key=True, default=_new_id)
    truck_id = Column(String(36), ForeignKey("trucks.id"), nullable=False)
    date = Column(Date, nullable=False)
    opening_odometer = Column(Float, default=0.0)
    closing_odometer = Column(Float, default=0.0)

    __table_args__ = (
        UniqueConstraint("truck_id", "date", name="uq_daily_odo_truck_date"),
    )


class MiscFuelEntry(Base):
    """Station purchase not tied to a fleet truck (office, personal, bulk transfer)"""
    __tablename__ = "misc_fuel_entries"

    id = Column(String(36), primary_key=True, default=_new_id)
    station_id = Column(String(36), ForeignKey("fuel_stations.id"), nullable=False)
    destination_station_id = Column(String(36), ForeignKey("fuel_stations.id"), nullable=True)
    date = Column(Date, nullable=False)
    vehicle_description = Column(String(200))
    usage_type = Column(SAEnum(MiscUsageType), nullable=False, default=MiscUsageType.OTHER)
    fuel_liters = Column(Float, default=0.0)
    diesel_price = Column(Float, default=0.0)
    amount = Column(Float, default=0.0)
    invoice_no = Column(String(50))
    receiver_name = Column(String(100))
    remarks = Column(Text)
    # set when the entry mirrors a party transaction through an internal tanker
    party_tx_id = Column(String(36), ForeignKey("party_diesel_transactions.id"), nullable=True)


class StationPayment(Base):
    __tablename__ = "station_payments"

    id = Column(String(36), primary_key=True, default=_new_id)
    station_id = Column(String(36), ForeignKey("fuel_stations.id"), nullable=False)
    date = Column(Date, nullable=False)
    amount = Column(Float, nullable=False, default=0.0)
    payment_method = Column(SAEnum(PaymentMethod), nullable=False, default=PaymentMethod.ONLINE_TRANSFER)
    reference_no = Column(String(50))
    remarks = Column(Text)


class DieselParty(Base):
    __tablename__ = "diesel_parties"

    id = Column(String(36), primary_key=True, default=_new_id)
    name = Column(String(100), unique=True, nullable=False)
    party_type = Column(String(20), default="SUPPLIER")  # SUPPLIER / CUSTOMER / OTHER
    contact = Column(String(100))
    phone = Column(String(20))
    notes = Column(Text)

    transactions = relationship(
        "PartyDieselTransaction",
        back_populates="party",
        lazy="dynamic",
        cascade="all, delete-orphan",
    )


class PartyDieselTransaction(Base):
    __tablename__ = "party_diesel_transactions"

    id = Column(String(36), primary_key=True, default=_new_id)
    party_id = Column(String(36), ForeignKey("diesel_parties.id"), nullable=False)
    date = Column(Date, nullable=False)
    tx_type = Column(SAEnum(PartyTxType), nullable=False)
    fuel_liters = Column(Float)
    diesel_price = Column(Float)
    amount = Column(Float)
    fuel_log_id = Column(String(36), ForeignKey("fuel_logs.id"), nullable=True)
    source_id = Column(String(36))
    dest_tanker_id = Column(String(36), ForeignKey("fuel_stations.id"), nullable=True)
    invoice_no = Column(String(50))
    remarks = Column(Text)

    party = relationship("DieselParty", back_populates="transactions")

# ============================================================================
# USERS & AUDIT
# ============================================================================

class User(Base):
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=_new_id)
    username = Column(String(100), unique=True, nullable=False)
    role = Column(SAEnum(Role), nullable=False, default=Role.COAL_ENTRY)
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    def __repr__(self):
        return f"<User(username='{self.username}', role={self.role})>"


class RecycleBinEntry(Base):
    """Archived snapshot of deleted records."""
    __tablename__ = "recycle_bin_entries"

    id = Column(Integer, primary_key=True, autoincrement=True)
    resource_type = Column(String(100), nullable=False, index=True)
    resource_id = Column(String(100), nullable=False, index=True)
    resource_label = Column(String(255), nullable=True)
    payload_json = Column(Text, nullable=False)
    reason = Column(String(255), nullable=True)
    deleted_by = Column(String(100), nullable=False)
    deleted_at = Column(DateTime, server_default=func.now(), nullable=False)


class AuditLog(Base):
    """Audit log for tracking system actions"""
    __tablename__ = "audit_log"

    id = Column(Integer, primary_key=True, autoincrement=True)
    timestamp = Column(DateTime, server_default=func.now())
    username = Column(String(100), nullable=False)
    action = Column(String(50), nullable=False)  # CREATE, UPDATE, DELETE, EXPORT
    resource_type = Column(String(100), nullable=True)
    resource_id = Column(String(100), nullable=True)
    details = Column(String(500), nullable=True)
    success = Column(Boolean, default=True)

    def __repr__(self):
        return f"<AuditLog(user='{self.username}', action='{self.action}', time='{self.timestamp}')>"
