import os

os.environ.setdefault("DB_URL", "sqlite://")

import pytest  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from db import init_db  # noqa: E402
from models import (  # noqa: E402
    DieselParty, Driver, FleetType, FuelEntryType, FuelLog, FuelStation, Truck,
)


@pytest.fixture
def session():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )
    init_db(bind=engine)
    Session = sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)
    s = Session()
    try:
        yield s
    finally:
        s.close()
        engine.dispose()


@pytest.fixture
def truck(session):
    t = Truck(plate_number="MH-01-1234", wheel_config="10 WHEEL", fleet_type=FleetType.COAL,
              current_odometer=1000.0)
    session.add(t)
    session.commit()
    return t


@pytest.fixture
def mining_truck(session):
    t = Truck(plate_number="MH-02-5555", wheel_config="12 WHEEL", fleet_type=FleetType.MINING)
    session.add(t)
    session.commit()
    return t


@pytest.fixture
def driver(session):
    d = Driver(name="Ramesh")
    session.add(d)
    session.commit()
    return d


@pytest.fixture
def make_fuel_log(session):
    def _make(truck_id, day, liters, attribution=None, driver_id=None, price=92.0,
              entry_type=FuelEntryType.PER_TRIP, odometer=0.0, station_id=None, party_id=None):
        log = FuelLog(
            truck_id=truck_id, driver_id=driver_id, date=day,
            attribution_date=attribution or day, entry_type=entry_type,
            fuel_liters=liters, diesel_price=price, odometer=odometer,
            station_id=station_id, party_id=party_id,
        )
        session.add(log)
        session.commit()
        return log
    return _make


@pytest.fixture
def make_station(session):
    def _make(name, is_internal=False):
        s = FuelStation(name=name, is_internal=is_internal)
        session.add(s)
        session.commit()
        return s
    return _make


@pytest.fixture
def make_party(session):
    def _make(name, party_type="SUPPLIER"):
        p = DieselParty(name=name, party_type=party_type)
        session.add(p)
        session.commit()
        return p
    return _make
