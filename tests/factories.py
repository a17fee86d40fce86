"""Detached stand-ins for trip records and fuel logs used by the aggregation tests."""
from datetime import date
from types import SimpleNamespace

from models import FuelEntryType, MiningLogType


def trip(**kw):
    base = dict(
        id=None, date=date(2024, 3, 5), truck_id="T1", driver_id=None, pass_no="P",
        gross_weight=30.0, tare_weight=10.0, diesel_rate=None, adjustment=0,
        diesel_adjustment=0.0, air_adjustment=0.0, diesel_adj_type=None,
        trip_remarks=None, diesel_remarks=None, air_remarks=None,
        origin_site=None, destination_site=None, staff_welfare=0.0, roll_amount=0.0,
        agent_id="agent1",
    )
    base.update(kw)
    return SimpleNamespace(**base)


def fuel(**kw):
    base = dict(
        id=None, truck_id="T1", driver_id=None, date=date(2024, 3, 5),
        attribution_date=date(2024, 3, 5), fuel_liters=0.0, diesel_price=None,
        entry_type=FuelEntryType.PER_TRIP,
    )
    base.update(kw)
    return SimpleNamespace(**base)


def vehicle(id_, plate, wheels="10 WHEEL"):
    return SimpleNamespace(id=id_, plate_number=plate, wheel_config=wheels)


def person(id_, name):
    return SimpleNamespace(id=id_, name=name)


def mining(**kw):
    base = dict(
        id=None, log_type=MiningLogType.DISPATCH, date=date(2024, 3, 5), truck_id="T1", driver_id=None,
        chalan_no="C1", royalty_pass_no=None, supplier=None, customer_name=None, site=None, material="Sand",
        gross=30.0, tare=10.0, net=20.0, loading_net_wt=None, unloading_net_wt=None, shortage_wt=0.0,
        staff_welfare=0.0, roll_amount=0.0,
    )
    base.update(kw)
    return SimpleNamespace(**base)
