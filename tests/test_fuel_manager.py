import logging
from datetime import date
from types import SimpleNamespace

import pytest

from coal_log_service import CoalLogService
from fuel_manager import FuelEntryError, FuelManager
from models import (
    AuditLog, CoalLog, DailyOdometer, FuelEntryType, FuelLog, PartyDieselTransaction, PartyTxType,
    RecycleBinEntry, Truck,
)

DAY = date(2024, 3, 5)


def _data(truck, driver, **kw):
    data = {
        "truck_id": truck.id, "driver_id": driver.id, "date": DAY, "entry_type": "PER_TRIP",
        "odometer": 1200.0, "fuel_liters": 120.0, "diesel_price": 92.0,
    }
    data.update(kw)
    return data


def _log(id_, day, kind, prev_odo, odo, liters):
    return SimpleNamespace(id=id_, date=day, entry_type=kind, previous_odometer=prev_odo,
                           odometer=odo, fuel_liters=liters)


def test_attribution_date():
    assert FuelManager.attribution_date(DAY, "PER_TRIP") == DAY
    assert FuelManager.attribution_date(DAY, FuelEntryType.FULL_TANK) == date(2024, 3, 4)
    assert FuelManager.attribution_date("2024-03-05", "partial_fill") == date(2024, 3, 4)
    with pytest.raises(FuelEntryError):
        FuelManager.attribution_date(DAY, "HALF_TANK")


def test_previous_odometer_lookup_order(session, truck, make_fuel_log):
    assert FuelManager.previous_odometer(session, truck.id, DAY) == 1000.0

    make_fuel_log(truck.id, date(2024, 3, 1), 50.0, odometer=1100.0)
    assert FuelManager.previous_odometer(session, truck.id, DAY) == 1100.0

    make_fuel_log(truck.id, DAY, 50.0, odometer=1250.0)
    make_fuel_log(truck.id, DAY, 50.0, odometer=1300.0)
    assert FuelManager.previous_odometer(session, truck.id, DAY) == 1300.0


@pytest.mark.parametrize("overrides, message", [
    ({"truck_id": None}, "truck"),
    ({"driver_id": None}, "driver"),
    ({"fuel_liters": 0}, "litres"),
    ({"diesel_price": 0}, "price"),
    ({"odometer": None}, "Odometer reading"),
    ({"odometer": 900.0}, "below"),
])
def test_validate(overrides, message):
    data = {"truck_id": "T1", "driver_id": "D1", "fuel_liters": 10, "diesel_price": 90, "odometer": 1000.0}
    data.update(overrides)
    with pytest.raises(FuelEntryError, match=message):
        FuelManager.validate(data, 1000.0)


def test_add_fuel_log_backfills_trips(session, truck, driver):
    CoalLogService.add_entry(session, DAY, truck.id, [
        {"pass_no": f"P{i}", "gross_weight": 30, "tare_weight": 10} for i in range(3)
    ], "alice")

    log = FuelManager.add_fuel_log(session, _data(truck, driver), "fuel_agent")

    assert log.attribution_date == DAY
    assert log.previous_odometer == 1000.0
    assert session.get(Truck, truck.id).current_odometer == 1200.0
    for rec in session.query(CoalLog).all():
        assert rec.diesel_liters == 40.0
        assert rec.driver_id == driver.id
        assert rec.diesel_rate == 92.0
    assert session.query(AuditLog).filter(AuditLog.resource_type == "FuelLog").count() == 1


def test_backfill_logs_at_debug(session, truck, driver, caplog):
    caplog.set_level(logging.DEBUG, logger="FOMS")
    CoalLogService.add_entry(session, DAY, truck.id, [{"pass_no": "P1", "gross_weight": 30, "tare_weight": 10}], "alice")

    FuelManager.add_fuel_log(session, _data(truck, driver), "fuel_agent")

    debug = [r.getMessage() for r in caplog.records if r.levelno == logging.DEBUG]
    assert f"Backfill {DAY.isoformat()}|{truck.id}: 120.0 L over 1 trip(s)" in debug


def test_full_tank_backfills_previous_day(session, truck, driver):
    CoalLogService.add_entry(session, date(2024, 3, 4), truck.id, [
        {"pass_no": "P1", "gross_weight": 30, "tare_weight": 10},
        {"pass_no": "P2", "gross_weight": 30, "tare_weight": 10},
    ], "alice")
    FuelManager.add_fuel_log(session, _data(truck, driver, entry_type="FULL_TANK", fuel_liters=90.0), "fuel_agent")
    assert {r.diesel_liters for r in session.query(CoalLog).all()} == {45.0}


def test_add_fuel_log_rejects_odometer_rollback(session, truck, driver):
    with pytest.raises(FuelEntryError):
        FuelManager.add_fuel_log(session, _data(truck, driver, odometer=500.0), "fuel_agent")
    assert session.query(FuelLog).count() == 0


def test_party_fill_books_borrow(session, truck, driver, make_party):
    party = make_party("Highway Fuels")
    log = FuelManager.add_fuel_log(session, _data(truck, driver, party_id=party.id), "fuel_agent")

    tx = session.query(PartyDieselTransaction).one()
    assert tx.tx_type == PartyTxType.BORROW
    assert tx.fuel_log_id == log.id
    assert tx.amount == 11040.0


def test_true_efficiency_walks_back_over_partials():
    logs = [
        _log("L1", date(2024, 3, 1), FuelEntryType.FULL_TANK, 800, 1000, 100),
        _log("L2", date(2024, 3, 3), FuelEntryType.PARTIAL_FILL, 1000, 1200, 50),
        _log("L3", date(2024, 3, 5), FuelEntryType.FULL_TANK, 1200, 1500, 70),
    ]
    assert FuelManager.calculate_true_efficiency(logs[2], logs) == pytest.approx(500 / 120)
    assert FuelManager.calculate_true_efficiency(logs[1], logs) is None


def test_true_efficiency_without_previous_full_tank():
    logs = [
        _log("L1", date(2024, 3, 3), FuelEntryType.PARTIAL_FILL, 1000, 1200, 50),
        _log("L2", date(2024, 3, 5), FuelEntryType.FULL_TANK, 1200, 1500, 70),
    ]
    assert FuelManager.calculate_true_efficiency(logs[1], logs) == pytest.approx(500 / 120)

    stalled = [_log("L9", date(2024, 3, 5), FuelEntryType.FULL_TANK, 1500, 1500, 70)]
    assert FuelManager.calculate_true_efficiency(stalled[0], stalled) == 0.0


def test_efficiency_band_and_history():
    assert FuelManager.efficiency_band(None) is None
    assert FuelManager.efficiency_band(2.5) == "LOW"
    assert FuelManager.efficiency_band(3.2) == "NORMAL"
    assert FuelManager.efficiency_band(4.0) == "HIGH"

    logs = [
        _log("L1", date(2024, 3, 1), FuelEntryType.FULL_TANK, 800, 1000, 100),
        _log("L2", date(2024, 3, 3), FuelEntryType.PARTIAL_FILL, 1000, 1200, 50),
    ]
    for l in logs:
        l.truck_id, l.driver_id, l.attribution_date, l.diesel_price = "T1", None, l.date, 90.0
    rows = FuelManager.history_rows(logs)
    assert [r["KM"] for r in rows] == [200.0, 200.0]
    assert rows[0]["Type"] == "PARTIAL_FILL"
    assert rows[0]["Driver"] == "PENDING SYNC"
    assert rows[1]["Amount"] == 9000.0


def _trips(session, day, truck, count=2):
    CoalLogService.add_entry(session, day, truck.id, [
        {"pass_no": f"{day.day}-{i}", "gross_weight": 30, "tare_weight": 10} for i in range(count)
    ], "alice")


def _diesel_on(session, day):
    return sorted(r.diesel_liters for r in session.query(CoalLog).filter(CoalLog.date == day))


def test_update_moves_fuel_between_attribution_days(session, truck, driver):
    _trips(session, DAY, truck)
    _trips(session, date(2024, 3, 4), truck)
    log = FuelManager.add_fuel_log(session, _data(truck, driver), "fuel_agent")
    assert _diesel_on(session, DAY) == [60.0, 60.0]

    FuelManager.update_fuel_log(session, log.id, {"entry_type": "FULL_TANK", "fuel_liters": 100.0}, "admin")

    assert log.attribution_date == date(2024, 3, 4)
    assert _diesel_on(session, DAY) == [0.0, 0.0]
    assert _diesel_on(session, date(2024, 3, 4)) == [50.0, 50.0]
    assert session.query(AuditLog).filter(AuditLog.action == "UPDATE", AuditLog.resource_type == "FuelLog").count() == 1


def test_update_keeps_own_odometer_window(session, truck, driver):
    log = FuelManager.add_fuel_log(session, _data(truck, driver), "fuel_agent")
    FuelManager.update_fuel_log(session, log.id, {"odometer": 1150.0}, "admin")
    assert log.previous_odometer == 1000.0

    with pytest.raises(FuelEntryError, match="below"):
        FuelManager.update_fuel_log(session, log.id, {"odometer": 900.0}, "admin")
    assert session.get(FuelLog, log.id).odometer == 1150.0


def test_update_syncs_party_borrow(session, truck, driver, make_party):
    party = make_party("Highway Fuels")
    log = FuelManager.add_fuel_log(session, _data(truck, driver, party_id=party.id), "fuel_agent")

    FuelManager.update_fuel_log(session, log.id, {"fuel_liters": 100.0}, "admin")
    assert session.query(PartyDieselTransaction).one().amount == 9200.0

    FuelManager.update_fuel_log(session, log.id, {"party_id": None}, "admin")
    assert session.query(PartyDieselTransaction).count() == 0
    assert session.query(RecycleBinEntry).filter(
        RecycleBinEntry.resource_type == "PartyDieselTransaction").count() == 1


def test_delete_fuel_log_takes_litres_back(session, truck, driver, make_party):
    party = make_party("Highway Fuels")
    _trips(session, DAY, truck)
    log = FuelManager.add_fuel_log(session, _data(truck, driver, party_id=party.id), "fuel_agent")
    assert session.query(DailyOdometer).count() == 1

    FuelManager.delete_fuel_log(session, log.id, "admin", reason="duplicate slip")

    assert session.query(FuelLog).count() == 0
    assert session.query(PartyDieselTransaction).count() == 0
    assert session.query(DailyOdometer).count() == 0
    assert _diesel_on(session, DAY) == [0.0, 0.0]
    assert {e.resource_type for e in session.query(RecycleBinEntry)} == {"FuelLog", "PartyDieselTransaction"}
    assert session.query(AuditLog).filter(AuditLog.action == "DELETE").count() == 1


def test_daily_odometer_follows_fuel_logs(session, truck, driver):
    FuelManager.add_fuel_log(session, _data(truck, driver), "fuel_agent")
    FuelManager.add_fuel_log(session, _data(truck, driver, odometer=1350.0, fuel_liters=40.0), "fuel_agent")

    snap = session.query(DailyOdometer).one()
    assert (snap.opening_odometer, snap.closing_odometer) == (1000.0, 1350.0)

    next_day = date(2024, 3, 6)
    FuelManager.upsert_daily_odometer(session, truck.id, next_day, 1400.0, 0.0)
    assert FuelManager.previous_odometer(session, truck.id, next_day) == 1400.0
    FuelManager.upsert_daily_odometer(session, truck.id, next_day, 1420.0, 1500.0)
    assert session.query(DailyOdometer).filter(DailyOdometer.date == next_day).one().opening_odometer == 1420.0
