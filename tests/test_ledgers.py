from datetime import date

import pytest

from fuel_manager import FuelEntryError, FuelManager
from models import FuelLog, MiscFuelEntry, PartyDieselTransaction, RecycleBinEntry, StationPayment
from party_ledger import PartyLedger
from station_ledger import StationLedger

DAY = date(2024, 3, 5)


def _party_rows(session, party, trucks=()):
    return PartyLedger.entries(
        party,
        session.query(PartyDieselTransaction).all(),
        session.query(FuelLog).all(),
        list(trucks),
    )


def _station_rows(session, station):
    return StationLedger.rows(
        station,
        session.query(FuelLog).all(),
        session.query(MiscFuelEntry).all(),
        session.query(StationPayment).all(),
    )


def test_supplier_balance(session, make_party):
    party = make_party("Highway Fuels")
    PartyLedger.add_transaction(session, party.id, {
        "tx_type": "BORROW", "date": date(2024, 3, 1), "fuel_liters": 150, "diesel_price": 90,
    }, "admin")
    PartyLedger.add_transaction(session, party.id, {
        "tx_type": "SETTLE_LITERS", "date": date(2024, 3, 3), "fuel_liters": 30, "diesel_price": 100,
    }, "admin")
    PartyLedger.add_transaction(session, party.id, {
        "tx_type": "SETTLE_CASH", "date": DAY, "amount": 2000, "diesel_price": 100, "remarks": "cash via office",
    }, "admin")

    rows = _party_rows(session, party)
    stats = PartyLedger.stats(rows)

    assert [r["type"] for r in rows] == ["SETTLE_CASH", "SETTLE_LITERS", "BORROW"]
    assert rows[2]["description"] == "Manual Borrow (Personal/Office)"
    assert stats["total_debit_liters"] == 150
    assert stats["total_credit_liters"] == 50
    assert stats["net_liters_owed"] == 100
    assert stats["net_amount_owed"] == 8500
    assert stats["total_cash_paid"] == 2000

    assert len(PartyLedger.filter_entries(rows, type_filter="SETTLE")) == 2
    assert len(PartyLedger.filter_entries(rows, search="office")) == 2
    assert len(PartyLedger.filter_entries(rows, start_date=date(2024, 3, 2), end_date=date(2024, 3, 4))) == 1
    with pytest.raises(ValueError):
        PartyLedger.filter_entries(rows, type_filter="LOAN")

    (balance,) = PartyLedger.balances(session)
    assert balance["net_liters_owed"] == 100
    assert balance["net_amount_owed"] == 8500


@pytest.mark.parametrize("data", [
    {"tx_type": "SETTLE_CASH", "date": DAY, "amount": 0},
    {"tx_type": "BORROW", "date": DAY, "fuel_liters": 0},
    {"tx_type": "GIFT", "date": DAY, "fuel_liters": 10},
    {"tx_type": "BORROW", "date": None, "fuel_liters": 10},
])
def test_party_transaction_validation(session, make_party, data):
    party = make_party("Highway Fuels")
    with pytest.raises(FuelEntryError):
        PartyLedger.add_transaction(session, party.id, data, "admin")
    assert session.query(PartyDieselTransaction).count() == 0


def test_fleet_fueling_description(session, truck, driver, make_party):
    party = make_party("Highway Fuels")
    FuelManager.add_fuel_log(session, {
        "truck_id": truck.id, "driver_id": driver.id, "party_id": party.id, "date": DAY,
        "entry_type": "PER_TRIP", "odometer": 1100, "fuel_liters": 50, "diesel_price": 90,
    }, "fuel_agent")

    (row,) = _party_rows(session, party, [truck])
    assert row["description"] == f"Fleet Fueling: {truck.plate_number}"
    assert row["amount"] == 4500


def test_external_station_balance(session, truck, make_station, make_fuel_log):
    pump = make_station("City Pump")
    make_fuel_log(truck.id, DAY, 100.0, price=92.0, station_id=pump.id)
    make_fuel_log(truck.id, DAY, 50.0, price=92.0, station_id=pump.id)
    StationLedger.add_misc_entry(session, pump.id, {
        "usage_type": "OFFICE", "fuel_liters": 20, "diesel_price": 80, "date": DAY,
        "vehicle_description": "Manager car",
    }, "admin")
    StationLedger.add_payment(session, pump.id, {
        "amount": 5000, "payment_method": "Cheque", "reference_no": "CHQ-1", "date": DAY,
    }, "admin")

    rows = _station_rows(session, pump)
    summary = StationLedger.summary(pump, rows)

    assert summary["total_purchased"] == 15400
    assert summary["total_paid"] == 5000
    assert summary["balance"] == 10400
    assert summary["total_liters"] == 170
    payment = StationLedger.filter_rows(rows, row_type="PAYMENT")
    assert [r["description"] for r in payment] == ["Cheque (CHQ-1)"]
    assert len(StationLedger.filter_rows(rows, search="manager")) == 1
    with pytest.raises(ValueError):
        StationLedger.filter_rows(rows, row_type="REFUND")


def test_tanker_stock_balance(session, truck, make_station, make_fuel_log, make_party):
    depot = make_station("Depot")
    tanker = make_station("Tanker 1", is_internal=True)
    StationLedger.add_misc_entry(session, depot.id, {
        "usage_type": "BULK_TRANSFER", "destination_station_id": tanker.id, "fuel_liters": 500,
        "diesel_price": 92, "invoice_no": "INV-9", "date": date(2024, 3, 1),
    }, "admin")
    make_fuel_log(truck.id, DAY, 120.0, station_id=tanker.id)

    rows = StationLedger.rows(
        tanker, session.query(FuelLog).all(), session.query(MiscFuelEntry).all(), [], [truck], [depot, tanker],
    )
    summary = StationLedger.summary(tanker, rows)
    assert summary["total_stock_in"] == 500
    assert summary["total_dispensed"] == 120
    assert summary["balance"] == 380
    stock_in = StationLedger.filter_rows(rows, row_type="STOCK_IN")
    assert stock_in[0]["description"] == "Source: Depot | Inv: INV-9"
    assert stock_in[0]["id"].endswith("_recv")

    # the depot sees the transfer as a purchase
    depot_rows = _station_rows(session, depot)
    assert depot_rows[0]["description"] == "Bulk Transfer to Tanker"

    customer = make_party("Acme Cement", party_type="CUSTOMER")
    PartyLedger.add_transaction(session, customer.id, {
        "tx_type": "DIESEL_RECEIVED", "date": DAY, "fuel_liters": 60, "diesel_price": 90, "tanker_id": tanker.id,
    }, "admin")
    PartyLedger.add_transaction(session, customer.id, {
        "tx_type": "SETTLE_LITERS", "date": DAY, "fuel_liters": 40, "diesel_price": 90, "tanker_id": tanker.id,
    }, "admin")

    summary = StationLedger.summary(tanker, _station_rows(session, tanker))
    assert summary["total_stock_in"] == 560
    assert summary["total_dispensed"] == 160
    assert summary["balance"] == 400


def test_station_validation(session, make_station):
    pump = make_station("City Pump")
    tanker = make_station("Tanker 1", is_internal=True)

    with pytest.raises(FuelEntryError):
        StationLedger.add_payment(session, tanker.id, {"amount": 100, "date": DAY}, "admin")
    with pytest.raises(FuelEntryError):
        StationLedger.add_payment(session, pump.id, {"amount": 0, "date": DAY}, "admin")
    with pytest.raises(FuelEntryError):
        StationLedger.add_misc_entry(session, tanker.id, {
            "usage_type": "BULK_TRANSFER", "destination_station_id": pump.id, "fuel_liters": 10, "date": DAY,
        }, "admin")
    assert session.query(StationPayment).count() == 0
    assert session.query(MiscFuelEntry).count() == 0


def test_update_transaction_moves_tanker_entry(session, make_party, make_station):
    customer = make_party("Acme Cement", party_type="CUSTOMER")
    tanker = make_station("Tanker 1", is_internal=True)
    tx = PartyLedger.add_transaction(session, customer.id, {
        "tx_type": "DIESEL_RECEIVED", "date": DAY, "fuel_liters": 60, "diesel_price": 90, "tanker_id": tanker.id,
    }, "admin")
    side = session.query(MiscFuelEntry).one()
    assert side.party_tx_id == tx.id and side.fuel_liters == 60

    PartyLedger.update_transaction(session, tx.id, {
        "tx_type": "DIESEL_RECEIVED", "date": DAY, "fuel_liters": 75, "diesel_price": 90, "tanker_id": tanker.id,
    }, "admin")
    side = session.query(MiscFuelEntry).one()
    assert side.fuel_liters == 75 and side.amount == 6750

    PartyLedger.update_transaction(session, tx.id, {
        "tx_type": "BORROW", "date": DAY, "fuel_liters": 75, "diesel_price": 90,
    }, "admin")
    assert session.query(MiscFuelEntry).count() == 0

    PartyLedger.add_transaction(session, customer.id, {
        "tx_type": "SETTLE_LITERS", "date": DAY, "fuel_liters": 10, "diesel_price": 90, "tanker_id": tanker.id,
    }, "admin")
    side = session.query(MiscFuelEntry).one()
    with pytest.raises(FuelEntryError, match="party ledger"):
        StationLedger.delete_misc_entry(session, side.id, "admin")
    with pytest.raises(FuelEntryError, match="party ledger"):
        StationLedger.update_misc_entry(session, side.id, {"fuel_liters": 5, "date": DAY}, "admin")


def test_delete_transaction_archives_side_entry(session, make_party, make_station):
    party = make_party("Highway Fuels")
    tanker = make_station("Tanker 1", is_internal=True)
    tx = PartyLedger.add_transaction(session, party.id, {
        "tx_type": "SETTLE_LITERS", "date": DAY, "fuel_liters": 40, "diesel_price": 90, "tanker_id": tanker.id,
    }, "admin")

    PartyLedger.delete_transaction(session, tx.id, "admin", reason="entered twice")

    assert session.query(PartyDieselTransaction).count() == 0
    assert session.query(MiscFuelEntry).count() == 0
    bin_types = sorted(e.resource_type for e in session.query(RecycleBinEntry))
    assert bin_types == ["MiscFuelEntry", "PartyDieselTransaction"]


def test_fuel_log_borrow_is_edited_through_the_fuel_log(session, truck, driver, make_party):
    party = make_party("Highway Fuels")
    FuelManager.add_fuel_log(session, {
        "truck_id": truck.id, "driver_id": driver.id, "date": DAY, "entry_type": "PER_TRIP",
        "odometer": 1200.0, "fuel_liters": 50.0, "diesel_price": 90.0, "party_id": party.id,
    }, "fuel_agent")
    tx = session.query(PartyDieselTransaction).one()

    with pytest.raises(FuelEntryError, match="edit the fuel log"):
        PartyLedger.update_transaction(session, tx.id, {"tx_type": "BORROW", "date": DAY, "fuel_liters": 10}, "admin")
    with pytest.raises(FuelEntryError, match="edit the fuel log"):
        PartyLedger.delete_transaction(session, tx.id, "admin")
    assert session.query(PartyDieselTransaction).count() == 1


def test_misc_entry_edit_and_delete(session, make_station):
    pump = make_station("City Pump")
    entry = StationLedger.add_misc_entry(session, pump.id, {
        "usage_type": "OFFICE", "fuel_liters": 20, "diesel_price": 80, "date": DAY,
    }, "admin")

    StationLedger.update_misc_entry(session, entry.id, {
        "usage_type": "PERSONAL", "fuel_liters": 25, "diesel_price": 80, "date": DAY,
        "vehicle_description": "Owner jeep",
    }, "admin")
    assert entry.amount == 2000 and entry.vehicle_description == "Owner jeep"

    with pytest.raises(FuelEntryError):
        StationLedger.update_misc_entry(session, entry.id, {"fuel_liters": 0, "date": DAY}, "admin")
    assert session.get(MiscFuelEntry, entry.id).fuel_liters == 25

    StationLedger.delete_misc_entry(session, entry.id, "admin", reason="wrong pump")
    assert session.query(MiscFuelEntry).count() == 0
    assert session.query(RecycleBinEntry).one().reason == "wrong pump"


def test_delete_payment_restores_balance(session, make_station, truck, make_fuel_log):
    pump = make_station("City Pump")
    make_fuel_log(truck.id, DAY, 100.0, price=90.0, station_id=pump.id)
    payment = StationLedger.add_payment(session, pump.id, {"amount": 4000, "date": DAY}, "admin")
    assert StationLedger.summary(pump, _station_rows(session, pump))["balance"] == 5000

    StationLedger.delete_payment(session, payment.id, "admin", reason="bounced")

    assert StationLedger.summary(pump, _station_rows(session, pump))["balance"] == 9000
    assert session.query(StationPayment).count() == 0
    assert session.query(RecycleBinEntry).filter(RecycleBinEntry.resource_type == "StationPayment").count() == 1
