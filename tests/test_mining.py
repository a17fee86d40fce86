from datetime import date

import pytest

from batch_financials import BatchFinancials
from coal_log_service import CoalEntryError
from mining_batches import MiningBatchAggregator
from mining_log_service import MiningLogService
from models import FuelLog, MiningLog, MiningLogType

DAY = date(2024, 3, 5)


def _entry(truck, **kw):
    data = {
        "log_type": "DISPATCH", "date": DAY, "truck_id": truck.id, "chalan_no": "CH-1",
        "customer_name": "Acme Cement", "supplier": "Quarry 7", "material": "Limestone",
        "gross": 40.0, "tare": 15.0, "loading_net_wt": 25.0, "unloading_net_wt": 24.5,
    }
    data.update(kw)
    return data


def test_shortage_of():
    assert MiningBatchAggregator.shortage_of(25.0, 24.5) == -0.5
    assert MiningBatchAggregator.shortage_of(None, 24.5) is None
    assert MiningBatchAggregator.shortage_of(25.0, None) is None


def test_add_entry_sets_net_and_shortage(session, mining_truck):
    rec = MiningLogService.add_entry(session, _entry(mining_truck), "miner")
    assert rec.net == 24.5
    assert rec.shortage_wt == -0.5
    assert rec.log_type == MiningLogType.DISPATCH

    only_loading = MiningLogService.add_entry(
        session, _entry(mining_truck, unloading_net_wt=None, chalan_no="CH-2"), "miner"
    )
    assert only_loading.net == 25.0
    assert only_loading.shortage_wt is None


@pytest.mark.parametrize("overrides", [
    {"truck_id": None},
    {"date": None},
    {"loading_net_wt": None, "unloading_net_wt": None},
    {"gross": 10.0, "tare": 15.0},
    {"log_type": "TRANSFER"},
    {"loading_net_wt": "heavy"},
])
def test_rejected_entries(session, mining_truck, overrides):
    with pytest.raises(CoalEntryError):
        MiningLogService.add_entry(session, _entry(mining_truck, **overrides), "miner")
    assert session.query(MiningLog).count() == 0


def test_payables_scoped_by_log_type(session, mining_truck):
    for i in range(5):
        MiningLogService.add_entry(session, _entry(mining_truck, chalan_no=f"D{i}"), "miner")
    MiningLogService.add_entry(session, _entry(mining_truck, log_type="PURCHASE", chalan_no="P1"), "miner")

    dispatch = MiningLogService.batch_records(session, DAY, mining_truck.id, "DISPATCH")
    purchase = MiningLogService.batch_records(session, DAY, mining_truck.id, "PURCHASE")
    assert BatchFinancials.holds_invariant(dispatch)
    assert dispatch[0].roll_amount == 100
    assert purchase[0].staff_welfare == 300
    assert purchase[0].roll_amount == 0


def test_mining_adjustment_and_delete(session, mining_truck):
    for i in range(3):
        MiningLogService.add_entry(session, _entry(mining_truck, chalan_no=f"D{i}"), "miner")
    MiningLogService.save_adjustment(session, DAY, mining_truck.id, "trip", 2, "missed slips", "miner",
                                     log_type="DISPATCH")
    MiningLogService.set_include_adjustment(session, DAY, mining_truck.id, True, "miner", log_type="DISPATCH")
    recs = MiningLogService.batch_records(session, DAY, mining_truck.id, "DISPATCH")
    assert recs[0].roll_amount == 100

    MiningLogService.delete_log(session, recs[0].id, "admin")
    recs = MiningLogService.batch_records(session, DAY, mining_truck.id, "DISPATCH")
    assert len(recs) == 2
    assert recs[0].staff_welfare == 300
    assert BatchFinancials.holds_invariant(recs)


def test_build_batches(session, mining_truck, driver, make_fuel_log):
    prev = date(2024, 3, 1)
    MiningLogService.add_entry(session, _entry(mining_truck, date=prev, chalan_no="OLD"), "miner")
    MiningLogService.save_adjustment(session, prev, mining_truck.id, "stock", 20, "tank", "miner",
                                     log_type="DISPATCH")
    MiningLogService.add_entry(session, _entry(mining_truck, driver_id=driver.id), "miner")
    MiningLogService.add_entry(session, _entry(mining_truck, chalan_no="CH-9"), "other")
    make_fuel_log(mining_truck.id, DAY, 80.0, price=93.0)
    make_fuel_log(mining_truck.id, DAY, 999.0)

    fuel_logs = session.query(FuelLog).order_by(FuelLog.created_at, FuelLog.id).all()
    batches = MiningBatchAggregator.build_batches(
        MiningLogService.ordered_query(session).all(), fuel_logs, [mining_truck], [driver],
    )
    assert [b["date"] for b in batches] == [DAY, prev]

    today = batches[0]
    assert today["entries"] == 2
    assert today["net_weight"] == 49.0
    assert today["total_shortage"] == -1.0
    # first fuel log only
    assert today["diesel"] == 80.0
    assert today["synced_rate"] == 93.0
    assert today["synced_driver"] == driver.name
    assert today["advance_from_yesterday"] == 20.0
    assert today["net_diesel"] == 100.0
    assert today["staff_welfare"] == 300
    assert today["net_trips"] == 2

    mine = MiningBatchAggregator.build_batches(
        MiningLogService.ordered_query(session).all(), fuel_logs, [mining_truck], [driver],
        search="ch-9", user={"username": "other", "role": "MINING_ENTRY"},
    )
    assert [b["entries"] for b in mine] == [1]


def test_negative_stock_deducts_on_next_working_day(session, mining_truck, make_fuel_log):
    prev = date(2024, 3, 1)
    MiningLogService.add_entry(session, _entry(mining_truck, date=prev, chalan_no="OLD"), "miner")
    MiningLogService.save_adjustment(session, prev, mining_truck.id, "stock", -15, "over-issued", "miner",
                                     log_type="DISPATCH")
    MiningLogService.add_entry(session, _entry(mining_truck), "miner")
    make_fuel_log(mining_truck.id, DAY, 80.0)

    batches = MiningBatchAggregator.build_batches(
        MiningLogService.ordered_query(session).all(), session.query(FuelLog).all(), [mining_truck],
    )
    today = batches[0]
    assert today["advance_from_yesterday"] == -15.0
    assert today["net_diesel"] == 65.0
    assert MiningBatchAggregator.stock_label(today["advance_from_yesterday"]).startswith("STOCK DEDUCTION: 15")


def test_stock_label():
    assert MiningBatchAggregator.stock_label(20).startswith("STOCK ADVANCE: 20L")
    assert MiningBatchAggregator.stock_label(0) == ""
