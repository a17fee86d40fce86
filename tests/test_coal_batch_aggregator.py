import random
from datetime import date

from coal_batch_aggregator import CoalBatchAggregator, batch_key
from fleet_config import FleetConfig
from models import DieselAdjType, FuelEntryType

from factories import fuel, person, trip, vehicle

D5 = date(2024, 3, 5)
D6 = date(2024, 3, 6)


def test_groups_by_date_and_truck_and_skips_undated():
    logs = [
        trip(date=D5, truck_id="T1"),
        trip(date=D5, truck_id="T1"),
        trip(date=D5, truck_id="T2"),
        trip(date=D6, truck_id="T1"),
        trip(date=None, truck_id="T1"),
    ]
    batches = CoalBatchAggregator.build_batches(logs)

    assert len(batches) == 3
    by_key = {b["key"]: b for b in batches}
    assert by_key[batch_key(D5, "T1")]["entries"] == 2
    assert by_key["2024-03-06|T1"]["entries"] == 1
    # ascending
    assert [b["date"] for b in batches] == sorted(b["date"] for b in batches)


def test_net_weight_is_clamped_per_trip():
    logs = [
        trip(gross_weight=30.5, tare_weight=10.25),
        trip(gross_weight=5.0, tare_weight=9.0),
    ]
    (batch,) = CoalBatchAggregator.build_batches(logs)
    assert batch["net_weight"] == 20.25
    assert batch["gross_weight_total"] == 35.5


def test_adjustment_copied_on_every_record_counts_once():
    logs = [trip(adjustment=2, trip_remarks="late") for _ in range(6)]
    (batch,) = CoalBatchAggregator.build_batches(logs)
    assert batch["trip_adjustment"] == 2
    assert batch["net_trips"] == 8
    assert batch["trip_remarks"] == "late"


def test_last_non_empty_value_wins():
    logs = [
        trip(air_adjustment=5.0, air_remarks="first", origin_site="Pit A"),
        trip(air_adjustment=7.0, air_remarks="second", origin_site="N/A"),
        trip(air_adjustment=0.0, air_remarks=None, origin_site=""),
    ]
    (batch,) = CoalBatchAggregator.build_batches(logs)
    assert batch["air_adjustment"] == 7.0
    assert batch["air_remarks"] == "second"
    assert batch["origin_site"] == "Pit A"
    assert batch["destination_site"] == FleetConfig.NOT_AVAILABLE


def test_diesel_from_attributed_fuel_and_net_diesel():
    logs = [
        trip(date=D5, diesel_adjustment=30.0, diesel_adj_type=DieselAdjType.STOCK),
        trip(date=D6, air_adjustment=4.5),
        trip(date=D6, diesel_adjustment=10.0),
    ]
    fuel_logs = [
        fuel(attribution_date=D6, date=date(2024, 3, 7), fuel_liters=100.0, diesel_price=92.0,
             entry_type=FuelEntryType.FULL_TANK),
        fuel(attribution_date=D6, fuel_liters=20.0),
        fuel(attribution_date=D6, truck_id="T2", fuel_liters=999.0),
    ]
    d5, d6 = CoalBatchAggregator.build_batches(logs, fuel_logs)

    assert d5["diesel"] == 0.0
    assert d6["diesel"] == 120.0
    assert d6["advance_from_yesterday"] == 30.0
    # 120 + 30 - 10 - 4.5
    assert d6["net_diesel"] == 135.5
    assert d6["filling_types"] == "full diesel / per trip"
    assert d6["actual_fuel_date"] == date(2024, 3, 7)
    assert d6["synced_rate"] == 92.0


def test_driver_and_rate_fallbacks():
    drivers = [person("D1", "Ramesh"), person("D2", "Suresh")]
    trucks = [vehicle("T1", "MH-01")]

    (from_fuel,) = CoalBatchAggregator.build_batches(
        [trip()], [fuel(driver_id="D2", fuel_liters=50.0)], trucks, drivers,
    )
    assert from_fuel["synced_driver"] == "Suresh"
    assert from_fuel["synced_rate"] == FleetConfig.DEFAULT_DIESEL_RATE
    assert from_fuel["plate_number"] == "MH-01"

    (own,) = CoalBatchAggregator.build_batches(
        [trip(driver_id="D1", diesel_rate=95.0)], [fuel(driver_id="D2", diesel_price=91.0)], trucks, drivers,
    )
    assert own["synced_driver"] == "Ramesh"
    assert own["synced_rate"] == 95.0

    (bare,) = CoalBatchAggregator.build_batches([trip(truck_id="T9")], [], trucks, drivers)
    assert bare["synced_driver"] is None
    assert bare["plate_number"] == FleetConfig.UNKNOWN_TRUCK
    assert bare["filling_types"] == ""


def test_payables_follow_stored_include_flag():
    logs = [trip(adjustment=2) for _ in range(6)]
    logs[0].staff_welfare, logs[0].roll_amount = 300, 400
    (batch,) = CoalBatchAggregator.build_batches(logs)
    assert batch["include_adjustment_in_roll"] is True
    assert batch["roll_amount"] == 400
    assert batch["total_payable"] == 700


def test_filter_newest_first_and_agent_visibility():
    logs = [
        trip(date=D5, truck_id="T1", agent_id="alice"),
        trip(date=D6, truck_id="T1", agent_id="bob"),
        trip(date=D6, truck_id="T2", agent_id="alice"),
    ]
    trucks = [vehicle("T1", "MH-01-1111"), vehicle("T2", "GJ-05-2222")]
    batches = CoalBatchAggregator.build_batches(logs, [], trucks)

    everything = CoalBatchAggregator.filter_batches(batches, user={"username": "root", "role": "ADMIN"})
    assert [b["date"] for b in everything] == [D6, D6, D5]

    alice = CoalBatchAggregator.filter_batches(batches, user={"username": "alice", "role": "COAL_ENTRY"})
    assert {b["key"] for b in alice} == {"2024-03-05|T1", "2024-03-06|T2"}

    searched = CoalBatchAggregator.filter_batches(batches, search="  gj-05 ")
    assert [b["truck_id"] for b in searched] == ["T2"]

    ranged = CoalBatchAggregator.filter_batches(batches, truck_id="T1", start_date=D6, end_date=D6)
    assert [b["key"] for b in ranged] == ["2024-03-06|T1"]


def test_global_totals_and_flatten():
    logs = [trip(), trip(), trip(date=D6, adjustment=1)]
    fuel_logs = [fuel(fuel_liters=50.0, diesel_price=90.0), fuel(attribution_date=D6, fuel_liters=10.0, diesel_price=100.0)]
    batches = CoalBatchAggregator.build_batches(logs, fuel_logs)

    totals = CoalBatchAggregator.global_totals(batches)
    assert totals == {"tonnage": 60.0, "diesel": 60.0, "trips": 4, "amount": 5500.0}
    assert len(CoalBatchAggregator.flatten(batches)) == 3
    assert CoalBatchAggregator.find_batch(batches, "2024-03-06|T1")["entries"] == 1
    assert CoalBatchAggregator.find_batch(batches, "nope") is None


def test_flatten_returns_every_log_whatever_the_input_order():
    logs = [
        trip(id=f"L{i}", date=day, truck_id=truck)
        for i, (day, truck) in enumerate([(D5, "T1"), (D6, "T1"), (D5, "T2"), (D5, "T1"), (D6, "T2"), (D6, "T1")])
    ]
    shuffled = list(logs)
    random.Random(7).shuffle(shuffled)

    flat = CoalBatchAggregator.flatten(CoalBatchAggregator.build_batches(shuffled))
    assert len(flat) == len(logs)
    assert set(map(id, flat)) == set(map(id, logs))
