from datetime import date

import pytest

from fuel_carryover import FuelCarryoverResolver, PREVIOUS_DAY, PREVIOUS_WORKING_DAY


def _batch(day, truck="T1", adj=0.0, adj_type=None):
    return {
        "key": f"{day.isoformat()}|{truck}",
        "date": day,
        "truck_id": truck,
        "diesel_adjustment": adj,
        "diesel_adj_type": adj_type,
    }


def _advances(batches):
    return {b["key"]: b["advance_from_yesterday"] for b in batches}


def test_previous_day_carries_positive_adjustment():
    batches = [
        _batch(date(2024, 3, 4), adj=25.0),
        _batch(date(2024, 3, 5), adj=-10.0),
        _batch(date(2024, 3, 6)),
        _batch(date(2024, 3, 5), truck="T2"),
    ]
    adv = _advances(FuelCarryoverResolver.resolve(batches, PREVIOUS_DAY))
    assert adv == {
        "2024-03-04|T1": 0.0,
        "2024-03-05|T1": 25.0,
        "2024-03-06|T1": 0.0,
        "2024-03-05|T2": 0.0,
    }


def test_previous_day_does_not_skip_gaps():
    batches = [_batch(date(2024, 3, 1), adj=40.0), _batch(date(2024, 3, 4))]
    adv = _advances(FuelCarryoverResolver.resolve(batches))
    assert adv["2024-03-04|T1"] == 0.0


def test_stock_type_switch():
    batches = [_batch(date(2024, 3, 4), adj=25.0, adj_type="OTHER"), _batch(date(2024, 3, 5))]
    adv = _advances(FuelCarryoverResolver.resolve(batches, PREVIOUS_DAY, require_stock_type=True))
    assert adv["2024-03-05|T1"] == 0.0


def test_previous_working_day_looks_past_idle_days():
    batches = [
        _batch(date(2024, 3, 1), adj=40.0, adj_type="STOCK"),
        _batch(date(2024, 3, 4)),
        _batch(date(2024, 3, 6), adj=15.0, adj_type="OTHER"),
        _batch(date(2024, 3, 9)),
    ]
    adv = _advances(FuelCarryoverResolver.resolve(batches, PREVIOUS_WORKING_DAY))
    assert adv["2024-03-04|T1"] == 40.0
    assert adv["2024-03-06|T1"] == 0.0
    # non-STOCK adjustment is not carried
    assert adv["2024-03-09|T1"] == 0.0


def test_single_hop_not_running_balance():
    batches = [
        _batch(date(2024, 3, 1), adj=40.0),
        _batch(date(2024, 3, 2)),
        _batch(date(2024, 3, 3)),
    ]
    adv = _advances(FuelCarryoverResolver.resolve(batches))
    assert adv["2024-03-02|T1"] == 40.0
    assert adv["2024-03-03|T1"] == 0.0


def test_unknown_mode():
    with pytest.raises(ValueError):
        FuelCarryoverResolver.resolve([_batch(date(2024, 3, 1))], "rolling")


@pytest.mark.parametrize("adj, expected", [(30.0, 30.0), (-12.5, -12.5)])
def test_previous_working_day_carries_signed_stock(adj, expected):
    batches = [
        _batch(date(2024, 3, 1), adj=adj, adj_type="STOCK"),
        _batch(date(2024, 3, 5)),
    ]
    adv = _advances(FuelCarryoverResolver.resolve(batches, PREVIOUS_WORKING_DAY))
    assert adv["2024-03-05|T1"] == expected


def test_previous_day_ignores_negative_stock():
    batches = [
        _batch(date(2024, 3, 4), adj=-20.0, adj_type="STOCK"),
        _batch(date(2024, 3, 5)),
    ]
    adv = _advances(FuelCarryoverResolver.resolve(batches, PREVIOUS_DAY, require_stock_type=True))
    assert adv["2024-03-05|T1"] == 0.0
