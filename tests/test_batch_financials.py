from types import SimpleNamespace

import pytest

from batch_financials import BatchFinancials


def _records(n):
    return [SimpleNamespace(staff_welfare=0, roll_amount=0) for _ in range(n)]


@pytest.mark.parametrize("trips, adj, include, roll", [
    (0, 0, False, 0),
    (3, 0, False, 0),
    (4, 0, False, 0),
    (5, 0, False, 100),
    (6, 0, False, 200),
    (6, 2, False, 200),
    (6, 2, True, 400),
    (3, 2, True, 100),
    (6, -3, True, 0),
])
def test_roll_amount(trips, adj, include, roll):
    assert BatchFinancials.calculate(trips, adj, include)["roll_amount"] == roll


def test_welfare_only_with_trips():
    assert BatchFinancials.calculate(0)["staff_welfare"] == 0
    assert BatchFinancials.calculate(1)["staff_welfare"] == 300
    assert BatchFinancials.calculate(6)["total_payable"] == 500


def test_apply_writes_first_record_only():
    recs = _records(6)
    recs[3].staff_welfare = 300
    recs[4].roll_amount = 200

    result = BatchFinancials.apply_to_records(recs)

    assert result["roll_amount"] == 200
    assert recs[0].staff_welfare == 300
    assert recs[0].roll_amount == 200
    assert all(r.staff_welfare == 0 and r.roll_amount == 0 for r in recs[1:])
    assert BatchFinancials.holds_invariant(recs)


def test_apply_with_explicit_trip_count():
    recs = _records(2)
    BatchFinancials.apply_to_records(recs, trip_count=7)
    assert recs[0].roll_amount == 300


def test_holds_invariant_detects_duplicates():
    recs = _records(3)
    recs[0].staff_welfare = 300
    assert BatchFinancials.holds_invariant(recs)
    recs[2].staff_welfare = 300
    assert not BatchFinancials.holds_invariant(recs)


def test_infer_include_adjustment():
    assert BatchFinancials.infer_include_adjustment(6, 2, 400) is True
    assert BatchFinancials.infer_include_adjustment(6, 2, 200) is False
    assert BatchFinancials.infer_include_adjustment(6, 0, 200) is False
    # both figures are zero, nothing to infer
    assert BatchFinancials.infer_include_adjustment(2, 1, 0) is False


def test_bad_inputs_count_as_zero():
    assert BatchFinancials.calculate(None)["total_payable"] == 0
    assert BatchFinancials.calculate("x", "y", True)["roll_amount"] == 0
