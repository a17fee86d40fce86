from datetime import date

from mtd_analytics import MTDAnalytics

from factories import vehicle

ANCHOR = date(2024, 3, 19)


def _batch(day, truck, net, diesel, net_diesel, rate, entries, adj=0):
    return {
        "date": day, "truck_id": truck, "net_weight": net, "diesel": diesel, "net_diesel": net_diesel,
        "synced_rate": rate, "entries": entries, "net_trips": entries + adj,
    }


TRUCKS = [vehicle("A", "MH-01-AAAA", "10 WHEEL"), vehicle("B", "MH-01-BBBB", "TRAILER")]
BATCHES = [
    _batch(date(2024, 3, 2), "A", 60.0, 100.0, 90.0, 90.0, 3),
    _batch(ANCHOR, "A", 40.0, 50.0, 50.0, 92.0, 2),
    _batch(date(2024, 3, 10), "B", 500.0, 500.0, 500.0, 95.0, 10),
    _batch(date(2024, 2, 28), "A", 80.0, 80.0, 80.0, 89.0, 4),
    _batch(date(2024, 3, 20), "A", 33.0, 33.0, 33.0, 89.0, 1),
]


def test_windows_labels():
    win = MTDAnalytics.windows(ANCHOR)
    assert win["r1_start"] == date(2024, 3, 1)
    assert win["r1_end"] == date(2024, 3, 18)
    assert win["range1_label"] == "01 Mar to 18 Mar"
    assert win["range2_label"] == "19 Mar"
    assert MTDAnalytics.windows(date(2024, 3, 1))["range1_label"] == "Prev. Data"


def test_target_vehicles():
    assert MTDAnalytics.target_vehicle_ids(TRUCKS) == ["A"]
    assert MTDAnalytics.target_vehicle_ids(TRUCKS, truck_id="B") == ["B"]
    assert MTDAnalytics.target_vehicle_ids(TRUCKS, search="zzz") == []


def test_calculate_two_windows():
    mtd = MTDAnalytics.calculate(BATCHES, TRUCKS, anchor=ANCHOR)
    w1, w2 = mtd["window1"], mtd["window2"]

    assert w1["net"] == 60.0
    assert w1["fuel"] == 100.0
    assert w1["amount"] == 9000.0
    assert w1["avg_load"] == 20.0
    assert w1["avg_fuel"] == 30.0
    assert w1["rate"] == 90.0

    assert w2["net"] == 40.0
    assert w2["avg_load"] == 20.0
    assert w2["avg_fuel"] == 25.0
    assert w2["rate"] == 92.0


def test_empty_window_is_zero():
    mtd = MTDAnalytics.calculate(BATCHES, TRUCKS, anchor=date(2024, 4, 15))
    assert mtd["window1"] == {"net": 0.0, "fuel": 0.0, "amount": 0.0, "avg_load": 0.0, "avg_fuel": 0.0, "rate": 0.0}


def test_tables():
    mtd = MTDAnalytics.calculate(BATCHES, TRUCKS, anchor=ANCHOR)
    tonnage = MTDAnalytics.tonnage_table(mtd)
    diesel = MTDAnalytics.diesel_table(mtd)

    assert tonnage[0] == ["Metric Tonnage (MT)", 60.0, 40.0, 100.0]
    assert tonnage[2] == ["Avg Diesel/Trip (L)", 30.0, 25.0, 27.5]
    assert diesel[1] == ["Amount Spent (INR)", 9000.0, 4600.0, 13600.0]
    assert diesel[2] == ["Diesel Rate (INR)", 90.0, 92.0, 91.0]
