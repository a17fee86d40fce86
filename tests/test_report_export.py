from datetime import date
from io import BytesIO

import pandas as pd

from coal_batch_aggregator import CoalBatchAggregator
from mtd_analytics import MTDAnalytics
from models import MiningLogType
from report_export import MINING_COLUMNS, REPORT_HEADERS, CoalReport, MiningReport

from factories import fuel, mining, person, trip, vehicle

D4 = date(2024, 3, 4)
D5 = date(2024, 3, 5)
TRUCKS = [vehicle("T1", "MH-01-1111"), vehicle("T2", "MH-01-2222", "12 WHEEL")]
DRIVERS = [person("D1", "Ramesh")]


def _batches():
    logs = [
        trip(date=D4, truck_id="T1", diesel_adjustment=30.0),
        trip(date=D5, truck_id="T1", driver_id="D1"),
        trip(date=D5, truck_id="T1", driver_id="D1"),
        trip(date=D5, truck_id="T2", gross_weight=25.0, tare_weight=10.0, adjustment=1, trip_remarks="late"),
    ]
    fuel_logs = [fuel(attribution_date=D5, truck_id="T1", fuel_liters=100.0, diesel_price=90.0)]
    return CoalBatchAggregator.build_batches(logs, fuel_logs, TRUCKS, DRIVERS)


def _by_plate_and_date(batches, plate, day):
    return next(b for b in batches if b["plate_number"] == plate and b["date"] == day)


def test_data_row_columns():
    batches = _batches()
    b = _by_plate_and_date(batches, "MH-01-1111", D5)
    (row,) = CoalReport.data_rows([b])

    assert len(row) == len(REPORT_HEADERS)
    assert row[1] == "05-03-2024"
    assert row[3] == "per trip"
    assert row[5] == "Ramesh"
    assert row[6:9] == [2, 0, 2]
    assert row[9] == 30.0
    assert row[10:13] == [40.0, 20.0, 100.0]
    # 100 pumped + 30 advance
    assert row[14:17] == [30.0, 130.0, 65.0]
    assert row[17:] == [300, 0, 300]


def test_totals_row():
    batches = _batches()
    rows = CoalReport.data_rows(batches)
    totals = CoalReport.totals_row(batches, rows)

    assert totals[0] == "TOTAL/AGGREGATION>>"
    assert totals[1] == "2 vehicles"
    assert totals[6] == 4
    assert totals[8] == 5
    assert totals[10] == 75.0
    assert totals[19] == 900
    assert CoalReport.financial_rows(totals)[2] == ["Grand Driver Payable", 900]


def test_remark_text():
    batch = {
        "trip_remarks": "late", "diesel_remarks": "", "air_remarks": None,
        "trip_adjustment": 2, "advance_from_yesterday": 30.0,
        "diesel_adjustment": 20.0, "air_adjustment": 5.0,
    }
    assert CoalReport.remark_text(batch) == "LATE, 2 TRIP ADJUSTED, 30 LTR STOCK ADVANCE, 25.000 LITRE USE IN AIR"


def test_remark_rows_only_for_adjusted_batches():
    batches = _batches()
    remarks = CoalReport.remark_rows(batches)
    plates = sorted((r[0], r[1]) for r in remarks)
    assert plates == [("04-03-2024", "MH-01-1111"), ("05-03-2024", "MH-01-1111"), ("05-03-2024", "MH-01-2222")]


def test_excel_export_sheets():
    batches = _batches()
    mtd = MTDAnalytics.calculate(batches, TRUCKS, anchor=D5)
    data = CoalReport.to_excel(CoalReport.build(batches, mtd))

    assert data[:2] == b"PK"
    sheets = pd.read_excel(BytesIO(data), sheet_name=None)
    assert set(sheets) == {"Coal Transport", "Remarks", "MTD Analytics", "Financials"}
    assert len(sheets["Coal Transport"]) == len(batches) + 1


def test_excel_options_drop_sections():
    batches = _batches()
    data = CoalReport.to_excel(CoalReport.build(batches), {"remarks": False, "financials": False})
    sheets = pd.read_excel(BytesIO(data), sheet_name=None)
    assert set(sheets) == {"Coal Transport"}


def test_pdf_export():
    batches = _batches()
    mtd = MTDAnalytics.calculate(batches, TRUCKS, anchor=D5)
    data = CoalReport.to_pdf(CoalReport.build(batches, mtd), period="01-03-2024 to 05-03-2024")
    assert data.startswith(b"%PDF")


def _mining_logs():
    return [
        mining(date=D4, truck_id="T1", driver_id="D1", chalan_no="C1", customer_name="Acme", material="Sand",
               loading_net_wt=20.0, unloading_net_wt=19.5, shortage_wt=-0.5),
        mining(date=D5, truck_id="T1", driver_id="D1", chalan_no="C2", customer_name="Acme", material="Sand"),
        mining(date=D5, truck_id="T2", chalan_no="C3", customer_name=None, material="Gravel",
               net=0.0, gross=28.0, tare=10.0),
        mining(date=D5, truck_id="T2", log_type=MiningLogType.PURCHASE, chalan_no="P1", supplier="Quarry Co",
               material="Gravel", net=15.0),
    ]


def test_mining_filter_and_rows():
    logs = _mining_logs()
    dispatch = MiningReport.filter_logs(logs, log_type="DISPATCH")
    assert [l.chalan_no for l in dispatch] == ["C2", "C3", "C1"]
    assert [l.chalan_no for l in MiningReport.filter_logs(logs, start_date=D5, supplier="Quarry Co")] == ["P1"]
    assert len(MiningReport.filter_logs(logs, truck_id="T1", customer="Acme")) == 2

    keys = [k for k, _ in MINING_COLUMNS]
    (row,) = MiningReport.rows([logs[0]], TRUCKS, DRIVERS)
    values = dict(zip(keys, row))
    assert values["date"] == "04-03-2024"
    assert values["vehicle"] == "MH-01-1111"
    assert values["driver"] == "Ramesh"
    assert (values["loading_net"], values["unloading_net"], values["shortage"]) == (20.0, 19.5, -0.5)
    assert values["type"] == "DISPATCH"

    (row,) = MiningReport.rows([logs[2]], TRUCKS, DRIVERS, ["net", "shortage", "driver"])
    assert row == [18.0, 0.0, "N/A"]


def test_mining_stats_and_summaries():
    logs = _mining_logs()
    stats = MiningReport.stats(logs)
    assert stats == {"trips": 4, "total_net": 73.0, "total_shortage": -0.5, "vehicles": 2, "materials": 2}

    totals = MiningReport.totals_row(logs, ["date", "net", "shortage", "chalan"])
    assert totals == ["TOTAL", 73.0, -0.5, ""]

    assert MiningReport.summary(logs, lambda l: l.material) == [
        ["Sand", 2, 40.0, -0.5, 20.0],
        ["Gravel", 2, 33.0, 0.0, 16.5],
    ]
    customers = MiningReport.summary(logs, lambda l: l.customer_name)
    assert [c[0] for c in customers] == ["Acme", "Unknown"]


def test_mining_mtd_and_diesel():
    logs = _mining_logs()
    mtd = MiningReport.mtd(logs, D5)
    assert mtd["range1_label"] == "01 Mar to 04 Mar"
    assert mtd["table"][0] == ["Trips", 1, 3, 4]
    assert mtd["table"][1] == ["Net Wt (MT)", 20.0, 53.0, 73.0]

    fuel_logs = [
        fuel(truck_id="T1", date=D4, fuel_liters=30.0, diesel_price=90.0, odometer=1000.0),
        fuel(truck_id="T1", date=D5, fuel_liters=30.0, diesel_price=90.0, odometer=1150.0),
        fuel(truck_id="T2", date=D5, fuel_liters=20.0, diesel_price=90.0, odometer=500.0),
    ]
    t1, t2 = MiningReport.diesel_rows(logs, fuel_logs, TRUCKS)
    assert t1 == ["MH-01-1111", 40.0, 2, 60.0, 5400, 30.0, 1.5, 2.5]
    assert t2[0] == "MH-01-2222" and t2[-1] == "N/A"


def test_mining_exports():
    logs = _mining_logs()
    report = MiningReport.build(logs, TRUCKS, DRIVERS, all_logs=logs, end_date=D5)
    data = MiningReport.to_excel(report, {"customer": False})
    sheets = pd.read_excel(BytesIO(data), sheet_name=None)
    assert set(sheets) == {"Trip Details", "MTD Analytics", "Diesel Analytics", "Material Summary", "Vehicle Summary"}
    assert len(sheets["Trip Details"]) == len(logs) + 1

    assert MiningReport.to_pdf(report, period="04-03-2024 to 05-03-2024").startswith(b"%PDF")
