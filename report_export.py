# report_export.py
"""
Report exports, rendered to Excel (pandas + XlsxWriter) or PDF (reportlab).

CoalReport: batch rows, totals, remarks, MTD tables and driver payable totals.
MiningReport: dispatch / purchase rows with shortage, MTD, diesel usage and
per material / vehicle / customer summaries.
"""

from __future__ import annotations
from io import BytesIO
from typing import Any, Dict, Iterable, List, Optional

import pandas as pd
from reportlab.lib import colors
from reportlab.lib.enums import TA_CENTER
from reportlab.lib.pagesizes import A4, landscape
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.lib.units import cm
from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

from coal_batch_aggregator import _by_id, _num, _to_date
from fleet_config import FleetConfig
from logger import log_info
from mtd_analytics import MTDAnalytics
from timezone_utils import format_report_date

REPORT_HEADERS = [
    "S.No", "Date", "Wheels", "Filling Type", "Vehicle No", "Driver", "Trips", "Trips Adj", "Net Trips",
    "Gross (Avg)", "Net WT", "Avg Load", "Diesel", "Adj",
    "Stock Adv", "Net D", "Avg Lite", "Welf", "Roll", "Payable",
]
REMARK_HEADERS = ["Date", "Vehicle No.", "Remarks"]

DEFAULT_OPTIONS = {"remarks": True, "tonnage": True, "diesel": True, "financials": True}


def _plain(value: float) -> str:
    """12.0 -> '12', 12.5 -> '12.5'"""
    return f"{value:g}"


class CoalReport:

    @staticmethod
    def data_rows(batches: Iterable[Dict[str, Any]]) -> List[List[Any]]:
        rows = []
        for i, b in enumerate(batches, start=1):
            trips = b["entries"]
            total_adj = b["diesel_adjustment"] + b["air_adjustment"]
            rows.append([
                i,
                format_report_date(b["date"]),
                b["wheel_config"],
                b.get("filling_types") or "per trip",
                b["plate_number"],
                b.get("synced_driver") or FleetConfig.PENDING_DRIVER,
                trips,
                b["trip_adjustment"],
                b["net_trips"],
                round(b["gross_weight_total"] / trips, 3) if trips else 0.0,
                round(b["net_weight"], 3),
                round(b["net_weight"] / trips, 3) if trips else 0.0,
                round(b["diesel"], 3),
                round(-total_adj, 3),
                round(b["advance_from_yesterday"], 3),
                round(b["net_diesel"], 3),
                round(b["net_diesel"] / b["net_trips"], 3) if b["net_trips"] > 0 else 0.0,
                b.get("staff_welfare") or 0,
                b.get("roll_amount") or 0,
                b.get("total_payable") or 0,
            ])
        return rows

    @staticmethod
    def totals_row(batches: List[Dict[str, Any]], rows: List[List[Any]]) -> List[Any]:
        vehicles = len({b["plate_number"] for b in batches})
        avg_lite = sum(r[16] for r in rows) / len(rows) if rows else 0.0
        return [
            "TOTAL/AGGREGATION>>", f"{vehicles} vehicles", "", "", "", "",
            sum(r[6] for r in rows), "", sum(r[8] for r in rows), "",
            round(sum(r[10] for r in rows), 3), "",
            round(sum(r[12] for r in rows), 3), "", "",
            round(sum(r[15] for r in rows), 3), round(avg_lite, 3),
            sum(r[17] for r in rows), sum(r[18] for r in rows), sum(r[19] for r in rows),
        ]

    @staticmethod
    def remark_text(batch: Dict[str, Any]) -> str:
        parts = [batch[f] for f in ("trip_remarks", "diesel_remarks", "air_remarks") if batch.get(f)]
        if batch["trip_adjustment"] != 0:
            parts.append(f"{batch['trip_adjustment']} TRIP ADJUSTED")
        if batch["advance_from_yesterday"] > 0:
            parts.append(f"{_plain(batch['advance_from_yesterday'])} LTR STOCK ADVANCE")
        if batch["diesel_adjustment"] != 0 or batch["air_adjustment"] != 0:
            parts.append(f"{batch['diesel_adjustment'] + batch['air_adjustment']:.3f} LITRE USE IN AIR")
        return ", ".join(parts).upper()

    @staticmethod
    def remark_rows(batches: Iterable[Dict[str, Any]]) -> List[List[str]]:
        """One row per batch carrying an adjustment or a stock advance."""
        return [
            [format_report_date(b["date"]), b["plate_number"], CoalReport.remark_text(b)]
            for b in batches
            if b["trip_adjustment"] != 0 or b["diesel_adjustment"] != 0
            or b["air_adjustment"] != 0 or b["advance_from_yesterday"] > 0
        ]

    @staticmethod
    def financial_rows(totals: List[Any]) -> List[List[Any]]:
        return [
            ["Staff Welfare Total", totals[17]],
            ["Roll Amount Total", totals[18]],
            ["Grand Driver Payable", totals[19]],
        ]

    @staticmethod
    def build(batches: List[Dict[str, Any]], mtd: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """Everything the exporters need, as plain lists."""
        rows = CoalReport.data_rows(batches)
        totals = CoalReport.totals_row(batches, rows)
        report = {
            "headers": REPORT_HEADERS,
            "rows": rows,
            "totals": totals,
            "remarks": CoalReport.remark_rows(batches),
            "financials": CoalReport.financial_rows(totals),
            "mtd": None,
        }
        if mtd is not None:
            report["mtd"] = {
                "range1_label": mtd["range1_label"],
                "range2_label": mtd["range2_label"],
                "tonnage": MTDAnalytics.tonnage_table(mtd),
                "diesel": MTDAnalytics.diesel_table(mtd),
            }
        return report

    # ------------- Excel -------------
    @staticmethod
    def to_excel(report: Dict[str, Any], options: Optional[Dict[str, bool]] = None) -> bytes:
        opts = {**DEFAULT_OPTIONS, **(options or {})}
        bio = BytesIO()
        main = pd.DataFrame(report["rows"] + [report["totals"]], columns=report["headers"])

        with pd.ExcelWriter(bio, engine="xlsxwriter") as writer:
            main.to_excel(writer, index=False, sheet_name="Coal Transport")

            if opts["remarks"] and report["remarks"]:
                pd.DataFrame(report["remarks"], columns=REMARK_HEADERS).to_excel(
                    writer, index=False, sheet_name="Remarks"
                )

            mtd = report.get("mtd")
            if mtd and (opts["tonnage"] or opts["diesel"]):
                cols = ["Metric", mtd["range1_label"], mtd["range2_label"], "Total"]
                startrow = 0
                for flag in ("tonnage", "diesel"):
                    if not opts[flag]:
                        continue
                    pd.DataFrame(mtd[flag], columns=cols).to_excel(
                        writer, index=False, sheet_name="MTD Analytics", startrow=startrow
                    )
                    startrow += len(mtd[flag]) + 2

            if opts["financials"]:
                pd.DataFrame(report["financials"], columns=["FINANCIAL TOTALS (INR)", "Amount"]).to_excel(
                    writer, index=False, sheet_name="Financials"
                )

        log_info(f"Coal report exported to Excel ({len(report['rows'])} batches)")
        return bio.getvalue()

    # ------------- PDF -------------
    @staticmethod
    def _table(data: List[List[Any]], font_size: int = 7) -> Table:
        table = Table([[str(c) for c in row] for row in data], repeatRows=1)
        table.setStyle(TableStyle([
            ("BACKGROUND", (0, 0), (-1, 0), colors.HexColor("#1f4788")),
            ("TEXTCOLOR", (0, 0), (-1, 0), colors.white),
            ("FONTNAME", (0, 0), (-1, 0), "Helvetica-Bold"),
            ("ALIGN", (0, 0), (-1, -1), "CENTER"),
            ("FONTSIZE", (0, 0), (-1, -1), font_size),
            ("GRID", (0, 0), (-1, -1), 0.25, colors.grey),
        ]))
        return table

    @staticmethod
    def to_pdf(report: Dict[str, Any], period: str = "", options: Optional[Dict[str, bool]] = None) -> bytes:
        opts = {**DEFAULT_OPTIONS, **(options or {})}
        bio = BytesIO()
        doc = SimpleDocTemplate(
            bio,
            pagesize=landscape(A4),
            leftMargin=0.5 * cm,
            rightMargin=0.5 * cm,
            topMargin=0.6 * cm,
            bottomMargin=0.6 * cm,
        )
        styles = getSampleStyleSheet()
        title_style = ParagraphStyle(
            "CoalTitle", parent=styles["Heading1"], fontSize=15, alignment=TA_CENTER,
            textColor=colors.HexColor("#1f4788"),
        )
        sub_style = ParagraphStyle(
            "CoalSub", parent=styles["Normal"], fontSize=10, alignment=TA_CENTER,
            textColor=colors.HexColor("#666666"),
        )
        section_style = ParagraphStyle("CoalSection", parent=styles["Heading3"], fontSize=10)

        elements = [Paragraph("<b>COAL TRANSPORT REPORT</b>", title_style)]
        if period:
            elements.append(Paragraph(period, sub_style))
        elements.append(Spacer(1, 0.3 * cm))
        elements.append(CoalReport._table([report["headers"]] + report["rows"] + [report["totals"]], font_size=6))

        if opts["remarks"] and report["remarks"]:
            elements += [Spacer(1, 0.4 * cm), Paragraph("REMARKS AND ADJUSTMENTS", section_style)]
            elements.append(CoalReport._table([REMARK_HEADERS] + report["remarks"]))

        mtd = report.get("mtd")
        if mtd:
            cols = ["Metric", mtd["range1_label"], mtd["range2_label"], "Total"]
            for flag, title in (("tonnage", "MTD TONNAGE"), ("diesel", "MTD DIESEL")):
                if opts[flag]:
                    elements += [Spacer(1, 0.4 * cm), Paragraph(title, section_style)]
                    elements.append(CoalReport._table([cols] + mtd[flag]))

        if opts["financials"]:
            elements += [Spacer(1, 0.4 * cm), Paragraph("FINANCIAL TOTALS (INR)", section_style)]
            elements.append(CoalReport._table([["Item", "Amount"]] + report["financials"]))

        doc.build(elements)
        log_info(f"Coal report exported to PDF ({len(report['rows'])} batches)")
        return bio.getvalue()


MINING_COLUMNS = [
    ("date", "Date"),
    ("vehicle", "Vehicle No."),
    ("driver", "Operator"),
    ("chalan", "Chalan No."),
    ("royalty", "Royalty No."),
    ("supplier", "Supplier"),
    ("customer", "Customer"),
    ("site", "Site"),
    ("material", "Material"),
    ("gross", "Gross Wt (MT)"),
    ("tare", "Tare Wt (MT)"),
    ("net", "Net Wt (MT)"),
    ("loading_net", "Loading Net"),
    ("unloading_net", "Unloading Net"),
    ("shortage", "Shortage (MT)"),
    ("staff_welfare", "Staff Welfare"),
    ("roll_amount", "Roll Amount"),
    ("type", "Type"),
]
SUMMARY_HEADERS = ["Trips", "Total Net (MT)", "Shortage (MT)", "Avg Load/Trip"]
DIESEL_HEADERS = ["Vehicle No.", "Net Wt (MT)", "Trips", "Diesel (L)", "Amount (INR)", "L/Trip", "L/MT", "KM/L"]

MINING_SECTIONS = {"mtd": True, "diesel": True, "material": True, "vehicle": True, "customer": True}


def _mining_net(log) -> float:
    """Stored net, else gross - tare."""
    return _num(log.net) or max(0.0, _num(log.gross) - _num(log.tare))


def _mining_type(log) -> str:
    return getattr(log.log_type, "value", log.log_type) or ""


class MiningReport:
    """Dispatch / purchase trip report with shortage, summaries and diesel usage."""

    @staticmethod
    def filter_logs(logs: Iterable, trucks: Optional[Iterable] = None, start_date=None, end_date=None,
                    log_type: str = "ALL", truck_id: Optional[str] = None, driver_id: Optional[str] = None,
                    customer: Optional[str] = None, material: Optional[str] = None,
                    supplier: Optional[str] = None) -> List:
        start, end = _to_date(start_date), _to_date(end_date)
        out = [
            l for l in logs
            if (not start or l.date >= start)
            and (not end or l.date <= end)
            and (log_type == "ALL" or _mining_type(l) == log_type)
            and (not truck_id or l.truck_id == truck_id)
            and (not driver_id or l.driver_id == driver_id)
            and (not customer or l.customer_name == customer)
            and (not material or l.material == material)
            and (not supplier or l.supplier == supplier)
        ]
        return sorted(out, key=lambda l: l.date, reverse=True)

    @staticmethod
    def _values(log, trucks: Dict, drivers: Dict) -> Dict[str, Any]:
        def opt(v):
            return "" if v is None else round(_num(v), 3)

        return {
            "date": format_report_date(log.date),
            "vehicle": getattr(trucks.get(log.truck_id), "plate_number", None) or FleetConfig.UNKNOWN_TRUCK,
            "driver": getattr(drivers.get(log.driver_id), "name", None) or FleetConfig.NOT_AVAILABLE,
            "chalan": log.chalan_no or "",
            "royalty": log.royalty_pass_no or "",
            "supplier": log.supplier or "",
            "customer": log.customer_name or "",
            "site": log.site or "",
            "material": log.material or "",
            "gross": round(_num(log.gross), 3),
            "tare": round(_num(log.tare), 3),
            "net": round(_mining_net(log), 3),
            "loading_net": opt(log.loading_net_wt),
            "unloading_net": opt(log.unloading_net_wt),
            "shortage": opt(log.shortage_wt),
            "staff_welfare": _num(log.staff_welfare),
            "roll_amount": _num(log.roll_amount),
            "type": _mining_type(log),
        }

    @staticmethod
    def rows(logs: Iterable, trucks: Iterable, drivers: Iterable,
             columns: Optional[List[str]] = None) -> List[List[Any]]:
        keys = columns or [k for k, _ in MINING_COLUMNS]
        truck_map, driver_map = _by_id(trucks), _by_id(drivers)
        return [[MiningReport._values(l, truck_map, driver_map)[k] for k in keys] for l in logs]

    @staticmethod
    def totals_row(logs: List, columns: Optional[List[str]] = None) -> List[Any]:
        keys = columns or [k for k, _ in MINING_COLUMNS]
        sums = {
            "net": sum(_mining_net(l) for l in logs),
            "loading_net": sum(_num(l.loading_net_wt) for l in logs),
            "unloading_net": sum(_num(l.unloading_net_wt) for l in logs),
            "shortage": sum(_num(l.shortage_wt) for l in logs),
            "staff_welfare": sum(_num(l.staff_welfare) for l in logs),
            "roll_amount": sum(_num(l.roll_amount) for l in logs),
        }
        row = [round(sums[k], 3) if k in sums else "" for k in keys]
        row[0] = "TOTAL"
        return row

    @staticmethod
    def stats(logs: Iterable) -> Dict[str, Any]:
        logs = list(logs)
        return {
            "trips": len(logs),
            "total_net": round(sum(_mining_net(l) for l in logs), 3),
            "total_shortage": round(sum(_num(l.shortage_wt) for l in logs), 3),
            "vehicles": len({l.truck_id for l in logs}),
            "materials": len({l.material for l in logs if l.material}),
        }

    @staticmethod
    def summary(logs: Iterable, key) -> List[List[Any]]:
        """[label, trips, net, shortage, avg load] per group, in first-seen order."""
        groups: Dict[str, List] = {}
        for l in logs:
            groups.setdefault(key(l) or FleetConfig.UNKNOWN_TRUCK, []).append(l)
        out = []
        for label, items in groups.items():
            net = sum(_mining_net(l) for l in items)
            out.append([
                label, len(items), round(net, 3),
                round(sum(_num(l.shortage_wt) for l in items), 3),
                round(net / len(items), 3),
            ])
        return out

    @staticmethod
    def diesel_rows(logs: List, fuel_logs: Iterable, trucks: Iterable, start_date=None,
                    end_date=None) -> List[List[Any]]:
        """Per vehicle: fuel of the period against its trips and tonnage."""
        truck_map = _by_id(trucks)
        start, end = _to_date(start_date), _to_date(end_date)
        fuel_logs = [
            f for f in fuel_logs
            if (not start or f.date >= start) and (not end or f.date <= end)
        ]
        out = []
        for truck_id in dict.fromkeys(l.truck_id for l in logs):
            own = [l for l in logs if l.truck_id == truck_id]
            net = sum(_mining_net(l) for l in own)
            fills = sorted((f for f in fuel_logs if f.truck_id == truck_id), key=lambda f: (f.date, _num(f.odometer)))
            liters = sum(_num(f.fuel_liters) for f in fills)
            amount = sum(_num(f.fuel_liters) * _num(f.diesel_price) for f in fills)
            kml = FleetConfig.NOT_AVAILABLE
            if len(fills) > 1 and liters > 0:
                km = _num(fills[-1].odometer) - _num(fills[0].odometer)
                if km > 0:
                    kml = round(km / liters, 3)
            out.append([
                getattr(truck_map.get(truck_id), "plate_number", None) or FleetConfig.UNKNOWN_TRUCK,
                round(net, 3),
                len(own),
                round(liters, 3),
                round(amount),
                round(liters / len(own), 3),
                round(liters / net, 3) if net > 0 else 0.0,
                kml,
            ])
        return out

    @staticmethod
    def mtd(all_logs: Iterable, anchor=None) -> Dict[str, Any]:
        """Trips, net, shortage and average load for the month window before the anchor and the anchor day."""
        w = MTDAnalytics.windows(anchor)
        all_logs = list(all_logs)
        r1 = [l for l in all_logs if w["r1_start"] <= l.date <= w["r1_end"]]
        r2 = [l for l in all_logs if l.date == w["anchor"]]

        def sums(items):
            net = sum(_mining_net(l) for l in items)
            return {
                "trips": len(items),
                "net": net,
                "shortage": sum(_num(l.shortage_wt) for l in items),
                "avg_load": net / len(items) if items else 0.0,
            }

        s1, s2 = sums(r1), sums(r2)
        both = sums(r1 + r2)
        table = [
            ["Trips", s1["trips"], s2["trips"], both["trips"]],
            ["Net Wt (MT)", round(s1["net"], 3), round(s2["net"], 3), round(both["net"], 3)],
            ["Shortage (MT)", round(s1["shortage"], 3), round(s2["shortage"], 3), round(both["shortage"], 3)],
            ["Avg Load", round(s1["avg_load"], 3), round(s2["avg_load"], 3), round(both["avg_load"], 3)],
        ]
        return {"range1_label": w["range1_label"], "range2_label": w["range2_label"], "table": table}

    @staticmethod
    def build(logs: List, trucks: Iterable, drivers: Iterable, fuel_logs: Iterable = (), all_logs=None,
              start_date=None, end_date=None, columns: Optional[List[str]] = None) -> Dict[str, Any]:
        trucks, drivers = list(trucks), list(drivers)
        truck_map = _by_id(trucks)
        keys = columns or [k for k, _ in MINING_COLUMNS]
        labels = dict(MINING_COLUMNS)
        return {
            "headers": [labels[k] for k in keys],
            "rows": MiningReport.rows(logs, trucks, drivers, keys),
            "totals": MiningReport.totals_row(logs, keys),
            "stats": MiningReport.stats(logs),
            "mtd": MiningReport.mtd(all_logs if all_logs is not None else logs, end_date),
            "diesel": MiningReport.diesel_rows(logs, fuel_logs, trucks, start_date, end_date),
            "material": MiningReport.summary(logs, lambda l: l.material),
            "vehicle": MiningReport.summary(
                logs, lambda l: getattr(truck_map.get(l.truck_id), "plate_number", None)
            ),
            "customer": MiningReport.summary(logs, lambda l: l.customer_name),
        }

    @staticmethod
    def _summary_sheets(report: Dict[str, Any], opts: Dict[str, bool]):
        mtd = report["mtd"]
        if opts["mtd"]:
            yield "MTD Analytics", ["Metric", mtd["range1_label"], mtd["range2_label"], "Total"], mtd["table"]
        if opts["diesel"] and report["diesel"]:
            yield "Diesel Analytics", DIESEL_HEADERS, report["diesel"]
        for flag, title, first in (("material", "Material Summary", "Material"),
                                   ("vehicle", "Vehicle Summary", "Vehicle No."),
                                   ("customer", "Customer Summary", "Customer")):
            if opts[flag] and report[flag]:
                yield title, [first] + SUMMARY_HEADERS, report[flag]

    @staticmethod
    def to_excel(report: Dict[str, Any], sections: Optional[Dict[str, bool]] = None) -> bytes:
        opts = {**MINING_SECTIONS, **(sections or {})}
        bio = BytesIO()
        with pd.ExcelWriter(bio, engine="xlsxwriter") as writer:
            pd.DataFrame(report["rows"] + [report["totals"]], columns=report["headers"]).to_excel(
                writer, index=False, sheet_name="Trip Details"
            )
            for title, headers, rows in MiningReport._summary_sheets(report, opts):
                pd.DataFrame(rows, columns=headers).to_excel(writer, index=False, sheet_name=title)
        log_info(f"Mining report exported to Excel ({len(report['rows'])} entries)")
        return bio.getvalue()

    @staticmethod
    def to_pdf(report: Dict[str, Any], period: str = "", sections: Optional[Dict[str, bool]] = None) -> bytes:
        opts = {**MINING_SECTIONS, **(sections or {})}
        bio = BytesIO()
        doc = SimpleDocTemplate(
            bio, pagesize=landscape(A4),
            leftMargin=0.5 * cm, rightMargin=0.5 * cm, topMargin=0.6 * cm, bottomMargin=0.6 * cm,
        )
        styles = getSampleStyleSheet()
        title_style = ParagraphStyle(
            "MiningTitle", parent=styles["Heading1"], fontSize=15, alignment=TA_CENTER,
            textColor=colors.HexColor("#1f4788"),
        )
        section_style = ParagraphStyle("MiningSection", parent=styles["Heading3"], fontSize=10)

        elements = [Paragraph("<b>MINING OPERATIONS REPORT</b>", title_style)]
        if period:
            elements.append(Paragraph(period, styles["Normal"]))
        elements.append(Spacer(1, 0.3 * cm))
        elements.append(CoalReport._table([report["headers"]] + report["rows"] + [report["totals"]], font_size=5))
        for title, headers, rows in MiningReport._summary_sheets(report, opts):
            elements += [Spacer(1, 0.4 * cm), Paragraph(title.upper(), section_style)]
            elements.append(CoalReport._table([headers] + rows))

        doc.build(elements)
        log_info(f"Mining report exported to PDF ({len(report['rows'])} entries)")
        return bio.getvalue()
