"""
Coal Transport page: batch list, batch editing and report downloads.
"""
from __future__ import annotations

import pandas as pd
import plotly.graph_objects as go
import streamlit as st

from coal_batch_aggregator import CoalBatchAggregator
from coal_log_service import CoalLogService
from db import get_session
from fleet_config import FleetConfig
from models import Driver, Truck
from mtd_analytics import MTDAnalytics
from pages.helpers import current_user, run_action, select_id, username
from permission_manager import PermissionManager
from recycle_bin import RecycleBinManager
from report_export import CoalReport
from timezone_utils import format_local_datetime, format_report_date, get_local_date
from ui import header


def _batch_frame(batches) -> pd.DataFrame:
    return pd.DataFrame([
        {
            "Date": format_report_date(b["date"]),
            "Vehicle": b["plate_number"],
            "Wheels": b["wheel_config"],
            "Driver": b["synced_driver"] or FleetConfig.PENDING_DRIVER,
            "From": b["origin_site"],
            "To": b["destination_site"],
            "Trips": b["entries"],
            "Adj": b["trip_adjustment"],
            "Net Trips": b["net_trips"],
            "Net WT": b["net_weight"],
            "Diesel": b["diesel"],
            "Stock Adv": b["advance_from_yesterday"],
            "Net D": b["net_diesel"],
            "Welfare": b["staff_welfare"],
            "Roll": b["roll_amount"],
            "Payable": b["total_payable"],
        }
        for b in batches
    ])


def _render_mtd(mtd) -> None:
    cols = ["Metric", mtd["range1_label"], mtd["range2_label"], "Total"]
    c1, c2 = st.columns(2)
    with c1:
        st.markdown("#### ⚖️ Tonnage")
        st.dataframe(pd.DataFrame(MTDAnalytics.tonnage_table(mtd), columns=cols), hide_index=True)
    with c2:
        st.markdown("#### ⛽ Diesel")
        st.dataframe(pd.DataFrame(MTDAnalytics.diesel_table(mtd), columns=cols), hide_index=True)


def _render_batch_tools(session, batch, user) -> None:
    day, truck_id = batch["date"], batch["truck_id"]
    st.markdown(f"#### 🚛 {batch['plate_number']} · {format_report_date(day)}")

    if not PermissionManager.can_edit_batch(user, batch):
        st.info("You can view this batch but not edit it.")
        return

    tab_adj, tab_edit, tab_rows = st.tabs(["Adjustments", "Batch Edit", "Trip Rows"])

    with tab_adj:
        c1, c2, c3 = st.columns([0.25, 0.25, 0.5])
        kind = c1.selectbox("Adjustment", ["trip", "stock", "air"], key=f"adj_kind_{batch['key']}")
        value = c2.number_input("Value", value=0.0, step=1.0 if kind == "trip" else 0.5, key=f"adj_val_{batch['key']}")
        remarks = c3.text_input("Remarks (required)", key=f"adj_rem_{batch['key']}")
        if st.button("💾 Save Adjustment", key=f"adj_save_{batch['key']}"):
            run_action(
                lambda: CoalLogService.save_adjustment(session, day, truck_id, kind, value, remarks, username()),
                success="Adjustment saved.",
            )

        include = st.checkbox(
            "Include trip adjustment in roll",
            value=batch["include_adjustment_in_roll"],
            key=f"adj_incl_{batch['key']}",
        )
        if include != batch["include_adjustment_in_roll"]:
            run_action(lambda: CoalLogService.set_include_adjustment(session, day, truck_id, include, username()))

    with tab_edit:
        drivers = session.query(Driver).order_by(Driver.name).all()
        c1, c2, c3, c4 = st.columns(4)
        new_date = c1.date_input("Date", value=day, key=f"be_date_{batch['key']}")
        origin = c2.text_input("From", value=batch["origin_site"], key=f"be_from_{batch['key']}")
        dest = c3.text_input("To", value=batch["destination_site"], key=f"be_to_{batch['key']}")
        with c4:
            driver_id = select_id("Driver", drivers, "name", key=f"be_drv_{batch['key']}",
                                  allow_all=True, all_label=FleetConfig.PENDING_DRIVER,
                                  default=batch.get("synced_driver_id"))
        b1, b2 = st.columns(2)
        if b1.button("💾 Save Batch", key=f"be_save_{batch['key']}"):
            run_action(
                lambda: CoalLogService.save_batch_edit(
                    session, day, truck_id, username(), new_date=new_date,
                    origin_site=origin, destination_site=dest, driver_id=driver_id or "",
                ),
                success="Batch updated.",
            )
        if b2.button("🔒 Close Batch", key=f"be_close_{batch['key']}"):
            run_action(lambda: CoalLogService.resync_batch(session, day, truck_id, username()),
                       success="Batch payables resynced.")

    with tab_rows:
        rows = pd.DataFrame([
            {
                "id": log.id,
                "pass_no": log.pass_no or "",
                "gross_weight": log.gross_weight or 0.0,
                "tare_weight": log.tare_weight or 0.0,
                "net_weight": log.net_weight or 0.0,
                "diesel_liters": log.diesel_liters or 0.0,
                "staff_welfare": log.staff_welfare or 0.0,
                "roll_amount": log.roll_amount or 0.0,
            }
            for log in batch["logs"]
        ])
        edited = st.data_editor(
            rows,
            hide_index=True,
            disabled=["id", "net_weight", "staff_welfare", "roll_amount"],
            key=f"rows_{batch['key']}",
        )
        if st.button("💾 Save Rows", key=f"rows_save_{batch['key']}"):
            def _save_rows():
                changed = {}
                for before, after in zip(rows.to_dict("records"), edited.to_dict("records")):
                    changes = {
                        k: after[k] for k in ("pass_no", "gross_weight", "tare_weight", "diesel_liters")
                        if after[k] != before[k]
                    }
                    if changes:
                        changed[after["id"]] = changes
                return CoalLogService.update_logs(session, changed, username())
            run_action(_save_rows, success="Trip rows saved.")

        c1, c2 = st.columns(2)
        count = c1.number_input("Rows to add", min_value=1, value=1, step=1, key=f"bulk_n_{batch['key']}")
        if c1.button("➕ Add Rows", key=f"bulk_add_{batch['key']}"):
            run_action(lambda: CoalLogService.bulk_add_rows(session, day, truck_id, count, username()),
                       success=f"{count} row(s) added.")

        if PermissionManager.can_delete_entries(user):
            log_id = c2.selectbox(
                "Delete trip", [log.id for log in batch["logs"]],
                format_func=lambda i: next((l.pass_no or i[:8]) for l in batch["logs"] if l.id == i),
                key=f"del_sel_{batch['key']}",
            )
            reason = c2.text_input("Reason", key=f"del_reason_{batch['key']}")
            if c2.button("🗑️ Delete", key=f"del_btn_{batch['key']}"):
                run_action(lambda: CoalLogService.delete_log(session, log_id, username(), reason or None),
                           success="Trip moved to recycle bin.")


def _render_recycle_bin(session) -> None:
    entries = RecycleBinManager.entries(session, CoalLogService.resource_type)
    with st.expander(f"♻️ Recycle Bin ({len(entries)})", expanded=False):
        if not entries:
            st.caption("No deleted trips.")
            return
        st.dataframe(pd.DataFrame([
            {
                "Trip": e.resource_label,
                "Deleted By": e.deleted_by,
                "Deleted At": format_local_datetime(e.deleted_at),
                "Reason": e.reason or "",
            }
            for e in entries
        ]), hide_index=True, use_container_width=True)
        labels = {e.id: f"{e.resource_label} · {e.deleted_by}" for e in entries}
        entry_id = st.selectbox("Restore", list(labels), format_func=labels.get, key="ct_bin_sel")
        if st.button("↩️ Restore Trip", key="ct_bin_restore"):
            run_action(lambda: CoalLogService.restore_log(session, entry_id, username()),
                       success="Trip restored.")


def render() -> None:
    header("Coal Transport")
    user = current_user()

    with get_session() as session:
        trucks = session.query(Truck).order_by(Truck.plate_number).all()
        drivers = session.query(Driver).all()

        with st.container(border=True):
            st.markdown("#### 🔎 Filters")
            c1, c2, c3, c4 = st.columns(4)
            with c1:
                truck_id = select_id("Vehicle", trucks, "plate_number", key="ct_truck", allow_all=True)
            search = c2.text_input("Search plate", key="ct_search")
            today = get_local_date()
            start = c3.date_input("From Date", value=today.replace(day=1), key="ct_from")
            end = c4.date_input("To Date", value=today, key="ct_to")

        # month window may start before the page filter
        month_start = min(start, end.replace(day=1))
        all_batches = CoalLogService.load_batches(session, trucks, drivers, date_from=month_start)
        batches = CoalBatchAggregator.filter_batches(all_batches, truck_id, search, start, end, user)
        totals = CoalBatchAggregator.global_totals(batches)

        m1, m2, m3, m4 = st.columns(4)
        m1.metric("Tonnage (MT)", f"{totals['tonnage']:,.3f}")
        m2.metric("Diesel (L)", f"{totals['diesel']:,.3f}")
        m3.metric("Net Trips", f"{totals['trips']:,}")
        m4.metric("Diesel Amount (INR)", f"{totals['amount']:,.2f}")

        if not batches:
            st.info("No batches for the selected filters.")
            return

        st.dataframe(_batch_frame(batches), hide_index=True, use_container_width=True)

        daily = pd.DataFrame([{"date": b["date"], "net": b["net_weight"]} for b in batches]).groupby("date").sum()
        fig = go.Figure(go.Bar(x=daily.index, y=daily["net"], name="Net WT"))
        fig.update_layout(height=280, margin=dict(l=10, r=10, t=30, b=10), title="Daily Tonnage")
        st.plotly_chart(fig, use_container_width=True)

        mtd = MTDAnalytics.calculate(all_batches, trucks, end, truck_id, search)
        with st.container(border=True):
            st.markdown("### 📅 Month to Date")
            _render_mtd(mtd)

        with st.container(border=True):
            keys = [b["key"] for b in batches]
            labels = {b["key"]: f"{format_report_date(b['date'])} · {b['plate_number']}" for b in batches}
            sel = st.selectbox("Batch", keys, format_func=labels.get, key="ct_batch")
            _render_batch_tools(session, CoalBatchAggregator.find_batch(batches, sel), user)

        if PermissionManager.can_delete_entries(user):
            _render_recycle_bin(session)

        report = CoalReport.build(list(reversed(batches)), mtd)
        period = f"Period: {format_report_date(start)} to {format_report_date(end)}"
        d1, d2 = st.columns(2)
        d1.download_button(
            "📥 XLSX",
            data=CoalReport.to_excel(report),
            file_name=f"coal_transport_{start}_{end}.xlsx",
            mime="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
            use_container_width=True,
        )
        d2.download_button(
            "📥 PDF",
            data=CoalReport.to_pdf(report, period),
            file_name=f"coal_transport_{start}_{end}.pdf",
            mime="application/pdf",
            use_container_width=True,
        )
