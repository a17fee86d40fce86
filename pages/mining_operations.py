"""
Mining Operations page: dispatch / purchase entries and mining batches.
"""
from __future__ import annotations

import pandas as pd
import streamlit as st

from db import get_session
from fleet_config import FleetConfig
from mining_batches import MiningBatchAggregator
from mining_log_service import MiningLogService
from models import Driver, FleetType, FuelLog, Truck
from pages.helpers import current_user, run_action, select_id, username
from permission_manager import PermissionManager
from report_export import MiningReport
from timezone_utils import format_report_date, get_local_date
from ui import header


def _entry_form(session, trucks, drivers) -> None:
    with st.form("mining_entry", clear_on_submit=True):
        c1, c2, c3, c4 = st.columns(4)
        log_type = c1.selectbox("Type", ["DISPATCH", "PURCHASE"])
        day = c2.date_input("Date", value=get_local_date())
        time_str = c3.text_input("Time", placeholder="HH:MM")
        chalan = c4.text_input("Chalan No")

        c1, c2, c3, c4 = st.columns(4)
        with c1:
            truck_id = select_id("Vehicle", trucks, "plate_number", key="me_truck")
        with c2:
            driver_id = select_id("Driver", drivers, "name", key="me_driver", allow_all=True,
                                  all_label=FleetConfig.PENDING_DRIVER)
        customer = c3.text_input("Customer")
        supplier = c4.text_input("Supplier")

        c1, c2, c3 = st.columns(3)
        material = c1.text_input("Material")
        site = c2.text_input("Site")
        royalty = c3.text_input("Royalty Pass No")

        c1, c2, c3, c4 = st.columns(4)
        gross = c1.number_input("Gross", min_value=0.0, step=0.001, format="%.3f")
        tare = c2.number_input("Tare", min_value=0.0, step=0.001, format="%.3f")
        loading_net = c3.number_input("Loading Net", min_value=0.0, step=0.001, format="%.3f")
        unloading_net = c4.number_input("Unloading Net", min_value=0.0, step=0.001, format="%.3f")

        if st.form_submit_button("💾 Save Entry", type="primary"):
            data = {
                "log_type": log_type, "date": day, "time": time_str, "chalan_no": chalan,
                "truck_id": truck_id, "driver_id": driver_id, "customer_name": customer,
                "supplier": supplier, "material": material, "site": site, "royalty_pass_no": royalty,
                "gross": gross, "tare": tare,
                "loading_net_wt": loading_net or None, "unloading_net_wt": unloading_net or None,
            }
            run_action(lambda: MiningLogService.add_entry(session, data, username()), success="Entry saved.")


def _render_report(logs, trucks, drivers, fuel_logs) -> None:
    with st.expander("📄 Mining Report", expanded=False):
        today = get_local_date()
        c1, c2, c3 = st.columns(3)
        start = c1.date_input("From", value=today.replace(day=1), key="mr_from")
        end = c2.date_input("To", value=today, key="mr_to")
        log_type = c3.selectbox("Type", ["ALL", "DISPATCH", "PURCHASE"], key="mr_type")
        c1, c2, c3 = st.columns(3)
        with c1:
            driver_id = select_id("Driver", drivers, "name", key="mr_driver", allow_all=True)
        customers = sorted({l.customer_name for l in logs if l.customer_name})
        customer = c2.selectbox("Customer", [None] + customers, format_func=lambda v: v or "All", key="mr_cust")
        sections = {
            name: c3.checkbox(label, value=True, key=f"mr_sec_{name}")
            for name, label in (("mtd", "MTD"), ("diesel", "Diesel"), ("material", "Material"),
                                ("vehicle", "Vehicle"), ("customer", "Customer"))
        }

        shown = MiningReport.filter_logs(logs, trucks, start, end, log_type=log_type,
                                         driver_id=driver_id, customer=customer)
        if not shown:
            st.info("No mining entries in this period.")
            return
        report = MiningReport.build(shown, trucks, drivers, fuel_logs, all_logs=logs,
                                    start_date=start, end_date=end)
        stats = report["stats"]
        m1, m2, m3 = st.columns(3)
        m1.metric("Trips", stats["trips"])
        m2.metric("Net (MT)", f"{stats['total_net']:,.3f}")
        m3.metric("Shortage (MT)", f"{stats['total_shortage']:,.3f}")

        period = f"Period: {format_report_date(start)} to {format_report_date(end)}"
        d1, d2 = st.columns(2)
        d1.download_button(
            "📥 XLSX",
            data=MiningReport.to_excel(report, sections),
            file_name=f"mining_report_{start}_{end}.xlsx",
            mime="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
            use_container_width=True,
        )
        d2.download_button(
            "📥 PDF",
            data=MiningReport.to_pdf(report, period, sections),
            file_name=f"mining_report_{start}_{end}.pdf",
            mime="application/pdf",
            use_container_width=True,
        )


def render() -> None:
    header("Mining Operations")
    user = current_user()

    with get_session() as session:
        trucks = (
            session.query(Truck)
            .filter(Truck.fleet_type == FleetType.MINING)
            .order_by(Truck.plate_number)
            .all()
        )
        drivers = session.query(Driver).order_by(Driver.name).all()

        with st.expander("➕ New Entry", expanded=False):
            if trucks:
                _entry_form(session, trucks, drivers)
            else:
                st.warning("No mining trucks registered yet.")

        logs = MiningLogService.ordered_query(session).all()
        fuel_logs = session.query(FuelLog).order_by(FuelLog.created_at, FuelLog.id).all()
        _render_report(logs, trucks, drivers, fuel_logs)

        with st.container(border=True):
            st.markdown("#### 🔎 Filters")
            c1, c2, c3, c4 = st.columns(4)
            search = c1.text_input("Search (chalan, party, plate)", key="mo_search")
            materials = sorted({l.material for l in logs if l.material})
            material = c2.selectbox("Material", [None] + materials, format_func=lambda v: v or "All", key="mo_mat")
            suppliers = sorted({l.supplier for l in logs if l.supplier})
            supplier = c3.selectbox("Supplier", [None] + suppliers, format_func=lambda v: v or "All", key="mo_sup")
            with c4:
                truck_id = select_id("Vehicle", trucks, "plate_number", key="mo_truck", allow_all=True)

        batches = MiningBatchAggregator.build_batches(
            logs, fuel_logs, trucks, drivers,
            search=search, material=material, supplier=supplier, truck_id=truck_id, user=user,
        )
        if not batches:
            st.info("No mining entries for the selected filters.")
            return

        m1, m2, m3 = st.columns(3)
        m1.metric("Net WT (MT)", f"{sum(b['net_weight'] for b in batches):,.3f}")
        m2.metric("Shortage (MT)", f"{sum(b['total_shortage'] for b in batches):,.3f}")
        m3.metric("Driver Payable (INR)", f"{sum(b['total_payable'] for b in batches):,.0f}")

        st.dataframe(pd.DataFrame([
            {
                "Date": format_report_date(b["date"]),
                "Type": b["log_type"],
                "Vehicle": b["plate_number"],
                "Driver": b["synced_driver"] or FleetConfig.PENDING_DRIVER,
                "Trips": b["entries"],
                "Net Trips": b["net_trips"],
                "Net WT": b["net_weight"],
                "Shortage": round(b["total_shortage"], 3),
                "Diesel": b["diesel"],
                "Stock Adv": b["advance_from_yesterday"],
                "Net D": b["net_diesel"],
                "Payable": b["total_payable"],
                "Stock Note": MiningBatchAggregator.stock_label(b["advance_from_yesterday"]),
            }
            for b in batches
        ]), hide_index=True, use_container_width=True)

        with st.container(border=True):
            labels = {b["key"]: f"{format_report_date(b['date'])} · {b['plate_number']} · {b['log_type']}" for b in batches}
            sel = st.selectbox("Batch", list(labels), format_func=labels.get, key="mo_batch")
            batch = next(b for b in batches if b["key"] == sel)
            if not PermissionManager.can_edit_batch(user, batch):
                st.info("You can view this batch but not edit it.")
                return

            c1, c2, c3 = st.columns([0.25, 0.25, 0.5])
            kind = c1.selectbox("Adjustment", ["trip", "stock", "air"], key="mo_adj_kind")
            value = c2.number_input("Value", value=0.0, key="mo_adj_val")
            remarks = c3.text_input("Remarks (required)", key="mo_adj_rem")
            if st.button("💾 Save Adjustment", key="mo_adj_save"):
                run_action(
                    lambda: MiningLogService.save_adjustment(
                        session, batch["date"], batch["truck_id"], kind, value, remarks, username(),
                        log_type=batch["log_type"],
                    ),
                    success="Adjustment saved.",
                )

            if PermissionManager.can_delete_entries(user):
                log_id = st.selectbox(
                    "Delete entry", [l.id for l in batch["logs"]],
                    format_func=lambda i: next((l.chalan_no or i[:8]) for l in batch["logs"] if l.id == i),
                    key="mo_del_sel",
                )
                if st.button("🗑️ Delete", key="mo_del_btn"):
                    run_action(lambda: MiningLogService.delete_log(session, log_id, username()),
                               success="Entry moved to recycle bin.")
