"""
Tire Inventory page: registration, mounting and lifecycle of tires.
"""
from __future__ import annotations

import pandas as pd
import streamlit as st

from coal_batch_aggregator import _by_id
from db import get_session
from models import Tire, TireStatus, Truck
from pages.helpers import run_action, select_id, username
from timezone_utils import format_report_date
from tire_inventory import OFF_TRUCK_STATUSES, TireInventory
from ui import header

UPLOAD_COLUMNS = ["serial_number", "brand", "size", "manufacturer", "supplier", "bill_number", "mileage"]


def _read_upload(file) -> list:
    if file.name.lower().endswith(".csv"):
        df = pd.read_csv(file)
    else:
        df = pd.read_excel(file)
    df.columns = [str(c).strip().lower().replace(" ", "_") for c in df.columns]
    if "serial_number" not in df.columns:
        raise ValueError("The file needs a serial_number column.")
    df = df[[c for c in UPLOAD_COLUMNS if c in df.columns]]
    return [{k: (None if pd.isna(v) else v) for k, v in row.items()} for row in df.to_dict("records")]


def _register_tab(session) -> None:
    with st.container(border=True):
        st.markdown("**Bill details** (applied to every tire below)")
        c1, c2, c3, c4, c5 = st.columns(5)
        common = {
            "brand": c1.text_input("Brand", key="ti_brand"),
            "size": c2.text_input("Size", key="ti_size"),
            "manufacturer": c3.text_input("Manufacturer", key="ti_mfr"),
            "supplier": c4.text_input("Supplier", key="ti_sup"),
            "bill_number": c5.text_input("Bill No", key="ti_bill"),
        }

    serials = st.text_area("Serial numbers (one per line)", key="ti_serials")
    if st.button("➕ Register Tires", type="primary", key="ti_add"):
        rows = [{"serial_number": s} for s in serials.splitlines() if s.strip()]
        run_action(lambda: TireInventory.add_tires(session, rows, username(), common=common),
                   success=f"{len(rows)} tire(s) registered.")

    with st.expander("📤 Upload CSV / XLSX", expanded=False):
        st.caption(f"Columns: {', '.join(UPLOAD_COLUMNS)}")
        file = st.file_uploader("Select file", type=["csv", "xlsx"], key="ti_upl")
        if file is not None:
            try:
                rows = _read_upload(file)
            except ValueError as e:
                st.error(str(e))
                return
            st.dataframe(pd.DataFrame(rows), hide_index=True, use_container_width=True)
            if st.button(f"➕ Register {len(rows)} Tire(s)", key="ti_upl_add"):
                run_action(lambda: TireInventory.add_tires(session, rows, username(), common=common),
                           success=f"{len(rows)} tire(s) registered.")


def _inventory_tab(session, tires, trucks) -> None:
    truck_map = _by_id(trucks)
    c1, c2, c3 = st.columns(3)
    search = c1.text_input("Search (serial, brand, plate)", key="ti_search")
    status = c2.selectbox("Status", ["ALL"] + [s.value for s in TireStatus], key="ti_status")
    brands = sorted({t.brand for t in tires if t.brand})
    brand = c3.selectbox("Brand", ["ALL"] + brands, key="ti_brand_f")

    shown = TireInventory.filter(tires, trucks, search, status, brand)
    st.dataframe(pd.DataFrame([
        {
            "Serial": t.serial_number,
            "Brand": t.brand or "",
            "Size": t.size or "",
            "Status": t.status.value,
            "Truck": getattr(truck_map.get(t.truck_id), "plate_number", ""),
            "Position": t.position or "",
            "KM": TireInventory.live_mileage(t, truck_map.get(t.truck_id)),
            "Life Used %": TireInventory.life_used_pct(t, truck_map.get(t.truck_id)),
        }
        for t in shown
    ]), hide_index=True, use_container_width=True)

    if not shown:
        return
    with st.expander("🔧 Tire Actions", expanded=False):
        tire_id = select_id("Tire", shown, "serial_number", key="ti_sel")
        tire = next(t for t in shown if t.id == tire_id)
        truck = truck_map.get(tire.truck_id)
        off_statuses = [s.value for s in OFF_TRUCK_STATUSES]

        if tire.status == TireStatus.MOUNTED:
            st.caption(f"On {truck.plate_number} {tire.position} since {tire.mounted_at_odometer:,.0f} km")
            c1, c2, c3 = st.columns(3)
            to_status = c1.selectbox("Move to", off_statuses, key=f"ti_un_status_{tire_id}")
            odo = c2.number_input("Odometer", min_value=0.0, value=float(truck.current_odometer or 0),
                                  key=f"ti_un_odo_{tire_id}")
            remarks = c3.text_input("Remarks / scrap reason", key=f"ti_un_rem_{tire_id}")
            if st.button("⬇️ Unmount", key=f"ti_unmount_{tire_id}"):
                run_action(lambda: TireInventory.unmount(session, tire_id, username(), to_status, odo, remarks or None),
                           success="Tire unmounted.")

            spares = [t for t in tires if t.status in (TireStatus.NEW, TireStatus.SPARE)]
            if spares:
                new_id = select_id("Replace with", spares, "serial_number", key=f"ti_rep_{tire_id}")
                if st.button("🔁 Replace", key=f"ti_replace_{tire_id}"):
                    run_action(
                        lambda: TireInventory.replace(session, tire_id, new_id, username(), to_status, odo,
                                                      remarks or None),
                        success="Tire replaced.",
                    )
        elif tire.status in (TireStatus.NEW, TireStatus.SPARE) and trucks:
            c1, c2, c3 = st.columns(3)
            with c1:
                truck_id = select_id("Truck", trucks, "plate_number", key=f"ti_mt_truck_{tire_id}")
            target = truck_map[truck_id]
            position = c2.selectbox("Position", TireInventory.positions_for(target.wheel_config),
                                    key=f"ti_mt_pos_{tire_id}")
            odo = c3.number_input("Odometer", min_value=0.0, value=float(target.current_odometer or 0),
                                  key=f"ti_mt_odo_{tire_id}")
            if st.button("⬆️ Mount", key=f"ti_mount_{tire_id}"):
                run_action(lambda: TireInventory.mount(session, tire_id, truck_id, position, username(), odo),
                           success="Tire mounted.")

        if tire.status != TireStatus.MOUNTED:
            c1, c2 = st.columns(2)
            choices = [TireStatus.NEW.value] + off_statuses
            new_status = c1.selectbox("Status", choices, key=f"ti_st_{tire_id}")
            reason = c2.text_input("Scrap reason", key=f"ti_st_reason_{tire_id}")
            if st.button("💾 Update Status", key=f"ti_st_save_{tire_id}"):
                run_action(lambda: TireInventory.set_status(session, tire_id, new_status, username(), reason or None),
                           success="Status updated.")

        st.caption("History")
        st.dataframe(pd.DataFrame([
            {**row, "Date": format_report_date(row["Date"])} for row in TireInventory.history_rows(tire, truck)
        ]), hide_index=True, use_container_width=True)


def _layout_tab(session, trucks) -> None:
    if not trucks:
        st.info("No trucks registered yet.")
        return
    truck_id = select_id("Truck", trucks, "plate_number", key="ti_layout_truck")
    truck = next(t for t in trucks if t.id == truck_id)
    st.dataframe(pd.DataFrame([
        {
            "Position": row["position"],
            "Serial": row["tire"].serial_number if row["tire"] else "",
            "Brand": (row["tire"].brand or "") if row["tire"] else "",
            "Life Used %": TireInventory.life_used_pct(row["tire"], truck) if row["tire"] else None,
        }
        for row in TireInventory.truck_layout(session, truck)
    ]), hide_index=True, use_container_width=True)


def render() -> None:
    header("Tire Inventory")

    with get_session() as session:
        trucks = session.query(Truck).order_by(Truck.plate_number).all()
        tires = session.query(Tire).order_by(Tire.serial_number).all()

        m1, m2, m3 = st.columns(3)
        m1.metric("Tires", len(tires))
        m2.metric("Mounted", sum(1 for t in tires if t.status == TireStatus.MOUNTED))
        m3.metric("In Stock", sum(1 for t in tires if t.status in (TireStatus.NEW, TireStatus.SPARE)))

        tab_inv, tab_layout, tab_add = st.tabs(["📋 Inventory", "🛞 Truck Layout", "➕ Register"])
        with tab_inv:
            _inventory_tab(session, tires, trucks)
        with tab_layout:
            _layout_tab(session, trucks)
        with tab_add:
            _register_tab(session)
