"""
Fuel Entry page: log a fill and review fuel history with true efficiency.
"""
from __future__ import annotations

import pandas as pd
import streamlit as st

from db import get_session
from fleet_config import FleetConfig
from fuel_manager import FuelManager
from models import DieselParty, Driver, FuelEntryType, FuelLog, FuelStation, Truck
from pages.helpers import current_user, run_action, select_id, username
from permission_manager import PermissionManager
from timezone_utils import format_report_date, get_local_date
from ui import header


def _render_log_tools(session, logs, trucks) -> None:
    plates = {t.id: t.plate_number for t in trucks}
    labels = {
        l.id: f"{format_report_date(l.date)} · {plates.get(l.truck_id, FleetConfig.UNKNOWN_TRUCK)} · {l.fuel_liters:g} L"
        for l in sorted(logs, key=lambda x: x.date, reverse=True)
    }
    with st.expander("✏️ Edit / Delete Fill", expanded=False):
        log_id = st.selectbox("Fuel log", list(labels), format_func=labels.get, key="fe_edit_sel")
        log = next(l for l in logs if l.id == log_id)
        types = [t.value for t in FuelEntryType]

        c1, c2, c3 = st.columns(3)
        day = c1.date_input("Fueling Date", value=log.date, key=f"fe_edit_date_{log_id}")
        entry_type = c2.selectbox("Entry Type", types, index=types.index(log.entry_type.value),
                                  key=f"fe_edit_type_{log_id}")
        odometer = c3.number_input("Odometer (KM)", min_value=0.0, value=float(log.odometer or 0.0),
                                   key=f"fe_edit_odo_{log_id}")
        c1, c2 = st.columns(2)
        liters = c1.number_input("Litres", min_value=0.0, value=float(log.fuel_liters or 0.0),
                                 key=f"fe_edit_l_{log_id}")
        price = c2.number_input("Diesel Price", min_value=0.0, value=float(log.diesel_price or 0.0),
                                key=f"fe_edit_p_{log_id}")
        if st.button("💾 Update Fill", key=f"fe_edit_save_{log_id}"):
            data = {"date": day, "entry_type": entry_type, "odometer": odometer,
                    "fuel_liters": liters, "diesel_price": price}
            run_action(lambda: FuelManager.update_fuel_log(session, log_id, data, username()),
                       success="Fuel log updated; trips re-synced.")

        if PermissionManager.can_delete_entries(current_user()):
            reason = st.text_input("Delete reason", key=f"fe_del_reason_{log_id}")
            if st.button("🗑️ Delete Fill", key=f"fe_del_{log_id}"):
                run_action(lambda: FuelManager.delete_fuel_log(session, log_id, username(), reason or None),
                           success="Fuel log moved to recycle bin.")


def render() -> None:
    header("Fuel Entry")

    with get_session() as session:
        trucks = session.query(Truck).order_by(Truck.plate_number).all()
        drivers = session.query(Driver).order_by(Driver.name).all()
        stations = session.query(FuelStation).order_by(FuelStation.name).all()
        parties = session.query(DieselParty).order_by(DieselParty.name).all()
        if not trucks or not drivers:
            st.warning("Register trucks and drivers before logging fuel.")
            return

        with st.container(border=True):
            st.markdown("#### ⛽ New Fill")
            c1, c2, c3 = st.columns(3)
            with c1:
                truck_id = select_id("Vehicle", trucks, "plate_number", key="fe_truck")
            with c2:
                driver_id = select_id("Driver", drivers, "name", key="fe_driver")
            entry_type = c3.selectbox("Entry Type", [t.value for t in FuelEntryType], key="fe_type")

            c1, c2, c3 = st.columns(3)
            fueling_date = c1.date_input("Fueling Date", value=get_local_date(), key="fe_date")
            with c2:
                station_id = select_id("Station", stations, "name", key="fe_station", allow_all=True, all_label="(none)")
            with c3:
                party_id = select_id("Diesel Party", parties, "name", key="fe_party", allow_all=True, all_label="(none)")

            prev_odo = FuelManager.previous_odometer(session, truck_id, fueling_date)
            attribution = FuelManager.attribution_date(fueling_date, entry_type)
            st.caption(
                f"📅 Production date: **{format_report_date(attribution)}** · "
                f"Last ODO: **{prev_odo:,.0f} KM**"
            )

            c1, c2, c3 = st.columns(3)
            odometer = c1.number_input("Odometer (KM)", min_value=0.0, value=float(prev_odo), step=1.0, key="fe_odo")
            liters = c2.number_input("Litres", min_value=0.0, step=0.5, key="fe_liters")
            price = c3.number_input("Diesel Price", min_value=0.0, value=FleetConfig.DEFAULT_DIESEL_RATE,
                                    step=0.01, key="fe_price")
            remarks = st.text_input("Remarks", key="fe_remarks")

            if odometer < prev_odo:
                st.error(f"Odometer is below the previous reading ({prev_odo:,.0f}).")

            if st.button("💾 Save Fill", type="primary", key="fe_save"):
                data = {
                    "truck_id": truck_id, "driver_id": driver_id, "station_id": station_id,
                    "party_id": party_id, "date": fueling_date, "entry_type": entry_type,
                    "odometer": odometer, "previous_odometer": prev_odo,
                    "fuel_liters": liters, "diesel_price": price, "performance_remarks": remarks,
                }
                run_action(lambda: FuelManager.add_fuel_log(session, data, username()), success="Fuel log saved.")

        st.markdown("### 📜 Fuel History")
        with st.container(border=True):
            c1, c2 = st.columns(2)
            with c1:
                hist_truck = select_id("Vehicle", trucks, "plate_number", key="fh_truck", allow_all=True)
            since = c2.date_input("Since", value=get_local_date().replace(day=1), key="fh_since")

        q = session.query(FuelLog).order_by(FuelLog.date, FuelLog.created_at)
        if hist_truck:
            q = q.filter(FuelLog.truck_id == hist_truck)
        logs = q.all()
        shown = [l for l in logs if l.date >= since]
        if not shown:
            st.info("No fuel logs for the selected filters.")
            return

        by_truck = {}
        for l in logs:
            by_truck.setdefault(l.truck_id, []).append(l)
        rows = FuelManager.history_rows(shown, {t.id: t for t in trucks}, {d.id: d for d in drivers})
        id_order = sorted(shown, key=lambda x: x.date, reverse=True)
        for row, log in zip(rows, id_order):
            kmpl = FuelManager.calculate_true_efficiency(log, by_truck[log.truck_id])
            row["KM/L"] = round(kmpl, 2) if kmpl is not None else None
            row["Band"] = FuelManager.efficiency_band(kmpl) or ""
        st.dataframe(pd.DataFrame(rows), hide_index=True, use_container_width=True)
        _render_log_tools(session, shown, trucks)
