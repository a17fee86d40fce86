"""
Fleet Registry page: trucks, drivers, fuel stations and diesel parties.
"""
from __future__ import annotations

import pandas as pd
import streamlit as st

from db import get_session
from fleet_config import FleetConfig
from fleet_registry import FleetRegistry
from models import DieselParty, Driver, FleetType, FuelStation, Truck, TruckStatus, TruckStatusChange
from pages.helpers import run_action, select_id, username
from timezone_utils import format_local_datetime, format_report_date, get_local_date
from ui import header

COMPLIANCE_ICON = {"CRITICAL": "🔴", "WARNING": "🟡", "GOOD": "🟢", "NOT_CONFIGURED": "⚪"}


def _truck_fields(prefix: str, truck=None) -> dict:
    wheels = list(FleetConfig.WHEEL_CONFIGS)
    fleets = [f.value for f in FleetType]
    c1, c2, c3, c4 = st.columns(4)
    data = {
        "plate_number": c1.text_input("Plate Number", value=getattr(truck, "plate_number", ""), key=f"{prefix}_plate"),
        "transporter_name": c2.text_input("Transporter", value=getattr(truck, "transporter_name", None) or "",
                                          key=f"{prefix}_trans"),
        "model": c3.text_input("Model", value=getattr(truck, "model", None) or "", key=f"{prefix}_model"),
        "wheel_config": c4.selectbox(
            "Wheels", wheels,
            index=wheels.index(truck.wheel_config) if truck is not None and truck.wheel_config in wheels else 0,
            key=f"{prefix}_wheels",
        ),
    }
    c1, c2, c3 = st.columns(3)
    data["fleet_type"] = c1.selectbox(
        "Fleet", fleets, index=fleets.index(truck.fleet_type.value) if truck is not None else 0, key=f"{prefix}_fleet",
    )
    data["current_odometer"] = c2.number_input(
        "Odometer", min_value=0.0, value=float(getattr(truck, "current_odometer", 0) or 0), key=f"{prefix}_odo",
    )
    data["remarks"] = c3.text_input("Remarks", value=getattr(truck, "remarks", None) or "", key=f"{prefix}_rem")

    st.caption("Document expiry")
    cols = st.columns(len(FleetConfig.COMPLIANCE_DOCUMENTS))
    for col, (column, label) in zip(cols, FleetConfig.COMPLIANCE_DOCUMENTS):
        data[column] = col.date_input(label, value=getattr(truck, column, None), key=f"{prefix}_{column}")
    return data


def _trucks_tab(session) -> None:
    trucks = session.query(Truck).order_by(Truck.plate_number).all()
    today = get_local_date()

    alerts = FleetRegistry.expiring_documents(trucks, today)
    if alerts:
        with st.container(border=True):
            st.markdown("#### 🚨 Compliance Alerts")
            for a in alerts:
                st.markdown(
                    f"{COMPLIANCE_ICON[a['status']]} **{a['plate_number']}** {a['document']} "
                    f"expires {format_report_date(a['expiry'])} ({a['days_left']} days)"
                )

    st.dataframe(pd.DataFrame([
        {
            "Plate": t.plate_number,
            "Fleet": t.fleet_type.value,
            "Wheels": t.wheel_config,
            "Model": t.model or "",
            "Transporter": t.transporter_name or "",
            "Odometer": t.current_odometer,
            "Status": t.status.value,
            **{
                label: COMPLIANCE_ICON[FleetRegistry.compliance_status(getattr(t, column), today)]
                for column, label in FleetConfig.COMPLIANCE_DOCUMENTS
            },
        }
        for t in trucks
    ]), hide_index=True, use_container_width=True)

    with st.expander("➕ Register Truck", expanded=not trucks):
        data = _truck_fields("fr_new")
        if st.button("💾 Register", type="primary", key="fr_new_save"):
            run_action(lambda: FleetRegistry.add_truck(session, data, username()), success="Truck registered.")

    if not trucks:
        return
    with st.expander("✏️ Edit Truck", expanded=False):
        truck_id = select_id("Truck", trucks, "plate_number", key="fr_edit_sel")
        truck = next(t for t in trucks if t.id == truck_id)
        data = _truck_fields(f"fr_edit_{truck_id}", truck)
        statuses = [s.value for s in TruckStatus]
        c1, c2 = st.columns([0.3, 0.7])
        data["status"] = c1.selectbox("Status", statuses, index=statuses.index(truck.status.value),
                                      key=f"fr_status_{truck_id}")
        data["status_reason"] = c2.text_input("Status reason", key=f"fr_reason_{truck_id}")
        if st.button("💾 Save Truck", key=f"fr_edit_save_{truck_id}"):
            run_action(lambda: FleetRegistry.update_truck(session, truck_id, data, username()),
                       success="Truck updated.")

        history = (
            session.query(TruckStatusChange)
            .filter(TruckStatusChange.truck_id == truck_id)
            .order_by(TruckStatusChange.changed_at.desc())
            .all()
        )
        if history:
            st.caption("Status history")
            st.dataframe(pd.DataFrame([
                {
                    "When": format_local_datetime(h.changed_at),
                    "Status": h.status.value,
                    "Reason": h.reason or "",
                    "By": h.changed_by or "",
                }
                for h in history
            ]), hide_index=True, use_container_width=True)


def _drivers_tab(session) -> None:
    drivers = session.query(Driver).order_by(Driver.name).all()
    st.dataframe(pd.DataFrame([
        {"Name": d.name, "License": d.license_number or "", "Phone": d.phone or "",
         "Status": d.status, "Type": d.driver_type}
        for d in drivers
    ]), hide_index=True, use_container_width=True)

    statuses, types = list(FleetConfig.DRIVER_STATUSES), list(FleetConfig.DRIVER_TYPES)
    with st.form("add_driver_form", clear_on_submit=True):
        st.markdown("**➕ Add Driver**")
        c1, c2, c3, c4 = st.columns(4)
        data = {
            "name": c1.text_input("Name"),
            "license_number": c2.text_input("License No"),
            "phone": c3.text_input("Phone"),
            "driver_type": c4.selectbox("Type", types),
        }
        if st.form_submit_button("➕ Add Driver", type="primary"):
            run_action(lambda: FleetRegistry.add_driver(session, data, username()), success="Driver added.")

    if not drivers:
        return
    with st.expander("✏️ Edit Driver", expanded=False):
        driver_id = select_id("Driver", drivers, "name", key="fr_drv_sel")
        driver = next(d for d in drivers if d.id == driver_id)
        c1, c2, c3, c4, c5 = st.columns(5)
        data = {
            "name": c1.text_input("Name", value=driver.name, key=f"fr_drv_name_{driver_id}"),
            "license_number": c2.text_input("License No", value=driver.license_number or "",
                                            key=f"fr_drv_lic_{driver_id}"),
            "phone": c3.text_input("Phone", value=driver.phone or "", key=f"fr_drv_phone_{driver_id}"),
            "status": c4.selectbox("Status", statuses,
                                   index=statuses.index(driver.status) if driver.status in statuses else 0,
                                   key=f"fr_drv_status_{driver_id}"),
            "driver_type": c5.selectbox("Type", types,
                                        index=types.index(driver.driver_type) if driver.driver_type in types else 0,
                                        key=f"fr_drv_type_{driver_id}"),
        }
        if st.button("💾 Save Driver", key=f"fr_drv_save_{driver_id}"):
            run_action(lambda: FleetRegistry.update_driver(session, driver_id, data, username()),
                       success="Driver updated.")


def _stations_tab(session) -> None:
    stations = session.query(FuelStation).order_by(FuelStation.name).all()
    st.dataframe(pd.DataFrame([
        {"Name": s.name, "Location": s.location or "", "Kind": "Internal tanker" if s.is_internal else "Pump"}
        for s in stations
    ]), hide_index=True, use_container_width=True)

    with st.form("add_station_form", clear_on_submit=True):
        st.markdown("**➕ Add Station**")
        c1, c2, c3 = st.columns([0.4, 0.4, 0.2])
        data = {
            "name": c1.text_input("Name"),
            "location": c2.text_input("Location"),
            "is_internal": c3.checkbox("Internal tanker"),
        }
        if st.form_submit_button("➕ Add Station", type="primary"):
            run_action(lambda: FleetRegistry.add_station(session, data, username()), success="Station added.")

    if not stations:
        return
    with st.expander("✏️ Edit Station", expanded=False):
        station_id = select_id("Station", stations, "name", key="fr_st_sel")
        station = next(s for s in stations if s.id == station_id)
        c1, c2, c3 = st.columns([0.4, 0.4, 0.2])
        data = {
            "name": c1.text_input("Name", value=station.name, key=f"fr_st_name_{station_id}"),
            "location": c2.text_input("Location", value=station.location or "", key=f"fr_st_loc_{station_id}"),
            "is_internal": c3.checkbox("Internal tanker", value=bool(station.is_internal),
                                       key=f"fr_st_int_{station_id}"),
        }
        if st.button("💾 Save Station", key=f"fr_st_save_{station_id}"):
            run_action(lambda: FleetRegistry.update_station(session, station_id, data, username()),
                       success="Station updated.")


def _parties_tab(session) -> None:
    parties = session.query(DieselParty).order_by(DieselParty.name).all()
    st.dataframe(pd.DataFrame([
        {"Name": p.name, "Type": p.party_type, "Contact": p.contact or "", "Phone": p.phone or "",
         "Transactions": p.transactions.count()}
        for p in parties
    ]), hide_index=True, use_container_width=True)

    types = list(FleetConfig.PARTY_TYPES)
    with st.form("add_party_form", clear_on_submit=True):
        st.markdown("**➕ Add Party**")
        c1, c2, c3, c4 = st.columns(4)
        data = {
            "name": c1.text_input("Name"),
            "party_type": c2.selectbox("Type", types),
            "contact": c3.text_input("Contact"),
            "phone": c4.text_input("Phone"),
        }
        if st.form_submit_button("➕ Add Party", type="primary"):
            run_action(lambda: FleetRegistry.add_party(session, data, username()), success="Party added.")

    if not parties:
        return
    with st.expander("✏️ Edit / Delete Party", expanded=False):
        party_id = select_id("Party", parties, "name", key="fr_pt_sel")
        party = next(p for p in parties if p.id == party_id)
        c1, c2, c3, c4 = st.columns(4)
        data = {
            "name": c1.text_input("Name", value=party.name, key=f"fr_pt_name_{party_id}"),
            "party_type": c2.selectbox("Type", types,
                                       index=types.index(party.party_type) if party.party_type in types else 0,
                                       key=f"fr_pt_type_{party_id}"),
            "contact": c3.text_input("Contact", value=party.contact or "", key=f"fr_pt_contact_{party_id}"),
            "phone": c4.text_input("Phone", value=party.phone or "", key=f"fr_pt_phone_{party_id}"),
        }
        data["notes"] = st.text_area("Notes", value=party.notes or "", key=f"fr_pt_notes_{party_id}")
        if st.button("💾 Save Party", key=f"fr_pt_save_{party_id}"):
            run_action(lambda: FleetRegistry.update_party(session, party_id, data, username()),
                       success="Party updated.")

        st.divider()
        st.warning("Deleting a party moves its whole ledger to the recycle bin.")
        reason = st.text_input("Delete reason", key=f"fr_pt_del_reason_{party_id}")
        if st.button("🗑️ Delete Party", key=f"fr_pt_del_{party_id}"):
            run_action(lambda: FleetRegistry.delete_party(session, party_id, username(), reason or None),
                       success="Party moved to recycle bin.")


def render() -> None:
    header("Fleet Registry")

    with get_session() as session:
        tab_trucks, tab_drivers, tab_stations, tab_parties = st.tabs(
            ["🚛 Trucks", "👷 Drivers", "⛽ Fuel Stations", "🤝 Diesel Parties"]
        )
        with tab_trucks:
            _trucks_tab(session)
        with tab_drivers:
            _drivers_tab(session)
        with tab_stations:
            _stations_tab(session)
        with tab_parties:
            _parties_tab(session)
