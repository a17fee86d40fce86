"""
Coal Entry page: record the trips a truck made on a production day.
"""
from __future__ import annotations

import pandas as pd
import streamlit as st

from coal_log_service import CoalLogService
from db import get_session
from models import FleetType, Truck
from pages.helpers import run_action, select_id, username
from timezone_utils import get_local_date
from ui import header


def render() -> None:
    header("Coal Entry")

    with get_session() as session:
        trucks = (
            session.query(Truck)
            .filter(Truck.fleet_type == FleetType.COAL)
            .order_by(Truck.plate_number)
            .all()
        )
        if not trucks:
            st.warning("No coal trucks registered yet.")
            return

        with st.container(border=True):
            c1, c2, c3, c4 = st.columns(4)
            day = c1.date_input("Date", value=get_local_date(), key="ce_date")
            with c2:
                truck_id = select_id("Vehicle", trucks, "plate_number", key="ce_truck")
            origin = c3.text_input("From", key="ce_from")
            dest = c4.text_input("To", key="ce_to")

            fuel = CoalLogService.attributed_fuel(session, day, truck_id)
            if fuel["liters"]:
                st.caption(
                    f"⛽ {fuel['liters']:,.3f} L attributed to this day at {fuel['rate']:.2f} INR/L; "
                    f"it will be split evenly over the trips."
                )
            else:
                st.caption("⛽ No fuel logged for this truck and day yet. Diesel will sync when it is.")

            existing = CoalLogService.batch_records(session, day, truck_id)
            if existing:
                st.info(f"{len(existing)} trip(s) already recorded for this truck and day.")

        st.markdown("#### 🧾 Trips")
        trips = st.data_editor(
            pd.DataFrame([{"pass_no": "", "gross_weight": 0.0, "tare_weight": 0.0}]),
            num_rows="dynamic",
            hide_index=True,
            key="ce_trips",
        )
        trips = trips.assign(net_weight=(trips["gross_weight"] - trips["tare_weight"]).clip(lower=0))
        st.caption(f"Net total: {trips['net_weight'].sum():,.3f} MT over {len(trips)} trip(s)")

        if st.button("💾 Submit Trips", type="primary", key="ce_submit"):
            rows = trips.drop(columns=["net_weight"]).to_dict("records")
            run_action(
                lambda: CoalLogService.add_entry(
                    session, day, truck_id, rows, username(),
                    origin_site=origin or None, destination_site=dest or None,
                ),
                success=f"{len(rows)} trip(s) saved.",
            )
