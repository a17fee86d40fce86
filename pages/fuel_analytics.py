"""
Fuel Analytics page: truck efficiency, leaderboard and station liability.
"""
from __future__ import annotations

import pandas as pd
import plotly.graph_objects as go
import streamlit as st

from db import get_session
from fuel_analytics import LEADERBOARD_METRICS, FuelAnalytics
from models import CoalLog, FuelLog, FuelStation, MiningLog, MiscFuelEntry, Truck
from timezone_utils import get_local_date
from ui import header

STATUS_ICON = {"GOOD": "🟢", "POOR": "🔴", "N/A": "⚪"}


def _stats_frame(stats) -> pd.DataFrame:
    return pd.DataFrame([
        {
            "Vehicle": s["plate_number"],
            "Fleet": s["fleet_type"],
            "Fills": s["fills"],
            "Litres": s["liters"],
            "Cost (INR)": s["cost"],
            "KM": s["km"],
            "KM/L": f"{STATUS_ICON[s['kml_status']]} {s['km_per_liter']:.2f}",
            "Trips": s["trips"],
            "Tonnage": s["tonnage"],
            "L/Trip": f"{STATUS_ICON[s['trip_status']]} {s['l_per_trip']:.2f}",
            "L/Ton": f"{STATUS_ICON[s['ton_status']]} {s['l_per_ton']:.3f}",
        }
        for s in stats
    ])


def _leaderboard(stats) -> None:
    metric = st.radio("Rank by", list(LEADERBOARD_METRICS), horizontal=True, key="fa_metric")
    field = LEADERBOARD_METRICS[metric][0]
    board = FuelAnalytics.leaderboard(stats, metric)
    c1, c2 = st.columns(2)
    with c1:
        st.markdown("**🏆 Most Efficient**")
        if board["best"]:
            st.dataframe(pd.DataFrame([{"Vehicle": s["plate_number"], metric: s[field]} for s in board["best"]]),
                         hide_index=True, use_container_width=True)
        else:
            st.caption("No truck within the benchmark.")
    with c2:
        st.markdown("**⚠️ Needs Attention**")
        if board["worst"]:
            st.dataframe(pd.DataFrame([{"Vehicle": s["plate_number"], metric: s[field]} for s in board["worst"]]),
                         hide_index=True, use_container_width=True)
        else:
            st.caption("No truck outside the benchmark.")


def render() -> None:
    header("Fuel Analytics", subtitle="Consumption efficiency per truck and spend per station")

    with get_session() as session:
        trucks = session.query(Truck).order_by(Truck.plate_number).all()
        stations = session.query(FuelStation).order_by(FuelStation.name).all()

        with st.container(border=True):
            today = get_local_date()
            c1, c2, c3, c4 = st.columns(4)
            start = c1.date_input("From", value=today.replace(day=1), key="fa_from")
            end = c2.date_input("To", value=today, key="fa_to")
            fleet = c3.selectbox("Fleet", ["ALL", "COAL", "MINING"], key="fa_fleet")
            search = c4.text_input("Search plate", key="fa_search")

        fuel_logs = session.query(FuelLog).filter(FuelLog.date >= start, FuelLog.date <= end).all()
        coal_logs = session.query(CoalLog).filter(CoalLog.date >= start, CoalLog.date <= end).all()
        mining_logs = session.query(MiningLog).filter(MiningLog.date >= start, MiningLog.date <= end).all()
        misc = session.query(MiscFuelEntry).filter(MiscFuelEntry.date >= start, MiscFuelEntry.date <= end).all()

        stats = FuelAnalytics.truck_stats(trucks, fuel_logs, coal_logs, mining_logs, start, end, search, fleet)
        totals = FuelAnalytics.aggregate(stats)

        m1, m2, m3 = st.columns(3)
        m1.metric("Litres", f"{totals['liters']:,.1f}")
        m2.metric("Cost (INR)", f"{totals['cost']:,.0f}")
        m3.metric("Avg KM/L", f"{totals['avg_km_per_liter']:.2f}")

        if not any(s["liters"] for s in stats):
            st.info("No fuel logged for the selected filters.")
            return

        tab_trucks, tab_board, tab_stations = st.tabs(["Vehicle Efficiency", "Leaderboard", "Station Liability"])
        with tab_trucks:
            st.dataframe(_stats_frame(stats), hide_index=True, use_container_width=True)
            fueled = [s for s in stats if s["liters"] > 0]
            fig = go.Figure(go.Bar(x=[s["plate_number"] for s in fueled], y=[s["liters"] for s in fueled],
                                   name="Litres"))
            fig.update_layout(height=300, margin=dict(l=10, r=10, t=30, b=10), title="Litres per Truck")
            st.plotly_chart(fig, use_container_width=True)

        with tab_board:
            _leaderboard(stats)

        station_rows = FuelAnalytics.station_stats(fuel_logs, misc, stations, start, end)
        with tab_stations:
            st.dataframe(pd.DataFrame([
                {"Station": r["name"], "Litres": r["liters"], "Amount (INR)": r["cost"]} for r in station_rows
            ]), hide_index=True, use_container_width=True)

        st.download_button(
            "📥 XLSX",
            data=FuelAnalytics.to_excel(stats, station_rows),
            file_name=f"fuel_analytics_{start}_{end}.xlsx",
            mime="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        )
