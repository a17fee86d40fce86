"""
Diesel Ledgers page: party credit accounts and fuel station ledgers.
"""
from __future__ import annotations

import pandas as pd
import streamlit as st

from db import get_session
from models import (
    DieselParty, FuelLog, FuelStation, MiscFuelEntry, MiscUsageType, PartyDieselTransaction,
    PartyTxType, PaymentMethod, StationPayment, Truck,
)
from pages.helpers import run_action, select_id, username
from party_ledger import PartyLedger, TYPE_FILTERS
from station_ledger import ROW_TYPES, StationLedger
from timezone_utils import format_report_date, get_local_date
from ui import header


def _party_tab(session, stations, trucks) -> None:
    parties = session.query(DieselParty).order_by(DieselParty.name).all()
    if not parties:
        st.info("No diesel parties yet.")
        return

    st.dataframe(pd.DataFrame(PartyLedger.balances(session)), hide_index=True, use_container_width=True)

    party_id = select_id("Party", parties, "name", key="pl_party")
    party = next(p for p in parties if p.id == party_id)
    txs = session.query(PartyDieselTransaction).filter(PartyDieselTransaction.party_id == party_id).all()
    fuel_logs = session.query(FuelLog).filter(FuelLog.party_id == party_id).all()
    rows = PartyLedger.entries(party, txs, fuel_logs, trucks, stations)
    stats = PartyLedger.stats(rows)

    m1, m2, m3, m4 = st.columns(4)
    m1.metric("Debit (L)", f"{stats['total_debit_liters']:,.2f}")
    m2.metric("Credit (L)", f"{stats['total_credit_liters']:,.2f}")
    m3.metric("Net Litres Owed", f"{stats['net_liters_owed']:,.2f}")
    m4.metric("Net Amount Owed", f"{stats['net_amount_owed']:,.2f}")

    c1, c2, c3, c4 = st.columns(4)
    search = c1.text_input("Search", key="pl_search")
    type_filter = c2.selectbox("Type", list(TYPE_FILTERS), key="pl_type")
    start = c3.date_input("From", value=None, key="pl_from")
    end = c4.date_input("To", value=None, key="pl_to")
    shown = PartyLedger.filter_entries(rows, search, type_filter, start, end)
    st.dataframe(pd.DataFrame(shown), hide_index=True, use_container_width=True)

    with st.form("party_tx", clear_on_submit=True):
        st.markdown("#### ➕ Manual Entry")
        c1, c2, c3 = st.columns(3)
        tx_type = c1.selectbox("Type", [t.value for t in PartyTxType])
        day = c2.date_input("Date", value=get_local_date())
        internal = [s for s in stations if s.is_internal]
        tanker_id = c3.selectbox(
            "Tanker", [None] + [s.id for s in internal],
            format_func=lambda v: "(none)" if v is None else next(s.name for s in internal if s.id == v),
        )
        c1, c2, c3 = st.columns(3)
        liters = c1.number_input("Litres", min_value=0.0, step=0.5)
        price = c2.number_input("Price", min_value=0.0, step=0.01)
        amount = c3.number_input("Amount", min_value=0.0, step=1.0)
        remarks = st.text_input("Remarks")
        if st.form_submit_button("💾 Save"):
            data = {
                "tx_type": tx_type, "date": day, "tanker_id": tanker_id, "fuel_liters": liters,
                "diesel_price": price, "amount": amount, "remarks": remarks,
            }
            run_action(lambda: PartyLedger.add_transaction(session, party_id, data, username()),
                       success="Transaction saved.")

    _party_tx_tools(session, txs, stations)


def _station_tab(session, stations, trucks) -> None:
    if not stations:
        st.info("No fuel stations yet.")
        return
    station_id = select_id("Station", stations, "name", key="sl_station")
    station = next(s for s in stations if s.id == station_id)

    misc = session.query(MiscFuelEntry).all()
    payments = session.query(StationPayment).filter(StationPayment.station_id == station_id).all()
    rows = StationLedger.rows(
        station,
        session.query(FuelLog).filter(FuelLog.station_id == station_id).all(),
        misc,
        payments,
        trucks,
        stations,
    )
    c1, c2, c3, c4 = st.columns(4)
    search = c1.text_input("Search", key="sl_search")
    row_type = c2.selectbox("Type", ["ALL", *ROW_TYPES], key="sl_type")
    start = c3.date_input("From", value=None, key="sl_from")
    end = c4.date_input("To", value=None, key="sl_to")
    shown = StationLedger.filter_rows(rows, search, row_type, start, end)
    summary = StationLedger.summary(station, shown)

    m1, m2, m3 = st.columns(3)
    if summary["is_internal"]:
        m1.metric("Stock In (L)", f"{summary['total_stock_in']:,.2f}")
        m2.metric("Dispensed (L)", f"{summary['total_dispensed']:,.2f}")
        m3.metric("Balance (L)", f"{summary['balance']:,.2f}")
    else:
        m1.metric("Purchased", f"{summary['total_purchased']:,.2f}")
        m2.metric("Paid", f"{summary['total_paid']:,.2f}")
        m3.metric("Balance Due", f"{summary['balance']:,.2f}")
    st.dataframe(pd.DataFrame(shown), hide_index=True, use_container_width=True)

    c1, c2 = st.columns(2)
    if not station.is_internal:
        with c1, st.form("station_payment", clear_on_submit=True):
            st.markdown("#### 💳 Payment")
            amount = st.number_input("Amount", min_value=0.0, step=100.0)
            method = st.selectbox("Method", [m.value for m in PaymentMethod])
            ref = st.text_input("Reference No")
            day = st.date_input("Date", value=get_local_date())
            if st.form_submit_button("💾 Save Payment"):
                data = {"amount": amount, "payment_method": method, "reference_no": ref, "date": day}
                run_action(lambda: StationLedger.add_payment(session, station_id, data, username()),
                           success="Payment saved.")

    with c2, st.form("station_misc", clear_on_submit=True):
        st.markdown("#### 🧾 Misc Purchase / Transfer")
        usage = st.selectbox("Usage", [u.value for u in MiscUsageType])
        internal = [s for s in stations if s.is_internal and s.id != station_id]
        dest = st.selectbox(
            "Destination tanker", [None] + [s.id for s in internal],
            format_func=lambda v: "(none)" if v is None else next(s.name for s in internal if s.id == v),
        )
        desc = st.text_input("Vehicle / Description")
        liters = st.number_input("Litres", min_value=0.0, step=0.5)
        price = st.number_input("Price", min_value=0.0, step=0.01)
        invoice = st.text_input("Invoice No")
        day = st.date_input("Date", value=get_local_date(), key="sl_misc_date")
        if st.form_submit_button("💾 Save Entry"):
            data = {
                "usage_type": usage, "destination_station_id": dest, "vehicle_description": desc,
                "fuel_liters": liters, "diesel_price": price, "invoice_no": invoice, "date": day,
            }
            run_action(lambda: StationLedger.add_misc_entry(session, station_id, data, username()),
                       success="Entry saved.")

    _station_tools(session, station, stations, misc, payments)


def _party_tx_tools(session, txs, stations) -> None:
    manual = sorted((t for t in txs if not t.fuel_log_id), key=lambda t: t.date, reverse=True)
    with st.expander("✏️ Edit / Delete Entry", expanded=False):
        if not manual:
            st.caption("No manual entries. Fleet fills are changed from the Fuel Entry page.")
            return
        labels = {t.id: f"{format_report_date(t.date)} · {t.tx_type.value} · {(t.fuel_liters or t.amount or 0):g}"
                  for t in manual}
        tx_id = st.selectbox("Entry", list(labels), format_func=labels.get, key="pl_edit_sel")
        tx = next(t for t in manual if t.id == tx_id)
        types = [t.value for t in PartyTxType]
        internal = [s for s in stations if s.is_internal]
        current_tanker = tx.dest_tanker_id or tx.source_id

        c1, c2, c3 = st.columns(3)
        tx_type = c1.selectbox("Type", types, index=types.index(tx.tx_type.value), key=f"pl_e_type_{tx_id}")
        day = c2.date_input("Date", value=tx.date, key=f"pl_e_date_{tx_id}")
        with c3:
            tanker_id = select_id("Tanker", internal, "name", key=f"pl_e_tank_{tx_id}", allow_all=True,
                                  all_label="(none)", default=current_tanker)
        c1, c2, c3 = st.columns(3)
        liters = c1.number_input("Litres", min_value=0.0, value=float(tx.fuel_liters or 0.0), key=f"pl_e_l_{tx_id}")
        price = c2.number_input("Price", min_value=0.0, value=float(tx.diesel_price or 0.0), key=f"pl_e_p_{tx_id}")
        amount = c3.number_input("Amount", min_value=0.0, value=float(tx.amount or 0.0), key=f"pl_e_a_{tx_id}")
        remarks = st.text_input("Remarks", value=tx.remarks or "", key=f"pl_e_r_{tx_id}")

        b1, b2 = st.columns(2)
        if b1.button("💾 Update Entry", key=f"pl_e_save_{tx_id}"):
            data = {
                "tx_type": tx_type, "date": day, "tanker_id": tanker_id, "fuel_liters": liters,
                "diesel_price": price, "amount": amount, "remarks": remarks,
            }
            run_action(lambda: PartyLedger.update_transaction(session, tx_id, data, username()),
                       success="Entry updated.")
        if b2.button("🗑️ Delete Entry", key=f"pl_e_del_{tx_id}"):
            run_action(lambda: PartyLedger.delete_transaction(session, tx_id, username()),
                       success="Entry moved to recycle bin.")


def _station_tools(session, station, stations, misc, payments) -> None:
    own_misc = sorted((m for m in misc if m.station_id == station.id and not m.party_tx_id),
                      key=lambda m: m.date, reverse=True)
    with st.expander("✏️ Edit / Delete Entries", expanded=False):
        if own_misc:
            labels = {m.id: f"{format_report_date(m.date)} · {m.vehicle_description or m.usage_type.value} · "
                            f"{m.fuel_liters:g} L" for m in own_misc}
            entry_id = st.selectbox("Misc entry", list(labels), format_func=labels.get, key="sl_e_sel")
            entry = next(m for m in own_misc if m.id == entry_id)
            usages = [u.value for u in MiscUsageType]
            internal = [s for s in stations if s.is_internal and s.id != station.id]

            c1, c2, c3 = st.columns(3)
            usage = c1.selectbox("Usage", usages, index=usages.index(entry.usage_type.value), key=f"sl_e_u_{entry_id}")
            day = c2.date_input("Date", value=entry.date, key=f"sl_e_d_{entry_id}")
            with c3:
                dest = select_id("Destination tanker", internal, "name", key=f"sl_e_dest_{entry_id}",
                                 allow_all=True, all_label="(none)", default=entry.destination_station_id)
            c1, c2, c3 = st.columns(3)
            desc = c1.text_input("Vehicle / Description", value=entry.vehicle_description or "",
                                 key=f"sl_e_desc_{entry_id}")
            liters = c2.number_input("Litres", min_value=0.0, value=float(entry.fuel_liters or 0.0),
                                     key=f"sl_e_l_{entry_id}")
            price = c3.number_input("Price", min_value=0.0, value=float(entry.diesel_price or 0.0),
                                    key=f"sl_e_p_{entry_id}")
            b1, b2 = st.columns(2)
            if b1.button("💾 Update Entry", key=f"sl_e_save_{entry_id}"):
                data = {
                    "usage_type": usage, "destination_station_id": dest, "vehicle_description": desc,
                    "fuel_liters": liters, "diesel_price": price, "invoice_no": entry.invoice_no, "date": day,
                }
                run_action(lambda: StationLedger.update_misc_entry(session, entry_id, data, username()),
                           success="Entry updated.")
            if b2.button("🗑️ Delete Entry", key=f"sl_e_del_{entry_id}"):
                run_action(lambda: StationLedger.delete_misc_entry(session, entry_id, username()),
                           success="Entry moved to recycle bin.")
        else:
            st.caption("No manual entries on this station.")

        if payments:
            labels = {p.id: f"{format_report_date(p.date)} · {p.amount:,.2f} · {p.payment_method.value}"
                      for p in payments}
            payment_id = st.selectbox("Payment", list(labels), format_func=labels.get, key="sl_pay_sel")
            reason = st.text_input("Reason", key="sl_pay_reason")
            if st.button("🗑️ Delete Payment", key="sl_pay_del"):
                run_action(lambda: StationLedger.delete_payment(session, payment_id, username(), reason or None),
                           success="Payment moved to recycle bin.")

def render() -> None:
    header("Diesel Ledgers")
    with get_session() as session:
        stations = session.query(FuelStation).order_by(FuelStation.name).all()
        trucks = session.query(Truck).all()
        tab_party, tab_station = st.tabs(["Diesel Parties", "Fuel Stations"])
        with tab_party:
            _party_tab(session, stations, trucks)
        with tab_station:
            _station_tab(session, stations, trucks)
