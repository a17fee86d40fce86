# party_ledger.py
"""
Diesel party credit accounts.

  Debit  (+) BORROW, DIESEL_RECEIVED   diesel came in from the party
  Credit (-) SETTLE_LITERS, SETTLE_CASH we settled in litres or in cash

A cash settlement counts toward litres as its stated litres, otherwise
amount / price (0 when no price is known).
"""

from __future__ import annotations
from datetime import date
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy.orm import Session

from coal_batch_aggregator import _by_id, _norm_text, _num, _to_date
from fleet_config import FleetConfig
from fuel_manager import FuelEntryError
from logger import log_error, log_info
from models import DieselParty, FuelLog, MiscFuelEntry, MiscUsageType, PartyDieselTransaction, PartyTxType
from recycle_bin import RecycleBinManager
from security import SecurityManager

DEBIT_TYPES = ("BORROW", "DIESEL_RECEIVED")
CREDIT_TYPES = ("SETTLE_LITERS", "SETTLE_CASH")

# filter name -> transaction types
TYPE_FILTERS = {
    "ALL": None,
    "BORROW": ("BORROW",),
    "SETTLE": CREDIT_TYPES,
    "RECV": ("DIESEL_RECEIVED",),
}


def _tx_type(tx) -> str:
    t = getattr(tx, "tx_type", None)
    return str(getattr(t, "value", t) or "")


def _is_supplier(party) -> bool:
    return str(getattr(party, "party_type", "SUPPLIER") or "SUPPLIER").upper() == "SUPPLIER"


class PartyLedger:

    @staticmethod
    def _describe(tx, party, fuel_log, trucks: Dict, stations: Dict) -> str:
        kind = _tx_type(tx)
        supplier = _is_supplier(party)
        if kind == "BORROW":
            if fuel_log is not None:
                plate = getattr(trucks.get(fuel_log.truck_id), "plate_number", None) or FleetConfig.UNKNOWN_TRUCK
                return f"Fleet Fueling: {plate}"
            return "Manual Borrow (Personal/Office)" if supplier else "Stock Received from Customer"
        if kind == "SETTLE_LITERS":
            tanker = getattr(stations.get(tx.source_id), "name", None) or "Tanker"
            return f"Repaid in Liters (from {tanker})" if supplier else f"Settled Liters (from {tanker})"
        if kind == "SETTLE_CASH":
            return "Cash Payment Made" if supplier else "Cash Settlement (Received)"
        if kind == "DIESEL_RECEIVED":
            tanker = getattr(stations.get(tx.dest_tanker_id), "name", None) or "Tanker"
            return f"Diesel Received (into {tanker})"
        return kind

    @staticmethod
    def entries(
        party,
        transactions: Iterable,
        fuel_logs: Optional[Iterable] = None,
        trucks: Optional[Iterable] = None,
        stations: Optional[Iterable] = None,
    ) -> List[Dict[str, Any]]:
        """Ledger rows for one party, newest first. BORROW rows linked to a
        fuel log fall back to the log's litres and price."""
        log_map = _by_id(fuel_logs)
        truck_map = _by_id(trucks)
        station_map = _by_id(stations)

        rows = []
        for tx in transactions:
            if tx.party_id != party.id:
                continue
            liters, price, amount = tx.fuel_liters, tx.diesel_price, tx.amount
            fuel_log = log_map.get(tx.fuel_log_id) if tx.fuel_log_id else None
            if _tx_type(tx) == "BORROW" and fuel_log is not None:
                price = price or fuel_log.diesel_price
                liters = liters or fuel_log.fuel_liters
                amount = amount or _num(fuel_log.fuel_liters) * _num(fuel_log.diesel_price)
            rows.append({
                "id": tx.id,
                "date": _to_date(tx.date),
                "type": _tx_type(tx),
                "description": PartyLedger._describe(tx, party, fuel_log, truck_map, station_map),
                "fuel_liters": _num(liters),
                "diesel_price": _num(price),
                "amount": _num(amount),
                "remarks": tx.remarks or "",
                "invoice_no": tx.invoice_no or "",
            })
        return sorted(rows, key=lambda r: r["date"] or date.min, reverse=True)

    @staticmethod
    def filter_entries(rows: Iterable[Dict[str, Any]], search: Optional[str] = None, type_filter: str = "ALL",
                       start_date=None, end_date=None) -> List[Dict[str, Any]]:
        if type_filter not in TYPE_FILTERS:
            raise ValueError(f"Unknown ledger filter '{type_filter}'")
        types = TYPE_FILTERS[type_filter]
        needle = _norm_text(search)
        start, end = _to_date(start_date), _to_date(end_date)

        out = []
        for r in rows:
            if needle and needle not in _norm_text(r["description"]) and needle not in _norm_text(r["remarks"]):
                continue
            if types and r["type"] not in types:
                continue
            if start and r["date"] < start:
                continue
            if end and r["date"] > end:
                continue
            out.append(r)
        return out

    @staticmethod
    def stats(rows: Iterable[Dict[str, Any]]) -> Dict[str, float]:
        """Totals over the UNFILTERED ledger of one party."""
        def total(kind: str, field: str) -> float:
            return sum(r[field] for r in rows if r["type"] == kind)

        rows = list(rows)
        cash_equiv_liters = 0.0
        for r in rows:
            if r["type"] != "SETTLE_CASH":
                continue
            if r["fuel_liters"]:
                cash_equiv_liters += r["fuel_liters"]
            elif r["diesel_price"] > 0:
                cash_equiv_liters += r["amount"] / r["diesel_price"]

        debit_liters = total("BORROW", "fuel_liters") + total("DIESEL_RECEIVED", "fuel_liters")
        debit_amount = total("BORROW", "amount") + total("DIESEL_RECEIVED", "amount")
        credit_liters = total("SETTLE_LITERS", "fuel_liters") + cash_equiv_liters
        credit_amount = total("SETTLE_LITERS", "amount") + total("SETTLE_CASH", "amount")

        return {
            "total_debit_liters": debit_liters,
            "total_debit_amount": debit_amount,
            "total_credit_liters": credit_liters,
            "total_credit_amount": credit_amount,
            # supplier view
            "total_borrowed_liters": total("BORROW", "fuel_liters"),
            "total_borrowed_amount": total("BORROW", "amount"),
            "total_returned_liters": total("SETTLE_LITERS", "fuel_liters"),
            "total_returned_amount": total("SETTLE_LITERS", "amount"),
            "total_cash_paid": total("SETTLE_CASH", "amount"),
            "net_liters_owed": debit_liters - credit_liters,
            "net_amount_owed": debit_amount - credit_amount,
            # customer view
            "total_received_liters": debit_liters,
            "total_received_amount": debit_amount,
        }

    @staticmethod
    def _parse(data: Dict[str, Any]) -> Dict[str, Any]:
        """Validated values of a manual transaction form."""
        try:
            kind = PartyTxType(str(data.get("tx_type") or "").upper())
        except ValueError:
            raise FuelEntryError(f"Unknown transaction type '{data.get('tx_type')}'.")
        day = _to_date(data.get("date"))
        if day is None:
            raise FuelEntryError("Select a valid date.")

        liters = _num(data.get("fuel_liters"))
        price = _num(data.get("diesel_price"))
        amount = _num(data.get("amount"))
        if kind == PartyTxType.SETTLE_CASH:
            if amount <= 0:
                raise FuelEntryError("Enter the settlement amount.")
        elif liters <= 0:
            raise FuelEntryError("Enter the litres.")
        if not amount:
            amount = round(liters * price, 2)
        return {
            "kind": kind, "day": day, "liters": liters, "price": price, "amount": amount,
            "tanker_id": data.get("tanker_id") or None,
            "invoice_no": data.get("invoice_no"), "remarks": data.get("remarks"),
        }

    @staticmethod
    def _apply(tx: PartyDieselTransaction, v: Dict[str, Any]) -> None:
        tx.date = v["day"]
        tx.tx_type = v["kind"]
        tx.fuel_liters = v["liters"] or None
        tx.diesel_price = v["price"] or None
        tx.amount = v["amount"]
        tx.source_id = v["tanker_id"] if v["kind"] == PartyTxType.SETTLE_LITERS else None
        tx.dest_tanker_id = v["tanker_id"] if v["kind"] == PartyTxType.DIESEL_RECEIVED else None
        tx.invoice_no = v["invoice_no"]
        tx.remarks = v["remarks"]

    @staticmethod
    def _side_entry(session: Session, tx: PartyDieselTransaction) -> Optional[MiscFuelEntry]:
        return session.query(MiscFuelEntry).filter(MiscFuelEntry.party_tx_id == tx.id).first()

    @staticmethod
    def _sync_side_entry(session: Session, tx: PartyDieselTransaction, party, username: str) -> None:
        """
        Litre settlements out of an internal tanker and diesel received into
        one post a matching station entry; keep it in step with the transaction.
        """
        kind = PartyTxType(_tx_type(tx))
        tanker_id = tx.dest_tanker_id if kind == PartyTxType.DIESEL_RECEIVED else tx.source_id
        entry = PartyLedger._side_entry(session, tx)
        if not tanker_id or kind not in (PartyTxType.SETTLE_LITERS, PartyTxType.DIESEL_RECEIVED):
            if entry is not None:
                RecycleBinManager.archive_record(session, entry, "MiscFuelEntry", username,
                                                 reason="Party transaction no longer through a tanker")
            return
        if entry is None:
            entry = MiscFuelEntry(party_tx_id=tx.id)
            session.add(entry)
        receiving = kind == PartyTxType.DIESEL_RECEIVED
        entry.station_id = tanker_id
        entry.destination_station_id = tanker_id if receiving else None
        entry.date = tx.date
        entry.vehicle_description = "Customer Inward" if receiving else "Supplier Repayment"
        entry.usage_type = MiscUsageType.BULK_TRANSFER if receiving else MiscUsageType.OTHER
        entry.fuel_liters = _num(tx.fuel_liters)
        entry.diesel_price = _num(tx.diesel_price)
        entry.amount = _num(tx.amount)
        entry.invoice_no = tx.invoice_no
        entry.remarks = f"{kind.value} - {party.name}"

    @staticmethod
    def _editable(session: Session, tx_id: str) -> PartyDieselTransaction:
        tx = session.get(PartyDieselTransaction, tx_id)
        if tx is None:
            raise FuelEntryError(f"Party transaction {tx_id} not found.")
        if tx.fuel_log_id:
            raise FuelEntryError("This entry comes from a fuel log; edit the fuel log instead.")
        return tx

    @staticmethod
    def add_transaction(session: Session, party_id: str, data: Dict[str, Any], username: str) -> PartyDieselTransaction:
        """Record a manual party transaction (with its tanker side entry, if any)."""
        party = session.get(DieselParty, party_id)
        if party is None:
            raise FuelEntryError("Diesel party not found.")
        v = PartyLedger._parse(data)

        try:
            tx = PartyDieselTransaction(party_id=party_id)
            PartyLedger._apply(tx, v)
            session.add(tx)
            session.flush()
            PartyLedger._sync_side_entry(session, tx, party, username)
            session.flush()
            SecurityManager.log_audit(
                session, username, "CREATE", resource_type="PartyDieselTransaction", resource_id=tx.id,
                details=f"{party.name}: {v['kind'].value} {v['liters'] or v['amount']}",
            )
            session.commit()
        except Exception as e:
            session.rollback()
            log_error(f"Party transaction failed for {party_id}: {e}", exc_info=True)
            raise

        log_info(f"Party transaction {v['kind'].value} saved for {party.name} by {username}")
        return tx

    @staticmethod
    def update_transaction(session: Session, tx_id: str, data: Dict[str, Any], username: str) -> PartyDieselTransaction:
        tx = PartyLedger._editable(session, tx_id)
        party = session.get(DieselParty, tx.party_id)
        v = PartyLedger._parse(data)

        try:
            PartyLedger._apply(tx, v)
            session.flush()
            PartyLedger._sync_side_entry(session, tx, party, username)
            SecurityManager.log_audit(
                session, username, "UPDATE", resource_type="PartyDieselTransaction", resource_id=tx.id,
                details=f"{party.name}: {v['kind'].value} {v['liters'] or v['amount']}",
            )
            session.commit()
        except Exception as e:
            session.rollback()
            log_error(f"Party transaction update failed for {tx_id}: {e}", exc_info=True)
            raise
        log_info(f"Party transaction {tx_id} updated by {username}")
        return tx

    @staticmethod
    def delete_transaction(session: Session, tx_id: str, username: str, reason: Optional[str] = None) -> None:
        """Archive a manual transaction and its tanker side entry."""
        tx = PartyLedger._editable(session, tx_id)
        try:
            entry = PartyLedger._side_entry(session, tx)
            if entry is not None:
                RecycleBinManager.archive_record(session, entry, "MiscFuelEntry", username, reason=reason)
            RecycleBinManager.archive_record(
                session, tx, "PartyDieselTransaction", username, reason=reason,
                label=f"{tx.date} {_tx_type(tx)} {_num(tx.fuel_liters or tx.amount):g}",
            )
            SecurityManager.log_audit(
                session, username, "DELETE", resource_type="PartyDieselTransaction", resource_id=tx_id,
                details=reason or "Party transaction deleted",
            )
            session.commit()
        except Exception as e:
            session.rollback()
            log_error(f"Party transaction delete failed for {tx_id}: {e}", exc_info=True)
            raise
        log_info(f"Party transaction {tx_id} deleted by {username}")

    @staticmethod
    def balances(session: Session) -> List[Dict[str, Any]]:
        """Net litres / amount owed per party, for the ledger overview."""
        parties = session.query(DieselParty).order_by(DieselParty.name).all()
        txs = session.query(PartyDieselTransaction).all()
        logs = session.query(FuelLog).filter(FuelLog.party_id.isnot(None)).all()
        out = []
        for p in parties:
            s = PartyLedger.stats(PartyLedger.entries(p, txs, logs))
            out.append({
                "party_id": p.id,
                "name": p.name,
                "party_type": p.party_type,
                "net_liters_owed": round(s["net_liters_owed"], 3),
                "net_amount_owed": round(s["net_amount_owed"], 2),
            })
        return out
