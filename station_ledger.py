# station_ledger.py
"""
Fuel station ledgers.

Rows (newest first):
  PURCHASE  fleet fuel logs at the station, and misc purchases against it
  STOCK_IN  bulk transfers received (internal tankers only)
  PAYMENT   money paid to the station

Summary:
  internal tanker   balance = stock in - dispensed (litres)
  external station  balance = purchased - paid (amount)
"""

from __future__ import annotations
from datetime import date
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy.orm import Session

from coal_batch_aggregator import _by_id, _norm_text, _num, _to_date
from fleet_config import FleetConfig
from fuel_manager import FuelEntryError
from logger import log_error, log_info
from models import FuelStation, MiscFuelEntry, MiscUsageType, PaymentMethod, StationPayment
from recycle_bin import RecycleBinManager
from security import SecurityManager

ROW_TYPES = ("PURCHASE", "STOCK_IN", "PAYMENT")


def _row(id_, day, kind, description, quantity, rate, amount) -> Dict[str, Any]:
    return {
        "id": id_,
        "date": _to_date(day),
        "type": kind,
        "description": description or "",
        "quantity": _num(quantity),
        "rate": _num(rate),
        "amount": _num(amount),
    }


class StationLedger:

    @staticmethod
    def rows(
        station,
        fuel_logs: Iterable,
        misc_entries: Iterable,
        payments: Iterable,
        trucks: Optional[Iterable] = None,
        stations: Optional[Iterable] = None,
    ) -> List[Dict[str, Any]]:
        truck_map = _by_id(trucks)
        station_map = _by_id(stations)
        misc_entries = list(misc_entries)
        out: List[Dict[str, Any]] = []

        for l in fuel_logs:
            if l.station_id != station.id:
                continue
            plate = getattr(truck_map.get(l.truck_id), "plate_number", None) or "Unknown Truck"
            out.append(_row(l.id, l.date, "PURCHASE", plate, l.fuel_liters, l.diesel_price,
                            _num(l.fuel_liters) * _num(l.diesel_price)))

        for m in misc_entries:
            # a transfer booked into this tanker is inward stock, not a sale
            if m.station_id != station.id or m.destination_station_id == station.id:
                continue
            if m.usage_type == MiscUsageType.BULK_TRANSFER:
                dest = getattr(station_map.get(m.destination_station_id), "name", None) or "Tanker"
                desc = f"Bulk Transfer to {dest}"
            else:
                desc = m.vehicle_description
            out.append(_row(m.id, m.date, "PURCHASE", desc, m.fuel_liters, m.diesel_price, m.amount))

        if station.is_internal:
            for m in misc_entries:
                if m.destination_station_id != station.id:
                    continue
                source = getattr(station_map.get(m.station_id), "name", None) or FleetConfig.UNKNOWN_TRUCK
                desc = f"Source: {source} | Inv: {m.invoice_no or FleetConfig.NOT_AVAILABLE}"
                out.append(_row(f"{m.id}_recv", m.date, "STOCK_IN", desc, m.fuel_liters, m.diesel_price, m.amount))

        for p in payments:
            if p.station_id != station.id:
                continue
            method = getattr(p.payment_method, "value", p.payment_method)
            desc = f"{method} ({p.reference_no})" if p.reference_no else f"{method}"
            out.append(_row(p.id, p.date, "PAYMENT", desc, 0, 0, p.amount))

        return sorted(out, key=lambda r: r["date"] or date.min, reverse=True)

    @staticmethod
    def filter_rows(rows: Iterable[Dict[str, Any]], search: Optional[str] = None, row_type: str = "ALL",
                    start_date=None, end_date=None) -> List[Dict[str, Any]]:
        if row_type != "ALL" and row_type not in ROW_TYPES:
            raise ValueError(f"Unknown ledger row type '{row_type}'")
        needle = _norm_text(search)
        start, end = _to_date(start_date), _to_date(end_date)
        return [
            r for r in rows
            if (not needle or needle in _norm_text(r["description"]))
            and (row_type == "ALL" or r["type"] == row_type)
            and (not start or r["date"] >= start)
            and (not end or r["date"] <= end)
        ]

    @staticmethod
    def summary(station, rows: Iterable[Dict[str, Any]]) -> Dict[str, Any]:
        rows = list(rows)
        purchases = [r for r in rows if r["type"] == "PURCHASE"]
        if station.is_internal:
            stock_in = sum(r["quantity"] for r in rows if r["type"] == "STOCK_IN")
            dispensed = sum(r["quantity"] for r in purchases)
            return {
                "is_internal": True,
                "total_stock_in": stock_in,
                "total_dispensed": dispensed,
                "balance": stock_in - dispensed,
                "total_liters": 0.0,
                "total_purchased": 0.0,
                "total_paid": 0.0,
            }
        purchased = sum(r["amount"] for r in purchases)
        paid = sum(r["amount"] for r in rows if r["type"] == "PAYMENT")
        return {
            "is_internal": False,
            "total_purchased": purchased,
            "total_paid": paid,
            "total_liters": sum(r["quantity"] for r in purchases),
            "balance": purchased - paid,
            "total_stock_in": 0.0,
            "total_dispensed": 0.0,
        }

    @staticmethod
    def add_payment(session: Session, station_id: str, data: Dict[str, Any], username: str) -> StationPayment:
        station = session.get(FuelStation, station_id)
        if station is None:
            raise FuelEntryError("Fuel station not found.")
        if station.is_internal:
            raise FuelEntryError("Payments are not recorded against an internal tanker.")
        amount = _num(data.get("amount"))
        if amount <= 0:
            raise FuelEntryError("Payment amount must be greater than zero.")
        day = _to_date(data.get("date"))
        if day is None:
            raise FuelEntryError("Select a valid date.")
        try:
            method = PaymentMethod(data.get("payment_method") or PaymentMethod.ONLINE_TRANSFER.value)
        except ValueError:
            raise FuelEntryError(f"Unknown payment method '{data.get('payment_method')}'.")

        try:
            payment = StationPayment(
                station_id=station_id,
                date=day,
                amount=amount,
                payment_method=method,
                reference_no=data.get("reference_no") or None,
                remarks=data.get("remarks"),
            )
            session.add(payment)
            session.flush()
            SecurityManager.log_audit(
                session, username, "CREATE", resource_type="StationPayment", resource_id=payment.id,
                details=f"{station.name}: {amount:.2f} via {method.value}",
            )
            session.commit()
        except Exception as e:
            session.rollback()
            log_error(f"Station payment failed for {station_id}: {e}", exc_info=True)
            raise
        log_info(f"Payment of {amount:.2f} recorded for {station.name} by {username}")
        return payment

    @staticmethod
    def _parse_misc(session: Session, data: Dict[str, Any]) -> Dict[str, Any]:
        try:
            usage = MiscUsageType(str(data.get("usage_type") or "OTHER").upper())
        except ValueError:
            raise FuelEntryError(f"Unknown usage type '{data.get('usage_type')}'.")
        liters = _num(data.get("fuel_liters"))
        if liters <= 0:
            raise FuelEntryError("Fuel litres must be greater than zero.")
        dest_id = data.get("destination_station_id") or None
        if usage == MiscUsageType.BULK_TRANSFER:
            dest = session.get(FuelStation, dest_id) if dest_id else None
            if dest is None or not dest.is_internal:
                raise FuelEntryError("Bulk transfers need an internal tanker as destination.")
        day = _to_date(data.get("date"))
        if day is None:
            raise FuelEntryError("Select a valid date.")
        price = _num(data.get("diesel_price"))
        return {
            "destination_station_id": dest_id if usage == MiscUsageType.BULK_TRANSFER else None,
            "date": day,
            "vehicle_description": data.get("vehicle_description"),
            "usage_type": usage,
            "fuel_liters": liters,
            "diesel_price": price,
            "amount": _num(data.get("amount")) or round(liters * price, 2),
            "invoice_no": data.get("invoice_no"),
            "receiver_name": data.get("receiver_name"),
            "remarks": data.get("remarks"),
        }

    @staticmethod
    def _manual_entry(session: Session, entry_id: str) -> MiscFuelEntry:
        entry = session.get(MiscFuelEntry, entry_id)
        if entry is None:
            raise FuelEntryError(f"Misc fuel entry {entry_id} not found.")
        if entry.party_tx_id:
            raise FuelEntryError("This entry belongs to a party transaction; change it in the party ledger.")
        return entry

    @staticmethod
    def add_misc_entry(session: Session, station_id: str, data: Dict[str, Any], username: str) -> MiscFuelEntry:
        """Purchase not tied to a fleet truck; BULK_TRANSFER moves stock into an internal tanker."""
        station = session.get(FuelStation, station_id)
        if station is None:
            raise FuelEntryError("Fuel station not found.")
        values = StationLedger._parse_misc(session, data)

        try:
            entry = MiscFuelEntry(station_id=station_id, **values)
            session.add(entry)
            session.flush()
            SecurityManager.log_audit(
                session, username, "CREATE", resource_type="MiscFuelEntry", resource_id=entry.id,
                details=f"{station.name}: {values['usage_type'].value} {values['fuel_liters']} L",
            )
            session.commit()
        except Exception as e:
            session.rollback()
            log_error(f"Misc fuel entry failed for {station_id}: {e}", exc_info=True)
            raise
        return entry

    @staticmethod
    def update_misc_entry(session: Session, entry_id: str, data: Dict[str, Any], username: str) -> MiscFuelEntry:
        entry = StationLedger._manual_entry(session, entry_id)
        values = StationLedger._parse_misc(session, data)
        try:
            for field, value in values.items():
                setattr(entry, field, value)
            SecurityManager.log_audit(
                session, username, "UPDATE", resource_type="MiscFuelEntry", resource_id=entry.id,
                details=f"{values['usage_type'].value} {values['fuel_liters']} L",
            )
            session.commit()
        except Exception as e:
            session.rollback()
            log_error(f"Misc fuel entry update failed for {entry_id}: {e}", exc_info=True)
            raise
        log_info(f"Misc fuel entry {entry_id} updated by {username}")
        return entry

    @staticmethod
    def delete_misc_entry(session: Session, entry_id: str, username: str, reason: Optional[str] = None) -> None:
        entry = StationLedger._manual_entry(session, entry_id)
        try:
            RecycleBinManager.archive_record(
                session, entry, "MiscFuelEntry", username, reason=reason,
                label=f"{entry.date} {entry.vehicle_description or entry.usage_type.value} {_num(entry.fuel_liters):g} L",
            )
            SecurityManager.log_audit(
                session, username, "DELETE", resource_type="MiscFuelEntry", resource_id=entry_id,
                details=reason or "Misc fuel entry deleted",
            )
            session.commit()
        except Exception as e:
            session.rollback()
            log_error(f"Misc fuel entry delete failed for {entry_id}: {e}", exc_info=True)
            raise
        log_info(f"Misc fuel entry {entry_id} deleted by {username}")

    @staticmethod
    def delete_payment(session: Session, payment_id: str, username: str, reason: Optional[str] = None) -> None:
        payment = session.get(StationPayment, payment_id)
        if payment is None:
            raise FuelEntryError(f"Station payment {payment_id} not found.")
        try:
            RecycleBinManager.archive_record(
                session, payment, "StationPayment", username, reason=reason,
                label=f"{payment.date} {_num(payment.amount):.2f}",
            )
            SecurityManager.log_audit(
                session, username, "DELETE", resource_type="StationPayment", resource_id=payment_id,
                details=reason or "Station payment deleted",
            )
            session.commit()
        except Exception as e:
            session.rollback()
            log_error(f"Station payment delete failed for {payment_id}: {e}", exc_info=True)
            raise
        log_info(f"Station payment {payment_id} deleted by {username}")
