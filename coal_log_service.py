# coal_log_service.py
"""
Mutation paths for trip records.

Every path that changes a batch (entry form, inline edit, bulk add,
adjustment save, batch edit, include-adjustment toggle, delete) ends by
re-applying BatchFinancials to the WHOLE batch, so only the first record
carries staff welfare / roll amount.
"""

from __future__ import annotations
from datetime import date, timedelta
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy.orm import Session

from batch_financials import BatchFinancials
from coal_batch_aggregator import CoalBatchAggregator, _num, _to_date, batch_key
from db import transaction as _transaction
from fleet_config import FleetConfig
from logger import log_debug, log_info
from models import CoalLog, DieselAdjType, FuelLog, RecycleBinEntry
from recycle_bin import RecycleBinManager
from security import SecurityManager


class CoalEntryError(ValueError):
    """Entry rejected before saving (missing pass number, gross < tare, ...)."""


ADJUSTMENT_KINDS = ("trip", "stock", "air")


class BatchLogService:
    """Batch mutation logic shared by coal and mining records."""

    model = None
    resource_type = "TripRecord"

    # ------------- queries -------------
    @classmethod
    def ordered_query(cls, session: Session):
        """Canonical record order. The first record of a batch in this order owns the payables."""
        return session.query(cls.model).order_by(cls.model.date, cls.model.created_at, cls.model.id)

    @classmethod
    def batch_records(cls, session: Session, day, truck_id: str, **scope) -> List:
        return (
            cls.ordered_query(session)
            .filter(cls.model.truck_id == truck_id, cls.model.date == _to_date(day))
            .all()
        )

    @classmethod
    def _batch_state(cls, records: List) -> Dict[str, Any]:
        """Aggregated view of one batch: adjustments, remarks, sites, include flag."""
        batches = CoalBatchAggregator.build_batches(records)
        return batches[0] if batches else {}

    @classmethod
    def _scope_of(cls, rec) -> Dict[str, Any]:
        return {}

    # ------------- invariant -------------
    @classmethod
    def _resync(cls, session: Session, day, truck_id: str, include: Optional[bool] = None,
                **scope) -> Dict[str, float]:
        """Flush pending changes, reload the batch in canonical order and rewrite its payables."""
        session.flush()
        records = cls.batch_records(session, day, truck_id, **scope)
        if not records:
            return BatchFinancials.calculate(0)
        state = cls._batch_state(records)
        if include is None:
            include = state.get("include_adjustment_in_roll", False)
        log_debug(f"Resync {batch_key(day, truck_id)}: {len(records)} record(s), include={include}")
        return BatchFinancials.apply_to_records(records, state.get("trip_adjustment", 0), include)

    @classmethod
    def _audit(cls, session: Session, action: str, username: str, resource_id: str, details: str) -> None:
        SecurityManager.log_audit(
            session, username, action,
            resource_type=cls.resource_type, resource_id=resource_id, details=details,
        )

    @classmethod
    def _require_records(cls, session: Session, day, truck_id: str, **scope) -> List:
        records = cls.batch_records(session, day, truck_id, **scope)
        if not records:
            raise CoalEntryError(f"No records found for batch {batch_key(day, truck_id)}.")
        return records

    # ------------- shared mutation paths -------------
    @classmethod
    def resync_batch(cls, session: Session, day, truck_id: str, username: str = "system",
                     include: Optional[bool] = None, **scope) -> Dict[str, float]:
        """Re-apply payables to a batch (the batch 'close' action)."""
        key = batch_key(day, truck_id)
        with _transaction(session, f"Resync {key}"):
            result = cls._resync(session, day, truck_id, include, **scope)
            cls._audit(session, "UPDATE", username, key, "Batch payables resynced")
        return result

    @classmethod
    def set_include_adjustment(cls, session: Session, day, truck_id: str, include: bool,
                               username: str, **scope) -> Dict[str, float]:
        key = batch_key(day, truck_id)
        with _transaction(session, f"Include-adjustment toggle {key}"):
            cls._require_records(session, day, truck_id, **scope)
            result = cls._resync(session, day, truck_id, bool(include), **scope)
            cls._audit(
                session, "UPDATE", username, key,
                f"Trip adjustment {'included in' if include else 'excluded from'} roll",
            )
        return result

    @classmethod
    def save_adjustment(cls, session: Session, day, truck_id: str, kind: str, value,
                        remarks: str, username: str, **scope) -> List:
        """
        kind = trip  -> adjustment (integer trip-count correction)
               stock -> diesel_adjustment typed STOCK, carried to the next day
               air   -> air_adjustment
        Value and remarks are written to every record of the batch.
        """
        if kind not in ADJUSTMENT_KINDS:
            raise CoalEntryError(f"Unknown adjustment kind '{kind}'.")
        if not (remarks or "").strip():
            raise CoalEntryError("Remarks are mandatory for adjustments.")
        remarks = remarks.strip()
        key = batch_key(day, truck_id)

        with _transaction(session, f"Save {kind} adjustment {key}"):
            records = cls._require_records(session, day, truck_id, **scope)
            include = cls._batch_state(records).get("include_adjustment_in_roll", False)
            for rec in records:
                if kind == "trip":
                    rec.adjustment = int(round(_num(value)))
                    rec.trip_remarks = remarks
                elif kind == "stock":
                    rec.diesel_adjustment = _num(value)
                    rec.diesel_adj_type = DieselAdjType.STOCK
                    rec.diesel_remarks = remarks
                else:
                    rec.air_adjustment = _num(value)
                    rec.air_remarks = remarks
            cls._resync(session, day, truck_id, include, **scope)
            cls._audit(session, "UPDATE", username, key, f"{kind} adjustment {value}: {remarks}")

        log_info(f"{kind} adjustment saved on {key} by {username}")
        return records

    @classmethod
    def delete_log(cls, session: Session, log_id: str, username: str, reason: Optional[str] = None) -> None:
        """Archive the record to the recycle bin, delete it and resync the rest of its batch."""
        with _transaction(session, f"Delete {cls.resource_type} {log_id}"):
            rec = session.get(cls.model, log_id)
            if rec is None:
                raise CoalEntryError(f"Record {log_id} not found.")
            day, truck_id, scope = rec.date, rec.truck_id, cls._scope_of(rec)
            RecycleBinManager.archive_record(session, rec, cls.resource_type, username, reason=reason)
            cls._resync(session, day, truck_id, **scope)
            cls._audit(session, "DELETE", username, log_id,
                       reason or f"Deleted from batch {batch_key(day, truck_id)}")
        log_info(f"{cls.resource_type} {log_id} deleted by {username}")

    @classmethod
    def restore_log(cls, session: Session, entry_id: int, username: str):
        """Bring an archived record back into its batch and resync the batch."""
        with _transaction(session, f"Restore {cls.resource_type} from bin #{entry_id}"):
            entry = session.get(RecycleBinEntry, entry_id)
            if entry is None or entry.resource_type != cls.resource_type:
                raise CoalEntryError(f"Recycle bin entry {entry_id} not found.")
            try:
                rec = RecycleBinManager.restore_record(session, entry, cls.model)
            except ValueError as e:
                raise CoalEntryError(str(e))
            cls._resync(session, rec.date, rec.truck_id, **cls._scope_of(rec))
            cls._audit(session, "RESTORE", username, rec.id, f"Restored into batch {batch_key(rec.date, rec.truck_id)}")
        log_info(f"{cls.resource_type} {rec.id} restored by {username}")
        return rec


class CoalLogService(BatchLogService):
    """Coal transport trip records"""

    model = CoalLog
    resource_type = "CoalLog"

    EDITABLE_FIELDS = (
        "pass_no", "gross_weight", "tare_weight", "diesel_liters", "diesel_rate",
        "origin_site", "destination_site", "driver_id",
    )
    NUMERIC_FIELDS = ("gross_weight", "tare_weight", "diesel_liters", "diesel_rate")

    @staticmethod
    def attributed_fuel(session: Session, day, truck_id: str) -> Dict[str, Any]:
        """Fuel logged against (truck, production date): total litres, rate and driver of the first log."""
        logs = (
            session.query(FuelLog)
            .filter(FuelLog.truck_id == truck_id, FuelLog.attribution_date == _to_date(day))
            .order_by(FuelLog.created_at, FuelLog.id)
            .all()
        )
        first = logs[0] if logs else None
        return {
            "liters": round(sum(_num(f.fuel_liters) for f in logs), 3),
            "date": first.date if first else None,
            "rate": first.diesel_price if first and first.diesel_price else FleetConfig.DEFAULT_DIESEL_RATE,
            "driver_id": first.driver_id if first else None,
        }

    @staticmethod
    def validate_trips(truck_id: Optional[str], trips: List[Dict[str, Any]]) -> None:
        if not truck_id:
            raise CoalEntryError("Select a truck.")
        if not trips:
            raise CoalEntryError("Add at least one trip.")
        for idx, t in enumerate(trips, start=1):
            if not str(t.get("pass_no") or "").strip():
                raise CoalEntryError(f"Trip {idx}: Pass No is required.")
            try:
                gross = float(t.get("gross_weight"))
                tare = float(t.get("tare_weight"))
            except (TypeError, ValueError):
                raise CoalEntryError(f"Trip {idx}: gross and tare weights must be numbers.")
            if gross < tare:
                raise CoalEntryError(f"Trip {idx}: Gross Weight must be >= Tare Weight.")

    @classmethod
    def add_entry(
        cls,
        session: Session,
        day,
        truck_id: str,
        trips: List[Dict[str, Any]],
        agent_id: str,
        origin_site: Optional[str] = None,
        destination_site: Optional[str] = None,
    ) -> List[CoalLog]:
        """
        Entry form submit: one record per trip. Attributed diesel is split
        evenly over the submitted trips; driver and rate sync from the fuel log.
        """
        cls.validate_trips(truck_id, trips)
        day = _to_date(day)
        if day is None:
            raise CoalEntryError("Select a valid date.")
        key = batch_key(day, truck_id)

        with _transaction(session, f"Coal entry {key}"):
            existing = cls.batch_records(session, day, truck_id)
            include = cls._batch_state(existing).get("include_adjustment_in_roll", False) if existing else False
            fuel = cls.attributed_fuel(session, day, truck_id)
            per_trip = round(fuel["liters"] / len(trips), 3)

            created = []
            for t in trips:
                gross = float(t["gross_weight"])
                tare = float(t["tare_weight"])
                rec = CoalLog(
                    date=day,
                    truck_id=truck_id,
                    driver_id=fuel["driver_id"],
                    pass_no=str(t["pass_no"]).strip(),
                    gross_weight=gross,
                    tare_weight=tare,
                    net_weight=max(0.0, gross - tare),
                    diesel_liters=per_trip,
                    diesel_rate=fuel["rate"],
                    adjustment=0,
                    diesel_adjustment=0.0,
                    air_adjustment=0.0,
                    origin_site=origin_site or FleetConfig.NOT_AVAILABLE,
                    destination_site=destination_site or FleetConfig.NOT_AVAILABLE,
                    staff_welfare=0.0,
                    roll_amount=0.0,
                    agent_id=agent_id,
                )
                session.add(rec)
                created.append(rec)

            cls._resync(session, day, truck_id, include)
            cls._audit(session, "CREATE", agent_id, key, f"{len(created)} trip(s) entered")

        log_info(f"{len(created)} coal trips added for {key} by {agent_id}")
        return created

    @classmethod
    def _check_fields(cls, changes: Dict[str, Any]) -> None:
        for field in changes:
            if field not in cls.EDITABLE_FIELDS:
                raise CoalEntryError(f"Field '{field}' cannot be edited inline.")

    @classmethod
    def _apply_changes(cls, session: Session, log_id: str, changes: Dict[str, Any]) -> CoalLog:
        rec = session.get(CoalLog, log_id)
        if rec is None:
            raise CoalEntryError(f"Trip record {log_id} not found.")
        for field, value in changes.items():
            if field in cls.NUMERIC_FIELDS:
                value = _num(value)
            setattr(rec, field, value)
        rec.net_weight = max(0.0, _num(rec.gross_weight) - _num(rec.tare_weight))
        return rec

    @classmethod
    def update_log(cls, session: Session, log_id: str, changes: Dict[str, Any], username: str) -> CoalLog:
        """Inline edit of one record; net weight is recomputed and clamped at zero."""
        cls._check_fields(changes)
        with _transaction(session, f"Inline edit {log_id}"):
            rec = cls._apply_changes(session, log_id, changes)
            cls._resync(session, rec.date, rec.truck_id)
            cls._audit(session, "UPDATE", username, log_id, f"Inline edit: {', '.join(sorted(changes))}")
        return rec

    @classmethod
    def update_logs(cls, session: Session, changes_by_id: Dict[str, Dict[str, Any]], username: str) -> List[CoalLog]:
        """
        Save an edited trip table in one go. Either every row is written or
        none is; each touched batch is resynced once.
        """
        for changes in changes_by_id.values():
            cls._check_fields(changes)
        if not changes_by_id:
            return []

        with _transaction(session, f"Inline edit of {len(changes_by_id)} row(s)"):
            updated = [cls._apply_changes(session, log_id, changes) for log_id, changes in changes_by_id.items()]
            for day, truck_id in sorted({(r.date, r.truck_id) for r in updated}):
                cls._resync(session, day, truck_id)
            for rec in updated:
                cls._audit(session, "UPDATE", username, rec.id,
                           f"Inline edit: {', '.join(sorted(changes_by_id[rec.id]))}")
        log_info(f"{len(updated)} trip row(s) saved by {username}")
        return updated

    @classmethod
    def bulk_add_rows(cls, session: Session, day, truck_id: str, count, username: str) -> List[CoalLog]:
        """
        Append blank trip rows to a batch. New rows copy the batch's
        adjustments, remarks, sites, driver and rate.
        """
        try:
            count = int(count)
        except (TypeError, ValueError):
            raise CoalEntryError("Row count must be a whole number.")
        if count <= 0:
            raise CoalEntryError("Row count must be greater than zero.")
        key = batch_key(day, truck_id)

        with _transaction(session, f"Bulk add {key}"):
            existing = cls.batch_records(session, day, truck_id)
            state = cls._batch_state(existing) if existing else {}
            fuel = cls.attributed_fuel(session, day, truck_id)
            adj_type = state.get("diesel_adj_type") if state.get("diesel_adjustment") else None

            created = []
            for _ in range(count):
                rec = CoalLog(
                    date=_to_date(day),
                    truck_id=truck_id,
                    driver_id=state.get("synced_driver_id") or fuel["driver_id"],
                    pass_no="",
                    gross_weight=0.0,
                    tare_weight=0.0,
                    net_weight=0.0,
                    diesel_liters=0.0,
                    diesel_rate=state.get("synced_rate") or fuel["rate"],
                    adjustment=state.get("trip_adjustment", 0),
                    diesel_adjustment=state.get("diesel_adjustment", 0.0),
                    air_adjustment=state.get("air_adjustment", 0.0),
                    diesel_adj_type=DieselAdjType(adj_type) if adj_type else None,
                    trip_remarks=state.get("trip_remarks") or None,
                    diesel_remarks=state.get("diesel_remarks") or None,
                    air_remarks=state.get("air_remarks") or None,
                    origin_site=state.get("origin_site", FleetConfig.NOT_AVAILABLE),
                    destination_site=state.get("destination_site", FleetConfig.NOT_AVAILABLE),
                    staff_welfare=0.0,
                    roll_amount=0.0,
                    agent_id=username,
                )
                session.add(rec)
                created.append(rec)

            cls._resync(session, day, truck_id, state.get("include_adjustment_in_roll", False))
            cls._audit(session, "CREATE", username, key, f"Bulk added {count} row(s)")
        return created

    @classmethod
    def save_batch_edit(
        cls,
        session: Session,
        day,
        truck_id: str,
        username: str,
        new_date=None,
        origin_site: Optional[str] = None,
        destination_site: Optional[str] = None,
        driver_id: Optional[str] = None,
    ) -> List[CoalLog]:
        """Move or retag a whole batch. A batch already on the target date merges with it."""
        key = batch_key(day, truck_id)
        target_day = _to_date(new_date) or _to_date(day)

        with _transaction(session, f"Batch edit {key}"):
            records = cls._require_records(session, day, truck_id)
            include = cls._batch_state(records).get("include_adjustment_in_roll", False)
            for rec in records:
                rec.date = target_day
                if origin_site is not None:
                    rec.origin_site = origin_site or FleetConfig.NOT_AVAILABLE
                if destination_site is not None:
                    rec.destination_site = destination_site or FleetConfig.NOT_AVAILABLE
                # None leaves the driver alone; "" clears it
                if driver_id is not None:
                    rec.driver_id = driver_id or None
            cls._resync(session, target_day, truck_id, include)
            cls._audit(session, "UPDATE", username, key, f"Batch edit -> {batch_key(target_day, truck_id)}")
        return records

    @classmethod
    def load_batches(
        cls,
        session: Session,
        trucks: Optional[Iterable] = None,
        drivers: Optional[Iterable] = None,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
    ) -> List[Dict[str, Any]]:
        """
        Aggregate records and attributed fuel between two dates. One day
        before date_from is loaded so the first day can see its stock advance;
        that day is dropped from the result.
        """
        q = cls.ordered_query(session)
        fq = session.query(FuelLog).order_by(FuelLog.created_at, FuelLog.id)
        start = _to_date(date_from)
        end = _to_date(date_to)
        if start is not None:
            q = q.filter(CoalLog.date >= start - timedelta(days=1))
            fq = fq.filter(FuelLog.attribution_date >= start - timedelta(days=1))
        if end is not None:
            q = q.filter(CoalLog.date <= end)
            fq = fq.filter(FuelLog.attribution_date <= end)

        batches = CoalBatchAggregator.build_batches(q.all(), fq.all(), trucks, drivers)
        if start is not None:
            batches = [b for b in batches if b["date"] >= start]
        return batches
