# mining_log_service.py
"""
Mining dispatch / purchase entries.

A mining batch is (date, truck, log type); welfare and roll follow the same
first-record rule as coal batches.
"""

from __future__ import annotations
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from coal_batch_aggregator import _num, _to_date, batch_key
from coal_log_service import BatchLogService, CoalEntryError
from db import transaction as _transaction
from logger import log_info
from mining_batches import MiningBatchAggregator
from models import MiningLog, MiningLogType


def _log_type(value) -> MiningLogType:
    if isinstance(value, MiningLogType):
        return value
    try:
        return MiningLogType(str(value or "DISPATCH").upper())
    except ValueError:
        raise CoalEntryError(f"Unknown mining log type '{value}'.")


def _optional_float(value) -> Optional[float]:
    if value is None or value == "":
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        raise CoalEntryError(f"'{value}' is not a valid weight.")


class MiningLogService(BatchLogService):
    """Mining dispatch / purchase records"""

    model = MiningLog
    resource_type = "MiningLog"

    @classmethod
    def batch_records(cls, session: Session, day, truck_id: str, log_type=None, **scope) -> List:
        q = (
            cls.ordered_query(session)
            .filter(MiningLog.truck_id == truck_id, MiningLog.date == _to_date(day))
        )
        if log_type is not None:
            q = q.filter(MiningLog.log_type == _log_type(log_type))
        return q.all()

    @classmethod
    def _scope_of(cls, rec) -> Dict[str, Any]:
        return {"log_type": rec.log_type}

    @classmethod
    def add_entry(cls, session: Session, data: Dict[str, Any], agent_id: str) -> MiningLog:
        """
        Save one weighbridge entry. Net = unloading net, else loading net.
        Shortage = unloading net - loading net when both are present.
        """
        truck_id = data.get("truck_id")
        day = _to_date(data.get("date"))
        loading_net = _optional_float(data.get("loading_net_wt"))
        unloading_net = _optional_float(data.get("unloading_net_wt"))
        if not truck_id:
            raise CoalEntryError("Select a truck.")
        if day is None:
            raise CoalEntryError("Select a valid date.")
        if loading_net is None and unloading_net is None:
            raise CoalEntryError("Enter the loading or unloading net weight.")

        gross = _num(data.get("gross"))
        tare = _num(data.get("tare"))
        if gross and gross < tare:
            raise CoalEntryError("Gross Weight must be >= Tare Weight.")
        log_type = _log_type(data.get("log_type"))
        key = batch_key(day, truck_id)

        with _transaction(session, f"Mining entry {key}"):
            existing = cls.batch_records(session, day, truck_id, log_type)
            include = cls._batch_state(existing).get("include_adjustment_in_roll", False) if existing else False
            rec = MiningLog(
                log_type=log_type,
                date=day,
                time=data.get("time"),
                chalan_no=(data.get("chalan_no") or "").strip() or None,
                customer_name=data.get("customer_name"),
                supplier=data.get("supplier"),
                site=data.get("site"),
                royalty_pass_no=data.get("royalty_pass_no"),
                truck_id=truck_id,
                driver_id=data.get("driver_id") or None,
                material=data.get("material"),
                gross=gross,
                tare=tare,
                net=unloading_net if unloading_net is not None else loading_net,
                loading_net_wt=loading_net,
                unloading_net_wt=unloading_net,
                shortage_wt=MiningBatchAggregator.shortage_of(loading_net, unloading_net),
                adjustment=0,
                diesel_adjustment=0.0,
                air_adjustment=0.0,
                staff_welfare=0.0,
                roll_amount=0.0,
                agent_id=agent_id,
            )
            session.add(rec)
            cls._resync(session, day, truck_id, include, log_type=log_type)
            cls._audit(session, "CREATE", agent_id, key, f"{log_type.value} chalan {rec.chalan_no or '-'}")

        log_info(f"Mining {log_type.value} entry saved for {key} by {agent_id}")
        return rec
