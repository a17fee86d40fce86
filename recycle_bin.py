"""
Recycle bin for deleted records.

A deleted trip record, fuel log, ledger entry or registry row is stored as
a JSON snapshot of its columns. Restoring rebuilds the row from the
snapshot with its original id; for trip records the caller resyncs the
batch payables afterwards.
"""

from __future__ import annotations

import enum
import json
from datetime import date, datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import Date, DateTime
from sqlalchemy import Enum as SAEnum
from sqlalchemy.inspection import inspect as sa_inspect
from sqlalchemy.orm import Session

from models import RecycleBinEntry


def _json_default(value: Any) -> Any:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, enum.Enum):
        return value.value
    return str(value)


def _from_json(column, value: Any) -> Any:
    """Undo _json_default for one column."""
    if value is None:
        return None
    col_type = column.type
    if isinstance(col_type, DateTime):
        return datetime.fromisoformat(value)
    if isinstance(col_type, Date):
        return date.fromisoformat(value)
    if isinstance(col_type, SAEnum) and col_type.enum_class is not None:
        return col_type.enum_class(value)
    return value


def _label_of(payload: Dict[str, Any]) -> Optional[str]:
    for key in ("pass_no", "chalan_no"):
        if payload.get(key):
            return f"{payload.get('date')} {payload[key]}"
    for key in ("plate_number", "serial_number", "username", "name"):
        if payload.get(key):
            return str(payload[key])
    return payload.get("id")


class RecycleBinManager:

    @staticmethod
    def snapshot_record(record: Any) -> Dict[str, Any]:
        mapper = sa_inspect(record.__class__)
        return {column.key: getattr(record, column.key) for column in mapper.columns}

    @staticmethod
    def archive_record(
        session: Session,
        record: Any,
        resource_type: str,
        username: str,
        reason: Optional[str] = None,
        label: Optional[str] = None,
    ) -> RecycleBinEntry:
        """Store the snapshot, then delete the record (flushed, not committed)."""
        payload = RecycleBinManager.snapshot_record(record)
        entry = RecycleBinEntry(
            resource_type=resource_type,
            resource_id=str(payload.get("id") or record.__class__.__name__),
            resource_label=label or _label_of(payload),
            payload_json=json.dumps(payload, default=_json_default),
            deleted_by=username or "unknown",
            reason=reason,
        )
        session.add(entry)
        session.flush()
        session.delete(record)
        return entry

    @staticmethod
    def load_payload(entry: RecycleBinEntry) -> Dict[str, Any]:
        return json.loads(entry.payload_json or "{}")

    @staticmethod
    def entries(session: Session, resource_type: Optional[str] = None) -> List[RecycleBinEntry]:
        """Archived rows, most recently deleted first."""
        q = session.query(RecycleBinEntry)
        if resource_type:
            q = q.filter(RecycleBinEntry.resource_type == resource_type)
        return q.order_by(RecycleBinEntry.deleted_at.desc(), RecycleBinEntry.id.desc()).all()

    @staticmethod
    def restore_record(session: Session, entry: RecycleBinEntry, model) -> Any:
        """
        Re-insert the archived row into model's table and drop the bin entry.
        Raises ValueError when a row with the same id already exists.
        """
        payload = RecycleBinManager.load_payload(entry)
        if payload.get("id") and session.get(model, payload["id"]) is not None:
            raise ValueError(f"{entry.resource_type} {payload['id']} already exists.")
        mapper = sa_inspect(model)
        values = {
            column.key: _from_json(column, payload[column.key])
            for column in mapper.columns
            if column.key in payload
        }
        record = model(**values)
        session.add(record)
        session.delete(entry)
        session.flush()
        return record
