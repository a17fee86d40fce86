# security.py
"""
Audit utilities for FOMS.
Every mutation of trip records, fuel logs and ledgers leaves an audit row.
"""

from typing import Optional
from sqlalchemy.orm import Session

from models import AuditLog
from logger import log_error


class SecurityManager:
    """Centralized audit trail"""

    @staticmethod
    def log_audit(session: Optional[Session], username: str, action: str,
                  resource_type: str = None, resource_id: str = None,
                  details: str = None, success: bool = True):
        """
        Log audit trail entry with LOCAL TIME

        Args:
            session: Database session (a private one is opened when None)
            username: Username performing the action
            action: Action type (CREATE, UPDATE, DELETE, EXPORT, etc.)
            resource_type: Type of resource (CoalLog, FuelLog, etc.)
            resource_id: ID of the resource, or a batch key
            details: Additional details about the action
            success: Whether the action was successful (default: True)
        """
        from timezone_utils import get_local_time

        # Stored as naive local time
        timestamp = get_local_time().replace(tzinfo=None)

        owns_session = False
        if session is None:
            # Lazily import to avoid circulars
            from db import SessionLocal
            session = SessionLocal()
            owns_session = True

        entry = AuditLog(
            username=username or "unknown",
            action=action,
            resource_type=resource_type,
            resource_id=resource_id,
            details=(details or "")[:500] or None,
            success=success,
            timestamp=timestamp,
        )

        # A borrowed session is committed by the caller along with its own work
        session.add(entry)
        if not owns_session:
            return

        try:
            session.commit()
        except Exception as e:
            session.rollback()
            log_error(f"Failed to log audit: {e}")
            # audit failures never propagate
        finally:
            session.close()
