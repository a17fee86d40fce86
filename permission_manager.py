# permission_manager.py
"""
Permission Manager for FOMS
Role-based page access and agent-scoped visibility of batches
"""

from typing import Dict, List, Optional


def _normalize_role(role) -> str:
    """Accept Role enums, plain strings and legacy lower-case values."""
    if role is None:
        return ""
    role = getattr(role, "value", role)
    return str(role).strip().upper()


class PermissionManager:
    """Manage role-based permissions"""

    PAGE_ACCESS = {
        "ADMIN": [
            "Coal Transport", "Coal Entry", "Mining Operations", "Fuel Entry", "Diesel Ledgers",
            "Fuel Analytics", "Fleet Registry", "Tire Inventory", "Manage Users",
        ],
        "FUEL_AGENT": ["Fuel Entry", "Diesel Ledgers", "Fuel Analytics"],
        "COAL_ENTRY": ["Coal Entry", "Coal Transport"],
        "MINING_ENTRY": ["Mining Operations"],
    }

    @staticmethod
    def is_admin(user: Optional[Dict]) -> bool:
        return bool(user) and _normalize_role(user.get("role")) == "ADMIN"

    @staticmethod
    def allowed_pages(user: Optional[Dict]) -> List[str]:
        if not user:
            return []
        return list(PermissionManager.PAGE_ACCESS.get(_normalize_role(user.get("role")), []))

    @staticmethod
    def can_access_page(user: Optional[Dict], page: str) -> bool:
        return page in PermissionManager.allowed_pages(user)

    @staticmethod
    def can_view_batch(user: Optional[Dict], batch: Dict) -> bool:
        """
        Admins see every batch. Everyone else sees a batch only when at least
        one of its records was entered by them.
        """
        if PermissionManager.is_admin(user):
            return True
        username = (user or {}).get("username")
        if not username:
            return False
        return any(getattr(log, "agent_id", None) == username for log in batch.get("logs", []))

    @staticmethod
    def can_delete_entries(user: Optional[Dict]) -> bool:
        """Deleting trip records or fuel logs is an admin action."""
        return PermissionManager.is_admin(user)

    @staticmethod
    def can_edit_batch(user: Optional[Dict], batch: Dict) -> bool:
        if PermissionManager.is_admin(user):
            return True
        return _normalize_role((user or {}).get("role")) in ("COAL_ENTRY", "MINING_ENTRY") and \
            PermissionManager.can_view_batch(user, batch)
