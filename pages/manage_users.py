"""
Manage Users page: operators and their roles.
"""
from __future__ import annotations

import pandas as pd
import streamlit as st

from db import get_session
from fleet_registry import FleetRegistry
from models import Role, User
from pages.helpers import run_action, username
from permission_manager import PermissionManager
from timezone_utils import format_local_datetime
from ui import header

ROLE_HELP = {
    "ADMIN": "Every page, deletes, registry and users",
    "FUEL_AGENT": "Fuel entry, diesel ledgers, fuel analytics",
    "COAL_ENTRY": "Coal trips and the coal transport batches they entered",
    "MINING_ENTRY": "Mining entries and their batches",
}


def render() -> None:
    header("Manage Users")

    with get_session() as session:
        users = session.query(User).order_by(User.username).all()
        roles = [r.value for r in Role]
        tab_view, tab_add = st.tabs(["View Users", "Add User"])

        with tab_view:
            st.dataframe(pd.DataFrame([
                {
                    "Username": u.username,
                    "Role": u.role.value,
                    "Active": "✅" if u.is_active else "❌",
                    "Pages": ", ".join(PermissionManager.PAGE_ACCESS.get(u.role.value, [])),
                    "Created": format_local_datetime(u.created_at) if u.created_at else "",
                }
                for u in users
            ]), hide_index=True, use_container_width=True)

            labels = {u.id: u.username for u in users}
            user_id = st.selectbox("User", list(labels), format_func=labels.get, key="mu_sel")
            user = next(u for u in users if u.id == user_id)

            c1, c2 = st.columns(2)
            role = c1.selectbox("Role", roles, index=roles.index(user.role.value), key=f"mu_role_{user_id}")
            active = c2.checkbox("Active", value=bool(user.is_active), key=f"mu_active_{user_id}")
            if st.button("💾 Save User", key=f"mu_save_{user_id}"):
                run_action(
                    lambda: FleetRegistry.update_user(session, user_id, {"role": role, "is_active": active}, username()),
                    success=f"{user.username} updated.",
                )

            with st.expander("🗑️ Delete User", expanded=False):
                reason = st.text_input("Reason", key=f"mu_del_reason_{user_id}")
                if st.button("Delete", key=f"mu_del_{user_id}"):
                    run_action(lambda: FleetRegistry.delete_user(session, user_id, username(), reason or None),
                               success="User moved to recycle bin.")

        with tab_add:
            with st.form("add_user_form", clear_on_submit=True):
                new_name = st.text_input("Username")
                new_role = st.selectbox("Role", roles, index=roles.index(Role.COAL_ENTRY.value))
                if st.form_submit_button("➕ Create User", type="primary"):
                    run_action(
                        lambda: FleetRegistry.add_user(session, {"username": new_name, "role": new_role}, username()),
                        success=f"User {new_name} created.",
                    )
            with st.expander("ℹ️ Role Descriptions", expanded=False):
                for r, text in ROLE_HELP.items():
                    st.markdown(f"**{r}**: {text}")
