# fleet_app_ui.py
import streamlit as st

from db import get_session, init_db
from logger import log_info
from models import User
from permission_manager import PermissionManager

init_db()
st.set_page_config(page_title="FOMS", page_icon="🚛", layout="wide")
st.session_state.setdefault("auth_user", None)

# Operator picker; sign-in lives outside this app
with get_session() as s:
    users = [{"username": u.username, "role": u.role.value} for u in s.query(User).order_by(User.username).all()]
if not users:
    users = [{"username": "admin", "role": "ADMIN"}]

names = [u["username"] for u in users]
_current = (st.session_state.get("auth_user") or {}).get("username")
operator = st.sidebar.selectbox(
    "Operator", names, index=names.index(_current) if _current in names else 0, key="_nav_operator"
)
user = next(u for u in users if u["username"] == operator)
if st.session_state.get("auth_user") != user:
    log_info(f"Operator switched to {operator} ({user['role']})")
st.session_state["auth_user"] = user

PAGE_OPTIONS = PermissionManager.allowed_pages(user)
if not PAGE_OPTIONS:
    st.error("No pages are available for this role.")
    st.stop()

_initial_page = st.session_state.get("page")
if _initial_page not in PAGE_OPTIONS:
    _initial_page = PAGE_OPTIONS[0]
page = st.sidebar.selectbox("Page", PAGE_OPTIONS, index=PAGE_OPTIONS.index(_initial_page), key="_nav_page_select")
st.session_state["page"] = page

if page == "Coal Transport":
    from pages.coal_transport import render as render_coal_transport
    render_coal_transport()
    st.stop()
elif page == "Coal Entry":
    from pages.coal_entry import render as render_coal_entry
    render_coal_entry()
    st.stop()
elif page == "Mining Operations":
    from pages.mining_operations import render as render_mining_operations
    render_mining_operations()
    st.stop()
elif page == "Fuel Entry":
    from pages.fuel_entry import render as render_fuel_entry
    render_fuel_entry()
    st.stop()
elif page == "Diesel Ledgers":
    from pages.diesel_ledgers import render as render_diesel_ledgers
    render_diesel_ledgers()
    st.stop()
elif page == "Fuel Analytics":
    from pages.fuel_analytics import render as render_fuel_analytics
    render_fuel_analytics()
    st.stop()
elif page == "Fleet Registry":
    from pages.fleet_registry import render as render_fleet_registry
    render_fleet_registry()
    st.stop()
elif page == "Tire Inventory":
    from pages.tire_inventory import render as render_tire_inventory
    render_tire_inventory()
    st.stop()
elif page == "Manage Users":
    from pages.manage_users import render as render_manage_users
    render_manage_users()
    st.stop()
