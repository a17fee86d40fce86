# ui.py
import streamlit as st

from timezone_utils import format_report_date, get_local_date


def header(title: str, subtitle: str = "Fleet Operations Management System"):
    """Page title with the production date and the current operator."""
    left, right = st.columns([0.72, 0.28])

    with left:
        st.markdown(f"<h2 style='margin:0'>{title}</h2>", unsafe_allow_html=True)
        st.caption(f"{subtitle} · Production date {format_report_date(get_local_date())}")

    with right:
        user = st.session_state.get("auth_user")
        who = f"{user['username']} · {user['role']}" if user else "No operator"
        st.markdown(
            f"<div style='text-align:right;border:1px solid #334155;"
            f"padding:6px 10px;border-radius:999px;display:inline-block'>🚛 {who}</div>",
            unsafe_allow_html=True,
        )

    st.divider()
