"""
Helper functions shared across Streamlit page modules.
"""

from __future__ import annotations
from typing import Dict, List, Optional

import streamlit as st

from logger import log_error


def st_safe_rerun() -> None:
    """Trigger a rerun, falling back to ``st.experimental_rerun`` on older Streamlit."""
    rerun = getattr(st, "rerun", None) or getattr(st, "experimental_rerun")
    rerun()


def current_user() -> Dict:
    """The operator selected in the sidebar, as {"username", "role"}."""
    return st.session_state.get("auth_user") or {}


def username() -> str:
    return current_user().get("username", "unknown")


def run_action(action, success: Optional[str] = None, rerun: bool = True):
    """
    Call a service mutation and report the outcome on the page. Validation
    errors (ValueError subclasses) are shown as-is; anything else was already
    logged by the service and is shown as a generic failure.
    """
    try:
        result = action()
    except ValueError as e:
        st.error(str(e))
        return None
    except Exception as e:
        log_error(f"Page action failed: {e}")
        st.error(f"Save failed: {e}")
        return None
    if success:
        st.success(success)
    if rerun:
        st_safe_rerun()
    return result


def label_map(items, attr: str) -> Dict[str, str]:
    """id -> display label for selectboxes."""
    return {i.id: getattr(i, attr) for i in items}


def select_id(label: str, items, attr: str, key: str, allow_all: bool = False,
              all_label: str = "All", default: Optional[str] = None) -> Optional[str]:
    """Selectbox over ORM rows returning the chosen id; default preselects a row."""
    options: List[Optional[str]] = ([None] if allow_all else []) + [i.id for i in items]
    labels = label_map(items, attr)
    return st.selectbox(
        label,
        options,
        index=options.index(default) if default in options else 0,
        format_func=lambda v: all_label if v is None else labels.get(v, v),
        key=key,
    )
