# timezone_utils.py
"""
Timezone utilities for FOMS
Production days, fuel attribution and audit timestamps all use site-local time.
"""

import os
from datetime import date, datetime, timezone
import pytz

LOCAL_TIMEZONE = pytz.timezone(os.getenv("FOMS_TIMEZONE", "Asia/Kolkata"))

def get_local_time() -> datetime:
    """Get current time in local timezone"""
    utc_now = datetime.now(timezone.utc)
    return utc_now.astimezone(LOCAL_TIMEZONE)

def get_local_date() -> date:
    """Today's production date at the site"""
    return get_local_time().date()

def utc_to_local(utc_dt: datetime) -> datetime:
    """Convert UTC datetime to local timezone"""
    if utc_dt is None:
        return None
    
    # Naive values coming back from the database are UTC
    if utc_dt.tzinfo is None:
        utc_dt = pytz.utc.localize(utc_dt)
    
    return utc_dt.astimezone(LOCAL_TIMEZONE)

def format_local_datetime(dt: datetime, format_str: str = "%d-%m-%Y %H:%M") -> str:
    if dt is None:
        return ""
    return utc_to_local(dt).strftime(format_str)

def format_report_date(value) -> str:
    """ISO date (or date object) -> DD-MM-YYYY as printed on reports."""
    if value is None:
        return ""
    if isinstance(value, (date, datetime)):
        return value.strftime("%d-%m-%Y")
    text = str(value)
    parts = text.split("-")
    if len(parts) != 3:
        return text
    return f"{parts[2]}-{parts[1]}-{parts[0]}"
