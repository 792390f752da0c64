"""
Timezone utilities for familyhub.

Provides consistent date and datetime functions using the configured
timezone from the TZ environment variable.
"""

import os
from datetime import date, datetime, timezone
from zoneinfo import ZoneInfo


def get_timezone() -> ZoneInfo:
    """Get the configured timezone from environment.

    Returns:
        ZoneInfo for the configured timezone, defaults to UTC
    """
    tz_name = os.environ.get('TZ', 'UTC')
    try:
        return ZoneInfo(tz_name)
    except Exception:
        return ZoneInfo('UTC')


def local_now() -> datetime:
    """Get the current datetime in the configured timezone."""
    return datetime.now(get_timezone())


def local_today() -> date:
    """Get today's date in the configured timezone.

    Streaks are counted in local days, so a chore verified at 23:30 and one
    verified at 00:30 land on consecutive days for the family.
    """
    return local_now().date()


def utc_now() -> datetime:
    """Get the current UTC datetime as a naive value.

    Use this for storing timestamps in the database; columns are declared
    without timezone so all stored values are UTC by convention.
    """
    return datetime.now(timezone.utc).replace(tzinfo=None)
