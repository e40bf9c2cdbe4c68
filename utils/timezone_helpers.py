from __future__ import annotations

from datetime import date, datetime
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from flask import current_app, has_app_context

DEFAULT_REPORT_TZ = "Africa/Lagos"


def report_zone() -> ZoneInfo:
    """Zone used to decide what "today" means for period tokens and aging."""
    name = DEFAULT_REPORT_TZ
    if has_app_context():
        name = current_app.config.get("REPORT_TIMEZONE") or DEFAULT_REPORT_TZ
    try:
        return ZoneInfo(name)
    except ZoneInfoNotFoundError:
        return ZoneInfo(DEFAULT_REPORT_TZ)


def report_now() -> datetime:
    return datetime.now(report_zone())


def report_today() -> date:
    """Get the current date in the reporting timezone."""
    return report_now().date()
