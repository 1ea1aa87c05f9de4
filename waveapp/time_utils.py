import os
from datetime import date, datetime, time, timedelta

from zoneinfo import ZoneInfo

_LOCAL_TZ = None


def _resolve_local_tz():
    global _LOCAL_TZ
    if _LOCAL_TZ is not None:
        return _LOCAL_TZ
    tz_name = os.environ.get("APP_TIMEZONE") or os.environ.get("TZ")
    if tz_name:
        try:
            _LOCAL_TZ = ZoneInfo(tz_name)
            return _LOCAL_TZ
        except Exception:
            _LOCAL_TZ = None
    _LOCAL_TZ = datetime.now().astimezone().tzinfo
    return _LOCAL_TZ


def local_now():
    tz = _resolve_local_tz()
    if tz:
        return datetime.now(tz).replace(tzinfo=None)
    return datetime.now()


def local_today():
    return local_now().date()


def day_bounds(value):
    """Return the [start, end) naive datetimes covering the given day."""
    if isinstance(value, datetime):
        value = value.date()
    if not isinstance(value, date):
        raise TypeError(f"Expected a date, got {type(value).__name__}")
    start = datetime.combine(value, time.min)
    return start, start + timedelta(days=1)


def parse_date(value):
    if value in (None, ""):
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return datetime.strptime(str(value).strip()[:10], "%Y-%m-%d").date()
    except ValueError:
        return None
