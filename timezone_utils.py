"""
Timezone utilities for challenge periods.
All persisted timestamps are UTC; period boundaries (start of day, start of week)
are computed in the user's resolved local timezone.
"""

import datetime
import logging
import pytz
from typing import Optional, Union

from challenge_config import ChallengeConfig

logger = logging.getLogger(__name__)

DEFAULT_TZ = pytz.timezone(ChallengeConfig.CHALLENGE_TIMEZONE)


def utc_now() -> datetime.datetime:
    """Current time as an aware UTC datetime."""
    return datetime.datetime.now(pytz.utc)


def resolve_timezone(tz_name: Optional[str] = None) -> datetime.tzinfo:
    """
    Resolve an IANA timezone name.

    Args:
        tz_name: e.g. "America/Chicago". None or unknown names fall back to CHALLENGE_TIMEZONE.

    Returns:
        A pytz timezone
    """
    if not tz_name:
        return DEFAULT_TZ
    try:
        return pytz.timezone(tz_name)
    except pytz.exceptions.UnknownTimeZoneError:
        logger.warning(f"Unknown timezone '{tz_name}', falling back to {DEFAULT_TZ.zone}")
        return DEFAULT_TZ


def ensure_utc(dt: Union[datetime.datetime, datetime.date]) -> datetime.datetime:
    """Naive datetimes are taken to be UTC already; aware ones are converted."""
    if isinstance(dt, datetime.date) and not isinstance(dt, datetime.datetime):
        dt = datetime.datetime.combine(dt, datetime.time.min)
    if dt.tzinfo is None:
        return pytz.utc.localize(dt)
    return dt.astimezone(pytz.utc)


def convert_to_tz(dt: datetime.datetime, tz: datetime.tzinfo) -> datetime.datetime:
    return ensure_utc(dt).astimezone(tz)


def get_start_of_day(dt: Optional[datetime.datetime] = None, tz: Optional[datetime.tzinfo] = None) -> datetime.datetime:
    """
    Local midnight of the day containing dt.

    Args:
        dt: Reference instant (defaults to now)
        tz: Local timezone (defaults to CHALLENGE_TIMEZONE)

    Returns:
        datetime.datetime: Local midnight, as an aware datetime in tz
    """
    tz = tz or DEFAULT_TZ
    local = convert_to_tz(dt or utc_now(), tz)
    midnight = datetime.datetime.combine(local.date(), datetime.time.min)
    # localize() rather than replace() so the offset matches the date (DST)
    return tz.localize(midnight) if hasattr(tz, 'localize') else midnight.replace(tzinfo=tz)


def get_week_start(dt: Optional[datetime.datetime] = None, tz: Optional[datetime.tzinfo] = None) -> datetime.datetime:
    """Local Monday 00:00 of the week containing dt."""
    tz = tz or DEFAULT_TZ
    local = convert_to_tz(dt or utc_now(), tz)
    # Monday is day 0 in Python weekday (0=Monday, 6=Sunday)
    monday = local.date() - datetime.timedelta(days=local.weekday())
    midnight = datetime.datetime.combine(monday, datetime.time.min)
    return tz.localize(midnight) if hasattr(tz, 'localize') else midnight.replace(tzinfo=tz)


def get_daily_expiry(now: Optional[datetime.datetime] = None, tz: Optional[datetime.tzinfo] = None) -> datetime.datetime:
    """Start of the local day + 24h, in UTC."""
    return (get_start_of_day(now, tz) + datetime.timedelta(hours=24)).astimezone(pytz.utc)


def get_weekly_expiry(now: Optional[datetime.datetime] = None, tz: Optional[datetime.tzinfo] = None) -> datetime.datetime:
    """Start of the local week + 7 days, in UTC."""
    return (get_week_start(now, tz) + datetime.timedelta(days=7)).astimezone(pytz.utc)


def get_period_expiry(kind: str, now: Optional[datetime.datetime] = None, tz: Optional[datetime.tzinfo] = None) -> datetime.datetime:
    if kind == 'daily':
        return get_daily_expiry(now, tz)
    if kind == 'weekly':
        return get_weekly_expiry(now, tz)
    raise ValueError(f"Invalid challenge kind: {kind}")


__all__ = [
    'DEFAULT_TZ',
    'utc_now',
    'resolve_timezone',
    'ensure_utc',
    'convert_to_tz',
    'get_start_of_day',
    'get_week_start',
    'get_daily_expiry',
    'get_weekly_expiry',
    'get_period_expiry',
]
