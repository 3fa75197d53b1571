# consultbook/core/timezones.py
from __future__ import annotations

from datetime import date, datetime, time, timedelta, timezone
from typing import List, NamedTuple
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from consultbook.core.errors import InvalidRequestError

UTC = ZoneInfo("UTC")


class TimezoneOption(NamedTuple):
    id: str
    display_name: str


COMMON_TIMEZONES: List[TimezoneOption] = [
    # North America
    TimezoneOption("America/New_York", "Eastern Time (New York)"),
    TimezoneOption("America/Chicago", "Central Time (Chicago)"),
    TimezoneOption("America/Denver", "Mountain Time (Denver)"),
    TimezoneOption("America/Los_Angeles", "Pacific Time (Los Angeles)"),
    TimezoneOption("America/Toronto", "Eastern Time (Toronto)"),
    TimezoneOption("America/Montreal", "Eastern Time (Montreal)"),
    TimezoneOption("America/Vancouver", "Pacific Time (Vancouver)"),
    # Europe
    TimezoneOption("Europe/London", "British Time (London)"),
    TimezoneOption("Europe/Paris", "Central European Time (Paris)"),
    TimezoneOption("Europe/Berlin", "Central European Time (Berlin)"),
    TimezoneOption("Europe/Madrid", "Central European Time (Madrid)"),
    # Africa
    TimezoneOption("Africa/Casablanca", "Western European Time (Casablanca)"),
    TimezoneOption("Africa/Cairo", "Eastern European Time (Cairo)"),
    TimezoneOption("Africa/Lagos", "West Africa Time (Lagos)"),
    # Middle East / Asia
    TimezoneOption("Asia/Dubai", "Gulf Standard Time (Dubai)"),
    TimezoneOption("Asia/Riyadh", "Arabia Standard Time (Riyadh)"),
    TimezoneOption("Asia/Kolkata", "India Time (Kolkata)"),
    TimezoneOption("Asia/Tokyo", "Japan Time (Tokyo)"),
    # Oceania
    TimezoneOption("Australia/Sydney", "Australian Eastern Time (Sydney)"),
]

_DISPLAY_NAMES = {opt.id: opt.display_name for opt in COMMON_TIMEZONES}

_FRENCH_DAYS = ["lundi", "mardi", "mercredi", "jeudi", "vendredi", "samedi", "dimanche"]
_FRENCH_MONTHS = [
    "janvier", "février", "mars", "avril", "mai", "juin",
    "juillet", "août", "septembre", "octobre", "novembre", "décembre",
]


def is_valid_timezone(tz_name: str | None) -> bool:
    if not tz_name:
        return False
    try:
        ZoneInfo(tz_name)
    except (ZoneInfoNotFoundError, ValueError):
        return False
    return True


def resolve_timezone(tz_name: str) -> ZoneInfo:
    """Return the ZoneInfo for an IANA id, rejecting unknown identifiers."""
    if not is_valid_timezone(tz_name):
        raise InvalidRequestError(f"Invalid timezone: {tz_name}")
    return ZoneInfo(tz_name)


def to_utc(dt: datetime) -> datetime:
    """Normalize an aware datetime to UTC; naive values are taken as UTC."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def local_day_bounds(day: date, tz: ZoneInfo) -> tuple[datetime, datetime]:
    """UTC instants of local midnight at the start of ``day`` and of the next day."""
    start = datetime.combine(day, time(0, 0), tzinfo=tz)
    end = datetime.combine(day + timedelta(days=1), time(0, 0), tzinfo=tz)
    return start.astimezone(timezone.utc), end.astimezone(timezone.utc)


def local_to_utc(day: date, at: time, tz: ZoneInfo) -> datetime:
    return datetime.combine(day, at, tzinfo=tz).astimezone(timezone.utc)


def display_name(tz_name: str) -> str:
    return _DISPLAY_NAMES.get(tz_name, tz_name)


def format_for_email(utc_time: datetime, tz_name: str, language: str = "en") -> str:
    """Render an instant in the client's timezone for notification bodies.

    English: "Monday, January 15, 2025 at 2:00 PM EST"
    French:  "lundi 15 janvier 2025 à 14h00 EST"
    """
    tz = ZoneInfo(tz_name) if is_valid_timezone(tz_name) else UTC
    local = to_utc(utc_time).astimezone(tz)
    abbrev = local.strftime("%Z")

    if language.lower().startswith("fr"):
        day_name = _FRENCH_DAYS[local.weekday()]
        month_name = _FRENCH_MONTHS[local.month - 1]
        return f"{day_name} {local.day} {month_name} {local.year} à {local:%H}h{local:%M} {abbrev}"

    hour = local.strftime("%I").lstrip("0") or "12"
    return f"{local:%A, %B} {local.day}, {local.year} at {hour}:{local:%M %p} {abbrev}"
