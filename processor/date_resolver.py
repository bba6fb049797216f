"""Resolution of ICS date/time strings into timezone-aware instants."""
import logging
import re
from datetime import date, datetime, time, timezone, tzinfo
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

logger = logging.getLogger(__name__)

UTC_ZONE_NAME = 'UTC'

DATE_PATTERN = re.compile(r'^(\d{4})(\d{2})(\d{2})$')
DATETIME_PATTERN = re.compile(
    r'^(\d{4})(\d{2})(\d{2})T?(\d{2})?(\d{2})?(\d{2})?$'
)


def get_zone(name: Optional[str]) -> tzinfo:
    """
    Look up an IANA timezone, falling back to UTC.

    Args:
        name: IANA zone name (e.g. "Australia/Sydney") or None

    Returns:
        tzinfo for the zone, or UTC when absent or unknown
    """
    if not name or name.upper() == UTC_ZONE_NAME:
        return timezone.utc

    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError, OSError) as e:
        logger.warning(f"Unknown timezone '{name}', using UTC: {e}")
        return timezone.utc


def start_of_day(day: date, zone: tzinfo) -> datetime:
    """Local midnight of ``day`` in ``zone``."""
    return datetime.combine(day, time.min, tzinfo=zone)


def end_of_day(day: date, zone: tzinfo) -> datetime:
    """Last whole second (23:59:59) of ``day`` in ``zone``."""
    return datetime.combine(day, time(23, 59, 59), tzinfo=zone)


def resolve_ics_datetime(
    ics_value: Optional[str],
    is_all_day: bool,
    zone: Optional[str],
    now: datetime
) -> datetime:
    """
    Convert an ICS DATE or DATE-TIME value into an aware datetime.

    A trailing 'Z' is dropped and the value is read as wall time in
    ``zone`` (UTC when no zone is given). Values that cannot be read
    resolve to ``now`` so one bad timestamp never stops the feed.

    Args:
        ics_value: Raw value such as "20240320" or "20240320T100000Z"
        is_all_day: Whether the owning event is a date-only event
        zone: TZID for the value, or None
        now: Reference instant used for absent or malformed values

    Returns:
        Timezone-aware datetime
    """
    if not ics_value:
        return now

    # TODO: honour a trailing 'Z' as UTC when a TZID parameter is also present
    if ics_value.endswith('Z'):
        ics_value = ics_value[:-1]

    tz = get_zone(zone)

    try:
        if is_all_day:
            match = DATE_PATTERN.match(ics_value)
            if match:
                year, month, day = (int(part) for part in match.groups())
                return start_of_day(date(year, month, day), tz)

        match = DATETIME_PATTERN.match(ics_value)
        if match:
            year, month, day, hour, minute, second = match.groups()
            return datetime(
                int(year), int(month), int(day),
                int(hour or 0), int(minute or 0), int(second or 0),
                tzinfo=tz
            )
    except ValueError as e:
        logger.warning(f"Out of range date value '{ics_value}': {e}")
        return now

    logger.warning(f"Unrecognised date value '{ics_value}', using reference time")
    return now


def utc_now() -> datetime:
    """Current instant in UTC."""
    return datetime.now(timezone.utc)
