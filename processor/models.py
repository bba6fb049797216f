"""Data models for calendar feed normalization."""
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional


def format_timestamp(value: Optional[datetime]) -> Optional[str]:
    """
    Render an aware datetime as ISO 8601 with an explicit offset.

    Instants in the UTC zone are written with a trailing 'Z'.

    Args:
        value: Timezone-aware datetime or None

    Returns:
        ISO 8601 string or None
    """
    if value is None:
        return None
    text = value.isoformat()
    tzname = value.tzname()
    if tzname == 'UTC' and text.endswith('+00:00'):
        text = text[:-6] + 'Z'
    return text


@dataclass(frozen=True)
class TemporalValue:
    """Raw ICS date/time value with the TZID parameter it carried."""
    value: str
    tzid: Optional[str] = None


@dataclass
class RawEvent:
    """Fields collected from one VEVENT block before formatting."""
    summary: Optional[str] = None
    description: Optional[str] = None
    location: Optional[str] = None
    uid: Optional[str] = None
    dtstart: Optional[TemporalValue] = None
    dtend: Optional[TemporalValue] = None
    created: Optional[TemporalValue] = None
    last_modified: Optional[TemporalValue] = None
    is_all_day: bool = False
    extra: Dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class NormalizedEvent:
    """Canonical event with resolved, timezone-aware instants."""
    title: str
    start: datetime
    end: datetime
    description: str
    location: str
    is_all_day: bool
    timezone: str
    uid: str
    created: Optional[datetime] = None
    last_modified: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'title': self.title,
            'start': format_timestamp(self.start),
            'end': format_timestamp(self.end),
            'description': self.description,
            'location': self.location,
            'isAllDay': self.is_all_day,
            'timezone': self.timezone,
            'uid': self.uid,
            'created': format_timestamp(self.created),
            'lastModified': format_timestamp(self.last_modified)
        }


@dataclass(frozen=True)
class DaySegment:
    """The part of an event that falls on a single calendar day."""
    title: str
    start: datetime
    end: datetime
    description: str
    is_full_day: bool
    cross_day: bool
    timezone: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            'title': self.title,
            'start': format_timestamp(self.start),
            'end': format_timestamp(self.end),
            'description': self.description,
            'isFullDay': self.is_full_day,
            'crossDay': self.cross_day,
            'timezone': self.timezone
        }


@dataclass
class AgendaDay:
    """Events bucketed under one calendar date (YYYY-MM-DD)."""
    date: str
    events: List[DaySegment]


@dataclass
class AgendaRequest:
    """Request metadata echoed alongside the agenda."""
    calendar: str
    days: int
    requested_timezone: str
    start_from: datetime


@dataclass
class AgendaResult:
    """Day-grouped agenda plus the request it was built for."""
    agenda: List[AgendaDay]
    timezone: str
    request: AgendaRequest

    def to_dict(self) -> Dict[str, Any]:
        return {
            'agenda': [
                {
                    'date': day.date,
                    'events': [segment.to_dict() for segment in day.events]
                }
                for day in self.agenda
            ],
            'timezone': self.timezone,
            'request': {
                'calendar': self.request.calendar,
                'days': self.request.days,
                'requestedTimezone': self.request.requested_timezone,
                'startFrom': format_timestamp(self.request.start_from)
            }
        }
