"""Window filtering and day grouping of normalized calendar events."""
import logging
from collections import defaultdict
from datetime import date, datetime, timedelta, timezone
from typing import Dict, List, Optional, Tuple
from urllib.parse import urlsplit

from processor.date_resolver import (
    UTC_ZONE_NAME,
    end_of_day,
    get_zone,
    start_of_day,
    utc_now,
)
from processor.event_formatter import EventFormatter
from processor.ics_parser import IcsParser
from processor.models import (
    AgendaDay,
    AgendaRequest,
    AgendaResult,
    DaySegment,
    NormalizedEvent,
)

logger = logging.getLogger(__name__)

DEFAULT_DAYS = 7
START_FROM_NOW = 'now'
UNKNOWN_CALENDAR = 'unknown'


def calendar_source(url: Optional[str]) -> str:
    """
    Extract a display-safe calendar source from a feed URL.

    Only the hostname is returned so query-string secrets never leak.

    Args:
        url: Feed URL

    Returns:
        Hostname, or "unknown" if it cannot be determined
    """
    if not url:
        return UNKNOWN_CALENDAR
    try:
        hostname = urlsplit(url).hostname
    except ValueError:
        return UNKNOWN_CALENDAR
    return hostname or UNKNOWN_CALENDAR


class AgendaBuilder:
    """Builds a day-grouped agenda for a time window in a display timezone."""

    def __init__(
        self,
        timezone_name: str = UTC_ZONE_NAME,
        days: int = DEFAULT_DAYS,
        start_from: str = START_FROM_NOW,
        now: Optional[datetime] = None
    ):
        """
        Initialize the builder and resolve the request window.

        Args:
            timezone_name: IANA zone used for day boundaries and display
            days: Number of calendar days in the window (must be positive)
            start_from: "now" or an ISO date/datetime for the first day
            now: Reference instant (defaults to the current time)

        Raises:
            ValueError: If days is not a positive integer
        """
        if isinstance(days, bool) or not isinstance(days, int) or days <= 0:
            raise ValueError(f"days must be a positive integer, got {days!r}")

        self.now = now or utc_now()
        self.zone = get_zone(timezone_name)
        self.timezone_name = (
            UTC_ZONE_NAME if self.zone is timezone.utc else timezone_name
        )
        start_date, end_date, self.days = self._resolve_window(
            self._resolve_start_date(start_from), days
        )
        self.window_start = start_of_day(start_date, self.zone)
        self.window_end = start_of_day(end_date, self.zone)

    def _today(self) -> date:
        return self.now.astimezone(self.zone).date()

    def _resolve_window(self, start_date: date, days: int) -> Tuple[date, date, int]:
        """
        Compute the first day and the exclusive end day of the window.

        A window running past the last representable date falls back to
        starting today, then to the default number of days.

        Args:
            start_date: Requested first day
            days: Requested number of days

        Returns:
            (first day, day after the last day, days used)
        """
        try:
            return start_date, start_date + timedelta(days=days), days
        except OverflowError:
            pass

        today = self._today()
        if start_date != today:
            logger.warning(
                f"startFrom {start_date} leaves no room for {days} days, defaulting to today"
            )
            start_date = today
            try:
                return start_date, start_date + timedelta(days=days), days
            except OverflowError:
                pass

        logger.warning(f"days={days} is out of range, defaulting to {DEFAULT_DAYS}")
        return start_date, start_date + timedelta(days=DEFAULT_DAYS), DEFAULT_DAYS

    def _resolve_start_date(self, start_from: Optional[str]) -> date:
        """
        Determine the first calendar day of the window.

        Args:
            start_from: "now", an ISO date, or an ISO datetime

        Returns:
            Calendar date in the display timezone
        """
        today = self._today()
        if not start_from or start_from == START_FROM_NOW:
            return today

        try:
            return date.fromisoformat(start_from)
        except ValueError:
            pass

        try:
            parsed = datetime.fromisoformat(start_from)
        except ValueError:
            logger.warning(f"Invalid startFrom date '{start_from}', defaulting to today")
            return today

        if parsed.tzinfo is not None:
            try:
                parsed = parsed.astimezone(self.zone)
            except OverflowError:
                logger.warning(f"startFrom '{start_from}' is out of range, defaulting to today")
                return today
        return parsed.date()

    def build(
        self,
        events: List[NormalizedEvent],
        source_url: Optional[str] = None
    ) -> AgendaResult:
        """
        Filter events to the window, split them per day and group by date.

        Args:
            events: Normalized events
            source_url: Feed URL, reduced to its hostname for display

        Returns:
            AgendaResult with days in ascending date order
        """
        grouped: Dict[str, List[DaySegment]] = defaultdict(list)

        for event in events:
            for day, segment in self.split_event(event):
                grouped[day.isoformat()].append(segment)

        agenda = [
            AgendaDay(date=day, events=self.sort_segments(grouped[day]))
            for day in sorted(grouped)
        ]

        logger.info(
            f"Built agenda with {len(agenda)} days from {len(events)} events"
        )

        return AgendaResult(
            agenda=agenda,
            timezone=self.timezone_name,
            request=AgendaRequest(
                calendar=calendar_source(source_url),
                days=self.days,
                requested_timezone=self.timezone_name,
                start_from=self.window_start
            )
        )

    def split_event(self, event: NormalizedEvent) -> List[Tuple[date, DaySegment]]:
        """
        Split an event into per-day segments within the window.

        Events that end before the window or start at or after its end
        produce no segments. Days outside the window are dropped; days
        inside keep their day-boundary times.

        Args:
            event: Normalized event

        Returns:
            List of (date, DaySegment) tuples in day order
        """
        try:
            start = event.start.astimezone(self.zone)
            end = event.end.astimezone(self.zone)
        except OverflowError:
            logger.warning(
                f"Skipping event '{event.title}': date out of range in {self.timezone_name}"
            )
            return []

        # Same-zone datetimes compare by wall clock, so compare instants
        if (end.timestamp() < self.window_start.timestamp()
                or start.timestamp() >= self.window_end.timestamp()):
            return []

        start_day = start.date()
        end_day = end.date()

        if start_day == end_day:
            return [(start_day, self._segment(event, start, end, cross_day=False))]

        first_day = self.window_start.date()
        segments = []
        if start_day >= first_day:
            segments.append(
                (start_day, self._segment(event, start, end_of_day(start_day, self.zone), cross_day=True))
            )

        current_day = max(start_day + timedelta(days=1), first_day)
        while current_day <= end_day:
            day_start = start_of_day(current_day, self.zone)
            if day_start.timestamp() >= self.window_end.timestamp():
                break

            day_end = end if current_day == end_day else end_of_day(current_day, self.zone)
            segments.append(
                (current_day, self._segment(event, day_start, day_end, cross_day=True))
            )
            current_day += timedelta(days=1)

        return segments

    def _segment(
        self,
        event: NormalizedEvent,
        start: datetime,
        end: datetime,
        cross_day: bool
    ) -> DaySegment:
        return DaySegment(
            title=event.title,
            start=start,
            end=end,
            description=event.description,
            is_full_day=event.is_all_day,
            cross_day=cross_day,
            timezone=self.timezone_name
        )

    @staticmethod
    def sort_segments(segments: List[DaySegment]) -> List[DaySegment]:
        """All-day segments first in feed order, then timed segments by start instant."""
        return sorted(
            segments,
            key=lambda segment: (0,) if segment.is_full_day else (1, segment.start.timestamp())
        )


def build_agenda(
    feed_text: str,
    days: int = DEFAULT_DAYS,
    timezone_name: str = UTC_ZONE_NAME,
    start_from: str = START_FROM_NOW,
    source_url: Optional[str] = None,
    now: Optional[datetime] = None
) -> AgendaResult:
    """
    Turn ICS feed text into a day-grouped agenda.

    Pure function of its arguments: no I/O, no shared state. Pass ``now``
    for deterministic results.

    Args:
        feed_text: Raw ICS feed text
        days: Number of days in the window
        timezone_name: Display timezone
        start_from: "now" or ISO date for the window start
        source_url: Feed URL (only its hostname is echoed)
        now: Reference instant

    Returns:
        AgendaResult
    """
    builder = AgendaBuilder(
        timezone_name=timezone_name,
        days=days,
        start_from=start_from,
        now=now
    )

    raw_events = IcsParser().parse(feed_text)
    events = EventFormatter().format_events(raw_events, builder.now)

    return builder.build(events, source_url=source_url)
