"""Event formatter mapping raw VEVENT records to normalized events."""
import logging
from datetime import datetime
from typing import List, Optional

from processor.date_resolver import UTC_ZONE_NAME, resolve_ics_datetime
from processor.models import NormalizedEvent, RawEvent, TemporalValue

logger = logging.getLogger(__name__)


class EventFormatter:
    """Formatter for turning raw ICS events into canonical events."""

    def format_events(
        self,
        raw_events: List[RawEvent],
        now: datetime
    ) -> List[NormalizedEvent]:
        """
        Format a batch of raw events.

        Args:
            raw_events: Raw events from IcsParser
            now: Reference instant for missing or malformed timestamps

        Returns:
            List of NormalizedEvent objects
        """
        formatted_events = []

        for raw_event in raw_events:
            try:
                formatted_events.append(self.format_event(raw_event, now))
            except Exception as e:
                logger.warning(
                    f"Failed to format event '{raw_event.summary or raw_event.uid}': {e}"
                )
                continue

        logger.info(
            f"Formatted {len(formatted_events)} events out of "
            f"{len(raw_events)} parsed events"
        )
        return formatted_events

    def format_event(self, raw_event: RawEvent, now: datetime) -> NormalizedEvent:
        """
        Format a single raw event.

        An event without DTEND is zero-length at its start. DTEND falls
        back to the DTSTART zone when it carries no TZID of its own.

        Args:
            raw_event: Raw event record
            now: Reference instant

        Returns:
            NormalizedEvent object
        """
        dtstart = raw_event.dtstart
        dtend = raw_event.dtend or dtstart
        start_zone = dtstart.tzid if dtstart else None
        end_zone = (raw_event.dtend.tzid if raw_event.dtend else None) or start_zone

        start = resolve_ics_datetime(
            dtstart.value if dtstart else None,
            raw_event.is_all_day,
            start_zone,
            now
        )
        end = resolve_ics_datetime(
            dtend.value if dtend else None,
            raw_event.is_all_day,
            end_zone,
            now
        )

        return NormalizedEvent(
            title=raw_event.summary or '',
            start=start,
            end=end,
            description=raw_event.description or '',
            location=raw_event.location or '',
            is_all_day=raw_event.is_all_day,
            timezone=start_zone or UTC_ZONE_NAME,
            uid=raw_event.uid or '',
            created=self._resolve_optional(raw_event.created, now),
            last_modified=self._resolve_optional(raw_event.last_modified, now)
        )

    def _resolve_optional(
        self,
        value: Optional[TemporalValue],
        now: datetime
    ) -> Optional[datetime]:
        """Resolve CREATED/LAST-MODIFIED as UTC timestamps; absent stays None."""
        if value is None or not value.value:
            return None
        return resolve_ics_datetime(value.value, False, None, now)
