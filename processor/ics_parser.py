"""Tokenizer and event assembler for iCalendar (ICS) feed text."""
import logging
import re
from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Optional

from processor.models import RawEvent, TemporalValue

logger = logging.getLogger(__name__)

LINE_SPLIT_PATTERN = re.compile(r'\r?\n')


@dataclass
class ParsedProperty:
    """One content line split into name, parameters and value."""
    name: str
    value: str
    parameters: Dict[str, str] = field(default_factory=dict)

    @property
    def is_date_only(self) -> bool:
        return self.parameters.get('VALUE') == 'DATE'

    @property
    def tzid(self) -> Optional[str]:
        return self.parameters.get('TZID')


def unfold_lines(ics_text: str) -> Iterator[str]:
    """
    Join physically wrapped ICS lines into logical lines.

    A line starting with a space or tab continues the previous line; its
    first character is dropped and the rest appended.

    Args:
        ics_text: Raw feed text

    Yields:
        Logical lines in feed order
    """
    current = None

    for line in LINE_SPLIT_PATTERN.split(ics_text):
        if line.startswith((' ', '\t')):
            if current is not None:
                current += line[1:]
            continue

        if current is not None:
            yield current
        current = line

    if current is not None:
        yield current


def parse_property(line: str) -> Optional[ParsedProperty]:
    """
    Parse a logical content line such as ``DTSTART;TZID=Europe/Paris:20240320T090000``.

    Args:
        line: Unfolded content line

    Returns:
        ParsedProperty, or None when the line is not a property
    """
    key, separator, value = line.partition(':')
    if not separator:
        return None

    key_parts = key.split(';')
    name = key_parts[0].strip().upper()
    if not name:
        return None

    parameters = {}
    for param in key_parts[1:]:
        param_name, has_value, param_value = param.partition('=')
        if has_value:
            parameters[param_name.strip().upper()] = param_value.strip().strip('"')

    return ParsedProperty(name=name, value=value.strip(), parameters=parameters)


class IcsParser:
    """Assembles raw VEVENT records from ICS feed text."""

    TEXT_FIELDS = {
        'SUMMARY': 'summary',
        'DESCRIPTION': 'description',
        'LOCATION': 'location',
        'UID': 'uid',
    }

    TEMPORAL_FIELDS = {
        'DTSTART': 'dtstart',
        'DTEND': 'dtend',
        'CREATED': 'created',
        'LAST-MODIFIED': 'last_modified',
    }

    def parse(self, ics_text: str) -> List[RawEvent]:
        """
        Parse feed text into raw event records.

        Properties outside a VEVENT block and unterminated blocks are
        ignored; malformed lines are skipped.

        Args:
            ics_text: Raw feed text

        Returns:
            List of RawEvent objects in feed order
        """
        events = []
        event = None
        nested = []

        for line in unfold_lines(ics_text):
            prop = parse_property(line)
            if prop is None:
                continue

            if prop.name == 'BEGIN':
                component = prop.value.upper()
                if component == 'VEVENT':
                    if event is not None:
                        logger.warning("Discarding unterminated VEVENT block")
                    event = RawEvent()
                    nested = []
                elif event is not None:
                    nested.append(component)
                continue

            if prop.name == 'END':
                component = prop.value.upper()
                if component == 'VEVENT':
                    if event is not None:
                        events.append(event)
                    event = None
                    nested = []
                elif nested and nested[-1] == component:
                    nested.pop()
                continue

            # VALARM and other sub-components keep their own properties
            if event is not None and not nested:
                self._apply_property(event, prop)

        if event is not None:
            logger.warning("Feed ended inside a VEVENT block; event dropped")

        logger.debug(f"Parsed {len(events)} VEVENT blocks")
        return events

    def _apply_property(self, event: RawEvent, prop: ParsedProperty) -> None:
        """
        Store one property on the event under construction.

        Args:
            event: Event being assembled
            prop: Parsed property line
        """
        if prop.is_date_only:
            event.is_all_day = True

        if prop.name in self.TEXT_FIELDS:
            setattr(event, self.TEXT_FIELDS[prop.name], prop.value)
        elif prop.name in self.TEMPORAL_FIELDS:
            setattr(
                event,
                self.TEMPORAL_FIELDS[prop.name],
                TemporalValue(value=prop.value, tzid=prop.tzid)
            )
        else:
            event.extra[prop.name] = prop.value
