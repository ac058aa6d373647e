"""
Timeline Assembler

Sorts events chronologically (stable: equal dates keep extraction order) and
groups them into calendar-month periods. Each period carries a synthesized
summary, up to three key findings (titles of its high/critical events) and the
treatment decisions made within it.

No period is emitted for a month without events, and every event belongs to
exactly one period.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from itertools import groupby
from typing import Any, Dict, List, Optional, Sequence, Tuple

from .clinical_event import AnyEvent, EventKind, Importance

logger = logging.getLogger(__name__)


MONTH_NAMES = (
    'January', 'February', 'March', 'April', 'May', 'June',
    'July', 'August', 'September', 'October', 'November', 'December'
)
DEFAULT_KEY_FINDINGS_LIMIT = 3
RECENT_PERIOD_MONTHS = 6


def sort_events(events: Sequence[AnyEvent]) -> List[AnyEvent]:
    """Ascending by date; ties keep their input order."""
    return sorted(events, key=lambda event: event.date)


def period_label(moment: datetime) -> str:
    """Calendar month label, e.g. 'March 2024'."""
    return f"{MONTH_NAMES[moment.month - 1]} {moment.year}"


@dataclass
class Period:
    """One calendar month of the timeline."""
    label: str
    year: int
    month: int
    events: Tuple[AnyEvent, ...]
    summary: str
    key_findings: List[str] = field(default_factory=list)
    clinical_decisions: List[Dict[str, Any]] = field(default_factory=list)
    period_type: Optional[str] = None

    @property
    def start(self) -> datetime:
        return self.events[0].date

    @property
    def end(self) -> datetime:
        return self.events[-1].date

    def to_dict(self) -> Dict[str, Any]:
        result = {
            'label': self.label,
            'start': self.start.date().isoformat(),
            'end': self.end.date().isoformat(),
            'event_count': len(self.events),
            'summary': self.summary,
            'key_findings': list(self.key_findings),
            'clinical_decisions': list(self.clinical_decisions),
            'events': [event.to_dict() for event in self.events],
        }
        if self.period_type is not None:
            result['period_type'] = self.period_type
        return result


@dataclass
class Timeline:
    """Ordered sequence of periods."""
    periods: List[Period] = field(default_factory=list)

    @property
    def events(self) -> List[AnyEvent]:
        """All events in timeline order."""
        return [event for period in self.periods for event in period.events]

    def __len__(self) -> int:
        return len(self.periods)

    def to_dict(self) -> List[Dict[str, Any]]:
        return [period.to_dict() for period in self.periods]


def summarize_period(events: Sequence[AnyEvent]) -> str:
    """'<n> events across <k> categories (<c> critical)'"""
    categories = {event.category for event in events}
    critical = sum(1 for event in events if event.importance == Importance.CRITICAL)
    return f"{len(events)} events across {len(categories)} categories ({critical} critical)"


def extract_key_findings(events: Sequence[AnyEvent], limit: int = DEFAULT_KEY_FINDINGS_LIMIT) -> List[str]:
    important = [e.title for e in events if e.importance in (Importance.HIGH, Importance.CRITICAL)]
    return important[:limit]


def extract_clinical_decisions(events: Sequence[AnyEvent]) -> List[Dict[str, Any]]:
    return [
        {
            'event_id': event.event_id,
            'date': event.date.date().isoformat(),
            'decision': 'treatment_initiation',
            'description': event.description,
        }
        for event in events
        if event.kind == EventKind.TREATMENT_START
    ]


def classify_period_type(year: int, month: int, as_of: datetime) -> str:
    """current / recent (within six months) / historical / future relative to as_of."""
    months_ago = (as_of.year - year) * 12 + (as_of.month - month)
    if months_ago < 0:
        return 'future'
    if months_ago == 0:
        return 'current'
    if months_ago <= RECENT_PERIOD_MONTHS:
        return 'recent'
    return 'historical'


def assemble(
    events: Sequence[AnyEvent],
    key_findings_limit: int = DEFAULT_KEY_FINDINGS_LIMIT,
    as_of: Optional[datetime] = None
) -> Timeline:
    """
    Group events into a period-keyed Timeline.

    Args:
        events: Events or EnrichedEvents, in any order
        key_findings_limit: Maximum key findings per period
        as_of: Optional reference time; when given each period gets a period_type

    Returns:
        Timeline with periods in chronological order
    """
    ordered = sort_events(events)
    periods = []
    for (year, month), group in groupby(ordered, key=lambda event: (event.date.year, event.date.month)):
        members = tuple(group)
        periods.append(Period(
            label=period_label(members[0].date),
            year=year,
            month=month,
            events=members,
            summary=summarize_period(members),
            key_findings=extract_key_findings(members, key_findings_limit),
            clinical_decisions=extract_clinical_decisions(members),
            period_type=classify_period_type(year, month, as_of) if as_of is not None else None,
        ))

    logger.debug(f"Assembled {len(ordered)} events into {len(periods)} periods")
    return Timeline(periods=periods)
