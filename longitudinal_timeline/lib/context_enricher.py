"""
Context Enricher

Annotates each event of a sorted timeline with context derived from its
neighbours:
  - days_from_diagnosis: signed offset from the first diagnosis event (0 if none)
  - related_events: other events within +/- 7 days, labeled by a fixed
    pairwise relationship table
  - clinical_phase: pre-diagnosis / initial-workup / primary-treatment /
    active-treatment / long-term-follow-up by days_from_diagnosis
  - trend: lab results only, against the previous result of the same test

Every derivation is a pure function of (sorted_events, index); no event is
modified.
"""

import logging
from datetime import datetime
from typing import List, Optional, Sequence, Tuple

from .clinical_event import ClinicalPhase, EnrichedEvent, Event, EventKind, RelatedEvent
from .clinical_vocabulary import (
    DEFAULT_RELATIONSHIP,
    RELATIONSHIP_TABLE,
    classify_change,
    normalize_test_name,
)
from .date_resolution import days_between

logger = logging.getLogger(__name__)


DEFAULT_RELATED_WINDOW_DAYS = 7
DEFAULT_TREND_THRESHOLD_PERCENT = 10.0
DEFAULT_PHASE_THRESHOLDS = (30, 90, 365)


def find_diagnosis_date(sorted_events: Sequence[Event]) -> Optional[datetime]:
    for event in sorted_events:
        if event.kind == EventKind.DIAGNOSIS:
            return event.date
    return None


def classify_clinical_phase(days_from_diagnosis: int,
                            thresholds: Tuple[int, int, int] = DEFAULT_PHASE_THRESHOLDS) -> ClinicalPhase:
    workup_end, primary_end, active_end = thresholds
    if days_from_diagnosis < 0:
        return ClinicalPhase.PRE_DIAGNOSIS
    if days_from_diagnosis <= workup_end:
        return ClinicalPhase.INITIAL_WORKUP
    if days_from_diagnosis <= primary_end:
        return ClinicalPhase.PRIMARY_TREATMENT
    if days_from_diagnosis <= active_end:
        return ClinicalPhase.ACTIVE_TREATMENT
    return ClinicalPhase.LONG_TERM_FOLLOW_UP


def relationship_label(this_kind: EventKind, other_kind: EventKind) -> str:
    return RELATIONSHIP_TABLE.get((this_kind.value, other_kind.value), DEFAULT_RELATIONSHIP)


def find_related_events(sorted_events: Sequence[Event], index: int,
                        window_days: int = DEFAULT_RELATED_WINDOW_DAYS) -> Tuple[RelatedEvent, ...]:
    """
    Other events within the window, in timeline order.

    Walks outward from index and stops at the first event beyond the window on
    each side, relying on the list being date-sorted.
    """
    current = sorted_events[index]

    def related(other: Event) -> RelatedEvent:
        return RelatedEvent(
            event_id=other.event_id,
            kind=other.kind,
            days_difference=days_between(other.date, current.date),
            relationship=relationship_label(current.kind, other.kind),
        )

    before = []
    for position in range(index - 1, -1, -1):
        other = sorted_events[position]
        if abs(days_between(other.date, current.date)) > window_days:
            break
        before.append(related(other))

    after = []
    for position in range(index + 1, len(sorted_events)):
        other = sorted_events[position]
        if abs(days_between(other.date, current.date)) > window_days:
            break
        after.append(related(other))

    return tuple(reversed(before)) + tuple(after)


def compute_lab_trend(sorted_events: Sequence[Event], index: int,
                      threshold_percent: float = DEFAULT_TREND_THRESHOLD_PERCENT) -> Optional[str]:
    """
    Trend tag for a lab-result event.

    Returns:
        None for non-lab or non-numeric events; 'baseline' for the first
        numeric measurement of a test; otherwise the directional change against
        the immediately preceding result of the same test name
    """
    event = sorted_events[index]
    if event.kind != EventKind.LAB_RESULT or event.details.numeric_value is None:
        return None

    test_name = normalize_test_name(event.details.test_name)
    previous = None
    for position in range(index - 1, -1, -1):
        candidate = sorted_events[position]
        if candidate.kind == EventKind.LAB_RESULT and normalize_test_name(candidate.details.test_name) == test_name:
            previous = candidate
            break

    if previous is None or previous.details.numeric_value is None:
        return 'baseline'

    current_value = event.details.numeric_value
    previous_value = previous.details.numeric_value
    if previous_value == 0:
        if current_value == 0:
            return 'stable'
        change_percent = float('inf') if current_value > 0 else float('-inf')
    else:
        change_percent = (current_value - previous_value) / abs(previous_value) * 100
    return classify_change(event.details.test_name, change_percent, threshold_percent)


def enrich_event(
    sorted_events: Sequence[Event],
    index: int,
    diagnosis_date: Optional[datetime],
    window_days: int = DEFAULT_RELATED_WINDOW_DAYS,
    trend_threshold_percent: float = DEFAULT_TREND_THRESHOLD_PERCENT,
    phase_thresholds: Tuple[int, int, int] = DEFAULT_PHASE_THRESHOLDS
) -> EnrichedEvent:
    """Derive the context fields of sorted_events[index]."""
    event = sorted_events[index]
    days = days_between(event.date, diagnosis_date) if diagnosis_date is not None else 0
    return EnrichedEvent(
        event=event,
        days_from_diagnosis=days,
        related_events=find_related_events(sorted_events, index, window_days),
        clinical_phase=classify_clinical_phase(days, phase_thresholds),
        trend=compute_lab_trend(sorted_events, index, trend_threshold_percent),
        sequence_index=index,
    )


def enrich(
    sorted_events: Sequence[Event],
    window_days: int = DEFAULT_RELATED_WINDOW_DAYS,
    trend_threshold_percent: float = DEFAULT_TREND_THRESHOLD_PERCENT,
    phase_thresholds: Tuple[int, int, int] = DEFAULT_PHASE_THRESHOLDS
) -> List[EnrichedEvent]:
    """
    Enrich every event of a date-sorted list, preserving order.

    Args:
        sorted_events: Events sorted ascending by date
        window_days: Related-event window
        trend_threshold_percent: Minimum change for a non-stable lab trend
        phase_thresholds: Upper bounds (days) of workup, primary and active phases

    Returns:
        EnrichedEvents in the same order
    """
    diagnosis_date = find_diagnosis_date(sorted_events)
    enriched = [
        enrich_event(sorted_events, index, diagnosis_date, window_days,
                     trend_threshold_percent, phase_thresholds)
        for index in range(len(sorted_events))
    ]
    if diagnosis_date is None and enriched:
        logger.debug("No diagnosis event; days_from_diagnosis defaults to 0")
    return enriched
