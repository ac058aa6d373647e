"""
Disease Trajectory Analysis

Classifies the overall course of disease from marker counts and derives
supporting views over the enriched timeline:

  - overall_trajectory: progression markers (imaging with progression
    keywords, lab results trending 'declining') against response markers
    (imaging with improvement/stable keywords, course ends with complete or
    partial response). More response -> improving (0.8), more progression ->
    progressing (0.7), tie -> stable (0.6)
  - progression_free_intervals: days from each treatment start to the first
    later imaging study classified as progression, with median PFS
  - identify_disease_phases: contiguous runs of clinical phase
  - identify_stable_periods: runs of stable/improving imaging per body region
"""

import logging
from itertools import groupby
from statistics import median
from typing import Any, Dict, List, Sequence

from .biomarker_trends import TrendResult
from .clinical_event import AnyEvent, EventKind, ResponseCategory
from .clinical_vocabulary import (
    TRAJECTORY_PROGRESSION_KEYWORDS,
    TRAJECTORY_RESPONSE_KEYWORDS,
    mentions_any,
)
from .date_resolution import days_between
from .imaging_response import IMPROVEMENT, PROGRESSION, STABLE, analyze_imaging_progression
from .treatment_response import DEFAULT_FOLLOW_UP_WINDOW_DAYS, analyze_treatment_response

logger = logging.getLogger(__name__)


IMPROVING_CONFIDENCE = 0.8
PROGRESSING_CONFIDENCE = 0.7
STABLE_CONFIDENCE = 0.6


def _is_progression_marker(event: AnyEvent) -> bool:
    if event.kind == EventKind.IMAGING:
        return mentions_any(event.details.findings, TRAJECTORY_PROGRESSION_KEYWORDS)
    if event.kind == EventKind.LAB_RESULT:
        return getattr(event, 'trend', None) == 'declining'
    return False


def _is_response_marker(event: AnyEvent) -> bool:
    if event.kind == EventKind.IMAGING:
        return mentions_any(event.details.findings, TRAJECTORY_RESPONSE_KEYWORDS)
    if event.kind == EventKind.TREATMENT_END:
        category = ResponseCategory.from_text(event.details.response)
        return category in (ResponseCategory.COMPLETE_RESPONSE, ResponseCategory.PARTIAL_RESPONSE)
    return False


def overall_trajectory(events: Sequence[AnyEvent]) -> Dict[str, Any]:
    """
    Overall disease trajectory.

    An imaging study can count on both sides when its findings mention both
    progression and response terms.

    Returns:
        {'status', 'confidence', 'evidence': {...marker ids and counts}}
    """
    progression = [e.event_id for e in events if _is_progression_marker(e)]
    response = [e.event_id for e in events if _is_response_marker(e)]

    if len(response) > len(progression):
        status, confidence = 'improving', IMPROVING_CONFIDENCE
    elif len(progression) > len(response):
        status, confidence = 'progressing', PROGRESSING_CONFIDENCE
    else:
        status, confidence = 'stable', STABLE_CONFIDENCE

    return {
        'status': status,
        'confidence': confidence,
        'evidence': {
            'progression_markers': progression,
            'response_markers': response,
            'progression_count': len(progression),
            'response_count': len(response),
        },
    }


def progression_free_intervals(events: Sequence[AnyEvent]) -> Dict[str, Any]:
    """
    Progression-free interval per treatment course.

    Courses without later progression are censored at the last event date.
    Median PFS uses progressed courses only.
    """
    if not events:
        return {'intervals': [], 'median_pfs_days': None}

    last_date = max(e.date for e in events)
    progression_studies = [
        e for e in events
        if e.kind == EventKind.IMAGING and e.details.comparison_status == PROGRESSION
    ]

    intervals = []
    for start in (e for e in events if e.kind == EventKind.TREATMENT_START):
        progression = next((s for s in progression_studies if s.date > start.date), None)
        if progression is not None:
            intervals.append({
                'treatment_event_id': start.event_id,
                'treatment': start.description,
                'progressed': True,
                'days': days_between(progression.date, start.date),
                'progression_event_id': progression.event_id,
            })
        else:
            intervals.append({
                'treatment_event_id': start.event_id,
                'treatment': start.description,
                'progressed': False,
                'days': days_between(last_date, start.date),
            })

    progressed = [i['days'] for i in intervals if i['progressed']]
    return {
        'intervals': intervals,
        'median_pfs_days': median(progressed) if progressed else None,
    }


def identify_disease_phases(events: Sequence[AnyEvent]) -> List[Dict[str, Any]]:
    """Contiguous runs of clinical phase over enriched events."""
    phases = []
    enriched = [e for e in events if hasattr(e, 'clinical_phase')]
    for phase, group in groupby(enriched, key=lambda e: e.clinical_phase):
        members = list(group)
        phases.append({
            'phase': phase.value,
            'start': members[0].date.date().isoformat(),
            'end': members[-1].date.date().isoformat(),
            'event_count': len(members),
            'duration_days': days_between(members[-1].date, members[0].date),
        })
    return phases


def identify_stable_periods(events: Sequence[AnyEvent]) -> List[Dict[str, Any]]:
    """
    Runs of stable or improving imaging within each body region.

    A run starts at the reference study of its first stable comparison and
    ends at its last stable study.
    """
    by_region: Dict[str, List[AnyEvent]] = {}
    for event in events:
        if event.kind == EventKind.IMAGING:
            by_region.setdefault(event.details.body_region, []).append(event)

    periods = []
    for region, studies in by_region.items():
        run: List[AnyEvent] = []
        for position, study in enumerate(studies):
            if study.details.comparison_status in (STABLE, IMPROVEMENT):
                if not run and position > 0:
                    run.append(studies[position - 1])
                run.append(study)
                continue
            if run:
                periods.append(_stable_period(region, run))
                run = []
        if run:
            periods.append(_stable_period(region, run))

    return sorted(periods, key=lambda p: p['start'])


def _stable_period(region: str, run: List[AnyEvent]) -> Dict[str, Any]:
    return {
        'body_region': region,
        'start': run[0].date.date().isoformat(),
        'end': run[-1].date.date().isoformat(),
        'studies': len(run),
        'duration_days': days_between(run[-1].date, run[0].date),
    }


def analyze_disease_progression(
    events: Sequence[AnyEvent],
    biomarker_trends: Dict[str, TrendResult],
    follow_up_window_days: int = DEFAULT_FOLLOW_UP_WINDOW_DAYS
) -> Dict[str, Any]:
    """Bundle of progression views for the diseaseProgression output block."""
    progression_events = [
        {
            'event_id': e.event_id,
            'date': e.date.date().isoformat(),
            'description': e.description,
            'body_region': e.details.body_region,
        }
        for e in events
        if e.kind == EventKind.IMAGING and e.details.comparison_status == PROGRESSION
    ]
    biomarker_progression = [
        {'test_name': name, 'change_percent': result.change_percent}
        for name, result in biomarker_trends.items()
        if result.direction == 'declining'
    ]

    result = {
        'overall_trajectory': overall_trajectory(events),
        'imaging_progression': analyze_imaging_progression(events),
        'biomarker_progression': biomarker_progression,
        'progression_events': progression_events,
        'progression_free_intervals': progression_free_intervals(events),
        'treatment_response': analyze_treatment_response(events, follow_up_window_days),
        'disease_phases': identify_disease_phases(events),
        'stable_periods': identify_stable_periods(events),
    }
    logger.debug(f"Disease progression: {result['overall_trajectory']['status']}, "
                 f"{len(progression_events)} progression events")
    return result
