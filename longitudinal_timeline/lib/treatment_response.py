"""
Treatment Response Analysis for the Longitudinal Timeline

Builds one TreatmentPeriod per treatment course and scores its effectiveness:

    score = 0.5
          + clinical response   (complete 0.4 / partial 0.3 / stable 0.1)
          + imaging response    (improving 0.2 / stable 0.1)
          + biomarker response  (improving 0.1)
    clamped to [0, 1]

Toxicity severity is reported beside the score and never changes it.

Also maps the treatment journey (lines, types, durations, response rates) and
links post-treatment imaging back to the most recent treatment.
"""

import logging
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta
from statistics import mean
from typing import Any, Dict, List, Optional, Sequence, Tuple

from .biomarker_trends import analyze_biomarker_trends
from .clinical_event import AnyEvent, EventKind, ResponseCategory
from .date_resolution import days_between
from .imaging_response import summarize_imaging_response

logger = logging.getLogger(__name__)


DEFAULT_FOLLOW_UP_WINDOW_DAYS = 365
DEFAULT_BIOMARKER_RESPONSE_THRESHOLD_PERCENT = 20.0

CLINICAL_RESPONSE_WEIGHTS = {
    ResponseCategory.COMPLETE_RESPONSE: 0.4,
    ResponseCategory.PARTIAL_RESPONSE: 0.3,
    ResponseCategory.STABLE_DISEASE: 0.1,
}
IMAGING_RESPONSE_WEIGHTS = {'improving': 0.2, 'stable': 0.1}
BIOMARKER_RESPONSE_WEIGHT = 0.1

# CR > PR > SD > PD
RESPONSE_HIERARCHY = {
    ResponseCategory.COMPLETE_RESPONSE: 4,
    ResponseCategory.PARTIAL_RESPONSE: 3,
    ResponseCategory.STABLE_DISEASE: 2,
    ResponseCategory.PROGRESSIVE_DISEASE: 1,
}


@dataclass
class TreatmentPeriod:
    """
    One treatment course with the evidence observed during it.

    Attributes:
        start_event: treatment-start event
        end_event: treatment-end event, None for ongoing courses
        adverse_events: adverse-event events of this course
        window_events: other events between start and end (or follow-up window)
        imaging_response: improving | progressing | stable | indeterminate | no-imaging
        biomarker_response: improving | declining | stable | no-biomarkers
        toxicity_severity: none | mild | moderate | severe
        clinical_response: Response text recorded at course end
        effectiveness: 0-1 score from score_treatment_period
    """
    start_event: AnyEvent
    end_event: Optional[AnyEvent] = None
    adverse_events: Tuple[AnyEvent, ...] = ()
    window_events: Tuple[AnyEvent, ...] = ()
    imaging_response: str = 'no-imaging'
    biomarker_response: str = 'no-biomarkers'
    toxicity_severity: str = 'none'
    clinical_response: Optional[str] = None
    effectiveness: Optional[float] = None
    biomarker_changes: Dict[str, Optional[float]] = field(default_factory=dict)

    @property
    def course_index(self) -> int:
        return self.start_event.details.course_index

    @property
    def duration_days(self) -> Optional[int]:
        if self.end_event is None:
            return None
        return self.end_event.details.duration_days

    @property
    def status(self) -> str:
        return 'completed' if self.end_event is not None else 'ongoing'

    def to_dict(self) -> Dict[str, Any]:
        details = self.start_event.details
        return {
            'treatment_id': details.treatment_id,
            'course_index': details.course_index,
            'treatment_type': details.treatment_type,
            'regimen': details.regimen,
            'line': details.line,
            'line_label': details.line_label,
            'intent': details.intent,
            'start_date': self.start_event.date.date().isoformat(),
            'end_date': self.end_event.date.date().isoformat() if self.end_event else None,
            'status': self.status,
            'duration_days': self.duration_days,
            'start_event_id': self.start_event.event_id,
            'end_event_id': self.end_event.event_id if self.end_event else None,
            'adverse_events': [
                {'event_id': e.event_id, 'description': e.details.description, 'severity': e.details.severity}
                for e in self.adverse_events
            ],
            'clinical_response': self.clinical_response,
            'imaging_response': self.imaging_response,
            'biomarker_response': self.biomarker_response,
            'biomarker_changes': dict(self.biomarker_changes),
            'toxicity_severity': self.toxicity_severity,
            'effectiveness': self.effectiveness,
        }


def classify_toxicity(adverse_events: Sequence[AnyEvent]) -> str:
    """none / severe if any severe / moderate if most are moderate / mild."""
    if not adverse_events:
        return 'none'
    severities = [e.details.severity for e in adverse_events]
    if 'severe' in severities:
        return 'severe'
    if severities.count('moderate') > len(severities) / 2:
        return 'moderate'
    return 'mild'


def classify_biomarker_response(
    lab_events: Sequence[AnyEvent],
    threshold_percent: float = DEFAULT_BIOMARKER_RESPONSE_THRESHOLD_PERCENT
) -> Tuple[str, Dict[str, Optional[float]]]:
    """
    Biomarker response across the labs of a treatment window.

    Returns:
        (classification, {test_name: change_percent}) where classification is
        improving / declining / stable / no-biomarkers
    """
    trends = {
        name: result for name, result in analyze_biomarker_trends(lab_events, threshold_percent).items()
        if result.status == 'analyzed'
    }
    if not trends:
        return 'no-biomarkers', {}

    directions = [result.direction for result in trends.values()]
    improving = directions.count('improving')
    declining = directions.count('declining')
    changes = {name: result.change_percent for name, result in trends.items()}
    if improving > declining:
        return 'improving', changes
    if declining > improving:
        return 'declining', changes
    return 'stable', changes


def score_treatment_period(period: TreatmentPeriod) -> float:
    """Effectiveness of one course, always within [0, 1]."""
    score = 0.5
    category = ResponseCategory.from_text(period.clinical_response)
    score += CLINICAL_RESPONSE_WEIGHTS.get(category, 0.0)
    score += IMAGING_RESPONSE_WEIGHTS.get(period.imaging_response, 0.0)
    if period.biomarker_response == 'improving':
        score += BIOMARKER_RESPONSE_WEIGHT
    return round(max(0.0, min(1.0, score)), 4)


def identify_treatment_periods(
    events: Sequence[AnyEvent],
    follow_up_window_days: int = DEFAULT_FOLLOW_UP_WINDOW_DAYS,
    biomarker_threshold_percent: float = DEFAULT_BIOMARKER_RESPONSE_THRESHOLD_PERCENT,
    as_of: Optional[datetime] = None
) -> List[TreatmentPeriod]:
    """
    One scored TreatmentPeriod per treatment-start event, in timeline order.

    The observation window runs from course start to course end. Ongoing
    courses are observed up to as_of when it falls after the start, else to
    start + follow_up_window_days. Imaging counts only after the start date;
    labs count from the start date on.
    """
    starts = [e for e in events if e.kind == EventKind.TREATMENT_START]
    ends = {e.details.course_index: e for e in events if e.kind == EventKind.TREATMENT_END}
    adverse = {}
    for event in events:
        if event.kind == EventKind.ADVERSE_EVENT:
            adverse.setdefault(event.details.course_index, []).append(event)

    periods = []
    for start in starts:
        course_index = start.details.course_index
        end = ends.get(course_index)
        if end is not None and end.date >= start.date:
            window_end = end.date
        elif as_of is not None and as_of > start.date:
            window_end = as_of
        else:
            window_end = start.date + timedelta(days=follow_up_window_days)

        window = tuple(
            e for e in events
            if start.date <= e.date <= window_end and e.event_id != start.event_id
        )
        imaging = [e for e in window if e.kind == EventKind.IMAGING and e.date > start.date]
        labs = [e for e in window if e.kind == EventKind.LAB_RESULT]
        biomarker_response, changes = classify_biomarker_response(labs, biomarker_threshold_percent)
        course_adverse = tuple(adverse.get(course_index, []))

        period = TreatmentPeriod(
            start_event=start,
            end_event=end,
            adverse_events=course_adverse,
            window_events=window,
            imaging_response=summarize_imaging_response(imaging),
            biomarker_response=biomarker_response,
            toxicity_severity=classify_toxicity(course_adverse),
            clinical_response=end.details.response if end is not None else None,
            biomarker_changes=changes,
        )
        periods.append(replace(period, effectiveness=score_treatment_period(period)))

    logger.debug(f"Identified {len(periods)} treatment periods")
    return periods


def best_observed_response(events: Sequence[AnyEvent]) -> Optional[ResponseCategory]:
    """Best response recorded at any course end (CR > PR > SD > PD)."""
    best = None
    for event in events:
        if event.kind != EventKind.TREATMENT_END:
            continue
        category = ResponseCategory.from_text(event.details.response)
        if category is None:
            continue
        if best is None or RESPONSE_HIERARCHY[category] > RESPONSE_HIERARCHY[best]:
            best = category
    return best


def interpret_effectiveness(score: float) -> str:
    if score >= 0.8:
        return 'Highly effective treatment course'
    if score >= 0.6:
        return 'Moderately effective treatment course'
    if score >= 0.4:
        return 'Limited treatment effectiveness'
    return 'Poor treatment response'


def classify_treatment_sequence(scores: Sequence[float]) -> str:
    """single-treatment / improving / declining / consistent / fluctuating / no-treatments."""
    if not scores:
        return 'no-treatments'
    if len(scores) == 1:
        return 'single-treatment'
    pairs = list(zip(scores, scores[1:]))
    if all(later > earlier for earlier, later in pairs):
        return 'improving'
    if all(later < earlier for earlier, later in pairs):
        return 'declining'
    if all(later == earlier for earlier, later in pairs):
        return 'consistent'
    return 'fluctuating'


def analyze_treatment_effectiveness(periods: Sequence[TreatmentPeriod]) -> Dict[str, Any]:
    """Aggregate effectiveness over all courses."""
    if not periods:
        return {'status': 'no-treatments', 'overall_effectiveness': None}

    scores = [p.effectiveness for p in periods]
    overall = round(mean(scores), 4)
    best_period = max(periods, key=lambda p: p.effectiveness)
    best_response = best_observed_response([p.end_event for p in periods if p.end_event is not None])
    return {
        'status': 'analyzed',
        'overall_effectiveness': overall,
        'interpretation': interpret_effectiveness(overall),
        'best_response': best_response.value if best_response else None,
        'most_effective_treatment': best_period.start_event.description,
        'treatment_sequence': classify_treatment_sequence(scores),
        'toxicity_profile': {p.start_event.event_id: p.toxicity_severity for p in periods},
    }


def map_treatment_journey(periods: Sequence[TreatmentPeriod]) -> Dict[str, Any]:
    """Treatments, lines, types, durations and response rates."""
    durations = [p.duration_days for p in periods if p.duration_days is not None]
    responses = [ResponseCategory.from_text(p.clinical_response) for p in periods if p.clinical_response]

    response_rates = {}
    if responses:
        for category in ResponseCategory:
            share = sum(1 for r in responses if r == category) / len(responses) * 100
            response_rates[category.value] = round(share, 1)
        unclassified = sum(1 for r in responses if r is None)
        if unclassified:
            response_rates['unclassified'] = round(unclassified / len(responses) * 100, 1)

    lines = sorted(
        (
            {
                'line': p.start_event.details.line,
                'label': p.start_event.details.line_label,
                'treatment_type': p.start_event.details.treatment_type,
                'regimen': p.start_event.details.regimen,
                'intent': p.start_event.details.intent,
                'start_date': p.start_event.date.date().isoformat(),
            }
            for p in periods
        ),
        key=lambda line: line['line']
    )

    return {
        'treatments': [p.to_dict() for p in periods],
        'total_treatments': len(periods),
        'treatment_lines': lines,
        'treatment_types': sorted({p.start_event.details.treatment_type for p in periods
                                   if p.start_event.details.treatment_type}),
        'average_duration_days': round(mean(durations), 1) if durations else None,
        'response_rates': response_rates,
    }


def find_recent_treatment(
    imaging_event: AnyEvent,
    events: Sequence[AnyEvent],
    window_days: int = DEFAULT_FOLLOW_UP_WINDOW_DAYS
) -> Optional[AnyEvent]:
    """
    Most recent treatment-start strictly before an imaging study.

    Only treatments within the last window_days are considered.
    """
    recent = None
    min_days_diff = None
    for event in events:
        if event.kind != EventKind.TREATMENT_START or event.date >= imaging_event.date:
            continue
        days_diff = days_between(imaging_event.date, event.date)
        if days_diff <= window_days and (min_days_diff is None or days_diff < min_days_diff):
            min_days_diff = days_diff
            recent = event
    return recent


def analyze_treatment_response(
    events: Sequence[AnyEvent],
    window_days: int = DEFAULT_FOLLOW_UP_WINDOW_DAYS
) -> List[Dict[str, Any]]:
    """
    Imaging response attributed to each treatment.

    Each imaging study is linked to the most recent treatment before it. A
    treatment's response is the imaging summary over its linked studies, with
    confidence 0.7 when follow-up imaging exists and 0.3 otherwise.
    """
    starts = [e for e in events if e.kind == EventKind.TREATMENT_START]
    linked: Dict[str, List[AnyEvent]] = {s.event_id: [] for s in starts}
    for event in events:
        if event.kind != EventKind.IMAGING:
            continue
        treatment = find_recent_treatment(event, events, window_days)
        if treatment is not None:
            linked[treatment.event_id].append(event)

    results = []
    for start in starts:
        studies = linked[start.event_id]
        results.append({
            'treatment_event_id': start.event_id,
            'treatment': start.description,
            'start_date': start.date.date().isoformat(),
            'post_treatment_studies': len(studies),
            'response': summarize_imaging_response(studies),
            'confidence': 0.7 if studies else 0.3,
            'last_assessment': studies[-1].date.date().isoformat() if studies else None,
        })
    return results
