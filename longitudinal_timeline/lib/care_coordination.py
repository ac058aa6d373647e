"""
Care Coordination, Data Completeness and Quality Metrics

Timeline-level views that describe how well the record was captured and how
care was delivered, rather than how the disease behaved:

  - analyze_care_coordination: source-system interactions within 7 days,
    coordination score, temporal gaps in care
  - analyze_data_completeness: expected vs. present source systems, missing
    data types, data quality score
  - calculate_quality_metrics: temporal consistency, event completeness,
    source reliability, clinical relevance
  - assess_care_continuity: gap count, provider changes
  - identify_key_milestones: milestone events with impact score and rationale
  - identify_clinical_decision_points: treatment initiations, line changes,
    biomarker-guided selections

All functions take the date-sorted (enriched) event list.
"""

import logging
from dataclasses import fields
from itertools import permutations
from statistics import mean
from typing import Any, Dict, List, Sequence

from .clinical_event import AnyEvent, EventCategory, EventKind, Importance
from .clinical_vocabulary import (
    DEFAULT_SOURCE_RELIABILITY,
    EXPECTED_SOURCE_SYSTEMS,
    MILESTONE_RATIONALE,
    SOURCE_RELIABILITY,
)
from .date_resolution import days_between, format_date

logger = logging.getLogger(__name__)


DEFAULT_INTERACTION_WINDOW_DAYS = 7
DEFAULT_CARE_GAP_DAYS = 30
DEFAULT_MILESTONE_LOOKAHEAD = 5
MAX_INTERACTIONS_PER_PAIR = 10

MILESTONE_KINDS = (
    EventKind.DIAGNOSIS,
    EventKind.TREATMENT_START,
    EventKind.GENOMICS,
    EventKind.TRIAL_ENROLLMENT,
)

MILESTONE_IMPACT_WEIGHTS = {
    Importance.CRITICAL: 0.3,
    Importance.HIGH: 0.2,
}
DEFAULT_MILESTONE_IMPACT_WEIGHT = 0.1


def detail_richness(event: AnyEvent) -> int:
    """Number of populated fields in the event's details payload."""
    return sum(1 for f in fields(event.details) if getattr(event.details, f.name) not in (None, (), ''))


# ============================================================================
# CARE COORDINATION
# ============================================================================

def identify_care_gaps(events: Sequence[AnyEvent], gap_days: int = DEFAULT_CARE_GAP_DAYS) -> List[Dict[str, Any]]:
    """Consecutive events more than gap_days apart."""
    gaps = []
    for previous, current in zip(events, events[1:]):
        duration = days_between(current.date, previous.date)
        if duration > gap_days:
            gaps.append({
                'type': 'temporal_gap',
                'duration_days': duration,
                'start_date': format_date(previous.date),
                'end_date': format_date(current.date),
            })
    return gaps


def count_source_interactions(
    events: Sequence[AnyEvent],
    window_days: int = DEFAULT_INTERACTION_WINDOW_DAYS
) -> Dict[str, int]:
    """
    Event pairs from two different source systems within window_days.

    Keys are ordered 'SOURCE_A-SOURCE_B' pairs, both orders present.
    """
    by_source: Dict[str, List[AnyEvent]] = {}
    for event in events:
        by_source.setdefault(event.source_system, []).append(event)

    interactions = {}
    for first, second in permutations(by_source, 2):
        interactions[f"{first}-{second}"] = sum(
            1
            for a in by_source[first]
            for b in by_source[second]
            if abs(days_between(a.date, b.date)) <= window_days
        )
    return interactions


def coordination_score(interactions: Dict[str, int]) -> float:
    if not interactions:
        return 0.0
    total = sum(interactions.values())
    return round(min(1.0, total / (len(interactions) * MAX_INTERACTIONS_PER_PAIR)), 4)


def analyze_care_coordination(
    events: Sequence[AnyEvent],
    window_days: int = DEFAULT_INTERACTION_WINDOW_DAYS,
    gap_days: int = DEFAULT_CARE_GAP_DAYS
) -> Dict[str, Any]:
    sources = sorted({e.source_system for e in events})
    interactions = count_source_interactions(events, window_days)
    return {
        'data_sources': len(sources),
        'source_types': sources,
        'interactions': interactions,
        'coordination_score': coordination_score(interactions),
        'gaps': identify_care_gaps(events, gap_days),
    }


# ============================================================================
# DATA COMPLETENESS
# ============================================================================

def _has_kind(events: Sequence[AnyEvent], *kinds: EventKind) -> bool:
    return any(e.kind in kinds for e in events)


def _has_mutations(events: Sequence[AnyEvent]) -> bool:
    return any(e.kind == EventKind.GENOMICS and e.details.mutation_count > 0 for e in events)


def identify_missing_data_types(events: Sequence[AnyEvent]) -> List[str]:
    missing = []
    if not _has_kind(events, EventKind.IMAGING):
        missing.append('imaging_studies')
    if not _has_kind(events, EventKind.LAB_RESULT):
        missing.append('laboratory_results')
    if not _has_kind(events, EventKind.PATHOLOGY_COLLECTION, EventKind.PATHOLOGY_REPORT):
        missing.append('pathology_reports')
    if not _has_mutations(events):
        missing.append('genomic_data')
    return missing


def calculate_data_quality_score(events: Sequence[AnyEvent]) -> float:
    """0.5 + 0.1 per present data type + up to 0.2 for detail richness, capped at 1."""
    if not events:
        return 0.0
    score = 0.5
    score += 0.1 * (4 - len(identify_missing_data_types(events)))
    score += min(0.2, mean(detail_richness(e) for e in events) / 10)
    return round(min(1.0, score), 4)


def analyze_data_completeness(events: Sequence[AnyEvent]) -> Dict[str, Any]:
    present = sorted({e.source_system for e in events})
    expected_present = [s for s in EXPECTED_SOURCE_SYSTEMS if s in present]
    return {
        'completeness_ratio': round(len(expected_present) / len(EXPECTED_SOURCE_SYSTEMS), 4),
        'available_sources': present,
        'missing_sources': [s for s in EXPECTED_SOURCE_SYSTEMS if s not in present],
        'missing_data_types': identify_missing_data_types(events),
        'data_quality_score': calculate_data_quality_score(events),
    }


# ============================================================================
# QUALITY METRICS / CONTINUITY
# ============================================================================

def assess_temporal_consistency(events: Sequence[AnyEvent]) -> Dict[str, Any]:
    inconsistencies = sum(1 for previous, current in zip(events, events[1:]) if current.date < previous.date)
    score = max(0.0, 1 - inconsistencies / len(events)) if events else 0.0
    return {'score': round(score, 4), 'inconsistencies': inconsistencies}


def assess_event_completeness(events: Sequence[AnyEvent]) -> Dict[str, Any]:
    complete = [e for e in events if e.title and e.description and detail_richness(e) > 0]
    return {
        'score': round(len(complete) / len(events), 4) if events else 0.0,
        'complete_events': len(complete),
        'total_events': len(events),
    }


def assess_source_reliability(events: Sequence[AnyEvent]) -> Dict[str, Any]:
    breakdown: Dict[str, Dict[str, Any]] = {}
    for event in events:
        entry = breakdown.setdefault(event.source_system, {
            'count': 0,
            'reliability': SOURCE_RELIABILITY.get(event.source_system, DEFAULT_SOURCE_RELIABILITY),
        })
        entry['count'] += 1

    scores = [SOURCE_RELIABILITY.get(e.source_system, DEFAULT_SOURCE_RELIABILITY) for e in events]
    return {
        'score': round(mean(scores), 4) if scores else 0.0,
        'source_breakdown': breakdown,
    }


def assess_clinical_relevance(events: Sequence[AnyEvent]) -> Dict[str, Any]:
    relevant = [
        e for e in events
        if e.importance in (Importance.HIGH, Importance.CRITICAL)
        or e.category in (EventCategory.TREATMENT, EventCategory.DIAGNOSIS)
    ]
    return {
        'score': round(len(relevant) / len(events), 4) if events else 0.0,
        'relevant_events': len(relevant),
        'total_events': len(events),
    }


def calculate_quality_metrics(events: Sequence[AnyEvent]) -> Dict[str, Any]:
    return {
        'temporal_consistency': assess_temporal_consistency(events),
        'event_completeness': assess_event_completeness(events),
        'source_reliability': assess_source_reliability(events),
        'clinical_relevance': assess_clinical_relevance(events),
    }


def identify_provider_changes(events: Sequence[AnyEvent]) -> List[Dict[str, Any]]:
    """A change is recorded the first time each new provider appears."""
    providers: List[str] = []
    changes = []
    for event in events:
        provider = getattr(event.details, 'provider', None)
        if not provider or provider in providers:
            continue
        providers.append(provider)
        if len(providers) > 1:
            changes.append({'date': format_date(event.date), 'from': providers[-2], 'to': provider})
    return changes


def assess_care_continuity(events: Sequence[AnyEvent], gap_days: int = DEFAULT_CARE_GAP_DAYS) -> Dict[str, Any]:
    gaps = identify_care_gaps(events, gap_days)
    return {
        'continuity_score': round(max(0.0, 1 - len(gaps) * 0.1), 4),
        'care_gaps': len(gaps),
        'provider_changes': len(identify_provider_changes(events)),
        'average_gap_days': round(mean(g['duration_days'] for g in gaps), 1) if gaps else 0,
    }


# ============================================================================
# MILESTONES / DECISION POINTS
# ============================================================================

def assess_milestone_impact(
    milestone: AnyEvent,
    events: Sequence[AnyEvent],
    lookahead: int = DEFAULT_MILESTONE_LOOKAHEAD
) -> Dict[str, Any]:
    """Weighted importance of the next `lookahead` events after the milestone date."""
    following = [e for e in events if e.date > milestone.date][:lookahead]
    score = sum(MILESTONE_IMPACT_WEIGHTS.get(e.importance, DEFAULT_MILESTONE_IMPACT_WEIGHT) for e in following)

    if milestone.kind == EventKind.DIAGNOSIS:
        impact_type = 'diagnostic'
    elif milestone.kind == EventKind.TREATMENT_START:
        impact_type = 'therapeutic'
    else:
        impact_type = 'other'

    return {
        'score': round(min(1.0, score), 4),
        'affected_events': len(following),
        'impact_type': impact_type,
    }


def identify_key_milestones(
    events: Sequence[AnyEvent],
    lookahead: int = DEFAULT_MILESTONE_LOOKAHEAD
) -> List[Dict[str, Any]]:
    milestones = []
    for event in events:
        if event.importance != Importance.CRITICAL and event.kind not in MILESTONE_KINDS:
            continue
        milestones.append({
            'event_id': event.event_id,
            'kind': event.kind.value,
            'date': format_date(event.date),
            'title': event.title,
            'description': event.description,
            'importance': event.importance.value,
            'impact': assess_milestone_impact(event, events, lookahead),
            'clinical_rationale': MILESTONE_RATIONALE.get(event.kind.value, 'Significant clinical event'),
        })
    logger.debug(f"Identified {len(milestones)} key milestones")
    return milestones


def _regimen_text(event: AnyEvent) -> str:
    return event.details.regimen or event.details.treatment_type or 'treatment'


def identify_clinical_decision_points(events: Sequence[AnyEvent]) -> List[Dict[str, Any]]:
    """
    Decision points in timeline order.

    Every treatment start is an initiation. Starts beyond first line are also
    line changes, and starts preceded by a genomics report with actionable
    mutations are biomarker-guided.
    """
    decisions = []
    previous_start = None
    for event in events:
        if event.kind != EventKind.TREATMENT_START:
            continue
        details = event.details
        base = {'event_id': event.event_id, 'date': format_date(event.date)}

        decisions.append(dict(
            base,
            decision_type='treatment_initiation',
            description=f"Started {_regimen_text(event)}",
            line=details.line,
            intent=details.intent,
            rationale='Based on staging and molecular profile',
        ))

        if details.line > 1:
            decisions.append(dict(
                base,
                decision_type='line_change',
                description=f"Changed to {details.line_label or f'line {details.line}'} therapy: {_regimen_text(event)}",
                previous_treatment=_regimen_text(previous_start) if previous_start is not None else None,
                rationale='Treatment change after prior line of therapy',
            ))

        genes = [
            mutation.gene
            for genomic in events
            if genomic.kind == EventKind.GENOMICS and genomic.date <= event.date
            for mutation in genomic.details.actionable_mutations
        ]
        if genes:
            decisions.append(dict(
                base,
                decision_type='biomarker_guided',
                description=f"{_regimen_text(event)} selected with actionable {', '.join(genes)}",
                biomarkers=genes,
                rationale='Actionable genomic alterations available at treatment selection',
            ))
        previous_start = event

    return decisions
