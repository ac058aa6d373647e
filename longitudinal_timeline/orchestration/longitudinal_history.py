"""
Longitudinal History Pipeline

Runs one Canonical Record through every stage in fixed order:

    extract -> sort -> enrich -> assemble -> analytics -> risk

Stages are pure and synchronous; the pipeline only wires them together,
converts an empty record into an EmptyHistory, and collects data quality
warnings. Identical input (and as_of) gives identical output.

Usage:
    from longitudinal_timeline.orchestration.longitudinal_history import generate_longitudinal_history

    history = generate_longitudinal_history(record_dict)
    history.to_dict()['insights']['risk_assessment']['risk_category']
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from ..lib.biomarker_trends import TrendResult, analyze_biomarker_trends, summarize_biomarker_trends
from ..lib.canonical_record import CanonicalRecord
from ..lib.care_coordination import (
    analyze_care_coordination,
    analyze_data_completeness,
    assess_care_continuity,
    calculate_quality_metrics,
    identify_clinical_decision_points,
    identify_key_milestones,
)
from ..lib.clinical_event import EnrichedEvent, Event
from ..lib.context_enricher import enrich
from ..lib.date_resolution import days_between, format_date
from ..lib.disease_trajectory import analyze_disease_progression, overall_trajectory
from ..lib.event_extractor import extract_events
from ..lib.exception_handling import DataQualityTracker, EmptyRecordError
from ..lib.risk_model import RiskAssessment, assess_risk
from ..lib.structured_logging import get_logger
from ..lib.timeline_assembler import Timeline, assemble, sort_events
from ..lib.treatment_response import (
    TreatmentPeriod,
    analyze_treatment_effectiveness,
    identify_treatment_periods,
    map_treatment_journey,
)
from .engine_config import EngineConfig

DAYS_PER_MONTH = 30


def calculate_timespan(sorted_events: List[Any]) -> Optional[Dict[str, Any]]:
    if not sorted_events:
        return None
    first, last = sorted_events[0].date, sorted_events[-1].date
    total_days = days_between(last, first)
    return {
        'start': format_date(first),
        'end': format_date(last),
        'total_days': total_days,
        'total_months': round(total_days / DAYS_PER_MONTH),
    }


@dataclass
class LongitudinalHistory:
    """
    Complete longitudinal view of one patient.

    Attributes:
        patient_id: Record identifier
        events: Enriched events in timeline order
        timeline: Month-grouped Timeline
        biomarker_trends: TrendResult per test
        treatment_periods: Scored TreatmentPeriods
        risk_assessment: Composite outcomes risk
        insights: Remaining insight blocks (already serialized)
        warnings: Data quality warnings collected during extraction
        extraction_completeness: Per-section extraction counts
    """
    patient_id: str
    events: List[EnrichedEvent]
    timeline: Timeline
    biomarker_trends: Dict[str, TrendResult]
    treatment_periods: List[TreatmentPeriod]
    risk_assessment: RiskAssessment
    insights: Dict[str, Any] = field(default_factory=dict)
    key_milestones: List[Dict[str, Any]] = field(default_factory=list)
    disease_progression: Dict[str, Any] = field(default_factory=dict)
    clinical_decision_points: List[Dict[str, Any]] = field(default_factory=list)
    warnings: List[Dict[str, Any]] = field(default_factory=list)
    extraction_completeness: Dict[str, Any] = field(default_factory=dict)
    status: str = 'complete'

    @property
    def total_events(self) -> int:
        return len(self.events)

    @property
    def timespan(self) -> Optional[Dict[str, Any]]:
        return calculate_timespan(self.events)

    def to_dict(self) -> Dict[str, Any]:
        insights = dict(self.insights)
        insights['biomarker_trends'] = summarize_biomarker_trends(self.biomarker_trends)
        insights['risk_assessment'] = self.risk_assessment.to_dict()
        insights['treatment_effectiveness'] = analyze_treatment_effectiveness(self.treatment_periods)
        return {
            'patient_id': self.patient_id,
            'status': self.status,
            'total_events': self.total_events,
            'timespan': self.timespan,
            'timeline': self.timeline.to_dict(),
            'insights': insights,
            'key_milestones': list(self.key_milestones),
            'treatment_journey': map_treatment_journey(self.treatment_periods),
            'disease_progression': self.disease_progression,
            'clinical_decision_points': list(self.clinical_decision_points),
            'warnings': list(self.warnings),
            'extraction_completeness': self.extraction_completeness,
        }


@dataclass
class EmptyHistory:
    """Result for a record with nothing to extract."""
    patient_id: str
    reason: str = 'Record has no extractable events'
    warnings: List[Dict[str, Any]] = field(default_factory=list)
    extraction_completeness: Dict[str, Any] = field(default_factory=dict)
    status: str = 'empty'

    @property
    def total_events(self) -> int:
        return 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            'patient_id': self.patient_id,
            'status': self.status,
            'reason': self.reason,
            'total_events': 0,
            'timespan': None,
            'timeline': [],
            'insights': {},
            'key_milestones': [],
            'treatment_journey': map_treatment_journey([]),
            'disease_progression': {},
            'clinical_decision_points': [],
            'warnings': list(self.warnings),
            'extraction_completeness': self.extraction_completeness,
        }


def _extract(canonical: CanonicalRecord, config: EngineConfig, tracker: DataQualityTracker) -> List[Event]:
    """
    Raises:
        EmptyRecordError: no section produced an event
    """
    events = extract_events(canonical, config.adverse_event_offset_days, tracker)
    if not events:
        raise EmptyRecordError(canonical.patient_id)
    return events


def generate_longitudinal_history(
    record: Any,
    config: Optional[EngineConfig] = None,
    as_of: Optional[datetime] = None
):
    """
    Build the longitudinal history of one patient.

    Args:
        record: Canonical Record mapping (or CanonicalRecord)
        config: Pipeline tunables (defaults when None)
        as_of: Reference time for period labels, ongoing courses and age

    Returns:
        LongitudinalHistory, or EmptyHistory when the record yields no events

    Raises:
        InvalidRecordError: record structure is unusable
        MissingBaselineError: relative or missing timestamp with no derivable baseline
    """
    config = config or EngineConfig()
    canonical = CanonicalRecord.from_dict(record)
    logger = get_logger(__name__, patient_id=canonical.patient_id, stage='extraction')
    tracker = DataQualityTracker()

    try:
        events = _extract(canonical, config, tracker)
    except EmptyRecordError as e:
        logger.warning(str(e))
        return EmptyHistory(
            patient_id=canonical.patient_id,
            warnings=list(tracker.warnings),
            extraction_completeness=tracker.get_completeness_metadata(),
        )

    logger.update_context(stage='enrichment')
    enriched = enrich(
        sort_events(events),
        window_days=config.related_window_days,
        trend_threshold_percent=config.trend_threshold_percent,
        phase_thresholds=tuple(config.phase_thresholds),
    )

    logger.update_context(stage='assembly')
    timeline = assemble(enriched, key_findings_limit=config.key_findings_limit, as_of=as_of)
    logger.info(f"Assembled {len(enriched)} events into {len(timeline)} periods")

    logger.update_context(stage='analytics')
    trends = analyze_biomarker_trends(enriched, config.trend_threshold_percent, config.significance_thresholds)
    periods = identify_treatment_periods(
        enriched,
        follow_up_window_days=config.follow_up_window_days,
        biomarker_threshold_percent=config.biomarker_response_threshold_percent,
        as_of=as_of,
    )
    insights = {
        'trajectory': overall_trajectory(enriched),
        'care_coordination': analyze_care_coordination(enriched, config.interaction_window_days,
                                                       config.care_gap_days),
        'data_completeness': analyze_data_completeness(enriched),
        'quality_metrics': calculate_quality_metrics(enriched),
        'care_continuity': assess_care_continuity(enriched, config.care_gap_days),
    }

    logger.update_context(stage='risk')
    risk = assess_risk(canonical, enriched, as_of)
    logger.info(f"Risk {risk.risk_score} ({risk.risk_category}), "
                f"{len(periods)} treatment periods, {len(tracker.warnings)} warnings")

    return LongitudinalHistory(
        patient_id=canonical.patient_id,
        events=enriched,
        timeline=timeline,
        biomarker_trends=trends,
        treatment_periods=periods,
        risk_assessment=risk,
        insights=insights,
        key_milestones=identify_key_milestones(enriched, config.milestone_lookahead),
        disease_progression=analyze_disease_progression(enriched, trends, config.follow_up_window_days),
        clinical_decision_points=identify_clinical_decision_points(enriched),
        warnings=list(tracker.warnings),
        extraction_completeness=tracker.get_completeness_metadata(),
    )
