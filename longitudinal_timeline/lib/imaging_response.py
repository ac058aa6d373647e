"""
Imaging Response Classification

Classifies paired imaging studies as progression / improvement / stable /
indeterminate from fixed keyword sets over the findings text, each with a
fixed confidence constant. The first study of a series is the baseline.

Series are formed per body region so that, for example, a brain MRI is never
compared against a chest CT.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence

from .clinical_event import AnyEvent, EventKind
from .clinical_vocabulary import (
    COMPARISON_IMPROVEMENT_KEYWORDS,
    COMPARISON_PROGRESSION_KEYWORDS,
    COMPARISON_STABLE_KEYWORDS,
    find_keywords,
)

logger = logging.getLogger(__name__)


BASELINE = 'baseline'
PROGRESSION = 'progression'
IMPROVEMENT = 'improvement'
STABLE = 'stable'
INDETERMINATE = 'indeterminate'

PROGRESSION_CONFIDENCE = 0.8
IMPROVEMENT_CONFIDENCE = 0.8
STABLE_CONFIDENCE = 0.9
INDETERMINATE_CONFIDENCE = 0.4
INCOMPLETE_DATA_CONFIDENCE = 0.3


@dataclass(frozen=True)
class ImagingComparison:
    """Result of comparing a study with the previous study of its series."""
    status: str
    confidence: Optional[float]
    reason: str
    matched_keywords: tuple = ()

    def to_dict(self) -> Dict[str, Any]:
        result = {'status': self.status, 'confidence': self.confidence, 'reason': self.reason}
        if self.matched_keywords:
            result['matched_keywords'] = list(self.matched_keywords)
        return result


BASELINE_COMPARISON = ImagingComparison(BASELINE, None, 'first study in series')


def compare_imaging(previous_findings: Optional[str], current_findings: Optional[str]) -> ImagingComparison:
    """
    Classify the current study against the previous one.

    Args:
        previous_findings: Findings text of the previous study in the series
        current_findings: Findings text of the current study

    Returns:
        ImagingComparison with status progression | improvement | stable | indeterminate
    """
    if not previous_findings or not current_findings:
        return ImagingComparison(INDETERMINATE, INCOMPLETE_DATA_CONFIDENCE, 'incomplete data')

    matched = find_keywords(current_findings, COMPARISON_PROGRESSION_KEYWORDS)
    if matched:
        return ImagingComparison(PROGRESSION, PROGRESSION_CONFIDENCE, 'progression keywords', tuple(matched))

    matched = find_keywords(current_findings, COMPARISON_IMPROVEMENT_KEYWORDS)
    if matched:
        return ImagingComparison(IMPROVEMENT, IMPROVEMENT_CONFIDENCE, 'improvement keywords', tuple(matched))

    matched = find_keywords(current_findings, COMPARISON_STABLE_KEYWORDS)
    if matched:
        return ImagingComparison(STABLE, STABLE_CONFIDENCE, 'stability keywords', tuple(matched))

    return ImagingComparison(INDETERMINATE, INDETERMINATE_CONFIDENCE, 'no classifying keywords')


def classify_imaging_series(findings_series: Sequence[Optional[str]]) -> List[ImagingComparison]:
    """
    Compare each study with its predecessor; the first is always baseline.

    Args:
        findings_series: Findings text of one series, in date order

    Returns:
        One ImagingComparison per study
    """
    results = []
    for index, findings in enumerate(findings_series):
        if index == 0:
            results.append(BASELINE_COMPARISON)
        else:
            results.append(compare_imaging(findings_series[index - 1], findings))
    return results


def imaging_events(events: Sequence[AnyEvent]) -> List[AnyEvent]:
    return [e for e in events if e.kind == EventKind.IMAGING]


def summarize_imaging_response(events: Sequence[AnyEvent]) -> str:
    """
    Aggregate response across the imaging events of a window.

    Returns:
        'improving' when improvements outnumber progressions, 'progressing' for
        the reverse, 'stable' when stable comparisons exist and neither side
        wins, 'indeterminate' when studies exist but none classify,
        'no-imaging' when there are no studies
    """
    studies = imaging_events(events)
    if not studies:
        return 'no-imaging'

    statuses = [s.details.comparison_status for s in studies]
    improvements = statuses.count(IMPROVEMENT)
    progressions = statuses.count(PROGRESSION)
    if improvements > progressions:
        return 'improving'
    if progressions > improvements:
        return 'progressing'
    if STABLE in statuses or improvements:
        return 'stable'
    return 'indeterminate'


def analyze_imaging_progression(events: Sequence[AnyEvent]) -> Dict[str, Any]:
    """
    Imaging comparison summary over the whole timeline.

    Returns:
        Dict with per-study comparisons, status counts and overall trend
    """
    studies = imaging_events(events)
    if len(studies) < 2:
        return {
            'total_studies': len(studies),
            'status': 'insufficient-data',
            'comparisons': [],
        }

    comparisons = []
    for study in studies:
        comparisons.append({
            'event_id': study.event_id,
            'date': study.date.date().isoformat(),
            'modality': study.details.modality,
            'body_region': study.details.body_region,
            'status': study.details.comparison_status,
            'confidence': study.details.comparison_confidence,
        })

    counts = {
        PROGRESSION: sum(1 for c in comparisons if c['status'] == PROGRESSION),
        IMPROVEMENT: sum(1 for c in comparisons if c['status'] == IMPROVEMENT),
        STABLE: sum(1 for c in comparisons if c['status'] == STABLE),
    }
    trend = summarize_imaging_response(studies)
    logger.debug(f"Imaging progression over {len(studies)} studies: {trend}")

    return {
        'total_studies': len(studies),
        'status': 'analyzed',
        'trend': trend,
        'counts': counts,
        'comparisons': comparisons,
    }
